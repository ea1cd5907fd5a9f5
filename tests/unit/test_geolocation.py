"""Unit tests for the geolocation provider and the fallback coordinate."""

import numpy as np
import pytest

from fall_backend.core.capabilities import LocationErrorKind, WatchOptions
from fall_backend.core.geolocation import (
    ERROR_MESSAGES,
    GeolocationProvider,
    LocationStatus,
    fallback_coordinates,
)
from fall_backend.platform.browser import UNSUPPORTED_MESSAGE, BrowserLocationCapability

LAT_RANGE = (28.5639, 28.6639)
LON_RANGE = (77.1590, 77.2590)


class FixedRandom:
    """Stand-in generator returning a fixed uniform draw."""

    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value


def in_fallback_box(lat, lon):
    return (
        LAT_RANGE[0] - 1e-9 <= lat <= LAT_RANGE[1] + 1e-9
        and LON_RANGE[0] - 1e-9 <= lon <= LON_RANGE[1] + 1e-9
    )


class TestFallbackCoordinates:
    def test_many_draws_stay_in_box(self):
        rng = np.random.default_rng(7)
        for _ in range(2_000):
            assert in_fallback_box(*fallback_coordinates(rng))

    @pytest.mark.parametrize("u, expected_lat, expected_lon", [
        (0.0, 28.5639, 77.1590),
        (0.5, 28.6139, 77.2090),
        (0.999999, 28.6639, 77.2590),
    ])
    def test_extremes(self, u, expected_lat, expected_lon):
        lat, lon = fallback_coordinates(FixedRandom(u))
        assert lat == pytest.approx(expected_lat, abs=1e-6)
        assert lon == pytest.approx(expected_lon, abs=1e-6)

    def test_each_call_draws_fresh_jitter(self):
        rng = np.random.default_rng(1)
        assert fallback_coordinates(rng) != fallback_coordinates(rng)


class TestGeolocationProvider:
    def test_initial_state_is_loading(self):
        provider = GeolocationProvider(BrowserLocationCapability())
        assert provider.position.status is LocationStatus.LOADING
        assert not provider.is_watching

    def test_default_watch_options(self):
        provider = GeolocationProvider(BrowserLocationCapability())
        assert provider.options == WatchOptions(enable_high_accuracy=True, timeout_ms=10_000, maximum_age_ms=0)

    async def test_position_update_makes_it_active(self):
        capability = BrowserLocationCapability()
        provider = GeolocationProvider(capability)
        await provider.start()

        capability.push_position(51.5007, -0.1246, accuracy=12.0)

        assert provider.position.status is LocationStatus.ACTIVE
        assert provider.position.accuracy == 12.0
        assert provider.resolve_coordinates() == (51.5007, -0.1246, False)

    @pytest.mark.parametrize("code, kind", [
        (1, LocationErrorKind.PERMISSION_DENIED),
        (2, LocationErrorKind.UNAVAILABLE),
        (3, LocationErrorKind.TIMEOUT),
    ])
    async def test_errors_map_to_kinds(self, code, kind):
        capability = BrowserLocationCapability()
        provider = GeolocationProvider(capability)
        await provider.start()

        capability.push_error(code)

        assert provider.position.status is LocationStatus.ERROR
        assert provider.position.error is kind
        assert provider.position.message == ERROR_MESSAGES[kind]
        assert provider.position.permission_denied is (kind is LocationErrorKind.PERMISSION_DENIED)

    async def test_error_drops_position_and_uses_fallback(self):
        capability = BrowserLocationCapability()
        provider = GeolocationProvider(capability)
        await provider.start()
        capability.push_position(10.0, 10.0)

        capability.push_error(1)
        lat, lon, is_fallback = provider.resolve_coordinates(np.random.default_rng(3))

        assert is_fallback
        assert in_fallback_box(lat, lon)
        assert provider.position.latitude is None

    async def test_unsupported_platform_reports_unavailable(self):
        provider = GeolocationProvider(BrowserLocationCapability(supported=False))
        await provider.start()

        assert provider.position.error is LocationErrorKind.UNAVAILABLE
        assert provider.position.message == UNSUPPORTED_MESSAGE
        assert not provider.is_watching

    async def test_start_is_idempotent_while_watching(self):
        capability = BrowserLocationCapability()
        provider = GeolocationProvider(capability)
        await provider.start()
        await provider.start()

        assert capability.active_watches == 1

    async def test_stop_then_restart(self):
        capability = BrowserLocationCapability()
        provider = GeolocationProvider(capability)
        await provider.start()
        provider.stop()
        assert capability.active_watches == 0
        assert not provider.is_watching

        await provider.start()
        assert capability.active_watches == 1
        assert provider.position.status is LocationStatus.LOADING

    async def test_context_manager_clears_watch(self):
        capability = BrowserLocationCapability()
        async with GeolocationProvider(capability) as provider:
            assert provider.is_watching
        assert capability.active_watches == 0

    async def test_start_after_error_replaces_watch(self):
        capability = BrowserLocationCapability()
        provider = GeolocationProvider(capability)
        await provider.start()
        capability.push_error(3)

        await provider.start()

        assert capability.active_watches == 1
        assert provider.position.status is LocationStatus.LOADING
        capability.push_position(1.0, 2.0)
        assert provider.position.is_active
