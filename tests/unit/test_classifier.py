"""Unit tests for threshold fall classification and its cooldown."""

import math

import pytest

from conftest import make_sample
from fall_backend.core.classifier import (
    FALL_COOLDOWN_MS,
    FallClassifier,
    FallTrigger,
)


class TestAccelerationThreshold:
    """Acceleration magnitude triggers strictly above 25 m/s²."""

    def test_spike_without_prior_signal_is_a_fall(self):
        """Magnitude 30 with no previous signal emits an acceleration fall."""
        classifier = FallClassifier()
        signal = classifier.classify(make_sample(az=30.0, timestamp=1_000))

        assert signal is not None
        assert signal.trigger is FallTrigger.ACCELERATION
        assert signal.magnitude == pytest.approx(30.0)
        assert classifier.last_fall_timestamp == 1_000

    @pytest.mark.parametrize("magnitude, expected", [
        (9.81, False),
        (24.99, False),
        (25.0, False),
        (25.01, True),
        (60.0, True),
    ])
    def test_threshold_is_strict(self, magnitude, expected):
        """Only magnitudes strictly greater than the threshold count."""
        classifier = FallClassifier()
        signal = classifier.classify(make_sample(ax=magnitude, timestamp=0))
        assert (signal is not None) is expected

    def test_magnitude_uses_all_three_axes(self):
        """sqrt(16² + 16² + 16²) ≈ 27.7 crosses the threshold although no axis does."""
        classifier = FallClassifier()
        signal = classifier.classify(make_sample(ax=16.0, ay=-16.0, az=16.0, timestamp=0))

        assert signal is not None
        assert signal.magnitude == pytest.approx(math.sqrt(3 * 16.0 ** 2))


class TestRotationThreshold:
    """Rotation magnitude is the sum of absolute rates, strictly above 300 deg/s."""

    def test_rotation_spike_is_a_fall(self):
        classifier = FallClassifier()
        signal = classifier.classify(make_sample(alpha=100, beta=150, gamma=60, timestamp=0))

        assert signal is not None
        assert signal.trigger is FallTrigger.ROTATION
        assert signal.magnitude == pytest.approx(310.0)

    def test_negative_rates_count_by_absolute_value(self):
        classifier = FallClassifier()
        signal = classifier.classify(make_sample(alpha=-200, beta=50, gamma=-60, timestamp=0))
        assert signal is not None

    def test_exactly_threshold_is_not_a_fall(self):
        classifier = FallClassifier()
        assert classifier.classify(make_sample(alpha=100, beta=100, gamma=100, timestamp=0)) is None

    def test_acceleration_short_circuits_rotation(self):
        """A sample over both thresholds yields one acceleration signal only."""
        classifier = FallClassifier()
        signal = classifier.classify(make_sample(az=40.0, alpha=400.0, timestamp=0))

        assert signal.trigger is FallTrigger.ACCELERATION
        assert classifier.classify(make_sample(alpha=400.0, timestamp=5)) is None


class TestCooldown:
    """At most one signal per 10 s, measured from the last accepted signal."""

    def test_second_spike_two_seconds_later_is_suppressed(self):
        classifier = FallClassifier()
        assert classifier.classify(make_sample(az=30.0, timestamp=10_000)) is not None

        assert classifier.classify(make_sample(az=28.0, timestamp=12_000)) is None
        assert classifier.last_fall_timestamp == 10_000

    def test_cooldown_boundary(self):
        classifier = FallClassifier()
        classifier.classify(make_sample(az=30.0, timestamp=0))

        assert classifier.classify(make_sample(az=30.0, timestamp=FALL_COOLDOWN_MS - 1)) is None
        assert classifier.classify(make_sample(az=30.0, timestamp=FALL_COOLDOWN_MS)) is not None

    def test_rotation_respects_cooldown(self):
        classifier = FallClassifier()
        classifier.classify(make_sample(az=30.0, timestamp=0))
        assert classifier.classify(make_sample(alpha=500.0, timestamp=3_000)) is None

    def test_suppressed_samples_do_not_extend_cooldown(self):
        """Cooldown runs from the accepted signal, not from every spike."""
        classifier = FallClassifier()
        classifier.classify(make_sample(az=30.0, timestamp=0))
        for ts in range(1_000, 10_000, 1_000):
            assert classifier.classify(make_sample(az=30.0, timestamp=ts)) is None

        assert classifier.classify(make_sample(az=30.0, timestamp=10_000)) is not None

    def test_no_two_signals_closer_than_cooldown(self):
        """A minute of continuous spikes every 250 ms yields signals ≥ 10 s apart."""
        classifier = FallClassifier()
        accepted = []
        for ts in range(0, 60_000, 250):
            sample = make_sample(az=35.0, alpha=350.0, timestamp=ts) if ts % 500 else make_sample(
                alpha=350.0, timestamp=ts
            )
            signal = classifier.classify(sample)
            if signal is not None:
                accepted.append(signal.timestamp)

        assert len(accepted) == 6
        assert all(b - a >= FALL_COOLDOWN_MS for a, b in zip(accepted, accepted[1:]))

    def test_explicit_now_overrides_sample_timestamp(self):
        classifier = FallClassifier()
        classifier.classify(make_sample(az=30.0, timestamp=0), now=50_000)
        assert classifier.last_fall_timestamp == 50_000

    def test_instances_do_not_share_state(self):
        first, second = FallClassifier(), FallClassifier()
        first.classify(make_sample(az=30.0, timestamp=0))

        assert second.last_fall_timestamp is None
        assert second.classify(make_sample(az=30.0, timestamp=1)) is not None

    def test_reset_clears_cooldown(self):
        classifier = FallClassifier()
        classifier.classify(make_sample(az=30.0, timestamp=0))
        classifier.reset()
        assert classifier.classify(make_sample(az=30.0, timestamp=1)) is not None
