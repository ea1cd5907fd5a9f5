import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

from dotenv import load_dotenv

load_dotenv()  # load .env from the project root (or current working directory)

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="[%(name)s] %(message)s",
)
logger = logging.getLogger("fall_backend")

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fall_backend.core.store import EventStore, SqlEventStore
from fall_backend.routers import falls, monitor

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./fall_events.db")
ALLOWED_ORIGINS: list[str] = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]


def create_app(
    store: Optional[EventStore] = None,
    monitor_options: Optional[dict[str, Any]] = None,
) -> FastAPI:
    """
    Build the API. Tests pass their own store and shortened timers;
    otherwise the store comes from DATABASE_URL.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.store = store or SqlEventStore(DATABASE_URL)
        app.state.monitor_options = monitor_options or {}
        await app.state.store.init()
        logger.info("Fall monitor API started")
        yield
        await app.state.store.close()

    app = FastAPI(title="Fall Monitor API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(monitor.router)
    app.include_router(falls.router)

    @app.get("/health")
    async def health_check() -> dict:
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
