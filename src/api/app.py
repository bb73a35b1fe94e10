"""FastAPI application for the Nostr media feed."""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src import __version__
from src.api.routes.dependencies import get_container
from src.api.routes.feed import router as feed_router
from src.api.routes.time_machine import router as time_machine_router
from src.api.sse import FeedBroadcaster
from src.config.settings import settings
from src.services.container import ServiceContainer


def create_app(container: ServiceContainer) -> FastAPI:
    """Build the app around an already-constructed service container."""
    broadcaster = FeedBroadcaster(container.feed_service)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        broadcaster.start()
        yield
        broadcaster.stop()

    app = FastAPI(
        title="Nostr Media Observatory API",
        description="Live and time-navigable media feed harvested from Nostr relays",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.broadcaster = broadcaster

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Content-Type"],
    )

    # Register routes
    app.include_router(feed_router, prefix="/api")
    app.include_router(time_machine_router, prefix="/api/time-machine")

    @app.get("/health")
    async def health(container: ServiceContainer = Depends(get_container)):
        return container.health_service.check_all()

    return app
