import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notifier.config import get_settings
from notifier.infrastructure.database import engine, initialize_database
from notifier.infrastructure.firebase import initialize_firebase
from notifier.infrastructure.notifications import realtime_bus
from notifier.interfaces.api.dependencies import shutdown_services
from notifier.interfaces.api.routes import register_routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Prepare the database and push provider, then release resources on exit."""

    initialize_database()
    initialize_firebase()
    realtime_bus.attach_loop(asyncio.get_running_loop())
    yield
    realtime_bus.attach_loop(None)
    shutdown_services()
    engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = get_settings()
    app = FastAPI(title="Notifier API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


app = create_app()
