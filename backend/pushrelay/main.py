"""Main FastAPI application for the push relay."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .dependencies import RelayServices, build_services
from .routers import admin_router, devices_router, logs_router, notices_router, status_router
from .routers.status import upstream_online

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(settings: Optional[Settings] = None, services: Optional[RelayServices] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Configuration; read from the environment when omitted
        services: Pre-built services (tests); built in the lifespan when omitted
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown."""
        owned = services is None
        if owned:
            app.state.services = await build_services(settings)
        else:
            app.state.services = services
        logger.info(f"Push relay started (storage={settings.storage_backend})")

        yield

        if owned:
            await app.state.services.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="PushRelay",
        description="Encrypts plaintext notices per device and forwards them to the push service",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, restrict to your domain
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(status_router)
    app.include_router(devices_router)
    app.include_router(notices_router)
    app.include_router(logs_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health_check():
        relay_services: RelayServices = app.state.services
        upstream = "up" if await upstream_online(relay_services) else "degraded"
        return {"status": "healthy", "upstream": upstream}

    return app


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = Settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.web_port)


if __name__ == "__main__":
    run()
