"""Service wiring - built once at startup and shared through app.state."""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from .config import Settings, get_database_url
from .storage import CredentialStore, MemoryCredentialStore, SqlCredentialStore
from .services.crypto import CryptoEngine
from .services.device_registry import DeviceRegistry
from .services.dispatcher import DispatchEngine
from .services.log_query import LogQueryEngine
from .services.upstream_client import UpstreamPushClient

logger = logging.getLogger(__name__)


@dataclass
class RelayServices:
    """Everything a request handler needs."""
    settings: Settings
    store: CredentialStore
    upstream: Optional[UpstreamPushClient]
    registry: DeviceRegistry
    dispatcher: DispatchEngine
    log_query: LogQueryEngine

    async def close(self):
        """Close the upstream client and the store."""
        if self.upstream is not None:
            await self.upstream.aclose()
        await self.store.close()


def assemble_services(
    settings: Settings,
    store: CredentialStore,
    upstream: Optional[UpstreamPushClient],
) -> RelayServices:
    """Wire the core components around an existing store and client."""
    crypto = CryptoEngine()
    return RelayServices(
        settings=settings,
        store=store,
        upstream=upstream,
        registry=DeviceRegistry(store, settings, crypto=crypto, upstream=upstream),
        dispatcher=DispatchEngine(
            store,
            upstream,
            crypto=crypto,
            max_concurrency=settings.dispatch_max_concurrency,
        ),
        log_query=LogQueryEngine(store),
    )


async def build_services(settings: Settings) -> RelayServices:
    """Create the store and upstream client described by settings."""
    if settings.storage_backend.lower() == "memory":
        store: CredentialStore = MemoryCredentialStore()
        logger.info("Using in-memory credential store")
    else:
        sql_store = SqlCredentialStore(get_database_url(settings))
        await sql_store.init()
        store = sql_store

    upstream = None
    if settings.upstream_base_url:
        upstream = UpstreamPushClient(
            settings.upstream_base_url,
            token=settings.upstream_token,
            timeout=settings.upstream_timeout_seconds,
        )
        logger.info(f"Upstream push service: {upstream.base_url}")
    else:
        logger.warning("No upstream push service configured - pushes and registrations will fail")

    return assemble_services(settings, store, upstream)


def get_services(request: Request) -> RelayServices:
    """Dependency returning the application's services."""
    return request.app.state.services
