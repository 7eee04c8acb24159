"""API routers."""
from .admin import router as admin_router
from .devices import router as devices_router
from .logs import router as logs_router
from .notices import router as notices_router
from .status import router as status_router

__all__ = ["admin_router", "devices_router", "logs_router", "notices_router", "status_router"]
