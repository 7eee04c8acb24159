"""Services for credentials, encryption, dispatch and reporting."""
from .crypto import CryptoEngine
from .device_registry import DeviceRegistry
from .dispatcher import DispatchEngine
from .log_query import LogQueryEngine
from .upstream_client import UpstreamPushClient

__all__ = ["CryptoEngine", "DeviceRegistry", "DispatchEngine", "LogQueryEngine", "UpstreamPushClient"]
