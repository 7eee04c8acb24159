"""Credential store backends."""
from .base import CredentialStore
from .memory import MemoryCredentialStore
from .sql import SqlCredentialStore

__all__ = ["CredentialStore", "MemoryCredentialStore", "SqlCredentialStore"]
