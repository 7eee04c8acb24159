"""Helpers for hiding identifiers and key material in listings and logs."""


def mask_value(value: str, visible: int = 4) -> str:
    """Keep the first ``visible`` characters and replace the rest with ``*``."""
    value = (value or "").strip()
    if len(value) <= visible:
        return value
    return value[:visible] + "*" * (len(value) - visible)


def short(value: str, length: int = 8) -> str:
    """Truncate a token or key for log lines."""
    if not value:
        return "<empty>"
    return value[:length] + "..." if len(value) > length else value
