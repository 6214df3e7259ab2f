from __future__ import annotations
import sys, time, uuid

from loguru import logger

def secure_uuid() -> str:
    """Generate a cryptographically strong UUID4 string."""
    return str(uuid.uuid4())

def monotonic() -> float:
    """Return monotonic time in seconds."""
    return time.monotonic()

def setup_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with a stderr sink at `level`."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )

def payload_keys(payload) -> list:
    """Keys of a dict payload for logging; never the values."""
    if isinstance(payload, dict):
        return list(payload.keys())
    return []
