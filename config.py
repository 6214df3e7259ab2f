# -----------------------------
# config.py
# -----------------------------
import os
from dataclasses import dataclass, field
from typing import List

def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default

def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default

def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.environ.get(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]

@dataclass
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    waiting_timeout: float = 300.0   # seconds a queued connection may wait
    sweep_interval: float = 60.0     # seconds between expiry sweeps
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, keeping defaults for missing or invalid values."""
        d = cls()
        return cls(
            host=os.environ.get("HOST", d.host),
            port=_env_int("PORT", d.port),
            waiting_timeout=_env_float("WAITING_TIMEOUT", d.waiting_timeout),
            sweep_interval=_env_float("SWEEP_INTERVAL", d.sweep_interval),
            cors_origins=_env_list("CORS_ORIGINS", d.cors_origins),
            log_level=os.environ.get("LOG_LEVEL", d.log_level),
        )
