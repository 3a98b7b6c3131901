import os
from dataclasses import dataclass


def _get_bool(env_name: str, default: bool = False) -> bool:
    val = os.getenv(env_name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_float(env_name: str, default: float) -> float:
    val = os.getenv(env_name)
    if val is None or not str(val).strip():
        return default
    return float(val)


@dataclass
class Settings:
    # App
    APP_HOST: str = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT: int = int(os.getenv("APP_PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Collaborator API
    API_BASE_URL: str = os.getenv("API_BASE_URL", "http://localhost:3000/api")
    API_TOKEN: str = os.getenv("API_TOKEN", "")
    API_TIMEOUT: float = _get_float("API_TIMEOUT", 10.0)

    # Order list refresh
    POLL_ENABLED: bool = _get_bool("POLL_ENABLED", True)
    POLL_INTERVAL: float = _get_float("POLL_INTERVAL", 2.0)


settings = Settings()
