import os
from functools import lru_cache

MIN_WINDOW_SIZE = 3
MAX_WINDOW_SIZE = 12
MIN_UPCOMING_LIMIT = 1
MAX_UPCOMING_LIMIT = 50


class Settings:
    def __init__(
        self,
        database_url: str,
        frontend_origin: str,
        cashflow_window: int,
        upcoming_limit: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.frontend_origin = frontend_origin
        self.cashflow_window = cashflow_window
        self.upcoming_limit = upcoming_limit
        self.log_level = log_level


def clamp_window_size(value: int) -> int:
    return max(MIN_WINDOW_SIZE, min(MAX_WINDOW_SIZE, value))


def clamp_upcoming_limit(value: int) -> int:
    return max(MIN_UPCOMING_LIMIT, min(MAX_UPCOMING_LIMIT, value))


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("FINBOARD_DATABASE_URL", "sqlite:///./finboard.db"),
        frontend_origin=os.getenv("FINBOARD_FRONTEND_ORIGIN", "http://localhost:3000"),
        cashflow_window=clamp_window_size(_int_from_env("FINBOARD_CASHFLOW_WINDOW", 6)),
        upcoming_limit=clamp_upcoming_limit(_int_from_env("FINBOARD_UPCOMING_LIMIT", 8)),
        log_level=os.getenv("FINBOARD_LOG_LEVEL", "INFO").upper(),
    )
