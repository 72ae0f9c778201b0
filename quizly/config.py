import os
from dataclasses import dataclass

_TRUTHY = ("1", "true", "yes", "on")


def _flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str
    allow_regrade: bool
    allow_unpublish: bool
    enforce_score_ceiling: bool


def get_settings() -> Settings:
    """Read settings from the environment.

    Not cached: the capability flags are looked up on every call so they can be
    flipped per process (or per test with monkeypatch.setenv).
    """
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./quizly.db"),
        log_level=os.getenv("QUIZLY_LOG_LEVEL", "INFO").upper(),
        allow_regrade=_flag("QUIZLY_ALLOW_REGRADE"),
        allow_unpublish=_flag("QUIZLY_ALLOW_UNPUBLISH"),
        enforce_score_ceiling=_flag("QUIZLY_ENFORCE_SCORE_CEILING"),
    )
