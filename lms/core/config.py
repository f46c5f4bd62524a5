from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off", "")


def _getenv(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = _getenv(name, str(default))
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


def _getenv_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = _getenv(name, default).lower()
    if value not in choices:
        raise ValueError(f"{name} must be {'|'.join(choices)} (got {value!r})")
    return value


def _getenv_optional(name: str) -> str | None:
    return _getenv(name, "") or None


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None

    # Certificate issuance
    certificate_renderer_url: str | None
    certificate_issuer: str
    public_base_url: str

    # Attempt housekeeping: an in-progress attempt is stale once it is older
    # than the test duration (or the default) plus the grace period.
    default_test_duration_minutes: int
    attempt_abandon_grace_minutes: int

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    """Read the environment once; any bad value fails startup naming its variable."""
    return Settings(  # type: ignore[arg-type]
        app_env=_getenv_choice("APP_ENV", "dev", ("dev", "test", "prod")),
        log_level=_getenv_choice(
            "LOG_LEVEL", "info", ("debug", "info", "warning", "error")
        ),
        log_json=_getenv_bool("LOG_JSON", False),
        port=_getenv_int("PORT", 8000, minimum=1),
        database_url=_getenv_optional("DATABASE_URL"),
        redis_url=_getenv_optional("REDIS_URL"),
        certificate_renderer_url=_getenv_optional("CERTIFICATE_RENDERER_URL"),
        certificate_issuer=_getenv("CERTIFICATE_ISSUER", "LMS Learning Platform"),
        public_base_url=_getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/"),
        default_test_duration_minutes=_getenv_int(
            "DEFAULT_TEST_DURATION_MINUTES", 60, minimum=1
        ),
        attempt_abandon_grace_minutes=_getenv_int("ATTEMPT_ABANDON_GRACE_MINUTES", 30),
    )


SETTINGS = load_settings()
