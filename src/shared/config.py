"""Runtime configuration for the Shopfront services.

Settings are resolved once per process from built-in defaults overlaid by
``SHOPFRONT_*`` environment variables. ``SHOPFRONT_ENV`` selects the overlay:

    - "test"        → dedicated SQLite file, console logs
    - "development" → local SQLite file, console logs (default)
    - "production"  → JSON logs, real JWT secret required
"""

import os
from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from shared.exceptions import ConfigurationError

DEFAULT_JWT_SECRET = "dev-secret-change-me-before-deploying"

_ENV_DEFAULTS: dict[str, dict[str, Any]] = {
    "development": {"database_uri": "sqlite:///shopfront.db"},
    "test": {"database_uri": "sqlite:///shopfront-test.db"},
    "production": {"log_format": "json"},
}


class Settings(BaseModel):
    env: Literal["development", "test", "production"] = "development"
    database_uri: str = "sqlite:///shopfront.db"
    database_echo: bool = False
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    token_ttl_minutes: int = Field(default=60 * 24 * 7, gt=0)
    currency: str = Field(default="NGN", min_length=3, max_length=3)
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    order_number_attempts: int = Field(default=5, ge=1)

    @property
    def is_production(self) -> bool:
        return self.env == "production"


def load_from_env() -> dict[str, Any]:
    """Collect ``SHOPFRONT_*`` overrides from the environment."""
    config: dict[str, Any] = {}

    if uri := os.getenv("SHOPFRONT_DATABASE_URI"):
        config["database_uri"] = uri

    if echo := os.getenv("SHOPFRONT_DATABASE_ECHO"):
        config["database_echo"] = echo.lower() in ("1", "true", "yes")

    if secret := os.getenv("SHOPFRONT_JWT_SECRET"):
        config["jwt_secret"] = secret

    if algorithm := os.getenv("SHOPFRONT_JWT_ALGORITHM"):
        config["jwt_algorithm"] = algorithm

    if ttl := os.getenv("SHOPFRONT_TOKEN_TTL_MINUTES"):
        config["token_ttl_minutes"] = int(ttl)

    if currency := os.getenv("SHOPFRONT_CURRENCY"):
        config["currency"] = currency.upper()

    if level := os.getenv("SHOPFRONT_LOG_LEVEL"):
        config["log_level"] = level.upper()

    if fmt := os.getenv("SHOPFRONT_LOG_FORMAT"):
        config["log_format"] = fmt.lower()

    if attempts := os.getenv("SHOPFRONT_ORDER_NUMBER_ATTEMPTS"):
        config["order_number_attempts"] = int(attempts)

    return config


def load_settings() -> Settings:
    """Build settings: defaults < environment overlay < explicit env vars."""
    env = os.getenv("SHOPFRONT_ENV", "development").lower()
    values: dict[str, Any] = {"env": env}
    values.update(_ENV_DEFAULTS.get(env, {}))
    values.update(load_from_env())

    try:
        settings = Settings(**values)
    except (ValidationError, ValueError) as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    if settings.is_production and settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise ConfigurationError("SHOPFRONT_JWT_SECRET must be set in production")

    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def reset_settings() -> None:
    """Drop the cached settings (useful for testing)."""
    get_settings.cache_clear()
