"""Application configuration, loaded from the process environment."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from scanhook.errors import ConfigError

logger = logging.getLogger(__name__)


class ServerConfig(BaseModel):
    """Settings for the webhook HTTP server."""

    host: str = "127.0.0.1"
    port: int = Field(default=8743, ge=0, le=65535)
    path: str = "/webhooks/github"
    max_body_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    request_timeout_seconds: float = Field(default=10.0, gt=0)


class WebhookConfig(BaseModel):
    """Signature policy for inbound deliveries."""

    secret: str = ""
    # Reject deliveries that carry no signature while a secret is configured.
    require_signature: bool = False


class StorageConfig(BaseModel):
    """Backing store selection."""

    backend: Literal["postgres", "memory"] = "memory"
    database_url: str = ""


class AppConfig(BaseModel):
    """Top-level configuration."""

    log_level: str = "INFO"
    log_dir: Path | None = None
    server: ServerConfig = Field(default_factory=ServerConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AppConfig:
        """Build the config from environment variables.

        Unset variables keep their defaults. The storage backend defaults to
        ``postgres`` whenever ``DATABASE_URL`` is set.
        """
        env = os.environ if environ is None else environ
        data: dict[str, dict[str, object]] = {"server": {}, "webhook": {}, "storage": {}}
        top: dict[str, object] = {}
        for var, (section, key) in ENV_VARS.items():
            value = env.get(var)
            if value is None or value == "":
                continue
            if section:
                data[section][key] = value
            else:
                top[key] = value

        storage = data["storage"]
        if "backend" not in storage:
            storage["backend"] = "postgres" if storage.get("database_url") else "memory"

        try:
            config = cls.model_validate({**top, **data})
        except ValidationError as exc:
            raise ConfigError(_describe_validation_error(exc)) from exc

        if config.storage.backend == "postgres" and not config.storage.database_url:
            msg = "DATABASE_URL must be set when SCANHOOK_STORAGE=postgres"
            raise ConfigError(msg)
        return config


# env var -> (section, field); an empty section means a top-level field.
ENV_VARS: dict[str, tuple[str, str]] = {
    "SCANHOOK_HOST": ("server", "host"),
    "SCANHOOK_PORT": ("server", "port"),
    "SCANHOOK_WEBHOOK_PATH": ("server", "path"),
    "SCANHOOK_MAX_BODY_BYTES": ("server", "max_body_bytes"),
    "SCANHOOK_REQUEST_TIMEOUT": ("server", "request_timeout_seconds"),
    "GITHUB_WEBHOOK_SECRET": ("webhook", "secret"),
    "SCANHOOK_REQUIRE_SIGNATURE": ("webhook", "require_signature"),
    "SCANHOOK_STORAGE": ("storage", "backend"),
    "DATABASE_URL": ("storage", "database_url"),
    "SCANHOOK_LOG_LEVEL": ("", "log_level"),
    "SCANHOOK_LOG_DIR": ("", "log_dir"),
}

_FIELD_TO_ENV: dict[tuple[str, ...], str] = {
    ((section, key) if section else (key,)): var for var, (section, key) in ENV_VARS.items()
}


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        loc = tuple(str(part) for part in error["loc"])
        var = _FIELD_TO_ENV.get(loc, ".".join(loc))
        problems.append(f"{var}: {error['msg']}")
    return "Invalid configuration: " + "; ".join(problems)
