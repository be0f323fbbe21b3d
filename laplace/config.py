"""
Client configuration.

LaplaceConfig holds the REST base URL and API key shared by the HTTP
clients. load_config() builds one from the environment:

    LAPLACE_BASE_URL   optional, defaults to the public endpoint
    LAPLACE_API_KEY    required
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import BaseModel, field_validator

from laplace.adapters.env_provider import EnvSecretsProvider, MissingSecretError
from laplace.ports.secrets_provider import SecretsProvider

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.finfree.app"


class ConfigError(ValueError):
    """Raised when the client configuration is incomplete."""


class LaplaceConfig(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    api_key: str

    @field_validator("base_url", mode="before")
    @classmethod
    def _default_base_url(cls, value: Optional[str]) -> str:
        return (value or DEFAULT_BASE_URL).rstrip("/")

    def validate_config(self) -> None:
        if not self.api_key:
            raise ConfigError("API key is required")


def load_config(
    secrets: Optional[SecretsProvider] = None,
    base_url: Optional[str] = None,
) -> LaplaceConfig:
    """
    Build a validated config from the environment.

    Raises:
        ConfigError: If the API key is missing
    """
    secrets = secrets or EnvSecretsProvider()
    try:
        api_key = secrets.get("api_key")
    except MissingSecretError as e:
        raise ConfigError("API key is required") from e

    config = LaplaceConfig(
        base_url=base_url or os.environ.get("LAPLACE_BASE_URL") or DEFAULT_BASE_URL,
        api_key=api_key,
    )
    config.validate_config()
    logger.debug(f"Loaded config for {config.base_url}")
    return config
