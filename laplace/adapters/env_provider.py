from __future__ import annotations

import logging
import os

from laplace.ports.secrets_provider import SecretsProvider

_LOGGER = logging.getLogger(__name__)


class MissingSecretError(ValueError):
    """The API key (or another allow-listed name) has no value in the environment."""

    def __init__(self, secret_name: str) -> None:
        super().__init__(secret_name)
        self.secret_name = secret_name

    def __str__(self) -> str:
        return f"Secret '{self.secret_name}' is unavailable"


class EnvSecretsProvider(SecretsProvider):
    def __init__(
        self,
        prefix: str = "LAPLACE_",
        allowed: dict[str, str] | None = None,
    ) -> None:
        """
        Args:
            prefix: Prepended to every variable name, LAPLACE_ by default
            allowed: Extra name -> variable suffix pairs on top of api_key
        """
        if not prefix:
            raise ValueError("Environment prefix must be a non-empty string")
        self._prefix = prefix
        base_allowed: dict[str, str] = {
            "api_key": "API_KEY",
        }
        if allowed:
            base_allowed.update(allowed)
        self._allowed = base_allowed

    def get(self, secret_name: str) -> str:
        """Read LAPLACE_API_KEY for "api_key"; empty values count as missing."""
        if secret_name not in self._allowed:
            raise MissingSecretError(secret_name)

        env_var = f"{self._prefix}{self._allowed[secret_name]}"
        value = os.environ.get(env_var)
        if not value:
            raise MissingSecretError(secret_name)

        _LOGGER.debug(
            "secret_resolved",
            extra={
                "event": "secret_resolved",
                "secret_name": secret_name,
                "source": "env",
            },
        )
        return value
