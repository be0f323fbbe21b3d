"""
Plain async HTTP client for the provider's REST API.

Adds the bearer token to every request and turns non-2xx responses into
LaplaceHTTPError.
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Mapping, Optional

import aiohttp
import orjson

from laplace.client.errors import LaplaceHTTPError, wrap_error
from laplace.config import LaplaceConfig

logger = logging.getLogger(__name__)


class Client:
    """
    Base class for REST clients.

    An aiohttp session is created lazily and reused; pass ``session`` to
    share one owned by the caller.
    """

    def __init__(
        self,
        config: LaplaceConfig,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)

    @property
    def base_url(self) -> str:
        return self._config.base_url

    async def send_request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        """
        Send a request and decode the JSON body.

        Raises:
            LaplaceHTTPError: For non-2xx responses
        """
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        url = f"{self._config.base_url}{path}"
        headers = {"Authorization": f"Bearer {self._config.api_key}"}
        body = orjson.dumps(json) if json is not None else None
        if body is not None:
            headers["Content-Type"] = "application/json"

        logger.debug(f"{method} {url}")
        async with self._session.request(
            method, url, params=params, data=body, headers=headers
        ) as response:
            raw = await response.read()
            if response.status >= 300:
                raise wrap_error(LaplaceHTTPError(response.status, raw.decode(errors="replace")))
            if not raw:
                return None
            return orjson.loads(raw)

    async def close(self) -> None:
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()
