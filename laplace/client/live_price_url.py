"""
Connection endpoint resolver for the live price WebSocket.

Each URL is single-use and tied to the external user it was issued for.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

from laplace.client.http import Client
from laplace.live.types import Feed

logger = logging.getLogger(__name__)

WS_URL_PATH = "/api/v1/ws/url"
DEFAULT_ACCESS_LEVEL = "KRMD1"


class Region(str, Enum):
    TR = "tr"
    US = "us"


class LivePriceClient(Client):
    async def get_websocket_url(self, external_user_id: str, feeds: Iterable[Feed]) -> str:
        """Issue a connection URL covering ``feeds``."""
        response = await self.send_request(
            "POST",
            WS_URL_PATH,
            json={
                "externalUserId": external_user_id,
                "feeds": [feed.value for feed in feeds],
            },
        )
        return _extract_url(response)

    async def get_websocket_url_for_region(
        self,
        external_user_id: str,
        region: Region,
        access_level: str = DEFAULT_ACCESS_LEVEL,
    ) -> str:
        """Legacy single-region form of get_websocket_url."""
        response = await self.send_request(
            "POST",
            WS_URL_PATH,
            params={"region": region.value, "accessLevel": access_level},
            json={"externalUserId": external_user_id},
        )
        return _extract_url(response)


def _extract_url(response: object) -> str:
    if not isinstance(response, dict) or not response.get("url"):
        raise ValueError(f"WebSocket URL response has no url: {response!r}")
    return str(response["url"])
