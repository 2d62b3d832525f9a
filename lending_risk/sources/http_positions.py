"""HTTP position source with endpoint fallback."""
from __future__ import annotations

import asyncio
import logging
import ssl
from collections.abc import Mapping
from typing import Any

import aiohttp
import certifi

from ..config import PositionSourceConfig
from ..errors import DataUnavailableError, MalformedDataError
from ..models import RawPositionEntry
from .parser import parse_position_response

logger = logging.getLogger(__name__)


class HttpPositionSource:
    """Fetch account positions from a JSON endpoint, rotating on failure.

    Each endpoint serves ``GET {endpoint}/accounts/{account}/positions``
    returning ``{"deposits": [...], "borrows": [...]}``.
    """

    def __init__(
        self,
        config: PositionSourceConfig,
        decimals: Mapping[str, int] | None = None,
    ) -> None:
        if not config.endpoints:
            raise ValueError("At least one position endpoint is required")
        self.endpoints = [e.rstrip("/") for e in config.endpoints]
        self.timeout = config.timeout
        self.current_index = 0
        self._decimals = dict(decimals or {})

    async def _get_json(self, path: str) -> Any:
        """GET ``path`` with fallback to alternative endpoints."""
        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            index = (self.current_index + attempt) % len(self.endpoints)
            url = f"{self.endpoints[index]}{path}"

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.get(
                        url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                    ) as response:
                        if response.status != 200:
                            raise DataUnavailableError(
                                f"HTTP {response.status} from {url}"
                            )
                        try:
                            data = await response.json()
                        except (aiohttp.ContentTypeError, ValueError) as e:
                            raise MalformedDataError(f"Invalid JSON from {url}: {e}") from e

                        if index != self.current_index:
                            logger.info("Switched to position endpoint: %s", self.endpoints[index])
                            self.current_index = index
                        return data
            except (aiohttp.ClientError, asyncio.TimeoutError, DataUnavailableError) as e:
                last_error = e
                logger.warning("Position endpoint %s failed: %s", url, e)
                continue

        raise DataUnavailableError(
            f"All position endpoints failed. Last error: {last_error}"
        )

    async def fetch_positions(
        self, account: str
    ) -> tuple[list[RawPositionEntry], list[RawPositionEntry]]:
        payload = await self._get_json(f"/accounts/{account}/positions")
        deposits, borrows = parse_position_response(payload, self._decimals)
        logger.info(
            "Fetched %d deposits and %d borrows for %s",
            len(deposits), len(borrows), account,
        )
        return deposits, borrows
