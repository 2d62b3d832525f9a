"""Pyth Network price oracle service."""
from __future__ import annotations

import asyncio
import logging
import ssl
from collections.abc import Iterable

import aiohttp
import certifi

from ..config import PythConfig
from ..errors import DataUnavailableError, MalformedDataError
from ..sources.parser import parse_number

logger = logging.getLogger(__name__)


class PythOracle:
    """Fetch USD prices from the Pyth Hermes API, keyed by coin type."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)

    async def fetch_prices(self, coin_types: Iterable[str]) -> dict[str, float]:
        """Fetch current prices for the given coin types.

        Coin types without a configured feed are skipped with a warning; the
        caller decides whether a missing price is fatal.

        Raises:
            DataUnavailableError: on HTTP or network failure.
            MalformedDataError: when the body is not a JSON object.
        """
        prices: dict[str, float] = {}

        wanted = set(coin_types)
        feeds = {k: v for k, v in self.price_feeds.items() if k in wanted}
        for missing in sorted(wanted - feeds.keys()):
            logger.warning("No Pyth feed configured for %s", missing)

        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return prices

        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise DataUnavailableError(
                            f"Error fetching prices from Pyth: HTTP {response.status}"
                        )
                    try:
                        data = await response.json()
                    except (aiohttp.ContentTypeError, ValueError) as e:
                        raise MalformedDataError(f"Invalid JSON from Pyth: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DataUnavailableError(f"Error fetching prices from Pyth: {e}") from e

        if not isinstance(data, dict):
            raise MalformedDataError(f"Unexpected Pyth response: {type(data).__name__}")

        # Reverse mapping from feed ID to coin types
        id_to_assets: dict[str, list[str]] = {}
        for coin_type, feed_id in feeds.items():
            id_to_assets.setdefault(feed_id.lower().removeprefix("0x"), []).append(coin_type)

        for item in data.get("parsed", []):
            feed_id = str(item.get("id", "")).lower().removeprefix("0x")
            if feed_id not in id_to_assets:
                continue
            price_data = item.get("price", {})
            try:
                price_raw = parse_number(price_data.get("price"), f"feed {feed_id} price")
                expo = int(parse_number(price_data.get("expo", 0), f"feed {feed_id} expo"))
            except MalformedDataError as e:
                logger.warning("Skipping malformed Pyth entry: %s", e)
                continue
            if price_raw < 0:
                logger.warning("Skipping negative Pyth price for feed %s", feed_id)
                continue

            price = price_raw * (10**expo)
            for coin_type in id_to_assets[feed_id]:
                prices[coin_type] = price

        logger.info("Fetched %d prices from Pyth Network", len(prices))
        for coin_type, price in sorted(prices.items()):
            logger.debug("  %s: $%.4f", coin_type, price)

        return prices
