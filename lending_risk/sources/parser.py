"""Parse-and-validate boundary for external data — no I/O.

Converts loosely typed payloads from position, reserve and price sources into
the frozen models the risk core consumes. Malformed fields raise
``MalformedDataError``; optional fields fall back to explicit defaults.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from typing import Any

from ..errors import DataUnavailableError, MalformedDataError
from ..models import (
    BorrowPosition,
    DepositPosition,
    RawPositionEntry,
    ReserveConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 8
DEFAULT_BORROW_FACTOR = 100.0


def get_token_symbol(coin_type: str) -> str:
    """Extract a token symbol from a Move coin type string.

    Examples:
        "0x1::aptos_coin::AptosCoin" → "APTOSCOIN"
        "0xabc::coin::USDC" → "USDC"
    """
    if "::" in coin_type:
        return coin_type.split("::")[-1].upper()
    return coin_type.upper()


def parse_number(
    value: Any,
    name: str,
    minimum: float | None = None,
    maximum: float | None = None,
) -> float:
    """Coerce ``value`` to a finite float within optional bounds."""
    if isinstance(value, bool):
        raise MalformedDataError(f"{name} must be numeric, got bool")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise MalformedDataError(f"{name} must be numeric, got {value!r}") from e
    if not math.isfinite(number):
        raise MalformedDataError(f"{name} must be finite, got {value!r}")
    if minimum is not None and number < minimum:
        raise MalformedDataError(f"{name} {number} is below {minimum}")
    if maximum is not None and number > maximum:
        raise MalformedDataError(f"{name} {number} is above {maximum}")
    return number


def _require_coin_type(raw: Mapping[str, Any]) -> str:
    coin_type = raw.get("coin_type") or raw.get("coinType")
    if not isinstance(coin_type, str) or not coin_type:
        raise MalformedDataError(f"Entry has no coin_type: {raw!r}")
    return coin_type


def parse_position_entry(
    raw: Mapping[str, Any],
    decimals: Mapping[str, int] | None = None,
) -> RawPositionEntry:
    """Parse one ``{coin_type, amount}`` entry.

    Entries carrying ``raw_amount`` (integer base units) instead of ``amount``
    are scaled down by the asset's decimals:
        amount = raw_amount / 10^decimals
    """
    if not isinstance(raw, Mapping):
        raise MalformedDataError(f"Position entry must be an object, got {raw!r}")
    coin_type = _require_coin_type(raw)

    if "amount" in raw:
        amount = parse_number(raw["amount"], f"{coin_type} amount", minimum=0)
    elif "raw_amount" in raw:
        base_units = parse_number(raw["raw_amount"], f"{coin_type} raw_amount", minimum=0)
        places = (decimals or {}).get(coin_type, DEFAULT_DECIMALS)
        amount = base_units / (10**places)
    else:
        raise MalformedDataError(f"{coin_type} entry has no amount")

    shares = parse_number(raw.get("shares", 0), f"{coin_type} shares", minimum=0)
    return RawPositionEntry(coin_type=coin_type, amount=amount, shares=shares)


def parse_position_response(
    payload: Any,
    decimals: Mapping[str, int] | None = None,
) -> tuple[list[RawPositionEntry], list[RawPositionEntry]]:
    """Parse ``{"deposits": [...], "borrows": [...]}`` into raw entries."""
    if not isinstance(payload, Mapping):
        raise MalformedDataError("Position response must be an object")

    result: list[list[RawPositionEntry]] = []
    for key in ("deposits", "borrows"):
        entries = payload.get(key, [])
        if not isinstance(entries, list):
            raise MalformedDataError(f"'{key}' must be a list")
        result.append([parse_position_entry(e, decimals) for e in entries])
    return result[0], result[1]


def parse_reserve_config(coin_type: str, raw: Mapping[str, Any]) -> ReserveConfig:
    """Validate a reserve's risk parameters (percentages)."""
    if not isinstance(raw, Mapping):
        raise MalformedDataError(f"Reserve config for {coin_type} must be an object")

    for required in ("ltv", "liquidation_threshold"):
        if required not in raw:
            raise MalformedDataError(f"Reserve {coin_type} missing '{required}'")

    ltv = parse_number(raw["ltv"], f"{coin_type} ltv", minimum=0, maximum=100)
    threshold = parse_number(
        raw["liquidation_threshold"],
        f"{coin_type} liquidation_threshold",
        minimum=0,
        maximum=100,
    )
    # Non-positive borrow factors pass through; the calculator excludes them.
    borrow_factor = parse_number(
        raw.get("borrow_factor", DEFAULT_BORROW_FACTOR), f"{coin_type} borrow_factor"
    )
    if "borrow_factor" not in raw:
        logger.debug("Reserve %s has no borrow_factor, defaulting to 100", coin_type)

    decimals = int(
        parse_number(raw.get("decimals", DEFAULT_DECIMALS), f"{coin_type} decimals", minimum=0)
    )

    return ReserveConfig(
        coin_type=coin_type,
        ltv=ltv,
        liquidation_threshold=threshold,
        borrow_factor=borrow_factor,
        decimals=decimals,
        symbol=str(raw.get("symbol") or get_token_symbol(coin_type)),
    )


def parse_prices(raw: Mapping[str, Any]) -> dict[str, float]:
    """Validate a coin type → USD price mapping."""
    return {
        coin_type: parse_number(value, f"{coin_type} price", minimum=0)
        for coin_type, value in raw.items()
    }


def _price_for(entry: RawPositionEntry, prices: Mapping[str, float]) -> float:
    price = prices.get(entry.coin_type)
    if price is None:
        raise DataUnavailableError(f"No price available for {entry.coin_type}")
    return price


def _reserve_for(entry: RawPositionEntry, reserves: Mapping[str, ReserveConfig]) -> ReserveConfig:
    reserve = reserves.get(entry.coin_type)
    if reserve is None:
        raise DataUnavailableError(f"No reserve config for {entry.coin_type}")
    return reserve


def merge_entries(entries: Iterable[RawPositionEntry]) -> list[RawPositionEntry]:
    """Sum amounts and shares of entries sharing a coin type, keeping first-seen order."""
    merged: dict[str, RawPositionEntry] = {}
    for entry in entries:
        seen = merged.get(entry.coin_type)
        if seen is None:
            merged[entry.coin_type] = entry
        else:
            merged[entry.coin_type] = RawPositionEntry(
                coin_type=entry.coin_type,
                amount=seen.amount + entry.amount,
                shares=seen.shares + entry.shares,
            )
    return list(merged.values())


def build_positions(
    raw_deposits: Iterable[RawPositionEntry],
    raw_borrows: Iterable[RawPositionEntry],
    reserves: Mapping[str, ReserveConfig],
    prices: Mapping[str, float],
) -> tuple[tuple[DepositPosition, ...], tuple[BorrowPosition, ...]]:
    """Attach prices and reserve parameters to raw entries.

    Entries for the same coin type are merged first and zero-amount entries
    are dropped. A missing price or reserve for a non-empty entry raises
    ``DataUnavailableError``.
    """
    deposits: list[DepositPosition] = []
    for entry in merge_entries(raw_deposits):
        if entry.amount <= 0:
            continue
        reserve = _reserve_for(entry, reserves)
        deposits.append(
            DepositPosition(
                coin_type=entry.coin_type,
                symbol=reserve.symbol or get_token_symbol(entry.coin_type),
                amount=entry.amount,
                price_usd=_price_for(entry, prices),
                ltv=reserve.ltv,
                liquidation_threshold=reserve.liquidation_threshold,
                borrow_factor=reserve.borrow_factor,
                lp_amount=entry.shares,
            )
        )

    borrows: list[BorrowPosition] = []
    for entry in merge_entries(raw_borrows):
        if entry.amount <= 0:
            continue
        reserve = _reserve_for(entry, reserves)
        borrows.append(
            BorrowPosition(
                coin_type=entry.coin_type,
                symbol=reserve.symbol or get_token_symbol(entry.coin_type),
                amount=entry.amount,
                price_usd=_price_for(entry, prices),
                ltv=reserve.ltv,
                liquidation_threshold=reserve.liquidation_threshold,
                borrow_factor=reserve.borrow_factor,
                borrow_share=entry.shares,
            )
        )

    return tuple(deposits), tuple(borrows)


def build_asset_summary(positions: Iterable[DepositPosition | BorrowPosition]) -> str:
    """Human-readable summary, e.g. ``APT (1000.0000 @ $10.00)``."""
    parts = [f"{p.symbol} ({p.amount:.4f} @ ${p.price_usd:,.2f})" for p in positions]
    return ", ".join(parts) if parts else "N/A"
