"""Portfolio session — owns the committed snapshot and its refresh cycle."""
from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable

import aiohttp

from ..config import SessionConfig
from ..errors import DataUnavailableError, LendingRiskError
from ..interfaces import PositionSource, PriceOracle, ReserveConfigSource
from ..models import (
    ActionKind,
    AssetPosition,
    BorrowPosition,
    DepositPosition,
    HealthFactorSimulation,
    PortfolioSnapshot,
    ReserveConfig,
)
from ..risk import (
    compute_portfolio_risk,
    max_safe_borrow,
    max_safe_withdrawal,
    simulate_action,
)
from ..sources.parser import build_positions, get_token_symbol, parse_prices

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[PortfolioSnapshot], None]

# Failures worth retrying; anything else is a bug and propagates.
# ValueError covers json.JSONDecodeError raised by a source's own decoding.
_RETRYABLE = (LendingRiskError, aiohttp.ClientError, asyncio.TimeoutError, ValueError)


class PortfolioSession:
    """Refreshes one account's positions and exposes the latest snapshot.

    At most one refresh runs at a time; concurrent callers share it. A caller
    passing ``force=True`` while a refresh is running gets a follow-up fetch
    queued behind it, so data observed after a confirmed transaction is never
    older than the transaction itself. On failure the previous snapshot is kept
    and flagged stale.
    """

    def __init__(
        self,
        account: str,
        positions: PositionSource,
        reserves: ReserveConfigSource,
        oracle: PriceOracle,
        config: SessionConfig | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.account = account
        self._positions = positions
        self._reserves = reserves
        self._oracle = oracle
        self._config = config or SessionConfig()
        self._clock = clock
        self._sleep = sleep

        self._snapshot: PortfolioSnapshot | None = None
        self._issued_sequence = 0
        self._inflight: asyncio.Task[PortfolioSnapshot] | None = None
        self._rerun_requested = False
        self._timer: asyncio.Task[None] | None = None
        self._listeners: list[SnapshotListener] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> PortfolioSnapshot | None:
        return self._snapshot

    @property
    def is_stale(self) -> bool:
        return self._snapshot is not None and self._snapshot.stale

    @property
    def refresh_in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def auto_refresh_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` on every commit; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _require_snapshot(self) -> PortfolioSnapshot:
        if self._snapshot is None:
            raise DataUnavailableError(f"No snapshot loaded for {self.account}")
        return self._snapshot

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, force: bool = False) -> PortfolioSnapshot:
        """Fetch fresh data and commit it, coalescing with a running refresh.

        Raises:
            DataUnavailableError: when every attempt failed and there is no
                previous snapshot to fall back on.
        """
        if self._closed:
            raise RuntimeError("Session is closed")

        inflight = self._inflight
        if inflight is not None and not inflight.done():
            if force:
                self._rerun_requested = True
            return await asyncio.shield(inflight)

        self._inflight = asyncio.create_task(self._run_refresh())
        return await asyncio.shield(self._inflight)

    async def _run_refresh(self) -> PortfolioSnapshot:
        while True:
            self._rerun_requested = False
            snapshot = await self._refresh_with_retry()
            if not self._rerun_requested:
                return snapshot
            logger.debug("Running queued refresh for %s", self.account)

    async def _refresh_with_retry(self) -> PortfolioSnapshot:
        self._issued_sequence += 1
        sequence = self._issued_sequence

        attempts = self._config.max_retries + 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                snapshot = await self._fetch_snapshot(sequence)
            except _RETRYABLE as e:
                last_error = e
                logger.warning(
                    "Refresh attempt %d/%d for %s failed: %s",
                    attempt + 1, attempts, self.account, e,
                )
                if attempt < attempts - 1:
                    await self._sleep(self._config.retry_backoff_seconds * (2**attempt))
                continue
            self._commit(snapshot)
            return self._require_snapshot()

        return self._mark_stale(last_error)

    async def _fetch_snapshot(self, sequence: int) -> PortfolioSnapshot:
        raw_deposits, raw_borrows = await self._positions.fetch_positions(self.account)

        coin_types = list(
            dict.fromkeys(e.coin_type for e in [*raw_deposits, *raw_borrows] if e.amount > 0)
        )
        configs = await asyncio.gather(
            *(self._reserves.fetch_reserve_config(ct) for ct in coin_types)
        )
        reserves = {cfg.coin_type: cfg for cfg in configs}
        prices = parse_prices(await self._oracle.fetch_prices(coin_types)) if coin_types else {}

        deposits, borrows = build_positions(raw_deposits, raw_borrows, reserves, prices)
        metrics = compute_portfolio_risk(deposits, borrows)

        return PortfolioSnapshot(
            deposits=deposits,
            borrows=borrows,
            prices=prices,
            metrics=metrics,
            timestamp=self._clock(),
            sequence=sequence,
        )

    def _commit(self, snapshot: PortfolioSnapshot) -> None:
        current = self._snapshot
        if current is not None and current.sequence > snapshot.sequence:
            logger.info(
                "Discarding refresh #%d for %s: #%d already committed",
                snapshot.sequence, self.account, current.sequence,
            )
            return

        # Single assignment: readers see either the old or the new snapshot.
        self._snapshot = snapshot
        logger.info(
            "Snapshot #%d for %s: supplied $%.2f borrowed $%.2f HF %.4f",
            snapshot.sequence,
            self.account,
            snapshot.metrics.total_supplied_usd,
            snapshot.metrics.total_borrowed_usd,
            snapshot.metrics.health_factor,
        )
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener %r failed", listener)

    def _mark_stale(self, error: Exception | None) -> PortfolioSnapshot:
        current = self._snapshot
        if current is None:
            raise DataUnavailableError(
                f"Refresh failed for {self.account} with no previous snapshot: {error}"
            )
        logger.warning(
            "Keeping snapshot #%d for %s as stale: %s", current.sequence, self.account, error
        )
        self._snapshot = dataclasses.replace(current, stale=True, last_error=str(error))
        return self._snapshot

    # ------------------------------------------------------------------
    # Auto refresh
    # ------------------------------------------------------------------

    def start_auto_refresh(self, interval_seconds: float | None = None) -> None:
        """Start the periodic refresh task; no-op when one is already running."""
        if self._closed:
            raise RuntimeError("Session is closed")
        if self.auto_refresh_running:
            return
        interval = interval_seconds or self._config.refresh_interval_seconds
        logger.info("Auto refresh for %s every %.1fs", self.account, interval)
        self._timer = asyncio.create_task(self._auto_refresh_loop(interval))

    async def _auto_refresh_loop(self, interval: float) -> None:
        while True:
            try:
                await self.refresh()
            except DataUnavailableError as e:
                logger.warning("Auto refresh for %s failed: %s", self.account, e)
            except Exception as e:
                logger.error("Error in auto refresh loop for %s: %s", self.account, e)
            await self._sleep(interval)

    async def stop_auto_refresh(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None:
            return
        timer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await timer

    async def close(self) -> None:
        """Cancel the timer and any in-flight refresh."""
        await self.stop_auto_refresh()
        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.done():
            inflight.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await inflight
        self._listeners.clear()
        self._closed = True

    async def __aenter__(self) -> PortfolioSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # What-if queries against the committed snapshot
    # ------------------------------------------------------------------

    async def asset_template(self, coin_type: str) -> AssetPosition:
        """Zero-amount position carrying the asset's price and risk params."""
        snapshot = self._require_snapshot()
        for p in (*snapshot.deposits, *snapshot.borrows):
            if p.coin_type == coin_type:
                return dataclasses.replace(p, amount=0.0)

        reserve: ReserveConfig = await self._reserves.fetch_reserve_config(coin_type)
        price = snapshot.prices.get(coin_type)
        if price is None:
            fetched = parse_prices(await self._oracle.fetch_prices([coin_type]))
            if coin_type not in fetched:
                raise DataUnavailableError(f"No price available for {coin_type}")
            price = fetched[coin_type]

        return AssetPosition(
            coin_type=coin_type,
            symbol=reserve.symbol or get_token_symbol(coin_type),
            amount=0.0,
            price_usd=price,
            ltv=reserve.ltv,
            liquidation_threshold=reserve.liquidation_threshold,
            borrow_factor=reserve.borrow_factor,
        )

    def simulate(
        self, kind: ActionKind, asset: AssetPosition, amount: float
    ) -> HealthFactorSimulation:
        snapshot = self._require_snapshot()
        return simulate_action(kind, snapshot.deposits, snapshot.borrows, asset, amount)

    def max_safe_withdrawal(self, coin_type: str, safety_threshold: float = 1.2) -> float:
        snapshot = self._require_snapshot()
        return max_safe_withdrawal(
            snapshot.deposits, snapshot.borrows, coin_type, safety_threshold
        )

    def max_safe_borrow(self, asset: AssetPosition, safety_threshold: float = 1.2) -> float:
        snapshot = self._require_snapshot()
        template = BorrowPosition(
            coin_type=asset.coin_type,
            symbol=asset.symbol,
            amount=0.0,
            price_usd=asset.price_usd,
            ltv=asset.ltv,
            liquidation_threshold=asset.liquidation_threshold,
            borrow_factor=asset.borrow_factor,
        )
        return max_safe_borrow(snapshot.deposits, snapshot.borrows, template, safety_threshold)

    def deposit(self, coin_type: str) -> DepositPosition | None:
        snapshot = self._require_snapshot()
        return next((d for d in snapshot.deposits if d.coin_type == coin_type), None)

    def borrow(self, coin_type: str) -> BorrowPosition | None:
        snapshot = self._require_snapshot()
        return next((b for b in snapshot.borrows if b.coin_type == coin_type), None)
