"""Command-line interface for the lending risk engine."""
from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone

from .cache import TTLCache
from .config import AppConfig, load_config
from .logging_setup import configure_logging
from .models import ActionKind, HealthStatus, PortfolioSnapshot
from .oracles import CachedPriceOracle, PythOracle
from .risk import format_health_factor, health_status
from .services import PortfolioSession
from .sources import CachedReserveConfigSource, HttpPositionSource, StaticReserveConfigSource
from .sources.parser import build_asset_summary

_STATUS_LABELS = {
    HealthStatus.SAFE: "✅ Healthy",
    HealthStatus.WARNING: "⚠️ WARNING",
    HealthStatus.DANGER: "🚨 DANGER",
    HealthStatus.LIQUIDATABLE: "🚨 LIQUIDATABLE",
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lending-risk",
        description="Collateralized lending risk engine",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    check = sub.add_parser("check", help="Show current risk metrics")
    check.add_argument("account", help="Account label or address")

    for name, help_text in (
        ("max-withdraw", "Largest safe withdrawal of an asset"),
        ("max-borrow", "Largest safe borrow of an asset"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("account", help="Account label or address")
        p.add_argument("coin_type", help="Asset identifier")
        p.add_argument(
            "--threshold",
            type=float,
            default=None,
            help="Safety threshold (default: risk.safety_threshold from config)",
        )

    simulate = sub.add_parser("simulate", help="Preview an action's effect")
    simulate.add_argument("account", help="Account label or address")
    simulate.add_argument("action", choices=[k.value for k in ActionKind])
    simulate.add_argument("coin_type", help="Asset identifier")
    simulate.add_argument("amount", type=float, help="Amount in asset units")

    watch = sub.add_parser("watch", help="Refresh continuously")
    watch.add_argument("account", help="Account label or address")
    watch.add_argument(
        "interval",
        nargs="?",
        type=float,
        default=None,
        help="Refresh interval in seconds (overrides config)",
    )

    return parser


def build_session(config: AppConfig, account: str) -> PortfolioSession:
    """Wire the configured collaborators into a session."""
    decimals = {ct: r.decimals for ct, r in config.reserves.items()}
    reserves = CachedReserveConfigSource(
        StaticReserveConfigSource(config.reserves),
        TTLCache(config.session.reserve_cache_ttl_seconds),
    )
    oracle = CachedPriceOracle(
        PythOracle(config.pyth), TTLCache(config.session.price_cache_ttl_seconds)
    )
    return PortfolioSession(
        config.account(account).address,
        HttpPositionSource(config.position_source, decimals),
        reserves,
        oracle,
        config.session,
    )


def format_snapshot(snapshot: PortfolioSnapshot, label: str) -> str:
    m = snapshot.metrics
    status = _STATUS_LABELS[health_status(m.health_factor)]
    stamp = datetime.fromtimestamp(snapshot.timestamp, timezone.utc).strftime(
        "%Y-%m-%d %H:%M:%S"
    )
    lines = [
        f"📊 {label}",
        "",
        status + (" (stale)" if snapshot.stale else ""),
        "",
        f"Supplied: {build_asset_summary(snapshot.deposits)} = ${m.total_supplied_usd:,.2f}",
        f"Borrowed: {build_asset_summary(snapshot.borrows)} = ${m.total_borrowed_usd:,.2f}",
        f"Borrowing power: ${m.borrowing_power:,.2f} · Available: ${m.available_to_borrow_usd:,.2f}",
        f"Borrow limit used: {m.borrow_limit_percent:.2f}%",
        f"HF: {format_health_factor(m.health_factor)}",
    ]
    if m.excluded_assets:
        lines.append(f"Excluded (bad config): {', '.join(m.excluded_assets)}")
    lines += ["", f"{stamp} UTC"]
    return "\n".join(lines)


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    label = config.account(args.account).label

    async with build_session(config, args.account) as session:
        if args.command == "watch":
            session.add_listener(lambda snap: print(format_snapshot(snap, label), flush=True))
            session.start_auto_refresh(args.interval)
            await asyncio.Event().wait()

        snapshot = await session.refresh()
        threshold = getattr(args, "threshold", None) or config.risk.safety_threshold

        if args.command == "check":
            print(format_snapshot(snapshot, label))
        elif args.command == "max-withdraw":
            amount = session.max_safe_withdrawal(args.coin_type, threshold)
            print(f"Max safe withdrawal of {args.coin_type} (HF ≥ {threshold:.2f}): {amount:.6f}")
        elif args.command == "max-borrow":
            asset = await session.asset_template(args.coin_type)
            amount = session.max_safe_borrow(asset, threshold)
            print(f"Max safe borrow of {asset.symbol} (HF ≥ {threshold:.2f}): {amount:.6f}")
        elif args.command == "simulate":
            asset = await session.asset_template(args.coin_type)
            sim = session.simulate(ActionKind(args.action), asset, args.amount)
            print(
                f"{args.action} {args.amount} {asset.symbol}: HF "
                f"{format_health_factor(sim.current_health_factor)} → "
                f"{format_health_factor(sim.projected_health_factor)} "
                f"({_STATUS_LABELS[sim.projected_status]})"
            )
            if sim.warning:
                print(sim.warning)
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))
