"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import ReserveConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskConfig:
    safety_threshold: float = 1.2
    warning_health_factor: float = 1.5
    min_action_amount: float = 0.001


@dataclass(frozen=True)
class SessionConfig:
    refresh_interval_seconds: float = 30.0
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0
    price_cache_ttl_seconds: float = 10.0
    reserve_cache_ttl_seconds: float = 300.0


@dataclass(frozen=True)
class AccountConfig:
    label: str = ""
    address: str = ""


@dataclass(frozen=True)
class PositionSourceConfig:
    endpoints: tuple[str, ...] = ()
    timeout: int = 30


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    risk: RiskConfig = field(default_factory=RiskConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    accounts: tuple[AccountConfig, ...] = ()
    position_source: PositionSourceConfig = field(default_factory=PositionSourceConfig)
    pyth: PythConfig = field(default_factory=PythConfig)
    reserves: dict[str, ReserveConfig] = field(default_factory=dict)

    def account(self, label_or_address: str) -> AccountConfig:
        """Look up an account by label, falling back to a raw address."""
        for acct in self.accounts:
            if label_or_address in (acct.label, acct.address):
                return acct
        return AccountConfig(label=label_or_address, address=label_or_address)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_risk(raw: dict[str, Any]) -> RiskConfig:
    return RiskConfig(
        safety_threshold=float(raw.get("safety_threshold", 1.2)),
        warning_health_factor=float(raw.get("warning_health_factor", 1.5)),
        min_action_amount=float(raw.get("min_action_amount", 0.001)),
    )


def _build_session(raw: dict[str, Any]) -> SessionConfig:
    return SessionConfig(
        refresh_interval_seconds=float(raw.get("refresh_interval_seconds", 30.0)),
        max_retries=int(raw.get("max_retries", 3)),
        retry_backoff_seconds=float(raw.get("retry_backoff_seconds", 1.0)),
        price_cache_ttl_seconds=float(raw.get("price_cache_ttl_seconds", 10.0)),
        reserve_cache_ttl_seconds=float(raw.get("reserve_cache_ttl_seconds", 300.0)),
    )


def _build_accounts(raw: list[dict[str, Any]]) -> tuple[AccountConfig, ...]:
    accounts: list[AccountConfig] = []
    for a in raw:
        accounts.append(
            AccountConfig(
                label=a.get("label", ""),
                address=a.get("address", ""),
            )
        )
    return tuple(accounts)


def _build_position_source(raw: dict[str, Any]) -> PositionSourceConfig:
    return PositionSourceConfig(
        endpoints=tuple(raw.get("endpoints", [])),
        timeout=int(raw.get("timeout", 30)),
    )


def _build_pyth(raw: dict[str, Any]) -> PythConfig:
    return PythConfig(
        hermes_url=raw.get("hermes_url", PythConfig.hermes_url),
        feeds=dict(raw.get("feeds", {})),
    )


def _build_reserves(raw: dict[str, Any]) -> dict[str, ReserveConfig]:
    reserves: dict[str, ReserveConfig] = {}
    for coin_type, cfg in raw.items():
        reserves[coin_type] = ReserveConfig(
            coin_type=coin_type,
            ltv=float(cfg.get("ltv", 0.0)),
            liquidation_threshold=float(cfg.get("liquidation_threshold", 0.0)),
            borrow_factor=float(cfg.get("borrow_factor", 100.0)),
            decimals=int(cfg.get("decimals", 8)),
            symbol=cfg.get("symbol", ""),
        )
    return reserves


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package directory).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        risk=_build_risk(raw.get("risk", {})),
        session=_build_session(raw.get("session", {})),
        accounts=_build_accounts(raw.get("accounts", [])),
        position_source=_build_position_source(raw.get("position_source", {})),
        pyth=_build_pyth(raw.get("pyth", {})),
        reserves=_build_reserves(raw.get("reserves", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.accounts:
        raise ValueError("At least one account must be configured")

    for acct in cfg.accounts:
        if not acct.address:
            raise ValueError(f"Account '{acct.label}' has no address")

    if cfg.session.refresh_interval_seconds <= 0:
        raise ValueError("refresh_interval_seconds must be positive")
    if cfg.session.max_retries < 0:
        raise ValueError("max_retries must not be negative")
    if cfg.risk.safety_threshold < 1.0:
        raise ValueError("safety_threshold must be at least 1.0")

    for coin_type, reserve in cfg.reserves.items():
        for name in ("ltv", "liquidation_threshold"):
            value = getattr(reserve, name)
            if not 0 <= value <= 100:
                raise ValueError(
                    f"Reserve '{coin_type}' has {name} {value} outside 0-100"
                )
        if reserve.borrow_factor <= 0:
            raise ValueError(f"Reserve '{coin_type}' has non-positive borrow_factor")
        if reserve.decimals < 0:
            raise ValueError(f"Reserve '{coin_type}' has negative decimals")
