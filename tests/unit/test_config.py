"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from conftest import APT
from lending_risk.config import (
    AccountConfig,
    AppConfig,
    RiskConfig,
    SessionConfig,
    _interpolate_env,
    _validate,
    load_config,
)
from lending_risk.models import ReserveConfig


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested_dict(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOK", "secret")
        result = _interpolate_env({"key": "${TOK}", "plain": "text"})
        assert result == {"key": "secret", "plain": "text"}

    def test_nested_list(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("A", "x")
        assert _interpolate_env(["${A}", "y"]) == ["x", "y"]

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.risk.safety_threshold == 1.3
        assert cfg.risk.min_action_amount == 0.001
        assert cfg.session.refresh_interval_seconds == 15.0
        assert cfg.session.max_retries == 2
        assert cfg.session.price_cache_ttl_seconds == 5.0
        assert cfg.session.reserve_cache_ttl_seconds == 300.0
        assert cfg.accounts[0].label == "main"
        assert cfg.position_source.endpoints == ("https://api.example.com",)
        assert cfg.pyth.feeds == {APT: "aaa"}

    def test_reserves(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        reserve = cfg.reserves[APT]
        assert reserve == ReserveConfig(
            coin_type=APT,
            ltv=70.0,
            liquidation_threshold=75.0,
            borrow_factor=100.0,
            decimals=8,
            symbol="APT",
        )

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_ADDR", "0xABCDEF")
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            'accounts:\n  - label: w1\n    address: "${TEST_ADDR}"\n'
        )
        cfg = load_config(cfg_file)
        assert cfg.accounts[0].address == "0xABCDEF"
        assert cfg.session == SessionConfig()

    def test_empty_file_fails_validation(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("")
        with pytest.raises(ValueError, match="account"):
            load_config(cfg_file)


def _config(**kwargs) -> AppConfig:
    kwargs.setdefault("accounts", (AccountConfig(label="a", address="0x1"),))
    return AppConfig(**kwargs)


class TestValidate:
    def test_valid(self) -> None:
        _validate(_config())

    def test_no_accounts(self) -> None:
        with pytest.raises(ValueError, match="At least one account"):
            _validate(_config(accounts=()))

    def test_account_without_address(self) -> None:
        with pytest.raises(ValueError, match="has no address"):
            _validate(_config(accounts=(AccountConfig(label="a"),)))

    def test_non_positive_interval(self) -> None:
        with pytest.raises(ValueError, match="refresh_interval_seconds"):
            _validate(_config(session=SessionConfig(refresh_interval_seconds=0)))

    def test_negative_retries(self) -> None:
        with pytest.raises(ValueError, match="max_retries"):
            _validate(_config(session=SessionConfig(max_retries=-1)))

    def test_threshold_below_one(self) -> None:
        with pytest.raises(ValueError, match="safety_threshold"):
            _validate(_config(risk=RiskConfig(safety_threshold=0.9)))

    def test_reserve_ltv_out_of_range(self) -> None:
        reserves = {APT: ReserveConfig(coin_type=APT, ltv=120.0, liquidation_threshold=85.0)}
        with pytest.raises(ValueError, match="ltv"):
            _validate(_config(reserves=reserves))

    def test_reserve_bad_borrow_factor(self) -> None:
        reserves = {
            APT: ReserveConfig(
                coin_type=APT, ltv=70.0, liquidation_threshold=75.0, borrow_factor=0.0
            )
        }
        with pytest.raises(ValueError, match="borrow_factor"):
            _validate(_config(reserves=reserves))


class TestAccountLookup:
    def test_by_label(self, sample_app_config: AppConfig) -> None:
        assert sample_app_config.account("main").address == "0xACCOUNT"

    def test_by_address(self, sample_app_config: AppConfig) -> None:
        assert sample_app_config.account("0xACCOUNT").label == "main"

    def test_unknown_falls_back_to_raw_address(self, sample_app_config: AppConfig) -> None:
        acct = sample_app_config.account("0xOTHER")
        assert acct.address == "0xOTHER"
