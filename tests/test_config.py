"""
Tests for configuration: DetectionConfig validation, env-driven settings
and RPC URL resolution.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from drainguard.config.env import get_registry_path, get_solana_rpc_url, mask_rpc_url
from drainguard.config.settings import DetectionConfig, get_settings


def test_defaults():
    cfg = DetectionConfig()
    assert cfg.balance_tolerance_bps == 500
    assert cfg.approval_threshold == 10**15
    assert cfg.min_confidence == 20
    assert cfg.registry_degraded_penalty == 5
    assert cfg.token_dust_divisor == 1000
    assert cfg.disabled_detectors == frozenset()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"balance_tolerance_bps": -1},
        {"balance_tolerance_bps": 10_001},
        {"min_confidence": 101},
        {"approval_threshold": -5},
        {"registry_degraded_penalty": -10},
        {"registry_degraded_penalty": 101},
        {"native_dust_lamports": -1},
        {"token_dust_divisor": 0},
        {"disabled_detectors": frozenset({"NotADetector"})},
    ],
)
def test_invalid_values_rejected(kwargs):
    with pytest.raises(ValueError):
        DetectionConfig(**kwargs)


def test_get_settings_from_env():
    env = {
        "DRAINGUARD_BALANCE_TOLERANCE_BPS": "250",
        "DRAINGUARD_APPROVAL_THRESHOLD": "1000000",
        "DRAINGUARD_MIN_CONFIDENCE": "30",
        "DRAINGUARD_DISABLED_DETECTORS": "UnmatchedLoss, UnlimitedApproval",
    }
    with patch.dict("os.environ", env):
        cfg = get_settings()
    assert cfg.balance_tolerance_bps == 250
    assert cfg.approval_threshold == 1_000_000
    assert cfg.min_confidence == 30
    assert cfg.disabled_detectors == frozenset({"UnmatchedLoss", "UnlimitedApproval"})


def test_get_settings_invalid_values_fall_back():
    """Non-integers and unknown detector names are ignored; out-of-range falls back to defaults."""
    with patch.dict("os.environ", {"DRAINGUARD_MIN_CONFIDENCE": "lots", "DRAINGUARD_DISABLED_DETECTORS": "Bogus"}):
        cfg = get_settings()
    assert cfg.min_confidence == 20
    assert cfg.disabled_detectors == frozenset()
    with patch.dict("os.environ", {"DRAINGUARD_BALANCE_TOLERANCE_BPS": "20000"}):
        assert get_settings() == DetectionConfig()
    with patch.dict("os.environ", {"DRAINGUARD_REGISTRY_DEGRADED_PENALTY": "-10"}):
        assert get_settings().registry_degraded_penalty == 5


def test_rpc_url_resolution(monkeypatch):
    monkeypatch.delenv("SOLANA_RPC_URL", raising=False)
    monkeypatch.delenv("HELIUS_API_KEY", raising=False)
    monkeypatch.setenv("SOLANA_NETWORK", "devnet")
    assert get_solana_rpc_url() == "https://api.devnet.solana.com"
    monkeypatch.setenv("HELIUS_API_KEY", "k3y")
    assert get_solana_rpc_url() == "https://devnet.helius-rpc.com/?api-key=k3y"
    monkeypatch.setenv("SOLANA_RPC_URL", "https://mine.example")
    assert get_solana_rpc_url() == "https://mine.example"


def test_mask_rpc_url():
    assert mask_rpc_url("https://mainnet.helius-rpc.com/?api-key=secret") == "https://mainnet.helius-rpc.com/?api-key=***"
    assert mask_rpc_url("https://api.mainnet-beta.solana.com") == "https://api.mainnet-beta.solana.com"


def test_registry_path(monkeypatch, tmp_path):
    assert get_registry_path() is None
    monkeypatch.setenv("DRAINGUARD_REGISTRY_PATH", str(tmp_path / "r.json"))
    assert get_registry_path() == tmp_path / "r.json"
