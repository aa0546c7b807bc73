"""
Pytest fixtures for DrainGuard tests: registries and detection config.
"""

from __future__ import annotations

import pytest

from drainguard.config.settings import DetectionConfig
from drainguard.registry import StaticEntityRegistry

from txbuilders import ATTACKER


@pytest.fixture
def config():
    """Default detection thresholds."""
    return DetectionConfig()


@pytest.fixture
def registry():
    """Registry that only knows the default safe programs."""
    return StaticEntityRegistry()


@pytest.fixture
def drainer_registry():
    """Registry listing ATTACKER as a known drainer with one phishing domain."""
    return StaticEntityRegistry(drainers=[ATTACKER], domains={ATTACKER: ["claim-airdrop.example"]})


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    """Keep DRAINGUARD_* settings from the developer's shell out of the tests."""
    for name in (
        "DRAINGUARD_BALANCE_TOLERANCE_BPS",
        "DRAINGUARD_APPROVAL_THRESHOLD",
        "DRAINGUARD_NATIVE_DUST_LAMPORTS",
        "DRAINGUARD_MIN_CONFIDENCE",
        "DRAINGUARD_REGISTRY_DEGRADED_PENALTY",
        "DRAINGUARD_DISABLED_DETECTORS",
        "DRAINGUARD_REGISTRY_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
