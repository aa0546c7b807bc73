"""
Detection policy settings.

The swap-conservation tolerance and the "suspiciously large approval"
threshold are policy choices, so they live here instead of in the
detectors. get_settings() reads DRAINGUARD_* environment variables;
invalid values fall back to the defaults with a warning.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from drainguard.config.env import load_drainguard_env
from drainguard.guard_logging import get_logger

logger = get_logger(__name__)

DEFAULT_BALANCE_TOLERANCE_BPS = 500
# Raw units; 10**15 is one billion tokens at 6 decimals.
DEFAULT_APPROVAL_THRESHOLD = 10**15
# Native gains below this (rent refunds, dust) never offset a token loss.
DEFAULT_NATIVE_DUST_LAMPORTS = 5_000_000
# Token gains below one whole token divided by this are dust.
DEFAULT_TOKEN_DUST_DIVISOR = 1000
DEFAULT_MIN_CONFIDENCE = 20
DEFAULT_REGISTRY_DEGRADED_PENALTY = 5

DETECTOR_NAMES = frozenset({
    "KnownBadActor",
    "AuthorityHijack",
    "UnlimitedApproval",
    "UnmatchedLoss",
})


@dataclass(frozen=True)
class DetectionConfig:
    """
    Thresholds for reconciliation, detectors and aggregation.

    Immutable so one instance can be shared by concurrent pipeline calls.
    """

    balance_tolerance_bps: int = DEFAULT_BALANCE_TOLERANCE_BPS
    """Mint group is balanced when gains >= losses * (1 - bps / 10000)."""
    approval_threshold: int = DEFAULT_APPROVAL_THRESHOLD
    """Approve amounts above this (raw units) raise a MEDIUM finding."""
    native_dust_lamports: int = DEFAULT_NATIVE_DUST_LAMPORTS
    """Minimum native gain that counts as the counter-leg of a swap."""
    token_dust_divisor: int = DEFAULT_TOKEN_DUST_DIVISOR
    """Token gains under 10**decimals / divisor never count as the counter-leg."""
    min_confidence: int = DEFAULT_MIN_CONFIDENCE
    """Findings below this confidence are reported as suppressed."""
    registry_degraded_penalty: int = DEFAULT_REGISTRY_DEGRADED_PENALTY
    """Confidence subtracted when the decisive registry lookup failed."""
    disabled_detectors: frozenset[str] = field(default_factory=frozenset)
    """Detector names (PatternId values) to skip."""

    def __post_init__(self) -> None:
        if not 0 <= self.balance_tolerance_bps <= 10_000:
            raise ValueError("balance_tolerance_bps must be within [0, 10000]")
        if self.approval_threshold < 0:
            raise ValueError("approval_threshold must be non-negative")
        if not 0 <= self.min_confidence <= 100:
            raise ValueError("min_confidence must be within [0, 100]")
        if not 0 <= self.registry_degraded_penalty <= 100:
            raise ValueError("registry_degraded_penalty must be within [0, 100]")
        if self.native_dust_lamports < 0:
            raise ValueError("native_dust_lamports must be non-negative")
        if self.token_dust_divisor < 1:
            raise ValueError("token_dust_divisor must be positive")
        unknown = set(self.disabled_detectors) - DETECTOR_NAMES
        if unknown:
            raise ValueError(f"Unknown detector names: {sorted(unknown)}")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("config_invalid_int", variable=name, value=raw, default=default)
        return default


def _env_names(name: str) -> frozenset[str]:
    raw = (os.getenv(name) or "").strip()
    names = {n.strip() for n in raw.split(",") if n.strip()}
    unknown = names - DETECTOR_NAMES
    if unknown:
        logger.warning("config_unknown_detectors", variable=name, names=sorted(unknown))
    return frozenset(names & DETECTOR_NAMES)


def get_settings() -> DetectionConfig:
    """Return a DetectionConfig built from the environment (and .env)."""
    load_drainguard_env()
    try:
        return DetectionConfig(
            balance_tolerance_bps=_env_int("DRAINGUARD_BALANCE_TOLERANCE_BPS", DEFAULT_BALANCE_TOLERANCE_BPS),
            approval_threshold=_env_int("DRAINGUARD_APPROVAL_THRESHOLD", DEFAULT_APPROVAL_THRESHOLD),
            native_dust_lamports=_env_int("DRAINGUARD_NATIVE_DUST_LAMPORTS", DEFAULT_NATIVE_DUST_LAMPORTS),
            token_dust_divisor=_env_int("DRAINGUARD_TOKEN_DUST_DIVISOR", DEFAULT_TOKEN_DUST_DIVISOR),
            min_confidence=_env_int("DRAINGUARD_MIN_CONFIDENCE", DEFAULT_MIN_CONFIDENCE),
            registry_degraded_penalty=_env_int(
                "DRAINGUARD_REGISTRY_DEGRADED_PENALTY", DEFAULT_REGISTRY_DEGRADED_PENALTY
            ),
            disabled_detectors=_env_names("DRAINGUARD_DISABLED_DETECTORS"),
        )
    except ValueError as e:
        logger.warning("config_out_of_range", error=str(e))
        return DetectionConfig()
