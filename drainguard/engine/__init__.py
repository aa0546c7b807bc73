"""
Detection engine — normalized transaction in, explainable DrainReport out.

Normalizer -> Balance Reconciler -> Pattern Detectors -> Risk Aggregator,
wired together by the pipeline. Every stage is a pure function of its
inputs plus the injected registry and resolver.
"""

from drainguard.engine.models import (
    EXTERNAL,
    NATIVE_MINT,
    U64_MAX,
    AffectedAccount,
    DrainReport,
    Finding,
    NormalizedTransaction,
    PatternId,
    Severity,
    TransferEdge,
    Verdict,
)
from drainguard.engine.normalizer import normalize_transaction
from drainguard.engine.reconciler import compute_balance_deltas, reconcile_balances
from drainguard.engine.detectors import (
    detect_authority_hijack,
    detect_known_bad_actor,
    detect_unlimited_approval,
    detect_unmatched_loss,
    run_detectors,
)
from drainguard.engine.aggregator import aggregate_findings
from drainguard.engine.pipeline import (
    BatchItem,
    WalletSummary,
    analyze_batch,
    analyze_normalized,
    analyze_transaction,
    summarize_wallet,
)

__all__ = [
    "EXTERNAL",
    "NATIVE_MINT",
    "U64_MAX",
    "AffectedAccount",
    "DrainReport",
    "Finding",
    "NormalizedTransaction",
    "PatternId",
    "Severity",
    "TransferEdge",
    "Verdict",
    "normalize_transaction",
    "compute_balance_deltas",
    "reconcile_balances",
    "detect_authority_hijack",
    "detect_known_bad_actor",
    "detect_unlimited_approval",
    "detect_unmatched_loss",
    "run_detectors",
    "aggregate_findings",
    "BatchItem",
    "WalletSummary",
    "analyze_batch",
    "analyze_normalized",
    "analyze_transaction",
    "summarize_wallet",
]
