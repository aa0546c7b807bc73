"""
Analysis pipeline: raw transaction -> DrainReport.

Normalize, reconcile, run the enabled detectors against a per-run
registry view, aggregate. Every call is independent; analyze_batch only
fans independent calls out over a thread pool.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from drainguard.config.settings import DetectionConfig
from drainguard.core.exceptions import MalformedTransaction
from drainguard.engine.aggregator import aggregate_findings, build_skip_report, verdict_for
from drainguard.engine.detectors import run_detectors
from drainguard.engine.models import DrainReport, NormalizedTransaction, Severity, Verdict
from drainguard.engine.normalizer import normalize_transaction
from drainguard.engine.reconciler import reconcile_balances
from drainguard.guard_logging import bind_signature, get_logger
from drainguard.ingestion.lookup_tables import AddressLookupTableResolver
from drainguard.registry import EntityRegistry, RegistryView
from drainguard.utils.wallet_utils import is_valid_address

logger = get_logger(__name__)

DEFAULT_MAX_WORKERS = 4


def analyze_normalized(
    tx: NormalizedTransaction,
    registry: EntityRegistry | None = None,
    *,
    config: DetectionConfig | None = None,
) -> DrainReport:
    """Run reconciliation, detection and aggregation on an already normalized transaction."""
    cfg = config or DetectionConfig()
    log = bind_signature(tx.signature)
    if not tx.succeeded:
        report = build_skip_report(tx)
        log.info("drain_report_skipped", reason=report.skip_reason, error=str(tx.error))
        return report

    edges = reconcile_balances(tx, cfg)
    view = RegistryView(registry)
    findings = run_detectors(tx, edges, view, cfg)
    report = aggregate_findings(tx, findings, edges, cfg, registry_degraded=view.degraded)
    log.info(
        "drain_report_ready",
        severity=report.overall_severity.value,
        confidence=report.overall_confidence,
        attack_type=report.attack_type.value if report.attack_type else None,
        risk_score=report.risk_score,
        findings=len(report.findings),
        registry_degraded=report.registry_degraded,
    )
    return report


def analyze_transaction(
    raw: dict[str, Any],
    registry: EntityRegistry | None = None,
    *,
    resolver: AddressLookupTableResolver | None = None,
    config: DetectionConfig | None = None,
) -> DrainReport:
    """
    Analyze one getTransaction result and return its DrainReport.

    Args:
        raw: jsonParsed getTransaction result (transaction, meta, slot, blockTime).
        registry: Entity registry snapshot; None means every address is unknown.
        resolver: Address lookup table resolver for versioned transactions
            whose loaded addresses are not already in the record.
        config: Detection thresholds; defaults if None.

    Raises:
        MalformedTransaction: The record cannot be normalized.
    """
    tx = normalize_transaction(raw, resolver=resolver)
    return analyze_normalized(tx, registry, config=config)


@dataclass
class BatchItem:
    """Outcome for one record of a batch; exactly one of report / error is set."""

    index: int
    signature: str | None
    report: DrainReport | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.report is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "signature": self.signature,
            "report": self.report.to_dict() if self.report else None,
            "error": self.error,
        }


def _raw_signature(raw: Any) -> str | None:
    try:
        sig = raw["transaction"]["signatures"][0]
    except (KeyError, IndexError, TypeError):
        return None
    return sig if isinstance(sig, str) else None


def analyze_batch(
    raws: Sequence[dict[str, Any]],
    registry: EntityRegistry | None = None,
    *,
    resolver: AddressLookupTableResolver | None = None,
    config: DetectionConfig | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> list[BatchItem]:
    """
    Analyze many transactions (e.g. one wallet's history), preserving input order.

    A malformed record yields a BatchItem with error set; the rest of the
    batch still runs.
    """
    cfg = config or DetectionConfig()

    def _one(index: int, raw: dict[str, Any]) -> BatchItem:
        signature = _raw_signature(raw)
        try:
            report = analyze_transaction(raw, registry, resolver=resolver, config=cfg)
        except MalformedTransaction as e:
            logger.warning("batch_item_malformed", index=index, signature=signature, reason=e.reason)
            return BatchItem(index=index, signature=signature, error=str(e))
        return BatchItem(index=index, signature=report.signature, report=report)

    if not raws:
        return []
    workers = max(1, min(max_workers, len(raws)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        items = list(pool.map(_one, range(len(raws)), raws))
    logger.info(
        "batch_analyzed",
        total=len(items),
        malformed=sum(1 for i in items if not i.ok),
        drains=sum(1 for i in items if i.ok and i.report.is_drain),
    )
    return items


@dataclass
class WalletSummary:
    """Roll-up of many reports for one wallet."""

    wallet: str | None
    total: int
    analyzed: int
    skipped: int
    malformed: int
    worst_severity: Severity
    max_risk_score: int
    verdict: Verdict
    flagged_signatures: list[str] = field(default_factory=list)
    """Signatures whose report carries at least one finding, worst first."""
    attacker_addresses: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet": self.wallet,
            "total": self.total,
            "analyzed": self.analyzed,
            "skipped": self.skipped,
            "malformed": self.malformed,
            "worst_severity": self.worst_severity.value,
            "max_risk_score": self.max_risk_score,
            "verdict": self.verdict.value,
            "flagged_signatures": self.flagged_signatures,
            "attacker_addresses": self.attacker_addresses,
        }


def summarize_wallet(
    results: Iterable[DrainReport | BatchItem],
    wallet: str | None = None,
) -> WalletSummary:
    """
    Summarize reports (or batch items) for one wallet.

    Raises:
        ValueError: wallet is given but is not a valid Solana address.
    """
    if wallet is not None and not is_valid_address(wallet):
        raise ValueError(f"Invalid wallet address: {wallet!r}")

    total = malformed = 0
    reports: list[DrainReport] = []
    for item in results:
        total += 1
        if isinstance(item, BatchItem):
            if item.report is None:
                malformed += 1
                continue
            item = item.report
        reports.append(item)

    skipped = sum(1 for r in reports if r.skip_reason)
    flagged = sorted(
        (r for r in reports if r.findings),
        key=lambda r: (-r.risk_score, -r.overall_severity.rank, r.signature),
    )
    worst = max((r.overall_severity for r in reports), key=lambda s: s.rank, default=Severity.NONE)
    max_score = max((r.risk_score for r in reports), default=0)
    # riskiest single report decides
    verdict = verdict_for(max_score) if reports else Verdict.SAFE
    return WalletSummary(
        wallet=wallet,
        total=total,
        analyzed=len(reports) - skipped,
        skipped=skipped,
        malformed=malformed,
        worst_severity=worst,
        max_risk_score=max_score,
        verdict=verdict,
        flagged_signatures=[r.signature for r in flagged],
        attacker_addresses=sorted({a for r in reports for a in r.attacker_addresses}),
    )
