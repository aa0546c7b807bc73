"""
Risk aggregator — fold detector findings into one DrainReport.

Findings below the confidence floor are kept aside as suppressed. The rest
are ranked (severity, confidence, pattern priority, evidence position) and
deduplicated: a finding that shares evidence or an attacker with a
higher-ranked one is attached to it as corroboration instead of standing
as its own line item.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from typing import Iterable

from drainguard.config.settings import DetectionConfig
from drainguard.engine.models import (
    AffectedAccount,
    DrainReport,
    Finding,
    NormalizedTransaction,
    Severity,
    TransferEdge,
    Verdict,
    evidence_sort_key,
)
from drainguard.engine.recommendations import recommendations_for
from drainguard.guard_logging import get_logger

logger = get_logger(__name__)

FAILED_TX_SKIP_REASON = "transaction failed on-chain"

SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 100,
    Severity.HIGH: 75,
    Severity.MEDIUM: 40,
    Severity.LOW: 10,
    Severity.NONE: 0,
}
DRAINED_SCORE = 90
AT_RISK_SCORE = 40


def finding_rank_key(finding: Finding) -> tuple:
    first = min((evidence_sort_key(e) for e in finding.evidence), default=())
    return (
        -finding.severity.rank,
        -finding.confidence,
        finding.pattern_id.priority,
        first,
        finding.attacker or "",
        finding.message,
    )


def rank_findings(findings: Iterable[Finding]) -> list[Finding]:
    return sorted(findings, key=finding_rank_key)


def _overlaps(kept: Finding, candidate: Finding) -> bool:
    if candidate.attacker and candidate.attacker == kept.attacker:
        return True
    return bool(set(kept.evidence) & set(candidate.evidence))


def dedupe_findings(ranked: list[Finding]) -> list[Finding]:
    """Attach each finding to the first higher-ranked finding it overlaps, if any."""
    primaries: list[Finding] = []
    attached: list[list[Finding]] = []
    for finding in ranked:
        for i, kept in enumerate(primaries):
            if _overlaps(kept, finding):
                attached[i].append(finding)
                break
        else:
            primaries.append(finding)
            attached.append([])
    return [
        replace(p, corroborating=p.corroborating + tuple(extra)) if extra else p
        for p, extra in zip(primaries, attached)
    ]


def risk_score(severity: Severity, confidence: int) -> int:
    """Severity weight scaled by confidence, 0-100, half rounded up."""
    return (SEVERITY_WEIGHTS[severity] * confidence + 50) // 100


def verdict_for(score: int) -> Verdict:
    if score >= DRAINED_SCORE:
        return Verdict.DRAINED
    if score >= AT_RISK_SCORE:
        return Verdict.AT_RISK
    return Verdict.SAFE


def affected_accounts(tx: NormalizedTransaction, edges: Iterable[TransferEdge]) -> list[AffectedAccount]:
    """Unbalanced losses summed per (owner, mint), sorted by owner then mint."""
    losses: dict[tuple[str, str], int] = defaultdict(int)
    for edge in edges:
        if edge.is_loss and not edge.is_self_transfer:
            losses[(edge.from_owner, edge.mint)] += edge.amount
    decimals = tx.token_decimals()
    return [
        AffectedAccount(account=owner, mint=mint, loss=loss, decimals=decimals.get(mint, 0))
        for (owner, mint), loss in sorted(losses.items())
        if loss > 0
    ]


def build_skip_report(
    tx: NormalizedTransaction,
    reason: str = FAILED_TX_SKIP_REASON,
    registry_degraded: bool = False,
) -> DrainReport:
    return DrainReport(
        signature=tx.signature,
        overall_severity=Severity.NONE,
        overall_confidence=0,
        attack_type=None,
        attacker_addresses=(),
        affected_accounts=(),
        recommendations=(),
        findings=(),
        skip_reason=reason,
        registry_degraded=registry_degraded,
    )


def aggregate_findings(
    tx: NormalizedTransaction,
    findings: Iterable[Finding],
    edges: Iterable[TransferEdge] = (),
    config: DetectionConfig | None = None,
    registry_degraded: bool = False,
) -> DrainReport:
    """
    Build the DrainReport for one transaction.

    Args:
        tx: The normalized transaction the findings were produced from.
        findings: Union of all detector output, in any order.
        edges: Reconciled transfer edges; unbalanced losses become affected accounts.
        config: Supplies min_confidence; defaults if None.
        registry_degraded: Whether any registry lookup failed during the run.

    Returns:
        DrainReport; severity NONE with a skip reason for a failed transaction.
    """
    if not tx.succeeded:
        return build_skip_report(tx, registry_degraded=registry_degraded)
    cfg = config or DetectionConfig()

    findings = list(findings)
    suppressed = [f for f in findings if f.confidence < cfg.min_confidence]
    active = [f for f in findings if f.confidence >= cfg.min_confidence]
    kept = dedupe_findings(rank_findings(active))

    if not kept:
        severity, confidence, attack_type = Severity.NONE, 0, None
        attackers: tuple[str, ...] = ()
        affected: list[AffectedAccount] = []
    else:
        everything = [x for f in kept for x in f.flatten()]
        severity, confidence = kept[0].severity, kept[0].confidence
        attack_type = min((f.pattern_id for f in everything), key=lambda p: p.priority)
        attackers = tuple(sorted({f.attacker for f in everything if f.attacker}))
        affected = affected_accounts(tx, edges)

    score = risk_score(severity, confidence)
    logger.debug(
        "findings_aggregated",
        signature=tx.signature,
        kept=len(kept),
        suppressed=len(suppressed),
        severity=severity.value,
        risk_score=score,
    )
    return DrainReport(
        signature=tx.signature,
        overall_severity=severity,
        overall_confidence=confidence,
        attack_type=attack_type,
        attacker_addresses=attackers,
        affected_accounts=tuple(affected),
        recommendations=tuple(recommendations_for(kept)),
        findings=tuple(kept),
        suppressed_findings=tuple(rank_findings(suppressed)),
        risk_score=score,
        verdict=verdict_for(score),
        registry_degraded=registry_degraded,
    )
