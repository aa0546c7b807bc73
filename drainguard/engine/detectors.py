"""
Pattern detectors for wallet drains.

Four independent rules over the normalized operations and reconciled
transfer edges. Each returns zero or more explainable Findings (pattern,
severity, confidence, evidence, actors, message, details) and never raises
for business conditions. Failed transactions and self-transfers never
produce findings.

Registry answers come through a RegistryView: a lookup that failed is
treated as "unknown" and lowers the confidence of the finding it decided.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable

from drainguard.config.settings import DetectionConfig
from drainguard.engine.models import (
    EXTERNAL,
    U64_MAX,
    ApproveOp,
    AuthorityType,
    CloseAccountOp,
    Evidence,
    Finding,
    NormalizedTransaction,
    PatternId,
    SetAuthorityOp,
    Severity,
    TransferEdge,
    TransferOp,
)
from drainguard.guard_logging import get_logger
from drainguard.registry import EntityRegistry, RegistryView, as_registry_view

logger = get_logger(__name__)

Detector = Callable[..., list[Finding]]

AUTHORITY_HIJACK_CONFIDENCE = 95
AUTHORITY_TO_SAFE_PROGRAM_CONFIDENCE = 10
MAX_APPROVAL_CONFIDENCE = 85
LARGE_APPROVAL_CONFIDENCE = 70
KNOWN_BAD_ACTOR_CONFIDENCE = 100
UNMATCHED_LOSS_CONFIDENCE = 60
UNMATCHED_LOSS_UNSEEN_CONFIDENCE = 70


def _penalize(confidence: int, view: RegistryView, address: str | None, config: DetectionConfig) -> int:
    if view.lookup_failed(address):
        return min(100, max(0, confidence - config.registry_degraded_penalty))
    return confidence


def detect_authority_hijack(
    tx: NormalizedTransaction,
    edges: list[TransferEdge],
    registry: EntityRegistry | RegistryView | None,
    config: DetectionConfig | None = None,
) -> list[Finding]:
    """
    Flag SetAuthority(accountOwner) handing a token account to a new owner.

    Whoever becomes owner can move the balance at any time, now or later,
    so this is CRITICAL even when no value moved in this transaction.
    """
    if not tx.succeeded:
        return []
    cfg = config or DetectionConfig()
    view = as_registry_view(registry)
    findings: list[Finding] = []
    for op in tx.operations_of(SetAuthorityOp):
        if op.authority_type != AuthorityType.ACCOUNT_OWNER:
            continue
        if not op.new_authority:
            continue
        to_safe_program = view.is_known_safe_program(op.new_authority)
        if to_safe_program:
            confidence = AUTHORITY_TO_SAFE_PROGRAM_CONFIDENCE
        else:
            confidence = _penalize(AUTHORITY_HIJACK_CONFIDENCE, view, op.new_authority, cfg)
        findings.append(
            Finding(
                pattern_id=PatternId.AUTHORITY_HIJACK,
                severity=Severity.CRITICAL,
                confidence=confidence,
                evidence=(op.ref(),),
                attacker=op.new_authority,
                victim=op.authority,
                message=(
                    f"Ownership of token account {op.account} reassigned "
                    f"from {op.authority} to {op.new_authority}"
                ),
                details={
                    "account": op.account,
                    "previous_owner": op.authority,
                    "new_owner": op.new_authority,
                    "new_owner_is_safe_program": to_safe_program,
                    "owner_unchanged": op.new_authority == op.authority,
                    "nested": op.is_nested,
                    "program": op.program,
                },
            )
        )
    return findings


def detect_unlimited_approval(
    tx: NormalizedTransaction,
    edges: list[TransferEdge],
    registry: EntityRegistry | RegistryView | None,
    config: DetectionConfig | None = None,
) -> list[Finding]:
    """
    Flag Approve operations granting the maximum u64 allowance (HIGH) or
    more than the configured threshold (MEDIUM).
    """
    if not tx.succeeded:
        return []
    cfg = config or DetectionConfig()
    view = as_registry_view(registry)
    findings: list[Finding] = []
    for op in tx.operations_of(ApproveOp):
        if op.amount >= U64_MAX:
            severity, confidence, threshold = Severity.HIGH, MAX_APPROVAL_CONFIDENCE, U64_MAX
            label = "Unlimited"
        elif op.amount > cfg.approval_threshold:
            severity, confidence, threshold = Severity.MEDIUM, LARGE_APPROVAL_CONFIDENCE, cfg.approval_threshold
            label = "Excessive"
        else:
            continue
        attacker = None if view.is_known_safe_program(op.delegate) else op.delegate
        findings.append(
            Finding(
                pattern_id=PatternId.UNLIMITED_APPROVAL,
                severity=severity,
                confidence=confidence,
                evidence=(op.ref(),),
                attacker=attacker,
                victim=op.owner,
                message=(
                    f"{label} token approval: {op.delegate} may spend {op.amount} "
                    f"raw units from {op.source}"
                ),
                details={
                    "source": op.source,
                    "delegate": op.delegate,
                    "mint": op.mint,
                    "amount": str(op.amount),
                    "threshold": str(threshold),
                    "nested": op.is_nested,
                },
            )
        )
    return findings


def _bad_actor_targets(tx: NormalizedTransaction, edges: list[TransferEdge]) -> list[tuple[str, Evidence, str | None, str]]:
    """(destination, evidence, victim, role) for every place value or control can flow."""
    targets: list[tuple[str, Evidence, str | None, str]] = []
    for op in tx.operations:
        if isinstance(op, TransferOp):
            if not op.is_self_transfer:
                targets.append((op.destination, op.ref(), op.authority or op.source, "transfer_destination"))
        elif isinstance(op, SetAuthorityOp):
            if op.new_authority:
                targets.append((op.new_authority, op.ref(), op.authority, "new_authority"))
        elif isinstance(op, ApproveOp):
            if op.delegate != op.owner:
                targets.append((op.delegate, op.ref(), op.owner, "delegate"))
        elif isinstance(op, CloseAccountOp):
            if op.destination != op.owner:
                targets.append((op.destination, op.ref(), op.owner, "close_destination"))
    for edge in edges:
        if edge.to_owner == EXTERNAL or edge.is_self_transfer:
            continue
        victim = None if edge.from_owner == EXTERNAL else edge.from_owner
        targets.append((edge.to_owner, edge, victim, "balance_recipient"))
    return targets


def detect_known_bad_actor(
    tx: NormalizedTransaction,
    edges: list[TransferEdge],
    registry: EntityRegistry | RegistryView | None,
    config: DetectionConfig | None = None,
) -> list[Finding]:
    """
    Flag any value or authority flowing to an address the registry lists as
    a drainer. One finding per drainer, carrying all evidence for it.
    """
    if not tx.succeeded:
        return []
    view = as_registry_view(registry)

    evidence: dict[str, list[Evidence]] = defaultdict(list)
    victims: dict[str, str | None] = {}
    roles: dict[str, set[str]] = defaultdict(set)
    order: list[str] = []
    for address, item, victim, role in _bad_actor_targets(tx, edges):
        if not view.is_known_drainer(address):
            continue
        if address not in evidence:
            order.append(address)
        if item not in evidence[address]:
            evidence[address].append(item)
        if victims.get(address) is None:
            victims[address] = victim
        roles[address].add(role)

    findings: list[Finding] = []
    for address in order:
        domains = view.domains_for(address)
        message = f"Known drainer {address} received value or control"
        if domains:
            message += f" (associated domains: {', '.join(domains)})"
        findings.append(
            Finding(
                pattern_id=PatternId.KNOWN_BAD_ACTOR,
                severity=Severity.CRITICAL,
                confidence=KNOWN_BAD_ACTOR_CONFIDENCE,
                evidence=tuple(evidence[address]),
                attacker=address,
                victim=victims.get(address),
                message=message,
                details={"roles": sorted(roles[address]), "domains": domains},
            )
        )
    return findings


def detect_unmatched_loss(
    tx: NormalizedTransaction,
    edges: list[TransferEdge],
    registry: EntityRegistry | RegistryView | None,
    config: DetectionConfig | None = None,
) -> list[Finding]:
    """
    Flag value that left an owner without a matching gain.

    Only unbalanced edges count; a destination that is a known safe program
    is a protocol deposit, not a loss. A loss to a concrete address the
    registry has never seen is slightly more suspicious than one whose
    counterparty is not visible at all.
    """
    if not tx.succeeded:
        return []
    cfg = config or DetectionConfig()
    view = as_registry_view(registry)
    findings: list[Finding] = []
    for edge in edges:
        if not edge.is_loss or edge.is_self_transfer:
            continue
        destination = None if edge.to_owner == EXTERNAL else edge.to_owner
        if destination is not None and view.is_known_safe_program(destination):
            continue
        if destination is not None and not view.is_known_address(destination):
            confidence = UNMATCHED_LOSS_UNSEEN_CONFIDENCE
        else:
            confidence = UNMATCHED_LOSS_CONFIDENCE
        confidence = _penalize(confidence, view, destination, cfg)
        findings.append(
            Finding(
                pattern_id=PatternId.UNMATCHED_LOSS,
                severity=Severity.MEDIUM,
                confidence=confidence,
                evidence=(edge,),
                attacker=destination,
                victim=edge.from_owner,
                message=(
                    f"{edge.from_owner} lost {edge.amount} raw units of {edge.mint} "
                    f"to {destination or 'an unseen counterparty'} with nothing of equal value in return"
                ),
                details={
                    "mint": edge.mint,
                    "amount": str(edge.amount),
                    "destination": edge.to_owner,
                },
            )
        )
    return findings


# Fixed run order; keyed by pattern id for DRAINGUARD_DISABLED_DETECTORS.
DETECTORS: dict[str, Detector] = {
    PatternId.AUTHORITY_HIJACK.value: detect_authority_hijack,
    PatternId.UNLIMITED_APPROVAL.value: detect_unlimited_approval,
    PatternId.KNOWN_BAD_ACTOR.value: detect_known_bad_actor,
    PatternId.UNMATCHED_LOSS.value: detect_unmatched_loss,
}


def run_detectors(
    tx: NormalizedTransaction,
    edges: list[TransferEdge],
    registry: EntityRegistry | RegistryView | None,
    config: DetectionConfig | None = None,
) -> list[Finding]:
    """Run every enabled detector in fixed order and return the union of findings."""
    cfg = config or DetectionConfig()
    view = as_registry_view(registry)
    findings: list[Finding] = []
    for name, detector in DETECTORS.items():
        if name in cfg.disabled_detectors:
            continue
        found = detector(tx, edges, view, cfg)
        logger.debug("detector_ran", detector=name, signature=tx.signature, findings=len(found))
        findings.extend(found)
    return findings
