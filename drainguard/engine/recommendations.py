"""
Static remediation advice keyed by pattern.

The table order is the output order; AuthorityHijack comes first because
nothing can be revoked once ownership has moved.
"""

from __future__ import annotations

from typing import Iterable

from drainguard.engine.models import Finding, PatternId

RECOMMENDATION_TABLE: tuple[tuple[PatternId, tuple[str, ...]], ...] = (
    (
        PatternId.AUTHORITY_HIJACK,
        (
            "Migrate all remaining funds to a new wallet created with a fresh seed phrase.",
            "Token account ownership was transferred: the new owner fully controls the affected token accounts.",
            "Ownership cannot be revoked through normal means; treat the tokens in those accounts as lost.",
        ),
    ),
    (
        PatternId.KNOWN_BAD_ACTOR,
        (
            "Interaction with a known drainer address: stop using this wallet for new transactions.",
            "Disconnect your wallet from any sites you are currently connected to.",
        ),
    ),
    (
        PatternId.UNLIMITED_APPROVAL,
        (
            "A token approval lets a third party spend your tokens without asking again; revoke it now.",
        ),
    ),
    (
        PatternId.UNMATCHED_LOSS,
        (
            "Assets left your wallet without anything of equal value in return; confirm you authorized this.",
            "If you did not, move the remaining assets to a new wallet.",
        ),
    ),
)

REVOKE_SPENDER_TEMPLATE = "Revoke approval for spender: {delegate}"


def recommendations_for(findings: Iterable[Finding]) -> list[str]:
    """Ordered, de-duplicated advice for the given (ranked) findings."""
    flat = [x for f in findings for x in f.flatten()]
    present = {f.pattern_id for f in flat}
    lines: list[str] = []
    for pattern, texts in RECOMMENDATION_TABLE:
        if pattern not in present:
            continue
        lines.extend(texts)
        if pattern == PatternId.UNLIMITED_APPROVAL:
            delegates = sorted({
                f.details.get("delegate")
                for f in flat
                if f.pattern_id == pattern and f.details.get("delegate")
            })
            lines.extend(REVOKE_SPENDER_TEMPLATE.format(delegate=d) for d in delegates)
    return list(dict.fromkeys(lines))
