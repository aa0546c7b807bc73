"""
Data model for the drain detection engine.

Every entity is built and discarded within one analysis call. Operations,
edges, findings and reports are frozen value objects; raw token and
lamport amounts are plain ints (arbitrary precision) and are only turned
into decimal strings for presentation.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Union

NATIVE_MINT = "native"
"""Sentinel mint for the native asset (lamports)."""
NATIVE_DECIMALS = 9
EXTERNAL = "external"
"""Counterparty that never appears in the transaction's balance records."""
U64_MAX = 2**64 - 1


class Severity(str, Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = (
    Severity.NONE,
    Severity.LOW,
    Severity.MEDIUM,
    Severity.HIGH,
    Severity.CRITICAL,
)


class PatternId(str, Enum):
    KNOWN_BAD_ACTOR = "KnownBadActor"
    AUTHORITY_HIJACK = "AuthorityHijack"
    UNLIMITED_APPROVAL = "UnlimitedApproval"
    UNMATCHED_LOSS = "UnmatchedLoss"

    @property
    def priority(self) -> int:
        """0 is the strongest attack label."""
        return _PATTERN_PRIORITY.index(self)


_PATTERN_PRIORITY = (
    PatternId.KNOWN_BAD_ACTOR,
    PatternId.AUTHORITY_HIJACK,
    PatternId.UNLIMITED_APPROVAL,
    PatternId.UNMATCHED_LOSS,
)


class Verdict(str, Enum):
    SAFE = "SAFE"
    AT_RISK = "AT_RISK"
    DRAINED = "DRAINED"


class OperationKind(str, Enum):
    TRANSFER = "Transfer"
    APPROVE = "Approve"
    REVOKE = "Revoke"
    SET_AUTHORITY = "SetAuthority"
    CLOSE_ACCOUNT = "CloseAccount"
    UNKNOWN = "Unknown"


class AuthorityType(str, Enum):
    ACCOUNT_OWNER = "accountOwner"
    CLOSE_ACCOUNT = "closeAccount"
    MINT_TOKENS = "mintTokens"
    FREEZE_ACCOUNT = "freezeAccount"


_BIGINT_FIELDS = frozenset({"amount", "loss", "raw_delta"})


def _json_value(name: str, value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if name in _BIGINT_FIELDS and isinstance(value, int):
        return str(value)
    return value


# ---------------------------------------------------------------------------
# Accounts and balances
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountRef:
    """One entry of the resolved account list."""

    index: int
    address: str
    is_signer: bool
    is_writable: bool
    from_lookup_table: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "address": self.address,
            "is_signer": self.is_signer,
            "is_writable": self.is_writable,
            "from_lookup_table": self.from_lookup_table,
        }


@dataclass(frozen=True)
class TokenBalance:
    """Pre- or post-transaction token balance of one token account."""

    account_index: int
    mint: str
    owner: str
    amount: int
    decimals: int


@dataclass(frozen=True)
class BalanceDelta:
    owner: str
    mint: str
    raw_delta: int

    def to_dict(self) -> dict[str, Any]:
        return {"owner": self.owner, "mint": self.mint, "raw_delta": str(self.raw_delta)}


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OperationRef:
    """Evidence pointer to one operation of the flattened list."""

    index: int
    top_level_index: int
    depth: int
    kind: OperationKind

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "operation",
            "index": self.index,
            "top_level_index": self.top_level_index,
            "depth": self.depth,
            "kind": self.kind.value,
        }


@dataclass(frozen=True)
class Operation:
    """
    Base of the closed operation variant set.

    index is the position in the flattened list; depth is 0 for top-level
    instructions and grows with cross-program nesting.
    """

    kind: ClassVar[OperationKind] = OperationKind.UNKNOWN

    index: int
    top_level_index: int
    depth: int
    program_id: str | None
    program: str | None

    @property
    def is_nested(self) -> bool:
        return self.depth > 0

    def ref(self) -> OperationRef:
        return OperationRef(
            index=self.index,
            top_level_index=self.top_level_index,
            depth=self.depth,
            kind=self.kind,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind.value}
        for f in fields(self):
            out[f.name] = _json_value(f.name, getattr(self, f.name))
        return out


@dataclass(frozen=True)
class TransferOp(Operation):
    kind: ClassVar[OperationKind] = OperationKind.TRANSFER

    source: str
    destination: str
    amount: int
    authority: str | None = None
    mint: str | None = None
    """None for native transfers and for unchecked token transfers."""

    @property
    def is_self_transfer(self) -> bool:
        return self.source == self.destination


@dataclass(frozen=True)
class ApproveOp(Operation):
    kind: ClassVar[OperationKind] = OperationKind.APPROVE

    source: str
    delegate: str
    owner: str | None
    amount: int
    mint: str | None = None


@dataclass(frozen=True)
class RevokeOp(Operation):
    kind: ClassVar[OperationKind] = OperationKind.REVOKE

    source: str
    owner: str | None


@dataclass(frozen=True)
class SetAuthorityOp(Operation):
    kind: ClassVar[OperationKind] = OperationKind.SET_AUTHORITY

    account: str
    authority: str | None
    authority_type: AuthorityType
    new_authority: str | None


@dataclass(frozen=True)
class CloseAccountOp(Operation):
    kind: ClassVar[OperationKind] = OperationKind.CLOSE_ACCOUNT

    account: str
    destination: str
    owner: str | None


@dataclass(frozen=True)
class UnknownOp(Operation):
    """Unrecognized instruction shape. Preserved, inert for detection."""

    kind: ClassVar[OperationKind] = OperationKind.UNKNOWN

    instruction_type: str | None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


# ---------------------------------------------------------------------------
# Normalized transaction
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NormalizedTransaction:
    """Canonical form of one transaction: resolved accounts, flat operations, balances."""

    signature: str
    slot: int | None
    block_time: int | None
    succeeded: bool
    accounts: tuple[AccountRef, ...]
    operations: tuple[Operation, ...]
    pre_balances: tuple[int, ...]
    post_balances: tuple[int, ...]
    pre_token_balances: tuple[TokenBalance, ...] = ()
    post_token_balances: tuple[TokenBalance, ...] = ()
    fee: int = 0
    version: str = "legacy"
    error: Any = field(default=None, compare=False)
    """meta.err as returned by the node; None when the transaction succeeded."""

    @property
    def fee_payer(self) -> str:
        return self.accounts[0].address

    def operations_of(self, op_type: type[Operation]) -> list[Operation]:
        return [op for op in self.operations if isinstance(op, op_type)]

    def token_decimals(self) -> dict[str, int]:
        """Mint -> decimals, from the token balance records (native included)."""
        out: dict[str, int] = {NATIVE_MINT: NATIVE_DECIMALS}
        for bal in self.pre_token_balances + self.post_token_balances:
            out.setdefault(bal.mint, bal.decimals)
        return out


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransferEdge:
    """
    Directed value movement of one mint inside a transaction.

    from_owner / to_owner are wallet (owner) addresses or EXTERNAL.
    is_balanced marks part of a value-conserving exchange.
    """

    mint: str
    from_owner: str
    to_owner: str
    amount: int
    is_balanced: bool

    @property
    def is_self_transfer(self) -> bool:
        return self.from_owner == self.to_owner

    @property
    def is_loss(self) -> bool:
        """Real owner lost value that was not part of an exchange."""
        return self.from_owner != EXTERNAL and not self.is_balanced

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "transfer",
            "mint": self.mint,
            "from_owner": self.from_owner,
            "to_owner": self.to_owner,
            "amount": str(self.amount),
            "is_balanced": self.is_balanced,
        }


Evidence = Union[OperationRef, TransferEdge]


def evidence_sort_key(item: Evidence) -> tuple:
    if isinstance(item, OperationRef):
        return (0, item.index, "", "", "", 0)
    return (1, 0, item.mint, item.from_owner, item.to_owner, item.amount)


# ---------------------------------------------------------------------------
# Findings and reports
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Finding:
    """
    One detector's evidenced claim about a suspicious pattern.

    corroborating holds lower-ranked findings the aggregator folded into
    this one because they describe the same event.
    """

    pattern_id: PatternId
    severity: Severity
    confidence: int
    evidence: tuple[Evidence, ...]
    attacker: str | None = None
    victim: str | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict, compare=False)
    corroborating: tuple[Finding, ...] = ()

    def __post_init__(self) -> None:
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence out of range: {self.confidence}")

    def flatten(self) -> list[Finding]:
        """This finding followed by every corroborating finding, depth first."""
        out = [self]
        for c in self.corroborating:
            out.extend(c.flatten())
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern_id": self.pattern_id.value,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "evidence": [e.to_dict() for e in self.evidence],
            "actors": {"attacker": self.attacker, "victim": self.victim},
            "message": self.message,
            "details": self.details,
            "corroborating": [c.to_dict() for c in self.corroborating],
        }


@dataclass(frozen=True)
class AffectedAccount:
    account: str
    mint: str
    loss: int
    decimals: int

    @property
    def is_nft(self) -> bool:
        return self.decimals == 0 and self.loss == 1 and self.mint != NATIVE_MINT

    @property
    def ui_loss(self) -> str:
        """Human-readable amount. Presentation only; never fed back into detection."""
        text = format(Decimal(self.loss).scaleb(-self.decimals), "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "mint": self.mint,
            "loss": str(self.loss),
            "decimals": self.decimals,
            "ui_loss": self.ui_loss,
            "is_nft": self.is_nft,
        }


@dataclass(frozen=True)
class DrainReport:
    """Final verdict for one transaction. JSON-serializable through to_dict()."""

    signature: str
    overall_severity: Severity
    overall_confidence: int
    attack_type: PatternId | None
    attacker_addresses: tuple[str, ...]
    affected_accounts: tuple[AffectedAccount, ...]
    recommendations: tuple[str, ...]
    findings: tuple[Finding, ...]
    suppressed_findings: tuple[Finding, ...] = ()
    risk_score: int = 0
    verdict: Verdict = Verdict.SAFE
    skip_reason: str | None = None
    registry_degraded: bool = False

    @property
    def is_drain(self) -> bool:
        return self.overall_severity.rank >= Severity.HIGH.rank

    def to_dict(self) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "overall_severity": self.overall_severity.value,
            "overall_confidence": self.overall_confidence,
            "attack_type": self.attack_type.value if self.attack_type else None,
            "attacker_addresses": list(self.attacker_addresses),
            "affected_accounts": [a.to_dict() for a in self.affected_accounts],
            "recommendations": list(self.recommendations),
            "findings": [f.to_dict() for f in self.findings],
            "suppressed_findings": [f.to_dict() for f in self.suppressed_findings],
            "risk_score": self.risk_score,
            "verdict": self.verdict.value,
            "skip_reason": self.skip_reason,
            "registry_degraded": self.registry_degraded,
        }

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, indent=indent)
