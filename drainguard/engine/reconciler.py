"""
Balance reconciler — pre/post snapshots to directed transfer edges.

Deltas are computed per (owner, mint) in raw integer units; the native
asset is treated as one more mint (NATIVE_MINT) with the fee payer's fee
added back. Each mint group is matched greedily (largest loss against
largest gain) and checked for value conservation: a group whose gains
cover its losses within the configured tolerance is a swap, not a drain,
and every edge in it is marked balanced.

Residual losses go to EXTERNAL. They are still considered offset when the
losing owner received more than dust of a different asset from EXTERNAL
in the same transaction (the other leg of a swap routed through accounts
the record does not show).
"""

from __future__ import annotations

from collections import defaultdict

from drainguard.config.settings import DetectionConfig
from drainguard.engine.models import (
    EXTERNAL,
    NATIVE_MINT,
    BalanceDelta,
    NormalizedTransaction,
    TransferEdge,
)
from drainguard.guard_logging import get_logger

logger = get_logger(__name__)

_BPS = 10_000


def compute_balance_deltas(tx: NormalizedTransaction) -> list[BalanceDelta]:
    """
    Nonzero post-minus-pre deltas per (owner, mint), sorted by (mint, owner).

    Token accounts present only in the pre snapshot were closed and count
    as zero afterwards. The fee payer's native delta excludes the fee.
    """
    totals: dict[tuple[str, str], int] = defaultdict(int)
    for bal in tx.pre_token_balances:
        totals[(bal.owner, bal.mint)] -= bal.amount
    for bal in tx.post_token_balances:
        totals[(bal.owner, bal.mint)] += bal.amount

    for account, pre, post in zip(tx.accounts, tx.pre_balances, tx.post_balances):
        delta = post - pre
        if account.index == 0:
            delta += tx.fee
        totals[(account.address, NATIVE_MINT)] += delta

    deltas = [
        BalanceDelta(owner=owner, mint=mint, raw_delta=delta)
        for (owner, mint), delta in totals.items()
        if delta != 0
    ]
    deltas.sort(key=lambda d: (d.mint, d.owner))
    return deltas


def is_group_balanced(total_gain: int, total_loss: int, tolerance_bps: int) -> bool:
    """gains >= losses * (1 - tolerance), in exact integer arithmetic."""
    if total_loss <= 0:
        return True
    return total_gain * _BPS >= total_loss * (_BPS - tolerance_bps)


class _MintGroup:
    """Greedy matching of one mint's losses against its gains."""

    def __init__(self, mint: str, deltas: list[BalanceDelta], tolerance_bps: int):
        self.mint = mint
        losers = sorted(
            ([d.owner, -d.raw_delta] for d in deltas if d.raw_delta < 0),
            key=lambda x: (-x[1], x[0]),
        )
        gainers = sorted(
            ([d.owner, d.raw_delta] for d in deltas if d.raw_delta > 0),
            key=lambda x: (-x[1], x[0]),
        )
        self.total_loss = sum(amount for _, amount in losers)
        self.total_gain = sum(amount for _, amount in gainers)
        self.balanced = is_group_balanced(self.total_gain, self.total_loss, tolerance_bps)

        self.matched: list[tuple[str, str, int]] = []
        i = j = 0
        while i < len(losers) and j < len(gainers):
            amount = min(losers[i][1], gainers[j][1])
            self.matched.append((losers[i][0], gainers[j][0], amount))
            losers[i][1] -= amount
            gainers[j][1] -= amount
            if losers[i][1] == 0:
                i += 1
            if gainers[j][1] == 0:
                j += 1
        self.residual_losses = [(o, amt) for o, amt in losers[i:] if amt > 0]
        self.residual_gains = [(o, amt) for o, amt in gainers[j:] if amt > 0]


def _is_dust(mint: str, amount: int, decimals: dict[str, int], cfg: DetectionConfig) -> bool:
    if mint == NATIVE_MINT:
        return amount < cfg.native_dust_lamports
    whole = 10 ** decimals.get(mint, 0)
    return amount * cfg.token_dust_divisor < whole


def _counter_asset_gains(
    groups: list[_MintGroup],
    decimals: dict[str, int],
    cfg: DetectionConfig,
) -> dict[str, set[str]]:
    """
    Owner -> mints the owner received from outside the visible accounts.

    Only residual EXTERNAL -> owner gains count, and only above dust for
    their mint: the unseen leg of a swap, not an airdrop of a few units.
    """
    out: dict[str, set[str]] = defaultdict(set)
    for group in groups:
        for owner, amount in group.residual_gains:
            if not _is_dust(group.mint, amount, decimals, cfg):
                out[owner].add(group.mint)
    return out


def reconcile_balances(
    tx: NormalizedTransaction,
    config: DetectionConfig | None = None,
) -> list[TransferEdge]:
    """
    Build transfer edges for a successful transaction; [] for a failed one.

    Returns edges grouped by mint (sorted), each group in emission order:
    matched owner->owner edges, residual losses to EXTERNAL, then
    residual gains from EXTERNAL.
    """
    if not tx.succeeded:
        return []
    cfg = config or DetectionConfig()

    by_mint: dict[str, list[BalanceDelta]] = defaultdict(list)
    for d in compute_balance_deltas(tx):
        by_mint[d.mint].append(d)
    groups = [_MintGroup(mint, by_mint[mint], cfg.balance_tolerance_bps) for mint in sorted(by_mint)]
    counter_gains = _counter_asset_gains(groups, tx.token_decimals(), cfg)

    edges: list[TransferEdge] = []
    for group in groups:
        mint = group.mint

        def offset(owner: str) -> bool:
            return group.balanced or any(m != mint for m in counter_gains.get(owner, ()))

        for from_owner, to_owner, amount in group.matched:
            edges.append(
                TransferEdge(
                    mint=mint,
                    from_owner=from_owner,
                    to_owner=to_owner,
                    amount=amount,
                    is_balanced=offset(from_owner),
                )
            )
        for owner, remaining in group.residual_losses:
            edges.append(
                TransferEdge(
                    mint=mint,
                    from_owner=owner,
                    to_owner=EXTERNAL,
                    amount=remaining,
                    is_balanced=offset(owner),
                )
            )
        for owner, remaining in group.residual_gains:
            edges.append(
                TransferEdge(
                    mint=mint,
                    from_owner=EXTERNAL,
                    to_owner=owner,
                    amount=remaining,
                    is_balanced=group.balanced,
                )
            )

        logger.debug(
            "mint_group_reconciled",
            signature=tx.signature,
            mint=mint,
            total_loss=str(group.total_loss),
            total_gain=str(group.total_gain),
            balanced=group.balanced,
        )
    return edges
