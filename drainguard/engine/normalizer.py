"""
Transaction normalizer — raw getTransaction payloads to NormalizedTransaction.

Resolves account roles (legacy header ordering or jsonParsed flags),
appends lookup-table addresses for versioned transactions, and flattens
top-level and inner (cross-program) instructions into one ordered list of
typed operations. Purely structural; no scoring or risk logic.

Unrecognized instructions become UnknownOp. Only structural damage (missing
required fields, out-of-range account indices, unresolvable lookup tables)
raises MalformedTransaction.
"""

from __future__ import annotations

from typing import Any, Callable

from drainguard.core.exceptions import MalformedTransaction
from drainguard.engine.models import (
    AccountRef,
    ApproveOp,
    AuthorityType,
    CloseAccountOp,
    NormalizedTransaction,
    Operation,
    RevokeOp,
    SetAuthorityOp,
    TokenBalance,
    TransferOp,
    UnknownOp,
)
from drainguard.guard_logging import get_logger
from drainguard.ingestion.lookup_tables import AddressLookupTableResolver

logger = get_logger(__name__)

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"

_PROGRAM_NAMES = {
    SYSTEM_PROGRAM_ID: "system",
    TOKEN_PROGRAM_ID: "spl-token",
    TOKEN_2022_PROGRAM_ID: "spl-token-2022",
}
_PROGRAM_FAMILIES = {
    "system": "system",
    "spl-token": "token",
    "spl-token-2022": "token",
}


class _ShapeError(Exception):
    """Recognized instruction type with fields we cannot interpret."""


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


def _roles_from_header(header: dict[str, Any], n: int, signature: str) -> list[tuple[bool, bool]]:
    """
    Legacy ordering: signers-writable, signers-readonly, non-signers-writable,
    non-signers-readonly. Returns (is_signer, is_writable) per static index.
    """
    try:
        num_sig = int(header["numRequiredSignatures"])
        ro_signed = int(header.get("numReadonlySignedAccounts", 0))
        ro_unsigned = int(header.get("numReadonlyUnsignedAccounts", 0))
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedTransaction(f"invalid message header: {e}", signature) from e
    if not (0 <= ro_signed <= num_sig <= n) or not (0 <= ro_unsigned <= n - num_sig):
        raise MalformedTransaction(
            f"message header inconsistent with {n} static account keys", signature
        )
    roles: list[tuple[bool, bool]] = []
    for i in range(n):
        if i < num_sig:
            roles.append((True, i < num_sig - ro_signed))
        else:
            roles.append((False, i < n - ro_unsigned))
    return roles


def _resolve_lookups(
    lookups: list[Any],
    meta: dict[str, Any],
    resolver: AddressLookupTableResolver | None,
    signature: str,
) -> tuple[list[str], list[str]]:
    """Return (writable, readonly) loaded addresses, writable from every table first."""
    writable_count = 0
    readonly_count = 0
    for lookup in lookups:
        if not isinstance(lookup, dict) or not isinstance(lookup.get("accountKey"), str):
            raise MalformedTransaction("addressTableLookups entry without accountKey", signature)
        writable_count += len(lookup.get("writableIndexes") or [])
        readonly_count += len(lookup.get("readonlyIndexes") or [])

    loaded = meta.get("loadedAddresses")
    if isinstance(loaded, dict) and (loaded.get("writable") or loaded.get("readonly")):
        writable = [str(a) for a in loaded.get("writable") or []]
        readonly = [str(a) for a in loaded.get("readonly") or []]
        if len(writable) != writable_count or len(readonly) != readonly_count:
            raise MalformedTransaction(
                "meta.loadedAddresses does not match addressTableLookups", signature
            )
        return writable, readonly

    if resolver is None:
        raise MalformedTransaction(
            "versioned transaction references lookup tables but no resolver or loadedAddresses",
            signature,
        )

    writable: list[str] = []
    readonly: list[str] = []
    for role, out in (("writableIndexes", writable), ("readonlyIndexes", readonly)):
        for lookup in lookups:
            table = lookup["accountKey"]
            for idx in lookup.get(role) or []:
                if not isinstance(idx, int) or isinstance(idx, bool):
                    raise MalformedTransaction(f"non-integer lookup index {idx!r}", signature)
                address = resolver.resolve(table, idx)
                if address is None:
                    raise MalformedTransaction(
                        f"lookup table {table} has no address at index {idx}", signature
                    )
                out.append(address)
    return writable, readonly


def resolve_accounts(
    message: dict[str, Any],
    meta: dict[str, Any],
    signature: str,
    resolver: AddressLookupTableResolver | None = None,
) -> tuple[AccountRef, ...]:
    """Build the full account list: static keys with roles, then lookup-table addresses."""
    keys = message.get("accountKeys")
    if not isinstance(keys, list) or not keys:
        raise MalformedTransaction("message.accountKeys missing or empty", signature)

    static: list[tuple[str, Any, Any]] = []
    tagged: list[tuple[str, bool]] = []
    for k in keys:
        if isinstance(k, str):
            static.append((k, None, None))
        elif isinstance(k, dict) and isinstance(k.get("pubkey"), str):
            if k.get("source") == "lookupTable":
                tagged.append((k["pubkey"], bool(k.get("writable"))))
            else:
                static.append((k["pubkey"], k.get("signer"), k.get("writable")))
        else:
            raise MalformedTransaction(f"unreadable account key {k!r}", signature)
    if not static:
        raise MalformedTransaction("no static account keys", signature)

    header = message.get("header")
    if isinstance(header, dict):
        roles = _roles_from_header(header, len(static), signature)
    else:
        roles = []
        for address, signer, writable in static:
            if not isinstance(signer, bool) or not isinstance(writable, bool):
                raise MalformedTransaction(
                    f"no header and no signer/writable flags for {address}", signature
                )
            roles.append((signer, writable))

    accounts = [
        AccountRef(index=i, address=address, is_signer=signer, is_writable=writable)
        for i, ((address, _s, _w), (signer, writable)) in enumerate(zip(static, roles))
    ]

    if tagged:
        loaded = tagged
    else:
        lookups = message.get("addressTableLookups") or []
        if lookups:
            w, r = _resolve_lookups(lookups, meta, resolver, signature)
            loaded = [(a, True) for a in w] + [(a, False) for a in r]
        else:
            loaded = []
    for address, writable in loaded:
        accounts.append(
            AccountRef(
                index=len(accounts),
                address=address,
                is_signer=False,
                is_writable=writable,
                from_lookup_table=True,
            )
        )
    return tuple(accounts)


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def _parse_amount(value: Any) -> int:
    if isinstance(value, dict):
        value = value.get("amount")
    if isinstance(value, bool):
        raise _ShapeError("boolean amount")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise _ShapeError(f"non-integral amount {value!r}")


def _require(info: dict[str, Any], *names: str) -> str:
    for name in names:
        value = info.get(name)
        if isinstance(value, str) and value:
            return value
    raise _ShapeError(f"missing {'/'.join(names)}")


def _optional(info: dict[str, Any], *names: str) -> str | None:
    for name in names:
        value = info.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def _token_transfer(base: dict[str, Any], info: dict[str, Any]) -> Operation:
    return TransferOp(
        **base,
        source=_require(info, "source"),
        destination=_require(info, "destination"),
        amount=_parse_amount(info.get("tokenAmount") or info.get("amount")),
        authority=_optional(info, "authority", "multisigAuthority"),
        mint=_optional(info, "mint"),
    )


def _token_approve(base: dict[str, Any], info: dict[str, Any]) -> Operation:
    return ApproveOp(
        **base,
        source=_require(info, "source"),
        delegate=_require(info, "delegate"),
        owner=_optional(info, "owner", "multisigOwner"),
        amount=_parse_amount(info.get("tokenAmount") or info.get("amount")),
        mint=_optional(info, "mint"),
    )


def _token_revoke(base: dict[str, Any], info: dict[str, Any]) -> Operation:
    return RevokeOp(
        **base,
        source=_require(info, "source"),
        owner=_optional(info, "owner", "multisigOwner"),
    )


def _token_set_authority(base: dict[str, Any], info: dict[str, Any]) -> Operation:
    try:
        authority_type = AuthorityType(info.get("authorityType"))
    except ValueError as e:
        raise _ShapeError(str(e)) from e
    return SetAuthorityOp(
        **base,
        account=_require(info, "account", "mint"),
        authority=_optional(info, "authority", "multisigAuthority"),
        authority_type=authority_type,
        new_authority=_optional(info, "newAuthority"),
    )


def _token_close_account(base: dict[str, Any], info: dict[str, Any]) -> Operation:
    return CloseAccountOp(
        **base,
        account=_require(info, "account"),
        destination=_require(info, "destination"),
        owner=_optional(info, "owner", "multisigOwner"),
    )


def _system_transfer(base: dict[str, Any], info: dict[str, Any]) -> Operation:
    return TransferOp(
        **base,
        source=_require(info, "source"),
        destination=_require(info, "destination"),
        amount=_parse_amount(info.get("lamports")),
        authority=_optional(info, "sourceOwner", "source"),
    )


_DECODERS: dict[tuple[str, str], Callable[[dict[str, Any], dict[str, Any]], Operation]] = {
    ("token", "transfer"): _token_transfer,
    ("token", "transferChecked"): _token_transfer,
    ("token", "approve"): _token_approve,
    ("token", "approveChecked"): _token_approve,
    ("token", "revoke"): _token_revoke,
    ("token", "setAuthority"): _token_set_authority,
    ("token", "closeAccount"): _token_close_account,
    ("system", "transfer"): _system_transfer,
    ("system", "transferWithSeed"): _system_transfer,
}


def _check_indices(ix: dict[str, Any], n: int, signature: str) -> None:
    """Every integer account index an instruction carries must exist."""
    pid_index = ix.get("programIdIndex")
    if pid_index is not None and (not isinstance(pid_index, int) or not 0 <= pid_index < n):
        raise MalformedTransaction(f"programIdIndex {pid_index!r} out of range", signature)
    for acc in ix.get("accounts") or []:
        if isinstance(acc, int) and not isinstance(acc, bool) and not 0 <= acc < n:
            raise MalformedTransaction(f"instruction account index {acc} out of range", signature)


def decode_instruction(
    ix: Any,
    *,
    index: int,
    top_level_index: int,
    depth: int,
    addresses: tuple[str, ...],
    signature: str,
) -> Operation:
    """Turn one jsonParsed (or compiled) instruction into a typed Operation."""
    if not isinstance(ix, dict):
        raise MalformedTransaction(f"instruction {top_level_index} is not an object", signature)
    _check_indices(ix, len(addresses), signature)

    program_id = ix.get("programId")
    if program_id is None and isinstance(ix.get("programIdIndex"), int):
        program_id = addresses[ix["programIdIndex"]]
    program = ix.get("program") or _PROGRAM_NAMES.get(program_id)
    base = {
        "index": index,
        "top_level_index": top_level_index,
        "depth": depth,
        "program_id": program_id,
        "program": program,
    }

    parsed = ix.get("parsed")
    ix_type = parsed.get("type") if isinstance(parsed, dict) else None
    if not isinstance(ix_type, str):
        ix_type = None
    family = _PROGRAM_FAMILIES.get(program or "")
    decoder = _DECODERS.get((family, ix_type)) if family and ix_type else None
    if decoder is not None:
        info = parsed.get("info")
        try:
            if not isinstance(info, dict):
                raise _ShapeError("missing info")
            return decoder(base, info)
        except _ShapeError as e:
            logger.debug(
                "instruction_shape_unrecognized",
                signature=signature,
                index=index,
                instruction_type=ix_type,
                error=str(e),
            )
    return UnknownOp(**base, instruction_type=ix_type, raw=ix)


def flatten_operations(
    message: dict[str, Any],
    meta: dict[str, Any],
    addresses: tuple[str, ...],
    signature: str,
) -> tuple[Operation, ...]:
    """
    Top-level instructions in order, each followed by its inner instructions.

    Depth comes from stackHeight when the node reports it (top-level is 1),
    otherwise every inner instruction is depth 1.
    """
    top = message.get("instructions")
    if top is None:
        top = []
    if not isinstance(top, list):
        raise MalformedTransaction("message.instructions is not a list", signature)

    inner_by_index: dict[int, list[Any]] = {}
    for block in meta.get("innerInstructions") or []:
        idx = block.get("index") if isinstance(block, dict) else None
        if not isinstance(idx, int) or not 0 <= idx < len(top):
            raise MalformedTransaction(f"inner instruction block index {idx!r} out of range", signature)
        inner_by_index.setdefault(idx, []).extend(block.get("instructions") or [])

    ops: list[Operation] = []
    for i, ix in enumerate(top):
        ops.append(
            decode_instruction(
                ix, index=len(ops), top_level_index=i, depth=0, addresses=addresses, signature=signature
            )
        )
        for inner in inner_by_index.get(i, []):
            height = inner.get("stackHeight") if isinstance(inner, dict) else None
            depth = height - 1 if isinstance(height, int) and height >= 2 else 1
            ops.append(
                decode_instruction(
                    inner,
                    index=len(ops),
                    top_level_index=i,
                    depth=depth,
                    addresses=addresses,
                    signature=signature,
                )
            )
    return tuple(ops)


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------


def _native_balances(meta: dict[str, Any], key: str, n: int, signature: str) -> tuple[int, ...]:
    values = meta.get(key)
    if not isinstance(values, list):
        raise MalformedTransaction(f"meta.{key} missing", signature)
    if len(values) != n:
        raise MalformedTransaction(f"meta.{key} has {len(values)} entries for {n} accounts", signature)
    try:
        return tuple(_parse_amount(v) for v in values)
    except _ShapeError as e:
        raise MalformedTransaction(f"meta.{key}: {e}", signature) from e


def _token_balances(
    meta: dict[str, Any],
    key: str,
    addresses: tuple[str, ...],
    signature: str,
) -> tuple[TokenBalance, ...]:
    out: list[TokenBalance] = []
    for rec in meta.get(key) or []:
        if not isinstance(rec, dict):
            raise MalformedTransaction(f"meta.{key} entry is not an object", signature)
        idx = rec.get("accountIndex")
        if not isinstance(idx, int) or isinstance(idx, bool) or not 0 <= idx < len(addresses):
            raise MalformedTransaction(f"meta.{key} accountIndex {idx!r} out of range", signature)
        mint = rec.get("mint")
        if not isinstance(mint, str) or not mint:
            raise MalformedTransaction(f"meta.{key}[{idx}] has no mint", signature)
        ui = rec.get("uiTokenAmount") or {}
        try:
            amount = _parse_amount(ui.get("amount"))
        except _ShapeError as e:
            raise MalformedTransaction(f"meta.{key}[{idx}]: {e}", signature) from e
        decimals = ui.get("decimals", 0)
        out.append(
            TokenBalance(
                account_index=idx,
                mint=mint,
                owner=rec.get("owner") or addresses[idx],
                amount=amount,
                decimals=int(decimals) if isinstance(decimals, int) else 0,
            )
        )
    return tuple(out)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def normalize_transaction(
    raw: dict[str, Any],
    resolver: AddressLookupTableResolver | None = None,
) -> NormalizedTransaction:
    """
    Normalize a single getTransaction-style result.

    Handles legacy and versioned (v0) transactions. A transaction that
    failed on-chain is still normalized, with succeeded=False.

    Raises:
        MalformedTransaction: required structure missing or an index out of range.
    """
    if not isinstance(raw, dict):
        raise MalformedTransaction("transaction record must be an object")
    tx_obj = raw.get("transaction")
    if not isinstance(tx_obj, dict):
        raise MalformedTransaction("transaction object missing")
    signatures = tx_obj.get("signatures")
    if not isinstance(signatures, list) or not signatures or not isinstance(signatures[0], str):
        raise MalformedTransaction("transaction.signatures missing")
    signature = signatures[0]
    message = tx_obj.get("message")
    if not isinstance(message, dict):
        raise MalformedTransaction("transaction.message missing", signature)
    meta = raw.get("meta")
    if not isinstance(meta, dict):
        raise MalformedTransaction("meta missing", signature)

    version = raw.get("version", "legacy")
    version = "legacy" if version in (None, "legacy") else str(version)

    accounts = resolve_accounts(message, meta, signature, resolver)
    addresses = tuple(a.address for a in accounts)
    operations = flatten_operations(message, meta, addresses, signature)

    err = meta.get("err")
    slot = raw.get("slot")
    block_time = raw.get("blockTime")
    try:
        fee = _parse_amount(meta.get("fee", 0))
    except _ShapeError as e:
        raise MalformedTransaction(f"meta.fee: {e}", signature) from e

    tx = NormalizedTransaction(
        signature=signature,
        slot=slot if isinstance(slot, int) else None,
        block_time=block_time if isinstance(block_time, int) else None,
        succeeded=err is None,
        accounts=accounts,
        operations=operations,
        pre_balances=_native_balances(meta, "preBalances", len(accounts), signature),
        post_balances=_native_balances(meta, "postBalances", len(accounts), signature),
        pre_token_balances=_token_balances(meta, "preTokenBalances", addresses, signature),
        post_token_balances=_token_balances(meta, "postTokenBalances", addresses, signature),
        fee=fee,
        version=version,
        error=err,
    )
    logger.debug(
        "transaction_normalized",
        signature=signature,
        version=version,
        accounts=len(accounts),
        operations=len(operations),
        nested=sum(1 for op in operations if op.is_nested),
        succeeded=tx.succeeded,
    )
    return tx
