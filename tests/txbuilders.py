"""
Builders for getTransaction (jsonParsed) payloads used across the tests.
"""

from __future__ import annotations

from typing import Any

VICTIM = "Victim11111111111111111111111111111111111111"
VICTIM_ATA = "VictimAta1111111111111111111111111111111111"
ATTACKER = "Attacker111111111111111111111111111111111111"
ATTACKER_ATA = "AttackerAta11111111111111111111111111111111"
FRIEND = "Friend111111111111111111111111111111111111111"
FRIEND_ATA = "FriendAta11111111111111111111111111111111111"
TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
SYSTEM_PROGRAM = "11111111111111111111111111111111"
JUPITER = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
USDC = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
BONK = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"

# Valid base58 public keys for code paths that validate addresses
VALID_DRAINER = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
VALID_WALLET = "So11111111111111111111111111111111111111112"

DEFAULT_KEYS = [VICTIM, VICTIM_ATA, ATTACKER_ATA, ATTACKER, TOKEN_PROGRAM]
PROGRAMS = {TOKEN_PROGRAM, SYSTEM_PROGRAM, JUPITER}
LAMPORTS = 1_000_000_000
FEE = 5000


def parsed_ix(program: str, ix_type: str, info: dict[str, Any], stack_height: int | None = None) -> dict[str, Any]:
    program_id = SYSTEM_PROGRAM if program == "system" else TOKEN_PROGRAM
    ix: dict[str, Any] = {
        "program": program,
        "programId": program_id,
        "parsed": {"type": ix_type, "info": info},
    }
    if stack_height is not None:
        ix["stackHeight"] = stack_height
    return ix


def set_authority_ix(
    account: str = VICTIM_ATA,
    authority: str = VICTIM,
    new_authority: str | None = ATTACKER,
    authority_type: str = "accountOwner",
    **kw: Any,
) -> dict[str, Any]:
    info = {"account": account, "authority": authority, "authorityType": authority_type, "newAuthority": new_authority}
    return parsed_ix("spl-token", "setAuthority", info, **kw)


def approve_ix(
    amount: int | str,
    delegate: str = ATTACKER,
    source: str = VICTIM_ATA,
    owner: str = VICTIM,
    **kw: Any,
) -> dict[str, Any]:
    info = {"source": source, "delegate": delegate, "owner": owner, "amount": str(amount)}
    return parsed_ix("spl-token", "approve", info, **kw)


def token_transfer_ix(
    amount: int,
    source: str = VICTIM_ATA,
    destination: str = ATTACKER_ATA,
    authority: str = VICTIM,
    mint: str = USDC,
    **kw: Any,
) -> dict[str, Any]:
    info = {
        "source": source,
        "destination": destination,
        "authority": authority,
        "mint": mint,
        "tokenAmount": {"amount": str(amount), "decimals": 6, "uiAmountString": str(amount / 1e6)},
    }
    return parsed_ix("spl-token", "transferChecked", info, **kw)


def system_transfer_ix(lamports: int, source: str = VICTIM, destination: str = ATTACKER, **kw: Any) -> dict[str, Any]:
    return parsed_ix("system", "transfer", {"source": source, "destination": destination, "lamports": lamports}, **kw)


def close_account_ix(account: str = VICTIM_ATA, destination: str = ATTACKER, owner: str = VICTIM) -> dict[str, Any]:
    return parsed_ix("spl-token", "closeAccount", {"account": account, "destination": destination, "owner": owner})


def token_balance(account_index: int, owner: str | None, amount: int, mint: str = USDC, decimals: int = 6) -> dict[str, Any]:
    rec: dict[str, Any] = {
        "accountIndex": account_index,
        "mint": mint,
        "uiTokenAmount": {
            "amount": str(amount),
            "decimals": decimals,
            "uiAmountString": str(amount / 10**decimals),
        },
        "programId": TOKEN_PROGRAM,
    }
    if owner is not None:
        rec["owner"] = owner
    return rec


def make_raw_tx(
    instructions: list[dict[str, Any]] | None = None,
    *,
    keys: list[str] | None = None,
    inner: list[dict[str, Any]] | None = None,
    pre_token: list[dict[str, Any]] | None = None,
    post_token: list[dict[str, Any]] | None = None,
    pre_balances: list[int] | None = None,
    post_balances: list[int] | None = None,
    fee: int = FEE,
    err: Any = None,
    signature: str = "5ig1111111111111111111111111111111111111111",
) -> dict[str, Any]:
    """
    Legacy jsonParsed transaction. Account 0 is the signing fee payer;
    program ids are readonly. Native balances default to LAMPORTS each with
    only the fee charged to the payer.
    """
    keys = list(keys or DEFAULT_KEYS)
    account_keys = [
        {"pubkey": k, "signer": i == 0, "writable": k not in PROGRAMS, "source": "transaction"}
        for i, k in enumerate(keys)
    ]
    pre = list(pre_balances) if pre_balances is not None else [LAMPORTS] * len(keys)
    if post_balances is not None:
        post = list(post_balances)
    else:
        post = list(pre)
        post[0] -= fee
    return {
        "slot": 250_000_000,
        "blockTime": 1_700_000_000,
        "transaction": {
            "signatures": [signature],
            "message": {
                "accountKeys": account_keys,
                "instructions": list(instructions or []),
                "recentBlockhash": "EkSnNWid2cvwEVnVx9aBqawnmiCNiDgp3gUdkDPTKN1N",
            },
        },
        "meta": {
            "err": err,
            "fee": fee,
            "preBalances": pre,
            "postBalances": post,
            "preTokenBalances": list(pre_token or []),
            "postTokenBalances": list(post_token or []),
            "innerInstructions": list(inner or []),
            "logMessages": [],
        },
    }
