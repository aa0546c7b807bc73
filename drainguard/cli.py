"""
Command-line entry point.

    drainguard analyze tx.json [--registry registry.json] [--indent 2]
    drainguard wallet txs.json [--wallet ADDRESS] [--registry registry.json]

analyze prints one DrainReport; wallet reads a JSON array of transactions
(one wallet's history), prints every item and a WalletSummary. Input may be
a bare getTransaction result or a full JSON-RPC response with "result".

Exit codes: 0 report printed, 2 malformed transaction, 1 unreadable input.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from drainguard.config.env import load_drainguard_env
from drainguard.config.settings import get_settings
from drainguard.core.exceptions import MalformedTransaction
from drainguard.engine.pipeline import analyze_batch, analyze_transaction, summarize_wallet
from drainguard.guard_logging import get_logger
from drainguard.ingestion.lookup_tables import RpcLookupTableResolver
from drainguard.registry import load_registry

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_UNREADABLE = 1
EXIT_MALFORMED = 2


def _unwrap(doc: Any) -> Any:
    if isinstance(doc, dict) and "result" in doc and "transaction" not in doc:
        return doc["result"]
    return doc


def _read_json(path: str) -> Any:
    with open(Path(path), encoding="utf-8") as f:
        return json.load(f)


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="drainguard", description="Detect Solana wallet drains in transaction records")
    sub = ap.add_subparsers(dest="command", required=True)

    p_analyze = sub.add_parser("analyze", help="Analyze one transaction")
    p_analyze.add_argument("path", help="getTransaction result (jsonParsed) as JSON")

    p_wallet = sub.add_parser("wallet", help="Analyze a JSON array of transactions for one wallet")
    p_wallet.add_argument("path", help="JSON array of getTransaction results")
    p_wallet.add_argument("--wallet", default=None, help="Wallet address the history belongs to")
    p_wallet.add_argument("--workers", type=int, default=4, help="Parallel analyses (default: 4)")

    for p in (p_analyze, p_wallet):
        p.add_argument("--registry", default=None, help="Registry JSON (default: DRAINGUARD_REGISTRY_PATH)")
        p.add_argument("--indent", type=int, default=2, help="JSON indent (default: 2)")
        p.add_argument(
            "--rpc-lookups",
            action="store_true",
            help="Resolve address lookup tables over SOLANA_RPC_URL when the record lacks loaded addresses",
        )
    return ap


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    load_drainguard_env()
    config = get_settings()
    registry = load_registry(args.registry)
    resolver = RpcLookupTableResolver() if args.rpc_lookups else None

    try:
        doc = _unwrap(_read_json(args.path))
    except (OSError, ValueError) as e:
        logger.error("input_unreadable", path=args.path, error=str(e))
        print(f"Cannot read {args.path}: {e}", file=sys.stderr)
        return EXIT_UNREADABLE

    if args.command == "analyze":
        try:
            report = analyze_transaction(doc, registry, resolver=resolver, config=config)
        except MalformedTransaction as e:
            print(f"Malformed transaction: {e}", file=sys.stderr)
            return EXIT_MALFORMED
        print(report.to_json(indent=args.indent))
        return EXIT_OK

    if not isinstance(doc, list):
        print(f"{args.path}: expected a JSON array of transactions", file=sys.stderr)
        return EXIT_UNREADABLE
    items = analyze_batch(
        [_unwrap(d) for d in doc],
        registry,
        resolver=resolver,
        config=config,
        max_workers=args.workers,
    )
    try:
        summary = summarize_wallet(items, wallet=args.wallet)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return EXIT_UNREADABLE
    out = {"summary": summary.to_dict(), "items": [i.to_dict() for i in items]}
    print(json.dumps(out, sort_keys=True, indent=args.indent))
    return EXIT_OK if summary.malformed == 0 else EXIT_MALFORMED


if __name__ == "__main__":
    raise SystemExit(main())
