"""
Address lookup table resolvers for versioned transactions.

The normalizer only needs resolve(table_address, index) -> address | None.
StaticLookupTableResolver serves pre-fetched tables; RpcLookupTableResolver
loads a table once via getAccountInfo (jsonParsed) and caches it for the
resolver's lifetime. Neither raises: a table that cannot be loaded is
reported as NotFound (None) and the normalizer rejects the transaction.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Mapping, Protocol, Sequence

import requests

from drainguard.config.env import get_solana_rpc_url, mask_rpc_url
from drainguard.guard_logging import get_logger

logger = get_logger(__name__)

RETRY_DELAY_SEC = 2.0
MAX_RETRIES = 3
REQUEST_TIMEOUT = 30


class AddressLookupTableResolver(Protocol):
    def resolve(self, table_address: str, index: int) -> str | None:
        """Return the address stored at index of the table, or None if not found."""
        ...


class StaticLookupTableResolver:
    """Resolver over tables already in memory: {table_address: [addresses]}."""

    def __init__(self, tables: Mapping[str, Sequence[str]] | None = None) -> None:
        self._tables = {k: tuple(v) for k, v in (tables or {}).items()}

    def resolve(self, table_address: str, index: int) -> str | None:
        table = self._tables.get(table_address)
        if table is None or not 0 <= index < len(table):
            return None
        return table[index]


class RpcLookupTableResolver:
    """
    Fetch lookup tables from a Solana JSON-RPC node.

    Callers own timeouts and caching across runs; this class only caches
    within its own lifetime and is safe to share between threads.
    """

    def __init__(
        self,
        rpc_url: str | None = None,
        *,
        session: requests.Session | None = None,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SEC,
    ) -> None:
        self.rpc_url = rpc_url or get_solana_rpc_url()
        self._session = session or requests.Session()
        self._timeout = timeout
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._cache: dict[str, tuple[str, ...] | None] = {}
        self._lock = threading.Lock()

    def _rpc_post(self, method: str, params: list[Any]) -> dict[str, Any] | None:
        payload = {"jsonrpc": "2.0", "id": "drainguard-alt", "method": method, "params": params}
        for attempt in range(self._max_retries):
            try:
                r = self._session.post(self.rpc_url, json=payload, timeout=self._timeout)
                if r.status_code == 429:
                    logger.warning("rpc_rate_limited", method=method, attempt=attempt + 1)
                    time.sleep(self._retry_delay)
                    continue
                r.raise_for_status()
                data = r.json()
            except (requests.RequestException, ValueError) as e:
                logger.warning(
                    "rpc_request_failed",
                    method=method,
                    attempt=attempt + 1,
                    rpc=mask_rpc_url(self.rpc_url),
                    error=str(e),
                )
                if attempt < self._max_retries - 1:
                    time.sleep(self._retry_delay)
                    continue
                return None
            if data.get("error"):
                logger.warning("rpc_error", method=method, error=data.get("error"))
                return None
            return data
        return None

    def fetch_table(self, table_address: str) -> tuple[str, ...] | None:
        """Return all addresses stored in the table, or None if it cannot be loaded."""
        with self._lock:
            if table_address in self._cache:
                return self._cache[table_address]
        data = self._rpc_post(
            "getAccountInfo",
            [table_address, {"encoding": "jsonParsed"}],
        )
        addresses = _addresses_from_account_info(data)
        if addresses is None:
            logger.warning("lookup_table_unavailable", table=table_address)
        else:
            logger.debug("lookup_table_loaded", table=table_address, size=len(addresses))
        with self._lock:
            self._cache[table_address] = addresses
        return addresses

    def resolve(self, table_address: str, index: int) -> str | None:
        table = self.fetch_table(table_address)
        if table is None or not 0 <= index < len(table):
            return None
        return table[index]


def _addresses_from_account_info(data: dict[str, Any] | None) -> tuple[str, ...] | None:
    """Extract result.value.data.parsed.info.addresses from a getAccountInfo response."""
    if not data:
        return None
    value = (data.get("result") or {}).get("value")
    if not isinstance(value, dict):
        return None
    parsed = (value.get("data") or {}).get("parsed") if isinstance(value.get("data"), dict) else None
    if not isinstance(parsed, dict):
        return None
    addresses = (parsed.get("info") or {}).get("addresses")
    if not isinstance(addresses, list):
        return None
    return tuple(str(a) for a in addresses)
