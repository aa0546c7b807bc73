"""
EntityRegistry protocol and an in-memory implementation.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Protocol, runtime_checkable

# Programs a legitimate transaction routinely hands authority or value to.
DEFAULT_SAFE_PROGRAMS = frozenset({
    "11111111111111111111111111111111",               # System Program
    "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",     # SPL Token
    "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb",     # SPL Token-2022
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL",    # Associated Token Account
    "ComputeBudget111111111111111111111111111111",     # Compute Budget
    "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4",     # Jupiter v6
    "JUP5cHjnnCx2DppVsufsLrXs8EBZeEZz2j1o2HvLF4n4",    # Jupiter v4
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8",    # Raydium AMM
    "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK",    # Raydium CLMM
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc",     # Orca Whirlpool
    "srmqPvymJeFKQ4zGQed1GFppgkRHL9kaELCbyksJtPX",     # Serum
})


@runtime_checkable
class EntityRegistry(Protocol):
    """
    Read-only address reputation lookups.

    Implementations may be slow or unavailable; the engine treats any
    exception as "unknown". Optional extras used when present:
    is_known_address(address) -> bool and domains_for(address) -> list[str].
    """

    def is_known_drainer(self, address: str) -> bool: ...

    def is_known_safe_program(self, address: str) -> bool: ...


class StaticEntityRegistry:
    """Immutable in-memory registry snapshot."""

    def __init__(
        self,
        drainers: Iterable[str] = (),
        safe_programs: Iterable[str] = DEFAULT_SAFE_PROGRAMS,
        known_addresses: Iterable[str] = (),
        domains: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        self._drainers = frozenset(a.strip() for a in drainers if a and a.strip())
        self._safe = frozenset(a.strip() for a in safe_programs if a and a.strip())
        self._known = frozenset(a.strip() for a in known_addresses if a and a.strip())
        self._domains = {k: tuple(sorted(set(v))) for k, v in (domains or {}).items()}

    @property
    def drainers(self) -> frozenset[str]:
        return self._drainers

    @property
    def safe_programs(self) -> frozenset[str]:
        return self._safe

    def is_known_drainer(self, address: str) -> bool:
        return address in self._drainers

    def is_known_safe_program(self, address: str) -> bool:
        return address in self._safe

    def is_known_address(self, address: str) -> bool:
        """True if the registry has seen the address in any list."""
        return address in self._known or address in self._drainers or address in self._safe

    def domains_for(self, address: str) -> list[str]:
        return list(self._domains.get(address, ()))

    def __repr__(self) -> str:
        return (
            f"StaticEntityRegistry(drainers={len(self._drainers)}, "
            f"safe_programs={len(self._safe)}, known_addresses={len(self._known)})"
        )
