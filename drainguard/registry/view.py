"""
Per-run registry view: fail-open and memoized.

Each (question, address) pair is asked at most once per analysis. Any
exception from the underlying registry is logged and answered as
"unknown" (False / no domains); the view remembers which addresses could
not be checked so detectors can lower their confidence.
"""

from __future__ import annotations

from typing import Any, Callable

from drainguard.guard_logging import get_logger
from drainguard.registry.base import EntityRegistry

logger = get_logger(__name__)


class RegistryView:
    """Fail-open, memoizing wrapper around an EntityRegistry. Not shared across runs."""

    def __init__(self, registry: EntityRegistry | None) -> None:
        self._registry = registry
        self._answers: dict[tuple[str, str], Any] = {}
        self._failed: set[str] = set()

    @property
    def degraded(self) -> bool:
        """True if at least one lookup failed during this run."""
        return bool(self._failed)

    @property
    def failed_addresses(self) -> frozenset[str]:
        return frozenset(self._failed)

    def lookup_failed(self, address: str | None) -> bool:
        return address is not None and address in self._failed

    def _ask(self, question: str, address: str, default: Any, call: Callable[[str], Any] | None) -> Any:
        key = (question, address)
        if key in self._answers:
            return self._answers[key]
        answer = default
        if call is not None:
            try:
                answer = call(address)
            except Exception as e:
                self._failed.add(address)
                logger.warning(
                    "registry_lookup_failed",
                    question=question,
                    address=address,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                answer = default
        self._answers[key] = answer
        return answer

    def _method(self, name: str) -> Callable[[str], Any] | None:
        if self._registry is None:
            return None
        return getattr(self._registry, name, None)

    def is_known_drainer(self, address: str) -> bool:
        return bool(self._ask("drainer", address, False, self._method("is_known_drainer")))

    def is_known_safe_program(self, address: str) -> bool:
        return bool(self._ask("safe", address, False, self._method("is_known_safe_program")))

    def is_known_address(self, address: str) -> bool:
        """Seen by the registry at all; falls back to drainer / safe membership."""
        call = self._method("is_known_address")
        if call is not None:
            if self._ask("known", address, False, call):
                return True
        return self.is_known_drainer(address) or self.is_known_safe_program(address)

    def domains_for(self, address: str) -> list[str]:
        domains = self._ask("domains", address, [], self._method("domains_for"))
        return sorted({str(d) for d in domains or []})


def as_registry_view(registry: EntityRegistry | RegistryView | None) -> RegistryView:
    if isinstance(registry, RegistryView):
        return registry
    return RegistryView(registry)
