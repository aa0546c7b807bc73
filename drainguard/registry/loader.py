"""
Load a registry snapshot from a JSON file.

Format:
    {
      "drainers": ["addr", ...] | {"addr": {"domains": ["phish.example"]}},
      "safe_programs": ["program_id", ...],
      "known_addresses": ["addr", ...]
    }

A missing or unreadable file yields the default registry (known-safe
programs only) with a warning, so a bad deployment degrades to "unknown"
answers instead of a crash.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from drainguard.config.env import get_registry_path
from drainguard.guard_logging import get_logger
from drainguard.registry.base import DEFAULT_SAFE_PROGRAMS, StaticEntityRegistry
from drainguard.utils.wallet_utils import is_valid_address

logger = get_logger(__name__)

# Report sources, not attacker infrastructure
IGNORED_DOMAIN_SUBSTRINGS = ("chainabuse.com", "solana.fm", "twitter.com", "trmlabs.com")


def _clean_domains(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    out = []
    for d in raw:
        d = str(d).strip() if d else ""
        if d and not any(s in d for s in IGNORED_DOMAIN_SUBSTRINGS):
            out.append(d)
    return out


def _parse_drainers(raw: Any) -> tuple[list[str], dict[str, list[str]]]:
    if isinstance(raw, list):
        return [str(a).strip() for a in raw if a], {}
    if isinstance(raw, dict):
        addresses: list[str] = []
        domains: dict[str, list[str]] = {}
        for address, data in raw.items():
            address = str(address).strip()
            if not address:
                continue
            addresses.append(address)
            reports = data.get("reports") if isinstance(data, dict) else None
            found = _clean_domains(data.get("domains") if isinstance(data, dict) else None)
            for report in reports or []:
                if isinstance(report, dict):
                    found.extend(_clean_domains(report.get("domains")))
            if found:
                domains[address] = found
        return addresses, domains
    return [], {}


def _valid(addresses: list[str], section: str) -> list[str]:
    out = []
    for address in addresses:
        if is_valid_address(address):
            out.append(address)
        else:
            logger.warning("registry_invalid_address", section=section, address=address)
    return out


def registry_from_dict(data: dict[str, Any], include_default_safe_programs: bool = True) -> StaticEntityRegistry:
    """Build a StaticEntityRegistry from the parsed JSON document; invalid addresses are skipped."""
    drainers, domains = _parse_drainers(data.get("drainers"))
    drainers = _valid(drainers, "drainers")
    domains = {a: d for a, d in domains.items() if a in drainers}
    safe = _valid([str(p).strip() for p in data.get("safe_programs") or [] if p], "safe_programs")
    if include_default_safe_programs:
        safe.extend(DEFAULT_SAFE_PROGRAMS)
    known = _valid([str(a).strip() for a in data.get("known_addresses") or [] if a], "known_addresses")
    return StaticEntityRegistry(
        drainers=drainers,
        safe_programs=safe,
        known_addresses=known,
        domains=domains,
    )


def load_registry(
    path: str | Path | None = None,
    include_default_safe_programs: bool = True,
) -> StaticEntityRegistry:
    """Load the registry from path (or DRAINGUARD_REGISTRY_PATH); defaults on failure."""
    resolved = Path(path) if path else get_registry_path()
    default = StaticEntityRegistry(
        safe_programs=DEFAULT_SAFE_PROGRAMS if include_default_safe_programs else ()
    )
    if resolved is None:
        logger.debug("registry_path_unset")
        return default
    if not resolved.is_file():
        logger.warning("registry_file_missing", path=str(resolved))
        return default
    try:
        with open(resolved, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("registry_load_failed", path=str(resolved), error=str(e))
        return default
    if not isinstance(data, dict):
        logger.warning("registry_invalid_format", path=str(resolved))
        return default
    registry = registry_from_dict(data, include_default_safe_programs)
    logger.info(
        "registry_loaded",
        path=str(resolved),
        drainers=len(registry.drainers),
        safe_programs=len(registry.safe_programs),
    )
    return registry
