"""
Core utilities — shared exceptions and cross-cutting concerns.
"""

from drainguard.core.exceptions import (
    DrainGuardError,
    MalformedTransaction,
    RegistryUnavailable,
)

__all__ = ["DrainGuardError", "MalformedTransaction", "RegistryUnavailable"]
