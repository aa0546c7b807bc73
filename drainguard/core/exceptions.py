"""
Application-level exceptions.

Only MalformedTransaction ever stops a report from being produced. Failed
on-chain transactions, unknown instructions and registry outages are not
errors: they degrade into a (possibly empty) report.
"""

from __future__ import annotations


class DrainGuardError(Exception):
    """Base class for every DrainGuard error."""


class MalformedTransaction(DrainGuardError, ValueError):
    """Raw transaction record is structurally invalid and cannot be analyzed."""

    def __init__(self, reason: str, signature: str | None = None) -> None:
        self.reason = reason
        self.signature = signature
        prefix = f"[{signature}] " if signature else ""
        super().__init__(f"{prefix}{reason}")


class RegistryUnavailable(DrainGuardError):
    """Entity registry could not answer (timeout, backend down)."""
