"""
Structured logging for DrainGuard.

JSON logs with timestamp, signature, event_type and detector context.
Use get_logger() in every module for aggregation-friendly output.
"""

from drainguard.guard_logging.logger import bind_signature, get_logger

__all__ = ["bind_signature", "get_logger"]
