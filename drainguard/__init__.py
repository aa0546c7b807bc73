"""
DrainGuard — explainable wallet-drain detection for Solana transactions.

Takes one parsed transaction record, normalizes it, reconciles balance
deltas into transfer edges, runs independent pattern detectors, and
aggregates their findings into one deterministic drain report. Pure and
synchronous: no I/O inside the engine.
"""

__version__ = "0.1.0"
