"""Anti-loop execution ledger."""

from .execution_ledger import (
    ExecutionLedger,
    LedgerEntry,
    LedgerDecision,
    DenyReason,
    compute_signature,
    canonicalize_arguments,
)

__all__ = [
    "ExecutionLedger",
    "LedgerEntry",
    "LedgerDecision",
    "DenyReason",
    "compute_signature",
    "canonicalize_arguments",
]
