"""
Execution ledger: the anti-loop memory of recently executed tool calls.

Two keys are tracked for every allowed invocation:

* the model-assigned call id, remembered for the lifetime of the ledger;
* the execution signature (tool name + canonicalized arguments), remembered for
  a TTL window and only compared across different batches.
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Set

from ..models import ToolInvocationRequest
from ...logger import get_logger

logger = get_logger(__name__)


def canonicalize_arguments(arguments_json: str) -> str:
    """Return a stable textual form of the arguments.

    Valid JSON is re-dumped with sorted keys and no whitespace; anything else is
    kept verbatim (stripped), so malformed arguments still get a signature.
    """
    if arguments_json is None:
        return "{}"
    try:
        parsed = json.loads(arguments_json) if arguments_json.strip() else {}
    except (json.JSONDecodeError, AttributeError):
        return str(arguments_json).strip()
    return json.dumps(parsed, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_signature(tool_name: str, arguments_json: str) -> str:
    """Hash a tool name and its canonicalized arguments."""
    raw = tool_name + "\x00" + canonicalize_arguments(arguments_json)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class DenyReason(str, Enum):
    DUPLICATE_ID = "DUPLICATE_ID"
    DUPLICATE_SIGNATURE = "DUPLICATE_SIGNATURE"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LedgerEntry:
    signature: str
    id: str
    batch_id: str
    executed_at: float


@dataclass(frozen=True)
class LedgerDecision:
    """Outcome of a ledger check. A decision without ``reason`` allows the call."""

    reason: Optional[DenyReason] = None
    conflicting_entry: Optional[LedgerEntry] = None

    @property
    def allowed(self) -> bool:
        return self.reason is None

    @classmethod
    def allow(cls) -> "LedgerDecision":
        return cls()

    @classmethod
    def deny(cls, reason: DenyReason, conflicting_entry: Optional[LedgerEntry] = None) -> "LedgerDecision":
        return cls(reason=reason, conflicting_entry=conflicting_entry)

    def __bool__(self) -> bool:
        return self.allowed


class ExecutionLedger:
    """
    In-memory store of executed invocation ids and signatures.

    One instance is meant to live as long as the orchestrator that owns it and
    is passed explicitly to every executor that shares its anti-loop memory.
    ``check_and_record`` is atomic, so concurrent executors checking the same
    id or signature cannot both pass.
    """

    def __init__(self, signature_ttl: float = 5.0, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the ledger.

        Args:
            signature_ttl: Seconds during which an identical call from another batch is denied.
            clock: Monotonic time source, injectable for tests.
        """
        if signature_ttl <= 0:
            raise ValueError("signature_ttl must be positive")
        self.signature_ttl = signature_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._seen_ids: Set[str] = set()
        self._entries: Dict[str, List[LedgerEntry]] = defaultdict(list)

    def check_and_record(self, request: ToolInvocationRequest, batch_id: str) -> LedgerDecision:
        """Decide whether ``request`` may run and record it when it may.

        Args:
            request: The invocation requested by the model.
            batch_id: Logical turn context the invocation belongs to.

        Returns:
            An allowing decision, or a denial carrying ``DUPLICATE_ID`` or
            ``DUPLICATE_SIGNATURE``.
        """
        signature = compute_signature(request.tool_name, request.arguments_json)

        with self._lock:
            if request.id in self._seen_ids:
                logger.warning(f"Ledger denied call '{request.id}' ({request.tool_name}): id already executed.")
                return LedgerDecision.deny(DenyReason.DUPLICATE_ID)

            now = self._clock()
            self._evict_expired_locked(now)

            for entry in self._entries.get(signature, ()):
                if entry.batch_id != batch_id:
                    logger.warning(
                        f"Ledger denied call '{request.id}' ({request.tool_name}): identical call "
                        f"'{entry.id}' ran in batch '{entry.batch_id}' {now - entry.executed_at:.3f}s ago."
                    )
                    return LedgerDecision.deny(DenyReason.DUPLICATE_SIGNATURE, conflicting_entry=entry)

            entry = LedgerEntry(signature=signature, id=request.id, batch_id=batch_id, executed_at=now)
            self._seen_ids.add(request.id)
            self._entries[signature].append(entry)
            logger.debug("Ledger recorded call '%s' (%s) in batch '%s'.", request.id, request.tool_name, batch_id)
            return LedgerDecision.allow()

    def evict_expired(self) -> int:
        """Drop signature entries older than the TTL.

        Ids are never forgotten. Returns the number of evicted entries.
        """
        with self._lock:
            return self._evict_expired_locked(self._clock())

    def _evict_expired_locked(self, now: float) -> int:
        evicted = 0
        for signature in list(self._entries):
            kept = [e for e in self._entries[signature] if now - e.executed_at < self.signature_ttl]
            evicted += len(self._entries[signature]) - len(kept)
            if kept:
                self._entries[signature] = kept
            else:
                del self._entries[signature]
        return evicted

    def has_id(self, call_id: str) -> bool:
        with self._lock:
            return call_id in self._seen_ids

    def entries(self) -> List[LedgerEntry]:
        """Snapshot of the signature entries still inside the TTL window."""
        with self._lock:
            self._evict_expired_locked(self._clock())
            return [e for bucket in self._entries.values() for e in bucket]

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen_ids)
