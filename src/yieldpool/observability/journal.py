"""Ledger journal - append-only audit trail for every money-affecting operation.

Entries cover:
- DEPOSIT / WITHDRAWAL: share mints and burns with gross, fee and net amounts
- FEE_ACCRUED: fees credited to the fee recipient
- HARVEST: yield collected from strategies
- REBALANCE_EXECUTED / REBALANCE_REJECTED: allocation changes and their outcome
- ASSET_ADDED / ASSET_REMOVED / LIMITS_UPDATED / FEE_UPDATED: administrative changes
- SHARE_TRANSFER: receipt-token transfers between depositors

The journal is:
- Append-only: entries are never modified after writing
- Hash-chained: each entry commits to the hash of the previous one
- Persistent when given a directory: JSON-lines, one file per UTC day
- Correlation-aware: entries of one rebalance share its operation id
"""

from __future__ import annotations

import hashlib
import json
import os
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from yieldpool.logging import get_logger

logger = get_logger(__name__)


class JournalEvent(str, Enum):
    """Money-affecting event kinds."""

    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    FEE_ACCRUED = "FEE_ACCRUED"
    HARVEST = "HARVEST"
    REBALANCE_EXECUTED = "REBALANCE_EXECUTED"
    REBALANCE_REJECTED = "REBALANCE_REJECTED"
    ASSET_ADDED = "ASSET_ADDED"
    ASSET_REMOVED = "ASSET_REMOVED"
    LIMITS_UPDATED = "LIMITS_UPDATED"
    FEE_UPDATED = "FEE_UPDATED"
    SHARE_TRANSFER = "SHARE_TRANSFER"


@dataclass
class JournalEntry:
    """A single entry in the ledger journal."""

    sequence_number: int
    timestamp_ns: int
    event: str
    data: dict[str, Any]

    asset: str | None = None
    actor: str | None = None
    correlation_id: str | None = None

    prev_hash: str | None = None
    entry_hash: str | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.entry_hash = self._compute_hash()

    def _compute_hash(self) -> str:
        """SHA-256 over the entry content and the previous hash."""
        content = json.dumps({
            "sequence_number": self.sequence_number,
            "timestamp_ns": self.timestamp_ns,
            "event": self.event,
            "data": self.data,
            "asset": self.asset,
            "actor": self.actor,
            "correlation_id": self.correlation_id,
            "prev_hash": self.prev_hash,
        }, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(content.encode()).hexdigest()[:16]

    def to_dict(self) -> dict[str, Any]:
        return {
            "seq": self.sequence_number,
            "ts": self.timestamp_ns,
            "event": self.event,
            "data": self.data,
            "asset": self.asset,
            "actor": self.actor,
            "corr_id": self.correlation_id,
            "prev_hash": self.prev_hash,
            "hash": self.entry_hash,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> JournalEntry:
        entry = cls(
            sequence_number=d["seq"],
            timestamp_ns=d["ts"],
            event=d["event"],
            data=d["data"],
            asset=d.get("asset"),
            actor=d.get("actor"),
            correlation_id=d.get("corr_id"),
            prev_hash=d.get("prev_hash"),
        )
        if entry.entry_hash != d.get("hash"):
            logger.warning(
                f"Hash mismatch for entry {entry.sequence_number}: "
                f"computed={entry.entry_hash}, stored={d.get('hash')}"
            )
        return entry

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), default=str)


class LedgerJournal:
    """Append-only, hash-chained journal of ledger events."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        max_in_memory: int = 10000,
        flush_interval: int = 1,
    ) -> None:
        """Initialize the journal.

        Args:
            log_dir: Directory for journal files (None for in-memory only)
            max_in_memory: Maximum entries kept in memory
            flush_interval: Entries between fsyncs
        """
        self.log_dir = Path(log_dir) if log_dir else None
        self.max_in_memory = max_in_memory
        self.flush_interval = flush_interval

        self._entries: deque[JournalEntry] = deque(maxlen=max_in_memory)
        self._correlation_index: dict[str, list[int]] = {}
        self._sequence_number = 0
        self._last_hash: str | None = None
        self._entries_since_flush = 0
        self._file: Any = None
        self._current_file_path: Path | None = None
        self._events_by_type: dict[str, int] = {}

        if self.log_dir:
            self._init_log_file()

    def _init_log_file(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        date_str = datetime.now(UTC).strftime("%Y-%m-%d")
        self._current_file_path = self.log_dir / f"ledger_journal_{date_str}.jsonl"

        if self._current_file_path.exists():
            self._load_existing_entries()

        self._file = open(self._current_file_path, "a", encoding="utf-8")
        logger.info(f"Ledger journal initialized: {self._current_file_path}")

    def _load_existing_entries(self) -> None:
        """Restore sequence number and hash chain head from an existing file."""
        with open(self._current_file_path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = JournalEntry.from_dict(json.loads(line))
                except (json.JSONDecodeError, KeyError) as e:
                    logger.warning(f"Failed to parse journal entry: {e}")
                    continue
                self._append(entry)
        logger.info(
            f"Loaded {len(self._entries)} journal entries, last sequence: {self._sequence_number}"
        )

    def record(
        self,
        event: JournalEvent | str,
        data: dict[str, Any],
        *,
        asset: str | None = None,
        actor: str | None = None,
        correlation_id: str | None = None,
    ) -> JournalEntry:
        """Append one event and return the written entry."""
        event_name = event.value if isinstance(event, JournalEvent) else str(event)
        entry = JournalEntry(
            sequence_number=self._sequence_number + 1,
            timestamp_ns=time.time_ns(),
            event=event_name,
            data=data,
            asset=asset,
            actor=actor,
            correlation_id=correlation_id,
            prev_hash=self._last_hash,
        )
        self._append(entry)
        self._write_entry(entry)
        return entry

    def _append(self, entry: JournalEntry) -> None:
        self._sequence_number = max(self._sequence_number, entry.sequence_number)
        self._last_hash = entry.entry_hash
        self._entries.append(entry)
        if entry.correlation_id:
            self._correlation_index.setdefault(entry.correlation_id, []).append(
                entry.sequence_number
            )
        self._events_by_type[entry.event] = self._events_by_type.get(entry.event, 0) + 1

    def _write_entry(self, entry: JournalEntry) -> None:
        if not self._file:
            return
        self._file.write(entry.to_json() + "\n")
        self._entries_since_flush += 1
        if self._entries_since_flush >= self.flush_interval:
            self._file.flush()
            os.fsync(self._file.fileno())
            self._entries_since_flush = 0

    def entries(self, event: JournalEvent | str | None = None) -> list[JournalEntry]:
        if event is None:
            return list(self._entries)
        name = event.value if isinstance(event, JournalEvent) else event
        return [e for e in self._entries if e.event == name]

    def get_chain(self, correlation_id: str) -> list[JournalEntry]:
        seqs = set(self._correlation_index.get(correlation_id, []))
        return [e for e in self._entries if e.sequence_number in seqs]

    def verify_chain(self) -> bool:
        """Recompute every in-memory hash and check each link to its predecessor."""
        prev: str | None = None
        for i, entry in enumerate(self._entries):
            if entry.entry_hash != entry._compute_hash():
                logger.error(f"Journal entry {entry.sequence_number} hash mismatch")
                return False
            if i > 0 and entry.prev_hash != prev:
                logger.error(f"Journal chain broken at entry {entry.sequence_number}")
                return False
            prev = entry.entry_hash
        return True

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_entries": self._sequence_number,
            "in_memory": len(self._entries),
            "events_by_type": dict(self._events_by_type),
            "last_hash": self._last_hash,
            "file": str(self._current_file_path) if self._current_file_path else None,
        }

    def close(self) -> None:
        if self._file:
            self._file.flush()
            self._file.close()
            self._file = None
