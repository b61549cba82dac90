"""Observability -- the append-only ledger journal."""

from .journal import JournalEntry, JournalEvent, LedgerJournal

__all__ = ["JournalEntry", "JournalEvent", "LedgerJournal"]
