"""
Event Journal — SQLAlchemy model for the append-only token event record.

Every event committed by a token call becomes one row. Rows are chained by
SHA-256: each entry stores the hash of (previous_hash || canonical_json(row)),
so any retroactive edit, deletion or reordering is detectable by replaying the
chain.

Generic `JSON` and `Uuid` column types keep the model portable between SQLite
(tests, local runs) and PostgreSQL.
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Uuid, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for journal models."""
    pass


class JournalEntryDB(Base):
    """
    A single committed token event.

    This table is APPEND-ONLY. No rows may be updated or deleted.
    Entries sharing a `transaction_id` were committed by the same token call,
    in `sequence_number` order.
    """

    __tablename__ = "journal_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)

    sequence_number = Column(
        Integer, nullable=False, unique=True, index=True,
        comment="Monotonically increasing sequence number",
    )

    previous_hash = Column(
        String(64), nullable=False,
        comment="SHA-256 hash of the previous entry",
    )
    entry_hash = Column(
        String(64), nullable=False, unique=True,
        comment="SHA-256 hash of this entry",
    )

    timestamp = Column(
        DateTime(timezone=True), nullable=False, default=func.now(),
        comment="When this entry was recorded",
    )

    event_name = Column(
        String(50), nullable=False, index=True,
        comment="Event type, e.g. Transfer, AddressFrozen",
    )
    transaction_id = Column(
        Uuid(as_uuid=True), nullable=False,
        comment="Token call that emitted the event",
    )
    entrypoint = Column(
        String(64), nullable=False,
        comment="Public entry point that emitted the event",
    )

    accounts = Column(
        JSON, nullable=False, default=list,
        comment="Addresses touched by the event",
    )
    payload = Column(
        JSON, nullable=False,
        comment="Event body",
    )

    __table_args__ = (
        Index("ix_journal_event_timestamp", "event_name", "timestamp"),
        Index("ix_journal_transaction", "transaction_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<JournalEntry seq={self.sequence_number} "
            f"event={self.event_name} hash={self.entry_hash[:12]}...>"
        )
