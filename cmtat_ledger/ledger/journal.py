"""
Event Journal Service — append-only, hash-chained record of token events.

The journal subscribes to a token's `EventLog`. Each committed call hands it
one batch, which is written in a single database transaction: either every
event of the call is recorded, or none is and the call itself reverts.

Operations:
- record()           — subscriber; append one call's events
- verify_chain()     — recompute and check every hash from genesis forward
- replay_balances()  — rebuild balances and total supply from Transfer events
- get_*()            — queries by event name, account, or recency

Usage:
    journal = EventJournal("sqlite:///cmtat_journal.db")
    journal.initialize()
    token = CMTAT.deploy(..., subscribers=[journal.record])
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Sequence
from uuid import UUID, uuid4

from sqlalchemy import String, create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cmtat_ledger.core.schema import ZERO_ADDRESS, TokenEvent
from cmtat_ledger.ledger.journal_models import Base, JournalEntryDB

logger = logging.getLogger(__name__)


GENESIS_HASH = "0" * 64  # The "previous hash" for the first entry in the chain
GENESIS_EVENT = "Genesis"
NIL_TRANSACTION = UUID(int=0)


class JournalIntegrityError(Exception):
    """Raised when the journal cannot be appended to safely."""
    pass


class EventJournal:
    """Persistent, verifiable record of every committed token event."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        """
        Args:
            database_url: SQLAlchemy URL (sync driver), e.g. sqlite:///journal.db.
            echo: Log emitted SQL.
        """
        kwargs: dict[str, Any] = {"echo": echo}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, or each session sees an empty database
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        self.engine = create_engine(database_url, **kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def initialize(self) -> None:
        """Create the schema and seed the genesis entry if absent."""
        Base.metadata.create_all(self.engine)

        with self.SessionLocal() as session:
            existing = session.execute(
                select(JournalEntryDB).where(JournalEntryDB.sequence_number == 0)
            ).scalar_one_or_none()

            if existing is None:
                genesis = self._create_genesis_entry()
                session.add(genesis)
                session.commit()
                logger.info("Journal genesis created: hash=%s", genesis.entry_hash[:16])

    def _create_genesis_entry(self) -> JournalEntryDB:
        entry_id = uuid4()
        timestamp = datetime.now(timezone.utc)
        payload = {"message": "Genesis of the token event journal"}
        entry_hash = self._compute_hash(
            entry_id=entry_id,
            sequence_number=0,
            previous_hash=GENESIS_HASH,
            timestamp=timestamp,
            event_name=GENESIS_EVENT,
            transaction_id=NIL_TRANSACTION,
            entrypoint="genesis",
            accounts=[],
            payload=payload,
        )
        return JournalEntryDB(
            id=entry_id,
            sequence_number=0,
            previous_hash=GENESIS_HASH,
            entry_hash=entry_hash,
            timestamp=timestamp,
            event_name=GENESIS_EVENT,
            transaction_id=NIL_TRANSACTION,
            entrypoint="genesis",
            accounts=[],
            payload=payload,
        )

    # ── Writes ─────────────────────────────────────────────────

    def record(
        self,
        transaction_id: UUID,
        entrypoint: str,
        events: Sequence[TokenEvent],
    ) -> list[JournalEntryDB]:
        """
        Append one call's events, chained after the current head.

        Entries are never updated or deleted once written.

        Raises:
            JournalIntegrityError: If the journal has no genesis entry.
        """
        with self.SessionLocal() as session:
            last_entry = session.execute(
                select(JournalEntryDB)
                .order_by(JournalEntryDB.sequence_number.desc())
                .limit(1)
            ).scalar_one_or_none()

            if last_entry is None:
                raise JournalIntegrityError(
                    "Cannot append: no genesis entry found. Call initialize() first."
                )

            sequence = last_entry.sequence_number
            previous_hash = last_entry.entry_hash
            timestamp = datetime.now(timezone.utc)
            entries: list[JournalEntryDB] = []

            for event in events:
                sequence += 1
                entry_id = uuid4()
                accounts = event.accounts()
                payload = event.payload()
                entry_hash = self._compute_hash(
                    entry_id=entry_id,
                    sequence_number=sequence,
                    previous_hash=previous_hash,
                    timestamp=timestamp,
                    event_name=event.event_name,
                    transaction_id=transaction_id,
                    entrypoint=entrypoint,
                    accounts=accounts,
                    payload=payload,
                )
                entry = JournalEntryDB(
                    id=entry_id,
                    sequence_number=sequence,
                    previous_hash=previous_hash,
                    entry_hash=entry_hash,
                    timestamp=timestamp,
                    event_name=event.event_name,
                    transaction_id=transaction_id,
                    entrypoint=entrypoint,
                    accounts=accounts,
                    payload=payload,
                )
                session.add(entry)
                entries.append(entry)
                previous_hash = entry_hash

            session.commit()

        logger.info(
            "Journal appended: entrypoint=%s events=%d head=%d",
            entrypoint, len(entries), sequence,
        )
        return entries

    # ── Verification ───────────────────────────────────────────

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Walk the journal from genesis and recompute every link.

        Returns `(is_valid, position, message)`. On success `position` is the
        number of entries checked; on failure it is the sequence at which the
        walk stopped.
        """
        with self.SessionLocal() as session:
            entries = session.execute(
                select(JournalEntryDB).order_by(JournalEntryDB.sequence_number.asc())
            ).scalars().all()

        if not entries:
            return False, 0, "Journal is empty: no genesis entry"

        expected_previous = GENESIS_HASH
        for position, entry in enumerate(entries):
            if entry.sequence_number != position:
                return False, position, (
                    f"Sequence gap at position {position}: found {entry.sequence_number}"
                )
            if entry.previous_hash != expected_previous:
                return False, position, (
                    f"Broken link at sequence {position}: previous_hash is "
                    f"{entry.previous_hash[:16]}..., head was {expected_previous[:16]}..."
                )

            recomputed = self._compute_hash(
                entry_id=entry.id,
                sequence_number=entry.sequence_number,
                previous_hash=entry.previous_hash,
                timestamp=entry.timestamp,
                event_name=entry.event_name,
                transaction_id=entry.transaction_id,
                entrypoint=entry.entrypoint,
                accounts=entry.accounts,
                payload=entry.payload,
            )
            if recomputed != entry.entry_hash:
                return False, position, (
                    f"Hash mismatch at sequence {position}: "
                    f"{entry.entry_hash[:16]}... recorded, {recomputed[:16]}... recomputed"
                )
            expected_previous = entry.entry_hash

        return True, len(entries), f"Chain verified: {len(entries)} entries, integrity intact"

    def replay_balances(self) -> tuple[dict[str, int], int]:
        """
        Rebuild balances and total supply from the recorded Transfer events.

        Returns:
            Tuple of (balances by address, total supply).
        """
        balances: dict[str, int] = {}
        supply = 0
        with self.SessionLocal() as session:
            transfers = session.execute(
                select(JournalEntryDB)
                .where(JournalEntryDB.event_name == "Transfer")
                .order_by(JournalEntryDB.sequence_number.asc())
            ).scalars().all()

        for entry in transfers:
            from_ = entry.payload["from_"]
            to = entry.payload["to"]
            value = int(entry.payload["value"])
            if from_ == ZERO_ADDRESS:
                supply += value
            else:
                balances[from_] = balances.get(from_, 0) - value
            if to == ZERO_ADDRESS:
                supply -= value
            else:
                balances[to] = balances.get(to, 0) + value

        return balances, supply

    # ── Queries ────────────────────────────────────────────────

    def get_by_sequence(self, sequence_number: int) -> JournalEntryDB | None:
        with self.SessionLocal() as session:
            return session.execute(
                select(JournalEntryDB).where(
                    JournalEntryDB.sequence_number == sequence_number
                )
            ).scalar_one_or_none()

    def get_latest_entries(self, limit: int = 50) -> list[JournalEntryDB]:
        """Retrieve the most recent entries, newest first."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(JournalEntryDB)
                    .order_by(JournalEntryDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def get_entries_by_event(
        self,
        event_name: str,
        limit: int = 100,
        offset: int = 0,
    ) -> list[JournalEntryDB]:
        """Retrieve entries of one event type, newest first."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(JournalEntryDB)
                    .where(JournalEntryDB.event_name == event_name)
                    .order_by(JournalEntryDB.sequence_number.desc())
                    .limit(limit)
                    .offset(offset)
                ).scalars().all()
            )

    def get_entries_by_account(self, account: str, limit: int = 100) -> list[JournalEntryDB]:
        """Retrieve entries touching `account`, newest first."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(JournalEntryDB)
                    .where(JournalEntryDB.accounts.cast(String).like(f'%"{account}"%'))
                    .order_by(JournalEntryDB.sequence_number.desc())
                    .limit(limit)
                ).scalars().all()
            )

    def get_transaction(self, transaction_id: UUID) -> list[JournalEntryDB]:
        """Every entry written by one token call, in emission order."""
        with self.SessionLocal() as session:
            return list(
                session.execute(
                    select(JournalEntryDB)
                    .where(JournalEntryDB.transaction_id == transaction_id)
                    .order_by(JournalEntryDB.sequence_number.asc())
                ).scalars().all()
            )

    def get_entry_count(self) -> int:
        """Return the total number of entries, genesis included."""
        with self.SessionLocal() as session:
            result = session.execute(select(func.count()).select_from(JournalEntryDB))
            return result.scalar() or 0

    def close(self) -> None:
        self.engine.dispose()

    # ── Internal ────────────────────────────────────────────────

    @staticmethod
    def _canonical_timestamp(timestamp: datetime) -> str:
        # SQLite drops tzinfo on the way back; hash the naive UTC form
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
        return timestamp.isoformat()

    @staticmethod
    def _compute_hash(
        entry_id: UUID,
        sequence_number: int,
        previous_hash: str,
        timestamp: datetime,
        event_name: str,
        transaction_id: UUID,
        entrypoint: str,
        accounts: list[str],
        payload: dict[str, Any],
    ) -> str:
        """Hash = SHA-256(previous_hash || canonical_json(entry_fields))."""
        hashable = {
            "id": str(entry_id),
            "sequence_number": sequence_number,
            "previous_hash": previous_hash,
            "timestamp": EventJournal._canonical_timestamp(timestamp),
            "event_name": event_name,
            "transaction_id": str(transaction_id),
            "entrypoint": entrypoint,
            "accounts": accounts,
            "payload": payload,
        }
        canonical = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256((previous_hash + canonical).encode("utf-8")).hexdigest()
