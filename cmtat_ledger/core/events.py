"""
Event log — buffered emission with commit/rollback.

Events emitted during a call are buffered. When the call commits, the batch is
handed to every subscriber (the journal, test probes) and appended to the
in-memory history; when the call fails, the batch is discarded.
"""

from __future__ import annotations

import logging
from typing import Callable
from uuid import UUID, uuid4

from cmtat_ledger.core.schema import TokenEvent

logger = logging.getLogger(__name__)

EventSubscriber = Callable[[UUID, str, list[TokenEvent]], None]


class EventLog:
    """Collects token events and publishes them per committed call."""

    def __init__(self, keep_history: bool = True) -> None:
        self.keep_history = keep_history
        self.history: list[TokenEvent] = []
        self._pending: list[TokenEvent] = []
        self._subscribers: list[EventSubscriber] = []

    def subscribe(self, subscriber: EventSubscriber) -> None:
        self._subscribers.append(subscriber)

    def emit(self, event: TokenEvent) -> None:
        self._pending.append(event)

    @property
    def pending(self) -> list[TokenEvent]:
        return list(self._pending)

    def publish(self, entrypoint: str) -> UUID:
        """
        Deliver the pending batch to subscribers.

        Subscribers run before the batch is cleared: if one raises, the
        pending events stay in place for the caller to roll back.
        """
        transaction_id = uuid4()
        batch = list(self._pending)
        if batch:
            for subscriber in self._subscribers:
                subscriber(transaction_id, entrypoint, batch)
        return transaction_id

    def commit(self) -> list[TokenEvent]:
        batch, self._pending = self._pending, []
        if self.keep_history:
            self.history.extend(batch)
        return batch

    def rollback(self) -> int:
        dropped = len(self._pending)
        self._pending = []
        return dropped

    def of_type(self, event_type: type[TokenEvent]) -> list[TokenEvent]:
        return [e for e in self.history if isinstance(e, event_type)]

    def last(self) -> TokenEvent | None:
        return self.history[-1] if self.history else None
