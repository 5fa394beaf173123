"""
Pause Lifecycle — the three-state contract lifecycle.

    ACTIVE ──pause──▶ PAUSED ──deactivate──▶ DEACTIVATED
       ▲                 │
       └─────unpause─────┘

The state is a single enum slot driven by a transition table, never a pair of
independent flags. DEACTIVATED is terminal: no operation leaves it.
Deactivation is only reachable from PAUSED, so shutting a token down always
takes two explicit steps.
"""

from __future__ import annotations

import logging

from cmtat_ledger.core.errors import ContractDeactivated, ContractPaused, InvalidTransition
from cmtat_ledger.core.events import EventLog
from cmtat_ledger.core.ports import AccessControlPort
from cmtat_ledger.core.schema import (
    DEFAULT_ADMIN_ROLE,
    PAUSER_ROLE,
    Deactivated,
    LifecycleState,
    Paused,
    TokenEvent,
    Unpaused,
)
from cmtat_ledger.core.storage import ContractStorage

logger = logging.getLogger(__name__)

LIFECYCLE_SLOT = "lifecycle"

# (current state, action) → next state
TRANSITIONS: dict[tuple[LifecycleState, str], LifecycleState] = {
    (LifecycleState.ACTIVE, "pause"): LifecycleState.PAUSED,
    (LifecycleState.PAUSED, "unpause"): LifecycleState.ACTIVE,
    (LifecycleState.PAUSED, "deactivate"): LifecycleState.DEACTIVATED,
}

_EVENTS: dict[str, type[TokenEvent]] = {
    "pause": Paused,
    "unpause": Unpaused,
    "deactivate": Deactivated,
}


def next_state(current: LifecycleState, action: str) -> LifecycleState:
    """Apply `action` to `current`, rejecting illegal transitions."""
    target = TRANSITIONS.get((current, action))
    if target is not None:
        return target
    if current == LifecycleState.DEACTIVATED:
        raise ContractDeactivated(f"Cannot {action}: contract is deactivated")
    if action == "pause":
        raise InvalidTransition("Contract is already paused")
    if action == "unpause":
        raise InvalidTransition("Contract is not paused")
    if action == "deactivate":
        raise InvalidTransition("Contract must be paused before it can be deactivated")
    raise InvalidTransition(f"Unknown lifecycle action: {action}")


class PauseLifecycle:
    """Role-gated driver of the lifecycle state machine."""

    def __init__(
        self,
        storage: ContractStorage,
        events: EventLog,
        access: AccessControlPort,
    ) -> None:
        self._slots = storage.slots
        self._events = events
        self._access = access
        if self._slots.get(LIFECYCLE_SLOT) is None:
            self._slots.set(LIFECYCLE_SLOT, LifecycleState.ACTIVE)

    @property
    def state(self) -> LifecycleState:
        return self._slots.get(LIFECYCLE_SLOT)

    def is_paused(self) -> bool:
        return self.state == LifecycleState.PAUSED

    def is_deactivated(self) -> bool:
        return self.state == LifecycleState.DEACTIVATED

    def pause(self, caller: str) -> None:
        self._access.require_role(PAUSER_ROLE, caller)
        self._apply("pause", caller)

    def unpause(self, caller: str) -> None:
        self._access.require_role(PAUSER_ROLE, caller)
        self._apply("unpause", caller)

    def deactivate(self, caller: str) -> None:
        self._access.require_role(DEFAULT_ADMIN_ROLE, caller)
        self._apply("deactivate", caller)

    # ── Guards used by token operations ────────────────────────

    def require_not_deactivated(self) -> None:
        if self.is_deactivated():
            raise ContractDeactivated("Contract is deactivated")

    def require_active(self) -> None:
        self.require_not_deactivated()
        if self.is_paused():
            raise ContractPaused("Contract is paused")

    def _apply(self, action: str, caller: str) -> None:
        current = self.state
        target = next_state(current, action)
        self._slots.set(LIFECYCLE_SLOT, target)
        self._events.emit(_EVENTS[action](account=caller))
        log = logger.warning if target == LifecycleState.DEACTIVATED else logger.info
        log("Lifecycle transition: %s → %s by=%s", current.value, target.value, caller)
