"""
Validation Engine — ERC-1404 restriction codes for prospective transfers.

`detect_transfer_restriction` summarises, as one small integer, why a transfer
would fail. It reads the lifecycle, enforcement and allowlist state and then
optionally delegates to external rule and debt engines. Delegation is
fail-closed: an engine that raises or answers with garbage restricts the
transfer with its reserved code.

The function is a pure query over current state: two calls with no state
change in between return the same code.

Evaluation order (first match wins):
    mint path (from = 0)  → recipient frozen, recipient not allowlisted, engines
    burn path (to = 0)    → 0
    deactivated → 4, paused → 9
    sender frozen → 2, recipient frozen → 3
    allowlist: sender → 8, recipient → 7
    active balance < amount → 1
    rule engine → its code (5 on failure), debt engine → its code (6 on failure)
"""

from __future__ import annotations

import logging
from typing import Any

from cmtat_ledger.core.errors import TransferRestricted
from cmtat_ledger.core.events import EventLog
from cmtat_ledger.core.ports import (
    AccessControlPort,
    AllowlistQuery,
    BalanceQuery,
    EnforcementPort,
    ExternalEngine,
    PauseQuery,
)
from cmtat_ledger.core.schema import (
    DEFAULT_ADMIN_ROLE,
    RESTRICTION_MESSAGES,
    UNKNOWN_RESTRICTION_MESSAGE,
    ZERO_ADDRESS,
    DebtEngineSet,
    DocumentEngineSet,
    EngineSet,
    RestrictionCode,
    RestrictionResult,
    RuleEngineSet,
    SnapshotEngineSet,
    is_zero_address,
    require_amount,
)
from cmtat_ledger.core.storage import ContractStorage

logger = logging.getLogger(__name__)

RULE_ENGINE_SLOT = "rule_engine"
DEBT_ENGINE_SLOT = "debt_engine"
SNAPSHOT_ENGINE_SLOT = "snapshot_engine"
DOCUMENT_ENGINE_SLOT = "document_engine"


def engine_handle(engine: Any) -> str | None:
    """Opaque, loggable handle of an engine (its `address` if it has one)."""
    if engine is None:
        return None
    address = getattr(engine, "address", None)
    return str(address) if address else type(engine).__name__


class ValidationEngine:
    """Computes restriction codes and owns the external engine handles."""

    def __init__(
        self,
        storage: ContractStorage,
        events: EventLog,
        access: AccessControlPort,
        lifecycle: PauseQuery,
        enforcement: EnforcementPort,
        balances: BalanceQuery,
        allowlist: AllowlistQuery | None = None,
    ) -> None:
        self._slots = storage.slots
        self._events = events
        self._access = access
        self._lifecycle = lifecycle
        self._enforcement = enforcement
        self._balances = balances
        self._allowlist = allowlist

    # ── Engine handles ─────────────────────────────────────────

    @property
    def rule_engine(self) -> ExternalEngine | None:
        return self._slots.get(RULE_ENGINE_SLOT)

    @property
    def debt_engine(self) -> ExternalEngine | None:
        return self._slots.get(DEBT_ENGINE_SLOT)

    @property
    def snapshot_engine(self) -> Any:
        return self._slots.get(SNAPSHOT_ENGINE_SLOT)

    @property
    def document_engine(self) -> Any:
        return self._slots.get(DOCUMENT_ENGINE_SLOT)

    def set_rule_engine(self, caller: str, engine: ExternalEngine | None) -> None:
        self._set_engine(caller, RULE_ENGINE_SLOT, engine, RuleEngineSet)

    def set_debt_engine(self, caller: str, engine: ExternalEngine | None) -> None:
        self._set_engine(caller, DEBT_ENGINE_SLOT, engine, DebtEngineSet)

    def set_snapshot_engine(self, caller: str, engine: Any) -> None:
        self._set_engine(caller, SNAPSHOT_ENGINE_SLOT, engine, SnapshotEngineSet)

    def set_document_engine(self, caller: str, engine: Any) -> None:
        self._set_engine(caller, DOCUMENT_ENGINE_SLOT, engine, DocumentEngineSet)

    def _set_engine(
        self,
        caller: str,
        slot: str,
        engine: Any,
        event_type: type[EngineSet],
    ) -> None:
        self._access.require_role(DEFAULT_ADMIN_ROLE, caller)
        previous = self._slots.get(slot)
        self._slots.set(slot, engine)
        self._events.emit(
            event_type(previous=engine_handle(previous), new=engine_handle(engine), sender=caller)
        )
        logger.info(
            "%s changed: %s → %s by=%s",
            slot, engine_handle(previous), engine_handle(engine), caller,
        )

    # ── Restriction codes ──────────────────────────────────────

    def detect_transfer_restriction(self, from_: str, to: str, amount: int) -> int:
        require_amount(amount)

        if is_zero_address(from_):
            return self._detect_mint_restriction(to, amount)
        if is_zero_address(to):
            return RestrictionCode.TRANSFER_OK

        if self._lifecycle.is_deactivated():
            return RestrictionCode.CONTRACT_DEACTIVATED
        if self._lifecycle.is_paused():
            return RestrictionCode.CONTRACT_PAUSED

        if self._enforcement.is_frozen(from_):
            return RestrictionCode.SENDER_FROZEN
        if self._enforcement.is_frozen(to):
            return RestrictionCode.RECIPIENT_FROZEN

        if self._allowlist is not None and self._allowlist.is_allowlist_enabled():
            if not self._allowlist.is_allowlisted(from_):
                return RestrictionCode.SENDER_INVALID
            if not self._allowlist.is_allowlisted(to):
                return RestrictionCode.RECIPIENT_INVALID

        balance = self._balances.balance_of(from_)
        if self._enforcement.get_active_balance(from_, balance) < amount:
            return RestrictionCode.INSUFFICIENT_ACTIVE_BALANCE

        return self._detect_engine_restriction(from_, to, amount)

    def _detect_mint_restriction(self, to: str, amount: int) -> int:
        if self._enforcement.is_frozen(to):
            return RestrictionCode.RECIPIENT_FROZEN
        if self._allowlist is not None and self._allowlist.is_allowlist_enabled():
            if not self._allowlist.is_allowlisted(to):
                return RestrictionCode.RECIPIENT_INVALID
        return self._detect_engine_restriction(from_=ZERO_ADDRESS, to=to, amount=amount)

    def _detect_engine_restriction(self, from_: str, to: str, amount: int) -> int:
        for engine, failure_code in (
            (self.rule_engine, RestrictionCode.RULE_ENGINE_RESTRICTION),
            (self.debt_engine, RestrictionCode.DEBT_ENGINE_RESTRICTION),
        ):
            if engine is None:
                continue
            code = _delegate(engine, from_, to, amount, failure_code)
            if code != RestrictionCode.TRANSFER_OK:
                return code
        return RestrictionCode.TRANSFER_OK

    def message_for_restriction_code(self, code: int) -> str:
        message = RESTRICTION_MESSAGES.get(code)
        if message is not None:
            return message
        for engine in (self.rule_engine, self.debt_engine):
            if engine is None:
                continue
            try:
                delegated = engine.message_for_restriction_code(code)
            except Exception as exc:
                logger.warning(
                    "Engine %s failed to describe code %s: %s",
                    engine_handle(engine), code, exc,
                )
                continue
            if isinstance(delegated, str) and delegated:
                return delegated
        return UNKNOWN_RESTRICTION_MESSAGE

    def check_transfer(self, from_: str, to: str, amount: int) -> RestrictionResult:
        code = self.detect_transfer_restriction(from_, to, amount)
        return RestrictionResult(code=code, message=self.message_for_restriction_code(code))

    def validate_transfer(self, from_: str, to: str, amount: int) -> bool:
        return self.detect_transfer_restriction(from_, to, amount) == RestrictionCode.TRANSFER_OK

    def require_transfer_allowed(self, from_: str, to: str, amount: int) -> None:
        """Ledger hook: abort on any non-zero restriction code."""
        code = self.detect_transfer_restriction(from_, to, amount)
        if code != RestrictionCode.TRANSFER_OK:
            raise TransferRestricted(code, self.message_for_restriction_code(code))


def _delegate(
    engine: ExternalEngine,
    from_: str,
    to: str,
    amount: int,
    failure_code: int,
) -> int:
    """Ask an external engine for a code; any failure restricts the transfer."""
    try:
        code = engine.detect_transfer_restriction(from_, to, amount)
    except Exception as exc:
        logger.warning(
            "Engine %s failed, restricting transfer with code %d: %s",
            engine_handle(engine), failure_code, exc,
        )
        return failure_code
    if isinstance(code, bool) or not isinstance(code, int) or code < 0:
        logger.warning(
            "Engine %s returned invalid code %r, restricting with code %d",
            engine_handle(engine), code, failure_code,
        )
        return failure_code
    return int(code)
