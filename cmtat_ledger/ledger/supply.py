"""
Mint and burn modules — role-gated supply changes.

Both modules call straight into `TokenLedger._update` with the zero address on
one side, after their own gates: role, zero-address, deactivation, and
(mint) recipient freeze or (burn) active balance. Batch variants check array
lengths once, up front, before any mutation.
"""

from __future__ import annotations

import logging
from typing import Sequence

from cmtat_ledger.core.errors import (
    AddressFrozen,
    ContractDeactivated,
    InsufficientActiveBalance,
    InsufficientBalance,
    InvalidAddress,
)
from cmtat_ledger.core.events import EventLog
from cmtat_ledger.core.ports import AccessControlPort, EnforcementPort, PauseQuery
from cmtat_ledger.core.schema import (
    BURNER_ROLE,
    CROSS_CHAIN_ROLE,
    DEFAULT_ADMIN_ROLE,
    MINTER_ROLE,
    ZERO_ADDRESS,
    Burn,
    CrosschainBurn,
    CrosschainMint,
    ForcedBurn,
    Mint,
    RestrictionCode,
    TokenEvent,
    is_zero_address,
    require_amount,
)
from cmtat_ledger.governance.enforcement import require_same_length
from cmtat_ledger.ledger.token import TokenLedger

logger = logging.getLogger(__name__)


class MintModule:
    def __init__(
        self,
        ledger: TokenLedger,
        events: EventLog,
        access: AccessControlPort,
        lifecycle: PauseQuery,
        enforcement: EnforcementPort,
    ) -> None:
        self._ledger = ledger
        self._events = events
        self._access = access
        self._lifecycle = lifecycle
        self._enforcement = enforcement

    def mint(self, caller: str, to: str, amount: int) -> None:
        self._access.require_role(MINTER_ROLE, caller)
        self._mint(caller, to, amount, Mint)

    def batch_mint(self, caller: str, accounts: Sequence[str], amounts: Sequence[int]) -> None:
        self._access.require_role(MINTER_ROLE, caller)
        require_same_length(accounts, amounts)
        for to, amount in zip(accounts, amounts):
            self._mint(caller, to, amount, Mint)

    def crosschain_mint(self, caller: str, to: str, amount: int) -> None:
        self._access.require_role(CROSS_CHAIN_ROLE, caller)
        self._mint(caller, to, amount, CrosschainMint)

    def _mint(self, caller: str, to: str, amount: int, event_type: type[TokenEvent]) -> None:
        require_amount(amount)
        if is_zero_address(to):
            raise InvalidAddress("Cannot mint to the zero address")
        if self._lifecycle.is_deactivated():
            raise ContractDeactivated("Contract is deactivated")
        if self._enforcement.is_frozen(to):
            raise AddressFrozen(
                f"Recipient {to} is frozen", restriction_code=RestrictionCode.RECIPIENT_FROZEN
            )
        self._ledger._update(ZERO_ADDRESS, to, amount)
        self._events.emit(event_type(sender=caller, account=to, value=amount))
        logger.info("%s: to=%s amount=%d by=%s", event_type.event_name, to, amount, caller)


class BurnModule:
    def __init__(
        self,
        ledger: TokenLedger,
        events: EventLog,
        access: AccessControlPort,
        lifecycle: PauseQuery,
        enforcement: EnforcementPort,
    ) -> None:
        self._ledger = ledger
        self._events = events
        self._access = access
        self._lifecycle = lifecycle
        self._enforcement = enforcement

    def burn(self, caller: str, from_: str, amount: int) -> None:
        self._access.require_role(BURNER_ROLE, caller)
        self._burn(caller, from_, amount, Burn)

    def batch_burn(self, caller: str, accounts: Sequence[str], amounts: Sequence[int]) -> None:
        self._access.require_role(BURNER_ROLE, caller)
        require_same_length(accounts, amounts)
        for from_, amount in zip(accounts, amounts):
            self._burn(caller, from_, amount, Burn)

    def crosschain_burn(self, caller: str, from_: str, amount: int) -> None:
        self._access.require_role(CROSS_CHAIN_ROLE, caller)
        self._burn(caller, from_, amount, CrosschainBurn)

    def forced_burn(self, caller: str, from_: str, amount: int) -> None:
        """
        Destroy `amount` of `from_`'s total balance, frozen tokens included.

        Frozen tokens are released first, only as far as the active balance
        falls short, so the freeze bound still holds afterwards.
        """
        self._access.require_role(DEFAULT_ADMIN_ROLE, caller)
        require_amount(amount)
        if is_zero_address(from_):
            raise InvalidAddress("Cannot burn from the zero address")
        if self._lifecycle.is_deactivated():
            raise ContractDeactivated("Contract is deactivated")

        balance = self._ledger.balance_of(from_)
        if balance < amount:
            raise InsufficientBalance(f"Balance {balance} of {from_} is below {amount}")
        shortfall = max(0, amount - self._enforcement.get_active_balance(from_, balance))
        if shortfall:
            self._enforcement.unfreeze_for_transfer(from_, shortfall, caller)

        self._ledger._update(from_, ZERO_ADDRESS, amount)
        self._events.emit(ForcedBurn(sender=caller, account=from_, value=amount))
        logger.warning(
            "Forced burn: from=%s amount=%d released=%d by=%s", from_, amount, shortfall, caller
        )

    def _burn(self, caller: str, from_: str, amount: int, event_type: type[TokenEvent]) -> None:
        require_amount(amount)
        if is_zero_address(from_):
            raise InvalidAddress("Cannot burn from the zero address")
        if self._lifecycle.is_deactivated():
            raise ContractDeactivated("Contract is deactivated")
        balance = self._ledger.balance_of(from_)
        active = self._enforcement.get_active_balance(from_, balance)
        if active < amount:
            raise InsufficientActiveBalance(
                f"Active balance {active} of {from_} is below {amount}"
            )
        self._ledger._update(from_, ZERO_ADDRESS, amount)
        self._events.emit(event_type(sender=caller, account=from_, value=amount))
        logger.info("%s: from=%s amount=%d by=%s", event_type.event_name, from_, amount, caller)
