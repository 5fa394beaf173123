"""
Token Ledger — balances, allowances, supply and the transfer primitives.

`_update` is the single primitive that moves value. It keeps
`total_supply == sum(balances)` by construction: mints increase supply as they
credit, burns decrease supply as they debit, and a plain move leaves supply
untouched. Every call emits an ERC-20 `Transfer` (mint and burn use the zero
address).

The public transfer path (`_transfer`) layers the compliance gates on top:
lifecycle, address freezes, active balance, and finally the validation hook.
`forced_transfer` bypasses those gates (deactivation excepted) and releases
just enough frozen tokens to cover the amount.
"""

from __future__ import annotations

import logging
from typing import Sequence

from cmtat_ledger.core.errors import (
    AddressFrozen,
    ContractDeactivated,
    ContractPaused,
    InsufficientActiveBalance,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAddress,
    SupplyOverflow,
)
from cmtat_ledger.core.events import EventLog
from cmtat_ledger.core.ports import (
    AccessControlPort,
    EnforcementPort,
    PauseQuery,
    TransferValidator,
)
from cmtat_ledger.core.schema import (
    DEFAULT_ADMIN_ROLE,
    EXTRA_INFORMATION_ROLE,
    MAX_U256,
    Approval,
    AttributeSet,
    ForcedTransfer,
    InformationSet,
    NameSet,
    RestrictionCode,
    SymbolSet,
    TermsSet,
    TokenIdSet,
    Transfer,
    is_zero_address,
    require_amount,
)
from cmtat_ledger.core.storage import ContractStorage
from cmtat_ledger.governance.enforcement import require_same_length

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 18


class TokenLedger:
    """ERC-20 ledger with CMTAT compliance gating."""

    def __init__(
        self,
        storage: ContractStorage,
        events: EventLog,
        access: AccessControlPort,
        lifecycle: PauseQuery,
        enforcement: EnforcementPort,
        validator: TransferValidator | None = None,
    ) -> None:
        self._balances = storage.map("balances", 0)
        self._allowances = storage.map("allowances", 0)
        self._slots = storage.slots
        self._events = events
        self._access = access
        self._lifecycle = lifecycle
        self._enforcement = enforcement
        self.validator = validator

    def initialize(
        self,
        name: str,
        symbol: str,
        decimals: int = DEFAULT_DECIMALS,
        terms: str = "",
        flag: str = "",
        information: str = "",
        token_id: str = "",
    ) -> None:
        self._slots.set("name", name)
        self._slots.set("symbol", symbol)
        self._slots.set("decimals", decimals)
        self._slots.set("terms", terms)
        self._slots.set("flag", flag)
        self._slots.set("information", information)
        self._slots.set("token_id", token_id)
        self._slots.set("total_supply", 0)

    # ── ERC-20 views ───────────────────────────────────────────

    def name(self) -> str:
        return self._slots.get("name") or ""

    def symbol(self) -> str:
        return self._slots.get("symbol") or ""

    def decimals(self) -> int:
        decimals = self._slots.get("decimals")
        return DEFAULT_DECIMALS if decimals is None else decimals

    def total_supply(self) -> int:
        return self._slots.get("total_supply") or 0

    def balance_of(self, account: str) -> int:
        return self._balances.get(account)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender))

    def terms(self) -> str:
        return self._slots.get("terms") or ""

    def information(self) -> str:
        return self._slots.get("information") or ""

    def token_id(self) -> str:
        return self._slots.get("token_id") or ""

    def flag(self) -> str:
        return self._slots.get("flag") or ""

    def holders(self) -> dict[str, int]:
        """Every account with a recorded balance (zero balances included)."""
        return dict(self._balances.items())

    # ── ERC-20 mutations ───────────────────────────────────────

    def transfer(self, caller: str, to: str, amount: int) -> bool:
        self._transfer(caller, to, amount)
        return True

    def transfer_from(self, caller: str, from_: str, to: str, amount: int) -> bool:
        require_amount(amount)
        allowed = self.allowance(from_, caller)
        if allowed < amount:
            raise InsufficientAllowance(
                f"Allowance {allowed} of {caller} over {from_} is below {amount}"
            )
        self._transfer(from_, to, amount)
        self._allowances.set((from_, caller), allowed - amount)
        return True

    def approve(self, caller: str, spender: str, amount: int) -> bool:
        require_amount(amount)
        if is_zero_address(caller) or is_zero_address(spender):
            raise InvalidAddress("Approval owner and spender must not be the zero address")
        self._allowances.set((caller, spender), amount)
        self._events.emit(Approval(owner=caller, spender=spender, value=amount))
        return True

    def batch_transfer(
        self,
        caller: str,
        tos: Sequence[str],
        amounts: Sequence[int],
    ) -> bool:
        require_same_length(tos, amounts)
        for to, amount in zip(tos, amounts):
            self._transfer(caller, to, amount)
        return True

    # ── Admin override ─────────────────────────────────────────

    def forced_transfer(self, caller: str, from_: str, to: str, amount: int) -> bool:
        """
        Move `amount` out of `from_` regardless of freezes and pause.

        Frozen tokens are released only to the extent the active balance falls
        short of `amount`. A transfer to the same account moves nothing and
        releases nothing.
        """
        self._access.require_role(DEFAULT_ADMIN_ROLE, caller)
        if self._lifecycle.is_deactivated():
            raise ContractDeactivated("Contract is deactivated")
        require_amount(amount)
        if is_zero_address(from_) or is_zero_address(to):
            raise InvalidAddress("Forced transfer endpoints must not be the zero address")

        balance = self.balance_of(from_)
        if balance < amount:
            raise InsufficientBalance(f"Balance {balance} of {from_} is below {amount}")

        active = self._enforcement.get_active_balance(from_, balance)
        shortfall = max(0, amount - active) if from_ != to else 0
        if shortfall:
            self._enforcement.unfreeze_for_transfer(from_, shortfall, caller)

        self._update(from_, to, amount)
        self._events.emit(ForcedTransfer(sender=caller, from_=from_, to=to, value=amount))
        logger.warning(
            "Forced transfer: from=%s to=%s amount=%d released=%d by=%s",
            from_, to, amount, shortfall, caller,
        )
        return True

    # ── Metadata ───────────────────────────────────────────────

    def set_name(self, caller: str, name: str) -> None:
        self._access.require_role(DEFAULT_ADMIN_ROLE, caller)
        self._set_attribute(caller, "name", name, NameSet)

    def set_symbol(self, caller: str, symbol: str) -> None:
        self._access.require_role(DEFAULT_ADMIN_ROLE, caller)
        self._set_attribute(caller, "symbol", symbol, SymbolSet)

    def set_terms(self, caller: str, terms: str) -> None:
        self._access.require_role(EXTRA_INFORMATION_ROLE, caller)
        self._set_attribute(caller, "terms", terms, TermsSet)

    def set_information(self, caller: str, information: str) -> None:
        self._access.require_role(EXTRA_INFORMATION_ROLE, caller)
        self._set_attribute(caller, "information", information, InformationSet)

    def set_token_id(self, caller: str, token_id: str) -> None:
        self._access.require_role(EXTRA_INFORMATION_ROLE, caller)
        self._set_attribute(caller, "token_id", token_id, TokenIdSet)

    def _set_attribute(
        self,
        caller: str,
        slot: str,
        value: str,
        event_type: type[AttributeSet],
    ) -> None:
        previous = self._slots.get(slot) or ""
        self._slots.set(slot, value)
        self._events.emit(event_type(previous=previous, new=value, sender=caller))

    # ── Primitives ─────────────────────────────────────────────

    def _transfer(self, from_: str, to: str, amount: int) -> None:
        require_amount(amount)
        if is_zero_address(from_):
            raise InvalidAddress("Transfer from the zero address")
        if is_zero_address(to):
            raise InvalidAddress("Transfer to the zero address")

        if self._lifecycle.is_deactivated():
            raise ContractDeactivated("Contract is deactivated")
        if self._lifecycle.is_paused():
            raise ContractPaused("Contract is paused")

        if self._enforcement.is_frozen(from_):
            raise AddressFrozen(
                f"Sender {from_} is frozen", restriction_code=RestrictionCode.SENDER_FROZEN
            )
        if self._enforcement.is_frozen(to):
            raise AddressFrozen(
                f"Recipient {to} is frozen", restriction_code=RestrictionCode.RECIPIENT_FROZEN
            )

        balance = self.balance_of(from_)
        active = self._enforcement.get_active_balance(from_, balance)
        if active < amount:
            raise InsufficientActiveBalance(
                f"Active balance {active} of {from_} is below {amount}"
            )

        if self.validator is not None:
            self.validator.require_transfer_allowed(from_, to, amount)

        self._update(from_, to, amount)

    def _update(self, from_: str, to: str, amount: int) -> None:
        """Move `amount` from `from_` to `to`; the zero address mints or burns."""
        require_amount(amount)
        supply = self.total_supply()

        if is_zero_address(from_):
            if supply + amount > MAX_U256:
                raise SupplyOverflow(f"Minting {amount} would overflow total supply")
            supply += amount
        else:
            balance = self.balance_of(from_)
            if balance < amount:
                raise InsufficientBalance(f"Balance {balance} of {from_} is below {amount}")
            self._balances.set(from_, balance - amount)

        if is_zero_address(to):
            supply -= amount
        else:
            self._balances.set(to, self.balance_of(to) + amount)

        self._slots.set("total_supply", supply)
        self._events.emit(Transfer(from_=from_, to=to, value=amount))

