"""
Enforcement Ledger — address freezes and partial token freezes.

Two independent compliance controls:

- Address freeze: a boolean flag per account; a frozen account can neither
  send nor receive through the public transfer path. Requires ENFORCER.
- Partial freeze: an amount per account that is locked out of the active
  balance. Requires ENFORCER or ERC20_ENFORCER.

The partial freeze is capped at the current balance when tokens are frozen, so
`frozen_tokens(a) <= balance_of(a)` holds after every successful call. Forced
operations release frozen tokens through `unfreeze_for_transfer`, never more
than the shortfall they need.
"""

from __future__ import annotations

import logging
from typing import Sequence

from cmtat_ledger.core.errors import (
    FreezeExceedsBalance,
    InvalidAddress,
    InvalidAmount,
    LengthMismatch,
    Unauthorized,
    UnfreezeExceedsFrozen,
)
from cmtat_ledger.core.events import EventLog
from cmtat_ledger.core.ports import AccessControlPort, BalanceQuery
from cmtat_ledger.core.schema import (
    ENFORCER_ROLE,
    ERC20_ENFORCER_ROLE,
    AddressFrozen,
    AddressUnfrozen,
    TokensFrozen,
    TokensUnfrozen,
    is_zero_address,
    require_amount,
)
from cmtat_ledger.core.storage import ContractStorage

logger = logging.getLogger(__name__)


def require_same_length(*sequences: Sequence) -> None:
    """Batch arguments must line up one-to-one."""
    lengths = {len(s) for s in sequences}
    if len(lengths) > 1:
        raise LengthMismatch(
            "Batch arguments have mismatched lengths: "
            + ", ".join(str(len(s)) for s in sequences)
        )


class EnforcementLedger:
    """Freeze state of every account."""

    def __init__(
        self,
        storage: ContractStorage,
        events: EventLog,
        access: AccessControlPort,
        balances: BalanceQuery,
    ) -> None:
        self._frozen = storage.map("frozen", False)
        self._frozen_tokens = storage.map("frozen_tokens", 0)
        self._events = events
        self._access = access
        self._balances = balances

    # ── Queries ────────────────────────────────────────────────

    def is_frozen(self, account: str) -> bool:
        return self._frozen.get(account)

    def get_frozen_tokens(self, account: str) -> int:
        return self._frozen_tokens.get(account)

    def get_active_balance(self, account: str, total_balance: int) -> int:
        return max(0, total_balance - self.get_frozen_tokens(account))

    # ── Address freeze ─────────────────────────────────────────

    def freeze_address(self, caller: str, account: str) -> bool:
        return self.set_address_frozen(caller, account, True)

    def unfreeze_address(self, caller: str, account: str) -> bool:
        return self.set_address_frozen(caller, account, False)

    def set_address_frozen(self, caller: str, account: str, frozen: bool) -> bool:
        """Set the freeze flag; returns True if the flag changed."""
        self._access.require_role(ENFORCER_ROLE, caller)
        return self._set_frozen(caller, account, frozen)

    def batch_set_address_frozen(
        self,
        caller: str,
        accounts: Sequence[str],
        states: Sequence[bool],
    ) -> int:
        """
        Apply freeze flags element-wise.

        The length check runs before any flag is touched. Returns the number
        of accounts whose flag changed.
        """
        self._access.require_role(ENFORCER_ROLE, caller)
        require_same_length(accounts, states)
        return sum(
            self._set_frozen(caller, account, bool(state))
            for account, state in zip(accounts, states)
        )

    def _set_frozen(self, caller: str, account: str, frozen: bool) -> bool:
        if is_zero_address(account):
            raise InvalidAddress("Cannot freeze the zero address")
        if self.is_frozen(account) == frozen:
            return False
        self._frozen.set(account, frozen)
        event = AddressFrozen if frozen else AddressUnfrozen
        self._events.emit(event(account=account, sender=caller))
        logger.info(
            "Address %s: account=%s by=%s",
            "frozen" if frozen else "unfrozen", account, caller,
        )
        return True

    # ── Partial freeze ─────────────────────────────────────────

    def require_token_enforcer(self, caller: str) -> None:
        if not (
            self._access.has_role(ERC20_ENFORCER_ROLE, caller)
            or self._access.has_role(ENFORCER_ROLE, caller)
        ):
            raise Unauthorized(f"Account {caller} lacks role ERC20_ENFORCER")

    def freeze_partial_tokens(self, caller: str, account: str, amount: int) -> int:
        """Lock `amount` more tokens of `account`; returns the new frozen amount."""
        self.require_token_enforcer(caller)
        return self._freeze_tokens(caller, account, amount)

    def unfreeze_partial_tokens(self, caller: str, account: str, amount: int) -> int:
        """Release `amount` frozen tokens of `account`; returns the new frozen amount."""
        self.require_token_enforcer(caller)
        return self._unfreeze_tokens(caller, account, amount)

    def batch_freeze_partial_tokens(
        self,
        caller: str,
        accounts: Sequence[str],
        amounts: Sequence[int],
    ) -> None:
        self.require_token_enforcer(caller)
        require_same_length(accounts, amounts)
        for account, amount in zip(accounts, amounts):
            self._freeze_tokens(caller, account, amount)

    def batch_unfreeze_partial_tokens(
        self,
        caller: str,
        accounts: Sequence[str],
        amounts: Sequence[int],
    ) -> None:
        self.require_token_enforcer(caller)
        require_same_length(accounts, amounts)
        for account, amount in zip(accounts, amounts):
            self._unfreeze_tokens(caller, account, amount)

    def _freeze_tokens(self, caller: str, account: str, amount: int) -> int:
        require_amount(amount)
        if amount == 0:
            raise InvalidAmount("Freeze amount must be positive")
        if is_zero_address(account):
            raise InvalidAddress("Cannot freeze tokens of the zero address")
        balance = self._balances.balance_of(account)
        frozen = self.get_frozen_tokens(account) + amount
        if frozen > balance:
            raise FreezeExceedsBalance(
                f"Cannot freeze {amount}: frozen amount {frozen} would exceed balance {balance}"
            )
        self._frozen_tokens.set(account, frozen)
        self._events.emit(TokensFrozen(account=account, amount=amount, sender=caller))
        logger.info("Tokens frozen: account=%s amount=%d total_frozen=%d", account, amount, frozen)
        return frozen

    def _unfreeze_tokens(self, caller: str, account: str, amount: int) -> int:
        require_amount(amount)
        if amount == 0:
            raise InvalidAmount("Unfreeze amount must be positive")
        current = self.get_frozen_tokens(account)
        if amount > current:
            raise UnfreezeExceedsFrozen(
                f"Cannot unfreeze {amount}: only {current} tokens are frozen"
            )
        remaining = current - amount
        self._frozen_tokens.set(account, remaining)
        self._events.emit(TokensUnfrozen(account=account, amount=amount, sender=caller))
        logger.info("Tokens unfrozen: account=%s amount=%d remaining=%d", account, amount, remaining)
        return remaining

    # ── Forced operations ──────────────────────────────────────

    def unfreeze_for_transfer(self, account: str, amount: int, sender: str) -> int:
        """
        Release up to `amount` frozen tokens for a forced operation.

        Returns the amount actually released (min(frozen, amount)); an unfreeze
        event is emitted only for a non-zero release.
        """
        current = self.get_frozen_tokens(account)
        released = min(current, amount)
        if released > 0:
            self._frozen_tokens.set(account, current - released)
            self._events.emit(TokensUnfrozen(account=account, amount=released, sender=sender))
            logger.info("Tokens released for forced operation: account=%s amount=%d", account, released)
        return released
