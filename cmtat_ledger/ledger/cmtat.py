"""
CMTAT — the assembled compliance-gated token.

Composes the access-control registry, lifecycle, enforcement ledger,
allowlist, validation engine, token ledger and supply modules over one shared
`ContractStorage` and `EventLog`, and exposes them as one public surface.

Every public mutation runs as a single atomic unit of work:

- storage is snapshotted and events are buffered on entry;
- any exception restores the snapshot, drops the buffered events and
  re-raises, so a half-applied batch leaves no trace;
- on success the optional invariant check runs, subscribers (the journal)
  receive the batch, and only then are the events committed.

Nested entry points (e.g. `burn_and_mint`) join the outermost call.
Addresses are normalised at this boundary; components below it only ever see
canonical addresses.

Usage:
    token = CMTAT.deploy(
        admin="0xad",
        name="Bond 2030",
        symbol="BND30",
        initial_supply=1_000,
        recipient="0xa11ce",
    )
    token.grant_role("0xad", MINTER_ROLE, "0xm1")
    token.mint("0xm1", "0xb0b", 50)
    token.transfer("0xb0b", "0xa11ce", 10)
"""

from __future__ import annotations

import functools
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Sequence, TypeVar

from cmtat_ledger.core.errors import ComplianceError, InvalidAddress, InvariantViolation
from cmtat_ledger.core.events import EventLog, EventSubscriber
from cmtat_ledger.core.ports import ExternalEngine
from cmtat_ledger.core.schema import (
    MAX_U256,
    ZERO_ADDRESS,
    AccountView,
    LifecycleState,
    Mint,
    RestrictionResult,
    TokenInfo,
    is_zero_address,
    require_amount,
    to_address,
)
from cmtat_ledger.core.storage import ContractStorage
from cmtat_ledger.governance.access_control import AccessControlRegistry
from cmtat_ledger.governance.allowlist import AllowlistModule
from cmtat_ledger.governance.enforcement import EnforcementLedger
from cmtat_ledger.governance.lifecycle import PauseLifecycle
from cmtat_ledger.ledger.supply import BurnModule, MintModule
from cmtat_ledger.ledger.token import DEFAULT_DECIMALS, TokenLedger
from cmtat_ledger.validation.engine import ValidationEngine

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def entrypoint(method: F) -> F:
    """Run a public mutation inside the token's atomic transaction."""

    @functools.wraps(method)
    def wrapper(self: "CMTAT", *args: Any, **kwargs: Any) -> Any:
        with self.transaction(method.__name__):
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def _addresses(values: Sequence[str | int]) -> list[str]:
    return [to_address(v) for v in values]


class CMTAT:
    """Compliance-gated token ledger."""

    def __init__(self, check_invariants: bool = False, keep_history: bool = True) -> None:
        self.check_invariants = check_invariants
        self.storage = ContractStorage()
        self.events = EventLog(keep_history=keep_history)
        self._depth = 0

        self.access = AccessControlRegistry(self.storage, self.events)
        self.lifecycle = PauseLifecycle(self.storage, self.events, self.access)
        self.enforcement = EnforcementLedger(
            self.storage, self.events, self.access, balances=self.storage
        )
        self.allowlist = AllowlistModule(self.storage, self.events, self.access)
        self.validation = ValidationEngine(
            self.storage,
            self.events,
            self.access,
            lifecycle=self.lifecycle,
            enforcement=self.enforcement,
            balances=self.storage,
            allowlist=self.allowlist,
        )
        self.ledger = TokenLedger(
            self.storage,
            self.events,
            self.access,
            lifecycle=self.lifecycle,
            enforcement=self.enforcement,
            validator=self.validation,
        )
        self.minter = MintModule(
            self.ledger, self.events, self.access, self.lifecycle, self.enforcement
        )
        self.burner = BurnModule(
            self.ledger, self.events, self.access, self.lifecycle, self.enforcement
        )

    @classmethod
    def deploy(
        cls,
        admin: str | int,
        name: str,
        symbol: str,
        initial_supply: int = 0,
        recipient: str | int | None = None,
        terms: str = "",
        flag: str = "",
        decimals: int = DEFAULT_DECIMALS,
        information: str = "",
        token_id: str = "",
        check_invariants: bool = False,
        subscribers: Sequence[EventSubscriber] = (),
        keep_history: bool = True,
    ) -> "CMTAT":
        """
        Construct a token, grant DEFAULT_ADMIN to `admin` and mint the initial
        supply to `recipient` (defaults to the admin), all in one call.
        """
        token = cls(check_invariants=check_invariants, keep_history=keep_history)
        for subscriber in subscribers:
            token.events.subscribe(subscriber)
        with token.transaction("deploy"):
            admin_address = to_address(admin)
            token.access.initialize(admin_address)
            token.ledger.initialize(
                name=name,
                symbol=symbol,
                decimals=decimals,
                terms=terms,
                flag=flag,
                information=information,
                token_id=token_id,
            )
            require_amount(initial_supply)
            if initial_supply:
                holder = to_address(recipient) if recipient is not None else admin_address
                if is_zero_address(holder):
                    raise InvalidAddress("Initial supply cannot be minted to the zero address")
                token.ledger._update(ZERO_ADDRESS, holder, initial_supply)
                token.events.emit(Mint(sender=admin_address, account=holder, value=initial_supply))
        logger.info(
            "Token deployed: name=%s symbol=%s admin=%s supply=%d",
            name, symbol, admin_address, initial_supply,
        )
        return token

    # ════════════════════════════════════════════════════════════
    # Transactions
    # ════════════════════════════════════════════════════════════

    @contextmanager
    def transaction(self, name: str) -> Iterator[None]:
        """All-or-nothing scope for one public call."""
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        snapshot = self.storage.snapshot()
        self._depth = 1
        try:
            yield
            if self.check_invariants:
                self.assert_invariants()
            self.events.publish(name)
        except Exception as exc:
            self.storage.restore(snapshot)
            dropped = self.events.rollback()
            level = logging.INFO if isinstance(exc, ComplianceError) else logging.ERROR
            logger.log(
                level,
                "Call reverted: entrypoint=%s error=%s dropped_events=%d",
                name, exc, dropped,
            )
            raise
        else:
            self.events.commit()
        finally:
            self._depth = 0

    def assert_invariants(self) -> None:
        """Supply conservation and the freeze bound over every account."""
        balances = self.ledger.holders()
        supply = self.ledger.total_supply()
        if sum(balances.values()) != supply:
            raise InvariantViolation(
                f"Sum of balances {sum(balances.values())} != total supply {supply}"
            )
        if supply > MAX_U256:
            raise InvariantViolation(f"Total supply {supply} exceeds u256")
        for account, frozen in self.storage.map("frozen_tokens", 0).items():
            if frozen > balances.get(account, 0):
                raise InvariantViolation(
                    f"Frozen tokens {frozen} of {account} exceed balance {balances.get(account, 0)}"
                )

    # ════════════════════════════════════════════════════════════
    # Views
    # ════════════════════════════════════════════════════════════

    def name(self) -> str:
        return self.ledger.name()

    def symbol(self) -> str:
        return self.ledger.symbol()

    def decimals(self) -> int:
        return self.ledger.decimals()

    def total_supply(self) -> int:
        return self.ledger.total_supply()

    def balance_of(self, account: str | int) -> int:
        return self.ledger.balance_of(to_address(account))

    def allowance(self, owner: str | int, spender: str | int) -> int:
        return self.ledger.allowance(to_address(owner), to_address(spender))

    def terms(self) -> str:
        return self.ledger.terms()

    def information(self) -> str:
        return self.ledger.information()

    def token_id(self) -> str:
        return self.ledger.token_id()

    def flag(self) -> str:
        return self.ledger.flag()

    def info(self) -> TokenInfo:
        return TokenInfo(
            name=self.name(),
            symbol=self.symbol(),
            decimals=self.decimals(),
            total_supply=self.total_supply(),
            lifecycle=self.lifecycle_state(),
            terms=self.terms(),
            information=self.information(),
            token_id=self.token_id(),
            flag=self.flag(),
        )

    def account(self, address: str | int) -> AccountView:
        account = to_address(address)
        return AccountView(
            address=account,
            balance=self.ledger.balance_of(account),
            frozen=self.enforcement.is_frozen(account),
            frozen_tokens=self.enforcement.get_frozen_tokens(account),
            allowlisted=self.allowlist.is_allowlisted(account),
        )

    # ── Access control ─────────────────────────────────────────

    def has_role(self, role: int, account: str | int) -> bool:
        return self.access.has_role(role, to_address(account))

    def is_member(self, role: int, account: str | int) -> bool:
        return self.access.is_member(role, to_address(account))

    def get_role_admin(self, role: int) -> int:
        return self.access.get_role_admin(role)

    # ── Lifecycle ──────────────────────────────────────────────

    def lifecycle_state(self) -> LifecycleState:
        return self.lifecycle.state

    def is_paused(self) -> bool:
        return self.lifecycle.is_paused()

    def is_deactivated(self) -> bool:
        return self.lifecycle.is_deactivated()

    # ── Enforcement ────────────────────────────────────────────

    def is_frozen(self, account: str | int) -> bool:
        return self.enforcement.is_frozen(to_address(account))

    def get_frozen_tokens(self, account: str | int) -> int:
        return self.enforcement.get_frozen_tokens(to_address(account))

    def get_active_balance(self, account: str | int) -> int:
        account = to_address(account)
        return self.enforcement.get_active_balance(account, self.ledger.balance_of(account))

    def is_allowlisted(self, account: str | int) -> bool:
        return self.allowlist.is_allowlisted(to_address(account))

    def is_allowlist_enabled(self) -> bool:
        return self.allowlist.is_allowlist_enabled()

    # ── Validation ─────────────────────────────────────────────

    def detect_transfer_restriction(self, from_: str | int, to: str | int, amount: int) -> int:
        return int(
            self.validation.detect_transfer_restriction(to_address(from_), to_address(to), amount)
        )

    def message_for_restriction_code(self, code: int) -> str:
        return self.validation.message_for_restriction_code(code)

    def check_transfer(self, from_: str | int, to: str | int, amount: int) -> RestrictionResult:
        return self.validation.check_transfer(to_address(from_), to_address(to), amount)

    def validate_transfer(self, from_: str | int, to: str | int, amount: int) -> bool:
        return self.validation.validate_transfer(to_address(from_), to_address(to), amount)

    @property
    def rule_engine(self) -> ExternalEngine | None:
        return self.validation.rule_engine

    @property
    def debt_engine(self) -> ExternalEngine | None:
        return self.validation.debt_engine

    # ════════════════════════════════════════════════════════════
    # Mutations
    # ════════════════════════════════════════════════════════════

    # ── Access control ─────────────────────────────────────────

    @entrypoint
    def grant_role(self, caller: str | int, role: int, account: str | int) -> bool:
        return self.access.grant_role(to_address(caller), role, to_address(account))

    @entrypoint
    def revoke_role(self, caller: str | int, role: int, account: str | int) -> bool:
        return self.access.revoke_role(to_address(caller), role, to_address(account))

    @entrypoint
    def renounce_role(self, caller: str | int, role: int, account: str | int) -> bool:
        return self.access.renounce_role(to_address(caller), role, to_address(account))

    # ── Lifecycle ──────────────────────────────────────────────

    @entrypoint
    def pause(self, caller: str | int) -> None:
        self.lifecycle.pause(to_address(caller))

    @entrypoint
    def unpause(self, caller: str | int) -> None:
        self.lifecycle.unpause(to_address(caller))

    @entrypoint
    def deactivate(self, caller: str | int) -> None:
        self.lifecycle.deactivate(to_address(caller))

    # ── Enforcement ────────────────────────────────────────────

    @entrypoint
    def freeze_address(self, caller: str | int, account: str | int) -> bool:
        return self.enforcement.freeze_address(to_address(caller), to_address(account))

    @entrypoint
    def unfreeze_address(self, caller: str | int, account: str | int) -> bool:
        return self.enforcement.unfreeze_address(to_address(caller), to_address(account))

    @entrypoint
    def set_address_frozen(self, caller: str | int, account: str | int, frozen: bool) -> bool:
        return self.enforcement.set_address_frozen(
            to_address(caller), to_address(account), frozen
        )

    @entrypoint
    def batch_set_address_frozen(
        self,
        caller: str | int,
        accounts: Sequence[str | int],
        states: Sequence[bool],
    ) -> int:
        return self.enforcement.batch_set_address_frozen(
            to_address(caller), _addresses(accounts), states
        )

    @entrypoint
    def freeze_partial_tokens(self, caller: str | int, account: str | int, amount: int) -> int:
        return self.enforcement.freeze_partial_tokens(
            to_address(caller), to_address(account), amount
        )

    @entrypoint
    def unfreeze_partial_tokens(self, caller: str | int, account: str | int, amount: int) -> int:
        return self.enforcement.unfreeze_partial_tokens(
            to_address(caller), to_address(account), amount
        )

    @entrypoint
    def batch_freeze_partial_tokens(
        self,
        caller: str | int,
        accounts: Sequence[str | int],
        amounts: Sequence[int],
    ) -> None:
        self.enforcement.batch_freeze_partial_tokens(
            to_address(caller), _addresses(accounts), amounts
        )

    @entrypoint
    def batch_unfreeze_partial_tokens(
        self,
        caller: str | int,
        accounts: Sequence[str | int],
        amounts: Sequence[int],
    ) -> None:
        self.enforcement.batch_unfreeze_partial_tokens(
            to_address(caller), _addresses(accounts), amounts
        )

    # ── Allowlist ──────────────────────────────────────────────

    @entrypoint
    def enable_allowlist(self, caller: str | int, enabled: bool) -> None:
        self.allowlist.enable_allowlist(to_address(caller), enabled)

    @entrypoint
    def set_address_allowlist(self, caller: str | int, account: str | int, status: bool) -> None:
        self.allowlist.set_address_allowlist(to_address(caller), to_address(account), status)

    @entrypoint
    def batch_set_address_allowlist(
        self,
        caller: str | int,
        accounts: Sequence[str | int],
        statuses: Sequence[bool],
    ) -> None:
        self.allowlist.batch_set_address_allowlist(
            to_address(caller), _addresses(accounts), statuses
        )

    # ── ERC-20 ─────────────────────────────────────────────────

    @entrypoint
    def transfer(self, caller: str | int, to: str | int, amount: int) -> bool:
        return self.ledger.transfer(to_address(caller), to_address(to), amount)

    @entrypoint
    def transfer_from(
        self,
        caller: str | int,
        from_: str | int,
        to: str | int,
        amount: int,
    ) -> bool:
        return self.ledger.transfer_from(
            to_address(caller), to_address(from_), to_address(to), amount
        )

    @entrypoint
    def approve(self, caller: str | int, spender: str | int, amount: int) -> bool:
        return self.ledger.approve(to_address(caller), to_address(spender), amount)

    @entrypoint
    def batch_transfer(
        self,
        caller: str | int,
        tos: Sequence[str | int],
        amounts: Sequence[int],
    ) -> bool:
        return self.ledger.batch_transfer(to_address(caller), _addresses(tos), amounts)

    @entrypoint
    def forced_transfer(
        self,
        caller: str | int,
        from_: str | int,
        to: str | int,
        amount: int,
    ) -> bool:
        return self.ledger.forced_transfer(
            to_address(caller), to_address(from_), to_address(to), amount
        )

    # ── Metadata ───────────────────────────────────────────────

    @entrypoint
    def set_name(self, caller: str | int, name: str) -> None:
        self.ledger.set_name(to_address(caller), name)

    @entrypoint
    def set_symbol(self, caller: str | int, symbol: str) -> None:
        self.ledger.set_symbol(to_address(caller), symbol)

    @entrypoint
    def set_terms(self, caller: str | int, terms: str) -> None:
        self.ledger.set_terms(to_address(caller), terms)

    @entrypoint
    def set_information(self, caller: str | int, information: str) -> None:
        self.ledger.set_information(to_address(caller), information)

    @entrypoint
    def set_token_id(self, caller: str | int, token_id: str) -> None:
        self.ledger.set_token_id(to_address(caller), token_id)

    # ── Supply ─────────────────────────────────────────────────

    @entrypoint
    def mint(self, caller: str | int, to: str | int, amount: int) -> None:
        self.minter.mint(to_address(caller), to_address(to), amount)

    @entrypoint
    def batch_mint(
        self,
        caller: str | int,
        accounts: Sequence[str | int],
        amounts: Sequence[int],
    ) -> None:
        self.minter.batch_mint(to_address(caller), _addresses(accounts), amounts)

    @entrypoint
    def crosschain_mint(self, caller: str | int, to: str | int, amount: int) -> None:
        self.minter.crosschain_mint(to_address(caller), to_address(to), amount)

    @entrypoint
    def burn(self, caller: str | int, from_: str | int, amount: int) -> None:
        self.burner.burn(to_address(caller), to_address(from_), amount)

    @entrypoint
    def batch_burn(
        self,
        caller: str | int,
        accounts: Sequence[str | int],
        amounts: Sequence[int],
    ) -> None:
        self.burner.batch_burn(to_address(caller), _addresses(accounts), amounts)

    @entrypoint
    def crosschain_burn(self, caller: str | int, from_: str | int, amount: int) -> None:
        self.burner.crosschain_burn(to_address(caller), to_address(from_), amount)

    @entrypoint
    def forced_burn(self, caller: str | int, from_: str | int, amount: int) -> None:
        self.burner.forced_burn(to_address(caller), to_address(from_), amount)

    @entrypoint
    def burn_and_mint(
        self,
        caller: str | int,
        from_: str | int,
        to: str | int,
        burn_amount: int,
        mint_amount: int,
    ) -> None:
        """Burn from one holder and mint to another; requires BURNER and MINTER."""
        self.burn(caller, from_, burn_amount)
        self.mint(caller, to, mint_amount)

    # ── Engines ────────────────────────────────────────────────

    @entrypoint
    def set_rule_engine(self, caller: str | int, engine: ExternalEngine | None) -> None:
        self.validation.set_rule_engine(to_address(caller), engine)

    @entrypoint
    def set_debt_engine(self, caller: str | int, engine: ExternalEngine | None) -> None:
        self.validation.set_debt_engine(to_address(caller), engine)

    @entrypoint
    def set_snapshot_engine(self, caller: str | int, engine: Any) -> None:
        self.validation.set_snapshot_engine(to_address(caller), engine)

    @entrypoint
    def set_document_engine(self, caller: str | int, engine: Any) -> None:
        self.validation.set_document_engine(to_address(caller), engine)
