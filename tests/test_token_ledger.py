"""
Tests for the Token Ledger through the assembled token.

Validates:
- ERC-20 transfers, approvals and transfer_from
- Compliance gating of the public transfer path
- Batch transfers (all-or-nothing)
- Forced transfers reaching into frozen tokens
- Metadata setters and their role gates
"""

from __future__ import annotations

import pytest

from cmtat_ledger.core.errors import (
    AddressFrozen,
    ContractDeactivated,
    ContractPaused,
    InsufficientActiveBalance,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidAddress,
    InvalidAmount,
    LengthMismatch,
    TransferRestricted,
    Unauthorized,
)
from cmtat_ledger.core.events import EventLog
from cmtat_ledger.core.schema import (
    ENFORCER_ROLE,
    EXTRA_INFORMATION_ROLE,
    PAUSER_ROLE,
    Approval,
    ForcedTransfer,
    NameSet,
    RestrictionCode,
    TermsSet,
    TokensUnfrozen,
    Transfer,
    ZERO_ADDRESS,
)
from cmtat_ledger.core.storage import ContractStorage
from cmtat_ledger.governance.access_control import AccessControlRegistry
from cmtat_ledger.governance.enforcement import EnforcementLedger
from cmtat_ledger.governance.lifecycle import PauseLifecycle
from cmtat_ledger.ledger.cmtat import CMTAT
from cmtat_ledger.ledger.token import TokenLedger

ADMIN = "0xad"
ENFORCER = "0xe0"
PAUSER = "0x9a05e"
ALICE = "0xa11ce"
BOB = "0xb0b"
CAROL = "0xca201"


def deploy() -> CMTAT:
    token = CMTAT.deploy(
        admin=ADMIN,
        name="Bond 2030",
        symbol="BND30",
        initial_supply=1000,
        recipient=ALICE,
        terms="0x54657374546f6b656e",
        flag="0x1",
        check_invariants=True,
    )
    token.grant_role(ADMIN, ENFORCER_ROLE, ENFORCER)
    token.grant_role(ADMIN, PAUSER_ROLE, PAUSER)
    return token


class TestDeploy:
    def test_initial_state(self):
        token = deploy()
        assert token.name() == "Bond 2030"
        assert token.symbol() == "BND30"
        assert token.decimals() == 18
        assert token.total_supply() == 1000
        assert token.balance_of(ALICE) == 1000
        assert token.terms() == "0x54657374546f6b656e"
        assert token.flag() == "0x1"

    def test_initial_mint_is_a_transfer_from_zero(self):
        token = deploy()
        mint = token.events.of_type(Transfer)[0]
        assert mint.from_ == ZERO_ADDRESS
        assert mint.to == ALICE
        assert mint.value == 1000

    def test_recipient_defaults_to_admin(self):
        token = CMTAT.deploy(admin=ADMIN, name="T", symbol="T", initial_supply=5)
        assert token.balance_of(ADMIN) == 5

    def test_addresses_are_normalised(self):
        token = deploy()
        assert token.balance_of("0xA11CE") == 1000
        assert token.balance_of(0xA11CE) == 1000

    def test_zero_recipient_is_rejected(self):
        with pytest.raises(InvalidAddress):
            CMTAT.deploy(
                admin=ADMIN, name="T", symbol="T", initial_supply=1000, recipient=ZERO_ADDRESS,
            )

    def test_zero_recipient_allowed_without_supply(self):
        token = CMTAT.deploy(admin=ADMIN, name="T", symbol="T", recipient=ZERO_ADDRESS)
        assert token.total_supply() == 0


class TestTransfer:
    def setup_method(self):
        self.token = deploy()

    def test_transfer(self):
        assert self.token.transfer(ALICE, BOB, 250) is True
        assert self.token.balance_of(ALICE) == 750
        assert self.token.balance_of(BOB) == 250
        assert self.token.total_supply() == 1000
        event = self.token.events.last()
        assert isinstance(event, Transfer)
        assert (event.from_, event.to, event.value) == (ALICE, BOB, 250)

    def test_transfer_zero_amount(self):
        self.token.transfer(ALICE, BOB, 0)
        assert self.token.balance_of(BOB) == 0

    def test_transfer_to_zero_address_rejected(self):
        with pytest.raises(InvalidAddress):
            self.token.transfer(ALICE, ZERO_ADDRESS, 1)

    def test_transfer_negative_amount_rejected(self):
        with pytest.raises(InvalidAmount):
            self.token.transfer(ALICE, BOB, -1)

    def test_transfer_bool_amount_rejected(self):
        with pytest.raises(InvalidAmount):
            self.token.transfer(ALICE, BOB, True)

    def test_transfer_more_than_balance(self):
        with pytest.raises(InsufficientActiveBalance) as exc:
            self.token.transfer(ALICE, BOB, 1001)
        assert exc.value.restriction_code == RestrictionCode.INSUFFICIENT_ACTIVE_BALANCE
        assert self.token.balance_of(ALICE) == 1000

    def test_transfer_respects_partial_freeze(self):
        self.token.freeze_partial_tokens(ENFORCER, ALICE, 400)
        with pytest.raises(InsufficientActiveBalance):
            self.token.transfer(ALICE, BOB, 601)
        self.token.transfer(ALICE, BOB, 600)
        assert self.token.get_active_balance(ALICE) == 0

    def test_frozen_sender_rejected(self):
        self.token.freeze_address(ENFORCER, ALICE)
        with pytest.raises(AddressFrozen) as exc:
            self.token.transfer(ALICE, BOB, 1)
        assert exc.value.restriction_code == RestrictionCode.SENDER_FROZEN

    def test_frozen_recipient_rejected(self):
        self.token.freeze_address(ENFORCER, BOB)
        with pytest.raises(AddressFrozen) as exc:
            self.token.transfer(ALICE, BOB, 1)
        assert exc.value.restriction_code == RestrictionCode.RECIPIENT_FROZEN

    def test_paused_rejected(self):
        self.token.pause(PAUSER)
        with pytest.raises(ContractPaused):
            self.token.transfer(ALICE, BOB, 1)

    def test_deactivated_rejected(self):
        self.token.pause(PAUSER)
        self.token.deactivate(ADMIN)
        with pytest.raises(ContractDeactivated):
            self.token.transfer(ALICE, BOB, 1)

    def test_failed_transfer_emits_nothing(self):
        before = len(self.token.events.history)
        with pytest.raises(InsufficientActiveBalance):
            self.token.transfer(ALICE, BOB, 5000)
        assert len(self.token.events.history) == before
        assert self.token.events.pending == []


class TestAllowance:
    def setup_method(self):
        self.token = deploy()

    def test_approve(self):
        assert self.token.approve(ALICE, BOB, 300) is True
        assert self.token.allowance(ALICE, BOB) == 300
        assert isinstance(self.token.events.last(), Approval)

    def test_approve_zero_spender_rejected(self):
        with pytest.raises(InvalidAddress):
            self.token.approve(ALICE, ZERO_ADDRESS, 1)

    def test_transfer_from_decrements_allowance(self):
        self.token.approve(ALICE, BOB, 300)
        self.token.transfer_from(BOB, ALICE, CAROL, 200)
        assert self.token.balance_of(CAROL) == 200
        assert self.token.allowance(ALICE, BOB) == 100

    def test_transfer_from_insufficient_allowance(self):
        self.token.approve(ALICE, BOB, 100)
        with pytest.raises(InsufficientAllowance):
            self.token.transfer_from(BOB, ALICE, CAROL, 101)
        assert self.token.allowance(ALICE, BOB) == 100
        assert self.token.balance_of(CAROL) == 0

    def test_failed_transfer_from_keeps_allowance(self):
        """Allowance is only consumed by a transfer that succeeds."""
        self.token.approve(ALICE, BOB, 300)
        self.token.freeze_address(ENFORCER, CAROL)
        with pytest.raises(AddressFrozen):
            self.token.transfer_from(BOB, ALICE, CAROL, 200)
        assert self.token.allowance(ALICE, BOB) == 300


class TestBatchTransfer:
    def setup_method(self):
        self.token = deploy()

    def test_batch_transfer(self):
        self.token.batch_transfer(ALICE, [BOB, CAROL], [100, 200])
        assert self.token.balance_of(BOB) == 100
        assert self.token.balance_of(CAROL) == 200
        assert self.token.balance_of(ALICE) == 700

    def test_length_mismatch(self):
        with pytest.raises(LengthMismatch):
            self.token.batch_transfer(ALICE, [BOB, CAROL], [100])
        assert self.token.balance_of(BOB) == 0

    def test_failing_item_unwinds_whole_batch(self):
        """A later failure undoes the transfers already applied in the batch."""
        self.token.freeze_address(ENFORCER, CAROL)
        with pytest.raises(AddressFrozen):
            self.token.batch_transfer(ALICE, [BOB, CAROL], [100, 200])
        assert self.token.balance_of(BOB) == 0
        assert self.token.balance_of(ALICE) == 1000


class TestForcedTransfer:
    def setup_method(self):
        self.token = deploy()

    def test_forced_transfer_from_frozen_address(self):
        self.token.freeze_address(ENFORCER, ALICE)
        self.token.forced_transfer(ADMIN, ALICE, BOB, 400)
        assert self.token.balance_of(ALICE) == 600
        assert self.token.balance_of(BOB) == 400
        assert isinstance(self.token.events.last(), ForcedTransfer)

    def test_forced_transfer_while_paused(self):
        self.token.pause(PAUSER)
        self.token.forced_transfer(ADMIN, ALICE, BOB, 10)
        assert self.token.balance_of(BOB) == 10

    def test_releases_only_the_shortfall(self):
        """900 frozen, 100 active: moving 300 releases exactly 200."""
        self.token.freeze_partial_tokens(ENFORCER, ALICE, 900)
        self.token.forced_transfer(ADMIN, ALICE, BOB, 300)

        assert self.token.balance_of(ALICE) == 700
        assert self.token.get_frozen_tokens(ALICE) == 700
        released = self.token.events.of_type(TokensUnfrozen)[-1]
        assert released.amount == 200

    def test_no_release_when_active_balance_covers(self):
        self.token.freeze_partial_tokens(ENFORCER, ALICE, 100)
        unfrozen_before = len(self.token.events.of_type(TokensUnfrozen))
        self.token.forced_transfer(ADMIN, ALICE, BOB, 900)
        assert self.token.get_frozen_tokens(ALICE) == 100
        assert len(self.token.events.of_type(TokensUnfrozen)) == unfrozen_before

    def test_self_transfer_releases_nothing(self):
        self.token.freeze_partial_tokens(ENFORCER, ALICE, 600)
        unfrozen_before = len(self.token.events.of_type(TokensUnfrozen))
        self.token.forced_transfer(ADMIN, ALICE, ALICE, 1000)

        assert self.token.balance_of(ALICE) == 1000
        assert self.token.get_frozen_tokens(ALICE) == 600
        assert self.token.get_active_balance(ALICE) == 400
        assert len(self.token.events.of_type(TokensUnfrozen)) == unfrozen_before

    def test_freeze_bound_holds_after_forced_transfer(self):
        self.token.freeze_partial_tokens(ENFORCER, ALICE, 1000)
        self.token.forced_transfer(ADMIN, ALICE, BOB, 1000)
        assert self.token.balance_of(ALICE) == 0
        assert self.token.get_frozen_tokens(ALICE) == 0

    def test_requires_full_balance(self):
        with pytest.raises(InsufficientBalance):
            self.token.forced_transfer(ADMIN, ALICE, BOB, 1001)

    def test_requires_admin(self):
        with pytest.raises(Unauthorized):
            self.token.forced_transfer(ENFORCER, ALICE, BOB, 1)

    def test_rejected_when_deactivated(self):
        self.token.pause(PAUSER)
        self.token.deactivate(ADMIN)
        with pytest.raises(ContractDeactivated):
            self.token.forced_transfer(ADMIN, ALICE, BOB, 1)


class TestMetadata:
    def setup_method(self):
        self.token = deploy()

    def test_set_name_requires_admin(self):
        with pytest.raises(Unauthorized):
            self.token.set_name(ALICE, "Other")
        self.token.set_name(ADMIN, "Bond 2031")
        assert self.token.name() == "Bond 2031"
        event = self.token.events.last()
        assert isinstance(event, NameSet)
        assert (event.previous, event.new) == ("Bond 2030", "Bond 2031")

    def test_set_symbol(self):
        self.token.set_symbol(ADMIN, "BND31")
        assert self.token.symbol() == "BND31"

    def test_extra_information_role(self):
        with pytest.raises(Unauthorized):
            self.token.set_terms(ALICE, "0xdead")
        self.token.grant_role(ADMIN, EXTRA_INFORMATION_ROLE, CAROL)
        self.token.set_terms(CAROL, "0xbeef")
        self.token.set_information(CAROL, "Prospectus v2")
        self.token.set_token_id(CAROL, "ISIN-CH0000000000")

        assert self.token.terms() == "0xbeef"
        assert self.token.information() == "Prospectus v2"
        assert self.token.token_id() == "ISIN-CH0000000000"
        assert len(self.token.events.of_type(TermsSet)) == 1

    def test_info_and_account_views(self):
        self.token.freeze_partial_tokens(ENFORCER, ALICE, 250)
        info = self.token.info()
        assert info.total_supply == 1000
        assert info.symbol == "BND30"

        view = self.token.account(ALICE)
        assert view.balance == 1000
        assert view.frozen_tokens == 250
        assert view.active_balance == 750
        assert view.frozen is False


class BlockingValidator:
    """Validator written against `TransferValidator` alone: rejects one recipient."""

    def __init__(self, blocked: str) -> None:
        self.blocked = blocked
        self.checked: list[tuple[str, str, int]] = []

    def detect_transfer_restriction(self, from_: str, to: str, amount: int) -> int:
        return RestrictionCode.RECIPIENT_INVALID if to == self.blocked else RestrictionCode.TRANSFER_OK

    def message_for_restriction_code(self, code: int) -> str:
        return "blocked" if code else "ok"

    def require_transfer_allowed(self, from_: str, to: str, amount: int) -> None:
        self.checked.append((from_, to, amount))
        code = self.detect_transfer_restriction(from_, to, amount)
        if code:
            raise TransferRestricted(code, self.message_for_restriction_code(code))


class TestLedgerWithCustomValidator:
    def setup_method(self):
        storage = ContractStorage()
        events = EventLog()
        access = AccessControlRegistry(storage, events)
        access.initialize(ADMIN)
        self.validator = BlockingValidator(blocked="0xbad")
        self.ledger = TokenLedger(
            storage,
            events,
            access,
            PauseLifecycle(storage, events, access),
            EnforcementLedger(storage, events, access, balances=storage),
            validator=self.validator,
        )
        self.ledger.initialize(name="T", symbol="T")
        self.ledger._update(ZERO_ADDRESS, ALICE, 100)

    def test_validator_is_consulted(self):
        self.ledger.transfer(ALICE, BOB, 10)
        assert self.validator.checked == [(ALICE, BOB, 10)]
        assert self.ledger.balance_of(BOB) == 10

    def test_validator_rejection(self):
        with pytest.raises(TransferRestricted) as exc:
            self.ledger.transfer(ALICE, "0xbad", 10)
        assert exc.value.restriction_code == RestrictionCode.RECIPIENT_INVALID
        assert self.ledger.balance_of(ALICE) == 100
