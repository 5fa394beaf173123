"""
End-to-end scenarios and ledger-wide properties.

Validates:
- The six reference compliance scenarios
- Supply conservation and the freeze bound over a mixed operation sequence
- Lifecycle monotonicity
- All-or-nothing execution of every public call
"""

from __future__ import annotations

import random

import pytest

from cmtat_ledger.core.errors import (
    AddressFrozen,
    ComplianceError,
    ContractDeactivated,
    ContractPaused,
    InsufficientActiveBalance,
    InvariantViolation,
    LengthMismatch,
    Unauthorized,
)
from cmtat_ledger.core.schema import (
    BURNER_ROLE,
    DEFAULT_ADMIN_ROLE,
    ENFORCER_ROLE,
    MINTER_ROLE,
    PAUSER_ROLE,
    ROLE_NAMES,
    RestrictionCode,
)
from cmtat_ledger.ledger.cmtat import CMTAT

ADMIN = "0xad"
MINTER = "0x111"
BURNER = "0x222"
ENFORCER = "0xe0"
PAUSER = "0x9a05e"
A = "0xa"
B = "0xb"
C = "0xc"


def deploy(**kwargs) -> CMTAT:
    token = CMTAT.deploy(admin=ADMIN, name="CMTAT Token", symbol="CMTAT", **kwargs)
    token.grant_role(ADMIN, MINTER_ROLE, MINTER)
    token.grant_role(ADMIN, BURNER_ROLE, BURNER)
    token.grant_role(ADMIN, ENFORCER_ROLE, ENFORCER)
    token.grant_role(ADMIN, PAUSER_ROLE, PAUSER)
    return token


class TestReferenceScenarios:
    def test_partial_freeze_limits_transfers(self):
        """Scenario 1: 300 of 1000 frozen; 800 rejected, 700 accepted."""
        token = deploy()
        token.mint(MINTER, A, 1000)
        token.freeze_partial_tokens(ENFORCER, A, 300)

        with pytest.raises(InsufficientActiveBalance):
            token.transfer(A, B, 800)

        token.transfer(A, B, 700)
        assert token.balance_of(A) == 300
        assert token.get_frozen_tokens(A) == 300
        assert token.get_active_balance(A) == 0

    def test_frozen_address_cannot_receive_mint_or_send(self):
        """Scenario 2: minting to a frozen address is rejected; so is any transfer out."""
        token = deploy()
        token.mint(MINTER, B, 50)
        token.freeze_address(ENFORCER, B)

        with pytest.raises(AddressFrozen) as exc:
            token.mint(MINTER, B, 100)
        assert exc.value.restriction_code == RestrictionCode.RECIPIENT_FROZEN
        assert token.balance_of(B) == 50

        with pytest.raises(AddressFrozen) as exc:
            token.transfer(B, A, 1)
        assert exc.value.restriction_code == RestrictionCode.SENDER_FROZEN
        assert token.detect_transfer_restriction(B, A, 1) == RestrictionCode.SENDER_FROZEN
        assert token.message_for_restriction_code(RestrictionCode.SENDER_FROZEN) == (
            "The sender address is frozen"
        )

    def test_pause_blocks_transfers_until_unpaused(self):
        """Scenario 3."""
        token = deploy()
        token.mint(MINTER, A, 100)
        token.pause(PAUSER)

        with pytest.raises(ContractPaused) as exc:
            token.transfer(A, B, 10)
        assert exc.value.restriction_code == RestrictionCode.CONTRACT_PAUSED

        token.unpause(PAUSER)
        token.transfer(A, B, 10)
        assert token.balance_of(B) == 10

    def test_deactivation_is_terminal(self):
        """Scenario 4."""
        token = deploy()
        token.pause(PAUSER)
        token.deactivate(ADMIN)

        with pytest.raises(ContractDeactivated):
            token.unpause(PAUSER)
        with pytest.raises(ContractDeactivated):
            token.deactivate(ADMIN)
        assert token.is_deactivated()

    def test_revoked_minter_is_unauthorized(self):
        """Scenario 5."""
        token = deploy()
        m = "0x3"
        token.grant_role(ADMIN, MINTER_ROLE, m)
        token.mint(m, A, 50)
        assert token.balance_of(A) == 50

        token.revoke_role(ADMIN, MINTER_ROLE, m)
        with pytest.raises(Unauthorized):
            token.mint(m, A, 50)
        assert token.balance_of(A) == 50

    def test_mismatched_batch_freeze_changes_nothing(self):
        """Scenario 6."""
        token = deploy()
        with pytest.raises(LengthMismatch):
            token.batch_set_address_frozen(ENFORCER, [A, B, C], [True, True])
        assert not any(token.is_frozen(x) for x in (A, B, C))


class TestAdminUniversality:
    def test_admin_satisfies_every_role(self):
        token = deploy()
        for role in ROLE_NAMES:
            assert token.has_role(role, ADMIN)

    def test_universality_cannot_be_revoked_per_role(self):
        """Revoking a role from the admin does not strip it: admin still passes the check."""
        token = deploy()
        token.revoke_role(ADMIN, MINTER_ROLE, ADMIN)
        assert token.has_role(MINTER_ROLE, ADMIN)
        token.mint(ADMIN, A, 1)
        assert token.balance_of(A) == 1

    def test_only_losing_default_admin_removes_it(self):
        token = deploy()
        token.renounce_role(ADMIN, DEFAULT_ADMIN_ROLE, ADMIN)
        assert not token.has_role(MINTER_ROLE, ADMIN)
        with pytest.raises(Unauthorized):
            token.mint(ADMIN, A, 1)


class TestAtomicity:
    def test_failed_call_restores_state_and_drops_events(self):
        token = deploy(initial_supply=100, recipient=A)
        token.freeze_address(ENFORCER, C)
        snapshot = token.storage.snapshot()
        history = list(token.events.history)

        with pytest.raises(AddressFrozen):
            token.batch_transfer(A, [B, B, C], [10, 20, 30])

        assert token.storage.snapshot() == snapshot
        assert token.events.history == history
        assert token.events.pending == []

    def test_failed_batch_freeze_midway_unwinds_earlier_items(self):
        token = deploy(initial_supply=100, recipient=A)
        with pytest.raises(ComplianceError):
            token.batch_freeze_partial_tokens(ENFORCER, [A, B], [50, 1])
        assert token.get_frozen_tokens(A) == 0

    def test_failing_subscriber_reverts_the_call(self):
        token = deploy(initial_supply=100, recipient=A)

        def failing(transaction_id, entrypoint, batch):
            raise RuntimeError("journal down")

        token.events.subscribe(failing)
        with pytest.raises(RuntimeError):
            token.transfer(A, B, 10)
        assert token.balance_of(A) == 100
        assert token.balance_of(B) == 0

    def test_subscriber_receives_one_batch_per_call(self):
        token = deploy(initial_supply=100, recipient=A)
        batches = []
        token.events.subscribe(lambda tx, entrypoint, batch: batches.append((entrypoint, batch)))

        token.batch_transfer(A, [B, C], [10, 20])
        assert len(batches) == 1
        entrypoint, batch = batches[0]
        assert entrypoint == "batch_transfer"
        assert [e.event_name for e in batch] == ["Transfer", "Transfer"]

    def test_queries_do_not_publish(self):
        token = deploy(initial_supply=100, recipient=A)
        batches = []
        token.events.subscribe(lambda tx, entrypoint, batch: batches.append(batch))
        token.detect_transfer_restriction(A, B, 1)
        token.balance_of(A)
        assert batches == []

    def test_invariant_check_reverts_corrupting_call(self):
        token = deploy(initial_supply=100, recipient=A, check_invariants=True)
        with pytest.raises(InvariantViolation):
            with token.transaction("corrupt"):
                token.storage.map("balances", 0).set(B, 1)
        assert token.balance_of(B) == 0


class TestProperties:
    """Randomised operation sequences must preserve the ledger invariants."""

    ACCOUNTS = [A, B, C, "0xd", "0xe"]

    def _random_op(self, token: CMTAT, rng: random.Random) -> None:
        x, y = rng.sample(self.ACCOUNTS, 2)
        amount = rng.randint(0, 400)
        op = rng.choice([
            lambda: token.mint(MINTER, x, amount),
            lambda: token.burn(BURNER, x, amount),
            lambda: token.transfer(x, y, amount),
            lambda: token.freeze_partial_tokens(ENFORCER, x, amount),
            lambda: token.unfreeze_partial_tokens(ENFORCER, x, amount),
            lambda: token.set_address_frozen(ENFORCER, x, rng.random() < 0.3),
            lambda: token.forced_transfer(ADMIN, x, y, amount),
            lambda: token.forced_burn(ADMIN, x, amount),
            lambda: token.batch_transfer(x, [y, x], [amount, amount]),
        ])
        try:
            op()
        except InvariantViolation:
            raise
        except ComplianceError:
            pass

    @pytest.mark.parametrize("seed", range(5))
    def test_conservation_and_freeze_bound(self, seed):
        rng = random.Random(seed)
        token = deploy(initial_supply=1000, recipient=A, check_invariants=True)
        for _ in range(200):
            self._random_op(token, rng)
            balances = token.ledger.holders()
            assert sum(balances.values()) == token.total_supply()
            for account in self.ACCOUNTS:
                assert token.get_frozen_tokens(account) <= token.balance_of(account)

    def test_lifecycle_monotonicity(self):
        token = deploy()
        token.pause(PAUSER)
        token.deactivate(ADMIN)
        for action in (token.pause, token.unpause):
            with pytest.raises(ComplianceError):
                action(PAUSER)
            assert token.is_deactivated()
