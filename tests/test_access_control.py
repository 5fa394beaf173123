"""
Tests for the Access Control Registry.

Validates:
- Admin universality (DEFAULT_ADMIN satisfies every role check)
- Admin-gated grant / revoke
- Self-service renounce
- Idempotent grants and revocations (events only on change)
- Role-admin recursion
"""

from __future__ import annotations

import pytest

from cmtat_ledger.core.errors import InvalidAddress, Unauthorized
from cmtat_ledger.core.events import EventLog
from cmtat_ledger.core.schema import (
    BURNER_ROLE,
    DEFAULT_ADMIN_ROLE,
    MINTER_ROLE,
    PAUSER_ROLE,
    ROLE_NAMES,
    RoleAdminChanged,
    RoleGranted,
    RoleRevoked,
    ZERO_ADDRESS,
)
from cmtat_ledger.core.storage import ContractStorage
from cmtat_ledger.governance.access_control import AccessControlRegistry

ADMIN = "0xad"
ALICE = "0xa11ce"
BOB = "0xb0b"


class TestAccessControlRegistry:
    """Role membership and admin gating."""

    def setup_method(self):
        self.events = EventLog()
        self.access = AccessControlRegistry(ContractStorage(), self.events)
        self.access.initialize(ADMIN)
        self.events.commit()

    def test_admin_has_every_role(self):
        """DEFAULT_ADMIN implicitly satisfies every role check."""
        for role in ROLE_NAMES:
            assert self.access.has_role(role, ADMIN)

    def test_admin_universality_is_not_explicit_membership(self):
        assert self.access.has_role(MINTER_ROLE, ADMIN)
        assert not self.access.is_member(MINTER_ROLE, ADMIN)

    def test_unknown_account_has_no_role(self):
        assert not self.access.has_role(MINTER_ROLE, ALICE)
        assert not self.access.has_role(DEFAULT_ADMIN_ROLE, ALICE)

    def test_grant_role(self):
        assert self.access.grant_role(ADMIN, MINTER_ROLE, ALICE) is True
        assert self.access.has_role(MINTER_ROLE, ALICE)
        assert not self.access.has_role(BURNER_ROLE, ALICE)

        event = self.events.pending[-1]
        assert isinstance(event, RoleGranted)
        assert event.role == MINTER_ROLE
        assert event.account == ALICE
        assert event.sender == ADMIN

    def test_grant_is_idempotent(self):
        """A second grant changes nothing and emits nothing."""
        self.access.grant_role(ADMIN, MINTER_ROLE, ALICE)
        self.events.commit()
        assert self.access.grant_role(ADMIN, MINTER_ROLE, ALICE) is False
        assert self.events.pending == []

    def test_grant_requires_role_admin(self):
        with pytest.raises(Unauthorized):
            self.access.grant_role(ALICE, MINTER_ROLE, BOB)
        assert not self.access.has_role(MINTER_ROLE, BOB)

    def test_role_holder_cannot_grant_own_role(self):
        self.access.grant_role(ADMIN, MINTER_ROLE, ALICE)
        with pytest.raises(Unauthorized):
            self.access.grant_role(ALICE, MINTER_ROLE, BOB)

    def test_grant_to_zero_address_rejected(self):
        with pytest.raises(InvalidAddress):
            self.access.grant_role(ADMIN, MINTER_ROLE, ZERO_ADDRESS)

    def test_revoke_role(self):
        self.access.grant_role(ADMIN, PAUSER_ROLE, ALICE)
        assert self.access.revoke_role(ADMIN, PAUSER_ROLE, ALICE) is True
        assert not self.access.has_role(PAUSER_ROLE, ALICE)
        assert isinstance(self.events.pending[-1], RoleRevoked)

    def test_revoke_missing_role_is_noop(self):
        assert self.access.revoke_role(ADMIN, PAUSER_ROLE, ALICE) is False
        assert self.events.pending == []

    def test_revoke_requires_role_admin(self):
        self.access.grant_role(ADMIN, PAUSER_ROLE, ALICE)
        with pytest.raises(Unauthorized):
            self.access.revoke_role(BOB, PAUSER_ROLE, ALICE)
        assert self.access.has_role(PAUSER_ROLE, ALICE)

    def test_renounce_own_role(self):
        self.access.grant_role(ADMIN, BURNER_ROLE, ALICE)
        assert self.access.renounce_role(ALICE, BURNER_ROLE, ALICE) is True
        assert not self.access.has_role(BURNER_ROLE, ALICE)

    def test_cannot_renounce_for_someone_else(self):
        """Renounce bypasses admin gating, so it must be self-only — even for the admin."""
        self.access.grant_role(ADMIN, BURNER_ROLE, ALICE)
        with pytest.raises(Unauthorized):
            self.access.renounce_role(ADMIN, BURNER_ROLE, ALICE)
        assert self.access.has_role(BURNER_ROLE, ALICE)

    def test_admin_renouncing_admin_loses_universality(self):
        self.access.renounce_role(ADMIN, DEFAULT_ADMIN_ROLE, ADMIN)
        assert not self.access.has_role(MINTER_ROLE, ADMIN)

    def test_default_role_admin_is_default_admin(self):
        assert self.access.get_role_admin(MINTER_ROLE) == DEFAULT_ADMIN_ROLE

    def test_custom_role_admin(self):
        """A holder of the configured admin role may grant the governed role."""
        self.access.set_role_admin(MINTER_ROLE, PAUSER_ROLE)
        assert isinstance(self.events.pending[-1], RoleAdminChanged)
        self.access.grant_role(ADMIN, PAUSER_ROLE, ALICE)

        assert self.access.grant_role(ALICE, MINTER_ROLE, BOB) is True
        assert self.access.has_role(MINTER_ROLE, BOB)
