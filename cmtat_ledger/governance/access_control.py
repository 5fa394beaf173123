"""
Access Control Registry — role membership and the role-admin hierarchy.

Every privileged token operation passes through this registry before it
touches state. Roles are opaque integer ids; each role has an admin role
(DEFAULT_ADMIN_ROLE unless configured) whose holders may grant and revoke it.

Holders of DEFAULT_ADMIN_ROLE satisfy every role check: `has_role(r, a)` is
really `r OR DEFAULT_ADMIN`. This cannot be disabled per role. Callers that
need to know whether a role was granted explicitly use `is_member`.
"""

from __future__ import annotations

import logging

from cmtat_ledger.core.errors import InvalidAddress, Unauthorized
from cmtat_ledger.core.events import EventLog
from cmtat_ledger.core.schema import (
    DEFAULT_ADMIN_ROLE,
    RoleAdminChanged,
    RoleGranted,
    RoleRevoked,
    is_zero_address,
    role_name,
)
from cmtat_ledger.core.storage import ContractStorage

logger = logging.getLogger(__name__)


class AccessControlRegistry:
    """
    Role registry with admin-gated grant/revoke and self-service renounce.

    Grants and revocations are idempotent: an event is emitted only when
    membership actually changes.
    """

    def __init__(self, storage: ContractStorage, events: EventLog) -> None:
        self._grants = storage.map("role_grants", False)
        self._admins = storage.map("role_admins", DEFAULT_ADMIN_ROLE)
        self._events = events

    # ── Queries ────────────────────────────────────────────────

    def is_member(self, role: int, account: str) -> bool:
        """Whether `account` was explicitly granted `role`."""
        return self._grants.get((role, account))

    def has_role(self, role: int, account: str) -> bool:
        return self.is_member(role, account) or self.is_member(DEFAULT_ADMIN_ROLE, account)

    def require_role(self, role: int, account: str) -> None:
        if not self.has_role(role, account):
            raise Unauthorized(f"Account {account} lacks role {role_name(role)}")

    def get_role_admin(self, role: int) -> int:
        return self._admins.get(role)

    # ── Mutations ──────────────────────────────────────────────

    def grant_role(self, caller: str, role: int, account: str) -> bool:
        """Grant `role` to `account`; returns True if membership changed."""
        self.require_role(self.get_role_admin(role), caller)
        return self._grant(role, account, caller)

    def revoke_role(self, caller: str, role: int, account: str) -> bool:
        """Revoke `role` from `account`; returns True if membership changed."""
        self.require_role(self.get_role_admin(role), caller)
        return self._revoke(role, account, caller)

    def renounce_role(self, caller: str, role: int, account: str) -> bool:
        """Self-service revoke. `account` must be the caller."""
        if caller != account:
            raise Unauthorized("Roles can only be renounced by their holder")
        return self._revoke(role, account, caller)

    def initialize(self, admin: str) -> None:
        """Grant DEFAULT_ADMIN_ROLE to the deploying admin."""
        self._grant(DEFAULT_ADMIN_ROLE, admin, admin)

    def set_role_admin(self, role: int, admin_role: int) -> None:
        """Configure the admin role of `role`. Initialisation only."""
        previous = self.get_role_admin(role)
        self._admins.set(role, admin_role)
        self._events.emit(
            RoleAdminChanged(role=role, previous_admin_role=previous, new_admin_role=admin_role)
        )

    def _grant(self, role: int, account: str, sender: str) -> bool:
        if is_zero_address(account):
            raise InvalidAddress("Cannot grant a role to the zero address")
        if self.is_member(role, account):
            return False
        self._grants.set((role, account), True)
        self._events.emit(RoleGranted(role=role, account=account, sender=sender))
        logger.info("Role granted: role=%s account=%s by=%s", role_name(role), account, sender)
        return True

    def _revoke(self, role: int, account: str, sender: str) -> bool:
        if not self.is_member(role, account):
            return False
        self._grants.set((role, account), False)
        self._events.emit(RoleRevoked(role=role, account=account, sender=sender))
        logger.info("Role revoked: role=%s account=%s by=%s", role_name(role), account, sender)
        return True
