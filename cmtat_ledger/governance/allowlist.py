"""
Allowlist — optional holder allowlist managed by ALLOWLIST_MANAGER.

While the allowlist is enabled, transfers require both parties to be listed;
the validation layer reports SENDER_INVALID / RECIPIENT_INVALID otherwise.
Disabled by default.
"""

from __future__ import annotations

import logging
from typing import Sequence

from cmtat_ledger.core.errors import InvalidAddress
from cmtat_ledger.core.events import EventLog
from cmtat_ledger.core.ports import AccessControlPort
from cmtat_ledger.core.schema import (
    ALLOWLIST_MANAGER_ROLE,
    AddressAllowlisted,
    AllowlistEnabled,
    is_zero_address,
)
from cmtat_ledger.core.storage import ContractStorage
from cmtat_ledger.governance.enforcement import require_same_length

logger = logging.getLogger(__name__)

ALLOWLIST_SLOT = "allowlist_enabled"


class AllowlistModule:
    def __init__(
        self,
        storage: ContractStorage,
        events: EventLog,
        access: AccessControlPort,
    ) -> None:
        self._slots = storage.slots
        self._listed = storage.map("allowlist", False)
        self._events = events
        self._access = access

    def is_allowlist_enabled(self) -> bool:
        return bool(self._slots.get(ALLOWLIST_SLOT))

    def is_allowlisted(self, account: str) -> bool:
        return self._listed.get(account)

    def enable_allowlist(self, caller: str, enabled: bool) -> None:
        self._access.require_role(ALLOWLIST_MANAGER_ROLE, caller)
        self._slots.set(ALLOWLIST_SLOT, bool(enabled))
        self._events.emit(AllowlistEnabled(enabled=bool(enabled), sender=caller))
        logger.info("Allowlist %s by=%s", "enabled" if enabled else "disabled", caller)

    def set_address_allowlist(self, caller: str, account: str, status: bool) -> None:
        self._access.require_role(ALLOWLIST_MANAGER_ROLE, caller)
        self._set(caller, account, status)

    def batch_set_address_allowlist(
        self,
        caller: str,
        accounts: Sequence[str],
        statuses: Sequence[bool],
    ) -> None:
        self._access.require_role(ALLOWLIST_MANAGER_ROLE, caller)
        require_same_length(accounts, statuses)
        for account, status in zip(accounts, statuses):
            self._set(caller, account, status)

    def _set(self, caller: str, account: str, status: bool) -> None:
        if is_zero_address(account):
            raise InvalidAddress("Cannot allowlist the zero address")
        self._listed.set(account, bool(status))
        self._events.emit(AddressAllowlisted(account=account, status=bool(status), sender=caller))
