"""
Narrow interfaces between compliance components.

The ledger and the validation layer depend on these protocols rather than on
concrete classes, so each collaborator can be replaced by a fake in tests.
"""

from __future__ import annotations

from typing import Protocol


class AccessControlPort(Protocol):
    def has_role(self, role: int, account: str) -> bool: ...

    def require_role(self, role: int, account: str) -> None: ...


class PauseQuery(Protocol):
    def is_paused(self) -> bool: ...

    def is_deactivated(self) -> bool: ...


class BalanceQuery(Protocol):
    def balance_of(self, account: str) -> int: ...


class EnforcementPort(Protocol):
    def is_frozen(self, account: str) -> bool: ...

    def get_frozen_tokens(self, account: str) -> int: ...

    def get_active_balance(self, account: str, total_balance: int) -> int: ...

    def unfreeze_for_transfer(self, account: str, amount: int, sender: str) -> int: ...


class AllowlistQuery(Protocol):
    def is_allowlist_enabled(self) -> bool: ...

    def is_allowlisted(self, account: str) -> bool: ...


class TransferValidator(Protocol):
    """Consulted by the ledger before a plain transfer is committed."""

    def detect_transfer_restriction(self, from_: str, to: str, amount: int) -> int: ...

    def message_for_restriction_code(self, code: int) -> str: ...

    def require_transfer_allowed(self, from_: str, to: str, amount: int) -> None: ...


class ExternalEngine(Protocol):
    """Surface of an external rule or debt engine."""

    def detect_transfer_restriction(self, from_: str, to: str, amount: int) -> int: ...

    def message_for_restriction_code(self, code: int) -> str: ...
