"""
Local rule engines.

Pluggable implementations of the external engine surface
(`detect_transfer_restriction` / `message_for_restriction_code`). They run
in-process and are mainly used as reference engines and in tests.
"""

from __future__ import annotations

from typing import Iterable

from cmtat_ledger.core.schema import is_zero_address

# Engine-specific codes live above the token's own table.
CODE_SENDER_NOT_LISTED = 21
CODE_RECIPIENT_NOT_LISTED = 22
CODE_AMOUNT_ABOVE_LIMIT = 23

ENGINE_MESSAGES = {
    CODE_SENDER_NOT_LISTED: "The sender is not on the rule engine allowlist",
    CODE_RECIPIENT_NOT_LISTED: "The recipient is not on the rule engine allowlist",
    CODE_AMOUNT_ABOVE_LIMIT: "The amount exceeds the per-transfer limit",
}


class AllowlistRuleEngine:
    """
    Rule engine that only lets listed addresses send and receive.

    Mints skip the sender check and burns skip the recipient check. An optional
    `max_amount` caps every single transfer.
    """

    def __init__(
        self,
        allowed: Iterable[str] = (),
        max_amount: int | None = None,
        address: str | None = None,
    ) -> None:
        self.allowed: set[str] = set(allowed)
        self.max_amount = max_amount
        self.address = address

    def allow(self, *accounts: str) -> None:
        self.allowed.update(accounts)

    def disallow(self, *accounts: str) -> None:
        self.allowed.difference_update(accounts)

    def detect_transfer_restriction(self, from_: str, to: str, amount: int) -> int:
        if not is_zero_address(from_) and from_ not in self.allowed:
            return CODE_SENDER_NOT_LISTED
        if not is_zero_address(to) and to not in self.allowed:
            return CODE_RECIPIENT_NOT_LISTED
        if self.max_amount is not None and amount > self.max_amount:
            return CODE_AMOUNT_ABOVE_LIMIT
        return 0

    def message_for_restriction_code(self, code: int) -> str:
        return ENGINE_MESSAGES.get(code, "Unknown restriction")
