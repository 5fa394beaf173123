"""
Token Schema — identifiers, enumerations and pydantic models shared by every
compliance component.

These definitions are the canonical vocabulary of the token: role ids,
restriction codes, the lifecycle state, address/amount normalisation, and the
event records that indexers and the journal consume.

References:
    ERC-20   — Transfer / Approval events, zero-address mint/burn convention
    ERC-1404 — Restriction codes and messages
    CMTAT    — Role set, freeze and lifecycle modules
"""

from __future__ import annotations

import enum
import hashlib
from typing import Any, ClassVar

from pydantic import BaseModel, Field, computed_field

from cmtat_ledger.core.errors import InvalidAddress, InvalidAmount


# ════════════════════════════════════════════════════════════════
# Numeric domain
# ════════════════════════════════════════════════════════════════

MAX_U256 = 2**256 - 1
FIELD_BITS = 252  # addresses and role ids fit a field element

ZERO_ADDRESS = "0x0"


def to_address(value: str | int) -> str:
    """
    Normalise an address to its canonical lowercase hex form.

    Accepts ints and hex strings ("0x00AB" → "0xab"). Anything that is not a
    hex-encoded field element raises InvalidAddress.
    """
    if isinstance(value, bool):
        raise InvalidAddress(f"Invalid address: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip().lower()
        if not text.startswith("0x") or len(text) == 2:
            raise InvalidAddress(f"Invalid address: {value!r}")
        try:
            number = int(text, 16)
        except ValueError:
            raise InvalidAddress(f"Invalid address: {value!r}") from None
    else:
        raise InvalidAddress(f"Invalid address: {value!r}")

    if number < 0 or number.bit_length() > FIELD_BITS:
        raise InvalidAddress(f"Address out of range: {value!r}")
    return hex(number)


def is_zero_address(address: str) -> bool:
    return address == ZERO_ADDRESS


def require_amount(amount: Any) -> int:
    """Validate an unsigned 256-bit amount."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer, got {type(amount).__name__}")
    if amount < 0 or amount > MAX_U256:
        raise InvalidAmount(f"Amount out of u256 range: {amount}")
    return amount


# ════════════════════════════════════════════════════════════════
# Roles
# ════════════════════════════════════════════════════════════════


def role_id(name: str) -> int:
    """Derive a stable 250-bit role identifier from a role name."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest, "big") & ((1 << 250) - 1)


DEFAULT_ADMIN_ROLE = 0
MINTER_ROLE = role_id("MINTER_ROLE")
BURNER_ROLE = role_id("BURNER_ROLE")
PAUSER_ROLE = role_id("PAUSER_ROLE")
ENFORCER_ROLE = role_id("ENFORCER_ROLE")
ERC20_ENFORCER_ROLE = role_id("ERC20ENFORCER_ROLE")
SNAPSHOOTER_ROLE = role_id("SNAPSHOOTER_ROLE")
DOCUMENT_ROLE = role_id("DOCUMENT_ROLE")
EXTRA_INFORMATION_ROLE = role_id("EXTRA_INFORMATION_ROLE")
ALLOWLIST_MANAGER_ROLE = role_id("ALLOWLIST_MANAGER_ROLE")
DEBT_ROLE = role_id("DEBT_ROLE")
CROSS_CHAIN_ROLE = role_id("CROSS_CHAIN_ROLE")

ROLE_NAMES: dict[int, str] = {
    DEFAULT_ADMIN_ROLE: "DEFAULT_ADMIN",
    MINTER_ROLE: "MINTER",
    BURNER_ROLE: "BURNER",
    PAUSER_ROLE: "PAUSER",
    ENFORCER_ROLE: "ENFORCER",
    ERC20_ENFORCER_ROLE: "ERC20_ENFORCER",
    SNAPSHOOTER_ROLE: "SNAPSHOOTER",
    DOCUMENT_ROLE: "DOCUMENT",
    EXTRA_INFORMATION_ROLE: "EXTRA_INFORMATION",
    ALLOWLIST_MANAGER_ROLE: "ALLOWLIST_MANAGER",
    DEBT_ROLE: "DEBT",
    CROSS_CHAIN_ROLE: "CROSS_CHAIN",
}


def role_name(role: int) -> str:
    return ROLE_NAMES.get(role, hex(role))


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class LifecycleState(str, enum.Enum):
    """Contract lifecycle. DEACTIVATED is terminal."""

    ACTIVE = "active"
    PAUSED = "paused"
    DEACTIVATED = "deactivated"


class RestrictionCode(enum.IntEnum):
    """ERC-1404 restriction codes (0 means the transfer is allowed)."""

    TRANSFER_OK = 0
    INSUFFICIENT_ACTIVE_BALANCE = 1
    SENDER_FROZEN = 2
    RECIPIENT_FROZEN = 3
    CONTRACT_DEACTIVATED = 4
    RULE_ENGINE_RESTRICTION = 5
    DEBT_ENGINE_RESTRICTION = 6
    RECIPIENT_INVALID = 7
    SENDER_INVALID = 8
    CONTRACT_PAUSED = 9


RESTRICTION_MESSAGES: dict[int, str] = {
    RestrictionCode.TRANSFER_OK: "No restriction",
    RestrictionCode.INSUFFICIENT_ACTIVE_BALANCE: (
        "The sender's active (unfrozen) balance is insufficient"
    ),
    RestrictionCode.SENDER_FROZEN: "The sender address is frozen",
    RestrictionCode.RECIPIENT_FROZEN: "The recipient address is frozen",
    RestrictionCode.CONTRACT_DEACTIVATED: "The contract is deactivated",
    RestrictionCode.RULE_ENGINE_RESTRICTION: "The transfer is restricted by the rule engine",
    RestrictionCode.DEBT_ENGINE_RESTRICTION: "The transfer is restricted by the debt engine",
    RestrictionCode.RECIPIENT_INVALID: "The recipient is not allowed",
    RestrictionCode.SENDER_INVALID: "The sender is not allowed",
    RestrictionCode.CONTRACT_PAUSED: "The contract is paused",
}

UNKNOWN_RESTRICTION_MESSAGE = "Unknown restriction"


# ════════════════════════════════════════════════════════════════
# Events
# ════════════════════════════════════════════════════════════════


class TokenEvent(BaseModel):
    """
    Base class for every event observed by off-chain indexers.

    Subclasses set `event_name`; `payload()` is the JSON-ready body stored in
    the journal.
    """

    event_name: ClassVar[str] = "TokenEvent"

    def payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    def accounts(self) -> list[str]:
        """Addresses touched by this event (used for journal indexing)."""
        fields = ("account", "from_", "to", "owner", "spender", "sender")
        return [
            value for name in fields
            if isinstance(value := getattr(self, name, None), str)
        ]


class Transfer(TokenEvent):
    event_name: ClassVar[str] = "Transfer"
    from_: str
    to: str
    value: int


class Approval(TokenEvent):
    event_name: ClassVar[str] = "Approval"
    owner: str
    spender: str
    value: int


class RoleGranted(TokenEvent):
    event_name: ClassVar[str] = "RoleGranted"
    role: int
    account: str
    sender: str


class RoleRevoked(TokenEvent):
    event_name: ClassVar[str] = "RoleRevoked"
    role: int
    account: str
    sender: str


class RoleAdminChanged(TokenEvent):
    event_name: ClassVar[str] = "RoleAdminChanged"
    role: int
    previous_admin_role: int
    new_admin_role: int


class Paused(TokenEvent):
    event_name: ClassVar[str] = "Paused"
    account: str


class Unpaused(TokenEvent):
    event_name: ClassVar[str] = "Unpaused"
    account: str


class Deactivated(TokenEvent):
    event_name: ClassVar[str] = "Deactivated"
    account: str


class AddressFrozen(TokenEvent):
    event_name: ClassVar[str] = "AddressFrozen"
    account: str
    sender: str


class AddressUnfrozen(TokenEvent):
    event_name: ClassVar[str] = "AddressUnfrozen"
    account: str
    sender: str


class TokensFrozen(TokenEvent):
    event_name: ClassVar[str] = "TokensFrozen"
    account: str
    amount: int
    sender: str


class TokensUnfrozen(TokenEvent):
    event_name: ClassVar[str] = "TokensUnfrozen"
    account: str
    amount: int
    sender: str


class AllowlistEnabled(TokenEvent):
    event_name: ClassVar[str] = "AllowlistEnabled"
    enabled: bool
    sender: str


class AddressAllowlisted(TokenEvent):
    event_name: ClassVar[str] = "AddressAllowlisted"
    account: str
    status: bool
    sender: str


class Mint(TokenEvent):
    event_name: ClassVar[str] = "Mint"
    sender: str
    account: str
    value: int


class Burn(TokenEvent):
    event_name: ClassVar[str] = "Burn"
    sender: str
    account: str
    value: int


class ForcedBurn(TokenEvent):
    event_name: ClassVar[str] = "ForcedBurn"
    sender: str
    account: str
    value: int


class ForcedTransfer(TokenEvent):
    event_name: ClassVar[str] = "ForcedTransfer"
    sender: str
    from_: str
    to: str
    value: int


class CrosschainMint(TokenEvent):
    event_name: ClassVar[str] = "CrosschainMint"
    sender: str
    account: str
    value: int


class CrosschainBurn(TokenEvent):
    event_name: ClassVar[str] = "CrosschainBurn"
    sender: str
    account: str
    value: int


class EngineSet(TokenEvent):
    """Change of an external engine handle (previous and new)."""

    event_name: ClassVar[str] = "EngineSet"
    previous: str | None
    new: str | None
    sender: str


class RuleEngineSet(EngineSet):
    event_name: ClassVar[str] = "RuleEngineSet"


class DebtEngineSet(EngineSet):
    event_name: ClassVar[str] = "DebtEngineSet"


class SnapshotEngineSet(EngineSet):
    event_name: ClassVar[str] = "SnapshotEngineSet"


class DocumentEngineSet(EngineSet):
    event_name: ClassVar[str] = "DocumentEngineSet"


class AttributeSet(TokenEvent):
    event_name: ClassVar[str] = "AttributeSet"
    previous: str
    new: str
    sender: str


class NameSet(AttributeSet):
    event_name: ClassVar[str] = "NameSet"


class SymbolSet(AttributeSet):
    event_name: ClassVar[str] = "SymbolSet"


class TermsSet(AttributeSet):
    event_name: ClassVar[str] = "TermsSet"


class InformationSet(AttributeSet):
    event_name: ClassVar[str] = "InformationSet"


class TokenIdSet(AttributeSet):
    event_name: ClassVar[str] = "TokenIdSet"


# ════════════════════════════════════════════════════════════════
# Read models
# ════════════════════════════════════════════════════════════════


class TokenInfo(BaseModel):
    """Static and aggregate token facts."""

    name: str
    symbol: str
    decimals: int
    total_supply: int
    lifecycle: LifecycleState
    terms: str = ""
    information: str = ""
    token_id: str = ""
    flag: str = ""


class AccountView(BaseModel):
    """Compliance-relevant view of one account."""

    address: str
    balance: int
    frozen: bool
    frozen_tokens: int
    allowlisted: bool

    @computed_field
    @property
    def active_balance(self) -> int:
        return max(0, self.balance - self.frozen_tokens)


class RestrictionResult(BaseModel):
    """A restriction code with its human-readable message."""

    code: int = Field(ge=0)
    message: str

    @computed_field
    @property
    def allowed(self) -> bool:
        return self.code == RestrictionCode.TRANSFER_OK
