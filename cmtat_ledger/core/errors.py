"""
Compliance error taxonomy.

Every failure aborts the current call with no partial effect. Each error
carries a short stable `code` for callers and, where the failure maps onto an
ERC-1404 reason, the matching `restriction_code`.
"""

from __future__ import annotations


class ComplianceError(Exception):
    """Base class for every failure raised by the token."""

    code: str = "COMPLIANCE_ERROR"
    restriction_code: int | None = None

    def __init__(self, message: str = "", restriction_code: int | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        if restriction_code is not None:
            self.restriction_code = restriction_code


# ── Authorization ──────────────────────────────────────────────


class Unauthorized(ComplianceError):
    """Caller lacks the required role or role-admin relationship."""

    code = "UNAUTHORIZED"


# ── Lifecycle ──────────────────────────────────────────────────


class LifecycleError(ComplianceError):
    code = "LIFECYCLE"


class ContractPaused(LifecycleError):
    code = "CONTRACT_PAUSED"
    restriction_code = 9


class ContractDeactivated(LifecycleError):
    code = "CONTRACT_DEACTIVATED"
    restriction_code = 4


class InvalidTransition(LifecycleError):
    code = "INVALID_TRANSITION"


# ── Balance ────────────────────────────────────────────────────


class BalanceError(ComplianceError):
    code = "BALANCE"


class InsufficientBalance(BalanceError):
    code = "INSUFFICIENT_BALANCE"


class InsufficientActiveBalance(BalanceError):
    code = "INSUFFICIENT_ACTIVE_BALANCE"
    restriction_code = 1


class InsufficientAllowance(BalanceError):
    code = "INSUFFICIENT_ALLOWANCE"


class SupplyOverflow(BalanceError):
    code = "SUPPLY_OVERFLOW"


# ── Enforcement ────────────────────────────────────────────────


class EnforcementError(ComplianceError):
    code = "ENFORCEMENT"


class AddressFrozen(EnforcementError):
    code = "ADDRESS_FROZEN"


class FreezeExceedsBalance(EnforcementError):
    code = "FREEZE_EXCEEDS_BALANCE"


class UnfreezeExceedsFrozen(EnforcementError):
    code = "UNFREEZE_EXCEEDS_FROZEN"


# ── Validation ─────────────────────────────────────────────────


class ValidationError(ComplianceError):
    code = "VALIDATION"


class TransferRestricted(ValidationError):
    """A non-zero restriction code was returned by the compliance check."""

    code = "TRANSFER_RESTRICTED"

    def __init__(self, restriction_code: int, message: str) -> None:
        super().__init__(f"[{restriction_code}] {message}", restriction_code=restriction_code)
        self.reason = message


# ── Shape ──────────────────────────────────────────────────────


class ShapeError(ComplianceError):
    code = "SHAPE"


class LengthMismatch(ShapeError):
    code = "LENGTH_MISMATCH"


class InvalidAddress(ShapeError):
    code = "INVALID_ADDRESS"


class InvalidAmount(ShapeError):
    code = "INVALID_AMOUNT"


# ── Invariants ─────────────────────────────────────────────────


class InvariantViolation(ComplianceError):
    """Conservation or freeze-bound check failed after a call."""

    code = "INVARIANT_VIOLATION"
