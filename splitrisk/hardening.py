"""
SplitRisk Validation and Hardening Module

Error taxonomy, input validation and invariant enforcement shared by every
protocol operation. It addresses:

1. A closed set of protocol errors callers can branch on
2. Amount validation for integer base-unit quantities
3. Write-once and balance invariants on protocol state
4. Serialisation of operations (one indivisible operation at a time)

Security Model:
    - All caller inputs are untrusted until validated
    - All requirement checks run before any state mutation or external call
    - A failed external call aborts the whole operation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, List, Optional, TypeVar


# =============================================================================
# PROTOCOL ERROR TYPES
# =============================================================================

class ProtocolError(Exception):
    """Base class for every failure reported to protocol callers."""

    @property
    def error_code(self) -> str:
        return type(self).__name__


class PhaseViolation(ProtocolError):
    """Operation called outside its legal time window."""

    def __init__(self, operation: str, phase: Any, message: str = ""):
        self.operation = operation
        self.phase = phase
        phase_name = getattr(phase, "value", phase)
        super().__init__(message or f"{operation} is not allowed in phase {phase_name}")


class StillInInsurancePeriod(PhaseViolation):
    """Liquid claim attempted before the insurance deadline."""


class DivestNotYetCalled(PhaseViolation):
    """Liquid claim attempted while divestment is still pending."""


class UseClassSpecificClaim(PhaseViolation):
    """Liquid claim attempted after the class windows opened without divestment."""


class AlreadyPerformed(ProtocolError):
    """One-shot operation (invest/divest) called a second time."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation} has already been performed")


class InsufficientBalance(ProtocolError):
    """Pool or caller balance too low for the requested action."""

    def __init__(self, what: str, available: int, required: int):
        self.what = what
        self.available = available
        self.required = required
        super().__init__(f"Insufficient {what}: have {available}, need {required}")


class VenueOperationFailed(ProtocolError):
    """An external venue call signalled failure."""

    def __init__(self, venue: str, action: str, detail: str = "", status: Optional[int] = None):
        self.venue = venue
        self.action = action
        self.status = status
        msg = f"{venue} {action} failed"
        if status is not None:
            msg += f" (status={status})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class VenueRedeemFailed(VenueOperationFailed):
    """Status-code venue reported a nonzero code on redeem."""


class IncompleteRedemption(ProtocolError):
    """A venue still reports receipt tokens after a full withdrawal."""

    def __init__(self, venue: str, remaining: int):
        self.venue = venue
        self.remaining = remaining
        super().__init__(f"{venue} still holds {remaining} receipt tokens after divestment")


class InvalidAmount(ProtocolError):
    """Zero, negative or malformed amount in a request."""

    def __init__(self, field_name: str, message: str, value: Any = None):
        self.field = field_name
        self.value = value
        super().__init__(f"{field_name}: {message}")


class InvariantViolation(ProtocolError):
    """Protocol state invariant violated (write-once field rewritten, etc.)."""


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[InvalidAmount] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise the first error if validation failed."""
        if not self.is_valid:
            raise self.errors[0]

    @classmethod
    def success(cls, sanitized_value: Any = None) -> "ValidationResult":
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[InvalidAmount]) -> "ValidationResult":
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    @classmethod
    def validate_amount(
        cls,
        value: Any,
        field_name: str = "amount",
        min_value: int = 0,
    ) -> ValidationResult:
        """Validate an integer base-unit amount.

        Booleans are rejected even though they are ints; floats and strings
        are rejected rather than coerced, since amounts carry no fractional
        part.
        """
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                InvalidAmount(field_name, f"Expected integer, got {type(value).__name__}", value)
            ])
        if value < min_value:
            return ValidationResult.failure([
                InvalidAmount(field_name, f"Below minimum ({min_value})", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_redemption(cls, first: Any, second: Any, names: tuple) -> ValidationResult:
        """Validate a two-amount redemption request.

        Both amounts must be non-negative integers and at least one positive.
        """
        errors: List[InvalidAmount] = []
        for value, name in zip((first, second), names):
            errors.extend(cls.validate_amount(value, name).errors)
        if errors:
            return ValidationResult.failure(errors)
        if first == 0 and second == 0:
            return ValidationResult.failure([
                InvalidAmount(" / ".join(names), "At least one amount must be greater than zero", (first, second))
            ])
        return ValidationResult.success((first, second))


# =============================================================================
# STATE INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces protocol state invariants."""

    @staticmethod
    def check_write_once(field_name: str, current: Any, unset: Any = None) -> None:
        """Ensure a write-once field has not been written yet."""
        if current != unset:
            raise InvariantViolation(f"{field_name} is write-once and already set to {current!r}")

    @staticmethod
    def check_non_negative(field_name: str, value: int) -> None:
        """Ensure value is non-negative."""
        if value < 0:
            raise InvariantViolation(f"{field_name} cannot be negative: {value}")

    @staticmethod
    def check_balance_sufficient(available: int, required: int, what: str = "balance") -> None:
        """Ensure sufficient balance for operation."""
        if available < required:
            raise InsufficientBalance(what, available, required)


# =============================================================================
# DECORATOR UTILITIES
# =============================================================================

F = TypeVar("F", bound=Callable[..., Any])


def atomic(func: F) -> F:
    """Run a method under its instance's ``_lock`` so operations never interleave."""
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return func(self, *args, **kwargs)
    return wrapper  # type: ignore[return-value]
