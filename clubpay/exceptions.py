"""Exception hierarchy for clubpay.

Every error carries a human-readable message plus a ``context`` dict so it can
be logged as structured data.

Usage:
    from clubpay.exceptions import MismatchError

    try:
        allocator.validate(payment.amount, lines)
    except MismatchError as e:
        logger.warning("allocation_rejected", error=str(e), context=e.context)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class ClubPayError(Exception):
    """Base exception for all clubpay errors.

    Attributes:
        message: Human-readable error message
        context: Additional context for debugging (dict)
        original_error: Original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Format exception with context for logging."""
        base = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx_str})"
        if self.original_error:
            base = f"{base} [caused by: {type(self.original_error).__name__}]"
        return base

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(ClubPayError):
    """Raised when operator input or a requested state change is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)[:100]
        if constraint:
            context["constraint"] = constraint
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class MismatchError(ValidationError):
    """Raised when allocations do not sum to the payment amount.

    ``direction`` is ``"over"`` when more than the payment amount was allocated
    and ``"under"`` when part of the payment is left unallocated. Both are the
    same error kind; the direction only changes how the message is worded.
    """

    OVER = "over"
    UNDER = "under"

    def __init__(
        self,
        message: str,
        *,
        payment_amount: Decimal,
        allocated_amount: Decimal,
        **kwargs: Any,
    ) -> None:
        self.payment_amount = payment_amount
        self.allocated_amount = allocated_amount
        self.remainder = payment_amount - allocated_amount
        self.direction = self.OVER if self.remainder < 0 else self.UNDER
        context = kwargs.get("context", {})
        context["payment_amount"] = str(payment_amount)
        context["allocated_amount"] = str(allocated_amount)
        context["direction"] = self.direction
        kwargs["context"] = context
        super().__init__(message, constraint="sum_equals_payment", **kwargs)

    @property
    def is_over_allocated(self) -> bool:
        return self.direction == self.OVER

    @property
    def is_under_allocated(self) -> bool:
        return self.direction == self.UNDER


class DuplicateError(ValidationError):
    """Raised when a uniqueness rule is violated (e.g. cost type names)."""


# =============================================================================
# Statement Import Errors
# =============================================================================


class StatementImportError(ClubPayError):
    """Base class for bank statement import failures.

    Fatal to the statement being imported, never to previously imported data.
    """

    def __init__(
        self,
        message: str,
        *,
        file_format: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if file_format:
            context["file_format"] = file_format
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class FormatError(StatementImportError):
    """Raised when a statement document is not well-formed."""


class SchemaError(StatementImportError):
    """Raised when a recognizable statement lacks a required element."""

    def __init__(self, message: str, *, element: str | None = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if element:
            context["element"] = element
        kwargs["context"] = context
        super().__init__(message, **kwargs)
        self.element = element


# =============================================================================
# Database & Persistence Errors
# =============================================================================


class DatabaseError(ClubPayError):
    """Base class for data-access errors."""


class NotFoundError(DatabaseError):
    """Raised when a referenced record id is absent.

    This always points at a caller or state bug, not at bad operator input.

    Args:
        entity_type: Type of entity (e.g., "payments", "obligations")
        entity_id: ID of the missing entity
    """

    def __init__(
        self,
        message: str,
        *,
        entity_type: str | None = None,
        entity_id: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if entity_type:
            context["entity_type"] = entity_type
        if entity_id:
            context["entity_id"] = str(entity_id)
        kwargs["context"] = context
        super().__init__(message, **kwargs)
        self.entity_type = entity_type
        self.entity_id = entity_id


class PersistenceError(DatabaseError):
    """Raised by persistence backends when a queued write cannot be applied."""


class ConfigurationError(ClubPayError):
    """Raised when settings are invalid or missing."""

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        expected: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if setting:
            context["setting"] = setting
        if expected:
            context["expected"] = expected
        kwargs["context"] = context
        super().__init__(message, **kwargs)


def wrap_exception(
    error: Exception,
    message: str,
    *,
    exception_class: type[ClubPayError] = ClubPayError,
    **context: Any,
) -> ClubPayError:
    """Wrap a third-party exception (SQLAlchemy, XML parser, ...) in the clubpay hierarchy.

    Example:
        try:
            session.commit()
        except SQLAlchemyError as e:
            raise wrap_exception(e, "Write failed", exception_class=PersistenceError)
    """
    return exception_class(message, context=context, original_error=error)


__all__ = [
    "ClubPayError",
    "ValidationError",
    "MismatchError",
    "DuplicateError",
    "StatementImportError",
    "FormatError",
    "SchemaError",
    "DatabaseError",
    "NotFoundError",
    "PersistenceError",
    "ConfigurationError",
    "wrap_exception",
]
