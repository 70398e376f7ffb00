"""Exception hierarchy for OpenSignify.

Every exception carries a human-readable message plus structured context that
is safe to hand to the logger. Context never holds record contents: callers
that are denied access must not learn anything about someone else's invoice.

Usage:
    from opensignify.exceptions import ValidationError, InvalidTransition

    try:
        lifecycle.sign(record, signature, actor_id)
    except InvalidTransition as e:
        logger.warning("sign_rejected", error=str(e), context=e.context)
"""

from __future__ import annotations

from typing import Any


class OpenSignifyError(Exception):
    """Base exception for all OpenSignify errors.

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
# Validation & Configuration Errors
# =============================================================================


class ValidationError(OpenSignifyError):
    """Raised when one or more fields fail validation.

    All violations are collected and reported together so the caller can fix
    every field in a single pass.

    Attributes:
        violations: Mapping of field name to violation message
    """

    def __init__(
        self,
        message: str,
        *,
        violations: dict[str, str] | None = None,
        field: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.violations: dict[str, str] = dict(violations or {})
        if field and field not in self.violations:
            self.violations[field] = message
        context = kwargs.get("context", {})
        if self.violations:
            context["fields"] = ",".join(sorted(self.violations))
        kwargs["context"] = context
        super().__init__(message, **kwargs)

    @property
    def fields(self) -> list[str]:
        """Names of every violated field, sorted."""
        return sorted(self.violations)


class ConfigurationError(OpenSignifyError):
    """Raised when application configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if setting:
            context["setting"] = setting
        kwargs["context"] = context
        super().__init__(message, **kwargs)


# =============================================================================
# Lifecycle Errors
# =============================================================================


class LifecycleError(OpenSignifyError):
    """Base class for state machine violations."""


class InvalidTransition(LifecycleError):
    """Raised when a transition is not legal from the record's current status.

    Recoverable by refetching the record and inspecting its status.
    """

    def __init__(
        self,
        message: str,
        *,
        current_status: str | None = None,
        attempted_action: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if current_status:
            context["current_status"] = current_status
        if attempted_action:
            context["attempted_action"] = attempted_action
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class AlreadySigned(InvalidTransition):
    """Raised when signing a record that has already been signed."""


class GenerationExhausted(LifecycleError):
    """Raised when no free invoice number was found within the retry budget."""

    def __init__(self, message: str, *, attempts: int | None = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if attempts is not None:
            context["attempts"] = attempts
        kwargs["context"] = context
        super().__init__(message, **kwargs)


# =============================================================================
# Access Errors
# =============================================================================


class PermissionDenied(OpenSignifyError):
    """Raised when the caller is not allowed to perform an action on a record.

    Only the attempted action is recorded; never the record's fields.
    """

    def __init__(self, message: str, *, action: str | None = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if action:
            context["action"] = action
        kwargs["context"] = context
        super().__init__(message, **kwargs)


# =============================================================================
# Rendering Errors
# =============================================================================


class CompositionError(OpenSignifyError):
    """Raised when a document cannot be rendered. Safe to retry."""


# =============================================================================
# Persistence & Integration Errors
# =============================================================================


class PersistenceError(OpenSignifyError):
    """Raised when the document store fails.

    No partial write is assumed; the caller may retry with the same input.
    """


class RecordNotFoundError(PersistenceError):
    """Raised when a record id does not exist in the store."""

    def __init__(self, message: str, *, record_id: str | None = None, **kwargs: Any) -> None:
        context = kwargs.get("context", {})
        if record_id:
            context["record_id"] = record_id
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class StaleRecordError(PersistenceError):
    """Raised when a conditional write finds the record in another status."""

    def __init__(
        self,
        message: str,
        *,
        stored_status: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.stored_status = stored_status
        context = kwargs.get("context", {})
        if stored_status:
            context["stored_status"] = stored_status
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class NumberConflictError(PersistenceError):
    """Raised when an insert reuses an invoice number the owner already has."""

    def __init__(self, message: str, *, invoice_number: str | None = None, **kwargs: Any) -> None:
        self.invoice_number = invoice_number
        context = kwargs.get("context", {})
        if invoice_number:
            context["invoice_number"] = invoice_number
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class NotificationError(OpenSignifyError):
    """Raised when the notification collaborator fails to deliver a message."""


# =============================================================================
# Utility Functions
# =============================================================================


def wrap_exception(
    error: Exception,
    message: str,
    *,
    exception_class: type[OpenSignifyError] = OpenSignifyError,
    **context: Any,
) -> OpenSignifyError:
    """Wrap a third-party exception in the OpenSignify hierarchy.

    Example:
        try:
            session.commit()
        except SQLAlchemyError as e:
            raise wrap_exception(e, "Failed to save invoice", exception_class=PersistenceError)
    """
    return exception_class(
        message,
        context=context,
        original_error=error,
    )


__all__ = [
    "OpenSignifyError",
    "ValidationError",
    "ConfigurationError",
    "LifecycleError",
    "InvalidTransition",
    "AlreadySigned",
    "GenerationExhausted",
    "PermissionDenied",
    "CompositionError",
    "PersistenceError",
    "RecordNotFoundError",
    "StaleRecordError",
    "NumberConflictError",
    "NotificationError",
    "wrap_exception",
]
