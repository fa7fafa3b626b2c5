"""
Error types for the Logbook server.

This module defines every exception the core raises:
- LogbookError: Base exception
- ValidationError: Malformed input (schema or field values)
- NotFoundError: No such resource, or no access to it
- ConflictError: Uniqueness violation in the store
- ForbiddenError: Identity proven but the operation is disallowed
- UnauthenticatedError: No valid session
- InternalError: Storage/transport failure

Invariants:
    - All errors inherit from LogbookError
    - NotFoundError never reveals whether the resource exists
    - Messages are safe to show to the caller verbatim
"""

from __future__ import annotations

from typing import Any


class LogbookError(Exception):
    """Base exception for all Logbook errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "LOGBOOK_ERROR"
        self.details = details or {}


class ValidationError(LogbookError):
    """Input failed validation.

    Raised when:
    - A proposed schema breaks a schema rule
    - Entry values do not conform to the log's schema
    - A name, password or timestamp is out of range
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        field_name: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code or "VALIDATION_ERROR",
            details={"field": field_name} if field_name is not None else {},
        )
        self.field_name = field_name


# --- Schema definition errors ---


class SchemaError(ValidationError):
    """A proposed field schema is invalid."""


class TooManyFieldsError(SchemaError):
    def __init__(self, count: int, limit: int) -> None:
        super().__init__(f"too many fields (max {limit})", code="TOO_MANY_FIELDS")
        self.count = count
        self.limit = limit


class EmptyFieldNameError(SchemaError):
    def __init__(self) -> None:
        super().__init__("field name must not be empty", code="EMPTY_FIELD_NAME")


class FieldNameTooLongError(SchemaError):
    def __init__(self, name: str, limit: int) -> None:
        super().__init__(
            f"field name must be 1-{limit} characters",
            code="FIELD_NAME_TOO_LONG",
            field_name=name,
        )


class DuplicateFieldNameError(SchemaError):
    def __init__(self, name: str) -> None:
        super().__init__(
            f"duplicate field name: {name}",
            code="DUPLICATE_FIELD_NAME",
            field_name=name,
        )


class InvalidFieldTypeError(SchemaError):
    def __init__(self, name: str, field_type: Any) -> None:
        super().__init__(
            "field type must be 'text', 'number', or 'boolean'",
            code="INVALID_FIELD_TYPE",
            field_name=name,
        )
        self.field_type = field_type


# --- Field value errors ---


class UnknownFieldError(ValidationError):
    """Unknown field in entry values.

    Includes suggestions for similar field names.
    """

    def __init__(self, field_name: str, suggestions: list[str] | None = None) -> None:
        suggestions = suggestions or []
        msg = f"unknown field: {field_name}"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"
        super().__init__(msg, code="UNKNOWN_FIELD", field_name=field_name)
        self.suggestions = suggestions
        self.details["suggestions"] = suggestions


class MissingRequiredFieldError(ValidationError):
    def __init__(self, field_name: str) -> None:
        super().__init__(
            f'field "{field_name}" is required',
            code="MISSING_REQUIRED_FIELD",
            field_name=field_name,
        )


class InvalidNumberError(ValidationError):
    def __init__(self, field_name: str, reason: str = "must be a valid number") -> None:
        super().__init__(
            f'field "{field_name}" {reason}',
            code="INVALID_NUMBER",
            field_name=field_name,
        )


class InvalidTextError(ValidationError):
    def __init__(self, field_name: str) -> None:
        super().__init__(
            f'field "{field_name}" must be a string',
            code="INVALID_TEXT",
            field_name=field_name,
        )


class InvalidBooleanError(ValidationError):
    def __init__(self, field_name: str) -> None:
        super().__init__(
            f'field "{field_name}" must be true or false',
            code="INVALID_BOOLEAN",
            field_name=field_name,
        )


# --- Access and lifecycle errors ---


class NotFoundError(LogbookError):
    """Resource not found, or the caller has no access to it.

    The two cases are deliberately indistinguishable.
    """

    def __init__(self, resource_type: str, message: str | None = None) -> None:
        super().__init__(
            message or f"{resource_type} not found",
            code="NOT_FOUND",
            details={"resource_type": resource_type},
        )
        self.resource_type = resource_type


class ConflictError(LogbookError):
    """A uniqueness constraint rejected the write.

    Callers should retry with a different value, never with the same one.
    """

    def __init__(self, message: str, constraint: str | None = None) -> None:
        super().__init__(message, code="CONFLICT", details={"constraint": constraint})
        self.constraint = constraint


class ForbiddenError(LogbookError):
    """The identity is known but the operation is not allowed."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message, code=code or "FORBIDDEN")


class OwnerCannotJoinError(ForbiddenError):
    """The owner of a log tried to redeem its share token."""

    def __init__(self, log_id: str) -> None:
        super().__init__("you already own this log", code="OWNER_CANNOT_JOIN")
        self.log_id = log_id
        self.details["log_id"] = log_id


class UnauthenticatedError(LogbookError):
    """No valid session for an operation that requires one."""

    def __init__(self, message: str = "authentication required") -> None:
        super().__init__(message, code="UNAUTHENTICATED")


class InternalError(LogbookError):
    """Storage or transport failure. Never exposes internals."""

    def __init__(self, message: str = "internal error") -> None:
        super().__init__(message, code="INTERNAL")
