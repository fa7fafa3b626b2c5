"""
Schema and field value validation.

This module provides the two pure validators the write path relies on:
- validate_schema: checks a proposed field schema before it is attached
- validate_values: checks entry values against a log's current schema

Invariants:
    - Validation errors are deterministic and independent of field order
    - The first violated rule wins; nothing is partially applied
    - Values are checked against the schema as it is at write time
    - Unknown fields suggest similar valid fields

How to change safely:
    - Keep the rule order in validate_schema stable, clients rely on it
    - Never fill in defaults for absent optional fields
"""

from __future__ import annotations

import re
from difflib import get_close_matches
from typing import Any

from ..errors import (
    DuplicateFieldNameError,
    EmptyFieldNameError,
    FieldNameTooLongError,
    InvalidBooleanError,
    InvalidFieldTypeError,
    InvalidNumberError,
    InvalidTextError,
    MissingRequiredFieldError,
    TooManyFieldsError,
    UnknownFieldError,
)
from .types import (
    MAX_FIELD_NAME_LENGTH,
    MAX_FIELDS,
    BooleanValue,
    FieldDef,
    FieldType,
    FieldValue,
    NumberValue,
    TextValue,
)

# Finite decimal literal, ASCII digits only: sign, digits, optional exponent.
_DECIMAL_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

_VALID_TYPES = {t.value for t in FieldType}


def validate_schema(fields: list[FieldDef]) -> None:
    """Validate a proposed schema.

    Field names are trimmed in place first; the trimmed name is the one
    that gets stored. Rules are applied as whole passes over the list, in
    order: field count, empty names, long names, duplicates, types.

    Args:
        fields: Proposed field definitions

    Raises:
        TooManyFieldsError: More than MAX_FIELDS fields
        EmptyFieldNameError: A name is missing, not a string, or empty after trimming
        FieldNameTooLongError: A name is longer than MAX_FIELD_NAME_LENGTH
        DuplicateFieldNameError: Two names match case-insensitively
        InvalidFieldTypeError: A type is not text, number or boolean
    """
    if len(fields) > MAX_FIELDS:
        raise TooManyFieldsError(len(fields), MAX_FIELDS)

    for f in fields:
        if isinstance(f.name, str):
            f.name = f.name.strip()

    for f in fields:
        if not isinstance(f.name, str) or not f.name:
            raise EmptyFieldNameError()

    for f in fields:
        if len(f.name) > MAX_FIELD_NAME_LENGTH:
            raise FieldNameTooLongError(f.name, MAX_FIELD_NAME_LENGTH)

    seen: set[str] = set()
    for f in fields:
        key = f.name.casefold()
        if key in seen:
            raise DuplicateFieldNameError(f.name)
        seen.add(key)

    for f in fields:
        if not isinstance(f.type, str) or f.type not in _VALID_TYPES:
            raise InvalidFieldTypeError(f.name, f.type)


def validate_values(
    schema: list[FieldDef],
    values: dict[str, Any] | None,
) -> dict[str, FieldValue]:
    """Validate entry values against a schema.

    Args:
        schema: The log's current field definitions
        values: Field name to raw value (None is treated as empty)

    Returns:
        Typed values for every present, non-null field

    Raises:
        UnknownFieldError: A key is not in the schema
        MissingRequiredFieldError: A required field is absent, null or blank
        InvalidNumberError: A number field is not a finite decimal string
        InvalidTextError: A text field is not a string
        InvalidBooleanError: A boolean field is not a boolean literal
    """
    if values is None:
        values = {}

    by_name = {f.name: f for f in schema}

    for name in values:
        if name not in by_name:
            suggestions = get_close_matches(name, list(by_name), n=3)
            raise UnknownFieldError(name, suggestions)

    typed: dict[str, FieldValue] = {}
    for field_def in schema:
        value = values.get(field_def.name)
        if value is None:
            if field_def.required:
                raise MissingRequiredFieldError(field_def.name)
            continue

        typed[field_def.name] = _validate_field_value(field_def, value)

    return typed


def _validate_field_value(field_def: FieldDef, value: Any) -> FieldValue:
    """Validate a single present, non-null value."""
    name = field_def.name
    kind = field_def.field_type

    if kind == FieldType.NUMBER:
        if not isinstance(value, str):
            raise InvalidNumberError(name, "must be a numeric string")
        if field_def.required and not value.strip():
            raise MissingRequiredFieldError(name)
        if value.strip() and not is_decimal_string(value):
            raise InvalidNumberError(name)
        return NumberValue(value)

    if kind == FieldType.TEXT:
        if not isinstance(value, str):
            raise InvalidTextError(name)
        if field_def.required and not value.strip():
            raise MissingRequiredFieldError(name)
        return TextValue(value)

    # FieldType.BOOLEAN: only presence is checked for required booleans
    if not isinstance(value, bool):
        raise InvalidBooleanError(name)
    return BooleanValue(value)


def is_decimal_string(value: str) -> bool:
    """Check that a string is a finite decimal literal."""
    return _DECIMAL_RE.fullmatch(value) is not None
