"""
Schema module for the Logbook server.

This module provides the per-log field schema, including:
- Type definitions (FieldDef, FieldType, typed values)
- Schema definition validation
- Entry value validation against a schema

Invariants:
    - A log's schema is mutable by its owner only
    - Stored entry values are never re-validated after a schema change
    - Validators are pure given their inputs
"""

from .types import (
    MAX_FIELD_NAME_LENGTH,
    MAX_FIELDS,
    BooleanValue,
    FieldDef,
    FieldType,
    FieldValue,
    NumberValue,
    TextValue,
    schema_from_list,
    schema_to_list,
)
from .validate import is_decimal_string, validate_schema, validate_values

__all__ = [
    # Types
    "FieldDef",
    "FieldType",
    "FieldValue",
    "TextValue",
    "NumberValue",
    "BooleanValue",
    "MAX_FIELDS",
    "MAX_FIELD_NAME_LENGTH",
    "schema_from_list",
    "schema_to_list",
    # Validation
    "validate_schema",
    "validate_values",
    "is_decimal_string",
]
