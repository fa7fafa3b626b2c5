"""
Core type definitions for the per-log field schema.

This module defines the types a log's schema is made of:
- FieldType: The three supported value types
- FieldDef: A single named, typed field definition
- TextValue / NumberValue / BooleanValue: Validated entry values

Invariants:
    - A schema holds at most MAX_FIELDS definitions
    - Field names are unique case-insensitively within a schema
    - Field order matters for display only, never for validation
    - Numbers travel as decimal strings so formatting is preserved

How to change safely:
    - New field types need a FieldType member, a value class,
      and a branch in validate.validate_values
    - Never coerce stored values when the schema changes

Example:
    >>> fields = [
    ...     FieldDef("count", "number", required=True),
    ...     FieldDef("notes", "text"),
    ... ]
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Union

MAX_FIELDS = 20
MAX_FIELD_NAME_LENGTH = 100


class FieldType(Enum):
    """Supported field types in a log schema."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"

    @classmethod
    def from_str(cls, value: Any) -> FieldType:
        """Convert string representation to FieldType.

        Raises:
            ValueError: If value is not a valid field type
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field type '{value}'. Valid types: {valid}")


@dataclass
class FieldDef:
    """Definition of a single field in a log schema.

    Not frozen: schema validation trims ``name`` in place, and the trimmed
    form is what gets stored. ``type`` stays a raw string until validated so
    that an unknown type can be reported rather than rejected on construction.

    Attributes:
        name: Field name (unique case-insensitively within the schema)
        type: One of "text", "number", "boolean"
        required: Whether a value must be present on every write
    """

    name: str
    type: str
    required: bool = False

    @property
    def field_type(self) -> FieldType:
        return FieldType.from_str(self.type)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for storage."""
        return {"name": self.name, "type": self.type, "required": self.required}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldDef:
        """Create from dictionary."""
        return cls(
            name=data.get("name", ""),
            type=data.get("type", ""),
            required=bool(data.get("required", False)),
        )


def schema_to_list(fields: list[FieldDef]) -> list[dict[str, Any]]:
    return [f.to_dict() for f in fields]


def schema_from_list(data: list[dict[str, Any]] | None) -> list[FieldDef]:
    return [FieldDef.from_dict(item) for item in data or []]


# --- Validated values (tagged union at the validation boundary) ---


@dataclass(frozen=True)
class TextValue:
    value: str

    kind = FieldType.TEXT


@dataclass(frozen=True)
class NumberValue:
    """A number as its original decimal string."""

    value: str

    kind = FieldType.NUMBER

    def as_decimal(self) -> Decimal | None:
        """Parsed value, or None for an empty optional number."""
        if not self.value.strip():
            return None
        return Decimal(self.value)


@dataclass(frozen=True)
class BooleanValue:
    value: bool

    kind = FieldType.BOOLEAN


FieldValue = Union[TextValue, NumberValue, BooleanValue]
