"""
Unit tests for schema definition and field value validation.

Tests cover:
- Schema rules and their order
- Name trimming
- Value checks per field type
- Required field handling
- Unknown field suggestions
"""

import pytest

from backend.logbook_server.errors import (
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
    ValidationError,
)
from backend.logbook_server.schema import (
    MAX_FIELDS,
    BooleanValue,
    FieldDef,
    FieldType,
    NumberValue,
    TextValue,
    is_decimal_string,
    validate_schema,
    validate_values,
)


def make_fields(count: int, field_type: str = "text") -> list[FieldDef]:
    return [FieldDef(name=f"field_{i}", type=field_type) for i in range(count)]


class TestValidateSchema:
    """Tests for validate_schema."""

    def test_empty_schema_is_valid(self):
        """A log may have no fields."""
        validate_schema([])

    def test_max_fields_is_valid(self):
        """Exactly MAX_FIELDS fields is allowed."""
        validate_schema(make_fields(MAX_FIELDS))

    def test_too_many_fields(self):
        """One field over the limit fails."""
        with pytest.raises(TooManyFieldsError):
            validate_schema(make_fields(MAX_FIELDS + 1))

    def test_all_types_valid(self):
        """text, number and boolean are accepted."""
        validate_schema(
            [
                FieldDef("notes", "text"),
                FieldDef("count", "number", required=True),
                FieldDef("done", "boolean"),
            ]
        )

    def test_names_are_trimmed_in_place(self):
        """The stored name is the trimmed form."""
        fields = [FieldDef("  count  ", "number")]
        validate_schema(fields)
        assert fields[0].name == "count"

    def test_blank_name(self):
        """Whitespace-only names are empty after trimming."""
        with pytest.raises(EmptyFieldNameError):
            validate_schema([FieldDef("   ", "text")])

    @pytest.mark.parametrize("name", [5, None, ["count"], {"name": "count"}])
    def test_non_string_name(self, name):
        """Names arriving as other JSON values count as missing."""
        with pytest.raises(EmptyFieldNameError):
            validate_schema([FieldDef(name, "number")])

    def test_name_at_limit(self):
        validate_schema([FieldDef("x" * 100, "text")])

    def test_name_too_long(self):
        with pytest.raises(FieldNameTooLongError):
            validate_schema([FieldDef("x" * 101, "text")])

    def test_name_length_counted_after_trim(self):
        """Surrounding whitespace does not count toward the limit."""
        validate_schema([FieldDef("  " + "x" * 100 + "  ", "text")])

    def test_duplicate_names_case_insensitive(self):
        """Count and COUNT collide; the error names the later field."""
        with pytest.raises(DuplicateFieldNameError) as exc_info:
            validate_schema([FieldDef("count", "number"), FieldDef("COUNT", "text")])
        assert exc_info.value.field_name == "COUNT"

    def test_duplicate_after_trim(self):
        with pytest.raises(DuplicateFieldNameError):
            validate_schema([FieldDef("reps", "number"), FieldDef(" reps ", "number")])

    def test_duplicate_names_fold_beyond_ascii(self):
        with pytest.raises(DuplicateFieldNameError):
            validate_schema([FieldDef("Größe", "number"), FieldDef("GRÖSSE", "number")])

    def test_unknown_type(self):
        with pytest.raises(InvalidFieldTypeError) as exc_info:
            validate_schema([FieldDef("when", "date")])
        assert exc_info.value.field_name == "when"

    def test_non_string_type(self):
        """Types arriving as other JSON values are rejected, not crashed on."""
        with pytest.raises(InvalidFieldTypeError):
            validate_schema([FieldDef("x", ["text"])])

    def test_count_checked_before_names(self):
        """Too many fields wins over an empty name."""
        fields = make_fields(MAX_FIELDS + 1)
        fields[0].name = ""
        with pytest.raises(TooManyFieldsError):
            validate_schema(fields)

    def test_empty_name_checked_before_type(self):
        """An empty name later in the list wins over a bad type earlier."""
        with pytest.raises(EmptyFieldNameError):
            validate_schema([FieldDef("a", "date"), FieldDef("", "text")])

    def test_duplicate_checked_before_type(self):
        with pytest.raises(DuplicateFieldNameError):
            validate_schema([FieldDef("a", "date"), FieldDef("A", "text")])

    def test_result_independent_of_order(self):
        """The same set of fields fails the same way in any order."""
        fields = [FieldDef("a", "text"), FieldDef("b", "number"), FieldDef("A", "boolean")]
        for ordering in (fields, list(reversed(fields))):
            copies = [FieldDef(f.name, f.type, f.required) for f in ordering]
            with pytest.raises(DuplicateFieldNameError):
                validate_schema(copies)

    def test_schema_errors_are_validation_errors(self):
        with pytest.raises(ValidationError):
            validate_schema([FieldDef("", "text")])


class TestValidateValues:
    """Tests for validate_values."""

    @pytest.fixture
    def schema(self):
        return [
            FieldDef("count", "number", required=True),
            FieldDef("notes", "text"),
            FieldDef("done", "boolean"),
        ]

    def test_valid_values(self, schema):
        typed = validate_values(schema, {"count": "25", "notes": "morning", "done": True})
        assert typed == {
            "count": NumberValue("25"),
            "notes": TextValue("morning"),
            "done": BooleanValue(True),
        }

    def test_optional_fields_omitted(self, schema):
        """Absent optional fields are skipped, not defaulted."""
        typed = validate_values(schema, {"count": "25"})
        assert list(typed) == ["count"]

    def test_none_values_map(self, schema):
        """A missing map is treated as empty."""
        with pytest.raises(MissingRequiredFieldError):
            validate_values(schema, None)

    def test_unknown_field(self, schema):
        with pytest.raises(UnknownFieldError) as exc_info:
            validate_values(schema, {"count": "1", "unknown": "5"})
        assert exc_info.value.field_name == "unknown"

    def test_unknown_field_suggestions(self, schema):
        """Typos suggest similar field names."""
        with pytest.raises(UnknownFieldError) as exc_info:
            validate_values(schema, {"coutn": "1"})
        assert "count" in exc_info.value.suggestions
        assert "Did you mean" in exc_info.value.message

    def test_unknown_checked_before_required(self, schema):
        with pytest.raises(UnknownFieldError):
            validate_values(schema, {"reps": "1"})

    def test_field_names_are_case_sensitive(self, schema):
        with pytest.raises(UnknownFieldError):
            validate_values(schema, {"Count": "1"})

    def test_missing_required(self, schema):
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            validate_values(schema, {"notes": "x"})
        assert exc_info.value.field_name == "count"

    def test_null_required(self, schema):
        """Explicit null counts as absent."""
        with pytest.raises(MissingRequiredFieldError):
            validate_values(schema, {"count": None})

    def test_null_optional_skipped(self, schema):
        typed = validate_values(schema, {"count": "1", "notes": None})
        assert "notes" not in typed

    def test_empty_values_succeed_iff_nothing_required(self):
        """validate_values(schema, {}) passes exactly when no field is required."""
        optional_only = [FieldDef("a", "text"), FieldDef("b", "number"), FieldDef("c", "boolean")]
        assert validate_values(optional_only, {}) == {}

        for i in range(len(optional_only)):
            schema = [FieldDef(f.name, f.type, f.required) for f in optional_only]
            schema[i].required = True
            with pytest.raises(MissingRequiredFieldError):
                validate_values(schema, {})


class TestNumberValues:
    """Tests for number fields."""

    @pytest.mark.parametrize("value", ["3.14", "25", "-1", "+2.5", "0.5", ".5", "5.", "1e10", "2E-3"])
    def test_valid_decimals(self, value):
        typed = validate_values([FieldDef("n", "number")], {"n": value})
        assert typed["n"] == NumberValue(value)

    @pytest.mark.parametrize(
        "value",
        ["abc", "1.2.3", "inf", "NaN", "1,000", " 5", "0x10", "--1", "١٢٣", "３", "1e٣"],
    )
    def test_invalid_decimals(self, value):
        with pytest.raises(InvalidNumberError):
            validate_values([FieldDef("n", "number")], {"n": value})

    def test_json_number_rejected(self):
        """Numbers travel as strings."""
        with pytest.raises(InvalidNumberError):
            validate_values([FieldDef("n", "number")], {"n": 3.14})

    def test_blank_optional_number_allowed(self):
        typed = validate_values([FieldDef("n", "number")], {"n": "  "})
        assert typed["n"].as_decimal() is None

    def test_blank_required_number(self):
        with pytest.raises(MissingRequiredFieldError):
            validate_values([FieldDef("n", "number", required=True)], {"n": ""})

    def test_formatting_preserved(self):
        typed = validate_values([FieldDef("n", "number")], {"n": "25.50"})
        assert typed["n"].value == "25.50"
        assert str(typed["n"].as_decimal()) == "25.50"


class TestTextAndBooleanValues:
    """Tests for text and boolean fields."""

    def test_text_must_be_string(self):
        with pytest.raises(InvalidTextError):
            validate_values([FieldDef("t", "text")], {"t": 5})

    def test_blank_required_text(self):
        with pytest.raises(MissingRequiredFieldError):
            validate_values([FieldDef("t", "text", required=True)], {"t": "   "})

    def test_blank_optional_text_allowed(self):
        typed = validate_values([FieldDef("t", "text")], {"t": ""})
        assert typed["t"] == TextValue("")

    @pytest.mark.parametrize("value", [True, False])
    def test_boolean_literals(self, value):
        typed = validate_values([FieldDef("b", "boolean", required=True)], {"b": value})
        assert typed["b"].value is value
        assert typed["b"].kind == FieldType.BOOLEAN

    @pytest.mark.parametrize("value", ["true", "false", 1, 0, ""])
    def test_boolean_non_literals(self, value):
        with pytest.raises(InvalidBooleanError):
            validate_values([FieldDef("b", "boolean")], {"b": value})


class TestIsDecimalString:
    def test_matches_whole_string(self):
        assert is_decimal_string("12.5")
        assert not is_decimal_string("12.5kg")
        assert not is_decimal_string("")

    def test_ascii_digits_only(self):
        """Other scripts' digits are not decimal literals here."""
        assert not is_decimal_string("١٢٣")
        assert not is_decimal_string("３")
