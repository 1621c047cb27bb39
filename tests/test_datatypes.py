"""
Tests for datatype checking and normalization.
"""

import pytest

from tabular_formats.datatypes import (
    check_value_for_type,
    enum_values,
    is_known_datatype,
    is_numeric_datatype,
    known_datatypes,
    normalize,
    split_datatype,
)


class TestCheckValueForType:
    """Test values against named datatypes."""

    @pytest.mark.parametrize("dt,value", [
        ("int", "42"),
        ("int", "-2147483648"),
        ("integer", "123456789012345678901234567890"),
        ("decimal", "3.14"),
        ("double", "1.5e10"),
        ("double", "NaN"),
        ("boolean", "true"),
        ("date", "2024-01-15"),
        ("dateTime", "2024-01-15T10:30:00Z"),
        ("time", "10:30:00"),
        ("gYear", "1776"),
        ("language", "en-US"),
        ("NCName", "Signer01"),
        ("anyURI", "http://example.com/a?b=c"),
        ("hexBinary", "0aFF"),
        ("BASEINT", "0x1F"),
        ("ENUM(MA VA NY)", "VA"),
        ("STRING(^S\\d+$)", "S01"),
    ])
    def test_valid(self, dt, value):
        ok, msg = check_value_for_type(dt, value)
        assert ok, msg
        assert msg is None

    @pytest.mark.parametrize("dt,value", [
        ("int", "4294967296"),
        ("int", "4.5"),
        ("byte", "200"),
        ("unsignedByte", "-1"),
        ("positiveInteger", "0"),
        ("negativeInteger", "5"),
        ("boolean", "yes"),
        ("date", "15/01/2024"),
        ("NCName", "1abc"),
        ("ENUM(MA VA NY)", "CA"),
        ("STRING(^S\\d+$)", "X01"),
        ("REGEX", "a(b"),
    ])
    def test_invalid(self, dt, value):
        ok, msg = check_value_for_type(dt, value)
        assert not ok
        assert msg

    def test_unknown_datatype(self):
        ok, msg = check_value_for_type("bogus", "x")
        assert not ok
        assert "Unknown datatype" in msg

    def test_empty_value_and_repetition(self):
        """Test that empty values pass only for optional repetitions."""
        assert check_value_for_type("int", "", "?") == (True, None)
        assert check_value_for_type("int", "", "*") == (True, None)
        assert check_value_for_type("int", "", "!")[0] is False

    def test_range_message(self):
        ok, msg = check_value_for_type("short", "40000")
        assert not ok
        assert "above max" in msg


class TestDatatypeNames:
    """Test datatype name helpers."""

    def test_split_datatype(self):
        assert split_datatype("ENUM(a b)") == ("ENUM", "a b")
        assert split_datatype("int") == ("int", "")

    def test_enum_values(self):
        assert enum_values("ENUM(a, b|c  d)") == ["a", "b", "c", "d"]
        assert enum_values("int") == []

    def test_is_known_datatype(self):
        assert is_known_datatype("int")
        assert is_known_datatype("ENUM(a b)")
        assert not is_known_datatype("int(5)")
        assert not is_known_datatype("bogus")

    def test_is_numeric_datatype(self):
        assert is_numeric_datatype("double")
        assert is_numeric_datatype("unsignedLong")
        assert not is_numeric_datatype("date")
        assert not is_numeric_datatype("")

    def test_known_datatypes_sorted(self):
        names = known_datatypes()
        assert names == sorted(names)
        assert "IDREFS" in names


class TestNormalize:
    """Test conversion of checked values to Python values."""

    def test_numbers(self):
        assert normalize("integer", " 42 ") == 42
        assert normalize("double", "2.5") == 2.5

    def test_baseint(self):
        assert normalize("BASEINT", "0x1F") == 31
        assert normalize("BASEINT", "017") == 15
        assert normalize("BASEINT", "-9") == -9

    def test_boolean(self):
        assert normalize("boolean", "false") is False
        assert normalize("boolean", "1") is True

    def test_whitespace(self):
        assert normalize("token", "  a \n b ") == "a b"

    def test_unconvertible_unchanged(self):
        assert normalize("int", "abc") == "abc"
        assert normalize("int", None) is None
