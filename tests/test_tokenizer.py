"""
Tests for splitting delimited records into fields.
"""

import pytest

from tabular_formats.tokenizer import find_real_close_quote, split_delimited_record


class TestPlainSplit:
    """Test records without quoting."""

    def test_tab_separated(self):
        assert split_delimited_record("a\tb\tc", "\t") == ["a", "b", "c"]

    def test_empty_fields_kept(self):
        assert split_delimited_record("a,,c,", ",") == ["a", "", "c", ""]

    def test_multi_character_separator(self):
        assert split_delimited_record("a::b::c", "::") == ["a", "b", "c"]

    def test_no_separator(self):
        assert split_delimited_record("a,b", "") == ["a,b"]


class TestQuotedFields:
    """Test quoted fields and doubled quotes."""

    def test_quoted_separator(self):
        assert split_delimited_record('foo,"bar,baz",qux', ",") == ["foo", "bar,baz", "qux"]

    def test_doubled_quotes(self):
        record = 'a,"he said ""hi""",b'
        assert split_delimited_record(record, ",", qdouble=True) == ["a", 'he said "hi"', "b"]

    def test_blanks_around_quoted_field(self):
        assert split_delimited_record('a,  "b" ,c', ",") == ["a", "b", "c"]

    def test_quote_disabled(self):
        assert split_delimited_record('a,"b,c"', ",", quote="") == ["a", '"b', 'c"']

    def test_text_after_close_quote(self):
        errors = []
        fields = split_delimited_record('"a"b,c', ",", errors=errors)
        assert fields == ["ab", "c"]
        assert len(errors) == 1
        assert "after closing quote" in errors[0]

    def test_unterminated_quote(self):
        errors = []
        fields = split_delimited_record('a,"b,c', ",", errors=errors)
        assert fields == ["a", '"b', "c"]
        assert errors == ["Unterminated quote in field 2"]

    def test_quoted_last_field(self):
        assert split_delimited_record('a,"b"', ",") == ["a", "b"]

    def test_stray_quote_warning(self, caplog):
        fields = split_delimited_record('5" pipe,"x"', ",", qstray=False)
        assert fields == ['5" pipe', "x"]
        assert "Stray quote in unquoted field 1" in caplog.text

    def test_stray_quote_allowed(self, caplog):
        split_delimited_record('5" pipe,"x"', ",")
        assert "Stray quote" not in caplog.text


class TestEscapes:
    """Test escape characters, alone and combined with doubled quotes."""

    def test_escaped_separator(self):
        assert split_delimited_record("a\\,b,c", ",", quote="", escape="\\") == ["a,b", "c"]

    def test_escaped_quote_inside_quotes(self):
        assert split_delimited_record('"a\\"b",c', ",", escape="\\") == ['a"b', "c"]

    def test_escape_mnemonics(self):
        assert split_delimited_record("a\\tb,c\\n", ",", escape="\\") == ["a\tb", "c\n"]

    def test_escape2hex(self):
        assert split_delimited_record("x\\41,y", ",", escape="\\", escape2hex=True) == ["xA", "y"]

    def test_escape_and_qdouble_together(self):
        """Test that the escape binds first, then doubled quotes collapse."""
        fields = split_delimited_record('"a""b","c\\"d",e', ",", escape="\\", qdouble=True)
        assert fields == ['a"b', 'c"d', "e"]

    def test_escaped_escape_before_close_quote(self):
        """Test that an escaped escape character does not hide the closing quote."""
        fields = split_delimited_record('"a\\\\",b', ",", escape="\\", qdouble=True)
        assert fields == ["a\\", "b"]


class TestFindRealCloseQuote:
    @pytest.mark.parametrize("text,kwargs,expected", [
        ('"abc",d', {}, 4),
        ('  "abc"', {}, 6),
        ("abc", {}, None),
        ('"abc', {}, None),
        ('"a""b",c', {"qdouble": True}, 5),
        ('"a\\"b",c', {"escape": "\\"}, 5),
    ])
    def test_positions(self, text, kwargs, expected):
        assert find_real_close_quote(text, ",", '"', **kwargs) == expected

    def test_tab_is_blank_unless_separator(self):
        assert find_real_close_quote('\t"a"', ",", '"') == 3
        assert find_real_close_quote('\t"a"', "\t", '"') is None
