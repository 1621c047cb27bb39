"""
Tests for the physical-line source and the logical-record reader.
"""

import io

import pytest

from tabular_formats.models import Boundary, BoundaryKind, RecordStatus
from tabular_formats.reader import RecordReader, quotes_balanced, split_unquoted
from tabular_formats.source import DataSource


def make_reader(text: str) -> RecordReader:
    source = DataSource()
    source.add_text(text)
    return RecordReader(source)


def read_all(reader: RecordReader, boundary: Boundary):
    texts = []
    while True:
        result = reader.read_logical_record(boundary)
        if result.at_end:
            return texts
        texts.append(result.text)


class TestDataSource:
    """Test line reading and pushback."""

    def test_readline_strips_terminators(self):
        source = DataSource()
        source.add_text("a\r\nb\nc")
        assert source.readline() == "a"
        assert source.readline() == "b"
        assert source.readline() == "c"
        assert source.readline() is None
        assert source.line_number == 2

    def test_pushback_comes_first(self):
        source = DataSource()
        source.add_text("one\ntwo\n")
        line = source.readline()
        source.pushback(line + "\n")
        assert source.line_number == 0
        assert source.readline() == "one"
        assert source.readline() == "two"

    def test_add_text_appends_after_unread(self):
        source = DataSource()
        source.add_text("a\n")
        source.add_text("b\n")
        assert source.readline() == "a"
        assert source.readline() == "b"

    def test_add_text_after_file_keeps_rest_and_pushback(self, tmp_path):
        path = tmp_path / "lines.txt"
        path.write_text("first\nsecond\nthird\n")
        source = DataSource()
        source.open(path)
        source.readline()
        source.readline()
        source.pushback("second\n")
        source.add_text("fourth\n")
        assert source.line_number == 1
        assert [source.readline() for _ in range(3)] == ["second", "third", "fourth"]
        assert source.readline() is None
        assert source.line_number == 4

    def test_attach_leaves_stream_open(self):
        fh = io.StringIO("x\n")
        source = DataSource()
        source.attach(fh)
        assert source.readline() == "x"
        source.close()
        assert not fh.closed

    def test_strip_records(self):
        source = DataSource(strip_records=True)
        source.add_text("  a  \n")
        assert source.readline() == "a"

    def test_rewind(self, tmp_path):
        path = tmp_path / "lines.txt"
        path.write_text("first\nsecond\n")
        source = DataSource()
        source.open(path)
        source.readline()
        source.readline()
        source.rewind()
        assert source.line_number == 0
        assert source.readline() == "first"
        source.close()


class TestQuoteBalance:
    """Test the quote balance check."""

    @pytest.mark.parametrize("text,kwargs,expected", [
        ('a,"b",c', {}, True),
        ('a,"b,c', {}, False),
        ("no quotes", {}, True),
        ('"he said ""hi"""', {"qdouble": True}, True),
        ('"a\\"', {}, True),
        ('"a\\"', {"escape": "\\"}, False),
        ('"a\\\\"', {"escape": "\\"}, True),
    ])
    def test_balanced(self, text, kwargs, expected):
        assert quotes_balanced(text, '"', **kwargs) is expected

    def test_no_quote_character(self):
        assert quotes_balanced('a"b', "")


class TestSplitUnquoted:
    def test_quotes_protect_separator(self):
        assert split_unquoted("a, 'b,c', \"d,e\"", ",") == ["a", " 'b,c'", ' "d,e"']

    def test_nesting(self):
        assert split_unquoted("a => [1, 2], b => 3", ",", nest=True) == ["a => [1, 2]", " b => 3"]

    def test_multi_character_separator(self):
        assert split_unquoted('"x=>y" => 1', "=>") == ['"x=>y" ', " 1"]


class TestQuoteBalancedReader:
    """Test reading records joined across lines while quotes are open."""

    def test_single_line_records(self):
        reader = make_reader('a,b\nc,"d"\n')
        boundary = Boundary(BoundaryKind.QUOTE_BALANCED, quote='"')
        assert read_all(reader, boundary) == ["a,b", 'c,"d"']

    def test_newline_in_quotes(self):
        reader = make_reader('a,"b\nc",d\ne,f\n')
        boundary = Boundary(BoundaryKind.QUOTE_BALANCED, quote='"', nl_in_quotes=True)
        result = reader.read_logical_record(boundary)
        assert result.ok
        assert result.text == 'a,"b\nc",d'
        assert result.physical_lines == 2
        assert reader.read_logical_record(boundary).text == "e,f"

    def test_unbalanced_without_newlines_is_malformed(self, caplog):
        """Test that the unbalanced text is returned intact and a warning logged."""
        reader = make_reader('a,"b,c\n')
        boundary = Boundary(BoundaryKind.QUOTE_BALANCED, quote='"')
        result = reader.read_logical_record(boundary)
        assert result.status == RecordStatus.MALFORMED
        assert result.text == 'a,"b,c'
        assert "Unbalanced quotes" in caplog.text
        assert reader.read_logical_record(boundary).at_end

    def test_unbalanced_at_end_is_boundary_error(self):
        reader = make_reader('a,"b\nc\n')
        boundary = Boundary(BoundaryKind.QUOTE_BALANCED, quote='"', nl_in_quotes=True)
        result = reader.read_logical_record(boundary)
        assert result.is_fatal
        assert result.text == 'a,"b\nc'


class TestBalancedReader:
    """Test bracket-balanced records."""

    def test_trailing_text_left_unread(self):
        reader = make_reader('{ "a": [1,2], "b": "x" } trailing')
        boundary = Boundary(BoundaryKind.BRACKET_BALANCED, quote='"', escape="\\")
        result = reader.read_logical_record(boundary)
        assert result.ok
        assert result.text == '{ "a": [1,2], "b": "x" }'
        assert reader.source.readline() == " trailing"

    def test_brackets_in_strings_ignored(self):
        reader = make_reader('{ "a": "}]" }\n')
        boundary = Boundary(BoundaryKind.BRACKET_BALANCED, quote='"', escape="\\")
        assert reader.read_logical_record(boundary).text == '{ "a": "}]" }'

    def test_multi_line_with_separators(self):
        reader = make_reader('{ "a": 1,\n  "b": 2 },\n{ "a": 3 }\n]')
        boundary = Boundary(BoundaryKind.BRACKET_BALANCED, quote='"', escape="\\", delimiters=",]}")
        assert read_all(reader, boundary) == ['{ "a": 1,\n  "b": 2 }', '{ "a": 3 }']

    def test_comment_outside_brackets(self):
        reader = make_reader("; note (not a record)\n(tr (a 1))\n")
        boundary = Boundary(BoundaryKind.BRACKET_BALANCED, openers="(", closers=")", quote='"',
                            comment=";")
        assert read_all(reader, boundary) == ["(tr (a 1))"]

    def test_mismatched_brackets_malformed(self):
        reader = make_reader("{ [1, 2} ]\n")
        result = reader.read_logical_record(Boundary(BoundaryKind.BRACKET_BALANCED))
        assert result.status == RecordStatus.MALFORMED

    def test_unterminated_is_boundary_error(self):
        reader = make_reader('{ "a": [1, 2\n')
        result = reader.read_logical_record(Boundary(BoundaryKind.BRACKET_BALANCED, quote='"'))
        assert result.is_fatal


class TestOtherBoundaries:
    """Test continuation blocks, markup, delimiters, frames and tags."""

    def test_block(self):
        reader = make_reader("a: 1\nb: 2\n\n\nc: 3\n")
        assert read_all(reader, Boundary(BoundaryKind.CONTINUATION_BLOCK)) == ["a: 1\nb: 2", "c: 3"]

    def test_close_tag(self):
        reader = make_reader("<table><tr><td>1</td></tr>\n<!-- <tr> -->\n<tr><td>2</td></tr></table>\n")
        boundary = Boundary(BoundaryKind.MARKUP, close_tag="tr")
        assert read_all(reader, boundary) == ["<tr><td>1</td></tr>", "<tr><td>2</td></tr>"]

    def test_close_tag_across_lines(self):
        reader = make_reader("<tr>\n  <td>1</td>\n</tr>\n")
        result = reader.read_logical_record(Boundary(BoundaryKind.MARKUP, close_tag="tr"))
        assert result.text == "<tr>\n  <td>1</td>\n</tr>"
        assert result.physical_lines == 3

    def test_close_tag_missing(self):
        reader = make_reader("<tr><td>1</td>\n")
        result = reader.read_logical_record(Boundary(BoundaryKind.MARKUP, close_tag="tr"))
        assert result.is_fatal

    def test_unquoted_delimiter(self):
        reader = make_reader('a => 1, b => "x,y";\n')
        boundary = Boundary(BoundaryKind.UNQUOTED_DELIMITER, quote="'\"", escape="\\", delimiters=",;")
        assert read_all(reader, boundary) == ["a => 1", 'b => "x,y"']

    def test_unquoted_delimiter_stops_at_unmatched_closer(self):
        reader = make_reader("{ a => 1 },\n);\n")
        boundary = Boundary(BoundaryKind.UNQUOTED_DELIMITER, delimiters=",;")
        assert read_all(reader, boundary) == ["{ a => 1 }"]

    def test_frame(self):
        reader = make_reader("# comment\nIndividual: a\n  Facts: x 1\n\nIndividual: b\n")
        boundary = Boundary(BoundaryKind.FRAME, frame_pattern=r"^\s*(Individual|Class):", comment="#")
        assert read_all(reader, boundary) == ["Individual: a\n  Facts: x 1", "Individual: b"]

    def test_tags(self):
        reader = make_reader('<Rec a="1" /> <Rec a="2"/>\n<Rec\n  b="x>y" />\n')
        boundary = Boundary(BoundaryKind.TAG)
        assert read_all(reader, boundary) == ['<Rec a="1" />', '<Rec a="2"/>', '<Rec\n  b="x>y" />']

    def test_unterminated_tag(self):
        reader = make_reader('<Rec a="1"\n')
        assert reader.read_logical_record(Boundary(BoundaryKind.TAG)).is_fatal

    def test_skip_pattern(self):
        reader = make_reader("\nmy @table = ( { a => 1 },\n")
        matched = reader.skip_pattern(r"\s*my\s+@\w+\s*=\s*\(\s*")
        assert matched == "my @table = ( "
        assert reader.source.readline() == "{ a => 1 },"
