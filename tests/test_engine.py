"""
Tests for the tabular engine: life cycle, record statuses and sniffing.
"""

import pytest

from tabular_formats.engine import EngineState, TabularEngine, sniff_format, sniff_options
from tabular_formats.errors import BoundaryError, EngineStateError
from tabular_formats.models import FormatName, RecordStatus

SIGNER_OPTIONS = {"fieldSep": ",", "header": True}


class TestSignersTable:
    """Test reading a comma-separated table with a header."""

    def test_header_names(self, signers_csv_file):
        engine = TabularEngine("CSV", SIGNER_OPTIONS)
        engine.open(signers_csv_file)
        assert engine.read_header() == ["", "Id", "Fname", "LName", "State"]
        assert engine.schema.is_closed
        engine.close()

    def test_records(self, signers_csv_file):
        with TabularEngine("CSV", SIGNER_OPTIONS) as engine:
            engine.open(signers_csv_file)
            first = engine.next_record()
            assert first.status == RecordStatus.OK
            assert first.values == ["", "Signer01", "John", "Adams", "MA"]
            assert first.fields["LName"] == "Adams"
            assert first.record_number == 1

            engine.next_record()
            third = engine.next_record()
            assert third.values == ["", "Signer03", "Hancock, John", "", "MA"]

            assert engine.next_record().status == RecordStatus.END
            assert engine.stats.records_read == 3
            assert engine.stats.records_ok == 3

    def test_every_array_lines_up_with_schema(self, signers_csv_file):
        engine = TabularEngine("CSV", SIGNER_OPTIONS)
        engine.open(signers_csv_file)
        for values in engine.iter_records(as_array=True):
            assert values[0] == ""
            assert len(values) == engine.schema.count() + 1
        engine.close()


class TestRecordStatus:
    """Test how bad data is reported without raising."""

    def test_unbalanced_quote_is_malformed(self):
        engine = TabularEngine("CSV", {"fieldSep": ","})
        record = engine.parse_record_from_string('a,"b,c\n')
        assert record.status == RecordStatus.MALFORMED
        assert record.text == 'a,"b,c'
        assert record.messages
        assert engine.stats.malformed_records == 1
        assert engine.next_record().status == RecordStatus.END

    def test_unterminated_quote_at_end_is_boundary_error(self):
        engine = TabularEngine("CSV", {"fieldSep": ",", "nlInQuotes": True})
        engine.add_text('a,"b\nc\n')
        record = engine.next_record()
        assert record.status == RecordStatus.BOUNDARY_ERROR
        assert record.is_fatal
        assert engine.stats.boundary_errors == 1

    def test_iter_records_raises_on_boundary_error(self):
        engine = TabularEngine("CSV", {"fieldSep": ",", "nlInQuotes": True})
        engine.add_text('ok,1\na,"b\n')
        with pytest.raises(BoundaryError):
            list(engine.iter_records())

    def test_extra_field_in_closed_schema(self):
        """Test that a schema error is reported but the record stays OK."""
        engine = TabularEngine("CSV", SIGNER_OPTIONS)
        engine.add_text("x,y\n1,2,3\n")
        record = engine.next_record()
        assert record.status == RecordStatus.OK
        assert record.values == ["", "1", "2"]
        assert any("expected 2" in m for m in record.messages)
        assert engine.stats.schema_errors == 1

    def test_open_schema_grows(self):
        engine = TabularEngine("CSV", {"fieldSep": ","})
        engine.add_text("1,2\n3,4,5\n")
        assert engine.next_record().values == ["", "1", "2"]
        assert engine.next_record().values == ["", "3", "4", "5"]
        assert engine.field_names() == ["", "F_1", "F_2", "F_3"]

    def test_duplicate_header_names(self):
        engine = TabularEngine("CSV", SIGNER_OPTIONS)
        engine.add_text("a,a,\n1,2,3\n")
        assert engine.read_header() == ["", "a", "F_2", "F_3"]
        assert len(engine.schema.errors) == 1


class TestLifeCycle:
    """Test engine states and the operations each allows."""

    def test_unconfigured(self):
        assert TabularEngine().state == EngineState.UNCONFIGURED

    def test_configured_without_input(self):
        engine = TabularEngine("CSV")
        assert engine.state == EngineState.CONFIGURED
        with pytest.raises(EngineStateError):
            engine.next_record()

    def test_header_pending_then_streaming(self):
        engine = TabularEngine("CSV", SIGNER_OPTIONS)
        engine.add_text("a,b\n1,2\n")
        assert engine.state == EngineState.HEADER_PENDING
        engine.next_record()
        assert engine.state == EngineState.STREAMING

    def test_headerless_syntax_streams_at_once(self):
        engine = TabularEngine("JSON")
        engine.add_text('[ { "a": 1 } ]\n')
        assert engine.state == EngineState.STREAMING

    def test_configure_after_reading_rejected(self):
        engine = TabularEngine("CSV", {"fieldSep": ","})
        engine.add_text("1,2\n")
        engine.next_record()
        with pytest.raises(EngineStateError):
            engine.configure("JSON")

    def test_closed_is_terminal(self):
        engine = TabularEngine("CSV")
        engine.add_text("a\n")
        engine.close()
        assert engine.state == EngineState.CLOSED
        with pytest.raises(EngineStateError):
            engine.next_record()
        with pytest.raises(EngineStateError):
            engine.reset()
        engine.close()

    def test_default_syntax_is_csv(self):
        engine = TabularEngine()
        engine.add_text("a\tb\n")
        assert engine.format == FormatName.CSV
        assert engine.next_record().values == ["", "a", "b"]

    def test_rewind_reads_header_again(self, signers_csv_file):
        engine = TabularEngine("CSV", SIGNER_OPTIONS)
        engine.open(signers_csv_file)
        engine.next_record()
        engine.next_record()
        engine.rewind()
        assert engine.state == EngineState.HEADER_PENDING
        record = engine.next_record()
        assert record.record_number == 1
        assert record.values[1] == "Signer01"
        engine.close()

    def test_add_text_after_open_keeps_unread_records(self, tmp_path):
        """Test that text added mid-file is read after the rest of the file."""
        path = tmp_path / "pairs.csv"
        path.write_text("a,b\n1,2\n3,4\n5,6\n")
        engine = TabularEngine("CSV", {"fieldSep": ","})
        engine.open(path)
        assert engine.next_record().values == ["", "a", "b"]
        engine.add_text("7,8\n")
        rest = list(engine.iter_records(as_array=True))
        assert rest == [["", "1", "2"], ["", "3", "4"], ["", "5", "6"], ["", "7", "8"]]
        assert engine.record_number == 5
        engine.close()

    def test_reset_forgets_schema(self):
        engine = TabularEngine("CSV", SIGNER_OPTIONS)
        engine.add_text("a,b\n1,2\n")
        engine.next_record()
        engine.reset()
        assert engine.schema.count() == 0
        assert engine.stats.records_read == 0
        assert engine.format == FormatName.CSV


class TestOptions:
    """Test option access through the engine."""

    def test_bad_basic_type_rejected(self):
        engine = TabularEngine("CSV")
        assert engine.set_option("basicType", "bogus") is None
        assert engine.format == FormatName.CSV
        assert engine.options.errors

    def test_basic_type_switches_syntax(self):
        engine = TabularEngine("CSV")
        assert engine.set_option("basicType", "json") == FormatName.JSON
        assert engine.format == FormatName.JSON
        assert engine.get_option("comment") == "//"

    def test_basic_type_change_after_reading_recorded(self):
        engine = TabularEngine("CSV", {"fieldSep": ","})
        engine.add_text("1,2\n3,4\n")
        engine.next_record()
        assert engine.set_option("basicType", "JSON") is None
        assert engine.format == FormatName.CSV
        assert "after reading has started" in engine.options.errors[-1].message

    def test_strip_records_set_after_configure(self):
        engine = TabularEngine("CSV")
        engine.set_option("fieldSep", ",")
        engine.set_option("stripRecords", True)
        engine.add_text("  a,b   \n")
        record = engine.next_record()
        assert record.text == "a,b"
        assert record.values == ["", "a", "b"]

    def test_strip_records_set_on_options(self):
        engine = TabularEngine("CSV", {"fieldSep": ","})
        engine.add_text("a,b   \n")
        engine.options.set("stripRecords", True)
        assert engine.next_record().text == "a,b"

    def test_options_frozen_after_reading(self):
        engine = TabularEngine("CSV", {"fieldSep": ","})
        engine.add_text("1\n")
        engine.next_record()
        assert engine.options.frozen


class TestHelpers:
    """Test record conversion helpers."""

    def test_parse_record_to_array(self):
        engine = TabularEngine("CSV", {"fieldSep": ","})
        assert engine.parse_record_to_array("1, 2") == ["", "1", "2"]

    def test_hash_to_array_in_schema_order(self):
        engine = TabularEngine("CSV", {"fieldSep": ","})
        engine.schema.append("a")
        engine.schema.append("b", default="none")
        assert engine.hash_to_array({"a": "1"}) == ["", "1", "none"]

    def test_hash_to_array_with_names(self):
        engine = TabularEngine("CSV")
        assert engine.hash_to_array({"a": 1, "b": 2}, ["", "b", "a"]) == ["", 2, 1]

    def test_assemble_field(self):
        engine = TabularEngine("CSV", {"fieldSep": ","})
        engine.schema.append("Name")
        assert engine.assemble_field("Name", "x,y") == '"x,y"'

    def test_field_name_access(self):
        engine = TabularEngine("CSV")
        engine.set_field_names(["", "a", "b"])
        assert engine.get_field_number("b") == 2
        assert engine.get_field_name(1) == "a"
        assert engine.set_field_name(1, "first")
        assert engine.field_names() == ["", "first", "b"]

    def test_field_name_rules(self):
        engine = TabularEngine("CSV")
        assert engine.is_ok_field_name("State")
        assert not engine.is_ok_field_name("2nd field")
        assert engine.clean_field_name("2nd field") == "A_2nd_field"


class TestSniffing:
    """Test guessing the syntax of a file."""

    @pytest.mark.parametrize("filename,content,expected", [
        ("table.json", "anything", FormatName.JSON),
        ("weather.txt", "% comment\n@relation weather\n", FormatName.ARFF),
        ("signers.dat", '<Xsv>\n<Head Id="">\n', FormatName.XSV),
        ("page.dat", "<html><table>\n", FormatName.XML),
        ("list.dat", "(SEXP\n(tr (a 1))\n)\n", FormatName.SEXP),
        ("data.dat", "my @table = (\n", FormatName.PERL),
        ("onto.txt", "Individual: a\n    Facts: x 1\n", FormatName.MANCH),
        ("mail.txt", "Id: 1\nName: x\n\nId: 2\n", FormatName.MIME),
        ("plain.txt", "a;b;c\n1;2;3\n", FormatName.CSV),
    ])
    def test_sniff_format(self, tmp_path, filename, content, expected):
        path = tmp_path / filename
        path.write_text(content)
        assert sniff_format(path) == expected

    def test_sniff_options_finds_separator(self, tmp_path):
        path = tmp_path / "plain.txt"
        path.write_text("a;b;c\n1;2;3\n")
        assert sniff_options(path) == {"basicType": "CSV", "fieldSep": ";"}

    def test_sniff_options_without_separator(self, tmp_path):
        path = tmp_path / "single.txt"
        path.write_text("word\n")
        assert sniff_options(path) == {"basicType": "CSV"}
