"""
Tests for TableWriter.
"""

import json

import pytest

from tabular_formats.engine import TabularEngine
from tabular_formats.writer import TableWriter


class TestTableWriter:
    """Test writing tables to files."""

    def test_records_with_header_and_trailer(self, temp_output_dir):
        path = temp_output_dir / "out.json"
        with TableWriter(path, TabularEngine("JSON")) as writer:
            writer.write_record({"Id": "Signer01", "Age": "52"})
            writer.write_record({"Id": "Signer02", "Age": "61"})
        assert writer.closed
        assert writer.records_written == 2
        data = json.loads(path.read_text())
        assert data == {"Table": [{"Id": "Signer01", "Age": 52}, {"Id": "Signer02", "Age": 61}]}

    def test_empty_table_still_written(self, temp_output_dir):
        path = temp_output_dir / "empty.json"
        TableWriter(path, TabularEngine("JSON")).close()
        assert json.loads(path.read_text()) == {"Table": []}

    def test_nothing_written_before_first_record(self, temp_output_dir):
        path = temp_output_dir / "later.csv"
        writer = TableWriter(path, TabularEngine("CSV", {"fieldSep": ","}))
        assert not path.exists()
        writer.write_record(["", "a", "b"])
        writer.close()
        assert path.read_text() == "a,b\n"

    def test_header_sees_schema_of_first_record(self, temp_output_dir):
        path = temp_output_dir / "out.csv"
        with TableWriter(path, TabularEngine("CSV", {"fieldSep": ",", "header": True})) as writer:
            writer.write_record({"x": "1", "y": "2"})
        assert path.read_text() == "x,y\n1,2\n"

    def test_write_after_close(self, temp_output_dir):
        writer = TableWriter(temp_output_dir / "out.csv", TabularEngine("CSV"))
        writer.close()
        with pytest.raises(RuntimeError):
            writer.write_record({"a": "1"})
        writer.close()

    def test_comment(self, temp_output_dir):
        path = temp_output_dir / "out.csv"
        with TableWriter(path, TabularEngine("CSV", {"fieldSep": ",", "comment": "#"})) as writer:
            writer.write_comment("generated")
            writer.write_record({"a": "1"})
        assert path.read_text() == "# generated\n1\n"

    @pytest.mark.parametrize("flush_every", [None, 0, 1, 5])
    def test_flush_settings(self, temp_output_dir, flush_every):
        path = temp_output_dir / "out.csv"
        with TableWriter(path, TabularEngine("CSV"), flush_every=flush_every) as writer:
            for i in range(3):
                writer.write_record({"n": str(i)})
        assert path.read_text() == "0\n1\n2\n"

    def test_creates_parent_directory(self, temp_output_dir):
        path = temp_output_dir / "nested" / "deeper" / "out.sexp"
        with TableWriter(path, TabularEngine("SEXP")) as writer:
            writer.write_record({"a": "x"})
        assert path.read_text() == '(SEXP\n(tr (a "x"))\n)\n'
