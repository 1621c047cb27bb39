"""
Tests for the tabular-convert command line.
"""

import json

import pytest

from tabular_formats.cli import build_config, build_parser, given_options, main


class TestArguments:
    """Test turning arguments into a ConvertConfig."""

    def test_given_options_only(self, tmp_path):
        args = build_parser().parse_args(["--from", "csv", "--to", "xml", "--out", str(tmp_path),
                                          "--in-fieldSep", ";", "--out-prettyPrint", "x.csv"])
        assert given_options(args, "in-") == {"fieldSep": ";"}
        assert given_options(args, "out-") == {"prettyPrint": True}

    def test_rejected_option_value(self, tmp_path):
        args = build_parser().parse_args(["--from", "CSV", "--to", "XML", "--out", str(tmp_path),
                                          "--in-entityBase", "8", "x.csv"])
        with pytest.raises(ValueError) as exc_info:
            given_options(args, "in-")
        assert "--in-entityBase" in str(exc_info.value)

    def test_command_line_overrides_config(self, tmp_path, convert_config_file):
        args = build_parser().parse_args(["--config", str(convert_config_file), "--to", "SEXP",
                                          "--in-fieldSep", ";", "--out", str(tmp_path), "x.csv"])
        config = build_config(args)
        assert config.output_format.value == "SEXP"
        assert config.input_options == {"fieldSep": ";", "header": True}
        assert config.continueOnError is True

    def test_sniff_clears_input_format(self, tmp_path):
        args = build_parser().parse_args(["--sniff", "--to", "CSV", "--out", str(tmp_path), "x"])
        assert build_config(args).input_format is None

    def test_unknown_syntax_rejected(self, tmp_path):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--from", "YAML", "--to", "CSV", "--out", str(tmp_path), "x"])


def test_main_success(sample_csv_file, temp_output_dir):
    """Test a full conversion returns exit code 0."""
    code = main(["--from", "CSV", "--in-fieldSep", ",", "--in-header", "--to", "JSON",
                 "--out", str(temp_output_dir), str(sample_csv_file)])
    assert code == 0
    data = json.loads((temp_output_dir / "sample.json").read_text())
    assert data["Table"][2]["customer"] == "Bob Johnson"


def test_main_without_output_syntax(sample_csv_file, temp_output_dir):
    """Test that a missing --to is a usage error."""
    assert main(["--from", "CSV", "--out", str(temp_output_dir), str(sample_csv_file)]) == 1


def test_main_without_input_syntax(sample_csv_file, temp_output_dir):
    assert main(["--to", "CSV", "--out", str(temp_output_dir), str(sample_csv_file)]) == 1


def test_main_partial_failure(sample_csv_file, tmp_path, temp_output_dir):
    """Test that one failed file out of two returns exit code 2."""
    missing = tmp_path / "nonexistent.csv"
    code = main(["--from", "CSV", "--in-fieldSep", ",", "--to", "XML",
                 "--out", str(temp_output_dir), str(sample_csv_file), str(missing)])
    assert code == 2
    assert (temp_output_dir / "sample.html").exists()


def test_main_all_failed(tmp_path, temp_output_dir):
    missing = tmp_path / "nonexistent.csv"
    assert main(["--from", "CSV", "--to", "XML", "--out", str(temp_output_dir), str(missing)]) == 1


def test_main_with_config(convert_config_file, sample_csv_file, malformed_csv_file, temp_output_dir):
    """Test settings loaded from a config file."""
    code = main(["--config", str(convert_config_file), "--out", str(temp_output_dir),
                 str(sample_csv_file), str(malformed_csv_file)])
    assert code == 0
    assert (temp_output_dir / "sample.json").exists()
    data = json.loads((temp_output_dir / "malformed.json").read_text())
    assert len(data["Table"]) == 2


def test_main_missing_config(tmp_path, temp_output_dir):
    code = main(["--config", str(tmp_path / "missing.json"), "--out", str(temp_output_dir), "x.csv"])
    assert code == 1


def test_main_sniff(sample_arff_file, temp_output_dir):
    """Test guessing the input syntax."""
    code = main(["--sniff", "--to", "XML", "--out", str(temp_output_dir), str(sample_arff_file)])
    assert code == 0
    html = (temp_output_dir / "weather.html").read_text()
    assert '<td class="outlook">sunny</td>' in html


def test_main_dry_run(sample_csv_file, tmp_path):
    output_dir = tmp_path / "out"
    code = main(["--from", "CSV", "--to", "JSON", "--dry-run", "--out", str(output_dir), str(sample_csv_file)])
    assert code == 0
    assert not output_dir.exists()
