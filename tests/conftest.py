"""Pytest configuration and shared fixtures."""

import json
import shutil
import tempfile
from pathlib import Path

import pytest


@pytest.fixture
def temp_output_dir():
    """Create temporary output directory for tests."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    # Cleanup
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def signers_csv_file(tmp_path) -> Path:
    """Create a comma-separated file with a header row."""
    csv_content = """Id, Fname, LName, State
Signer01, John, Adams, MA
Signer02, Thomas, Jefferson, VA
Signer03, "Hancock, John", , MA
"""
    csv_file = tmp_path / "signers.csv"
    csv_file.write_text(csv_content)
    return csv_file


@pytest.fixture
def sample_csv_file(tmp_path) -> Path:
    """Create a sample CSV file for testing."""
    csv_content = """order_id,customer,total,date
ORD001,John Doe,150.25,2024-01-15
ORD002,Jane Smith,275.50,2024-01-16
ORD003,Bob Johnson,99.99,2024-01-17
"""
    csv_file = tmp_path / "sample.csv"
    csv_file.write_text(csv_content)
    return csv_file


@pytest.fixture
def malformed_csv_file(tmp_path) -> Path:
    """Create a CSV file whose second record has an unbalanced quote."""
    csv_content = """id,name
1,alpha
2,"beta
3,gamma
"""
    csv_file = tmp_path / "malformed.csv"
    csv_file.write_text(csv_content)
    return csv_file


@pytest.fixture
def sample_arff_file(tmp_path) -> Path:
    """Create a sample ARFF file for testing."""
    arff_content = """% Weather data
@RELATION weather

@ATTRIBUTE outlook {sunny,overcast,rainy}
@ATTRIBUTE temperature NUMERIC
@ATTRIBUTE 'play golf' {yes,no}

@DATA
sunny,85,no
overcast,?,yes
{0 rainy, 1 70}
"""
    arff_file = tmp_path / "weather.arff"
    arff_file.write_text(arff_content)
    return arff_file


@pytest.fixture
def sample_xsv_file(tmp_path) -> Path:
    """Create a sample XSV file with typed declarations."""
    xsv_content = """<Xsv title="Signers" creator="Continental Congress">
<Head Id="#ID" Name="#string!" State="#ENUM(MA VA NY)?#MA"
      Home="#BASE(http://example.com/)" Age="#int?">
  <!-- first signer -->
  <Rec Id="s01" Name="John Adams" Age="89" />
  <Rec Id="s02" Name="Thomas Jefferson" State="VA" Home="jefferson" />
</Head>
</Xsv>
"""
    xsv_file = tmp_path / "signers.xsv"
    xsv_file.write_text(xsv_content)
    return xsv_file


@pytest.fixture
def sample_json_file(tmp_path) -> Path:
    """Create a JSON table file."""
    json_content = """{ "Table": [
  { "Id": "Signer01", "Age": 52, "Tags": ["a", "b"] },
  { "Id": "Signer02", "Age": null }
] }
"""
    json_file = tmp_path / "table.json"
    json_file.write_text(json_content)
    return json_file


@pytest.fixture
def convert_config_file(tmp_path) -> Path:
    """Create a conversion config file (CSV in, JSON out)."""
    config = {
        "input_format": "csv",
        "output_format": "JSON",
        "input_options": {"fieldSep": ",", "header": True},
        "continueOnError": True,
    }
    config_file = tmp_path / "convert.json"
    config_file.write_text(json.dumps(config, indent=2))
    return config_file
