"""
Syntax strategies, one per supported format.

The set is closed: ``FORMATS`` maps every ``FormatName`` to its strategy class,
and the engine picks one when it is configured.
"""

from typing import Dict, Type, Union

from tabular_formats.formats.arff_format import ArffFormat
from tabular_formats.formats.base import FormatStrategy
from tabular_formats.formats.columns_format import ColumnsFormat
from tabular_formats.formats.csv_format import CsvFormat
from tabular_formats.formats.json_format import JsonFormat
from tabular_formats.formats.manchester_format import ManchesterFormat
from tabular_formats.formats.mime_format import MimeFormat
from tabular_formats.formats.perl_format import PerlFormat
from tabular_formats.formats.sexp_format import SexpFormat
from tabular_formats.formats.xml_format import XmlFormat
from tabular_formats.formats.xsv_format import XsvFormat
from tabular_formats.models import FormatName
from tabular_formats.options import DataOptions
from tabular_formats.reader import RecordReader
from tabular_formats.schema import TableSchema

FORMATS: Dict[FormatName, Type[FormatStrategy]] = {
    FormatName.ARFF: ArffFormat,
    FormatName.COLUMNS: ColumnsFormat,
    FormatName.CSV: CsvFormat,
    FormatName.JSON: JsonFormat,
    FormatName.MANCH: ManchesterFormat,
    FormatName.MIME: MimeFormat,
    FormatName.PERL: PerlFormat,
    FormatName.SEXP: SexpFormat,
    FormatName.XML: XmlFormat,
    FormatName.XSV: XsvFormat,
}


def format_name(name: Union[str, FormatName]) -> FormatName:
    """Normalize a syntax name (case-insensitive).

    Raises:
        ValueError: If the name is not one of the supported syntaxes
    """
    if isinstance(name, FormatName):
        return name
    try:
        return FormatName(str(name).strip().upper())
    except ValueError:
        known = ", ".join(f.value for f in FormatName)
        raise ValueError(f"Unknown format '{name}' (known: {known})") from None


def create_strategy(name: Union[str, FormatName], reader: RecordReader, schema: TableSchema,
                    options: DataOptions) -> FormatStrategy:
    return FORMATS[format_name(name)](reader, schema, options)


__all__ = [
    "FORMATS",
    "FormatName",
    "FormatStrategy",
    "create_strategy",
    "format_name",
    "ArffFormat",
    "ColumnsFormat",
    "CsvFormat",
    "JsonFormat",
    "ManchesterFormat",
    "MimeFormat",
    "PerlFormat",
    "SexpFormat",
    "XmlFormat",
    "XsvFormat",
]
