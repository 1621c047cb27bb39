"""
Tabular Formats package.
"""

__version__ = "1.0.0"

from tabular_formats.convert import ConvertConfig, convert_files
from tabular_formats.engine import EngineState, TabularEngine, sniff_format
from tabular_formats.errors import (
    BoundaryError,
    DatatypeError,
    EngineStateError,
    FieldError,
    FileProcessingError,
    OptionError,
    SchemaError,
    TabularFormatError,
)
from tabular_formats.events import Event, EventNormalizer, EventType, PullParser, to_dom
from tabular_formats.models import FormatName, ParsingStats, ReadResult, RecordResult, RecordStatus
from tabular_formats.options import DataOptions
from tabular_formats.schema import FieldDef, TableSchema
from tabular_formats.writer import TableWriter

__all__ = [
    "TabularEngine",
    "EngineState",
    "sniff_format",
    "FormatName",
    "DataOptions",
    "TableSchema",
    "FieldDef",
    "RecordStatus",
    "ReadResult",
    "RecordResult",
    "ParsingStats",
    "Event",
    "EventType",
    "EventNormalizer",
    "PullParser",
    "to_dom",
    "TableWriter",
    "ConvertConfig",
    "convert_files",
    "TabularFormatError",
    "BoundaryError",
    "FieldError",
    "SchemaError",
    "OptionError",
    "DatatypeError",
    "EngineStateError",
    "FileProcessingError",
]
