"""
The tabular engine: one syntax, one schema, one option set, one source.

The engine is an explicit value that owns all of its state, so any number of
engines can be used side by side. Its life cycle is::

    UNCONFIGURED -> CONFIGURED -> HEADER_PENDING -> STREAMING -> CLOSED

HEADER_PENDING is skipped for syntaxes that never carry a header. CLOSED is
terminal: reads raise ``EngineStateError``.
"""

import logging
import re
from enum import Enum
from pathlib import Path
from typing import IO, Any, Dict, Iterator, List, Optional, Union

from tabular_formats.errors import BoundaryError, EngineStateError, OptionError
from tabular_formats.formats import FormatStrategy, create_strategy, format_name
from tabular_formats.formats.csv_format import sniff_delimiter
from tabular_formats.models import FormatName, ParsingStats, ReadResult, RecordResult, RecordStatus
from tabular_formats.options import DataOptions
from tabular_formats.reader import RecordReader
from tabular_formats.schema import TableSchema
from tabular_formats.source import DataSource

logger = logging.getLogger(__name__)

OptionsArg = Optional[Union[DataOptions, Dict[str, Any]]]


class EngineState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    HEADER_PENDING = "header_pending"
    STREAMING = "streaming"
    CLOSED = "closed"


class TabularEngine:
    """Reads and writes one table in one syntax.

    Example:
        engine = TabularEngine("CSV", {"fieldSep": ",", "header": True})
        engine.open("signers.csv")
        for record in engine.iter_records():
            ...
    """

    def __init__(self, format_name: Optional[Union[str, FormatName]] = None, options: OptionsArg = None):
        self.options = DataOptions()
        self.schema = TableSchema()
        self.source = DataSource()
        self.reader = RecordReader(self.source)
        self.strategy: Optional[FormatStrategy] = None
        self.state = EngineState.UNCONFIGURED
        self.stats = ParsingStats()
        self.record_number = 0
        self.last_record: Optional[RecordResult] = None
        self.header_names: Optional[List[str]] = None
        self._started = False
        self._finished = False
        if format_name is not None or options:
            self.configure(format_name, options)

    # Configuration

    def configure(self, format_name: Optional[Union[str, FormatName]] = None, options: OptionsArg = None) -> None:
        """Select a syntax and set options.

        Args:
            format_name: Syntax name; defaults to the ``basicType`` option
            options: A ``DataOptions`` (copied) or a dict of option values

        Raises:
            ValueError: If the syntax name is unknown
            EngineStateError: If records have already been read or the engine is closed
        """
        if self.state == EngineState.CLOSED:
            raise EngineStateError("Engine is closed")
        if self._started:
            raise EngineStateError("Cannot reconfigure an engine after reading has started")
        if isinstance(options, DataOptions):
            self.options = options.copy()
        if format_name is not None:
            name = format_name_or_default(format_name, self.options)
            if self.options.get("basicType") != name:
                self.options.set("basicType", name)
        if options and not isinstance(options, DataOptions):
            values = dict(options)
            if format_name is not None:
                values.pop("basicType", None)
            self.options.update(values)
        name = self.options.get("basicType")
        self._sync_source()
        self.strategy = create_strategy(name, self.reader, self.schema, self.options)
        logger.debug(f"Engine configured for {name.value}")
        if self.state == EngineState.UNCONFIGURED:
            self.state = EngineState.CONFIGURED
        elif self.state in (EngineState.HEADER_PENDING, EngineState.STREAMING):
            self.state = self._initial_read_state()
        for problem in self.options.ready_check():
            logger.warning(f"Options: {problem}")

    def choose_format(self, format_name: Union[str, FormatName]) -> None:
        self.configure(format_name)

    @property
    def format(self) -> Optional[FormatName]:
        return self.strategy.name if self.strategy is not None else None

    def set_option(self, name: str, value: Any) -> Any:
        """Set one option. Returns the stored value, or None if rejected."""
        if DataOptions.canonical(name) == "basicType":
            try:
                self.configure(value)
            except (ValueError, EngineStateError) as e:
                logger.warning(f"Options: {e}")
                self.options.errors.append(OptionError(str(e)))
                return None
            return self.options.get("basicType")
        stored = self.options.set(name, value)
        self._sync_source()
        return stored

    def get_option(self, name: str) -> Any:
        return self.options.get(name)

    def has_option(self, name: str) -> bool:
        return self.options.has(name)

    def get_options_hash(self) -> Dict[str, Any]:
        return self.options.as_dict()

    def option_helps(self) -> Dict[str, str]:
        return self.options.helps()

    def _require_strategy(self) -> FormatStrategy:
        if self.state == EngineState.CLOSED:
            raise EngineStateError("Engine is closed")
        if self.strategy is None:
            self.configure()
        return self.strategy

    # Source management

    def _initial_read_state(self) -> EngineState:
        return EngineState.HEADER_PENDING if self.strategy.has_header else EngineState.STREAMING

    def _sync_source(self) -> None:
        # The source reads physical lines, so it keeps its own copy of this option
        self.source.strip_records = bool(self.options.get("stripRecords"))

    def _begin_source(self) -> None:
        self._sync_source()
        self.record_number = 0
        self.stats = ParsingStats()
        self.last_record = None
        self._started = False
        self._finished = False
        self.state = self._initial_read_state()

    def open(self, path: Union[str, Path], encoding: Optional[str] = None) -> None:
        """Open a file to read.

        Raises:
            OSError: If the file cannot be opened
        """
        self._require_strategy()
        self.source.open(path, encoding or self.options.get("encoding"))
        logger.info(f"Reading {path} as {self.format.value}")
        self._begin_source()

    def attach(self, fh: IO[str]) -> None:
        self._require_strategy()
        self.source.attach(fh)
        self._begin_source()

    def add_text(self, text: str) -> None:
        """Queue literal text as input (after anything not yet read)."""
        self._require_strategy()
        fresh = not self.source.is_open
        self.source.add_text(text)
        if fresh or self.state == EngineState.CONFIGURED:
            self._begin_source()

    def close(self) -> None:
        """Close the source. The engine cannot be read afterwards."""
        if self.state == EngineState.CLOSED:
            return
        if self.strategy is not None and self._started:
            self._finish_table()
        self.stats.finish()
        self.source.close()
        self.state = EngineState.CLOSED

    def rewind(self) -> None:
        """Go back to the start of the source; a header is read again."""
        self._require_strategy()
        self.source.rewind()
        if self.header_names is not None:
            self.schema.reset()
            self.header_names = None
        self._begin_source()

    def seek(self, offset: int) -> None:
        self._require_strategy()
        self.source.seek(offset)

    def tell(self) -> int:
        return self.source.tell()

    def __enter__(self) -> "TabularEngine":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # Schema access

    def field_names(self) -> List[str]:
        return self.schema.names()

    def get_field_name(self, number: int) -> Optional[str]:
        return self.schema.get_name(number)

    def get_field_number(self, name: str) -> Optional[int]:
        return self.schema.position_of(name)

    def set_field_name(self, number: int, name: str) -> bool:
        fdef = self.schema.get(number)
        if fdef is None:
            return False
        return self.schema.rename(number, name)

    def set_field_names(self, names: List[str]) -> int:
        """Name the fields from an array whose slot 0 is ignored."""
        return self.schema.set_names(names)

    def is_ok_field_name(self, name: str) -> bool:
        return self._require_strategy().is_ok_field_name(name)

    def clean_field_name(self, name: str) -> str:
        return self._require_strategy().clean_field_name(name)

    # Reading

    def _check_readable(self) -> FormatStrategy:
        strategy = self._require_strategy()
        if self.state == EngineState.CONFIGURED:
            raise EngineStateError("No input: call open(), attach() or add_text() first")
        self._sync_source()
        return strategy

    def _ensure_started(self) -> None:
        if not self._started:
            self._started = True
            self.options.freeze()
            self.strategy.start_table()

    def _clean_header(self, names: List[str]) -> List[str]:
        cleaned = [""]
        seen = set()
        for i, name in enumerate(names[1:], start=1):
            name = (name or "").strip()
            if not name:
                name = f"F_{i}"
            elif not self.strategy.is_ok_field_name(name):
                fixed = self.strategy.clean_field_name(name)
                logger.warning(f"Header: field name '{name}' is not valid for "
                               f"{self.format.value}; using '{fixed}'")
                name = fixed
            if name in seen:
                self.schema.report(f"Duplicate field name '{name}' in header; using 'F_{i}'")
                name = f"F_{i}"
            seen.add(name)
            cleaned.append(name)
        return cleaned

    def read_header(self) -> Optional[List[str]]:
        """Read the header, if the syntax and options provide one.

        Field names are installed in the schema, which is then closed.
        Without a header the schema stays open and fields are created as
        records name them.

        Returns:
            The field names (slot 0 is ``""``), or None
        """
        strategy = self._check_readable()
        if self.state == EngineState.STREAMING and self.record_number > 0:
            raise EngineStateError("The header must be read before any record")
        self._ensure_started()
        names = strategy.read_and_parse_header()
        self.state = EngineState.STREAMING
        if names is None:
            logger.debug(f"{self.format.value}: no header, schema stays open")
            return None
        names = self._clean_header(names)
        self.schema.set_names(names)
        self.schema.close()
        self.header_names = self.schema.names()
        logger.info(f"Header: {self.schema.count()} fields ({', '.join(self.header_names[1:])})")
        return self.header_names

    def read_record(self) -> ReadResult:
        """Read the next logical record without parsing it."""
        strategy = self._check_readable()
        if self.state == EngineState.HEADER_PENDING:
            self.read_header()
        self._ensure_started()
        return strategy.read_record()

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        strategy = self._require_strategy()
        strategy.begin_record()
        return strategy.parse_record_to_hash(text)

    def parse_record_to_array(self, text: str) -> List[Any]:
        """Parse a record into ``schema.count() + 1`` values, slot 0 empty."""
        strategy = self._require_strategy()
        strategy.begin_record()
        return strategy.parse_record_to_array(text)

    def parse_record_from_string(self, text: str) -> RecordResult:
        """Queue ``text`` as input and read one record from it."""
        self.add_text(text)
        return self.next_record()

    def next_record(self) -> RecordResult:
        """Read and parse the next record.

        Never raises for bad data: the status tells END, MALFORMED (fields
        are still returned) and BOUNDARY_ERROR (fatal for this table) apart.
        """
        strategy = self._check_readable()
        if self.state == EngineState.HEADER_PENDING:
            self.read_header()
        self._ensure_started()
        strategy.begin_record()
        result = strategy.read_record()

        if result.at_end:
            self._finish_table()
            return RecordResult(RecordStatus.END, record_number=self.record_number)
        if result.is_fatal:
            self.stats.boundary_errors += 1
            record = RecordResult(RecordStatus.BOUNDARY_ERROR, text=result.text,
                                  messages=[result.message or "Boundary error"],
                                  record_number=self.record_number + 1)
            self.last_record = record
            return record

        self.record_number += 1
        self.stats.records_read += 1
        field_errors = len(strategy.errors)
        schema_errors = len(self.schema.errors)
        datatype_errors = len(strategy.datatype_errors)

        fields = strategy.parse_record_to_hash(result.text)
        values = strategy.hash_to_array(fields)

        new_field_errors = len(strategy.errors) - field_errors
        new_schema_errors = len(self.schema.errors) - schema_errors
        self.stats.field_errors += new_field_errors
        self.stats.schema_errors += new_schema_errors
        self.stats.datatype_errors += len(strategy.datatype_errors) - datatype_errors

        messages = []
        if result.message:
            messages.append(result.message)
        messages.extend(strategy.record_messages)
        messages.extend(e.message for e in self.schema.errors[schema_errors:])

        if result.status == RecordStatus.MALFORMED or new_field_errors:
            status = RecordStatus.MALFORMED
            self.stats.malformed_records += 1
        else:
            status = RecordStatus.OK
            self.stats.records_ok += 1

        record = RecordResult(status, text=result.text, fields=fields, values=values,
                              messages=messages, record_number=self.record_number)
        self.last_record = record
        self.log_progress()
        return record

    def log_progress(self) -> None:
        interval = self.options.get("progressInterval")
        if interval > 0 and self.record_number % interval == 0:
            logger.info(f"[{self.format.value}] Processed {self.record_number:,} records")

    def _finish_table(self) -> None:
        if self._finished:
            return
        self._finished = True
        before = len(self.strategy.datatype_errors)
        self.strategy.end_table()
        self.stats.datatype_errors += len(self.strategy.datatype_errors) - before
        self.stats.finish()
        logger.debug(f"{self.format.value}: end of table after {self.record_number} records")

    def iter_records(self, as_array: bool = False) -> Iterator[Union[Dict[str, Any], List[Any]]]:
        """Yield parsed records until the end of input.

        Malformed records are still yielded.

        Raises:
            BoundaryError: On an unterminated construct at the end of input
        """
        while True:
            record = self.next_record()
            if record.at_end:
                return
            if record.is_fatal:
                raise BoundaryError(record.messages[0], self.source.line_number)
            yield record.values if as_array else record.fields

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        return self.iter_records()

    # Writing

    def assemble_record_from_array(self, values: List[Any]) -> str:
        return self._require_strategy().assemble_record_from_array(values)

    def assemble_record_from_hash(self, record: Dict[str, Any]) -> str:
        return self._require_strategy().assemble_record_from_hash(record)

    def assemble_field(self, name: Union[str, int], value: Any) -> str:
        strategy = self._require_strategy()
        fdef = self.schema.get(name)
        if fdef is None:
            return ""
        return strategy.assemble_field(fdef, value)

    def assemble_header(self) -> str:
        return self._require_strategy().assemble_header()

    def assemble_trailer(self) -> str:
        return self._require_strategy().assemble_trailer()

    def assemble_comment(self, text: str = "") -> str:
        return self._require_strategy().assemble_comment(text)

    # Helpers

    def hash_to_array(self, record: Dict[str, Any], names: Optional[List[str]] = None) -> List[Any]:
        """Turn a name-to-value map into an array in field order (or ``names`` order)."""
        if names is not None:
            return [""] + [record.get(name) for name in names[1:]]
        return self._require_strategy().hash_to_array(record)

    def reset(self) -> None:
        """Forget the schema and statistics; keeps the syntax, options and source."""
        if self.state == EngineState.CLOSED:
            raise EngineStateError("Engine is closed")
        self.schema.reset()
        self.header_names = None
        self.options.frozen = False
        if self.strategy is not None:
            self.strategy = create_strategy(self.strategy.name, self.reader, self.schema, self.options)
        if self.source.is_open:
            self._begin_source()
        else:
            self._started = False
            self._finished = False
            self.record_number = 0
            self.stats = ParsingStats()
            if self.strategy is not None:
                self.state = EngineState.CONFIGURED

    def __repr__(self) -> str:
        fmt = self.format.value if self.format else "-"
        return f"TabularEngine({fmt}, {self.state.value}, record {self.record_number})"


def format_name_or_default(name: Optional[Union[str, FormatName]], options: DataOptions) -> FormatName:
    if name is None:
        return options.get("basicType")
    return format_name(name)


EXTENSIONS = {
    ".arff": FormatName.ARFF,
    ".csv": FormatName.CSV,
    ".tsv": FormatName.CSV,
    ".tab": FormatName.CSV,
    ".json": FormatName.JSON,
    ".omn": FormatName.MANCH,
    ".manch": FormatName.MANCH,
    ".mime": FormatName.MIME,
    ".eml": FormatName.MIME,
    ".pl": FormatName.PERL,
    ".perl": FormatName.PERL,
    ".sexp": FormatName.SEXP,
    ".lisp": FormatName.SEXP,
    ".html": FormatName.XML,
    ".xhtml": FormatName.XML,
    ".xml": FormatName.XML,
    ".xsv": FormatName.XSV,
}

FRAME_START_RE = re.compile(r"^(Individual|Datatype|Class|ObjectProperty|AnnotationProperty):", re.MULTILINE)
MIME_LINE_RE = re.compile(r"^[!-9;-~]+:[ \t]")


def sniff_format(path: Union[str, Path], encoding: str = "utf-8", sample_size: int = 4096) -> FormatName:
    """Guess the syntax of a file from its extension, then its first few KB.

    Falls back to CSV.
    """
    path = Path(path)
    by_extension = EXTENSIONS.get(path.suffix.lower())
    if by_extension is not None:
        return by_extension
    with open(path, "r", encoding=encoding, errors="replace") as f:
        sample = f.read(sample_size)
    lines = [line for line in sample.splitlines() if line.strip()]
    head = sample.lstrip()
    if head.startswith("<"):
        if re.search(r"<(Xsv|Head|Rec)\b", sample):
            return FormatName.XSV
        return FormatName.XML
    if head.startswith(("{", "[")):
        return FormatName.JSON
    if head.startswith(("(", ";")):
        return FormatName.SEXP
    if re.match(r"my\s+[@%$]\w+\s*=", head) or ("=>" in sample and head.startswith("#")):
        return FormatName.PERL
    if re.search(r"^@relation\b", sample, re.IGNORECASE | re.MULTILINE):
        return FormatName.ARFF
    if FRAME_START_RE.search(sample):
        return FormatName.MANCH
    if lines and MIME_LINE_RE.match(lines[0]) and "\n\n" in sample.replace("\r\n", "\n"):
        return FormatName.MIME
    return FormatName.CSV


def sniff_options(path: Union[str, Path], encoding: str = "utf-8") -> Dict[str, Any]:
    """Guess the syntax and, for CSV, the field separator of a file."""
    name = sniff_format(path, encoding)
    options: Dict[str, Any] = {"basicType": name.value}
    if name == FormatName.CSV:
        with open(path, "r", encoding=encoding, errors="replace") as f:
            first = f.readline()
        delimiter = sniff_delimiter(first)
        if delimiter is not None:
            options["fieldSep"] = delimiter
    return options
