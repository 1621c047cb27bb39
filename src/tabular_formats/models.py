"""
Data models and structures for the tabular formats engine.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RecordStatus(str, Enum):
    """Outcome of reading (and parsing) one logical record."""
    OK = "ok"
    END = "end"  # No more records
    MALFORMED = "malformed"  # Recoverable: best-effort text/fields still returned
    BOUNDARY_ERROR = "boundary_error"  # Fatal for the current table


class FormatName(str, Enum):
    """The closed set of supported syntaxes."""
    ARFF = "ARFF"
    COLUMNS = "COLUMNS"
    CSV = "CSV"
    JSON = "JSON"
    MANCH = "MANCH"
    MIME = "MIME"
    PERL = "PERL"
    SEXP = "SEXP"
    XML = "XML"
    XSV = "XSV"


# Comment prefix each syntax turns on when selected
COMMENT_PREFIXES: Dict[FormatName, str] = {
    FormatName.ARFF: "%",
    FormatName.JSON: "//",
    FormatName.PERL: "#",
    FormatName.SEXP: ";",
    FormatName.XML: "<!--",
}


class Disposition(str, Enum):
    """What to do with a class of characters found in field values."""
    KEEP = "keep"
    DELETE = "delete"
    SPACE = "space"  # Replace each one with a space
    UNIFY = "unify"  # Collapse runs into a single space
    ESCAPE = "escape"  # Backslash-escape them


class BoundaryKind(str, Enum):
    """Rules for deciding where one logical record ends."""
    LINE = "line"
    QUOTE_BALANCED = "quote_balanced"
    BRACKET_BALANCED = "bracket_balanced"
    CONTINUATION_BLOCK = "continuation_block"
    MARKUP = "markup"
    UNQUOTED_DELIMITER = "unquoted_delimiter"
    FRAME = "frame"
    TAG = "tag"


@dataclass
class Boundary:
    """A boundary kind plus the delimiters it needs."""
    kind: BoundaryKind
    quote: str = ""
    escape: str = ""
    qdouble: bool = False
    nl_in_quotes: bool = False
    openers: str = "([{"
    closers: str = ")]}"
    comment: str = ""
    delimiters: str = ""
    close_tag: str = ""
    frame_pattern: str = ""


@dataclass
class ReadResult:
    """One logical record as read from the source."""
    status: RecordStatus
    text: Optional[str] = None
    message: Optional[str] = None
    line_number: int = 0
    physical_lines: int = 0

    @property
    def ok(self) -> bool:
        return self.status == RecordStatus.OK

    @property
    def at_end(self) -> bool:
        return self.status == RecordStatus.END

    @property
    def is_fatal(self) -> bool:
        return self.status == RecordStatus.BOUNDARY_ERROR

    @property
    def has_text(self) -> bool:
        return self.text is not None and self.status in (RecordStatus.OK, RecordStatus.MALFORMED)


@dataclass
class RecordResult:
    """A logical record after parsing: status, raw text, and its fields."""
    status: RecordStatus
    text: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    values: Optional[List[Any]] = None
    messages: List[str] = field(default_factory=list)
    record_number: int = 0

    @property
    def ok(self) -> bool:
        return self.status == RecordStatus.OK

    @property
    def at_end(self) -> bool:
        return self.status == RecordStatus.END

    @property
    def is_fatal(self) -> bool:
        return self.status == RecordStatus.BOUNDARY_ERROR


@dataclass
class ParsingStats:
    """Parsing statistics."""
    records_read: int = 0
    records_ok: int = 0
    malformed_records: int = 0
    field_errors: int = 0
    schema_errors: int = 0
    datatype_errors: int = 0
    boundary_errors: int = 0
    skipped_records: int = 0  # Malformed records dropped under continueOnError
    file_failures: int = 0  # Files that failed to convert (ignoreBrokenFiles mode)
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    @property
    def duration(self) -> float:
        """Get parsing duration in seconds."""
        end = self.end_time or time.time()
        return end - self.start_time

    @property
    def records_per_second(self) -> float:
        """Get processing throughput."""
        duration = self.duration
        return self.records_ok / duration if duration > 0 else 0

    def finish(self) -> None:
        if self.end_time is None:
            self.end_time = time.time()
