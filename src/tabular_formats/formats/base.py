"""
Base class for syntax strategies.

A strategy knows how one syntax delimits records, turns a record into a
name-to-value map, and writes records back out. Everything else is shared:

- ``parse_record_to_array`` is derived from ``parse_record_to_hash`` plus the
  schema's ordinal order, so a new syntax only implements the hash direction
- ``assemble_record_from_hash`` is derived from ``assemble_record_from_array``
- per-field problems are reported through ``field_error`` and collected for
  the record being parsed, never raised
"""

import logging
import re
from typing import Any, Dict, List, Optional

from tabular_formats.errors import DatatypeError, FieldError
from tabular_formats.escapes import INNER_SPACE, apply_disposition, escape_controls
from tabular_formats.models import Boundary, BoundaryKind, Disposition, FormatName, ReadResult
from tabular_formats.options import DataOptions
from tabular_formats.reader import RecordReader
from tabular_formats.schema import FieldDef, TableSchema

logger = logging.getLogger(__name__)

NUMBER_RE = re.compile(r"^[-+]?\d+(\.\d+)?([eE][-+]?\d+)?$")
# Numbers that read back as the same number in JSON, Perl and Lisp
PLAIN_NUMBER_RE = re.compile(r"^-?(0|[1-9]\d*)(\.\d+)?([eE][-+]?\d+)?$")


class FormatStrategy:
    """Common behavior of every syntax.

    Subclasses override ``boundary``, ``parse_record_to_hash``,
    ``assemble_record_from_array`` and ``assemble_field``, and where the syntax
    has them, ``read_and_parse_header``, ``assemble_header`` and
    ``assemble_trailer``.
    """

    name: FormatName = None
    has_header = False  # Whether the syntax can carry field names before the data

    def __init__(self, reader: RecordReader, schema: TableSchema, options: DataOptions):
        self.reader = reader
        self.schema = schema
        self.options = options
        self.errors: List[FieldError] = []
        self.datatype_errors: List[DatatypeError] = []
        self.record_messages: List[str] = []
        self.records_assembled = 0

    def opt(self, name: str) -> Any:
        return self.options.get(name)

    def field_error(self, message: str) -> None:
        """Report a problem with one field; parsing of the record continues."""
        line = self.reader.source.line_number
        logger.warning(f"{self.name.value}: {message} (line {line})")
        self.errors.append(FieldError(message, line))
        self.record_messages.append(message)

    def datatype_error(self, error: DatatypeError) -> None:
        """Record a value that does not match its declared datatype; the value is kept."""
        self.datatype_errors.append(error)
        self.record_messages.append(error.message)

    def begin_record(self) -> None:
        self.record_messages = []

    # Reading

    def boundary(self) -> Boundary:
        return Boundary(BoundaryKind.LINE)

    def is_skippable(self, text: str) -> bool:
        """Blank records and comment lines are not data."""
        stripped = text.strip()
        if not stripped:
            return True
        comment = self.opt("comment")
        return bool(comment) and stripped.startswith(comment)

    def start_table(self) -> None:
        """Consume table-level wrapper text before the first record."""

    def skip_comment_lines(self) -> None:
        """Skip blank and comment lines at the current position."""
        while True:
            result = self.reader.read_line()
            if not result.has_text:
                return
            if not self.is_skippable(result.text):
                self.reader.source.pushback(result.text + "\n")
                return

    def skip_wrapper(self, pattern: str) -> str:
        """Skip comments, then a wrapper matching ``pattern`` if one is there."""
        self.skip_comment_lines()
        wrapper = self.reader.skip_pattern(pattern) or ""
        if wrapper.strip():
            logger.debug(f"{self.name.value}: skipped table wrapper {wrapper.strip()!r}")
        return wrapper

    def end_table(self) -> None:
        """Called once the input is exhausted."""

    def read_and_parse_header(self) -> Optional[List[str]]:
        """Read field names from the start of the table.

        Returns:
            Names with an unused slot 0, or None if the syntax (or the current
            options) has no header
        """
        return None

    def read_record(self) -> ReadResult:
        """Read the next logical record that is not blank or a comment."""
        boundary = self.boundary()
        while True:
            result = self.reader.read_logical_record(boundary)
            if result.has_text and self.is_skippable(result.text):
                continue
            return result

    def prepare_record(self, text: str) -> str:
        text = text.rstrip("\r\n")
        if self.opt("stripStart"):
            text = text.lstrip()
        return text

    def field_for(self, key) -> Optional[FieldDef]:
        """Find (or, in an open schema, create) the field for a name or ordinal."""
        return self.schema.get(key)

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        raise NotImplementedError(f"{type(self).__name__} cannot parse records")

    def parse_record_to_array(self, text: str) -> List[Any]:
        """Parse a record into values in field order; slot 0 is always ``""``."""
        fields = self.parse_record_to_hash(text)
        return self.hash_to_array(fields)

    def hash_to_array(self, fields: Dict[str, Any]) -> List[Any]:
        values: List[Any] = [""]
        for fdef in self.schema.field_defs():
            value = fields.get(fdef.name)
            if value is None:
                value = fdef.default if fdef.default is not None else ""
            values.append(value)
        return values

    def post_process_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Apply whitespace options, callbacks and splitters to parsed values."""
        strip = self.opt("stripFields")
        inner = self.opt("innerSpace")
        for name, value in fields.items():
            fdef = self.schema.lookup(name)
            if isinstance(value, str):
                if strip:
                    value = value.strip()
                if inner != Disposition.KEEP:
                    value = apply_disposition(value, inner, INNER_SPACE)
            elif isinstance(value, list) and strip:
                value = [v.strip() if isinstance(v, str) else v for v in value]
            if fdef is not None:
                if fdef.callback is not None:
                    value = fdef.callback(value)
                value = fdef.split_value(value)
            fields[name] = value
        return fields

    # Writing

    def output_text(self, fdef: FieldDef, value: Any) -> str:
        """Flatten a value to text for output (lists joined, control characters handled)."""
        if isinstance(value, (list, tuple)):
            value = fdef.joiner.join("" if v is None else str(v) for v in value)
        elif value is None:
            value = fdef.nil_out
        else:
            value = str(value)
        return escape_controls(value, self.opt("controlChars"))

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        return self.output_text(fdef, value)

    def assemble_record_from_array(self, values: List[Any]) -> str:
        raise NotImplementedError(f"{type(self).__name__} cannot assemble records")

    def check_array(self, values: List[Any]) -> List[Any]:
        """Make an output array line up with the schema, reporting a mismatch."""
        nf = self.schema.count()
        if nf < 1:
            for i in range(1, len(values)):
                self.field_for(i)
            nf = self.schema.count()
        if len(values) - 1 != nf:
            logger.warning(f"{self.name.value}: expected {nf} values, got {len(values) - 1}")
            values = list(values[:nf + 1]) + [None] * (nf + 1 - len(values))
        return values

    def assemble_record_from_hash(self, record: Dict[str, Any]) -> str:
        for name in record:
            if self.schema.lookup(name) is None:
                self.field_for(name)
        values = [""] + [record.get(fdef.name) for fdef in self.schema.field_defs()]
        return self.assemble_record_from_array(values)

    def assemble_header(self) -> str:
        return ""

    def assemble_trailer(self) -> str:
        return ""

    def assemble_comment(self, text: str = "") -> str:
        comment = self.opt("comment")
        return f"{comment} {text}\n" if comment else ""

    # Field names

    def is_ok_field_name(self, name: str) -> bool:
        return bool(name) and re.fullmatch(r"[^\W\d_]\w*", name) is not None

    def clean_field_name(self, name: str) -> str:
        name = re.sub(r"\W", "_", name or "")
        if not name[:1].isalpha():
            name = "A_" + name
        return name

    # Helpers shared by several syntaxes

    @staticmethod
    def looks_numeric(value: Any) -> bool:
        if isinstance(value, bool):
            return False
        if isinstance(value, (int, float)):
            return True
        return isinstance(value, str) and NUMBER_RE.match(value.strip()) is not None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.schema.count()} fields)"
