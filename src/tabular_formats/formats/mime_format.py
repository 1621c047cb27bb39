"""
Mail-header style records.

A record is a block of ``Name: value`` lines ending at a blank line. Lines that
start with whitespace continue the previous field's value.
"""

import logging
import re
from typing import Any, Dict, List

from tabular_formats.formats.base import FormatStrategy
from tabular_formats.models import Boundary, BoundaryKind, FormatName, ReadResult
from tabular_formats.schema import FieldDef

logger = logging.getLogger(__name__)

LABEL_RE = re.compile(r"^([!-9;-~]+):[ \t]?(.*)$", re.DOTALL)
VERSION_BLOCK_RE = re.compile(r"^MIME-Version:\s*[\d.]+\s*$", re.IGNORECASE)


def fold(line: str, max_len: int, label_len: int = 0) -> str:
    """Fold a long header line at spaces.

    Each continuation line starts with the space it was broken at, so
    unfolding is plain concatenation.
    """
    if max_len <= 0:
        return line
    out = []
    while len(line) > max_len:
        sp = line.rfind(" ", label_len + 1, max_len)
        if sp <= label_len:
            out.append(line[:max_len])
            line = " " + line[max_len:]
        else:
            out.append(line[:sp])
            line = line[sp:]
        label_len = 0
    out.append(line)
    return "\n".join(out)


def encode_non_ascii(text: str) -> str:
    return "".join(
        c if ord(c) < 128 else "".join(f"={b:02X}" for b in c.encode("utf-8"))
        for c in text
    )


class MimeFormat(FormatStrategy):
    name = FormatName.MIME

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._first = True

    def boundary(self) -> Boundary:
        return Boundary(BoundaryKind.CONTINUATION_BLOCK)

    def is_ok_field_name(self, name: str) -> bool:
        return bool(re.fullmatch(r"[!-9;-~]+", name or ""))

    def read_record(self) -> ReadResult:
        result = super().read_record()
        if self._first and result.has_text and VERSION_BLOCK_RE.match(result.text):
            logger.debug("MIME: skipped MIME-Version block")
            result = super().read_record()
        self._first = False
        return result

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        name = None
        for line in text.split("\n"):
            if line[:1] in (" ", "\t"):
                if name is None:
                    self.field_error(f"Continuation line before any field: {line!r}")
                    continue
                fields[name] += line
                continue
            m = LABEL_RE.match(line)
            if not m:
                self.field_error(f"Expected 'Name: value', got {line!r}")
                name = None
                continue
            fdef = self.field_for(m.group(1))
            name = fdef.name if fdef is not None else None
            if name is not None:
                if name in fields:
                    self.field_error(f"Field '{name}' repeated in one record; later value kept")
                fields[name] = m.group(2)
        return self.post_process_fields(fields)

    def assemble_record_from_array(self, values: List[Any]) -> str:
        values = self.check_array(values)
        lines = []
        for i, fdef in enumerate(self.schema.field_defs(), 1):
            if values[i] is None and self.opt("omitDefaults"):
                continue
            lines.append(self.assemble_field(fdef, values[i]))
        self.records_assembled += 1
        return "\n".join(lines) + "\n\n"

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        line = f"{fdef.name}: {self.output_text(fdef, value)}"
        line = fold(line, self.opt("lineLength"), len(fdef.name) + 1)
        if self.opt("ASCII"):
            line = encode_non_ascii(line)
        return line

    def assemble_header(self) -> str:
        return "MIME-Version: 1.0\n\n"
