"""
Fixed-column text: each field occupies a known span of character positions.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from tabular_formats.formats.base import FormatStrategy
from tabular_formats.models import FormatName
from tabular_formats.schema import FieldDef

logger = logging.getLogger(__name__)


def infer_column_starts(header_line: str) -> List[int]:
    """Column starts from a header line where each name begins a column.

    Returns:
        Starts with an unused slot 0
    """
    return [0] + [m.start() for m in re.finditer(r"\S+", header_line)]


class ColumnsFormat(FormatStrategy):
    name = FormatName.COLUMNS
    has_header = True

    def read_and_parse_header(self) -> Optional[List[str]]:
        if not self.opt("header"):
            return None
        result = self.read_record()
        if not result.has_text:
            return None
        line = result.text.rstrip("\r\n")
        names = [""] + line.split()
        starts = infer_column_starts(line)
        for name in names[1:]:
            self.schema.append(name)
        self.schema.set_field_positions(starts)
        logger.info(f"COLUMNS header: {len(names) - 1} columns at {starts[1:]}")
        return names

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        text = text.rstrip("\r\n")
        if self.schema.count() == 0:
            self.field_error("No column positions are defined; taking the whole line as one field")
            fdef = self.field_for(1)
            return self.post_process_fields({fdef.name: text} if fdef else {})
        fields = {}
        for fdef in self.schema.field_defs():
            if fdef.start >= len(text):
                break
            end = fdef.start + fdef.width if fdef.width > 0 else len(text)
            fields[fdef.name] = text[fdef.start:end]
        return self.post_process_fields(fields)

    def assemble_record_from_array(self, values: List[Any]) -> str:
        values = self.check_array(values)
        buf = ""
        for i, fdef in enumerate(self.schema.field_defs(), 1):
            if len(buf) > fdef.start:
                logger.warning(f"COLUMNS: field '{fdef.name}' starts at {fdef.start} "
                               f"but the record is already {len(buf)} wide")
            else:
                buf += " " * (fdef.start - len(buf))
            buf += self.assemble_field(fdef, values[i])
        self.records_assembled += 1
        return buf.rstrip() + "\n"

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        value = self.output_text(fdef, value)
        if fdef.width > 0 and len(value) > fdef.width:
            logger.warning(f"COLUMNS: value too long for field '{fdef.name}' (width {fdef.width}), truncated")
            value = value[:fdef.width]
        return fdef.align_value(value)

    def assemble_header(self) -> str:
        if not self.opt("header"):
            return ""
        return self.assemble_record_from_array(self.schema.names())
