"""
JSON subset: a table is a list of flat objects.

    { "Table": [
      { "Id": "Signer01", "Age": 52 },
      { "Id": "Signer02", "Age": 61 }
    ] }

Each balanced ``{...}`` is one record. The wrapper object, a bare top-level
``[``, the commas between records and the closing ``] }`` are skipped.
"""

import json
import logging
from typing import Any, Dict, List

from tabular_formats.formats.base import PLAIN_NUMBER_RE, FormatStrategy
from tabular_formats.models import Boundary, BoundaryKind, FormatName
from tabular_formats.schema import FieldDef

logger = logging.getLogger(__name__)

WRAPPER_RE = r'\s*(\{\s*"Table"\s*:\s*)?\[\s*'


def _as_text(value: Any) -> Any:
    """Flatten a decoded JSON value to the string form records carry."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    if isinstance(value, list):
        return [_as_text(v) for v in value]
    return json.dumps(value)


class JsonFormat(FormatStrategy):
    name = FormatName.JSON

    def boundary(self) -> Boundary:
        return Boundary(BoundaryKind.BRACKET_BALANCED, quote='"', escape="\\",
                        comment=self.opt("comment"), delimiters=",]}")

    def start_table(self) -> None:
        self.skip_wrapper(WRAPPER_RE)

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            self.field_error(f"Cannot decode record: {e}")
            return {}
        fields = {}
        if isinstance(data, dict):
            for key, value in data.items():
                fdef = self.field_for(key)
                if fdef is not None:
                    fields[fdef.name] = _as_text(value)
        elif isinstance(data, list):
            for i, value in enumerate(data, start=1):
                fdef = self.field_for(i)
                if fdef is not None:
                    fields[fdef.name] = _as_text(value)
        else:
            self.field_error(f"Record is not an object or array: {text!r}")
        return self.post_process_fields(fields)

    def assemble_record_from_array(self, values: List[Any]) -> str:
        values = self.check_array(values)
        if self.opt("jsonArray"):
            body = ", ".join(self.assemble_field(fdef, values[i])
                             for i, fdef in enumerate(self.schema.field_defs(), 1))
            rec = f"[ {body} ]"
        else:
            parts = []
            for i, fdef in enumerate(self.schema.field_defs(), 1):
                key = json.dumps(fdef.name, ensure_ascii=self.opt("ASCII"))
                parts.append(f"{key}: {self.assemble_field(fdef, values[i])}")
            rec = "{ " + ", ".join(parts) + " }"
        sep = ",\n" if self.records_assembled else ""
        self.records_assembled += 1
        return f"{sep}  {rec}"

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        ascii_only = self.opt("ASCII")
        if value is None:
            return "null"
        if isinstance(value, (list, tuple)):
            return json.dumps(["" if v is None else str(v) for v in value], ensure_ascii=ascii_only)
        if isinstance(value, bool):
            return "true" if value else "false"
        text = self.output_text(fdef, value)
        if PLAIN_NUMBER_RE.match(text):
            return text
        return json.dumps(text, ensure_ascii=ascii_only)

    def assemble_header(self) -> str:
        return '{ "Table": [\n'

    def assemble_trailer(self) -> str:
        return "\n] }\n"

    def assemble_comment(self, text: str = "") -> str:
        return f"// {text}\n"
