"""
Perl data literals: a list of hash references.

    my @table = (
      { "Id" => "Signer01", "Age" => 52 },
      { "Id" => "Signer02", "Age" => 61 },
    );
"""

import logging
import re
from typing import Any, Dict, List

from tabular_formats.escapes import REVERSE_MNEMONICS, unescape
from tabular_formats.formats.base import PLAIN_NUMBER_RE, FormatStrategy
from tabular_formats.models import Boundary, BoundaryKind, FormatName
from tabular_formats.reader import split_unquoted
from tabular_formats.schema import FieldDef

logger = logging.getLogger(__name__)

WRAPPER_RE = r"\s*my\s+[@%$]\w+\s*=\s*\(\s*"


def perl_value(raw: str) -> Any:
    """Decode one scalar or array-reference literal."""
    raw = raw.strip()
    if raw == "undef":
        return None
    if len(raw) >= 2 and raw[0] == '"' and raw[-1] == '"':
        return unescape(raw[1:-1], "\\")
    if len(raw) >= 2 and raw[0] == "'" and raw[-1] == "'":
        return re.sub(r"\\([\\'])", r"\1", raw[1:-1])
    if raw.startswith("[") and raw.endswith("]"):
        return [perl_value(item) for item in split_unquoted(raw[1:-1], ",") if item.strip()]
    return raw


def perl_string(value: str, ascii_only: bool = False) -> str:
    """Write a double-quoted Perl string literal."""
    out = []
    for c in value:
        if c in '\\"$@':
            out.append("\\" + c)
        elif c in REVERSE_MNEMONICS and c != "\0":
            out.append("\\" + REVERSE_MNEMONICS[c])
        elif ord(c) < 32:
            out.append(f"\\x{{{ord(c):02x}}}")
        elif ascii_only and ord(c) > 127:
            out.append(f"\\x{{{ord(c):04x}}}")
        else:
            out.append(c)
    return '"' + "".join(out) + '"'


class PerlFormat(FormatStrategy):
    name = FormatName.PERL

    def boundary(self) -> Boundary:
        return Boundary(BoundaryKind.UNQUOTED_DELIMITER, quote="'\"", escape="\\",
                        comment=self.opt("comment"), delimiters=",;")

    def start_table(self) -> None:
        self.skip_wrapper(WRAPPER_RE)

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        text = text.strip()
        if not (text.startswith("{") and text.endswith("}")):
            self.field_error(f"Record is not a hash literal: {text!r}")
            return {}
        fields = {}
        for pair in split_unquoted(text[1:-1], ",", nest=True):
            if not pair.strip():
                continue
            parts = split_unquoted(pair, "=>", nest=True)
            if len(parts) != 2:
                self.field_error(f"Expected 'key => value', got {pair.strip()!r}")
                continue
            key = perl_value(parts[0])
            if not isinstance(key, str) or not key:
                self.field_error(f"Bad hash key {parts[0].strip()!r}")
                continue
            fdef = self.field_for(key)
            if fdef is not None:
                fields[fdef.name] = perl_value(parts[1])
        return self.post_process_fields(fields)

    def assemble_record_from_array(self, values: List[Any]) -> str:
        values = self.check_array(values)
        ascii_only = self.opt("ASCII")
        parts = [f"{perl_string(fdef.name, ascii_only)} => {self.assemble_field(fdef, values[i])}"
                 for i, fdef in enumerate(self.schema.field_defs(), 1)]
        self.records_assembled += 1
        return "  { " + ", ".join(parts) + " },\n"

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        ascii_only = self.opt("ASCII")
        if value is None:
            return "undef"
        if isinstance(value, (list, tuple)):
            return "[ " + ", ".join(perl_string("" if v is None else str(v), ascii_only) for v in value) + " ]"
        text = self.output_text(fdef, value)
        if PLAIN_NUMBER_RE.match(text):
            return text
        return perl_string(text, ascii_only)

    def assemble_header(self) -> str:
        return "my @table = (\n"

    def assemble_trailer(self) -> str:
        return ");\n"
