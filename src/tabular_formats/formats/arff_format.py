"""
WEKA attribute-relation files.

    @RELATION weather
    @ATTRIBUTE outlook {sunny,overcast,rainy}
    @ATTRIBUTE temperature NUMERIC
    @DATA
    sunny,85
    {1 70}
"""

import logging
import re
from typing import Any, Dict, List, Optional

from tabular_formats.datatypes import enum_values, is_numeric_datatype, split_datatype
from tabular_formats.formats.base import FormatStrategy
from tabular_formats.models import FormatName
from tabular_formats.reader import split_unquoted
from tabular_formats.schema import FieldDef

logger = logging.getLogger(__name__)

MISSING = "?"

ATTRIBUTE_RE = re.compile(r"^\s*@ATTRIBUTE\s+('[^']*'|\"[^\"]*\"|\S+)\s+(.+?)\s*$", re.IGNORECASE)
RELATION_RE = re.compile(r"^\s*@RELATION\s*(.*?)\s*$", re.IGNORECASE)
DATA_RE = re.compile(r"^\s*@DATA\b", re.IGNORECASE)
NEEDS_QUOTES_RE = re.compile(r"[?,\s{}]")


def _dequote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] in "'\"" and value[-1] == value[0]:
        return value[1:-1]
    return value


def arff_type_to_datatype(arff_type: str) -> str:
    """Map an ARFF attribute type to a datatype name."""
    m = re.match(r"^\{(.*)\}$", arff_type.strip())
    if m:
        tokens = [_dequote(t) for t in split_unquoted(m.group(1), ",")]
        return "ENUM(" + " ".join(t for t in tokens if t) + ")"
    kind = arff_type.split()[0].upper()
    if kind in ("NUMERIC", "REAL"):
        return "double"
    if kind == "INTEGER":
        return "integer"
    if kind == "DATE":
        return "date"
    return "string"


class ArffFormat(FormatStrategy):
    name = FormatName.ARFF
    has_header = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.relation = ""

    def is_ok_field_name(self, name: str) -> bool:
        # Quoted attribute names may hold spaces
        return bool(name and name.strip()) and not re.search(r"['\",{}%]", name)

    def read_and_parse_header(self) -> Optional[List[str]]:
        """Read ``@RELATION`` and ``@ATTRIBUTE`` lines up to ``@DATA``.

        Attributes are added to the schema with their datatypes.
        """
        names = [""]
        while True:
            result = self.reader.read_line()
            if not result.has_text:
                logger.warning("ARFF: end of input before @DATA")
                break
            line = result.text
            if self.is_skippable(line):
                continue
            if DATA_RE.match(line):
                break
            m = RELATION_RE.match(line)
            if m:
                self.relation = _dequote(m.group(1))
                continue
            m = ATTRIBUTE_RE.match(line)
            if m:
                attr_name = _dequote(m.group(1))
                datatype = arff_type_to_datatype(m.group(2))
                self.schema.append(attr_name, datatype=datatype)
                names.append(attr_name)
                logger.debug(f"ARFF: attribute '{attr_name}' is {datatype}")
                continue
            self.field_error(f"Syntax error in header: {line!r}")
        logger.info(f"ARFF header: relation '{self.relation}', {len(names) - 1} attributes")
        return names

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        text = self.prepare_record(text).strip()
        fields: Dict[str, Any] = {}
        if text.startswith("{"):
            body = text[1:].rstrip()
            if body.endswith("}"):
                body = body[:-1]
            else:
                self.field_error(f"Sparse record is missing its closing brace: {text!r}")
            for item in split_unquoted(body, ","):
                item = item.strip()
                if not item:
                    continue
                m = re.match(r"^(\d+)\s+(.*)$", item, re.DOTALL)
                if not m:
                    self.field_error(f"Bad sparse item {item!r}")
                    continue
                fdef = self.field_for(int(m.group(1)) + 1)
                if fdef is not None:
                    fields[fdef.name] = self._value(m.group(2))
        else:
            for i, value in enumerate(split_unquoted(text, ","), start=1):
                fdef = self.field_for(i)
                if fdef is not None:
                    fields[fdef.name] = self._value(value)
        return self.post_process_fields(fields)

    @staticmethod
    def _value(raw: str) -> Optional[str]:
        raw = raw.strip()
        if raw == MISSING:
            return None
        return _dequote(raw)

    def assemble_record_from_array(self, values: List[Any]) -> str:
        values = self.check_array(values)
        self.records_assembled += 1
        if self.opt("sparse"):
            items = []
            for i, fdef in enumerate(self.schema.field_defs(), 1):
                if values[i] is None or values[i] == "":
                    continue
                items.append(f"{i - 1} {self.assemble_field(fdef, values[i])}")
            return "{" + ", ".join(items) + "}\n"
        parts = [self.assemble_field(fdef, values[i]) for i, fdef in enumerate(self.schema.field_defs(), 1)]
        return ",".join(parts) + "\n"

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        if value is None or value == "":
            return MISSING
        value = self.output_text(fdef, value)
        if NEEDS_QUOTES_RE.search(value):
            if "'" in value:
                return '"' + value + '"'
            return "'" + value + "'"
        return value

    def assemble_header(self) -> str:
        relation = self.relation or "table"
        if NEEDS_QUOTES_RE.search(relation):
            relation = f"'{relation}'"
        lines = [f"@RELATION {relation}", ""]
        for fdef in self.schema.field_defs():
            name = fdef.name
            if re.search(r"\s", name):
                name = f'"{name}"'
            lines.append(f"@ATTRIBUTE {name:<24} {self._arff_type(fdef.datatype)}")
        lines.extend(["", "@DATA", ""])
        return "\n".join(lines)

    @staticmethod
    def _arff_type(datatype: str) -> str:
        if not datatype:
            return "STRING"
        if is_numeric_datatype(datatype):
            return "NUMERIC"
        base, _ = split_datatype(datatype)
        if base == "ENUM":
            return "{" + ",".join(enum_values(datatype)) + "}"
        if base == "date":
            return "DATE"
        return "STRING"
