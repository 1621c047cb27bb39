"""
Manchester OWL frames.

    Individual: Signer01
        Types: Person
        Facts:
            state "MA",
            age 52

The frame subject becomes the first field. ``Facts:`` items become one field per
property; any other ``Keyword:`` section becomes a field named by the keyword.
"""

import logging
import re
from typing import Any, Dict, List, Tuple

from tabular_formats.formats.base import FormatStrategy
from tabular_formats.models import Boundary, BoundaryKind, FormatName
from tabular_formats.reader import split_unquoted
from tabular_formats.schema import FieldDef

logger = logging.getLogger(__name__)

FRAME_KEYWORDS = ("Individual", "Datatype", "Class", "ObjectProperty", "AnnotationProperty")
FRAME_RE = r"^\s*(" + "|".join(FRAME_KEYWORDS) + r"):"
SECTION_RE = re.compile(r"^\s*([A-Za-z]\w*):\s*(.*)$")
SUBJECT_FIELD = "name"


def _dequote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return value


class ManchesterFormat(FormatStrategy):
    name = FormatName.MANCH

    def boundary(self) -> Boundary:
        return Boundary(BoundaryKind.FRAME, frame_pattern=FRAME_RE, comment="#")

    def _sections(self, text: str) -> Tuple[str, str, List[Tuple[str, str]]]:
        lines = [ln for ln in text.split("\n") if ln.strip() and not ln.lstrip().startswith("#")]
        m = re.match(FRAME_RE + r"\s*(.*)$", lines[0]) if lines else None
        if m is None:
            found = lines[0].strip() if lines else ""
            self.field_error(f"Expected a frame keyword ({', '.join(FRAME_KEYWORDS)}), found {found!r}")
            return "", "", []
        keyword, subject = m.group(1), m.group(2).strip()
        sections: List[Tuple[str, str]] = []
        for line in lines[1:]:
            sm = SECTION_RE.match(line)
            if sm:
                sections.append((sm.group(1), sm.group(2)))
            elif line.strip():
                if not sections:
                    self.field_error(f"Text before any section in frame '{subject}': {line.strip()!r}")
                    continue
                kw, body = sections[-1]
                sections[-1] = (kw, f"{body} {line.strip()}".strip())
        return keyword, subject, sections

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        keyword, subject, sections = self._sections(text)
        fields: Dict[str, Any] = {}
        if not keyword:
            return self.post_process_fields(fields)

        def put(name: str, value: Any) -> None:
            fdef = self.field_for(name)
            if fdef is not None:
                fields[fdef.name] = value

        put(SUBJECT_FIELD, _dequote(subject))
        if self.opt("typeField"):
            put(self.opt("typeField"), keyword)
        for section, body in sections:
            if section == "Facts":
                for item in split_unquoted(body, ",", quotes='"'):
                    item = item.strip()
                    if not item:
                        continue
                    parts = item.split(None, 1)
                    if len(parts) < 2:
                        self.field_error(f"Fact without a value: {item!r}")
                        continue
                    put(parts[0], _dequote(parts[1]))
            else:
                put(section, body.strip())
        return self.post_process_fields(fields)

    def assemble_record_from_array(self, values: List[Any]) -> str:
        values = self.check_array(values)
        fdefs = self.schema.field_defs()
        type_field = self.opt("typeField")
        keyword = "Individual"
        facts = []
        for i, fdef in enumerate(fdefs[1:], 2):
            if type_field and fdef.name == type_field:
                if values[i] in FRAME_KEYWORDS:
                    keyword = values[i]
                continue
            if values[i] is None or values[i] == "":
                continue
            facts.append(f"        {fdef.name} {self.assemble_field(fdef, values[i])}")
        subject = self.assemble_field(fdefs[0], values[1]) if fdefs else ""
        buf = f"{keyword}: {subject}\n"
        if facts:
            buf += "    Facts:\n" + ",\n".join(facts) + "\n"
        self.records_assembled += 1
        return buf + "\n"

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        text = self.output_text(fdef, value)
        if self.looks_numeric(text):
            return text
        if re.search(r"['()\s,\"]", text) or text == "":
            return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
        return text

    def assemble_comment(self, text: str = "") -> str:
        return f"# {text}\n"
