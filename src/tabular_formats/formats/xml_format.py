"""
XHTML-like tables: one ``<tr>`` element per record, one ``<td>`` per field.

Tag and attribute names all come from options (``trTag``, ``tdTag``,
``classAttr``...), so differently named table-ish vocabularies can be read too.
Rows are parsed and written with lxml.
"""

import logging
import re
from typing import Any, Dict, List

from lxml import etree

from tabular_formats.datatypes import is_numeric_datatype
from tabular_formats.escapes import ascii_references, decode_html_entities
from tabular_formats.formats.base import FormatStrategy
from tabular_formats.models import Boundary, BoundaryKind, FormatName
from tabular_formats.schema import Alignment, FieldDef

logger = logging.getLogger(__name__)

XML_INVALID_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")
ALIGN_NAMES = {Alignment.LEFT: "left", Alignment.CENTER: "center", Alignment.RIGHT: "right",
               Alignment.DECIMAL: "char"}


class XmlFormat(FormatStrategy):
    name = FormatName.XML

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._parser = etree.XMLParser(recover=True, remove_blank_text=True, resolve_entities=False)
        self.attr_values: Dict[str, str] = {}

    def boundary(self) -> Boundary:
        return Boundary(BoundaryKind.MARKUP, close_tag=self.opt("trTag"))

    def is_ok_field_name(self, name: str) -> bool:
        return bool(re.fullmatch(r"[_A-Za-z][-_.\w]*", name or ""))

    # Reading

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        if self.opt("HTMLEntities"):
            text = decode_html_entities(text)
        try:
            row = etree.fromstring(text, self._parser)
        except etree.XMLSyntaxError as e:
            self.field_error(f"Cannot parse row: {e}")
            return {}
        if row is None:
            self.field_error(f"Cannot parse row: {text[:60]!r}")
            return {}

        td, th, p = self.opt("tdTag"), self.opt("thTag"), self.opt("pTag")
        class_attr = self.opt("classAttr")
        fields: Dict[str, Any] = {}
        cells = [c for c in row if isinstance(c.tag, str)]
        for i, cell in enumerate(cells, start=1):
            if class_attr and cell.get(class_attr):
                key = cell.get(class_attr)
            elif cell.tag not in (td, th):
                key = cell.tag
            else:
                key = i
            fdef = self.field_for(key)
            if fdef is None:
                continue
            items = [c for c in cell if c.tag == p]
            if items:
                fields[fdef.name] = ["".join(item.itertext()) for item in items]
            else:
                fields[fdef.name] = "".join(cell.itertext())

        self.attr_values = self._capture_attributes(row)
        for name, value in self.attr_values.items():
            fdef = self.field_for(name)
            if fdef is not None:
                fields[fdef.name] = value
        return self.post_process_fields(fields)

    def _capture_attributes(self, row: etree._Element) -> Dict[str, str]:
        """Collect the attributes listed in ``attrFields`` from a row and its cells.

        If an attribute occurs on several elements, the last one wins.
        """
        wanted = self.opt("attrFields").split()
        found: Dict[str, str] = {}
        if not wanted:
            return found
        for el in row.iter():
            if not isinstance(el.tag, str):
                continue
            for name in wanted:
                if el.get(name) is not None:
                    found[name] = el.get(name)
        return found

    # Writing

    def _clean(self, fdef: FieldDef, text: str) -> str:
        if XML_INVALID_RE.search(text):
            logger.warning(f"XML: characters not allowed in XML removed from field '{fdef.name}'")
            text = XML_INVALID_RE.sub("", text)
        return text

    def _set_text(self, el: etree._Element, text: str) -> None:
        if not self.opt("XMLEntities") and re.search(r"[<&]", text):
            el.text = etree.CDATA(text)
        else:
            el.text = text

    def _serialize(self, el: etree._Element) -> str:
        out = etree.tostring(el, encoding="unicode", pretty_print=self.opt("prettyPrint"))
        if self.opt("ASCII"):
            base, width = self.opt("entityBase"), self.opt("entityWidth")
            named = self.opt("HTMLEntities")
            out = ascii_references(out, base, width, named)
        return out

    def build_row(self, values: List[Any]) -> etree._Element:
        """Build the lxml element for one record (values have slot 0 unused)."""
        tr = etree.Element(self.opt("trTag"))
        id_attr, id_value = self.opt("idAttr"), self.opt("idValue")
        if id_attr and id_value:
            if id_value == "*":
                tr.set(id_attr, str(self.records_assembled + 1))
            else:
                fdef = self.schema.lookup(id_value)
                if fdef is not None and values[fdef.position] not in (None, ""):
                    tr.set(id_attr, self._clean(fdef, str(values[fdef.position])))
        td, p, class_attr = self.opt("tdTag"), self.opt("pTag"), self.opt("classAttr")
        for i, fdef in enumerate(self.schema.field_defs(), 1):
            cell = etree.SubElement(tr, td)
            if class_attr:
                cell.set(class_attr, fdef.name)
            value = values[i]
            if isinstance(value, (list, tuple)):
                for part in value:
                    item = etree.SubElement(cell, p)
                    self._set_text(item, self._clean(fdef, "" if part is None else str(part)))
            else:
                self._set_text(cell, self._clean(fdef, self.output_text(fdef, value)))
        return tr

    def assemble_record_from_array(self, values: List[Any]) -> str:
        values = self.check_array(values)
        out = self._serialize(self.build_row(values))
        self.records_assembled += 1
        return out

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        cell = etree.Element(self.opt("tdTag"))
        if self.opt("classAttr"):
            cell.set(self.opt("classAttr"), fdef.name)
        self._set_text(cell, self._clean(fdef, self.output_text(fdef, value)))
        return etree.tostring(cell, encoding="unicode")

    def assemble_comment(self, text: str = "") -> str:
        return f"<!-- {text.replace('--', '- -')} -->\n"

    def assemble_header(self) -> str:
        nl = "\n" if self.opt("prettyPrint") else ""
        html_tag = self.opt("htmlTag")
        buf = ""
        if self.opt("XMLDecl"):
            buf += f'<?xml version="1.0" encoding="{self.opt("encoding")}"?>\n'
        public_id, system_id = self.opt("publicId"), self.opt("systemId")
        if public_id:
            buf += f'<!DOCTYPE {html_tag} PUBLIC "{public_id}" "{system_id}">\n'
        elif system_id:
            buf += f'<!DOCTYPE {html_tag} SYSTEM "{system_id}">\n'
        buf += f"<{html_tag}>{nl}<{self.opt('tableTag')}>{nl}"
        if self.opt("colspecs"):
            for fdef in self.schema.field_defs():
                col = etree.Element("col")
                if fdef.width:
                    col.set("width", str(fdef.width * 8))
                if fdef.align in ALIGN_NAMES:
                    col.set("align", ALIGN_NAMES[fdef.align])
                elif is_numeric_datatype(fdef.datatype):
                    col.set("align", "right")
                buf += etree.tostring(col, encoding="unicode") + nl
        buf += f"<{self.opt('theadTag')}></{self.opt('theadTag')}>{nl}<{self.opt('tbodyTag')}>{nl}"
        return buf

    def assemble_trailer(self) -> str:
        nl = "\n" if self.opt("prettyPrint") else ""
        return (f"</{self.opt('tbodyTag')}>{nl}</{self.opt('tableTag')}>{nl}"
                f"</{self.opt('htmlTag')}>\n")
