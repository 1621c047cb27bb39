"""
XSV: one empty ``<Rec .../>`` element per record, fields as attributes.

Field declarations on ``<Head>`` close the schema and drive defaults, BASE
prefixes and datatype checks (see ``tabular_formats.xsv``).
"""

import logging
import time
from typing import Any, Dict, List, Optional

from tabular_formats.errors import DatatypeError, SchemaError
from tabular_formats.escapes import ascii_references
from tabular_formats.formats.base import FormatStrategy
from tabular_formats.models import Boundary, BoundaryKind, FormatName, ReadResult
from tabular_formats.schema import FieldDef
from tabular_formats.xsv import (DUBLIN_CORE, HEAD_TAG, REC_TAG, XSV_TAG, XsvDeclaration, XsvValidator,
                                 escape_attribute, parse_tag)

logger = logging.getLogger(__name__)

SKIPPED_PREFIXES = ("<!--", "<?", "<!", "</")


class XsvFormat(FormatStrategy):
    name = FormatName.XSV
    has_header = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.info: Dict[str, str] = {}
        self.validator = XsvValidator(type_check=self.opt("typeCheck"))

    def boundary(self) -> Boundary:
        return Boundary(BoundaryKind.TAG)

    def is_ok_field_name(self, name: str) -> bool:
        return bool(name) and name[:1].isalpha() and all(c.isalnum() or c in "-_.:" for c in name)

    def is_skippable(self, text: str) -> bool:
        stripped = text.strip()
        return not stripped or stripped.startswith(SKIPPED_PREFIXES)

    # Reading

    def _take_info(self, attrs: Dict[str, str]) -> None:
        for key, value in attrs.items():
            if key not in DUBLIN_CORE:
                self.field_error(f"<{XSV_TAG}> attribute '{key}' is not a Dublin Core element")
            self.info[key] = value

    def _take_head(self, attrs: Dict[str, str]) -> List[str]:
        """Install the ``<Head>`` declarations as the schema and close it."""
        self.validator, problems = XsvValidator.from_head(attrs, type_check=self.opt("typeCheck"))
        for problem in problems:
            self.field_error(problem)
        self.schema.reset()
        for decl in self.validator.declarations.values():
            self.schema.append(decl.name, datatype=decl.datatype or None, default=decl.default)
        self.schema.close()
        logger.info(f"XSV: {self.schema.count()} fields declared")
        return self.schema.names()

    def read_and_parse_header(self) -> Optional[List[str]]:
        boundary = self.boundary()
        while True:
            result = self.reader.read_logical_record(boundary)
            if not result.has_text:
                return None
            text = result.text.strip()
            if self.is_skippable(text):
                continue
            try:
                tag, attrs, _ = parse_tag(text)
            except ValueError as e:
                self.field_error(str(e))
                continue
            if tag == XSV_TAG:
                self._take_info(attrs)
            elif tag == HEAD_TAG:
                return self._take_head(attrs)
            else:
                # Records with no declarations: the schema stays open
                self.reader.source.pushback(result.text + "\n")
                return None

    def read_record(self) -> ReadResult:
        boundary = self.boundary()
        while True:
            result = self.reader.read_logical_record(boundary)
            if not result.has_text or not result.ok:
                return result
            text = result.text.strip()
            if self.is_skippable(text):
                continue
            if text.startswith(f"<{XSV_TAG}") or text.startswith(f"<{HEAD_TAG}"):
                try:
                    tag, attrs, _ = parse_tag(text)
                except ValueError as e:
                    self.field_error(str(e))
                    continue
                if tag == XSV_TAG:
                    self._take_info(attrs)
                    continue
                if tag == HEAD_TAG:
                    self._take_head(attrs)
                    continue
            return result

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        try:
            tag, attrs, is_empty = parse_tag(text)
        except ValueError as e:
            self.field_error(str(e))
            return {}
        if tag != REC_TAG:
            self.field_error(f"Expected <{REC_TAG}>, found <{tag}>")
        if not is_empty:
            self.field_error(f"<{tag}> should be an empty element")

        line = self.reader.source.line_number
        attrs, problems = self.validator.process(attrs, line)
        for problem in problems:
            if isinstance(problem, DatatypeError):
                self.datatype_error(problem)
            elif isinstance(problem, SchemaError):
                self.schema.errors.append(problem)
                self.record_messages.append(problem.message)

        fields = {}
        for key, value in attrs.items():
            fdef = self.field_for(key)
            if fdef is not None:
                fields[fdef.name] = value
        return self.post_process_fields(fields)

    def end_table(self) -> None:
        for ref in self.validator.unresolved_idrefs():
            error = DatatypeError(f"IDREF '{ref}' does not match any ID")
            logger.warning(f"XSV: {error}")
            self.datatype_error(error)

    def unresolved_idrefs(self) -> List[str]:
        return self.validator.unresolved_idrefs()

    # Writing

    def _declaration(self, fdef: FieldDef) -> XsvDeclaration:
        decl = self.validator.declarations.get(fdef.name)
        if decl is None:
            decl = XsvDeclaration.for_field(fdef.name, fdef.datatype, fdef.default)
        return decl

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        text = self.output_text(fdef, value)
        base = self._declaration(fdef).base
        if base and text.startswith(base):
            text = text[len(base):]
        text = escape_attribute(text)
        if self.opt("ASCII"):
            text = ascii_references(text, self.opt("entityBase"), self.opt("entityWidth"),
                                    self.opt("HTMLEntities"))
        return text

    def assemble_record_from_array(self, values: List[Any]) -> str:
        values = self.check_array(values)
        omit_defaults = self.opt("omitDefaults")
        pretty = self.opt("prettyPrint")
        parts = []
        for i, fdef in enumerate(self.schema.field_defs(), 1):
            value = values[i]
            if value is None:
                continue
            if omit_defaults and fdef.default is not None and value == fdef.default:
                continue
            attr = f'{fdef.name}="{self.assemble_field(fdef, value)}"'
            if pretty and fdef.width:
                attr = attr.ljust(len(fdef.name) + fdef.width + 3)
            parts.append(attr)
        self.records_assembled += 1
        indent = "  " if pretty else ""
        return f"{indent}<{REC_TAG} " + " ".join(parts) + " />\n"

    def assemble_header(self) -> str:
        info = {"format": "XSV", "date": time.strftime("%Y-%m-%d")}
        info.update(self.info)
        xsv_attrs = " ".join(f'{k}="{escape_attribute(str(v))}"' for k, v in info.items())
        sep = "\n    " if self.opt("prettyPrint") else " "
        decls = sep.join(f'{fdef.name}="{escape_attribute(self._declaration(fdef).spec)}"'
                         for fdef in self.schema.field_defs())
        head = f"<{HEAD_TAG}{sep}{decls}>" if decls else f"<{HEAD_TAG}>"
        return f"<{XSV_TAG} {xsv_attrs}>\n{head}\n"

    def assemble_trailer(self) -> str:
        return f"</{HEAD_TAG}>\n</{XSV_TAG}>\n"

    def assemble_comment(self, text: str = "") -> str:
        return f"<!-- {text.replace('--', '- -')} -->\n"
