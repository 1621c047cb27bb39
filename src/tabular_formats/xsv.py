"""
XSV: tables as a tiny subset of XML.

    <Xsv title="Signers">
    <Head Id="#ID" Name="#string!" State="#ENUM(MA VA NY)?#MA" Home="#BASE(http://example.com/)">
      <Rec Id="s01" Name="John Adams" />
      <Rec Id="s02" Name="Thomas Jefferson" State="VA" Home="jefferson" />
    </Head>
    </Xsv>

Each ``<Head>`` attribute declares a field. Its value is either a plain default,
or a declaration ``#type(arg)rep#default``:

- ``type`` names a datatype (``int``, ``ENUM(...)``, ``ID``...), or ``BASE``
  (prefix every non-empty value with ``arg``) or ``REQUIRED``
- ``rep`` is ``!`` (required), ``?`` (optional), ``*`` (optional, repeated) or
  ``+`` (required, repeated); repeated values are whitespace-separated
- ``default`` is used when the attribute is missing or empty
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import xmltodict
from xml.parsers.expat import ExpatError

from tabular_formats.datatypes import check_value_for_type, split_datatype
from tabular_formats.errors import DatatypeError, SchemaError, TabularFormatError
from tabular_formats.escapes import decode_html_entities

logger = logging.getLogger(__name__)

XSV_TAG = "Xsv"
HEAD_TAG = "Head"
REC_TAG = "Rec"
RESERVED = "#"

DUBLIN_CORE = {
    "contributor", "coverage", "creator", "date", "description", "format", "identifier",
    "language", "publisher", "relation", "rights", "source", "subject", "title", "type",
}

DECLARATION_RE = re.compile(r"^#(\w+)(?:\((.*?)\))?([!?*+])?(?:#(.*))?$", re.DOTALL)


@dataclass
class XsvDeclaration:
    """One field declared on ``<Head>``."""
    name: str
    spec: str = ""
    datatype: str = ""
    rep: str = "?"
    default: Optional[str] = None
    base: str = ""

    @classmethod
    def parse(cls, name: str, spec: str) -> "XsvDeclaration":
        """Parse an attribute value from ``<Head>``.

        Raises:
            ValueError: If the value starts with ``#`` but is not a valid declaration
        """
        if not spec.startswith(RESERVED):
            return cls(name=name, spec=spec, default=spec if spec != "" else None)
        m = DECLARATION_RE.match(spec)
        if not m:
            raise ValueError(f"Bad declaration for '{name}': {spec!r}")
        typename, arg, rep, default = m.group(1), m.group(2), m.group(3), m.group(4)
        decl = cls(name=name, spec=spec, default=default)
        if typename == "BASE":
            decl.base = arg or ""
            decl.rep = rep or "?"
        elif typename == "REQUIRED":
            decl.rep = "!"
        else:
            decl.datatype = f"{typename}({arg})" if arg is not None else typename
            decl.rep = rep or "!"
        return decl

    @property
    def required(self) -> bool:
        return self.rep in ("!", "+")

    @property
    def repeated(self) -> bool:
        return self.rep in ("*", "+")

    @property
    def id_kind(self) -> str:
        """``ID``, ``IDREF``, ``IDREFS`` or empty, from the type or its argument."""
        base, arg = split_datatype(self.datatype)
        for kind in (base, arg):
            if kind in ("ID", "IDREF", "IDREFS"):
                return kind
        return ""

    @classmethod
    def for_field(cls, name: str, datatype: str = "", default: Optional[str] = None) -> "XsvDeclaration":
        """Build a declaration (and its ``<Head>`` spec) from a field's datatype and default."""
        if not datatype:
            spec = default or ""
            return cls(name=name, spec=spec, default=default)
        spec = f"{RESERVED}{datatype}?"
        if default not in (None, ""):
            spec += f"{RESERVED}{default}"
        return cls(name=name, spec=spec, datatype=datatype, rep="?", default=default)


def parse_tag(text: str) -> Tuple[str, Dict[str, str], bool]:
    """Parse one start tag (or empty-element tag) with xmltodict.

    HTML named entities in attribute values are decoded.

    Returns:
        Tuple of (tag_name, attributes_in_order, is_empty)

    Raises:
        ValueError: If the text is not a well-formed start tag
    """
    text = decode_html_entities(text.strip())
    if not text.startswith("<") or text.startswith("</") or not text.endswith(">"):
        raise ValueError(f"Not a start tag: {text[:60]!r}")
    is_empty = text.endswith("/>")
    doc = text if is_empty else text[:-1].rstrip() + "/>"
    try:
        parsed = xmltodict.parse(doc)
    except ExpatError as e:
        raise ValueError(f"Malformed tag {text[:60]!r}: {e}") from e
    tag, body = next(iter(parsed.items()))
    attrs = {}
    if isinstance(body, dict):
        attrs = {k[1:]: ("" if v is None else v) for k, v in body.items() if k.startswith("@")}
    return tag, attrs, is_empty


class XsvValidator:
    """Applies ``<Head>`` declarations to records.

    Problems are collected in ``errors`` and also returned per record; values
    are never dropped because they fail a check.
    """

    def __init__(self, declarations: Optional[List[XsvDeclaration]] = None, type_check: bool = True):
        self.declarations: Dict[str, XsvDeclaration] = {}
        for decl in declarations or []:
            self.declarations[decl.name] = decl
        self.type_check = type_check
        self.errors: List[TabularFormatError] = []
        self.ids: Dict[str, int] = {}
        self.idrefs: Dict[str, int] = {}

    @classmethod
    def from_head(cls, attrs: Dict[str, str], type_check: bool = True) -> Tuple["XsvValidator", List[str]]:
        """Build a validator from ``<Head>`` attributes.

        Returns:
            Tuple of (validator, problems); a bad declaration becomes an
            untyped field
        """
        decls = []
        problems = []
        for name, spec in attrs.items():
            try:
                decls.append(XsvDeclaration.parse(name, spec))
            except ValueError as e:
                problems.append(str(e))
                decls.append(XsvDeclaration(name=name, spec=spec))
        return cls(decls, type_check), problems

    def names(self) -> List[str]:
        return list(self.declarations)

    def reset(self) -> None:
        self.errors.clear()
        self.ids.clear()
        self.idrefs.clear()

    def process(self, attrs: Dict[str, str], line_number: Optional[int] = None
                ) -> Tuple[Dict[str, str], List[TabularFormatError]]:
        """Apply defaults, BASE prefixes and checks to one record's attributes.

        Returns:
            Tuple of (attributes, problems_found_in_this_record)
        """
        problems: List[TabularFormatError] = []

        def report(error: TabularFormatError) -> None:
            logger.warning(f"XSV: {error}")
            problems.append(error)
            self.errors.append(error)

        out = dict(attrs)
        for name, decl in self.declarations.items():
            value = out.get(name)
            if value is None and decl.required:
                report(SchemaError(f"Required attribute '{name}' is missing", line_number))
            if value in (None, "") and decl.default is not None:
                value = decl.default
            if decl.base and value not in (None, ""):
                value = decl.base + value
            if value is not None:
                out[name] = value
            if self.type_check and decl.datatype and value not in (None, ""):
                for message in self._check(decl, value):
                    report(DatatypeError(message, line_number))
        return out, problems

    def _check(self, decl: XsvDeclaration, value: str) -> List[str]:
        messages = []
        parts = value.split() if decl.repeated else [value]
        for part in parts:
            ok, msg = check_value_for_type(decl.datatype, part, decl.rep)
            if not ok:
                messages.append(f"Attribute {decl.name}=\"{value}\" does not match '{decl.spec}': {msg}")
        kind = decl.id_kind
        if kind == "ID":
            if value in self.ids:
                messages.append(f"ID '{value}' is not unique")
            self.ids[value] = self.ids.get(value, 0) + 1
        elif kind in ("IDREF", "IDREFS"):
            for token in value.split():
                self.idrefs[token] = self.idrefs.get(token, 0) + 1
        return messages

    def unresolved_idrefs(self) -> List[str]:
        """IDREF values seen so far that match no ID."""
        return sorted(ref for ref in self.idrefs if ref not in self.ids)


def escape_attribute(value: str) -> str:
    return value.replace("&", "&amp;").replace("<", "&lt;").replace('"', "&quot;")
