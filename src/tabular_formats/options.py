"""
Typed options for one engine instance.

``TabularOptions`` is a pydantic model: every option carries its type, default
and help text, and assignments are validated. ``DataOptions`` wraps it with the
reporting behavior callers rely on: a bad ``set`` is logged and recorded in
``errors``, and the previous value stays in place.
"""

import argparse
import codecs
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model, field_validator
from pydantic.fields import FieldInfo

from tabular_formats.errors import OptionError
from tabular_formats.escapes import unbackslash
from tabular_formats.models import COMMENT_PREFIXES, Disposition, FormatName

logger = logging.getLogger(__name__)

NAME_PATTERN = r"^[_A-Za-z][-_.:\w]*$"
OPTIONAL_NAME_PATTERN = r"^([_A-Za-z][-_.:\w]*)?$"

# Alternate spellings accepted by set()/get()
SYNONYMS = {
    "delim": "fieldSep",
}


class OptionType(str, Enum):
    """Grammar an option value must satisfy."""
    BOOLEAN = "boolean"
    INTEGER = "integer"
    STRING = "string"
    NAME = "Name"
    OPTIONAL_NAME = "Name?"
    DISPOSITION = "disposition"


_PY_TYPES = {
    OptionType.BOOLEAN: bool,
    OptionType.INTEGER: int,
    OptionType.STRING: str,
    OptionType.NAME: str,
    OptionType.OPTIONAL_NAME: str,
    OptionType.DISPOSITION: Disposition,
}


def _opt(default: Any, help: str, kind: OptionType, **constraints) -> Any:
    if kind == OptionType.NAME:
        constraints.setdefault("pattern", NAME_PATTERN)
    elif kind == OptionType.OPTIONAL_NAME:
        constraints.setdefault("pattern", OPTIONAL_NAME_PATTERN)
    return Field(default, description=help, json_schema_extra={"option_type": kind.value}, **constraints)


class TabularOptions(BaseModel):
    """All options known to the engine, with their defaults."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid", populate_by_name=True)

    # General
    basicType: FormatName = _opt(FormatName.CSV, "Syntax to read and write", OptionType.STRING)
    ASCII: bool = _opt(False, "Write non-ASCII characters as escapes or references", OptionType.BOOLEAN)
    comment: str = _opt("", "Lines starting with this are comments", OptionType.STRING)
    encoding: str = _opt("utf-8", "Character encoding of files", OptionType.STRING)
    stripStart: bool = _opt(False, "Strip leading whitespace from each record", OptionType.BOOLEAN)
    stripFields: bool = _opt(True, "Strip whitespace around each field value", OptionType.BOOLEAN)
    stripRecords: bool = _opt(False, "Strip leading and trailing whitespace from each physical line", OptionType.BOOLEAN)
    typeCheck: bool = _opt(True, "Check values against declared datatypes", OptionType.BOOLEAN)
    controlChars: Disposition = _opt(Disposition.KEEP, "What to do with control characters on output",
                                     OptionType.DISPOSITION)
    innerSpace: Disposition = _opt(Disposition.KEEP, "What to do with whitespace inside field values",
                                   OptionType.DISPOSITION)
    progressInterval: int = _opt(10000, "Log progress every N records", OptionType.INTEGER, gt=0)

    # ARFF
    sparse: bool = _opt(False, "Write ARFF records in sparse form", OptionType.BOOLEAN)

    # CSV
    header: bool = _opt(False, "First record holds the field names", OptionType.BOOLEAN)
    tableSep: str = _opt("", "Separator between tables", OptionType.STRING)
    recordSep: str = _opt("\n", "Separator between records", OptionType.STRING)
    fieldSep: str = _opt("\t", "Separator between fields", OptionType.STRING)
    quote: str = _opt('"', "Quote character (empty for none)", OptionType.STRING, max_length=1)
    nlInQuotes: bool = _opt(False, "Quoted fields may contain newlines", OptionType.BOOLEAN)
    qdouble: bool = _opt(False, "A doubled quote inside quotes is a literal quote", OptionType.BOOLEAN)
    qstray: bool = _opt(False, "Allow quotes inside unquoted fields", OptionType.BOOLEAN)
    escape: str = _opt("", "Escape character (empty for none)", OptionType.STRING, max_length=1)
    escape2hex: bool = _opt(False, "Escape plus two hex digits is a character code", OptionType.BOOLEAN)

    # JSON
    jsonArray: bool = _opt(False, "Write records as arrays instead of objects", OptionType.BOOLEAN)

    # MANCH
    typeField: str = _opt("", "Field holding the frame type", OptionType.OPTIONAL_NAME)

    # MIME
    lineLength: int = _opt(78, "Fold output lines longer than this", OptionType.INTEGER, gt=0)

    # XML
    HTMLEntities: bool = _opt(False, "Recognize HTML named entities on input and use them on output",
                              OptionType.BOOLEAN)
    XMLDecl: bool = _opt(False, "Write an XML declaration", OptionType.BOOLEAN)
    XMLEntities: bool = _opt(True, "Escape XML special characters on output (off: use CDATA sections)",
                             OptionType.BOOLEAN)
    colspecs: bool = _opt(False, "Write <col> elements with widths", OptionType.BOOLEAN)
    entityBase: int = _opt(16, "Base for numeric character references (10 or 16)", OptionType.INTEGER)
    entityWidth: int = _opt(4, "Minimum digits in numeric character references", OptionType.INTEGER, ge=0)
    idValue: str = _opt("", "Field whose value becomes the row ID ('*' for row number)",
                        OptionType.STRING)
    prettyPrint: bool = _opt(True, "Indent output", OptionType.BOOLEAN)
    publicId: str = _opt("", "PUBLIC identifier for a DOCTYPE", OptionType.STRING)
    systemId: str = _opt("", "SYSTEM identifier for a DOCTYPE", OptionType.STRING)
    htmlTag: str = _opt("html", "Element name for the document", OptionType.NAME)
    tableTag: str = _opt("table", "Element name for the table", OptionType.NAME)
    theadTag: str = _opt("thead", "Element name for the header section", OptionType.NAME)
    tbodyTag: str = _opt("tbody", "Element name for the body section", OptionType.NAME)
    trTag: str = _opt("tr", "Element name for a record", OptionType.NAME)
    tdTag: str = _opt("td", "Element name for a field", OptionType.NAME)
    thTag: str = _opt("th", "Element name for a header cell", OptionType.NAME)
    pTag: str = _opt("p", "Element name for list items inside a field", OptionType.NAME)
    classAttr: str = _opt("class", "Attribute naming a cell's field", OptionType.NAME)
    idAttr: str = _opt("id", "Attribute holding a record's ID", OptionType.NAME)
    attrFields: str = _opt("", "Space-separated row attributes to capture as fields", OptionType.STRING)

    # XSV
    omitDefaults: bool = _opt(False, "XSV: omit attributes equal to their default; MIME: omit fields with no value", OptionType.BOOLEAN)

    @field_validator("basicType", mode="before")
    @classmethod
    def upper_format_name(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("controlChars", "innerSpace", mode="before")
    @classmethod
    def lower_disposition(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("encoding")
    @classmethod
    def known_encoding(cls, v):
        try:
            codecs.lookup(v)
        except LookupError:
            raise ValueError(f"unknown encoding '{v}'")  # noqa: B904
        return v

    @field_validator("entityBase")
    @classmethod
    def entity_base(cls, v):
        if v not in (10, 16):
            raise ValueError("entityBase must be 10 or 16")
        return v


class DataOptions:
    """Option store owned by one engine.

    ``set`` never raises for bad input: unknown names and values that fail
    validation are logged, appended to ``errors`` and ignored.
    """

    def __init__(self, **initial: Any):
        self._model: TabularOptions = TabularOptions()
        self._types: Dict[str, OptionType] = {
            name: OptionType(info.json_schema_extra["option_type"])
            for name, info in TabularOptions.model_fields.items()
        }
        self.frozen = False
        self.errors: List[OptionError] = []
        if initial:
            self.update(initial)

    def _report(self, message: str) -> None:
        logger.warning(f"Options: {message}")
        self.errors.append(OptionError(message))

    @staticmethod
    def canonical(name: str) -> str:
        return SYNONYMS.get(name, name)

    @property
    def model(self) -> TabularOptions:
        return self._model

    def has(self, name: str) -> bool:
        return self.canonical(name) in self._types

    def get(self, name: str, default: Any = None) -> Any:
        name = self.canonical(name)
        if name not in self._types:
            self._report(f"Unknown option '{name}'")
            return default
        return getattr(self._model, name)

    def get_type(self, name: str) -> Optional[OptionType]:
        return self._types.get(self.canonical(name))

    def set(self, name: str, value: Any) -> Any:
        """Set an option.

        String values have backslash codes (``\\t``, ``\\x2C``...) expanded
        before validation.

        Returns:
            The stored value, or None if the set was rejected
        """
        name = self.canonical(name)
        kind = self._types.get(name)
        if kind is None:
            self._report(f"Unknown option '{name}' (value '{value}' ignored)")
            return None
        if isinstance(value, str) and kind in (OptionType.STRING, OptionType.NAME, OptionType.OPTIONAL_NAME):
            value = unbackslash(value)
        try:
            setattr(self._model, name, value)
        except ValidationError as e:
            problems = "; ".join(err["msg"] for err in e.errors())
            self._report(f"Bad value {value!r} for {kind.value} option '{name}': {problems}")
            return None
        if name == "basicType":
            prefix = COMMENT_PREFIXES.get(self._model.basicType)
            if prefix is not None:
                self._model.comment = prefix
        return getattr(self._model, name)

    def update(self, values: Dict[str, Any]) -> int:
        """Set several options; ``basicType`` is applied first.

        Returns:
            How many values were accepted
        """
        accepted = 0
        items = sorted(values.items(), key=lambda kv: self.canonical(kv[0]) != "basicType")
        for name, value in items:
            if self.set(name, value) is not None:
                accepted += 1
        return accepted

    def define(self, name: str, kind: OptionType, default: Any, help: str = "") -> bool:
        """Add a new option. Only allowed before the store is frozen."""
        if self.frozen:
            self._report(f"Cannot define option '{name}' after the options are frozen")
            return False
        if name in self._types or name in SYNONYMS:
            self._report(f"Option '{name}' is already defined")
            return False
        extended = create_model(
            "ExtendedTabularOptions",
            __base__=type(self._model),
            **{name: (_PY_TYPES[kind], _opt(default, help, kind))},
        )
        try:
            self._model = extended(**self._model.model_dump(), **{name: default})
        except ValidationError as e:
            self._report(f"Default {default!r} for new option '{name}' is invalid: {e.errors()[0]['msg']}")
            return False
        self._types[name] = kind
        return True

    def freeze(self) -> None:
        self.frozen = True

    def as_dict(self) -> Dict[str, Any]:
        return self._model.model_dump()

    def helps(self) -> Dict[str, str]:
        return {name: info.description or "" for name, info in type(self._model).model_fields.items()}

    def ready_check(self) -> List[str]:
        """Check that the options make sense together.

        Returns:
            List of problems (empty if consistent)
        """
        m = self._model
        problems = []
        if m.basicType == FormatName.CSV:
            if not m.fieldSep:
                problems.append("CSV needs a fieldSep")
            elif m.quote and m.quote in m.fieldSep:
                problems.append(f"quote {m.quote!r} cannot be part of fieldSep {m.fieldSep!r}")
        if not m.quote:
            if m.qdouble:
                problems.append("qdouble is set but there is no quote character")
            if m.nlInQuotes:
                problems.append("nlInQuotes is set but there is no quote character")
        if m.escape and m.escape == m.quote:
            problems.append(f"escape and quote are both {m.quote!r}; use qdouble instead")
        return problems

    def copy(self) -> "DataOptions":
        other = DataOptions()
        other._model = self._model.model_copy()
        other._types = dict(self._types)
        return other

    def __repr__(self) -> str:
        return f"DataOptions({self._model.basicType.value})"


def add_options_to_argparse(parser: argparse.ArgumentParser, options: Optional[DataOptions] = None,
                            prefix: str = "") -> None:
    """Register one command-line flag per option.

    Booleans get ``--name`` / ``--no-name``; everything else takes a value.
    Flags default to SUPPRESS, so only options actually given show up in the
    namespace.
    """
    options = options or DataOptions()
    group = parser.add_argument_group(f"{prefix or 'format'} options")
    for name, info in type(options.model).model_fields.items():
        kind = options.get_type(name)
        flag = f"--{prefix}{name}"
        dest = _dest(prefix, name)
        help_text = info.description or ""
        if kind == OptionType.BOOLEAN:
            group.add_argument(flag, dest=dest, action=argparse.BooleanOptionalAction,
                               default=argparse.SUPPRESS, help=help_text)
        elif kind == OptionType.INTEGER:
            group.add_argument(flag, dest=dest, type=int, default=argparse.SUPPRESS, help=help_text)
        else:
            group.add_argument(flag, dest=dest, default=argparse.SUPPRESS, help=help_text)


def _dest(prefix: str, name: str) -> str:
    return f"{prefix}{name}".replace("-", "_")


def options_from_namespace(namespace: argparse.Namespace, options: DataOptions,
                           prefix: str = "") -> Tuple[int, List[str]]:
    """Copy parsed command-line values into an option store.

    Returns:
        Tuple of (accepted_count, rejected_option_names)
    """
    accepted = 0
    rejected = []
    for name in type(options.model).model_fields:
        dest = _dest(prefix, name)
        if hasattr(namespace, dest):
            if options.set(name, getattr(namespace, dest)) is None:
                rejected.append(name)
            else:
                accepted += 1
    return accepted, rejected
