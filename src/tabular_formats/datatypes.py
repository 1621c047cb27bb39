"""
Closed registry of value datatypes.

Mostly XML Schema built-ins, plus a few extras used in XSV header declarations:

- ``ENUM(a b c)``: one of the listed tokens
- ``STRING(regex)``: any string containing a match for ``regex``
- ``REGEX``: the value must itself compile as a regular expression
- ``ASCII``: ASCII-only text
- ``BASEINT``: an integer in decimal, octal (leading 0) or hex (0x)

The registry only supports validation and normalization. It never affects how
the surrounding syntax is parsed.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

NCNAME = r"[_A-Za-z][-_.\w]*"
NAME = r"[_:A-Za-z][-_.:\w]*"
NMTOKEN = r"[-_.:\w]+"
TZ = r"([-+]\d\d:\d\d|Z)?"


@dataclass(frozen=True)
class DatatypeSpec:
    """One named datatype: its grammar and, for numbers, inclusive bounds."""
    name: str
    expr: str
    numeric: bool = False
    norm_ws: bool = False
    min: Optional[int] = None
    max: Optional[int] = None


def _int_range(bits: int, signed: bool = True) -> Dict[str, int]:
    if signed:
        return {"min": -(2 ** (bits - 1)), "max": 2 ** (bits - 1) - 1}
    return {"min": 0, "max": 2 ** bits - 1}


_FLOAT = r"[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?|INF|-INF|NaN"

DATATYPES: Dict[str, DatatypeSpec] = {
    spec.name: spec for spec in [
        # Extensions
        DatatypeSpec("ENUM", r".*", norm_ws=True),
        DatatypeSpec("STRING", r".*", norm_ws=True),
        DatatypeSpec("REGEX", r".*"),
        DatatypeSpec("ASCII", r"[\x00-\x7f]*"),
        DatatypeSpec("BASEINT", r"[-+]?([1-9]\d*|0[0-7]*|0[xX][0-9a-fA-F]+)", numeric=True),

        DatatypeSpec("boolean", r"true|false|1|0"),

        # Numbers
        DatatypeSpec("decimal", r"[-+]?(\d+(\.\d*)?|\.\d+)", numeric=True),
        DatatypeSpec("double", _FLOAT, numeric=True),
        DatatypeSpec("float", _FLOAT, numeric=True),
        DatatypeSpec("integer", r"[-+]?\d+", numeric=True),
        DatatypeSpec("byte", r"[-+]?\d+", numeric=True, **_int_range(8)),
        DatatypeSpec("short", r"[-+]?\d+", numeric=True, **_int_range(16)),
        DatatypeSpec("int", r"[-+]?\d+", numeric=True, **_int_range(32)),
        DatatypeSpec("long", r"[-+]?\d+", numeric=True, **_int_range(64)),
        DatatypeSpec("nonPositiveInteger", r"-\d+|[-+]?0+", numeric=True, max=0),
        DatatypeSpec("negativeInteger", r"-\d+", numeric=True, max=-1),
        DatatypeSpec("nonNegativeInteger", r"\+?\d+", numeric=True, min=0),
        DatatypeSpec("positiveInteger", r"\+?\d+", numeric=True, min=1),
        DatatypeSpec("unsignedByte", r"\+?\d+", numeric=True, **_int_range(8, signed=False)),
        DatatypeSpec("unsignedShort", r"\+?\d+", numeric=True, **_int_range(16, signed=False)),
        DatatypeSpec("unsignedInt", r"\+?\d+", numeric=True, **_int_range(32, signed=False)),
        DatatypeSpec("unsignedLong", r"\+?\d+", numeric=True, **_int_range(64, signed=False)),

        # Dates and times
        DatatypeSpec("date", r"-?\d{4,}-\d\d-\d\d" + TZ),
        DatatypeSpec("dateTime", r"-?\d{4,}-\d\d-\d\dT\d\d:\d\d:\d\d(\.\d+)?" + TZ),
        DatatypeSpec("time", r"\d\d:\d\d:\d\d(\.\d+)?" + TZ),
        DatatypeSpec("duration", r"-?P(\d+Y)?(\d+M)?(\d+D)?(T(\d+H)?(\d+M)?(\d+(\.\d+)?S)?)?"),
        DatatypeSpec("gDay", r"---\d\d" + TZ),
        DatatypeSpec("gMonth", r"--\d\d" + TZ),
        DatatypeSpec("gMonthDay", r"--\d\d-\d\d" + TZ),
        DatatypeSpec("gYear", r"-?\d{4,}" + TZ),
        DatatypeSpec("gYearMonth", r"-?\d{4,}-\d\d" + TZ),

        # Strings and tokens
        DatatypeSpec("language", r"[a-zA-Z]{1,8}(-[a-zA-Z0-9]{1,8})*"),
        DatatypeSpec("normalizedString", r"[^\r\n\t]*", norm_ws=True),
        DatatypeSpec("string", r".*", norm_ws=True),
        DatatypeSpec("token", r"(\S+( \S+)*)?", norm_ws=True),
        DatatypeSpec("NMTOKEN", NMTOKEN, norm_ws=True),
        DatatypeSpec("NMTOKENS", rf"{NMTOKEN}(\s+{NMTOKEN})*", norm_ws=True),
        DatatypeSpec("Name", NAME, norm_ws=True),
        DatatypeSpec("NCName", NCNAME, norm_ws=True),
        DatatypeSpec("ID", NCNAME, norm_ws=True),
        DatatypeSpec("IDREF", NCNAME, norm_ws=True),
        DatatypeSpec("IDREFS", rf"{NCNAME}(\s+{NCNAME})*", norm_ws=True),
        DatatypeSpec("ENTITY", NCNAME, norm_ws=True),
        DatatypeSpec("ENTITIES", rf"{NCNAME}(\s+{NCNAME})*", norm_ws=True),
        DatatypeSpec("QName", rf"({NCNAME}:)?{NCNAME}", norm_ws=True),

        # Other
        DatatypeSpec("anyURI", r"([-a-zA-Z0-9$_.+!*,;/?:@=&~#'()]|%[0-9a-fA-F]{2})*"),
        DatatypeSpec("base64Binary", r"[\sA-Za-z0-9+/=]*"),
        DatatypeSpec("hexBinary", r"([0-9a-fA-F][0-9a-fA-F])*"),
    ]
}

_DT_WITH_ARG = re.compile(r"^(\w+)(?:\((.*)\))?$", re.DOTALL)


def split_datatype(dt_name: str) -> Tuple[str, str]:
    """Split ``ENUM(a b)`` into ``("ENUM", "a b")``; plain names get an empty arg."""
    m = _DT_WITH_ARG.match(dt_name.strip())
    if not m:
        return dt_name, ""
    return m.group(1), m.group(2) or ""


def is_known_datatype(dt_name: str) -> bool:
    base, arg = split_datatype(dt_name)
    if base in ("ENUM", "STRING"):
        return base in DATATYPES
    return not arg and base in DATATYPES


def is_numeric_datatype(dt_name: str) -> bool:
    spec = DATATYPES.get(split_datatype(dt_name)[0])
    return bool(spec and spec.numeric)


def is_ws_normalizable(dt_name: str) -> bool:
    spec = DATATYPES.get(split_datatype(dt_name)[0])
    return bool(spec and spec.norm_ws)


def known_datatypes() -> List[str]:
    return sorted(DATATYPES.keys())


def enum_values(dt_name: str) -> List[str]:
    """Return the tokens of an ``ENUM(...)`` datatype."""
    base, arg = split_datatype(dt_name)
    if base != "ENUM":
        return []
    return [v for v in re.split(r"[\s|,]+", arg) if v]


def _to_number(value: str) -> Optional[Decimal]:
    try:
        if re.fullmatch(r"[-+]?0[xX][0-9a-fA-F]+", value):
            return Decimal(int(value, 16))
        return Decimal(value)
    except (InvalidOperation, ValueError):
        return None


def check_value_for_type(dt_name: str, value: str, rep: str = "!") -> Tuple[bool, Optional[str]]:
    """Check a value against a named datatype.

    Args:
        dt_name: Datatype name, possibly with an argument (``ENUM(a b)``)
        value: Value to check
        rep: Repetition indicator; empty values pass for ``?`` and ``*``

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None:
        value = ""
    if value == "" and rep in ("?", "*"):
        return True, None

    base, arg = split_datatype(dt_name)
    spec = DATATYPES.get(base)
    if spec is None:
        return False, f"Unknown datatype '{dt_name}'"

    if base == "ENUM":
        allowed = enum_values(dt_name)
        if value not in allowed:
            return False, f"Value '{value}' is not in enum ({', '.join(allowed)})"
        return True, None

    if base == "STRING":
        try:
            if not re.search(arg, value):
                return False, f"Value '{value}' does not match STRING expression /{arg}/"
        except re.error as e:
            return False, f"Bad STRING expression /{arg}/: {e}"
        return True, None

    if base == "REGEX":
        try:
            re.compile(value)
        except re.error as e:
            return False, f"Bad regex /{value}/: {e}"
        return True, None

    if not re.fullmatch(spec.expr, value, re.DOTALL):
        return False, f"{base} value '{value}' does not match /{spec.expr}/"

    if spec.min is not None or spec.max is not None:
        num = _to_number(value)
        if num is None:
            return False, f"{base} value '{value}' is not a number"
        if spec.min is not None and num < spec.min:
            return False, f"{base} value {value} is below min {spec.min}"
        if spec.max is not None and num > spec.max:
            return False, f"{base} value {value} is above max {spec.max}"

    return True, None


def normalize(dt_name: str, value: Any) -> Any:
    """Convert a checked value to its natural Python form.

    Numbers become ``int`` or ``float``, booleans ``bool``, and whitespace is
    collapsed for string types that normalize it. Values that do not convert
    are returned unchanged.
    """
    if value is None or not isinstance(value, str):
        return value
    base, _ = split_datatype(dt_name)

    if base == "BASEINT":
        s = value.strip()
        sign = -1 if s.startswith("-") else 1
        digits = s.lstrip("+-")
        try:
            if digits[:2].lower() == "0x":
                return sign * int(digits, 16)
            if digits.startswith("0") and len(digits) > 1:
                return sign * int(digits, 8)
            return sign * int(digits)
        except ValueError:
            return value
    if base == "boolean":
        return value.strip() not in ("", "0", "false")
    if is_numeric_datatype(base):
        s = value.strip()
        try:
            if re.fullmatch(r"[-+]?\d+", s):
                return int(s)
            return float(s)
        except ValueError:
            return value
    if is_ws_normalizable(base):
        return re.sub(r"\s+", " ", value).strip()
    return value
