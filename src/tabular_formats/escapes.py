"""
Backslash-style escape handling.

Recognized after the escape character:

- mnemonics ``a b e f n r t 0`` and the escape character itself
- three octal digits (``\\101``)
- ``xFF`` and ``x{F...}`` hexadecimal
- ``uFFFF`` and ``UFFFFFFFF``
- with ``escape2hex``, two bare hex digits (``\\41``), taking precedence over octal

Any other escaped character stands for itself, so ``\\,`` is a literal comma
and ``\\"`` a literal quote.
"""

import html
import logging
import re
from functools import lru_cache
from html.entities import codepoint2name
from typing import Pattern

from tabular_formats.models import Disposition

logger = logging.getLogger(__name__)

MNEMONICS = {
    "a": "\a",
    "b": "\b",
    "e": "\x1b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "0": "\0",
}

REVERSE_MNEMONICS = {v: k for k, v in MNEMONICS.items()}

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]+")
INNER_SPACE = re.compile(r"\s+")


@lru_cache(maxsize=32)
def _escape_pattern(escape: str, escape2hex: bool) -> Pattern:
    alternatives = []
    if escape2hex:
        alternatives.append(r"(?P<hex2>[0-9A-Fa-f]{2})")
    alternatives.extend([
        r"(?P<oct>[0-7]{3})",
        r"x\{(?P<xbrace>[0-9A-Fa-f]+)\}",
        r"x(?P<x2>[0-9A-Fa-f]{2})",
        r"u(?P<u4>[0-9A-Fa-f]{4})",
        r"U(?P<u8>[0-9A-Fa-f]{8})",
        r"(?P<char>.)",
    ])
    return re.compile(re.escape(escape) + "(?:" + "|".join(alternatives) + ")", re.DOTALL)


def _decode(match: "re.Match") -> str:
    groups = match.groupdict()
    if groups.get("char") is not None:
        return MNEMONICS.get(groups["char"], groups["char"])
    if groups.get("oct") is not None:
        code = int(groups["oct"], 8)
    else:
        digits = next(v for k, v in groups.items() if v is not None)
        code = int(digits, 16)
    try:
        return chr(code)
    except (ValueError, OverflowError):
        logger.warning(f"Escape sequence '{match.group(0)}' is out of Unicode range, kept as-is")
        return match.group(0)


def unescape(s: str, escape: str = "\\", escape2hex: bool = False) -> str:
    """Expand escape sequences introduced by ``escape``.

    Args:
        s: Text to decode
        escape: The escape character (empty disables decoding)
        escape2hex: Also treat escape + two hex digits as a character code

    Returns:
        Decoded text
    """
    if not s or not escape or escape not in s:
        return s
    return _escape_pattern(escape, escape2hex).sub(_decode, s)


def unbackslash(s: str) -> str:
    """Expand backslash codes such as ``\\t`` in an option value."""
    return unescape(s, "\\")


def escape_char(c: str) -> str:
    """Backslash-escape a single character."""
    if c in REVERSE_MNEMONICS:
        return "\\" + REVERSE_MNEMONICS[c]
    return f"\\x{ord(c):02x}"


def apply_disposition(value: str, disposition: Disposition, pattern: Pattern = CONTROL_CHARS) -> str:
    """Transform every run matched by ``pattern`` in ``value`` per ``disposition``."""
    if not value or disposition == Disposition.KEEP:
        return value
    if disposition == Disposition.DELETE:
        return pattern.sub("", value)
    if disposition == Disposition.SPACE:
        return pattern.sub(lambda m: " " * len(m.group(0)), value)
    if disposition == Disposition.UNIFY:
        return pattern.sub(" ", value)
    if disposition == Disposition.ESCAPE:
        return pattern.sub(
            lambda m: "".join(c if c == " " else escape_char(c) for c in m.group(0)), value)
    return value


def escape_controls(value: str, disposition: Disposition) -> str:
    """Apply a ``controlChars`` disposition to a value before output."""
    return apply_disposition(value, disposition, CONTROL_CHARS)


XML_PREDEFINED = {"lt", "gt", "amp", "quot", "apos"}
NAMED_ENTITY_RE = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")


def decode_html_entities(text: str) -> str:
    """Replace HTML named entities with characters, leaving XML's own five alone."""
    def repl(m):
        if m.group(1) in XML_PREDEFINED:
            return m.group(0)
        return html.unescape(m.group(0))
    return NAMED_ENTITY_RE.sub(repl, text)


def character_reference(c: str, base: int = 16, width: int = 4, named: bool = False) -> str:
    """Write one character as an XML character reference (or an HTML entity with ``named``)."""
    code = ord(c)
    if named and code in codepoint2name:
        return f"&{codepoint2name[code]};"
    if base == 10:
        return f"&#{code:0{width}d};"
    return f"&#x{code:0{width}X};"


def ascii_references(text: str, base: int = 16, width: int = 4, named: bool = False) -> str:
    """Replace every non-ASCII character in markup with a character reference."""
    return re.sub(r"[^\x00-\x7f]", lambda m: character_reference(m.group(0), base, width, named), text)
