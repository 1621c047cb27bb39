"""
Field tokenizer for delimited records.

Handles every combination of separator, quote character, escape character and
doubled-quote convention. The escape character binds first, left to right:
``\\"`` is always a literal quote and ``\\\\`` a literal escape, so in
``"a\\""`` the escaped quote is content and the final quote closes the field.
"""

import logging
import re
from typing import List, Optional

from tabular_formats.escapes import unescape

logger = logging.getLogger(__name__)


def find_real_close_quote(text: str, sep: str, quote: str, escape: str = "",
                          qdouble: bool = False) -> Optional[int]:
    """Find the quote that closes a field starting (after blanks) with ``quote``.

    Args:
        text: Remaining record text, starting at the field
        sep: Field separator (tabs count as leading blanks unless it is a tab)
        quote: Quote character
        escape: Escape character, or empty
        qdouble: Whether two adjacent quotes stand for one

    Returns:
        Index of the closing quote, or None if the field is not quoted or the
        quote never closes
    """
    n = len(text)
    i = 0
    while i < n and (text[i] == " " or (text[i] == "\t" and sep != "\t")):
        i += 1
    if i >= n or text[i] != quote:
        return None
    i += 1
    while i < n:
        c = text[i]
        if escape and c == escape:
            i += 2
        elif qdouble and c == quote and i + 1 < n and text[i + 1] == quote:
            i += 2
        elif c == quote:
            return i
        else:
            i += 1
    return None


def _unquote(field: str, quote: str, escape: str, qdouble: bool) -> str:
    field = field.strip(" \t")
    if len(field) >= 2 and field[0] == quote and field[-1] == quote:
        field = field[1:-1]
    if not qdouble or quote + quote not in field:
        return field
    # Collapse doubled quotes, leaving escape sequences for unescape()
    out = []
    i = 0
    n = len(field)
    while i < n:
        c = field[i]
        if escape and c == escape:
            out.append(field[i:i + 2])
            i += 2
        elif c == quote and i + 1 < n and field[i + 1] == quote:
            out.append(quote)
            i += 2
        else:
            out.append(c)
            i += 1
    return "".join(out)


def split_delimited_record(record: str, sep: str, quote: str = '"', escape: str = "",
                           qdouble: bool = False, escape2hex: bool = False,
                           errors: Optional[List[str]] = None, qstray: bool = True) -> List[str]:
    """Split one logical record into field values.

    Records with neither a quote nor an escape character take a plain
    split. Otherwise each field is either quoted (scanned to its real close
    quote, which must be followed by blanks and the separator) or taken up to
    the next separator.

    Args:
        record: One logical record, without its record separator
        sep: Field separator
        quote: Quote character (empty disables quoting)
        escape: Escape character (empty disables escapes)
        qdouble: Whether a doubled quote inside quotes is a literal quote
        escape2hex: Whether escape + two hex digits is a character code
        errors: If given, problems with individual fields are appended here
        qstray: If False, warn about unescaped quotes inside unquoted fields

    Returns:
        List of field values, without the reserved slot 0
    """
    if not sep:
        return [record]
    if not (quote and quote in record) and not (escape and escape in record):
        return record.split(sep)

    fields = []
    rest = record
    while True:
        close = find_real_close_quote(rest, sep, quote, escape, qdouble) if quote else None
        if close is not None:
            value = _unquote(rest[:close + 1], quote, escape, qdouble)
            rest = rest[close + 1:]
            m = re.match(r"[ \t]*" + re.escape(sep), rest)
            if m:
                rest = rest[m.end():]
                more = True
            else:
                trailing, _, rest = _split_at_sep(rest, sep, escape)
                more = rest is not None
                if trailing.strip():
                    msg = f"Text after closing quote in field {len(fields) + 1}: {trailing!r}"
                    logger.warning(msg)
                    if errors is not None:
                        errors.append(msg)
                    value += trailing
        else:
            if quote and rest.lstrip(" \t").startswith(quote):
                msg = f"Unterminated quote in field {len(fields) + 1}"
                logger.warning(msg)
                if errors is not None:
                    errors.append(msg)
            value, _, rest = _split_at_sep(rest, sep, escape)
            more = rest is not None
            if not qstray and quote and _has_stray_quote(value, quote, escape):
                logger.warning(f"Stray quote in unquoted field {len(fields) + 1}: {value!r}")
        if escape:
            value = unescape(value, escape, escape2hex)
        fields.append(value)
        if not more:
            return fields


def _has_stray_quote(value: str, quote: str, escape: str) -> bool:
    if escape:
        value = re.sub(re.escape(escape) + ".", "", value, flags=re.DOTALL)
    return quote in value.lstrip(" \t")[1:]


def _split_at_sep(text: str, sep: str, escape: str):
    """Split at the first separator not preceded by the escape character.

    Returns:
        Tuple of (before, sep, after); after is None when there is no separator
    """
    i = 0
    n = len(text)
    while i < n:
        if escape and text[i] == escape:
            i += 2
            continue
        if text.startswith(sep, i):
            return text[:i], sep, text[i + len(sep):]
        i += 1
    return text, "", None
