"""
Logical-record reader.

One logical record may span several physical lines. ``RecordReader`` reads
exactly one complete unit per call, using the boundary rule of the active
syntax:

- LINE: one physical line
- QUOTE_BALANCED: lines are joined while the quotes are unbalanced
- BRACKET_BALANCED: ``()``, ``[]`` and ``{}`` nesting returns to zero
- CONTINUATION_BLOCK: lines up to a blank line
- MARKUP: up to the close tag of a row element
- UNQUOTED_DELIMITER: up to a separator outside quotes and brackets
- FRAME: from one frame keyword line up to the next
- TAG: one ``<...>`` tag

Text after the end of a record on the same line is pushed back to the source.
"""

import logging
import re
from typing import Callable, Dict, List, Optional

from tabular_formats.models import Boundary, BoundaryKind, ReadResult, RecordStatus
from tabular_formats.source import DataSource

logger = logging.getLogger(__name__)


def quotes_balanced(text: str, quote: str, escape: str = "", qdouble: bool = False) -> bool:
    """Check whether every quoted span in ``text`` is closed.

    Scanning is left to right: an escape character always consumes the
    character after it, and with ``qdouble`` two adjacent quotes inside a
    quoted span stand for one literal quote.
    """
    if not quote or quote not in text:
        return True
    in_quotes = False
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if escape and c == escape:
            i += 2
            continue
        if c == quote:
            if qdouble and in_quotes and i + 1 < n and text[i + 1] == quote:
                i += 2
                continue
            in_quotes = not in_quotes
        i += 1
    return not in_quotes


def split_unquoted(text: str, sep: str, quotes: str = "'\"", escape: str = "\\",
                   nest: bool = False) -> List[str]:
    """Split on ``sep`` wherever it is outside quotes (and, with ``nest``, outside brackets).

    Quotes and escapes are left in the pieces.
    """
    pieces = []
    current = []
    quote = ""
    depth = 0
    i = 0
    n = len(text)
    while i < n:
        c = text[i]
        if escape and c == escape and i + 1 < n:
            current.append(text[i:i + 2])
            i += 2
            continue
        if quote:
            if c == quote:
                quote = ""
        elif c in quotes:
            quote = c
        elif nest and c in "([{":
            depth += 1
        elif nest and c in ")]}" and depth > 0:
            depth -= 1
        elif depth == 0 and text.startswith(sep, i):
            pieces.append("".join(current))
            current = []
            i += len(sep)
            continue
        current.append(c)
        i += 1
    pieces.append("".join(current))
    return pieces


class RecordReader:
    """Reads one logical record at a time from a ``DataSource``."""

    OPAQUE_SPANS = {"<!--": "-->", "<?": "?>", "<![CDATA[": "]]>"}

    def __init__(self, source: DataSource):
        self.source = source
        self._dispatch: Dict[BoundaryKind, Callable[[Boundary], ReadResult]] = {
            BoundaryKind.LINE: self.read_line,
            BoundaryKind.QUOTE_BALANCED: self.read_quote_balanced,
            BoundaryKind.BRACKET_BALANCED: self.read_balanced,
            BoundaryKind.CONTINUATION_BLOCK: self.read_block,
            BoundaryKind.MARKUP: self.read_to_close_tag,
            BoundaryKind.UNQUOTED_DELIMITER: self.read_to_unquoted_delim,
            BoundaryKind.FRAME: self.read_frame,
            BoundaryKind.TAG: self.read_tag,
        }

    def read_logical_record(self, boundary: Boundary) -> ReadResult:
        return self._dispatch[boundary.kind](boundary)

    def _next_line_number(self) -> int:
        return self.source.line_number + 1

    def _result(self, status: RecordStatus, text: Optional[str], start: int, lines: int,
                message: Optional[str] = None) -> ReadResult:
        if status == RecordStatus.BOUNDARY_ERROR:
            logger.error(f"{message} (line {start})")
        elif status == RecordStatus.MALFORMED:
            logger.warning(f"{message} (line {start})")
        return ReadResult(status=status, text=text, message=message, line_number=start,
                          physical_lines=lines)

    def read_line(self, boundary: Optional[Boundary] = None) -> ReadResult:
        start = self._next_line_number()
        line = self.source.readline()
        if line is None:
            return ReadResult(RecordStatus.END)
        return ReadResult(RecordStatus.OK, line, line_number=start, physical_lines=1)

    def skip_pattern(self, pattern: str, skip_blank: bool = True) -> Optional[str]:
        """Consume text matching ``pattern`` at the start of the upcoming input.

        Blank lines before it are skipped when ``skip_blank`` is set. The rest
        of the matched line is pushed back.

        Returns:
            The matched text ("" if nothing matched), or None at end of input
        """
        while True:
            line = self.source.readline()
            if line is None:
                return None
            if skip_blank and not line.strip():
                continue
            break
        m = re.match(pattern, line)
        matched = m.group(0) if m else ""
        rest = line[len(matched):]
        if rest or not matched:
            self.source.pushback(rest + "\n")
        return matched

    def read_quote_balanced(self, boundary: Boundary) -> ReadResult:
        """Join physical lines until quotes balance.

        With ``nl_in_quotes`` off an unbalanced line is returned as MALFORMED,
        text intact. With it on, end of input inside quotes is a
        BOUNDARY_ERROR.
        """
        start = self._next_line_number()
        text = self.source.readline()
        if text is None:
            return ReadResult(RecordStatus.END)
        lines = 1
        while not quotes_balanced(text, boundary.quote, boundary.escape, boundary.qdouble):
            if not boundary.nl_in_quotes:
                return self._result(RecordStatus.MALFORMED, text, start, lines,
                                    f"Unbalanced quotes and nlInQuotes is off: {text!r}")
            more = self.source.readline()
            if more is None:
                return self._result(RecordStatus.BOUNDARY_ERROR, text, start, lines,
                                    "Unbalanced quotes at end of input")
            text = text + "\n" + more
            lines += 1
        return ReadResult(RecordStatus.OK, text, line_number=start, physical_lines=lines)

    def read_balanced(self, boundary: Boundary) -> ReadResult:
        """Read one bracket-balanced expression.

        Nesting is tracked over ``()``, ``[]`` and ``{}``; quoted spans do not
        count. Outside any bracket, a comment prefix hides the rest of the
        line, and whitespace or separator characters before the opener are
        skipped.
        """
        pairs = dict(zip(boundary.closers, boundary.openers))
        start = self._next_line_number()
        pieces: List[str] = []
        stray: List[str] = []
        stack: List[str] = []
        mismatch = None
        in_quote = False
        lines = 0

        while True:
            line = self.source.readline()
            if line is None:
                if stack or in_quote:
                    return self._result(RecordStatus.BOUNDARY_ERROR, "\n".join(pieces), start, lines,
                                        "Unterminated bracketed expression at end of input")
                if stray:
                    return self._result(RecordStatus.MALFORMED, " ".join(stray), start, lines,
                                        "Text outside any bracketed expression")
                return ReadResult(RecordStatus.END)
            if not pieces:
                start = max(self.source.line_number, 1)
                lines = 0
            lines += 1
            begin = 0 if stack else None
            i = 0
            n = len(line)
            while i < n:
                c = line[i]
                if in_quote:
                    if boundary.escape and c == boundary.escape:
                        i += 2
                        continue
                    if c == boundary.quote:
                        in_quote = False
                elif not stack:
                    if boundary.comment and line.startswith(boundary.comment, i):
                        break
                    if c in boundary.openers:
                        stack.append(c)
                        begin = i
                        if stray:
                            logger.warning(f"Skipped text before record: {' '.join(stray)!r}")
                            stray = []
                    elif not c.isspace() and c not in boundary.delimiters:
                        j = i
                        while j < n and line[j] not in boundary.openers and not line[j].isspace():
                            j += 1
                        stray.append(line[i:j])
                        i = j
                        continue
                elif boundary.quote and c == boundary.quote:
                    in_quote = True
                elif c in boundary.openers:
                    stack.append(c)
                elif c in boundary.closers:
                    opener = stack.pop()
                    if pairs[c] != opener:
                        mismatch = f"Mismatched brackets: '{opener}' closed by '{c}'"
                    if not stack:
                        pieces.append(line[begin:i + 1])
                        self.source.pushback(line[i + 1:])
                        text = "\n".join(pieces)
                        if mismatch:
                            return self._result(RecordStatus.MALFORMED, text, start, lines, mismatch)
                        return ReadResult(RecordStatus.OK, text, line_number=start, physical_lines=lines)
                i += 1
            if begin is not None:
                pieces.append(line[begin:])

    def read_block(self, boundary: Optional[Boundary] = None) -> ReadResult:
        """Read lines up to a blank line (consumed) or end of input."""
        line = self.source.readline()
        while line is not None and not line.strip():
            line = self.source.readline()
        if line is None:
            return ReadResult(RecordStatus.END)
        start = self.source.line_number
        lines = [line]
        while True:
            line = self.source.readline()
            if line is None or not line.strip():
                break
            lines.append(line)
        return ReadResult(RecordStatus.OK, "\n".join(lines), line_number=start, physical_lines=len(lines))

    def read_to_close_tag(self, boundary: Boundary) -> ReadResult:
        """Read from a row start tag through its close tag.

        Comments, processing instructions and CDATA sections are skipped as
        opaque spans, so tags inside them are never matched. Text before the
        row start tag (table wrappers, comments) is discarded.
        """
        tag = re.escape(boundary.close_tag)
        token_re = re.compile(rf"<!--|<\?|<!\[CDATA\[|</{tag}\s*>|<{tag}(?=[\s/>])")
        start = self._next_line_number()
        buf = ""
        pos = 0
        rec_start = None
        lines = 0

        def more() -> bool:
            nonlocal buf, lines
            line = self.source.readline()
            if line is None:
                return False
            buf = buf + "\n" + line if lines else line
            lines += 1
            return True

        if not more():
            return ReadResult(RecordStatus.END)
        while True:
            m = token_re.search(buf, pos)
            if m is None:
                if more():
                    continue
                if rec_start is not None:
                    return self._result(RecordStatus.BOUNDARY_ERROR, buf[rec_start:], start, lines,
                                        f"No </{boundary.close_tag}> before end of input")
                return ReadResult(RecordStatus.END)
            token = m.group(0)
            if token in self.OPAQUE_SPANS:
                end = buf.find(self.OPAQUE_SPANS[token], m.end())
                if end < 0:
                    if more():
                        continue
                    return self._result(RecordStatus.BOUNDARY_ERROR, buf[m.start():], start, lines,
                                        f"Unterminated '{token}' at end of input")
                pos = end + len(self.OPAQUE_SPANS[token])
            elif token.startswith("</"):
                if rec_start is None:
                    logger.debug(f"Stray {token} skipped")
                    pos = m.end()
                    continue
                self.source.pushback(buf[m.end():])
                return ReadResult(RecordStatus.OK, buf[rec_start:m.end()], line_number=start,
                                  physical_lines=lines)
            else:
                gt = buf.find(">", m.end())
                if gt < 0:
                    if more():
                        continue
                    return self._result(RecordStatus.BOUNDARY_ERROR, buf[m.start():], start, lines,
                                        f"Unterminated <{boundary.close_tag}> tag at end of input")
                if rec_start is None:
                    rec_start = m.start()
                    start = start + buf.count("\n", 0, rec_start)
                    if buf[gt - 1] == "/":
                        self.source.pushback(buf[gt + 1:])
                        return ReadResult(RecordStatus.OK, buf[rec_start:gt + 1], line_number=start,
                                          physical_lines=lines)
                pos = gt + 1

    def read_to_unquoted_delim(self, boundary: Boundary) -> ReadResult:
        """Read up to a delimiter character outside quotes and brackets.

        The delimiter is consumed. A closing bracket with no matching opener
        also ends the record and is left in the input. Empty records between
        two delimiters are skipped.
        """
        quotes = boundary.quote or "'\""
        start = self._next_line_number()
        pieces: List[str] = []
        quote = ""
        depth = 0
        lines = 0

        while True:
            line = self.source.readline()
            if line is None:
                text = "\n".join(pieces).strip()
                if quote or depth:
                    return self._result(RecordStatus.BOUNDARY_ERROR, text, start, lines,
                                        "Unterminated quote or bracket at end of input")
                if text:
                    return ReadResult(RecordStatus.OK, text, line_number=start, physical_lines=lines)
                return ReadResult(RecordStatus.END)
            lines += 1
            stop = None
            i = 0
            n = len(line)
            while i < n:
                c = line[i]
                if quote:
                    if boundary.escape and c == boundary.escape:
                        i += 2
                        continue
                    if c == quote:
                        quote = ""
                elif c in quotes:
                    quote = c
                elif depth == 0 and boundary.comment and line.startswith(boundary.comment, i):
                    stop = "comment"
                    break
                elif c in boundary.openers:
                    depth += 1
                elif c in boundary.closers:
                    if depth == 0:
                        stop = "closer"
                        break
                    depth -= 1
                elif depth == 0 and c in boundary.delimiters:
                    stop = "delimiter"
                    break
                i += 1

            if stop is None:
                pieces.append(line)
                continue
            pieces.append(line[:i])
            if stop == "comment":
                continue
            text = "\n".join(pieces).strip()
            if stop == "closer":
                self.source.pushback(line[i:])
                if text:
                    return ReadResult(RecordStatus.OK, text, line_number=start, physical_lines=lines)
                return ReadResult(RecordStatus.END)
            self.source.pushback(line[i + 1:])
            if text:
                return ReadResult(RecordStatus.OK, text, line_number=start, physical_lines=lines)
            pieces = []
            start = self._next_line_number()
            lines = 0

    def read_frame(self, boundary: Boundary) -> ReadResult:
        """Read from one frame keyword line up to (not including) the next one."""
        frame_re = re.compile(boundary.frame_pattern)
        line = self.source.readline()
        while line is not None and not frame_re.match(line):
            if line.strip() and not (boundary.comment and line.lstrip().startswith(boundary.comment)):
                logger.debug(f"Skipped text outside any frame: {line!r}")
            line = self.source.readline()
        if line is None:
            return ReadResult(RecordStatus.END)
        start = self.source.line_number
        lines = [line]
        while True:
            line = self.source.readline()
            if line is None:
                break
            if frame_re.match(line):
                self.source.pushback(line + "\n")
                break
            lines.append(line)
        while lines and not lines[-1].strip():
            lines.pop()
        return ReadResult(RecordStatus.OK, "\n".join(lines), line_number=start, physical_lines=len(lines))

    def read_tag(self, boundary: Boundary) -> ReadResult:
        """Read one ``<...>`` construct (tag, comment or processing instruction)."""
        start = self._next_line_number()
        buf = ""
        lines = 0
        while True:
            line = self.source.readline()
            if line is None:
                if buf.strip():
                    return self._result(RecordStatus.BOUNDARY_ERROR, buf.strip(), start, lines,
                                        "Unterminated tag at end of input")
                return ReadResult(RecordStatus.END)
            lines += 1
            buf = buf + "\n" + line if buf else line
            lt = buf.find("<")
            if lt < 0:
                if buf.strip():
                    return self._result(RecordStatus.MALFORMED, buf.strip(), start, lines,
                                        "Text outside any tag")
                buf = ""
                start = self._next_line_number()
                lines = 0
                continue
            if buf[:lt].strip():
                self.source.pushback(buf[lt:] + "\n")
                return self._result(RecordStatus.MALFORMED, buf[:lt].strip(), start, lines,
                                    "Text outside any tag")
            end = self._find_tag_end(buf, lt)
            if end is None:
                continue
            self.source.pushback(buf[end:])
            return ReadResult(RecordStatus.OK, buf[lt:end], line_number=start, physical_lines=lines)

    def _find_tag_end(self, buf: str, lt: int) -> Optional[int]:
        for opener, closer in self.OPAQUE_SPANS.items():
            if buf.startswith(opener, lt):
                end = buf.find(closer, lt + len(opener))
                return None if end < 0 else end + len(closer)
        quote = ""
        for i in range(lt + 1, len(buf)):
            c = buf[i]
            if quote:
                if c == quote:
                    quote = ""
            elif c in "'\"":
                quote = c
            elif c == ">":
                return i + 1
        return None
