"""
Lisp-style S-expressions.

    (SEXP
    (tr (Id "Signer01") (Age 52) (Tags ("a" "b")))
    )
"""

import logging
import re
from typing import Any, Dict, List

from tabular_formats.formats.base import PLAIN_NUMBER_RE, FormatStrategy
from tabular_formats.models import Boundary, BoundaryKind, FormatName
from tabular_formats.schema import FieldDef

logger = logging.getLogger(__name__)

WRAPPER_RE = r"\s*\(SEXP\b\s*"
TOKEN_RE = re.compile(r'\s*(?:(\()|(\))|"((?:[^"\\]|\\.)*)"|([^\s()"]+))', re.DOTALL)


class Atom(str):
    """An unquoted token, as opposed to a string literal."""


def read_sexp(text: str) -> List[Any]:
    """Parse text holding one parenthesized expression into nested lists.

    String literals come back as ``str``, bare tokens as ``Atom``.

    Raises:
        ValueError: If the parentheses do not balance or a token is bad
    """
    stack: List[List[Any]] = [[]]
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = TOKEN_RE.match(text, pos)
        if not m:
            raise ValueError(f"Bad token at offset {pos}: {text[pos:pos + 20]!r}")
        pos = m.end()
        if m.group(1):
            stack.append([])
        elif m.group(2):
            if len(stack) < 2:
                raise ValueError("Unbalanced ')'")
            done = stack.pop()
            stack[-1].append(done)
        elif m.group(3) is not None:
            stack[-1].append(re.sub(r"\\(.)", r"\1", m.group(3)))
        else:
            stack[-1].append(Atom(m.group(4)))
    if len(stack) != 1 or len(stack[0]) != 1 or not isinstance(stack[0][0], list):
        raise ValueError("Expected exactly one parenthesized expression")
    return stack[0][0]


def sexp_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class SexpFormat(FormatStrategy):
    name = FormatName.SEXP

    def boundary(self) -> Boundary:
        return Boundary(BoundaryKind.BRACKET_BALANCED, openers="(", closers=")", quote='"',
                        escape="\\", comment=self.opt("comment"), delimiters=")")

    def start_table(self) -> None:
        self.skip_wrapper(WRAPPER_RE)

    @staticmethod
    def _value(item: Any) -> Any:
        if isinstance(item, list):
            return [str(v) for v in item if not isinstance(v, list)]
        if isinstance(item, Atom) and item == "nil":
            return None
        return str(item)

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        try:
            expr = read_sexp(text)
        except ValueError as e:
            self.field_error(f"Cannot read record: {e}")
            return {}
        if expr and isinstance(expr[0], Atom):
            if expr[0] != self.opt("trTag"):
                logger.debug(f"SEXP: record head '{expr[0]}' is not '{self.opt('trTag')}'")
            expr = expr[1:]
        fields = {}
        for item in expr:
            if not isinstance(item, list) or len(item) != 2 or isinstance(item[0], list):
                self.field_error(f"Expected (name value), got {item!r}")
                continue
            fdef = self.field_for(str(item[0]))
            if fdef is not None:
                fields[fdef.name] = self._value(item[1])
        return self.post_process_fields(fields)

    def assemble_record_from_array(self, values: List[Any]) -> str:
        values = self.check_array(values)
        parts = [f"({fdef.name} {self.assemble_field(fdef, values[i])})"
                 for i, fdef in enumerate(self.schema.field_defs(), 1)]
        self.records_assembled += 1
        return f"({self.opt('trTag')} " + " ".join(parts) + ")\n"

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        if value is None:
            return "nil"
        if isinstance(value, (list, tuple)):
            return "(" + " ".join(sexp_string("" if v is None else str(v)) for v in value) + ")"
        text = self.output_text(fdef, value)
        if PLAIN_NUMBER_RE.match(text):
            return text
        return sexp_string(text)

    def assemble_header(self) -> str:
        return "(SEXP\n"

    def assemble_trailer(self) -> str:
        return ")\n"

    def assemble_comment(self, text: str = "") -> str:
        return f"; {text}\n"
