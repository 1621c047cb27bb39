"""
Delimited text: comma, tab, and similarly separated records.

Quoting, escaping and doubled quotes are all optional and combine freely.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from tabular_formats.formats.base import FormatStrategy
from tabular_formats.models import Boundary, BoundaryKind, FormatName
from tabular_formats.schema import FieldDef
from tabular_formats.tokenizer import split_delimited_record

logger = logging.getLogger(__name__)

DELIMITER_CANDIDATES = [",", "\t", ";", ":", "|", "!", "@", "#", "/"]


def sniff_delimiter(record: str) -> Optional[str]:
    """Guess the field separator of a sample record.

    Quoted spans and escaped characters are ignored; the candidate occurring
    most often wins.
    """
    reduced = re.sub(r'"[^"]*"', "0", record)
    reduced = re.sub(r"\\.", "", reduced)
    best, best_count = None, 0
    for candidate in DELIMITER_CANDIDATES:
        count = reduced.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


class CsvFormat(FormatStrategy):
    name = FormatName.CSV
    has_header = True

    def boundary(self) -> Boundary:
        quote = self.opt("quote")
        if not quote:
            return Boundary(BoundaryKind.LINE)
        return Boundary(
            BoundaryKind.QUOTE_BALANCED,
            quote=quote,
            escape=self.opt("escape"),
            qdouble=self.opt("qdouble"),
            nl_in_quotes=self.opt("nlInQuotes"),
        )

    def split(self, text: str) -> List[str]:
        problems: List[str] = []
        values = split_delimited_record(
            text,
            self.opt("fieldSep"),
            quote=self.opt("quote"),
            escape=self.opt("escape"),
            qdouble=self.opt("qdouble"),
            escape2hex=self.opt("escape2hex"),
            errors=problems,
            qstray=self.opt("qstray"),
        )
        for problem in problems:
            self.field_error(problem)
        return values

    def read_and_parse_header(self) -> Optional[List[str]]:
        if not self.opt("header"):
            return None
        result = self.read_record()
        if not result.has_text:
            return None
        names = [name.strip() for name in self.split(self.prepare_record(result.text))]
        logger.info(f"CSV header: {len(names)} fields")
        return [""] + names

    def parse_record_to_hash(self, text: str) -> Dict[str, Any]:
        values = self.split(self.prepare_record(text))
        nf = self.schema.count()
        if self.schema.is_closed and len(values) > nf:
            self.schema.report(f"Found {len(values)} fields, expected {nf}")
            values = values[:nf]
        fields = {}
        for i, value in enumerate(values, start=1):
            fdef = self.field_for(i)
            if fdef is not None:
                fields[fdef.name] = value
        return self.post_process_fields(fields)

    def assemble_record_from_array(self, values: List[Any]) -> str:
        values = self.check_array(values)
        parts = [self.assemble_field(fdef, values[i]) for i, fdef in enumerate(self.schema.field_defs(), 1)]
        self.records_assembled += 1
        return self.opt("fieldSep").join(parts) + self.opt("recordSep")

    def assemble_field(self, fdef: FieldDef, value: Any) -> str:
        value = self.output_text(fdef, value)
        q = self.opt("quote")
        e = self.opt("escape")
        sep = self.opt("fieldSep")
        rs = self.opt("recordSep")

        if q and q in value and not e and not self.opt("qdouble"):
            logger.warning(f"CSV: quote(s) in field '{fdef.name}' but no escape or qdouble; quotes deleted")
            value = value.replace(q, "")
        if e:
            value = value.replace(e, e + e)
            if q:
                value = value.replace(q, e + q)
            if not self.opt("nlInQuotes"):
                value = re.sub(r"\r\n|\r|\n", lambda m: e + "n", value)
        elif q and self.opt("qdouble"):
            value = value.replace(q, q + q)

        needs_quotes = (q and q in value) or (sep and sep in value) or (rs and rs in value) or "\n" in value
        if needs_quotes:
            if q:
                value = q + value + q
            elif e and sep:
                value = value.replace(sep, e + sep)
            else:
                logger.warning(f"CSV: field '{fdef.name}' contains the separator and cannot be quoted")
        return value

    def assemble_header(self) -> str:
        if not self.opt("header"):
            return ""
        return self.assemble_record_from_array(self.schema.names())

    def assemble_trailer(self) -> str:
        return self.opt("tableSep")
