"""
Field definitions and the per-table schema.

A schema is an ordered mapping of field name to ``FieldDef`` plus the reverse
ordinal mapping. Ordinals are 1-based: slot 0 is reserved and always empty, so
array records line up with field numbers.

The schema has two modes:

- OPEN: unknown field names and out-of-range ordinals create fields on demand
  (used while no header has been seen)
- CLOSED: unknown references are schema errors; nothing is created implicitly
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from tabular_formats.errors import SchemaError

logger = logging.getLogger(__name__)

FieldKey = Union[str, int]


class Alignment(str, Enum):
    """Output alignment for fixed-width columns."""
    NONE = ""
    LEFT = "L"
    CENTER = "C"
    RIGHT = "R"
    DECIMAL = "D"  # Line up on the decimal point
    AUTO = "A"  # Right for numbers, left for anything else


class SchemaMode(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(eq=False)
class FieldDef:
    """One declared column."""
    name: str
    position: int = 0
    datatype: str = ""
    default: Optional[Any] = None
    start: int = 0  # Starting column (0-based), for column-oriented syntaxes
    width: int = 0  # 0 means "to end of line"
    align: Alignment = Alignment.NONE
    truncate: bool = False
    splitter: Optional[str] = None  # Regex splitting one value into a list
    joiner: str = " "
    nil_out: str = ""  # Written for missing values
    ersatz: bool = False  # Created as error recovery rather than declared
    callback: Optional[Callable[[Any], Any]] = None

    def split_value(self, value: Any) -> Any:
        """Split a string into a list when a splitter is set."""
        if not self.splitter or not isinstance(value, str):
            return value
        return [part for part in re.split(self.splitter, value) if part != ""]

    def join_value(self, value: Any) -> str:
        if value is None:
            return self.nil_out
        if isinstance(value, (list, tuple)):
            return self.joiner.join(str(v) for v in value)
        return str(value)

    def align_value(self, value: Any) -> str:
        """Pad (or truncate) a value to this field's width.

        Args:
            value: The value; None writes ``nil_out``

        Returns:
            The aligned string. Values wider than ``width`` are only cut
            when ``truncate`` is set.
        """
        s = self.join_value(value)
        if self.width <= 0:
            return s
        needed = self.width - len(s)
        if needed == 0:
            return s
        if needed < 0:
            return s[:self.width] if self.truncate else s

        align = self.align
        if align == Alignment.AUTO:
            align = Alignment.RIGHT if re.match(r"^\s*[-+]?\d+(\.\d+)?\s*$", s) else Alignment.LEFT

        if align == Alignment.LEFT:
            return s + " " * needed
        if align == Alignment.RIGHT:
            return " " * needed + s
        if align == Alignment.CENTER:
            left = needed // 2
            return " " * left + s + " " * (needed - left)
        if align == Alignment.DECIMAL:
            point = s.find(".")
            if point < 0:
                point = len(s)
            lead = max(0, min(needed, self.width // 2 - point))
            return " " * lead + s + " " * (needed - lead)
        return s


class TableSchema:
    """Ordered, named set of fields for one table."""

    def __init__(self, closed: bool = False):
        self._by_name: Dict[str, FieldDef] = {}
        self._by_number: List[Optional[FieldDef]] = [None]
        self.mode = SchemaMode.CLOSED if closed else SchemaMode.OPEN
        self.errors: List[SchemaError] = []

    def report(self, message: str) -> None:
        logger.warning(f"Schema: {message}")
        self.errors.append(SchemaError(message))

    def _renumber(self) -> None:
        for i, fdef in enumerate(self._by_number):
            if fdef is not None:
                fdef.position = i

    # Mode

    @property
    def is_closed(self) -> bool:
        return self.mode == SchemaMode.CLOSED

    def close(self) -> None:
        self.mode = SchemaMode.CLOSED

    def open(self) -> None:
        self.mode = SchemaMode.OPEN

    def reset(self) -> None:
        """Forget every field and reopen the schema."""
        self._by_name.clear()
        self._by_number = [None]
        self.errors.clear()
        self.mode = SchemaMode.OPEN

    # Size and iteration

    def count(self) -> int:
        return len(self._by_number) - 1

    def __len__(self) -> int:
        return self.count()

    def __iter__(self) -> Iterator[FieldDef]:
        return iter(self.field_defs())

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def field_defs(self) -> List[FieldDef]:
        return [fdef for fdef in self._by_number[1:] if fdef is not None]

    def names(self) -> List[str]:
        """Field names in ordinal order, with the unused slot 0 as ``""``."""
        return [""] + [fdef.name for fdef in self._by_number[1:]]

    # Adding fields

    def append(self, name: str, datatype: Optional[str] = None, default: Optional[Any] = None,
               ersatz: bool = False) -> FieldDef:
        """Add a field at the end.

        Appending a name that already exists returns the existing FieldDef
        unchanged and reports a schema error.
        """
        if not name:
            name = f"F_{self.count() + 1}"
        existing = self._by_name.get(name)
        if existing is not None:
            self.report(f"Field '{name}' is already defined (#{existing.position})")
            return existing
        fdef = FieldDef(name=name, position=self.count() + 1, datatype=datatype or "",
                        default=default, ersatz=ersatz)
        self._by_number.append(fdef)
        self._by_name[name] = fdef
        logger.debug(f"Schema: added field '{name}' as #{fdef.position}")
        return fdef

    def insert(self, name: str, position: int, datatype: Optional[str] = None,
               default: Optional[Any] = None) -> Optional[FieldDef]:
        """Add a field at ``position`` (1..count+1), shifting later fields up."""
        existing = self._by_name.get(name)
        if existing is not None:
            self.report(f"Field '{name}' is already defined (#{existing.position})")
            return existing
        if position < 1 or position > self.count() + 1:
            self.report(f"Cannot insert '{name}' at position {position} (have {self.count()} fields)")
            return None
        fdef = FieldDef(name=name, datatype=datatype or "", default=default)
        self._by_number.insert(position, fdef)
        self._by_name[name] = fdef
        self._renumber()
        return fdef

    # Lookup

    def lookup(self, key: FieldKey) -> Optional[FieldDef]:
        """Find a field by name or ordinal without creating or reporting anything."""
        if isinstance(key, int):
            if 1 <= key <= self.count():
                return self._by_number[key]
            return None
        return self._by_name.get(key)

    def get(self, key: FieldKey) -> Optional[FieldDef]:
        """Find a field by name or ordinal.

        In OPEN mode an unknown name is appended, and an ordinal past the end
        creates ``F_n`` placeholder fields up to it. In CLOSED mode an unknown
        reference is reported and None returned.
        """
        fdef = self.lookup(key)
        if fdef is not None:
            return fdef
        if isinstance(key, int):
            if key < 1:
                self.report(f"Bad field number {key}")
                return None
            if self.is_closed:
                self.report(f"Field #{key} is beyond the {self.count()} declared fields")
                return None
            while self.count() < key:
                self.append(f"F_{self.count() + 1}", ersatz=True)
            return self._by_number[key]
        if self.is_closed:
            self.report(f"Unknown field '{key}'")
            return None
        return self.append(key)

    def position_of(self, name: str) -> Optional[int]:
        fdef = self._by_name.get(name)
        return fdef.position if fdef else None

    def get_name(self, number: int) -> Optional[str]:
        fdef = self.lookup(number)
        return fdef.name if fdef else None

    # Changing fields

    def rename(self, old: FieldKey, new: str) -> bool:
        fdef = self.lookup(old)
        if fdef is None:
            self.report(f"Cannot rename unknown field '{old}'")
            return False
        if fdef.name == new:
            return True
        if not new or new in self._by_name:
            self.report(f"Cannot rename '{fdef.name}' to '{new}': name is empty or in use")
            return False
        del self._by_name[fdef.name]
        fdef.name = new
        self._by_name[new] = fdef
        return True

    def set_names(self, names: List[str]) -> int:
        """Name fields from an array whose slot 0 is ignored.

        Existing fields are renamed in place; extra names are appended.

        Returns:
            The resulting field count
        """
        for i, name in enumerate(names[1:], start=1):
            if not name:
                name = f"F_{i}"
            if i <= self.count():
                self.rename(i, name)
            else:
                self.append(name)
        return self.count()

    def set_field_number(self, key: FieldKey, new_number: int) -> Optional[int]:
        """Move a field to a new ordinal position."""
        fdef = self.lookup(key)
        if fdef is None or new_number < 1 or new_number > self.count():
            self.report(f"Cannot move field '{key}' to #{new_number}")
            return None
        self._by_number.pop(fdef.position)
        self._by_number.insert(new_number, fdef)
        self._renumber()
        return new_number

    def set_datatype(self, key: FieldKey, datatype: str) -> Optional[FieldDef]:
        fdef = self.get(key)
        if fdef is not None:
            fdef.datatype = datatype
        return fdef

    def set_default(self, key: FieldKey, value: Any) -> Optional[FieldDef]:
        fdef = self.get(key)
        if fdef is not None:
            fdef.default = value
        return fdef

    def set_splitter(self, key: FieldKey, splitter: str, joiner: str = " ") -> Optional[FieldDef]:
        fdef = self.get(key)
        if fdef is None:
            return None
        try:
            re.compile(splitter)
        except re.error as e:
            self.report(f"Bad splitter /{splitter}/ for field '{fdef.name}': {e}")
            return None
        fdef.splitter = splitter
        fdef.joiner = joiner
        return fdef

    def set_callback(self, key: FieldKey, callback: Callable[[Any], Any]) -> Optional[FieldDef]:
        fdef = self.get(key)
        if fdef is not None:
            fdef.callback = callback
        return fdef

    # Column positions

    def set_field_position(self, key: FieldKey, start: int, width: int = 0,
                           align: Optional[Union[Alignment, str]] = None) -> bool:
        """Place a field at a starting column.

        Returns:
            False if the field is unknown, the alignment is bad, or the span
            overlaps another positioned field
        """
        fdef = self.get(key)
        if fdef is None:
            return False
        if align is not None:
            try:
                align = Alignment(str(align)[:1].upper())
            except ValueError:
                self.report(f"Bad alignment '{align}' for field '{fdef.name}'")
                return False
        if width > 0:
            for other in self.field_defs():
                if other is fdef or other.width <= 0:
                    continue
                if other.start < start + width and other.start + other.width > start:
                    self.report(f"Field '{fdef.name}' at {start}+{width} overlaps '{other.name}'")
                    return False
        fdef.start = start
        fdef.width = width
        if align is not None:
            fdef.align = align
        return True

    def set_field_positions(self, starts: List[int], widths: Optional[List[int]] = None) -> None:
        """Set every field's start column from an array (slot 0 ignored).

        Without explicit widths, each field runs up to the next start; the
        last one runs to the end of the line.
        """
        n = len(starts) - 1
        for i in range(n, 0, -1):
            if widths is not None and i < len(widths):
                width = widths[i]
            elif i < n:
                width = starts[i + 1] - starts[i]
                if width <= 0:
                    self.report(f"Column starts out of order at field #{i}")
                    width = 1
            else:
                width = 0
            fdef = self.get(i)
            if fdef is not None:
                fdef.start = starts[i]
                fdef.width = width

    def set_field_numbers_by_position(self) -> None:
        """Renumber fields so ordinals follow their start columns."""
        ordered = sorted(self.field_defs(), key=lambda f: f.start)
        self._by_number = [None] + ordered
        self._renumber()

    def __repr__(self) -> str:
        fields = ", ".join(f"{f.position}:{f.name}" for f in self.field_defs())
        return f"TableSchema({self.mode.value}; {fields})"
