"""
Event view of any table.

Whatever the syntax, a table comes out as the same event sequence, shaped like
an HTML table::

    Init
    Start(table)
      Start(tr)
        Start(td, class=<field name>) Text(<value>) End(td)   one per field
      End(tr)                                                 one per record
    End(table)
    Fin

``EventNormalizer`` pushes the events to handler callbacks; ``PullParser``
hands them out one at a time and only reads from the source when it needs the
next record.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from lxml import etree

from tabular_formats.engine import TabularEngine
from tabular_formats.errors import BoundaryError, TabularFormatError

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    INIT = "Init"
    START = "Start"
    END = "End"
    TEXT = "Text"
    FIN = "Fin"


@dataclass
class Event:
    type: EventType
    tag: Optional[str] = None
    attrs: Dict[str, str] = field(default_factory=dict)
    text: Optional[str] = None

    def __repr__(self) -> str:
        if self.type == EventType.START:
            return f"Start({self.tag}, {self.attrs})" if self.attrs else f"Start({self.tag})"
        if self.type == EventType.END:
            return f"End({self.tag})"
        if self.type == EventType.TEXT:
            return f"Text({self.text!r})"
        return self.type.value


def record_events(engine: TabularEngine, values: List[Any]) -> Iterator[Event]:
    """Events for one record (``values`` in field order, slot 0 unused)."""
    tr, td = engine.get_option("trTag"), engine.get_option("tdTag")
    class_attr = engine.get_option("classAttr")
    yield Event(EventType.START, tr)
    for i, fdef in enumerate(engine.schema.field_defs(), start=1):
        value = values[i] if i < len(values) else None
        attrs = {class_attr: fdef.name} if class_attr else {}
        yield Event(EventType.START, td, attrs)
        yield Event(EventType.TEXT, text=fdef.join_value(value) if value is not None else "")
        yield Event(EventType.END, td)
    yield Event(EventType.END, tr)


def table_events(engine: TabularEngine) -> Iterator[Event]:
    """Events for the whole table, reading records lazily.

    Raises:
        BoundaryError: On an unterminated construct at the end of input
    """
    table = engine.get_option("tableTag")
    yield Event(EventType.INIT)
    yield Event(EventType.START, table)
    while True:
        record = engine.next_record()
        if record.at_end:
            break
        if record.is_fatal:
            raise BoundaryError(record.messages[0], engine.source.line_number)
        yield from record_events(engine, record.values)
    yield Event(EventType.END, table)
    yield Event(EventType.FIN)


class EventNormalizer:
    """Pushes table events to handler callbacks.

    Handlers, by event name:

    - ``Init()`` and ``Fin()``
    - ``Start(tag, attrs)`` and ``End(tag)``
    - ``Text(text)``
    - ``Default(event)``: any event without its own handler
    """

    HANDLER_NAMES = ("Init", "Fin", "Start", "End", "Text", "Default")

    def __init__(self, engine: TabularEngine):
        self.engine = engine
        self.handlers: Dict[str, Callable[..., Any]] = {}

    def set_handlers(self, handlers: Dict[str, Callable[..., Any]]) -> List[str]:
        """Install handlers.

        Returns:
            Names that are not known handler names (these are ignored)
        """
        unknown = []
        for name, handler in handlers.items():
            if name not in self.HANDLER_NAMES:
                logger.warning(f"Events: unknown handler name '{name}' ignored")
                unknown.append(name)
                continue
            self.handlers[name] = handler
        return unknown

    def dispatch(self, event: Event) -> None:
        handler = self.handlers.get(event.type.value)
        if handler is None:
            default = self.handlers.get("Default")
            if default is not None:
                default(event)
            return
        if event.type == EventType.START:
            handler(event.tag, event.attrs)
        elif event.type == EventType.END:
            handler(event.tag)
        elif event.type == EventType.TEXT:
            handler(event.text)
        else:
            handler()

    def parse(self) -> Tuple[bool, Optional[str]]:
        """Push every event of the engine's current input.

        Returns:
            Tuple of (success, error_message)
        """
        count = 0
        try:
            for event in table_events(self.engine):
                self.dispatch(event)
                count += 1
        except TabularFormatError as e:
            logger.error(f"Events: stopped after {count} events: {e}")
            return (False, str(e))
        logger.debug(f"Events: {count} events pushed")
        return (True, None)

    def parse_file(self, path: Union[str, Path]) -> Tuple[bool, Optional[str]]:
        try:
            self.engine.open(path)
        except OSError as e:
            logger.error(f"Events: cannot open {path}: {e}")
            return (False, f"Cannot open {path}: {e}")
        return self.parse()

    def parse_string(self, text: str) -> Tuple[bool, Optional[str]]:
        self.engine.add_text(text)
        return self.parse()


class PullParser:
    """Hands out table events one at a time.

    Records are read from the source only when their first event is pulled,
    so a caller that stops pulling stops reading.
    """

    def __init__(self, engine: TabularEngine):
        self.engine = engine
        self._events: Optional[Iterator[Event]] = None
        self.done = False

    def pull_more(self) -> Optional[Event]:
        """Next event, or None once ``Fin`` has been handed out.

        Raises:
            BoundaryError: On an unterminated construct at the end of input
        """
        if self.done:
            return None
        if self._events is None:
            self._events = table_events(self.engine)
        event = next(self._events, None)
        if event is None:
            self.done = True
        return event

    def pull_done(self) -> None:
        """Stop; later calls to ``pull_more`` return None."""
        if self._events is not None:
            self._events.close()
        self.done = True

    def __iter__(self) -> Iterator[Event]:
        while True:
            event = self.pull_more()
            if event is None:
                return
            yield event


def to_dom(engine: TabularEngine) -> etree._Element:
    """Read the whole table into an lxml tree rooted at the ``htmlTag`` element."""
    root = etree.Element(engine.get_option("htmlTag"))
    stack = [root]
    for event in PullParser(engine):
        if event.type == EventType.START:
            stack.append(etree.SubElement(stack[-1], event.tag, event.attrs))
        elif event.type == EventType.END:
            stack.pop()
        elif event.type == EventType.TEXT:
            stack[-1].text = event.text
    return root
