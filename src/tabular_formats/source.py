"""
Physical-line source with pushback.

Records are read a physical line at a time. Readers that consume only part of a
line push the remainder back, and it is returned first by the next ``readline``.
"""

import io
import logging
from pathlib import Path
from typing import IO, Optional, Union

logger = logging.getLogger(__name__)


class DataSource:
    """A file, file object, or string that can be read one line at a time."""

    def __init__(self, strip_records: bool = False):
        self.path: Optional[str] = None
        self.encoding = "utf-8"
        self.strip_records = strip_records
        self.line_number = 0
        self._fh: Optional[IO[str]] = None
        self._owns_fh = False
        self._buffer = ""

    @property
    def is_open(self) -> bool:
        return self._fh is not None or bool(self._buffer)

    def open(self, path: Union[str, Path], encoding: Optional[str] = None) -> None:
        """Open a file for reading, closing whatever was open before.

        Raises:
            OSError: If the file cannot be opened
        """
        self.close()
        self.encoding = encoding or self.encoding
        self._fh = open(path, encoding=self.encoding, errors="replace")
        self._owns_fh = True
        self.path = str(path)
        logger.debug(f"Opened {self.path} ({self.encoding})")

    def attach(self, fh: IO[str]) -> None:
        """Read from an already-open text stream (which the caller keeps ownership of)."""
        self.close()
        self._fh = fh
        self._owns_fh = False
        self.path = getattr(fh, "name", None)

    def add_text(self, text: str) -> None:
        """Append literal text to be read, after anything not yet consumed.

        Pushed-back text and the unread rest of the current stream are moved
        into memory ahead of ``text``; offsets from ``tell`` restart there.
        """
        rest = self._buffer
        if self._fh is not None:
            rest += self._fh.read()
            if self._owns_fh:
                self._fh.close()
        self._fh = io.StringIO(rest + text)
        self._owns_fh = True
        self._buffer = ""

    def close(self) -> None:
        if self._fh is not None and self._owns_fh:
            self._fh.close()
        self._fh = None
        self._owns_fh = False
        self._buffer = ""
        self.line_number = 0

    def seek(self, offset: int) -> None:
        """Move to an offset previously returned by ``tell``; discards pushback."""
        self._buffer = ""
        if self._fh is not None:
            self._fh.seek(offset)

    def tell(self) -> int:
        """Offset of the underlying stream. Pushed-back text is not accounted for."""
        if self._fh is None:
            return 0
        return self._fh.tell()

    def rewind(self) -> None:
        self.seek(0)
        self.line_number = 0

    def pushback(self, text: str) -> None:
        """Return text to the front of the input."""
        if not text:
            return
        self._buffer = text + self._buffer
        self.line_number -= text.count("\n")

    def readline(self) -> Optional[str]:
        """Read one physical line without its terminator.

        Returns:
            The line, or None at end of input
        """
        line = None
        if self._buffer:
            nl = self._buffer.find("\n")
            if nl >= 0:
                line, self._buffer = self._buffer[:nl + 1], self._buffer[nl + 1:]
            else:
                line, self._buffer = self._buffer, ""
        elif self._fh is not None:
            line = self._fh.readline()
            if line == "":
                return None
        if line is None:
            return None

        if line.endswith("\n"):
            self.line_number += 1
            line = line[:-1]
            if line.endswith("\r"):
                line = line[:-1]
        if self.strip_records:
            line = line.strip()
        return line

    def __enter__(self) -> "DataSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DataSource({self.path or '<text>'}, line {self.line_number})"
