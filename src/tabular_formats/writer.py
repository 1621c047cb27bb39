"""
Table output with resource management.
"""

import logging
from pathlib import Path
from typing import IO, Any, Dict, List, Optional, Union

from tabular_formats.engine import TabularEngine

logger = logging.getLogger(__name__)


class TableWriter:
    """Writes one table to a file through an engine's strategy.

    The file is opened and the header written just before the first record;
    the trailer is written on close (a table with no records still gets its
    header and trailer).

    Args:
        path: Output file
        engine: Engine configured for the output syntax
        flush_every: Flush to disk every N records (0 = flush on close only,
            None = flush every record)
    """

    def __init__(self, path: Union[str, Path], engine: TabularEngine, flush_every: Optional[int] = 1000):
        self.path = Path(path)
        self.engine = engine
        self.flush_every = flush_every
        self.records_written = 0
        self._fp: Optional[IO[str]] = None
        self._closed = False

    def __enter__(self) -> "TableWriter":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _open(self) -> IO[str]:
        if self._fp is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fp = self.path.open("w", newline="", encoding=self.engine.get_option("encoding"))
            try:
                fp.write(self.engine.assemble_header())
            except Exception:
                fp.close()
                raise
            self._fp = fp
        return self._fp

    def _write(self, text: str) -> None:
        if self._closed:
            raise RuntimeError("TableWriter is closed")
        self._open().write(text)

    def write_record(self, record: Union[Dict[str, Any], List[Any]]) -> None:
        """Write a record given as a name-to-value map or a slot-0 array."""
        if isinstance(record, dict):
            text = self.engine.assemble_record_from_hash(record)
        else:
            text = self.engine.assemble_record_from_array(record)
        self._write(text)
        self.records_written += 1
        should_flush = (
            self.flush_every is None or
            (self.flush_every > 0 and self.records_written % self.flush_every == 0)
        )
        if should_flush:
            self._fp.flush()

    def write_comment(self, text: str) -> None:
        comment = self.engine.assemble_comment(text)
        if comment:
            self._write(comment)

    def close(self) -> None:
        if self._closed:
            return
        try:
            fp = self._open()
            fp.write(self.engine.assemble_trailer())
            fp.flush()
        finally:
            if self._fp is not None:
                self._fp.close()
            self._closed = True
        logger.debug(f"Wrote {self.records_written} records to {self.path}")

    @property
    def closed(self) -> bool:
        return self._closed
