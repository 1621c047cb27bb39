"""
Exception types for the tabular formats engine.

Most of these are *reported* rather than raised: the component that detects the
problem logs it and appends an instance to its ``errors`` list, then carries on.
Only caller errors and fatal table conditions are raised.
"""

from typing import Optional


class TabularFormatError(Exception):
    """Base class for all tabular format errors."""

    def __init__(self, message: str, line_number: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line_number = line_number

    def __str__(self) -> str:
        if self.line_number:
            return f"{self.message} (line {self.line_number})"
        return self.message


class BoundaryError(TabularFormatError):
    """Unterminated quote, bracket or markup at end of input (fatal for the table)."""
    pass


class FieldError(TabularFormatError):
    """A single malformed field; the field value is degraded, parsing continues."""
    pass


class SchemaError(TabularFormatError):
    """Unknown or duplicate field, or a field count that disagrees with the schema."""
    pass


class OptionError(TabularFormatError):
    """Unknown option name, or a value failing the option's type."""
    pass


class DatatypeError(TabularFormatError):
    """A value that does not match its declared datatype."""
    pass


class EngineStateError(TabularFormatError, RuntimeError):
    """Operation not allowed in the engine's current state (e.g. reading after close)."""
    pass


class FileProcessingError(TabularFormatError):
    """Raised when a file fails to convert and ignoreBrokenFiles is off."""
    pass
