"""Custom exceptions for gridarchive."""

from __future__ import annotations
from typing import Any, Sequence


class GridArchiveError(Exception):
    """Base class for all errors raised by gridarchive."""


class NotDefinedError(GridArchiveError):
    """Raised when an operation is attempted in the wrong archive state."""

    def __init__(self, reason: str, state: Any = None) -> None:
        self.reason = reason
        self.state = state
        message = reason if state is None else f"{reason} (state: {state})"
        super().__init__(message)


class SchemaError(GridArchiveError):
    """Raised when an archive schema cannot be derived or is inconsistent."""


class UnsupportedDatasetError(GridArchiveError):
    """Raised when a source file is not a grid dataset or contains no grids."""

    def __init__(self, path: Any, reason: str = "not a grid dataset") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class AxisError(GridArchiveError):
    """Raised when a coordinate axis is missing or not one-dimensional."""

    def __init__(self, axis: str, reason: str) -> None:
        self.axis = axis
        self.reason = reason
        super().__init__(f"{axis} axis: {reason}")


class TransformError(GridArchiveError):
    """Raised when coordinates cannot be transformed to geographic."""


class CRSResolutionError(TransformError):
    """Raised when a coordinate system cannot be resolved to a CRS."""


class VariableNotFoundError(GridArchiveError):
    """Raised when a configured grid variable is absent from a source."""

    def __init__(self, name: str, available: Sequence[str] = ()) -> None:
        self.name = name
        self.available = list(available)
        super().__init__(
            f"Grid variable '{name}' not found. Valid names are {self.available}"
        )


class ArchiveIOError(GridArchiveError, OSError):
    """Raised when the underlying storage fails to read, write or close."""
