# PEP0440 compatible formatted version, see:
# https://www.python.org/dev/peps/pep-0440/
#
# Generic release markers:
#   X.Y
#   X.Y.Z   # For bugfix releases
#
# Admissible pre-release markers:
#   X.YaN   # Alpha release
#   X.YbN   # Beta release
#   X.YrcN  # Release Candidate
#   X.Y     # Final release
#
# Dev branch marker is: 'X.Y.dev' or 'X.Y.devN' where N is an integer.
# 'X.Y.dev0' is the canonical version of 'X.Y.dev'
#

from __future__ import annotations

__version__ = "0.3.0"

from pathlib import Path

from .append import AppendRecord, AppendResult, SliceAppender
from .archive import ArchiveState, ArchiveWriter
from .config import ArchiveConfig, ExclusionRules
from .exceptions import (
    ArchiveIOError,
    AxisError,
    CRSResolutionError,
    GridArchiveError,
    NotDefinedError,
    SchemaError,
    TransformError,
    UnsupportedDatasetError,
    VariableNotFoundError,
)
from .geodesy import CRSConversionWarning, GeodesyService
from .projection import CoordinateProjector
from .schema import ArchiveSchema, Dimension, SchemaBuilder, Variable
from .source import CoordinateAxis, GridSlice, GridSource, NetCDFGridSource, open_source
from .store import NetCDFStore


def create(
    filename: str | Path, config: ArchiveConfig | None = None, **kwargs
) -> ArchiveWriter:
    """Create a new archive file, ready to be defined from a prototype.

    Parameters
    ----------
    filename
        full path and file name of the archive
    config: ArchiveConfig, optional
        archive settings, alternatively given as keyword arguments

    Examples
    --------
    >>> archive = gridarchive.create("archive.nc", grid_variables=["temp"])  # doctest: +SKIP
    >>> archive.define("forecast_00.nc")  # doctest: +SKIP
    """
    if config is None:
        config = ArchiveConfig.from_dict(kwargs)
    elif kwargs:
        raise TypeError("Give either a config or keyword arguments, not both")
    return ArchiveWriter.create(filename, config)


def open(
    filename: str | Path, config: ArchiveConfig | None = None, **kwargs
) -> ArchiveWriter:
    """Open an existing archive to append more time steps.

    Examples
    --------
    >>> archive = gridarchive.open("archive.nc", grid_variables=["temp"])  # doctest: +SKIP
    >>> archive.add_file("forecast_18.nc")  # doctest: +SKIP
    >>> archive.close()  # doctest: +SKIP
    """
    if config is None:
        config = ArchiveConfig.from_dict(kwargs)
    elif kwargs:
        raise TypeError("Give either a config or keyword arguments, not both")
    return ArchiveWriter.open(filename, config)


__all__ = [
    "AppendRecord",
    "AppendResult",
    "ArchiveConfig",
    "ArchiveIOError",
    "ArchiveSchema",
    "ArchiveState",
    "ArchiveWriter",
    "AxisError",
    "CRSConversionWarning",
    "CRSResolutionError",
    "CoordinateAxis",
    "CoordinateProjector",
    "Dimension",
    "ExclusionRules",
    "GeodesyService",
    "GridArchiveError",
    "GridSlice",
    "GridSource",
    "NetCDFGridSource",
    "NetCDFStore",
    "NotDefinedError",
    "SchemaBuilder",
    "SchemaError",
    "SliceAppender",
    "TransformError",
    "UnsupportedDatasetError",
    "Variable",
    "VariableNotFoundError",
    "create",
    "open",
    "open_source",
]
