"""Reading new time steps from a source for appending to an archive."""

from __future__ import annotations
from dataclasses import dataclass, field
import logging
from typing import Any, Iterator, Sequence

import netCDF4
import numpy as np
import pandas as pd

from .exceptions import AxisError, SchemaError
from .schema import ArchiveSchema
from .source import GridSource, TimeAxis

logger = logging.getLogger(__name__)


@dataclass
class ResolvedGrid:
    name: str
    time_axis: TimeAxis
    time_position: int


@dataclass
class TimeStep:
    """All configured variables of a source at one time index."""

    index: int
    time: pd.Timestamp
    slices: list[tuple[str, np.ndarray]]


@dataclass
class AppendRecord:
    source: Any
    source_index: int
    offset: int
    time: pd.Timestamp
    variables: list[str]


@dataclass
class AppendResult:
    """Bookkeeping of one append call."""

    records: list[AppendRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def n_timesteps(self) -> int:
        return len(self.records)

    @property
    def time(self) -> pd.DatetimeIndex:
        return pd.DatetimeIndex([r.time for r in self.records])

    @property
    def offsets(self) -> list[int]:
        return [r.offset for r in self.records]


def encode_time(time: pd.Timestamp, attrs: dict[str, Any]) -> Any:
    """Encode a timestamp with the units and calendar of a time variable."""
    units = attrs.get("units")
    if not isinstance(units, str) or " since " not in units:
        raise SchemaError(f"time variable has no CF time units: {units!r}")
    calendar = attrs.get("calendar", "standard")
    return netCDF4.date2num(time.to_pydatetime(), units, calendar=calendar)


class SliceAppender:
    """Iterate the time steps of the configured grid variables of a source.

    All variables are resolved before the first slice is read, and are read
    one time index at a time so that a single cursor keeps them aligned.

    Parameters
    ----------
    schema : ArchiveSchema
        schema of the archive receiving the slices
    grid_variables : sequence of str
        names of the grid variables to append
    """

    def __init__(self, schema: ArchiveSchema, grid_variables: Sequence[str]) -> None:
        if not grid_variables:
            raise ValueError("No grid variables configured for appending")
        self.schema = schema
        self.grid_variables = list(grid_variables)

    def resolve(self, source: GridSource) -> list[ResolvedGrid]:
        schema = self.schema
        unlimited = schema.unlimited_dimension
        if unlimited is None:
            raise SchemaError("Archive has no unlimited dimension, append is unsupported")

        resolved = []
        for name in self.grid_variables:
            grid = source.find_grid(name)
            taxis = source.time_axis(name)
            if name not in schema:
                raise SchemaError(f"Grid variable '{name}' is not part of the archive")
            archive_dims = schema[name].dims
            if unlimited not in archive_dims:
                raise SchemaError(
                    f"Archive variable '{name}' does not span '{unlimited}'"
                )
            if taxis.dimension not in grid.dims:
                raise AxisError("T", f"'{taxis.name}' is not a dimension of '{name}'")

            source_shape = [
                source.dimensions[d] for d in grid.dims if d != taxis.dimension
            ]
            archive_shape = [
                n
                for d, n in zip(archive_dims, schema.shape(name))
                if d != unlimited
            ]
            if source_shape != archive_shape:
                raise SchemaError(
                    f"'{name}' has shape {source_shape} in {source.path}, "
                    f"the archive expects {archive_shape}"
                )
            resolved.append(
                ResolvedGrid(
                    name=name,
                    time_axis=taxis,
                    time_position=archive_dims.index(unlimited),
                )
            )

        lengths = {r.name: len(r.time_axis) for r in resolved}
        if len(set(lengths.values())) > 1:
            raise SchemaError(
                f"Grid variables have different number of time steps: {lengths}"
            )
        logger.debug("Resolved %s in %s", list(lengths), source.path)
        return resolved

    def iter_timesteps(
        self, source: GridSource, resolved: list[ResolvedGrid] | None = None
    ) -> Iterator[TimeStep]:
        """Yield one TimeStep per source time index, in increasing order.

        Each slice is expanded with a length-one axis at the position of the
        unlimited dimension, ready to be written at the archive cursor.
        """
        if resolved is None:
            resolved = self.resolve(source)
        if not resolved:
            return
        n_timesteps = len(resolved[0].time_axis)
        for i in range(n_timesteps):
            slices = []
            time = resolved[0].time_axis.time[i]
            for grid in resolved:
                gs = source.read_slice(grid.name, i)
                slices.append((grid.name, np.expand_dims(gs.data, grid.time_position)))
            yield TimeStep(index=i, time=time, slices=slices)
