"""Grid sources: read access to the files feeding an archive."""

from __future__ import annotations
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any, Mapping

import numpy as np
import pandas as pd
import xarray as xr

from .exceptions import AxisError, UnsupportedDatasetError, VariableNotFoundError

logger = logging.getLogger(__name__)

X_NAMES = ("x", "lon", "longitude", "rlon", "xc")
Y_NAMES = ("y", "lat", "latitude", "rlat", "yc")
X_STANDARD_NAMES = ("projection_x_coordinate", "grid_longitude", "longitude")
Y_STANDARD_NAMES = ("projection_y_coordinate", "grid_latitude", "latitude")
LON_UNITS = ("degrees_east", "degree_east", "degree_E", "degrees_E", "degreeE")
LAT_UNITS = ("degrees_north", "degree_north", "degree_N", "degrees_N", "degreeN")

GEOGRAPHIC = "EPSG:4326"


@dataclass
class SourceVariable:
    name: str
    dtype: np.dtype
    dims: tuple[str, ...]
    attrs: dict[str, Any] = field(default_factory=dict)

    @property
    def ndim(self) -> int:
        return len(self.dims)


@dataclass
class CoordinateAxis:
    """1D spatial coordinate axis.

    Parameters
    ----------
    name : str
        name of the coordinate variable
    kind : str
        "X" or "Y"
    values : np.ndarray
        coordinate values, float64
    units : str, optional
        units of the values
    dimension : str, optional
        name of the dimension spanned by the axis, by default the axis name
    """

    name: str
    kind: str
    values: np.ndarray
    units: str | None = None
    dimension: str | None = None

    def __post_init__(self) -> None:
        values = np.asarray(self.values, dtype=np.float64)
        if values.ndim != 1:
            raise AxisError(
                self.kind, f"'{self.name}' must be one-dimensional, got {values.ndim}"
            )
        self.values = values
        if self.dimension is None:
            self.dimension = self.name

    def __len__(self) -> int:
        return len(self.values)

    @property
    def is_geographic(self) -> bool:
        units = LON_UNITS if self.kind == "X" else LAT_UNITS
        return self.units in units


@dataclass
class TimeAxis:
    name: str
    dimension: str
    time: pd.DatetimeIndex

    def __len__(self) -> int:
        return len(self.time)


@dataclass
class GridSlice:
    """Data of one variable at a single time step."""

    index: int
    time: pd.Timestamp
    data: np.ndarray


def _is_time(name: str, attrs: Mapping[str, Any]) -> bool:
    if str(attrs.get("axis", "")).upper() == "T":
        return True
    if attrs.get("standard_name") == "time":
        return True
    units = attrs.get("units")
    return isinstance(units, str) and " since " in units


class GridSource:
    """Read access to a gridded source file.

    Subclasses expose the dimensions, variables and attributes of the source
    together with the coordinate axes needed to build and fill an archive.
    """

    path: Any = None

    def __enter__(self) -> "GridSource":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        raise NotImplementedError("Should be implemented by subclass")

    @property
    def dimensions(self) -> dict[str, int]:
        raise NotImplementedError("Should be implemented by subclass")

    @property
    def unlimited_dimensions(self) -> set[str]:
        return set()

    @property
    def variables(self) -> list[SourceVariable]:
        raise NotImplementedError("Should be implemented by subclass")

    @property
    def global_attributes(self) -> dict[str, Any]:
        raise NotImplementedError("Should be implemented by subclass")

    @property
    def grids(self) -> list[str]:
        raise NotImplementedError("Should be implemented by subclass")

    @property
    def primary_grid(self) -> str:
        """Name of the first grid in the source."""
        grids = self.grids
        if not grids:
            raise UnsupportedDatasetError(self.path, "contains no grids")
        return grids[0]

    @property
    def coordinate_system(self) -> Any:
        raise NotImplementedError("Should be implemented by subclass")

    @property
    def x_axis(self) -> CoordinateAxis:
        raise NotImplementedError("Should be implemented by subclass")

    @property
    def y_axis(self) -> CoordinateAxis:
        raise NotImplementedError("Should be implemented by subclass")

    def find_grid(self, name: str) -> SourceVariable:
        raise NotImplementedError("Should be implemented by subclass")

    def time_axis(self, name: str) -> TimeAxis:
        raise NotImplementedError("Should be implemented by subclass")

    def read_slice(self, name: str, index: int) -> GridSlice:
        raise NotImplementedError("Should be implemented by subclass")


class NetCDFGridSource(GridSource):
    """Grid source backed by a CF NetCDF file opened with xarray.

    Values are read without CF decoding so that dtypes and attributes reach
    the archive exactly as they are stored in the source. Only the time
    coordinate is decoded, to obtain calendar timestamps.

    Examples
    --------
    >>> with NetCDFGridSource.open("gfs_2021010100.nc") as src:  # doctest: +SKIP
    ...     src.grids
    ['Temperature_height_above_ground']
    """

    def __init__(self, ds: xr.Dataset, path: Any = None) -> None:
        self._ds = ds
        self.path = path
        self._time_axes: dict[str, TimeAxis] = {}

    def __repr__(self) -> str:
        out = [f"<gridarchive.{self.__class__.__name__}>"]
        out.append(f"path: {self.path}")
        out.append(f"dimensions: {self.dimensions}")
        out.append(f"grids: {self.grids}")
        return "\n".join(out)

    @classmethod
    def open(cls, path: str | Path, **kwargs: Any) -> "NetCDFGridSource":
        """Open a grid file.

        Raises
        ------
        UnsupportedDatasetError
            the file cannot be read or contains no grids

        """
        try:
            ds = xr.open_dataset(path, decode_cf=False, **kwargs)
        except (OSError, ValueError, RuntimeError) as e:
            raise UnsupportedDatasetError(path, str(e)) from e

        source = cls(ds, path=path)
        try:
            if not source.dimensions:
                raise UnsupportedDatasetError(path, "has no dimensions")
            if not source.grids:
                raise UnsupportedDatasetError(path, "contains no grids")
        except BaseException:
            ds.close()
            raise
        logger.debug("Opened grid source %s with grids %s", path, source.grids)
        return source

    def close(self) -> None:
        self._ds.close()

    @property
    def dataset(self) -> xr.Dataset:
        return self._ds

    @property
    def dimensions(self) -> dict[str, int]:
        return {name: int(size) for name, size in self._ds.sizes.items()}

    @property
    def unlimited_dimensions(self) -> set[str]:
        return set(self._ds.encoding.get("unlimited_dims", ()))

    def _source_variable(self, name: str) -> SourceVariable:
        var = self._ds.variables[name]
        return SourceVariable(
            name=str(name),
            dtype=var.dtype,
            dims=tuple(str(d) for d in var.dims),
            attrs=dict(var.attrs),
        )

    @property
    def variables(self) -> list[SourceVariable]:
        return [self._source_variable(name) for name in self._ds.variables]

    @property
    def global_attributes(self) -> dict[str, Any]:
        return dict(self._ds.attrs)

    def _referenced_names(self) -> set[str]:
        referenced: set[str] = set()
        for var in self._ds.variables.values():
            for key in ("coordinates", "grid_mapping", "bounds"):
                value = var.attrs.get(key)
                if isinstance(value, str):
                    referenced.update(value.split())
        return referenced

    @property
    def grids(self) -> list[str]:
        """Data variables spanning at least two dimensions."""
        referenced = self._referenced_names()
        dims = set(self._ds.sizes)
        return [
            str(name)
            for name, var in self._ds.variables.items()
            if var.ndim >= 2 and name not in referenced and name not in dims
        ]

    def _find_axis(self, kind: str) -> CoordinateAxis:
        names, standard_names = (
            (X_NAMES, X_STANDARD_NAMES) if kind == "X" else (Y_NAMES, Y_STANDARD_NAMES)
        )
        units = LON_UNITS if kind == "X" else LAT_UNITS
        candidates = []
        for name, var in self._ds.variables.items():
            attrs = var.attrs
            if (
                str(attrs.get("axis", "")).upper() == kind
                or attrs.get("standard_name") in standard_names
                or attrs.get("units") in units
                or str(name).lower() in names
            ):
                candidates.append((name, var))

        if not candidates:
            raise AxisError(kind, "not found")

        # prefer dimension coordinates
        candidates.sort(key=lambda c: c[1].dims != (c[0],))
        name, var = candidates[0]
        if var.ndim != 1:
            raise AxisError(
                kind, f"'{name}' must be one-dimensional, got {var.ndim} dimensions"
            )
        return CoordinateAxis(
            name=str(name),
            kind=kind,
            values=np.asarray(var.values),
            units=var.attrs.get("units"),
            dimension=str(var.dims[0]),
        )

    @property
    def x_axis(self) -> CoordinateAxis:
        return self._find_axis("X")

    @property
    def y_axis(self) -> CoordinateAxis:
        return self._find_axis("Y")

    @property
    def coordinate_system(self) -> Any:
        """CF grid mapping attributes of the primary grid.

        Sources on a plain longitude/latitude grid without a grid mapping
        variable are reported as geographic.
        """
        grid = self._ds.variables[self.primary_grid]
        gm_name = grid.attrs.get("grid_mapping")
        if isinstance(gm_name, str) and gm_name in self._ds.variables:
            return dict(self._ds.variables[gm_name].attrs)
        if self.x_axis.is_geographic:
            return GEOGRAPHIC
        return None

    def find_grid(self, name: str) -> SourceVariable:
        grids = self.grids
        if name not in grids:
            raise VariableNotFoundError(name, grids)
        return self._source_variable(name)

    def time_axis(self, name: str) -> TimeAxis:
        if name not in self._time_axes:
            self._time_axes[name] = self._find_time_axis(name)
        return self._time_axes[name]

    def _find_time_axis(self, name: str) -> TimeAxis:
        grid = self.find_grid(name)
        candidates = [
            (vname, var)
            for vname, var in self._ds.variables.items()
            if _is_time(str(vname), var.attrs) and set(var.dims) & set(grid.dims)
        ]
        if not candidates:
            raise AxisError("T", f"'{name}' has no time axis")

        one_d = [(n, v) for n, v in candidates if v.ndim == 1]
        if not one_d:
            vname, var = candidates[0]
            raise AxisError(
                "T", f"'{vname}' must be one-dimensional, got {var.ndim} dimensions"
            )
        one_d.sort(key=lambda c: c[1].dims != (c[0],))
        vname, var = one_d[0]
        return TimeAxis(
            name=str(vname), dimension=str(var.dims[0]), time=self._decode_time(str(vname))
        )

    def _decode_time(self, name: str) -> pd.DatetimeIndex:
        decoded = xr.decode_cf(self._ds[[name]])
        index = decoded[name].to_index()
        if hasattr(index, "to_datetimeindex"):
            # non-standard calendars decode to cftime objects
            index = index.to_datetimeindex()
        if not isinstance(index, pd.DatetimeIndex):
            raise AxisError("T", f"cannot decode timestamps of '{name}'")
        return index

    def read_slice(self, name: str, index: int) -> GridSlice:
        taxis = self.time_axis(name)
        nt = len(taxis)
        if not 0 <= index < nt:
            raise IndexError(f"time index {index} out of range 0..{nt - 1}")
        data = self._ds.variables[name].isel({taxis.dimension: index}).values
        return GridSlice(index=index, time=taxis.time[index], data=np.asarray(data))


def open_source(path: str | Path, **kwargs: Any) -> GridSource:
    """Open a grid file as a GridSource (use as a context manager)."""
    return NetCDFGridSource.open(path, **kwargs)
