"""Rolling NetCDF archive of gridded time series."""

from __future__ import annotations
from enum import Enum
import logging
from pathlib import Path
from typing import Any

import numpy as np
import pyproj
from tqdm import tqdm

from .append import AppendRecord, AppendResult, SliceAppender, encode_time
from .config import ArchiveConfig
from .exceptions import NotDefinedError, SchemaError
from .geodesy import GeodesyService
from .projection import CoordinateProjector
from .schema import ArchiveSchema, SchemaBuilder, Variable
from .source import CoordinateAxis, GridSource, open_source
from .store import NetCDFStore

logger = logging.getLogger(__name__)

ALREADY_DEFINED = "AlreadyDefined"


class ArchiveState(Enum):
    CREATED = "created"
    DEFINED = "defined"
    READY = "ready"
    FINALIZED = "finalized"
    CLOSED = "closed"

    def __str__(self) -> str:
        return self.value


class ArchiveWriter:
    """Archive built from a prototype grid file and extended one file at a time.

    The schema (dimensions, variables and attributes) is derived once from a
    prototype source with `define`, after which the time steps of new source
    files are appended along the unlimited dimension with `add_file`.

    Parameters
    ----------
    store : NetCDFStore
        open storage of the archive
    config : ArchiveConfig, optional
        archive settings, by default ArchiveConfig()
    geodesy : GeodesyService, optional
        service used to compute lat/lon, by default GeodesyService()

    Notes
    -----
    Appending is not transactional. If a write fails while appending, the
    slices already written for that time index remain in the archive beyond
    the cursor and will be overwritten by the next successful append.

    The writer performs no locking; only one writer may use an archive file
    at a time.

    Examples
    --------
    >>> config = ArchiveConfig(grid_variables=["temp"])
    >>> with gridarchive.create("archive.nc", config) as archive:  # doctest: +SKIP
    ...     archive.define("forecast_00.nc")
    ...     archive.add_file("forecast_06.nc")
    ...     archive.add_file("forecast_12.nc")
    """

    def __init__(
        self,
        store: NetCDFStore,
        config: ArchiveConfig | None = None,
        geodesy: GeodesyService | None = None,
    ) -> None:
        self._store = store
        self.config = config or ArchiveConfig()
        self.geodesy = geodesy or GeodesyService()
        self._state = ArchiveState.CREATED
        self._schema: ArchiveSchema | None = None
        self._crs: pyproj.CRS | None = None
        self._x: CoordinateAxis | None = None
        self._y: CoordinateAxis | None = None
        self._cursor = 0
        self._latlon = False

    @classmethod
    def create(
        cls,
        filename: str | Path,
        config: ArchiveConfig | None = None,
        geodesy: GeodesyService | None = None,
    ) -> "ArchiveWriter":
        """Create a new, empty archive file (an existing file is overwritten)."""
        config = config or ArchiveConfig()
        store = NetCDFStore.create(filename, file_format=config.file_format)
        logger.info("Created archive %s", filename)
        return cls(store, config=config, geodesy=geodesy)

    @classmethod
    def open(
        cls,
        filename: str | Path,
        config: ArchiveConfig | None = None,
        geodesy: GeodesyService | None = None,
    ) -> "ArchiveWriter":
        """Reopen an existing archive for appending.

        The schema is read back from the file and the cursor is placed at the
        current length of the unlimited dimension. The CRS and X/Y axes of
        the prototype are not stored in the archive and are unavailable.
        """
        store = NetCDFStore.open(filename, mode="a")
        writer = cls(store, config=config, geodesy=geodesy)
        try:
            writer._schema = _read_schema(store, writer.config)
        except BaseException:
            store.close()
            raise
        unlimited = writer._schema.unlimited_dimension
        if unlimited is not None:
            writer._cursor = store.dimensions[unlimited][0]
        schema = writer._schema
        writer._latlon = (
            writer.config.grid_mapping_name in schema
            and "lat" in schema
            and "lon" in schema
        )
        writer._state = ArchiveState.READY
        logger.info("Opened archive %s at cursor %d", filename, writer._cursor)
        return writer

    def __repr__(self) -> str:
        out = [f"<gridarchive.{self.__class__.__name__}>"]
        out.append(f"file: {self._store.filename}")
        out.append(f"state: {self._state}")
        if self._schema is not None:
            out.append(f"dimensions: {list(self._schema.dimensions.values())}")
            out.append(f"variables: {list(self._schema.variables.values())}")
            out.append(f"time cursor: {self._cursor}")
        return "\n".join(out)

    def __enter__(self) -> "ArchiveWriter":
        return self

    def __exit__(self, *exc: Any) -> None:
        if self._state not in (ArchiveState.FINALIZED, ArchiveState.CLOSED):
            self.close()

    def _require(self, *states: ArchiveState, reason: str = "Not defined") -> None:
        if self._state not in states:
            raise NotDefinedError(reason, self._state)

    # --- properties ---

    @property
    def state(self) -> ArchiveState:
        return self._state

    @property
    def filename(self) -> Path:
        return self._store.filename

    @property
    def store(self) -> NetCDFStore:
        return self._store

    @property
    def time_cursor(self) -> int:
        """Offset along the unlimited dimension of the next time step."""
        return self._cursor

    @property
    def schema(self) -> ArchiveSchema:
        self._require(ArchiveState.DEFINED, ArchiveState.READY)
        if self._schema is None:
            raise NotDefinedError("Schema is unknown", self._state)
        return self._schema

    @property
    def crs(self) -> pyproj.CRS:
        """CRS of the prototype grid."""
        self._require(ArchiveState.DEFINED, ArchiveState.READY)
        if self._crs is None:
            raise NotDefinedError("CRS is unknown for a reopened archive", self._state)
        return self._crs

    @property
    def x_coords(self) -> np.ndarray:
        self._require(ArchiveState.DEFINED, ArchiveState.READY)
        if self._x is None:
            raise NotDefinedError("X axis is unknown for a reopened archive", self._state)
        return self._x.values

    @property
    def y_coords(self) -> np.ndarray:
        self._require(ArchiveState.DEFINED, ArchiveState.READY)
        if self._y is None:
            raise NotDefinedError("Y axis is unknown for a reopened archive", self._state)
        return self._y.values

    @property
    def has_latlon(self) -> bool:
        """True if the archive carries synthesized lat/lon replacing the X/Y axes."""
        return self._latlon

    # --- definition ---

    def define(self, prototype: str | Path | GridSource) -> ArchiveSchema:
        """Derive the archive schema from a prototype and make it ready.

        Parameters
        ----------
        prototype : str, Path or GridSource
            grid file (or open source) with the layout of the files to append

        Returns
        -------
        ArchiveSchema

        Raises
        ------
        NotDefinedError
            "AlreadyDefined" if the archive has already been defined

        """
        if self._state in (ArchiveState.DEFINED, ArchiveState.READY):
            raise NotDefinedError(ALREADY_DEFINED, self._state)
        self._require(ArchiveState.CREATED, reason="Archive is no longer writable")

        if isinstance(prototype, GridSource):
            self._define(prototype)
        else:
            with open_source(prototype) as source:
                self._define(source)

        self.materialize_coordinates()
        return self.schema

    def _define(self, source: GridSource) -> None:
        schema = SchemaBuilder(self.config).build(source)
        crs = None
        x = y = None
        if self.config.exclusions.replace_xy_with_latlon:
            crs = self.geodesy.resolve_crs(source.coordinate_system)
            x, y = source.x_axis, source.y_axis

        _write_schema(self._store, schema)

        self._schema = schema
        self._crs = crs
        self._x, self._y = x, y
        self._latlon = self.config.exclusions.replace_xy_with_latlon
        self._state = ArchiveState.DEFINED
        logger.info(
            "Defined archive %s from %s with %d variables",
            self.filename,
            source.path,
            len(schema.variables),
        )

    def materialize_coordinates(self) -> None:
        """Write lat/lon of every grid cell, if the archive has them."""
        self._require(ArchiveState.DEFINED)
        if self.has_latlon:
            lat, lon = self.transform_to_latlon()
            self._store.write("lat", lat)
            self._store.write("lon", lon)
            logger.info("Wrote lat/lon %s to %s", lat.shape, self.filename)
        self._state = ArchiveState.READY

    def transform_to_latlon(self) -> tuple[np.ndarray, np.ndarray]:
        """Latitude and longitude of the prototype grid, shape (ny, nx)."""
        self._require(ArchiveState.DEFINED, ArchiveState.READY)
        if self._x is None or self._y is None or self._crs is None:
            raise NotDefinedError("Prototype grid is unknown", self._state)
        projector = CoordinateProjector(self.geodesy)
        return projector.project(self._x, self._y, self.crs)

    # --- appending ---

    def append(self, source: GridSource) -> AppendResult:
        """Append all time steps of the configured grid variables of a source.

        Every time step is written at the current cursor, and the cursor
        advances once per time step for all variables together.
        """
        self._require(ArchiveState.READY, reason="Archive is not ready for appending")
        schema = self.schema
        appender = SliceAppender(schema, self.config.grid_variables)
        resolved = appender.resolve(source)

        time_var = self._time_coordinate_variable()
        result = AppendResult()
        n = len(resolved[0].time_axis) if resolved else 0
        steps = appender.iter_timesteps(source, resolved)
        for step in tqdm(steps, total=n, disable=not self.config.show_progress):
            offset = self._cursor
            for name, data in step.slices:
                position = schema[name].dims.index(schema.unlimited_dimension)  # type: ignore[arg-type]
                start = [0] * data.ndim
                start[position] = offset
                self._store.write(name, data, start)
            if time_var is not None:
                value = encode_time(step.time, time_var.attrs)
                self._store.write(time_var.name, np.atleast_1d(value), [offset])
            self._cursor += 1
            result.records.append(
                AppendRecord(
                    source=source.path,
                    source_index=step.index,
                    offset=offset,
                    time=step.time,
                    variables=[name for name, _ in step.slices],
                )
            )
            logger.debug("Wrote time step %s of %s at %d", step.time, source.path, offset)

        logger.info(
            "Appended %d time steps from %s, cursor at %d",
            len(result),
            source.path,
            self._cursor,
        )
        return result

    def add_file(self, filename: str | Path) -> AppendResult:
        """Open a grid file and append its time steps (see `append`)."""
        self._require(ArchiveState.READY, reason="Archive is not ready for appending")
        with open_source(filename) as source:
            return self.append(source)

    def _time_coordinate_variable(self) -> Variable | None:
        if not self.config.write_time_coordinate:
            return None
        schema = self.schema
        name = schema.unlimited_dimension
        if name is None or name not in schema:
            raise SchemaError(
                f"write_time_coordinate is set but the archive has no '{name}' variable"
            )
        var = schema[name]
        if var.dims != (name,):
            raise SchemaError(f"'{name}' is not a time coordinate variable")
        return var

    # --- lifecycle ---

    def flush(self) -> None:
        self._require(ArchiveState.DEFINED, ArchiveState.READY)
        self._store.flush()

    def finalize(self) -> None:
        """Freeze the unlimited dimension at its current length and close.

        No further appends are possible afterwards.
        """
        self._require(ArchiveState.READY, reason="Archive is not ready")
        try:
            self._store.freeze_unlimited()
        except BaseException:
            # the handle is released before the file is rewritten
            if not self._store.is_open:
                self._state = ArchiveState.CLOSED
            raise
        self._state = ArchiveState.FINALIZED
        logger.info("Finalized archive %s with %d time steps", self.filename, self._cursor)

    def close(self) -> None:
        """Release the archive file.

        Closing a finalized archive only records the terminal state; closing
        twice raises an ArchiveIOError.
        """
        if self._state == ArchiveState.FINALIZED:
            self._state = ArchiveState.CLOSED
            return
        self._store.close()
        self._state = ArchiveState.CLOSED
        logger.debug("Closed archive %s", self.filename)


def _write_schema(store: NetCDFStore, schema: ArchiveSchema) -> None:
    for dim in schema.dimensions.values():
        if dim.is_unlimited:
            store.add_unlimited_dimension(dim.name)
        else:
            store.add_dimension(dim.name, dim.length)  # type: ignore[arg-type]

    for var in schema:
        attrs = dict(var.attrs)
        fill_value = attrs.pop("_FillValue", None)
        store.add_variable(var.name, var.dtype, var.dims, fill_value=fill_value)
        for key, value in attrs.items():
            store.set_variable_attribute(var.name, key, value)

    for key, value in schema.global_attributes.items():
        store.set_global_attribute(key, value)


def _read_schema(store: NetCDFStore, config: ArchiveConfig) -> ArchiveSchema:
    schema = ArchiveSchema(grid_mapping_name=config.grid_mapping_name)
    for name, (length, unlimited) in store.dimensions.items():
        schema.add_dimension(name, length, unlimited=unlimited)
        if unlimited:
            schema.unlimited_dimension = name
    for name, (dtype, dims, attrs) in store.variables.items():
        schema.add_variable(
            Variable(
                name=name,
                dtype=dtype,
                dims=dims,
                attrs=attrs,
                grid_mapping=attrs.get("grid_mapping"),
            )
        )
    schema.global_attributes.update(store.global_attributes)
    return schema
