"""Archive schema and its derivation from a prototype source."""

from __future__ import annotations
from dataclasses import dataclass, field
import logging
from typing import Any, Iterator

import numpy as np

from .config import ArchiveConfig
from .exceptions import AxisError, SchemaError
from .source import GridSource

logger = logging.getLogger(__name__)

CONVENTIONS = "CF-1.6"
COORDINATES = "lon lat"

# WGS84
SEMI_MAJOR_AXIS = 6378137.0
SEMI_MINOR_AXIS = 6356752.314245


@dataclass
class Dimension:
    name: str
    length: int | None = None
    is_unlimited: bool = False

    def __repr__(self) -> str:
        if self.is_unlimited:
            return f"{self.name}(unlimited)"
        return f"{self.name}={self.length}"


@dataclass
class Variable:
    name: str
    dtype: np.dtype
    dims: tuple[str, ...] = ()
    attrs: dict[str, Any] = field(default_factory=dict)
    grid_mapping: str | None = None

    def __repr__(self) -> str:
        return f"{self.name}({','.join(self.dims)})"

    def set_attr(self, name: str, value: Any) -> None:
        """Set an attribute, moving it to the end of the attribute order."""
        self.attrs.pop(name, None)
        self.attrs[name] = value

    @property
    def ndim(self) -> int:
        return len(self.dims)


class ArchiveSchema:
    """Ordered dimensions, variables and global attributes of an archive.

    Names are unique within each table; adding a duplicate is a SchemaError.
    """

    def __init__(
        self,
        unlimited_dimension: str | None = None,
        grid_mapping_name: str | None = None,
    ) -> None:
        self._dimensions: dict[str, Dimension] = {}
        self._variables: dict[str, Variable] = {}
        self.global_attributes: dict[str, Any] = {}
        self.unlimited_dimension = unlimited_dimension
        self.grid_mapping_name = grid_mapping_name

    def __repr__(self) -> str:
        out = ["<gridarchive.ArchiveSchema>"]
        out.append(f"dimensions: {list(self._dimensions.values())}")
        out.append("variables:")
        for var in self._variables.values():
            out.append(f"  {var!r}: {var.dtype}")
        return "\n".join(out)

    @property
    def dimensions(self) -> dict[str, Dimension]:
        return self._dimensions

    @property
    def variables(self) -> dict[str, Variable]:
        return self._variables

    def __iter__(self) -> Iterator[Variable]:
        return iter(self._variables.values())

    def __contains__(self, name: str) -> bool:
        return name in self._variables

    def __getitem__(self, name: str) -> Variable:
        return self._variables[name]

    @property
    def has_unlimited_dimension(self) -> bool:
        return any(d.is_unlimited for d in self._dimensions.values())

    def add_dimension(self, name: str, length: int | None, unlimited: bool = False) -> Dimension:
        if name in self._dimensions:
            raise SchemaError(f"Dimension '{name}' is already defined")
        if unlimited and self.has_unlimited_dimension:
            raise SchemaError("An archive can only have one unlimited dimension")
        dim = Dimension(name=name, length=None if unlimited else length, is_unlimited=unlimited)
        self._dimensions[name] = dim
        return dim

    def add_variable(self, var: Variable) -> Variable:
        if var.name in self._variables:
            raise SchemaError(f"Variable '{var.name}' is already defined")
        missing = [d for d in var.dims if d not in self._dimensions]
        if missing:
            raise SchemaError(
                f"Variable '{var.name}' uses undefined dimensions {missing}"
            )
        self._variables[var.name] = var
        return var

    def shape(self, name: str, n_unlimited: int = 0) -> tuple[int, ...]:
        """Shape of a variable, using n_unlimited for the unlimited dimension."""
        dims = [self._dimensions[d] for d in self._variables[name].dims]
        return tuple(n_unlimited if d.is_unlimited else int(d.length) for d in dims)  # type: ignore[arg-type]


def _grid_mapping_variable(name: str) -> Variable:
    return Variable(
        name=name,
        dtype=np.dtype("int32"),
        dims=(),
        attrs={
            "grid_mapping_name": "latitude_longitude",
            "semi_major_axis": SEMI_MAJOR_AXIS,
            "semi_minor_axis": SEMI_MINOR_AXIS,
            "longitude_of_prime_meridian": 0.0,
        },
    )


def _latlon_variables(ydim: str, xdim: str) -> tuple[Variable, Variable]:
    lat = Variable(
        name="lat",
        dtype=np.dtype("float64"),
        dims=(ydim, xdim),
        attrs={
            "units": "degrees_north",
            "long_name": "Latitude",
            "standard_name": "latitude",
        },
    )
    lon = Variable(
        name="lon",
        dtype=np.dtype("float64"),
        dims=(ydim, xdim),
        attrs={
            "units": "degrees_east",
            "long_name": "Longitude",
            "standard_name": "longitude",
        },
    )
    return lat, lon


class SchemaBuilder:
    """Derive an archive schema from a prototype source.

    Parameters
    ----------
    config : ArchiveConfig, optional
        exclusion rules, unlimited dimension and grid mapping name,
        by default ArchiveConfig()

    Examples
    --------
    >>> with open_source("gfs_2021010100.nc") as src:  # doctest: +SKIP
    ...     schema = SchemaBuilder(ArchiveConfig()).build(src)
    """

    def __init__(self, config: ArchiveConfig | None = None) -> None:
        self.config = config or ArchiveConfig()

    def build(self, source: GridSource) -> ArchiveSchema:
        config = self.config
        rules = config.exclusions
        source_dims = source.dimensions
        source_vars = source.variables
        if not source_dims:
            raise SchemaError(f"{source.path}: prototype has no dimensions")
        if not source_vars:
            raise SchemaError(f"{source.path}: prototype has no variables")

        schema = ArchiveSchema(
            unlimited_dimension=None, grid_mapping_name=config.grid_mapping_name
        )

        # dimensions
        for name, length in source_dims.items():
            if name == config.unlimited_dimension:
                schema.add_dimension(name, None, unlimited=True)
                schema.unlimited_dimension = name
            elif rules.is_dimension_excluded(name):
                continue
            else:
                schema.add_dimension(name, length)

        if schema.unlimited_dimension is None:
            if config.require_unlimited_dimension:
                raise SchemaError(
                    f"Unlimited dimension '{config.unlimited_dimension}' not found. "
                    f"Valid dimensions are {list(source_dims)}"
                )
            logger.warning(
                "Prototype has no dimension '%s', the archive will not be appendable",
                config.unlimited_dimension,
            )

        # synthesized lat/lon grid
        xy_names: list[str] = []
        if rules.replace_xy_with_latlon:
            try:
                x, y = source.x_axis, source.y_axis
            except AxisError as e:
                raise SchemaError(f"Cannot replace X/Y with lat/lon: {e}") from e
            xy_names = [x.name, y.name]
            for dim in (y.dimension, x.dimension):
                if dim not in schema.dimensions:
                    raise SchemaError(
                        f"lat/lon need dimension '{dim}' which is excluded"
                    )
            schema.add_variable(_grid_mapping_variable(config.grid_mapping_name))
            for var in _latlon_variables(y.dimension, x.dimension):  # type: ignore[arg-type]
                schema.add_variable(var)

        # source variables
        excludes = rules.variable_excludes(xy_names)
        for svar in source_vars:
            if svar.name in excludes:
                continue
            if svar.name in schema:
                raise SchemaError(
                    f"Source variable '{svar.name}' collides with a synthesized variable"
                )
            excluded_dims = [d for d in svar.dims if d not in schema.dimensions]
            if excluded_dims:
                raise SchemaError(
                    f"Variable '{svar.name}' uses excluded dimensions {excluded_dims}, "
                    "exclude the variable as well"
                )
            var = Variable(
                name=svar.name,
                dtype=svar.dtype,
                dims=svar.dims,
                attrs=dict(svar.attrs),
                grid_mapping=config.grid_mapping_name,
            )
            # added even when no grid mapping variable is synthesized
            var.set_attr("grid_mapping", config.grid_mapping_name)
            var.set_attr("coordinates", COORDINATES)
            schema.add_variable(var)

        schema.global_attributes.update(source.global_attributes)
        schema.global_attributes.pop("Conventions", None)
        schema.global_attributes["Conventions"] = CONVENTIONS

        logger.debug("Derived schema from %s: %r", source.path, schema)
        return schema
