"""Configuration of a rolling archive."""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

DIMENSION = "dimension"
VARIABLE = "variable"
XY = "xy"

NETCDF_FORMATS = ("NETCDF4", "NETCDF4_CLASSIC", "NETCDF3_64BIT_OFFSET", "NETCDF3_CLASSIC")


def _as_names(name: str, values: Iterable[str] | str | None) -> frozenset[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        values = [values]
    values = list(values)
    for v in values:
        if not isinstance(v, str):
            raise TypeError(f"{name} must contain strings, got {v!r}")
    return frozenset(values)


@dataclass(frozen=True)
class ExclusionRules:
    """Dimensions and variables left out of the archive.

    Parameters
    ----------
    dimensions : iterable of str, optional
        names of source dimensions to omit
    variables : iterable of str, optional
        names of source variables to omit
    replace_xy_with_latlon : bool, optional
        replace the X/Y coordinate variables with a synthesized 2D
        latitude/longitude grid, by default False
    xy_variables : iterable of str, optional
        names of the X/Y coordinate variables to omit when replacing them,
        by default the X/Y axes discovered in the prototype

    Examples
    --------
    >>> rules = ExclusionRules(dimensions=["bnds"], replace_xy_with_latlon=True)
    >>> rules.is_dimension_excluded("bnds")
    True
    """

    dimensions: frozenset[str] = field(default_factory=frozenset)
    variables: frozenset[str] = field(default_factory=frozenset)
    replace_xy_with_latlon: bool = False
    xy_variables: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "dimensions", _as_names("dimensions", self.dimensions))
        object.__setattr__(self, "variables", _as_names("variables", self.variables))
        object.__setattr__(
            self, "xy_variables", _as_names("xy_variables", self.xy_variables)
        )
        if self.xy_variables and not self.replace_xy_with_latlon:
            raise ValueError(
                "xy_variables can only be given when replace_xy_with_latlon is set"
            )

    def is_dimension_excluded(self, name: str) -> bool:
        return name in self.dimensions

    def is_variable_excluded(self, name: str) -> bool:
        return name in self.variables

    def variable_excludes(self, xy_names: Iterable[str] = ()) -> frozenset[str]:
        """Explicit variable exclusions plus the X/Y names when replacing them."""
        if not self.replace_xy_with_latlon:
            return self.variables
        xy = self.xy_variables or frozenset(xy_names)
        return self.variables | xy

    @classmethod
    def from_mapping(cls, excludes: Mapping[str, Iterable[str]]) -> "ExclusionRules":
        """Create rules from a mapping keyed by 'dimension', 'variable' and 'xy'.

        The presence of the 'xy' key turns on the lat/lon replacement.
        """
        unknown = set(excludes) - {DIMENSION, VARIABLE, XY}
        if unknown:
            raise ValueError(
                f"Unknown exclusion categories {sorted(unknown)}. "
                f"Valid categories are {[DIMENSION, VARIABLE, XY]}"
            )
        return cls(
            dimensions=excludes.get(DIMENSION),  # type: ignore[arg-type]
            variables=excludes.get(VARIABLE),  # type: ignore[arg-type]
            replace_xy_with_latlon=XY in excludes,
            xy_variables=excludes.get(XY),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class ArchiveConfig:
    """Settings used when defining and appending to a rolling archive.

    Parameters
    ----------
    exclusions : ExclusionRules
        what to leave out of the archive schema
    unlimited_dimension : str
        name of the source dimension that grows with each append,
        by default "time"
    grid_mapping_name : str
        name of the synthesized grid mapping variable,
        by default "Latitude_Longitude"
    grid_variables : sequence of str
        names of the grid variables appended from each new source
    require_unlimited_dimension : bool
        raise a SchemaError if the prototype has no unlimited dimension,
        by default False
    write_time_coordinate : bool
        also write each slice's timestamp to the time coordinate variable,
        by default False
    file_format : str
        NetCDF flavour of the archive, by default "NETCDF4"
    show_progress : bool
        display a progress bar while appending, by default False

    Examples
    --------
    >>> config = gridarchive.ArchiveConfig.from_dict(
    ...     {"grid_variables": "temp", "exclusions": {"xy": ["x", "y"]}}
    ... )
    >>> config.grid_variables
    ('temp',)
    >>> config.exclusions.replace_xy_with_latlon
    True
    """

    exclusions: ExclusionRules = field(default_factory=ExclusionRules)
    unlimited_dimension: str = "time"
    grid_mapping_name: str = "Latitude_Longitude"
    grid_variables: tuple[str, ...] = ()
    require_unlimited_dimension: bool = False
    write_time_coordinate: bool = False
    file_format: str = "NETCDF4"
    show_progress: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.grid_variables, str):
            object.__setattr__(self, "grid_variables", (self.grid_variables,))
        else:
            object.__setattr__(self, "grid_variables", tuple(self.grid_variables))
        if len(set(self.grid_variables)) != len(self.grid_variables):
            raise ValueError("'grid_variables' must be unique")
        if not self.unlimited_dimension:
            raise ValueError("unlimited_dimension must be a non-empty string")
        if not self.grid_mapping_name:
            raise ValueError("grid_mapping_name must be a non-empty string")
        if self.file_format not in NETCDF_FORMATS:
            raise ValueError(
                f"{self.file_format} is not a supported file format. "
                f"Valid formats are {', '.join(NETCDF_FORMATS)}"
            )

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "ArchiveConfig":
        d = dict(d)
        valid = {f.name for f in fields(cls)}
        unknown = set(d) - valid
        if unknown:
            raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

        exclusions = d.pop("exclusions", None)
        if exclusions is None:
            exclusions = ExclusionRules()
        elif not isinstance(exclusions, ExclusionRules):
            if XY in exclusions or DIMENSION in exclusions or VARIABLE in exclusions:
                exclusions = ExclusionRules.from_mapping(exclusions)
            else:
                exclusions = ExclusionRules(**exclusions)
        return cls(exclusions=exclusions, **d)

    @classmethod
    def from_yaml(cls, filename: str | Path) -> "ArchiveConfig":
        """Read a configuration from a YAML file.

        Examples
        --------
        ```yaml
        unlimited_dimension: time
        grid_variables: [Temperature_height_above_ground]
        exclusions:
          dimension: [height_above_ground1]
          xy: [x, y]
        ```
        """
        with open(filename, encoding="utf-8") as f:
            d = yaml.safe_load(f) or {}
        if not isinstance(d, dict):
            raise ValueError(f"{filename} does not contain a configuration mapping")
        return cls.from_dict(d)
