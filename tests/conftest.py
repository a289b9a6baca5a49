from __future__ import annotations
import pathlib
from typing import Sequence

import numpy as np
import pandas as pd
import pyproj
import pytest
import xarray as xr

import gridarchive

UTM33 = pyproj.CRS.from_epsg(32633)

# >>> from pyproj import Proj
# >>> utm = Proj(32633)
# >>> utm(12.0, 55.0)
X0 = 308124.0
Y0 = 6098907.0

TIME_ENCODING = {
    "units": "hours since 2021-01-01 00:00:00",
    "calendar": "standard",
    "dtype": "float64",
}


def write_grid_file(
    path: pathlib.Path,
    *,
    start: str = "2021-01-01",
    nt: int = 3,
    ny: int = 3,
    nx: int = 4,
    variables: Sequence[str] = ("temp",),
    offset: float = 0.0,
    geographic: bool = False,
    with_time: bool = True,
    time_name: str = "time",
    extra_attrs: dict | None = None,
    axis_names: tuple[str, str] = ("y", "x"),
) -> pathlib.Path:
    """Write a small CF forecast file with data value = offset + running number."""
    yname, xname = axis_names
    time = pd.date_range(start, periods=nt, freq="6h")
    if geographic:
        x = 10.0 + np.arange(nx) * 0.5
        y = 50.0 + np.arange(ny) * 0.5
        xattrs = {"units": "degrees_east", "standard_name": "longitude"}
        yattrs = {"units": "degrees_north", "standard_name": "latitude"}
    else:
        x = X0 + np.arange(nx) * 1000.0
        y = Y0 + np.arange(ny) * 1000.0
        xattrs = {"units": "m", "standard_name": "projection_x_coordinate", "axis": "X"}
        yattrs = {"units": "m", "standard_name": "projection_y_coordinate", "axis": "Y"}

    data_vars = {}
    for k, name in enumerate(variables):
        values = offset + 1000.0 * k + np.arange(nt * ny * nx).reshape(nt, ny, nx)
        attrs = {"units": "K", "long_name": name}
        if not geographic:
            attrs["grid_mapping"] = "crs"
        if extra_attrs:
            attrs.update(extra_attrs)
        data_vars[name] = ((time_name, yname, xname), values.astype("float32"), attrs)

    coords = {
        yname: (yname, y, yattrs),
        xname: (xname, x, xattrs),
    }
    if with_time:
        coords[time_name] = (time_name, time, {"standard_name": "time", "axis": "T"})

    ds = xr.Dataset(data_vars, coords=coords)
    if not geographic:
        ds["crs"] = xr.DataArray(np.int32(0), attrs=UTM33.to_cf())
    ds.attrs = {"title": "synthetic forecast", "Conventions": "CF-1.4"}

    encoding = {time_name: TIME_ENCODING} if with_time else {}
    ds.to_netcdf(path, unlimited_dims=[time_name], encoding=encoding)
    return path


@pytest.fixture
def grid_file():
    return write_grid_file


@pytest.fixture
def prototype(tmp_path) -> pathlib.Path:
    return write_grid_file(tmp_path / "forecast_00.nc")


@pytest.fixture
def forecasts(tmp_path) -> list[pathlib.Path]:
    return [
        write_grid_file(tmp_path / "forecast_00.nc", start="2021-01-01 00:00"),
        write_grid_file(
            tmp_path / "forecast_18.nc", start="2021-01-01 18:00", offset=100.0
        ),
    ]


@pytest.fixture
def replace_xy_config() -> gridarchive.ArchiveConfig:
    return gridarchive.ArchiveConfig(
        exclusions=gridarchive.ExclusionRules(replace_xy_with_latlon=True),
        grid_variables=["temp"],
    )
