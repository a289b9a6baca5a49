from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import xarray as xr

from gridarchive import (
    AxisError,
    CoordinateAxis,
    NetCDFGridSource,
    UnsupportedDatasetError,
    VariableNotFoundError,
    open_source,
)


def spy_on_close(monkeypatch) -> list:
    closed = []
    original = xr.Dataset.close

    def close(self):
        closed.append(self)
        original(self)

    monkeypatch.setattr(xr.Dataset, "close", close)
    return closed


def test_open_source(prototype):
    with open_source(prototype) as src:
        assert isinstance(src, NetCDFGridSource)
        assert src.dimensions == {"time": 3, "y": 3, "x": 4}
        assert src.unlimited_dimensions == {"time"}
        assert src.grids == ["temp"]
        assert src.primary_grid == "temp"
        assert src.global_attributes["title"] == "synthetic forecast"
        assert {v.name for v in src.variables} == {"time", "y", "x", "temp", "crs"}


def test_variables_are_not_decoded(prototype):
    with open_source(prototype) as src:
        time = {v.name: v for v in src.variables}["time"]

        assert time.dtype == np.float64
        assert time.attrs["units"].startswith("hours since 2021-01-01")
        assert time.dims == ("time",)


def test_x_and_y_axes(prototype):
    with open_source(prototype) as src:
        x, y = src.x_axis, src.y_axis

    assert x.name == "x"
    assert x.kind == "X"
    assert x.dimension == "x"
    assert len(x) == 4
    assert x.values[1] - x.values[0] == 1000.0
    assert y.name == "y"
    assert len(y) == 3
    assert not x.is_geographic


def test_geographic_axes(tmp_path, grid_file):
    fp = grid_file(tmp_path / "geo.nc", geographic=True)

    with open_source(fp) as src:
        assert src.x_axis.is_geographic
        assert src.y_axis.is_geographic
        assert src.coordinate_system == "EPSG:4326"


def test_coordinate_system_from_grid_mapping(prototype):
    with open_source(prototype) as src:
        cs = src.coordinate_system

    assert cs["grid_mapping_name"] == "transverse_mercator"
    assert "crs_wkt" in cs


def test_axis_must_be_one_dimensional(tmp_path):
    fp = tmp_path / "curvilinear.nc"
    lon = np.array([[10.0, 11.0], [10.5, 11.5]])
    ds = xr.Dataset(
        {"temp": (("time", "j", "i"), np.zeros((1, 2, 2)))},
        coords={
            "time": ("time", pd.date_range("2021-01-01", periods=1)),
            "lon": (("j", "i"), lon, {"units": "degrees_east"}),
            "lat": (("j", "i"), lon + 45.0, {"units": "degrees_north"}),
        },
    )
    ds.to_netcdf(fp)

    with open_source(fp) as src:
        with pytest.raises(AxisError, match="one-dimensional"):
            src.x_axis


def test_missing_axis(tmp_path):
    fp = tmp_path / "noaxes.nc"
    xr.Dataset({"temp": (("a", "b"), np.zeros((2, 2)))}).to_netcdf(fp)

    with open_source(fp) as src:
        with pytest.raises(AxisError, match="not found"):
            src.x_axis


def test_coordinate_axis_rejects_2d_values():
    with pytest.raises(AxisError):
        CoordinateAxis("x", "X", np.zeros((2, 2)))


def test_time_axis(prototype):
    with open_source(prototype) as src:
        taxis = src.time_axis("temp")

    assert taxis.name == "time"
    assert taxis.dimension == "time"
    assert len(taxis) == 3
    assert taxis.time[0] == pd.Timestamp("2021-01-01 00:00")
    assert taxis.time[-1] == pd.Timestamp("2021-01-01 12:00")


def test_grid_without_time_axis(tmp_path, grid_file):
    fp = grid_file(tmp_path / "notime.nc", with_time=False)

    with open_source(fp) as src:
        with pytest.raises(AxisError, match="no time axis"):
            src.time_axis("temp")


def test_read_slice(prototype):
    with open_source(prototype) as src:
        gs = src.read_slice("temp", 1)

    assert gs.index == 1
    assert gs.time == pd.Timestamp("2021-01-01 06:00")
    assert gs.data.shape == (3, 4)
    assert gs.data[0, 0] == 12.0


def test_read_slice_out_of_range(prototype):
    with open_source(prototype) as src:
        with pytest.raises(IndexError):
            src.read_slice("temp", 3)


def test_find_missing_grid(prototype):
    with open_source(prototype) as src:
        with pytest.raises(VariableNotFoundError) as ex:
            src.find_grid("rh")

    assert ex.value.name == "rh"
    assert ex.value.available == ["temp"]


def test_coordinates_are_not_grids(tmp_path):
    fp = tmp_path / "onlycoords.nc"
    xr.Dataset(
        {"lon": (("y", "x"), np.zeros((2, 2)))},
        attrs={"title": "no data"},
    ).to_netcdf(fp)
    ds = xr.open_dataset(fp, decode_cf=False)
    ds["temp"] = (("y", "x"), np.zeros((2, 2)), {"coordinates": "lon"})

    src = NetCDFGridSource(ds, path="memory")

    assert src.grids == ["temp"]
    src.close()


def test_not_a_grid_dataset_is_closed(tmp_path, monkeypatch):
    fp = tmp_path / "series.nc"
    xr.Dataset({"temp": ("time", np.arange(3.0))}).to_netcdf(fp)
    closed = spy_on_close(monkeypatch)

    with pytest.raises(UnsupportedDatasetError, match="contains no grids"):
        open_source(fp)

    assert closed


def test_unreadable_file(tmp_path: Path):
    fp = tmp_path / "garbage.nc"
    fp.write_text("this is not netcdf")

    with pytest.raises(UnsupportedDatasetError) as ex:
        open_source(fp)

    assert ex.value.path == fp


def test_missing_file(tmp_path: Path):
    with pytest.raises(UnsupportedDatasetError):
        open_source(tmp_path / "missing.nc")
