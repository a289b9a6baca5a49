import numpy as np
import pytest

from gridarchive import (
    ArchiveConfig,
    ArchiveSchema,
    ExclusionRules,
    SchemaBuilder,
    SchemaError,
    Variable,
    open_source,
)


def build(path, **kwargs):
    with open_source(path) as src:
        return SchemaBuilder(ArchiveConfig(**kwargs)).build(src), src.dimensions, src.variables


def test_dimensions_are_copied_with_unlimited_time(prototype):
    schema, source_dims, _ = build(prototype)

    assert set(schema.dimensions) == set(source_dims)
    assert schema.dimensions["time"].is_unlimited
    assert schema.unlimited_dimension == "time"
    assert schema.dimensions["y"].length == 3
    assert schema.dimensions["x"].length == 4
    assert not schema.dimensions["x"].is_unlimited


def test_excluded_dimension_is_omitted(tmp_path, grid_file):
    fp = grid_file(tmp_path / "proto.nc")
    schema, source_dims, _ = build(
        fp,
        exclusions=ExclusionRules(dimensions=["x", "time"], variables=["x", "temp"]),
    )

    # the unlimited dimension is kept even when excluded
    assert set(schema.dimensions) == set(source_dims) - {"x"}
    assert schema.dimensions["time"].is_unlimited


def test_variable_using_excluded_dimension_is_an_error(prototype):
    with pytest.raises(SchemaError, match="excluded dimensions"):
        build(prototype, exclusions=ExclusionRules(dimensions=["x"]))


def test_source_attributes_are_kept_and_extended(prototype):
    schema, _, source_vars = build(prototype)

    for svar in source_vars:
        var = schema[svar.name]
        for key, value in svar.attrs.items():
            if key == "grid_mapping":
                continue
            assert key in var.attrs
            np.testing.assert_equal(var.attrs[key], value)
        assert var.attrs["grid_mapping"] == "Latitude_Longitude"
        assert var.attrs["coordinates"] == "lon lat"
        assert var.dtype == svar.dtype
        assert var.dims == svar.dims


def test_appended_attributes_come_last(prototype):
    schema, _, _ = build(prototype)

    keys = list(schema["temp"].attrs)
    assert keys[-2:] == ["grid_mapping", "coordinates"]


def test_no_latlon_without_replace_flag(prototype):
    schema, _, _ = build(prototype)

    assert "lat" not in schema
    assert "lon" not in schema
    assert "Latitude_Longitude" not in schema
    # x and y are regular variables
    assert "x" in schema
    assert "y" in schema


def test_latlon_with_replace_flag(prototype):
    schema, _, _ = build(
        prototype, exclusions=ExclusionRules(replace_xy_with_latlon=True)
    )

    gm = schema["Latitude_Longitude"]
    assert gm.dims == ()
    assert gm.dtype == np.int32
    assert gm.attrs["grid_mapping_name"] == "latitude_longitude"
    assert gm.attrs["semi_major_axis"] == 6378137.0
    assert gm.attrs["semi_minor_axis"] == 6356752.314245
    assert gm.attrs["longitude_of_prime_meridian"] == 0.0

    lat, lon = schema["lat"], schema["lon"]
    assert lat.dims == ("y", "x")
    assert lon.dims == ("y", "x")
    assert lat.attrs == {
        "units": "degrees_north",
        "long_name": "Latitude",
        "standard_name": "latitude",
    }
    assert lon.attrs["units"] == "degrees_east"
    assert lon.attrs["standard_name"] == "longitude"

    # source X/Y coordinate variables are replaced
    assert "x" not in schema
    assert "y" not in schema


def test_scenario_time_y_x(tmp_path, grid_file):
    fp = grid_file(tmp_path / "proto.nc", geographic=True, with_time=False)
    schema, _, _ = build(
        fp, exclusions=ExclusionRules(replace_xy_with_latlon=True)
    )

    assert {d: (v.length, v.is_unlimited) for d, v in schema.dimensions.items()} == {
        "time": (None, True),
        "y": (3, False),
        "x": (4, False),
    }
    assert set(schema.variables) == {"Latitude_Longitude", "lat", "lon", "temp"}
    assert schema["temp"].dims == ("time", "y", "x")
    assert schema["temp"].attrs["grid_mapping"] == "Latitude_Longitude"
    assert schema["temp"].attrs["coordinates"] == "lon lat"


def test_custom_grid_mapping_name(prototype):
    schema, _, _ = build(
        prototype,
        grid_mapping_name="LatLon",
        exclusions=ExclusionRules(replace_xy_with_latlon=True),
    )

    assert "LatLon" in schema
    assert schema["temp"].attrs["grid_mapping"] == "LatLon"
    assert schema["temp"].grid_mapping == "LatLon"


def test_conventions_are_overwritten(prototype):
    schema, _, _ = build(prototype)

    assert schema.global_attributes["title"] == "synthetic forecast"
    assert schema.global_attributes["Conventions"] == "CF-1.6"
    assert list(schema.global_attributes)[-1] == "Conventions"


def test_missing_unlimited_dimension(tmp_path, grid_file):
    fp = grid_file(tmp_path / "proto.nc", time_name="t")

    schema, _, _ = build(fp)
    assert schema.unlimited_dimension is None
    assert not schema.has_unlimited_dimension

    with pytest.raises(SchemaError, match="Unlimited dimension 'time' not found"):
        build(fp, require_unlimited_dimension=True)


def test_other_unlimited_dimension_name(tmp_path, grid_file):
    fp = grid_file(tmp_path / "proto.nc", time_name="t")

    schema, _, _ = build(fp, unlimited_dimension="t")

    assert schema.unlimited_dimension == "t"
    assert schema.dimensions["t"].is_unlimited


def test_duplicate_names_are_rejected():
    schema = ArchiveSchema()
    schema.add_dimension("x", 4)

    with pytest.raises(SchemaError):
        schema.add_dimension("x", 5)

    schema.add_variable(Variable("x", np.dtype("float64"), ("x",)))
    with pytest.raises(SchemaError):
        schema.add_variable(Variable("x", np.dtype("float32"), ("x",)))


def test_only_one_unlimited_dimension():
    schema = ArchiveSchema()
    schema.add_dimension("time", None, unlimited=True)

    with pytest.raises(SchemaError, match="one unlimited"):
        schema.add_dimension("reftime", None, unlimited=True)


def test_variable_with_undefined_dimension():
    schema = ArchiveSchema()

    with pytest.raises(SchemaError, match="undefined dimensions"):
        schema.add_variable(Variable("temp", np.dtype("float32"), ("y", "x")))


def test_set_attr_moves_to_end():
    var = Variable("temp", np.dtype("float32"), attrs={"coordinates": "x y", "units": "K"})

    var.set_attr("coordinates", "lon lat")

    assert list(var.attrs) == ["units", "coordinates"]
