"""Latitude/longitude of every grid cell from 1D projected axes."""

from __future__ import annotations
import logging

import numpy as np
import pyproj

from .geodesy import GeodesyService
from .source import CoordinateAxis

logger = logging.getLogger(__name__)

KILOMETER_UNITS = ("km", "kilometer", "kilometers", "kilometre", "kilometres")


def _axis_values(axis: CoordinateAxis, crs: pyproj.CRS) -> np.ndarray:
    values = axis.values
    if crs.is_projected and axis.units in KILOMETER_UNITS:
        return values * 1000.0
    return values


def interleave_xy(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Flat buffer of (x, y) pairs, Y outer and X inner.

    Cell (iy, ix) is at index 2*(iy*nx + ix).

    Examples
    --------
    >>> interleave_xy(np.array([0.0, 1.0]), np.array([10.0, 20.0]))
    array([ 0., 10.,  1., 10.,  0., 20.,  1., 20.])
    """
    nx, ny = len(x), len(y)
    buffer = np.empty(2 * nx * ny, dtype=np.float64)
    xx, yy = np.meshgrid(x, y)
    buffer[0::2] = xx.ravel()
    buffer[1::2] = yy.ravel()
    return buffer


class CoordinateProjector:
    """Compute 2D latitude and longitude arrays for a grid.

    Parameters
    ----------
    geodesy : GeodesyService, optional
        service used to transform coordinates, by default a lenient
        GeodesyService
    """

    def __init__(self, geodesy: GeodesyService | None = None) -> None:
        self.geodesy = geodesy or GeodesyService()

    def transform_to_latlon(
        self, x: CoordinateAxis, y: CoordinateAxis, crs: pyproj.CRS
    ) -> np.ndarray:
        """Interleaved (lon, lat) buffer, Y outer and X inner."""
        buffer = interleave_xy(_axis_values(x, crs), _axis_values(y, crs))
        buffer[:] = self.geodesy.transform_to_geographic(crs, buffer)
        return buffer

    def project(
        self, x: CoordinateAxis, y: CoordinateAxis, crs: pyproj.CRS
    ) -> tuple[np.ndarray, np.ndarray]:
        """Latitude and longitude of every grid cell.

        Parameters
        ----------
        x, y : CoordinateAxis
            1D coordinate axes of the grid
        crs : pyproj.CRS
            CRS of the axes

        Returns
        -------
        tuple[np.ndarray, np.ndarray]
            lat and lon, each with shape (ny, nx)

        """
        nx, ny = len(x), len(y)
        logger.debug("Projecting %d x %d grid from %s", ny, nx, crs.name)
        buffer = self.transform_to_latlon(x, y, crs)
        lon = buffer[0::2].reshape(ny, nx)
        lat = buffer[1::2].reshape(ny, nx)
        return lat, lon

    def transform_to_latlon_columns(
        self, x: CoordinateAxis, y: CoordinateAxis, crs: pyproj.CRS
    ) -> tuple[np.ndarray, np.ndarray]:
        """Flat lon and lat arrays ordered X outer and Y inner.

        This is the column-major ordering used by NetCDF projection
        utilities, where cell (ix, iy) is at index ix*ny + iy.
        """
        lat, lon = self.project(x, y, crs)
        return lon.T.ravel(), lat.T.ravel()
