from __future__ import annotations
import logging
from typing import Any, Mapping
import warnings

import numpy as np
import pyproj
from pyproj.exceptions import CRSError, ProjError

from .exceptions import CRSResolutionError, TransformError

logger = logging.getLogger(__name__)

GEOGRAPHIC_CRS = pyproj.CRS.from_epsg(4326)


class CRSConversionWarning(Warning):
    """Used when an ad hoc (ballpark) transform is performed."""

    pass


class GeodesyService:
    """Resolve coordinate systems and transform coordinates to geographic.

    Transforms are looked up strictly first. When no exact operation exists
    between the source CRS and WGS84 (e.g. a sphere based CRS without datum
    shift parameters), a ballpark transform is used instead and a
    CRSConversionWarning is emitted.

    Parameters
    ----------
    lenient : bool, optional
        allow the ballpark fallback, by default True
    """

    def __init__(self, lenient: bool = True) -> None:
        self.lenient = lenient

    def __repr__(self) -> str:
        return f"GeodesyService(lenient={self.lenient})"

    def resolve_crs(self, coordinate_system: Any) -> pyproj.CRS:
        """Resolve a coordinate system description to a pyproj.CRS.

        Parameters
        ----------
        coordinate_system : pyproj.CRS, dict, str or int
            CF grid mapping attributes (dict), or anything accepted by
            'pyproj.CRS.from_user_input' such as "EPSG:32633" or a WKT string

        Returns
        -------
        pyproj.CRS

        Raises
        ------
        CRSResolutionError
            the coordinate system is missing or cannot be interpreted

        Examples
        --------
        >>> GeodesyService().resolve_crs("EPSG:32633").to_epsg()
        32633
        >>> cf = {
        ...     "grid_mapping_name": "latitude_longitude",
        ...     "semi_major_axis": 6378137.0,
        ...     "inverse_flattening": 298.257223563,
        ... }
        >>> GeodesyService().resolve_crs(cf).is_geographic
        True
        """
        if coordinate_system is None:
            raise CRSResolutionError("source has no coordinate system")
        if isinstance(coordinate_system, pyproj.CRS):
            return coordinate_system
        try:
            if isinstance(coordinate_system, Mapping):
                return pyproj.CRS.from_cf(dict(coordinate_system))
            return pyproj.CRS.from_user_input(coordinate_system)
        except CRSError as e:
            raise CRSResolutionError(
                f"cannot resolve coordinate system {coordinate_system!r}: {e}"
            ) from e

    def _transform(
        self, crs: pyproj.CRS, x: np.ndarray, y: np.ndarray, allow_ballpark: bool
    ) -> tuple[np.ndarray, np.ndarray]:
        transformer = pyproj.Transformer.from_crs(
            crs, GEOGRAPHIC_CRS, always_xy=True, allow_ballpark=allow_ballpark
        )
        lon, lat = transformer.transform(x, y, errcheck=True)
        lon = np.asarray(lon, dtype=np.float64)
        lat = np.asarray(lat, dtype=np.float64)
        if not (np.all(np.isfinite(lon)) and np.all(np.isfinite(lat))):
            raise ProjError("transform produced non-finite coordinates")
        return lon, lat

    def transform_to_geographic(self, crs: pyproj.CRS, xy: np.ndarray) -> np.ndarray:
        """Transform an interleaved buffer of (x, y) pairs to (lon, lat) pairs.

        Parameters
        ----------
        crs : pyproj.CRS
            CRS of the x, y values
        xy : np.ndarray
            flat buffer [x0, y0, x1, y1, ...]

        Returns
        -------
        np.ndarray
            flat buffer [lon0, lat0, lon1, lat1, ...] in degrees

        Raises
        ------
        TransformError
            no transform to geographic coordinates could be applied

        """
        xy = np.asarray(xy, dtype=np.float64)
        if xy.ndim != 1 or len(xy) % 2 != 0:
            raise ValueError("xy must be a flat buffer of (x, y) pairs")

        logger.debug("Transforming %d points from %s", len(xy) // 2, crs.name)
        x = xy[0::2].copy()
        y = xy[1::2].copy()
        try:
            lon, lat = self._transform(crs, x, y, allow_ballpark=False)
        except ProjError as e:
            if not self.lenient:
                raise TransformError(
                    f"no transform from '{crs.name}' to geographic: {e}"
                ) from e
            warnings.warn(
                message=f"No exact transform from '{crs.name}' to WGS84, "
                "using a ballpark transform",
                category=CRSConversionWarning,
            )
            try:
                lon, lat = self._transform(crs, x, y, allow_ballpark=True)
            except ProjError as e2:
                raise TransformError(
                    f"no transform from '{crs.name}' to geographic: {e2}"
                ) from e2

        out = np.empty_like(xy)
        out[0::2] = lon
        out[1::2] = lat
        return out
