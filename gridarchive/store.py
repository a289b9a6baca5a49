"""NetCDF storage of an archive."""

from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any, Sequence

import netCDF4
import numpy as np

from .exceptions import ArchiveIOError

logger = logging.getLogger(__name__)


def _nc_datatype(dtype: Any) -> Any:
    dtype = np.dtype(dtype)
    if dtype.kind in ("O", "U"):
        return str
    return dtype


class NetCDFStore:
    """Dimension, variable and attribute primitives on a NetCDF file.

    Automatic masking and scaling is turned off, values are written and read
    exactly as stored.

    Examples
    --------
    >>> store = NetCDFStore.create("archive.nc")  # doctest: +SKIP
    >>> store.add_unlimited_dimension("time")  # doctest: +SKIP
    >>> store.add_dimension("y", 3)  # doctest: +SKIP
    """

    def __init__(self, nc: netCDF4.Dataset, filename: str | Path) -> None:
        self._nc = nc
        self._nc.set_auto_maskandscale(False)
        self.filename = Path(filename)

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<gridarchive.NetCDFStore> {self.filename} ({state})"

    @classmethod
    def create(
        cls, filename: str | Path, file_format: str = "NETCDF4", clobber: bool = True
    ) -> "NetCDFStore":
        try:
            nc = netCDF4.Dataset(str(filename), "w", format=file_format, clobber=clobber)
        except (OSError, RuntimeError) as e:
            raise ArchiveIOError(f"cannot create archive {filename}: {e}") from e
        return cls(nc, filename)

    @classmethod
    def open(cls, filename: str | Path, mode: str = "a") -> "NetCDFStore":
        path = Path(filename)
        if not path.exists():
            raise FileNotFoundError(path)
        try:
            nc = netCDF4.Dataset(str(filename), mode)
        except (OSError, RuntimeError) as e:
            raise ArchiveIOError(f"cannot open archive {filename}: {e}") from e
        return cls(nc, filename)

    @property
    def is_open(self) -> bool:
        return bool(self._nc.isopen())

    def _check_open(self) -> None:
        if not self.is_open:
            raise ArchiveIOError(f"archive {self.filename} is closed")

    # --- definition ---

    def add_dimension(self, name: str, length: int) -> None:
        self._check_open()
        try:
            self._nc.createDimension(name, length)
        except (RuntimeError, ValueError) as e:
            raise ArchiveIOError(f"cannot add dimension '{name}': {e}") from e

    def add_unlimited_dimension(self, name: str) -> None:
        self._check_open()
        try:
            self._nc.createDimension(name, None)
        except (RuntimeError, ValueError) as e:
            raise ArchiveIOError(f"cannot add dimension '{name}': {e}") from e

    def add_variable(
        self,
        name: str,
        dtype: Any,
        dims: Sequence[str],
        fill_value: Any = None,
    ) -> None:
        self._check_open()
        try:
            self._nc.createVariable(
                name, _nc_datatype(dtype), tuple(dims), fill_value=fill_value
            )
        except (RuntimeError, ValueError, TypeError) as e:
            raise ArchiveIOError(f"cannot add variable '{name}': {e}") from e

    def set_variable_attribute(self, var: str, name: str, value: Any) -> None:
        self._check_open()
        try:
            self._nc.variables[var].setncattr(name, value)
        except (RuntimeError, AttributeError, TypeError) as e:
            raise ArchiveIOError(
                f"cannot set attribute '{name}' on variable '{var}': {e}"
            ) from e

    def set_global_attribute(self, name: str, value: Any) -> None:
        self._check_open()
        try:
            self._nc.setncattr(name, value)
        except (RuntimeError, AttributeError, TypeError) as e:
            raise ArchiveIOError(f"cannot set global attribute '{name}': {e}") from e

    # --- data ---

    def write(
        self, name: str, data: np.ndarray, offset: Sequence[int] | None = None
    ) -> None:
        """Write data to a variable, starting at offset (all zeros by default)."""
        self._check_open()
        data = np.asarray(data)
        var = self._nc.variables[name]
        if offset is None:
            offset = (0,) * var.ndim
        if len(offset) != var.ndim or data.ndim != var.ndim:
            raise ValueError(
                f"'{name}' has {var.ndim} dimensions, got data with {data.ndim} "
                f"and offset with {len(offset)}"
            )
        index = tuple(slice(o, o + n) for o, n in zip(offset, data.shape))
        try:
            var[index] = data
        except (RuntimeError, IndexError, ValueError) as e:
            raise ArchiveIOError(f"cannot write '{name}' at {tuple(offset)}: {e}") from e

    def read(self, name: str) -> np.ndarray:
        self._check_open()
        try:
            return np.asarray(self._nc.variables[name][...])
        except (RuntimeError, IndexError) as e:
            raise ArchiveIOError(f"cannot read '{name}': {e}") from e

    # --- introspection ---

    @property
    def dimensions(self) -> dict[str, tuple[int, bool]]:
        """Dimension name -> (current length, is unlimited)."""
        self._check_open()
        return {
            name: (len(dim), dim.isunlimited()) for name, dim in self._nc.dimensions.items()
        }

    @property
    def variables(self) -> dict[str, tuple[np.dtype, tuple[str, ...], dict[str, Any]]]:
        """Variable name -> (dtype, dimension names, attributes)."""
        self._check_open()
        return {
            name: (
                var.dtype if isinstance(var.dtype, np.dtype) else np.dtype(object),
                tuple(var.dimensions),
                {k: var.getncattr(k) for k in var.ncattrs()},
            )
            for name, var in self._nc.variables.items()
        }

    @property
    def global_attributes(self) -> dict[str, Any]:
        self._check_open()
        return {k: self._nc.getncattr(k) for k in self._nc.ncattrs()}

    # --- lifecycle ---

    def flush(self) -> None:
        self._check_open()
        try:
            self._nc.sync()
        except RuntimeError as e:
            raise ArchiveIOError(f"cannot flush {self.filename}: {e}") from e

    def close(self) -> None:
        """Close the file; closing twice is an ArchiveIOError."""
        self._check_open()
        try:
            self._nc.close()
        except RuntimeError as e:
            raise ArchiveIOError(f"cannot close {self.filename}: {e}") from e

    def freeze_unlimited(self) -> None:
        """Convert unlimited dimensions to fixed ones of their current length.

        NetCDF cannot redefine a dimension in place, so the file is rewritten
        and the store is closed. A zero-length unlimited dimension cannot be
        represented as fixed and is kept unlimited.
        """
        self._check_open()
        file_format = self._nc.data_model
        self.close()

        tmp = self.filename.with_name(self.filename.name + ".freeze")
        try:
            with netCDF4.Dataset(str(self.filename), "r") as src, netCDF4.Dataset(
                str(tmp), "w", format=file_format
            ) as dst:
                src.set_auto_maskandscale(False)
                dst.set_auto_maskandscale(False)
                dst.setncatts({k: src.getncattr(k) for k in src.ncattrs()})
                for name, dim in src.dimensions.items():
                    if dim.isunlimited() and len(dim) == 0:
                        logger.warning("Unlimited dimension '%s' is empty, kept unlimited", name)
                        dst.createDimension(name, None)
                    else:
                        dst.createDimension(name, len(dim))
                for name, var in src.variables.items():
                    attrs = {k: var.getncattr(k) for k in var.ncattrs()}
                    fill_value = attrs.pop("_FillValue", None)
                    out = dst.createVariable(
                        name, var.datatype, var.dimensions, fill_value=fill_value
                    )
                    out.setncatts(attrs)
                    if var.size > 0:
                        out[...] = var[...]
            os.replace(tmp, self.filename)
        except (OSError, RuntimeError) as e:
            if tmp.exists():
                tmp.unlink()
            raise ArchiveIOError(f"cannot freeze {self.filename}: {e}") from e
