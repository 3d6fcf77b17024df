"""Images with FITS image-HDU export and import through :mod:`astropy.io.fits`."""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

import numpy as np
from astropy.io import fits

from .errors import FitsExportError
from .grid import CartesianGrid
from .index import Index
from .values import FlaggedValues, SizeLike

logger = logging.getLogger(__name__)

FITS_DTYPES: dict[str, np.dtype] = {
    "float32": np.dtype(np.float32),
    "float64": np.dtype(np.float64),
    "int16": np.dtype(np.int16),
    "int32": np.dtype(np.int32),
    "int64": np.dtype(np.int64),
    "uint8": np.dtype(np.uint8),
}

DataTypeLike = Union[str, type, np.dtype]


def resolve_fits_dtype(data_type: DataTypeLike) -> np.dtype:
    """Map a requested storage class to one of the FITS image numeric types."""
    if data_type is float:
        return FITS_DTYPES["float64"]
    if data_type is int:
        return FITS_DTYPES["int32"]
    if isinstance(data_type, str):
        key = data_type.strip().lower()
        if key in FITS_DTYPES:
            return FITS_DTYPES[key]
        raise FitsExportError(f"unsupported FITS data type {data_type!r} (supported {sorted(FITS_DTYPES)})")
    try:
        dtype = np.dtype(data_type)
    except TypeError as exc:
        raise FitsExportError(f"unsupported FITS data type {data_type!r}") from exc
    if dtype not in FITS_DTYPES.values():
        raise FitsExportError(f"unsupported FITS data type {dtype} (supported {sorted(FITS_DTYPES)})")
    return dtype


def _blank_value(dtype: np.dtype) -> int:
    info = np.iinfo(dtype)
    return int(info.max) if info.min == 0 else int(info.min)


def _convert_for_export(data: np.ndarray, valid: np.ndarray, dtype: np.dtype) -> tuple[np.ndarray, Optional[int]]:
    """Return the stored payload and the ``BLANK`` value marking invalid integer cells."""
    if np.issubdtype(dtype, np.floating):
        with np.errstate(over="ignore", invalid="ignore"):
            out = np.where(valid, data, np.nan).astype(dtype)
        finite_in = np.isfinite(data) & valid
        if np.any(~np.isfinite(out[finite_in])):
            raise FitsExportError(f"values overflow {dtype} storage")
        return out, None
    kept = data[valid]
    if not np.all(np.isfinite(kept)):
        raise FitsExportError(f"non-finite values cannot be stored as {dtype}")
    info = np.iinfo(dtype)
    blank = None if valid.all() else _blank_value(dtype)
    low = info.min + 1 if blank == info.min else info.min
    high = info.max - 1 if blank == info.max else info.max
    rounded = np.rint(kept) if np.issubdtype(kept.dtype, np.floating) else kept
    if rounded.size and (rounded.min() < low or rounded.max() > high):
        raise FitsExportError(f"values in [{rounded.min()}, {rounded.max()}] exceed {dtype} range [{low}, {high}]")
    out = np.full(data.shape, 0 if blank is None else blank, dtype=dtype)
    out[valid] = rounded.astype(dtype)
    return out, blank


class Image(FlaggedValues):
    """Flagged array with a content id, a unit label and an optional coordinate grid.

    Grid axes follow FITS order, so grid axis 0 runs along the last numpy axis
    (``NAXIS1``); :meth:`coords_at` reverses the index accordingly.
    """

    def __init__(
        self,
        size: SizeLike = (),
        dtype: Any = np.float64,
        data: Optional[np.ndarray] = None,
        *,
        id: Optional[str] = None,
        unit: Optional[str] = None,
        grid: Optional[CartesianGrid] = None,
    ) -> None:
        super().__init__(size, dtype=dtype, data=data)
        self.id = id
        self.unit = unit
        self.grid = grid

    def copy(self, with_contents: bool = True) -> "Image":
        clone = super().copy(with_contents)
        if self.grid is not None:
            clone.grid = self.grid.copy()
        return clone

    def coords_at(self, index: Index) -> np.ndarray:
        if self.grid is None:
            raise ValueError("image has no coordinate grid")
        return self.grid.value_at(index.get_reversed())

    def index_at(self, coords) -> Index:
        if self.grid is None:
            raise ValueError("image has no coordinate grid")
        return self.grid.nearest_index(coords).get_reversed()

    def edit_header(self, header: fits.Header) -> None:
        if self.id:
            header["EXTNAME"] = (self.id, "Content identifier.")
        if self.unit:
            header["BUNIT"] = (self.unit, "Data unit")
        if self.grid is not None:
            self.grid.edit_header(header)

    def parse_header(self, header: fits.Header) -> None:
        extname = header.get("EXTNAME")
        self.id = str(extname) if extname else None
        bunit = header.get("BUNIT")
        self.unit = str(bunit) if bunit else None
        if CartesianGrid.has_header_keys(header, self.dimension()):
            self.grid = CartesianGrid.from_header(header, self.dimension())

    def _export_mask(self) -> np.ndarray:
        return self._flags == 0

    def create_hdu(self, data_type: DataTypeLike = "float32", *, primary: bool = False) -> fits.ImageHDU:
        """Export the image as a FITS image HDU stored in ``data_type``.

        Raises :class:`FitsExportError` when the data cannot be represented in
        the requested numeric class.
        """
        dtype = resolve_fits_dtype(data_type)
        if self._data.ndim == 0 or self._data.size == 0:
            raise FitsExportError(f"image {self.id!r} has no data to export")
        payload, blank = _convert_for_export(self._data, self._export_mask(), dtype)
        header = fits.Header()
        self.edit_header(header)
        hdu_cls = fits.PrimaryHDU if primary else fits.ImageHDU
        hdu = hdu_cls(data=payload, header=header)
        if blank is not None:
            hdu.header["BLANK"] = (blank, "Value of discarded pixels.")
        logger.debug("created %s %s as %s", hdu_cls.__name__, self.get_size_string(), dtype)
        return hdu

    def read_hdu(self, hdu: Union[fits.ImageHDU, fits.PrimaryHDU]) -> None:
        if hdu.data is None:
            raise ValueError("HDU has no image data")
        data = np.asarray(hdu.data)
        self._dtype = np.dtype(np.float64) if data.dtype.kind == "f" else data.dtype.newbyteorder("=")
        self._data = np.array(data, dtype=self._dtype)
        self._flags = np.zeros(self._data.shape, dtype=np.int32)
        if self._data.dtype.kind == "f":
            self._flags[~np.isfinite(self._data)] |= self.DISCARD_FLAG
        elif hdu.header.get("BLANK") is not None:
            self._flags[self._data == int(hdu.header["BLANK"])] |= self.DISCARD_FLAG
        self.parse_header(hdu.header)

    @classmethod
    def from_hdu(cls, hdu: Union[fits.ImageHDU, fits.PrimaryHDU]) -> "Image":
        image = cls()
        image.read_hdu(hdu)
        return image


__all__ = ["FITS_DTYPES", "Image", "resolve_fits_dtype"]
