from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

import numpy as np
from astropy.io import fits

from .errors import NonConformingError
from .index import Index

logger = logging.getLogger(__name__)

VectorLike = Union[Index, Sequence[float], np.ndarray]


class CartesianGrid:
    """Regular grid mapping (fractional) indices to coordinates along each axis.

    ``value_at(index) = reference + (index - reference_index) * resolution``
    and :meth:`index_of` is its inverse. Reference indices are 0-based; the
    FITS ``CRPIXn`` keywords written by :meth:`edit_header` are 1-based.
    """

    def __init__(self, dimension: int) -> None:
        if dimension <= 0:
            raise ValueError(f"grid dimension must be positive, got {dimension}")
        self._reference = np.zeros(dimension, dtype=np.float64)
        self._reference_index = np.zeros(dimension, dtype=np.float64)
        self._resolution = np.ones(dimension, dtype=np.float64)
        self.axis_labels: list[str] = [f"Axis {i + 1}" for i in range(dimension)]
        self.axis_units: list[Optional[str]] = [None] * dimension
        self.variant = 0
        self.first_axis = 1

    def dimension(self) -> int:
        return int(self._reference.size)

    def _vector(self, value: VectorLike) -> np.ndarray:
        if isinstance(value, Index):
            vec = value.to_vector()
        else:
            vec = np.asarray(value, dtype=np.float64)
        if np.ndim(vec) == 0:
            vec = np.full(self.dimension(), float(vec))
        if vec.shape != (self.dimension(),):
            raise NonConformingError(f"coordinate / grid mismatch: {vec.shape} vs. ({self.dimension()},)")
        return vec

    def get_reference(self) -> np.ndarray:
        return self._reference.copy()

    def set_reference(self, coords: VectorLike) -> None:
        self._reference = self._vector(coords).copy()

    def get_reference_index(self) -> np.ndarray:
        return self._reference_index.copy()

    def set_reference_index(self, index: VectorLike) -> None:
        self._reference_index = self._vector(index).copy()

    def get_resolution(self) -> np.ndarray:
        return self._resolution.copy()

    def set_resolution(self, delta: Union[float, VectorLike]) -> None:
        self._resolution = self._vector(delta).copy()

    def fits_variant(self) -> str:
        return "" if self.variant == 0 else chr(ord("A") + self.variant)

    def value_at(self, index: VectorLike) -> np.ndarray:
        return (self._vector(index) - self._reference_index) * self._resolution + self._reference

    def index_of(self, value: VectorLike) -> np.ndarray:
        if np.any(self._resolution == 0.0):
            raise ValueError("grid has zero resolution along at least one axis")
        return (self._vector(value) - self._reference) / self._resolution + self._reference_index

    def nearest_index(self, value: VectorLike) -> Index:
        offsets = np.floor(self.index_of(value) + 0.5).astype(int)
        return Index.from_shape([int(v) for v in offsets])

    def copy(self) -> "CartesianGrid":
        clone = CartesianGrid(self.dimension())
        clone._reference = self._reference.copy()
        clone._reference_index = self._reference_index.copy()
        clone._resolution = self._resolution.copy()
        clone.axis_labels = list(self.axis_labels)
        clone.axis_units = list(self.axis_units)
        clone.variant = self.variant
        clone.first_axis = self.first_axis
        return clone

    def edit_header(self, header: fits.Header) -> None:
        alt = self.fits_variant()
        for i in range(self.dimension()):
            key = f"{self.first_axis + i}{alt}"
            name = self.axis_labels[i]
            header[f"CTYPE{key}"] = (name, "Axis type")
            if self.axis_units[i]:
                header[f"CUNIT{key}"] = (self.axis_units[i], f"{name} unit")
            header[f"CRPIX{key}"] = (float(self._reference_index[i] + 1.0), f"{name} reference grid index (1-based)")
            header[f"CRVAL{key}"] = (float(self._reference[i]), f"{name} value at reference index")
            header[f"CDELT{key}"] = (float(self._resolution[i]), f"{name} spacing")

    def parse_header(self, header: fits.Header) -> None:
        alt = self.fits_variant()
        for i in range(self.dimension()):
            key = f"{self.first_axis + i}{alt}"
            self.axis_labels[i] = str(header.get(f"CTYPE{key}", f"Axis {self.first_axis + i}"))
            unit = header.get(f"CUNIT{key}")
            self.axis_units[i] = str(unit) if unit else None
            self._reference_index[i] = float(header.get(f"CRPIX{key}", 1.0)) - 1.0
            self._reference[i] = float(header.get(f"CRVAL{key}", 0.0))
            self._resolution[i] = float(header.get(f"CDELT{key}", 1.0))
        logger.debug("parsed %d-axis grid (variant %r) from header", self.dimension(), alt)

    @classmethod
    def from_header(cls, header: fits.Header, dimension: int | None = None) -> "CartesianGrid":
        if dimension is None:
            dimension = int(header.get("NAXIS", 0) or 0)
        grid = cls(dimension)
        grid.parse_header(header)
        return grid

    @staticmethod
    def has_header_keys(header: fits.Header, dimension: int, first_axis: int = 1) -> bool:
        return any(f"CRPIX{first_axis + i}" in header or f"CDELT{first_axis + i}" in header for i in range(dimension))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CartesianGrid):
            return NotImplemented
        return (
            np.array_equal(self._reference, other._reference)
            and np.array_equal(self._reference_index, other._reference_index)
            and np.array_equal(self._resolution, other._resolution)
            and self.variant == other.variant
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"CartesianGrid(reference={self._reference.tolist()}, "
            f"reference_index={self._reference_index.tolist()}, resolution={self._resolution.tolist()})"
        )


__all__ = ["CartesianGrid"]
