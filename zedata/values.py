"""Indexed numeric containers: the abstract contract and numpy-backed implementations."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterator, Sequence, Union

import numpy as np

from .errors import IndexOutOfBoundsError, NonConformingError
from .index import Index, index_range

logger = logging.getLogger(__name__)

SizeLike = Union[Index, Sequence[int]]


def _as_shape(size: SizeLike) -> tuple[int, ...]:
    if isinstance(size, Index):
        return size.as_tuple()
    return tuple(int(v) for v in size)


class IndexedValues(ABC):
    """Container contract keyed by :class:`~zedata.index.Index`.

    ``get``/``set``/``add``/``scale``/``clear`` are only defined for indices
    where :meth:`contains_index` holds; anything else raises
    :class:`IndexOutOfBoundsError`. Binary container operations must call
    :meth:`conforms_to` before touching any cell.
    """

    @abstractmethod
    def get_size(self) -> Index: ...

    @abstractmethod
    def get(self, index: Index) -> Any: ...

    @abstractmethod
    def set(self, index: Index, value: Any) -> None: ...

    @abstractmethod
    def clear(self, index: Index) -> None: ...

    def dimension(self) -> int:
        return self.get_size().dimension()

    def capacity(self) -> int:
        return self.get_size().get_volume()

    def get_size_string(self) -> str:
        return self.get_size().to_string("x")

    def index_instance(self) -> Index:
        return Index.from_shape([0] * self.dimension())

    def copy_of_index(self, index: Index) -> Index:
        return index.copy()

    def contains_index(self, index: Index) -> bool:
        size = self.get_size()
        if index.dimension() != size.dimension():
            return False
        return all(0 <= v < n for v, n in zip(index, size))

    def conforms_to(self, size: Union[SizeLike, "IndexedValues"]) -> bool:
        if isinstance(size, IndexedValues):
            size = size.get_size()
        return self.get_size().as_tuple() == _as_shape(size)

    def _check_index(self, index: Index) -> None:
        if not self.contains_index(index):
            raise IndexOutOfBoundsError(f"index {index} outside {self.get_size_string()}")

    def _check_conforming(self, other: "IndexedValues") -> None:
        if not self.conforms_to(other):
            raise NonConformingError(f"size mismatch {self.get_size_string()} vs. {other.get_size_string()}")

    def add(self, index: Index, value: Any) -> None:
        self.set(index, self.get(index) + value)

    def scale(self, index: Index, factor: float) -> None:
        self.set(index, self.get(index) * factor)

    def iter_indices(self) -> Iterator[Index]:
        return index_range(self.index_instance(), self.get_size())

    def combine(self, other: "IndexedValues", op: Callable[[Any, Any], Any]) -> None:
        """Replace each cell with ``op(self[i], other[i])`` over the shared shape."""
        self._check_conforming(other)
        for index in self.iter_indices():
            self.set(index, op(self.get(index), other.get(index)))


class ArrayValues(IndexedValues):
    """Numpy-backed container of any dimensionality.

    Resizing through :meth:`set_size` is destructive: the previous content is
    dropped and a zero-filled array of the new shape is allocated. Arithmetic on
    integer containers truncates results toward zero.
    """

    def __init__(self, size: SizeLike = (), dtype: Any = np.float64, data: np.ndarray | None = None) -> None:
        self._dtype = np.dtype(dtype)
        if data is not None:
            self._data = np.array(data, dtype=self._dtype, copy=True)
        else:
            self._data = np.zeros(_as_shape(size), dtype=self._dtype)

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def element_type(self) -> np.dtype:
        return self._dtype

    @property
    def shape(self) -> tuple[int, ...]:
        return self._data.shape

    def get_size(self) -> Index:
        return Index.from_shape(self._data.shape)

    def dimension(self) -> int:
        return self._data.ndim

    def capacity(self) -> int:
        return int(self._data.size)

    def conforms_to(self, size: Union[SizeLike, IndexedValues]) -> bool:
        if isinstance(size, ArrayValues):
            return self._data.shape == size._data.shape
        return super().conforms_to(size)

    def set_size(self, size: SizeLike) -> None:
        shape = _as_shape(size)
        if any(n < 0 for n in shape):
            raise ValueError(f"negative size {shape}")
        logger.debug("%s resized %s -> %s", type(self).__name__, self._data.shape, shape)
        self._data = np.zeros(shape, dtype=self._dtype)

    def get(self, index: Index) -> Any:
        self._check_index(index)
        return self._data[index.as_tuple()].item()

    def set(self, index: Index, value: Any) -> None:
        self._check_index(index)
        self._data[index.as_tuple()] = value

    def add(self, index: Index, value: Any) -> None:
        self._check_index(index)
        self._data[index.as_tuple()] += value

    def scale(self, index: Index, factor: float) -> None:
        self._check_index(index)
        self._data[index.as_tuple()] *= factor

    def clear(self, index: Index) -> None:
        self._check_index(index)
        self._data[index.as_tuple()] = 0

    def fill(self, value: Any) -> None:
        self._data.fill(value)

    def scale_all(self, factor: float) -> None:
        np.multiply(self._data, factor, out=self._data, casting="unsafe")

    def add_values(self, other: "ArrayValues", factor: float = 1.0) -> None:
        self._check_conforming(other)
        np.add(self._data, factor * other._data, out=self._data, casting="unsafe")

    def subtract_values(self, other: "ArrayValues") -> None:
        self.add_values(other, -1.0)

    def copy(self, with_contents: bool = True) -> "ArrayValues":
        clone = object.__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone._data = self._data.copy() if with_contents else np.zeros_like(self._data)
        return clone


class FlaggedValues(ArrayValues):
    """Array values with a parallel flag array marking invalid cells.

    A cell is valid when none of its flag bits are set and its value is finite.
    :meth:`discard` flags a cell without touching its value, so readers must
    check :meth:`is_valid` before trusting :meth:`get`.
    """

    DISCARD_FLAG = 1

    def __init__(self, size: SizeLike = (), dtype: Any = np.float64, data: np.ndarray | None = None) -> None:
        super().__init__(size, dtype=dtype, data=data)
        self._flags = np.zeros(self._data.shape, dtype=np.int32)

    @property
    def flags(self) -> np.ndarray:
        return self._flags

    def set_size(self, size: SizeLike) -> None:
        super().set_size(size)
        self._flags = np.zeros(self._data.shape, dtype=np.int32)

    def is_valid(self, index: Index) -> bool:
        self._check_index(index)
        key = index.as_tuple()
        return bool(self._flags[key] == 0 and np.isfinite(self._data[key]))

    def valid_mask(self) -> np.ndarray:
        return (self._flags == 0) & np.isfinite(self._data)

    def count_valid(self) -> int:
        return int(np.count_nonzero(self.valid_mask()))

    def discard(self, index: Index) -> None:
        self._check_index(index)
        self._flags[index.as_tuple()] |= self.DISCARD_FLAG

    def unflag(self, index: Index) -> None:
        self._check_index(index)
        self._flags[index.as_tuple()] = 0

    def clear(self, index: Index) -> None:
        super().clear(index)
        self._flags[index.as_tuple()] = 0

    def copy(self, with_contents: bool = True) -> "FlaggedValues":
        clone = super().copy(with_contents)
        clone._flags = self._flags.copy() if with_contents else np.zeros_like(self._flags)
        return clone


__all__ = ["IndexedValues", "ArrayValues", "FlaggedValues"]
