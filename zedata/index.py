"""Integer N-dimensional indices used as container keys."""

from __future__ import annotations

import math
from typing import Iterable, Iterator, Optional, Sequence

import numpy as np

from .errors import IndexOutOfBoundsError, NonConformingError


def _truncated_div(a: int, b: int) -> int:
    # C-style integer division (rounds toward zero)
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def _rounded_div(a: int, b: int) -> int:
    q = _truncated_div(a, b)
    r = a - q * b
    if 2 * abs(r) >= abs(b):
        q += 1 if (a >= 0) == (b >= 0) else -1
    return q


def _pow2floor(value: int) -> int:
    if value <= 0:
        return 0
    return 1 << (int(value).bit_length() - 1)


def _pow2ceil(value: int) -> int:
    floor = _pow2floor(value)
    return floor if value == floor else floor << 1


class Index:
    """Mutable integer coordinate with a fixed number of dimensions."""

    __slots__ = ("_values",)

    def __init__(self, values: Iterable[int] = ()) -> None:
        self._values = [int(v) for v in values]

    @classmethod
    def zeros(cls, dimension: int) -> "Index":
        if dimension < 0:
            raise ValueError(f"negative index dimension {dimension}")
        return Index([0] * dimension)

    @classmethod
    def from_shape(cls, shape: Sequence[int]) -> "Index":
        """Build the index of the matching concrete type for a numpy-style shape."""
        if len(shape) == 1:
            return Index1D(*shape)
        if len(shape) == 2:
            return Index2D(*shape)
        if len(shape) == 3:
            return Index3D(*shape)
        return Index(shape)

    def dimension(self) -> int:
        return len(self._values)

    def _check_dim(self, dim: int) -> None:
        if not 0 <= dim < len(self._values):
            raise IndexOutOfBoundsError(f"dimension {dim} outside [0, {len(self._values)})")

    def _check_conforming(self, other: "Index") -> None:
        if other.dimension() != self.dimension():
            raise NonConformingError(f"index dimension mismatch {self.dimension()} vs. {other.dimension()}")

    def get_value(self, dim: int) -> int:
        self._check_dim(dim)
        return self._values[dim]

    def set_value(self, dim: int, value: int) -> None:
        self._check_dim(dim)
        self._values[dim] = int(value)

    def as_tuple(self) -> tuple[int, ...]:
        return tuple(self._values)

    def copy(self) -> "Index":
        clone = object.__new__(type(self))
        clone._values = list(self._values)
        return clone

    def fill(self, value: int) -> None:
        self._values = [int(value)] * len(self._values)

    def zero(self) -> None:
        self.fill(0)

    def increment(self, dim: int) -> int:
        value = self.get_value(dim) + 1
        self._values[dim] = value
        return value

    def decrement(self, dim: int) -> int:
        value = self.get_value(dim) - 1
        self._values[dim] = value
        return value

    def get_volume(self) -> int:
        return abs(math.prod(self._values))

    # Reversal

    def reverse_to(self, other: "Index") -> None:
        self._check_conforming(other)
        other._values = list(reversed(self._values))

    def get_reversed(self) -> "Index":
        reversed_index = self.copy()
        self.reverse_to(reversed_index)
        return reversed_index

    def set_reverse_order_of(self, other: "Index") -> None:
        other.reverse_to(self)

    # Arithmetic

    def _apply(self, a: "Index", b: "Index", op) -> None:
        self._check_conforming(a)
        self._check_conforming(b)
        self._values = [op(x, y) for x, y in zip(a._values, b._values)]

    def set_sum(self, a: "Index", b: "Index") -> None:
        self._apply(a, b, lambda x, y: x + y)

    def set_difference(self, a: "Index", b: "Index") -> None:
        self._apply(a, b, lambda x, y: x - y)

    def set_product(self, a: "Index", b: "Index") -> None:
        self._apply(a, b, lambda x, y: x * y)

    def set_ratio(self, numerator: "Index", denominator: "Index") -> None:
        self._apply(numerator, denominator, _truncated_div)

    def set_rounded_ratio(self, numerator: "Index", denominator: "Index") -> None:
        self._apply(numerator, denominator, _rounded_div)

    def add(self, other: "Index") -> None:
        self.set_sum(self, other)

    def subtract(self, other: "Index") -> None:
        self.set_difference(self, other)

    def multiply_by(self, factor: "Index") -> None:
        self.set_product(self, factor)

    def divide_by(self, denominator: "Index") -> None:
        self.set_ratio(self, denominator)

    def modulo(self, argument: "Index") -> None:
        # remainder keeps the sign of the dividend
        self._apply(self, argument, lambda x, y: x - y * _truncated_div(x, y))

    def wrap(self, size: "Index") -> None:
        self._apply(self, size, lambda x, y: x % abs(y))

    def limit(self, maximum: "Index") -> None:
        self._apply(self, maximum, min)

    def ensure(self, minimum: "Index") -> None:
        self._apply(self, minimum, max)

    def to_padded_fft_size(self) -> None:
        self._values = [_pow2ceil(v) for v in self._values]

    def to_truncated_fft_size(self) -> None:
        self._values = [_pow2floor(v) for v in self._values]

    def distance_to(self, other: "Index") -> float:
        self._check_conforming(other)
        return math.sqrt(sum((b - a) ** 2 for a, b in zip(self._values, other._values)))

    def to_vector(self, out: Optional[np.ndarray] = None) -> np.ndarray:
        if out is None:
            return np.asarray(self._values, dtype=np.float64)
        if out.shape != (self.dimension(),):
            raise NonConformingError(f"Size mismatch {out.size} vs. {self.dimension()}")
        out[:] = self._values
        return out

    # Python protocol

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[int]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, Index):
            return NotImplemented
        return self._values == other._values

    def __hash__(self) -> int:
        return hash((len(self._values), *self._values))

    def to_string(self, separator: str = ",") -> str:
        return separator.join(str(v) for v in self._values)

    def __str__(self) -> str:
        return self.to_string(",")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({', '.join(str(v) for v in self._values)})"


class Index1D(Index):
    __slots__ = ()

    def __init__(self, i: int = 0) -> None:
        super().__init__((i,))

    @property
    def i(self) -> int:
        return self._values[0]


class Index2D(Index):
    __slots__ = ()

    def __init__(self, i: int = 0, j: int = 0) -> None:
        super().__init__((i, j))

    @property
    def i(self) -> int:
        return self._values[0]

    @property
    def j(self) -> int:
        return self._values[1]


class Index3D(Index):
    __slots__ = ()

    def __init__(self, i: int = 0, j: int = 0, k: int = 0) -> None:
        super().__init__((i, j, k))

    @property
    def i(self) -> int:
        return self._values[0]

    @property
    def j(self) -> int:
        return self._values[1]

    @property
    def k(self) -> int:
        return self._values[2]


def index_range(start: Index, stop: Index) -> Iterator[Index]:
    """Yield every index in the half-open box ``[start, stop)``, last axis fastest.

    A fresh index object is yielded each time, so callers may keep references.
    """
    start._check_conforming(stop)
    ranges = [range(a, b) for a, b in zip(start, stop)]
    if not ranges or any(len(r) == 0 for r in ranges):
        return
    for point in np.ndindex(*(len(r) for r in ranges)):
        index = start.copy()
        index._values = [r[p] for r, p in zip(ranges, point)]
        yield index


__all__ = ["Index", "Index1D", "Index2D", "Index3D", "index_range"]
