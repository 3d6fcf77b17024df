"""Data tagged with a location, and distance-weighted local averaging over them."""

from __future__ import annotations

import bisect
import copy
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Iterable, Iterator, Optional, Sequence, Union

import numpy as np

from .errors import IndexOutOfBoundsError

logger = logging.getLogger(__name__)


class Locality(ABC):
    """A position that can be ordered along one sorting direction."""

    @abstractmethod
    def sorting_value(self) -> float: ...

    @abstractmethod
    def distance_to(self, other: "Locality") -> float: ...

    def sorting_distance_to(self, other: "Locality") -> float:
        """Separation along the sorting direction; never larger than :meth:`distance_to`."""
        return abs(self.sorting_value() - other.sorting_value())


class ScalarLocality(Locality):
    def __init__(self, value: float) -> None:
        self.value = float(value)

    def sorting_value(self) -> float:
        return self.value

    def distance_to(self, other: Locality) -> float:
        return abs(self.value - other.sorting_value())

    def __repr__(self) -> str:
        return f"ScalarLocality({self.value!r})"


class VectorLocality(Locality):
    """Point in N dimensions, sorted by its first coordinate."""

    def __init__(self, coords: Sequence[float]) -> None:
        self.coords = np.asarray(coords, dtype=np.float64).reshape(-1)
        if self.coords.size == 0:
            raise ValueError("vector locality needs at least one coordinate")

    def sorting_value(self) -> float:
        return float(self.coords[0])

    def distance_to(self, other: Locality) -> float:
        if not isinstance(other, VectorLocality):
            return abs(self.sorting_value() - other.sorting_value())
        return float(np.linalg.norm(self.coords - other.coords))

    def __repr__(self) -> str:
        return f"VectorLocality({self.coords.tolist()})"


def _locality_of(item: Union[Locality, "LocalizedData"]) -> Locality:
    return item.locality if isinstance(item, LocalizedData) else item


class LocalizedData(ABC):
    """A datum measured at a locality, with a noise weight and a measurement count.

    ``weight`` is a proper noise weight (1/rms^2). Averaging another datum in
    blends the values through :meth:`_average_with` and adds up the
    measurement counts.
    """

    def __init__(self, locality: Locality, data: Any, rms: float = 1.0) -> None:
        if rms <= 0.0:
            raise ValueError(f"rms must be positive, got {rms}")
        self.locality = locality
        self.data = data
        self.weight = 1.0 / (rms * rms)
        self.measurements = 1

    def get_locality(self) -> Locality:
        return self.locality

    def set_locality(self, locality: Locality) -> None:
        self.locality = locality

    def get_count(self) -> int:
        return self.measurements

    def compare_to(self, other: Union[Locality, "LocalizedData"]) -> int:
        a = self.locality.sorting_value()
        b = _locality_of(other).sorting_value()
        return (a > b) - (a < b)

    def distance_to(self, other: Union[Locality, "LocalizedData"]) -> float:
        return self.locality.distance_to(_locality_of(other))

    def sorting_distance_to(self, other: Union[Locality, "LocalizedData"]) -> float:
        return self.locality.sorting_distance_to(_locality_of(other))

    def rms(self) -> float:
        return 1.0 / math.sqrt(self.weight) if self.weight > 0.0 else math.inf

    def no_data(self) -> None:
        self.data = self.data * 0.0
        self.weight = 0.0
        self.measurements = 0

    def new_instance_at(self, locality: Locality) -> "LocalizedData":
        """An empty datum of the same kind placed at ``locality``."""
        instance = copy.copy(self)
        instance.locality = locality
        instance.data = copy.deepcopy(self.data)
        instance.no_data()
        return instance

    @abstractmethod
    def data_distance_to(self, reference: Any) -> float: ...

    def is_consistent_with(self, reference: Any) -> bool:
        """True when ``reference`` lies within 5 sigma of this datum."""
        if reference is None:
            return True
        return self.data_distance_to(reference) * math.sqrt(self.weight) < 5.0

    @abstractmethod
    def _average_with(self, data: Any, env: Any, weight: float) -> None:
        """Blend ``data`` with total weight ``weight`` into this datum."""

    def average(self, other: "LocalizedData", env: Any = None, relative_weight: float = 1.0) -> None:
        self._average_with(other.data, env, relative_weight * other.weight)
        self.measurements += other.measurements

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.locality!r}, {self.data!r}, weight={self.weight!r})"


class WeightedData(LocalizedData):
    """Weighted-mean blending of float scalars or numpy vectors."""

    def data_distance_to(self, reference: Any) -> float:
        return float(np.linalg.norm(np.asarray(self.data, dtype=np.float64) - np.asarray(reference, dtype=np.float64)))

    def _average_with(self, data: Any, env: Any, weight: float) -> None:
        total = self.weight + weight
        if total <= 0.0:
            return
        self.data = self.data * (self.weight / total) + data * (weight / total)
        self.weight = total


class LocalAverage:
    """Localized records kept sorted by their locality's sorting value.

    ``span`` is the largest normalized distance (in units of the averaging
    radius) that still contributes to a local average.
    """

    def __init__(self, records: Iterable[LocalizedData] = (), span: float = 3.0) -> None:
        self.span = float(span)
        self._records: list[LocalizedData] = []
        self._keys: list[float] = []
        self.extend(records)

    def add(self, record: LocalizedData) -> None:
        key = record.locality.sorting_value()
        pos = bisect.bisect_right(self._keys, key)
        self._keys.insert(pos, key)
        self._records.insert(pos, record)

    def extend(self, records: Iterable[LocalizedData]) -> None:
        for record in records:
            self.add(record)

    def __len__(self) -> int:
        return len(self._records)

    def __getitem__(self, i: int) -> LocalizedData:
        return self._records[i]

    def __iter__(self) -> Iterator[LocalizedData]:
        return iter(self._records)

    def index_before(self, locality: Locality) -> int:
        """Position of the last record sorting strictly before ``locality`` (0 at the lower edge)."""
        if not self._records:
            raise IndexOutOfBoundsError("lookup on empty local average")
        key = locality.sorting_value()
        if key < self._keys[0]:
            raise IndexOutOfBoundsError(f"{locality!r} precedes lookup range")
        if key > self._keys[-1]:
            raise IndexOutOfBoundsError(f"{locality!r} is beyond lookup range")
        return max(bisect.bisect_left(self._keys, key) - 1, 0)

    def relative_weight(self, normalized_distance: float) -> float:
        return math.exp(-0.5 * normalized_distance * normalized_distance)

    def _average_into(self, record: LocalizedData, radius: float, reference: Any, mean: LocalizedData) -> bool:
        # False once the walk has left the reachable window along the sorting axis
        if record.sorting_distance_to(mean) > self.span * radius:
            return False
        if reference is not None and not record.is_consistent_with(reference):
            return True
        d = record.distance_to(mean) / radius
        if d > self.span:
            return True
        mean.average(record, relative_weight=self.relative_weight(d))
        return True

    def get_local_average(self, locality: Locality, radius: float, reference: Any = None) -> LocalizedData:
        """Gaussian distance-weighted mean of the records around ``locality``.

        When ``reference`` is given, records inconsistent with it are skipped.
        """
        if radius <= 0.0:
            raise ValueError(f"averaging radius must be positive, got {radius}")
        i0 = self.index_before(locality)
        mean = self._records[i0].new_instance_at(locality)
        for i in range(i0, -1, -1):
            if not self._average_into(self._records[i], radius, reference, mean):
                break
        for i in range(i0 + 1, len(self._records)):
            if not self._average_into(self._records[i], radius, reference, mean):
                break
        logger.debug("local average at %r from %d measurements", locality, mean.get_count())
        return mean

    def get_checked_local_average(self, locality: Locality, radius: float) -> LocalizedData:
        """Local average that discards outliers relative to a first unchecked pass."""
        first = self.get_local_average(locality, radius)
        return self.get_local_average(locality, radius, first.data)


__all__ = [
    "Locality",
    "ScalarLocality",
    "VectorLocality",
    "LocalizedData",
    "WeightedData",
    "LocalAverage",
]
