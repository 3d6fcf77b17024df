"""Running-sum to weighted-mean accumulation protocol.

An accumulator moves through an explicit cycle::

    IDLE --start_accumulation()--> ACCUMULATING --end_accumulation()--> FINALIZED
                                     ^      |
                                     +------+ accumulate() / merge()

``end_accumulation()`` divides the running sums by the accumulated weights,
so it may run exactly once per cycle; any out-of-order call raises
:class:`AccumulationStateError` instead of silently renormalizing twice.
"""

from __future__ import annotations

import enum
import math
from abc import ABC, abstractmethod
from typing import Callable, Generic, Iterable, TypeVar

from .errors import AccumulationStateError

T = TypeVar("T")
A = TypeVar("A", bound="Accumulating")


class AccumulationState(enum.Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FINALIZED = "finalized"


class Accumulating(ABC, Generic[T]):
    """Base class carrying the accumulation state machine.

    Subclasses implement the numeric hooks ``no_data``, ``_accumulate``,
    ``_merge`` and ``_normalize``; the public methods enforce ordering.
    """

    _state: AccumulationState = AccumulationState.IDLE

    @property
    def accumulation_state(self) -> AccumulationState:
        return self._state

    def _require(self, state: AccumulationState, action: str) -> None:
        if self._state is not state:
            raise AccumulationStateError(f"cannot {action} while {self._state.value}")

    @abstractmethod
    def no_data(self) -> None:
        """Reset the content to the 'no valid data' value (state is unchanged)."""

    @abstractmethod
    def _accumulate(self, x: T, weight: float, gain: float) -> None: ...

    @abstractmethod
    def _merge(self, partial: T) -> None: ...

    @abstractmethod
    def _normalize(self) -> None: ...

    def start_accumulation(self) -> None:
        if self._state is AccumulationState.ACCUMULATING:
            raise AccumulationStateError("accumulation already in progress")
        self.no_data()
        self._state = AccumulationState.ACCUMULATING

    def accumulate(self, x: T, weight: float = 1.0, gain: float = 1.0) -> None:
        """Fold ``x`` in with an extra multiplicative ``weight``.

        ``gain`` is divided out of ``x`` so that values from systems with a
        different calibration end up on a common scale.
        """
        self._require(AccumulationState.ACCUMULATING, "accumulate")
        self._accumulate(x, float(weight), float(gain))

    def merge(self, partial: T) -> None:
        """Fold in the running sums of another accumulator of the same kind."""
        self._require(AccumulationState.ACCUMULATING, "merge")
        if isinstance(partial, Accumulating) and partial._state is AccumulationState.FINALIZED:
            raise AccumulationStateError("cannot merge an already finalized partial")
        self._merge(partial)

    def end_accumulation(self) -> None:
        self._require(AccumulationState.ACCUMULATING, "end accumulation")
        self._normalize()
        self._state = AccumulationState.FINALIZED


class WeightedPoint(Accumulating["WeightedPoint"]):
    """A scalar value with a noise weight (1/sigma^2)."""

    def __init__(self, value: float = 0.0, weight: float = 0.0) -> None:
        self.value = float(value)
        self.weight = float(weight)
        self._state = AccumulationState.IDLE

    def copy(self) -> "WeightedPoint":
        clone = WeightedPoint(self.value, self.weight)
        clone._state = self._state
        return clone

    def rms(self) -> float:
        return 1.0 / math.sqrt(self.weight) if self.weight > 0.0 else math.inf

    def is_nan(self) -> bool:
        return math.isnan(self.value) or self.weight == 0.0

    def exact(self) -> None:
        self.weight = math.inf

    def is_exact(self) -> bool:
        return math.isinf(self.weight)

    def zero(self) -> None:
        self.value = 0.0
        self.exact()

    def no_data(self) -> None:
        self.value = 0.0
        self.weight = 0.0

    def _combined_weight(self, a: float, b: float) -> float:
        w = a * b
        if w <= 0.0:
            return 0.0
        if math.isinf(a):
            return b
        if math.isinf(b):
            return a
        return w / (a + b)

    def add(self, other: "WeightedPoint") -> None:
        self.weight = self._combined_weight(self.weight, other.weight)
        self.value += other.value

    def subtract(self, other: "WeightedPoint") -> None:
        self.weight = self._combined_weight(self.weight, other.weight)
        self.value -= other.value

    def scale(self, factor: float) -> None:
        self.value *= factor
        self.weight = self.weight / (factor * factor) if factor != 0.0 else math.inf

    def average(self, other: "WeightedPoint") -> None:
        """Inverse-variance weighted mean of this point and ``other``, in place."""
        total = self.weight + other.weight
        if total > 0.0:
            self.value = (self.weight * self.value + other.weight * other.value) / total
        self.weight = total

    def _accumulate(self, x: "WeightedPoint", weight: float, gain: float) -> None:
        self.value += weight * x.weight * x.value * gain
        self.weight += weight * x.weight * gain * gain

    def _merge(self, partial: "WeightedPoint") -> None:
        self.value += partial.value
        self.weight += partial.weight

    def _normalize(self) -> None:
        self.value = self.value / self.weight if self.weight > 0.0 else math.nan

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WeightedPoint):
            return NotImplemented
        return self.value == other.value and self.weight == other.weight

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"WeightedPoint({self.value!r}, weight={self.weight!r})"

    def __str__(self) -> str:
        if self.weight > 0.0 and not self.is_exact():
            return f"{self.value:g} +- {self.rms():g}"
        return f"{self.value:g}"


def _partition(items: list, partitions: int) -> list[list]:
    partitions = max(1, int(partitions))
    return [items[i::partitions] for i in range(partitions)]


def accumulate_sum(items: Iterable[T], factory: Callable[[], A], *, partitions: int = 1) -> A:
    """Accumulate ``items`` with unit weight into one running sum.

    The items are split into ``partitions`` disjoint groups, each reduced into
    its own accumulator and then merged. The result is still accumulating.
    """
    partials = []
    for chunk in _partition(list(items), partitions):
        partial = factory()
        partial.start_accumulation()
        for item in chunk:
            partial.accumulate(item, 1.0)
        partials.append(partial)
    total = partials[0]
    for partial in partials[1:]:
        total.merge(partial)
    return total


def accumulate_average(items: Iterable[T], factory: Callable[[], A], *, partitions: int = 1) -> A:
    total = accumulate_sum(items, factory, partitions=partitions)
    total.end_accumulation()
    return total


__all__ = [
    "AccumulationState",
    "Accumulating",
    "WeightedPoint",
    "accumulate_sum",
    "accumulate_average",
]
