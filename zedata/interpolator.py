"""1D lookup tables interpolated linearly or with Gaussian smoothing."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import numpy as np

from .errors import InterpolatorRangeError, MalformedLineError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

SIGMAS_IN_FWHM = math.sqrt(8.0 * math.log(2.0))


class Interpolator(ABC):
    """Samples ``(ordinate, value)`` kept sorted by ordinate."""

    def __init__(self) -> None:
        self.path: Optional[Path] = None
        self._ordinates = np.empty(0, dtype=np.float64)
        self._values = np.empty(0, dtype=np.float64)

    @property
    def ordinates(self) -> np.ndarray:
        return self._ordinates

    @property
    def values(self) -> np.ndarray:
        return self._values

    def __len__(self) -> int:
        return int(self._ordinates.size)

    def set_samples(self, ordinates: Sequence[float], values: Sequence[float]) -> None:
        x = np.asarray(ordinates, dtype=np.float64).reshape(-1)
        y = np.asarray(values, dtype=np.float64).reshape(-1)
        if x.size != y.size:
            raise ValueError(f"got {x.size} ordinates but {y.size} values")
        if x.size < 2:
            raise ValueError(f"interpolation needs at least 2 samples, got {x.size}")
        order = np.argsort(x, kind="stable")
        self._ordinates = x[order]
        self._values = y[order]

    def read(self, path: PathLike) -> None:
        """Load samples from ``path``; reading the file already loaded is a no-op."""
        path = Path(path)
        if self.path is not None and path == self.path:
            logger.debug("%s already loaded from %s", type(self).__name__, path)
            return
        ordinates, values = [], []
        for x, y in self._read_data(path):
            ordinates.append(x)
            values.append(y)
        self.set_samples(ordinates, values)
        self.path = path
        logger.info("%s: %d records parsed from %s", type(self).__name__, len(self), path)

    @abstractmethod
    def _read_data(self, path: Path) -> Iterable[tuple[float, float]]: ...

    def index_above(self, ordinate: float) -> int:
        """Index of the first sample at or above ``ordinate`` (at least 1)."""
        if len(self) < 2:
            raise InterpolatorRangeError(f"{type(self).__name__} holds no samples")
        if not self._ordinates[0] <= ordinate <= self._ordinates[-1]:
            raise InterpolatorRangeError(
                f"{ordinate} outside of interpolator range [{self._ordinates[0]}, {self._ordinates[-1]}]"
            )
        return max(int(np.searchsorted(self._ordinates, ordinate, side="left")), 1)

    def value_at(self, ordinate: float) -> float:
        upper = self.index_above(ordinate)
        x0, x1 = self._ordinates[upper - 1], self._ordinates[upper]
        span = x1 - x0
        if span <= 0.0:
            return float(self._values[upper])
        dt1 = ordinate - x0
        dt2 = x1 - ordinate
        return float((dt2 * self._values[upper - 1] + dt1 * self._values[upper]) / span)

    def smooth_value_at(self, ordinate: float, fwhm: float) -> float:
        """Gaussian-weighted mean of the bracketing samples and those within 2 FWHM of ``ordinate``."""
        upper = self.index_above(ordinate)
        if fwhm <= 0.0:
            return self.value_at(ordinate)
        sigma = fwhm / SIGMAS_IN_FWHM
        dt = self._ordinates - ordinate
        near = np.abs(dt) < 2.0 * fwhm
        near[upper - 1 : upper + 1] = True
        w = np.exp(-0.5 * (dt[near] / sigma) ** 2)
        total = np.sum(w)
        # kernel narrower than float resolution between samples
        if total <= 0.0:
            return self.value_at(ordinate)
        return float(np.sum(w * self._values[near]) / total)


class SimpleInterpolator(Interpolator):
    """Two-column whitespace-delimited text table (``ordinate value``).

    Blank lines and lines starting with ``#`` or ``!`` are ignored. Other
    lines that do not parse raise :class:`MalformedLineError` when ``strict``
    is set; otherwise they are logged and skipped.
    """

    def __init__(self, path: Optional[PathLike] = None, strict: bool = False) -> None:
        super().__init__()
        self.strict = strict
        if path is not None:
            self.read(path)

    def _read_data(self, path: Path) -> Iterable[tuple[float, float]]:
        skipped = 0
        records = []
        with open(path, "r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                text = line.strip()
                if not text or text[0] in "#!":
                    continue
                tokens = text.split()
                try:
                    if len(tokens) < 2:
                        raise ValueError(f"expected 2 columns, found {len(tokens)}")
                    record = (float(tokens[0]), float(tokens[1]))
                except ValueError as exc:
                    if self.strict:
                        raise MalformedLineError(str(exc), path=str(path), line_number=line_number) from exc
                    logger.warning("%s:%d: skipping malformed line %r", path, line_number, text)
                    skipped += 1
                    continue
                records.append(record)
        if skipped:
            logger.info("skipped %d malformed line(s) in %s", skipped, path)
        return records


__all__ = ["Interpolator", "SimpleInterpolator", "SIGMAS_IN_FWHM"]
