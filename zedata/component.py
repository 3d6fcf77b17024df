from __future__ import annotations

import enum
from typing import Optional


class ComponentType(enum.Enum):
    UNKNOWN = (0, "Unknown")
    SIGNAL = (1, "Signal")
    WEIGHT = (2, "Weight")  # 1/sigma^2, inverse square of signal units
    EXPOSURE = (3, "Exposure")
    NOISE = (4, "Noise")  # 1-sigma, same units as the signal
    VARIANCE = (5, "Variance")
    S2N = (6, "S/N")

    def __init__(self, bit: int, description: str) -> None:
        self.mask = 1 << bit
        self.description = description

    @classmethod
    def guess_type(cls, text: Optional[str]) -> "ComponentType":
        """Best-effort classification of a free-text label such as an EXTNAME.

        Rules are tested in order and the first match wins, so the
        signal-to-noise spellings are checked before plain "noise".
        """
        if not text:
            return cls.UNKNOWN
        text = text.lower()
        for component, needles in _GUESS_RULES:
            if any(needle in text for needle in needles):
                return component
            if component is cls.VARIANCE and text == "var":
                return component
        return cls.UNKNOWN


_GUESS_RULES: tuple[tuple[ComponentType, tuple[str, ...]], ...] = (
    (ComponentType.WEIGHT, ("weight",)),
    (ComponentType.S2N, ("to-noise", "to noise", "/noise", "/ noise")),
    # "depth" and "coverage depth" land here before the exposure rule
    (ComponentType.NOISE, ("noise", "rms", "error", "uncertainty", "sensitivity", "depth", "scatter", "sigma")),
    (ComponentType.VARIANCE, ("variance",)),
    (ComponentType.S2N, ("s/n", "s2n")),
    (ComponentType.EXPOSURE, ("coverage", "time", "exposure")),
    (ComponentType.SIGNAL, ("signal", "flux", "intensity", "brightness")),
)


__all__ = ["ComponentType"]
