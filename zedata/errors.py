from __future__ import annotations


class ZeDataError(Exception):
    pass


class IndexOutOfBoundsError(ZeDataError, IndexError):
    pass


class NonConformingError(ZeDataError, ValueError):
    pass


class AccumulationStateError(ZeDataError, RuntimeError):
    pass


class FitsExportError(ZeDataError, ValueError):
    pass


class MalformedLineError(ZeDataError, ValueError):
    def __init__(self, message: str, *, path: str | None = None, line_number: int | None = None) -> None:
        location = ""
        if path is not None:
            location = f"{path}:{line_number}: " if line_number is not None else f"{path}: "
        super().__init__(location + message)
        self.path = path
        self.line_number = line_number


class InterpolatorRangeError(IndexOutOfBoundsError):
    pass


__all__ = [
    "ZeDataError",
    "IndexOutOfBoundsError",
    "NonConformingError",
    "AccumulationStateError",
    "FitsExportError",
    "MalformedLineError",
    "InterpolatorRangeError",
]
