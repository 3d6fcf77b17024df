"""Indexed numerical data containers for astronomical images (lazy exports).

Public names are re-exported on first access via module ``__getattr__``
(PEP 562) so that ``python -m zedata.<submodule>`` stays free of import
side effects.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "Index": "index",
    "Index1D": "index",
    "Index2D": "index",
    "Index3D": "index",
    "index_range": "index",
    "IndexedValues": "values",
    "ArrayValues": "values",
    "FlaggedValues": "values",
    "CartesianGrid": "grid",
    "AccumulationState": "accumulating",
    "Accumulating": "accumulating",
    "WeightedPoint": "accumulating",
    "accumulate_sum": "accumulating",
    "accumulate_average": "accumulating",
    "ComponentType": "component",
    "FITS_DTYPES": "image",
    "Image": "image",
    "Observation2D": "observation",
    "Locality": "localized",
    "ScalarLocality": "localized",
    "VectorLocality": "localized",
    "LocalizedData": "localized",
    "WeightedData": "localized",
    "LocalAverage": "localized",
    "Interpolator": "interpolator",
    "SimpleInterpolator": "interpolator",
    "PersistentSettings": "settings_store",
    "SETTINGS_PATH": "settings_store",
    "load_persistent_settings": "settings_store",
    "save_persistent_settings": "settings_store",
    "ZeDataError": "errors",
    "IndexOutOfBoundsError": "errors",
    "NonConformingError": "errors",
    "AccumulationStateError": "errors",
    "FitsExportError": "errors",
    "MalformedLineError": "errors",
    "InterpolatorRangeError": "errors",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:  # PEP 562 lazy re-exports
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(name)
    return getattr(import_module(f".{module_name}", __name__), name)


def __dir__() -> list[str]:  # helps IDEs
    return sorted(set(globals().keys()) | set(__all__))
