from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional

from .image import FITS_DTYPES

logger = logging.getLogger(__name__)

DEFAULT_FITS_DTYPE = "float32"

SETTINGS_PATH = Path.home() / ".zedata_settings.json"
# Increment when the on-disk settings layout or recommended defaults change
SETTINGS_SCHEMA_VERSION = 2

FITS_DTYPE_CHOICES = tuple(FITS_DTYPES)
LOG_LEVEL_CHOICES = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# storage class names written by schema 1 files
_LEGACY_DTYPE_NAMES = {
    "float": "float32",
    "double": "float64",
    "short": "int16",
    "int": "int32",
    "long": "int64",
    "byte": "uint8",
}

FITS_DTYPE_ENV = "ZEDATA_FITS_DTYPE"


@dataclass
class PersistentSettings:
    schema_version: int = SETTINGS_SCHEMA_VERSION
    log_level: str = "INFO"
    fits_dtype: str = DEFAULT_FITS_DTYPE
    # treat zero-weight pixels as valid when reading observations
    zero_weight_valid: bool = False


def _resolve_settings_path() -> Path:
    """Return the active settings path, honoring runtime overrides."""
    pkg = sys.modules.get("zedata")
    if pkg is not None:
        override = getattr(pkg, "SETTINGS_PATH", None)
        if override:
            return Path(override).expanduser()
    return SETTINGS_PATH


def _normalize_choice(value: object, choices: tuple[str, ...], default: str, *, upper: bool = False) -> str:
    candidate = default
    if isinstance(value, str) and value.strip():
        candidate = value.strip().upper() if upper else value.strip().lower()
    if candidate not in choices:
        return default
    return candidate


def load_persistent_settings() -> PersistentSettings:
    path = _resolve_settings_path()
    if not path.exists():
        return PersistentSettings()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("ignoring unreadable settings file %s: %s", path, exc)
        return PersistentSettings()
    if not isinstance(payload, dict):
        return PersistentSettings()

    try:
        schema_version = int(payload.get("schema_version", 1) or 1)
    except (TypeError, ValueError):
        schema_version = 1
    raw_dtype = payload.get("fits_dtype")
    if schema_version < 2 and isinstance(raw_dtype, str):
        raw_dtype = _LEGACY_DTYPE_NAMES.get(raw_dtype.strip().lower(), raw_dtype)

    settings = PersistentSettings(
        schema_version=schema_version,
        log_level=_normalize_choice(payload.get("log_level"), LOG_LEVEL_CHOICES, "INFO", upper=True),
        fits_dtype=_normalize_choice(raw_dtype, FITS_DTYPE_CHOICES, DEFAULT_FITS_DTYPE),
        zero_weight_valid=bool(payload.get("zero_weight_valid", False)),
    )
    migrated, updated = _migrate_settings_if_needed(settings)
    if updated:
        try:
            save_persistent_settings(migrated)
        except OSError as exc:
            logger.warning("could not write migrated settings to %s: %s", path, exc)
    return migrated


def save_persistent_settings(settings: PersistentSettings) -> None:
    path = _resolve_settings_path()
    data = asdict(settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _migrate_settings_if_needed(settings: PersistentSettings) -> tuple[PersistentSettings, bool]:
    """Upgrade persisted settings to the current schema and defaults."""
    if settings.schema_version >= SETTINGS_SCHEMA_VERSION:
        return settings, False
    logger.info("migrating settings from schema %d to %d", settings.schema_version, SETTINGS_SCHEMA_VERSION)
    settings.schema_version = SETTINGS_SCHEMA_VERSION
    return settings, True


def default_fits_dtype(settings: Optional[PersistentSettings] = None) -> str:
    """Export storage class: ``ZEDATA_FITS_DTYPE`` if set and valid, else the saved setting."""
    fallback = settings.fits_dtype if settings is not None else DEFAULT_FITS_DTYPE
    raw = os.environ.get(FITS_DTYPE_ENV)
    if raw is None:
        return fallback
    value = _normalize_choice(raw, FITS_DTYPE_CHOICES, "")
    if not value:
        logger.warning("ignoring %s=%r (supported %s)", FITS_DTYPE_ENV, raw, ", ".join(FITS_DTYPE_CHOICES))
        return fallback
    return value


__all__ = [
    "DEFAULT_FITS_DTYPE",
    "FITS_DTYPE_CHOICES",
    "FITS_DTYPE_ENV",
    "LOG_LEVEL_CHOICES",
    "PersistentSettings",
    "SETTINGS_PATH",
    "SETTINGS_SCHEMA_VERSION",
    "default_fits_dtype",
    "load_persistent_settings",
    "save_persistent_settings",
]
