from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import numpy as np
import pytest
from astropy.io import fits

from zedata.grid import CartesianGrid
from zedata.observation import Observation2D

SYNTHETIC_SIGNAL = np.array(
    [
        [1.0, 2.0, 3.0, 4.0],
        [2.0, 4.0, 6.0, 8.0],
        [-1.0, 0.5, 1.5, 2.5],
    ],
    dtype=np.float64,
)
SYNTHETIC_NOISE = 0.5


def _synthetic_grid() -> CartesianGrid:
    grid = CartesianGrid(2)
    grid.axis_labels = ["RA---TAN", "DEC--TAN"]
    grid.axis_units = ["deg", "deg"]
    grid.set_reference([150.0, -20.0])
    grid.set_reference_index([1.0, 1.0])
    grid.set_resolution([-0.01, 0.01])
    return grid


@pytest.fixture
def synthetic_observation() -> Observation2D:
    shape = SYNTHETIC_SIGNAL.shape
    return Observation2D(
        data=SYNTHETIC_SIGNAL,
        weight=np.full(shape, 1.0 / SYNTHETIC_NOISE**2),
        exposure=np.full(shape, 10.0),
        id="Flux",
        unit="Jy/beam",
        grid=_synthetic_grid(),
    )


@pytest.fixture
def synthetic_fits(tmp_path: Path) -> Path:
    """Multi-extension FITS file laid out like a reduced map product."""
    shape = SYNTHETIC_SIGNAL.shape
    header = fits.Header()
    _synthetic_grid().edit_header(header)
    header["BUNIT"] = "Jy/beam"
    primary = fits.PrimaryHDU(data=SYNTHETIC_SIGNAL.astype(np.float32), header=header)
    primary.header["EXTNAME"] = "Flux"
    hdus = [
        primary,
        fits.ImageHDU(data=np.full(shape, SYNTHETIC_NOISE, dtype=np.float32), name="RMS noise"),
        fits.ImageHDU(data=np.full(shape, 10.0, dtype=np.float32), name="Exposure time"),
        fits.ImageHDU(data=np.zeros(shape, dtype=np.float32), name="Mask"),
        fits.BinTableHDU.from_columns([fits.Column(name="id", format="J", array=np.arange(3))], name="Sources"),
    ]
    path = tmp_path / "synthetic_map.fits"
    fits.HDUList(hdus).writeto(path)
    return path
