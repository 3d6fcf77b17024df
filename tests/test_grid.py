from __future__ import annotations

import numpy as np
import pytest
from astropy.io import fits

from zedata.errors import NonConformingError
from zedata.grid import CartesianGrid
from zedata.index import Index2D, Index3D


@pytest.fixture
def grid() -> CartesianGrid:
    g = CartesianGrid(2)
    g.set_reference([10.0, -5.0])
    g.set_reference_index([2.0, 3.0])
    g.set_resolution([0.5, -0.25])
    return g


def test_index_of_inverts_value_at(grid: CartesianGrid):
    for index in (Index2D(0, 0), Index2D(2, 3), Index2D(7, -4)):
        coords = grid.value_at(index)
        np.testing.assert_allclose(grid.index_of(coords), index.to_vector())
        assert grid.nearest_index(coords) == index


def test_value_at_reference_index_is_reference(grid: CartesianGrid):
    np.testing.assert_allclose(grid.value_at([2.0, 3.0]), [10.0, -5.0])
    np.testing.assert_allclose(grid.value_at(Index2D(3, 3)), [10.5, -5.0])


def test_scalar_resolution_broadcasts():
    g = CartesianGrid(3)
    g.set_resolution(2.0)
    np.testing.assert_allclose(g.get_resolution(), [2.0, 2.0, 2.0])
    np.testing.assert_allclose(g.value_at(Index3D(1, 2, 3)), [2.0, 4.0, 6.0])


def test_dimension_mismatch(grid: CartesianGrid):
    with pytest.raises(NonConformingError):
        grid.value_at(Index3D(0, 0, 0))
    with pytest.raises(ValueError):
        CartesianGrid(0)


def test_zero_resolution_has_no_inverse(grid: CartesianGrid):
    grid.set_resolution([0.0, 1.0])
    with pytest.raises(ValueError):
        grid.index_of([0.0, 0.0])


def test_header_roundtrip_uses_one_based_crpix(grid: CartesianGrid):
    grid.axis_labels = ["GLON", "GLAT"]
    grid.axis_units = ["deg", None]
    header = fits.Header()
    grid.edit_header(header)
    assert header["CRPIX1"] == pytest.approx(3.0)
    assert header["CTYPE2"] == "GLAT"
    assert "CUNIT2" not in header

    parsed = CartesianGrid.from_header(header, 2)
    assert parsed == grid
    assert parsed.axis_labels == ["GLON", "GLAT"]
    assert parsed.axis_units == ["deg", None]
    assert CartesianGrid.has_header_keys(header, 2)
    assert not CartesianGrid.has_header_keys(fits.Header(), 2)


def test_alternate_variant_keywords(grid: CartesianGrid):
    grid.variant = 1
    header = fits.Header()
    grid.edit_header(header)
    assert "CDELT1B" in header
    assert "CDELT1" not in header


def test_copy_is_independent(grid: CartesianGrid):
    clone = grid.copy()
    clone.set_reference([0.0, 0.0])
    assert clone != grid
    np.testing.assert_allclose(grid.get_reference(), [10.0, -5.0])
