from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from astropy.io import fits

from zedata.accumulating import AccumulationState, accumulate_average
from zedata.component import ComponentType
from zedata.errors import AccumulationStateError, NonConformingError
from zedata.image import Image
from zedata.index import Index2D
from zedata.observation import Observation2D


def _flat(value: float, weight: float = 1.0, exposure: float = 1.0, shape=(2, 3)) -> Observation2D:
    return Observation2D(
        data=np.full(shape, value),
        weight=np.full(shape, weight),
        exposure=np.full(shape, exposure),
    )


def test_observation_must_be_2d():
    with pytest.raises(NonConformingError):
        Observation2D((2, 3, 4))
    with pytest.raises(NonConformingError):
        Observation2D(data=np.zeros((2, 2)), weight=np.ones((3, 3)))
    with pytest.raises(NonConformingError):
        Observation2D((2, 2)).set_size((4,))


def test_noise_weight_and_significance(synthetic_observation: Observation2D):
    obs = synthetic_observation
    index = Index2D(1, 3)
    assert obs.weight_at(index) == pytest.approx(4.0)
    assert obs.noise_at(index) == pytest.approx(0.5)
    assert obs.significance_at(index) == pytest.approx(16.0)
    obs.set_noise_at(index, 0.25)
    assert obs.weight_at(index) == pytest.approx(16.0)
    np.testing.assert_allclose(obs.significance()[0], [2.0, 4.0, 6.0, 8.0])
    assert obs.exposure_at(index) == pytest.approx(10.0)


def test_zero_weight_validity_is_configurable():
    obs = _flat(1.0)
    index = Index2D(0, 0)
    obs.set_weight_at(index, 0.0)
    assert not obs.is_valid(index)
    assert obs.count_valid() == 5
    obs.zero_weight_valid = True
    assert obs.is_valid(index)
    assert obs.noise_at(index) == np.inf


def test_discard_and_clear_reset_weight_and_exposure():
    obs = _flat(3.0, weight=2.0, exposure=5.0)
    obs.discard(Index2D(0, 1))
    assert not obs.is_valid(Index2D(0, 1))
    assert obs.weight_at(Index2D(0, 1)) == 0.0
    assert obs.exposure_at(Index2D(0, 1)) == 0.0
    obs.clear(Index2D(1, 1))
    assert obs.get(Index2D(1, 1)) == 0.0
    assert obs.weight_at(Index2D(1, 1)) == 0.0


def test_set_size_resizes_all_components():
    obs = _flat(3.0)
    obs.set_size((4, 5))
    assert obs.shape == (4, 5)
    assert obs.weight_image.shape == (4, 5)
    assert obs.exposure_image.shape == (4, 5)
    assert not obs.data.any()
    assert obs.count_valid() == 0


def test_scaling_rescales_weights():
    obs = _flat(2.0, weight=4.0)
    obs.scale_all(2.0)
    assert obs.get(Index2D(0, 0)) == pytest.approx(4.0)
    assert obs.weight_at(Index2D(0, 0)) == pytest.approx(1.0)
    obs.scale(Index2D(1, 2), 0.5)
    assert obs.get(Index2D(1, 2)) == pytest.approx(2.0)
    assert obs.weight_at(Index2D(1, 2)) == pytest.approx(4.0)
    assert obs.significance_at(Index2D(1, 2)) == pytest.approx(4.0)


def test_copy_does_not_share_components(synthetic_observation: Observation2D):
    clone = synthetic_observation.copy()
    clone.set_weight_at(Index2D(0, 0), 0.0)
    assert synthetic_observation.weight_at(Index2D(0, 0)) == pytest.approx(4.0)
    assert clone.grid == synthetic_observation.grid


def test_accumulate_observations_into_weighted_mean():
    mean = Observation2D((2, 3))
    mean.start_accumulation()
    mean.accumulate(_flat(1.0, weight=1.0, exposure=2.0))
    mean.accumulate(_flat(4.0, weight=2.0, exposure=3.0))
    mean.end_accumulation()
    assert mean.accumulation_state is AccumulationState.FINALIZED
    np.testing.assert_allclose(mean.data, 3.0)
    np.testing.assert_allclose(mean.weight_image.data, 3.0)
    np.testing.assert_allclose(mean.exposure_image.data, 5.0)
    with pytest.raises(AccumulationStateError):
        mean.end_accumulation()


def test_invalid_cells_do_not_contribute():
    bad = _flat(100.0, exposure=7.0)
    bad.discard(Index2D(0, 0))
    bad.set(Index2D(1, 0), np.nan)
    mean = Observation2D((2, 3))
    mean.start_accumulation()
    mean.accumulate(bad)
    mean.end_accumulation()
    assert not mean.is_valid(Index2D(0, 0))
    assert not mean.is_valid(Index2D(1, 0))
    assert mean.get(Index2D(0, 0)) == 0.0
    assert mean.exposure_at(Index2D(1, 0)) == 0.0
    assert mean.get(Index2D(1, 1)) == pytest.approx(100.0)


def test_accumulate_rejects_nonconforming():
    mean = Observation2D((2, 3))
    mean.start_accumulation()
    with pytest.raises(NonConformingError):
        mean.accumulate(_flat(1.0, shape=(3, 2)))


def test_accumulate_at_requires_open_cycle():
    obs = Observation2D((1, 2))
    with pytest.raises(AccumulationStateError):
        obs.accumulate_at(Index2D(0, 0), 1.0)
    obs.start_accumulation()
    obs.accumulate_at(Index2D(0, 0), 2.0, weight=1.0, time=1.5)
    obs.accumulate_at(Index2D(0, 0), 5.0, weight=2.0, time=1.5)
    obs.end_accumulation()
    assert obs.get(Index2D(0, 0)) == pytest.approx(4.0)
    assert obs.exposure_at(Index2D(0, 0)) == pytest.approx(3.0)
    assert not obs.is_valid(Index2D(0, 1))


def test_partitioned_observation_average_matches_direct():
    frames = [_flat(v, weight=w) for v, w in ((1.0, 1.0), (3.0, 2.0), (5.0, 0.5), (2.0, 4.0), (7.0, 1.0))]
    direct = accumulate_average(frames, lambda: Observation2D((2, 3)))
    split = accumulate_average(frames, lambda: Observation2D((2, 3)), partitions=3)
    np.testing.assert_allclose(split.data, direct.data)
    np.testing.assert_allclose(split.weight_image.data, direct.weight_image.data)


def test_reweight_normalizes_significance():
    rng = np.random.default_rng(7)
    shape = (64, 64)
    obs = Observation2D(data=rng.normal(0.0, 2.0, size=shape), weight=np.ones(shape))
    rescale = obs.reweight()
    assert rescale == pytest.approx(2.0, rel=0.05)
    assert np.mean(obs.significance() ** 2) == pytest.approx(1.0)
    assert obs.noise_rescale == pytest.approx(rescale)
    obs.unscale_weights()
    np.testing.assert_allclose(obs.weight_image.data, 1.0)
    assert obs.noise_rescale == 1.0

    robust = Observation2D(data=rng.normal(0.0, 2.0, size=shape), weight=np.ones(shape))
    assert robust.reweight(robust=True) == pytest.approx(2.0, rel=0.1)


def test_get_hdus_layout(synthetic_observation: Observation2D):
    synthetic_observation.discard(Index2D(0, 0))
    hdul = synthetic_observation.get_hdus("float32")
    assert isinstance(hdul[0], fits.PrimaryHDU)
    assert [h.header["EXTNAME"] for h in hdul] == ["Flux", "Exposure", "Noise", "S/N"]
    assert all(h.data.dtype == np.float32 for h in hdul)
    assert np.isnan(hdul[2].data[0, 0])
    assert hdul[2].data[1, 1] == pytest.approx(0.5)
    assert hdul[3].data[1, 1] == pytest.approx(8.0)
    assert "CRPIX1" in hdul[1].header

    ints = synthetic_observation.get_hdus("int32")
    assert ints[1].data[0, 0] == ints[1].header["BLANK"] == np.iinfo(np.int32).min
    assert ints[1].data[1, 1] == 10
    signal = Image.from_hdu(ints[0])
    assert not signal.is_valid(Index2D(0, 0))
    assert signal.get(Index2D(1, 1)) == 4


def test_set_component_conversions():
    obs = _flat(2.0)
    obs.set_component(Image(data=np.full((2, 3), 0.5)), ComponentType.NOISE)
    np.testing.assert_allclose(obs.weight_image.data, 4.0)
    obs.set_component(Image(data=np.full((2, 3), 0.25)), ComponentType.VARIANCE)
    np.testing.assert_allclose(obs.weight_image.data, 4.0)
    obs.set_component(Image(data=np.full((2, 3), 6.0)), ComponentType.S2N)
    np.testing.assert_allclose(obs.weight_image.data, 9.0)
    noise = np.full((2, 3), 0.5)
    noise[0, 0] = 0.0
    obs.set_component(Image(data=noise), ComponentType.NOISE)
    assert obs.weight_at(Index2D(0, 0)) == 0.0
    with pytest.raises(NonConformingError):
        obs.set_component(Image(data=np.ones((3, 3))), ComponentType.EXPOSURE)
    with pytest.raises(ValueError):
        obs.set_component(Image(data=np.ones((2, 3))), ComponentType.UNKNOWN)


def test_read_hdus_classifies_extensions(synthetic_fits: Path):
    obs = Observation2D()
    with fits.open(synthetic_fits) as hdul:
        assert obs.read_hdus(hdul) is True
    assert obs.shape == (3, 4)
    assert obs.id == "Flux"
    assert obs.unit == "Jy/beam"
    np.testing.assert_allclose(obs.weight_image.data, 4.0)
    np.testing.assert_allclose(obs.exposure_image.data, 10.0)
    assert obs.grid is not None
    np.testing.assert_allclose(obs.grid.get_reference(), [150.0, -20.0])


def test_read_hdus_reports_partial_and_skips_duplicates(tmp_path: Path):
    shape = (2, 2)
    path = tmp_path / "partial.fits"
    fits.HDUList(
        [
            fits.PrimaryHDU(data=np.ones(shape, dtype=np.float32)),
            fits.ImageHDU(data=np.full(shape, 9.0, dtype=np.float32), name="WEIGHT"),
            fits.ImageHDU(data=np.full(shape, 0.1, dtype=np.float32), name="NOISE"),
        ]
    ).writeto(path)
    obs = Observation2D.from_fits(path)
    assert obs.accumulation_state is AccumulationState.IDLE
    np.testing.assert_allclose(obs.weight_image.data, 9.0)
    with fits.open(path) as hdul:
        assert Observation2D().read_hdus(hdul) is False


def test_read_hdus_rejects_mismatched_extensions(tmp_path: Path):
    path = tmp_path / "mismatch.fits"
    fits.HDUList(
        [
            fits.PrimaryHDU(data=np.ones((2, 2))),
            fits.ImageHDU(data=np.ones((3, 3)), name="WEIGHT"),
        ]
    ).writeto(path)
    with fits.open(path) as hdul:
        with pytest.raises(NonConformingError):
            Observation2D().read_hdus(hdul)


def test_read_hdus_ignores_previous_content(tmp_path: Path):
    path = tmp_path / "signal-only.fits"
    fits.PrimaryHDU(data=np.full((2, 2), 3.0, dtype=np.float32)).writeto(path)
    with fits.open(path) as hdul:
        fresh = Observation2D()
        assert fresh.read_hdus(hdul) is False
        sized = Observation2D((2, 2))
        assert sized.read_hdus(hdul) is False
        stale = _flat(7.0, weight=9.0, exposure=5.0, shape=(2, 2))
        stale.reweight(robust=False)
        stale.read_hdus(hdul)
    assert fresh.count_valid() == 4
    assert sized.count_valid() == 4
    assert stale.count_valid() == 4
    np.testing.assert_allclose(stale.data, 3.0)
    np.testing.assert_allclose(stale.weight_image.data, 1.0)
    np.testing.assert_allclose(stale.exposure_image.data, 0.0)
    assert stale.noise_rescale == 1.0
