"""2D observations: a signal image with parallel weight and exposure images."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

import numpy as np
from astropy.io import fits

from .accumulating import AccumulationState, Accumulating
from .component import ComponentType
from .errors import NonConformingError
from .grid import CartesianGrid
from .image import DataTypeLike, Image
from .index import Index
from .values import SizeLike, _as_shape

logger = logging.getLogger(__name__)

# median of a chi-squared distribution with one degree of freedom
_CHI2_MEDIAN_1DOF = 0.454936

_REQUIRED = ComponentType.SIGNAL.mask | ComponentType.WEIGHT.mask | ComponentType.EXPOSURE.mask
IMAGE_HDU_TYPES = (fits.PrimaryHDU, fits.ImageHDU, fits.CompImageHDU)
_WEIGHT_LIKE = (ComponentType.WEIGHT, ComponentType.NOISE, ComponentType.VARIANCE, ComponentType.S2N)


class Observation2D(Image, Accumulating["Observation2D"]):
    """Signal image carrying a noise weight (1/sigma^2) and an exposure per pixel.

    The signal, weight and exposure arrays always share one shape. A pixel is
    valid when its signal is valid and its weight is positive (or zero when
    ``zero_weight_valid`` is set).
    """

    def __init__(
        self,
        size: SizeLike = (0, 0),
        dtype: Any = np.float64,
        data: Optional[np.ndarray] = None,
        *,
        weight: Optional[np.ndarray] = None,
        exposure: Optional[np.ndarray] = None,
        id: Optional[str] = None,
        unit: Optional[str] = None,
        grid: Optional[CartesianGrid] = None,
        zero_weight_valid: bool = False,
    ) -> None:
        super().__init__(size, dtype=dtype, data=data, id=id, unit=unit, grid=grid)
        if self._data.ndim != 2:
            raise NonConformingError(f"observation must be 2D, got shape {self._data.shape}")
        shape = self._data.shape
        if weight is None:
            weight = np.ones(shape) if data is not None else np.zeros(shape)
        self._weight = self._component_image(weight, "Weight")
        self._exposure = self._component_image(np.zeros(shape) if exposure is None else exposure, "Exposure")
        self.zero_weight_valid = zero_weight_valid
        self.noise_rescale = 1.0
        self._state = AccumulationState.IDLE

    def _component_image(self, values: np.ndarray, name: str) -> Image:
        image = Image(data=np.asarray(values, dtype=np.float64), id=name)
        if image.shape != self._data.shape:
            raise NonConformingError(f"{name.lower()} shape {image.shape} does not match signal {self._data.shape}")
        return image

    @property
    def weight_image(self) -> Image:
        return self._weight

    @property
    def exposure_image(self) -> Image:
        return self._exposure

    def weight_at(self, index: Index) -> float:
        return self._weight.get(index)

    def set_weight_at(self, index: Index, value: float) -> None:
        self._weight.set(index, value)

    def noise_at(self, index: Index) -> float:
        w = self._weight.get(index)
        return 1.0 / np.sqrt(w) if w > 0.0 else np.inf

    def set_noise_at(self, index: Index, value: float) -> None:
        self._weight.set(index, 1.0 / (value * value) if value != 0.0 else np.inf)

    def exposure_at(self, index: Index) -> float:
        return self._exposure.get(index)

    def set_exposure_at(self, index: Index, value: float) -> None:
        self._exposure.set(index, value)

    def significance_at(self, index: Index) -> float:
        return self.get(index) * np.sqrt(self._weight.get(index))

    def noise(self) -> np.ndarray:
        w = self._weight.data
        with np.errstate(divide="ignore"):
            return np.where(w > 0.0, 1.0 / np.sqrt(np.where(w > 0.0, w, 1.0)), np.inf)

    def significance(self) -> np.ndarray:
        return self._data * np.sqrt(np.clip(self._weight.data, 0.0, None))

    def _weight_ok(self, w):
        return w >= 0.0 if self.zero_weight_valid else w > 0.0

    def is_valid(self, index: Index) -> bool:
        if not super().is_valid(index):
            return False
        w = self._weight.data[index.as_tuple()]
        return bool(np.isfinite(w) and self._weight_ok(w))

    def valid_mask(self) -> np.ndarray:
        w = self._weight.data
        return super().valid_mask() & np.isfinite(w) & self._weight_ok(w)

    def _export_mask(self) -> np.ndarray:
        return self.valid_mask()

    def discard(self, index: Index) -> None:
        super().discard(index)
        self._weight.clear(index)
        self._exposure.clear(index)

    def clear(self, index: Index) -> None:
        super().clear(index)
        self._weight.clear(index)
        self._exposure.clear(index)

    def set_size(self, size: SizeLike) -> None:
        if len(_as_shape(size)) != 2:
            raise NonConformingError(f"observation must be 2D, got size {_as_shape(size)}")
        super().set_size(size)
        self._weight.set_size(size)
        self._exposure.set_size(size)

    def scale(self, index: Index, factor: float) -> None:
        super().scale(index, factor)
        self._weight.set(index, self._weight.get(index) / (factor * factor) if factor != 0.0 else np.inf)

    def scale_all(self, factor: float) -> None:
        super().scale_all(factor)
        if factor == 0.0:
            self._weight.fill(np.inf)
        else:
            self._weight.scale_all(1.0 / (factor * factor))

    def copy(self, with_contents: bool = True) -> "Observation2D":
        clone = super().copy(with_contents)
        clone._weight = self._weight.copy(with_contents)
        clone._exposure = self._exposure.copy(with_contents)
        return clone

    # Accumulation

    def no_data(self) -> None:
        self._data.fill(0)
        self._flags.fill(0)
        self._weight.fill(0.0)
        self._exposure.fill(0.0)

    def _accumulate(self, image: "Observation2D", weight: float, gain: float) -> None:
        self._check_conforming(image)
        mask = image.valid_mask()
        w = np.where(mask, weight * image._weight.data, 0.0)
        self._data += np.where(mask, w * gain * image._data, 0.0)
        self._weight.data[...] += w * gain * gain
        self._exposure.data[...] += np.where(mask, image._exposure.data, 0.0)

    def accumulate_at(
        self, index: Index, value: float, gain: float = 1.0, weight: float = 1.0, time: float = 0.0
    ) -> None:
        self._require(AccumulationState.ACCUMULATING, "accumulate")
        self.add(index, weight * gain * value)
        self._weight.add(index, weight * gain * gain)
        self._exposure.add(index, time)

    def _merge(self, partial: "Observation2D") -> None:
        self._check_conforming(partial)
        self._data += partial._data
        self._weight.add_values(partial._weight)
        self._exposure.add_values(partial._exposure)

    def _normalize(self) -> None:
        w = self._weight.data
        positive = w > 0.0
        self._data[...] = np.where(positive, self._data / np.where(positive, w, 1.0), 0.0)

    # Noise rescaling

    def reweight(self, robust: bool = False) -> float:
        """Rescale the weights so that the significance has unit variance.

        Returns the noise rescaling factor applied in this call.
        """
        s2 = self.significance()[self.valid_mask()] ** 2
        if s2.size == 0:
            logger.warning("no valid pixels in %s, weights left unchanged", self.id or "observation")
            return 1.0
        chi2 = float(np.median(s2)) / _CHI2_MEDIAN_1DOF if robust else float(np.mean(s2))
        if not np.isfinite(chi2) or chi2 <= 0.0:
            logger.warning("cannot reweight with chi2=%s", chi2)
            return 1.0
        self._weight.scale_all(1.0 / chi2)
        rescale = float(np.sqrt(chi2))
        self.noise_rescale *= rescale
        logger.info("reweighted %s by chi2=%.4g (noise rescale %.4g)", self.id or "observation", chi2, self.noise_rescale)
        return rescale

    def unscale_weights(self) -> None:
        self._weight.scale_all(self.noise_rescale * self.noise_rescale)
        self.noise_rescale = 1.0

    # FITS

    def _derived_image(self, values: np.ndarray, name: str, unit: Optional[str] = None) -> Image:
        mask = self.valid_mask()
        image = Image(data=np.where(mask, values, 0.0), id=name, unit=unit, grid=self.grid)
        image.flags[~mask] = Image.DISCARD_FLAG
        return image

    def get_hdus(self, data_type: DataTypeLike = "float32") -> fits.HDUList:
        """Signal (primary), exposure, noise and S/N images as FITS HDUs."""
        signal = self.create_hdu(data_type, primary=True)
        signal.header["EXTNAME"] = (self.id or "Signal", "Content identifier.")
        hdus = [signal]
        hdus.append(self._derived_image(self._exposure.data, "Exposure").create_hdu(data_type))
        hdus.append(self._derived_image(self.noise(), "Noise", self.unit).create_hdu(data_type))
        hdus.append(self._derived_image(self.significance(), "S/N").create_hdu(data_type))
        return fits.HDUList(hdus)

    def set_component(self, image: Image, component: ComponentType) -> None:
        """Install ``image`` as the given component, converting to weights where needed.

        Installing a signal resets weights to 1 on finite pixels, exposure to 0
        and the noise rescale factor to 1.
        """
        if component is ComponentType.UNKNOWN:
            raise ValueError("cannot install an image of unknown component type")
        if component is ComponentType.SIGNAL:
            self._dtype = np.dtype(np.float64)
            self._data = np.array(image.data, dtype=np.float64)
            self._flags = image.flags.copy()
            self.id, self.unit = image.id, image.unit
            if image.grid is not None:
                self.grid = image.grid
            self._weight = self._component_image(np.isfinite(self._data).astype(np.float64), "Weight")
            self._exposure = self._component_image(np.zeros(self._data.shape), "Exposure")
            self.noise_rescale = 1.0
            return
        if image.shape != self._data.shape:
            raise NonConformingError(
                f"{component.description} image {image.get_size_string()} does not match signal {self.get_size_string()}"
            )
        values = np.where(image.valid_mask(), np.asarray(image.data, dtype=np.float64), np.nan)
        usable = np.isfinite(values)
        with np.errstate(divide="ignore", invalid="ignore"):
            if component is ComponentType.EXPOSURE:
                self._exposure.data[...] = np.where(usable, values, 0.0)
                return
            if component is ComponentType.WEIGHT:
                w = np.where(usable & (values >= 0.0), values, 0.0)
            elif component is ComponentType.NOISE:
                w = np.where(usable & (values > 0.0), 1.0 / (values * values), 0.0)
            elif component is ComponentType.VARIANCE:
                w = np.where(usable & (values > 0.0), 1.0 / values, 0.0)
            else:
                ratio = values / self._data
                w = np.where(usable & np.isfinite(ratio) & (self._data != 0.0), ratio * ratio, 0.0)
        self._weight.data[...] = w

    def read_hdus(self, hdus: Iterable) -> bool:
        """Load signal, weight and exposure from a sequence of FITS HDUs.

        The first image HDU is taken as the signal. Later ones are classified by
        their ``EXTNAME``; unrecognised and repeated components are skipped.
        Returns ``True`` when signal, weight and exposure were all found.
        """
        found = 0
        for position, hdu in enumerate(hdus):
            if not isinstance(hdu, IMAGE_HDU_TYPES) or hdu.data is None:
                continue
            image = Image.from_hdu(hdu)
            if not found:
                if image.dimension() != 2:
                    raise NonConformingError(f"signal HDU {position} is not 2D: {image.shape}")
                self.set_component(image, ComponentType.SIGNAL)
                found |= ComponentType.SIGNAL.mask
                logger.debug("HDU %d: signal %s", position, self.get_size_string())
                continue
            component = ComponentType.guess_type(hdu.header.get("EXTNAME"))
            if component is ComponentType.UNKNOWN:
                logger.debug("HDU %d: skipping unrecognised image %r", position, hdu.header.get("EXTNAME"))
                continue
            slot = ComponentType.WEIGHT if component in _WEIGHT_LIKE else component
            if found & slot.mask:
                logger.debug("HDU %d: skipping duplicate %s image", position, slot.description.lower())
                continue
            self.set_component(image, component)
            found |= slot.mask
            logger.debug("HDU %d: %s image", position, component.description.lower())
        if not found:
            raise ValueError("no image data found in HDU list")
        complete = found & _REQUIRED == _REQUIRED
        logger.info("read observation %s (%s)", self.get_size_string(), "complete" if complete else "partial")
        return complete

    @classmethod
    def from_fits(cls, path, **kwargs) -> "Observation2D":
        observation = cls(**kwargs)
        with fits.open(path) as hdul:
            observation.read_hdus(hdul)
        return observation


__all__ = ["Observation2D"]
