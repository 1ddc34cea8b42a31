# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Hazard Classification & Visualization
=====================================
Turns a hazard field (degrees, or ``NO_EDGE``) into

1. a colour-coded display image, and
2. a scalar visibility score.

Measurements
------------
A measurement maps an angular distance ``d >= 0`` to a *hazard level* in
[0, 1], where 1 means "certainly invisible":

    reciprocal(scale)     1 - scale / (d + scale)
    linear(max_hazard)    min(d, max_hazard) / max_hazard
    gaussian(sigma)       1 - exp(-0.5 * (d / sigma)**2)

The visibility score uses the complementary *goodness* ``1 - level``
(high = visible), averaged over geometry-boundary pixels.

Rendering
---------
The hazard field and the optional geometry map are thickened with a 3x3
max filter for legibility only; the score always uses the undilated field.
Per pixel, in priority order:

    outside ROI             -> black
    masked                  -> MASK_COLOR (GEOMETRY_COLOR on a geometry edge)
    NO_EDGE after dilation  -> black
    otherwise               -> level * high + (1 - level) * low

Blending happens in linear RGB; the result is encoded with the
ratio-preserving relative clip of ``ColorModel``.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Final, NamedTuple, Optional, Tuple, Union

import numpy as np
from scipy import ndimage

from vantage_color import ColorModel
from vantage_hazards import NO_EDGE
from vantage_raster import (
    ArrayBool,
    ArrayFloat,
    InvalidParameterError,
    Raster,
    require_conformant,
    require_positive,
)

logger = logging.getLogger(__name__)

__all__ = [
    "MeasurementKind",
    "Measurement",
    "DEFAULT_MEASUREMENT",
    "Palette",
    "DisplayEncoding",
    "MASK_COLOR",
    "GEOMETRY_COLOR",
    "HIGH_COLOR",
    "VisualizationResult",
    "thicken_hazards",
    "thicken_boundaries",
    "average_score",
    "visualize",
]

# --- Colour Tables (linear RGB) ---
HIGH_COLOR: Final[Tuple[float, float, float]] = (1.0, 0.0, 0.0)
MASK_COLOR: Final[Tuple[float, float, float]] = (1.0, 0.5, 0.0)
GEOMETRY_COLOR: Final[Tuple[float, float, float]] = (1.0, 1.0, 0.0)
_BLACK: Final[Tuple[float, float, float]] = (0.0, 0.0, 0.0)

DEFAULT_RECIPROCAL_SCALE: Final[float] = 1.0
DEFAULT_LINEAR_MAX_HAZARD: Final[float] = 2.0
DEFAULT_GAUSSIAN_SIGMA: Final[float] = 0.75


# =============================================================================
# 1. MEASUREMENTS
# =============================================================================

class MeasurementKind(enum.Enum):
    RECIPROCAL = "reciprocal"
    LINEAR = "linear"
    GAUSSIAN = "gaussian"


_DEFAULT_PARAMETER: Final[dict] = {
    MeasurementKind.RECIPROCAL: DEFAULT_RECIPROCAL_SCALE,
    MeasurementKind.LINEAR: DEFAULT_LINEAR_MAX_HAZARD,
    MeasurementKind.GAUSSIAN: DEFAULT_GAUSSIAN_SIGMA,
}


@dataclass(slots=True, frozen=True)
class Measurement:
    """
    A perceptual scoring function and its single parameter.

    ``parameter`` is the reciprocal scale, the linear saturation distance or
    the Gaussian sigma, all in degrees.

    Raises:
        InvalidParameterError: If ``parameter`` is not > 0.
    """
    kind: MeasurementKind
    parameter: float

    def __post_init__(self) -> None:
        if not isinstance(self.kind, MeasurementKind):
            raise InvalidParameterError(f"unknown measurement kind {self.kind!r}",
                                        stage="Measurement")
        require_positive(self.parameter, f"{self.kind.value} parameter", stage="Measurement")

    @classmethod
    def reciprocal(cls, scale: float = DEFAULT_RECIPROCAL_SCALE) -> "Measurement":
        return cls(MeasurementKind.RECIPROCAL, scale)

    @classmethod
    def linear(cls, max_hazard: float = DEFAULT_LINEAR_MAX_HAZARD) -> "Measurement":
        return cls(MeasurementKind.LINEAR, max_hazard)

    @classmethod
    def gaussian(cls, sigma: float = DEFAULT_GAUSSIAN_SIGMA) -> "Measurement":
        return cls(MeasurementKind.GAUSSIAN, sigma)

    @classmethod
    def from_name(cls, name: str, parameter: Optional[float] = None) -> "Measurement":
        """
        Build a measurement from its name, using the default parameter when
        ``parameter`` is None.

        Raises:
            InvalidParameterError: Unknown name or non-positive parameter.
        """
        try:
            kind = MeasurementKind(str(name).strip().lower())
        except ValueError:
            raise InvalidParameterError(
                f"unknown measurement {name!r} (expected one of "
                f"{', '.join(k.value for k in MeasurementKind)})",
                stage="Measurement",
            ) from None
        return cls(kind, _DEFAULT_PARAMETER[kind] if parameter is None else parameter)

    def hazard_level(self, distance: Union[float, ArrayFloat]) -> Union[float, ArrayFloat]:
        """Hazard level in [0, 1] (1 = invisible) of an angular distance."""
        d = np.asarray(distance, dtype=np.float64)
        return 1.0 - self.goodness(d)

    def goodness(self, distance: Union[float, ArrayFloat]) -> Union[float, ArrayFloat]:
        """Visibility in [0, 1] (1 = on a luminance edge) of an angular distance."""
        d = np.asarray(distance, dtype=np.float64)
        p = self.parameter
        if self.kind is MeasurementKind.RECIPROCAL:
            return p / (d + p)
        if self.kind is MeasurementKind.LINEAR:
            return 1.0 - np.minimum(d, p) / p
        return np.exp(-0.5 * np.square(d / p))


DEFAULT_MEASUREMENT: Final[Measurement] = Measurement.gaussian()


# =============================================================================
# 2. PALETTES & ENCODING
# =============================================================================

class Palette(enum.Enum):
    """Colour schemes, identified by their low (hazard level 0) colour."""
    RED_GREEN = "red_green"
    RED_GRAY = "red_gray"
    GRAY_CYAN = "gray_cyan"     # false-positive fields

    @property
    def low(self) -> Tuple[float, float, float]:
        return _PALETTE_LOW[self]

    @property
    def high(self) -> Tuple[float, float, float]:
        return _PALETTE_HIGH.get(self, HIGH_COLOR)

    @classmethod
    def from_name(cls, name: "str | Palette") -> "Palette":
        if isinstance(name, Palette):
            return name
        key = str(name).strip().lower().replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise InvalidParameterError(
                f"unknown palette {name!r} (expected one of "
                f"{', '.join(p.value for p in cls)})",
                stage="Palette",
            ) from None


_PALETTE_LOW: Final[dict] = {
    Palette.RED_GREEN: (0.1, 0.4, 0.1),
    Palette.RED_GRAY: (0.15, 0.15, 0.15),
    Palette.GRAY_CYAN: (0.15, 0.15, 0.15),
}
_PALETTE_HIGH: Final[dict] = {
    Palette.GRAY_CYAN: (0.0, 1.0, 1.0),
}


class DisplayEncoding(enum.Enum):
    GAMMA = "gamma"
    LINEAR = "linear"

    @classmethod
    def from_name(cls, name: "str | DisplayEncoding") -> "DisplayEncoding":
        if isinstance(name, DisplayEncoding):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise InvalidParameterError(f"unknown display encoding {name!r}",
                                        stage="DisplayEncoding") from None


# =============================================================================
# 3. DILATION & SCORE
# =============================================================================

def _as_array(obj: "Raster | np.ndarray | None") -> Optional[np.ndarray]:
    if obj is None:
        return None
    return obj.data if isinstance(obj, Raster) else np.asarray(obj)


def thicken_hazards(hazards: ArrayFloat) -> ArrayFloat:
    """3x3 max filter of a hazard field; the one-pixel border is NO_EDGE."""
    h = np.asarray(hazards, dtype=np.float64)
    thick = ndimage.maximum_filter(h, size=3, mode="constant", cval=NO_EDGE)
    thick[0, :] = NO_EDGE
    thick[-1, :] = NO_EDGE
    thick[:, 0] = NO_EDGE
    thick[:, -1] = NO_EDGE
    return thick


def thicken_boundaries(boundaries: ArrayBool) -> ArrayBool:
    """3x3 dilation of a boolean map; the one-pixel border is False."""
    b = np.asarray(boundaries) != 0
    thick = ndimage.maximum_filter(b, size=3, mode="constant", cval=False)
    thick[0, :] = False
    thick[-1, :] = False
    thick[:, 0] = False
    thick[:, -1] = False
    return thick


def average_score(
    hazards: "Raster | np.ndarray",
    measurement: Measurement = DEFAULT_MEASUREMENT,
    mask: "Raster | np.ndarray | None" = None,
    roi: "Raster | np.ndarray | None" = None,
) -> float:
    """
    Mean goodness over geometry-boundary pixels.

    NO_EDGE, masked and out-of-ROI pixels are excluded.  Returns NaN when
    no pixel is counted.

    Raises:
        ShapeMismatchError: Overlays do not conform to ``hazards``.
    """
    require_conformant(hazards, mask, roi, stage="average_score")
    h = np.asarray(_as_array(hazards), dtype=np.float64)
    counted = h != NO_EDGE
    if mask is not None:
        counted &= _as_array(mask) == 0
    if roi is not None:
        counted &= _as_array(roi) != 0

    n = int(counted.sum())
    if n == 0:
        return math.nan
    return float(np.mean(measurement.goodness(h[counted])))


# =============================================================================
# 4. VISUALIZATION
# =============================================================================

class VisualizationResult(NamedTuple):
    image: Raster                  # uint8 (rows, cols, 3)
    average_score: Optional[float] = None


def visualize(
    hazards: "Raster | np.ndarray",
    measurement: Measurement = DEFAULT_MEASUREMENT,
    palette: "Palette | str" = Palette.RED_GREEN,
    mask: "Raster | np.ndarray | None" = None,
    roi: "Raster | np.ndarray | None" = None,
    geometry_boundary: "Raster | np.ndarray | None" = None,
    encoding: "DisplayEncoding | str" = DisplayEncoding.GAMMA,
    with_average: bool = True,
) -> VisualizationResult:
    """
    Colour-coded rendering of a hazard field.

    Args:
        hazards: Hazard field (degrees or NO_EDGE).
        measurement: Scoring function.
        palette: Colour scheme.
        mask: Pixels to paint in ``MASK_COLOR`` and exclude from the score.
        roi: Region of interest; everything outside is black and ignored.
        geometry_boundary: Highlights geometry edges inside the mask.
        encoding: Gamma (default) or linear 8-bit encoding.
        with_average: Also compute the visibility score.

    Returns:
        VisualizationResult(image, average_score).

    Raises:
        ShapeMismatchError: Overlays do not conform to ``hazards``.
        InvalidParameterError: Unknown palette or encoding.
    """
    require_conformant(hazards, mask, roi, geometry_boundary, stage="visualize")
    palette = Palette.from_name(palette)
    encoding = DisplayEncoding.from_name(encoding)

    h = np.asarray(_as_array(hazards), dtype=np.float64)
    if h.ndim != 2:
        raise InvalidParameterError(f"hazard field must be 2-D, got {h.shape}",
                                    stage="visualize")

    thick = thicken_hazards(h)
    level = measurement.hazard_level(np.maximum(thick, 0.0))[..., np.newaxis]
    low = np.asarray(palette.low)
    high = np.asarray(palette.high)
    rgb = level * high + (1.0 - level) * low
    rgb[thick == NO_EDGE] = _BLACK

    if mask is not None:
        m = _as_array(mask) != 0
        rgb[m] = MASK_COLOR
        if geometry_boundary is not None:
            rgb[m & thicken_boundaries(_as_array(geometry_boundary))] = GEOMETRY_COLOR

    if roi is not None:
        rgb[_as_array(roi) == 0] = _BLACK

    if encoding is DisplayEncoding.GAMMA:
        image = ColorModel.rgb_linear_to_gamma(rgb)
    else:
        image = ColorModel.rgb_linear_to_linear8(rgb)

    score = average_score(h, measurement, mask=mask, roi=roi) if with_average else None
    if score is not None:
        logger.info("average %s score: %.4f", measurement.kind.value, score)

    fov = hazards.fov if isinstance(hazards, Raster) else None
    return VisualizationResult(
        image=Raster(image.astype(np.uint8), fov=fov, description="hazard visualization"),
        average_score=score,
    )
