# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: canny.py — Canny edge detector with Fleck's modifications.

Implements the finite-difference refinements described in M. Fleck, "Some
defects in finite-difference edge finders", IEEE PAMI 14(3), 1992:

  - 3x3 gradient combining horizontal/vertical and diagonal differences.
  - Non-maximum suppression against interpolated neighbours at distance 1
    *and* distance 2 along the gradient.

Gradients are taken on ``log(luminance + 0.1)``: the visual system responds
to luminance ratios, not differences, and the log turns ratios into
differences.

Thresholding modes:
  - explicit high only        -> simple threshold
  - explicit high and low     -> hysteresis
  - automatic (default)       -> high threshold chosen so that 40 % of the
                                 local-maximum pixels lie above it,
                                 low = 0.6 * high, then hysteresis.
"""

import logging
import warnings
from typing import Final, NamedTuple, Optional, Tuple

import numpy as np
from numba import njit
from scipy import ndimage

from vantage_raster import ArrayFloat, InvalidParameterError

logger = logging.getLogger(__name__)

# --- Constants ---
BLUR_ST_DEV_MIN: Final[float] = 0.5     # smallest usable Gaussian sigma
BLUR_TRUNCATE: Final[float] = 3.5       # kernel extends 7 sigma in total
LOG_EPSILON: Final[float] = 0.1         # avoids log(0)

PERCENTILE_EDGE_PIXELS: Final[float] = 0.4
LOW_THRESHOLD_MULTIPLE: Final[float] = 0.6
MAGNITUDE_HIST_NBINS: Final[int] = 1000
_BIN_EPSILON: Final[float] = 0.0001

# Edge map labels
NO_EDGE: Final[int] = 0
MARKED_EDGE: Final[int] = 1
POSSIBLE_EDGE: Final[int] = 2
CERTAIN_EDGE: Final[int] = 3

ORIENTATION_NO_EDGE: Final[float] = -1.0

# Threshold modes understood by the suppression kernel
_SIMPLE: Final[int] = 1
_HYSTERESIS: Final[int] = 2
_NONE: Final[int] = 3


class EdgeMap(NamedTuple):
    """Result of an edge detector run."""
    boundaries: np.ndarray                  # bool (rows, cols)
    magnitude: Optional[ArrayFloat] = None  # 0.0 off-edge
    orientation: Optional[ArrayFloat] = None  # degrees in [0, 360), -1 off-edge


# =============================================================================
# 1. SMOOTHING
# =============================================================================

def gaussian_blur(image: ArrayFloat, st_dev: float) -> ArrayFloat:
    """
    Gaussian blur that ignores the part of the kernel outside the image.

    Each output pixel is normalised by the kernel weight that actually fell
    inside the raster, so borders are neither darkened nor mirrored.

    Raises:
        InvalidParameterError: If ``st_dev`` is below ``BLUR_ST_DEV_MIN``.
    """
    if st_dev < BLUR_ST_DEV_MIN:
        raise InvalidParameterError(
            f"st_dev too small to use ({st_dev:g})", stage="gaussian_blur"
        )
    image = np.asarray(image, dtype=np.float64)
    blurred = ndimage.gaussian_filter(
        image, st_dev, mode="constant", cval=0.0, truncate=BLUR_TRUNCATE
    )
    weight = ndimage.gaussian_filter(
        np.ones_like(image), st_dev, mode="constant", cval=0.0, truncate=BLUR_TRUNCATE
    )
    return blurred / weight


# =============================================================================
# 2. KERNELS (Numba Optimized)
# =============================================================================

@njit(cache=True, fastmath=True)
def _fleck_gradient(image: ArrayFloat) -> Tuple[ArrayFloat, ArrayFloat, ArrayFloat]:
    """
    Fleck 3x3 gradient.  Returns (magnitude, grad_Y, grad_X); the one-pixel
    border is zero.
    """
    n_rows, n_cols = image.shape
    magnitude = np.zeros((n_rows, n_cols))
    grad_Y = np.zeros((n_rows, n_cols))
    grad_X = np.zeros((n_rows, n_cols))

    for row in range(1, n_rows - 1):
        for col in range(1, n_cols - 1):
            V = image[row + 1, col] - image[row - 1, col]
            H = image[row, col + 1] - image[row, col - 1]
            D1 = image[row + 1, col + 1] - image[row - 1, col - 1]
            D2 = image[row - 1, col + 1] - image[row + 1, col - 1]
            X = H + 0.5 * (D1 + D2)
            Y = V + 0.5 * (D1 - D2)
            magnitude[row, col] = np.sqrt(X * X + Y * Y)
            grad_Y[row, col] = Y
            grad_X[row, col] = X
    return magnitude, grad_Y, grad_X


@njit(cache=True)
def _suppress_non_maxima(magnitude: ArrayFloat, grad_Y: ArrayFloat, grad_X: ArrayFloat,
                         high_threshold: float, low_threshold: float,
                         threshold_type: int) -> np.ndarray:
    """
    Threshold and keep directional local maxima at distance 1 and 2.

    Returns a uint8 label map (NO / MARKED / POSSIBLE / CERTAIN).  The
    two-pixel border is always NO_EDGE.
    """
    n_rows, n_cols = magnitude.shape
    edge_map = np.zeros((n_rows, n_cols), dtype=np.uint8)

    for row in range(2, n_rows - 2):
        for col in range(2, n_cols - 2):
            center = magnitude[row, col]

            if threshold_type == 1:
                if center <= high_threshold:
                    continue
                edge_map[row, col] = 1
            elif threshold_type == 2:
                if center <= low_threshold:
                    continue
                elif center > high_threshold:
                    edge_map[row, col] = 3
                else:
                    edge_map[row, col] = 2
            else:
                if center <= 0.0:
                    continue
                edge_map[row, col] = 1

            gy = grad_Y[row, col]
            gx = grad_X[row, col]
            gy_abs = abs(gy)
            gx_abs = abs(gx)

            # Distance 1: interpolate between the axis and diagonal neighbours.
            if gy_abs > gx_abs:
                B = gy_abs
                S = gx_abs
                if gy > 0.0:
                    hv_plus = magnitude[row + 1, col]
                    hv_minus = magnitude[row - 1, col]
                    if gx > 0.0:
                        d_plus = magnitude[row + 1, col + 1]
                        d_minus = magnitude[row - 1, col - 1]
                    else:
                        d_plus = magnitude[row + 1, col - 1]
                        d_minus = magnitude[row - 1, col + 1]
                else:
                    hv_plus = magnitude[row - 1, col]
                    hv_minus = magnitude[row + 1, col]
                    if gx > 0.0:
                        d_plus = magnitude[row - 1, col + 1]
                        d_minus = magnitude[row + 1, col - 1]
                    else:
                        d_plus = magnitude[row - 1, col - 1]
                        d_minus = magnitude[row + 1, col + 1]
            else:
                B = gx_abs
                S = gy_abs
                if gx > 0.0:
                    hv_plus = magnitude[row, col + 1]
                    hv_minus = magnitude[row, col - 1]
                    if gy > 0.0:
                        d_plus = magnitude[row + 1, col + 1]
                        d_minus = magnitude[row - 1, col - 1]
                    else:
                        d_plus = magnitude[row - 1, col + 1]
                        d_minus = magnitude[row + 1, col - 1]
                else:
                    hv_plus = magnitude[row, col - 1]
                    hv_minus = magnitude[row, col + 1]
                    if gy > 0.0:
                        d_plus = magnitude[row + 1, col - 1]
                        d_minus = magnitude[row - 1, col + 1]
                    else:
                        d_plus = magnitude[row - 1, col - 1]
                        d_minus = magnitude[row + 1, col + 1]

            g_plus = ((B - S) * hv_plus + S * d_plus) / B
            g_minus = ((B - S) * hv_minus + S * d_minus) / B
            if (g_plus - center) > 0.0 or (g_minus - center) >= 0.0:
                edge_map[row, col] = 0
                continue

            # Distance 2
            if gy_abs > gx_abs:
                coord = 2.0 * (gx_abs / gy_abs)
                lo_f = np.floor(coord)
                lo = int(lo_f)
                hi_f = lo_f + 1.0
                hi = int(hi_f)
                if gx * gy > 0.0:
                    g2_plus = ((coord - lo_f) * magnitude[row + 2, col + lo]
                               + (hi_f - coord) * magnitude[row + 2, col + hi])
                    g2_minus = ((hi_f - coord) * magnitude[row - 2, col - hi]
                                + (coord - lo_f) * magnitude[row - 2, col - lo])
                else:
                    g2_plus = ((coord - lo_f) * magnitude[row - 2, col + lo]
                               + (hi_f - coord) * magnitude[row - 2, col + hi])
                    g2_minus = ((hi_f - coord) * magnitude[row + 2, col - hi]
                                + (coord - lo_f) * magnitude[row + 2, col - lo])
            elif gy_abs < gx_abs:
                coord = 2.0 * (gy_abs / gx_abs)
                lo_f = np.floor(coord)
                lo = int(lo_f)
                hi_f = lo_f + 1.0
                hi = int(hi_f)
                if gx * gy > 0.0:
                    g2_plus = ((coord - lo_f) * magnitude[row + lo, col + 2]
                               + (hi_f - coord) * magnitude[row + hi, col + 2])
                    g2_minus = ((hi_f - coord) * magnitude[row - hi, col - 2]
                                + (coord - lo_f) * magnitude[row - lo, col - 2])
                else:
                    g2_plus = ((coord - lo_f) * magnitude[row + lo, col - 2]
                               + (hi_f - coord) * magnitude[row + hi, col - 2])
                    g2_minus = ((hi_f - coord) * magnitude[row - hi, col + 2]
                                + (coord - lo_f) * magnitude[row - lo, col + 2])
            else:
                if gy * gx >= 0.0:
                    g2_plus = magnitude[row + 2, col + 2]
                    g2_minus = magnitude[row - 2, col - 2]
                else:
                    g2_plus = magnitude[row + 2, col - 2]
                    g2_minus = magnitude[row - 2, col + 2]

            if (center - g2_plus) <= 0.0 or (center - g2_minus) <= 0.0:
                edge_map[row, col] = 0

    return edge_map


@njit(cache=True)
def _hysteresis(edge_map: np.ndarray) -> None:
    """
    Promote POSSIBLE pixels 8-connected to a CERTAIN pixel, in place.

    Everything reached becomes MARKED; unreached POSSIBLE pixels are
    dropped.
    """
    n_rows, n_cols = edge_map.shape
    stack = np.empty((n_rows * n_cols, 2), dtype=np.int64)

    for row in range(n_rows):
        for col in range(n_cols):
            if edge_map[row, col] != 3:
                continue
            edge_map[row, col] = 1
            top = 0
            stack[top, 0] = row
            stack[top, 1] = col
            top += 1
            while top > 0:
                top -= 1
                r = stack[top, 0]
                c = stack[top, 1]
                for nr in range(max(r - 1, 0), min(r + 2, n_rows)):
                    for nc in range(max(c - 1, 0), min(c + 2, n_cols)):
                        label = edge_map[nr, nc]
                        if label == 3 or label == 2:
                            edge_map[nr, nc] = 1
                            stack[top, 0] = nr
                            stack[top, 1] = nc
                            top += 1

    for row in range(n_rows):
        for col in range(n_cols):
            if edge_map[row, col] == 2:
                edge_map[row, col] = 0


@njit(cache=True)
def _hysteresis_label(edge_map: np.ndarray, magnitude: ArrayFloat,
                      high_threshold: float, low_threshold: float) -> None:
    """Relabel interior pixels as NO / POSSIBLE / CERTAIN by magnitude."""
    n_rows, n_cols = edge_map.shape
    for row in range(2, n_rows - 2):
        for col in range(2, n_cols - 2):
            m = magnitude[row, col]
            if m <= low_threshold:
                edge_map[row, col] = 0
            elif m > high_threshold:
                edge_map[row, col] = 3
            else:
                edge_map[row, col] = 2


# =============================================================================
# 3. THRESHOLD SELECTION & ORIENTATION
# =============================================================================

def auto_thresholds(magnitude: ArrayFloat) -> Tuple[float, float]:
    """
    Percentile thresholds from the magnitude histogram.

    ``magnitude`` should already be zero at non-maxima.  Bins are filled
    from the interior (one-pixel border excluded), then accumulated from the
    top bin until more than ``PERCENTILE_EDGE_PIXELS`` of the non-zero
    pixels are covered.

    Returns:
        (high_threshold, low_threshold)
    """
    interior = magnitude[1:-1, 1:-1]
    n_rows, n_cols = magnitude.shape
    if interior.size == 0:
        return -1.0, -1.0

    magnitude_max = float(interior.max())
    if magnitude_max < 0.0:
        raise InvalidParameterError("gradient magnitude < 0.0", stage="auto_thresholds")

    if magnitude_max > 0.0:
        scale = (MAGNITUDE_HIST_NBINS - _BIN_EPSILON) / magnitude_max
        bins = (interior * scale).astype(np.int64).ravel()
        hist = np.bincount(bins, minlength=MAGNITUDE_HIST_NBINS)
    else:
        hist = np.zeros(MAGNITUDE_HIST_NBINS, dtype=np.int64)
        hist[0] = 1

    total_count = (n_rows - 1) * (n_cols - 1) - int(hist[0])

    chosen = -1
    percentile = 0.0
    for b in range(MAGNITUDE_HIST_NBINS - 1, -1, -1):
        percentile += hist[b] / total_count
        if percentile > PERCENTILE_EDGE_PIXELS:
            chosen = b
            break

    high = (chosen + 0.5) / (MAGNITUDE_HIST_NBINS - _BIN_EPSILON) * magnitude_max
    return high, high * LOW_THRESHOLD_MULTIPLE


def _orientation(edge_map: np.ndarray, grad_Y: ArrayFloat, grad_X: ArrayFloat) -> ArrayFloat:
    """Gradient direction in degrees, [0, 360), -1 where there is no edge."""
    degrees = np.degrees(np.arctan2(grad_Y, grad_X))
    degrees = np.where(degrees < 0.0, degrees + 360.0, degrees)
    degrees = np.where(degrees >= 360.0, 0.0, degrees)
    return np.where(edge_map == NO_EDGE, ORIENTATION_NO_EDGE, degrees)


# =============================================================================
# 4. DETECTOR
# =============================================================================

def canny(
    image: ArrayFloat,
    st_dev: float,
    high_threshold: float = 0.0,
    low_threshold: float = 0.0,
    auto_threshold: bool = True,
    log_magnitude: bool = True,
    with_magnitude: bool = False,
    with_orientation: bool = False,
) -> EdgeMap:
    """
    Canny edge detection (Fleck variant).

    Args:
        image: 2-D luminance.
        st_dev: Sigma of the initial blur; ``<= 0`` disables blurring,
            values in (0, 0.5) are rejected.
        high_threshold: Primary threshold; ignored when ``auto_threshold``.
        low_threshold: Hysteresis threshold; must not exceed the high one.
        auto_threshold: Choose thresholds from the magnitude histogram.
        log_magnitude: Take gradients of ``log(I + 0.1)``.
        with_magnitude: Also return the cleaned gradient magnitude.
        with_orientation: Also return gradient orientation.

    Returns:
        EdgeMap with a boolean boundary map.

    Raises:
        InvalidParameterError: Image smaller than 5x5, bad sigma, or
            inconsistent explicit thresholds.
    """
    image = np.asarray(image, dtype=np.float64)
    if image.ndim != 2 or image.shape[0] < 5 or image.shape[1] < 5:
        raise InvalidParameterError(
            f"input image too small ({image.shape})", stage="canny"
        )

    if not auto_threshold:
        if high_threshold <= 0.0 and low_threshold > 0.0:
            warnings.warn("canny: low_threshold ignored without a high threshold",
                          RuntimeWarning, stacklevel=2)
        elif low_threshold > high_threshold:
            raise InvalidParameterError(
                f"low_threshold ({low_threshold}) > high_threshold ({high_threshold})",
                stage="canny",
            )

    if st_dev >= BLUR_ST_DEV_MIN:
        smoothed = gaussian_blur(image, st_dev)
    elif st_dev <= 0.0:
        smoothed = image
    else:
        raise InvalidParameterError(
            f"can't handle small standard deviations ({st_dev})", stage="canny"
        )

    if log_magnitude:
        smoothed = np.log(smoothed + LOG_EPSILON)

    magnitude, grad_Y, grad_X = _fleck_gradient(np.ascontiguousarray(smoothed))

    if auto_threshold:
        # Thresholds come from the local maxima only.
        edge_map = _suppress_non_maxima(magnitude, grad_Y, grad_X, 0.0, 0.0, _NONE)
        magnitude[edge_map == NO_EDGE] = 0.0
        high, low = auto_thresholds(magnitude)
        logger.debug("canny auto thresholds: high=%.6g low=%.6g", high, low)
        _hysteresis_label(edge_map, magnitude, high, low)
        _hysteresis(edge_map)
    else:
        if high_threshold > 0.0 and low_threshold <= 0.0:
            mode = _SIMPLE
        elif high_threshold > 0.0 and low_threshold > 0.0:
            mode = _HYSTERESIS
        else:
            mode = _NONE
        edge_map = _suppress_non_maxima(magnitude, grad_Y, grad_X,
                                        float(high_threshold), float(low_threshold), mode)
        if mode == _HYSTERESIS:
            _hysteresis(edge_map)

    magnitude[edge_map == NO_EDGE] = 0.0

    return EdgeMap(
        boundaries=edge_map != NO_EDGE,
        magnitude=magnitude if with_magnitude else None,
        orientation=_orientation(edge_map, grad_Y, grad_X) if with_orientation else None,
    )


class CannyEdgeDetector:
    """
    Callable luminance edge detector with automatic thresholds.

    Satisfies the ``EdgeDetector`` protocol of ``vantage_hazards``.

    Attributes:
        high_threshold / low_threshold: Explicit thresholds.  When both are
            None (default) thresholds are chosen automatically.
        log_magnitude: Gradient of log luminance (default True).
    """

    def __init__(
        self,
        high_threshold: Optional[float] = None,
        low_threshold: Optional[float] = None,
        log_magnitude: bool = True,
    ):
        self.high_threshold = high_threshold
        self.low_threshold = low_threshold
        self.log_magnitude = log_magnitude

    def __call__(self, luminance: ArrayFloat, sigma: float) -> EdgeMap:
        auto = self.high_threshold is None and self.low_threshold is None
        return canny(
            luminance,
            sigma,
            high_threshold=self.high_threshold or 0.0,
            low_threshold=self.low_threshold or 0.0,
            auto_threshold=auto,
            log_magnitude=self.log_magnitude,
            with_magnitude=True,
            with_orientation=True,
        )

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(high_threshold={self.high_threshold}, "
                f"low_threshold={self.low_threshold}, log_magnitude={self.log_magnitude})")
