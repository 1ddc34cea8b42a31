# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Color / Luminance Model
=======================
Stateless conversions between the four photometric representations used
by the visibility pipeline:

    Gray (8-bit)  <->  Linear scalar / linear RGB  <->  CIE XYZ  <->  xyY
    gamma or linear encoded

Two independent "cannot exceed 1.0" policies are implemented and must
stay distinct:

1. Absolute clamp - the scalar encoders (``encode_gamma``,
   ``encode_linear``) clamp each value to [0, 1] before encoding.  Values
   above 1.0 (HDR renderer output) saturate instead of wrapping.
2. Relative clip - the triple encoders (``rgb_linear_to_gamma``,
   ``rgb_linear_to_linear8``) divide all three channels by
   ``max(1, max(R, G, B))`` so the brightest channel lands on 1.0 and the
   channel ratios (hue) survive.

XYZ values are on the same scale as linear RGB (Y of white = 1 for
RGB = (1, 1, 1)), not the D65-normalised convention of image headers.

References:
    - IEC 61966-2-1:1999 (sRGB Standard)
    - CIE 15:2004 "Colorimetry"
"""

import functools
from typing import Any, Callable, Final, Union

import numpy as np
from numba import njit

from vantage_raster import ArrayFloat, ShapeMismatchError

__all__ = [
    # --- Constants ---
    "M_SRGB_TO_XYZ_T",
    "M_XYZ_TO_SRGB_T",
    "Y_FROM_RGB",
    "ACHROMATIC_XY",

    # --- Decorators ---
    "handle_shapes",

    # --- Classes ---
    "ColorModel",
]

ArrayLike = Union[float, int, np.ndarray]

# --- Constants & Pre-Transposed Matrices ---

# sRGB primaries, D65 white.  Pre-transposed so that row-vector pixels can
# be converted with ``pixels @ M_T`` on any (..., 3) array.
_M_SRGB_TO_XYZ_BASE = np.array([
    [0.4124564, 0.3575761, 0.1804375],
    [0.2126729, 0.7151522, 0.0721750],
    [0.0193339, 0.1191920, 0.9503041]
], dtype=np.float64)
M_SRGB_TO_XYZ_T: Final[ArrayFloat] = _M_SRGB_TO_XYZ_BASE.T.copy()

_M_XYZ_TO_SRGB_BASE = np.array([
    [ 3.2404542, -1.5371385, -0.4985314],
    [-0.9692660,  1.8760108,  0.0415560],
    [ 0.0556434, -0.2040259,  1.0572252]
], dtype=np.float64)
M_XYZ_TO_SRGB_T: Final[ArrayFloat] = _M_XYZ_TO_SRGB_BASE.T.copy()

# Luminance-only path: middle row of the RGB -> XYZ matrix.
Y_FROM_RGB: Final[ArrayFloat] = _M_SRGB_TO_XYZ_BASE[1].copy()

# IEC 61966-2-1 breakpoints
_DECODE_BREAK: Final[float] = 0.04045
_ENCODE_BREAK: Final[float] = 0.0031308

# Chromaticity returned for zero-energy XYZ
ACHROMATIC_XY: Final[float] = 1.0 / 3.0


# =============================================================================
# 1. DECORATORS
# =============================================================================

def handle_shapes(func: Callable[..., np.ndarray]) -> Callable[..., np.ndarray]:
    """
    Decorator to normalize triple inputs and safeguard shape.

    Accepts a single triple ``(3,)``, a batch ``(N, 3)`` or an image
    ``(H, W, 3)``; the wrapped function sees at least 2-D contiguous
    float64 data whose last axis has size 3.

    Returns:
        The wrapped function.  A ``(3,)`` input yields a ``(3,)`` result.
    """
    @functools.wraps(func)
    def wrapper(arr: Any, *args: Any, **kwargs: Any) -> np.ndarray:
        arr = np.asarray(arr)
        arr_in = np.ascontiguousarray(np.atleast_2d(arr), dtype=np.float64)

        if arr_in.shape[-1] != 3:
            raise ShapeMismatchError(
                f"Expected last dimension size 3, got {arr_in.shape[-1]}",
                stage=func.__name__,
            )

        res = func(arr_in, *args, **kwargs)

        if arr.ndim == 1:
            return res[0]
        return res
    return wrapper


# =============================================================================
# 2. LOW-LEVEL TRANSFER KERNELS (Numba Optimized)
# =============================================================================
# Kernels work on flat float64 vectors; callers restore the shape.
# Transfer functions are compiled with fastmath=False: results must match
# the IEC 61966-2-1 formulas bit for bit, which rules out reciprocal
# multiplies and reassociation.

@njit(cache=True, fastmath=False)
def _decode_gamma(codes: ArrayFloat) -> ArrayFloat:
    """sRGB EOTF on 8-bit code values."""
    out = np.empty_like(codes)
    for i in range(codes.size):
        v = codes[i] / 255.0
        if v <= 0.04045:
            out[i] = v / 12.92
        else:
            out[i] = ((v + 0.055) / 1.055) ** 2.4
    return out

@njit(cache=True, fastmath=False)
def _encode_gamma(linear: ArrayFloat) -> np.ndarray:
    """Clamp to [0, 1], apply the sRGB OETF and quantize to 8 bits."""
    out = np.empty(linear.size, dtype=np.uint8)
    for i in range(linear.size):
        v = linear[i]
        if v < 0.0:
            v = 0.0
        elif v > 1.0:
            v = 1.0
        if v <= 0.0031308:
            e = 12.92 * v
        else:
            e = 1.055 * (v ** (1.0 / 2.4)) - 0.055
        out[i] = int(255.0 * e + 0.5)
    return out

@njit(cache=True, fastmath=False)
def _encode_linear(linear: ArrayFloat) -> np.ndarray:
    """Clamp to [0, 1] and quantize to 8 bits."""
    out = np.empty(linear.size, dtype=np.uint8)
    for i in range(linear.size):
        v = linear[i]
        if v < 0.0:
            v = 0.0
        elif v > 1.0:
            v = 1.0
        out[i] = int(255.0 * v + 0.5)
    return out


def _apply_flat(kernel: Callable[[np.ndarray], np.ndarray], values: ArrayLike) -> Any:
    """
    Run a flat kernel over any scalar or array input.

    Scalars come back as Python scalars, arrays keep their shape.
    """
    arr = np.asarray(values, dtype=np.float64)
    res = kernel(np.ascontiguousarray(arr.ravel())).reshape(arr.shape)
    if arr.ndim == 0:
        return res.item()
    return res



# =============================================================================
# 3. COLOR MODEL
# =============================================================================

class ColorModel:
    """Static utility class for photometric conversions.

    Architecture Note:
        Triple conversions provide a public ``@handle_shapes`` decorated API
        and an internal ``_raw`` fast-path that assumes validated float64
        input with a trailing axis of 3.  Convenience pipelines (e.g.
        ``srgb8_to_xyz``) call the ``_raw`` variants directly.
    """

    # =====================================================================
    #  Internal _raw fast-path methods  (assume validated (..., 3) float64)
    # =====================================================================

    @staticmethod
    def _rgb_to_xyz_raw(rgb: ArrayFloat) -> ArrayFloat:
        return np.dot(rgb, M_SRGB_TO_XYZ_T)

    @staticmethod
    def _xyz_to_rgb_raw(xyz: ArrayFloat) -> ArrayFloat:
        return np.dot(xyz, M_XYZ_TO_SRGB_T)

    @staticmethod
    def _relative_clip_raw(rgb: ArrayFloat) -> ArrayFloat:
        """Divide each triple by max(1, brightest channel)."""
        peak = np.maximum(np.max(rgb, axis=-1, keepdims=True), 1.0)
        return rgb / peak

    @staticmethod
    def _xyz_to_xyY_raw(xyz: ArrayFloat) -> ArrayFloat:
        norm = np.sum(xyz, axis=-1)
        mask = norm > 0.0
        xyY = np.empty_like(xyz)
        # Zero-energy pixels are achromatic black.
        xyY[..., 0] = ACHROMATIC_XY
        xyY[..., 1] = ACHROMATIC_XY
        xyY[..., 2] = 0.0

        if np.any(mask):
            inv = 1.0 / norm[mask]
            xyY[mask, 0] = xyz[mask, 0] * inv
            xyY[mask, 1] = xyz[mask, 1] * inv
            xyY[mask, 2] = xyz[mask, 1]
        return xyY

    @staticmethod
    def _xyY_to_xyz_raw(xyY: ArrayFloat) -> ArrayFloat:
        x, y, Y = xyY[..., 0], xyY[..., 1], xyY[..., 2]
        xyz = np.zeros_like(xyY)
        mask = y > 0.0
        if np.any(mask):
            factor = Y[mask] / y[mask]
            xyz[mask, 0] = x[mask] * factor
            xyz[mask, 1] = Y[mask]
            xyz[mask, 2] = (1.0 - x[mask] - y[mask]) * factor
        return xyz

    # =====================================================================
    #  Scalar transfer functions  (any shape)
    # =====================================================================

    @staticmethod
    def decode_gamma(gray: ArrayLike) -> Any:
        """
        Decodes 8-bit sRGB gamma-encoded values to linear.

        Args:
            gray: Integer code value(s) in [0, 255].

        Returns:
            Linear value(s) in [0, 1].  No clamping is applied.
        """
        return _apply_flat(_decode_gamma, gray)

    @staticmethod
    def decode_linear(gray: ArrayLike) -> Any:
        """Decodes 8-bit linear-encoded values: ``gray / 255``."""
        arr = np.asarray(gray, dtype=np.float64) / 255.0
        return arr.item() if arr.ndim == 0 else arr

    @staticmethod
    def encode_gamma(linear: ArrayLike) -> Any:
        """
        Encodes linear values as 8-bit sRGB.

        Input is clamped to [0, 1] *before* the OETF is applied, so HDR
        values saturate at 255 and negative values at 0.

        Args:
            linear: Linear value(s), any shape.

        Returns:
            uint8 code value(s) (int for scalar input).
        """
        return _apply_flat(_encode_gamma, linear)

    @staticmethod
    def encode_linear(linear: ArrayLike) -> Any:
        """Clamps to [0, 1], scales by 255 and rounds."""
        return _apply_flat(_encode_linear, linear)

    # =====================================================================
    #  Public triple API  (shape-safe wrappers)
    # =====================================================================

    @staticmethod
    @handle_shapes
    def rgb_linear_to_gamma(rgb: ArrayFloat) -> np.ndarray:
        """
        Converts linear RGB to displayable 8-bit sRGB.

        The triple is first divided by ``max(1, max(R, G, B))``
        (ratio-preserving relative clip), then each channel is gamma
        encoded.

        Args:
            rgb: Linear RGB, shape (3,), (N, 3) or (H, W, 3).

        Returns:
            uint8 array of the same shape.
        """
        return ColorModel.encode_gamma(ColorModel._relative_clip_raw(rgb))

    @staticmethod
    @handle_shapes
    def rgb_linear_to_linear8(rgb: ArrayFloat) -> np.ndarray:
        """
        Converts linear RGB to 8-bit linear-encoded RGB.

        Same relative clip as ``rgb_linear_to_gamma``, linear quantization.
        """
        return ColorModel.encode_linear(ColorModel._relative_clip_raw(rgb))

    @staticmethod
    @handle_shapes
    def rgb_to_xyz(rgb: ArrayFloat) -> ArrayFloat:
        """Converts linear RGB (sRGB primaries) to XYZ."""
        return ColorModel._rgb_to_xyz_raw(rgb)

    @staticmethod
    @handle_shapes
    def xyz_to_rgb(xyz: ArrayFloat) -> ArrayFloat:
        """Converts XYZ to linear RGB (sRGB primaries).  No clipping."""
        return ColorModel._xyz_to_rgb_raw(xyz)

    @staticmethod
    def rgb_to_Y(rgb: ArrayLike) -> Any:
        """
        Luminance of linear RGB.

        Only the middle row of the RGB -> XYZ matrix is evaluated.

        Args:
            rgb: Linear RGB, trailing axis of size 3.

        Returns:
            Y with the trailing axis removed (float for a single triple).
        """
        arr = np.asarray(rgb, dtype=np.float64)
        if arr.shape[-1:] != (3,):
            raise ShapeMismatchError(
                f"Expected last dimension size 3, got {arr.shape[-1:] or arr.shape}",
                stage="rgb_to_Y",
            )
        Y = np.dot(arr, Y_FROM_RGB)
        return Y.item() if np.ndim(Y) == 0 else Y

    @staticmethod
    @handle_shapes
    def xyz_to_xyY(xyz: ArrayFloat) -> ArrayFloat:
        """
        Converts XYZ to xyY.

            x = X / (X+Y+Z)
            y = Y / (X+Y+Z)
            Y = Y

        Black-Pixel Handling:
            If ``X+Y+Z <= 0`` the result is exactly ``(1/3, 1/3, 0)``
            (equal-energy chromaticity) instead of a division by zero.

        Args:
            xyz: XYZ data, shape (3,), (N, 3) or (H, W, 3).

        Returns:
            xyY coordinates.
        """
        return ColorModel._xyz_to_xyY_raw(xyz)

    @staticmethod
    @handle_shapes
    def xyY_to_xyz(xyY: ArrayFloat) -> ArrayFloat:
        """
        Converts xyY to XYZ.  Returns ``(0, 0, 0)`` wherever ``y <= 0``.
        """
        return ColorModel._xyY_to_xyz_raw(xyY)

    # =====================================================================
    #  Convenience pipelines
    # =====================================================================

    @staticmethod
    def gray_to_rgb_linear(Y: ArrayLike) -> ArrayFloat:
        """Achromatic linear RGB triple(s) with all channels equal to ``Y``."""
        arr = np.asarray(Y, dtype=np.float64)
        return np.repeat(arr[..., np.newaxis], 3, axis=-1)

    @staticmethod
    def Y_to_rgb_gamma(Y: ArrayLike) -> np.ndarray:
        """Achromatic 8-bit sRGB triple(s) for linear luminance ``Y``."""
        gray = ColorModel.encode_gamma(Y)
        return np.repeat(np.asarray(gray, dtype=np.uint8)[..., np.newaxis], 3, axis=-1)

    @staticmethod
    @handle_shapes
    def srgb8_to_xyz(rgb8: ArrayFloat) -> ArrayFloat:
        """8-bit gamma-encoded sRGB -> XYZ."""
        return ColorModel._rgb_to_xyz_raw(ColorModel.decode_gamma(rgb8))

    @staticmethod
    @handle_shapes
    def xyz_to_srgb8(xyz: ArrayFloat) -> np.ndarray:
        """XYZ -> 8-bit gamma-encoded sRGB with relative clip."""
        rgb = ColorModel._xyz_to_rgb_raw(xyz)
        return ColorModel.encode_gamma(ColorModel._relative_clip_raw(rgb))

    @staticmethod
    def srgb8_to_Y(rgb8: ArrayLike) -> Any:
        """Luminance of 8-bit gamma-encoded sRGB."""
        return ColorModel.rgb_to_Y(ColorModel.decode_gamma(rgb8))
