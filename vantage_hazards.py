# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Hazard Field Computation
========================
Fuses a luminance boundary map (edges a viewer can see) with a geometry
boundary map (edges that physically exist) into a per-pixel *hazard
field*:

    hazard[r, c] = degrees_per_pixel * sqrt(distance_sq[r, c])   if boundary
                 = NO_EDGE                                       otherwise

where ``distance_sq`` is the squared pixel distance to the nearest
luminance edge.  A geometry edge far from any luminance edge is likely to
be invisible and hence hazardous.

Swapping the roles of the two maps gives the *false-positive* field:
luminance edges that are not explained by any geometry.

The collaborating detectors are injected through small protocols so that
callers can substitute their own implementations:

    EdgeDetector(luminance, sigma) -> EdgeMap
    GeometryDetector(scene, patch sizes, thresholds) -> boundary map
    DistanceTransform(boundaries) -> squared distances

Note:
    ``degrees_per_pixel`` is a single isotropic factor,
    ``max(fov.vert, fov.horiz) / max(n_rows, n_cols)``.  Views whose pixels
    are not square in angular terms are only approximated.
"""

from __future__ import annotations

import logging
import math
import time
import warnings
from typing import Callable, Final, NamedTuple, Optional, Protocol, runtime_checkable

import numpy as np
from numba import njit

from boundary_detectors.canny import CannyEdgeDetector, EdgeMap, gaussian_blur
from boundary_detectors.distance import squared_distance_transform
from boundary_detectors.geometry import (
    DEFAULT_ORIENTATION_PATCH_SIZE,
    DEFAULT_ORIENTATION_THRESHOLD,
    DEFAULT_POSITION_PATCH_SIZE,
    DEFAULT_POSITION_THRESHOLD,
    GeometryDiscontinuityDetector,
    GeometryScene,
)
from vantage_raster import (
    ArrayBool,
    ArrayFloat,
    FieldOfView,
    InvalidParameterError,
    Raster,
    ShapeMismatchError,
    require_conformant,
    require_positive,
)

logger = logging.getLogger(__name__)

__all__ = [
    "NO_EDGE",
    "MAX_DEBUG_HAZARD",
    "DEFAULT_EDGE_SIGMA",
    "LOW_LUMINANCE_THRESHOLD",
    "LOW_LUMINANCE_SIGMA_DEGREES",
    "EdgeDetector",
    "GeometryDetector",
    "DistanceTransform",
    "VisibilityResult",
    "degrees_per_pixel",
    "compute_hazard_field",
    "compute_visibility",
    "low_luminance_mask",
    "hazard_debug_image",
]

# --- Constants ---
NO_EDGE: Final[float] = -1.0
MAX_DEBUG_HAZARD: Final[float] = 2.0          # degrees mapped to full scale
_DEBUG_SCALE: Final[float] = 127.9            # 2.0 * 127.9 < 256
DEFAULT_EDGE_SIGMA: Final[float] = math.sqrt(2.0)

LOW_LUMINANCE_THRESHOLD: Final[float] = 1.0   # cd/m^2
LOW_LUMINANCE_SIGMA_DEGREES: Final[float] = 0.2
_MIN_BLUR_SIGMA_PX: Final[float] = 0.5


# =============================================================================
# 1. COLLABORATOR PROTOCOLS & RESULT TYPES
# =============================================================================

@runtime_checkable
class EdgeDetector(Protocol):
    """Luminance boundary detector: ``(luminance, sigma) -> EdgeMap``."""
    def __call__(self, luminance: ArrayFloat, sigma: float) -> EdgeMap: ...


@runtime_checkable
class GeometryDetector(Protocol):
    """Geometry boundary detector over a ``GeometryScene``."""
    def __call__(
        self,
        scene: GeometryScene,
        position_patch_size: int,
        orientation_patch_size: int,
        position_threshold: float,
        orientation_threshold: float,
    ) -> ArrayBool: ...


@runtime_checkable
class DistanceTransform(Protocol):
    """Squared Euclidean distance to the nearest true cell."""
    def __call__(self, boundaries: ArrayBool) -> ArrayFloat: ...


Observer = Callable[[str, Raster], None]


class VisibilityResult(NamedTuple):
    """Everything ``compute_visibility`` produces."""
    hazards: Raster                      # degrees or NO_EDGE
    luminance_boundaries: Raster         # bool
    geometry_boundaries: Raster          # bool
    false_positives: Optional[Raster] = None


# =============================================================================
# 2. KERNEL (Numba Optimized)
# =============================================================================

@njit(cache=True, fastmath=True)
def _hazard_field_kernel(boundary: np.ndarray, distance_sq: ArrayFloat,
                         deg_per_px: float, no_edge: float) -> ArrayFloat:
    n_rows, n_cols = boundary.shape
    out = np.empty((n_rows, n_cols))
    for row in range(n_rows):
        for col in range(n_cols):
            if boundary[row, col]:
                out[row, col] = deg_per_px * np.sqrt(distance_sq[row, col])
            else:
                out[row, col] = no_edge
    return out


# =============================================================================
# 3. HAZARD FIELD
# =============================================================================

def _as_array(obj: "Raster | np.ndarray") -> np.ndarray:
    return obj.data if isinstance(obj, Raster) else np.asarray(obj)


def degrees_per_pixel(fov: FieldOfView, n_rows: int, n_cols: int) -> float:
    """
    Isotropic angular size of one pixel step.

    Raises:
        InvalidParameterError: If the field of view or raster size is not
            positive.
    """
    if n_rows <= 0 or n_cols <= 0:
        raise InvalidParameterError(f"invalid raster size ({n_rows}, {n_cols})",
                                    stage="degrees_per_pixel")
    require_positive(fov.vert, "vertical field of view", stage="degrees_per_pixel")
    require_positive(fov.horiz, "horizontal field of view", stage="degrees_per_pixel")
    return fov.max_angle / max(n_rows, n_cols)


def compute_hazard_field(
    boundary: "Raster | np.ndarray",
    distance_sq: "Raster | np.ndarray",
    degrees_per_pixel: float,
) -> Raster:
    """
    Angular distance from each boundary pixel to the nearest target edge.

    Args:
        boundary: 2-D boolean map of the pixels to evaluate.
        distance_sq: Squared pixel distance to the nearest target edge.
        degrees_per_pixel: Conversion from pixels to visual angle.

    Returns:
        float64 Raster: ``degrees_per_pixel * sqrt(distance_sq)`` where
        ``boundary`` is true, ``NO_EDGE`` elsewhere.  The field of view of
        ``boundary`` (if it is a Raster) is carried over.

    Raises:
        ShapeMismatchError: ``boundary`` and ``distance_sq`` do not conform.
        InvalidParameterError: ``degrees_per_pixel <= 0``.
    """
    stage = "compute_hazard_field"
    require_conformant(boundary, distance_sq, stage=stage)
    deg_per_px = require_positive(degrees_per_pixel, "degrees_per_pixel", stage=stage)

    b = np.ascontiguousarray(_as_array(boundary) != 0)
    d = np.ascontiguousarray(_as_array(distance_sq), dtype=np.float64)
    if b.ndim != 2 or d.ndim != 2:
        raise ShapeMismatchError(
            f"expected 2-D maps, got {b.shape} and {d.shape}", stage=stage
        )

    field = _hazard_field_kernel(b, d, deg_per_px, NO_EDGE)
    fov = boundary.fov if isinstance(boundary, Raster) else None
    return Raster(field, fov=fov, description="hazard field")


def hazard_debug_image(hazards: "Raster | np.ndarray") -> np.ndarray:
    """
    8-bit rendering of a hazard field: ``127.9 * min(h, 2.0)``, NO_EDGE -> 0.
    """
    h = _as_array(hazards).astype(np.float64)
    scaled = _DEBUG_SCALE * np.minimum(h, MAX_DEBUG_HAZARD)
    scaled = np.where(h == NO_EDGE, 0.0, scaled)
    return np.clip(scaled, 0.0, 255.0).astype(np.uint8)


# =============================================================================
# 4. PIPELINE
# =============================================================================

def _luminance_channel(image: Raster) -> ArrayFloat:
    """Y of an xyY raster, or the data itself for a scalar raster."""
    data = np.asarray(image.data, dtype=np.float64)
    if data.ndim == 3:
        if data.shape[2] != 3:
            raise ShapeMismatchError(
                f"expected an xyY image, got shape {data.shape}", stage="compute_visibility"
            )
        return np.ascontiguousarray(data[..., 2])
    return data


def compute_visibility(
    image: Raster,
    scene: GeometryScene,
    edge_sigma: float = DEFAULT_EDGE_SIGMA,
    position_patch_size: int = DEFAULT_POSITION_PATCH_SIZE,
    orientation_patch_size: int = DEFAULT_ORIENTATION_PATCH_SIZE,
    position_threshold: float = DEFAULT_POSITION_THRESHOLD,
    orientation_threshold: float = DEFAULT_ORIENTATION_THRESHOLD,
    false_positives: bool = False,
    edge_detector: Optional[EdgeDetector] = None,
    geometry_detector: Optional[GeometryDetector] = None,
    distance_transform: Optional[DistanceTransform] = None,
    observer: Optional[Observer] = None,
) -> VisibilityResult:
    """
    Hazard field of a (low-vision filtered) scene image.

    Args:
        image: xyY Raster (or a 2-D luminance Raster) with its field of view.
        scene: Per-pixel geometry of the same view.
        edge_sigma: Blur sigma passed to the edge detector.
        position_patch_size / orientation_patch_size: Geometry patch widths.
        position_threshold / orientation_threshold: Geometry thresholds
            (cm / degrees).
        false_positives: Also compute the luminance-vs-geometry field.
        edge_detector / geometry_detector / distance_transform: Override
            the default collaborators.
        observer: Called as ``observer(stage_name, raster)`` after each
            hazard field is computed.

    Returns:
        VisibilityResult.

    Raises:
        ShapeMismatchError: Geometry and image sizes disagree.
        InvalidParameterError: Missing or invalid field of view, or an
            invalid detector parameter.
    """
    if image.fov is None:
        raise InvalidParameterError("image has no field of view", stage="compute_visibility")

    edge_detector = edge_detector or CannyEdgeDetector()
    geometry_detector = geometry_detector or GeometryDiscontinuityDetector()
    distance_transform = distance_transform or squared_distance_transform

    t0 = time.perf_counter()
    luminance = _luminance_channel(image)
    edges = edge_detector(luminance, edge_sigma)
    luminance_boundaries = image.with_data(np.asarray(edges.boundaries, dtype=bool),
                                           description="luminance boundaries")

    geometry = geometry_detector(
        scene,
        position_patch_size,
        orientation_patch_size,
        position_threshold,
        orientation_threshold,
    )
    geometry_boundaries = image.with_data(np.asarray(geometry, dtype=bool),
                                          description="geometry boundaries")

    if not luminance_boundaries.conforms(geometry_boundaries):
        raise ShapeMismatchError(
            f"incorrect geometry size: image {luminance_boundaries.shape2d}, "
            f"geometry {geometry_boundaries.shape2d}",
            stage="compute_visibility",
        )

    deg_per_px = degrees_per_pixel(image.fov, image.n_rows, image.n_cols)
    logger.info("degrees per pixel: %.6g (fov %gx%g, %dx%d)", deg_per_px,
                image.fov.vert, image.fov.horiz, image.n_rows, image.n_cols)

    luminance_distance = distance_transform(luminance_boundaries.data)
    hazards = compute_hazard_field(geometry_boundaries, luminance_distance, deg_per_px)
    if observer is not None:
        observer("hazards", hazards)

    fp_field = None
    if false_positives:
        geometry_distance = distance_transform(geometry_boundaries.data)
        fp_field = compute_hazard_field(luminance_boundaries, geometry_distance, deg_per_px)
        fp_field.description = "false positives"
        if observer is not None:
            observer("false_positives", fp_field)

    logger.info("visibility computed in %.3f s", time.perf_counter() - t0)
    return VisibilityResult(
        hazards=hazards,
        luminance_boundaries=luminance_boundaries,
        geometry_boundaries=geometry_boundaries,
        false_positives=fp_field,
    )


def low_luminance_mask(
    image: Raster,
    threshold: float = LOW_LUMINANCE_THRESHOLD,
    sigma_degrees: float = LOW_LUMINANCE_SIGMA_DEGREES,
) -> Optional[Raster]:
    """
    Pixels too dark for edges to be reliably seen.

    The luminance is smoothed with a Gaussian of ``sigma_degrees`` visual
    angle and thresholded at ``threshold`` (cd/m^2).

    Returns:
        Boolean Raster, or None if no pixel is that dark.

    Raises:
        InvalidParameterError: If the image has no usable field of view.
    """
    stage = "low_luminance_mask"
    if image.fov is None:
        raise InvalidParameterError("image has no field of view", stage=stage)
    require_positive(image.fov.vert, "vertical field of view", stage=stage)
    require_positive(image.fov.horiz, "horizontal field of view", stage=stage)

    sigma_px = sigma_degrees * max(image.n_rows, image.n_cols) / image.fov.max_angle
    if sigma_px < _MIN_BLUR_SIGMA_PX:
        warnings.warn(
            f"low_luminance_mask: blur sigma {sigma_px:.3g} px raised to {_MIN_BLUR_SIGMA_PX}",
            RuntimeWarning, stacklevel=2,
        )
        sigma_px = _MIN_BLUR_SIGMA_PX

    smoothed = gaussian_blur(_luminance_channel(image), sigma_px)
    mask = smoothed <= threshold
    if not mask.any():
        return None
    logger.debug("low luminance mask covers %d pixels", int(mask.sum()))
    return image.with_data(mask, description="low luminance mask")
