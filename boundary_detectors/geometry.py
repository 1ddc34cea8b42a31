# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: geometry.py — Geometric discontinuities of a rendered scene.

Two kinds of geometric boundary are located from per-pixel scene
geometry:

  - Occlusion boundaries: a patch around the pixel lies *behind* the plane
    through the centre position, perpendicular to the centre normal
    (position deviation, in scene units, normally cm).
  - Creases: surface normals at opposite ends of the patch disagree
    (orientation deviation, mean angle in degrees).

Each deviation map is reduced to directional local maxima above its
threshold; the boundary map is their union.
"""

import logging
from dataclasses import dataclass
from typing import Final, Optional

import numpy as np
from numba import njit

from vantage_raster import (
    ArrayBool,
    ArrayFloat,
    FieldOfView,
    InvalidParameterError,
    require_conformant,
)

logger = logging.getLogger(__name__)

# --- Defaults ---
DEFAULT_POSITION_PATCH_SIZE: Final[int] = 3
DEFAULT_ORIENTATION_PATCH_SIZE: Final[int] = 3
DEFAULT_POSITION_THRESHOLD: Final[float] = 2.0       # cm
DEFAULT_ORIENTATION_THRESHOLD: Final[float] = 20.0   # degrees
DMAX_PATCH_SIZE: Final[int] = 3


@dataclass(slots=True, frozen=True)
class GeometryScene:
    """
    Per-pixel geometry of a rendered view.

    Attributes:
        positions: (rows, cols, 3) surface positions, in cm.
        distances: (rows, cols) viewpoint distances, in cm.  Carried for
            completeness; the detectors below do not use them.
        normals: (rows, cols, 3) unit surface normals.
        fov: Field of view of the view the geometry was rendered from.
    """
    positions: ArrayFloat
    distances: ArrayFloat
    normals: ArrayFloat
    fov: Optional[FieldOfView] = None

    def __post_init__(self) -> None:
        for name in ("positions", "normals"):
            arr = getattr(self, name)
            if np.ndim(arr) != 3 or np.shape(arr)[2] != 3:
                raise InvalidParameterError(
                    f"{name} must have shape (rows, cols, 3), got {np.shape(arr)}",
                    stage="GeometryScene",
                )
        if np.ndim(self.distances) != 2:
            raise InvalidParameterError(
                f"distances must be 2-D, got {np.shape(self.distances)}",
                stage="GeometryScene",
            )
        require_conformant(self.positions, self.distances, self.normals,
                           stage="GeometryScene")

    @property
    def shape2d(self):
        return tuple(np.shape(self.distances))


# =============================================================================
# 1. KERNELS (Numba Optimized)
# =============================================================================

@njit(cache=True, fastmath=True)
def _position_deviation(positions: ArrayFloat, normals: ArrayFloat,
                        patch_size: int) -> ArrayFloat:
    n_rows, n_cols = positions.shape[0], positions.shape[1]
    out = np.zeros((n_rows, n_cols))
    half = (patch_size - 1) // 2
    norm = float(half * patch_size)

    for row in range(half, n_rows - half):
        for col in range(half, n_cols - half):
            nx = normals[row, col, 0]
            ny = normals[row, col, 1]
            nz = normals[row, col, 2]
            px = positions[row, col, 0]
            py = positions[row, col, 1]
            pz = positions[row, col, 2]

            total = 0.0
            for i in range(-half, half + 1):
                for j in range(-half, half + 1):
                    # Offset from the centre projected on the centre normal.
                    total += (nx * (positions[row + i, col + j, 0] - px)
                              + ny * (positions[row + i, col + j, 1] - py)
                              + nz * (positions[row + i, col + j, 2] - pz))

            # Only surfaces behind the centre point count.
            if total < 0.0:
                out[row, col] = -total / norm
    return out


@njit(cache=True, fastmath=True)
def _angle_between(normals: ArrayFloat, r1: int, c1: int, r2: int, c2: int) -> float:
    dot = (normals[r1, c1, 0] * normals[r2, c2, 0]
           + normals[r1, c1, 1] * normals[r2, c2, 1]
           + normals[r1, c1, 2] * normals[r2, c2, 2])
    if dot > 1.0:
        dot = 1.0
    elif dot < -1.0:
        dot = -1.0
    return np.degrees(np.arccos(dot))


@njit(cache=True, fastmath=True)
def _orientation_deviation(normals: ArrayFloat, patch_size: int) -> ArrayFloat:
    n_rows, n_cols = normals.shape[0], normals.shape[1]
    out = np.zeros((n_rows, n_cols))
    half = (patch_size - 1) // 2
    norm = float((patch_size + 1) * half)

    for row in range(half, n_rows - half):
        for col in range(half, n_cols - half):
            total = 0.0
            # Each pair of pixels symmetric about the centre, counted once.
            for i in range(-half, 0):
                for j in range(-half, half + 1):
                    total += _angle_between(normals, row + i, col + j, row - i, col - j)
            for j in range(-half, 0):
                total += _angle_between(normals, row, col + j, row, col - j)
            out[row, col] = total / norm
    return out


@njit(cache=True)
def _directional_maxima_3x3(values: ArrayFloat, threshold: float) -> ArrayBool:
    """
    Above-threshold local maxima along the vertical or horizontal axis.

    Ties are broken by requiring ``>=`` on one side and ``>`` on the other.
    """
    n_rows, n_cols = values.shape
    out = np.zeros((n_rows, n_cols), dtype=np.bool_)
    for row in range(1, n_rows - 1):
        for col in range(1, n_cols - 1):
            c = values[row, col]
            if c < threshold:
                continue
            if ((c >= values[row - 1, col] and c > values[row + 1, col])
                    or (c >= values[row, col - 1] and c > values[row, col + 1])):
                out[row, col] = True
    return out


# =============================================================================
# 2. PUBLIC API
# =============================================================================

def _validate_patch_size(patch_size: int, name: str, min_size: int) -> int:
    patch_size = int(patch_size)
    if patch_size < 3:
        raise InvalidParameterError(f"{name} must be >= 3 ({patch_size})",
                                    stage="geometry_discontinuities")
    if patch_size % 2 != 1:
        raise InvalidParameterError(f"{name} must be odd ({patch_size})",
                                    stage="geometry_discontinuities")
    if patch_size > min_size:
        raise InvalidParameterError(
            f"{name} exceeds data size ({patch_size} > {min_size})",
            stage="geometry_discontinuities",
        )
    return patch_size


def position_deviation(positions: ArrayFloat, normals: ArrayFloat,
                       patch_size: int = DEFAULT_POSITION_PATCH_SIZE) -> ArrayFloat:
    """
    Mean depth of the patch behind the centre pixel's tangent plane.

    The border of width ``patch_size // 2`` is 0.
    """
    positions = np.ascontiguousarray(positions, dtype=np.float64)
    normals = np.ascontiguousarray(normals, dtype=np.float64)
    require_conformant(positions, normals, stage="position_deviation")
    patch_size = _validate_patch_size(patch_size, "position_patch_size",
                                      min(positions.shape[:2]))
    return _position_deviation(positions, normals, patch_size)


def orientation_deviation(normals: ArrayFloat,
                          patch_size: int = DEFAULT_ORIENTATION_PATCH_SIZE) -> ArrayFloat:
    """Mean angle, in degrees, between normals on opposite sides of each pixel."""
    normals = np.ascontiguousarray(normals, dtype=np.float64)
    patch_size = _validate_patch_size(patch_size, "orientation_patch_size",
                                      min(normals.shape[:2]))
    return _orientation_deviation(normals, patch_size)


def directional_maxima(values: ArrayFloat, threshold: float) -> ArrayBool:
    """Directional local maxima (3x3) at or above ``threshold``; border is False."""
    values = np.ascontiguousarray(values, dtype=np.float64)
    return _directional_maxima_3x3(values, float(threshold))


def geometry_discontinuities(
    scene: GeometryScene,
    position_patch_size: int = DEFAULT_POSITION_PATCH_SIZE,
    orientation_patch_size: int = DEFAULT_ORIENTATION_PATCH_SIZE,
    position_threshold: float = DEFAULT_POSITION_THRESHOLD,
    orientation_threshold: float = DEFAULT_ORIENTATION_THRESHOLD,
) -> ArrayBool:
    """
    Boolean map of occlusion boundaries and creases.

    Args:
        scene: Positions, distances and normals of the view.
        position_patch_size: Odd patch width (pixels) for position deviation.
        orientation_patch_size: Odd patch width (pixels) for orientation
            deviation.
        position_threshold: Minimum position deviation (scene units, cm).
        orientation_threshold: Minimum orientation deviation (degrees).

    Raises:
        InvalidParameterError: Patch size even, below 3 or larger than the
            scene.
    """
    min_size = min(scene.shape2d)
    _validate_patch_size(position_patch_size, "position_patch_size", min_size)
    _validate_patch_size(orientation_patch_size, "orientation_patch_size", min_size)

    pos_dev = position_deviation(scene.positions, scene.normals, position_patch_size)
    position_edges = directional_maxima(pos_dev, position_threshold)

    ori_dev = orientation_deviation(scene.normals, orientation_patch_size)
    orientation_edges = directional_maxima(ori_dev, orientation_threshold)

    logger.debug("geometry discontinuities: %d position, %d orientation",
                 int(position_edges.sum()), int(orientation_edges.sum()))
    return position_edges | orientation_edges


class GeometryDiscontinuityDetector:
    """
    Callable geometry boundary detector.

    Satisfies the ``GeometryDetector`` protocol of ``vantage_hazards``.
    """

    def __call__(
        self,
        scene: GeometryScene,
        position_patch_size: int = DEFAULT_POSITION_PATCH_SIZE,
        orientation_patch_size: int = DEFAULT_ORIENTATION_PATCH_SIZE,
        position_threshold: float = DEFAULT_POSITION_THRESHOLD,
        orientation_threshold: float = DEFAULT_ORIENTATION_THRESHOLD,
    ) -> ArrayBool:
        return geometry_discontinuities(
            scene,
            position_patch_size=position_patch_size,
            orientation_patch_size=orientation_patch_size,
            position_threshold=position_threshold,
            orientation_threshold=orientation_threshold,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
