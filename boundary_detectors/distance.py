# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: distance.py — Squared Euclidean distance transform.

For every cell, the squared Euclidean distance (in pixels) to the nearest
``True`` cell of a boundary map.  Boundary cells themselves are 0.

When the map holds no boundary at all there is nothing to measure to; every
cell then receives ``(n_rows + n_cols + 1) ** 2``, a value larger than any
squared distance that can occur inside the raster.
"""

import logging

import numpy as np
from scipy import ndimage

from vantage_raster import ArrayFloat, InvalidParameterError

logger = logging.getLogger(__name__)


def no_boundary_distance_sq(n_rows: int, n_cols: int) -> float:
    """Squared distance reported when a map has no boundary pixel."""
    return float((n_rows + n_cols + 1) ** 2)


def squared_distance_transform(boundaries: np.ndarray) -> ArrayFloat:
    """
    Squared Euclidean distance to the nearest boundary pixel.

    Args:
        boundaries: 2-D boolean (or 0/non-0) boundary map.

    Returns:
        float64 array of the same shape.

    Raises:
        InvalidParameterError: If ``boundaries`` is not 2-D.
    """
    b = np.asarray(boundaries) != 0
    if b.ndim != 2:
        raise InvalidParameterError(
            f"boundary map must be 2-D, got shape {b.shape}",
            stage="squared_distance_transform",
        )

    n_rows, n_cols = b.shape
    if not b.any():
        logger.debug("no boundary pixels in %dx%d map", n_rows, n_cols)
        return np.full(b.shape, no_boundary_distance_sq(n_rows, n_cols), dtype=np.float64)

    # distance_transform_edt measures to the nearest zero, so invert.
    # Squared pixel distances are integers; rint undoes the sqrt round trip.
    dist = ndimage.distance_transform_edt(~b)
    return np.rint(np.square(dist)).astype(np.float64)
