# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Boundary detectors consumed by the hazard pipeline: luminance edges,
geometric discontinuities and the squared distance transform.
"""

from boundary_detectors.canny import CannyEdgeDetector, EdgeMap, canny, gaussian_blur
from boundary_detectors.distance import no_boundary_distance_sq, squared_distance_transform
from boundary_detectors.geometry import (
    GeometryDiscontinuityDetector,
    GeometryScene,
    geometry_discontinuities,
)

__all__ = [
    "CannyEdgeDetector",
    "EdgeMap",
    "canny",
    "gaussian_blur",
    "no_boundary_distance_sq",
    "squared_distance_transform",
    "GeometryDiscontinuityDetector",
    "GeometryScene",
    "geometry_discontinuities",
]
