# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Raster Container & Error Taxonomy
=================================
Every stage of the visibility pipeline exchanges 2-D grids that carry the
optical projection they were rendered with.  This module provides:

1. ``FieldOfView`` - vertical / horizontal view angles in degrees.
2. ``Raster`` - a thin wrapper around a numpy array with field-of-view
   metadata and a free-text description.
3. The ``VantageError`` hierarchy.  Errors carry an ``ErrorKind`` and the
   name of the stage that raised them, so batch drivers can decide
   whether to abort or continue with the next image.

Conformance:
    Two rasters *conform* when their row and column counts match exactly.
    The channel axis (if any) is not part of the comparison, so a
    ``(H, W)`` boundary map conforms to a ``(H, W, 3)`` colour image.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Final, Optional, Tuple, TypeAlias

import numpy as np
import numpy.typing as npt

__all__ = [
    "ArrayFloat",
    "ArrayBool",
    "ErrorKind",
    "VantageError",
    "ShapeMismatchError",
    "InvalidParameterError",
    "AllocationError",
    "GeometryFormatError",
    "FieldOfView",
    "DEFAULT_FOV",
    "Raster",
    "require_conformant",
    "require_positive",
]

# --- Type Aliases ---
ArrayFloat: TypeAlias = npt.NDArray[np.floating]
ArrayBool: TypeAlias = npt.NDArray[np.bool_]


# =============================================================================
# 1. ERRORS
# =============================================================================

class ErrorKind(enum.Enum):
    """Failure categories of the pipeline."""
    SHAPE_MISMATCH = "shape-mismatch"
    INVALID_PARAMETER = "invalid-parameter"
    ALLOCATION_FAILURE = "allocation-failure"


class VantageError(Exception):
    """
    Base class for all pipeline failures.

    Attributes:
        kind: The failure category.
        stage: Name of the operation that detected the failure.
    """
    kind: ErrorKind = ErrorKind.INVALID_PARAMETER

    def __init__(self, message: str, stage: str = "") -> None:
        self.stage = stage
        prefix = f"{stage}: " if stage else ""
        super().__init__(f"{prefix}{message}")


class ShapeMismatchError(VantageError, ValueError):
    """Two rasters that must conform do not."""
    kind = ErrorKind.SHAPE_MISMATCH


class InvalidParameterError(VantageError, ValueError):
    """A scalar parameter or selector is out of its valid domain."""
    kind = ErrorKind.INVALID_PARAMETER


class AllocationError(VantageError, MemoryError):
    """A new raster could not be allocated."""
    kind = ErrorKind.ALLOCATION_FAILURE


class GeometryFormatError(VantageError, ValueError):
    """An input file does not follow its expected format."""
    kind = ErrorKind.INVALID_PARAMETER


# =============================================================================
# 2. RASTER
# =============================================================================

@dataclass(slots=True, frozen=True)
class FieldOfView:
    """Angular extent of a raster, in degrees."""
    vert: float
    horiz: float

    @property
    def max_angle(self) -> float:
        return max(self.vert, self.horiz)


# Radiance's default view (-vh 45 -vv 45).
DEFAULT_FOV: Final[FieldOfView] = FieldOfView(vert=45.0, horiz=45.0)


@dataclass(slots=True)
class Raster:
    """
    2-D grid of values with attached optical metadata.

    ``data`` is either ``(rows, cols)`` for scalar cells or
    ``(rows, cols, 3)`` for triples (RGB, XYZ, xyY, positions, normals).

    Attributes:
        data: Backing numpy array.
        fov: Field of view of the projection, or None when unknown.
        description: Free text (e.g. the command line that produced it).
    """
    data: np.ndarray
    fov: Optional[FieldOfView] = None
    description: str = ""

    def __post_init__(self) -> None:
        self.data = np.asarray(self.data)
        if self.data.ndim not in (2, 3):
            raise ShapeMismatchError(
                f"Expected a 2-D or 3-D array, got shape {self.data.shape}",
                stage="Raster",
            )

    @classmethod
    def new(
        cls,
        n_rows: int,
        n_cols: int,
        channels: Optional[int] = None,
        dtype: Any = np.float64,
        fill: Any = 0,
        fov: Optional[FieldOfView] = None,
        description: str = "",
    ) -> "Raster":
        """
        Allocate a raster filled with ``fill``.

        Raises:
            InvalidParameterError: If a dimension is not positive.
            AllocationError: If the backing array cannot be allocated.
        """
        if n_rows <= 0 or n_cols <= 0:
            raise InvalidParameterError(
                f"Invalid raster size ({n_rows}, {n_cols})", stage="Raster.new"
            )
        shape: Tuple[int, ...] = (n_rows, n_cols) if channels is None else (n_rows, n_cols, channels)
        try:
            data = np.full(shape, fill, dtype=dtype)
        except MemoryError as exc:
            raise AllocationError(
                f"Cannot allocate raster of shape {shape}", stage="Raster.new"
            ) from exc
        return cls(data, fov=fov, description=description)

    @property
    def n_rows(self) -> int:
        return int(self.data.shape[0])

    @property
    def n_cols(self) -> int:
        return int(self.data.shape[1])

    @property
    def shape2d(self) -> Tuple[int, int]:
        return (self.n_rows, self.n_cols)

    def conforms(self, other: "Raster | np.ndarray") -> bool:
        """True if ``other`` has the same row and column counts."""
        other_shape = other.shape2d if isinstance(other, Raster) else tuple(np.shape(other)[:2])
        return self.shape2d == other_shape

    def with_data(self, data: np.ndarray, description: Optional[str] = None) -> "Raster":
        """New raster sharing this one's metadata but holding ``data``."""
        return Raster(
            data,
            fov=self.fov,
            description=self.description if description is None else description,
        )

    def __getitem__(self, key: Any) -> Any:
        return self.data[key]

    def __setitem__(self, key: Any, value: Any) -> None:
        self.data[key] = value


# =============================================================================
# 3. VALIDATION HELPERS
# =============================================================================

def _shape2d(obj: "Raster | np.ndarray") -> Tuple[int, ...]:
    if isinstance(obj, Raster):
        return obj.shape2d
    return tuple(np.shape(obj)[:2])


def require_conformant(*rasters: "Raster | np.ndarray | None", stage: str = "") -> None:
    """
    Raise ``ShapeMismatchError`` unless all given rasters conform.

    ``None`` entries (absent optional overlays) are skipped.
    """
    shapes = [_shape2d(r) for r in rasters if r is not None]
    if len(set(shapes)) > 1:
        raise ShapeMismatchError(
            "raster size mismatch: " + ", ".join(str(s) for s in shapes),
            stage=stage,
        )


def require_positive(value: float, name: str, stage: str = "") -> float:
    """Return ``value`` as float, raising ``InvalidParameterError`` if not > 0."""
    value = float(value)
    if not value > 0.0:
        raise InvalidParameterError(f"invalid {name} ({value})", stage=stage)
    return value
