# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vantage_config.py — Tunable parameters of the visibility pipeline.

A single frozen ``VisibilityConfig`` carries every default.  It can be
loaded from YAML; keys match the field names, unknown keys are rejected:

    edge_sigma: 1.414
    position_threshold: 2.0
    orientation_threshold: 20.0
    measurement: gaussian
    measurement_parameter: 0.75
    palette: red_green
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import yaml

from boundary_detectors.geometry import (
    DEFAULT_ORIENTATION_PATCH_SIZE,
    DEFAULT_ORIENTATION_THRESHOLD,
    DEFAULT_POSITION_PATCH_SIZE,
    DEFAULT_POSITION_THRESHOLD,
)
from vantage_hazards import (
    DEFAULT_EDGE_SIGMA,
    LOW_LUMINANCE_SIGMA_DEGREES,
    LOW_LUMINANCE_THRESHOLD,
)
from vantage_raster import InvalidParameterError, require_positive
from vantage_visualize import DisplayEncoding, Measurement, Palette


_FLOAT_FIELDS = (
    "edge_sigma",
    "position_threshold",
    "orientation_threshold",
    "low_luminance_threshold",
    "low_luminance_sigma",
)


def _as_float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidParameterError(f"{name} must be a number ({value!r})",
                                    stage="VisibilityConfig") from exc


@dataclass(slots=True, frozen=True)
class VisibilityConfig:
    """
    Parameters of one visibility run.

    Attributes:
        edge_sigma: Gaussian sigma (pixels) of the luminance edge detector.
        position_patch_size / orientation_patch_size: Odd geometry patch
            widths in pixels.
        position_threshold: Occlusion threshold in cm.
        orientation_threshold: Crease threshold in degrees.
        measurement: ``reciprocal``, ``linear`` or ``gaussian``.
        measurement_parameter: Scale, max hazard or sigma (degrees); None
            selects the measurement's default.
        palette: Palette of the hazard visualization.
        false_positive_palette: Palette of the false-positive visualization.
        low_luminance_threshold: Luminance (cd/m^2) at or below which pixels
            are masked.
        low_luminance_sigma: Smoothing (degrees) before thresholding.
        display_encoding: ``gamma`` or ``linear`` 8-bit output.
    """
    edge_sigma: float = DEFAULT_EDGE_SIGMA
    position_patch_size: int = DEFAULT_POSITION_PATCH_SIZE
    orientation_patch_size: int = DEFAULT_ORIENTATION_PATCH_SIZE
    position_threshold: float = DEFAULT_POSITION_THRESHOLD
    orientation_threshold: float = DEFAULT_ORIENTATION_THRESHOLD
    measurement: str = "gaussian"
    measurement_parameter: Optional[float] = None
    palette: str = Palette.RED_GREEN.value
    false_positive_palette: str = Palette.GRAY_CYAN.value
    low_luminance_threshold: float = LOW_LUMINANCE_THRESHOLD
    low_luminance_sigma: float = LOW_LUMINANCE_SIGMA_DEGREES
    display_encoding: str = DisplayEncoding.GAMMA.value

    def __post_init__(self) -> None:
        stage = "VisibilityConfig"
        for name in _FLOAT_FIELDS:
            object.__setattr__(self, name, _as_float(getattr(self, name), name))
        if self.measurement_parameter is not None:
            object.__setattr__(self, "measurement_parameter",
                               _as_float(self.measurement_parameter, "measurement_parameter"))
        if self.edge_sigma != 0.0 and not self.edge_sigma >= 0.5:
            raise InvalidParameterError(
                f"edge_sigma must be 0 (no blur) or >= 0.5 ({self.edge_sigma})", stage=stage
            )
        for name in ("position_patch_size", "orientation_patch_size"):
            value = getattr(self, name)
            size = _as_float(value, name)
            if not size.is_integer() or size < 3 or size % 2 != 1:
                raise InvalidParameterError(f"{name} must be an odd integer >= 3 ({value!r})",
                                            stage=stage)
            object.__setattr__(self, name, int(size))
        require_positive(self.low_luminance_sigma, "low_luminance_sigma", stage=stage)
        # Selectors and measurement parameter are validated by building them.
        self.measurement_spec()
        Palette.from_name(self.palette)
        Palette.from_name(self.false_positive_palette)
        DisplayEncoding.from_name(self.display_encoding)

    def measurement_spec(self) -> Measurement:
        return Measurement.from_name(self.measurement, self.measurement_parameter)

    def replace(self, **changes: Any) -> "VisibilityConfig":
        """Copy with ``changes`` applied; None values are ignored."""
        return dataclasses.replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def from_mapping(cls, values: Optional[Mapping[str, Any]]) -> "VisibilityConfig":
        """
        Raises:
            InvalidParameterError: Unknown key or invalid value.
        """
        values = dict(values or {})
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise InvalidParameterError(f"unknown configuration keys: {', '.join(unknown)}",
                                        stage="VisibilityConfig")
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: "str | os.PathLike[str]") -> "VisibilityConfig":
        with open(path, "r") as f:
            try:
                values = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise InvalidParameterError(f"{path}: malformed YAML ({exc})",
                                            stage="VisibilityConfig") from exc
        if values is not None and not isinstance(values, Mapping):
            raise InvalidParameterError(f"{path}: expected a mapping at top level",
                                        stage="VisibilityConfig")
        return cls.from_mapping(values)
