# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Scene & Geometry File Formats
=============================
Readers and writers for the files the command line tools exchange:

1. Coordinates descriptor (plain text)::

       distance-units=meters
       VIEW= -vtv -vp 0 0 1.5 -vd 0 1 0 -vu 0 0 1 -vh 60 -vv 45

   The unit line is mandatory; the optional VIEW line uses Radiance view
   options.  Without it the Radiance default view (45 x 45 degrees) is
   assumed.

2. Radiance-style ASCII geometry (positions, distances, normals)::

       #?RADIANCE
       <header lines>
       <blank line>
       -Y <rows> +X <cols>
       <one (1-D) or three (3-D) values per line, row-major>

   Positions and distances are converted to centimetres on load.

3. Radiance HDR scene images (OpenCV), converted to xyY in cd/m^2.
4. PNG scene images (sRGB gray or colour) and boolean boundary maps.
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Final, List, Optional, Tuple

import cv2
import numpy as np

from boundary_detectors.geometry import GeometryScene
from vantage_color import ColorModel
from vantage_raster import (
    DEFAULT_FOV,
    ArrayBool,
    ArrayFloat,
    FieldOfView,
    GeometryFormatError,
    InvalidParameterError,
    Raster,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DistanceUnits",
    "ViewParameters",
    "Coordinates",
    "parse_view",
    "parse_coordinates",
    "read_coordinates",
    "write_coordinates",
    "read_geometry",
    "read_geometry_1d",
    "read_geometry_3d",
    "read_geometry_scene",
    "read_scene_image",
    "read_boundary_png",
    "write_boundary_png",
    "write_rgb_png",
    "write_gray_png",
]

RADIANCE_MAGIC: Final[str] = "#?RADIANCE"
WHITE_EFFICACY: Final[float] = 179.0      # lm/W, Radiance convention
_VISIBLE: Final[int] = 255


# =============================================================================
# 1. COORDINATES DESCRIPTOR
# =============================================================================

class DistanceUnits(enum.Enum):
    CENTIMETERS = "centimeters"
    METERS = "meters"
    INCHES = "inches"
    FEET = "feet"

    @property
    def to_centimeters(self) -> float:
        return _CM_PER_UNIT[self]


_CM_PER_UNIT: Final[Dict[DistanceUnits, float]] = {
    DistanceUnits.CENTIMETERS: 1.0,
    DistanceUnits.METERS: 100.0,
    DistanceUnits.INCHES: 2.54,
    DistanceUnits.FEET: 30.48,
}


@dataclass(slots=True, frozen=True)
class ViewParameters:
    """Subset of a Radiance view record relevant to the pipeline."""
    view_type: str = "v"
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    direction: Tuple[float, float, float] = (0.0, 1.0, 0.0)
    up: Tuple[float, float, float] = (0.0, 0.0, 1.0)
    horiz: float = DEFAULT_FOV.horiz
    vert: float = DEFAULT_FOV.vert

    @property
    def fov(self) -> FieldOfView:
        return FieldOfView(vert=self.vert, horiz=self.horiz)

    def to_radiance(self) -> str:
        def vec(v: Tuple[float, float, float]) -> str:
            return " ".join(f"{c:g}" for c in v)
        return (f"-vt{self.view_type} -vp {vec(self.origin)} -vd {vec(self.direction)} "
                f"-vu {vec(self.up)} -vh {self.horiz:g} -vv {self.vert:g}")


@dataclass(slots=True, frozen=True)
class Coordinates:
    """Distance units and view of a set of geometry files."""
    units: DistanceUnits = DistanceUnits.CENTIMETERS
    view: ViewParameters = field(default_factory=ViewParameters)

    @property
    def to_centimeters(self) -> float:
        return self.units.to_centimeters

    @property
    def fov(self) -> FieldOfView:
        return self.view.fov


def parse_view(text: str, base: Optional[ViewParameters] = None) -> ViewParameters:
    """
    Apply Radiance view options (``-vt? -vp -vd -vu -vh -vv``) to ``base``.

    Unrecognised ``-v`` options with a single numeric argument (``-vo``,
    ``-va``, ``-vs``, ``-vl``) are skipped.

    Raises:
        GeometryFormatError: Malformed option or argument.
    """
    view = base or ViewParameters()
    params = {
        "view_type": view.view_type,
        "origin": view.origin,
        "direction": view.direction,
        "up": view.up,
        "horiz": view.horiz,
        "vert": view.vert,
    }
    tokens = text.split()
    vectors = {"-vp": "origin", "-vd": "direction", "-vu": "up"}
    scalars = {"-vh": "horiz", "-vv": "vert"}
    skipped = {"-vo", "-va", "-vs", "-vl"}

    i = 0
    try:
        while i < len(tokens):
            tok = tokens[i]
            if tok.startswith("-vt") and len(tok) == 4:
                params["view_type"] = tok[3]
                i += 1
            elif tok in vectors:
                params[vectors[tok]] = tuple(float(t) for t in tokens[i + 1:i + 4])
                if len(params[vectors[tok]]) != 3:
                    raise GeometryFormatError(f"{tok} needs three values", stage="parse_view")
                i += 4
            elif tok in scalars:
                params[scalars[tok]] = float(tokens[i + 1])
                i += 2
            elif tok in skipped:
                float(tokens[i + 1])
                i += 2
            else:
                raise GeometryFormatError(f"unknown view option {tok!r}", stage="parse_view")
    except (ValueError, IndexError) as exc:
        raise GeometryFormatError(f"invalid view specification {text.strip()!r}",
                                  stage="parse_view") from exc

    return ViewParameters(**params)


def parse_coordinates(text: str) -> Coordinates:
    """
    Parse the contents of a coordinates file.

    Raises:
        GeometryFormatError: Missing or unknown distance units, bad VIEW.
    """
    lines = text.splitlines()
    if not lines or not lines[0].startswith("distance-units="):
        raise GeometryFormatError("missing distance-units", stage="read_coordinates")
    unit_name = lines[0][len("distance-units="):].strip()
    try:
        units = DistanceUnits(unit_name)
    except ValueError:
        raise GeometryFormatError(f"invalid distance-units ({unit_name!r})",
                                  stage="read_coordinates") from None

    view = ViewParameters()
    if len(lines) > 1 and lines[1].strip():
        if not lines[1].startswith("VIEW="):
            raise GeometryFormatError(f"unexpected line {lines[1]!r}", stage="read_coordinates")
        view = parse_view(lines[1][len("VIEW="):])

    return Coordinates(units=units, view=view)


def read_coordinates(path: "str | os.PathLike[str]") -> Coordinates:
    with open(path, "r") as f:
        coords = parse_coordinates(f.read())
    logger.debug("coordinates %s: units=%s fov=%s", path, coords.units.value, coords.fov)
    return coords


def write_coordinates(path: "str | os.PathLike[str]", coordinates: Coordinates) -> None:
    with open(path, "w") as f:
        f.write(f"distance-units={coordinates.units.value}\n")
        f.write(f"VIEW= {coordinates.view.to_radiance()}\n")


# =============================================================================
# 2. RADIANCE ASCII GEOMETRY
# =============================================================================

def _parse_geometry(lines: List[str], source: str) -> ArrayFloat:
    stage = "read_geometry"
    if not lines or lines[0].rstrip("\r\n") != RADIANCE_MAGIC:
        raise GeometryFormatError(f"{source}: not a RADIANCE file", stage=stage)

    i = 1
    while i < len(lines) and lines[i].strip():
        i += 1
    i += 1
    if i >= len(lines):
        raise GeometryFormatError(f"{source}: missing resolution line", stage=stage)

    res = lines[i].split()
    if len(res) != 4 or res[0] != "-Y" or res[2] != "+X":
        raise GeometryFormatError(f"{source}: invalid resolution line {lines[i]!r}", stage=stage)
    try:
        n_rows, n_cols = int(res[1]), int(res[3])
    except ValueError as exc:
        raise GeometryFormatError(f"{source}: invalid resolution line", stage=stage) from exc

    body = [ln.split() for ln in lines[i + 1:] if ln.strip()]
    if len(body) != n_rows * n_cols:
        raise GeometryFormatError(
            f"{source}: expected {n_rows * n_cols} values, found {len(body)}", stage=stage
        )
    dims = len(body[0]) if body else 0
    if dims not in (1, 3) or any(len(v) != dims for v in body):
        raise GeometryFormatError(f"{source}: not 1-D or 3-D data", stage=stage)

    try:
        values = np.array(body, dtype=np.float64)
    except ValueError as exc:
        raise GeometryFormatError(f"{source}: non-numeric value", stage=stage) from exc

    if dims == 1:
        return values.reshape(n_rows, n_cols)
    return values.reshape(n_rows, n_cols, 3)


def read_geometry(path: "str | os.PathLike[str]") -> ArrayFloat:
    """Raw 1-D ``(rows, cols)`` or 3-D ``(rows, cols, 3)`` geometry values."""
    with open(path, "r") as f:
        return _parse_geometry(f.readlines(), str(path))


def read_geometry_1d(path: "str | os.PathLike[str]",
                     coordinates: Optional[Coordinates] = None) -> ArrayFloat:
    """1-D geometry (e.g. distances), scaled to cm when ``coordinates`` given."""
    data = read_geometry(path)
    if data.ndim != 2:
        raise GeometryFormatError(f"{path}: not 1-D data", stage="read_geometry_1d")
    if coordinates is not None:
        data = data * coordinates.to_centimeters
    return data


def read_geometry_3d(path: "str | os.PathLike[str]",
                     coordinates: Optional[Coordinates] = None) -> ArrayFloat:
    """3-D geometry (positions), scaled to cm when ``coordinates`` given."""
    data = read_geometry(path)
    if data.ndim != 3:
        raise GeometryFormatError(f"{path}: not 3-D data", stage="read_geometry_3d")
    if coordinates is not None:
        data = data * coordinates.to_centimeters
    return data


def read_geometry_scene(
    coordinates: Coordinates,
    xyz_path: "str | os.PathLike[str]",
    dist_path: "str | os.PathLike[str]",
    nor_path: "str | os.PathLike[str]",
) -> GeometryScene:
    """Positions and distances in cm, unit normals, and the view's FOV."""
    return GeometryScene(
        positions=read_geometry_3d(xyz_path, coordinates),
        distances=read_geometry_1d(dist_path, coordinates),
        normals=read_geometry_3d(nor_path),
        fov=coordinates.fov,
    )


# =============================================================================
# 3. SCENE IMAGES
# =============================================================================

def _read_hdr_header(path: "str | os.PathLike[str]") -> Tuple[ViewParameters, float, bool]:
    """(view, exposure, is_xyze) from a Radiance picture header."""
    view = ViewParameters()
    exposure = 1.0
    xyze = False
    with open(path, "rb") as f:
        for raw in f:
            line = raw.decode("ascii", errors="replace").strip()
            if not line:
                break
            if line.startswith("VIEW="):
                view = parse_view(line[len("VIEW="):], view)
            elif line.startswith("EXPOSURE="):
                exposure *= float(line[len("EXPOSURE="):])
            elif line.startswith("FORMAT="):
                xyze = "xyze" in line
    return view, exposure, xyze


def _imread(path: "str | os.PathLike[str]", flags: int) -> np.ndarray:
    img = cv2.imread(os.fspath(path), flags)
    if img is None:
        raise FileNotFoundError(path)
    return img


def read_scene_image(
    path: "str | os.PathLike[str]",
    fov: Optional[FieldOfView] = None,
) -> Raster:
    """
    Load a scene image as an xyY Raster.

    ``.hdr``/``.pic`` files are Radiance pictures: RGB radiance is scaled by
    the header exposure and the luminous efficacy (179 lm/W) so that Y is
    in cd/m^2.  Other files are 8-bit sRGB (gray or colour) and give
    relative luminance.

    Args:
        path: Image file.
        fov: Overrides the field of view (defaults to the HDR header VIEW,
            or the Radiance default view for PNG).
    """
    ext = os.path.splitext(os.fspath(path))[1].lower()
    if ext in (".hdr", ".pic", ".rgbe"):
        view, exposure, xyze = _read_hdr_header(path)
        bgr = _imread(path, cv2.IMREAD_ANYDEPTH | cv2.IMREAD_COLOR).astype(np.float64)
        triple = bgr[..., ::-1] * exposure
        if xyze:
            xyz = triple
        else:
            xyz = ColorModel.rgb_to_xyz(triple) * WHITE_EFFICACY
        image_fov = fov or view.fov
    else:
        img = _imread(path, cv2.IMREAD_UNCHANGED)
        if img.dtype != np.uint8:
            raise InvalidParameterError(
                f"{path}: expected an 8-bit image, got {img.dtype}", stage="read_scene_image"
            )
        if img.ndim == 2:
            xyz = ColorModel.rgb_to_xyz(ColorModel.gray_to_rgb_linear(ColorModel.decode_gamma(img)))
        else:
            rgb8 = cv2.cvtColor(img[..., :3], cv2.COLOR_BGR2RGB)
            xyz = ColorModel.srgb8_to_xyz(rgb8)
        image_fov = fov or DEFAULT_FOV

    logger.info("read %s: %dx%d, fov %gx%g", path, xyz.shape[0], xyz.shape[1],
                image_fov.vert, image_fov.horiz)
    return Raster(ColorModel.xyz_to_xyY(xyz), fov=image_fov, description=os.fspath(path))


# =============================================================================
# 4. PNG BOUNDARY MAPS & RENDERINGS
# =============================================================================

def read_boundary_png(path: "str | os.PathLike[str]") -> ArrayBool:
    """Boolean map: any non-zero pixel is a boundary."""
    img = _imread(path, cv2.IMREAD_GRAYSCALE)
    return img != 0


def write_gray_png(path: "str | os.PathLike[str]", gray: np.ndarray) -> None:
    if not cv2.imwrite(os.fspath(path), np.asarray(gray, dtype=np.uint8)):
        raise OSError(f"could not write {path}")


def write_boundary_png(path: "str | os.PathLike[str]", boundaries: "Raster | np.ndarray") -> None:
    """Write a boolean map visibly: true -> 255, false -> 0."""
    data = boundaries.data if isinstance(boundaries, Raster) else np.asarray(boundaries)
    write_gray_png(path, np.where(data != 0, _VISIBLE, 0).astype(np.uint8))


def write_rgb_png(path: "str | os.PathLike[str]", rgb: "Raster | np.ndarray") -> None:
    """Write an 8-bit RGB image (converted to OpenCV's BGR order)."""
    data = rgb.data if isinstance(rgb, Raster) else np.asarray(rgb)
    bgr = cv2.cvtColor(np.ascontiguousarray(data, dtype=np.uint8), cv2.COLOR_RGB2BGR)
    if not cv2.imwrite(os.fspath(path), bgr):
        raise OSError(f"could not write {path}")
