# -*- coding: utf-8 -*-
"""
Vantage: Seeing the hazards that low vision misses
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vantage_cli.py — ``vantage`` command line program.

Subcommands:

    vantage visibility  scene.hdr coord xyz.txt dist.txt nor.txt hazards.png
    vantage compare     standard.png comparison.png coord visualization.png
    vantage luminance-boundaries   scene.hdr boundaries.png
    vantage geometry-boundaries    coord xyz.txt dist.txt nor.txt boundaries.png

Exit status is 0 on success and 1 when the pipeline reports an error.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from __about__ import __description__, __version__
from boundary_detectors.canny import CannyEdgeDetector
from boundary_detectors.distance import squared_distance_transform
from boundary_detectors.geometry import geometry_discontinuities
from vantage_config import VisibilityConfig
from vantage_hazards import (
    Observer,
    compute_hazard_field,
    compute_visibility,
    degrees_per_pixel,
    hazard_debug_image,
    low_luminance_mask,
)
from vantage_io import (
    read_boundary_png,
    read_coordinates,
    read_geometry_scene,
    read_scene_image,
    write_boundary_png,
    write_gray_png,
    write_rgb_png,
)
from vantage_raster import Raster, ShapeMismatchError, VantageError
from vantage_visualize import Measurement, Palette, visualize

logger = logging.getLogger("vantage")


# =============================================================================
# 1. ARGUMENTS
# =============================================================================

def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", help="YAML file with VisibilityConfig values")
    p.add_argument("-v", "--verbose", action="count", default=0,
                   help="-v for progress, -vv for debug output")


def _add_visual_options(p: argparse.ArgumentParser, default_palette: Optional[str] = None) -> None:
    pal = p.add_mutually_exclusive_group()
    pal.add_argument("--red-green", dest="palette", action="store_const",
                     const=Palette.RED_GREEN.value, help="green-to-red hazard colours")
    pal.add_argument("--red-gray", dest="palette", action="store_const",
                     const=Palette.RED_GRAY.value, help="gray-to-red hazard colours")
    if default_palette is not None:
        p.set_defaults(palette=default_palette)

    meas = p.add_mutually_exclusive_group()
    meas.add_argument("--gaussian", type=float, metavar="SIGMA",
                      help="Gaussian hazard measure (degrees)")
    meas.add_argument("--reciprocal", type=float, metavar="SCALE",
                      help="reciprocal hazard measure (degrees)")
    meas.add_argument("--linear", type=float, metavar="MAX",
                      help="linear hazard measure saturating at MAX degrees")
    p.add_argument("--linear-encoding", action="store_true",
                   help="encode output colours linearly instead of with sRGB gamma")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="vantage", description=__description__)
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = ap.add_subparsers(dest="command", required=True)

    vis = sub.add_parser("visibility", help="hazard visualization of a filtered scene")
    vis.add_argument("image", help="low-vision filtered scene (.hdr or .png)")
    vis.add_argument("coordinates", help="coordinates file")
    vis.add_argument("xyz", help="positions (Radiance ASCII)")
    vis.add_argument("dist", help="distances (Radiance ASCII)")
    vis.add_argument("nor", help="surface normals (Radiance ASCII)")
    vis.add_argument("output", help="hazard visualization PNG")
    vis.add_argument("--roi", help="region-of-interest PNG (non-zero = inside)")
    vis.add_argument("--low-luminance", metavar="PNG", help="write the low-luminance mask")
    vis.add_argument("--luminance-boundaries", metavar="PNG", help="write luminance boundaries")
    vis.add_argument("--geometry-boundaries", metavar="PNG", help="write geometry boundaries")
    vis.add_argument("--false-positives", metavar="PNG",
                     help="write luminance edges unexplained by geometry")
    vis.add_argument("--hazard-debug", metavar="PNG",
                     help="write the raw hazard field as 8-bit gray (127.9 per degree, capped at 2)")
    avg = vis.add_mutually_exclusive_group()
    avg.add_argument("--print-average", action="store_true",
                     help="print the hazard visibility score")
    avg.add_argument("--print-average-na", action="store_true",
                     help="print the bare score without label or newline")
    _add_visual_options(vis)
    _add_common(vis)

    cmp_ = sub.add_parser("compare", help="compare two boundary maps")
    cmp_.add_argument("standard", help="reference boundary PNG")
    cmp_.add_argument("comparison", help="boundary PNG to evaluate")
    cmp_.add_argument("coordinates", help="coordinates file (field of view)")
    cmp_.add_argument("output", help="visualization PNG")
    cmp_.add_argument("--mask", help="mask PNG (non-zero = excluded)")
    _add_visual_options(cmp_, default_palette=Palette.RED_GRAY.value)
    _add_common(cmp_)

    lum = sub.add_parser("luminance-boundaries", help="luminance edges of a scene image")
    lum.add_argument("image")
    lum.add_argument("output")
    lum.add_argument("--sigma", type=float, help="edge detector blur sigma (pixels)")
    _add_common(lum)

    geo = sub.add_parser("geometry-boundaries", help="geometric discontinuities")
    geo.add_argument("coordinates")
    geo.add_argument("xyz")
    geo.add_argument("dist")
    geo.add_argument("nor")
    geo.add_argument("output")
    geo.add_argument("--position-threshold", type=float, help="cm")
    geo.add_argument("--orientation-threshold", type=float, help="degrees")
    _add_common(geo)

    return ap


def _load_config(args: argparse.Namespace) -> VisibilityConfig:
    cfg = VisibilityConfig.from_yaml(args.config) if args.config else VisibilityConfig()

    measurement = parameter = None
    for name in ("gaussian", "reciprocal", "linear"):
        value = getattr(args, name, None)
        if value is not None:
            measurement, parameter = name, value
    if measurement is not None:
        cfg = cfg.replace(measurement=measurement, measurement_parameter=parameter)

    return cfg.replace(
        palette=getattr(args, "palette", None),
        display_encoding="linear" if getattr(args, "linear_encoding", False) else None,
        edge_sigma=getattr(args, "sigma", None),
        position_threshold=getattr(args, "position_threshold", None),
        orientation_threshold=getattr(args, "orientation_threshold", None),
    )


# =============================================================================
# 2. COMMANDS
# =============================================================================

def _print_score(score: float, bare: bool = False) -> None:
    if bare:
        sys.stdout.write(f"{score:.3f}")
    else:
        print(f"Hazard Visibility Score = {score:.3f}")
    sys.stdout.flush()


def _debug_observer(path: Optional[str]) -> Optional[Observer]:
    """Observer writing the hazard stage as a gray PNG, or None without a path."""
    if not path:
        return None

    def observe(stage: str, field: Raster) -> None:
        logger.debug("stage %s: %s", stage, field.description)
        if stage == "hazards":
            write_gray_png(path, hazard_debug_image(field))

    return observe


def cmd_visibility(args: argparse.Namespace, cfg: VisibilityConfig) -> int:
    coords = read_coordinates(args.coordinates)
    image = read_scene_image(args.image)
    scene = read_geometry_scene(coords, args.xyz, args.dist, args.nor)

    roi = read_boundary_png(args.roi) if args.roi else None
    if roi is not None and roi.shape != image.shape2d:
        raise ShapeMismatchError(f"ROI {roi.shape} vs image {image.shape2d}", stage="visibility")

    mask = low_luminance_mask(image, cfg.low_luminance_threshold, cfg.low_luminance_sigma)
    if args.low_luminance:
        if mask is None:
            logger.warning("no low luminance pixels, so no low luminance file written")
        else:
            write_boundary_png(args.low_luminance, mask)

    result = compute_visibility(
        image,
        scene,
        edge_sigma=cfg.edge_sigma,
        position_patch_size=cfg.position_patch_size,
        orientation_patch_size=cfg.orientation_patch_size,
        position_threshold=cfg.position_threshold,
        orientation_threshold=cfg.orientation_threshold,
        false_positives=args.false_positives is not None,
        observer=_debug_observer(args.hazard_debug),
    )

    if args.luminance_boundaries:
        write_boundary_png(args.luminance_boundaries, result.luminance_boundaries)
    if args.geometry_boundaries:
        write_boundary_png(args.geometry_boundaries, result.geometry_boundaries)

    measurement = cfg.measurement_spec()
    vis = visualize(
        result.hazards,
        measurement,
        palette=cfg.palette,
        mask=mask,
        roi=roi,
        geometry_boundary=result.geometry_boundaries,
        encoding=cfg.display_encoding,
    )
    if args.print_average or args.print_average_na:
        _print_score(vis.average_score, bare=args.print_average_na)
    write_rgb_png(args.output, vis.image)

    if result.false_positives is not None:
        fp = visualize(result.false_positives, measurement,
                       palette=cfg.false_positive_palette,
                       encoding=cfg.display_encoding, with_average=False)
        write_rgb_png(args.false_positives, fp.image)
    return 0


def cmd_compare(args: argparse.Namespace, cfg: VisibilityConfig) -> int:
    standard = read_boundary_png(args.standard)
    comparison = read_boundary_png(args.comparison)
    if standard.shape != comparison.shape:
        raise ShapeMismatchError(
            f"{args.standard} {standard.shape} and {args.comparison} "
            f"{comparison.shape} not same size",
            stage="compare",
        )
    mask = read_boundary_png(args.mask) if args.mask else None
    coords = read_coordinates(args.coordinates)

    deg_per_px = degrees_per_pixel(coords.fov, *standard.shape)
    hazards = compute_hazard_field(standard, squared_distance_transform(comparison), deg_per_px)
    vis = visualize(hazards, cfg.measurement_spec(), palette=cfg.palette, mask=mask,
                    encoding=cfg.display_encoding)
    write_rgb_png(args.output, vis.image)
    print(f"matching score = {vis.average_score:.3f}")
    return 0


def cmd_luminance_boundaries(args: argparse.Namespace, cfg: VisibilityConfig) -> int:
    image = read_scene_image(args.image)
    edges = CannyEdgeDetector()(image.data[..., 2], cfg.edge_sigma)
    write_boundary_png(args.output, edges.boundaries)
    return 0


def cmd_geometry_boundaries(args: argparse.Namespace, cfg: VisibilityConfig) -> int:
    coords = read_coordinates(args.coordinates)
    scene = read_geometry_scene(coords, args.xyz, args.dist, args.nor)
    boundaries = geometry_discontinuities(
        scene,
        position_patch_size=cfg.position_patch_size,
        orientation_patch_size=cfg.orientation_patch_size,
        position_threshold=cfg.position_threshold,
        orientation_threshold=cfg.orientation_threshold,
    )
    write_boundary_png(args.output, boundaries)
    return 0


_COMMANDS = {
    "visibility": cmd_visibility,
    "compare": cmd_compare,
    "luminance-boundaries": cmd_luminance_boundaries,
    "geometry-boundaries": cmd_geometry_boundaries,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = logging.WARNING if args.verbose == 0 else (logging.INFO if args.verbose == 1 else logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        cfg = _load_config(args)
        return _COMMANDS[args.command](args, cfg)
    except (VantageError, OSError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
