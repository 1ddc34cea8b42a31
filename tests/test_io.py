"""
Tests for the coordinates, geometry and image file formats.
"""

import cv2
import numpy as np
import pytest

from conftest import make_depth_step_scene, write_radiance_ascii
from vantage_io import (
    WHITE_EFFICACY,
    Coordinates,
    DistanceUnits,
    ViewParameters,
    parse_coordinates,
    parse_view,
    read_boundary_png,
    read_coordinates,
    read_geometry,
    read_geometry_1d,
    read_geometry_3d,
    read_geometry_scene,
    read_scene_image,
    write_boundary_png,
    write_coordinates,
    write_rgb_png,
)
from vantage_raster import DEFAULT_FOV, FieldOfView, GeometryFormatError, InvalidParameterError


def write_hdr(path, rgb, header_lines=()):
    """Write ``rgb`` as a Radiance picture and splice extra header lines in."""
    bgr = np.ascontiguousarray(rgb[..., ::-1], dtype=np.float32)
    assert cv2.imwrite(str(path), bgr)
    if header_lines:
        raw = path.read_bytes()
        first, rest = raw.split(b"\n", 1)
        extra = "".join(f"{line}\n" for line in header_lines).encode("ascii")
        path.write_bytes(first + b"\n" + extra + rest)
    return path


# --- Coordinates ---

def test_parse_view():
    view = parse_view("-vtv -vp 1 2 3 -vd 0 1 0 -vu 0 0 1 -vh 60 -vv 40 -vo 0 -va 0")
    assert view.view_type == "v"
    assert view.origin == (1.0, 2.0, 3.0)
    assert view.fov == FieldOfView(vert=40.0, horiz=60.0)


def test_parse_view_updates_base():
    base = ViewParameters(horiz=30.0, vert=20.0)
    assert parse_view("-vh 50", base).fov == FieldOfView(vert=20.0, horiz=50.0)


@pytest.mark.parametrize("text", ["-vh", "-vp 1 2", "-vh wide", "-zz 3"])
def test_parse_view_errors(text):
    with pytest.raises(GeometryFormatError):
        parse_view(text)


def test_parse_coordinates_default_view():
    coords = parse_coordinates("distance-units=meters\n")
    assert coords.units is DistanceUnits.METERS
    assert coords.to_centimeters == 100.0
    assert coords.fov == DEFAULT_FOV


@pytest.mark.parametrize("text", ["", "units=meters\n", "distance-units=furlongs\n",
                                  "distance-units=meters\nSOMETHING\n"])
def test_parse_coordinates_errors(text):
    with pytest.raises(GeometryFormatError):
        parse_coordinates(text)


def test_coordinates_round_trip(tmp_path):
    coords = Coordinates(DistanceUnits.INCHES,
                         ViewParameters(origin=(0.0, 0.0, 1.5), horiz=70.0, vert=50.0))
    write_coordinates(tmp_path / "coord", coords)
    assert read_coordinates(tmp_path / "coord") == coords


def test_read_coordinates_fixture(coord_file):
    coords = read_coordinates(coord_file(units="feet", view="-vh 30 -vv 20"))
    assert coords.to_centimeters == pytest.approx(30.48)
    assert coords.fov == FieldOfView(20.0, 30.0)


# --- Geometry ---

def test_read_geometry_shapes(tmp_path):
    values = np.arange(12.0).reshape(2, 2, 3)
    path = write_radiance_ascii(tmp_path / "xyz.txt", values)
    np.testing.assert_array_equal(read_geometry(path), values)
    np.testing.assert_array_equal(read_geometry_3d(path), values)
    with pytest.raises(GeometryFormatError):
        read_geometry_1d(path)

    dist = write_radiance_ascii(tmp_path / "dist.txt", np.array([[[1.0], [2.0]]]))
    assert read_geometry(dist).shape == (1, 2)


def test_read_geometry_scales_to_centimeters(tmp_path, coord_file):
    coords = read_coordinates(coord_file(units="meters"))
    path = write_radiance_ascii(tmp_path / "dist.txt", np.array([[[1.5], [2.0]]]))
    np.testing.assert_allclose(read_geometry_1d(path, coords), [[150.0, 200.0]])


@pytest.mark.parametrize("text", [
    "#?RGBE\n\n-Y 1 +X 1\n1\n",
    "#?RADIANCE\nheader\n",
    "#?RADIANCE\n\n+X 1 -Y 1\n1\n",
    "#?RADIANCE\n\n-Y 1 +X 2\n1\n",
    "#?RADIANCE\n\n-Y 1 +X 2\n1 2\n3 4\n",
    "#?RADIANCE\n\n-Y 1 +X 2\n1\n2 3 4\n",
    "#?RADIANCE\n\n-Y 1 +X 1\nabc\n",
])
def test_read_geometry_errors(tmp_path, text):
    path = tmp_path / "bad.txt"
    path.write_text(text)
    with pytest.raises(GeometryFormatError):
        read_geometry(path)


def test_read_geometry_scene(coord_file, geometry_files):
    scene = make_depth_step_scene(n=8, step_col=4)
    xyz, dist, nor = geometry_files(scene)
    coords = read_coordinates(coord_file(units="meters"))
    loaded = read_geometry_scene(coords, xyz, dist, nor)
    np.testing.assert_allclose(loaded.positions, scene.positions * 100.0)
    np.testing.assert_allclose(loaded.distances, scene.distances * 100.0)
    np.testing.assert_allclose(loaded.normals, scene.normals)
    assert loaded.fov == FieldOfView(45.0, 45.0)


# --- Images ---

def test_read_hdr_scene(tmp_path):
    rgb = np.full((6, 8, 3), 0.5)
    path = write_hdr(tmp_path / "scene.hdr", rgb,
                     header_lines=["VIEW= -vtv -vh 30 -vv 20", "EXPOSURE=2"])
    image = read_scene_image(path)
    assert image.data.shape == (6, 8, 3)
    assert image.fov == FieldOfView(vert=20.0, horiz=30.0)
    np.testing.assert_allclose(image.data[..., 2], 0.5 * 2.0 * WHITE_EFFICACY, rtol=1e-3)
    # Equal-energy sRGB is the D65 white point.
    np.testing.assert_allclose(image.data[..., 0], 0.3127, atol=1e-3)
    np.testing.assert_allclose(image.data[..., 1], 0.3290, atol=1e-3)


def test_read_hdr_fov_override(tmp_path):
    path = write_hdr(tmp_path / "scene.hdr", np.full((4, 4, 3), 1.0))
    image = read_scene_image(path, fov=FieldOfView(10.0, 10.0))
    assert image.fov == FieldOfView(10.0, 10.0)
    np.testing.assert_allclose(image.data[..., 2], WHITE_EFFICACY, rtol=1e-3)


def test_read_png_scene(tmp_path):
    gray = np.zeros((3, 4), dtype=np.uint8)
    gray[:, 2:] = 255
    path = tmp_path / "scene.png"
    cv2.imwrite(str(path), gray)
    image = read_scene_image(path)
    assert image.fov == DEFAULT_FOV
    np.testing.assert_allclose(image.data[:, 2:, 2], 1.0, atol=1e-6)
    np.testing.assert_allclose(image.data[:, :2, 2], 0.0)


def test_read_png_scene_rejects_16_bit(tmp_path):
    path = tmp_path / "deep.png"
    cv2.imwrite(str(path), np.full((3, 4), 40000, dtype=np.uint16))
    with pytest.raises(InvalidParameterError, match="8-bit"):
        read_scene_image(path)


def test_read_missing_image(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_scene_image(tmp_path / "missing.png")


def test_boundary_png_round_trip(tmp_path):
    b = np.zeros((5, 6), dtype=bool)
    b[2, 1:4] = True
    path = tmp_path / "b.png"
    write_boundary_png(path, b)
    assert cv2.imread(str(path), cv2.IMREAD_GRAYSCALE).max() == 255
    np.testing.assert_array_equal(read_boundary_png(path), b)


def test_write_rgb_png_channel_order(tmp_path):
    rgb = np.zeros((2, 2, 3), dtype=np.uint8)
    rgb[..., 0] = 200
    path = tmp_path / "rgb.png"
    write_rgb_png(path, rgb)
    bgr = cv2.imread(str(path), cv2.IMREAD_COLOR)
    assert np.all(bgr[..., 2] == 200) and np.all(bgr[..., 0] == 0)
