"""
End-to-end tests of the ``vantage`` command line program.
"""

import cv2
import numpy as np
import pytest

from conftest import make_depth_step_scene
from test_io import write_hdr
from vantage_cli import build_parser, main


@pytest.fixture
def column_png(tmp_path):
    def _make(col, name, shape=(10, 10)):
        img = np.zeros(shape, dtype=np.uint8)
        img[:, col] = 255
        path = tmp_path / name
        cv2.imwrite(str(path), img)
        return path

    return _make


@pytest.fixture
def step_hdr(tmp_path):
    rgb = np.full((16, 16, 3), 0.1)
    rgb[:, 8:] = 1.0
    return write_hdr(tmp_path / "scene.hdr", rgb)


def test_parser_requires_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_version(capsys):
    with pytest.raises(SystemExit) as info:
        main(["--version"])
    assert info.value.code == 0
    assert "0.1.0" in capsys.readouterr().out


def test_exclusive_measurements():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["compare", "a", "b", "c", "d", "--gaussian", "1",
                                   "--linear", "2"])


def test_compare_offset_columns(tmp_path, capsys, column_png, coord_file):
    standard = column_png(4, "standard.png")
    comparison = column_png(6, "comparison.png")
    coord = coord_file(view="-vh 10 -vv 10")
    out = tmp_path / "vis.png"

    assert main(["compare", str(standard), str(comparison), str(coord), str(out),
                 "--linear", "2"]) == 0
    assert capsys.readouterr().out.strip() == "matching score = 0.000"

    img = cv2.imread(str(out), cv2.IMREAD_COLOR)
    assert img.shape == (10, 10, 3)
    # Red-gray by default: fully hazardous edges are red (BGR on disk).
    np.testing.assert_array_equal(img[5, 4], [0, 0, 255])


def test_compare_identical_maps(tmp_path, capsys, column_png, coord_file):
    standard = column_png(4, "standard.png")
    assert main(["compare", str(standard), str(standard), str(coord_file()),
                 str(tmp_path / "vis.png")]) == 0
    assert capsys.readouterr().out.strip() == "matching score = 1.000"


def test_compare_size_mismatch(tmp_path, column_png, coord_file):
    standard = column_png(4, "standard.png")
    comparison = column_png(4, "comparison.png", shape=(10, 12))
    out = tmp_path / "vis.png"
    assert main(["compare", str(standard), str(comparison), str(coord_file()), str(out)]) == 1
    assert not out.exists()


def test_missing_input_file(tmp_path, coord_file):
    missing = tmp_path / "missing.png"
    assert main(["compare", str(missing), str(missing), str(coord_file()),
                 str(tmp_path / "vis.png")]) == 1


def test_geometry_boundaries(tmp_path, coord_file, geometry_files):
    xyz, dist, nor = geometry_files(make_depth_step_scene())
    out = tmp_path / "geometry.png"
    assert main(["geometry-boundaries", str(coord_file()), str(xyz), str(dist), str(nor),
                 str(out)]) == 0
    b = cv2.imread(str(out), cv2.IMREAD_GRAYSCALE) != 0
    assert b[1:-1, 7].all()
    assert b.sum() == 14


def test_geometry_boundaries_threshold_option(tmp_path, coord_file, geometry_files):
    xyz, dist, nor = geometry_files(make_depth_step_scene())
    out = tmp_path / "geometry.png"
    assert main(["geometry-boundaries", str(coord_file()), str(xyz), str(dist), str(nor),
                 str(out), "--position-threshold", "50"]) == 0
    assert not cv2.imread(str(out), cv2.IMREAD_GRAYSCALE).any()


def test_luminance_boundaries(tmp_path, step_hdr):
    out = tmp_path / "luminance.png"
    assert main(["luminance-boundaries", str(step_hdr), str(out)]) == 0
    b = cv2.imread(str(out), cv2.IMREAD_GRAYSCALE) != 0
    assert b[2:14, 7:9].any(axis=1).all()
    assert not b[:, :5].any()


def test_visibility_end_to_end(tmp_path, capsys, step_hdr, coord_file, geometry_files):
    xyz, dist, nor = geometry_files(make_depth_step_scene())
    out = tmp_path / "hazards.png"
    fp = tmp_path / "false_positives.png"
    geo = tmp_path / "geometry.png"
    lum = tmp_path / "luminance.png"
    low = tmp_path / "low.png"

    status = main(["visibility", str(step_hdr), str(coord_file()), str(xyz), str(dist),
                   str(nor), str(out), "--print-average", "--false-positives", str(fp),
                   "--geometry-boundaries", str(geo), "--luminance-boundaries", str(lum),
                   "--low-luminance", str(low)])
    assert status == 0

    printed = capsys.readouterr().out
    assert printed.startswith("Hazard Visibility Score = ")
    score = float(printed.split("=")[1])
    assert 0.0 < score <= 1.0

    for path in (out, fp, geo, lum):
        assert path.exists()
    # Every pixel is bright, so there is no low-luminance mask to write.
    assert not low.exists()
    assert cv2.imread(str(out), cv2.IMREAD_COLOR).shape == (16, 16, 3)


def test_visibility_bare_average_and_config(tmp_path, capsys, step_hdr, coord_file,
                                            geometry_files):
    xyz, dist, nor = geometry_files(make_depth_step_scene())
    config = tmp_path / "vantage.yaml"
    config.write_text("measurement: linear\nmeasurement_parameter: 100.0\n")

    assert main(["visibility", str(step_hdr), str(coord_file()), str(xyz), str(dist),
                 str(nor), str(tmp_path / "hazards.png"), "--print-average-na",
                 "--config", str(config)]) == 0
    printed = capsys.readouterr().out
    assert not printed.endswith("\n")
    assert float(printed) > 0.9


def test_visibility_geometry_size_mismatch(tmp_path, step_hdr, coord_file, geometry_files):
    xyz, dist, nor = geometry_files(make_depth_step_scene(n=12, step_col=6))
    out = tmp_path / "hazards.png"
    assert main(["visibility", str(step_hdr), str(coord_file()), str(xyz), str(dist),
                 str(nor), str(out)]) == 1
    assert not out.exists()


def test_bad_config_reports_error(tmp_path, column_png, coord_file):
    config = tmp_path / "bad.yaml"
    config.write_text("palette: purple\n")
    standard = column_png(4, "standard.png")
    assert main(["compare", str(standard), str(standard), str(coord_file()),
                 str(tmp_path / "vis.png"), "--config", str(config)]) == 1


@pytest.mark.parametrize("text", ["edge_sigma: [1\n", "edge_sigma: abc\n"])
def test_unreadable_config_reports_error(tmp_path, step_hdr, text):
    config = tmp_path / "bad.yaml"
    config.write_text(text)
    out = tmp_path / "luminance.png"
    assert main(["luminance-boundaries", str(step_hdr), str(out), "--config", str(config)]) == 1
    assert not out.exists()


def test_visibility_hazard_debug_image(tmp_path, step_hdr, coord_file, geometry_files):
    xyz, dist, nor = geometry_files(make_depth_step_scene())
    debug = tmp_path / "debug.png"
    assert main(["visibility", str(step_hdr), str(coord_file()), str(xyz), str(dist),
                 str(nor), str(tmp_path / "hazards.png"), "--hazard-debug", str(debug)]) == 0

    gray = cv2.imread(str(debug), cv2.IMREAD_UNCHANGED)
    assert gray.shape == (16, 16) and gray.dtype == np.uint8
    # Only geometry-boundary pixels carry a hazard; the rest is NO_EDGE -> 0.
    off_boundary = np.ones((16, 16), dtype=bool)
    off_boundary[1:-1, 7] = False
    assert not gray[off_boundary].any()
