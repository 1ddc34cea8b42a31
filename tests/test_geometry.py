import numpy as np
import pytest

from boundary_detectors.geometry import (
    GeometryDiscontinuityDetector,
    GeometryScene,
    directional_maxima,
    geometry_discontinuities,
    orientation_deviation,
    position_deviation,
)
from conftest import make_depth_step_scene
from vantage_raster import InvalidParameterError, ShapeMismatchError


def _crease_scene(n=10, crease_col=5):
    rows, cols = np.mgrid[0:n, 0:n].astype(np.float64)
    positions = np.stack([cols, rows, np.zeros_like(rows)], axis=-1)
    normals = np.zeros((n, n, 3))
    normals[..., 2] = 1.0
    normals[:, crease_col:] = (1.0, 0.0, 0.0)
    return GeometryScene(positions, np.full((n, n), 50.0), normals)


def test_position_deviation_at_depth_step(depth_step_scene):
    dev = position_deviation(depth_step_scene.positions, depth_step_scene.normals)
    assert np.allclose(dev[1:-1, 7], 10.0)
    # Pixels behind the step see surfaces in front of them only.
    assert np.all(dev[:, 8] == 0.0)
    assert np.all(dev[0] == 0.0) and np.all(dev[-1] == 0.0)


def test_depth_step_boundary(depth_step_scene):
    b = geometry_discontinuities(depth_step_scene)
    expected = np.zeros((16, 16), dtype=bool)
    expected[1:-1, 7] = True
    np.testing.assert_array_equal(b, expected)


def test_position_threshold_suppresses_shallow_step():
    scene = make_depth_step_scene(depth=1.0)
    assert not geometry_discontinuities(scene, position_threshold=2.0).any()
    assert geometry_discontinuities(scene, position_threshold=0.5)[1:-1, 7].all()


def test_orientation_deviation_at_crease():
    scene = _crease_scene()
    dev = orientation_deviation(scene.normals)
    assert dev[4, 4] == pytest.approx(67.5)
    assert dev[4, 5] == pytest.approx(67.5)
    assert dev[4, 2] == pytest.approx(0.0, abs=1e-6)


def test_crease_boundary_breaks_ties_toward_far_side():
    b = geometry_discontinuities(_crease_scene())
    expected = np.zeros((10, 10), dtype=bool)
    expected[1:-1, 5] = True
    np.testing.assert_array_equal(b, expected)


def test_opposite_normals_do_not_produce_nan():
    normals = np.zeros((5, 5, 3))
    normals[..., 2] = 1.0
    normals[:, 3:, 2] = -1.0
    dev = orientation_deviation(normals)
    assert np.all(np.isfinite(dev))
    assert dev.max() <= 180.0


def test_directional_maxima():
    values = np.zeros((5, 5))
    values[2, 2] = 5.0
    values[1, 3] = 1.0
    out = directional_maxima(values, 2.0)
    assert out[2, 2]
    assert out.sum() == 1
    assert not directional_maxima(np.full((5, 5), 9.0), 1.0).any()


@pytest.mark.parametrize("size", [1, 2, 4, 17])
def test_invalid_patch_sizes(depth_step_scene, size):
    with pytest.raises(InvalidParameterError):
        geometry_discontinuities(depth_step_scene, position_patch_size=size)
    with pytest.raises(InvalidParameterError):
        geometry_discontinuities(depth_step_scene, orientation_patch_size=size)


def test_larger_patches(depth_step_scene):
    b = geometry_discontinuities(depth_step_scene, position_patch_size=5,
                                 orientation_patch_size=5)
    assert b[2:-2, :].any(axis=1).all()


def test_scene_validation():
    good = np.zeros((4, 4, 3))
    with pytest.raises(InvalidParameterError):
        GeometryScene(np.zeros((4, 4)), np.zeros((4, 4)), good)
    with pytest.raises(InvalidParameterError):
        GeometryScene(good, np.zeros((4, 4, 1)), good)
    with pytest.raises(ShapeMismatchError):
        GeometryScene(good, np.zeros((4, 5)), good)


def test_detector_callable(depth_step_scene):
    detector = GeometryDiscontinuityDetector()
    np.testing.assert_array_equal(detector(depth_step_scene),
                                  geometry_discontinuities(depth_step_scene))
