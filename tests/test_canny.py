import math

import numpy as np
import pytest

from boundary_detectors.canny import (
    ORIENTATION_NO_EDGE,
    CannyEdgeDetector,
    auto_thresholds,
    canny,
    gaussian_blur,
)
from vantage_raster import InvalidParameterError


def test_step_edge_single_line(step_luminance):
    edges = canny(step_luminance, math.sqrt(2.0))
    b = edges.boundaries
    assert b.dtype == bool
    for row in range(2, 14):
        cols = np.flatnonzero(b[row])
        assert len(cols) == 1
        assert cols[0] in (7, 8)
    # Two-pixel border is never an edge.
    assert not b[:2].any() and not b[-2:].any()
    assert edges.magnitude is None and edges.orientation is None


def test_flat_image_has_no_edges():
    edges = canny(np.full((12, 12), 42.0), 0.0, with_magnitude=True)
    assert not edges.boundaries.any()
    assert np.all(edges.magnitude == 0.0)


def test_orientation_and_magnitude(step_luminance):
    edges = canny(step_luminance, math.sqrt(2.0), with_magnitude=True, with_orientation=True)
    on = edges.boundaries
    assert np.all(edges.orientation[~on] == ORIENTATION_NO_EDGE)
    assert np.all(edges.magnitude[~on] == 0.0)
    assert np.all(edges.magnitude[on] > 0.0)

    # Luminance increases along +x.
    theta = edges.orientation[on]
    assert np.all((theta >= 0.0) & (theta < 360.0))
    assert np.all((theta < 1.0) | (theta > 359.0))


def test_explicit_high_threshold_only(step_luminance):
    auto = canny(step_luminance, math.sqrt(2.0), with_magnitude=True)
    peak = auto.magnitude.max()

    kept = canny(step_luminance, math.sqrt(2.0), high_threshold=0.5 * peak,
                 auto_threshold=False)
    np.testing.assert_array_equal(kept.boundaries, auto.boundaries)

    dropped = canny(step_luminance, math.sqrt(2.0), high_threshold=2.0 * peak,
                    auto_threshold=False)
    assert not dropped.boundaries.any()


def test_hysteresis_thresholds(step_luminance):
    auto = canny(step_luminance, math.sqrt(2.0), with_magnitude=True)
    peak = auto.magnitude.max()
    edges = canny(step_luminance, math.sqrt(2.0), high_threshold=0.9 * peak,
                  low_threshold=0.1 * peak, auto_threshold=False)
    np.testing.assert_array_equal(edges.boundaries, auto.boundaries)


def test_low_without_high_warns(step_luminance):
    with pytest.warns(RuntimeWarning):
        canny(step_luminance, 1.0, low_threshold=0.5, auto_threshold=False)


def test_low_above_high_rejected(step_luminance):
    with pytest.raises(InvalidParameterError):
        canny(step_luminance, 1.0, high_threshold=0.1, low_threshold=0.5,
              auto_threshold=False)


@pytest.mark.parametrize("shape", [(4, 10), (10, 4), (10,)])
def test_too_small_image(shape):
    with pytest.raises(InvalidParameterError):
        canny(np.ones(shape), 1.0)


def test_small_sigma_rejected(step_luminance):
    with pytest.raises(InvalidParameterError):
        canny(step_luminance, 0.3)


def test_zero_sigma_skips_blur(step_luminance):
    edges = canny(step_luminance, 0.0)
    assert edges.boundaries[2:14, 7:9].any(axis=1).all()


def test_gaussian_blur_preserves_constant():
    out = gaussian_blur(np.full((9, 7), 3.0), 1.5)
    np.testing.assert_allclose(out, 3.0)
    with pytest.raises(InvalidParameterError):
        gaussian_blur(np.ones((5, 5)), 0.4)


def test_auto_thresholds_ratio():
    mag = np.zeros((10, 10))
    mag[2:8, 5] = 4.0
    high, low = auto_thresholds(mag)
    assert 0.0 < high <= 4.0
    assert low == pytest.approx(0.6 * high)


def test_detector_callable(step_luminance):
    detector = CannyEdgeDetector()
    edges = detector(step_luminance, math.sqrt(2.0))
    np.testing.assert_array_equal(edges.boundaries,
                                  canny(step_luminance, math.sqrt(2.0)).boundaries)
    assert edges.magnitude is not None and edges.orientation is not None
    assert "CannyEdgeDetector" in repr(detector)
