from pathlib import Path

import numpy as np
import pytest

from boundary_detectors.geometry import GeometryScene
from vantage_raster import FieldOfView, Raster


def make_step_luminance(n=16, step_col=8, low=10.0, high=100.0):
    """Luminance with a vertical step between ``step_col - 1`` and ``step_col``."""
    lum = np.full((n, n), low)
    lum[:, step_col:] = high
    return lum


def make_xyY(luminance, fov=FieldOfView(16.0, 16.0)):
    xyY = np.empty(luminance.shape + (3,))
    xyY[..., 0] = 1.0 / 3.0
    xyY[..., 1] = 1.0 / 3.0
    xyY[..., 2] = luminance
    return Raster(xyY, fov=fov)


def make_depth_step_scene(n=16, step_col=8, depth=10.0):
    """Plane facing +z whose right part (cols >= step_col) lies ``depth`` behind."""
    rows, cols = np.mgrid[0:n, 0:n].astype(np.float64)
    positions = np.stack([cols, rows, np.zeros_like(rows)], axis=-1)
    positions[:, step_col:, 2] = -depth
    normals = np.zeros((n, n, 3))
    normals[..., 2] = 1.0
    distances = np.full((n, n), 100.0)
    return GeometryScene(positions=positions, distances=distances, normals=normals)


def write_radiance_ascii(path: Path, values: np.ndarray) -> Path:
    n_rows, n_cols = values.shape[:2]
    lines = ["#?RADIANCE", "generated for tests", "", f"-Y {n_rows} +X {n_cols}"]
    flat = values.reshape(n_rows * n_cols, -1)
    lines += [" ".join(f"{v:g}" for v in row) for row in flat]
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def step_luminance():
    return make_step_luminance()


@pytest.fixture
def step_image(step_luminance):
    return make_xyY(step_luminance)


@pytest.fixture
def depth_step_scene():
    return make_depth_step_scene()


@pytest.fixture
def coord_file(tmp_path: Path):
    def _make(units="centimeters", view="-vtv -vp 0 0 0 -vd 0 1 0 -vu 0 0 1 -vh 45 -vv 45",
              name="coord"):
        path = tmp_path / name
        text = f"distance-units={units}\n"
        if view is not None:
            text += f"VIEW= {view}\n"
        path.write_text(text)
        return path

    return _make


@pytest.fixture
def geometry_files(tmp_path: Path):
    """Writes xyz / dist / nor files of a scene and returns their paths."""
    def _make(scene: GeometryScene):
        xyz = write_radiance_ascii(tmp_path / "xyz.txt", scene.positions)
        dist = write_radiance_ascii(tmp_path / "dist.txt", scene.distances[..., np.newaxis])
        nor = write_radiance_ascii(tmp_path / "nor.txt", scene.normals)
        return xyz, dist, nor

    return _make
