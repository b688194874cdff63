"""
Shared fixtures: one camera of each sensor type with a point it sees.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

project_root = Path(__file__).parent.parent  # Go up from tests/ to project root
sys.path.insert(0, str(project_root))

from SensorBundleAdjustment.geometry import (
    Datum,
    LinescanCamera,
    OpticalBarCamera,
    PinholeCamera
)


@pytest.fixture
def pinhole_camera():
    return PinholeCamera(
        center=[0.0, 0.0, 0.0],
        rotation=np.eye(3),
        focal_length=1000.0,
        optical_center=[500.0, 400.0],
        distortion=[0.01, -0.005],
    )


@pytest.fixture
def pinhole_point():
    return np.array([10.0, -5.0, 100.0])


@pytest.fixture
def optical_bar_camera():
    return OpticalBarCamera(
        center=[0.0, 0.0, 0.0],
        rotation=np.eye(3),
        focal_length=0.6096,
        pixel_size=7e-6,
        optical_center=[50000.0, 4000.0],
        speed=7700.0,
        motion_compensation=1.0,
        scan_time=0.5,
    )


@pytest.fixture
def optical_bar_point():
    return np.array([100.0, 2000.0, 150000.0])


@pytest.fixture
def linescan_camera():
    return LinescanCamera(
        position=[0.0, 0.0, 0.0],
        velocity=[0.0, 7000.0, 0.0],
        rotation=np.eye(3),
        line_period=1e-4,
        focal_length=20000.0,
        optical_center=[2500.0, 10.0],
        distortion=[1e-3],
        angular_velocity=[1e-4, 0.0, 0.0],
    )


@pytest.fixture
def linescan_point():
    return np.array([100.0, 35.0, 500000.0])


@pytest.fixture
def camera_and_point(request):
    """Indirect fixture: pass the camera type name."""
    name = request.param
    return (request.getfixturevalue(f"{name}_camera"),
            request.getfixturevalue(f"{name}_point"))


@pytest.fixture(scope="session")
def wgs84():
    return Datum('WGS84')
