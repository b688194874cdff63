"""
Tests for the camera models.
"""

from dataclasses import replace

import numpy as np
import pytest

from SensorBundleAdjustment.core.exceptions import ConfigurationError, ProjectionFailure
from SensorBundleAdjustment.geometry import AdjustedCamera, PinholeCamera


def test_pinhole_projection_without_distortion(pinhole_camera, pinhole_point):
    camera = replace(pinhole_camera, distortion=[])
    pixel = camera.point_to_pixel(pinhole_point)
    np.testing.assert_allclose(pixel, [600.0, 350.0])


def test_pinhole_radial_distortion_matches_opencv_model(pinhole_camera, pinhole_point):
    x, y = 0.1, -0.05
    r2 = x * x + y * y
    k1, k2 = pinhole_camera.distortion
    scale = 1 + k1 * r2 + k2 * r2 * r2

    pixel = pinhole_camera.point_to_pixel(pinhole_point)

    np.testing.assert_allclose(pixel, [500.0 + 1000.0 * x * scale, 400.0 + 1000.0 * y * scale],
                               rtol=1e-9)


def test_pinhole_point_behind_camera(pinhole_camera):
    with pytest.raises(ProjectionFailure):
        pinhole_camera.point_to_pixel(np.array([0.0, 0.0, -10.0]))


def test_pinhole_rejects_too_many_distortion_coefficients():
    with pytest.raises(ConfigurationError):
        PinholeCamera(center=np.zeros(3), rotation=np.eye(3), focal_length=1.0,
                      optical_center=[0, 0], distortion=np.zeros(15))


def test_optical_bar_boresight_projects_to_optical_center(optical_bar_camera):
    pixel = optical_bar_camera.point_to_pixel(np.array([0.0, 0.0, 150000.0]))
    np.testing.assert_allclose(pixel, optical_bar_camera.optical_center, atol=1e-9)


def test_optical_bar_motion_compensation(optical_bar_camera):
    point = np.array([0.0, 2000.0, 150000.0])

    compensated = optical_bar_camera.point_to_pixel(point)
    uncompensated = replace(optical_bar_camera, motion_compensation=0.0).point_to_pixel(point)

    # Full compensation cancels the along-track motion during the scan
    assert compensated[1] == pytest.approx(optical_bar_camera.optical_center[1], abs=1e-6)
    assert uncompensated[1] < compensated[1]
    assert uncompensated[0] == pytest.approx(compensated[0])


def test_optical_bar_point_behind_camera(optical_bar_camera):
    with pytest.raises(ProjectionFailure):
        optical_bar_camera.point_to_pixel(np.array([0.0, 100.0, -1000.0]))


def test_optical_bar_camera_center_moves_across_scan(optical_bar_camera, optical_bar_point):
    pixel = optical_bar_camera.point_to_pixel(optical_bar_point)
    center = optical_bar_camera.camera_center(pixel)

    np.testing.assert_allclose(optical_bar_camera.camera_center(), [0, 0, 0])
    assert center[0] > 0
    np.testing.assert_allclose(center[1:], [0, 0])


def test_linescan_projection_without_attitude_rate(linescan_camera, linescan_point):
    camera = replace(linescan_camera, angular_velocity=np.zeros(3))
    pixel = camera.point_to_pixel(linescan_point)

    x = 100.0 / 500000.0
    expected_col = 2500.0 + 20000.0 * x * (1 + 1e-3 * x * x)
    # Point crosses the detector plane after 35 m of travel
    expected_row = 10.0 + (35.0 / 7000.0) / 1e-4
    np.testing.assert_allclose(pixel, [expected_col, expected_row], atol=1e-6)


def test_linescan_projection_with_attitude_rate(linescan_camera, linescan_point):
    pixel = linescan_camera.point_to_pixel(linescan_point)
    static = replace(linescan_camera, angular_velocity=np.zeros(3)).point_to_pixel(linescan_point)

    assert np.all(np.isfinite(pixel))
    assert pixel[1] != pytest.approx(static[1], abs=1e-3)


def test_linescan_camera_center_follows_orbit(linescan_camera):
    center = linescan_camera.camera_center(np.array([0.0, 60.0]))
    np.testing.assert_allclose(center, [0.0, 7000.0 * 50 * 1e-4, 0.0])


def test_linescan_point_behind_camera(linescan_camera):
    with pytest.raises(ProjectionFailure):
        linescan_camera.point_to_pixel(np.array([0.0, 35.0, -500000.0]))


def test_linescan_without_along_track_motion(linescan_camera, linescan_point):
    camera = replace(linescan_camera, velocity=[7000.0, 0.0, 0.0])
    with pytest.raises(ProjectionFailure):
        camera.point_to_pixel(linescan_point)


def test_adjusted_camera_identity(pinhole_camera, pinhole_point):
    adjusted = AdjustedCamera(pinhole_camera, np.zeros(3), np.zeros(3))
    np.testing.assert_allclose(adjusted.point_to_pixel(pinhole_point),
                               pinhole_camera.point_to_pixel(pinhole_point))


def test_adjusted_camera_translation(pinhole_camera, pinhole_point):
    shift = np.array([1.0, 2.0, -3.0])
    adjusted = AdjustedCamera(pinhole_camera, shift, np.zeros(3))

    np.testing.assert_allclose(adjusted.point_to_pixel(pinhole_point + shift),
                               pinhole_camera.point_to_pixel(pinhole_point))
    np.testing.assert_allclose(adjusted.camera_center(), shift)


def test_adjusted_camera_rotation_about_center(pinhole_camera, pinhole_point):
    center = np.array([5.0, 0.0, 0.0])
    camera = replace(pinhole_camera, center=center)
    adjusted = AdjustedCamera(camera, np.zeros(3), np.array([0.0, 0.1, 0.0]))

    # Rotating about the camera center leaves the center in place
    np.testing.assert_allclose(adjusted.camera_center(), center)
    assert not np.allclose(adjusted.point_to_pixel(pinhole_point),
                           camera.point_to_pixel(pinhole_point))
