"""
Tests for camera adapters and the reprojection residual.
"""

from dataclasses import replace

import numpy as np
import pytest

from SensorBundleAdjustment.algorithms.optimization.bundle_adjustment import (
    AdjustedCameraAdapter,
    CameraVariant,
    CsmCameraAdapter,
    OpticalBarCameraAdapter,
    PinholeCameraAdapter,
    ReprojectionError,
    apply_intrinsic_factors,
    create_camera_adapter
)
from SensorBundleAdjustment.core.exceptions import (
    ConfigurationError,
    InputInvariantViolation,
    ProjectionFailure
)
from SensorBundleAdjustment.core.structures import Observation


def initial_blocks(adapter, point):
    """Point, zero pose adjustment and unit intrinsic scale factors."""
    sizes = adapter.block_sizes()
    return [np.array(point, dtype=float), np.zeros(6)] + [np.ones(size) for size in sizes[2:]]


CAMERA_VARIANTS = [
    ("pinhole", CameraVariant.ADJUSTED),
    ("pinhole", CameraVariant.PINHOLE),
    ("optical_bar", CameraVariant.OPTICAL_BAR),
    ("linescan", CameraVariant.CSM),
]


@pytest.mark.parametrize("camera_and_point, variant", CAMERA_VARIANTS,
                         indirect=["camera_and_point"])
def test_block_sizes_sum_to_num_params(camera_and_point, variant):
    camera, _ = camera_and_point
    adapter = create_camera_adapter(camera, variant)

    sizes = adapter.block_sizes()
    assert sum(sizes) == 3 + 6 + adapter.num_intrinsic_params()
    assert sum(sizes) == adapter.num_params()
    assert len(sizes) == adapter.num_parameter_blocks()
    assert sizes[:2] == [adapter.num_point_params(), adapter.num_pose_params()]


@pytest.mark.parametrize("camera_and_point, variant", CAMERA_VARIANTS,
                         indirect=["camera_and_point"])
def test_reprojection_residual_is_zero_at_own_projection(camera_and_point, variant):
    camera, point = camera_and_point
    adapter = create_camera_adapter(camera, variant)
    blocks = initial_blocks(adapter, point)

    observation = adapter.evaluate(blocks)
    cost = ReprojectionError(observation, [1.0, 1.0], adapter)

    np.testing.assert_array_equal(cost(blocks), np.zeros(2))
    assert cost.parameter_block_sizes() == adapter.block_sizes()


def test_pinhole_with_two_distortion_params(pinhole_camera):
    adapter = PinholeCameraAdapter(pinhole_camera)

    assert adapter.num_intrinsic_params() == 5
    assert adapter.num_parameter_blocks() == 5
    assert adapter.num_params() == 14
    assert adapter.block_sizes() == [3, 6, 2, 1, 2]


def test_optical_bar_layout(optical_bar_camera):
    adapter = OpticalBarCameraAdapter(optical_bar_camera)
    assert adapter.num_intrinsic_params() == 6
    assert adapter.block_sizes() == [3, 6, 2, 1, 3]


def test_csm_layout(linescan_camera):
    adapter = CsmCameraAdapter(linescan_camera)
    assert adapter.num_intrinsic_params() == 4
    assert adapter.block_sizes() == [3, 6, 2, 1, 1]


def test_adjusted_layout(optical_bar_camera):
    adapter = AdjustedCameraAdapter(optical_bar_camera)
    assert adapter.num_intrinsic_params() == 0
    assert adapter.num_parameter_blocks() == 2
    assert adapter.block_sizes() == [3, 6]


def test_factory_picks_variant_from_camera_type(pinhole_camera, optical_bar_camera, linescan_camera):
    assert isinstance(create_camera_adapter(pinhole_camera), PinholeCameraAdapter)
    assert isinstance(create_camera_adapter(optical_bar_camera), OpticalBarCameraAdapter)
    assert isinstance(create_camera_adapter(linescan_camera), CsmCameraAdapter)
    assert isinstance(create_camera_adapter(pinhole_camera, 'adjusted'), AdjustedCameraAdapter)


def test_factory_rejects_mismatched_variant(optical_bar_camera):
    with pytest.raises(ConfigurationError):
        create_camera_adapter(optical_bar_camera, CameraVariant.PINHOLE)
    with pytest.raises(ConfigurationError):
        create_camera_adapter(optical_bar_camera, 'fisheye')


def test_inconsistent_adapter_layout_is_rejected(pinhole_camera):
    class BrokenAdapter(AdjustedCameraAdapter):
        def num_parameter_blocks(self):
            return 3

        def block_sizes(self):
            return [3, 6, 1]

    with pytest.raises(ConfigurationError):
        BrokenAdapter(pinhole_camera)


def test_evaluate_validates_blocks(pinhole_camera, pinhole_point):
    adapter = PinholeCameraAdapter(pinhole_camera)
    blocks = initial_blocks(adapter, pinhole_point)

    with pytest.raises(InputInvariantViolation):
        adapter.evaluate(blocks[:2])

    blocks[4] = np.ones(3)
    with pytest.raises(InputInvariantViolation):
        adapter.evaluate(blocks)


def test_focus_scale_factor(pinhole_camera, pinhole_point):
    camera = type(pinhole_camera)(pinhole_camera.center, pinhole_camera.rotation,
                                  pinhole_camera.focal_length, pinhole_camera.optical_center)
    adapter = PinholeCameraAdapter(camera)
    blocks = initial_blocks(adapter, pinhole_point)
    base = adapter.evaluate(blocks)

    blocks[3] = np.array([2.0])
    scaled = adapter.evaluate(blocks)

    np.testing.assert_allclose(scaled - camera.optical_center, 2 * (base - camera.optical_center))
    # The wrapped camera is left untouched
    assert camera.focal_length == 1000.0


def test_pose_translation_moves_camera(pinhole_camera, pinhole_point):
    adapter = create_camera_adapter(pinhole_camera, CameraVariant.ADJUSTED)
    shift = np.array([0.5, -1.0, 2.0])

    base = adapter.evaluate([pinhole_point, np.zeros(6)])
    moved = adapter.evaluate([pinhole_point + shift, np.concatenate([shift, np.zeros(3)])])

    np.testing.assert_allclose(moved, base)


def test_reprojection_residual_scaled_by_sigma(pinhole_camera, pinhole_point):
    adapter = PinholeCameraAdapter(pinhole_camera)
    blocks = initial_blocks(adapter, pinhole_point)
    projected = adapter.evaluate(blocks)

    observation = Observation(pixel=projected - [2.0, 3.0], sigma=[2.0, 0.5],
                              camera_index=0, point_index=0)
    cost = ReprojectionError.from_observation(observation, adapter)

    np.testing.assert_allclose(cost(blocks), [1.0, 6.0])


def test_reprojection_failure_propagates(pinhole_camera):
    adapter = PinholeCameraAdapter(pinhole_camera)
    blocks = initial_blocks(adapter, [0.0, 0.0, -5.0])
    cost = ReprojectionError([0.0, 0.0], [1.0, 1.0], adapter)

    with pytest.raises(ProjectionFailure):
        cost(blocks)


def test_pinhole_adapter_rejects_other_cameras(optical_bar_camera, pinhole_camera):
    with pytest.raises(ConfigurationError):
        PinholeCameraAdapter(optical_bar_camera)
    with pytest.raises(ConfigurationError):
        CsmCameraAdapter(pinhole_camera)


def test_intrinsic_factors_scale_or_offset():
    original = np.array([2.0, 0.0, -4.0])
    factors = np.array([1.5, 1.2, 0.5])

    np.testing.assert_allclose(apply_intrinsic_factors(original, factors), [3.0, 0.2, -2.0])
    np.testing.assert_array_equal(apply_intrinsic_factors(original, np.ones(3)), original)


def test_zero_distortion_can_move(pinhole_camera, pinhole_point):
    camera = replace(pinhole_camera, distortion=[0.0, 0.0])
    adapter = PinholeCameraAdapter(camera)
    blocks = initial_blocks(adapter, pinhole_point)

    undistorted = adapter.evaluate(blocks)
    np.testing.assert_allclose(undistorted, camera.point_to_pixel(pinhole_point))

    blocks[4] = np.array([1.05, 0.95])
    assert not np.allclose(adapter.evaluate(blocks), undistorted)


def test_zero_motion_compensation_can_move(optical_bar_camera, optical_bar_point):
    camera = replace(optical_bar_camera, motion_compensation=0.0)
    adapter = OpticalBarCameraAdapter(camera)
    blocks = initial_blocks(adapter, optical_bar_point)
    base = adapter.evaluate(blocks)

    blocks[4] = np.array([1.0, 1.5, 1.0])
    assert not np.allclose(adapter.evaluate(blocks), base)
