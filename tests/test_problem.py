"""
Tests for problem assembly, evaluation and the least-squares solver.
"""

import numpy as np
import pytest

from SensorBundleAdjustment.algorithms.optimization.bundle_adjustment import (
    CameraVariant,
    CostFunction,
    LeastSquaresSolver,
    PinholeCameraAdapter,
    Problem,
    ReprojectionError,
    XYZError,
    create_camera_adapter,
    get_loss_function
)
from SensorBundleAdjustment.core.exceptions import InputInvariantViolation, ProjectionFailure
from SensorBundleAdjustment.core.interfaces import OptimizationStatus
from SensorBundleAdjustment.core.structures import ParameterStorage
from SensorBundleAdjustment.geometry import PinholeCamera


class PointDifference(CostFunction):
    """Difference of two points"""

    @property
    def num_residuals(self):
        return 3

    def parameter_block_sizes(self):
        return [3, 3]

    def evaluate(self, parameter_blocks):
        return parameter_blocks[0] - 2.0 * parameter_blocks[1] ** 2


@pytest.fixture
def storage():
    storage = ParameterStorage(num_points=3, num_cameras=1)
    storage.set_point(0, [1.0, 2.0, 3.0])
    storage.set_point(1, [0.5, -0.5, 0.25])
    storage.set_point(2, [4.0, 5.0, 6.0])
    return storage


@pytest.fixture
def problem(storage):
    problem = Problem()
    problem.add_residual_block(XYZError([0.0, 0.0, 0.0], [1.0, 2.0, 4.0]), None,
                               [storage.get_point_block(0)])
    problem.add_residual_block(PointDifference(), get_loss_function('cauchy', 0.5),
                               [storage.get_point_block(0), storage.get_point_block(1)])
    return problem


# Registration

def test_rejects_wrong_block_count(storage):
    with pytest.raises(InputInvariantViolation):
        Problem().add_residual_block(XYZError(np.zeros(3), np.ones(3)), None,
                                     [storage.get_point_block(0), storage.get_point_block(1)])


def test_rejects_wrong_block_size(storage):
    with pytest.raises(InputInvariantViolation):
        Problem().add_residual_block(XYZError(np.zeros(3), np.ones(3)), None,
                                     [storage.get_camera_block(0)])


def test_rejects_duplicate_blocks(storage):
    with pytest.raises(InputInvariantViolation):
        Problem().add_residual_block(PointDifference(), None,
                                     [storage.get_point_block(0), storage.get_point_block(0)])


def test_constant_requires_registered_block(problem, storage):
    with pytest.raises(InputInvariantViolation):
        problem.set_parameter_block_constant(storage.get_point_block(2))


def test_sizes(problem):
    assert problem.num_residual_blocks == 2
    assert problem.num_residuals == 6
    assert problem.num_parameter_blocks == 2
    assert problem.num_parameters == 6


# Parameter vector

def test_constant_blocks_are_not_packed(problem, storage):
    problem.set_parameter_block_constant(storage.get_point_block(0))
    np.testing.assert_array_equal(problem.pack(), [0.5, -0.5, 0.25])
    assert problem.is_parameter_block_constant(storage.get_point_block(0))

    problem.set_parameter_block_variable(storage.get_point_block(0))
    assert problem.pack().size == 6


def test_evaluate_at_trial_point_does_not_write_storage(problem, storage):
    x = problem.pack() + 1.0
    problem.evaluate(x)
    problem.jacobian(x)
    np.testing.assert_array_equal(storage.points()[0], [1.0, 2.0, 3.0])


def test_set_parameters_writes_storage(problem, storage):
    problem.set_parameters(np.arange(6, dtype=float))
    np.testing.assert_array_equal(storage.points()[:2], [[0, 1, 2], [3, 4, 5]])

    with pytest.raises(InputInvariantViolation):
        problem.set_parameters(np.zeros(5))


# Evaluation

def test_loss_is_applied(problem, storage):
    points = storage.points()
    raw = points[0] - 2.0 * points[1] ** 2
    loss = get_loss_function('cauchy', 0.5)

    residuals = problem.evaluate()
    np.testing.assert_allclose(residuals[:3], points[0] / [1.0, 2.0, 4.0])
    assert residuals[3:] @ residuals[3:] == pytest.approx(loss.rho(raw @ raw))

    np.testing.assert_allclose(problem.evaluate(apply_loss=False)[3:], raw)
    assert problem.cost() == pytest.approx(0.5 * residuals @ residuals)


def test_jacobian_matches_finite_differences(problem):
    x = problem.pack()
    jacobian = problem.jacobian(x).toarray()

    h = 1e-6
    numeric = np.column_stack([
        (problem.evaluate(x + h * e) - problem.evaluate(x - h * e)) / (2 * h)
        for e in np.eye(x.size)
    ])
    assert jacobian.shape == (6, 6)
    np.testing.assert_allclose(jacobian, numeric, rtol=1e-5, atol=1e-7)


def test_jacobian_skips_constant_blocks(problem, storage):
    problem.set_parameter_block_constant(storage.get_point_block(1))
    jacobian = problem.jacobian()
    assert jacobian.shape == (6, 3)


def test_threaded_evaluation_matches_serial(problem):
    x = problem.pack() * 1.1
    serial_residuals = problem.evaluate(x)
    serial_jacobian = problem.jacobian(x).toarray()

    problem.num_threads = 4
    np.testing.assert_array_equal(problem.evaluate(x), serial_residuals)
    np.testing.assert_array_equal(problem.jacobian(x).toarray(), serial_jacobian)


def test_projection_failure_handling(pinhole_camera):
    storage = ParameterStorage(num_points=1, num_cameras=1)
    storage.set_point(0, [0.0, 0.0, -10.0])
    adapter = create_camera_adapter(pinhole_camera, CameraVariant.ADJUSTED)

    problem = Problem()
    problem.add_residual_block(ReprojectionError([0.0, 0.0], [1.0, 1.0], adapter), None,
                               [storage.get_point_block(0), storage.get_camera_block(0)])

    with pytest.raises(ProjectionFailure):
        problem.evaluate()
    assert np.all(np.isnan(problem.evaluate(nan_on_failure=True)))


# Solver

def make_cameras():
    return [PinholeCamera(center=[dx, dy, 0.0], rotation=np.eye(3), focal_length=1000.0,
                          optical_center=[500.0, 400.0])
            for dx, dy in [(0.0, 0.0), (10.0, 0.0), (0.0, 10.0)]]


def point_recovery_problem(true_point):
    cameras = make_cameras()
    storage = ParameterStorage(num_points=1, num_cameras=len(cameras))
    storage.set_point(0, [1.5, 1.5, 48.0])

    problem = Problem()
    for icam, camera in enumerate(cameras):
        adapter = create_camera_adapter(camera, CameraVariant.ADJUSTED)
        observation = camera.point_to_pixel(true_point)
        camera_block = storage.get_camera_block(icam)
        problem.add_residual_block(ReprojectionError(observation, [1.0, 1.0], adapter), None,
                                   [storage.get_point_block(0), camera_block])
        problem.set_parameter_block_constant(camera_block)
    return problem, storage


def test_solver_recovers_point():
    true_point = np.array([1.0, 2.0, 50.0])
    problem, storage = point_recovery_problem(true_point)

    result = LeastSquaresSolver().optimize(problem)

    assert result.success
    assert result.status == OptimizationStatus.CONVERGED
    assert result.final_cost < result.initial_cost
    np.testing.assert_allclose(storage.points()[0], true_point, atol=1e-6)


def test_solver_reports_evaluation_limit():
    problem, _ = point_recovery_problem(np.array([1.0, 2.0, 50.0]))

    result = LeastSquaresSolver(max_iterations=1).optimize(problem)

    assert not result.success
    assert result.status == OptimizationStatus.MAX_ITERATIONS


def test_solver_recovers_focal_length_scale():
    camera = make_cameras()[0]
    true_camera = PinholeCamera(camera.center, camera.rotation, 1100.0, camera.optical_center)
    points = [np.array([x, y, 40.0 + x]) for x in (-5.0, 0.0, 5.0) for y in (-4.0, 4.0)]

    storage = ParameterStorage(num_points=len(points), num_cameras=1, distortion_sizes=[0])
    adapter = PinholeCameraAdapter(camera)
    problem = Problem()
    for ipt, point in enumerate(points):
        storage.set_point(ipt, point)
        blocks = [storage.get_point_block(ipt), storage.get_camera_block(0)] + storage.get_intrinsic_blocks(0)
        problem.add_residual_block(ReprojectionError(true_camera.point_to_pixel(point), [1.0, 1.0], adapter),
                                   get_loss_function('l2', 1.0), blocks)
        problem.set_parameter_block_constant(blocks[0])
    problem.set_parameter_block_constant(storage.get_camera_block(0))
    problem.set_parameter_block_constant(storage.get_center_block(0))

    result = LeastSquaresSolver(max_iterations=50).optimize(problem)

    assert result.success
    assert storage.get_focus_block(0).values[0] == pytest.approx(1.1, abs=1e-8)


def test_solver_rejects_empty_problem():
    result = LeastSquaresSolver().optimize(Problem())
    assert not result.success
    assert result.status == OptimizationStatus.INVALID_INPUT


def test_solver_without_free_parameters(problem, storage):
    problem.set_parameter_block_constant(storage.get_point_block(0))
    problem.set_parameter_block_constant(storage.get_point_block(1))

    result = LeastSquaresSolver().optimize(problem)

    assert result.success
    assert result.num_iterations == 0
    assert result.final_cost == result.initial_cost


def test_solver_reports_failure_at_start(pinhole_camera):
    storage = ParameterStorage(num_points=1, num_cameras=1)
    storage.set_point(0, [0.0, 0.0, -10.0])
    adapter = create_camera_adapter(pinhole_camera, CameraVariant.ADJUSTED)
    problem = Problem()
    problem.add_residual_block(ReprojectionError([0.0, 0.0], [1.0, 1.0], adapter), None,
                               [storage.get_point_block(0), storage.get_camera_block(0)])

    result = LeastSquaresSolver().optimize(problem)

    assert not result.success
    assert result.status == OptimizationStatus.NUMERICAL_ERROR
