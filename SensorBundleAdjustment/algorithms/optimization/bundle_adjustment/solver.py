"""
Least-squares solver adapter.

Hands an assembled Problem to scipy.optimize.least_squares (trust region
reflective, sparse Jacobian) and writes the solution back into the
parameter storage.
"""

import time
from typing import Optional, Tuple

import numpy as np
from scipy.optimize import least_squares

from SensorBundleAdjustment.core.exceptions import BundleAdjustmentError, ProjectionFailure
from SensorBundleAdjustment.core.interfaces.base_optimizer import (
    BaseOptimizer,
    OptimizationResult,
    OptimizationStatus
)
from SensorBundleAdjustment.logger import get_logger

from .problem import Problem

logger = get_logger("bundle_adjustment.solver")


class LeastSquaresSolverConfig:
    """Configuration for the least-squares solver"""

    # Optimization parameters
    MAX_ITERATIONS = 100  # function evaluations
    FUNCTION_TOLERANCE = 1e-8
    GRADIENT_TOLERANCE = 1e-8
    PARAMETER_TOLERANCE = 1e-8

    METHOD = 'trf'
    NUM_THREADS = 1


# scipy least_squares status codes
_SCIPY_STATUS = {
    -1: OptimizationStatus.INVALID_INPUT,
    0: OptimizationStatus.MAX_ITERATIONS,
    1: OptimizationStatus.CONVERGED,
    2: OptimizationStatus.CONVERGED,
    3: OptimizationStatus.CONVERGED,
    4: OptimizationStatus.CONVERGED,
}


class LeastSquaresSolver(BaseOptimizer):
    """
    Minimizes a Problem with scipy's trust region reflective method.

    Residual blocks whose point fails to project at a trial step evaluate
    to NaN, which makes the trust region shrink and retry. A failure at the
    starting point or while differentiating ends the run.
    """

    def __init__(self, **config):
        """
        Args:
            **config: Configuration overrides, e.g. max_iterations=50
        """
        super().__init__(**config)
        self.config = LeastSquaresSolverConfig()

        # Override config
        for key, value in config.items():
            if hasattr(self.config, key.upper()):
                setattr(self.config, key.upper(), value)

        self.max_iterations = self.config.MAX_ITERATIONS
        self.tolerance = self.config.FUNCTION_TOLERANCE
        self._num_evaluations = 0

    def get_algorithm_name(self) -> str:
        return "LeastSquaresSolver"

    def supports_robust_loss(self) -> bool:
        return True

    def validate_input(self, problem: Problem) -> Tuple[bool, str]:
        if problem.num_residual_blocks == 0:
            return False, "Problem has no residual blocks"
        if self.config.METHOD not in ('trf', 'dogbox'):
            return False, f"Method {self.config.METHOD} does not support sparse Jacobians"
        return True, ""

    def compute_residuals(self, params: np.ndarray, problem: Problem) -> np.ndarray:
        residuals = problem.evaluate(params, nan_on_failure=True)
        self._num_evaluations += 1
        if self._iteration_callback is not None or self.verbose:
            cost = 0.5 * float(residuals @ residuals)
            self._notify_iteration(self._num_evaluations, cost, params)
        return residuals

    def compute_cost(self, params: np.ndarray, problem: Problem) -> float:
        return problem.cost(params)

    def optimize(self, problem: Problem, num_threads: Optional[int] = None) -> OptimizationResult:
        """
        Solve the problem and write the result into its parameter blocks.

        Args:
            problem: Assembled problem
            num_threads: Threads for residual and Jacobian evaluation

        Returns:
            OptimizationResult; optimized_params holds the free parameter vector
        """
        start_time = time.time()

        is_valid, message = self.validate_input(problem)
        if not is_valid:
            logger.error(f"Invalid problem: {message}")
            return OptimizationResult(
                success=False,
                status=OptimizationStatus.INVALID_INPUT,
                metadata={'error': message}
            )

        problem.num_threads = max(1, int(num_threads or self.config.NUM_THREADS))
        x0 = problem.pack()

        logger.info(f"Solving {problem}")

        try:
            initial_residuals = problem.evaluate(x0)
        except ProjectionFailure as e:
            logger.error(f"Residuals cannot be evaluated at the starting point: {e}")
            return OptimizationResult(
                success=False,
                status=OptimizationStatus.NUMERICAL_ERROR,
                runtime=time.time() - start_time,
                metadata={'error': str(e)}
            )
        initial_cost = 0.5 * float(initial_residuals @ initial_residuals)

        if x0.size == 0:
            logger.info("No free parameters, nothing to optimize")
            return OptimizationResult(
                success=True,
                status=OptimizationStatus.SUCCESS,
                optimized_params=x0,
                initial_cost=initial_cost,
                final_cost=initial_cost,
                residuals=initial_residuals,
                runtime=time.time() - start_time
            )

        self._num_evaluations = 0
        try:
            result = least_squares(
                fun=self.compute_residuals,
                x0=x0,
                jac=lambda x, p: p.jacobian(x),
                args=(problem,),
                method=self.config.METHOD,
                tr_solver='lsmr',
                max_nfev=self.config.MAX_ITERATIONS,
                ftol=self.config.FUNCTION_TOLERANCE,
                gtol=self.config.GRADIENT_TOLERANCE,
                xtol=self.config.PARAMETER_TOLERANCE,
                verbose=2 if self.verbose else 0
            )
        except ProjectionFailure as e:
            logger.error(f"Jacobian evaluation failed: {e}")
            return OptimizationResult(
                success=False,
                status=OptimizationStatus.NUMERICAL_ERROR,
                initial_cost=initial_cost,
                runtime=time.time() - start_time,
                metadata={'error': str(e)}
            )
        except (BundleAdjustmentError, ValueError) as e:
            logger.error(f"Least squares failed: {e}")
            return OptimizationResult(
                success=False,
                status=OptimizationStatus.FAILED,
                initial_cost=initial_cost,
                runtime=time.time() - start_time,
                metadata={'error': str(e)}
            )

        problem.set_parameters(result.x)
        final_residuals = problem.evaluate()
        final_cost = 0.5 * float(final_residuals @ final_residuals)

        status = _SCIPY_STATUS.get(result.status, OptimizationStatus.FAILED)
        if status == OptimizationStatus.MAX_ITERATIONS:
            logger.warning("Reached maximum number of function evaluations")

        optimization_result = OptimizationResult(
            success=result.status > 0,
            status=status,
            optimized_params=result.x,
            initial_cost=initial_cost,
            final_cost=final_cost,
            num_iterations=result.nfev,
            residuals=final_residuals,
            runtime=time.time() - start_time,
            metadata={
                'algorithm': self.get_algorithm_name(),
                'message': result.message,
                'num_residual_blocks': problem.num_residual_blocks,
                'num_parameters': int(x0.size),
                'num_jacobian_evaluations': result.njev,
            }
        )
        optimization_result.log_summary()
        self._notify_convergence(optimization_result)
        return optimization_result
