"""
Base interface for solver adapters.

This defines the contract for components that hand an assembled bundle
adjustment problem to a nonlinear least-squares solver and report back.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, List, Callable
from dataclasses import dataclass, field
from enum import Enum
import numpy as np
from SensorBundleAdjustment.logger import get_logger

logger = get_logger("core.interfaces")


class OptimizationStatus(Enum):
    """Status codes for optimization results"""
    SUCCESS = "success"
    MAX_ITERATIONS = "max_iterations_reached"
    CONVERGED = "converged"
    DIVERGED = "diverged"
    NUMERICAL_ERROR = "numerical_error"
    INVALID_INPUT = "invalid_input"
    FAILED = "failed"


@dataclass
class OptimizationResult:
    """
    Result of a solver run.

    Attributes:
        success: Whether optimization succeeded
        status: Status code from OptimizationStatus
        optimized_params: Final free-parameter vector
        initial_cost: Cost before optimization
        final_cost: Cost after optimization
        num_iterations: Number of function evaluations performed
        residuals: Final residuals
        runtime: Optimization runtime in seconds
        metadata: Additional solver-specific information
    """
    success: bool
    status: OptimizationStatus
    optimized_params: Optional[Any] = None
    initial_cost: float = 0.0
    final_cost: float = 0.0
    num_iterations: int = 0
    residuals: Optional[np.ndarray] = None
    runtime: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        """Allow truthiness check"""
        return self.success

    def get_cost_reduction(self) -> float:
        """
        Get absolute cost reduction.

        Returns:
            float: Initial cost - final cost
        """
        return self.initial_cost - self.final_cost

    def get_relative_cost_reduction(self) -> float:
        """
        Get relative cost reduction.

        Returns:
            float: (initial - final) / initial
        """
        if self.initial_cost == 0:
            return 0.0
        return (self.initial_cost - self.final_cost) / self.initial_cost

    def log_summary(self):
        """Log optimization result summary"""
        logger.info("OPTIMIZATION RESULT")
        logger.info(f"Status: {self.status.value} (success={self.success})")
        logger.info(f"Iterations: {self.num_iterations}")
        logger.info(f"Runtime: {self.runtime:.3f}s")
        logger.info(f"Cost: initial={self.initial_cost:.6f} final={self.final_cost:.6f} "
                    f"reduction={self.get_relative_cost_reduction():.2%}")

        if self.residuals is not None and self.residuals.size:
            abs_res = np.abs(self.residuals)
            logger.info(f"Residuals: mean={np.mean(abs_res):.6f} "
                        f"median={np.median(abs_res):.6f} max={np.max(abs_res):.6f}")

        for key, value in self.metadata.items():
            if isinstance(value, float):
                logger.info(f"  {key}: {value:.6f}")
            else:
                logger.info(f"  {key}: {value}")


class BaseOptimizer(ABC):
    """
    Abstract base class for solver adapters.

    Design Principles:
    - Single Responsibility: the adapter only drives an external solver
    - Configurable: Parameters set via constructor
    - Observable: Provides callbacks for monitoring progress
    """

    def __init__(self,
                 max_iterations: int = 100,
                 tolerance: float = 1e-6,
                 verbose: bool = False,
                 **config):
        """
        Initialize optimizer with configuration.

        Args:
            max_iterations: Maximum number of iterations
            tolerance: Convergence tolerance
            verbose: Whether to log progress
            **config: Algorithm-specific configuration
        """
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self.verbose = verbose
        self.config = config

        self._iteration_callback: Optional[Callable] = None
        self._convergence_callback: Optional[Callable] = None

    @abstractmethod
    def optimize(self, *args, **kwargs) -> OptimizationResult:
        """
        Perform optimization.

        Returns:
            OptimizationResult: Optimization result with optimized parameters
        """
        pass

    @abstractmethod
    def compute_cost(self, params: Any, *args, **kwargs) -> float:
        """
        Compute optimization cost for given parameters.

        Args:
            params: Current parameter values

        Returns:
            float: Total cost
        """
        pass

    @abstractmethod
    def compute_residuals(self, params: Any, *args, **kwargs) -> np.ndarray:
        """
        Compute residuals for given parameters.

        Args:
            params: Current parameter values

        Returns:
            np.ndarray: Residuals
        """
        pass

    @abstractmethod
    def validate_input(self, *args, **kwargs) -> tuple[bool, str]:
        """
        Validate input before optimization.

        Returns:
            Tuple[bool, str]: (is_valid, error_message)
        """
        pass

    def set_iteration_callback(self, callback: Callable):
        """
        Set callback to be called after each residual evaluation.

        Args:
            callback: Function(evaluation, cost, params) -> None
        """
        self._iteration_callback = callback

    def set_convergence_callback(self, callback: Callable):
        """
        Set callback to be called when the solver returns.

        Args:
            callback: Function(result) -> None
        """
        self._convergence_callback = callback

    def _notify_iteration(self, iteration: int, cost: float, params: Any):
        """Notify iteration callback"""
        if self._iteration_callback is not None:
            self._iteration_callback(iteration, cost, params)

        if self.verbose:
            logger.info(f"Evaluation {iteration}: cost = {cost:.6f}")

    def _notify_convergence(self, result: OptimizationResult):
        """Notify convergence callback"""
        if self._convergence_callback is not None:
            self._convergence_callback(result)

    def get_algorithm_name(self) -> str:
        """
        Get name of the optimization algorithm.

        Returns:
            str: Algorithm name
        """
        return self.__class__.__name__

    def supports_robust_loss(self) -> bool:
        """
        Check if optimizer supports robust loss functions.

        Returns:
            bool: True if robust loss supported
        """
        return False

    def __repr__(self) -> str:
        return (f"{self.get_algorithm_name()}("
                f"max_iter={self.max_iterations}, "
                f"tol={self.tolerance})")
