"""
Robust loss functions for bundle adjustment.

A loss rho(s) is applied to the squared norm s of one residual block. With
a = threshold and b = a^2:

    trivial   rho(s) = s
    huber     rho(s) = s                     if s <= b
                       2 a sqrt(s) - b       otherwise
    cauchy    rho(s) = b log(1 + s / b)
    soft_l1   rho(s) = 2 b (sqrt(1 + s / b) - 1)
    arctan    rho(s) = a atan2(s, a)

The solver minimizes plain sums of squares, so a loss is applied by
rescaling the residual to r * sqrt(rho(s) / s), whose squared norm is
exactly rho(s).
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional, Tuple

import numpy as np

from SensorBundleAdjustment.core.exceptions import ConfigurationError


# Squared norms below this are treated as zero
MIN_SQUARED_NORM = 1e-150


class LossFunction(Enum):
    """Robust loss functions for bundle adjustment"""
    TRIVIAL = "trivial"
    HUBER = "huber"
    CAUCHY = "cauchy"
    SOFT_L1 = "soft_l1"
    ARCTAN = "arctan"


class RobustLoss(ABC):
    """Loss on the squared residual norm, parameterized by a threshold."""

    loss_type: LossFunction

    def __init__(self, threshold: float = 1.0):
        if not threshold > 0:
            raise ConfigurationError(
                f"{self.loss_type.value} loss threshold must be positive, got {threshold}"
            )
        self.threshold = float(threshold)

    @abstractmethod
    def rho(self, s: float) -> float:
        pass

    @abstractmethod
    def rho_derivative(self, s: float) -> float:
        """d rho / d s"""
        pass

    def rescale(self,
                residual: np.ndarray,
                jacobian: Optional[np.ndarray] = None) -> Tuple[np.ndarray, Optional[np.ndarray]]:
        """
        Rescale a residual block, and optionally its Jacobian, so that the
        squared norm of the result is rho(s).

        Args:
            residual: Residual vector r
            jacobian: Optional d r / d x

        Returns:
            (rescaled residual, rescaled Jacobian or None)
        """
        s = float(residual @ residual)
        if s < MIN_SQUARED_NORM:
            # rho'(0) == 1 for every loss here, and s * s would underflow
            return residual, jacobian

        rho = self.rho(s)
        weight = np.sqrt(rho / s)
        scaled = weight * residual
        if jacobian is None:
            return scaled, None

        # d/dx [r sqrt(rho/s)] = w J + r (rho' s - rho) / (s^2 w) r^T J
        coeff = (self.rho_derivative(s) * s - rho) / (s * s * weight)
        scaled_jac = weight * jacobian + coeff * np.outer(residual, residual @ jacobian)
        return scaled, scaled_jac

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(threshold={self.threshold})"


class TrivialLoss(RobustLoss):
    loss_type = LossFunction.TRIVIAL

    def __init__(self, threshold: float = 1.0):
        # Threshold is unused, kept for a uniform interface
        self.threshold = float(threshold)

    def rho(self, s):
        return s

    def rho_derivative(self, s):
        return 1.0

    def rescale(self, residual, jacobian=None):
        return residual, jacobian


class HuberLoss(RobustLoss):
    loss_type = LossFunction.HUBER

    def rho(self, s):
        b = self.threshold ** 2
        if s <= b:
            return s
        return 2.0 * self.threshold * np.sqrt(s) - b

    def rho_derivative(self, s):
        if s <= self.threshold ** 2:
            return 1.0
        return self.threshold / np.sqrt(s)


class CauchyLoss(RobustLoss):
    loss_type = LossFunction.CAUCHY

    def rho(self, s):
        b = self.threshold ** 2
        return b * np.log1p(s / b)

    def rho_derivative(self, s):
        return 1.0 / (1.0 + s / self.threshold ** 2)


class SoftLOneLoss(RobustLoss):
    loss_type = LossFunction.SOFT_L1

    def rho(self, s):
        b = self.threshold ** 2
        return 2.0 * b * (np.sqrt(1.0 + s / b) - 1.0)

    def rho_derivative(self, s):
        return 1.0 / np.sqrt(1.0 + s / self.threshold ** 2)


class ArctanLoss(RobustLoss):
    loss_type = LossFunction.ARCTAN

    def rho(self, s):
        return self.threshold * np.arctan2(s, self.threshold)

    def rho_derivative(self, s):
        return 1.0 / (1.0 + (s / self.threshold) ** 2)


LOSS_FUNCTIONS = {
    'l2': TrivialLoss,
    'trivial': TrivialLoss,
    'none': TrivialLoss,
    'huber': HuberLoss,
    'cauchy': CauchyLoss,
    'l1': SoftLOneLoss,
    'soft_l1': SoftLOneLoss,
    'arctan': ArctanLoss,
}


def get_loss_function(cost_function: str, threshold: float) -> RobustLoss:
    """
    Select a robust loss by name.

    Args:
        cost_function: One of LOSS_FUNCTIONS (case-insensitive)
        threshold: Loss threshold

    Returns:
        RobustLoss with the given threshold

    Raises:
        ConfigurationError: Unknown name or non-positive threshold
    """
    name = str(cost_function).strip().lower()
    if name not in LOSS_FUNCTIONS:
        raise ConfigurationError(
            f"Unknown cost function: {cost_function}. Options are: {', '.join(LOSS_FUNCTIONS)}"
        )
    return LOSS_FUNCTIONS[name](threshold)
