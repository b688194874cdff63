"""
Numerical Jacobians of residual functions with respect to parameter blocks.

Two schemes:
- CENTRAL: one central difference per parameter
- RIDDERS: Ridders' polynomial extrapolation of central differences with
  shrinking steps. More evaluations, but stable for steep residuals.

Perturbations are applied to private copies of the block values; the
caller's arrays are never modified.
"""

from enum import Enum
from typing import Callable, List, Optional, Sequence

import numpy as np


class NumericDiffMethod(Enum):
    """Numerical differentiation schemes"""
    CENTRAL = "central"
    RIDDERS = "ridders"


# Relative step for central differences
CENTRAL_RELATIVE_STEP = 1e-6

# Ridders' extrapolation
RIDDERS_RELATIVE_STEP = 1e-2
RIDDERS_STEP_SHRINK = 2.0
RIDDERS_MAX_EXTRAPOLATIONS = 10
RIDDERS_SAFE = 2.0


ResidualFunc = Callable[[List[np.ndarray]], np.ndarray]


def _central(func: ResidualFunc, blocks: List[np.ndarray],
             block_index: int, param_index: int, step: float) -> np.ndarray:
    plus = [b.copy() for b in blocks]
    minus = [b.copy() for b in blocks]
    plus[block_index][param_index] += step
    minus[block_index][param_index] -= step
    return (func(plus) - func(minus)) / (2.0 * step)


def _ridders(func: ResidualFunc, blocks: List[np.ndarray],
             block_index: int, param_index: int) -> np.ndarray:
    x = blocks[block_index][param_index]
    step = RIDDERS_RELATIVE_STEP * max(abs(x), 1.0)
    shrink_sq = RIDDERS_STEP_SHRINK ** 2

    # previous[j]: j-th order extrapolation at the previous step size
    previous = [_central(func, blocks, block_index, param_index, step)]
    best = previous[0]
    error = np.full(best.shape, np.inf)

    for i in range(1, RIDDERS_MAX_EXTRAPOLATIONS):
        step /= RIDDERS_STEP_SHRINK
        current = [_central(func, blocks, block_index, param_index, step)]
        factor = shrink_sq
        for j in range(1, i + 1):
            current.append((current[j - 1] * factor - previous[j - 1]) / (factor - 1.0))
            factor *= shrink_sq
            candidate_error = np.maximum(np.abs(current[j] - current[j - 1]),
                                         np.abs(current[j] - previous[j - 1]))
            improved = candidate_error <= error
            best = np.where(improved, current[j], best)
            error = np.where(improved, candidate_error, error)

        # Higher order is getting worse, stop early
        if np.all(np.abs(current[i] - previous[i - 1]) >= RIDDERS_SAFE * error):
            break
        previous = current

    return best


def numeric_jacobians(func: ResidualFunc,
                      parameter_blocks: Sequence[np.ndarray],
                      method: NumericDiffMethod = NumericDiffMethod.CENTRAL,
                      constant_blocks: Optional[Sequence[bool]] = None) -> List[Optional[np.ndarray]]:
    """
    Jacobian of func with respect to each parameter block.

    Args:
        func: Maps a list of block values to a residual vector
        parameter_blocks: Current block values
        method: Differentiation scheme
        constant_blocks: Optional flags; no Jacobian is computed for
                         flagged blocks

    Returns:
        List with a (num_residuals, block_size) matrix per block, or None
        for constant blocks
    """
    blocks = [np.array(b, dtype=float).reshape(-1) for b in parameter_blocks]
    num_residuals = np.size(func(blocks))

    jacobians = []
    for k, block in enumerate(blocks):
        if constant_blocks is not None and constant_blocks[k]:
            jacobians.append(None)
            continue

        jac = np.zeros((num_residuals, block.size))
        for j in range(block.size):
            if method == NumericDiffMethod.RIDDERS:
                jac[:, j] = _ridders(func, blocks, k, j)
            else:
                step = CENTRAL_RELATIVE_STEP * max(abs(block[j]), 1.0)
                jac[:, j] = _central(func, blocks, k, j, step)
        jacobians.append(jac)

    return jacobians
