"""
Tests for numerical Jacobians.
"""

import numpy as np
import pytest

from SensorBundleAdjustment.algorithms.optimization.bundle_adjustment import (
    NumericDiffMethod,
    numeric_jacobians
)


def residual(blocks):
    x, y = blocks
    return np.array([np.sin(x[0]) * y[0], x[1] ** 2 + np.exp(y[0]), x[0] * x[1] * y[0]])


def analytic(blocks):
    x, y = blocks
    jac_x = np.array([
        [np.cos(x[0]) * y[0], 0.0],
        [0.0, 2 * x[1]],
        [x[1] * y[0], x[0] * y[0]],
    ])
    jac_y = np.array([[np.sin(x[0])], [np.exp(y[0])], [x[0] * x[1]]])
    return [jac_x, jac_y]


BLOCKS = [np.array([0.7, -1.3]), np.array([0.4])]


@pytest.mark.parametrize("method, rtol", [
    (NumericDiffMethod.CENTRAL, 1e-6),
    (NumericDiffMethod.RIDDERS, 1e-8),
])
def test_jacobians_match_analytic(method, rtol):
    numeric = numeric_jacobians(residual, BLOCKS, method)
    for num, exact in zip(numeric, analytic(BLOCKS)):
        np.testing.assert_allclose(num, exact, rtol=rtol, atol=1e-9)


def test_constant_blocks_are_skipped():
    jacobians = numeric_jacobians(residual, BLOCKS, constant_blocks=[True, False])
    assert jacobians[0] is None
    assert jacobians[1].shape == (3, 1)


def test_inputs_are_not_modified():
    blocks = [b.copy() for b in BLOCKS]
    numeric_jacobians(residual, blocks, NumericDiffMethod.RIDDERS)
    for block, original in zip(blocks, BLOCKS):
        np.testing.assert_array_equal(block, original)


def test_ridders_handles_steep_functions():
    def steep(blocks):
        return np.array([(blocks[0][0] / 0.05) ** 4])

    x = np.array([0.08])
    jac, = numeric_jacobians(steep, [x], NumericDiffMethod.RIDDERS)
    expected = 4 * x[0] ** 3 / 0.05 ** 4
    assert jac[0, 0] == pytest.approx(expected, rel=1e-8)
