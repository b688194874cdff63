"""
Bundle Adjustment Problem

Collects residual blocks (cost function, optional robust loss, parameter
blocks) and exposes the free parameters as one flat vector for a generic
least-squares solver:

- pack() / set_parameters(): free parameter vector <-> parameter storage
- evaluate(): stacked residuals, robust losses applied
- jacobian(): sparse Jacobian of the stacked residuals

Evaluation at a trial vector never writes into parameter storage; only
set_parameters() does. Residual blocks can be evaluated on a thread pool.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np
from scipy.sparse import coo_matrix, csr_matrix

from SensorBundleAdjustment.core.exceptions import InputInvariantViolation, ProjectionFailure
from SensorBundleAdjustment.core.structures.parameter_storage import ParameterBlock
from SensorBundleAdjustment.logger import get_logger

from .cost_functions import CostFunction
from .loss_functions import RobustLoss

logger = get_logger("bundle_adjustment.problem")

BlockKey = Tuple[str, int]


@dataclass
class ResidualBlock:
    """One registered residual term."""
    cost_function: CostFunction
    loss_function: Optional[RobustLoss]
    parameter_blocks: List[ParameterBlock] = field(default_factory=list)
    row_offset: int = 0

    @property
    def num_residuals(self) -> int:
        return self.cost_function.num_residuals


class Problem:
    """
    Least-squares problem over parameter blocks.

    Example:
        >>> problem = Problem()
        >>> problem.add_residual_block(XYZError(obs, sigma), None, [storage.get_point_block(0)])
        >>> problem.set_parameter_block_constant(storage.get_point_block(1))
    """

    def __init__(self, num_threads: int = 1):
        self.num_threads = max(1, int(num_threads))
        self._residual_blocks: List[ResidualBlock] = []
        self._parameter_blocks: Dict[BlockKey, ParameterBlock] = {}
        self._constant: Set[BlockKey] = set()
        self._num_residuals = 0

    # Registration

    def add_parameter_block(self, block: ParameterBlock) -> None:
        existing = self._parameter_blocks.get(block.key)
        if existing is None:
            self._parameter_blocks[block.key] = block
        elif existing.size != block.size:
            raise InputInvariantViolation(
                f"Parameter block {block.key} registered with size {existing.size}, got {block.size}"
            )

    def add_residual_block(self,
                           cost_function: CostFunction,
                           loss_function: Optional[RobustLoss],
                           parameter_blocks: Sequence[ParameterBlock]) -> ResidualBlock:
        """
        Register a residual term.

        Args:
            cost_function: Residual function
            loss_function: Robust loss, or None for plain least squares
            parameter_blocks: Blocks in the order the cost function expects

        Raises:
            InputInvariantViolation: Block count or sizes do not match the
                                     cost function, or a block is repeated
        """
        sizes = cost_function.parameter_block_sizes()
        if len(parameter_blocks) != len(sizes):
            raise InputInvariantViolation(
                f"{cost_function.__class__.__name__} expects {len(sizes)} parameter blocks, "
                f"got {len(parameter_blocks)}"
            )
        keys = [block.key for block in parameter_blocks]
        if len(set(keys)) != len(keys):
            raise InputInvariantViolation(f"Duplicate parameter blocks in residual block: {keys}")
        for block, size in zip(parameter_blocks, sizes):
            if block.size != size:
                raise InputInvariantViolation(
                    f"Parameter block {block.key} has size {block.size}, "
                    f"{cost_function.__class__.__name__} expects {size}"
                )

        for block in parameter_blocks:
            self.add_parameter_block(block)

        residual_block = ResidualBlock(cost_function, loss_function, list(parameter_blocks),
                                       row_offset=self._num_residuals)
        self._residual_blocks.append(residual_block)
        self._num_residuals += cost_function.num_residuals
        return residual_block

    def _check_registered(self, block: ParameterBlock) -> None:
        if block.key not in self._parameter_blocks:
            raise InputInvariantViolation(f"Parameter block {block.key} is not part of the problem")

    def set_parameter_block_constant(self, block: ParameterBlock) -> None:
        self._check_registered(block)
        self._constant.add(block.key)

    def set_parameter_block_variable(self, block: ParameterBlock) -> None:
        self._check_registered(block)
        self._constant.discard(block.key)

    def is_parameter_block_constant(self, block: ParameterBlock) -> bool:
        self._check_registered(block)
        return block.key in self._constant

    # Sizes

    @property
    def num_residual_blocks(self) -> int:
        return len(self._residual_blocks)

    @property
    def num_residuals(self) -> int:
        return self._num_residuals

    @property
    def num_parameter_blocks(self) -> int:
        return len(self._parameter_blocks)

    @property
    def num_parameters(self) -> int:
        """Number of free (non-constant) parameters."""
        return sum(size for _, _, size in self._free_layout())

    def residual_blocks(self) -> List[ResidualBlock]:
        return list(self._residual_blocks)

    def parameter_blocks(self) -> List[ParameterBlock]:
        return list(self._parameter_blocks.values())

    # Parameter vector

    def _free_layout(self) -> List[Tuple[BlockKey, int, int]]:
        """(key, offset, size) of each free block, in registration order."""
        layout = []
        offset = 0
        for key, block in self._parameter_blocks.items():
            if key in self._constant or block.size == 0:
                continue
            layout.append((key, offset, block.size))
            offset += block.size
        return layout

    def pack(self) -> np.ndarray:
        """Current free parameter values as one vector."""
        layout = self._free_layout()
        if not layout:
            return np.zeros(0)
        return np.concatenate([self._parameter_blocks[key].values for key, _, _ in layout]).astype(float)

    def set_parameters(self, x: np.ndarray) -> None:
        """Write a free parameter vector back into the parameter blocks."""
        layout = self._free_layout()
        expected = sum(size for _, _, size in layout)
        if np.size(x) != expected:
            raise InputInvariantViolation(f"Parameter vector has size {np.size(x)}, expected {expected}")
        for key, offset, size in layout:
            self._parameter_blocks[key].values[:] = x[offset:offset + size]

    def _block_values(self,
                      residual_block: ResidualBlock,
                      x: Optional[np.ndarray],
                      offsets: Dict[BlockKey, int]) -> List[np.ndarray]:
        values = []
        for block in residual_block.parameter_blocks:
            if x is not None and block.key in offsets:
                start = offsets[block.key]
                values.append(np.array(x[start:start + block.size], dtype=float))
            else:
                values.append(np.array(block.values, dtype=float))
        return values

    # Evaluation

    def _map_blocks(self, func, items: Iterable) -> List:
        items = list(items)
        if self.num_threads > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.num_threads) as executor:
                return list(executor.map(func, items))
        return [func(item) for item in items]

    def evaluate(self,
                 x: Optional[np.ndarray] = None,
                 apply_loss: bool = True,
                 nan_on_failure: bool = False) -> np.ndarray:
        """
        Stacked residuals.

        Args:
            x: Free parameter vector; defaults to the stored values
            apply_loss: Rescale each block by its robust loss
            nan_on_failure: Fill a block with NaN instead of raising when
                            its point does not project

        Returns:
            Residual vector (num_residuals,)

        Raises:
            ProjectionFailure: A block failed and nan_on_failure is False
        """
        offsets = {key: offset for key, offset, _ in self._free_layout()}

        def evaluate_block(residual_block: ResidualBlock) -> np.ndarray:
            values = self._block_values(residual_block, x, offsets)
            try:
                residual = residual_block.cost_function(values)
            except ProjectionFailure:
                if not nan_on_failure:
                    raise
                return np.full(residual_block.num_residuals, np.nan)
            if apply_loss and residual_block.loss_function is not None:
                residual, _ = residual_block.loss_function.rescale(residual)
            return residual

        results = self._map_blocks(evaluate_block, self._residual_blocks)
        if not results:
            return np.zeros(0)
        return np.concatenate(results)

    def cost(self, x: Optional[np.ndarray] = None) -> float:
        """Half the sum of squared (loss-rescaled) residuals."""
        residuals = self.evaluate(x)
        return 0.5 * float(residuals @ residuals)

    def jacobian(self, x: Optional[np.ndarray] = None) -> csr_matrix:
        """
        Sparse Jacobian of evaluate() with respect to the free parameters.

        Raises:
            ProjectionFailure: A residual could not be differentiated
        """
        layout = self._free_layout()
        offsets = {key: offset for key, offset, _ in layout}
        num_cols = sum(size for _, _, size in layout)

        def differentiate(residual_block: ResidualBlock):
            values = self._block_values(residual_block, x, offsets)
            free = [block.key in offsets for block in residual_block.parameter_blocks]
            if not any(free):
                return [], [], []

            jacobians = residual_block.cost_function.jacobians(values, [not f for f in free])
            free_blocks = [(block, jac) for block, jac in zip(residual_block.parameter_blocks, jacobians)
                           if jac is not None]
            dense = np.hstack([jac for _, jac in free_blocks])

            if residual_block.loss_function is not None:
                residual = residual_block.cost_function(values)
                _, dense = residual_block.loss_function.rescale(residual, dense)

            rows, cols, data = [], [], []
            col = 0
            for block, _ in free_blocks:
                start = offsets[block.key]
                for j in range(block.size):
                    rows.append(residual_block.row_offset + np.arange(residual_block.num_residuals))
                    cols.append(np.full(residual_block.num_residuals, start + j))
                    data.append(dense[:, col + j])
                col += block.size
            return rows, cols, data

        rows, cols, data = [], [], []
        for block_rows, block_cols, block_data in self._map_blocks(differentiate, self._residual_blocks):
            rows.extend(block_rows)
            cols.extend(block_cols)
            data.extend(block_data)

        shape = (self._num_residuals, num_cols)
        if not data:
            return csr_matrix(shape)
        return coo_matrix((np.concatenate(data), (np.concatenate(rows), np.concatenate(cols))),
                          shape=shape).tocsr()

    def __repr__(self) -> str:
        return (f"Problem(residual_blocks={self.num_residual_blocks}, "
                f"residuals={self.num_residuals}, parameter_blocks={self.num_parameter_blocks}, "
                f"free_parameters={self.num_parameters})")
