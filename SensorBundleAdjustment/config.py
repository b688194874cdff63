"""
Bundle adjustment configuration.

Options supplied by the surrounding driver. Defaults live on the class as
UPPERCASE attributes; keyword arguments override them case-insensitively.
"""

from typing import Optional

from SensorBundleAdjustment.algorithms.optimization.bundle_adjustment.loss_functions import LOSS_FUNCTIONS
from SensorBundleAdjustment.core.exceptions import ConfigurationError
from SensorBundleAdjustment.core.structures.parameter_storage import IntrinsicOptions
from SensorBundleAdjustment.geometry.datum import Datum


class BundleAdjustConfig:
    """Configuration for bundle adjustment problem assembly"""

    # Robust loss
    COST_FUNCTION = 'cauchy'
    ROBUST_THRESHOLD = 0.5

    # Camera drift regularizers
    CAMERA_WEIGHT = 1.0
    ROTATION_WEIGHT = 0.0
    TRANSLATION_WEIGHT = 0.0

    # Camera position uncertainty (horizontal, vertical) in meters
    CAMERA_POSITION_UNCERTAINTY = None
    CAMERA_POSITION_UNCERTAINTY_POWER = 2.0

    # Disparity consistency with a reference terrain
    MAX_DISP_ERROR = -1.0  # non-positive disables the check
    REFERENCE_TERRAIN_WEIGHT = 1.0

    # Intrinsics
    SOLVE_INTRINSICS = False
    SHARED_INTRINSICS = 'center,focus,distortion'

    # Ground control
    USE_LLH_ERROR = False
    FIX_GCP_XYZ = False
    DATUM = 'WGS84'

    def __init__(self, **config):
        """
        Args:
            **config: Overrides, e.g. cost_function='huber'

        Raises:
            ConfigurationError: Unknown option or invalid value
        """
        for key, value in config.items():
            if not hasattr(self, key.upper()) or key.startswith('_'):
                raise ConfigurationError(f"Unknown bundle adjustment option: {key}")
            setattr(self, key.upper(), value)

        self._datum: Optional[Datum] = None
        self.validate()

    def validate(self) -> None:
        if str(self.COST_FUNCTION).lower() not in LOSS_FUNCTIONS:
            raise ConfigurationError(
                f"Unknown cost function: {self.COST_FUNCTION}. Options are: {', '.join(LOSS_FUNCTIONS)}"
            )
        if self.ROBUST_THRESHOLD <= 0:
            raise ConfigurationError(f"Robust threshold must be positive, got {self.ROBUST_THRESHOLD}")
        if self.CAMERA_WEIGHT < 0 or self.ROTATION_WEIGHT < 0 or self.TRANSLATION_WEIGHT < 0:
            raise ConfigurationError("Camera, rotation and translation weights must be non-negative")
        if self.REFERENCE_TERRAIN_WEIGHT < 0:
            raise ConfigurationError(
                f"Reference terrain weight must be non-negative, got {self.REFERENCE_TERRAIN_WEIGHT}"
            )
        if self.CAMERA_POSITION_UNCERTAINTY is not None:
            uncertainty = list(self.CAMERA_POSITION_UNCERTAINTY)
            if len(uncertainty) != 2 or min(uncertainty) <= 0:
                raise ConfigurationError(
                    "Camera position uncertainty must be two positive values (horizontal, vertical), "
                    f"got {self.CAMERA_POSITION_UNCERTAINTY}"
                )
        # Parse to surface bad values early
        self.intrinsics_options

    @property
    def intrinsics_options(self) -> IntrinsicOptions:
        return IntrinsicOptions.from_string(self.SHARED_INTRINSICS)

    @property
    def datum(self) -> Datum:
        if self._datum is None or self._datum.name != str(self.DATUM).upper():
            self._datum = Datum(self.DATUM)
        return self._datum

    def __repr__(self) -> str:
        options = {k: getattr(self, k) for k in dir(self) if k.isupper()}
        return f"BundleAdjustConfig({options})"
