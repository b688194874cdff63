"""
Core data structures: control network and parameter storage.
"""

from .control_network import (
    ControlNetwork,
    ControlPoint,
    ControlPointType,
    Observation
)

from .parameter_storage import (
    IntrinsicOptions,
    ParameterBlock,
    ParameterStorage,
    NUM_POINT_PARAMS,
    NUM_CAMERA_PARAMS,
    NUM_CENTER_PARAMS,
    NUM_FOCUS_PARAMS,
    NUM_OPTICAL_BAR_EXTRA_PARAMS
)


__all__ = [
    'ControlNetwork',
    'ControlPoint',
    'ControlPointType',
    'Observation',
    'IntrinsicOptions',
    'ParameterBlock',
    'ParameterStorage',
    'NUM_POINT_PARAMS',
    'NUM_CAMERA_PARAMS',
    'NUM_CENTER_PARAMS',
    'NUM_FOCUS_PARAMS',
    'NUM_OPTICAL_BAR_EXTRA_PARAMS',
]
