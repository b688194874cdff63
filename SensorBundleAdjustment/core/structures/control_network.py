"""
Control network structures.

A control network is the list of 3D points tied together by pixel
observations. Some points carry independent ground truth (GCPs) or a height
taken from a reference DEM, and are constrained directly in addition to
being observed in the images.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from SensorBundleAdjustment.core.exceptions import ConfigurationError
from SensorBundleAdjustment.logger import get_logger

logger = get_logger("structures.control_network")


class ControlPointType(Enum):
    """Kinds of control points"""
    TIE_POINT = "tie_point"
    GROUND_CONTROL = "ground_control"
    POINT_FROM_DEM = "point_from_dem"


@dataclass(frozen=True, eq=False)
class Observation:
    """
    One pixel measurement of a point in a camera.

    Attributes:
        pixel: Measured pixel (column, row)
        sigma: Per-axis pixel standard deviation
        camera_index: Index of the observing camera
        point_index: Index of the observed point
    """
    pixel: np.ndarray
    sigma: np.ndarray
    camera_index: int
    point_index: int

    def __post_init__(self):
        object.__setattr__(self, 'pixel', np.asarray(self.pixel, dtype=float).reshape(2))
        object.__setattr__(self, 'sigma', np.asarray(self.sigma, dtype=float).reshape(2))


@dataclass
class ControlPoint:
    """
    A 3D point in the control network.

    Attributes:
        position: Cartesian (ECEF) position, in meters
        sigma: Per-axis standard deviation. For GCPs constrained in
               geodetic form the axes are (lon, lat, height).
        type: Control point kind
        fixed: Keep the point's parameter block constant during the solve
        observations: Pixel observations of this point
    """
    position: np.ndarray
    sigma: np.ndarray = field(default_factory=lambda: np.ones(3))
    type: ControlPointType = ControlPointType.TIE_POINT
    fixed: bool = False
    observations: List[Observation] = field(default_factory=list)

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=float).reshape(3)
        self.sigma = np.asarray(self.sigma, dtype=float).reshape(3)
        if np.any(self.sigma <= 0):
            raise ConfigurationError(f"Control point sigma must be positive, got {self.sigma}")

    @property
    def is_ground_constraint(self) -> bool:
        return self.type in (ControlPointType.GROUND_CONTROL, ControlPointType.POINT_FROM_DEM)


class ControlNetwork:
    """Ordered collection of control points"""

    def __init__(self, points: Optional[Sequence[ControlPoint]] = None):
        self._points: List[ControlPoint] = list(points) if points is not None else []

    def add_control_point(self, point: ControlPoint) -> int:
        """Append a control point and return its index."""
        self._points.append(point)
        return len(self._points) - 1

    def __len__(self) -> int:
        return len(self._points)

    def __getitem__(self, index: int) -> ControlPoint:
        return self._points[index]

    def __iter__(self) -> Iterator[ControlPoint]:
        return iter(self._points)

    def observations(self) -> List[Observation]:
        """All pixel observations in point order."""
        return [obs for point in self._points for obs in point.observations]

    def num_observations_per_camera(self, num_cameras: int) -> np.ndarray:
        """Count pixel observations per camera."""
        counts = np.zeros(num_cameras, dtype=int)
        for obs in self.observations():
            counts[obs.camera_index] += 1
        return counts

    @classmethod
    def from_gcp_file(cls,
                      gcp_file: Union[str, Path],
                      datum,
                      image_names: Optional[Sequence[str]] = None) -> 'ControlNetwork':
        """
        Read ground control points from a whitespace separated text file.

        Each line is::

            id lat lon height sigma_lat sigma_lon sigma_height [image col row sigma_col sigma_row]...

        Lines starting with '#' are ignored. Image measurements whose image
        is not in ``image_names`` are dropped.

        Args:
            gcp_file: Path to GCP file
            datum: Datum used to convert lon/lat/height to Cartesian
            image_names: Image names in camera index order

        Returns:
            ControlNetwork with one GROUND_CONTROL point per line
        """
        gcp_file = Path(gcp_file)
        if not gcp_file.exists():
            raise FileNotFoundError(f"GCP file not found: {gcp_file}")

        with open(gcp_file, 'r') as f:
            widths = [len(line.split()) for line in f
                      if line.strip() and not line.lstrip().startswith('#')]
        if not widths:
            raise ConfigurationError(f"No control points in {gcp_file}")
        if min(widths) < 7 or any((w - 7) % 5 != 0 for w in widths):
            raise ConfigurationError(
                f"Malformed GCP file {gcp_file}: expected 7 + 5*k fields per line"
            )

        table = pd.read_csv(gcp_file, sep=r'\s+', comment='#', header=None,
                            names=list(range(max(widths))))

        camera_lookup: Dict[str, int] = {}
        if image_names is not None:
            camera_lookup = {name: i for i, name in enumerate(image_names)}

        network = cls()
        for _, row in table.iterrows():
            lat, lon, height = float(row[1]), float(row[2]), float(row[3])
            position = datum.geodetic_to_cartesian(np.array([lon, lat, height]))
            sigma = np.array([row[5], row[4], row[6]], dtype=float)
            point = ControlPoint(position=position, sigma=sigma,
                                 type=ControlPointType.GROUND_CONTROL)
            point_index = len(network)

            for col in range(7, len(row) - 4, 5):
                image = row[col]
                if pd.isna(image) or str(image) not in camera_lookup:
                    continue
                point.observations.append(Observation(
                    pixel=[row[col + 1], row[col + 2]],
                    sigma=[row[col + 3], row[col + 4]],
                    camera_index=camera_lookup[str(image)],
                    point_index=point_index,
                ))
            network.add_control_point(point)

        logger.info(f"Loaded {len(network)} ground control points from {gcp_file}")
        return network
