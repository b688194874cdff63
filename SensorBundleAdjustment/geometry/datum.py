"""
Geodetic datum: conversions between Cartesian (ECEF) and
longitude/latitude/height coordinates, plus the local North-East-Down frame.

Conversions go through pyproj. Longitude and latitude are in degrees,
heights and Cartesian coordinates in meters.
"""

from typing import Optional

import numpy as np
import pyproj

from SensorBundleAdjustment.core.exceptions import ConfigurationError


# name: (semi-major axis, semi-minor axis)
KNOWN_DATUMS = {
    'WGS84': (6378137.0, 6356752.314245),
    'D_MOON': (1737400.0, 1737400.0),
    'D_MARS': (3396190.0, 3396190.0),
}


class Datum:
    """
    Reference ellipsoid.

    Example:
        >>> datum = Datum('WGS84')
        >>> llh = datum.cartesian_to_geodetic(np.array([6378137.0, 0.0, 0.0]))
        >>> # llh == [0, 0, 0]
    """

    def __init__(self,
                 name: str = 'WGS84',
                 semi_major_axis: Optional[float] = None,
                 semi_minor_axis: Optional[float] = None):
        """
        Args:
            name: Datum name. One of KNOWN_DATUMS unless both axes are given.
            semi_major_axis: Custom semi-major axis in meters
            semi_minor_axis: Custom semi-minor axis in meters
        """
        self.name = name.upper()

        if semi_major_axis is not None and semi_minor_axis is not None:
            a, b = float(semi_major_axis), float(semi_minor_axis)
        elif self.name in KNOWN_DATUMS:
            a, b = KNOWN_DATUMS[self.name]
        else:
            raise ConfigurationError(
                f"Unknown datum '{name}'. Known: {sorted(KNOWN_DATUMS)}, "
                f"or pass semi_major_axis and semi_minor_axis"
            )
        if a <= 0 or b <= 0 or b > a:
            raise ConfigurationError(f"Invalid ellipsoid axes: a={a}, b={b}")

        self.semi_major_axis = a
        self.semi_minor_axis = b

        if self.name == 'WGS84' and semi_major_axis is None:
            # Source: ECEF - EPSG:4978, target: WGS84 geodetic 3D - EPSG:4979
            geocentric = pyproj.CRS("EPSG:4978")
            geographic = pyproj.CRS("EPSG:4979")
        else:
            geocentric = pyproj.CRS.from_dict({'proj': 'geocent', 'a': a, 'b': b, 'units': 'm'})
            geographic = pyproj.CRS.from_dict({'proj': 'longlat', 'a': a, 'b': b})

        self._to_geodetic = pyproj.Transformer.from_crs(geocentric, geographic, always_xy=True)
        self._to_cartesian = pyproj.Transformer.from_crs(geographic, geocentric, always_xy=True)

    def cartesian_to_geodetic(self, xyz: np.ndarray) -> np.ndarray:
        """
        Convert Cartesian coordinates to (lon, lat, height).

        Args:
            xyz: (3,) or (N, 3) Cartesian coordinates

        Returns:
            Same shape array of (lon [deg], lat [deg], height [m])
        """
        xyz = np.asarray(xyz, dtype=float)
        pts = np.atleast_2d(xyz)
        lon, lat, h = self._to_geodetic.transform(pts[:, 0], pts[:, 1], pts[:, 2])
        llh = np.column_stack([lon, lat, h])
        return llh[0] if xyz.ndim == 1 else llh

    def geodetic_to_cartesian(self, llh: np.ndarray) -> np.ndarray:
        """
        Convert (lon, lat, height) to Cartesian coordinates.

        Args:
            llh: (3,) or (N, 3) array of (lon [deg], lat [deg], height [m])

        Returns:
            Same shape array of Cartesian coordinates
        """
        llh = np.asarray(llh, dtype=float)
        pts = np.atleast_2d(llh)
        x, y, z = self._to_cartesian.transform(pts[:, 0], pts[:, 1], pts[:, 2])
        xyz = np.column_stack([x, y, z])
        return xyz[0] if llh.ndim == 1 else xyz

    @staticmethod
    def ecef_to_ned_matrix(llh: np.ndarray) -> np.ndarray:
        """
        Rotation from ECEF vectors to the local North-East-Down frame.

        Args:
            llh: (lon [deg], lat [deg], height) of the frame origin

        Returns:
            3x3 rotation matrix whose rows are the N, E, D axes in ECEF
        """
        lon, lat = np.radians(llh[0]), np.radians(llh[1])
        slon, clon = np.sin(lon), np.cos(lon)
        slat, clat = np.sin(lat), np.cos(lat)
        return np.array([
            [-slat * clon, -slat * slon,  clat],
            [-slon,         clon,         0.0],
            [-clat * clon, -clat * slon, -slat],
        ])

    def __repr__(self) -> str:
        return f"Datum({self.name}, a={self.semi_major_axis}, b={self.semi_minor_axis})"
