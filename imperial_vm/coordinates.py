"""
Conversion between geographic (WGS84) coordinates and the projected frame of the model grid.

The grid corners are given in UTM eastings/northings on the NAD27 datum, so
every query point is projected into that frame before it is located in the grid.
"""

import logging
from logging import Logger
from typing import Optional

import numpy as np
from pyproj import Transformer
from pyproj.enums import TransformDirection
from pyproj.exceptions import CRSError, ProjError

from imperial_vm.constants import GEOGRAPHIC_CRS, UTM_PROJ_STRING
from imperial_vm.errors import ProjectionError, ProjectionSetupError


class ProjectionTransform:
    """
    Transformation between WGS84 longitude/latitude and UTM easting/northing.

    Parameters
    ----------
    utm_zone : int
        The UTM zone of the projected frame.
    logger : Logger, optional
        Logger instance for logging messages.

    Attributes
    ----------
    utm_zone : int
        The UTM zone of the projected frame.
    proj_string : str
        The PROJ definition of the projected frame.

    Raises
    ------
    ProjectionSetupError
        If PROJ cannot build the transformation for the zone.
    """

    def __init__(self, utm_zone: int, logger: Optional[Logger] = None):
        self.logger = (
            logger if logger is not None else Logger(name="imperial_vm.projection")
        )
        self.utm_zone = utm_zone
        self.proj_string = UTM_PROJ_STRING.format(zone=utm_zone)
        try:
            self._transformer = Transformer.from_crs(
                GEOGRAPHIC_CRS, self.proj_string, always_xy=True
            )
        except (CRSError, ProjError) as e:
            self.logger.log(
                logging.ERROR,
                f"Could not set up transformation from {GEOGRAPHIC_CRS} to {self.proj_string}: {e}",
            )
            raise ProjectionSetupError(
                f"Could not set up transformation from {GEOGRAPHIC_CRS} to UTM zone {utm_zone}: {e}"
            ) from e

    def _transform(
        self,
        a: float | np.ndarray,
        b: float | np.ndarray,
        direction: TransformDirection,
    ) -> tuple[np.ndarray, np.ndarray]:
        """Run the transformer, raising ProjectionError on failure or non-finite output."""
        a, b = np.broadcast_arrays(
            np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64)
        )
        shape = a.shape
        a = np.atleast_1d(a).ravel()
        b = np.atleast_1d(b).ravel()
        try:
            out_a, out_b = self._transformer.transform(
                a, b, direction=direction, errcheck=True
            )
        except ProjError as e:
            self.logger.log(logging.ERROR, f"Proj error: {e}")
            raise ProjectionError(f"Coordinate transform failed: {e}") from e

        out_a = np.asarray(out_a, dtype=np.float64)
        out_b = np.asarray(out_b, dtype=np.float64)
        invalid = ~(np.isfinite(out_a) & np.isfinite(out_b))
        if np.any(invalid):
            i = np.flatnonzero(invalid)[0]
            msg = f"Coordinate transform produced non-finite values for ({a[i]}, {b[i]})"
            self.logger.log(logging.ERROR, msg)
            raise ProjectionError(msg)
        return out_a.reshape(shape), out_b.reshape(shape)

    def to_projected(
        self, lon: float | np.ndarray, lat: float | np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Project geographic coordinates to easting/northing.

        Parameters
        ----------
        lon : float or np.ndarray
            Longitude(s) in degrees.
        lat : float or np.ndarray
            Latitude(s) in degrees.

        Returns
        -------
        tuple[np.ndarray, np.ndarray]
            Easting(s) and northing(s) in metres.

        Raises
        ------
        ProjectionError
            If the transformation fails for any of the points.
        """
        return self._transform(lon, lat, TransformDirection.FORWARD)

    def to_geographic(
        self, easting: float | np.ndarray, northing: float | np.ndarray
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Convert easting/northing back to geographic coordinates.

        Parameters
        ----------
        easting : float or np.ndarray
            Easting(s) in metres.
        northing : float or np.ndarray
            Northing(s) in metres.

        Returns
        -------
        tuple[np.ndarray, np.ndarray]
            Longitude(s) and latitude(s) in degrees.

        Raises
        ------
        ProjectionError
            If the transformation fails for any of the points.
        """
        return self._transform(easting, northing, TransformDirection.INVERSE)
