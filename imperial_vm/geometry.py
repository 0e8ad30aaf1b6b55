"""
Geometry of the model grid.

The grid is a rectangle in the projected (UTM) frame that may be rotated with
respect to north. To locate a point we translate it so the bottom-left corner
is at (0 m, 0 m) and rotate it by the angle of the box, so that the point lies
somewhere between (0, 0) and (total_width_m, total_height_m). How far along
the X and Y axes it lies determines which lattice points are used for the
interpolation.
"""

import numpy as np

from imperial_vm.config import GridConfiguration
from imperial_vm.constants import LAYER_THICKNESS_M


def c_round(values: np.ndarray) -> np.ndarray:
    """
    Round half away from zero.

    numpy (like Python's round()) rounds to the nearest even number, eg. 0.5 -> 0,
    1.5 -> 2, 2.5 -> 2. Lattice indices must snap 0.5 -> 1, as C's round() does.

    Parameters
    ----------
    values : np.ndarray
        Values to round.

    Returns
    -------
    np.ndarray
        Rounded values (float dtype).
    """
    values = np.asarray(values, dtype=np.float64)
    return np.sign(values) * np.floor(np.abs(values) + 0.5)


class GridLocation:
    """
    Position of one or more points within the grid.

    Index arrays hold integral values in a float dtype so that points far
    outside the grid can be compared without integer overflow; they are cast
    by the caller once the points are known to be in the domain.

    Parameters
    ----------
    x, y : np.ndarray
        Rotated grid-local coordinates (m).
    x_index, y_index, z_index : np.ndarray
        Lattice indices selected for each point.
    x_percent, y_percent, z_percent : np.ndarray
        Fractional offsets used as interpolation weights.
    """

    def __init__(
        self,
        x: np.ndarray,
        y: np.ndarray,
        x_index: np.ndarray,
        y_index: np.ndarray,
        z_index: np.ndarray,
        x_percent: np.ndarray,
        y_percent: np.ndarray,
        z_percent: np.ndarray,
    ):
        self.x = x
        self.y = y
        self.x_index = x_index
        self.y_index = y_index
        self.z_index = z_index
        self.x_percent = x_percent
        self.y_percent = y_percent
        self.z_percent = z_percent


class GridGeometry:
    """
    Rotation, extents and spacing of the grid, derived once from the configuration.

    Parameters
    ----------
    config : GridConfiguration
        The model configuration.

    Attributes
    ----------
    origin_e, origin_n : float
        Easting/northing of the bottom-left corner (m).
    rotation_angle : float
        Angle of the left edge of the box from north (radians).
    cos_rotation_angle, sin_rotation_angle : float
        Cached cosine and sine of the rotation angle.
    total_width_m : float
        Length of the top edge of the box (m).
    total_height_m : float
        Length of the left edge of the box (m).
    delta_lon, delta_lat : float
        Spacing used to select the nearest lattice index along X and Y (m).
    x_interval, y_interval : float
        Spacing used to compute the interpolation fractions along X and Y (m).
    depth_interval : float
        Vertical spacing used to compute the interpolation fraction along Z (m).
    """

    def __init__(self, config: GridConfiguration):
        self.origin_e = config.bottom_left_corner_e
        self.origin_n = config.bottom_left_corner_n

        north_height_m = config.top_left_corner_n - config.bottom_left_corner_n
        east_width_m = config.top_left_corner_e - config.bottom_left_corner_e
        with np.errstate(divide="ignore"):
            self.rotation_angle = float(
                np.arctan(np.float64(east_width_m) / north_height_m)
            )
        self.cos_rotation_angle = float(np.cos(self.rotation_angle))
        self.sin_rotation_angle = float(np.sin(self.rotation_angle))

        self.total_height_m = float(np.hypot(north_height_m, east_width_m))
        self.total_width_m = float(
            np.hypot(
                config.top_right_corner_n - config.top_left_corner_n,
                config.top_right_corner_e - config.top_left_corner_e,
            )
        )

        # Index spacing runs along the bottom-left to top-right diagonal.
        diagonal_e = config.top_right_corner_e - config.bottom_left_corner_e
        diagonal_n = config.top_right_corner_n - config.bottom_left_corner_n
        self.delta_lon = diagonal_e / (config.nx - 1) if config.nx > 1 else diagonal_e
        self.delta_lat = diagonal_n / (config.ny - 1) if config.ny > 1 else diagonal_n

        self.x_interval = (
            self.total_width_m / (config.nx - 1) if config.nx > 1 else self.total_width_m
        )
        self.y_interval = (
            self.total_height_m / (config.ny - 1)
            if config.ny > 1
            else self.total_height_m
        )
        self.depth_interval = config.depth_interval

    @classmethod
    def from_configuration(cls, config: GridConfiguration) -> "GridGeometry":
        """
        Derive the geometry of a configured grid.

        Parameters
        ----------
        config : GridConfiguration
            The model configuration.

        Returns
        -------
        GridGeometry
            The grid geometry.
        """
        return cls(config)

    def to_grid_frame(
        self, easting: np.ndarray, northing: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """
        Translate projected coordinates to the grid origin and rotate them onto the grid axes.

        Parameters
        ----------
        easting, northing : np.ndarray
            Projected coordinates (m).

        Returns
        -------
        u, v : np.ndarray
            Coordinates relative to the bottom-left corner (m).
        x, y : np.ndarray
            Coordinates along the grid axes (m).
        """
        u = np.asarray(easting, dtype=np.float64) - self.origin_e
        v = np.asarray(northing, dtype=np.float64) - self.origin_n
        x = self.cos_rotation_angle * u - self.sin_rotation_angle * v
        y = self.sin_rotation_angle * u + self.cos_rotation_angle * v
        return u, v, x, y

    def locate(
        self, easting: np.ndarray, northing: np.ndarray, depth: np.ndarray
    ) -> GridLocation:
        """
        Find the lattice indices and interpolation fractions of points.

        X and Y indices snap to the nearest lattice node, while the Z index
        truncates the depth to 1 km layers whatever the configured depth
        interval. The fractions are taken from the translated (not rotated)
        coordinates and carry the sign of their dividend, like C's fmod().

        Parameters
        ----------
        easting, northing : np.ndarray
            Projected coordinates (m).
        depth : np.ndarray
            Depths below the surface (m).

        Returns
        -------
        GridLocation
            Indices and fractions for every point.
        """
        depth = np.asarray(depth, dtype=np.float64)
        u, v, x, y = self.to_grid_frame(easting, northing)

        with np.errstate(invalid="ignore", divide="ignore"):
            y_index = c_round(y / self.delta_lat)
            x_index = c_round(x / self.delta_lon)
            z_index = np.trunc(depth / LAYER_THICKNESS_M)

            x_percent = np.fmod(u, self.x_interval) / self.x_interval
            y_percent = np.fmod(v, self.y_interval) / self.y_interval
            z_percent = np.fmod(depth, self.depth_interval) / self.depth_interval

        return GridLocation(
            x, y, x_index, y_index, z_index, x_percent, y_percent, z_percent
        )
