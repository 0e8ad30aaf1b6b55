"""
Interpolation functions for the velocity model.

The functions work on property values of any shape: a scalar, a (vp, vs, rho)
row, or an (n, 3) batch of rows. For a batch, the fractions must broadcast
against the rows, eg. shape (n, 1).

"""

import numpy as np

from imperial_vm.properties import MaterialProperties


def linear_interpolation(
    percent: float | np.ndarray, x0: float | np.ndarray, x1: float | np.ndarray
) -> float | np.ndarray:
    """
    Linearly interpolate between the values at two points.

    Parameters
    ----------
    percent : float or np.ndarray
        Fraction of the way from x0 to x1, nominally in [0, 1].
    x0 : float or np.ndarray
        Value(s) at the first point.
    x1 : float or np.ndarray
        Value(s) at the second point.

    Returns
    -------
    float or np.ndarray
        The interpolated value(s).
    """
    return (1 - percent) * x0 + percent * x1


def bi_linear_interpolation(
    x_percent: float | np.ndarray,
    y_percent: float | np.ndarray,
    four_points: np.ndarray,
) -> np.ndarray:
    """
    Bilinearly interpolate a plane of four points.

    Parameters
    ----------
    x_percent, y_percent : float or np.ndarray
        Fractions along X and Y.
    four_points : np.ndarray
        Values at the origin, origin + 1x, origin + 1y and origin + 1x + 1y,
        stacked along the first axis.

    Returns
    -------
    np.ndarray
        The interpolated value(s).
    """
    lower = linear_interpolation(x_percent, four_points[0], four_points[1])
    upper = linear_interpolation(x_percent, four_points[2], four_points[3])
    return linear_interpolation(y_percent, lower, upper)


def tri_linear_interpolation(
    x_percent: float | np.ndarray,
    y_percent: float | np.ndarray,
    z_percent: float | np.ndarray,
    eight_points: np.ndarray,
) -> np.ndarray:
    """
    Trilinearly interpolate a cube of eight points.

    Parameters
    ----------
    x_percent, y_percent, z_percent : float or np.ndarray
        Fractions along X, Y and Z.
    eight_points : np.ndarray
        The top plane (four points ordered as for `bi_linear_interpolation`)
        followed by the bottom plane, stacked along the first axis.

    Returns
    -------
    np.ndarray
        The interpolated value(s).
    """
    top = bi_linear_interpolation(x_percent, y_percent, eight_points[:4])
    bottom = bi_linear_interpolation(x_percent, y_percent, eight_points[4:])
    return linear_interpolation(z_percent, top, bottom)


def interpolate_properties(
    x0: MaterialProperties, x1: MaterialProperties, percent: float
) -> MaterialProperties:
    """
    Linearly interpolate two property records; qp and qs stay NA.

    Record-level form of `linear_interpolation` for callers working with
    single points. `VelocityModel` applies the array kernels to whole batches.

    Parameters
    ----------
    x0, x1 : MaterialProperties
        Properties at the two points.
    percent : float
        Fraction of the way from x0 to x1.

    Returns
    -------
    MaterialProperties
        The interpolated properties.
    """
    return MaterialProperties.from_array(
        linear_interpolation(percent, x0.to_array(), x1.to_array())
    )


def bi_linear_interpolate_properties(
    x_percent: float, y_percent: float, four_points: list[MaterialProperties]
) -> MaterialProperties:
    """
    Bilinearly interpolate four property records.

    Record-level form of `bi_linear_interpolation`; the model itself
    interpolates whole batches with the array kernel.

    Parameters
    ----------
    x_percent, y_percent : float
        Fractions along X and Y.
    four_points : list[MaterialProperties]
        Origin, origin + 1x, origin + 1y, origin + 1x + 1y.

    Returns
    -------
    MaterialProperties
        The interpolated properties.
    """
    values = np.stack([p.to_array() for p in four_points])
    return MaterialProperties.from_array(
        bi_linear_interpolation(x_percent, y_percent, values)
    )


def tri_linear_interpolate_properties(
    x_percent: float,
    y_percent: float,
    z_percent: float,
    eight_points: list[MaterialProperties],
) -> MaterialProperties:
    """
    Trilinearly interpolate eight property records.

    Record-level form of `tri_linear_interpolation`; the model itself
    interpolates whole batches with the array kernel.

    Parameters
    ----------
    x_percent, y_percent, z_percent : float
        Fractions along X, Y and Z.
    eight_points : list[MaterialProperties]
        Top plane then bottom plane, each ordered as for
        `bi_linear_interpolate_properties`.

    Returns
    -------
    MaterialProperties
        The interpolated properties.
    """
    values = np.stack([p.to_array() for p in eight_points])
    return MaterialProperties.from_array(
        tri_linear_interpolation(x_percent, y_percent, z_percent, values)
    )
