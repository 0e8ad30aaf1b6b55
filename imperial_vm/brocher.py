"""
Density and S-wave velocity derived from P-wave velocity.

The polynomial kernels work in km/s and g/cm^3, like the empirical relations
they implement; `calculate_density` and `calculate_vs` take and return the
SI-flavoured units used by the model (m/s and g/m^3).

References
----------
Brocher, T. M. (2005). Empirical relations between elastic wavespeeds and
density in the Earth's crust. https://pubs.usgs.gov/of/2005/1317/of2005-1317.pdf
"""

import numba
import numpy as np

MIN_DENSITY = 1.0  # g/cm^3


@numba.jit(nopython=True)
def rho_from_vp_nafe_drake(vp: float | np.ndarray) -> float | np.ndarray:
    """
    Calculate density given P-wave velocity using the Nafe-Drake curve (Brocher 2005, eqn. 6).

    Parameters
    ----------
    vp : float or np.ndarray
        Primary wave velocity (km/s).

    Returns
    -------
    float or np.ndarray
        Density (g/cm^3).
    """
    return (
        1.6612 * vp
        - 0.4721 * vp**2
        + 0.0671 * vp**3
        - 0.0043 * vp**4
        + 0.000106 * vp**5
    )


@numba.jit(nopython=True)
def vs_from_vp_brocher(vp: float | np.ndarray) -> float | np.ndarray:
    """
    Calculate S-wave velocity given P-wave velocity using the Brocher correlation (eqn. 1).

    Valid for 1.5 < vp < 8 km/s; values outside that range are extrapolated.

    Parameters
    ----------
    vp : float or np.ndarray
        Primary wave velocity (km/s).

    Returns
    -------
    float or np.ndarray
        Secondary wave velocity (km/s).
    """
    return 0.7858 - 1.2344 * vp + 0.7949 * vp**2 - 0.1238 * vp**3 + 0.0064 * vp**4


def calculate_density(vp: float | np.ndarray) -> float | np.ndarray:
    """
    Calculate density from P-wave velocity, never less than 1 g/cm^3.

    Parameters
    ----------
    vp : float or np.ndarray
        P-wave velocity (m/s).

    Returns
    -------
    float or np.ndarray
        Density (g/m^3).
    """
    if np.ndim(vp) == 0:
        return max(rho_from_vp_nafe_drake(float(vp) * 0.001), MIN_DENSITY) * 1000.0
    vp_kms = np.asarray(vp, dtype=np.float64) * 0.001
    return np.maximum(rho_from_vp_nafe_drake(vp_kms), MIN_DENSITY) * 1000.0


def calculate_vs(vp: float | np.ndarray) -> float | np.ndarray:
    """
    Calculate S-wave velocity from P-wave velocity.

    Parameters
    ----------
    vp : float or np.ndarray
        P-wave velocity (m/s).

    Returns
    -------
    float or np.ndarray
        S-wave velocity (m/s).
    """
    if np.ndim(vp) == 0:
        return vs_from_vp_brocher(float(vp) * 0.001) * 1000.0
    return vs_from_vp_brocher(np.asarray(vp, dtype=np.float64) * 0.001) * 1000.0
