"""
Query points and the material properties returned for them.

"""

from dataclasses import dataclass

import numpy as np

from imperial_vm.constants import NA


@dataclass(frozen=True)
class QueryPoint:
    """
    A point at which the model is queried.

    Attributes
    ----------
    longitude : float
        Longitude (degrees, WGS84).
    latitude : float
        Latitude (degrees, WGS84).
    depth : float
        Depth below the surface (m).
    """

    longitude: float
    latitude: float
    depth: float


@dataclass(frozen=True)
class MaterialProperties:
    """
    Material properties at a point, or a raw lattice sample.

    Every field set to NA (-1) means the point is outside the model.

    Attributes
    ----------
    vp : float
        P-wave velocity (m/s).
    vs : float
        S-wave velocity (m/s).
    rho : float
        Density (g/m^3).
    qp : float
        Not provided by this model, always NA.
    qs : float
        Not provided by this model, always NA.
    """

    vp: float = NA
    vs: float = NA
    rho: float = NA
    qp: float = NA
    qs: float = NA

    @classmethod
    def not_available(cls) -> "MaterialProperties":
        """
        Properties for a point with no data.

        Returns
        -------
        MaterialProperties
            All fields set to NA.
        """
        return cls()

    @classmethod
    def from_array(cls, values: np.ndarray) -> "MaterialProperties":
        """
        Build properties from a (vp, vs, rho) array row.

        Parameters
        ----------
        values : np.ndarray
            Array of shape (3,) indexed by VelocityTypes.

        Returns
        -------
        MaterialProperties
            The properties, with qp and qs set to NA.
        """
        vp, vs, rho = (float(v) for v in values)
        return cls(vp=vp, vs=vs, rho=rho)

    def to_array(self) -> np.ndarray:
        """
        Get the (vp, vs, rho) values as an array indexed by VelocityTypes.

        Returns
        -------
        np.ndarray
            Array of shape (3,).
        """
        return np.array([self.vp, self.vs, self.rho], dtype=np.float64)
