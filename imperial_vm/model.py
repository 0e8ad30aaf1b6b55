"""
Imperial Valley Velocity Model.

This module provides the model handle used by a host framework to load the
LSU Imperial Valley velocity model and query it. Loading reads the
configuration, the P-wave velocity lattice and derives the grid geometry and
projection once; every query then runs the same pipeline per point:

1. Points above the surface (negative depth) get NA for every property.
2. The point is projected to UTM and located in the rotated grid.
3. Points outside the grid (horizontally, or deeper than the model) get NA.
4. The P-wave velocity is trilinearly interpolated from the surrounding
   lattice points (bilinearly on the bottom boundary plane), or read from the
   nearest lattice point when interpolation is off.
5. Density and S-wave velocity are derived from the P-wave velocity.

Points are independent, so the pipeline is run on whole batches with numpy.
"""

import logging
from logging import Logger
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from imperial_vm.brocher import calculate_density, calculate_vs
from imperial_vm.config import GridConfiguration, read_configuration
from imperial_vm.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_MODEL_LABEL,
    MODEL_VERSION,
    NA,
    StorageStatus,
    VelocityTypes,
)
from imperial_vm.coordinates import ProjectionTransform
from imperial_vm.geometry import GridGeometry
from imperial_vm.grid_store import GridStore, load_grid_store
from imperial_vm.interpolate import bi_linear_interpolation, tri_linear_interpolation
from imperial_vm.properties import MaterialProperties, QueryPoint


def model_data_dir(install_dir: Path, model_label: str) -> Path:
    """
    Get the data directory of a model installed under a host install directory.

    Parameters
    ----------
    install_dir : Path
        The directory in which the host framework is installed.
    model_label : str
        The label the model is installed under.

    Returns
    -------
    Path
        ``<install_dir>/model/<model_label>/data``.
    """
    return Path(install_dir) / "model" / model_label / "data"


class VelocityModel:
    """
    A loaded Imperial Valley velocity model, ready for queries.

    Use `VelocityModel.initialize` to load a model from a host install
    directory. The configuration, geometry and lattice are read-only once
    loaded; `finalize` releases the lattice after which the model can no
    longer be queried.

    Parameters
    ----------
    configuration : GridConfiguration
        The model configuration.
    store : GridStore
        The P-wave velocity lattice.
    projection : ProjectionTransform
        Transformation from geographic to the grid's projected frame.
    config_path : Path, optional
        Path of the configuration file the model was loaded from.
    logger : Logger, optional
        Logger instance for logging messages.

    Attributes
    ----------
    configuration : GridConfiguration
        The model configuration.
    geometry : GridGeometry
        Rotation, extents and spacing of the grid.
    store : GridStore or None
        The lattice; None once the model has been finalized.
    projection : ProjectionTransform
        Transformation from geographic to the grid's projected frame.
    config_path : Path or None
        Path of the configuration file.
    logger : Logger
        Logger instance for logging messages.
    """

    def __init__(
        self,
        configuration: GridConfiguration,
        store: GridStore,
        projection: ProjectionTransform,
        config_path: Optional[Path] = None,
        logger: Optional[Logger] = None,
    ):
        self.logger = (
            logger if logger is not None else Logger(name="imperial_vm.model")
        )
        self.configuration = configuration
        self.geometry = GridGeometry.from_configuration(configuration)
        self.store: Optional[GridStore] = store
        self.projection = projection
        self.config_path = config_path

    @classmethod
    def initialize(
        cls,
        install_dir: Path,
        model_label: str = DEFAULT_MODEL_LABEL,
        logger: Optional[Logger] = None,
        in_memory: bool = True,
    ) -> "VelocityModel":
        """
        Load a model installed under a host install directory.

        Parameters
        ----------
        install_dir : Path
            The directory in which the host framework is installed.
        model_label : str, optional
            The label the model is installed under.
        logger : Logger, optional
            Logger instance for logging messages.
        in_memory : bool, optional
            Read the lattice into memory (default). If False, lattice points
            are read from the file on every lookup.

        Returns
        -------
        VelocityModel
            The loaded model.

        Raises
        ------
        ConfigurationError
            If the configuration file is missing or incomplete.
        StorageError
            If the lattice file is missing or unreadable.
        ProjectionSetupError
            If the projection for the configured zone cannot be constructed.
        """
        if logger is None:
            logger = Logger(name="imperial_vm.model")

        data_dir = model_data_dir(install_dir, model_label)
        config_path = data_dir / CONFIG_FILE_NAME
        logger.log(logging.INFO, f"Loading {MODEL_VERSION} model from {data_dir}")

        configuration = read_configuration(config_path, logger)
        store = load_grid_store(
            data_dir / configuration.model_dir, configuration, logger, in_memory
        )
        try:
            projection = ProjectionTransform(configuration.utm_zone, logger)
        except Exception:
            store.close()
            raise

        model = cls(configuration, store, projection, config_path, logger)
        logger.log(
            logging.INFO,
            f"Model ready: {configuration.nx} x {configuration.ny} x {configuration.nz} "
            f"lattice, interpolation {'on' if configuration.interpolation else 'off'}, "
            f"{model.storage_status.name}",
        )
        return model

    @property
    def is_ready(self) -> bool:
        """
        Check whether the model can be queried.

        Returns
        -------
        bool
            True until the model is finalized.
        """
        return self.store is not None

    @property
    def storage_status(self) -> StorageStatus:
        """
        Get where the lattice lives.

        Returns
        -------
        StorageStatus
            IN_MEMORY or ON_DISK while loaded, ABSENT once finalized.
        """
        return self.store.status if self.store is not None else StorageStatus.ABSENT

    def version(self) -> str:
        """
        Get the version string of the model.

        Returns
        -------
        str
            The model version.
        """
        return MODEL_VERSION

    def config(self) -> tuple[str, int]:
        """
        Get the configuration information reported to the host.

        Returns
        -------
        tuple[str, int]
            The configuration string and the number of entries in it.
        """
        return f"config = {self.config_path}\n", 1

    def _check_ready(self) -> None:
        """Raise if the model has been finalized."""
        if not self.is_ready:
            raise RuntimeError("The model has been finalized and cannot be queried")

    def _read_samples(
        self, x: np.ndarray, y: np.ndarray, z: np.ndarray
    ) -> np.ndarray:
        """Read lattice points as (n, 3) property rows with vs and rho at NA."""
        samples = np.full((len(x), len(VelocityTypes)), NA)
        samples[:, VelocityTypes.vp.value] = self.store.read_lattice_points(x, y, z)
        return samples

    def _read_plane(
        self,
        x: np.ndarray,
        x_next: np.ndarray,
        y: np.ndarray,
        y_next: np.ndarray,
        z: np.ndarray,
    ) -> np.ndarray:
        """Read the origin, +1x, +1y and +1x+1y points of a plane, shape (4, n, 3)."""
        return np.stack(
            [
                self._read_samples(x, y, z),
                self._read_samples(x_next, y, z),
                self._read_samples(x, y_next, z),
                self._read_samples(x_next, y_next, z),
            ]
        )

    def sample_projected(
        self,
        easting: np.ndarray,
        northing: np.ndarray,
        depth: np.ndarray,
    ) -> np.ndarray:
        """
        Get the material properties at points given in the projected frame.

        Parameters
        ----------
        easting, northing : np.ndarray
            UTM coordinates of the points (m).
        depth : np.ndarray
            Depths below the surface (m).

        Returns
        -------
        np.ndarray
            Array of shape (n, 3) of vp (m/s), vs (m/s) and rho (g/m^3),
            indexed by VelocityTypes. Points outside the model are NA.
        """
        self._check_ready()
        config = self.configuration
        depth = np.atleast_1d(np.asarray(depth, dtype=np.float64))
        easting, northing = np.broadcast_arrays(
            np.atleast_1d(np.asarray(easting, dtype=np.float64)),
            np.atleast_1d(np.asarray(northing, dtype=np.float64)),
        )
        result = np.full((len(depth), len(VelocityTypes)), NA)

        location = self.geometry.locate(easting, northing, depth)

        # Points above the surface, below the model or beside the grid have no data.
        with np.errstate(invalid="ignore"):
            in_domain = (
                (depth >= 0)
                & (depth <= config.depth)
                & (location.x_index >= 0)
                & (location.x_index <= config.nx - 1)
                & (location.y_index >= 0)
                & (location.y_index <= config.ny - 1)
                & (location.z_index >= 0)
                & (location.z_index <= config.nz - 1)
            )
        indices = np.flatnonzero(in_domain)
        if indices.size == 0:
            return result

        x = location.x_index[indices].astype(np.int64)
        y = location.y_index[indices].astype(np.int64)
        z = location.z_index[indices].astype(np.int64)

        if config.interpolation:
            x_percent = location.x_percent[indices, np.newaxis]
            y_percent = location.y_percent[indices, np.newaxis]
            z_percent = location.z_percent[indices, np.newaxis]

            # Neighbours beyond the last lattice point are clamped onto it.
            x_next = np.minimum(x + 1, config.nx - 1)
            y_next = np.minimum(y + 1, config.ny - 1)
            z_below = np.maximum(z - 1, 0)

            top_plane = self._read_plane(x, x_next, y, y_next, z)
            samples = bi_linear_interpolation(x_percent, y_percent, top_plane)

            # On the bottom boundary plane only the top plane is interpolated,
            # so the plane below is read for the other points only.
            on_boundary = (z == 0) & (location.z_percent[indices] == 0)
            inner = np.flatnonzero(~on_boundary)
            if inner.size > 0:
                bottom_plane = self._read_plane(
                    x[inner], x_next[inner], y[inner], y_next[inner], z_below[inner]
                )
                samples[inner] = tri_linear_interpolation(
                    x_percent[inner],
                    y_percent[inner],
                    z_percent[inner],
                    np.concatenate([top_plane[:, inner], bottom_plane]),
                )
        else:
            samples = self._read_samples(x, y, z)

        vp = samples[:, VelocityTypes.vp.value]
        result[indices, VelocityTypes.vp.value] = vp
        result[indices, VelocityTypes.vs.value] = calculate_vs(vp)
        result[indices, VelocityTypes.rho.value] = calculate_density(vp)
        return result

    def query_arrays(
        self,
        lon: np.ndarray,
        lat: np.ndarray,
        depth: np.ndarray,
    ) -> np.ndarray:
        """
        Get the material properties at geographic points.

        Parameters
        ----------
        lon, lat : np.ndarray
            Longitudes and latitudes of the points (degrees).
        depth : np.ndarray
            Depths below the surface (m).

        Returns
        -------
        np.ndarray
            Array of shape (n, 3) of vp (m/s), vs (m/s) and rho (g/m^3),
            indexed by VelocityTypes. Points outside the model are NA.

        Raises
        ------
        ProjectionError
            If any point below the surface cannot be projected. The whole
            batch fails.
        """
        self._check_ready()
        depth = np.atleast_1d(np.asarray(depth, dtype=np.float64))
        lon, lat = np.broadcast_arrays(
            np.atleast_1d(np.asarray(lon, dtype=np.float64)),
            np.atleast_1d(np.asarray(lat, dtype=np.float64)),
        )
        if not len(lon) == len(lat) == len(depth):
            raise ValueError(
                f"lon, lat and depth must have the same length, got "
                f"{len(lon)}, {len(lat)} and {len(depth)}"
            )
        result = np.full((len(depth), len(VelocityTypes)), NA)

        # We need to be below the surface to service the query.
        below_surface = np.flatnonzero(depth >= 0)
        if below_surface.size > 0:
            easting, northing = self.projection.to_projected(
                lon[below_surface], lat[below_surface]
            )
            result[below_surface] = self.sample_projected(
                easting, northing, depth[below_surface]
            )

        n_missing = int(np.sum(result[:, VelocityTypes.vp.value] == NA))
        self.logger.log(
            logging.DEBUG,
            f"Queried {len(depth)} points, {n_missing} outside the model",
        )
        return result

    def query(self, points: Sequence[QueryPoint]) -> list[MaterialProperties]:
        """
        Query the model at the given points.

        Parameters
        ----------
        points : Sequence[QueryPoint]
            The points at which to query the model.

        Returns
        -------
        list[MaterialProperties]
            Properties for every point, in the same order. Points outside the
            model have every property set to NA.

        Raises
        ------
        ProjectionError
            If any point below the surface cannot be projected.
        RuntimeError
            If the model has been finalized.
        """
        self._check_ready()
        if len(points) == 0:
            return []
        values = self.query_arrays(
            np.array([p.longitude for p in points], dtype=np.float64),
            np.array([p.latitude for p in points], dtype=np.float64),
            np.array([p.depth for p in points], dtype=np.float64),
        )
        return [MaterialProperties.from_array(row) for row in values]

    def finalize(self) -> None:
        """
        Release the lattice. The model cannot be queried afterwards.

        Calling it more than once is harmless.
        """
        if self.store is not None:
            self.store.close()
            self.store = None
            self.logger.log(logging.INFO, f"{MODEL_VERSION} model finalized")
