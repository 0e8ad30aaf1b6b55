"""
Access to the P-wave velocity lattice of the model.

The lattice is stored as a flat binary file of little-endian 32-bit floats,
x varying fastest, then y, then z::

    index = z * (nx * ny) + y * nx + x

When the model is loaded we try to read the whole file into memory. If the
allocation fails we fall back to reading single values from the file on every
lookup, which is much slower but still correct.
"""

import logging
import threading
from abc import ABC, abstractmethod
from logging import Logger
from pathlib import Path
from typing import BinaryIO, Optional

import numpy as np

from imperial_vm.config import GridConfiguration
from imperial_vm.constants import GRID_DTYPE, NA, VP_FILE_NAME, StorageStatus
from imperial_vm.errors import StorageError
from imperial_vm.properties import MaterialProperties

ITEM_SIZE = np.dtype(GRID_DTYPE).itemsize


class GridStore(ABC):
    """
    Base class for the two ways a loaded lattice can be held.

    Parameters
    ----------
    nx, ny, nz : int
        Dimensions of the lattice.

    Attributes
    ----------
    status : StorageStatus
        Where the lattice lives.
    """

    status: StorageStatus = StorageStatus.ABSENT

    def __init__(self, nx: int, ny: int, nz: int):
        self.nx = nx
        self.ny = ny
        self.nz = nz

    def flat_index(
        self, x: np.ndarray | int, y: np.ndarray | int, z: np.ndarray | int
    ) -> np.ndarray:
        """
        Get the position of lattice points in the flattened lattice.

        Parameters
        ----------
        x, y, z : np.ndarray or int
            Lattice indices.

        Returns
        -------
        np.ndarray
            Flat indices (int64).
        """
        x = np.asarray(x, dtype=np.int64)
        y = np.asarray(y, dtype=np.int64)
        z = np.asarray(z, dtype=np.int64)
        return z * (self.nx * self.ny) + y * self.nx + x

    @abstractmethod
    def read_lattice_points(
        self, x: np.ndarray | int, y: np.ndarray | int, z: np.ndarray | int
    ) -> np.ndarray:
        """
        Read the P-wave velocity at lattice points.

        Indices are not bounds-checked: the caller must guarantee
        0 <= x < nx, 0 <= y < ny and 0 <= z < nz.

        Parameters
        ----------
        x, y, z : np.ndarray or int
            Zero-based lattice indices, broadcast against each other.

        Returns
        -------
        np.ndarray
            P-wave velocities (m/s, float64), shaped like the broadcast indices.
        """

    def read_properties(self, x: int, y: int, z: int) -> MaterialProperties:
        """
        Read a single lattice point as a property record.

        Record-level form of `read_lattice_points` for inspecting one node;
        `VelocityModel` reads whole batches through `read_lattice_points`.
        The same precondition applies.

        Parameters
        ----------
        x, y, z : int
            Zero-based lattice indices.

        Returns
        -------
        MaterialProperties
            The stored vp, with vs and rho left at NA.
        """
        vp = self.read_lattice_points(x, y, z)
        return MaterialProperties(vp=float(vp), vs=NA, rho=NA)

    def close(self) -> None:
        """Release the lattice."""


class InMemoryGridStore(GridStore):
    """
    Lattice held fully in memory.

    Parameters
    ----------
    values : np.ndarray
        The flattened lattice, of length nx * ny * nz.
    nx, ny, nz : int
        Dimensions of the lattice.
    """

    status = StorageStatus.IN_MEMORY

    def __init__(self, values: np.ndarray, nx: int, ny: int, nz: int):
        super().__init__(nx, ny, nz)
        self.values = values

    def read_lattice_points(self, x, y, z) -> np.ndarray:
        return self.values[self.flat_index(x, y, z)].astype(np.float64)

    def close(self) -> None:
        self.values = None


class FileBackedGridStore(GridStore):
    """
    Lattice read from its file one value at a time.

    The file handle is shared between lookups, so seek and read are done
    under a lock.

    Parameters
    ----------
    path : Path
        Path to the lattice file.
    nx, ny, nz : int
        Dimensions of the lattice.
    """

    status = StorageStatus.ON_DISK

    def __init__(self, path: Path, nx: int, ny: int, nz: int):
        super().__init__(nx, ny, nz)
        self.path = path
        self._handle: Optional[BinaryIO] = open(path, "rb")
        self._lock = threading.Lock()

    def _read_value(self, offset: int) -> float:
        """Read the value at a flat index from the file."""
        with self._lock:
            self._handle.seek(offset * ITEM_SIZE)
            data = self._handle.read(ITEM_SIZE)
        return float(np.frombuffer(data, dtype=GRID_DTYPE)[0])

    def read_lattice_points(self, x, y, z) -> np.ndarray:
        offsets = self.flat_index(x, y, z)
        values = np.empty(offsets.shape, dtype=np.float64)
        for i, offset in np.ndenumerate(offsets):
            values[i] = self._read_value(int(offset))
        return values

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


def _read_into_memory(vp_path: Path, config: GridConfiguration) -> np.ndarray:
    """Read the whole lattice file, raising StorageError if it is short."""
    values = np.fromfile(vp_path, dtype=GRID_DTYPE, count=config.n_points)
    if values.size < config.n_points:
        raise StorageError(
            f"{vp_path} holds {values.size} values, expected {config.n_points} "
            f"({config.nx} x {config.ny} x {config.nz})"
        )
    return values


def load_grid_store(
    data_dir: Path,
    config: GridConfiguration,
    logger: Optional[Logger] = None,
    in_memory: bool = True,
) -> GridStore:
    """
    Load the P-wave velocity lattice of a model.

    Parameters
    ----------
    data_dir : Path
        Directory containing the lattice file.
    config : GridConfiguration
        The model configuration (for the lattice dimensions).
    logger : Logger, optional
        Logger instance for logging messages.
    in_memory : bool, optional
        Try to read the lattice into memory (default). If False, or if memory
        cannot be allocated, values are read from the file on every lookup.

    Returns
    -------
    GridStore
        The loaded lattice.

    Raises
    ------
    StorageError
        If the lattice file is missing, unreadable or shorter than the grid.
    """
    if logger is None:
        logger = Logger(name="imperial_vm.grid_store")

    vp_path = data_dir / VP_FILE_NAME
    if not vp_path.is_file():
        logger.log(logging.ERROR, f"No model file was found at {vp_path}")
        raise StorageError(f"No model file was found at {vp_path}")

    expected_size = config.n_points * ITEM_SIZE
    try:
        actual_size = vp_path.stat().st_size
    except OSError as e:
        logger.log(logging.ERROR, f"Could not read model file {vp_path}: {e}")
        raise StorageError(f"Could not read model file {vp_path}: {e}") from e
    if actual_size < expected_size:
        msg = (
            f"Model file {vp_path} is {actual_size} bytes, expected {expected_size} "
            f"for a {config.nx} x {config.ny} x {config.nz} grid"
        )
        logger.log(logging.ERROR, msg)
        raise StorageError(msg)

    if in_memory:
        try:
            values = _read_into_memory(vp_path, config)
            logger.log(
                logging.INFO, f"Loaded {config.n_points} lattice points from {vp_path}"
            )
            return InMemoryGridStore(values, config.nx, config.ny, config.nz)
        except MemoryError:
            logger.log(
                logging.WARNING,
                "Could not load model into memory. Reading the model from the "
                "hard disk may result in slow performance.",
            )
        except OSError as e:
            logger.log(logging.ERROR, f"Could not read model file {vp_path}: {e}")
            raise StorageError(f"Could not read model file {vp_path}: {e}") from e

    try:
        store = FileBackedGridStore(vp_path, config.nx, config.ny, config.nz)
    except OSError as e:
        logger.log(logging.ERROR, f"Could not open model file {vp_path}: {e}")
        raise StorageError(f"Could not open model file {vp_path}: {e}") from e
    logger.log(logging.INFO, f"Reading lattice points from {vp_path} on demand")
    return store


def write_grid_file(path: Path, vp: np.ndarray) -> None:
    """
    Write a P-wave velocity lattice in the layout read by `load_grid_store`.

    Parameters
    ----------
    path : Path
        Path of the lattice file to write.
    vp : np.ndarray
        P-wave velocities (m/s) of shape (nz, ny, nx).

    Raises
    ------
    ValueError
        If the lattice is not 3-dimensional.
    """
    vp = np.asarray(vp)
    if vp.ndim != 3:
        raise ValueError(f"Expected a (nz, ny, nx) lattice, got shape {vp.shape}")
    path.parent.mkdir(parents=True, exist_ok=True)
    np.ascontiguousarray(vp, dtype=GRID_DTYPE).tofile(path)
