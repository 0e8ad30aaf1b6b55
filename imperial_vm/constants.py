"""
Constants for the Imperial Valley velocity model package.

"""

from enum import Enum, auto

NA = -1.0  # sentinel written to every property with no data

MODEL_VERSION = "IMPERIAL"
DEFAULT_MODEL_LABEL = "ivlsu"

CONFIG_FILE_NAME = "config"
VP_FILE_NAME = "vp.dat"
GRID_DTYPE = "<f4"  # IEEE-754 single precision, little-endian

LAYER_THICKNESS_M = 1000.0  # vertical index selection uses fixed 1 km layers

# Target projection for the model grid, formatted with the configured zone.
UTM_PROJ_STRING = "+proj=utm +ellps=clrk66 +zone={zone} +datum=NAD27 +units=m +no_defs"
GEOGRAPHIC_CRS = "EPSG:4326"


class VelocityTypes(Enum):
    """
    Enum for the velocity type, also the column index in property arrays.

    0: P-wave velocity
    1: S-wave velocity
    2: Density
    """

    vp = 0
    vs = 1
    rho = 2


class StorageStatus(Enum):
    """
    Enum for where the grid data of a loaded model lives.

    ABSENT: no grid loaded (no file was found, or the model was finalized)
    ON_DISK: found, read from the file on every lookup
    IN_MEMORY: found and read fully into memory
    """

    ABSENT = auto()
    ON_DISK = auto()
    IN_MEMORY = auto()
