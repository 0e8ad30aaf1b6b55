"""
Model configuration file handling.

The configuration file sits at ``<install_dir>/model/<label>/data/config`` and
describes the grid: its projection zone, dimensions, corner coordinates in
the projected frame and the vertical sampling. Each line has the form
``key = value``; blank lines and lines starting with ``#`` or a space are
ignored.

Example
-------
    utm_zone = 11
    model_dir = ivlsu
    nx = 271
    ny = 301
    nz = 16
    depth = 15000
    top_left_corner_e = 582887.94
    top_left_corner_n = 3676597.25
    ...
    depth_interval = 1000
    interpolation = on
"""

import logging
import re
from dataclasses import dataclass
from logging import Logger
from pathlib import Path
from typing import Optional

from imperial_vm.errors import ConfigurationError

INT_KEYS = ("utm_zone", "nx", "ny", "nz")
FLOAT_KEYS = (
    "depth",
    "top_left_corner_e",
    "top_left_corner_n",
    "top_right_corner_e",
    "top_right_corner_n",
    "bottom_left_corner_e",
    "bottom_left_corner_n",
    "bottom_right_corner_e",
    "bottom_right_corner_n",
    "depth_interval",
)
POSITIVE_KEYS = ("nx", "ny", "nz", "depth", "depth_interval")

# Numbers are read from the start of the value, like C's atoi() and atof().
INT_PREFIX = re.compile(r"[+-]?\d+")
FLOAT_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


@dataclass(frozen=True)
class GridConfiguration:
    """
    Description of the model grid, read once when the model is loaded.

    Attributes
    ----------
    utm_zone : int
        Zone of the UTM projection the corners are expressed in.
    model_dir : str
        Name of the grid data directory, relative to the config file.
    nx, ny, nz : int
        Number of lattice points along each axis.
    depth : float
        Maximum depth of the model (m).
    top_left_corner_e, top_left_corner_n : float
        Easting/northing of the top-left corner (m).
    top_right_corner_e, top_right_corner_n : float
        Easting/northing of the top-right corner (m).
    bottom_left_corner_e, bottom_left_corner_n : float
        Easting/northing of the bottom-left corner, the grid origin (m).
    bottom_right_corner_e, bottom_right_corner_n : float
        Easting/northing of the bottom-right corner (m).
    depth_interval : float
        Vertical spacing of the lattice (m).
    interpolation : bool
        True to blend neighbouring lattice points, False to return the
        nearest one unmodified.
    """

    utm_zone: int
    model_dir: str
    nx: int
    ny: int
    nz: int
    depth: float
    top_left_corner_e: float
    top_left_corner_n: float
    top_right_corner_e: float
    top_right_corner_n: float
    bottom_left_corner_e: float
    bottom_left_corner_n: float
    bottom_right_corner_e: float
    bottom_right_corner_n: float
    depth_interval: float
    interpolation: bool = False

    @property
    def n_points(self) -> int:
        """
        Get the number of lattice points in the grid.

        Returns
        -------
        int
            nx * ny * nz.
        """
        return self.nx * self.ny * self.nz

    def missing_fields(self) -> list[str]:
        """
        List the fields still at their unset value.

        Returns
        -------
        list[str]
            Names of the numeric fields equal to zero, plus ``model_dir`` if empty.
        """
        missing = [key for key in INT_KEYS + FLOAT_KEYS if getattr(self, key) == 0]
        if not self.model_dir:
            missing.append("model_dir")
        return missing

    def negative_fields(self) -> list[str]:
        """
        List the dimensions and depths that are negative.

        Returns
        -------
        list[str]
            Names of the grid dimensions, depth and depth interval below zero.
        """
        return [key for key in POSITIVE_KEYS if getattr(self, key) < 0]


def _parse_number(
    key: str, value: str, pattern: re.Pattern, cast: type, logger: Logger
) -> int | float:
    """Parse the leading number of a value, falling back to 0 (unset) if there is none."""
    match = pattern.match(value)
    if match is None:
        logger.log(logging.WARNING, f"Could not parse {key} = {value}, leaving it unset")
        return 0
    if match.end() < len(value):
        logger.log(
            logging.WARNING,
            f"Ignoring trailing characters in {key} = {value}, using {match.group()}",
        )
    return cast(match.group())


def read_configuration(
    config_path: Path, logger: Optional[Logger] = None
) -> GridConfiguration:
    """
    Read and validate the model configuration file.

    Parameters
    ----------
    config_path : Path
        Path to the configuration file.
    logger : Logger, optional
        Logger instance for logging messages.

    Returns
    -------
    GridConfiguration
        The validated configuration.

    Raises
    ------
    ConfigurationError
        If the file cannot be read, any required parameter is missing or zero,
        or a grid dimension, the depth or the depth interval is negative.
    """
    if logger is None:
        logger = Logger(name="imperial_vm.read_configuration")

    params: dict = {key: 0 for key in INT_KEYS + FLOAT_KEYS}
    params["model_dir"] = ""
    params["interpolation"] = False

    try:
        with open(config_path, "r") as f:
            for line in f:
                # Comments start with a hash or a space
                if not line.strip() or line.startswith(("#", " ")):
                    continue
                line = line.strip()
                if "=" not in line:
                    logger.log(logging.DEBUG, f"Skipping malformed line: {line}")
                    continue

                key, value = map(str.strip, line.split("=", 1))
                # Only the first token of the value is significant
                value = value.split()[0] if value else ""

                if key in INT_KEYS:
                    params[key] = _parse_number(key, value, INT_PREFIX, int, logger)
                elif key in FLOAT_KEYS:
                    params[key] = _parse_number(key, value, FLOAT_PREFIX, float, logger)
                elif key == "model_dir":
                    params[key] = value
                elif key == "interpolation":
                    params[key] = value == "on"
    except FileNotFoundError as e:
        logger.log(logging.ERROR, f"Could not open the configuration file {config_path}")
        raise ConfigurationError(
            f"No configuration file was found at {config_path}"
        ) from e
    except OSError as e:
        logger.log(logging.ERROR, f"Error reading configuration file {config_path}: {e}")
        raise ConfigurationError(
            f"Error reading configuration file {config_path}: {e}"
        ) from e

    config = GridConfiguration(**params)
    missing = config.missing_fields()
    if missing:
        msg = (
            f"Configuration parameter(s) not specified in {config_path}: "
            f"{', '.join(missing)}"
        )
        logger.log(logging.ERROR, msg)
        raise ConfigurationError(msg)

    invalid = config.negative_fields()
    if invalid:
        msg = (
            f"Configuration parameter(s) must be positive in {config_path}: "
            f"{', '.join(f'{key} = {getattr(config, key)}' for key in invalid)}"
        )
        logger.log(logging.ERROR, msg)
        raise ConfigurationError(msg)

    logger.log(logging.DEBUG, f"Read configuration from {config_path}: {config}")
    return config


def write_configuration(config: GridConfiguration, config_path: Path) -> None:
    """
    Write a configuration in the format read by `read_configuration`.

    Parameters
    ----------
    config : GridConfiguration
        The configuration to write.
    config_path : Path
        Path of the file to write.
    """
    lines = ["# Imperial Valley velocity model configuration"]
    lines.append(f"utm_zone = {config.utm_zone}")
    lines.append(f"model_dir = {config.model_dir}")
    for key in INT_KEYS[1:] + FLOAT_KEYS:
        lines.append(f"{key} = {getattr(config, key)}")
    lines.append(f"interpolation = {'on' if config.interpolation else 'off'}")

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write("\n".join(lines) + "\n")
