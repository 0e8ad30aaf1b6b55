from collections.abc import Callable, Iterator
from pathlib import Path

import numpy as np
import pytest

from imperial_vm.config import GridConfiguration, write_configuration
from imperial_vm.constants import CONFIG_FILE_NAME, DEFAULT_MODEL_LABEL, VP_FILE_NAME
from imperial_vm.coordinates import ProjectionTransform
from imperial_vm.grid_store import InMemoryGridStore, write_grid_file
from imperial_vm.model import VelocityModel, model_data_dir

# A 2 km x 2 km box in UTM zone 11 (Imperial Valley), aligned with north.
ORIGIN_E = 600000.0
ORIGIN_N = 3600000.0
WIDTH_M = 2000.0


def make_configuration(**overrides) -> GridConfiguration:
    """Build a 2 x 2 x 2 axis-aligned grid configuration, with optional overrides."""
    params = dict(
        utm_zone=11,
        model_dir="ivlsu",
        nx=2,
        ny=2,
        nz=2,
        depth=2000.0,
        top_left_corner_e=ORIGIN_E,
        top_left_corner_n=ORIGIN_N + WIDTH_M,
        top_right_corner_e=ORIGIN_E + WIDTH_M,
        top_right_corner_n=ORIGIN_N + WIDTH_M,
        bottom_left_corner_e=ORIGIN_E,
        bottom_left_corner_n=ORIGIN_N,
        bottom_right_corner_e=ORIGIN_E + WIDTH_M,
        bottom_right_corner_n=ORIGIN_N,
        depth_interval=1000.0,
        interpolation=True,
    )
    params.update(overrides)
    return GridConfiguration(**params)


def make_rotated_configuration(
    angle_deg: float,
    width_m: float,
    height_m: float,
    nx: int = 11,
    ny: int = 21,
    **overrides,
) -> GridConfiguration:
    """Build a configuration for a box whose left edge is rotated angle_deg east of north."""
    theta = np.radians(angle_deg)
    tl_e = ORIGIN_E + height_m * np.sin(theta)
    tl_n = ORIGIN_N + height_m * np.cos(theta)
    return make_configuration(
        nx=nx,
        ny=ny,
        top_left_corner_e=tl_e,
        top_left_corner_n=tl_n,
        top_right_corner_e=tl_e + width_m * np.cos(theta),
        top_right_corner_n=tl_n - width_m * np.sin(theta),
        bottom_left_corner_e=ORIGIN_E,
        bottom_left_corner_n=ORIGIN_N,
        bottom_right_corner_e=ORIGIN_E + width_m * np.cos(theta),
        bottom_right_corner_n=ORIGIN_N - width_m * np.sin(theta),
        **overrides,
    )


def make_lattice(config: GridConfiguration) -> np.ndarray:
    """
    Build a lattice whose P-wave velocity is 100 * (flat index + 1).

    For the 2 x 2 x 2 grid the surface layer holds 100, 200, 300, 400 and the
    layer below 500, 600, 700, 800 (x varying fastest).
    """
    return (np.arange(config.n_points, dtype=np.float64) + 1.0).reshape(
        config.nz, config.ny, config.nx
    ) * 100.0


@pytest.fixture
def configuration() -> GridConfiguration:
    """The synthetic grid configuration, with interpolation on."""
    return make_configuration()


@pytest.fixture
def install_model(tmp_path: Path) -> Callable[..., Path]:
    """
    Get a factory that installs a synthetic model under a temporary directory.

    The factory takes an optional configuration and lattice, writes them in
    the installed layout and returns the install directory.
    """

    def _install(
        config: GridConfiguration | None = None, vp: np.ndarray | None = None
    ) -> Path:
        config = make_configuration() if config is None else config
        vp = make_lattice(config) if vp is None else vp
        install_dir = tmp_path / "install"
        data_dir = model_data_dir(install_dir, DEFAULT_MODEL_LABEL)
        write_configuration(config, data_dir / CONFIG_FILE_NAME)
        write_grid_file(data_dir / config.model_dir / VP_FILE_NAME, vp)
        return install_dir

    return _install


@pytest.fixture(scope="module")
def synthetic_model() -> Iterator[VelocityModel]:
    """A model built in memory from the synthetic grid, shared by a test module."""
    config = make_configuration()
    store = InMemoryGridStore(
        make_lattice(config).ravel(), config.nx, config.ny, config.nz
    )
    model = VelocityModel(config, store, ProjectionTransform(config.utm_zone))
    yield model
    model.finalize()


@pytest.fixture
def config_factory() -> Callable[..., GridConfiguration]:
    """Get `make_configuration`, for tests that need a modified grid."""
    return make_configuration


@pytest.fixture
def lattice_factory() -> Callable[[GridConfiguration], np.ndarray]:
    """Get `make_lattice`, for tests that need the lattice of a modified grid."""
    return make_lattice


@pytest.fixture
def rotated_config_factory() -> Callable[..., GridConfiguration]:
    """Get `make_rotated_configuration`, for tests that need a rotated grid."""
    return make_rotated_configuration
