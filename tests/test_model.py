from collections.abc import Callable, Iterator
from pathlib import Path

import numpy as np
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from imperial_vm.brocher import calculate_density, calculate_vs
from imperial_vm.config import GridConfiguration
from imperial_vm.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_MODEL_LABEL,
    MODEL_VERSION,
    NA,
    StorageStatus,
    VelocityTypes,
)
from imperial_vm.coordinates import ProjectionTransform
from imperial_vm.errors import (
    ConfigurationError,
    ProjectionError,
    ProjectionSetupError,
    StorageError,
)
from imperial_vm.grid_store import InMemoryGridStore
from imperial_vm.model import VelocityModel, model_data_dir
from imperial_vm.properties import MaterialProperties, QueryPoint

ORIGIN_E = 600000.0
ORIGIN_N = 3600000.0


def geographic(model: VelocityModel, u: float, v: float) -> tuple[float, float]:
    """Get the longitude/latitude of a point u, v metres from the grid origin."""
    lon, lat = model.projection.to_geographic(ORIGIN_E + u, ORIGIN_N + v)
    return float(lon), float(lat)


@pytest.fixture
def model(install_model: Callable[..., Path]) -> Iterator[VelocityModel]:
    """The synthetic model, loaded from an install directory."""
    model = VelocityModel.initialize(install_model())
    yield model
    model.finalize()


def test_initialize(install_model: Callable[..., Path], configuration: GridConfiguration):
    """Test that loading reads the configuration and holds the lattice in memory."""
    install_dir = install_model()
    model = VelocityModel.initialize(install_dir)

    assert model.configuration == configuration
    assert model.is_ready
    assert model.storage_status == StorageStatus.IN_MEMORY
    assert model.version() == MODEL_VERSION == "IMPERIAL"

    config_string, n_entries = model.config()
    expected_path = model_data_dir(install_dir, DEFAULT_MODEL_LABEL) / CONFIG_FILE_NAME
    assert config_string == f"config = {expected_path}\n"
    assert n_entries == 1
    model.finalize()


def test_initialize_file_backed(install_model: Callable[..., Path]):
    """Test that the lattice can be left on disk."""
    model = VelocityModel.initialize(install_model(), in_memory=False)
    assert model.storage_status == StorageStatus.ON_DISK
    model.finalize()


def test_initialize_missing_config(tmp_path: Path):
    """Test that an install without a configuration file cannot be loaded."""
    with pytest.raises(ConfigurationError):
        VelocityModel.initialize(tmp_path)


def test_initialize_missing_lattice(install_model: Callable[..., Path]):
    """Test that an install without a lattice file cannot be loaded."""
    install_dir = install_model()
    data_dir = model_data_dir(install_dir, DEFAULT_MODEL_LABEL)
    (data_dir / "ivlsu" / "vp.dat").unlink()
    with pytest.raises(StorageError):
        VelocityModel.initialize(install_dir)


def test_initialize_invalid_zone(
    install_model: Callable[..., Path],
    config_factory: Callable[..., GridConfiguration],
):
    """Test that a zone PROJ cannot build stops the model from loading."""
    with pytest.raises(ProjectionSetupError):
        VelocityModel.initialize(install_model(config_factory(utm_zone=99)))


def test_query_quarter_point(model: VelocityModel):
    """Test trilinear interpolation a quarter of the way into the first cell."""
    lon, lat = geographic(model, 500.0, 500.0)
    (properties,) = model.query([QueryPoint(lon, lat, 500.0)])

    assert properties.vp == pytest.approx(175.0, abs=1e-3)
    assert properties.vs == pytest.approx(calculate_vs(properties.vp))
    assert properties.rho == pytest.approx(calculate_density(properties.vp))
    assert properties.qp == NA
    assert properties.qs == NA


def test_query_second_layer(model: VelocityModel):
    """Test interpolation between the second layer and the one above it."""
    lon, lat = geographic(model, 500.0, 500.0)
    (properties,) = model.query([QueryPoint(lon, lat, 1500.0)])

    # 575 on the second layer, 175 on the surface layer.
    assert properties.vp == pytest.approx(375.0, abs=1e-3)


def test_query_surface_is_bilinear(model: VelocityModel):
    """Test that points on the surface only interpolate the surface layer."""
    lon, lat = geographic(model, 500.0, 500.0)
    (properties,) = model.query([QueryPoint(lon, lat, 0.0)])

    assert properties.vp == pytest.approx(175.0, abs=1e-3)


def test_query_above_surface(model: VelocityModel):
    """Test that points above the surface have no data, wherever they are."""
    lon, lat = geographic(model, 500.0, 500.0)
    results = model.query([QueryPoint(lon, lat, -1.0), QueryPoint(0.0, 95.0, -10.0)])

    assert results == [MaterialProperties.not_available()] * 2


def test_query_below_model(model: VelocityModel):
    """Test that points deeper than the model, or its last layer, have no data."""
    lon, lat = geographic(model, 500.0, 500.0)
    results = model.query([QueryPoint(lon, lat, 2000.0), QueryPoint(lon, lat, 2500.0)])

    assert results == [MaterialProperties.not_available()] * 2


def test_query_beside_grid(model: VelocityModel):
    """Test that points off the grid horizontally have no data."""
    points = [
        QueryPoint(*geographic(model, 3500.0, 500.0), 500.0),
        QueryPoint(*geographic(model, 500.0, 3500.0), 500.0),
        QueryPoint(*geographic(model, -1500.0, 500.0), 500.0),
        QueryPoint(*geographic(model, 500.0, -1500.0), 500.0),
    ]
    assert model.query(points) == [MaterialProperties.not_available()] * 4


def test_query_empty(model: VelocityModel):
    """Test that an empty batch returns an empty result."""
    assert model.query([]) == []


def test_query_is_idempotent(model: VelocityModel):
    """Test that repeating a query gives identical results."""
    points = [
        QueryPoint(*geographic(model, u, v), depth)
        for u, v, depth in [(500.0, 500.0, 500.0), (1500.0, 300.0, 1200.0)]
    ]
    assert model.query(points) == model.query(points)


def test_query_preserves_order(model: VelocityModel):
    """Test that results come back in the order of the points."""
    inside = QueryPoint(*geographic(model, 500.0, 500.0), 500.0)
    above = QueryPoint(inside.longitude, inside.latitude, -5.0)
    results = model.query([above, inside, above])

    assert results[0].vp == NA
    assert results[1].vp == pytest.approx(175.0, abs=1e-3)
    assert results[2].vp == NA


def test_query_projection_failure_fails_batch(model: VelocityModel):
    """Test that one unprojectable point below the surface fails the whole batch."""
    inside = QueryPoint(*geographic(model, 500.0, 500.0), 500.0)
    with pytest.raises(ProjectionError):
        model.query([inside, QueryPoint(-115.5, 95.0, 500.0)])


def test_query_arrays_length_mismatch(model: VelocityModel):
    """Test that the coordinate arrays must line up."""
    with pytest.raises(ValueError, match="same length"):
        model.query_arrays(np.zeros(2), np.zeros(2), np.zeros(3))


def test_query_file_backed_matches_in_memory(install_model: Callable[..., Path]):
    """Test that both storage modes give identical results."""
    install_dir = install_model()
    in_memory = VelocityModel.initialize(install_dir)
    on_disk = VelocityModel.initialize(install_dir, in_memory=False)

    coords = [geographic(in_memory, u, v) for u, v in [(100.0, 1900.0), (1300.0, 700.0)]]
    lon = np.array([c[0] for c in coords])
    lat = np.array([c[1] for c in coords])
    depth = np.array([250.0, 1750.0])

    np.testing.assert_array_equal(
        in_memory.query_arrays(lon, lat, depth), on_disk.query_arrays(lon, lat, depth)
    )
    in_memory.finalize()
    on_disk.finalize()


def test_sample_projected_center_snaps_and_clamps(synthetic_model: VelocityModel):
    """Test that the exact cell centre snaps to the far node and clamps its neighbours."""
    result = synthetic_model.sample_projected(
        np.array([ORIGIN_E + 1000.0]), np.array([ORIGIN_N + 1000.0]), np.array([500.0])
    )
    assert result[0, VelocityTypes.vp.value] == pytest.approx(400.0)


def test_sample_projected_without_interpolation(
    install_model: Callable[..., Path],
    config_factory: Callable[..., GridConfiguration],
):
    """Test that with interpolation off the nearest lattice point is returned as is."""
    model = VelocityModel.initialize(install_model(config_factory(interpolation=False)))
    result = model.sample_projected(
        np.array([ORIGIN_E + 500.0, ORIGIN_E + 1500.0, ORIGIN_E + 1000.0]),
        np.array([ORIGIN_N + 500.0, ORIGIN_N + 500.0, ORIGIN_N + 1000.0]),
        np.array([500.0, 1500.0, 500.0]),
    )
    model.finalize()

    np.testing.assert_array_equal(result[:, VelocityTypes.vp.value], [100.0, 600.0, 400.0])
    np.testing.assert_allclose(
        result[:, VelocityTypes.vs.value], calculate_vs(np.array([100.0, 600.0, 400.0]))
    )
    np.testing.assert_allclose(
        result[:, VelocityTypes.rho.value], np.full(3, 1000.0)
    )


@settings(deadline=None)
@given(
    st.floats(min_value=0.0, max_value=1999.0),
    st.floats(min_value=0.0, max_value=1999.0),
    st.floats(min_value=0.0, max_value=1999.0),
)
def test_sample_projected_within_lattice_range(
    synthetic_model: VelocityModel, u: float, v: float, depth: float
):
    """Test that points inside the grid interpolate to a value the lattice spans."""
    result = synthetic_model.sample_projected(
        np.array([ORIGIN_E + u]), np.array([ORIGIN_N + v]), np.array([depth])
    )
    vp = result[0, VelocityTypes.vp.value]
    assert 100.0 - 1e-6 <= vp <= 800.0 + 1e-6
    assert result[0, VelocityTypes.vs.value] == pytest.approx(calculate_vs(vp))


def test_finalize(install_model: Callable[..., Path]):
    """Test that a finalized model releases its lattice and refuses queries."""
    model = VelocityModel.initialize(install_model())
    model.finalize()

    assert not model.is_ready
    assert model.storage_status == StorageStatus.ABSENT
    with pytest.raises(RuntimeError, match="finalized"):
        model.query([QueryPoint(-115.5, 32.5, 0.0)])

    # Finalizing again is harmless.
    model.finalize()


class CountingGridStore(InMemoryGridStore):
    """In-memory lattice that counts the lattice points read from it."""

    def __init__(self, values: np.ndarray, nx: int, ny: int, nz: int):
        super().__init__(values, nx, ny, nz)
        self.n_reads = 0

    def read_lattice_points(self, x, y, z) -> np.ndarray:
        values = super().read_lattice_points(x, y, z)
        self.n_reads += values.size
        return values


def counting_model(
    config: GridConfiguration, lattice: np.ndarray
) -> tuple[VelocityModel, CountingGridStore]:
    """Build a model over a counting store."""
    store = CountingGridStore(lattice.ravel(), config.nx, config.ny, config.nz)
    return VelocityModel(config, store, ProjectionTransform(config.utm_zone)), store


@pytest.mark.parametrize(
    "interpolation, depths, expected_reads",
    [
        (True, [0.0], 4),
        (True, [500.0], 8),
        (True, [1000.0], 8),
        (True, [0.0, 500.0], 12),
        (False, [0.0, 500.0], 2),
    ],
)
def test_sample_projected_reads_only_needed_points(
    config_factory: Callable[..., GridConfiguration],
    lattice_factory: Callable[[GridConfiguration], np.ndarray],
    interpolation: bool,
    depths: list[float],
    expected_reads: int,
):
    """Test that 4 points are read on the surface plane, 8 below it and 1 without interpolation."""
    config = config_factory(interpolation=interpolation)
    model, store = counting_model(config, lattice_factory(config))
    n = len(depths)
    result = model.sample_projected(
        np.full(n, ORIGIN_E + 500.0), np.full(n, ORIGIN_N + 500.0), np.array(depths)
    )
    model.finalize()

    assert store.n_reads == expected_reads
    assert np.all(result[:, VelocityTypes.vp.value] != NA)


def test_sample_projected_rotated_grid(
    rotated_config_factory: Callable[..., GridConfiguration],
    lattice_factory: Callable[[GridConfiguration], np.ndarray],
):
    """Test a query on a rotated grid against a hand-computed bilinear value."""
    config = rotated_config_factory(30.0, 5000.0, 8000.0)
    model, _ = counting_model(config, lattice_factory(config))
    result = model.sample_projected(
        np.array([ORIGIN_E + 100.0]), np.array([ORIGIN_N + 100.0]), np.array([0.0])
    )
    model.finalize()

    # The point snaps to node (0, 1) and lies 0.2 and 0.25 of the way across the
    # cell, measured on the unrotated offsets. The cell holds 1200, 1300, 2300, 2400.
    lower = 0.8 * 1200.0 + 0.2 * 1300.0
    upper = 0.8 * 2300.0 + 0.2 * 2400.0
    assert result[0, VelocityTypes.vp.value] == pytest.approx(
        0.75 * lower + 0.25 * upper
    )
