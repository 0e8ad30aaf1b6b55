"""
query_model.py

Command line access to the Imperial Valley velocity model.

Usage:
    imperial-vm query <install_dir> <points_csv> [options]
    imperial-vm info <install_dir> [options]

The model is looked up under ``<install_dir>/model/<model_label>/data``, the
layout used by the host framework.

Example:
    imperial-vm query /opt/ucvm points.csv --out-file properties.csv

    where points.csv is a CSV file with columns: lon, lat, depth. Depth is in
    metres below the surface.

    Sample points.csv:
        lon, lat, depth
        -115.5, 32.8, 0.0
        -115.5, 32.8, 2500.0
        ...

By default the output is written next to the points CSV as
``<points_csv stem>_properties.csv``. Points outside the model have every
property set to -1.

Sample output:
```
lon,lat,depth,vp,vs,rho,qp,qs
-115.5,32.8,0.0,1690.0,424.6,1749.3,-1.0,-1.0
-115.5,32.8,2500.0,3550.0,1899.2,2326.4,-1.0,-1.0
```
"""

import logging
import sys
import time
from pathlib import Path
from typing import Annotated

import pandas as pd
import typer

from imperial_vm.constants import DEFAULT_MODEL_LABEL, NA, VelocityTypes
from imperial_vm.errors import (
    ConfigurationError,
    ProjectionError,
    ProjectionSetupError,
    StorageError,
)
from imperial_vm.model import VelocityModel

REQUIRED_COLUMNS = ["lon", "lat", "depth"]

# Configure logging at the module level
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger("imperial_vm")

app = typer.Typer(pretty_exceptions_enable=False)


def read_points_csv(points_csv: Path) -> pd.DataFrame:
    """
    Read query points from a CSV file.

    Parameters
    ----------
    points_csv : Path
        CSV file with columns lon, lat, depth (in any order, case-insensitive).

    Returns
    -------
    pd.DataFrame
        The points, with lower-case column names.

    Raises
    ------
    ValueError
        If the file is empty, lacks a required column or holds non-numeric values.
    """
    try:
        df = pd.read_csv(points_csv, skipinitialspace=True)
    except pd.errors.EmptyDataError:
        logger.log(logging.ERROR, f"CSV file {points_csv} is empty or invalid.")
        raise ValueError(f"CSV file {points_csv} is empty or invalid.")

    # Standardize column names to lowercase to be forgiving
    df.columns = df.columns.str.strip().str.lower()

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        logger.log(
            logging.ERROR,
            f"CSV file {points_csv} is missing column(s): {', '.join(missing)}. "
            f"Expected columns: {', '.join(REQUIRED_COLUMNS)}",
        )
        raise ValueError(f"Invalid CSV format: missing column(s) {', '.join(missing)}")

    try:
        df[REQUIRED_COLUMNS] = df[REQUIRED_COLUMNS].astype(float)
    except ValueError as e:
        logger.log(logging.ERROR, f"Non-numeric value in {points_csv}: {e}")
        raise ValueError(f"Non-numeric value in {points_csv}: {e}")

    return df


def query_points(model: VelocityModel, points: pd.DataFrame) -> pd.DataFrame:
    """
    Query the model at every point of a DataFrame.

    Parameters
    ----------
    model : VelocityModel
        The loaded model.
    points : pd.DataFrame
        Points with columns lon, lat, depth.

    Returns
    -------
    pd.DataFrame
        The points with vp, vs, rho, qp and qs columns added.
    """
    values = model.query_arrays(
        points["lon"].to_numpy(), points["lat"].to_numpy(), points["depth"].to_numpy()
    )
    result = points[REQUIRED_COLUMNS].copy()
    for velocity_type in VelocityTypes:
        result[velocity_type.name] = values[:, velocity_type.value]
    result["qp"] = NA
    result["qs"] = NA
    return result


@app.command()
def query(
    install_dir: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=False,
            help="Directory in which the model framework is installed.",
        ),
    ],
    points_csv: Annotated[
        Path,
        typer.Argument(
            exists=True,
            dir_okay=False,
            help="CSV file of points with columns lon, lat, depth (m).",
        ),
    ],
    model_label: Annotated[
        str, typer.Option(help="Label the model is installed under.")
    ] = DEFAULT_MODEL_LABEL,
    out_file: Annotated[
        Path | None,
        typer.Option(dir_okay=False, help="Output CSV file."),
    ] = None,
    file_backed: Annotated[
        bool,
        typer.Option(help="Read lattice points from disk instead of memory."),
    ] = False,
    log_level: str = "INFO",
) -> None:
    """
    Query the velocity model at the points of a CSV file.

    Parameters
    ----------
    install_dir : Path
        Directory in which the model framework is installed.
    points_csv : Path
        CSV file of points with columns lon, lat, depth (m).
    model_label : str
        Label the model is installed under.
    out_file : Path, optional
        Output CSV file. Defaults to <points_csv stem>_properties.csv next to the input.
    file_backed : bool
        Read lattice points from disk instead of loading the lattice into memory.
    log_level : str
        Logging level.
    """
    start_time = time.time()
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if out_file is None:
        out_file = points_csv.with_name(f"{points_csv.stem}_properties.csv")

    try:
        points = read_points_csv(points_csv)
        model = VelocityModel.initialize(
            install_dir, model_label, logger, in_memory=not file_backed
        )
        try:
            result = query_points(model, points)
        finally:
            model.finalize()
    except (ConfigurationError, ProjectionSetupError) as e:
        logger.log(logging.ERROR, f"Configuration error: {e}")
        raise typer.Exit(1)
    except StorageError as e:
        logger.log(logging.ERROR, f"Model data error: {e}")
        raise typer.Exit(1)
    except ProjectionError as e:
        logger.log(logging.ERROR, f"Query failed: {e}")
        raise typer.Exit(1)
    except ValueError as e:
        logger.log(logging.ERROR, f"Invalid input: {e}")
        raise typer.Exit(1)

    out_file.parent.mkdir(parents=True, exist_ok=True)
    result.to_csv(out_file, index=False)
    n_missing = int((result["vp"] == NA).sum())
    logger.log(
        logging.INFO,
        f"Wrote {len(result)} points ({n_missing} outside the model) to {out_file}",
    )
    logger.log(logging.INFO, f"Query completed in {time.time() - start_time:.2f} seconds")


@app.command()
def info(
    install_dir: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=False,
            help="Directory in which the model framework is installed.",
        ),
    ],
    model_label: Annotated[
        str, typer.Option(help="Label the model is installed under.")
    ] = DEFAULT_MODEL_LABEL,
) -> None:
    """
    Print the version, configuration and storage mode of an installed model.

    Parameters
    ----------
    install_dir : Path
        Directory in which the model framework is installed.
    model_label : str
        Label the model is installed under.
    """
    try:
        model = VelocityModel.initialize(install_dir, model_label, logger)
    except (ConfigurationError, ProjectionSetupError, StorageError) as e:
        logger.log(logging.ERROR, f"Could not load model: {e}")
        raise typer.Exit(1)

    config = model.configuration
    config_string, _ = model.config()
    typer.echo(f"Model: {model.version()}")
    typer.echo(config_string.rstrip())
    typer.echo(f"Grid: {config.nx} x {config.ny} x {config.nz}, depth {config.depth} m")
    typer.echo(f"UTM zone: {config.utm_zone}")
    typer.echo(f"Interpolation: {'on' if config.interpolation else 'off'}")
    typer.echo(f"Storage: {model.storage_status.name}")
    model.finalize()


if __name__ == "__main__":
    app()
