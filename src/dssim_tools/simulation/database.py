"""
Database layer for replicated survey simulations.

Provides SQLite schema and functions for storing/loading simulation results,
so long studies (hundreds of replicates per design) are run once and
reloaded later:
- Simulation metadata and configuration, one row per design
- Replicate registry with seeds and status
- Abundance estimates per successful replicate
- Transect layouts (shared layout stored once under replicate_id -1)
- Error log for failed replicates
"""

import json
import sqlite3
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

from ..design import Transect, TransectSet
from ..errors import ConfigurationError
from ..estimator import ReplicateEstimate
from .outputs import SimulationSummary

if TYPE_CHECKING:
    from .config import SimulationConfig

# replicate_id used for a layout shared by every replicate
SHARED_LAYOUT_ID = -1


# SQL Schema Definitions
SCHEMA_DS_SIMULATION_META = """
CREATE TABLE IF NOT EXISTS DS_SimulationMeta (
    sim_id        TEXT NOT NULL,
    design        TEXT NOT NULL,
    seed          INTEGER NOT NULL,
    n_replicates  INTEGER NOT NULL,
    n_workers     INTEGER NOT NULL,
    true_n        REAL,
    created_at    TEXT NOT NULL,
    completed_at  TEXT,
    status        TEXT NOT NULL,  -- running/complete/partial/failed/stopped
    config_json   TEXT NOT NULL,
    PRIMARY KEY (sim_id, design)
);
"""

SCHEMA_DS_REPLICATE_REGISTRY = """
CREATE TABLE IF NOT EXISTS DS_ReplicateRegistry (
    sim_id          TEXT NOT NULL,
    design          TEXT NOT NULL,
    replicate_id    INTEGER NOT NULL,
    replicate_seed  INTEGER NOT NULL,
    status          TEXT DEFAULT 'pending',  -- pending/complete/failed
    created_at      TEXT,
    completed_at    TEXT,
    PRIMARY KEY (sim_id, design, replicate_id)
);
"""

SCHEMA_DS_REPLICATE_ESTIMATE = """
CREATE TABLE IF NOT EXISTS DS_ReplicateEstimate (
    sim_id        TEXT NOT NULL,
    design        TEXT NOT NULL,
    replicate_id  INTEGER NOT NULL,
    abundance     REAL,
    se            REAL,
    cv            REAL,
    lcl           REAL,
    ucl           REAL,
    density       REAL,
    pa            REAL,
    n_detected    INTEGER,
    effort        REAL,
    form          TEXT,
    true_n        INTEGER,
    PRIMARY KEY (sim_id, design, replicate_id),
    FOREIGN KEY (sim_id, design, replicate_id)
        REFERENCES DS_ReplicateRegistry(sim_id, design, replicate_id)
);
"""

SCHEMA_DS_TRANSECTS = """
CREATE TABLE IF NOT EXISTS DS_Transects (
    sim_id        TEXT NOT NULL,
    design        TEXT NOT NULL,
    replicate_id  INTEGER NOT NULL,  -- -1 = shared by all replicates
    label         TEXT,
    transect_id   INTEGER NOT NULL,
    segment       INTEGER NOT NULL,
    x0            REAL NOT NULL,
    y0            REAL NOT NULL,
    x1            REAL NOT NULL,
    y1            REAL NOT NULL,
    PRIMARY KEY (sim_id, design, replicate_id, transect_id, segment)
);
"""

SCHEMA_DS_REPLICATE_ERRORS = """
CREATE TABLE IF NOT EXISTS DS_ReplicateErrors (
    sim_id        TEXT NOT NULL,
    design        TEXT NOT NULL,
    replicate_id  INTEGER NOT NULL,
    stage         TEXT NOT NULL,  -- survey/fitting/variance/error
    error_msg     TEXT NOT NULL,
    timestamp     TEXT NOT NULL,
    PRIMARY KEY (sim_id, design, replicate_id)
);
"""


def create_ds_database(db_path: Path) -> sqlite3.Connection:
    """
    Create SQLite database with the simulation schema.

    Safe to call on an existing database (uses IF NOT EXISTS), so several
    designs can be written to the same file.

    Args:
        db_path: Path to SQLite database file

    Returns:
        Open connection to the database
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)

    conn.execute(SCHEMA_DS_SIMULATION_META)
    conn.execute(SCHEMA_DS_REPLICATE_REGISTRY)
    conn.execute(SCHEMA_DS_REPLICATE_ESTIMATE)
    conn.execute(SCHEMA_DS_TRANSECTS)
    conn.execute(SCHEMA_DS_REPLICATE_ERRORS)

    conn.commit()
    return conn


def simulation_exists(conn: sqlite3.Connection, sim_id: str, design: str) -> bool:
    """Whether results for (sim_id, design) are already stored."""
    row = conn.execute(
        "SELECT 1 FROM DS_SimulationMeta WHERE sim_id = ? AND design = ?",
        (sim_id, design),
    ).fetchone()
    return row is not None


def write_simulation_meta(
    conn: sqlite3.Connection,
    config: "SimulationConfig",
    design: str,
    true_n: float,
) -> None:
    """
    Write simulation metadata. Called once per design before any replicate runs.

    Args:
        conn: Database connection
        config: SimulationConfig for the run
        design: Design name
        true_n: True (or expected) population size

    Raises:
        ConfigurationError: If the database already holds this sim_id and design
    """
    if simulation_exists(conn, config.sim_id, design):
        raise ConfigurationError(
            f"Simulation '{config.sim_id}' for design '{design}' already exists "
            f"in this database; use a new sim_id or output directory"
        )
    config_dict = asdict(config)
    config_dict["output_base"] = str(config.output_base)
    config_json = json.dumps(config_dict, indent=2)

    conn.execute(
        """
        INSERT INTO DS_SimulationMeta
        (sim_id, design, seed, n_replicates, n_workers, true_n, created_at, status, config_json)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            config.sim_id,
            design,
            config.seed,
            config.n_replicates,
            config.n_workers,
            float(true_n),
            datetime.now().isoformat(),
            "running",
            config_json,
        ),
    )
    conn.commit()


def write_replicate_registry(
    conn: sqlite3.Connection, sim_id: str, design: str, samples: list[dict]
) -> None:
    """
    Pre-populate the registry with all planned replicates (status 'pending').

    Args:
        conn: Database connection
        sim_id: Simulation identifier
        design: Design name
        samples: Seed dicts from generate_replicate_seeds()
    """
    now = datetime.now().isoformat()
    rows = [
        {
            "sim_id": sim_id,
            "design": design,
            "replicate_id": sample["replicate_id"],
            "replicate_seed": sample["replicate_seed"],
            "status": "pending",
            "created_at": now,
        }
        for sample in samples
    ]
    conn.executemany(
        """
        INSERT INTO DS_ReplicateRegistry (
            sim_id, design, replicate_id, replicate_seed, status, created_at
        ) VALUES (
            :sim_id, :design, :replicate_id, :replicate_seed, :status, :created_at
        )
        """,
        rows,
    )
    conn.commit()


def update_replicate_status(
    conn: sqlite3.Connection,
    sim_id: str,
    design: str,
    replicate_id: int,
    status: str,
) -> None:
    """
    Update status of a replicate in the registry.

    Args:
        conn: Database connection
        sim_id: Simulation identifier
        design: Design name
        replicate_id: Replicate identifier
        status: New status ('pending', 'complete', 'failed')
    """
    completed_at = datetime.now().isoformat() if status != "pending" else None
    conn.execute(
        """
        UPDATE DS_ReplicateRegistry
        SET status = ?, completed_at = ?
        WHERE sim_id = ? AND design = ? AND replicate_id = ?
        """,
        (status, completed_at, sim_id, design, replicate_id),
    )
    conn.commit()


def write_replicate_estimate(
    conn: sqlite3.Connection, sim_id: str, design: str, estimate: ReplicateEstimate
) -> None:
    """Write the abundance estimate of a successful replicate."""
    row = estimate.to_dict()
    row.update({"sim_id": sim_id, "design": design})
    conn.execute(
        """
        INSERT INTO DS_ReplicateEstimate (
            sim_id, design, replicate_id,
            abundance, se, cv, lcl, ucl,
            density, pa, n_detected, effort, form, true_n
        ) VALUES (
            :sim_id, :design, :replicate_id,
            :abundance, :se, :cv, :lcl, :ucl,
            :density, :pa, :n_detected, :effort, :form, :true_n
        )
        """,
        row,
    )
    conn.commit()


def write_transects(
    conn: sqlite3.Connection,
    sim_id: str,
    design: str,
    replicate_id: int,
    transects: TransectSet,
) -> None:
    """
    Store a transect layout segment by segment.

    Use replicate_id = SHARED_LAYOUT_ID for a layout shared by all replicates.
    """
    rows = []
    for transect in transects.transects:
        for k, seg in enumerate(transect.segments):
            rows.append(
                (
                    sim_id,
                    design,
                    replicate_id,
                    transects.label,
                    int(transect.transect_id),
                    k,
                    float(seg[0, 0]),
                    float(seg[0, 1]),
                    float(seg[1, 0]),
                    float(seg[1, 1]),
                )
            )
    conn.executemany(
        """
        INSERT INTO DS_Transects (
            sim_id, design, replicate_id, label, transect_id, segment, x0, y0, x1, y1
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        rows,
    )
    conn.commit()


def write_replicate_error(
    conn: sqlite3.Connection,
    sim_id: str,
    design: str,
    replicate_id: int,
    stage: str,
    error_msg: str,
) -> None:
    """
    Log the failure of a replicate.

    Args:
        conn: Database connection
        sim_id: Simulation identifier
        design: Design name
        replicate_id: Replicate identifier
        stage: Pipeline stage that failed ("survey", "fitting", "variance", "error")
        error_msg: Failure message
    """
    conn.execute(
        """
        INSERT INTO DS_ReplicateErrors (sim_id, design, replicate_id, stage, error_msg, timestamp)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (sim_id, design, replicate_id, stage, error_msg, datetime.now().isoformat()),
    )
    conn.commit()


def update_simulation_status(
    conn: sqlite3.Connection, sim_id: str, design: str, status: str
) -> None:
    """
    Update simulation status in the metadata table.

    Args:
        conn: Database connection
        sim_id: Simulation identifier
        design: Design name
        status: New status ('running', 'complete', 'partial', 'failed', 'stopped')
    """
    completed_at = datetime.now().isoformat() if status != "running" else None
    conn.execute(
        """
        UPDATE DS_SimulationMeta
        SET status = ?, completed_at = ?
        WHERE sim_id = ? AND design = ?
        """,
        (status, completed_at, sim_id, design),
    )
    conn.commit()


# Read functions
def load_simulation_meta(conn: sqlite3.Connection) -> pd.DataFrame:
    """Load metadata of every simulation in the database."""
    return pd.read_sql_query("SELECT * FROM DS_SimulationMeta", conn)


def load_registry(conn: sqlite3.Connection) -> pd.DataFrame:
    """Load replicate registry."""
    return pd.read_sql_query("SELECT * FROM DS_ReplicateRegistry", conn)


def load_estimates(conn: sqlite3.Connection) -> pd.DataFrame:
    """Load replicate estimates."""
    return pd.read_sql_query("SELECT * FROM DS_ReplicateEstimate", conn)


def load_transects(conn: sqlite3.Connection) -> pd.DataFrame:
    """Load stored transect segments."""
    return pd.read_sql_query("SELECT * FROM DS_Transects", conn)


def load_errors(conn: sqlite3.Connection) -> pd.DataFrame:
    """Load error log."""
    return pd.read_sql_query("SELECT * FROM DS_ReplicateErrors", conn)


def load_ds_results(db_path: Path) -> dict:
    """
    Load all simulation results from a database.

    Args:
        db_path: Path to ds_results.db file

    Returns:
        Dictionary with keys:
            - 'meta': DataFrame, one row per (sim_id, design)
            - 'registry': DataFrame with replicate registry
            - 'estimates': DataFrame with replicate estimates
            - 'transects': DataFrame with transect segments
            - 'errors': DataFrame with error log

    Example:
        >>> results = load_ds_results(Path("outputs/design_comparison/ds_results.db"))
        >>> results["estimates"].groupby("design")["abundance"].mean()
    """
    conn = sqlite3.connect(db_path)

    try:
        return {
            "meta": load_simulation_meta(conn),
            "registry": load_registry(conn),
            "estimates": load_estimates(conn),
            "transects": load_transects(conn),
            "errors": load_errors(conn),
        }
    finally:
        conn.close()


def _rebuild_transect_sets(segments: pd.DataFrame, replicate_ids: list[int]) -> dict:
    """TransectSet per replicate; a shared layout maps to one object for all."""
    layouts = {}
    for rep_id, rows in segments.groupby("replicate_id"):
        transects = []
        for tid, trows in rows.sort_values("segment").groupby("transect_id"):
            segs = np.stack(
                [
                    trows[["x0", "y0"]].to_numpy(),
                    trows[["x1", "y1"]].to_numpy(),
                ],
                axis=1,
            )
            transects.append(Transect(int(tid), segs))
        label = rows["label"].iloc[0] or ""
        layouts[int(rep_id)] = TransectSet(tuple(transects), label=label)

    if SHARED_LAYOUT_ID in layouts:
        shared = layouts[SHARED_LAYOUT_ID]
        return {rep_id: shared for rep_id in replicate_ids}
    return layouts


def load_simulation_summary(
    db_path: Path, design: str, sim_id: str | None = None
) -> SimulationSummary:
    """
    Rebuild a SimulationSummary from a results database without rerunning.

    Args:
        db_path: Path to results database
        design: Design name
        sim_id: Simulation identifier (most recent for the design if None)

    Returns:
        SimulationSummary

    Raises:
        KeyError: If no simulation matches
    """
    conn = sqlite3.connect(db_path)
    try:
        if sim_id is None:
            meta = pd.read_sql_query(
                "SELECT * FROM DS_SimulationMeta WHERE design = ? "
                "ORDER BY created_at DESC LIMIT 1",
                conn,
                params=(design,),
            )
        else:
            meta = pd.read_sql_query(
                "SELECT * FROM DS_SimulationMeta WHERE design = ? AND sim_id = ?",
                conn,
                params=(design, sim_id),
            )
        if len(meta) == 0:
            raise KeyError(f"No simulation for design '{design}' (sim_id={sim_id})")
        meta = meta.iloc[0]
        key = (meta["sim_id"], design)

        registry = pd.read_sql_query(
            "SELECT * FROM DS_ReplicateRegistry WHERE sim_id = ? AND design = ?",
            conn,
            params=key,
        )
        estimates = pd.read_sql_query(
            "SELECT * FROM DS_ReplicateEstimate WHERE sim_id = ? AND design = ? "
            "ORDER BY replicate_id",
            conn,
            params=key,
        )
        errors = pd.read_sql_query(
            "SELECT * FROM DS_ReplicateErrors WHERE sim_id = ? AND design = ? "
            "ORDER BY replicate_id",
            conn,
            params=key,
        )
        segments = pd.read_sql_query(
            "SELECT * FROM DS_Transects WHERE sim_id = ? AND design = ?",
            conn,
            params=key,
        )
    finally:
        conn.close()

    fields = list(ReplicateEstimate.__dataclass_fields__)
    estimate_objs = [
        ReplicateEstimate(
            **{
                name: (row[name].item() if hasattr(row[name], "item") else row[name])
                for name in fields
            }
        )
        for _, row in estimates.iterrows()
    ]
    failures = [
        {
            "replicate_id": int(row["replicate_id"]),
            "stage": row["stage"],
            "error": row["error_msg"],
        }
        for _, row in errors.iterrows()
    ]
    completed = registry[registry["status"] != "pending"]
    replicate_ids = completed["replicate_id"].astype(int).tolist()

    return SimulationSummary(
        sim_id=meta["sim_id"],
        design=design,
        true_n=float(meta["true_n"]),
        n_requested=int(meta["n_replicates"]),
        n_completed=len(completed),
        estimates=estimate_objs,
        failures=failures,
        transect_sets=_rebuild_transect_sets(segments, replicate_ids),
    )
