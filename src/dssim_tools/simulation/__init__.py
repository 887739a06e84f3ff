"""
Replicated simulation of distance-sampling survey designs.

This subpackage repeats population generation, survey, detection-function
fitting and abundance estimation many times and aggregates bias and
precision per design.

Public API:
    SimulationConfig: Configuration for a replicated simulation
    generate_replicate_seeds: Deterministic per-replicate seeds
    run_simulation: Run all replicates of one design
    SimulationSummary: Aggregated results for one design
    compare_designs: Side-by-side table of several designs
    load_simulation_summary: Reload a saved summary without rerunning
"""

from .config import SimulationConfig
from .database import (
    create_ds_database,
    load_ds_results,
    load_simulation_summary,
    simulation_exists,
    update_replicate_status,
    update_simulation_status,
    write_replicate_error,
    write_replicate_estimate,
    write_replicate_registry,
    write_simulation_meta,
    write_transects,
)
from .executor import SimulationInputs, execute_single_replicate, run_simulation
from .outputs import SimulationSummary, compare_designs, summarise_replicates
from .sampler import generate_replicate_seeds

__all__ = [
    # Configuration
    "SimulationConfig",
    # Seeding
    "generate_replicate_seeds",
    # Execution
    "SimulationInputs",
    "execute_single_replicate",
    "run_simulation",
    # Aggregation
    "SimulationSummary",
    "summarise_replicates",
    "compare_designs",
    # Database functions
    "create_ds_database",
    "simulation_exists",
    "write_simulation_meta",
    "write_replicate_registry",
    "update_replicate_status",
    "write_replicate_estimate",
    "write_transects",
    "write_replicate_error",
    "update_simulation_status",
    "load_ds_results",
    "load_simulation_summary",
]
