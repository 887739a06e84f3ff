"""
Execution engine for replicated survey simulations.

Each replicate runs the full pipeline

    Generated -> Surveyed -> Fitted -> Estimated

and either returns an estimate or a failure record (zero detections, no
converging detection function, unusable bootstrap SE, unexpected error).
Failures never abort the run; they are reported per replicate and counted
in the summary. Replicates run inline or across worker processes, and a run
can be stopped after a chosen number of completed replicates.
"""

from collections.abc import Callable
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

from ..density import DensityField
from ..design import Design, TransectSet, generate_transects
from ..detection import DetectionModel
from ..errors import ConfigurationError, InputError, ReplicateFailure
from ..estimator import estimate_abundance
from ..fitting import get_form, select_model
from ..population import generate_population
from ..region import Region
from ..survey import simulate_survey
from .config import SimulationConfig
from .database import (
    SHARED_LAYOUT_ID,
    create_ds_database,
    update_replicate_status,
    update_simulation_status,
    write_replicate_error,
    write_replicate_estimate,
    write_replicate_registry,
    write_simulation_meta,
    write_transects,
)
from .outputs import SimulationSummary, summarise_replicates
from .sampler import generate_replicate_seeds, layout_rng, replicate_rng


@dataclass(frozen=True, eq=False)
class SimulationInputs:
    """
    Immutable inputs shared by every replicate.

    Attributes:
        config: Simulation configuration
        region: Survey region
        density: Density surface
        design: Survey design
        detection: Detection function used to simulate observations
        shared_transects: Layout used by every replicate (fixed designs only)
    """

    config: SimulationConfig
    region: Region
    density: DensityField
    design: Design
    detection: DetectionModel
    shared_transects: TransectSet | None = None


def validate_inputs(
    config: SimulationConfig,
    region: Region,
    density: DensityField,
    design: Design,
    detection: DetectionModel,
) -> None:
    """
    Setup checks run before any replicate.

    Raises:
        InputError: Empty region, zero density integral, mismatched units,
            fixed design without effort
        ConfigurationError: Unknown candidate forms, bootstrap variance on
            a fixed design with fewer than 2 transects
    """
    if region.area <= 0:
        raise InputError(f"Region '{region.name}' has zero area")
    if density.n_cells == 0 or density.total() <= 0:
        raise InputError("Density surface integrates to zero over the region")
    if density.region.units != region.units:
        raise InputError(
            f"Density surface units '{density.region.units}' do not match "
            f"region units '{region.units}'"
        )
    for form in config.candidate_forms:
        get_form(form)
    if design.kind == "fixed" and design.transects.effort <= 0:
        raise InputError(f"Fixed design '{design.name}' has zero effort")
    if (
        config.variance_method == "bootstrap"
        and design.kind == "fixed"
        and len(design.transects) < 2
    ):
        raise ConfigurationError(
            f"Bootstrap variance resamples transects; fixed design '{design.name}' "
            f"has only {len(design.transects)}. Use variance_method='analytic'"
        )


def execute_single_replicate(sample: dict, inputs: SimulationInputs) -> dict:
    """
    Execute one replicate.

    This function is called by worker processes. Replicate failures are
    returned, not raised.

    Args:
        sample: Seed dict with replicate_id and replicate_seed
        inputs: Shared simulation inputs

    Returns:
        dict with keys:
            - replicate_id: int
            - success: bool
            - estimate: ReplicateEstimate if success
            - transects: TransectSet drawn for this replicate (None when shared)
            - n_population: int | None
            - n_detected: int | None
            - stage: str | None (state reached on failure)
            - error: str | None
    """
    replicate_id = sample["replicate_id"]
    config = inputs.config
    rng = replicate_rng(sample)

    result = {
        "replicate_id": replicate_id,
        "success": False,
        "estimate": None,
        "transects": None,
        "n_population": None,
        "n_detected": None,
        "stage": None,
        "error": None,
    }
    stage = "setup"

    try:
        population = generate_population(
            inputs.region, inputs.density, config.true_n, config.fixed_count, rng
        )
        result["n_population"] = population.size
        stage = "generated"

        if inputs.shared_transects is not None:
            transects = inputs.shared_transects
        else:
            transects = generate_transects(inputs.design, inputs.region, rng)
            result["transects"] = transects

        survey = simulate_survey(population, transects, inputs.detection, rng)
        result["n_detected"] = survey.n_detected
        stage = "surveyed"
        if survey.n_detected == 0:
            raise ReplicateFailure("No animals detected", stage="survey")

        fit = select_model(
            survey.detected_distances,
            inputs.detection.truncation,
            forms=config.candidate_forms,
            criterion=config.criterion,
        )
        stage = "fitted"

        estimate = estimate_abundance(
            fit,
            survey,
            inputs.region.area,
            replicate_id=replicate_id,
            variance_method=config.variance_method,
            n_bootstrap=config.n_bootstrap,
            rng=rng,
        )
        result["estimate"] = estimate
        result["success"] = True

    except ReplicateFailure as e:
        result["stage"] = e.stage
        result["error"] = str(e)

    except Exception as e:
        result["stage"] = "error"
        result["error"] = f"{type(e).__name__} after '{stage}': {e}"

    return result


def _record_result(
    conn, config: SimulationConfig, design: str, result: dict
) -> None:
    """Persist one replicate result."""
    replicate_id = result["replicate_id"]
    if result["transects"] is not None:
        write_transects(conn, config.sim_id, design, replicate_id, result["transects"])
    if result["success"]:
        update_replicate_status(conn, config.sim_id, design, replicate_id, "complete")
        write_replicate_estimate(conn, config.sim_id, design, result["estimate"])
    else:
        update_replicate_status(conn, config.sim_id, design, replicate_id, "failed")
        write_replicate_error(
            conn,
            config.sim_id,
            design,
            replicate_id,
            stage=result["stage"],
            error_msg=result["error"],
        )


def run_simulation(
    config: SimulationConfig,
    region: Region,
    density: DensityField,
    design: Design,
    detection: DetectionModel,
    output_dir: Path | str | None = None,
    progress_callback: Callable[[int, int], None] | None = None,
    stop_after: int | None = None,
) -> SimulationSummary:
    """
    Run a replicated simulation of one survey design.

    Args:
        config: Simulation configuration (replicates, seed, true N, fitting options)
        region: Survey region
        density: Density surface over the region
        design: Survey design
        detection: Detection function used to simulate observations
        output_dir: If set, results are written to output_dir/ds_results.db
        progress_callback: Optional callback(completed, total) for progress updates
        stop_after: Stop once this many replicates have completed; the summary
            then covers the completed replicates only

    Returns:
        SimulationSummary (always returned, even if some or all replicates failed)

    Raises:
        InputError: If region, density or design are malformed
        ConfigurationError: If parameters are inconsistent, or output_dir
            already holds results for this sim_id and design

    Example:
        >>> summary = run_simulation(config, region, density, design, detection)
        >>> summary.percent_bias, summary.n_failed
    """
    validate_inputs(config, region, density, design, detection)
    if stop_after is not None and stop_after <= 0:
        raise ConfigurationError(f"stop_after must be > 0, got {stop_after}")

    true_n = config.true_n if config.fixed_count else density.total()
    samples = generate_replicate_seeds(config)
    total = len(samples)
    limit = min(stop_after, total) if stop_after is not None else total

    shared_transects = None
    if design.is_fixed:
        shared_transects = generate_transects(design, region, layout_rng(config))

    inputs = SimulationInputs(
        config=config,
        region=region,
        density=density,
        design=design,
        detection=detection,
        shared_transects=shared_transects,
    )

    conn = None
    results_db_path = None
    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        results_db_path = output_dir / "ds_results.db"
        conn = create_ds_database(results_db_path)
        try:
            write_simulation_meta(conn, config, design.name, true_n)
        except ConfigurationError:
            conn.close()
            raise
        write_replicate_registry(conn, config.sim_id, design.name, samples)
        if shared_transects is not None:
            write_transects(
                conn, config.sim_id, design.name, SHARED_LAYOUT_ID, shared_transects
            )

    print(f"\n{'='*70}")
    print("Distance Sampling Simulation")
    print(f"{'='*70}")
    print(f"Simulation ID: {config.sim_id}")
    print(f"Design: {design.name} ({design.kind}, {'fixed' if design.is_fixed else 'randomised'})")
    print(f"Region: {region.name} ({region.area:.1f} {region.units}^2)")
    print(f"True N: {true_n:.0f} ({'fixed' if config.fixed_count else 'Poisson'})")
    print(f"Detection: {detection.key}, scale {detection.scale}, truncation {detection.truncation}")
    print(f"Replicates: {total}")
    print(f"Workers: {config.n_workers}")
    print(f"{'='*70}\n")

    results = []
    success_count = 0
    failure_count = 0

    def handle(result: dict) -> None:
        nonlocal success_count, failure_count
        if shared_transects is not None:
            result["transects"] = None
        if conn is not None:
            _record_result(conn, config, design.name, result)
        if shared_transects is not None:
            result["transects"] = shared_transects
        results.append(result)

        replicate_id = result["replicate_id"]
        if result["success"]:
            success_count += 1
            mark = "✓"
        else:
            failure_count += 1
            mark = "✗"
        print(
            f"[{len(results)}/{total}] Replicate {replicate_id:04d} "
            f"{mark} - {success_count} successful, {failure_count} failed"
        )
        if not result["success"]:
            print(f"  Failed at {result['stage']}: {result['error']}")

        if progress_callback:
            progress_callback(len(results), total)

    try:
        if config.n_workers == 1:
            for sample in samples[:limit]:
                handle(execute_single_replicate(sample, inputs))
        else:
            with ProcessPoolExecutor(max_workers=config.n_workers) as executor:
                future_to_sample = {
                    executor.submit(execute_single_replicate, sample, inputs): sample
                    for sample in samples
                }

                for future in as_completed(future_to_sample):
                    sample = future_to_sample[future]
                    try:
                        result = future.result()
                    except Exception as e:
                        result = {
                            "replicate_id": sample["replicate_id"],
                            "success": False,
                            "estimate": None,
                            "transects": None,
                            "stage": "error",
                            "error": f"worker exception: {e}",
                        }
                    handle(result)

                    if len(results) >= limit:
                        for pending in future_to_sample:
                            pending.cancel()
                        break

        if len(results) < total:
            status = "stopped"
        elif success_count == total:
            status = "complete"
        elif success_count > 0:
            status = "partial"
        else:
            status = "failed"

        if conn is not None:
            update_simulation_status(conn, config.sim_id, design.name, status)
    finally:
        if conn is not None:
            conn.close()

    summary = summarise_replicates(
        sim_id=config.sim_id,
        design=design.name,
        true_n=true_n,
        n_requested=total,
        results=results,
    )

    print(f"\n{'='*70}")
    print("Simulation Summary")
    print(f"{'='*70}")
    print(f"Completed: {summary.n_completed} of {total}")
    print(f"Successful: {summary.n_successful}")
    print(f"Failed: {summary.n_failed}")
    if summary.n_successful:
        print(f"Mean N-hat: {summary.mean_abundance:.1f} (true {true_n:.0f})")
        print(f"Percent bias: {summary.percent_bias:.2f}%")
        print(f"SD of N-hat: {summary.sd_abundance:.1f}  mean SE: {summary.mean_se:.1f}")
    print(f"Status: {status}")
    if results_db_path is not None:
        print(f"Results: {results_db_path}")
    print(f"{'='*70}\n")

    return summary
