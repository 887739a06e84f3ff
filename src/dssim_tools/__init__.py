"""
DSSim Tools - Library for simulating distance-sampling line-transect surveys.

This package provides utilities for:
- Building survey regions and density surfaces
- Generating animal populations
- Laying out fixed, parallel and zigzag transect designs
- Simulating detections with half-normal / hazard-rate detection functions
- Fitting detection functions and selecting models by AIC
- Estimating abundance with standard errors and confidence intervals
- Replicating whole surveys to compare the bias and precision of designs
"""

from .data_loader import load_density, load_region, load_transects
from .density import DensityField
from .design import Design, Transect, TransectSet, generate_transects
from .detection import DetectionModel
from .errors import ConfigurationError, DSSimError, InputError, ReplicateFailure
from .estimator import ReplicateEstimate, estimate_abundance
from .fitting import (
    DetectionForm,
    FittedModel,
    fit_detection_function,
    get_form,
    register_form,
    select_model,
)
from .population import Population, generate_population
from .region import Region
from .simulation import (
    SimulationConfig,
    SimulationSummary,
    compare_designs,
    load_simulation_summary,
    run_simulation,
)
from .survey import SurveyResult, simulate_survey

__all__ = [
    "Region",
    "DensityField",
    "Population",
    "generate_population",
    "Design",
    "Transect",
    "TransectSet",
    "generate_transects",
    "DetectionModel",
    "SurveyResult",
    "simulate_survey",
    "DetectionForm",
    "FittedModel",
    "fit_detection_function",
    "select_model",
    "get_form",
    "register_form",
    "ReplicateEstimate",
    "estimate_abundance",
    "SimulationConfig",
    "SimulationSummary",
    "run_simulation",
    "compare_designs",
    "load_simulation_summary",
    "load_region",
    "load_transects",
    "load_density",
    "DSSimError",
    "InputError",
    "ConfigurationError",
    "ReplicateFailure",
]
