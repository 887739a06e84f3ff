"""
Defaults and constants shared across dssim_tools.

Paths can be overridden with the DSSIM_DATA_DIR and DSSIM_OUTPUT_DIR
environment variables.
"""

import os
from pathlib import Path


# Default data/output paths
DEFAULT_DATA_DIR = Path(os.environ.get("DSSIM_DATA_DIR", "data"))
DEFAULT_OUTPUT_DIR = Path(os.environ.get("DSSIM_OUTPUT_DIR", "outputs"))

# Length units understood by Region (value = metres per unit)
LENGTH_UNITS = {
    "m": 1.0,
    "km": 1000.0,
}

# Detection key functions available for simulating detections
VALID_DETECTION_KEYS = {"hn", "hr", "uf"}

# Candidate detection-function forms fitted by default
DEFAULT_CANDIDATE_FORMS = ("hn", "hr")

# Model selection criteria
VALID_CRITERIA = {"AIC", "AICc", "BIC"}

# Standard error methods for abundance estimates
VALID_VARIANCE_METHODS = {"analytic", "bootstrap"}

# Design kinds
VALID_DESIGN_KINDS = {"fixed", "parallel", "zigzag"}

# z-value for the 95% log-normal confidence interval
CI_Z = 1.96
