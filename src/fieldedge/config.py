"""Configuration constants for the field-edge response curve analysis."""

from pathlib import Path

try:
    from importlib.metadata import version as _pkg_version

    _VERSION = _pkg_version("fieldedge")
except Exception:
    _VERSION = "dev"

DATA_DIR = Path("data")
MODELS_SUBDIR = "models"  # <data-dir>/models/<model_id>.nc
OBSERVATIONS_SUBDIR = "observations"  # <data-dir>/observations/<table>.parquet
RESULTS_DIR = Path("results")
DEFAULT_DATASET = "edge-arthropods"

# Factor levels, reference level first (treatment coding upstream)
CROP_TYPES = ("Cereal", "Legume", "Maize", "Oilseed", "Vegetable")
HABITAT_TYPES = ("control", "herbaceous", "woody")
REFERENCE_LEVELS = {"crop": CROP_TYPES[0], "habitat": HABITAT_TYPES[0]}

GROUPING_KEYS = (None, "crop", "habitat")
NUISANCE_DIMS = ("crop", "habitat")

DIST_STEP = 1.0  # metres between grid distances
TRAP_DAYS_STEP = 1.0  # days between grid trap-day values
SWEEP_TOLERANCE = 1e-9  # fraction of a step treated as float noise at the upper bound

INTERVAL_WIDTHS = (0.5, 0.8, 0.95)
INTERVAL_METHODS = ("qi", "hdi")
MARGINALIZATION_POLICIES = ("average", "reference", "raw")
DEFAULT_POLICY = "average"

RANDOM_SEED = 42
SUMMARY_DISTANCES = (0.0, 25.0, 50.0, 100.0)  # rows shown in the report tables
