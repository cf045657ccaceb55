"""
Constants for the Life Data Toolkit.

Centralises solver tolerances, iteration caps, grid sizes and the
default confidence settings shared by the analysis modules.
"""

APP_NAME = "Life Data Toolkit"
APP_VERSION = "1.0.0"

# ── Distribution families ────────────────────────────────────────────────
DISTRIBUTION_NAMES = (
    "Weibull", "Lognormal", "Normal", "Exponential", "Loglogistic", "Gumbel",
)
DEFAULT_DISTRIBUTION = "Weibull"

# ── Plotting positions ───────────────────────────────────────────────────
BENARD_NUMERATOR_OFFSET = 0.3
BENARD_DENOMINATOR_OFFSET = 0.4
RANK_METHODS = ("benard", "exact")
RANK_TABLE_PERCENTILES = (5.0, 50.0, 95.0)
FITTED_LINE_POINTS = 50

# ── Maximum likelihood solver ────────────────────────────────────────────
MLE_TOLERANCE = 1e-8              # gradient norm at the estimate
MLE_STALL_GRADIENT = 1e-4         # accepted when the trust region stalls
MLE_MAX_ITERATIONS = 200
MAX_LOG_PARAMETER = 50.0          # |log| cap on scale and shape parameters

# ── Confidence bounds ────────────────────────────────────────────────────
DEFAULT_CONFIDENCE_LEVEL = 90.0   # percent
BOUND_SIDES = ("two-sided", "one-sided")
CURVE_POINTS = 100
LR_CURVE_POINTS = 50
BRACKET_MAX_EXPANSIONS = 40
ROOT_XTOL = 1e-9
CONTOUR_POINTS = 40
FISHER_ELLIPSE_POINTS = 72
AXIS_PADDING = 0.1

# ── Monte Carlo ──────────────────────────────────────────────────────────
MC_TRIALS_RANGE = (10, 2000)
MC_SAMPLE_SIZE_RANGE = (2, 100)
MC_PERCENTILES = (5.0, 95.0)
MC_MIN_SURVIVING_FRACTION = 0.5
MC_MAX_REDRAWS = 100
DEFAULT_BOOTSTRAP_ITERATIONS = 1000
DEFAULT_SIMULATIONS = 10000
LIFETIME_PERCENTILES = (10, 50, 90, 95, 99)
HISTOGRAM_BINS = 20

# ── Life metrics ─────────────────────────────────────────────────────────
INFANT_MORTALITY_LIMIT = 0.95
WEAR_OUT_LIMIT = 1.05
RELIABILITY_CURVE_POINTS = 101
CURVE_TIME_MARGIN = 1.2
REPLACEMENT_GRID_STEPS = 200
REPLACEMENT_HORIZON_QUANTILE = 0.999
