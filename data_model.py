"""
Data model for the Life Data Toolkit.

Immutable value objects passed between the analysis modules. Every
object is produced once by a pure function and never mutated; numpy
arrays stored on them are private copies flagged read-only.
"""

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import numpy as np

from distributions import get_model
from errors import DomainError


def frozen_array(values):
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


class Event(enum.Enum):
    FAILURE = "Failure"
    SUSPENSION = "Suspension"

    @classmethod
    def parse(cls, status):
        if isinstance(status, cls):
            return status
        key = str(status).strip().lower()
        if key in ("f", "failure", "failed", "fail", "1"):
            return cls.FAILURE
        if key in ("s", "suspension", "suspended", "c", "censored", "0"):
            return cls.SUSPENSION
        raise DomainError(f"Unknown observation status: {status!r}")


class BoundMethod(enum.Enum):
    FISHER = "Fisher"
    LIKELIHOOD_RATIO = "LikelihoodRatio"

    @classmethod
    def parse(cls, method):
        if isinstance(method, cls):
            return method
        key = str(method).strip().lower().replace("_", "").replace("-", "").replace(" ", "")
        if key in ("fisher", "fm", "fishermatrix"):
            return cls.FISHER
        if key in ("likelihoodratio", "lr", "lrb"):
            return cls.LIKELIHOOD_RATIO
        raise DomainError(f"Unknown confidence bound method: {method!r}")


@dataclass(frozen=True)
class Observation:
    time: float
    event: Event

    def __post_init__(self):
        time = float(self.time)
        if not math.isfinite(time) or time <= 0:
            raise DomainError(f"Observation time must be positive and finite, got {self.time!r}")
        object.__setattr__(self, "time", time)
        object.__setattr__(self, "event", Event.parse(self.event))

    @property
    def is_failure(self):
        return self.event is Event.FAILURE


@dataclass(frozen=True)
class LifeDataSet:
    """Right-censored life data, sorted ascending by time.

    At equal times failures are ordered before suspensions, which is the
    usual convention for rank adjustment.
    """
    observations: Tuple[Observation, ...]

    def __post_init__(self):
        ordered = sorted(self.observations, key=lambda o: (o.time, not o.is_failure))
        object.__setattr__(self, "observations", tuple(ordered))

    @classmethod
    def from_times(cls, failures, suspensions=()):
        obs = [Observation(t, Event.FAILURE) for t in failures]
        obs += [Observation(t, Event.SUSPENSION) for t in suspensions]
        return cls(tuple(obs))

    @classmethod
    def from_records(cls, records):
        return cls(tuple(Observation(t, Event.parse(s)) for t, s in records))

    @property
    def n(self):
        return len(self.observations)

    @property
    def n_failures(self):
        return sum(1 for o in self.observations if o.is_failure)

    @property
    def times(self):
        return np.array([o.time for o in self.observations], dtype=float)

    @property
    def failures(self):
        return np.array([o.time for o in self.observations if o.is_failure], dtype=float)

    @property
    def suspensions(self):
        return np.array([o.time for o in self.observations if not o.is_failure], dtype=float)

    def __len__(self):
        return self.n


@dataclass(frozen=True)
class PlotPoint:
    time: float
    probability: float
    x: float
    y: float


@dataclass(frozen=True, eq=False)
class Curve:
    """Ordered (x, y) pairs on a family's transformed axes."""
    x: np.ndarray
    y: np.ndarray

    def __post_init__(self):
        x = frozen_array(self.x)
        y = frozen_array(self.y)
        if x.shape != y.shape:
            raise ValueError("Curve coordinates must have the same length")
        object.__setattr__(self, "x", x)
        object.__setattr__(self, "y", y)

    def points(self):
        return list(zip(self.x.tolist(), self.y.tolist()))

    def __len__(self):
        return len(self.x)


@dataclass(frozen=True, eq=False)
class FitResult:
    parameters: Any
    plot_points: Tuple[PlotPoint, ...]
    fitted_line: Curve
    r_squared: float
    method: str = "RRY"
    log_likelihood: Optional[float] = None
    iterations: int = 0
    residual_variance: float = 0.0

    @property
    def distribution(self):
        return self.parameters.family


@dataclass(frozen=True)
class BoundQuery:
    """Unreliability bounds evaluated at one time."""
    time: float
    lower: float
    estimate: float
    upper: float

    @property
    def reliability(self):
        return 1.0 - self.estimate

    @property
    def reliability_lower(self):
        return 1.0 - self.upper

    @property
    def reliability_upper(self):
        return 1.0 - self.lower


@dataclass(frozen=True, eq=False)
class ConfidenceBoundSet:
    """Bound curves on the transformed probability axis.

    ``lower`` and ``upper`` bound the unreliability F(t); the reliability
    bounds are their complements in swapped order.
    """
    confidence_level: float
    method: BoundMethod
    sides: str
    distribution: str
    times: np.ndarray
    estimate: Curve
    lower: Curve
    upper: Curve
    point_query: Optional[BoundQuery] = None
    parameter_bounds: Dict[str, Tuple[float, float]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "times", frozen_array(self.times))

    @property
    def lower_probability(self):
        return get_model(self.distribution).inverse_y(self.lower.y)

    @property
    def upper_probability(self):
        return get_model(self.distribution).inverse_y(self.upper.y)

    @property
    def estimate_probability(self):
        return get_model(self.distribution).inverse_y(self.estimate.y)


@dataclass(frozen=True, eq=False)
class ContourData:
    center: Any
    param_names: Tuple[str, ...]
    ellipse: np.ndarray              # (n, 2) closed polygon, first row == last row
    per_parameter_bounds: Dict[str, Tuple[float, float]]
    axis_limits: Dict[str, Tuple[float, float]]
    confidence_level: float
    method: BoundMethod = BoundMethod.LIKELIHOOD_RATIO

    def __post_init__(self):
        object.__setattr__(self, "ellipse", frozen_array(self.ellipse))


@dataclass(frozen=True)
class CompetingMode:
    name: str
    dataset: LifeDataSet


@dataclass(frozen=True)
class ModeRanking:
    name: str
    failure_probability: float
    critical: bool = False


@dataclass(frozen=True, eq=False)
class SystemReliabilityCurve:
    times: np.ndarray
    reliability: np.ndarray
    mode_survival: Dict[str, np.ndarray]

    def __post_init__(self):
        object.__setattr__(self, "times", frozen_array(self.times))
        object.__setattr__(self, "reliability", frozen_array(self.reliability))
        object.__setattr__(self, "mode_survival",
                           {k: frozen_array(v) for k, v in self.mode_survival.items()})


@dataclass(frozen=True, eq=False)
class ModeFit:
    mode: CompetingMode
    fit: FitResult


@dataclass(frozen=True, eq=False)
class CompetingModesResult:
    modes: Tuple[ModeFit, ...]
    system: SystemReliabilityCurve
    ranking: Tuple[ModeRanking, ...]
    query_time: float
    system_failure_probability: float

    @property
    def critical_mode(self):
        return self.ranking[0].name


@dataclass(frozen=True)
class PopulationItem:
    age: float
    quantity: float

    def __post_init__(self):
        age = float(self.age)
        quantity = float(self.quantity)
        if not math.isfinite(age) or age < 0:
            raise DomainError(f"Item age must be >= 0, got {self.age!r}")
        if not math.isfinite(quantity) or quantity <= 0:
            raise DomainError(f"Item quantity must be > 0, got {self.quantity!r}")
        object.__setattr__(self, "age", age)
        object.__setattr__(self, "quantity", quantity)


@dataclass(frozen=True)
class FailureTriple:
    lower: float
    median: float
    upper: float

    def scaled(self, factor):
        return FailureTriple(self.lower * factor, self.median * factor, self.upper * factor)


@dataclass(frozen=True)
class ItemForecast:
    age: float
    quantity: float
    expected_failures: FailureTriple


@dataclass(frozen=True, eq=False)
class BudgetForecast:
    per_item: Tuple[ItemForecast, ...]
    totals: FailureTriple
    applied_unit_cost: float
    cost: FailureTriple
    recommended_stock: int
    horizon: float
    confidence_level: float
    method: BoundMethod
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, eq=False)
class MonteCarloResult:
    """Dispersion of rank-regression refits of synthetic samples.

    Curves are on the transformed axis; the ``*_probability`` arrays hold
    the same bands as unreliability.
    """
    reference: Any
    sample_size: int
    trials: int
    seed: Optional[int]
    times: np.ndarray
    percentiles: Tuple[float, float]
    reference_curve: Curve
    lower: Curve
    upper: Curve
    mean: Curve
    lower_probability: np.ndarray
    upper_probability: np.ndarray
    mean_probability: np.ndarray
    parameter_samples: Dict[str, np.ndarray]
    dropped_trials: int = 0

    def __post_init__(self):
        for name in ("times", "lower_probability", "upper_probability", "mean_probability"):
            object.__setattr__(self, name, frozen_array(getattr(self, name)))
        object.__setattr__(self, "parameter_samples",
                           {k: frozen_array(v) for k, v in self.parameter_samples.items()})


@dataclass(frozen=True, eq=False)
class BootstrapResult:
    distribution: str
    method: str
    n_bootstrap: int
    confidence_level: float
    parameter_samples: Dict[str, np.ndarray]
    parameter_means: Dict[str, float]
    parameter_intervals: Dict[str, Tuple[float, float]]
    reliability_at: Dict[float, FailureTriple]
    dropped: int = 0


@dataclass(frozen=True, eq=False)
class LifetimeSimulation:
    parameters: Any
    samples: np.ndarray
    b_lives: Dict[int, float]
    mttf: float
    histogram_counts: np.ndarray
    histogram_edges: np.ndarray
    total_cost: float

    def __post_init__(self):
        for name in ("samples", "histogram_counts", "histogram_edges"):
            object.__setattr__(self, name, frozen_array(getattr(self, name)))


@dataclass(frozen=True, eq=False)
class MaintenancePlan:
    parameters: Any
    preventive_cost: float
    corrective_cost: float
    intervals: np.ndarray
    cost_rates: np.ndarray
    optimal_interval: float
    optimal_cost_rate: float
    optimal_reliability: float
    replacement_recommended: bool
    strategies: Dict[str, float]

    def __post_init__(self):
        object.__setattr__(self, "intervals", frozen_array(self.intervals))
        object.__setattr__(self, "cost_rates", frozen_array(self.cost_rates))
