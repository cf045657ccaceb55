"""
Life distribution families.

Each family is one ``DistributionModel`` subclass paired with an immutable
parameter dataclass. Densities and survival functions are written in log
space so they stay finite for times spanning many decades.
"""

import math
from dataclasses import dataclass, fields

import numpy as np
from scipy import special
from scipy.special import gamma as gamma_fn

from errors import DomainError

LOG_SQRT_2PI = 0.5 * math.log(2.0 * math.pi)


def _positive(name, value):
    value = float(value)
    if not math.isfinite(value) or value <= 0:
        raise DomainError(f"Parameter {name} must be positive and finite, got {value!r}")
    return value


def _finite(name, value):
    value = float(value)
    if not math.isfinite(value):
        raise DomainError(f"Parameter {name} must be finite, got {value!r}")
    return value


def check_times(t):
    arr = np.asarray(t, dtype=float)
    if np.any(~np.isfinite(arr)) or np.any(arr <= 0):
        raise DomainError("Times must be positive and finite")
    return arr


def check_probabilities(p):
    arr = np.asarray(p, dtype=float)
    if np.any(~np.isfinite(arr)) or np.any(arr <= 0) or np.any(arr >= 1):
        raise DomainError("Probabilities must lie strictly between 0 and 1")
    return arr


# =====================================================================
# Parameter variants
# =====================================================================

@dataclass(frozen=True)
class DistributionParameters:
    family = None

    @property
    def values(self):
        return tuple(getattr(self, f.name) for f in fields(self))

    def as_dict(self):
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class WeibullParameters(DistributionParameters):
    beta: float
    eta: float
    family = "Weibull"

    def __post_init__(self):
        object.__setattr__(self, "beta", _positive("beta", self.beta))
        object.__setattr__(self, "eta", _positive("eta", self.eta))


@dataclass(frozen=True)
class LognormalParameters(DistributionParameters):
    mu: float
    sigma: float
    family = "Lognormal"

    def __post_init__(self):
        object.__setattr__(self, "mu", _finite("mu", self.mu))
        object.__setattr__(self, "sigma", _positive("sigma", self.sigma))


@dataclass(frozen=True)
class NormalParameters(DistributionParameters):
    mu: float
    sigma: float
    family = "Normal"

    def __post_init__(self):
        object.__setattr__(self, "mu", _finite("mu", self.mu))
        object.__setattr__(self, "sigma", _positive("sigma", self.sigma))


@dataclass(frozen=True)
class ExponentialParameters(DistributionParameters):
    lam: float
    family = "Exponential"

    def __post_init__(self):
        object.__setattr__(self, "lam", _positive("lam", self.lam))


@dataclass(frozen=True)
class LoglogisticParameters(DistributionParameters):
    alpha: float
    beta: float
    family = "Loglogistic"

    def __post_init__(self):
        object.__setattr__(self, "alpha", _positive("alpha", self.alpha))
        object.__setattr__(self, "beta", _positive("beta", self.beta))


@dataclass(frozen=True)
class GumbelParameters(DistributionParameters):
    mu: float
    sigma: float
    family = "Gumbel"

    def __post_init__(self):
        object.__setattr__(self, "mu", _finite("mu", self.mu))
        object.__setattr__(self, "sigma", _positive("sigma", self.sigma))


# =====================================================================
# Models
# =====================================================================

class DistributionModel:
    """Strategy interface implemented once per family.

    Subclasses provide the standardised variable ``_z``, the log density,
    the log survival and the probability-paper axes. Everything else is
    derived here.
    """
    name = None
    params_class = None
    # True where the unconstrained coordinate is log(parameter)
    log_parameters = ()
    # probability paper x axis is ln(t)
    log_time = True

    @property
    def param_names(self):
        return tuple(f.name for f in fields(self.params_class))

    @property
    def n_params(self):
        return len(self.log_parameters)

    def make_params(self, *values):
        return self.params_class(*values)

    def _check_params(self, params):
        if not isinstance(params, self.params_class):
            raise DomainError(f"{self.name} model received {type(params).__name__}")

    # -- probability functions ------------------------------------------
    def log_density(self, t, params):
        self._check_params(params)
        return self._log_density(check_times(t), params)

    def log_survival(self, t, params):
        self._check_params(params)
        return self._log_survival(check_times(t), params)

    def survival(self, t, params):
        return np.exp(self.log_survival(t, params))

    def cdf(self, t, params):
        return -np.expm1(self.log_survival(t, params))

    def pdf(self, t, params):
        return np.exp(self.log_density(t, params))

    def hazard(self, t, params):
        return np.exp(self.log_density(t, params) - self.log_survival(t, params))

    def quantile(self, p, params):
        self._check_params(params)
        return self._quantile(check_probabilities(p), params)

    def sample(self, params, size, rng):
        """Inverse-transform sampling from an explicit generator."""
        u = rng.uniform(size=size)
        u = np.clip(u, np.finfo(float).tiny, 1.0 - np.finfo(float).eps)
        return self._quantile(u, params)

    # -- probability paper ----------------------------------------------
    def transform_x(self, t):
        return np.log(check_times(t))

    def transform_y(self, p):
        return self._transform_y(check_probabilities(p))

    def inverse_y(self, y):
        return self._inverse_y(np.asarray(y, dtype=float))

    def line(self, params):
        """(slope, intercept) of the parameter set on the transformed axes."""
        self._check_params(params)
        return self._line(params)

    def from_line(self, slope, intercept):
        if not math.isfinite(slope) or not math.isfinite(intercept) or slope <= 0:
            raise DomainError(f"Fitted line has an invalid slope ({slope!r})")
        return self._from_line(float(slope), float(intercept))

    def y_at(self, t, params):
        slope, intercept = self.line(params)
        return intercept + slope * self.transform_x(t)

    # -- optimiser coordinates ------------------------------------------
    def to_unconstrained(self, params):
        self._check_params(params)
        vals = np.array(params.values, dtype=float)
        for i, is_log in enumerate(self.log_parameters):
            if is_log:
                vals[i] = math.log(vals[i])
        return vals

    def from_unconstrained(self, theta):
        vals = []
        for value, is_log in zip(np.asarray(theta, dtype=float), self.log_parameters):
            vals.append(math.exp(value) if is_log else float(value))
        return self.params_class(*vals)

    def unconstrained_jacobian(self, params):
        """d(natural)/d(unconstrained), diagonal."""
        vals = np.array(params.values, dtype=float)
        return np.diag([v if is_log else 1.0 for v, is_log in zip(vals, self.log_parameters)])

    def mean(self, params):
        raise NotImplementedError

    def __repr__(self):
        return f"<{type(self).__name__}>"


class _WeibitAxis:
    def _transform_y(self, p):
        return np.log(-np.log1p(-p))

    def _inverse_y(self, y):
        return -np.expm1(-np.exp(y))


class _ProbitAxis:
    def _transform_y(self, p):
        return special.ndtri(p)

    def _inverse_y(self, y):
        return special.ndtr(y)


class WeibullModel(_WeibitAxis, DistributionModel):
    name = "Weibull"
    params_class = WeibullParameters
    log_parameters = (True, True)

    def _log_density(self, t, p):
        z = p.beta * (np.log(t) - math.log(p.eta))
        return math.log(p.beta) - np.log(t) + z - np.exp(z)

    def _log_survival(self, t, p):
        return -np.exp(p.beta * (np.log(t) - math.log(p.eta)))

    def _quantile(self, q, p):
        return p.eta * (-np.log1p(-q)) ** (1.0 / p.beta)

    def _line(self, p):
        return p.beta, -p.beta * math.log(p.eta)

    def _from_line(self, slope, intercept):
        return WeibullParameters(slope, math.exp(-intercept / slope))

    def mean(self, p):
        return p.eta * gamma_fn(1.0 + 1.0 / p.beta)


class LognormalModel(_ProbitAxis, DistributionModel):
    name = "Lognormal"
    params_class = LognormalParameters
    log_parameters = (False, True)

    def _log_density(self, t, p):
        z = (np.log(t) - p.mu) / p.sigma
        return -np.log(t) - math.log(p.sigma) - LOG_SQRT_2PI - 0.5 * z * z

    def _log_survival(self, t, p):
        return special.log_ndtr(-(np.log(t) - p.mu) / p.sigma)

    def _quantile(self, q, p):
        return np.exp(p.mu + p.sigma * special.ndtri(q))

    def _line(self, p):
        return 1.0 / p.sigma, -p.mu / p.sigma

    def _from_line(self, slope, intercept):
        return LognormalParameters(-intercept / slope, 1.0 / slope)

    def mean(self, p):
        return math.exp(p.mu + 0.5 * p.sigma ** 2)


class NormalModel(_ProbitAxis, DistributionModel):
    name = "Normal"
    params_class = NormalParameters
    log_parameters = (False, True)
    log_time = False

    def transform_x(self, t):
        return check_times(t).astype(float)

    def _log_density(self, t, p):
        z = (t - p.mu) / p.sigma
        return -math.log(p.sigma) - LOG_SQRT_2PI - 0.5 * z * z

    def _log_survival(self, t, p):
        return special.log_ndtr(-(t - p.mu) / p.sigma)

    def _quantile(self, q, p):
        return p.mu + p.sigma * special.ndtri(q)

    def _line(self, p):
        return 1.0 / p.sigma, -p.mu / p.sigma

    def _from_line(self, slope, intercept):
        return NormalParameters(-intercept / slope, 1.0 / slope)

    def mean(self, p):
        return p.mu


class ExponentialModel(DistributionModel):
    name = "Exponential"
    params_class = ExponentialParameters
    log_parameters = (True,)
    log_time = False

    def transform_x(self, t):
        return check_times(t).astype(float)

    def _transform_y(self, p):
        return -np.log1p(-p)

    def _inverse_y(self, y):
        return -np.expm1(-y)

    def _log_density(self, t, p):
        return math.log(p.lam) - p.lam * t

    def _log_survival(self, t, p):
        return -p.lam * t

    def _quantile(self, q, p):
        return -np.log1p(-q) / p.lam

    def _line(self, p):
        return p.lam, 0.0

    def _from_line(self, slope, intercept):
        # the exponential line is pinned through the origin
        return ExponentialParameters(slope)

    def mean(self, p):
        return 1.0 / p.lam


class LoglogisticModel(DistributionModel):
    name = "Loglogistic"
    params_class = LoglogisticParameters
    log_parameters = (True, True)

    def _transform_y(self, p):
        return special.logit(p)

    def _inverse_y(self, y):
        return special.expit(y)

    def _log_density(self, t, p):
        z = p.beta * (np.log(t) - math.log(p.alpha))
        return math.log(p.beta) - np.log(t) + special.log_expit(z) + special.log_expit(-z)

    def _log_survival(self, t, p):
        return special.log_expit(-p.beta * (np.log(t) - math.log(p.alpha)))

    def _quantile(self, q, p):
        return p.alpha * (q / (1.0 - q)) ** (1.0 / p.beta)

    def _line(self, p):
        return p.beta, -p.beta * math.log(p.alpha)

    def _from_line(self, slope, intercept):
        return LoglogisticParameters(math.exp(-intercept / slope), slope)

    def mean(self, p):
        if p.beta <= 1:
            return math.inf
        b = math.pi / p.beta
        return p.alpha * b / math.sin(b)


class GumbelModel(_WeibitAxis, DistributionModel):
    """Smallest extreme value distribution, the usual Gumbel of life data."""
    name = "Gumbel"
    params_class = GumbelParameters
    log_parameters = (False, True)
    log_time = False

    def transform_x(self, t):
        return check_times(t).astype(float)

    def _log_density(self, t, p):
        z = (t - p.mu) / p.sigma
        return -math.log(p.sigma) + z - np.exp(z)

    def _log_survival(self, t, p):
        return -np.exp((t - p.mu) / p.sigma)

    def _quantile(self, q, p):
        return p.mu + p.sigma * np.log(-np.log1p(-q))

    def _line(self, p):
        return 1.0 / p.sigma, -p.mu / p.sigma

    def _from_line(self, slope, intercept):
        return GumbelParameters(-intercept / slope, 1.0 / slope)

    def mean(self, p):
        return p.mu - np.euler_gamma * p.sigma


DISTRIBUTIONS = {
    model.name: model for model in (
        WeibullModel(), LognormalModel(), NormalModel(),
        ExponentialModel(), LoglogisticModel(), GumbelModel(),
    )
}


def get_model(distribution):
    """Look a model up by family name, parameter object or model instance."""
    if isinstance(distribution, DistributionModel):
        return distribution
    if isinstance(distribution, DistributionParameters):
        distribution = distribution.family
    for name, model in DISTRIBUTIONS.items():
        if str(distribution).strip().lower() == name.lower():
            return model
    raise DomainError(f"Unknown distribution family: {distribution!r}")


def cdf(t, params):
    return get_model(params).cdf(t, params)


def survival(t, params):
    return get_model(params).survival(t, params)


def log_density(t, params):
    return get_model(params).log_density(t, params)
