import numpy as np
import pytest

from data_model import LifeDataSet
from distributions import WeibullParameters


def weibull_times(n, seed, beta=2.0, eta=1000.0):
    rng = np.random.default_rng(seed)
    return eta * rng.weibull(beta, n)


def weibull_quantile_times(n, beta=2.0, eta=1000.0):
    """Evenly spread sample: Weibull quantiles at (i - 0.5) / n."""
    p = (np.arange(1, n + 1) - 0.5) / n
    return eta * (-np.log1p(-p)) ** (1.0 / beta)


@pytest.fixture
def true_weibull():
    return WeibullParameters(2.0, 1000.0)


@pytest.fixture
def weibull_dataset():
    return LifeDataSet.from_times(weibull_times(30, seed=7))


@pytest.fixture
def censored_dataset():
    times = weibull_times(40, seed=11)
    return LifeDataSet.from_times(times[times <= 1300.0], np.full((times > 1300.0).sum(), 1300.0))


@pytest.fixture
def five_point_dataset():
    return LifeDataSet.from_times([500, 900, 1200, 1600, 1800])


@pytest.fixture
def sparse_dataset():
    """Two failures and eight units still running at 800."""
    return LifeDataSet.from_times([300.0, 700.0], [800.0] * 8)
