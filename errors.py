"""
Error taxonomy and the discriminated result returned by public entry points.
"""

from dataclasses import dataclass
from typing import Any, Optional


class ReliabilityError(Exception):
    """Base class for every typed failure of an analysis."""

    @property
    def kind(self):
        return type(self).__name__


class InsufficientDataError(ReliabilityError):
    """Fewer valid failures than the analysis needs."""


class NonConvergentFitError(ReliabilityError):
    """An iterative fit or likelihood search did not converge."""


class DomainError(ReliabilityError, ValueError):
    """Non-positive time, invalid parameter or probability outside (0, 1)."""


class IncompatibleInputError(ReliabilityError, ValueError):
    """Inputs that cannot be combined, e.g. a rank table of the wrong size."""


@dataclass(frozen=True)
class AnalysisResult:
    """Either a value or a typed error, never both."""
    value: Any = None
    error: Optional[ReliabilityError] = None

    @property
    def ok(self):
        return self.error is None

    def unwrap(self):
        if self.error is not None:
            raise self.error
        return self.value
