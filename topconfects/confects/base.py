# File: topconfects/confects/base.py
# Location: topconfects/topconfects/confects/base.py
"""
Core abstractions for the confident effect size framework.

Defines the PValueProvider abstract base class, the ConfectsConfig dataclass
consumed by ConfectsEngine, and the ConfectsResult container returned by the
engine and the provider-specific assemblers.
"""

from __future__ import annotations

import logging
import math
import numbers
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from topconfects.errors import InvalidArgumentError

logger = logging.getLogger("topconfects")


@dataclass
class ConfectsConfig:
    """
    Configuration for one confident effect size search.

    Fields
    ------
    fdr : float
        Target False Discovery Rate q, in (0, 1]. Default: 0.05.
    step : float
        Magnitude grid resolution. Magnitude k is ``k * step``. Must be > 0.
        Default: 0.001.
    full : bool
        Include ``fdr_zero`` (BH-adjusted p-value at magnitude 0) in the
        output table. Default: False.
    max_magnitude : float | None
        Stop the search once the next magnitude would exceed this value.
        None = ask the provider (``max_magnitude()``) or search until the
        active set is empty.
    max_steps : int
        Hard cap on the number of grid steps after magnitude 0. Features still
        active when it is hit keep the last magnitude they passed.
    """

    fdr: float = 0.05
    step: float = 0.001
    full: bool = False
    max_magnitude: float | None = None
    max_steps: int = 1_000_000

    def validate(self) -> None:
        """
        Check parameter ranges.

        Raises
        ------
        InvalidArgumentError
            If any field is out of range.
        """
        step_ok = isinstance(self.step, numbers.Real) and math.isfinite(self.step)
        if not step_ok or self.step <= 0:
            raise InvalidArgumentError(
                f"step must be a finite number > 0, got {self.step!r}", "step"
            )
        if not isinstance(self.fdr, numbers.Real) or not (0 < self.fdr <= 1):
            raise InvalidArgumentError(f"fdr must be in (0, 1], got {self.fdr!r}", "fdr")
        if self.max_magnitude is not None and not (self.max_magnitude >= 0):
            raise InvalidArgumentError(
                f"max_magnitude must be >= 0, got {self.max_magnitude!r}", "max_magnitude"
            )
        if self.max_steps < 1:
            raise InvalidArgumentError(
                f"max_steps must be >= 1, got {self.max_steps!r}", "max_steps"
            )


@dataclass
class ConfectsResult:
    """
    Result of a confident effect size search.

    Fields
    ------
    table : pd.DataFrame
        One row per feature, ordered by rank. Engine columns: ``rank``,
        ``index``, ``confect`` and, in full mode, ``fdr_zero``. Assemblers
        add ``effect`` and provider-specific columns.
    effect_desc : str
        Human readable description of the effect (e.g. "log2 fold change").
    fdr : float
        The FDR target the search was run at.
    step : float
        The magnitude grid resolution used.
    limits : tuple
        Natural (lower, upper) limits of the effect; None = unbounded.
    extra : dict
        Provider-specific attachments (e.g. the edgeR fit object).
    """

    table: pd.DataFrame
    effect_desc: str = "magnitude"
    fdr: float = 0.05
    step: float = 0.001
    limits: tuple[float | None, float | None] = (None, None)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def n_significant(self) -> int:
        """Number of features with a non-NA confect."""
        return int(self.table["confect"].notna().sum())

    def top(self, k: int = 10) -> pd.DataFrame:
        """First ``k`` rows of the ranked table."""
        return self.table.head(k)


class PValueProvider(ABC):
    """
    Abstract base class for per-feature, per-magnitude p-value sources.

    A provider answers "how likely is an effect this large if the true
    magnitude is at most ``mag``?" for a subset of features. The engine calls
    it once per grid step with the shrinking active set.

    P-values must be non-decreasing in ``mag`` for every feature. The engine
    relies on this but does not verify it.

    Methods
    -------
    n_features : int (property)
        Number of features the provider covers.
    evaluate(indices, mag) -> np.ndarray
        P-values for exactly ``indices``, in order.
    max_magnitude() -> float | None
        Magnitude beyond which no feature can plausibly remain significant.
    feature_bounds() -> np.ndarray | None
        The same bound for each feature individually.
    """

    @property
    @abstractmethod
    def n_features(self) -> int:
        """Number of features covered by this provider."""
        ...

    @abstractmethod
    def evaluate(self, indices: np.ndarray, mag: float) -> np.ndarray:
        """
        Compute p-values for a subset of features at one magnitude.

        Parameters
        ----------
        indices : np.ndarray of int
            Feature indices (0-based), in the order results are wanted.
        mag : float
            Non-negative magnitude threshold of the null hypothesis.

        Returns
        -------
        np.ndarray
            One p-value per requested index, same order.
        """
        ...

    def __call__(self, indices: np.ndarray, mag: float) -> np.ndarray:
        return self.evaluate(indices, mag)

    def max_magnitude(self) -> float | None:
        """Search bound offered to the engine. Default: no bound."""
        return None

    def feature_bounds(self) -> np.ndarray | None:
        """
        Per-feature magnitude bounds, one per feature, or None.

        A feature never keeps a confect above its own bound: once the grid
        passes it, the feature leaves the active set without being evaluated.
        Default: no per-feature bounds.
        """
        return None

    def prepare(self, n: int) -> None:  # noqa: B027
        """
        Called by the engine before the magnitude search.

        Default is a no-op. Subclasses override to verify their environment
        or warm caches.

        Parameters
        ----------
        n : int
            Number of features the engine will search over.
        """

    def finalize(self) -> None:  # noqa: B027
        """
        Called by the engine after the search completes or fails.

        Default is a no-op. Subclasses override to release resources.
        """
