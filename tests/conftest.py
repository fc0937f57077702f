"""Shared pytest fixtures for all test modules."""

from typing import Callable, List, Tuple

import numpy as np
import pytest


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast, isolated unit tests")


class RecordingPFunc:
    """
    Step-function p-value source that records every call.

    Feature i has p-value ``base[i]`` while ``mag <= thresholds[i]`` and 1.0
    beyond it, which makes the true confect of each feature exactly its
    threshold.
    """

    def __init__(self, thresholds, base=None):
        self.thresholds = np.asarray(thresholds, dtype=float)
        self.base = (
            np.zeros(len(self.thresholds)) if base is None else np.asarray(base, dtype=float)
        )
        self.calls: List[Tuple[np.ndarray, float]] = []

    def __call__(self, indices, mag):
        indices = np.asarray(indices)
        self.calls.append((indices.copy(), mag))
        return np.where(mag <= self.thresholds[indices], self.base[indices], 1.0)


@pytest.fixture
def step_pfunc() -> Callable[..., RecordingPFunc]:
    """Factory for recording step-function p-value sources."""
    return RecordingPFunc


@pytest.fixture
def z_scores() -> np.ndarray:
    """Five z-scores of alternating sign with one clear non-significant feature."""
    return np.array([1.0, -2.0, 3.0, -4.0, 5.0])
