# File: topconfects/utils.py
# Location: topconfects/topconfects/utils.py
"""Small shared helpers."""

from __future__ import annotations

from typing import Any

import numpy as np

from topconfects.errors import LengthMismatchError


def broadcast(*args: Any, n: int | None = None) -> list[np.ndarray]:
    """
    Expand scalars and length-1 vectors to a common length.

    Parameters
    ----------
    *args
        Scalars or 1-D sequences, each of length 1 or ``n``.
    n : int, optional
        Target length. Defaults to the longest argument, or 0 if any
        argument is empty.

    Returns
    -------
    list of np.ndarray
        One float array of length ``n`` per argument, in argument order.

    Raises
    ------
    LengthMismatchError
        If any argument has a length that is neither 1 nor ``n``.
    """
    arrays = [np.atleast_1d(np.asarray(a, dtype=float)).ravel() for a in args]
    if n is None:
        # An empty argument makes the whole set empty.
        n = 0 if any(len(a) == 0 for a in arrays) else max((len(a) for a in arrays), default=0)

    bad = {f"arg{i}": len(a) for i, a in enumerate(arrays) if len(a) not in (1, n)}
    if bad:
        raise LengthMismatchError(bad, n)

    return [np.repeat(a, n) if len(a) == 1 else a.copy() for a in arrays]
