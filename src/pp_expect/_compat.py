"""Input compatibility layer for pandas and optional Polars support.

Posterior draws often arrive as data frames (one column per
observation, one row per draw).  This module converts such inputs to
NumPy arrays at the boundary so that the family functions operate on
plain ``float`` arrays only.

Polars is **not** a required dependency.  If it is not installed, the
converter simply handles NumPy and pandas objects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    import polars as pl

    DrawsLike: TypeAlias = np.ndarray | pd.DataFrame | pd.Series | pl.DataFrame
else:
    DrawsLike: TypeAlias = np.ndarray | pd.DataFrame | pd.Series

# Runtime detection; Polars is not a hard dependency.
try:
    import polars as pl

    _HAS_POLARS = True
except ImportError:
    _HAS_POLARS = False


def _ensure_numpy(obj: Any, *, name: str = "input") -> np.ndarray:
    """Convert *obj* to a floating-point :class:`numpy.ndarray`.

    Accepted types:
        * ``numpy.ndarray`` and anything ``np.asarray`` understands
          (lists, scalars) — converted to ``float``.
        * ``pandas.DataFrame`` / ``pandas.Series`` — via ``.to_numpy()``.
        * ``polars.DataFrame`` / ``polars.Series`` — via ``.to_numpy()``;
          ``polars.LazyFrame`` is collected first.

    Args:
        obj: The object to convert.
        name: Label used in error messages (e.g. ``"mu"``).

    Returns:
        A ``float`` NumPy array.  Column labels are dropped.

    Raises:
        TypeError: If *obj* cannot be interpreted as a numeric array.
    """
    if isinstance(obj, (pd.DataFrame, pd.Series)):
        obj = obj.to_numpy()
    elif _HAS_POLARS:
        if isinstance(obj, pl.LazyFrame):
            obj = obj.collect().to_numpy()
        elif isinstance(obj, (pl.DataFrame, pl.Series)):
            obj = obj.to_numpy()

    try:
        return np.asarray(obj, dtype=float)
    except (TypeError, ValueError):
        msg = (
            f"'{name}' must be a numeric array, pandas object"
            + (" or Polars frame" if _HAS_POLARS else "")
            + f", got {type(obj).__name__}."
        )
        raise TypeError(msg) from None
