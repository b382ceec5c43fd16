"""
Turn irregular (timestamp, value) observations into a contiguous daily series.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

import numpy as np
import pandas as pd

from ts_config import DAY_MS
from ts_core import as_observation, ensure_sequence, is_finite_number

logger = logging.getLogger(__name__)


def _clean_records(observations: Iterable[Any]) -> pd.DataFrame:
    rows = []
    for item in ensure_sequence(observations, "observations"):
        obs = as_observation(item)
        if is_finite_number(obs.timestamp) and is_finite_number(obs.value):
            rows.append((float(obs.timestamp), float(obs.value)))
    return pd.DataFrame(rows, columns=["timestamp", "value"])


def fill_gaps(y: pd.Series) -> pd.Series:
    """Fill missing days in an evenly spaced series.

    Interior gaps get a linear ramp between their neighbours, a trailing gap
    repeats the last known value, a leading gap repeats the first known value
    and a series with nothing known becomes all zeros.
    """
    filled = y.astype(float).interpolate(method="linear", limit_area="inside")
    return filled.ffill().bfill().fillna(0.0)


def daily_totals(observations: Iterable[Any]) -> pd.Series:
    """Gap-filled daily sums indexed by day number (days since the epoch, UTC)."""
    records = _clean_records(observations)
    if records.empty:
        return pd.Series([], dtype=float, index=pd.Index([], dtype=np.int64, name="day"))

    # Floor division truncates to UTC midnight, also before 1970
    records["day"] = np.floor(records["timestamp"] / DAY_MS).astype(np.int64)
    totals = records.groupby("day")["value"].sum()

    days = pd.Index(np.arange(totals.index.min(), totals.index.max() + 1, dtype=np.int64), name="day")
    n_missing = len(days) - len(totals)
    if n_missing:
        logger.debug("Filling %d missing day(s) out of %d", n_missing, len(days))
    return fill_gaps(totals.reindex(days))


def daily_frame(observations: Iterable[Any]) -> pd.DataFrame:
    """Daily totals as a frame with 'ds' (UTC midnight) and 'y' columns."""
    totals = daily_totals(observations)
    ds = pd.to_datetime(totals.index.to_numpy() * DAY_MS, unit="ms", utc=True)
    return pd.DataFrame({"ds": ds, "y": totals.to_numpy(dtype=float)})


def prepare_daily_series(observations: Iterable[Any]) -> np.ndarray:
    """Daily summed, gap-filled values in chronological order; empty if nothing usable."""
    return daily_totals(observations).to_numpy(dtype=float)


def series_from_values(values: Iterable[Any]) -> np.ndarray:
    """Entry point for input that is already a numeric sequence: keep the finite numbers."""
    kept = [float(v) for v in ensure_sequence(values, "values") if is_finite_number(v)]
    return np.asarray(kept, dtype=float)
