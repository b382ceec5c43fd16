from __future__ import annotations

import math
import numbers
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, NamedTuple, Optional

import numpy as np
import pandas as pd


class DataError(ValueError):
    """Raised for structurally invalid input (wrong container, missing columns, unreadable file)."""


class Observation(NamedTuple):
    timestamp: float  # epoch milliseconds
    value: float


def is_finite_number(x: Any) -> bool:
    """True for real, finite numbers; booleans and numeric strings are not numbers here."""
    if isinstance(x, bool) or not isinstance(x, numbers.Real):
        return False
    return math.isfinite(x)


def ensure_sequence(data: Any, what: str = "data") -> List[Any]:
    """Materialize `data` as a list, rejecting scalars, strings and mappings."""
    if data is None or isinstance(data, (str, bytes, Mapping)):
        raise DataError(f"{what} must be a sequence, got {type(data).__name__}")
    if isinstance(data, (pd.Series, np.ndarray)):
        return list(np.asarray(data).ravel())
    try:
        return list(data)
    except TypeError:
        raise DataError(f"{what} must be a sequence, got {type(data).__name__}")


def as_observation(item: Any) -> Observation:
    """Read (timestamp, value) from an Observation, a mapping or any object with those attributes.

    Missing fields come back as None and are dropped later by the preprocessor.
    """
    if isinstance(item, Observation):
        return item
    if isinstance(item, Mapping):
        return Observation(item.get("timestamp"), item.get("value"))
    if isinstance(item, (tuple, list)) and len(item) == 2:
        return Observation(item[0], item[1])
    return Observation(getattr(item, "timestamp", None), getattr(item, "value", None))


def load_table(uploaded_file) -> pd.DataFrame:
    """Load user data from CSV/Excel."""
    if uploaded_file is None:
        raise DataError("No file provided.")

    name = (getattr(uploaded_file, "name", "") or str(uploaded_file)).lower()
    try:
        if hasattr(uploaded_file, "seek"):
            uploaded_file.seek(0)
        if name.endswith((".xlsx", ".xls")):
            df = pd.read_excel(uploaded_file, engine="openpyxl" if name.endswith(".xlsx") else "xlrd")
        else:
            # Sniff the delimiter (comma, semicolon, tab...)
            df = pd.read_csv(uploaded_file, sep=None, engine="python", on_bad_lines="skip")
        df.columns = [str(c).strip().strip('"\'') for c in df.columns]
    except Exception as e:
        raise DataError(f"Failed to read file: {e}")

    if df.empty:
        raise DataError("File is empty.")
    return df


def observations_from_frame(df: pd.DataFrame, date_col: str, value_col: str) -> List[Observation]:
    """Convert table rows into observations with UTC epoch-millisecond timestamps.

    Unparseable dates and values become NaN so the preprocessor discards them.
    """
    if date_col not in df.columns:
        raise DataError(f"Date column '{date_col}' not found in data")
    if value_col not in df.columns:
        raise DataError(f"Value column '{value_col}' not found in data")

    ds = pd.to_datetime(df[date_col], errors="coerce", utc=True)
    # datetime64[ns] -> ms since epoch; NaT turns into NaN
    millis = (ds - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(milliseconds=1)
    values = pd.to_numeric(df[value_col], errors="coerce").astype(float)
    return [
        Observation(float(ts), float(v))
        for ts, v in zip(millis.astype(float).to_numpy(), values.to_numpy())
    ]


def validate_data(data: Iterable[Any], minimum: int = 10) -> Dict[str, Any]:
    """Pre-flight check for an analysis request. Never raises."""
    try:
        items = ensure_sequence(data)
    except DataError as e:
        return {"valid": False, "error": str(e)}

    if len(items) < minimum:
        return {
            "valid": False,
            "error": f"Insufficient data: {len(items)} points (minimum {minimum} required)",
            "details": {"actual": len(items), "required": minimum},
        }

    valid_points = 0
    for item in items:
        if is_finite_number(item):
            valid_points += 1
        elif is_finite_number(as_observation(item).value):
            valid_points += 1

    if valid_points < minimum:
        return {
            "valid": False,
            "error": f"Insufficient valid data points: {valid_points} (minimum {minimum} required)",
            "details": {"actual": valid_points, "required": minimum, "total": len(items)},
        }

    return {"valid": True, "error": None, "data_points": valid_points}


def coerce_horizon(value: Any, what: str = "horizon") -> int:
    """Number of steps to forecast; negative values become 0."""
    try:
        steps = int(value)
    except (TypeError, ValueError, OverflowError):
        raise DataError(f"{what} must be a finite integer, got {value!r}")
    return max(0, steps)


def naive_forecast(last_value: Optional[float], horizon: int) -> np.ndarray:
    """Repeat the last known value; zeros when nothing is known."""
    fill = 0.0 if last_value is None else float(last_value)
    return np.full(max(0, int(horizon)), fill, dtype=float)
