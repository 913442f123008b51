# src/tocparser/records.py
"""
Record cleaning and sample-role classification.

Roles are decided from the sample identifier only:
  - flush:       identifier matches RunConfig.flush_pattern (e.g. 'Flush', 'flush 2')
  - calibration: identifier matches RunConfig.standard_pattern (e.g. 'Std 3')
  - unknown:     everything else
"""

from __future__ import annotations
import logging
import re
from typing import Any, Optional

import numpy as np
import pandas as pd

from tocparser.config import RunConfig
from tocparser.errors import RecordFormatError

logger = logging.getLogger(__name__)

_TRUE_FLAGS = {"1", "true", "yes", "y", "x", "excluded"}


def _to_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in _TRUE_FLAGS


def is_flush(sample_id: Any, config: Optional[RunConfig] = None) -> bool:
    config = config or RunConfig()
    return bool(re.search(config.flush_pattern, str(sample_id or "")))


def standard_index(sample_id: Any, config: Optional[RunConfig] = None) -> Optional[int]:
    """
    Curve index of a calibration-standard identifier, or None for other samples.
    'Std 2' -> 2, 'NPOC std-4' -> 4, 'Flush' -> None, 'Soil 12' -> None.
    """
    config = config or RunConfig()
    text = str(sample_id or "")
    if is_flush(text, config):
        return None
    m = re.search(config.standard_pattern, text)
    return int(m.group("index")) if m else None


def parse_timestamps(df: pd.DataFrame, config: Optional[RunConfig] = None) -> pd.Series:
    """Parse the raw 'datetime' column; any unparseable value is fatal."""
    config = config or RunConfig()
    ts = pd.to_datetime(df["datetime"], format=config.timestamp_format, errors="coerce")
    bad = ts.isna()
    if bad.any():
        row = df.loc[bad].iloc[0].to_dict()
        raise RecordFormatError(
            f"{int(bad.sum())} timestamp(s) do not match format {config.timestamp_format!r}",
            row=row,
        )
    return ts


def parse_vials(df: pd.DataFrame) -> pd.Series:
    """Vial numbers as nullable integers; a fractional or non-numeric vial is fatal."""
    vial = pd.to_numeric(df["vial"], errors="coerce").astype(float)
    present = df["vial"].notna() & df["vial"].astype(str).str.strip().ne("")
    bad = present.to_numpy() & ~(np.isfinite(vial) & (vial % 1 == 0)).to_numpy()
    if bad.any():
        raise RecordFormatError(
            f"{int(bad.sum())} vial number(s) are not whole numbers",
            row=df.loc[bad].iloc[0].to_dict(),
        )
    return vial.astype("Int64")


def clean_records(raw: pd.DataFrame, config: Optional[RunConfig] = None) -> pd.DataFrame:
    """
    Drop excluded injections and flush rows, add a parsed 'timestamp' column.

    Returns a new frame sorted chronologically (stable, so injection order is
    kept for equal timestamps). The input is not modified.
    """
    config = config or RunConfig()
    df = raw.copy()
    df["excluded"] = df["excluded"].map(_to_flag).astype(bool)
    n_excluded = int(df["excluded"].sum())
    df = df[~df["excluded"]]

    flush = df["sample_id"].map(lambda s: is_flush(s, config)).astype(bool)
    n_flush = int(flush.sum())
    df = df[~flush].copy()

    df["timestamp"] = parse_timestamps(df, config)
    if not df["timestamp"].is_monotonic_increasing:
        logger.warning("Injection timestamps are not in chronological order; sorting")
    df = df.sort_values("timestamp", kind="mergesort").reset_index(drop=True)
    df["vial"] = parse_vials(df)

    logger.info("Cleaned records: %d kept, %d excluded, %d flush", len(df), n_excluded, n_flush)
    return df
