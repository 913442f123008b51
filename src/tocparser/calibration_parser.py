# src/tocparser/calibration_parser.py
"""
Calibration-standard extraction.

Each calibration block is one standard identifier ('Std 1' .. 'Std K') run on
both channels back to back; the analyzer auto-dilutes the stock into several
levels, reported in the 'conc' column of the standard rows.
"""

from __future__ import annotations
import logging
from typing import Optional

import pandas as pd

from tocparser.config import RunConfig
from tocparser.errors import MissingCalibrationError
from tocparser.records import is_flush, standard_index

logger = logging.getLogger(__name__)

WINDOW_COLUMNS = ["channel", "curve_index", "start", "end", "n_injections"]


def _curve_indices(df: pd.DataFrame, config: RunConfig) -> pd.Series:
    return df["sample_id"].map(lambda s: standard_index(s, config)).astype("Int64")


def extract_calibration(clean: pd.DataFrame, config: Optional[RunConfig] = None) -> pd.DataFrame:
    """
    Calibration-standard rows of a cleaned run with an added 'curve_index'.
    Flush rows are never standards, even if their label contains 'Std'.
    """
    config = config or RunConfig()
    df = clean.copy()
    df["curve_index"] = _curve_indices(df, config)
    flush = df["sample_id"].map(lambda s: is_flush(s, config)).astype(bool)
    cal = df[df["curve_index"].notna() & ~flush].reset_index(drop=True)

    out_of_range = cal[(cal["curve_index"] < 1) | (cal["curve_index"] > config.n_curves)]
    if not out_of_range.empty:
        logger.warning(
            "Standards outside 1..%d found: %s",
            config.n_curves, sorted(out_of_range["sample_id"].unique().tolist()),
        )
    logger.debug("Calibration rows: %d", len(cal))
    return cal


def split_unknowns(clean: pd.DataFrame, config: Optional[RunConfig] = None) -> pd.DataFrame:
    """Rows that are neither calibration standards nor flushes."""
    config = config or RunConfig()
    idx = _curve_indices(clean, config)
    flush = clean["sample_id"].map(lambda s: is_flush(s, config)).astype(bool)
    return clean[idx.isna() & ~flush].reset_index(drop=True)


def run_windows(calibration: pd.DataFrame) -> pd.DataFrame:
    """
    Time span of every (channel, curve_index) standard block:
    start = first injection, end = last injection (all replicates and levels).
    """
    if calibration.empty:
        return pd.DataFrame(columns=WINDOW_COLUMNS)
    out = (
        calibration
        .groupby(["channel", "curve_index"], as_index=False)
        .agg(start=("timestamp", "min"), end=("timestamp", "max"), n_injections=("timestamp", "size"))
    )
    out["curve_index"] = out["curve_index"].astype(int)
    return out.sort_values(["curve_index", "start"], ignore_index=True)[WINDOW_COLUMNS]


def window_for(windows: pd.DataFrame, channel: str, curve_index: int) -> pd.Series:
    """Look up one block's window; a missing block is fatal."""
    hit = windows[(windows["channel"] == channel) & (windows["curve_index"] == curve_index)]
    if hit.empty:
        raise MissingCalibrationError(channel, curve_index)
    return hit.iloc[0]
