# src/tocparser/intervals.py
"""
Calibration intervals and sample-to-curve assignment.

Both channels' standards run back to back as one combined block, so a single
time window per curve index governs every channel:

    interval i = [end of last-running channel's block i,
                  start of first-running channel's block i+1)     for i < K

Samples injected between block i and block i+1 are quantified with curve i.
Interval K only spans block K itself and is never used for assignment.
"""

from __future__ import annotations
import logging
from typing import List, Optional, Sequence

import pandas as pd

from tocparser.calibration_parser import window_for
from tocparser.errors import IntervalOrderError

logger = logging.getLogger(__name__)

INTERVAL_COLUMNS = ["curve_index", "start", "end", "placeholder"]


def build_intervals(
    windows: pd.DataFrame,
    channel_order: Sequence[str],
    n_curves: int,
    strict: bool = False,
) -> pd.DataFrame:
    """
    Build the K assignment intervals from per-(channel, curve_index) run windows.

    Every (channel, index) in channel_order x 1..K must be present, otherwise
    MissingCalibrationError is raised. Ordering problems among intervals 1..K-1
    are logged, or raised as IntervalOrderError when strict=True.
    """
    first, last = channel_order[0], channel_order[-1]
    for i in range(1, n_curves + 1):
        for channel in channel_order:
            window_for(windows, channel, i)

    rows = []
    for i in range(1, n_curves):
        rows.append({
            "curve_index": i,
            "start": window_for(windows, last, i)["end"],
            "end": window_for(windows, first, i + 1)["start"],
            "placeholder": False,
        })
    rows.append({
        "curve_index": n_curves,
        "start": window_for(windows, first, n_curves)["start"],
        "end": window_for(windows, last, n_curves)["end"],
        "placeholder": True,
    })
    intervals = pd.DataFrame(rows, columns=INTERVAL_COLUMNS)
    intervals["start"] = pd.to_datetime(intervals["start"])
    intervals["end"] = pd.to_datetime(intervals["end"])

    problems = check_intervals(intervals)
    if problems:
        if strict:
            raise IntervalOrderError("; ".join(problems))
        for p in problems:
            logger.warning("Calibration interval check: %s", p)
    return intervals


def check_intervals(intervals: pd.DataFrame) -> List[str]:
    """Return a description of every ordering/overlap violation among the usable intervals."""
    usable = intervals[~intervals["placeholder"]].sort_values("curve_index")
    problems: List[str] = []
    prev = None
    for r in usable.itertuples(index=False):
        if r.start > r.end:
            problems.append(f"interval {r.curve_index} ends ({r.end}) before it starts ({r.start})")
        if prev is not None:
            if r.start <= prev.start:
                problems.append(f"interval {r.curve_index} does not start after interval {prev.curve_index}")
            if prev.end > r.start:
                problems.append(f"intervals {prev.curve_index} and {r.curve_index} overlap")
        prev = r
    return problems


def _usable(intervals: pd.DataFrame) -> pd.DataFrame:
    return intervals[~intervals["placeholder"]].sort_values("curve_index")


def assign_curve(timestamp, intervals: pd.DataFrame) -> Optional[int]:
    """
    Curve index whose interval contains ``timestamp`` (start <= t < end), or None.
    If several intervals match, the earliest index wins.
    """
    t = pd.Timestamp(timestamp)
    usable = _usable(intervals)
    hits = usable[(usable["start"] <= t) & (t < usable["end"])]
    if hits.empty:
        return None
    if len(hits) > 1:
        logger.warning("Timestamp %s falls in intervals %s; using %d",
                       t, hits["curve_index"].tolist(), int(hits["curve_index"].iloc[0]))
    return int(hits["curve_index"].iloc[0])


def assign_intervals(unknowns: pd.DataFrame, intervals: pd.DataFrame) -> pd.DataFrame:
    """
    Add a nullable 'curve_index' to every unknown-sample injection.
    Injections outside all usable intervals get <NA> (unmatched).
    """
    df = unknowns.copy()
    assigned = pd.Series(pd.NA, index=df.index, dtype="Int64")
    n_overlap = 0
    for r in _usable(intervals).itertuples(index=False):
        inside = (df["timestamp"] >= r.start) & (df["timestamp"] < r.end)
        n_overlap += int((inside & assigned.notna()).sum())
        assigned = assigned.mask(inside & assigned.isna(), int(r.curve_index))
    if n_overlap:
        logger.warning("%d injection(s) fall in more than one interval; earliest interval used", n_overlap)

    df["curve_index"] = assigned
    n_unmatched = int(assigned.isna().sum())
    if n_unmatched:
        logger.info("%d injection(s) outside every calibration interval", n_unmatched)
    return df
