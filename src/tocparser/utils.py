"""
Utility functions for output naming.
"""

from __future__ import annotations
import datetime as dt
from pathlib import Path

import pandas as pd


def run_date_tag(run_date) -> str:
    """2024-03-15 (date, Timestamp or text) -> '20240315'."""
    ts = pd.Timestamp(run_date)
    return ts.strftime("%Y%m%d")


def construct_filename(
    run_date,
    *,
    extension: str = "csv",
    prefix: str = "TOCN",
    suffix: str | None = None,
) -> str:
    """
    Construct a standardized output filename.

    Format: PREFIX_YYYYMMDD[_SUFFIX].extension

    Parameters
    ----------
    run_date : date, Timestamp or str
        Date of the analytical run.
    extension : str, default="csv"
        File extension (no dot).
    prefix : str, default="TOCN"
        Leading tag.
    suffix : str, optional
        Optional trailing tag (e.g., "RESULTS", "CURVES").
    """
    parts = [prefix.upper(), run_date_tag(run_date)]
    if suffix:
        parts.append(suffix.upper())
    return "_".join(parts) + f".{extension.lower()}"


def run_output_dir(out_dir, run_date) -> Path:
    """<out_dir>/<YYYYMMDD>, created if needed."""
    path = Path(out_dir) / run_date_tag(run_date)
    path.mkdir(parents=True, exist_ok=True)
    return path


def as_date(value) -> dt.date:
    return pd.Timestamp(value).date()
