# src/tocparser/compute_results.py
"""
Back-calculation of unknown-sample concentrations from their assigned curve.

    concentration (mg/L) = (mean_area - intercept) / slope

A sample that cannot be resolved keeps a NaN concentration together with a
status naming the reason; a number is never substituted.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

SAMPLE_COLUMNS = ["vial", "channel", "mean_area", "first_timestamp", "n_injections", "curve_index"]


class Status(str, Enum):
    OK = "ok"
    UNMATCHED_INTERVAL = "unmatched_interval"
    UNDERDETERMINED_FIT = "underdetermined_fit"
    ZERO_SLOPE = "zero_slope"
    INVALID_AREA = "invalid_area"
    NO_CURVE = "no_curve"
    UNKNOWN_DILUTION_CODE = "unknown_dilution_code"
    NOT_MEASURED = "not_measured"


@dataclass(frozen=True)
class ConcentrationResult:
    """Either a resolved concentration (status OK) or an unresolved marker with its reason."""
    value: Optional[float]
    status: Status

    @property
    def resolved(self) -> bool:
        return self.status is Status.OK

    @classmethod
    def ok(cls, value: float) -> "ConcentrationResult":
        value = float(value)
        if not np.isfinite(value):
            raise ValueError(f"A resolved concentration must be finite, got {value}")
        return cls(value=value, status=Status.OK)

    @classmethod
    def unresolved(cls, status: Status) -> "ConcentrationResult":
        if status is Status.OK:
            raise ValueError("An unresolved result needs a failure status")
        return cls(value=None, status=status)

    @classmethod
    def from_values(cls, value, status) -> "ConcentrationResult":
        status = Status(status)
        if status is Status.OK:
            return cls.ok(value)
        return cls.unresolved(status)


def summarize_unknowns(assigned: pd.DataFrame) -> pd.DataFrame:
    """
    Collapse replicate injections to one row per (vial, channel).
    The curve index is taken from the earliest injection of the vial.
    """
    df = assigned[assigned["vial"].notna()]
    if len(df) < len(assigned):
        logger.warning("Dropped %d unknown injection(s) without a vial number", len(assigned) - len(df))
    if df.empty:
        return pd.DataFrame(columns=SAMPLE_COLUMNS).astype(
            {"vial": "Int64", "mean_area": float, "n_injections": int, "curve_index": "Int64"}
        )

    df = df.sort_values(["timestamp"], kind="mergesort")
    stats = (
        df.groupby(["vial", "channel"], as_index=False)
        .agg(
            # a blank replicate area makes the mean NaN instead of averaging the rest
            mean_area=("area", lambda s: s.mean(skipna=False)),
            first_timestamp=("timestamp", "min"),
            n_injections=("area", "size"),
        )
    )
    earliest = df.drop_duplicates(["vial", "channel"], keep="first")[["vial", "channel", "curve_index"]]

    split = df.groupby(["vial", "channel"])["curve_index"].nunique(dropna=False)
    for (vial, channel) in split[split > 1].index:
        logger.warning("Vial %s %s replicates span several calibration intervals; using the first", vial, channel)

    out = stats.merge(earliest, on=["vial", "channel"], how="left")
    out["vial"] = out["vial"].astype("Int64")
    out["curve_index"] = out["curve_index"].astype("Int64")
    return out.sort_values(["vial", "channel"], ignore_index=True)[SAMPLE_COLUMNS]


def resolve_concentrations(samples: pd.DataFrame, curves: pd.DataFrame) -> pd.DataFrame:
    """
    Join each sample with its (channel, curve_index) fit and invert the line.

    Adds slope, intercept, r_squared, provisional_mg_L and status.
    """
    fits = curves[["channel", "curve_index", "slope", "intercept", "r_squared", "status"]].rename(
        columns={"status": "curve_status"}
    )
    fits = fits.astype({"curve_index": "Int64"})
    df = samples.merge(fits, on=["channel", "curve_index"], how="left")
    provisional = (df["mean_area"].astype(float) - df["intercept"].astype(float)) / df["slope"].astype(float)

    status = np.select(
        [
            df["curve_index"].isna().to_numpy(),
            df["curve_status"].isna().to_numpy(),
            (df["curve_status"] != Status.OK.value).to_numpy(),
            ~np.isfinite(provisional.to_numpy(dtype=float)),
        ],
        [
            Status.UNMATCHED_INTERVAL.value,
            Status.NO_CURVE.value,
            df["curve_status"].astype(object).to_numpy(),
            Status.INVALID_AREA.value,
        ],
        default=Status.OK.value,
    )
    df["status"] = status
    ok = df["status"] == Status.OK.value
    df["provisional_mg_L"] = provisional.where(ok, np.nan)
    df = df.drop(columns="curve_status")

    n_bad = int((~ok).sum())
    if n_bad:
        logger.warning("%d sample channel(s) could not be resolved: %s",
                       n_bad, df.loc[~ok, "status"].value_counts().to_dict())
    return df


def result_for(table: pd.DataFrame, vial: int, channel: str, column: str = "concentration_mg_L") -> ConcentrationResult:
    """Tagged result for one (vial, channel) of a resolved table."""
    hit = table[(table["vial"] == vial) & (table["channel"] == channel)]
    if hit.empty:
        return ConcentrationResult.unresolved(Status.NOT_MEASURED)
    row = hit.iloc[0]
    return ConcentrationResult.from_values(row[column], row["status"])


def to_wide(samples: pd.DataFrame, channel_order: Sequence[str], column: str = "concentration_mg_L") -> pd.DataFrame:
    """
    One row per vial: '<channel>_mg_L' and '<channel>_status' for each channel.
    A channel with no injections for a vial is marked 'not_measured'.
    """
    vials = sorted(samples["vial"].dropna().unique().tolist())
    out = pd.DataFrame({"vial": pd.array(vials, dtype="Int64")})
    for ch in channel_order:
        sub = samples.loc[samples["channel"] == ch, ["vial", column, "status"]]
        sub = sub.rename(columns={column: f"{ch}_mg_L", "status": f"{ch}_status"})
        out = out.merge(sub, on="vial", how="left")
        out[f"{ch}_status"] = out[f"{ch}_status"].fillna(Status.NOT_MEASURED.value)
    conc_cols = [f"{ch}_mg_L" for ch in channel_order]
    status_cols = [f"{ch}_status" for ch in channel_order]
    return out[["vial"] + conc_cols + status_cols]
