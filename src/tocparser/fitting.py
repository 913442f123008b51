# src/tocparser/fitting.py
"""
Linear calibration fits: peak area = slope * concentration + intercept.

Plain ordinary least squares on the replicate-averaged levels; no weighting.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd

from tocparser.errors import UnderdeterminedFitError

logger = logging.getLogger(__name__)

POINT_COLUMNS = ["channel", "curve_index", "conc", "mean_area", "n_injections"]
CURVE_COLUMNS = ["channel", "curve_index", "slope", "intercept", "r_squared", "n_levels", "status"]

# slopes this close to zero cannot be inverted
ZERO_SLOPE_ATOL = 1e-12


@dataclass(frozen=True)
class LinearFit:
    slope: float
    intercept: float
    r_squared: float
    n_points: int

    def predict(self, conc: float) -> float:
        return self.slope * conc + self.intercept

    def invert(self, area: float) -> float:
        return (area - self.intercept) / self.slope


def fit_line(concentrations: Sequence[float], areas: Sequence[float]) -> LinearFit:
    """
    Fit area against concentration by least squares.

    Raises:
        ValueError: mismatched lengths
        UnderdeterminedFitError: fewer than 2 distinct concentrations
    """
    x = np.asarray(concentrations, dtype=float)
    y = np.asarray(areas, dtype=float)
    if x.shape != y.shape:
        raise ValueError(f"Mismatched lengths: {x.size} concentrations vs {y.size} areas")
    mask = np.isfinite(x) & np.isfinite(y)
    x, y = x[mask], y[mask]
    n_levels = int(np.unique(x).size)
    if n_levels < 2:
        raise UnderdeterminedFitError(n_levels)

    X = np.vstack([x, np.ones_like(x)]).T
    beta, *_ = np.linalg.lstsq(X, y, rcond=None)
    slope, intercept = float(beta[0]), float(beta[1])

    y_hat = slope * x + intercept
    ss_res = float(np.sum((y - y_hat) ** 2))
    ss_tot = float(np.sum((y - np.mean(y)) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot != 0 else 0.0
    return LinearFit(slope=slope, intercept=intercept, r_squared=r_squared, n_points=int(x.size))


def mean_levels(calibration: pd.DataFrame, decimals: int = 4) -> pd.DataFrame:
    """
    Average replicate injections per (channel, curve_index, concentration level).
    Means are rounded to the analyzer's native precision so joins are reproducible.
    """
    if calibration.empty:
        return pd.DataFrame(columns=POINT_COLUMNS)
    out = (
        calibration
        .groupby(["channel", "curve_index", "conc"], as_index=False)
        .agg(mean_area=("area", "mean"), n_injections=("area", "size"))
    )
    out["mean_area"] = out["mean_area"].round(decimals)
    out["curve_index"] = out["curve_index"].astype(int)
    return out.sort_values(["channel", "curve_index", "conc"], ignore_index=True)[POINT_COLUMNS]


def fit_curves(points: pd.DataFrame) -> pd.DataFrame:
    """
    One fitted curve per (channel, curve_index).

    A group that cannot be fitted is kept with NaN coefficients and a status of
    'underdetermined_fit' or 'zero_slope' so that its samples stay unresolved.
    """
    rows = []
    for (channel, curve_index), grp in points.groupby(["channel", "curve_index"], sort=True):
        row = {"channel": channel, "curve_index": int(curve_index),
               "slope": np.nan, "intercept": np.nan, "r_squared": np.nan,
               "n_levels": int(grp["conc"].nunique()), "status": "ok"}
        try:
            fit = fit_line(grp["conc"], grp["mean_area"])
        except UnderdeterminedFitError as e:
            err = UnderdeterminedFitError(e.n_levels, channel, int(curve_index))
            logger.error("Calibration fit failed: %s", err)
            row["status"] = "underdetermined_fit"
            rows.append(row)
            continue

        if abs(fit.slope) <= ZERO_SLOPE_ATOL:
            logger.error("Calibration %s Std %d has zero slope; its samples cannot be resolved",
                         channel, int(curve_index))
            row["status"] = "zero_slope"
        row.update(slope=fit.slope, intercept=fit.intercept, r_squared=fit.r_squared)
        logger.debug("Fit %s Std %d: slope=%.6g intercept=%.6g r2=%.6f",
                     channel, int(curve_index), fit.slope, fit.intercept, fit.r_squared)
        rows.append(row)

    if not rows:
        return pd.DataFrame(columns=CURVE_COLUMNS)
    return pd.DataFrame(rows, columns=CURVE_COLUMNS)
