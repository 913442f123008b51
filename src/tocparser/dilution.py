# src/tocparser/dilution.py
"""
Dilution correction.

Each vial carries a categorical dilution code from the vial metadata. The code
maps to a multiplier from the analysed solution back to the extract:

    no code  -> 20/3  (standard preparation, not annotated)
    '0.5'    -> 40/3
    '0.33'   -> 20

An unrecognized code is never guessed: the vial is flagged for review.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Mapping, Optional, Union

import numpy as np
import pandas as pd

from tocparser.compute_results import Status
from tocparser.config import RunConfig

logger = logging.getLogger(__name__)


def normalize_code(code: Any) -> Optional[str]:
    """
    Canonical text for a dilution code; None when the code is absent.
    0.5, '0.50' and ' 0.5 ' all become '0.5'.
    """
    if code is None:
        return None
    if isinstance(code, float) and np.isnan(code):
        return None
    if code is pd.NA or code is pd.NaT:
        return None
    text = str(code).strip()
    if not text or text.lower() in {"nan", "none", "-", "n/a"}:
        return None
    try:
        return f"{float(text):g}"
    except ValueError:
        return text


def _lookup(config: RunConfig) -> Dict[str, float]:
    return {normalize_code(k): float(v) for k, v in config.dilution_codes.items()}


def dilution_multiplier(code: Any, config: Optional[RunConfig] = None) -> Optional[float]:
    """Multiplier for ``code``; None marks an unrecognized code."""
    config = config or RunConfig()
    key = normalize_code(code)
    if key is None:
        return config.default_multiplier
    return _lookup(config).get(key)


def apply_dilution(
    resolved: pd.DataFrame,
    codes: Union[pd.DataFrame, Mapping[int, Any], None] = None,
    config: Optional[RunConfig] = None,
) -> pd.DataFrame:
    """
    Attach each vial's dilution code and multiplier and compute concentration_mg_L.

    ``codes`` is a frame with 'vial' and 'dilution_code' columns or a plain
    {vial: code} mapping. Vials without an entry use the default multiplier.
    """
    config = config or RunConfig()
    if codes is None:
        codes = pd.DataFrame(columns=["vial", "dilution_code"])
    elif not isinstance(codes, pd.DataFrame):
        codes = pd.DataFrame({"vial": list(codes.keys()), "dilution_code": list(codes.values())})
    codes = codes[["vial", "dilution_code"]].drop_duplicates("vial").astype({"vial": "Int64"})

    df = resolved.drop(columns=["dilution_code"], errors="ignore").merge(codes, on="vial", how="left")
    # absent codes are None, never NaN
    df["dilution_code"] = pd.Series([normalize_code(c) for c in df["dilution_code"]], index=df.index, dtype=object)
    df["multiplier"] = pd.Series(
        [dilution_multiplier(c, config) for c in df["dilution_code"]], index=df.index, dtype=float
    )

    unknown = df["multiplier"].isna()
    if unknown.any():
        bad = sorted({str(c) for c in df.loc[unknown, "dilution_code"]})
        logger.warning("Unrecognized dilution code(s) %s on vial(s) %s",
                       bad, sorted(df.loc[unknown, "vial"].unique().tolist()))
    df["status"] = df["status"].where(~(unknown & (df["status"] == Status.OK.value)),
                                      Status.UNKNOWN_DILUTION_CODE.value)
    df["concentration_mg_L"] = (df["provisional_mg_L"] * df["multiplier"]).where(
        df["status"] == Status.OK.value, np.nan
    )
    return df
