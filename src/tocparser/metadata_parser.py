# src/tocparser/metadata_parser.py
import datetime as dt
import logging
import os
from typing import Dict, Optional

import numpy as np
import pandas as pd

from tocparser.config import DEFAULT_METADATA_COLUMNS

logger = logging.getLogger(__name__)


class MetadataParser:
    """
    Vial metadata keyed by (run date, vial number).

    The sheet lists every vial prepared for a run with its dilution code, e.g.

        Run Date    Vial  Dilution
        2024-03-15  12
        2024-03-15  13    0.5
    """

    def __init__(self, path, columns: Optional[Dict[str, str]] = None):
        self.path = path
        self.columns = dict(DEFAULT_METADATA_COLUMNS)
        if columns:
            self.columns.update(columns)

    # ---------- IO helpers ----------
    @staticmethod
    def universal_read(path, **kwargs):
        ext = os.path.splitext(str(path))[1].lower()
        if ext in (".csv", ".txt"):
            return pd.read_csv(path, **kwargs)
        elif ext in [".xlsx", ".xls"]:
            return pd.read_excel(path, **kwargs)
        else:
            raise ValueError(f"Unknown file extension: {ext}")

    # ---------- vial utils ----------
    @staticmethod
    def normalize_vial(value):
        """'12', 12.0, ' 12 ' -> 12; anything else -> None."""
        if value is None or (isinstance(value, float) and np.isnan(value)):
            return None
        s = str(value).strip()
        try:
            f = float(s)
        except ValueError:
            return None
        return int(f) if f.is_integer() else None

    @staticmethod
    def to_date(value) -> Optional[dt.date]:
        ts = pd.to_datetime(value, errors="coerce")
        return None if pd.isna(ts) else ts.date()

    # ---------- loaders ----------
    def load_table(self) -> pd.DataFrame:
        df = self.universal_read(self.path, dtype=str, keep_default_na=False)
        df.columns = [str(c).strip() for c in df.columns]
        missing = [c for c in self.columns.values() if c not in df.columns]
        if missing:
            raise ValueError(f"Metadata file {self.path} is missing columns {missing}")
        out = df[[self.columns["run_date"], self.columns["vial"], self.columns["dilution"]]].copy()
        out.columns = ["run_date", "vial", "dilution_code"]
        out["run_date"] = out["run_date"].map(self.to_date)
        out["vial"] = out["vial"].map(self.normalize_vial)
        codes = out["dilution_code"].astype(str).str.strip()
        out["dilution_code"] = codes.where(codes != "", None)
        return out

    def load(self, run_date) -> pd.DataFrame:
        """Dilution codes of one run: columns vial (Int64), dilution_code."""
        run_date = self.to_date(run_date)
        table = self.load_table()
        rows = table[(table["run_date"] == run_date) & table["vial"].notna()].copy()
        if rows.empty:
            logger.warning("No metadata rows for run date %s in %s; default dilution applies", run_date, self.path)
        dupes = rows["vial"].duplicated(keep="first")
        if dupes.any():
            logger.warning("Duplicate metadata rows for vial(s) %s; first row used",
                           sorted(rows.loc[dupes, "vial"].unique().tolist()))
        rows = rows[~dupes]
        rows["vial"] = rows["vial"].astype("Int64")
        return rows[["vial", "dilution_code"]].sort_values("vial", ignore_index=True)
