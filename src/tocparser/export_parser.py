# src/tocparser/export_parser.py
"""
Reader for the analyzer's tab-delimited injection export.

The export starts with a fixed preamble (instrument/run header lines) followed
by the injection table. Headers are renamed to canonical names from
RunConfig.columns, e.g. 'Anal.' -> channel, 'Date / Time' -> datetime.
"""

from __future__ import annotations
import io
import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from tocparser.config import RunConfig
from tocparser.errors import RecordFormatError

logger = logging.getLogger(__name__)

NUMERIC_COLUMNS = ("vial", "injection", "area", "conc")


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        # older instrument PCs export in latin-1
        return path.read_text(encoding="latin-1")


def parse_export_text(text: str, config: Optional[RunConfig] = None) -> pd.DataFrame:
    """
    Parse export text into a table with canonical columns.

    All columns are read as text first; vial, injection, area and conc are then
    coerced to numbers (blank cells become NaN).
    """
    config = config or RunConfig()
    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep="\t",
            skiprows=config.preamble_rows,
            dtype=str,
            keep_default_na=False,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise RecordFormatError(f"Could not read injection table after {config.preamble_rows} preamble rows: {e}") from e

    df.columns = [str(c).strip() for c in df.columns]
    rename = {header: name for name, header in config.columns.items()}
    missing = sorted(h for h in rename if h not in df.columns)
    if missing:
        raise RecordFormatError(
            f"Export is missing columns {missing}; found {df.columns.tolist()}"
        )

    out = df[list(rename)].rename(columns=rename)
    out = out[list(config.columns)].copy()
    for col in out.columns:
        out[col] = out[col].str.strip()

    # trailing blank lines in the export
    blank = out["sample_id"].eq("") & out["area"].eq("")
    out = out[~blank].reset_index(drop=True)

    for col in NUMERIC_COLUMNS:
        values = pd.to_numeric(out[col], errors="coerce")
        # blank cells are missing values; anything else must parse
        bad = values.isna() & out[col].ne("")
        if bad.any():
            raise RecordFormatError(
                f"{int(bad.sum())} non-numeric value(s) in column {col!r}",
                row=out.loc[bad].iloc[0].to_dict(),
            )
        out[col] = values
    logger.debug("Parsed %d injection rows", len(out))
    return out


def read_export(path: Union[str, Path], config: Optional[RunConfig] = None) -> pd.DataFrame:
    """Read an analyzer export file, see parse_export_text."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Export file not found: {path}")
    df = parse_export_text(_read_text(path), config)
    logger.info("Read %d injections from %s", len(df), path.name)
    return df
