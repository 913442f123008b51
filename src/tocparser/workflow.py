# src/tocparser/workflow.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import pandas as pd

from tocparser.calibration_parser import extract_calibration, run_windows, split_unknowns
from tocparser.compute_results import resolve_concentrations, summarize_unknowns, to_wide
from tocparser.config import RunConfig
from tocparser.dilution import apply_dilution
from tocparser.export_parser import read_export
from tocparser.fitting import fit_curves, mean_levels
from tocparser.intervals import assign_intervals, build_intervals
from tocparser.metadata_parser import MetadataParser
from tocparser.records import clean_records
from tocparser.utils import as_date, construct_filename, run_output_dir
from tocparser.viz import CalibrationVisualizer

logger = logging.getLogger(__name__)

DilutionCodes = Union[pd.DataFrame, Mapping[int, Any], None]

SAMPLE_OUTPUT_COLUMNS = [
    "vial", "channel", "n_injections", "first_timestamp", "mean_area", "curve_index",
    "slope", "intercept", "r_squared", "provisional_mg_L", "dilution_code", "multiplier",
    "concentration_mg_L", "status",
]


@dataclass(frozen=True)
class RunResult:
    """All tables of one processed run."""
    run_date: Any
    clean: pd.DataFrame
    calibration: pd.DataFrame
    windows: pd.DataFrame
    points: pd.DataFrame
    curves: pd.DataFrame
    intervals: pd.DataFrame
    unknowns: pd.DataFrame
    samples: pd.DataFrame
    wide: pd.DataFrame


class TOCWorkflow:
    """
    Stepwise TOC/TN calibration workflow for one analytical run.

    Usage:
      wf = TOCWorkflow(raw=records)          # or TOCWorkflow(export_path='run.txt')
      wf.clean()                 # drop excluded + flush injections, parse timestamps
      wf.extract_calibration()   # standard rows, per-block run windows
      wf.build_intervals()       # one assignment window per curve index
      wf.fit_curves()            # replicate means + linear fit per channel/curve
      wf.assign()                # curve index per unknown injection
      wf.resolve()               # back-calculated concentration per vial/channel
      wf.correct_dilution(codes) # apply dilution multipliers
      result = wf.result()

    Or run all in one go:
      result = TOCWorkflow(raw=records).run(dilution_codes=codes)
    """

    def __init__(
        self,
        raw: Optional[pd.DataFrame] = None,
        export_path: Union[str, Path, None] = None,
        config: Optional[RunConfig] = None,
        metadata_path: Union[str, Path, None] = None,
        strict_intervals: bool = False,
    ):
        self.config = config or RunConfig()
        if raw is None:
            if export_path is None:
                raise ValueError("Provide either raw records or an export_path")
            raw = read_export(export_path, self.config)
        self.raw = raw
        self.metadata_path = metadata_path
        self.strict_intervals = strict_intervals
        # in-memory outputs
        self.run_date = None
        self.records: Optional[pd.DataFrame] = None
        self.calibration: Optional[pd.DataFrame] = None
        self.windows: Optional[pd.DataFrame] = None
        self.intervals: Optional[pd.DataFrame] = None
        self.points: Optional[pd.DataFrame] = None
        self.curves: Optional[pd.DataFrame] = None
        self.unknowns: Optional[pd.DataFrame] = None
        self.resolved: Optional[pd.DataFrame] = None
        self.samples: Optional[pd.DataFrame] = None

    def _require(self, name: str) -> pd.DataFrame:
        value = getattr(self, name)
        if value is None:
            raise RuntimeError(f"Workflow step producing '{name}' has not run yet")
        return value

    def clean(self) -> pd.DataFrame:
        self.records = clean_records(self.raw, self.config)
        if not self.records.empty:
            self.run_date = as_date(self.records["timestamp"].min())
        return self.records

    def extract_calibration(self) -> pd.DataFrame:
        self.calibration = extract_calibration(self._require("records"), self.config)
        self.windows = run_windows(self.calibration)
        return self.calibration

    def build_intervals(self) -> pd.DataFrame:
        self.intervals = build_intervals(
            self._require("windows"), self.config.channel_order, self.config.n_curves,
            strict=self.strict_intervals,
        )
        return self.intervals

    def fit_curves(self) -> pd.DataFrame:
        self.points = mean_levels(self._require("calibration"), decimals=self.config.area_decimals)
        self.curves = fit_curves(self.points)
        return self.curves

    def assign(self) -> pd.DataFrame:
        unknowns = split_unknowns(self._require("records"), self.config)
        self.unknowns = assign_intervals(unknowns, self._require("intervals"))
        return self.unknowns

    def resolve(self) -> pd.DataFrame:
        summary = summarize_unknowns(self._require("unknowns"))
        self.resolved = resolve_concentrations(summary, self._require("curves"))
        return self.resolved

    def load_dilution_codes(self) -> pd.DataFrame:
        if self.metadata_path is None:
            return pd.DataFrame(columns=["vial", "dilution_code"])
        parser = MetadataParser(self.metadata_path, self.config.metadata_columns)
        return parser.load(self.run_date)

    def correct_dilution(self, dilution_codes: DilutionCodes = None) -> pd.DataFrame:
        if dilution_codes is None:
            dilution_codes = self.load_dilution_codes()
        out = apply_dilution(self._require("resolved"), dilution_codes, self.config)
        self.samples = out[SAMPLE_OUTPUT_COLUMNS].sort_values(["vial", "channel"], ignore_index=True)
        return self.samples

    def result(self) -> RunResult:
        samples = self._require("samples")
        return RunResult(
            run_date=self.run_date,
            clean=self.records,
            calibration=self.calibration,
            windows=self.windows,
            points=self.points,
            curves=self.curves,
            intervals=self.intervals,
            unknowns=self.unknowns,
            samples=samples,
            wide=to_wide(samples, self.config.channel_order),
        )

    def run(self, dilution_codes: DilutionCodes = None) -> RunResult:
        self.clean()
        self.extract_calibration()
        self.build_intervals()
        self.fit_curves()
        self.assign()
        self.resolve()
        self.correct_dilution(dilution_codes)
        return self.result()


def run_toc_on_records(
    raw: pd.DataFrame,
    dilution_codes: DilutionCodes = None,
    config: Optional[RunConfig] = None,
    strict_intervals: bool = False,
) -> RunResult:
    """Run the full pipeline on already-parsed injection records."""
    return TOCWorkflow(raw=raw, config=config, strict_intervals=strict_intervals).run(dilution_codes)


def write_results(
    result: RunResult,
    out_dir: Union[str, Path] = "results",
    config: Optional[RunConfig] = None,
    plot: bool = False,
) -> Dict[str, Path]:
    """
    Write a run's tables into <out_dir>/<YYYYMMDD>/, replacing earlier files:
      TOCN_<date>_RESULTS.csv      one row per vial, mg/L and status per channel
      TOCN_<date>_SAMPLES.csv      per vial/channel trace of the back-calculation
      TOCN_<date>_CURVES.csv       fitted calibration curves
      TOCN_<date>_CALIBRATION.html (plot=True)
    Unresolved concentrations are written as NA next to their status.
    """
    config = config or RunConfig()
    if result.run_date is None:
        raise ValueError("Run has no injections; nothing to write")
    out = run_output_dir(out_dir, result.run_date)
    paths: Dict[str, Path] = {}
    tables = {"RESULTS": result.wide, "SAMPLES": result.samples, "CURVES": result.curves}
    for suffix, table in tables.items():
        path = out / construct_filename(result.run_date, suffix=suffix)
        table.to_csv(path, index=False, na_rep="NA")
        paths[suffix] = path
        print(f"Wrote {suffix.lower()} ->", path)

    if plot:
        viz = CalibrationVisualizer(result.points, result.curves, result.samples)
        path = out / construct_filename(result.run_date, extension="html", suffix="CALIBRATION")
        viz.write_html(path, config.channel_order, title=f"Calibration curves {result.run_date}")
        paths["CALIBRATION"] = path
        print("Wrote calibration plot ->", path)
    return paths


def run_toc_workflow(
    export_path: Union[str, Path],
    metadata_path: Union[str, Path, None] = None,
    out_dir: Union[str, Path] = "results",
    config: Optional[RunConfig] = None,
    plot: bool = False,
) -> RunResult:
    """
    - Reads the analyzer export and (optionally) the vial metadata.
    - Runs the calibration pipeline.
    - Writes results/<YYYYMMDD>/TOCN_<YYYYMMDD>_*.csv
    """
    config = config or RunConfig()
    wf = TOCWorkflow(export_path=export_path, config=config, metadata_path=metadata_path)
    result = wf.run()
    n_ok = int((result.samples["status"] == "ok").sum())
    print(f"Run {result.run_date}: {len(result.wide)} vials, {n_ok}/{len(result.samples)} channel results resolved")
    write_results(result, out_dir=out_dir, config=config, plot=plot)
    return result
