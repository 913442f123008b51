# src/tocparser/run.py
from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from tqdm import tqdm

from tocparser.config import RunConfig, config_from_dict, load_config
from tocparser.errors import TocParserError
from tocparser.workflow import RunResult, run_toc_workflow

logger = logging.getLogger(__name__)


def run_workflow(Project_Info: dict, out_dir: str = "results") -> RunResult:
    """
    Run one analytical run described by a project-info dict.

    Keys:
      Export    path to the analyzer export (required)
      Metadata  path to the vial metadata sheet (optional)
      Config    path to a JSON config file, or a dict of overrides (optional)
      Plot      write the calibration plot (optional, default False)
    """
    export = Project_Info.get("Export")
    if not export:
        raise ValueError("Project_Info['Export'] must name the analyzer export file")

    cfg = Project_Info.get("Config")
    config = config_from_dict(cfg) if isinstance(cfg, dict) else load_config(cfg)
    plot_flag = bool(Project_Info.get("Plot", False))

    print(f"Selected export: {export}")
    return run_toc_workflow(export, metadata_path=Project_Info.get("Metadata"),
                            out_dir=out_dir, config=config, plot=plot_flag)


def run_batch(
    exports: Sequence[Union[str, Path]],
    metadata_path: Union[str, Path, None] = None,
    out_dir: Union[str, Path] = "results",
    config: Optional[RunConfig] = None,
    plot: bool = False,
) -> Dict[str, Optional[str]]:
    """
    Process several exports one after the other. Runs are independent: a run
    that fails with a TocParserError is reported and the remaining runs continue.

    Returns {export path: None on success, error message on failure}.
    """
    config = config or RunConfig()
    outcome: Dict[str, Optional[str]] = {}
    for path in tqdm(list(exports), desc="Runs", unit="run"):
        try:
            run_toc_workflow(path, metadata_path=metadata_path, out_dir=out_dir, config=config, plot=plot)
            outcome[str(path)] = None
        except TocParserError as e:
            logger.error("Run %s failed: %s", path, e)
            outcome[str(path)] = str(e)
    failed = [p for p, err in outcome.items() if err]
    print(f"Processed {len(outcome)} run(s), {len(failed)} failed")
    return outcome


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tocparser",
        description="Calibrate TOC/TN analyzer exports into mg/L per vial",
    )
    parser.add_argument("exports", nargs="+", help="Analyzer export file(s), one per run")
    parser.add_argument("--metadata", "-m", help="Vial metadata sheet (csv/xlsx) with dilution codes")
    parser.add_argument("--out", "-o", default="results", help="Output directory (default: results)")
    parser.add_argument("--config", "-c", help="JSON config overriding the defaults")
    parser.add_argument("--plot", action="store_true", help="Write calibration plot HTML")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = load_config(args.config)
    outcome = run_batch(args.exports, metadata_path=args.metadata, out_dir=args.out,
                        config=config, plot=args.plot)
    return 1 if any(outcome.values()) else 0


if __name__ == "__main__":
    sys.exit(main())
