# src/tocparser/__init__.py
"""
TOC/TN calibration package
Turns analyzer injection exports into dilution-corrected concentrations (mg/L).
"""

from .config import RunConfig, load_config
from .errors import (
    IntervalOrderError,
    MissingCalibrationError,
    RecordFormatError,
    TocParserError,
    UnderdeterminedFitError,
)
from .compute_results import ConcentrationResult, Status
from .fitting import LinearFit, fit_line
from .metadata_parser import MetadataParser
from .workflow import RunResult, TOCWorkflow, run_toc_on_records, run_toc_workflow
