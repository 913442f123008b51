# src/tocparser/errors.py
"""
Exceptions raised by the TOC/TN calibration pipeline.

Structural problems (export shape, timestamps, missing standards) abort a run.
Per-curve and per-sample problems are recorded as statuses instead, see
compute_results.Status.
"""

from __future__ import annotations
from typing import Any, Dict, Optional


class TocParserError(Exception):
    """Base class for every error raised by tocparser."""


class RecordFormatError(TocParserError, ValueError):
    """The export does not match the expected format (columns, timestamps)."""

    def __init__(self, message: str, row: Optional[Dict[str, Any]] = None):
        self.row = row
        if row is not None:
            message = f"{message} (row: {row})"
        super().__init__(message)


class MissingCalibrationError(TocParserError, KeyError):
    """An expected (channel, curve-index) standard block is absent."""

    def __init__(self, channel: str, curve_index: int):
        self.channel = channel
        self.curve_index = curve_index
        super().__init__(f"No calibration standard for channel {channel!r}, curve {curve_index}")

    def __str__(self) -> str:
        # KeyError would repr() the message
        return self.args[0]


class UnderdeterminedFitError(TocParserError, ValueError):
    """Fewer than two distinct concentration levels to fit a line through."""

    def __init__(self, n_levels: int, channel: Optional[str] = None, curve_index: Optional[int] = None):
        self.n_levels = n_levels
        self.channel = channel
        self.curve_index = curve_index
        where = f" for {channel} Std {curve_index}" if channel is not None else ""
        super().__init__(f"Need at least 2 distinct concentration levels{where}, got {n_levels}")


class IntervalOrderError(TocParserError, ValueError):
    """Calibration intervals overlap or run backwards in time."""
