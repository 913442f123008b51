# src/tocparser/config.py
"""
Run configuration for the TOC/TN calibration pipeline.

Defaults match a Shimadzu TOC-L export with NPOC and TN channels and four
combined calibration blocks per run. A JSON file can override any field;
nested dicts (columns, dilution codes, metadata columns) are merged key by key.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

# canonical name -> header in the analyzer export
DEFAULT_COLUMNS: Dict[str, str] = {
    "type":        "Type",
    "channel":     "Anal.",
    "sample_name": "Sample Name",
    "sample_id":   "Sample ID",
    "datetime":    "Date / Time",
    "injection":   "Inj. No.",
    "area":        "Area",
    "conc":        "Conc.",
    "vial":        "Vial",
    "excluded":    "Excluded",
}

# Extracts are made up to 20/3 of the sample mass by default; a further
# dilution before analysis scales that by 1/fraction.
DEFAULT_MULTIPLIER = 20.0 / 3.0
DEFAULT_DILUTION_CODES: Dict[str, float] = {
    "0.5":  40.0 / 3.0,
    "0.33": 20.0,
}

DEFAULT_METADATA_COLUMNS: Dict[str, str] = {
    "run_date": "Run Date",
    "vial":     "Vial",
    "dilution": "Dilution",
}


@dataclass(frozen=True)
class RunConfig:
    preamble_rows: int = 10
    columns: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_COLUMNS))
    timestamp_format: str = "%m/%d/%Y %H:%M:%S"
    # first-running channel first; fixed by the instrument's run order
    channel_order: List[str] = field(default_factory=lambda: ["NPOC", "TN"])
    n_curves: int = 4
    standard_pattern: str = r"(?i)\b(?:std|standard)\s*[-_#]?\s*(?P<index>[1-9]\d*)\b"
    flush_pattern: str = r"(?i)flush"
    area_decimals: int = 4
    dilution_codes: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_DILUTION_CODES))
    default_multiplier: float = DEFAULT_MULTIPLIER
    metadata_columns: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_METADATA_COLUMNS))

    def __post_init__(self):
        if self.n_curves < 1:
            raise ValueError(f"n_curves must be >= 1, got {self.n_curves}")
        if len(self.channel_order) < 1 or len(set(self.channel_order)) != len(self.channel_order):
            raise ValueError(f"channel_order must list distinct channels, got {self.channel_order}")

    @property
    def first_channel(self) -> str:
        return self.channel_order[0]

    @property
    def last_channel(self) -> str:
        return self.channel_order[-1]


def _merge(default: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(default)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def config_from_dict(overrides: Optional[Dict[str, Any]] = None, base: Optional[RunConfig] = None) -> RunConfig:
    """Apply a (possibly partial) dict of overrides on top of ``base``."""
    base = base or RunConfig()
    if not overrides:
        return base
    known = {f.name for f in fields(RunConfig)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown config keys: {unknown}")
    current = {name: getattr(base, name) for name in known}
    merged = _merge(current, overrides)
    return replace(base, **{k: merged[k] for k in overrides})


def load_config(path: Union[str, Path, None] = None) -> RunConfig:
    """Load a JSON config file; ``None`` returns the defaults."""
    if path is None:
        return RunConfig()
    with Path(path).open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return config_from_dict(data)
