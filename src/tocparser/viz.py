# src/tocparser/viz.py
from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
import plotly.graph_objs as go
import plotly.io as pio
from plotly.colors import qualitative
from plotly.subplots import make_subplots


class CalibrationVisualizer:
    """
    Calibration overview for one run: one subplot per channel showing the
    averaged standard levels of every curve, its fitted line and the unknown
    samples placed on the curve they were quantified with.

    Inputs are the tables produced by the workflow:
      - points:  channel, curve_index, conc, mean_area
      - curves:  channel, curve_index, slope, intercept, r_squared, status
      - samples: vial, channel, mean_area, curve_index, provisional_mg_L, status (optional)
    """

    def __init__(self, points: pd.DataFrame, curves: pd.DataFrame, samples: Optional[pd.DataFrame] = None):
        self.points = points
        self.curves = curves
        self.samples = samples if samples is not None else pd.DataFrame()

    @staticmethod
    def _color(curve_index: int, color_cycle: List[str]) -> str:
        return color_cycle[(int(curve_index) - 1) % len(color_cycle)]

    def _curve_traces(self, channel: str, color_cycle: List[str]) -> List[go.Scatter]:
        traces: List[go.Scatter] = []
        pts = self.points[self.points["channel"] == channel]
        for curve_index, grp in pts.groupby("curve_index", sort=True):
            color = self._color(curve_index, color_cycle)
            traces.append(go.Scatter(
                x=grp["conc"], y=grp["mean_area"], mode="markers",
                name=f"{channel} Std {curve_index}", legendgroup=f"std{curve_index}",
                marker=dict(color=color, size=8),
                hovertemplate="Conc: %{x:.3f} mg/L<br>Area: %{y:.4f}<extra></extra>",
            ))
            fit = self.curves[(self.curves["channel"] == channel) & (self.curves["curve_index"] == curve_index)]
            if fit.empty or fit.iloc[0]["status"] != "ok":
                continue
            f = fit.iloc[0]
            x = np.linspace(0.0, float(grp["conc"].max()), 50)
            traces.append(go.Scatter(
                x=x, y=f["slope"] * x + f["intercept"], mode="lines",
                name=f"fit {curve_index} (R²={f['r_squared']:.4f})", legendgroup=f"std{curve_index}",
                line=dict(color=color, width=1, dash="dot"), hoverinfo="skip",
            ))
        return traces

    def _sample_traces(self, channel: str, color_cycle: List[str]) -> List[go.Scatter]:
        if self.samples.empty or "provisional_mg_L" not in self.samples.columns:
            return []
        sam = self.samples[(self.samples["channel"] == channel) & self.samples["provisional_mg_L"].notna()]
        traces: List[go.Scatter] = []
        for curve_index, grp in sam.groupby("curve_index", sort=True):
            traces.append(go.Scatter(
                x=grp["provisional_mg_L"], y=grp["mean_area"], mode="markers",
                name=f"{channel} samples (curve {curve_index})", legendgroup=f"std{curve_index}",
                marker=dict(color=self._color(curve_index, color_cycle), symbol="x", size=7),
                customdata=grp["vial"].astype(str),
                hovertemplate="Vial %{customdata}<br>Conc: %{x:.3f} mg/L<br>Area: %{y:.4f}<extra></extra>",
            ))
        return traces

    def make_figure(self, channel_order: Sequence[str], title: str = "Calibration curves") -> go.Figure:
        color_cycle = qualitative.Plotly
        fig = make_subplots(rows=len(channel_order), cols=1, subplot_titles=list(channel_order),
                            vertical_spacing=0.12)
        for row, channel in enumerate(channel_order, start=1):
            for tr in self._curve_traces(channel, color_cycle) + self._sample_traces(channel, color_cycle):
                fig.add_trace(tr, row=row, col=1)
            fig.update_xaxes(title_text="Concentration (mg/L)", row=row, col=1)
            fig.update_yaxes(title_text="Peak area", row=row, col=1)
        fig.update_layout(title=title, template="plotly_white", height=400 * len(channel_order))
        return fig

    def write_html(self, path, channel_order: Sequence[str], title: str = "Calibration curves") -> Path:
        path = Path(path)
        fig = self.make_figure(channel_order, title=title)
        pio.write_html(fig, str(path), include_plotlyjs="cdn", auto_open=False)
        return path
