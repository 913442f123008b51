"""
Tests for interval construction and curve assignment.
"""

import logging

import pandas as pd
import pytest

from tocparser.calibration_parser import extract_calibration, run_windows
from tocparser.errors import IntervalOrderError, MissingCalibrationError
from tocparser.intervals import (
    INTERVAL_COLUMNS,
    assign_curve,
    assign_intervals,
    build_intervals,
    check_intervals,
)

CHANNELS = ["NPOC", "TN"]
T = pd.Timestamp


def make_windows(spans):
    """spans: {(channel, curve_index): ('HH:MM', 'HH:MM')} on the run day."""
    rows = [
        {"channel": ch, "curve_index": i, "start": T(f"2024-03-15 {a}"), "end": T(f"2024-03-15 {b}"),
         "n_injections": 8}
        for (ch, i), (a, b) in spans.items()
    ]
    return pd.DataFrame(rows)


def ordered_windows():
    return make_windows({
        ("NPOC", 1): ("08:00", "08:07"), ("TN", 1): ("08:08", "08:15"),
        ("NPOC", 2): ("09:00", "09:07"), ("TN", 2): ("09:08", "09:15"),
        ("NPOC", 3): ("10:00", "10:07"), ("TN", 3): ("10:08", "10:15"),
    })


def overlapping_intervals():
    # intervals 1 and 2 share 08:30-09:00
    return pd.DataFrame({
        "curve_index": [1, 2, 3],
        "start": [T("2024-03-15 08:00"), T("2024-03-15 08:30"), T("2024-03-15 10:00")],
        "end": [T("2024-03-15 09:00"), T("2024-03-15 09:30"), T("2024-03-15 10:30")],
        "placeholder": [False, False, True],
    })


@pytest.fixture
def intervals():
    return build_intervals(ordered_windows(), CHANNELS, 3)


class TestBuildIntervals:

    def test_bounds(self, intervals):
        assert list(intervals.columns) == INTERVAL_COLUMNS
        assert intervals["curve_index"].tolist() == [1, 2, 3]
        assert intervals.loc[0, "start"] == T("2024-03-15 08:15")
        assert intervals.loc[0, "end"] == T("2024-03-15 09:00")
        assert intervals.loc[1, "start"] == T("2024-03-15 09:15")
        assert intervals.loc[1, "end"] == T("2024-03-15 10:00")

    def test_last_interval_is_placeholder(self, intervals):
        assert intervals["placeholder"].tolist() == [False, False, True]

    def test_usable_intervals_do_not_overlap(self, intervals):
        usable = intervals[~intervals["placeholder"]]
        assert (usable["start"] <= usable["end"]).all()
        assert (usable["end"].iloc[:-1].to_numpy() <= usable["start"].iloc[1:].to_numpy()).all()
        assert check_intervals(intervals) == []

    def test_from_synthetic_run(self, clean_run, config):
        windows = run_windows(extract_calibration(clean_run, config))
        ivs = build_intervals(windows, config.channel_order, config.n_curves)
        assert len(ivs) == 4
        assert ivs.loc[0, "start"] == T("2024-03-15 08:15")
        assert ivs.loc[0, "end"] == T("2024-03-15 08:26")

    def test_single_curve(self):
        windows = make_windows({("NPOC", 1): ("08:00", "08:07"), ("TN", 1): ("08:08", "08:15")})
        ivs = build_intervals(windows, CHANNELS, 1)
        assert ivs["placeholder"].tolist() == [True]

    @pytest.mark.parametrize("missing", [("NPOC", 2), ("TN", 3), ("TN", 1)])
    def test_missing_block_is_fatal(self, missing):
        windows = ordered_windows()
        windows = windows[~((windows["channel"] == missing[0]) & (windows["curve_index"] == missing[1]))]
        with pytest.raises(MissingCalibrationError) as exc:
            build_intervals(windows, CHANNELS, 3)
        assert (exc.value.channel, exc.value.curve_index) == missing


class TestIntervalOrdering:

    @staticmethod
    def overlapping_windows():
        # block 2 of NPOC starts before TN block 1 ends
        return make_windows({
            ("NPOC", 1): ("08:00", "08:07"), ("TN", 1): ("08:08", "09:30"),
            ("NPOC", 2): ("09:00", "09:07"), ("TN", 2): ("09:08", "09:15"),
            ("NPOC", 3): ("10:00", "10:07"), ("TN", 3): ("10:08", "10:15"),
        })

    def test_strict_raises(self):
        with pytest.raises(IntervalOrderError, match="interval 1"):
            build_intervals(self.overlapping_windows(), CHANNELS, 3, strict=True)

    def test_lenient_logs(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tocparser.intervals"):
            ivs = build_intervals(self.overlapping_windows(), CHANNELS, 3)
        assert len(ivs) == 3
        assert "ends" in caplog.text

    def test_overlap_detected(self):
        assert check_intervals(overlapping_intervals()) == ["intervals 1 and 2 overlap"]


class TestAssignCurve:

    @pytest.mark.parametrize("t, expected", [
        ("08:15", 1),        # start is inclusive
        ("08:40", 1),
        ("09:00", None),     # end is exclusive; block 2 is running
        ("09:14:59", None),
        ("09:15", 2),
        ("09:59:59", 2),
        ("10:05", None),     # inside the last block
        ("11:00", None),     # after the last block
        ("07:00", None),     # before the first block
    ])
    def test_half_open(self, intervals, t, expected):
        assert assign_curve(T(f"2024-03-15 {t}"), intervals) == expected

    def test_overlap_picks_earliest_index(self, caplog):
        assert assign_curve(T("2024-03-15 08:45"), overlapping_intervals()) == 1
        assert "using 1" in caplog.text


class TestAssignIntervals:

    def test_overlap_picks_earliest_index(self, caplog):
        unknowns = pd.DataFrame({
            "vial": [10, 11, 12],
            "timestamp": [T("2024-03-15 08:10"), T("2024-03-15 08:45"), T("2024-03-15 09:15")],
        })
        with caplog.at_level(logging.WARNING, logger="tocparser.intervals"):
            out = assign_intervals(unknowns, overlapping_intervals())
        assert out["curve_index"].tolist() == [1, 1, 2]
        assert "1 injection(s) fall in more than one interval" in caplog.text

    def test_no_overlap_no_warning(self, intervals, caplog):
        unknowns = pd.DataFrame({"timestamp": [T("2024-03-15 08:20"), T("2024-03-15 09:20")]})
        with caplog.at_level(logging.WARNING, logger="tocparser.intervals"):
            assign_intervals(unknowns, intervals)
        assert "more than one interval" not in caplog.text

    def test_nullable_curve_index(self, intervals):
        unknowns = pd.DataFrame({
            "vial": [10, 11, 12, 13],
            "timestamp": [T("2024-03-15 08:20"), T("2024-03-15 09:20"),
                          T("2024-03-15 10:05"), T("2024-03-15 11:00")],
        })
        out = assign_intervals(unknowns, intervals)
        assert str(out["curve_index"].dtype) == "Int64"
        assert out["curve_index"].tolist()[:2] == [1, 2]
        assert out["curve_index"].isna().tolist() == [False, False, True, True]

    def test_matches_assign_curve(self, intervals):
        times = pd.date_range("2024-03-15 07:30", "2024-03-15 10:45", freq="5min")
        out = assign_intervals(pd.DataFrame({"timestamp": times}), intervals)
        for t, idx in zip(times, out["curve_index"]):
            expected = assign_curve(t, intervals)
            assert (pd.isna(idx) and expected is None) or idx == expected

    def test_input_not_modified(self, intervals):
        unknowns = pd.DataFrame({"timestamp": [T("2024-03-15 08:20")]})
        assign_intervals(unknowns, intervals)
        assert "curve_index" not in unknowns.columns
