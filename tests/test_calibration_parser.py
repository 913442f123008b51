import pandas as pd
import pytest

from tocparser.calibration_parser import (
    WINDOW_COLUMNS,
    extract_calibration,
    run_windows,
    split_unknowns,
    window_for,
)
from tocparser.errors import MissingCalibrationError

from run_factory import LEVELS

T = pd.Timestamp


class TestExtractCalibration:

    def test_only_standards(self, clean_run, config):
        cal = extract_calibration(clean_run, config)
        assert cal["sample_id"].str.startswith("Std").all()
        # 4 curves x 2 channels x 4 levels x 2 replicates
        assert len(cal) == 64
        assert sorted(cal["curve_index"].unique().tolist()) == [1, 2, 3, 4]

    def test_known_levels_from_conc_column(self, clean_run, config):
        cal = extract_calibration(clean_run, config)
        assert sorted(cal["conc"].unique().tolist()) == list(LEVELS)

    def test_unknowns_are_the_complement(self, clean_run, config):
        cal = extract_calibration(clean_run, config)
        unknowns = split_unknowns(clean_run, config)
        assert len(cal) + len(unknowns) == len(clean_run)
        assert unknowns["sample_id"].str.startswith("Soil").all()

    def test_index_above_curve_count_warns(self, clean_run, config, caplog):
        extra = clean_run.iloc[[0]].assign(sample_id="Std 7")
        cal = extract_calibration(pd.concat([clean_run, extra], ignore_index=True), config)
        assert 7 in cal["curve_index"].tolist()
        assert "Std 7" in caplog.text


class TestRunWindows:

    def test_one_window_per_block(self, clean_run, config):
        windows = run_windows(extract_calibration(clean_run, config))
        assert list(windows.columns) == WINDOW_COLUMNS
        assert len(windows) == 8
        assert (windows["n_injections"] == 8).all()

    def test_window_spans_first_to_last_injection(self, clean_run, config):
        windows = run_windows(extract_calibration(clean_run, config))
        npoc1 = window_for(windows, "NPOC", 1)
        tn1 = window_for(windows, "TN", 1)
        assert npoc1["start"] == T("2024-03-15 08:00")
        assert npoc1["end"] == T("2024-03-15 08:07")
        assert tn1["start"] == T("2024-03-15 08:08")
        assert tn1["end"] == T("2024-03-15 08:15")

    def test_empty_calibration(self):
        assert run_windows(pd.DataFrame(columns=["channel", "curve_index", "timestamp"])).empty


class TestWindowFor:

    def test_missing_block(self, clean_run, config):
        windows = run_windows(extract_calibration(clean_run, config))
        with pytest.raises(MissingCalibrationError) as exc:
            window_for(windows, "TN", 5)
        assert exc.value.channel == "TN"
        assert exc.value.curve_index == 5
        assert str(exc.value) == "No calibration standard for channel 'TN', curve 5"

    def test_is_a_key_error(self, clean_run, config):
        windows = run_windows(extract_calibration(clean_run, config))
        with pytest.raises(KeyError):
            window_for(windows, "DOC", 1)
