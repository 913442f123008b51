"""
Tests for record cleaning and role classification.
"""

import logging

import pandas as pd
import pytest

from tocparser.errors import RecordFormatError
from tocparser.records import clean_records, is_flush, parse_timestamps, standard_index

from run_factory import build_run


class TestStandardIndex:

    @pytest.mark.parametrize("sample_id, expected", [
        ("Std 1", 1),
        ("Std4", 4),
        ("NPOC std-3", 3),
        ("Standard 2", 2),
        ("Soil 12", None),
        ("Flush", None),
        ("Std Flush 2", None),
        ("", None),
        (None, None),
    ])
    def test_identifiers(self, sample_id, expected, config):
        assert standard_index(sample_id, config) == expected

    def test_is_flush_case_insensitive(self, config):
        assert is_flush("FLUSH 2", config)
        assert not is_flush("Soil 3", config)


class TestCleanRecords:

    def test_no_excluded_record_survives(self, raw_run, config):
        assert raw_run["excluded"].eq("1").any()
        clean = clean_records(raw_run, config)
        assert not clean["excluded"].any()
        assert (clean["area"] != 99999.0).all()
        assert len(clean) == len(raw_run) - raw_run["excluded"].eq("1").sum() - raw_run["sample_id"].eq("Flush").sum()

    def test_flush_rows_dropped(self, clean_run):
        assert not clean_run["sample_id"].str.contains("Flush").any()

    @pytest.mark.parametrize("flag", [True, 1, "1", "TRUE", "yes", "Excluded", "x"])
    def test_excluded_flag_spellings(self, flag, config):
        raw = build_run(n_curves=1, sample_concs={}, trailing_vial=False, flush=False)
        raw["excluded"] = raw["excluded"].astype(object)
        raw.loc[0, "excluded"] = flag
        assert len(clean_records(raw, config)) == len(raw) - 1

    def test_timestamps_parsed(self, clean_run):
        assert pd.api.types.is_datetime64_any_dtype(clean_run["timestamp"])
        assert clean_run["timestamp"].iloc[0] == pd.Timestamp("2024-03-15 08:00:00")
        assert clean_run["timestamp"].is_monotonic_increasing

    def test_input_not_modified(self, raw_run, config):
        before = raw_run.copy()
        clean_records(raw_run, config)
        pd.testing.assert_frame_equal(raw_run, before)

    def test_unparseable_timestamp_is_fatal(self, raw_run, config):
        raw_run.loc[5, "datetime"] = "2024-03-15T08:05:00"
        with pytest.raises(RecordFormatError) as exc:
            clean_records(raw_run, config)
        assert exc.value.row["datetime"] == "2024-03-15T08:05:00"
        assert "2024-03-15T08:05:00" in str(exc.value)

    def test_excluded_row_with_bad_timestamp_is_ignored(self, raw_run, config):
        raw_run.loc[5, "datetime"] = "garbage"
        raw_run.loc[5, "excluded"] = "1"
        clean_records(raw_run, config)

    def test_out_of_order_rows_sorted_with_warning(self, raw_run, config, caplog):
        shuffled = pd.concat([raw_run.iloc[10:], raw_run.iloc[:10]], ignore_index=True)
        with caplog.at_level(logging.WARNING, logger="tocparser.records"):
            clean = clean_records(shuffled, config)
        assert "chronological" in caplog.text
        assert clean["timestamp"].is_monotonic_increasing

    def test_parse_timestamps_format(self, config):
        df = pd.DataFrame({"datetime": ["03/15/2024 13:05:09"]})
        assert parse_timestamps(df, config).iloc[0] == pd.Timestamp("2024-03-15 13:05:09")


class TestVialNumbers:

    @pytest.mark.parametrize("vial", [12.5, "12b"])
    def test_bad_vial_is_fatal(self, raw_run, config, vial):
        raw_run["vial"] = raw_run["vial"].astype(object)
        raw_run.loc[3, "vial"] = vial
        with pytest.raises(RecordFormatError, match="vial") as exc:
            clean_records(raw_run, config)
        assert exc.value.row["vial"] == vial

    def test_whole_and_missing_vials(self, config):
        raw = build_run(n_curves=1, sample_concs={}, trailing_vial=False, flush=False)
        raw["vial"] = raw["vial"].astype(object)
        raw.loc[0, "vial"] = "7"
        raw.loc[1, "vial"] = None
        raw.loc[2, "vial"] = ""
        clean = clean_records(raw, config)
        assert str(clean["vial"].dtype) == "Int64"
        assert clean["vial"].iloc[0] == 7
        assert clean["vial"].iloc[1:3].isna().all()
