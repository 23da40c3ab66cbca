"""Tests for TOML configuration loading and validation."""

import logging

import pytest

from vcf_pg_stats.config import (
    ConfigValidationError,
    StatsOptions,
    load_config,
    validate_config,
)


class TestStatsOptionsDefaults:
    """Tests for StatsOptions defaults."""

    def test_defaults(self):
        options = StatsOptions()
        assert options.batch_size == 100
        assert options.workers == 6
        assert options.overwrite is False
        assert options.update is False
        assert options.aggregation_mapping is None
        assert options.file_id is None
        assert options.load_batch_size == 1000


class TestValidateConfig:
    """Tests for validate_config."""

    @pytest.mark.parametrize("key", ["batch_size", "workers", "load_batch_size"])
    def test_non_positive_int(self, key):
        with pytest.raises(ConfigValidationError, match=f"{key} must be positive"):
            validate_config({key: 0})

    def test_bool_is_not_an_int(self):
        with pytest.raises(ConfigValidationError, match="must be an integer"):
            validate_config({"workers": True})

    def test_overwrite_must_be_bool(self):
        with pytest.raises(ConfigValidationError, match="overwrite must be a boolean"):
            validate_config({"overwrite": "yes"})

    def test_aggregation_mapping_must_be_table_of_strings(self):
        with pytest.raises(ConfigValidationError, match="aggregation_mapping"):
            validate_config({"aggregation_mapping": {"ALL.AC": 1}})

    def test_invalid_log_level(self):
        with pytest.raises(ConfigValidationError, match="log_level"):
            validate_config({"log_level": "LOUD"})

    def test_valid(self):
        validate_config(
            {
                "batch_size": 50,
                "workers": 2,
                "update": True,
                "file_id": 3,
                "aggregation_mapping": {"ALL.AC": "AC"},
                "log_level": "debug",
            }
        )


class TestLoadConfig:
    """Tests for load_config."""

    def test_load(self, tmp_path):
        config_file = tmp_path / "stats.toml"
        config_file.write_text(
            """
[vcf_pg_stats]
batch_size = 250
workers = 3
overwrite = true

[vcf_pg_stats.aggregation_mapping]
"AFR.AC" = "AFR_AC"
"AFR.AN" = "AFR_AN"
"""
        )

        options = load_config(config_file)

        assert options.batch_size == 250
        assert options.workers == 3
        assert options.overwrite is True
        assert options.aggregation_mapping == {"AFR.AC": "AFR_AC", "AFR.AN": "AFR_AN"}

    def test_overrides_take_precedence(self, tmp_path):
        config_file = tmp_path / "stats.toml"
        config_file.write_text("[vcf_pg_stats]\nworkers = 3\n")
        options = load_config(config_file, {"workers": 9})
        assert options.workers == 9

    def test_missing_section_gives_defaults(self, tmp_path):
        config_file = tmp_path / "stats.toml"
        config_file.write_text("[other]\nvalue = 1\n")
        assert load_config(config_file) == StatsOptions()

    def test_unknown_keys_are_ignored(self, tmp_path, caplog):
        config_file = tmp_path / "stats.toml"
        config_file.write_text("[vcf_pg_stats]\nturbo = true\n")
        with caplog.at_level(logging.WARNING, logger="vcf_pg_stats.config"):
            options = load_config(config_file)
        assert options == StatsOptions()
        assert "turbo" in caplog.text

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_invalid_value(self, tmp_path):
        config_file = tmp_path / "stats.toml"
        config_file.write_text("[vcf_pg_stats]\nbatch_size = -1\n")
        with pytest.raises(ConfigValidationError):
            load_config(config_file)
