"""Tests for Typer CLI interface."""

import pytest
from fixtures.variant_store import InMemoryVariantStore
from typer.testing import CliRunner

from vcf_pg_stats import __version__
from vcf_pg_stats.cli import app, parse_cohort, parse_cohort_id
from vcf_pg_stats.configuration_store import FileStudyConfigurationStore
from vcf_pg_stats.stats.io import source_stats_path, variant_stats_path

runner = CliRunner(env={"NO_COLOR": "1", "TERM": "dumb"})
DB = "postgresql://test@localhost/test"


class FakePostgresStore(InMemoryVariantStore):
    """Stands in for PostgresVariantStore; every instance shares one record list."""

    shared = InMemoryVariantStore()
    merged_rows: list = []

    def __init__(self, db_url, workers=4, prefetch=1000):
        self.db_url = db_url
        self.records = self.shared.records
        self.source_stats = self.shared.source_stats
        self.update_batches = self.shared.update_batches

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def init_schema(self):
        return None

    async def copy_call_records(self, batch):
        self.records.extend(batch)
        return len(batch)

    async def upsert_merged_rows(self, rows, study_configuration):
        rows = list(rows)
        self.merged_rows.extend(rows)
        return len(rows)


@pytest.fixture
def fake_store(monkeypatch):
    FakePostgresStore.shared = InMemoryVariantStore()
    FakePostgresStore.merged_rows = []
    monkeypatch.setattr("vcf_pg_stats.cli.PostgresVariantStore", FakePostgresStore)
    return FakePostgresStore.shared


@pytest.fixture
def registry(tmp_path):
    return tmp_path / "studies"


class TestCLIHelp:
    """Tests for CLI help and basic structure."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help_command(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("init-db", "init-study", "load-calls", "create-stats", "load-stats"):
            assert command in result.stdout

    def test_create_stats_help(self):
        result = runner.invoke(app, ["create-stats", "--help"])
        assert result.exit_code == 0
        assert "--cohort" in result.stdout
        assert "--workers" in result.stdout


class TestOptionParsing:
    """Tests for cohort option parsing."""

    def test_parse_cohort(self):
        assert parse_cohort("ALL") == ("ALL", set())
        assert parse_cohort("SUB:S1,S2") == ("SUB", {"S1", "S2"})

    def test_parse_cohort_id(self):
        assert parse_cohort_id("ALL=3") == ("ALL", 3)

    @pytest.mark.parametrize("value", ["ALL", "=3", "ALL=x"])
    def test_parse_cohort_id_invalid(self, value):
        import typer

        with pytest.raises(typer.BadParameter):
            parse_cohort_id(value)


class TestInitStudy:
    """Tests for the init-study command."""

    def test_creates_configuration(self, registry):
        result = runner.invoke(
            app,
            ["init-study", "7", "trio", "--registry", str(registry), "-s", "A", "-s", "B"],
        )
        assert result.exit_code == 0
        study_configuration = FileStudyConfigurationStore(registry).get(7)
        assert study_configuration.study_name == "trio"
        assert study_configuration.sample_ids == {"A": 1, "B": 2}

    def test_unknown_aggregation(self, registry):
        result = runner.invoke(
            app, ["init-study", "7", "trio", "--registry", str(registry), "-a", "nnone"]
        )
        assert result.exit_code == 1
        assert "Unknown aggregation" in result.stdout
        assert not (registry / "7.study.json").exists()

    def test_existing_study(self, registry):
        runner.invoke(app, ["init-study", "7", "trio", "--registry", str(registry)])
        result = runner.invoke(app, ["init-study", "7", "trio", "--registry", str(registry)])
        assert result.exit_code == 1
        assert "already exists" in result.stdout


class TestDatabaseCommands:
    """Tests for commands that need a database URL."""

    def test_missing_database_url(self, registry, monkeypatch):
        monkeypatch.delenv("POSTGRES_URL", raising=False)
        result = runner.invoke(app, ["init-db"])
        assert result.exit_code == 1
        assert "No database URL" in result.stdout

    def test_database_url_from_environment(self, fake_store, monkeypatch):
        monkeypatch.setenv("POSTGRES_URL", DB)
        result = runner.invoke(app, ["init-db"])
        assert result.exit_code == 0
        assert "initialized" in result.stdout

    def test_unknown_study(self, registry, fake_store, tmp_path):
        result = runner.invoke(
            app,
            ["create-stats", str(tmp_path / "out"), "--study", "9", "-r", str(registry), "--db", DB],
        )
        assert result.exit_code == 1
        assert "No configuration for study 9" in result.stdout

    def test_load_calls_missing_file(self, registry):
        result = runner.invoke(
            app, ["load-calls", "/nonexistent/file.vcf", "--study", "1", "--db", DB]
        )
        assert result.exit_code == 1
        assert "not found" in result.stdout.lower()


class TestEndToEnd:
    """init-study, load-calls, create-stats, load-stats and merge-rows against a fake store."""

    def test_full_cycle(self, registry, fake_store, gvcf_file, tmp_path):
        common = ["--registry", str(registry), "--db", DB]
        prefix = tmp_path / "stats" / "run1"

        result = runner.invoke(app, ["init-study", "1", "gvcfs", "--registry", str(registry)])
        assert result.exit_code == 0

        result = runner.invoke(app, ["load-calls", str(gvcf_file), "--study", "gvcfs", *common])
        assert result.exit_code == 0, result.stdout
        assert "Loaded 4 calls" in result.stdout

        study_configuration = FileStudyConfigurationStore(registry).get(1)
        assert study_configuration.sample_ids == {"S1": 1, "S2": 2}
        assert study_configuration.file_ids == {gvcf_file.name: 1}

        result = runner.invoke(
            app,
            ["create-stats", str(prefix), "--study", "1", "--cohort", "ALL:S1,S2", "-q", *common],
        )
        assert result.exit_code == 0, result.stdout
        assert variant_stats_path(prefix).exists()
        assert source_stats_path(prefix).exists()

        result = runner.invoke(app, ["load-stats", str(prefix), "--study", "1", *common])
        assert result.exit_code == 0, result.stdout
        assert FileStudyConfigurationStore(registry).get(1).calculated_stats == {0}
        assert all("ALL" in r.stats for r in fake_store.records)

        result = runner.invoke(app, ["load-stats", str(prefix), "--study", "1", *common])
        assert result.exit_code == 1
        assert "already calculated" in result.stdout

        result = runner.invoke(app, ["merge-rows", "--study", "1", *common])
        assert result.exit_code == 0, result.stdout
        keys = {row.key for row in FakePostgresStore.merged_rows}
        assert keys == {(100, "T", "C"), (200, "G", "A"), (200, "G", "T")}

    def test_create_stats_reads_config_file(self, registry, fake_store, tmp_path):
        runner.invoke(
            app, ["init-study", "1", "s", "--registry", str(registry), "-s", "S1"]
        )
        config_file = tmp_path / "stats.toml"
        config_file.write_text("[vcf_pg_stats]\nworkers = 0\n")

        result = runner.invoke(
            app,
            [
                "create-stats", str(tmp_path / "out"), "--study", "1", "--cohort", "ALL:S1",
                "--config", str(config_file), "--registry", str(registry), "--db", DB,
            ],
        )
        assert result.exit_code == 1
        assert "workers must be positive" in result.stdout
