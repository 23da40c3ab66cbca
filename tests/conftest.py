"""Pytest configuration and fixtures for vcf-pg-stats tests."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent))

from fixtures.variant_store import InMemoryVariantStore  # noqa: E402
from fixtures.vcf_generator import (  # noqa: E402
    SyntheticVariant,
    VCFGenerator,
    make_aggregated_vcf_file,
    make_gvcf_file,
)

from vcf_pg_stats.configuration_store import FileStudyConfigurationStore  # noqa: E402
from vcf_pg_stats.models import CallRecord, VariantType  # noqa: E402
from vcf_pg_stats.study_configuration import StudyConfiguration  # noqa: E402

try:
    from testcontainers.postgres import PostgresContainer

    HAS_TESTCONTAINERS = True
except ImportError:
    HAS_TESTCONTAINERS = False


@pytest.fixture(scope="session")
def postgres_container():
    """Create a PostgreSQL container for integration tests."""
    if not HAS_TESTCONTAINERS:
        pytest.skip("testcontainers not installed")

    with PostgresContainer("postgres:15") as postgres:
        yield postgres


@pytest.fixture
def postgres_url(postgres_container) -> str:
    url = postgres_container.get_connection_url()
    if url.startswith("postgresql+psycopg2://"):
        url = url.replace("postgresql+psycopg2://", "postgresql://")
    return url


@pytest.fixture
def study_configuration() -> StudyConfiguration:
    """Study 1 with four registered samples S1..S4."""
    return StudyConfiguration(
        study_id=1,
        study_name="study",
        sample_ids={"S1": 1, "S2": 2, "S3": 3, "S4": 4},
        file_ids={"input.g.vcf": 1},
    )


@pytest.fixture
def configuration_store(tmp_path) -> FileStudyConfigurationStore:
    return FileStudyConfigurationStore(tmp_path / "studies")


@pytest.fixture
def call_factory():
    """Factory for CallRecord instances of study 1, file 1."""

    def _factory(**kwargs):
        defaults = {
            "chromosome": "1",
            "start": 100,
            "reference": "A",
            "alternate": "G",
            "samples": {"S1": "0/1", "S2": "1/1", "S3": "0/0", "S4": "./."},
            "study_id": 1,
            "file_id": 1,
            "quality": 50.0,
            "filter": ["PASS"],
        }
        defaults.update(kwargs)
        if "variant_type" not in defaults:
            defaults["variant_type"] = VariantType.infer(
                defaults["reference"], defaults["alternate"]
            )
        if "end" not in defaults:
            defaults["end"] = defaults["start"] + len(defaults["reference"]) - 1
        return CallRecord(**defaults)

    return _factory


@pytest.fixture
def variant_store(call_factory) -> InMemoryVariantStore:
    """Ten calls over two chromosomes, inserted out of order."""
    records = [
        call_factory(chromosome="2", start=300 + i, reference="C", alternate="T")
        for i in range(4)
    ] + [call_factory(chromosome="1", start=100 + i) for i in range(6)]
    return InMemoryVariantStore(records)


@pytest.fixture
def vcf_generator():
    """Provide VCFGenerator class for tests."""
    return VCFGenerator


@pytest.fixture
def synthetic_variant_factory():
    """Factory for creating SyntheticVariant instances."""

    def _factory(**kwargs):
        defaults = {
            "chrom": "chr1",
            "pos": 100,
            "ref": "A",
            "alt": ["G"],
        }
        defaults.update(kwargs)
        return SyntheticVariant(**defaults)

    return _factory


@pytest.fixture
def gvcf_file():
    """Generate a gVCF file with reference blocks."""
    path = make_gvcf_file()
    yield path
    if path.exists():
        path.unlink()


@pytest.fixture
def aggregated_vcf_file():
    """Generate a sites-only VCF with AC/AN counts."""
    path = make_aggregated_vcf_file()
    yield path
    if path.exists():
        path.unlink()


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "integration: marks tests requiring database")
