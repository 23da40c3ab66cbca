"""Tests for stats artifact reading and writing."""

import gzip

import pytest

from vcf_pg_stats.models import VariantStats, VariantStatsWrapper
from vcf_pg_stats.stats.io import (
    StatsArtifactError,
    iter_variant_stats,
    open_output,
    peek_variant_stats,
    read_source_stats,
    serialize_wrapper,
    source_stats_path,
    variant_stats_path,
    write_source_stats,
)
from vcf_pg_stats.stats.source_stats import VariantSourceStats


def _wrapper(position: int) -> VariantStatsWrapper:
    return VariantStatsWrapper(
        "1", position, {"ALL": VariantStats("A", "G", ref_allele_count=3, alt_allele_count=1)}
    )


class TestArtifactPaths:
    """Tests for artifact naming."""

    def test_suffixes(self, tmp_path):
        prefix = tmp_path / "out"
        assert variant_stats_path(prefix).name == "out.variants.stats.json.gz"
        assert source_stats_path(prefix).name == "out.source.stats.json.gz"


class TestVariantStatsArtifact:
    """Tests for the per-position JSON-lines artifact."""

    def test_write_and_iterate(self, tmp_path):
        path = variant_stats_path(tmp_path / "out")
        with open_output(path) as out:
            for position in (100, 101):
                out.write(serialize_wrapper(_wrapper(position)) + "\n")

        wrappers = list(iter_variant_stats(path))
        assert [w.position for w in wrappers] == [100, 101]
        assert wrappers[0].cohort_stats["ALL"].ref_allele_count == 3

    def test_output_is_gzip(self, tmp_path):
        path = variant_stats_path(tmp_path / "out")
        with open_output(path) as out:
            out.write(serialize_wrapper(_wrapper(100)) + "\n")
        with gzip.open(path, "rt") as f:
            assert f.readline().startswith('{"chromosome":"1"')

    def test_peek_empty_artifact(self, tmp_path):
        path = variant_stats_path(tmp_path / "out")
        with open_output(path):
            pass
        with pytest.raises(StatsArtifactError, match="is empty"):
            peek_variant_stats(path)

    def test_malformed_line(self, tmp_path):
        path = variant_stats_path(tmp_path / "out")
        with gzip.open(path, "wt") as f:
            f.write(serialize_wrapper(_wrapper(100)) + "\n")
            f.write('{"chromosome": "1"}\n')
        with pytest.raises(StatsArtifactError, match=":2"):
            list(iter_variant_stats(path))

    def test_blank_lines_are_ignored(self, tmp_path):
        path = variant_stats_path(tmp_path / "out")
        with gzip.open(path, "wt") as f:
            f.write("\n" + serialize_wrapper(_wrapper(100)) + "\n\n")
        assert peek_variant_stats(path).position == 100


class TestSourceStatsArtifact:
    """Tests for the source stats document."""

    def test_round_trip(self, tmp_path):
        source_stats = VariantSourceStats(study_id="1", file_id="3", num_records=7)
        path = source_stats_path(tmp_path / "out")
        write_source_stats(source_stats, path)
        assert read_source_stats(path) == source_stats

    def test_malformed(self, tmp_path):
        path = source_stats_path(tmp_path / "out")
        with gzip.open(path, "wt") as f:
            f.write("{not json")
        with pytest.raises(StatsArtifactError):
            read_source_stats(path)
