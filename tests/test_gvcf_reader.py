"""Tests for reading (g)VCF files into call records."""

import pytest

from vcf_pg_stats.gvcf_reader import GVCFReader, format_gt, remap_gt
from vcf_pg_stats.models import VariantType


class TestGenotypeHelpers:
    """Tests for GT formatting and renumbering."""

    @pytest.mark.parametrize(
        "gt_data,expected",
        [
            ([0, 1, False], "0/1"),
            ([1, 0, True], "1|0"),
            ([-1, -1, False], "./."),
            ([1, False], "1"),
            ([], "./."),
        ],
    )
    def test_format_gt(self, gt_data, expected):
        assert format_gt(gt_data) == expected

    def test_remap_gt(self):
        index_map = {0: 0, 2: 1, 1: 2}
        assert remap_gt("1/2", index_map) == "2/1"
        assert remap_gt("0|2", index_map) == "0|1"
        assert remap_gt("./.", index_map) == "./."


class TestGVCFReader:
    """Tests for GVCFReader."""

    def test_samples(self, gvcf_file):
        with GVCFReader(gvcf_file) as reader:
            assert reader.samples == ["S1", "S2"]

    def test_reference_block(self, gvcf_file):
        with GVCFReader(gvcf_file, study_id=1, file_id=2) as reader:
            block = list(reader)[0]

        assert block.variant_type is VariantType.NO_VARIATION
        assert block.is_reference_block
        assert (block.start, block.end) == (90, 99)
        assert block.samples == {"S1": "0/0", "S2": "0/0"}
        assert block.study_id == 1
        assert block.file_id == 2

    def test_symbolic_alternate_is_not_split(self, gvcf_file):
        with GVCFReader(gvcf_file) as reader:
            records = [r for r in reader if r.start == 100]

        assert len(records) == 1
        snv = records[0]
        assert (snv.reference, snv.alternate) == ("T", "C")
        assert snv.variant_type is VariantType.SNV
        assert snv.secondary_alternates == ["<NON_REF>"]
        assert snv.samples == {"S1": "0/1", "S2": "0/0"}
        assert snv.attributes["AC"] == 1
        assert snv.attributes["AN"] == 4
        assert snv.filter == ["PASS"]

    def test_multiallelic_site_is_split_per_alternate(self, gvcf_file):
        with GVCFReader(gvcf_file) as reader:
            records = [r for r in reader if r.start == 200]

        assert [(r.alternate, r.secondary_alternates) for r in records] == [
            ("A", ["T"]),
            ("T", ["A"]),
        ]
        g_a, g_t = records
        assert g_a.samples == {"S1": "1/2", "S2": "2/2"}
        assert g_t.samples == {"S1": "2/1", "S2": "1/1"}
        assert g_a.attributes["AC"] == 1
        assert g_t.attributes["AC"] == 2
        assert g_t.attributes["AF"] == pytest.approx(0.5)
        assert g_a.filter == ["LowQual"]
        assert g_a.quality == pytest.approx(12.0)

    def test_iter_batches(self, gvcf_file):
        with GVCFReader(gvcf_file, batch_size=2) as reader:
            batches = list(reader.iter_batches())
        assert [len(b) for b in batches] == [2, 2]

    def test_sites_only_file(self, aggregated_vcf_file):
        with GVCFReader(aggregated_vcf_file, study_id=1) as reader:
            assert reader.samples == []
            records = list(reader)

        assert [r.chromosome for r in records] == ["chr1", "chr2"]
        assert records[0].samples == {}
        assert records[0].attributes["AFR_AC"] == 1
