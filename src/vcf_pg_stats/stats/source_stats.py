"""Study/file level summary accumulated over every processed variant."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from ..models import CallRecord

TRANSITIONS = {
    ("A", "G"),
    ("G", "A"),
    ("C", "T"),
    ("T", "C"),
}


def classify_transition_transversion(ref: str, alt: str) -> str | None:
    """Classify a SNP as "transition" or "transversion", None for non-SNPs."""
    ref = ref.upper()
    alt = alt.upper()

    if len(ref) != 1 or len(alt) != 1 or ref == alt:
        return None

    if (ref, alt) in TRANSITIONS:
        return "transition"

    return "transversion"


@dataclass
class SampleStats:
    """Genotype tallies for one sample."""

    num_hom_ref: int = 0
    num_het: int = 0
    num_hom_var: int = 0
    num_missing: int = 0

    def merge(self, other: "SampleStats") -> "SampleStats":
        return SampleStats(
            num_hom_ref=self.num_hom_ref + other.num_hom_ref,
            num_het=self.num_het + other.num_het,
            num_hom_var=self.num_hom_var + other.num_hom_var,
            num_missing=self.num_missing + other.num_missing,
        )


@dataclass
class VariantSourceStats:
    """Aggregate over all variants of a stats run, regardless of cohort.

    Not thread safe; pipelines hold a lock around each fold.
    """

    study_id: str
    file_id: str | None = None
    num_records: int = 0
    num_samples: int = 0
    num_pass: int = 0
    transitions: int = 0
    transversions: int = 0
    quality_sum: float = 0.0
    quality_count: int = 0
    variant_type_counts: dict[str, int] = field(default_factory=dict)
    chromosome_counts: dict[str, int] = field(default_factory=dict)
    sample_stats: dict[str, SampleStats] = field(default_factory=dict)

    def update_file_stats(self, variants: Iterable[CallRecord]) -> None:
        for variant in variants:
            self.num_records += 1
            self.num_samples = max(self.num_samples, len(variant.samples))
            vtype = variant.variant_type.value
            self.variant_type_counts[vtype] = self.variant_type_counts.get(vtype, 0) + 1
            chrom = variant.chromosome
            self.chromosome_counts[chrom] = self.chromosome_counts.get(chrom, 0) + 1
            if variant.filter == ["PASS"]:
                self.num_pass += 1
            if variant.quality is not None:
                self.quality_sum += variant.quality
                self.quality_count += 1
            titv = classify_transition_transversion(variant.reference, variant.alternate)
            if titv == "transition":
                self.transitions += 1
            elif titv == "transversion":
                self.transversions += 1

    def update_sample_stats(self, variants: Iterable[CallRecord]) -> None:
        for variant in variants:
            if variant.is_reference_block:
                continue
            for sample in variant.samples:
                genotype = variant.genotype(sample)
                stats = self.sample_stats.setdefault(sample, SampleStats())
                if genotype.is_missing:
                    stats.num_missing += 1
                elif genotype.is_hom_ref:
                    stats.num_hom_ref += 1
                elif len(set(genotype.alleles)) == 1:
                    stats.num_hom_var += 1
                else:
                    stats.num_het += 1

    def merge(self, other: "VariantSourceStats") -> "VariantSourceStats":
        merged = VariantSourceStats.from_dict(self.to_dict())
        merged.num_records += other.num_records
        merged.num_samples = max(merged.num_samples, other.num_samples)
        merged.num_pass += other.num_pass
        merged.transitions += other.transitions
        merged.transversions += other.transversions
        merged.quality_sum += other.quality_sum
        merged.quality_count += other.quality_count
        for target, source in (
            (merged.variant_type_counts, other.variant_type_counts),
            (merged.chromosome_counts, other.chromosome_counts),
        ):
            for key, value in source.items():
                target[key] = target.get(key, 0) + value
        for sample, stats in other.sample_stats.items():
            merged.sample_stats[sample] = merged.sample_stats.get(sample, SampleStats()).merge(stats)
        return merged

    @property
    def mean_quality(self) -> float | None:
        if self.quality_count == 0:
            return None
        return self.quality_sum / self.quality_count

    @property
    def ti_tv_ratio(self) -> float | None:
        if self.transversions == 0:
            return None
        return self.transitions / self.transversions

    def to_dict(self) -> dict[str, Any]:
        return {
            "studyId": self.study_id,
            "fileId": self.file_id,
            "fileStats": {
                "numRecords": self.num_records,
                "numSamples": self.num_samples,
                "passCount": self.num_pass,
                "transitionsCount": self.transitions,
                "transversionsCount": self.transversions,
                "qualitySum": self.quality_sum,
                "qualityCount": self.quality_count,
                "meanQuality": self.mean_quality,
                "variantTypeCounts": dict(self.variant_type_counts),
                "chromosomeCounts": dict(self.chromosome_counts),
            },
            "samplesStats": {
                sample: {
                    "numHomRef": s.num_hom_ref,
                    "numHet": s.num_het,
                    "numHomVar": s.num_hom_var,
                    "numMissing": s.num_missing,
                }
                for sample, s in self.sample_stats.items()
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VariantSourceStats":
        file_stats = data.get("fileStats", {})
        return cls(
            study_id=data["studyId"],
            file_id=data.get("fileId"),
            num_records=file_stats.get("numRecords", 0),
            num_samples=file_stats.get("numSamples", 0),
            num_pass=file_stats.get("passCount", 0),
            transitions=file_stats.get("transitionsCount", 0),
            transversions=file_stats.get("transversionsCount", 0),
            quality_sum=file_stats.get("qualitySum", 0.0),
            quality_count=file_stats.get("qualityCount", 0),
            variant_type_counts=dict(file_stats.get("variantTypeCounts", {})),
            chromosome_counts=dict(file_stats.get("chromosomeCounts", {})),
            sample_stats={
                sample: SampleStats(
                    num_hom_ref=s.get("numHomRef", 0),
                    num_het=s.get("numHet", 0),
                    num_hom_var=s.get("numHomVar", 0),
                    num_missing=s.get("numMissing", 0),
                )
                for sample, s in data.get("samplesStats", {}).items()
            },
        )
