"""Data models for call records, merged rows and variant statistics."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .genotypes import Genotype, GenotypeBucket

REFERENCE_BLOCK_ALTS = {"", ".", "<NON_REF>", "<*>", "<X>"}


class VariantType(Enum):
    """Type tag of a call record."""

    SNV = "SNV"
    SNP = "SNP"
    MNV = "MNV"
    MNP = "MNP"
    INDEL = "INDEL"
    SV = "SV"
    NO_VARIATION = "NO_VARIATION"

    @classmethod
    def infer(cls, reference: str, alternate: str) -> "VariantType":
        """Classify a call based on its REF and ALT alleles."""
        if alternate in REFERENCE_BLOCK_ALTS:
            return cls.NO_VARIATION
        if alternate.startswith("<") or "[" in alternate or "]" in alternate:
            return cls.SV
        if len(reference) == 1 and len(alternate) == 1:
            return cls.SNV
        if len(reference) == len(alternate):
            return cls.MNV
        return cls.INDEL


@dataclass
class VariantStats:
    """Opaque, mergeable allele/genotype count aggregate for one cohort."""

    ref_allele: str
    alt_allele: str
    ref_allele_count: int = 0
    alt_allele_count: int = 0
    missing_alleles: int = 0
    missing_genotypes: int = 0
    genotype_counts: dict[str, int] = field(default_factory=dict)

    def add_genotype(self, genotype: Genotype) -> None:
        """Count one sample genotype. Alleles other than 0 and 1 count toward neither."""
        key = genotype.normalized()
        self.genotype_counts[key] = self.genotype_counts.get(key, 0) + 1
        if genotype.is_missing:
            self.missing_genotypes += 1
        for allele in genotype.alleles:
            if allele is None:
                self.missing_alleles += 1
            elif allele == 0:
                self.ref_allele_count += 1
            elif allele == 1:
                self.alt_allele_count += 1

    def merge(self, other: "VariantStats") -> "VariantStats":
        """Combine two aggregates over the same allele pair."""
        if (self.ref_allele, self.alt_allele) != (other.ref_allele, other.alt_allele):
            raise ValueError(
                f"Cannot merge stats for {self.ref_allele}>{self.alt_allele} "
                f"with {other.ref_allele}>{other.alt_allele}"
            )
        counts = dict(self.genotype_counts)
        for key, value in other.genotype_counts.items():
            counts[key] = counts.get(key, 0) + value
        return VariantStats(
            ref_allele=self.ref_allele,
            alt_allele=self.alt_allele,
            ref_allele_count=self.ref_allele_count + other.ref_allele_count,
            alt_allele_count=self.alt_allele_count + other.alt_allele_count,
            missing_alleles=self.missing_alleles + other.missing_alleles,
            missing_genotypes=self.missing_genotypes + other.missing_genotypes,
            genotype_counts=counts,
        )

    @property
    def maf(self) -> float | None:
        """Minor allele frequency over called reference/alternate alleles."""
        total = self.ref_allele_count + self.alt_allele_count
        if total == 0:
            return None
        return min(self.ref_allele_count, self.alt_allele_count) / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "refAllele": self.ref_allele,
            "altAllele": self.alt_allele,
            "refAlleleCount": self.ref_allele_count,
            "altAlleleCount": self.alt_allele_count,
            "missingAlleles": self.missing_alleles,
            "missingGenotypes": self.missing_genotypes,
            "genotypesCount": dict(self.genotype_counts),
            "maf": self.maf,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VariantStats":
        return cls(
            ref_allele=data["refAllele"],
            alt_allele=data["altAllele"],
            ref_allele_count=data.get("refAlleleCount", 0),
            alt_allele_count=data.get("altAlleleCount", 0),
            missing_alleles=data.get("missingAlleles", 0),
            missing_genotypes=data.get("missingGenotypes", 0),
            genotype_counts=dict(data.get("genotypesCount", {})),
        )


@dataclass
class CallRecord:
    """One genomic call: a variant or a reference-only block.

    Coordinates are 1-based and ``end`` is inclusive. ``samples`` maps sample
    names to GT strings indexed against ``alleles``.
    """

    chromosome: str
    start: int
    end: int
    reference: str
    alternate: str
    variant_type: VariantType
    samples: dict[str, str] = field(default_factory=dict)
    secondary_alternates: list[str] = field(default_factory=list)

    study_id: int | None = None
    file_id: int | None = None
    quality: float | None = None
    filter: list[str] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)

    # Per-cohort stats already stored for this call
    stats: dict[str, VariantStats] = field(default_factory=dict)

    @property
    def alleles(self) -> list[str]:
        return [self.reference, self.alternate, *self.secondary_alternates]

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def is_reference_block(self) -> bool:
        return self.variant_type is VariantType.NO_VARIATION

    def genotype(self, sample: str) -> Genotype | None:
        gt = self.samples.get(sample)
        if gt is None:
            return None
        return Genotype.parse(gt)


@dataclass
class VariantStatsWrapper:
    """Per-position statistics for every requested cohort."""

    chromosome: str
    position: int
    cohort_stats: dict[str, VariantStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chromosome": self.chromosome,
            "position": self.position,
            "cohortStats": {name: s.to_dict() for name, s in self.cohort_stats.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VariantStatsWrapper":
        return cls(
            chromosome=data["chromosome"],
            position=int(data["position"]),
            cohort_stats={
                name: VariantStats.from_dict(s) for name, s in data.get("cohortStats", {}).items()
            },
        )


@dataclass
class MergedRow:
    """Dense per-position row with genotype-bucketed sample membership.

    HOM_REF samples are never enumerated; they only increment
    ``hom_ref_count``.
    """

    chromosome: str
    position: int
    reference: str
    alternate: str
    het_ref: list[int] = field(default_factory=list)
    hom_var: list[int] = field(default_factory=list)
    other: list[int] = field(default_factory=list)
    hom_ref_count: int = 0

    @property
    def key(self) -> tuple[int, str, str]:
        return (self.position, self.reference, self.alternate)

    @property
    def is_informative(self) -> bool:
        return bool(self.het_ref or self.hom_var or self.other)

    def add_sample(self, bucket: GenotypeBucket, sample_id: int) -> None:
        if bucket is GenotypeBucket.HOM_REF:
            self.hom_ref_count += 1
        else:
            self.sample_ids(bucket).append(sample_id)

    def sample_ids(self, bucket: GenotypeBucket) -> list[int]:
        if bucket is GenotypeBucket.HET_REF:
            return self.het_ref
        if bucket is GenotypeBucket.HOM_VAR:
            return self.hom_var
        if bucket is GenotypeBucket.OTHER:
            return self.other
        return []
