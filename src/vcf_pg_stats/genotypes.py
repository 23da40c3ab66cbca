"""Genotype parsing and the closed genotype-bucket classification.

Genotype strings follow the VCF GT convention: allele indices separated by
"/" (unphased) or "|" (phased), "." for a missing allele. Index 0 is the
reference allele, 1 the record's main alternate and 2.. its secondary
alternates.
"""

from dataclasses import dataclass
from enum import Enum

MISSING_GENOTYPES = {".", "./.", ".|."}


class GenotypeBucket(Enum):
    """Classification of a sample's call relative to one reference/alternate pair."""

    HOM_REF = "0/0"
    HET_REF = "0/1"
    HOM_VAR = "1/1"
    OTHER = "?/?"


@dataclass(frozen=True)
class Genotype:
    """Parsed genotype call."""

    alleles: tuple[int | None, ...]
    phased: bool = False

    @classmethod
    def parse(cls, gt: str) -> "Genotype":
        """Parse a GT string such as "0/1", "1|0", "./." or haploid "1"."""
        gt = gt.strip()
        if "|" in gt:
            return cls(tuple(_parse_allele(a) for a in gt.split("|")), phased=True)
        if "/" in gt:
            return cls(tuple(_parse_allele(a) for a in gt.split("/")))
        return cls((_parse_allele(gt),))

    @property
    def is_missing(self) -> bool:
        return any(a is None for a in self.alleles)

    @property
    def is_hom_ref(self) -> bool:
        return all(a == 0 for a in self.alleles)

    def normalized(self) -> str:
        """Unphased, sorted representation used as a genotype-count key."""
        called = sorted(a for a in self.alleles if a is not None)
        parts = [str(a) for a in called] + ["."] * (len(self.alleles) - len(called))
        return "/".join(parts)

    def __str__(self) -> str:
        sep = "|" if self.phased else "/"
        return sep.join("." if a is None else str(a) for a in self.alleles)


def _parse_allele(allele_str: str) -> int | None:
    """Parse allele string to integer, returning None for missing."""
    if allele_str in ("", "."):
        return None
    try:
        return int(allele_str)
    except ValueError:
        return None


def classify_genotype(
    genotype: Genotype,
    call_alleles: list[str],
    reference: str,
    alternate: str,
) -> GenotypeBucket:
    """Classify a genotype relative to a (reference, alternate) pair.

    Args:
        genotype: Parsed genotype from the contributing call.
        call_alleles: Allele strings of the contributing call, indexed as in
            the genotype ([reference, alternate, *secondary_alternates]).
        reference: Reference allele of the row being classified.
        alternate: Alternate allele of the row being classified.

    Returns:
        HOM_REF when every allele is the reference, HET_REF for one reference
        and one matching alternate, HOM_VAR when both alleles are the
        alternate, OTHER for missing, foreign or multi-allelic calls.
    """
    if genotype.is_missing or len(genotype.alleles) != 2:
        return GenotypeBucket.OTHER

    n_ref = 0
    n_alt = 0
    for index in genotype.alleles:
        if index is None or index >= len(call_alleles) or index < 0:
            return GenotypeBucket.OTHER
        if index == 0:
            n_ref += 1
        elif call_alleles[index] == alternate and call_alleles[0] == reference:
            n_alt += 1
        else:
            return GenotypeBucket.OTHER

    if n_ref == 2:
        return GenotypeBucket.HOM_REF
    if n_alt == 2:
        return GenotypeBucket.HOM_VAR
    return GenotypeBucket.HET_REF
