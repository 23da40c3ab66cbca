"""Read (g)VCF files into CallRecords.

Multi-allelic sites become one record per real ALT allele; genotype indices
are renumbered so that 1 always refers to the record's own alternate.
Sites whose only ALT alleles are symbolic non-reference placeholders
(``<NON_REF>``, ``<*>``) are reference blocks spanning POS..END.
"""

import logging
from collections.abc import Iterator
from pathlib import Path

from cyvcf2 import VCF

from .models import REFERENCE_BLOCK_ALTS, CallRecord, VariantType

logger = logging.getLogger(__name__)


def format_gt(gt_data: list) -> str:
    """Format a cyvcf2 genotype entry ([a1, a2, ..., phased]) as a GT string."""
    if len(gt_data) < 2:
        return "./."

    *alleles, phased = gt_data
    sep = "|" if phased else "/"
    return sep.join("." if a < 0 else str(a) for a in alleles)


def remap_gt(gt: str, index_map: dict[int, int]) -> str:
    """Renumber the allele indices of a GT string."""
    sep = "|" if "|" in gt else "/"
    parts = []
    for allele in gt.split(sep):
        if allele == ".":
            parts.append(allele)
        else:
            parts.append(str(index_map.get(int(allele), int(allele))))
    return sep.join(parts)


class GVCFReader:
    """Streams CallRecords from a VCF or gVCF file."""

    def __init__(
        self,
        vcf_path: Path | str,
        study_id: int | None = None,
        file_id: int | None = None,
        batch_size: int = 10000,
    ):
        self.vcf_path = Path(vcf_path)
        self.study_id = study_id
        self.file_id = file_id
        self.batch_size = batch_size
        self._vcf = VCF(str(self.vcf_path))
        self._samples = list(self._vcf.samples)
        logger.debug("Opened %s with %d samples", self.vcf_path, len(self._samples))

    @property
    def samples(self) -> list[str]:
        return list(self._samples)

    def close(self) -> None:
        self._vcf.close()

    def __enter__(self) -> "GVCFReader":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[CallRecord]:
        for variant in self._vcf:
            yield from self.parse_variant(variant)

    def iter_batches(self) -> Iterator[list[CallRecord]]:
        batch: list[CallRecord] = []
        for record in self:
            batch.append(record)
            if len(batch) >= self.batch_size:
                yield batch
                batch = []
        if batch:
            yield batch

    def parse_variant(self, variant) -> list[CallRecord]:
        """Parse a cyvcf2 variant into CallRecords."""
        alts = list(variant.ALT)
        gts = [format_gt(g) for g in variant.genotypes] if self._samples else []
        samples = dict(zip(self._samples, gts, strict=True))
        info = dict(variant.INFO)
        filters = list(variant.FILTERS) if variant.FILTERS else []
        real_alts = [(i, a) for i, a in enumerate(alts, start=1) if a not in REFERENCE_BLOCK_ALTS]

        if not real_alts:
            return [
                CallRecord(
                    chromosome=variant.CHROM,
                    start=variant.POS,
                    end=variant.end,
                    reference=variant.REF,
                    alternate=alts[0] if alts else "",
                    variant_type=VariantType.NO_VARIATION,
                    samples=samples,
                    secondary_alternates=alts[1:],
                    study_id=self.study_id,
                    file_id=self.file_id,
                    quality=variant.QUAL,
                    filter=filters,
                    attributes=info,
                )
            ]

        records = []
        for alt_index, alt in real_alts:
            others = [(i, a) for i, a in enumerate(alts, start=1) if i != alt_index]
            index_map = {0: 0, alt_index: 1}
            index_map.update({i: n for n, (i, _) in enumerate(others, start=2)})

            records.append(
                CallRecord(
                    chromosome=variant.CHROM,
                    start=variant.POS,
                    end=variant.POS + len(variant.REF) - 1,
                    reference=variant.REF,
                    alternate=alt,
                    variant_type=VariantType.infer(variant.REF, alt),
                    samples={s: remap_gt(gt, index_map) for s, gt in samples.items()},
                    secondary_alternates=[a for _, a in others],
                    study_id=self.study_id,
                    file_id=self.file_id,
                    quality=variant.QUAL,
                    filter=filters,
                    attributes=self._alt_attributes(info, alt_index, len(alts)),
                )
            )
        return records

    @staticmethod
    def _alt_attributes(info: dict, alt_index: int, n_alts: int) -> dict:
        """Slice per-ALT (Number=A) INFO values down to the given allele."""
        attributes = {}
        for key, value in info.items():
            if isinstance(value, tuple) and len(value) == n_alts and n_alts > 1:
                attributes[key] = value[alt_index - 1]
            elif isinstance(value, tuple):
                attributes[key] = list(value)
            else:
                attributes[key] = value
        return attributes
