"""Merge overlapping per-sample call records into dense per-position rows.

Input windows mix variant calls with gVCF reference blocks. Every emitted
row is keyed by (position, reference, alternate) and lists the samples
called HET_REF, HOM_VAR or OTHER against that allele pair. Samples that are
homozygous reference, explicitly or through a covering reference block, are
only counted.
"""

import logging
from collections.abc import Iterable

from .genotypes import Genotype, GenotypeBucket, classify_genotype
from .models import CallRecord, MergedRow, VariantType
from .study_configuration import ConfigurationError, StudyConfiguration

logger = logging.getLogger(__name__)

# Resolution order when one sample is reached by several overlapping calls
BUCKET_PRIORITY = {
    GenotypeBucket.HOM_REF: 0,
    GenotypeBucket.HET_REF: 1,
    GenotypeBucket.HOM_VAR: 2,
    GenotypeBucket.OTHER: 3,
}

VARIANT_TYPES = frozenset(t for t in VariantType if t is not VariantType.NO_VARIATION)


def covers_position(call: CallRecord, position: int) -> bool:
    """True if ``position`` lies within the call, both ends inclusive."""
    return call.start <= position <= call.end


def covers_region(call: CallRecord, start: int, end: int, boundary_inclusive: bool = True) -> bool:
    """True if the call spans the region ``start``..``end``.

    With ``boundary_inclusive=False`` a single-point query at the call's own
    start only touches the call and does not count as covered.
    """
    if not boundary_inclusive and start == end == call.start:
        return False
    return call.start <= start and end <= call.end


def filter_for_variant(calls: Iterable[CallRecord], *types: VariantType) -> list[CallRecord]:
    """Keep calls of the given types. No types keeps nothing."""
    wanted = set(types)
    return [c for c in calls if c.variant_type in wanted]


def generate_covered_positions(calls: Iterable[CallRecord]) -> set[int]:
    """Every position covered by at least one call."""
    positions: set[int] = set()
    for call in calls:
        positions.update(range(call.start, call.end + 1))
    return positions


def create_genotype_index(
    call: CallRecord, sample_ids: dict[str, int]
) -> dict[GenotypeBucket, list[int]]:
    """Bucket the samples of one call against its own reference/alternate."""
    index: dict[GenotypeBucket, list[int]] = {bucket: [] for bucket in GenotypeBucket}
    for sample, gt in call.samples.items():
        bucket = classify_genotype(
            Genotype.parse(gt), call.alleles, call.reference, call.alternate
        )
        index[bucket].append(_sample_id(sample_ids, sample))
    for ids in index.values():
        ids.sort()
    return index


def _sample_id(sample_ids: dict[str, int], sample: str) -> int:
    if sample not in sample_ids:
        raise ConfigurationError(f"Sample {sample} not found in the StudyConfiguration")
    return sample_ids[sample]


class VariantRowMerger:
    """Collapses a window of overlapping call records into MergedRows."""

    def __init__(
        self,
        study_configuration: StudyConfiguration,
        variant_types: Iterable[VariantType] | None = None,
    ):
        self.study_configuration = study_configuration
        self.variant_types = frozenset(variant_types) if variant_types else VARIANT_TYPES

    def merge(
        self,
        calls: Iterable[CallRecord],
        positions: Iterable[int] | None = None,
    ) -> dict[tuple[int, str, str], MergedRow]:
        """Build one row per distinct allele pair starting at each anchor position.

        Args:
            calls: Variant calls and reference blocks of one chromosome window.
            positions: Anchor positions. Defaults to every variant-call start.

        Returns:
            Rows keyed by (position, reference, alternate). Rows without any
            HET_REF, HOM_VAR or OTHER sample are dropped.
        """
        calls = list(calls)
        variants = [c for c in calls if not c.is_reference_block]
        blocks = [c for c in calls if c.is_reference_block]
        # variant_types restricts anchors only; every variant call is classified
        anchors = [v for v in variants if v.variant_type in self.variant_types]
        if positions is None:
            positions = {v.start for v in anchors}

        rows: dict[tuple[int, str, str], MergedRow] = {}
        for position in sorted(set(positions)):
            starting = [v for v in anchors if v.start == position]
            if not starting:
                continue
            overlapping = [v for v in variants if covers_position(v, position)]
            covering_blocks = [b for b in blocks if covers_position(b, position)]

            allele_pairs = dict.fromkeys((v.reference, v.alternate) for v in starting)
            for reference, alternate in allele_pairs:
                row = self._build_row(
                    starting[0].chromosome,
                    position,
                    reference,
                    alternate,
                    overlapping,
                    covering_blocks,
                )
                if row.is_informative:
                    rows[row.key] = row
                else:
                    logger.debug(
                        "Dropping reference-only row %s:%d %s>%s",
                        row.chromosome, position, reference, alternate,
                    )
        return rows

    def _build_row(
        self,
        chromosome: str,
        position: int,
        reference: str,
        alternate: str,
        overlapping: list[CallRecord],
        covering_blocks: list[CallRecord],
    ) -> MergedRow:
        sample_ids = self.study_configuration.sample_ids
        explicit: dict[str, GenotypeBucket] = {}
        exact: set[str] = set()

        for call in overlapping:
            is_exact = (call.start, call.reference, call.alternate) == (
                position, reference, alternate
            )
            for sample, gt in call.samples.items():
                bucket = classify_genotype(Genotype.parse(gt), call.alleles, reference, alternate)
                if is_exact:
                    explicit[sample] = bucket
                    exact.add(sample)
                elif sample not in exact:
                    current = explicit.get(sample)
                    if current is None or BUCKET_PRIORITY[bucket] > BUCKET_PRIORITY[current]:
                        explicit[sample] = bucket

        row = MergedRow(chromosome, position, reference, alternate)
        for sample, bucket in explicit.items():
            row.add_sample(bucket, _sample_id(sample_ids, sample))

        implicit: set[str] = set()
        for block in covering_blocks:
            implicit.update(s for s in block.samples if s not in explicit)
        row.hom_ref_count += len(implicit)

        row.het_ref.sort()
        row.hom_var.sort()
        row.other.sort()
        return row
