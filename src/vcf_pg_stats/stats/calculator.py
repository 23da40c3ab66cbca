"""Per-cohort variant statistics from call records.

Studies with per-sample genotypes count genotypes of the cohort members.
Aggregated studies derive allele counts from INFO attributes, optionally
renamed through a tag map of the form ``{"COHORT.AC": "INFO_KEY", ...}``.
"""

import logging
from collections.abc import Iterable
from typing import Any

from ..models import CallRecord, VariantStats, VariantStatsWrapper
from ..study_configuration import DEFAULT_COHORT, Aggregation

logger = logging.getLogger(__name__)

AGGREGATED_TAGS = ("AC", "AN")


def cohorts_from_tag_map(tag_map: dict[str, str]) -> list[str]:
    """Cohort names declared by a tag map, in first-seen order."""
    cohorts: dict[str, None] = {}
    for key in tag_map:
        if "." not in key:
            continue
        cohort, tag = key.rsplit(".", 1)
        if tag in AGGREGATED_TAGS:
            cohorts.setdefault(cohort, None)
    return list(cohorts)


def _safe_int(value: Any) -> int | None:
    """Convert an INFO value to int, taking the first element of lists."""
    if isinstance(value, list | tuple):
        if not value:
            return None
        value = value[0]
    if value is None:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


class VariantStatsCalculator:
    """Computes VariantStats per requested cohort."""

    def __init__(
        self,
        overwrite: bool = False,
        aggregation: Aggregation = Aggregation.NONE,
        tag_map: dict[str, str] | None = None,
    ):
        self.overwrite = overwrite
        self.aggregation = aggregation
        self.tag_map = tag_map

    def calculate_batch(
        self, records: Iterable[CallRecord], cohorts: dict[str, set[str]]
    ) -> list[VariantStatsWrapper]:
        """One wrapper per record with at least one computed cohort."""
        wrappers = []
        for record in records:
            wrapper = self.calculate(record, cohorts)
            if wrapper.cohort_stats:
                wrappers.append(wrapper)
        return wrappers

    def calculate(self, record: CallRecord, cohorts: dict[str, set[str]]) -> VariantStatsWrapper:
        wrapper = VariantStatsWrapper(record.chromosome, record.start)
        for cohort_name, samples in cohorts.items():
            if not self.overwrite and cohort_name in record.stats:
                continue
            if self.aggregation.is_aggregated:
                stats = self._aggregated_stats(record, cohort_name)
            else:
                stats = self._sample_stats(record, samples)
            if stats is not None:
                wrapper.cohort_stats[cohort_name] = stats
        return wrapper

    def _sample_stats(self, record: CallRecord, samples: set[str]) -> VariantStats:
        stats = VariantStats(record.reference, record.alternate)
        for sample in sorted(samples):
            genotype = record.genotype(sample)
            if genotype is not None:
                stats.add_genotype(genotype)
        return stats

    def _aggregated_stats(self, record: CallRecord, cohort_name: str) -> VariantStats | None:
        if self.tag_map:
            ac_key = self.tag_map.get(f"{cohort_name}.AC")
            an_key = self.tag_map.get(f"{cohort_name}.AN")
        elif cohort_name == DEFAULT_COHORT:
            ac_key, an_key = "AC", "AN"
        else:
            return None

        ac = _safe_int(record.attributes.get(ac_key)) if ac_key else None
        an = _safe_int(record.attributes.get(an_key)) if an_key else None
        if ac is None or an is None:
            logger.debug(
                "No aggregated counts for cohort %s at %s:%d",
                cohort_name, record.chromosome, record.start,
            )
            return None
        return VariantStats(
            record.reference,
            record.alternate,
            ref_allele_count=an - ac,
            alt_allele_count=ac,
        )
