"""Cohort statistics: calculation, artifacts, creation pipeline and loading."""

from .calculator import VariantStatsCalculator, cohorts_from_tag_map
from .io import (
    SOURCE_STATS_SUFFIX,
    VARIANT_STATS_SUFFIX,
    StatsArtifactError,
    source_stats_path,
    variant_stats_path,
)
from .source_stats import SampleStats, VariantSourceStats

__all__ = [
    "SOURCE_STATS_SUFFIX",
    "VARIANT_STATS_SUFFIX",
    "SampleStats",
    "StatsArtifactError",
    "VariantSourceStats",
    "VariantStatsCalculator",
    "cohorts_from_tag_map",
    "source_stats_path",
    "variant_stats_path",
]
