"""Applies persisted stats artifacts to the variant store."""

import logging
import time
from pathlib import Path

from ..cohorts import CohortReconciler
from ..config import StatsOptions
from ..configuration_store import StudyConfigurationStore
from ..models import VariantStatsWrapper
from ..storage import StatsStore
from ..study_configuration import StudyConfiguration
from .io import (
    iter_variant_stats,
    peek_variant_stats,
    read_source_stats,
    source_stats_path,
    variant_stats_path,
)

logger = logging.getLogger(__name__)


class StatsLoader:
    """Loads the artifacts written by StatsPipeline, sequentially and in batches."""

    def __init__(self, store: StatsStore, configuration_store: StudyConfigurationStore):
        self.store = store
        self.configuration_store = configuration_store

    async def load_stats(
        self,
        artifact: Path | str,
        study_configuration: StudyConfiguration,
        options: StatsOptions | None = None,
    ) -> tuple[int, int]:
        """Load both artifacts under the prefix ``artifact``.

        Returns:
            Tuple of (records seen, records written).

        Raises:
            ConfigurationError: If a cohort is unknown, or already calculated
                without ``options.update``.
            StatsArtifactError: If the per-position artifact is empty or malformed.
        """
        options = options or StatsOptions()
        variant_stats = variant_stats_path(artifact)
        source_stats = source_stats_path(artifact)

        first = peek_variant_stats(variant_stats)
        CohortReconciler(study_configuration).mark_calculated(
            first.cohort_stats.keys(), update=options.update
        )

        logger.info("starting stats loading from %s and %s", variant_stats, source_stats)
        start = time.monotonic()

        seen, written = await self.load_variant_stats(
            variant_stats, study_configuration, options.load_batch_size
        )
        await self.load_source_stats(source_stats, study_configuration)

        logger.info("finishing stats loading, time: %dms", (time.monotonic() - start) * 1000)

        self.configuration_store.update(study_configuration)
        return seen, written

    async def load_variant_stats(
        self, path: Path, study_configuration: StudyConfiguration, batch_size: int = 1000
    ) -> tuple[int, int]:
        seen = 0
        written = 0
        batch: list[VariantStatsWrapper] = []

        for wrapper in iter_variant_stats(path):
            seen += 1
            batch.append(wrapper)
            if len(batch) == batch_size:
                written += await self._flush(batch, study_configuration)
                batch = []

        if batch:
            written += await self._flush(batch, study_configuration)

        if written < seen:
            logger.warning(
                "provided statistics of %d variants, but only %d were updated", seen, written
            )
            logger.info(
                "note: maybe those variants didn't have the proper study? "
                "maybe the new and the old stats were the same?"
            )
        return seen, written

    async def load_source_stats(self, path: Path, study_configuration: StudyConfiguration) -> None:
        source_stats = read_source_stats(path)
        await self.store.update_source_stats(source_stats, study_configuration)

    async def _flush(
        self, batch: list[VariantStatsWrapper], study_configuration: StudyConfiguration
    ) -> int:
        written = await self.store.update_stats(batch, study_configuration)
        last = batch[-1]
        logger.info("stats loaded up to position %s:%d", last.chromosome, last.position)
        return written
