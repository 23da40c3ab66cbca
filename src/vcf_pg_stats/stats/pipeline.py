"""Bounded-concurrency stats creation: reader -> worker pool -> ordered writer.

One reader batches the matching call records, ``workers`` tasks compute the
per-cohort stats in a thread pool, and a single writer emits the serialized
records in read order. At most ``2 * workers`` batches are in flight at any
time; the reader waits for the writer to drain before reading further.
"""

import asyncio
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from ..cohorts import CohortReconciler
from ..config import StatsOptions
from ..configuration_store import StudyConfigurationStore
from ..models import CallRecord
from ..storage import VariantQuery, VariantSource
from ..study_configuration import DEFAULT_COHORT, StudyConfiguration, check_study_configuration
from .calculator import VariantStatsCalculator, cohorts_from_tag_map
from .io import (
    open_output,
    serialize_wrapper,
    source_stats_path,
    variant_stats_path,
    write_source_stats,
)
from .source_stats import VariantSourceStats

logger = logging.getLogger(__name__)

_END = object()


def write_lines(out, lines: list[str]) -> None:
    """Write one batch of serialized records, one per line."""
    for line in lines:
        out.write(line)
        out.write("\n")


class VariantStatsTask:
    """Computes and serializes the stats of one batch.

    Each worker owns a task; the VariantSourceStats accumulator and its lock
    are shared by all tasks of a run.
    """

    def __init__(
        self,
        cohorts: dict[str, set[str]],
        study_configuration: StudyConfiguration,
        source_stats: VariantSourceStats,
        source_stats_lock: threading.Lock,
        overwrite: bool = False,
        tag_map: dict[str, str] | None = None,
    ):
        self.cohorts = cohorts
        self.source_stats = source_stats
        self.source_stats_lock = source_stats_lock
        self.calculator = VariantStatsCalculator(
            overwrite=overwrite,
            aggregation=study_configuration.aggregation,
            tag_map=tag_map,
        )

    def apply(self, batch: list[CallRecord]) -> list[str]:
        start = time.monotonic()
        wrappers = self.calculator.calculate_batch(batch, self.cohorts)
        lines = [serialize_wrapper(w) for w in wrappers]
        default_cohort_absent = any(DEFAULT_COHORT not in w.cohort_stats for w in wrappers)

        # Stats over a subset of samples must not leak into the whole-file summary
        if not default_cohort_absent:
            with self.source_stats_lock:
                self.source_stats.update_file_stats(batch)
                self.source_stats.update_sample_stats(batch)

        logger.debug(
            "another batch of %d elements calculated. time: %dms",
            len(lines), (time.monotonic() - start) * 1000,
        )
        if batch:
            last = batch[-1]
            logger.info("stats created up to position %s:%d", last.chromosome, last.start)
        else:
            logger.info("task with empty batch")
        return lines


class StatsPipeline:
    """Creates the per-position and source stats artifacts for a study."""

    def __init__(self, source: VariantSource, configuration_store: StudyConfigurationStore):
        self.source = source
        self.configuration_store = configuration_store

    async def create_stats(
        self,
        output: Path | str,
        cohorts: dict[str, set[str]] | None,
        cohort_ids: dict[str, int] | None,
        study_configuration: StudyConfiguration,
        options: StatsOptions | None = None,
    ) -> Path:
        """Compute stats for the requested cohorts and write both artifacts.

        Args:
            output: Prefix for the artifact file names.
            cohorts: Cohort name to sample names. Empty sets reuse the
                registered samples.
            cohort_ids: Optional explicit cohort ids.
            study_configuration: Registry of the study; mutated and persisted.
            options: Batch size, worker count, overwrite/update flags, tag map
                and file filter.

        Returns:
            The output prefix.

        Raises:
            ConfigurationError: If the cohort request is inconsistent.
        """
        options = options or StatsOptions()
        output = Path(output)
        overwrite = options.overwrite
        tag_map = options.aggregation_mapping

        if study_configuration.aggregation.is_aggregated and tag_map:
            cohorts = {c: set() for c in cohorts_from_tag_map(tag_map)}
        elif cohorts is None:
            cohorts = {}

        CohortReconciler(study_configuration).reconcile(
            cohorts, cohort_ids, overwrite=overwrite, update=options.update
        )
        if not overwrite:
            for cohort_name in cohorts:
                cohort_id = study_configuration.cohort_ids[cohort_name]
                if cohort_id in study_configuration.invalid_stats:
                    logger.debug(
                        'Cohort "%s":%d is invalid. Need to overwrite stats. Using overwrite = true',
                        cohort_name, cohort_id,
                    )
                    overwrite = True
        check_study_configuration(study_configuration)

        query = VariantQuery(
            study_id=study_configuration.study_id,
            file_id=options.file_id,
            missing_stats_cohorts=list(cohorts) if options.update else [],
        )
        source_stats = VariantSourceStats(
            study_id=str(study_configuration.study_id),
            file_id=str(options.file_id) if options.file_id is not None else None,
        )
        lock = threading.Lock()
        tasks = [
            VariantStatsTask(cohorts, study_configuration, source_stats, lock, overwrite, tag_map)
            for _ in range(options.workers)
        ]

        stats_path = variant_stats_path(output)
        logger.info("starting stats creation for cohorts %s", list(cohorts))
        start = time.monotonic()
        try:
            await self._run(query, tasks, stats_path, options.batch_size)
        except BaseException:
            stats_path.unlink(missing_ok=True)
            raise
        logger.info("finishing stats creation, time: %dms", (time.monotonic() - start) * 1000)

        write_source_stats(source_stats, source_stats_path(output))

        self.configuration_store.update(study_configuration)
        return output

    async def _run(
        self,
        query: VariantQuery,
        tasks: list[VariantStatsTask],
        stats_path: Path,
        batch_size: int,
    ) -> None:
        loop = asyncio.get_running_loop()
        in_flight = asyncio.Semaphore(2 * len(tasks))
        work: asyncio.Queue = asyncio.Queue()
        done: asyncio.Queue = asyncio.Queue()

        async def read() -> None:
            index = 0
            batch: list[CallRecord] = []
            async for record in self.source.iterator(query):
                batch.append(record)
                if len(batch) == batch_size:
                    await in_flight.acquire()
                    await work.put((index, batch))
                    index += 1
                    batch = []
            if batch:
                await in_flight.acquire()
                await work.put((index, batch))
                index += 1
            for _ in tasks:
                await work.put(_END)
            await done.put((index, _END))

        async def compute(task: VariantStatsTask, executor: ThreadPoolExecutor) -> None:
            while True:
                item = await work.get()
                if item is _END:
                    return
                index, batch = item
                lines = await loop.run_in_executor(executor, task.apply, batch)
                await done.put((index, lines))

        async def write() -> None:
            pending: dict[int, list[str]] = {}
            next_index = 0
            total_batches: int | None = None
            with open_output(stats_path) as out:
                while total_batches is None or next_index < total_batches:
                    index, lines = await done.get()
                    if lines is _END:
                        total_batches = index
                        continue
                    pending[index] = lines
                    while next_index in pending:
                        await loop.run_in_executor(None, write_lines, out, pending.pop(next_index))
                        next_index += 1
                        in_flight.release()

        with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="stats") as executor:
            runners = [
                asyncio.ensure_future(read()),
                asyncio.ensure_future(write()),
                *(asyncio.ensure_future(compute(t, executor)) for t in tasks),
            ]
            try:
                await asyncio.gather(*runners)
            except BaseException:
                for runner in runners:
                    runner.cancel()
                await asyncio.gather(*runners, return_exceptions=True)
                raise
