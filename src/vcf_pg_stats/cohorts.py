"""Validation and registration of cohort requests against a study registry."""

import logging
from collections.abc import Iterable

from .study_configuration import ConfigurationError, StudyConfiguration, inverse_map

logger = logging.getLogger(__name__)


class CohortReconciler:
    """Resolves requested cohorts to ids and updates the registry flags.

    Each cohort is committed as soon as it has been validated; a failure on
    a later cohort does not undo the earlier ones.
    """

    def __init__(self, study_configuration: StudyConfiguration):
        self.study_configuration = study_configuration

    def reconcile(
        self,
        cohorts: dict[str, set[str]],
        cohort_ids: dict[str, int] | None = None,
        overwrite: bool = False,
        update: bool = False,
    ) -> list[int]:
        """Register the requested cohorts and return their ids in request order.

        Empty sample sets in ``cohorts`` are replaced in place with the sample
        names already registered for that cohort.

        Args:
            cohorts: Cohort name to sample names. Empty sets reuse the
                registered samples, or are accepted as-is for aggregated studies.
            cohort_ids: Optional explicit cohort name to id assignment.
            overwrite: Invalidate already calculated cohorts so they are recomputed.
            update: Accept already calculated cohorts; only missing positions
                will be computed.

        Returns:
            Cohort ids in the same order as ``cohorts``.

        Raises:
            ConfigurationError: On any name/id/sample inconsistency.
        """
        sc = self.study_configuration
        cohort_id_list: list[int] = []

        for cohort_name, samples in cohorts.items():
            cohort_id = self._resolve_cohort_id(cohort_name, cohort_ids)

            if cohort_name in sc.cohort_ids:
                if sc.cohort_ids[cohort_name] != cohort_id:
                    raise ConfigurationError(
                        f"Duplicated cohortName {cohort_name}:{cohort_id}. Appears in the "
                        f"StudyConfiguration as {cohort_name}:{sc.cohort_ids[cohort_name]}"
                    )
            elif cohort_id in sc.cohort_ids.values():
                existing = inverse_map(sc.cohort_ids)[cohort_id]
                raise ConfigurationError(
                    f"Duplicated cohortId {cohort_name}:{cohort_id}. Appears in the "
                    f"StudyConfiguration as {existing}:{cohort_id}"
                )

            if samples:
                sample_ids = self._translate_samples(cohort_name, cohort_id, samples)
            else:
                sample_ids = self._registered_samples(cohort_name, cohort_id)
                cohorts[cohort_name] = self._sample_names(sample_ids)

            if cohort_id in sc.calculated_stats:
                if overwrite:
                    sc.calculated_stats.discard(cohort_id)
                    sc.invalid_stats.add(cohort_id)
                elif update:
                    logger.debug(
                        'Cohort "%s" stats already calculated. Calculate only for missing positions',
                        cohort_name,
                    )
                else:
                    raise ConfigurationError(f'Cohort "{cohort_name}" stats already calculated')

            cohort_id_list.append(cohort_id)
            sc.cohort_ids[cohort_name] = cohort_id
            sc.cohorts[cohort_id] = sample_ids

        return cohort_id_list

    def mark_calculated(self, cohort_names: Iterable[str], update: bool = False) -> None:
        """Flag cohorts as calculated once their stats are being loaded.

        Invalid cohorts are recovered (a previous overwrite is being loaded).

        Raises:
            ConfigurationError: If a cohort is unknown, or already calculated
                and ``update`` is False.
        """
        sc = self.study_configuration
        for cohort_name in cohort_names:
            if cohort_name not in sc.cohort_ids:
                raise ConfigurationError(
                    f'Cohort "{cohort_name}" not found in the StudyConfiguration'
                )
            cohort_id = sc.cohort_ids[cohort_name]
            if cohort_id in sc.invalid_stats:
                logger.debug(
                    'Cohort "%s" stats calculated and INVALID. Set as calculated', cohort_name
                )
                sc.invalid_stats.discard(cohort_id)
            if cohort_id in sc.calculated_stats:
                if not update:
                    raise ConfigurationError(f'Cohort "{cohort_name}" stats already calculated')
            else:
                sc.calculated_stats.add(cohort_id)

    def _resolve_cohort_id(self, cohort_name: str, cohort_ids: dict[str, int] | None) -> int:
        sc = self.study_configuration
        if cohort_ids:
            if cohort_name not in cohort_ids:
                raise ConfigurationError(f"Missing cohortId for the cohort: {cohort_name}")
            return cohort_ids[cohort_name]
        if cohort_name in sc.cohort_ids:
            return sc.cohort_ids[cohort_name]
        if not sc.cohort_ids:
            return 0
        return max(sc.cohort_ids.values()) + 1

    def _translate_samples(self, cohort_name: str, cohort_id: int, samples: set[str]) -> set[int]:
        sc = self.study_configuration
        sample_ids: set[int] = set()
        for sample in samples:
            if sample not in sc.sample_ids:
                raise ConfigurationError(f"Sample {sample} not found in the StudyConfiguration")
            sample_ids.add(sc.sample_ids[sample])
        if len(sample_ids) != len(samples):
            raise ConfigurationError(f"Duplicated samples in cohort {cohort_name}:{cohort_id}")

        stored = sc.cohorts.get(cohort_id)
        if stored and stored != sample_ids and cohort_id not in sc.invalid_stats:
            raise ConfigurationError(
                f"Different samples in cohort {cohort_name}:{cohort_id}. "
                f"Samples in the StudyConfiguration: {len(stored)}. "
                f"Samples provided {len(samples)}. Invalidate stats to continue."
            )
        return sample_ids

    def _registered_samples(self, cohort_name: str, cohort_id: int) -> set[int]:
        sc = self.study_configuration
        sample_ids = sc.cohorts.get(cohort_id)
        if sample_ids:
            return set(sample_ids)
        if sc.aggregation.is_aggregated:
            return set()
        raise ConfigurationError(f'Cohort "{cohort_name}" is empty')

    def _sample_names(self, sample_ids: set[int]) -> set[str]:
        id_samples = inverse_map(self.study_configuration.sample_ids)
        return {id_samples[sample_id] for sample_id in sample_ids if sample_id in id_samples}
