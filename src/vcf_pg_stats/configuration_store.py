"""Persistence for StudyConfiguration objects."""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from .study_configuration import StudyConfiguration

logger = logging.getLogger(__name__)

STUDY_CONFIGURATION_SUFFIX = ".study.json"


class StudyConfigurationNotFoundError(LookupError):
    """Raised when no configuration exists for the requested study."""

    pass


class StudyConfigurationStore(ABC):
    """Abstract base class for study configuration backends."""

    @abstractmethod
    def get(self, study: int | str) -> StudyConfiguration:
        """Retrieve a study configuration by id or name.

        Raises:
            StudyConfigurationNotFoundError: If the study is unknown.
        """
        pass

    @abstractmethod
    def update(self, study_configuration: StudyConfiguration) -> None:
        """Persist a study configuration, replacing any previous version."""
        pass


class FileStudyConfigurationStore(StudyConfigurationStore):
    """One JSON document per study id under a base directory.

    ``paths`` is a caller-owned table of explicit locations keyed by study
    id. Studies missing from it resolve to ``<base_dir>/<id>.study.json``.
    """

    def __init__(self, base_dir: Path | str, paths: dict[int, Path] | None = None):
        self.base_dir = Path(base_dir)
        self.paths = paths if paths is not None else {}

    def path_for(self, study_id: int) -> Path:
        if study_id in self.paths:
            return self.paths[study_id]
        return self.base_dir / f"{study_id}{STUDY_CONFIGURATION_SUFFIX}"

    def get(self, study: int | str) -> StudyConfiguration:
        if isinstance(study, int):
            path = self.path_for(study)
            if not path.exists():
                raise StudyConfigurationNotFoundError(
                    f"No configuration for study {study} at {path}"
                )
            return read_study_configuration(path)

        for path in self._candidate_paths():
            study_configuration = read_study_configuration(path)
            if study_configuration.study_name == study:
                return study_configuration
        raise StudyConfigurationNotFoundError(
            f"No configuration for study {study!r} under {self.base_dir}"
        )

    def update(self, study_configuration: StudyConfiguration) -> None:
        path = self.path_for(study_configuration.study_id)
        write_study_configuration(study_configuration, path)
        logger.debug("Study configuration %s written to %s", study_configuration.study_id, path)

    def _candidate_paths(self) -> list[Path]:
        candidates = [p for p in self.paths.values() if p.exists()]
        if self.base_dir.is_dir():
            candidates.extend(sorted(self.base_dir.glob(f"*{STUDY_CONFIGURATION_SUFFIX}")))
        return candidates


def read_study_configuration(path: Path) -> StudyConfiguration:
    with open(path) as f:
        return StudyConfiguration.from_dict(json.load(f))


def write_study_configuration(study_configuration: StudyConfiguration, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(study_configuration.to_dict(), f, indent=2)
        f.write("\n")
