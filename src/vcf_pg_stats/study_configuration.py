"""Per-study registry of sample, cohort and file identifiers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_COHORT = "ALL"

# Sources that only provide pooled allele counts
AGGREGATED_NAMES = {"aggregated", "basic", "evs", "exac"}


class ConfigurationError(Exception):
    """Raised when a cohort, sample or identifier assignment is inconsistent."""

    pass


class Aggregation(Enum):
    """Whether a study carries per-sample genotypes."""

    NONE = "none"
    AGGREGATED = "aggregated"

    @property
    def is_aggregated(self) -> bool:
        return self is Aggregation.AGGREGATED

    @classmethod
    def from_string(cls, value: str) -> "Aggregation":
        """Parse an aggregation name.

        Raises:
            ValueError: If the name is not a known aggregation.
        """
        value_lower = value.lower()
        if value_lower in ("none", ""):
            return cls.NONE
        if value_lower in AGGREGATED_NAMES:
            return cls.AGGREGATED
        raise ValueError(
            f"Unknown aggregation '{value}', expected none or one of {sorted(AGGREGATED_NAMES)}"
        )


def inverse_map(mapping: dict[Any, Any]) -> dict[Any, Any]:
    """Invert a one-to-one mapping."""
    return {v: k for k, v in mapping.items()}


@dataclass
class StudyConfiguration:
    """Identifier assignments and stats-completion flags for one study.

    The object is not internally locked. Callers must serialize operations
    that mutate it for the same study.
    """

    study_id: int
    study_name: str
    aggregation: Aggregation = Aggregation.NONE
    sample_ids: dict[str, int] = field(default_factory=dict)
    file_ids: dict[str, int] = field(default_factory=dict)
    cohort_ids: dict[str, int] = field(default_factory=dict)
    cohorts: dict[int, set[int]] = field(default_factory=dict)
    calculated_stats: set[int] = field(default_factory=set)
    invalid_stats: set[int] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "studyId": self.study_id,
            "studyName": self.study_name,
            "aggregation": self.aggregation.value,
            "sampleIds": dict(self.sample_ids),
            "fileIds": dict(self.file_ids),
            "cohortIds": dict(self.cohort_ids),
            "cohorts": {str(k): sorted(v) for k, v in self.cohorts.items()},
            "calculatedStats": sorted(self.calculated_stats),
            "invalidStats": sorted(self.invalid_stats),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StudyConfiguration":
        return cls(
            study_id=int(data["studyId"]),
            study_name=data["studyName"],
            aggregation=Aggregation.from_string(data.get("aggregation", "none")),
            sample_ids={k: int(v) for k, v in data.get("sampleIds", {}).items()},
            file_ids={k: int(v) for k, v in data.get("fileIds", {}).items()},
            cohort_ids={k: int(v) for k, v in data.get("cohortIds", {}).items()},
            cohorts={int(k): {int(s) for s in v} for k, v in data.get("cohorts", {}).items()},
            calculated_stats={int(c) for c in data.get("calculatedStats", [])},
            invalid_stats={int(c) for c in data.get("invalidStats", [])},
        )


def check_study_configuration(study_configuration: StudyConfiguration) -> None:
    """Verify the registry invariants.

    Raises:
        ConfigurationError: If a name or id is assigned twice, a cohort is
            both calculated and invalid, or a cohort set has no registered id.
    """
    if study_configuration is None:
        raise ConfigurationError("StudyConfiguration is null")

    for label, mapping in (
        ("sample", study_configuration.sample_ids),
        ("file", study_configuration.file_ids),
        ("cohort", study_configuration.cohort_ids),
    ):
        if len(set(mapping.values())) != len(mapping):
            seen: dict[int, str] = {}
            for name, id_ in mapping.items():
                if id_ in seen:
                    raise ConfigurationError(
                        f"Duplicated {label} id {id_}: used by {seen[id_]!r} and {name!r}"
                    )
                seen[id_] = name

    both = study_configuration.calculated_stats & study_configuration.invalid_stats
    if both:
        raise ConfigurationError(
            f"Cohorts {sorted(both)} are flagged both calculated and invalid"
        )

    registered = set(study_configuration.cohort_ids.values())
    unregistered = set(study_configuration.cohorts) - registered
    if unregistered:
        raise ConfigurationError(f"Cohorts {sorted(unregistered)} have no registered name")
