"""Reading and writing of the gzip-compressed stats artifacts.

For an output prefix ``P`` a stats run produces:

- ``P.variants.stats.json.gz``: one VariantStatsWrapper JSON object per line
- ``P.source.stats.json.gz``: a single VariantSourceStats JSON document
"""

import gzip
import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import IO

from ..models import VariantStatsWrapper
from .source_stats import VariantSourceStats

logger = logging.getLogger(__name__)

VARIANT_STATS_SUFFIX = ".variants.stats.json.gz"
SOURCE_STATS_SUFFIX = ".source.stats.json.gz"


class StatsArtifactError(Exception):
    """Raised when a stats artifact is empty or holds a malformed record."""

    pass


def variant_stats_path(output: Path | str) -> Path:
    return Path(f"{output}{VARIANT_STATS_SUFFIX}")


def source_stats_path(output: Path | str) -> Path:
    return Path(f"{output}{SOURCE_STATS_SUFFIX}")


def open_output(path: Path) -> IO[str]:
    """Open an artifact for writing, compressing when the name ends in .gz."""
    logger.info("will write stats to %s", path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix == ".gz":
        return gzip.open(path, "wt", encoding="utf-8")
    return open(path, "w", encoding="utf-8")


def serialize_wrapper(wrapper: VariantStatsWrapper) -> str:
    return json.dumps(wrapper.to_dict(), separators=(",", ":"))


def iter_variant_stats(path: Path) -> Iterator[VariantStatsWrapper]:
    """Stream wrappers from a per-position artifact.

    Raises:
        StatsArtifactError: On a line that is not a valid wrapper.
    """
    with gzip.open(path, "rt", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield VariantStatsWrapper.from_dict(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                raise StatsArtifactError(
                    f"Malformed stats record at {path}:{line_number}: {e}"
                ) from e


def peek_variant_stats(path: Path) -> VariantStatsWrapper:
    """First record of a per-position artifact.

    Raises:
        StatsArtifactError: If the artifact holds no record.
    """
    for wrapper in iter_variant_stats(path):
        return wrapper
    raise StatsArtifactError(f"File {path} is empty")


def write_source_stats(source_stats: VariantSourceStats, path: Path) -> None:
    with open_output(path) as f:
        json.dump(source_stats.to_dict(), f)


def read_source_stats(path: Path) -> VariantSourceStats:
    with gzip.open(path, "rt", encoding="utf-8") as f:
        try:
            return VariantSourceStats.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise StatsArtifactError(f"Malformed source stats in {path}: {e}") from e
