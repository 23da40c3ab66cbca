"""PostgreSQL variant store: call records, per-cohort stats and merged rows."""

import json
import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from typing import Protocol

import asyncpg

from .models import CallRecord, MergedRow, VariantStats, VariantStatsWrapper, VariantType
from .stats.source_stats import VariantSourceStats
from .study_configuration import StudyConfiguration

logger = logging.getLogger(__name__)

NO_FILE_ID = -1

CALL_COLUMNS = [
    "study_id", "file_id", "chrom", "start_pos", "end_pos", "ref", "alt",
    "secondary_alts", "variant_type", "qual", "filter", "samples", "attributes", "stats",
]


@dataclass
class VariantQuery:
    """Read predicate for a stats run.

    ``missing_stats_cohorts`` keeps variants lacking stats for at least one
    of the named cohorts. An empty list applies no stats restriction.
    """

    study_id: int
    file_id: int | None = None
    missing_stats_cohorts: list[str] = field(default_factory=list)

    def matches(self, record: CallRecord) -> bool:
        if record.study_id != self.study_id:
            return False
        if self.file_id is not None and record.file_id != self.file_id:
            return False
        if self.missing_stats_cohorts:
            return any(c not in record.stats for c in self.missing_stats_cohorts)
        return True


class VariantSource(Protocol):
    """Ordered stream of call records matching a query."""

    def iterator(self, query: VariantQuery) -> AsyncIterator[CallRecord]:
        ...


class StatsStore(Protocol):
    """Destination for loaded statistics."""

    async def update_stats(
        self, batch: list[VariantStatsWrapper], study_configuration: StudyConfiguration
    ) -> int:
        """Upsert stats for a batch of positions, returning the number of rows changed."""
        ...

    async def update_source_stats(
        self, source_stats: VariantSourceStats, study_configuration: StudyConfiguration
    ) -> None:
        ...


class StatsSchemaManager:
    """Manages PostgreSQL schema for call records, stats and merged rows."""

    async def create_schema(self, conn: asyncpg.Connection) -> None:
        await self.create_variant_calls_table(conn)
        await self.create_source_stats_table(conn)
        await self.create_variant_rows_table(conn)

    async def create_variant_calls_table(self, conn: asyncpg.Connection) -> None:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS variant_calls (
                call_id BIGSERIAL PRIMARY KEY,
                study_id INTEGER NOT NULL,
                file_id INTEGER,
                chrom VARCHAR(50) NOT NULL,
                start_pos BIGINT NOT NULL,
                end_pos BIGINT NOT NULL,
                ref TEXT NOT NULL,
                alt TEXT NOT NULL,
                secondary_alts TEXT[],
                variant_type VARCHAR(20) NOT NULL,
                qual FLOAT,
                filter TEXT[],
                samples JSONB NOT NULL DEFAULT '{}'::jsonb,
                attributes JSONB NOT NULL DEFAULT '{}'::jsonb,
                stats JSONB NOT NULL DEFAULT '{}'::jsonb,
                CONSTRAINT valid_interval CHECK (start_pos <= end_pos)
            )
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_variant_calls_study_pos
            ON variant_calls(study_id, chrom, start_pos)
        """)
        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_variant_calls_file
            ON variant_calls(study_id, file_id)
        """)

    async def create_source_stats_table(self, conn: asyncpg.Connection) -> None:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS variant_source_stats (
                study_id INTEGER NOT NULL,
                file_id INTEGER NOT NULL DEFAULT -1,
                stats JSONB NOT NULL,
                updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (study_id, file_id)
            )
        """)

    async def create_variant_rows_table(self, conn: asyncpg.Connection) -> None:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS variant_rows (
                study_id INTEGER NOT NULL,
                chrom VARCHAR(50) NOT NULL,
                pos BIGINT NOT NULL,
                ref TEXT NOT NULL,
                alt TEXT NOT NULL,
                het_ref INTEGER[] NOT NULL DEFAULT '{}',
                hom_var INTEGER[] NOT NULL DEFAULT '{}',
                other INTEGER[] NOT NULL DEFAULT '{}',
                hom_ref_count INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (study_id, chrom, pos, ref, alt)
            )
        """)

    async def drop_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute("DROP TABLE IF EXISTS variant_rows CASCADE")
        await conn.execute("DROP TABLE IF EXISTS variant_source_stats CASCADE")
        await conn.execute("DROP TABLE IF EXISTS variant_calls CASCADE")


class PostgresVariantStore:
    """asyncpg-backed VariantSource and StatsStore."""

    def __init__(self, db_url: str, workers: int = 4, prefetch: int = 1000):
        self.db_url = db_url
        self.workers = workers
        self.prefetch = prefetch
        self.pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Establish database connection pool."""
        self.pool = await asyncpg.create_pool(
            self.db_url,
            min_size=1,
            max_size=self.workers * 2,
            command_timeout=300,
        )

    async def close(self) -> None:
        """Close database connection pool."""
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def __aenter__(self) -> "PostgresVariantStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def init_schema(self) -> None:
        async with self.pool.acquire() as conn:
            await StatsSchemaManager().create_schema(conn)

    async def copy_call_records(self, batch: list[CallRecord]) -> int:
        """Copy a batch of call records using binary COPY protocol."""
        if not batch:
            return 0

        records = [
            (
                r.study_id,
                r.file_id,
                r.chromosome,
                r.start,
                r.end,
                r.reference,
                r.alternate,
                r.secondary_alternates or None,
                r.variant_type.value,
                r.quality,
                r.filter or None,
                json.dumps(r.samples),
                json.dumps(r.attributes, default=str),
                json.dumps({name: s.to_dict() for name, s in r.stats.items()}),
            )
            for r in batch
        ]

        async with self.pool.acquire() as conn:
            await conn.copy_records_to_table("variant_calls", records=records, columns=CALL_COLUMNS)
        return len(records)

    async def iterator(self, query: VariantQuery) -> AsyncIterator[CallRecord]:
        """Stream matching call records in (chromosome, position) order."""
        sql, args = self._build_select(query)
        logger.info("ReaderQuery: %s %s", " ".join(sql.split()), args)
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                async for row in conn.cursor(sql, *args, prefetch=self.prefetch):
                    yield self._row_to_record(row)

    def _build_select(self, query: VariantQuery) -> tuple[str, list]:
        clauses = ["study_id = $1"]
        args: list = [query.study_id]
        if query.file_id is not None:
            args.append(query.file_id)
            clauses.append(f"file_id = ${len(args)}")
        if query.missing_stats_cohorts:
            args.append(list(query.missing_stats_cohorts))
            clauses.append(f"NOT (stats ?& ${len(args)}::text[])")
        sql = f"""
            SELECT {", ".join(CALL_COLUMNS)}
            FROM variant_calls
            WHERE {" AND ".join(clauses)}
            ORDER BY chrom, start_pos, call_id
        """
        return sql, args

    @staticmethod
    def _row_to_record(row) -> CallRecord:
        stats = json.loads(row["stats"]) if row["stats"] else {}
        return CallRecord(
            chromosome=row["chrom"],
            start=row["start_pos"],
            end=row["end_pos"],
            reference=row["ref"],
            alternate=row["alt"],
            variant_type=VariantType(row["variant_type"]),
            samples=json.loads(row["samples"]) if row["samples"] else {},
            secondary_alternates=list(row["secondary_alts"] or []),
            study_id=row["study_id"],
            file_id=row["file_id"],
            quality=row["qual"],
            filter=list(row["filter"] or []),
            attributes=json.loads(row["attributes"]) if row["attributes"] else {},
            stats={name: VariantStats.from_dict(s) for name, s in stats.items()},
        )

    async def update_stats(
        self, batch: list[VariantStatsWrapper], study_configuration: StudyConfiguration
    ) -> int:
        """Merge per-cohort stats into the matching variant calls.

        Rows whose stored stats already equal the incoming values, cohort by
        cohort, are left untouched, so reloading an artifact is safe.
        """
        if not batch:
            return 0

        chroms, positions, refs, alts, payloads = [], [], [], [], []
        for wrapper in batch:
            if not wrapper.cohort_stats:
                continue
            first = next(iter(wrapper.cohort_stats.values()))
            chroms.append(wrapper.chromosome)
            positions.append(wrapper.position)
            refs.append(first.ref_allele)
            alts.append(first.alt_allele)
            payloads.append(
                json.dumps({name: s.to_dict() for name, s in wrapper.cohort_stats.items()})
            )

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                UPDATE variant_calls AS v
                SET stats = v.stats || t.stats::jsonb
                FROM unnest($2::text[], $3::bigint[], $4::text[], $5::text[], $6::text[])
                    AS t(chrom, pos, ref, alt, stats)
                WHERE v.study_id = $1
                  AND v.chrom = t.chrom
                  AND v.start_pos = t.pos
                  AND v.ref = t.ref
                  AND v.alt = t.alt
                  AND EXISTS (
                      SELECT 1 FROM jsonb_each(t.stats::jsonb) AS s(cohort, value)
                      WHERE v.stats -> s.cohort IS DISTINCT FROM s.value
                  )
                RETURNING v.call_id
                """,
                study_configuration.study_id,
                chroms,
                positions,
                refs,
                alts,
                payloads,
            )
        return len(rows)

    async def update_source_stats(
        self, source_stats: VariantSourceStats, study_configuration: StudyConfiguration
    ) -> None:
        file_id = int(source_stats.file_id) if source_stats.file_id is not None else NO_FILE_ID
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO variant_source_stats (study_id, file_id, stats)
                VALUES ($1, $2, $3::jsonb)
                ON CONFLICT (study_id, file_id) DO UPDATE SET
                    stats = EXCLUDED.stats,
                    updated_at = NOW()
                """,
                study_configuration.study_id,
                file_id,
                json.dumps(source_stats.to_dict()),
            )

    async def upsert_merged_rows(
        self, rows: Iterable[MergedRow], study_configuration: StudyConfiguration
    ) -> int:
        """Insert merged rows, replacing any row with the same key."""
        records = [
            (
                study_configuration.study_id,
                r.chromosome,
                r.position,
                r.reference,
                r.alternate,
                r.het_ref,
                r.hom_var,
                r.other,
                r.hom_ref_count,
            )
            for r in rows
        ]
        if not records:
            return 0

        async with self.pool.acquire() as conn:
            await conn.executemany(
                """
                INSERT INTO variant_rows (
                    study_id, chrom, pos, ref, alt, het_ref, hom_var, other, hom_ref_count
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                ON CONFLICT (study_id, chrom, pos, ref, alt) DO UPDATE SET
                    het_ref = EXCLUDED.het_ref,
                    hom_var = EXCLUDED.hom_var,
                    other = EXCLUDED.other,
                    hom_ref_count = EXCLUDED.hom_ref_count
                """,
                records,
            )
        return len(records)
