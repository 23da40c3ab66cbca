"""vcf-pg-stats: cohort statistics and merged genotype rows CLI."""

import asyncio
import logging
import os
from itertools import groupby
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn

from . import __version__
from .config import ConfigValidationError, StatsOptions, load_config, validate_config
from .configuration_store import FileStudyConfigurationStore, StudyConfigurationNotFoundError
from .gvcf_reader import GVCFReader
from .merger import VariantRowMerger
from .storage import PostgresVariantStore, VariantQuery
from .stats.loader import StatsLoader
from .stats.pipeline import StatsPipeline
from .study_configuration import Aggregation, ConfigurationError, StudyConfiguration

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def version_callback(value: bool) -> None:
    if value:
        print(__version__)
        raise typer.Exit()


app = typer.Typer(
    name="vcf-pg-stats", help="Compute and load cohort statistics for variants stored in PostgreSQL"
)
console = Console()

RegistryOption = Annotated[
    Path,
    typer.Option("--registry", "-r", help="Directory holding study configuration files"),
]
DbOption = Annotated[
    str | None,
    typer.Option("--db", "-d", help="PostgreSQL URL (defaults to POSTGRES_URL)"),
]
ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="TOML configuration file")
]
LogOption = Annotated[Path | None, typer.Option("--log", help="Write log to file")]
VerboseOption = Annotated[
    bool, typer.Option("--verbose", "-v", help="Enable verbose logging")
]
QuietOption = Annotated[bool, typer.Option("--quiet", "-q", help="Suppress non-error output")]


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version", callback=version_callback, is_eager=True, help="Show version and exit"
        ),
    ] = None,
) -> None:
    pass


def setup_logging(verbose: bool, quiet: bool, log_file: Path | None = None) -> None:
    """Configure logging based on verbosity flags."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")
    logging.getLogger("vcf_pg_stats").setLevel(level)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logging.getLogger("vcf_pg_stats").addHandler(file_handler)


def _resolve_database_url(db_url: str | None) -> str:
    resolved = db_url or os.environ.get("POSTGRES_URL")
    if not resolved:
        console.print("[red]Error: No database URL. Use --db or set POSTGRES_URL[/red]")
        raise typer.Exit(1)
    return resolved


def _resolve_study(store: FileStudyConfigurationStore, study: str) -> StudyConfiguration:
    return store.get(int(study) if study.isdigit() else study)


def _build_options(config_file: Path | None, **overrides: Any) -> StatsOptions:
    """Merge CLI flags over the TOML configuration. Unset flags are None."""
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if config_file:
        return load_config(config_file, overrides)
    validate_config(overrides)
    return StatsOptions(**overrides)


def parse_cohort(value: str) -> tuple[str, set[str]]:
    """Parse ``NAME`` or ``NAME:SAMPLE1,SAMPLE2``."""
    name, _, samples = value.partition(":")
    if not name:
        raise typer.BadParameter(f"Invalid cohort: {value!r}")
    return name, {s for s in samples.split(",") if s}


def parse_cohort_id(value: str) -> tuple[str, int]:
    """Parse ``NAME=ID``."""
    name, sep, cohort_id = value.partition("=")
    if not name or not sep or not cohort_id.isdigit():
        raise typer.BadParameter(f"Invalid cohort id: {value!r}, expected NAME=ID")
    return name, int(cohort_id)


def _register(mapping: dict[str, int], names: list[str]) -> list[str]:
    """Assign the next free ids to unseen names, returning the new names."""
    added = []
    next_id = max(mapping.values(), default=0) + 1
    for name in names:
        if name not in mapping:
            mapping[name] = next_id
            next_id += 1
            added.append(name)
    return added


@app.command("init-db")
def init_db(db_url: DbOption = None) -> None:
    """Initialize database schema.

    Creates the variant_calls, variant_source_stats and variant_rows tables.
    """
    resolved_db_url = _resolve_database_url(db_url)

    async def run_init() -> None:
        async with PostgresVariantStore(resolved_db_url) as store:
            await store.init_schema()

    try:
        asyncio.run(run_init())
        console.print("[green]✓[/green] Database schema initialized")
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None


@app.command("init-study")
def init_study(
    study_id: int = typer.Argument(..., help="Numeric study id"),
    name: str = typer.Argument(..., help="Study name"),
    registry: RegistryOption = Path("studies"),
    aggregation: Annotated[
        str, typer.Option("--aggregation", "-a", help="none, or aggregated for AC/AN-only data")
    ] = "none",
    samples: Annotated[
        list[str] | None, typer.Option("--sample", "-s", help="Sample name (repeatable)")
    ] = None,
) -> None:
    """Create a study configuration file."""
    store = FileStudyConfigurationStore(registry)
    path = store.path_for(study_id)
    if path.exists():
        console.print(f"[red]Error: Study {study_id} already exists at {path}[/red]")
        raise typer.Exit(1)

    try:
        study_aggregation = Aggregation.from_string(aggregation)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    study_configuration = StudyConfiguration(
        study_id=study_id, study_name=name, aggregation=study_aggregation
    )
    _register(study_configuration.sample_ids, samples or [])
    store.update(study_configuration)
    console.print(
        f"[green]✓[/green] Study {study_id} ({name}) created with "
        f"{len(study_configuration.sample_ids)} samples"
    )


@app.command("load-calls")
def load_calls(
    vcf_path: Path = typer.Argument(..., help="Path to (g)VCF file (.vcf, .vcf.gz)"),
    study: str = typer.Option(..., "--study", "-S", help="Study id or name"),
    registry: RegistryOption = Path("studies"),
    db_url: DbOption = None,
    batch_size: int = typer.Option(10000, "--batch", "-b", help="Records per COPY batch"),
    log_file: LogOption = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Load the calls of a (g)VCF file into the variant store.

    New samples and the file itself are registered in the study configuration.
    """
    setup_logging(verbose, quiet, log_file)

    if not vcf_path.exists():
        console.print(f"[red]Error: VCF file not found: {vcf_path}[/red]")
        raise typer.Exit(1)

    resolved_db_url = _resolve_database_url(db_url)
    configuration_store = FileStudyConfigurationStore(registry)

    async def run_load(reader: GVCFReader) -> int:
        loaded = 0
        async with PostgresVariantStore(resolved_db_url) as store:
            for batch in reader.iter_batches():
                loaded += await store.copy_call_records(batch)
        return loaded

    try:
        study_configuration = _resolve_study(configuration_store, study)
        _register(study_configuration.file_ids, [vcf_path.name])
        file_id = study_configuration.file_ids[vcf_path.name]

        with GVCFReader(
            vcf_path,
            study_id=study_configuration.study_id,
            file_id=file_id,
            batch_size=batch_size,
        ) as reader:
            _register(study_configuration.sample_ids, reader.samples)
            if not quiet:
                console.print(f"Loading {vcf_path.name}...")
            loaded = asyncio.run(run_load(reader))

        configuration_store.update(study_configuration)
        if not quiet:
            console.print(f"[green]✓[/green] Loaded {loaded:,} calls")
            console.print(f"  File ID: {file_id}")
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None


@app.command("create-stats")
def create_stats(
    output: Path = typer.Argument(..., help="Output prefix for the stats artifacts"),
    study: str = typer.Option(..., "--study", "-S", help="Study id or name"),
    cohorts: Annotated[
        list[str] | None,
        typer.Option(
            "--cohort", help="NAME or NAME:SAMPLE1,SAMPLE2 (repeatable). NAME alone reuses samples"
        ),
    ] = None,
    cohort_ids: Annotated[
        list[str] | None, typer.Option("--cohort-id", help="Explicit NAME=ID (repeatable)")
    ] = None,
    registry: RegistryOption = Path("studies"),
    db_url: DbOption = None,
    batch_size: Annotated[
        int | None, typer.Option("--batch", "-b", help="Records per batch")
    ] = None,
    workers: Annotated[int | None, typer.Option("--workers", "-w", help="Worker tasks")] = None,
    overwrite: Annotated[
        bool | None, typer.Option("--overwrite", help="Recompute already calculated cohorts")
    ] = None,
    update: Annotated[
        bool | None, typer.Option("--update", help="Only variants missing stats")
    ] = None,
    file_id: Annotated[
        int | None, typer.Option("--file-id", help="Restrict to calls of one file")
    ] = None,
    config_file: ConfigOption = None,
    log_file: LogOption = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Compute per-cohort statistics and write them to OUTPUT.

    Writes OUTPUT.variants.stats.json.gz and OUTPUT.source.stats.json.gz.
    """
    setup_logging(verbose, quiet, log_file)
    resolved_db_url = _resolve_database_url(db_url)
    configuration_store = FileStudyConfigurationStore(registry)

    try:
        options = _build_options(
            config_file,
            batch_size=batch_size,
            workers=workers,
            overwrite=overwrite,
            update=update,
            file_id=file_id,
        )
        requested = dict(parse_cohort(c) for c in cohorts or [])
        explicit_ids = dict(parse_cohort_id(c) for c in cohort_ids) if cohort_ids else None
        study_configuration = _resolve_study(configuration_store, study)
    except (ConfigValidationError, StudyConfigurationNotFoundError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    async def run_create() -> Path:
        async with PostgresVariantStore(resolved_db_url, workers=options.workers) as store:
            pipeline = StatsPipeline(store, configuration_store)
            return await pipeline.create_stats(
                output, requested or None, explicit_ids, study_configuration, options
            )

    try:
        if quiet:
            prefix = asyncio.run(run_create())
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
            ) as progress_bar:
                progress_bar.add_task("Creating stats...", total=None)
                prefix = asyncio.run(run_create())
            console.print(f"[green]✓[/green] Stats written to {prefix}")
    except ConfigurationError as e:
        console.print(f"[red]Configuration Error: {e}[/red]")
        raise typer.Exit(1) from None
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None


@app.command("load-stats")
def load_stats(
    artifact: Path = typer.Argument(..., help="Prefix of the stats artifacts"),
    study: str = typer.Option(..., "--study", "-S", help="Study id or name"),
    registry: RegistryOption = Path("studies"),
    db_url: DbOption = None,
    update: Annotated[
        bool | None, typer.Option("--update", help="Allow loading already calculated cohorts")
    ] = None,
    load_batch_size: Annotated[
        int | None, typer.Option("--batch", "-b", help="Records per update batch")
    ] = None,
    config_file: ConfigOption = None,
    log_file: LogOption = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Load stats artifacts written by create-stats into the variant store."""
    setup_logging(verbose, quiet, log_file)
    resolved_db_url = _resolve_database_url(db_url)
    configuration_store = FileStudyConfigurationStore(registry)

    try:
        options = _build_options(config_file, update=update, load_batch_size=load_batch_size)
        study_configuration = _resolve_study(configuration_store, study)
    except (ConfigValidationError, StudyConfigurationNotFoundError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None

    async def run_load() -> tuple[int, int]:
        async with PostgresVariantStore(resolved_db_url) as store:
            loader = StatsLoader(store, configuration_store)
            return await loader.load_stats(artifact, study_configuration, options)

    try:
        seen, written = asyncio.run(run_load())
        if not quiet:
            console.print(f"[green]✓[/green] Loaded stats of {seen:,} variants")
            if written < seen:
                console.print(f"[yellow]⚠[/yellow] Only {written:,} variants were updated")
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None


@app.command("merge-rows")
def merge_rows(
    study: str = typer.Option(..., "--study", "-S", help="Study id or name"),
    registry: RegistryOption = Path("studies"),
    db_url: DbOption = None,
    chromosome: Annotated[
        str | None, typer.Option("--chrom", help="Only merge this chromosome")
    ] = None,
    log_file: LogOption = None,
    verbose: VerboseOption = False,
    quiet: QuietOption = False,
) -> None:
    """Build dense per-position genotype rows from the stored calls."""
    setup_logging(verbose, quiet, log_file)
    resolved_db_url = _resolve_database_url(db_url)
    configuration_store = FileStudyConfigurationStore(registry)

    async def run_merge(study_configuration: StudyConfiguration) -> int:
        logger = logging.getLogger(__name__)
        merger = VariantRowMerger(study_configuration)
        written = 0
        async with PostgresVariantStore(resolved_db_url) as store:
            calls = [
                c
                async for c in store.iterator(VariantQuery(study_id=study_configuration.study_id))
                if chromosome is None or c.chromosome == chromosome
            ]
            for chrom, window in groupby(calls, key=lambda c: c.chromosome):
                rows = merger.merge(window)
                written += await store.upsert_merged_rows(rows.values(), study_configuration)
                logger.info("merged %d rows on %s", len(rows), chrom)
        return written

    try:
        study_configuration = _resolve_study(configuration_store, study)
        written = asyncio.run(run_merge(study_configuration))
        if not quiet:
            console.print(f"[green]✓[/green] Wrote {written:,} merged rows")
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None


if __name__ == "__main__":
    app()
