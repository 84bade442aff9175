"""Command-line console for the bulk ingestion workflow."""
import asyncio
import json
from typing import Any

import click

from dc_ingestor.client.ingestion_api import IngestionAPIClient
from dc_ingestor.exceptions import DCIngestorError
from dc_ingestor.pipeline.orchestrator import IngestionRunResult
from dc_ingestor.pipeline.profiler import ProfilingResult
from dc_ingestor.pipeline.progress import completion_ratio, format_file_size
from dc_ingestor.pipeline.session import IngestionSession
from dc_ingestor.schemas.ingestion import DataStream, FileFormat, ProgressEntry, ProgressStatus
from dc_ingestor.utils.config import IngestorSettings, load_settings
from dc_ingestor.utils.file_selection import collect_candidates

STATUS_ICONS = {
    ProgressStatus.PENDING: "⏳",
    ProgressStatus.COMPLETED: "✅",
    ProgressStatus.ERROR: "❌",
}


def build_client(settings: IngestorSettings) -> IngestionAPIClient:
    """Create the HTTP client used by every command."""
    return IngestionAPIClient.from_settings(settings)


def print_entry(entry: ProgressEntry) -> None:
    icon = STATUS_ICONS.get(entry.status, "•")
    click.echo(f"  [{entry.timestamp.strftime('%H:%M:%S')}] {icon} {entry.message}")


def print_streams(streams: list[DataStream]) -> None:
    click.echo("\n" + "=" * 70)
    click.echo("INGESTION API DATA STREAMS")
    click.echo("=" * 70)
    for stream in streams:
        click.echo(f"  {stream.label}")
        click.echo(f"      Key:     {stream.key or 'N/A'}")
        click.echo(f"      Object:  {stream.object or 'N/A'}")
    click.echo("\n" + "=" * 70 + "\n")


def print_summary(profiling: ProfilingResult | None, run: IngestionRunResult | None, session: IngestionSession) -> None:
    """Print processed files, uploaded batches and the final outcome."""
    click.echo("\n" + "=" * 70)
    click.echo("INGESTION SUMMARY")
    click.echo("=" * 70)

    click.echo("\n📄 PROCESSED FILES")
    click.echo("-" * 70)
    for profiled in session.profiled_files:
        click.echo(
            f"  {profiled.file_name} | {profiled.record_count:,} records | "
            f"{format_file_size(profiled.file_size)} | {profiled.header_count} columns | "
            f"{profiled.processing_time_seconds}s"
        )
    if profiling is not None and profiling.filtered_out:
        click.echo(f"  ({len(profiling.filtered_out)} files filtered out)")

    if run is not None:
        click.echo("\n🚀 INGESTION")
        click.echo("-" * 70)
        if run.job is not None:
            click.echo(f"  Object:       {run.job.object}")
            click.echo(f"  Source Name:  {run.job.source_name}")
            click.echo(f"  Job ID:       {run.job_id or 'N/A'}")
            click.echo(f"  Status:       {run.job.status.value}")
        uploaded, total = len(run.ingested_files), len(session.profiled_files)
        click.echo(f"  Uploaded {uploaded} of {total} files ({completion_ratio(uploaded, total):.0%})")

    if session.error:
        click.echo(f"\n❌ {session.error}")
    elif run is not None and run.succeeded:
        click.echo("\n✅ Ingestion completed successfully")

    click.echo("\n" + "=" * 70 + "\n")


def summary_as_dict(
    profiling: ProfilingResult | None,
    run: IngestionRunResult | None,
    session: IngestionSession,
) -> dict[str, Any]:
    return {
        "stream": session.selected_stream.to_wire() if session.selected_stream else None,
        "profiled_files": [profiled.to_wire() for profiled in session.profiled_files],
        "filtered_out": [candidate.name for candidate in profiling.filtered_out] if profiling else [],
        "run": run.to_dict() if run else None,
        "error": session.error,
        "processing": session.processing_tracker.snapshot(),
        "progress": session.ingestion_tracker.snapshot(),
    }


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML settings file (environment variables still take precedence)",
)
@click.option("--base-url", default=None, help="Ingestion service base URL")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, base_url: str | None) -> None:
    """Discover ingestion streams, profile files and run bulk ingestion jobs."""
    try:
        settings = load_settings(config_path)
        if base_url:
            settings = settings.model_copy(update={"base_url": base_url.rstrip("/")})
    except DCIngestorError as e:
        raise click.UsageError(str(e))
    ctx.obj = settings


@cli.command("streams")
@click.option("--json", "output_json", is_flag=True, help="Output streams as JSON")
@click.pass_obj
def list_streams(settings: IngestorSettings, output_json: bool) -> None:
    """List ingestion API data streams."""

    async def fetch() -> tuple[list[DataStream], str | None]:
        async with build_client(settings) as client:
            session = IngestionSession(client, settings)
            streams = await session.refresh_streams()
            return streams, session.error

    streams, error = asyncio.run(fetch())
    if error:
        click.echo(f"❌ {error}", err=True)
        raise click.Abort()

    if output_json:
        click.echo(json.dumps([stream.to_wire() for stream in streams], indent=2))
    else:
        print_streams(streams)


@cli.command("run")
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--stream", "stream_key", required=True, help="Stream id, api name or name")
@click.option(
    "--format",
    "file_format",
    type=click.Choice([fmt.value for fmt in FileFormat]),
    default=None,
    help="Only files with this extension are processed",
)
@click.option("--base-directory", default=None, help="Server-side directory holding the files")
@click.option("--force", is_flag=True, help="Upload processed files even if some failed processing")
@click.option("--json", "output_json", is_flag=True, help="Output summary as JSON")
@click.pass_obj
def run_ingestion(
    settings: IngestorSettings,
    paths: tuple[str, ...],
    stream_key: str,
    file_format: str | None,
    base_directory: str | None,
    force: bool,
    output_json: bool,
) -> None:
    """
    Profile PATHS and ingest them into the selected stream.

    Folders are expanded recursively and their files carry a folder-relative
    path, so the ingestion service can resolve them on its own filesystem.

    Examples:

        dc-ingest run --stream WebData_Stream ~/Downloads/export-0107

        dc-ingest run --stream s1 --format json --base-directory /data/in a.json b.json
    """
    overrides: dict[str, Any] = {}
    if file_format:
        overrides["file_format"] = FileFormat(file_format)
    if base_directory:
        overrides["base_directory"] = base_directory
    if overrides:
        settings = settings.model_copy(update=overrides)

    try:
        candidates = collect_candidates(paths)
    except DCIngestorError as e:
        click.echo(f"❌ {e}", err=True)
        raise click.Abort()

    listeners = () if output_json else (print_entry,)

    async def execute() -> tuple[IngestionSession, ProfilingResult | None, IngestionRunResult | None]:
        async with build_client(settings) as client:
            session = IngestionSession(client, settings, listeners=listeners)
            await session.refresh_streams()
            if session.error:
                return session, None, None

            stream = session.catalog.find(stream_key)
            if stream is None:
                available = ", ".join(s.key or s.label for s in session.streams)
                session.error = f"Unknown stream '{stream_key}'. Available streams: {available}"
                return session, None, None
            await session.select_stream(stream)
            if session.error and not output_json:
                click.echo(f"⚠️  {session.error}")

            if not output_json:
                click.echo(f"\nProcessing {len(candidates)} file(s) as .{settings.file_format.value}...")
            profiling = await session.add_files(candidates)

            readiness = session.readiness()
            if readiness.blockers:
                session.error = str(readiness.blockers[0])
                return session, profiling, None

            if not output_json:
                click.echo(f"\nIngesting into {session.selected_stream.label}...")
            run = await session.start_ingestion(force=force)
            return session, profiling, run

    session, profiling, run = asyncio.run(execute())

    if output_json:
        click.echo(json.dumps(summary_as_dict(profiling, run, session), indent=2, default=str))
    else:
        print_summary(profiling, run, session)

    if run is None or not run.succeeded:
        raise click.Abort()


if __name__ == "__main__":
    cli()
