"""Command-line interface for markerpack.

Provides commands to compile marker pack archives and to inspect and
validate compiled output.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple

import click
import pandas as pd

from .. import __version__
from ..core.errors import MarkerPackError

AUTHOR_PATTERN = re.compile(r"^\s*(?P<name>[^<]+?)\s*(?:<(?P<email>[^>]+)>)?\s*$")


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    return logging.getLogger("markerpack")


def parse_author(value: str):
    """Parse ``"Name <email>"`` (email optional) into an Author."""
    from ..core.pack import Author

    match = AUTHOR_PATTERN.match(value)
    if not match:
        raise click.BadParameter(f"expected 'Name <email>', got {value!r}")
    return Author(name=match.group("name"), email=match.group("email"))


@click.group()
@click.version_option(version=__version__, prog_name="markerpack")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """markerpack: compile overlay marker packs.

    Examples:

        # Compile a pack to both output formats
        markerpack compile tekkit.taco --json-out tekkit/ --archive-out tekkit.mkpk

        # Show per-map counts of a compiled pack
        markerpack inspect tekkit.mkpk

        # Check an archive before shipping it
        markerpack validate tekkit.mkpk
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command("compile")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False))
@click.option("--json-out", "json_out", type=click.Path(file_okay=False),
              help="Write the JSON tree to this directory")
@click.option("--archive-out", "archive_out", type=click.Path(dir_okay=False),
              help="Write the binary archive to this file")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True),
              help="Compiler configuration file (YAML)")
@click.option("--report", "report_path", type=click.Path(dir_okay=False),
              help="Write diagnostics to .csv, .yaml or .jsonl")
@click.option("--name", help="Pack name (default: archive file name)")
@click.option("--author", "authors", multiple=True, help="Pack author as 'Name <email>'")
@click.option("--source-url", help="Where the pack was obtained")
@click.option("--strict", is_flag=True, help="Exit non-zero if any trail binary was corrupt")
@click.pass_context
def compile_command(
    ctx: click.Context,
    archive: str,
    json_out: Optional[str],
    archive_out: Optional[str],
    config_path: Optional[str],
    report_path: Optional[str],
    name: Optional[str],
    authors: Tuple[str, ...],
    source_url: Optional[str],
    strict: bool,
) -> None:
    """Compile a marker pack ARCHIVE (zip)."""
    # Import here to avoid slow startup
    from ..config import CompilerConfig
    from ..core.pack import PackAssembler
    from ..core.serializers import write_archive, write_json_tree
    from ..io import write_diagnostics_report
    from ..pipeline import PipelineLogger

    try:
        config = CompilerConfig.from_yaml(Path(config_path)) if config_path else CompilerConfig()
    except (ValueError, OSError) as exc:
        raise click.ClickException(f"Invalid config: {exc}")

    level = "DEBUG" if ctx.obj["debug"] else ("INFO" if ctx.obj["verbose"] else config.logging.level)
    pipeline_logger = PipelineLogger(config.logging.log_dir, log_level=level)
    pipeline_logger.setup()

    parsed_authors = [parse_author(author) for author in authors]

    try:
        pack, diagnostics = PackAssembler(config, pipeline_logger).compile(archive)
        if name:
            pack.metadata.name = name
        if parsed_authors:
            pack.metadata.authors = parsed_authors
        if source_url:
            pack.metadata.source_url = source_url
        if json_out:
            write_json_tree(pack, json_out, config.serializer, logger=pipeline_logger.logger)
        if archive_out:
            write_archive(pack, archive_out, logger=pipeline_logger.logger)
    except MarkerPackError as exc:
        raise click.ClickException(str(exc))

    if report_path:
        write_diagnostics_report(diagnostics, report_path, summary=pack.summary())

    click.echo(repr(pack))
    click.echo(
        f"{diagnostics.error_count} errors, {diagnostics.warning_count} warnings"
    )
    if strict and diagnostics.error_count:
        ctx.exit(1)


def _map_frame(pack_categories, data) -> pd.DataFrame:
    rows: List[dict] = []
    for marker in data.markers:
        rows.append(
            {
                "kind": "marker",
                "id": marker.id,
                "category": pack_categories[marker.category_id].full_name,
                "x": marker.position[0],
                "y": marker.position[1],
                "z": marker.position[2],
                "guid": marker.guid,
            }
        )
    for trail in data.trails:
        rows.append(
            {
                "kind": "trail",
                "id": trail.id,
                "category": pack_categories[trail.category_id].full_name,
                "x": trail.position[0],
                "y": trail.position[1],
                "z": trail.position[2],
                "guid": trail.guid,
            }
        )
    return pd.DataFrame(rows, columns=["kind", "id", "category", "x", "y", "z", "guid"])


@cli.command()
@click.argument("path", type=click.Path(exists=True))
@click.option("--map", "map_id", type=int, help="List the markers and trails of one map")
@click.pass_context
def inspect(ctx: click.Context, path: str, map_id: Optional[int]) -> None:
    """Summarize a compiled pack (JSON tree directory or archive file)."""
    from ..core.serializers import ArchiveReader, read_archive, read_json_tree

    try:
        if Path(path).is_dir():
            pack = read_json_tree(path)
            categories = pack.categories
            data = pack.maps.get(map_id) if map_id is not None else None
        elif map_id is not None:
            # Single-map loading avoids decoding the whole archive
            with ArchiveReader(path) as reader:
                metadata = reader.load_metadata()
                categories = reader.load_categories()[0]
                data = reader.load_map(map_id) if map_id in reader.map_ids else None
            click.echo(f"{metadata.name} ({metadata.pack_id})")
            pack = None
        else:
            pack = read_archive(path)
    except MarkerPackError as exc:
        raise click.ClickException(str(exc))

    if map_id is not None:
        if data is None:
            raise click.ClickException(f"Map {map_id} not found in {path}")
        click.echo(_map_frame(categories, data).to_string(index=False))
        return

    click.echo(f"{pack.metadata.name} ({pack.metadata.pack_id})")
    for author in pack.metadata.authors:
        click.echo(f"  author: {author.name}" + (f" <{author.email}>" if author.email else ""))
    click.echo(
        f"{len(pack.categories)} categories, {len(pack.textures)} textures, "
        f"{len(pack.trail_binaries)} trail binaries"
    )
    summary = pack.summary()
    if summary.empty:
        click.echo("No markers or trails")
    else:
        click.echo(summary.to_string(index=False))


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def validate(ctx: click.Context, path: str) -> None:
    """Validate a compiled archive (structure, checksum and content hashes)."""
    from ..core.serializers import validate_archive

    try:
        counts = validate_archive(path)
    except MarkerPackError as exc:
        raise click.ClickException(str(exc))

    click.echo(f"{path}: OK")
    for tag, count in counts.items():
        click.echo(f"  {tag}: {count}")


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
