"""
Command-line interface for Tuneshift.

Runs the API server, prepares the metadata store, pitch-shifts local files
and lists stored tracks, using the Click framework.
"""

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from shared.config import ServiceConfig
from shared.errors import CodecError

console = Console()


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def load_config() -> ServiceConfig:
    try:
        return ServiceConfig.from_env()
    except ValueError as e:
        raise click.ClickException(str(e))


@click.group()
@click.version_option(version="1.0.0")
@click.pass_context
def cli(ctx):
    """
    🎵 Tuneshift: upload, retune and stream your music
    """
    ctx.obj = load_config()
    setup_logging(ctx.obj.log_level)


@cli.command()
@click.option('--host', default=None, help='Interface to bind (default: HOST or 0.0.0.0)')
@click.option('--port', default=None, type=int, help='Port to listen on (default: PORT or 5005)')
@click.option('--debug', is_flag=True, help='Enable Flask debug mode')
@click.pass_obj
def serve(config, host, port, debug):
    """Start the API server."""
    # gevent is patched in admin_tool.__main__, ahead of every other import
    from shared.api import start_api

    if host:
        config.host = host
    if port:
        config.port = port
    start_api(config, debug=debug)


@cli.command('init-db')
@click.pass_obj
def init_db(config):
    """Create the metadata database if it does not exist."""
    from shared.database import TrackDatabase

    db = TrackDatabase(config.database_path)
    console.print(f"[green]✓[/green] Database ready at {db.db_path}")


@cli.command()
@click.argument('input_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('output_path', type=click.Path(dir_okay=False, path_type=Path))
@click.option('--factor', type=float, default=None,
              help='Pitch factor (default: PITCH_FACTOR, 432/440)')
@click.option('--strategy', type=click.Choice(['cubic', 'linear']), default=None,
              help='Interpolation strategy (default: PITCH_INTERPOLATION)')
@click.pass_obj
def shift(config, input_path, output_path, factor, strategy):
    """Pitch-shift a local MP3 file into OUTPUT_PATH."""
    from processing.codec import FFmpegCodec
    from processing.resampler import Interpolation, shift as resample

    factor = factor if factor is not None else config.pitch_factor
    if factor <= 0:
        raise click.BadParameter("factor must be positive", param_hint='--factor')
    interpolation = Interpolation(strategy or config.interpolation)
    codec = FFmpegCodec(bitrate=config.mp3_bitrate, timeout=config.codec_timeout)

    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
                  console=console, transient=True) as progress:
        task = progress.add_task(f"[cyan]Decoding {input_path.name}...", total=None)
        try:
            decoded = codec.decode(input_path.read_bytes(), suffix=input_path.suffix or ".mp3")
            progress.update(task, description=f"[cyan]Shifting by {factor:.4f} ({interpolation.value})...")
            shifted = resample(decoded, factor, interpolation)
            progress.update(task, description="[cyan]Encoding...")
            encoded = codec.encode(shifted)
        except CodecError as e:
            raise click.ClickException(f"Codec error: {e}")

    output_path.write_bytes(encoded)
    console.print(
        f"[green]✓[/green] Wrote {output_path} "
        f"({decoded.number_of_channels}ch, {decoded.sample_rate} Hz, {decoded.duration:.1f}s)"
    )


@cli.command()
@click.option('--owner', required=True, help='Owner id whose tracks to list')
@click.option('--page', default=0, type=click.IntRange(min=0), help='Page number')
@click.pass_obj
def tracks(config, owner, page):
    """List an owner's stored tracks."""
    from shared.database import TrackDatabase

    db = TrackDatabase(config.database_path)
    rows = db.list_tracks(owner, page=page)
    if not rows:
        console.print(f"[yellow]No tracks for {owner} on page {page}[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="green")
    table.add_column("Artist")
    table.add_column("Duration", justify="right")
    table.add_column("Size", justify="right")
    for track in rows:
        seconds = track.duration_ms // 1000
        table.add_row(track.id[:8], track.name, track.artist,
                      f"{seconds // 60}:{seconds % 60:02d}", f"{track.file_size / 1024:.0f} KB")
    console.print(table)
    console.print(f"Page {page} · {db.count_tracks(owner)} tracks total")


if __name__ == '__main__':
    cli()
