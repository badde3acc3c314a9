"""CLI interface for media uploads."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from ..core.models import (
    MAX_PARTS,
    MIN_CHUNK_SIZE,
    StorageClass,
    StreamUploadRequest,
    UploaderConfig,
    UploadMediaRequest,
)
from ..core.planner import plan_parts
from ..core.uploader import MediaUploader

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

STORAGE_CLASSES = ["standard", "ia", "archive"]


def build_config(ctx, chunk_size=None, parallel=None) -> UploaderConfig:
    """Merge command-line options over ``MEDIA_UPLOAD_*`` environment variables."""
    return UploaderConfig.from_env(
        api_key=ctx.obj["api_key"],
        api_url=ctx.obj["api_url"],
        chunk_size=chunk_size,
        parallel_num=parallel,
    )


def print_commit_result(response) -> None:
    """Show what the media registry recorded for the upload."""
    table = Table(title="Upload committed")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Request ID", response.response_metadata.request_id or "N/A")
    data = response.result.data if response.result else None
    if data is not None:
        table.add_row("Vid", data.vid or "N/A")
        table.add_row("Mid", data.mid or "N/A")
        table.add_row("Space", data.space_name or "N/A")
        table.add_row("Poster URI", data.poster_uri or "N/A")
    console.print(table)


def run_upload(uploader: MediaUploader, request, file_type: str):
    """Dispatch to the entry point matching ``file_type``."""
    streaming = isinstance(request, StreamUploadRequest)
    if file_type == "media":
        return uploader.upload_media_stream(request) if streaming else uploader.upload_media(request)
    if file_type == "object":
        return uploader.upload_object_stream(request) if streaming else uploader.upload_object(request)
    return uploader.upload_material_stream(request) if streaming else uploader.upload_material(request)


@click.group()
@click.option(
    "--api-key",
    envvar="MEDIA_UPLOAD_API_KEY",
    help="Control-plane API key (or set MEDIA_UPLOAD_API_KEY env var)",
)
@click.option(
    "--api-url",
    envvar="MEDIA_UPLOAD_API_URL",
    help="Control-plane URL (or set MEDIA_UPLOAD_API_URL env var)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, api_key, api_url, verbose):
    """Media Upload CLI - Upload files and streams to a media space."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    ctx.ensure_object(dict)
    ctx.obj["api_key"] = api_key
    ctx.obj["api_url"] = api_url


@cli.command()
@click.argument("local_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--space", required=True, help="Space to upload into")
@click.option(
    "--file-type",
    default="media",
    show_default=True,
    help="media, object, or a material type (e.g. image)",
)
@click.option(
    "--chunk-size",
    type=int,
    default=None,
    help=f"Part size in bytes (minimum and default: {MIN_CHUNK_SIZE})",
)
@click.option("--parallel", type=int, default=None, help="Number of concurrent part uploads")
@click.option(
    "--storage-class",
    type=click.Choice(STORAGE_CLASSES, case_sensitive=False),
    default="standard",
    show_default=True,
)
@click.option("--callback-args", default="", help="Opaque string passed to the upload callback")
@click.pass_context
def upload(ctx, local_path, space, file_type, chunk_size, parallel, storage_class, callback_args):
    """Upload a local file and commit it."""
    try:
        config = build_config(ctx, chunk_size, parallel)
        local_file = Path(local_path)
        file_size = local_file.stat().st_size

        request = UploadMediaRequest(
            file_path=str(local_file),
            space_name=space,
            file_type=file_type,
            file_name=local_file.name,
            file_extension=local_file.suffix,
            storage_class=StorageClass.from_name(storage_class),
            chunk_size=config.chunk_size,
            parallel_num=config.parallel_num,
            callback_args=callback_args,
        )

        console.print(f"Uploading [cyan]{local_path}[/cyan] to space [green]{space}[/green]")
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>5.1f}%"),
            console=console,
        ) as progress:
            task = progress.add_task("Uploading...", total=file_size)

            def progress_callback(bytes_uploaded, total, speed_mbps):
                progress.update(
                    task,
                    completed=bytes_uploaded,
                    description=f"Uploading ({speed_mbps:.1f} MB/s)",
                )

            uploader = MediaUploader(config, progress_callback=progress_callback)
            response = run_upload(uploader, request, file_type)
            progress.update(task, completed=file_size)

        console.print("[green]✓[/green] Upload completed successfully!")
        print_commit_result(response)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command("upload-stream")
@click.option("--space", required=True, help="Space to upload into")
@click.option("--size", type=int, default=0, show_default=True, help="Stream length (0 = unknown)")
@click.option("--file-type", default="media", show_default=True)
@click.option("--file-name", default="", help="File name recorded for the upload")
@click.option("--chunk-size", type=int, default=0, help="Part size in bytes (0 = default)")
@click.option(
    "--storage-class",
    type=click.Choice(STORAGE_CLASSES, case_sensitive=False),
    default="standard",
    show_default=True,
)
@click.pass_context
def upload_stream(ctx, space, size, file_type, file_name, chunk_size, storage_class):
    """Upload data read from standard input and commit it."""
    try:
        config = build_config(ctx)
        request = StreamUploadRequest(
            content=click.get_binary_stream("stdin"),
            size=size,
            space_name=space,
            file_type=file_type,
            file_name=file_name,
            chunk_size=chunk_size,
            storage_class=StorageClass.from_name(storage_class),
        )

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Uploading stream...", total=None)
            response = run_upload(MediaUploader(config), request, file_type)
            progress.update(task, completed=1)

        console.print("[green]✓[/green] Upload completed successfully!")
        print_commit_result(response)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("size", type=int)
@click.option("--chunk-size", type=int, default=MIN_CHUNK_SIZE, show_default=True)
@click.option("--max-parts", type=int, default=MAX_PARTS, show_default=True)
def plan(size, chunk_size, max_parts):
    """Show how a file of SIZE bytes would be split into parts."""
    try:
        parts = plan_parts(size, chunk_size, max_parts)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    table = Table(title=f"Part plan for {size} bytes")
    table.add_column("Part", justify="right", style="cyan")
    table.add_column("Offset", justify="right")
    table.add_column("Length", justify="right", style="green")

    for part in parts:
        table.add_row(str(part.number), str(part.offset), str(part.length))

    console.print(table)
    if size <= chunk_size:
        console.print("[yellow]Fits in one chunk: would be sent as a single request.[/yellow]")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
