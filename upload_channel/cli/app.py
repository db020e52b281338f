"""Typer CLI for resumable file uploads."""

from __future__ import annotations

import logging
import re
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from upload_channel import __version__
from upload_channel.config_manager.config import ConfigManager
from upload_channel.config_manager.settings import UploadSettings
from upload_channel.configuration import UploadConfiguration
from upload_channel.exceptions import UploadChannelError
from upload_channel.rpc.http_upload_rpc import HttpUploadRpc
from upload_channel.state_store import StateStore
from upload_channel.write_channel import ResumableWriteChannel

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False, help="Resumable chunked upload command line interface."
)
console = Console()

SETTINGS_OPTION = typer.Option(
    None,
    "--settings",
    "-s",
    dir_okay=False,
    help="Path to a YAML settings file.",
)


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@app.callback()
def callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the upload-channel version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
) -> None:
    """Handle global CLI option for --version."""
    return None


def _load_settings(
    settings_path: Path | None, chunk_size: str | None = None
) -> UploadSettings:
    settings = ConfigManager(settings_path).resolve_effective_settings(
        {"chunk_size": chunk_size}
    )
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return settings


def _default_key(path: Path) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", path.name)


def _stream_file(
    channel: ResumableWriteChannel,
    path: Path,
    store: StateStore,
    key: str,
) -> None:
    """Write the rest of ``path`` through ``channel`` and finalize the upload.

    The channel state is saved after every block, and once more if a block
    fails, so that ``resume`` can continue where this run stopped.
    """
    offset = channel.position + channel.buffered
    total = path.stat().st_size
    with tqdm(
        total=total,
        initial=channel.position,
        unit="B",
        unit_scale=True,
        desc=channel.configuration.destination,
    ) as pbar:
        channel.progress_callback = pbar.update
        try:
            with path.open("rb") as f:
                f.seek(offset)
                for block in iter(lambda: f.read(channel.chunk_size), b""):
                    channel.write(block)
                    store.save(key, channel.capture())
            channel.close()
        except UploadChannelError:
            store.save(key, channel.capture())
            raise
    store.delete(key)
    logger.info("Uploaded %s to %s", path, channel.configuration.destination)


@app.command("upload")
def upload(
    path: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="File to upload."
    ),
    url: str = typer.Option(
        ..., "--url", "-u", help="Resumable upload endpoint of the target bucket."
    ),
    destination: str | None = typer.Option(
        None,
        "--destination",
        "-d",
        help="Object name at the destination. Defaults to the file name.",
    ),
    content_type: str = typer.Option(
        "application/octet-stream", "--content-type", help="MIME type of the file."
    ),
    chunk_size: str | None = typer.Option(
        None, "--chunk-size", "-c", help="Chunk size, e.g. 8mb. Rounded to 256 KiB."
    ),
    key: str | None = typer.Option(
        None,
        "--key",
        "-k",
        help="Name under which resumable state is saved. Defaults to the file name.",
    ),
    settings_path: Path | None = SETTINGS_OPTION,
) -> None:
    """Upload a file, saving resumable state after every chunk."""
    try:
        settings = _load_settings(settings_path, chunk_size)
        store = StateStore(settings.state_dir)
        key = key or _default_key(path)
        configuration = UploadConfiguration(
            destination=destination or path.name, content_type=content_type
        )
        rpc = HttpUploadRpc(url, timeout=settings.http_timeout)
        channel = ResumableWriteChannel.create(rpc, configuration)
        channel.chunk_size = settings.chunk_size
        store.save(key, channel.capture())
        _stream_file(channel, path, store, key)
    except (UploadChannelError, ValueError) as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc


@app.command("resume")
def resume(
    key: str = typer.Argument(..., help="Name of the saved upload state."),
    path: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="File being uploaded."
    ),
    settings_path: Path | None = SETTINGS_OPTION,
) -> None:
    """Continue an interrupted upload from its saved state."""
    try:
        settings = _load_settings(settings_path)
        store = StateStore(settings.state_dir)
        state = store.load(key)
        if not state.is_open:
            console.print(f"Upload {key} already finished.")
            store.delete(key)
            return
        rpc = HttpUploadRpc(timeout=settings.http_timeout)
        channel = state.restore(rpc)
        _stream_file(channel, path, store, key)
    except (UploadChannelError, ValueError) as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc


@app.command("status")
def status(
    key: str | None = typer.Argument(
        None, help="Saved upload to show. Lists all saved uploads when omitted."
    ),
    settings_path: Path | None = SETTINGS_OPTION,
) -> None:
    """Show saved upload states."""
    try:
        settings = _load_settings(settings_path)
        store = StateStore(settings.state_dir)
        if key:
            states = [(key, store.load(key))]
        else:
            states = []
            for name in store.list_keys():
                try:
                    states.append((name, store.load(name)))
                except UploadChannelError as exc:
                    logger.warning("Skipping upload state %s: %s", name, exc)
    except (UploadChannelError, ValueError) as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc

    if not states:
        console.print("No saved uploads.")
        return

    table = Table(title="Saved uploads")
    table.add_column("Key")
    table.add_column("Destination")
    table.add_column("Committed", justify="right")
    table.add_column("Buffered", justify="right")
    table.add_column("Chunk size", justify="right")
    table.add_column("State")
    for name, state in states:
        table.add_row(
            name,
            state.configuration.destination,
            str(state.position),
            str(state.buffered_bytes),
            str(state.chunk_size),
            "open" if state.is_open else "closed",
        )
    console.print(table)


@app.command("discard")
def discard(
    key: str = typer.Argument(..., help="Name of the saved upload state."),
    settings_path: Path | None = SETTINGS_OPTION,
) -> None:
    """Delete a saved upload state."""
    try:
        settings = _load_settings(settings_path)
        StateStore(settings.state_dir).delete(key)
    except (UploadChannelError, ValueError) as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc
    console.print(f"Discarded {key}.")


def main() -> None:
    """CLI entrypoint for upload-channel."""
    app()


if __name__ == "__main__":
    main()
