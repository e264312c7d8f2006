"""uploadpy CLI - Main commands."""
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn

from uploadpy.core.logging import get_logger

app = typer.Typer(
    name="uploadpy",
    help="Multipart and signed file uploads",
    add_completion=False
)
console = Console()
logger = get_logger('uploadpy.cli')


def run_async(coro):
    """Run async function."""
    return asyncio.run(coro)


def parse_pairs(values: Optional[List[str]], option: str) -> Dict[str, str]:
    """Parse repeated KEY=VALUE options into a dict."""
    pairs = {}
    for value in values or []:
        key, sep, item = value.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got {value!r}", param_hint=option)
        pairs[key] = item
    return pairs


def print_response(response: Any):
    """Print a response body."""
    if isinstance(response, (dict, list)):
        console.print_json(json.dumps(response))
    elif response:
        console.print(response)


async def _run_with_progress(uploader, description: str, start):
    """Start an upload via start(), rendering progress events as a bar."""
    from uploadpy import UploadException

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console
    ) as progress:
        task = progress.add_task(description, total=100)

        def on_progress(event):
            if event.total:
                progress.update(task, completed=event.percent)

        uploader.on('progress', on_progress)
        logger.debug(f"Starting: {description}")
        try:
            return await start()
        except UploadException as e:
            logger.debug(f"Upload failed: {e!r}")
            console.print(f"[red]Upload failed: {e}[/red]")
            raise typer.Exit(1)
        finally:
            uploader.off('progress', on_progress)


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Configure logging for every command."""
    from uploadpy import setup_logging

    logging.basicConfig(format="%(asctime)s %(name)s %(levelname)s %(message)s")
    setup_logging(logging.DEBUG if verbose else logging.WARNING)


@app.command()
def upload(
    url: str = typer.Argument(..., help="Target url"),
    files: List[Path] = typer.Argument(..., help="Local file(s) to upload", exists=True, dir_okay=False),
    field: Optional[List[str]] = typer.Option(None, "--field", "-f", help="Extra form field KEY=VALUE"),
    header: Optional[List[str]] = typer.Option(None, "--header", "-H", help="Request header KEY=VALUE"),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Param namespace"),
    param_name: str = typer.Option("file", "--param-name", "-p", help="File param name"),
    method: str = typer.Option("POST", "--method", "-X", help="Request method"),
    insecure: bool = typer.Option(False, "--insecure", "-k", help="Skip TLS verification"),
):
    """Upload file(s) as multipart/form-data."""
    from uploadpy import Uploader, UploaderConfig, SSLConfig, FileHandle

    extra = parse_pairs(field, "--field")
    config = UploaderConfig(
        url=url,
        method=method,
        param_namespace=namespace,
        param_name=param_name,
        headers=parse_pairs(header, "--header"),
        ssl=SSLConfig(verify=not insecure, check_hostname=not insecure),
    )

    async def do_upload():
        handles = [await FileHandle.from_path(path) for path in files]
        # A single file is sent without the "[]" suffix
        payload = handles if len(handles) > 1 else handles[0]

        async with Uploader(config) as uploader:
            names = ", ".join(h.name for h in handles)
            response = await _run_with_progress(
                uploader, f"Uploading {names}", lambda: uploader.upload(payload, extra)
            )

        console.print(f"[green]Uploaded:[/green] {names}")
        print_response(response)

    run_async(do_upload())


@app.command()
def signed(
    file_path: Path = typer.Argument(..., help="Local file to upload", exists=True, dir_okay=False),
    signing_url: str = typer.Option("/sign", "--signing-url", "-s", help="Signing endpoint"),
    signing_method: str = typer.Option("GET", "--signing-method", help="Signing request method"),
    field: Optional[List[str]] = typer.Option(None, "--field", "-f", help="Extra signing data KEY=VALUE"),
    signing_header: Optional[List[str]] = typer.Option(None, "--signing-header", help="Signing header KEY=VALUE"),
    header: Optional[List[str]] = typer.Option(None, "--header", "-H", help="Upload header KEY=VALUE"),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Param namespace"),
    param_name: str = typer.Option("file", "--param-name", "-p", help="File param name"),
):
    """Request a signed policy, then upload the file to storage."""
    from uploadpy import SigningUploader, SigningConfig, FileHandle

    extra = parse_pairs(field, "--field")
    config = SigningConfig(
        signing_url=signing_url,
        signing_method=signing_method,
        signing_headers=parse_pairs(signing_header, "--signing-header"),
        headers=parse_pairs(header, "--header"),
        param_namespace=namespace,
        param_name=param_name,
    )

    async def do_upload():
        handle = await FileHandle.from_path(file_path)

        async with SigningUploader(config) as uploader:
            uploader.on('did_sign', lambda policy: console.print("[cyan]Upload policy received[/cyan]"))
            response = await _run_with_progress(
                uploader, f"Uploading {handle.name}", lambda: uploader.upload(handle, extra)
            )

        console.print(f"[green]Uploaded:[/green] {handle.name} ({handle.size:,} bytes)")
        print_response(response)

    run_async(do_upload())


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
