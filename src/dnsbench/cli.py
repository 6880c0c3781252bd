"""
Command-line interface for DNS Bench.

Runs DNS benchmarks and download speed tests from the terminal, manages
the DNS server list, and launches the web GUI.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

import click
import httpx
from rich.console import Console
from rich.logging import RichHandler

from . import __version__, config
from .backend import EngineBackend
from .coordinator import RunCoordinator
from .errors import InvalidParamsError
from .filtering import sort_dns
from .models import BenchmarkParams, RunKind, RunParams, RunStatus, SpeedParams
from .output import RichConsoleOutput
from .saver import probe_file_saver
from .servers import ServerListStore

logger = logging.getLogger(__name__)

EXIT_INVALID_PARAMS = 2
EXIT_CANCELLED = 130


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _server_list_path() -> Path:
    """Where `dnsbench servers set/fetch` persist the list."""
    if config.SERVER_LIST_FILE:
        return Path(config.SERVER_LIST_FILE)
    return Path(click.get_app_dir("dnsbench")) / "servers.txt"


def _load_store() -> ServerListStore:
    store = ServerListStore()
    path = _server_list_path()
    if path.is_file():
        store.load(path)
        logger.debug("Loaded %d servers from %s", len(store.get()), path)
    return store


def _persist(store: ServerListStore) -> Path:
    path = _server_list_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    store.save(path)
    return path


async def _run(
    kind: RunKind,
    params: RunParams,
    store: ServerListStore,
    console: Console,
    output_dir: Path,
    export_formats: tuple[str, ...] = (),
    show_all: bool = False,
) -> RunStatus:
    """Start one run, wait for it, render it and export it."""
    coordinator = RunCoordinator(EngineBackend(store=store))
    loop = asyncio.get_running_loop()

    # Ctrl+C stops waiting; the backend task is torn down by aclose()
    try:
        loop.add_signal_handler(signal.SIGINT, coordinator.cancel)
        sigint_handled = True
    except (NotImplementedError, RuntimeError, ValueError):
        sigint_handled = False

    try:
        handle = coordinator.start(kind, params)
        label = "Benchmarking DNS servers" if kind == RunKind.DNS else "Testing download speed"
        with console.status(f"[bold cyan]{label}...[/bold cyan]"):
            status = await handle.wait()

        # The save prompt runs in a worker thread; Ctrl+C must reach it again
        if sigint_handled:
            loop.remove_signal_handler(signal.SIGINT)
            sigint_handled = False

        snapshot = coordinator.snapshot

        if status == RunStatus.CANCELLED:
            console.print("[yellow]Cancelled.[/yellow]")
            return status

        if status == RunStatus.FAILED:
            console.print(f"[bold red]Error:[/bold red] {snapshot.error}")
            return status

        if kind == RunKind.DNS:
            rows = sort_dns(snapshot.results) if show_all else list(snapshot.display)
            RichConsoleOutput.print_dns(rows, console=console)
        else:
            RichConsoleOutput.print_download(list(snapshot.display), console=console)

        if export_formats:
            saver = probe_file_saver(output_dir)
            for fmt in export_formats:
                if await coordinator.export(saver, fmt=fmt):
                    console.print(f"[green]✓[/green] Exported {fmt.upper()}")
                else:
                    console.print(f"[red]✗[/red] {fmt.upper()} export failed")

        return status
    finally:
        if sigint_handled:
            loop.remove_signal_handler(signal.SIGINT)
        await coordinator.aclose()


def _exit_for(status: RunStatus) -> None:
    if status == RunStatus.FAILED:
        sys.exit(1)
    if status == RunStatus.CANCELLED:
        sys.exit(EXIT_CANCELLED)


@click.group()
@click.version_option(__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """
    DNS Bench - compare DNS servers by latency and by download speed.

    Every server in the list resolves the same target; results are
    ranked fastest first. The download test resolves a file's host
    through each server and measures how fast that address serves it.
    """
    _configure_logging(verbose)
    ctx.obj = _load_store()


@main.command()
@click.argument("domain", required=False, default=config.DEFAULT_DOMAIN)
@click.option(
    "--samples", "-n",
    type=int,
    default=config.DEFAULT_SAMPLES,
    show_default=True,
    help="Timed lookups per server",
)
@click.option(
    "--timeout",
    type=int,
    default=config.DEFAULT_DNS_TIMEOUT_SECS,
    show_default=True,
    help="Per-lookup timeout in seconds",
)
@click.option("--dnssec", is_flag=True, help="Request DNSSEC and report validation")
@click.option("--warm-up", is_flag=True, help="Send one unmeasured lookup per server first")
@click.option(
    "--server", "-s",
    multiple=True,
    help="Server to test instead of the saved list (can specify multiple)",
)
@click.option("--export", "export_csv", is_flag=True, help="Export raw results as CSV")
@click.option("--json-export", is_flag=True, help="Export raw results as JSON")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=config.EXPORT_DIR,
    show_default=True,
    help="Directory exports are written to",
)
@click.option("--all", "show_all", is_flag=True, help="Also show servers that failed")
@click.pass_obj
def dns(
    store: ServerListStore,
    domain: str,
    samples: int,
    timeout: int,
    dnssec: bool,
    warm_up: bool,
    server: tuple,
    export_csv: bool,
    json_export: bool,
    output_dir: Path,
    show_all: bool,
):
    """
    Benchmark DNS servers resolving DOMAIN (or an IP, via PTR).

    Examples:

    \b
      # Benchmark the saved server list
      dnsbench dns example.com

    \b
      # Compare two servers with DNSSEC validation
      dnsbench dns example.com -s 1.1.1.1 -s tls://dns.quad9.net --dnssec

    \b
      # Five samples each, exported to CSV
      dnsbench dns example.com -n 5 --export
    """
    try:
        params = BenchmarkParams.create(
            domain,
            samples=samples,
            timeout_secs=timeout,
            validate_dnssec=dnssec,
            warm_up=warm_up,
            custom_servers=list(server) or None,
        )
    except InvalidParamsError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_INVALID_PARAMS)

    formats = tuple(fmt for fmt, wanted in (("csv", export_csv), ("json", json_export)) if wanted)
    status = asyncio.run(_run(
        RunKind.DNS,
        params,
        store,
        Console(),
        output_dir,
        export_formats=formats,
        show_all=show_all,
    ))
    _exit_for(status)


@main.command()
@click.argument("url", required=False, default=config.DEFAULT_DOWNLOAD_URL)
@click.option(
    "--duration",
    type=int,
    default=config.DEFAULT_DOWNLOAD_DURATION_SECS,
    show_default=True,
    help="Seconds to download from each address",
)
@click.option(
    "--timeout",
    type=int,
    default=config.DEFAULT_DOWNLOAD_TIMEOUT_SECS,
    show_default=True,
    help="Connect/read timeout in seconds",
)
@click.option(
    "--server", "-s",
    multiple=True,
    help="Server to resolve through instead of the saved list (can specify multiple)",
)
@click.option("--export", "export_csv", is_flag=True, help="Export raw results as CSV")
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=config.EXPORT_DIR,
    show_default=True,
    help="Directory exports are written to",
)
@click.pass_obj
def speed(
    store: ServerListStore,
    url: str,
    duration: int,
    timeout: int,
    server: tuple,
    export_csv: bool,
    output_dir: Path,
):
    """
    Measure download speed of URL as resolved by each DNS server.
    """
    try:
        params = SpeedParams.create(
            url,
            duration_secs=duration,
            timeout_secs=timeout,
            custom_servers=list(server) or None,
        )
    except InvalidParamsError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_INVALID_PARAMS)

    status = asyncio.run(_run(
        RunKind.DOWNLOAD,
        params,
        store,
        Console(),
        output_dir,
        export_formats=("csv",) if export_csv else (),
    ))
    _exit_for(status)


@main.group()
def servers():
    """Show or change the DNS server list."""


@servers.command("list")
@click.pass_obj
def list_servers(store: ServerListStore):
    """Print the current server list, one per line."""
    for address in store.get():
        click.echo(address)


@servers.command("set")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def set_servers(store: ServerListStore, file: Path):
    """Replace the server list with the contents of FILE."""
    store.load(file)
    if not store.get():
        click.echo(f"Error: no servers found in {file}", err=True)
        sys.exit(1)

    path = _persist(store)
    click.echo(f"Saved {len(store.get())} servers to {path}")


@servers.command()
@click.argument("url", required=False)
@click.option(
    "--preset",
    type=click.Choice(sorted(config.SERVER_LIST_PRESETS)),
    help="Download one of the published lists",
)
@click.pass_obj
def fetch(store: ServerListStore, url: Optional[str], preset: Optional[str]):
    """Download a server list from URL (default: the published list)."""
    url = url or config.SERVER_LIST_PRESETS[preset or "default"]

    try:
        count = asyncio.run(store.refresh_from_url(url))
    except httpx.HTTPError as e:
        click.echo(f"Error: could not download {url}: {e}", err=True)
        sys.exit(1)

    path = _persist(store)
    click.echo(f"Saved {count} servers to {path}")


@servers.command()
@click.pass_obj
def reset(store: ServerListStore):
    """Go back to the built-in server list."""
    store.reset()
    _server_list_path().unlink(missing_ok=True)
    click.echo(f"Restored {len(store.get())} built-in servers")


@main.command()
@click.option(
    "--port", "-p",
    type=int,
    default=config.GUI_PORT,
    help="Port to run the GUI server on",
)
@click.option(
    "--host",
    default=config.GUI_HOST,
    help="Host to bind the server to",
)
@click.option(
    "--no-browser",
    is_flag=True,
    help="Don't automatically open browser",
)
@click.pass_obj
def gui(store: ServerListStore, port: int, host: str, no_browser: bool):
    """
    Launch the web-based GUI.

    Examples:

    \b
      # Launch GUI on default port
      dnsbench gui

    \b
      # Use custom port
      dnsbench gui --port 8080
    """
    try:
        from .gui import run_gui
    except ImportError as e:
        click.echo("GUI dependencies not installed.", err=True)
        click.echo("Install with: pip install dnsbench[gui]", err=True)
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo("Starting DNS Bench GUI...")
    click.echo(f"Open http://{host}:{port} in your browser")
    click.echo("Press Ctrl+C to stop the server")

    run_gui(host=host, port=port, open_browser=not no_browser, store=store)


if __name__ == "__main__":
    main()
