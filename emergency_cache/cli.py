"""
Emergency Cache CLI

Inspect cache keys and stored entries, and run the caching reverse proxy.
"""

from __future__ import annotations

import sys
from collections import Counter
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from socketserver import ThreadingMixIn
from typing import Optional
from urllib.parse import urlsplit
from wsgiref.simple_server import WSGIServer, make_server

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import EmergencyCacheConfig, load_config
from .decision_engine import CacheDecision, DecisionEngine, derive_key
from .exceptions import CacheStoreError, ConfigError
from .interceptor import EmergencyCacheMiddleware
from .log_utils import configure_logging, read_jsonl
from .storage import create_store, encode_key
from .upstream import ProxyUpstream

app = typer.Typer(
    name="emergency-cache",
    help="Emergency Cache - HTTP response cache with a stale-serving emergency mode",
    add_completion=False,
)
console = Console()


class ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


def _load(config: Optional[str]) -> EmergencyCacheConfig:
    config_path = config or "config.yaml"
    try:
        return load_config(config_path)
    except ConfigError as err:
        console.print(f"[bold red]Error:[/bold red] {err}")
        raise typer.Exit(code=1)


def _split_url(url: str):
    parts = urlsplit(url if "://" in url else f"http://{url}")
    return parts.netloc, parts.path or "/", parts.query


@app.command()
def version():
    """
    Display Emergency Cache version information.
    """
    console.print(f"[bold cyan]Emergency Cache[/bold cyan] version [bold green]{__version__}[/bold green]")


@app.command()
def status(
    config: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml file"),
):
    """
    Display the effective configuration.
    """
    config_path = config or "config.yaml"
    cfg = _load(config)

    console.print(Panel.fit("[bold cyan]Emergency Cache Status[/bold cyan]", border_style="cyan"))

    table = Table(box=box.ROUNDED, show_header=False)
    table.add_column("Setting", style="cyan", width=20)
    table.add_column("Value", style="white")

    if Path(config_path).exists():
        table.add_row("Config File", f"[green]✓ {config_path}[/green]")
    else:
        table.add_row("Config File", f"[yellow]⚠ Not found: {config_path} (using defaults)[/yellow]")
    mode = "[red]emergency (read-only)[/red]" if cfg.emergency_mode else "[green]normal (write-through)[/green]"
    table.add_row("Mode", mode)
    table.add_row("Store", create_store(cfg.path, timeout=cfg.store_timeout).describe())
    table.add_row("Bypass Header", cfg.bypass_header)
    table.add_row("Cacheable Header", cfg.cacheable_header)
    table.add_row("Store Timeout", f"{cfg.store_timeout:g}s")
    table.add_row("Write Workers", str(cfg.write_workers))
    table.add_row("Write Queue", str(cfg.write_queue_size))
    table.add_row("Dedupe Writes", "Yes" if cfg.dedupe_writes else "No")
    table.add_row("Decision Log", cfg.decision_log_path or "disabled")
    table.add_row("Debug", "Yes" if cfg.debug else "No")
    console.print(table)


@app.command()
def key(
    url: str = typer.Argument(..., help="Request URL, e.g. https://example.com/app?x=1"),
    no_query: bool = typer.Option(False, "--no-query", help="Only show the key without the query string"),
):
    """
    Show the cache key(s) a URL maps to.
    """
    host, path, query = _split_url(url)
    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Kind", style="cyan")
    table.add_column("Key")
    table.add_column("Encoded")

    full = derive_key(host, path, query, True)
    stripped = derive_key(host, path, query, False)
    if not no_query:
        table.add_row("full", full, encode_key(full))
    if stripped != full or no_query:
        table.add_row("stripped", stripped, encode_key(stripped))
    console.print(table)


@app.command()
def inspect(
    url: str = typer.Argument(..., help="Request URL to look up"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml file"),
):
    """
    Look up the stored entries for a URL.
    """
    cfg = _load(config)
    store = create_store(cfg.path, timeout=cfg.store_timeout)
    engine = DecisionEngine(cfg)
    host, path, query = _split_url(url)

    keys = [derive_key(host, path, query, True)]
    stripped = derive_key(host, path, query, False)
    if stripped != keys[0]:
        keys.append(stripped)

    found = False
    for cache_key in keys:
        try:
            raw = store.get(cache_key)
        except CacheStoreError as err:
            console.print(f"[bold red]Error:[/bold red] {err}")
            sys.exit(1)
        cached = engine.replayable(raw)
        if cached is None:
            label = "[yellow]✗ miss[/yellow]" if raw is None else "[red]✗ unusable entry[/red]"
            console.print(f"{cache_key}: {label}")
            continue

        found = True
        created = datetime.fromtimestamp(cached.created_at, tz=timezone.utc).isoformat()
        table = Table(title=cache_key, box=box.ROUNDED, show_header=False)
        table.add_column("Property", style="bold cyan", width=12)
        table.add_column("Value", style="white")
        table.add_row("Status", str(cached.status))
        table.add_row("Created", created)
        table.add_row("Body", f"{len(cached.body)} bytes")
        for name, value in cached.headers.items():
            table.add_row("Header", f"{name}: {value}")
        console.print(table)

    if not found:
        sys.exit(1)


@app.command()
def stats(
    config: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml file"),
):
    """
    Summarize the decision log.
    """
    cfg = _load(config)
    if not cfg.decision_log_path:
        console.print("[bold yellow]Decision log disabled[/bold yellow] (set logDir in the config)")
        sys.exit(1)

    entries = read_jsonl(cfg.decision_log_path)
    counts = Counter(entry.get("decision", "unknown") for entry in entries)

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Decision", style="cyan")
    table.add_column("Requests", justify="right")
    for decision in CacheDecision:
        table.add_row(decision.value, str(counts.get(decision.value, 0)))
    table.add_row("[bold]total[/bold]", f"[bold]{len(entries)}[/bold]")
    console.print(table)


@app.command()
def serve(
    upstream: str = typer.Argument(..., help="Origin base URL, e.g. http://127.0.0.1:8080"),
    host: str = typer.Option("127.0.0.1", "--host", help="Address to listen on"),
    port: int = typer.Option(8000, "--port", help="Port to listen on"),
    config: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml file"),
    emergency: Optional[bool] = typer.Option(None, "--emergency/--normal", help="Override the configured mode"),
    upstream_timeout: float = typer.Option(30.0, "--upstream-timeout", help="Origin request timeout in seconds"),
):
    """
    Run a caching reverse proxy in front of UPSTREAM.
    """
    cfg = _load(config)
    if emergency is not None:
        cfg = replace(cfg, emergency_mode=emergency)
    configure_logging(cfg.debug)

    middleware = EmergencyCacheMiddleware(ProxyUpstream(upstream, timeout=upstream_timeout), cfg)
    server = make_server(host, port, middleware, server_class=ThreadingWSGIServer)
    mode = "emergency" if cfg.emergency_mode else "normal"
    console.print(f"[bold green]Serving[/bold green] {upstream} on http://{host}:{port} ({mode} mode)")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        console.print("\n[bold]Shutting down...[/bold]")
    finally:
        server.server_close()
        middleware.close(drain=True)


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
