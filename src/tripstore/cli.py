"""tripstore CLI — inspect and edit the shared trip store.

Commands:
    tripstore init [NAME]          create tripstore.toml + data dir
    tripstore list [--all]         table of trips (soft-deleted with --all)
    tripstore show PNR             dump one trip as stored
    tripstore import FILE          decode an upstream booking payload and insert it
    tripstore rename PNR NAME      set the display name
    tripstore remove PNR           delete (hard or soft, per config)
    tripstore refresh              coordinated re-read; exit 1 on failure
    tripstore watch                print the trip list on every change
    tripstore status               config, file and watcher state
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from importlib import metadata
from pathlib import Path
from typing import TYPE_CHECKING

import click

from tripstore.bridge import UpdateResult, import_trip, widget_update
from tripstore.codec import encode_trip
from tripstore.config import StoreConfig, init_config, load_config
from tripstore.errors import SchemaViolation, StoreError
from tripstore.store import TripStore, open_store

if TYPE_CHECKING:
    from collections.abc import Sequence

    from rich.table import Table

    from tripstore.models import Trip

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> StoreConfig:
    try:
        return load_config()
    except (OSError, ValueError) as exc:  # includes TOMLDecodeError
        raise click.ClickException(str(exc)) from exc


def _setup_logging(cfg: StoreConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, cfg.logging.level, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(message)s")


async def _open(cfg: StoreConfig) -> TripStore:
    try:
        return await open_store(cfg)
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc


def _trips_table(trips: Sequence[Trip], title: str) -> Table:
    from rich.table import Table

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("#", style="dim", justify="right")
    table.add_column("PNR", no_wrap=True)
    table.add_column("Name")
    table.add_column("Route")
    table.add_column("Departs", no_wrap=True)
    table.add_column("Guests", justify="right")
    for i, trip in enumerate(trips):
        ods = trip.origin_destinations
        route = " → ".join([ods[0].origin_airport_code, *(od.destination_airport_code for od in ods)]) if ods else ""
        departs = ods[0].departure_date_time.strftime("%Y-%m-%d %H:%M") if ods else ""
        name = trip.metadata.trip_name or ""
        if trip.metadata.is_soft_deleted:
            name = f"[red]{name or '(deleted)'}[/red]"
        elif trip.metadata.is_cached_data_stale:
            name = f"[yellow]{name or '(stale)'}[/yellow]"
        table.add_row(str(i), trip.pnr, name, route, departs, str(len(trip.guests)))
    return table


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="tripstore")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """tripstore — trips shared between cooperating processes."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# tripstore init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
@click.option(
    "--backend",
    type=click.Choice(["document", "table"]),
    default="document",
    show_default=True,
    help="Physical format of the canonical file",
)
def init(name: str | None, root: str, backend: str) -> None:
    """Create tripstore.toml and the data directory."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, name=name, backend=backend)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("tripstore.toml already exists — skipping init")

    cfg = load_config(root_path)
    cfg.ensure_dirs()
    click.echo(f"Data dir : {cfg.data_dir}")
    click.echo(f"Store    : {cfg.store_path} ({cfg.storage.backend})")


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


@cli.command(name="list")
@click.option("--all", "include_deleted", is_flag=True, help="Include soft-deleted trips")
@click.pass_context
def list_trips(ctx: click.Context, include_deleted: bool) -> None:
    """List trips in the store."""
    from rich.console import Console

    cfg = _load_cfg()
    _setup_logging(cfg, ctx.obj["verbose"])

    async def run() -> list[Trip]:
        store = await _open(cfg)
        try:
            return store.fetch_all(include_deleted=include_deleted)
        finally:
            store.close()

    trips = asyncio.run(run())
    if not trips:
        click.echo("No trips.")
        return
    Console().print(_trips_table(trips, f"tripstore — {cfg.name}"))


@cli.command()
@click.argument("pnr")
@click.pass_context
def show(ctx: click.Context, pnr: str) -> None:
    """Print one trip in its stored JSON shape."""
    cfg = _load_cfg()
    _setup_logging(cfg, ctx.obj["verbose"])

    async def run() -> Trip | None:
        store = await _open(cfg)
        try:
            return store.get(pnr.upper(), include_deleted=True)
        finally:
            store.close()

    trip = asyncio.run(run())
    if trip is None:
        raise click.ClickException(f"Trip not found: {pnr}")
    click.echo(json.dumps(encode_trip(trip), indent=2))


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------


@cli.command(name="import")
@click.argument("payload", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--name", default=None, help="Display name to set after import")
@click.pass_context
def import_cmd(ctx: click.Context, payload: Path, name: str | None) -> None:
    """Import an upstream booking payload (JSON) as a trip."""
    cfg = _load_cfg()
    _setup_logging(cfg, ctx.obj["verbose"])

    async def run() -> Trip:
        store = await _open(cfg)
        try:
            trip = await import_trip(store, payload.read_bytes())
            if name:
                trip = dataclasses.replace(trip, metadata=dataclasses.replace(trip.metadata, trip_name=name))
                await store.update(trip)
            return trip
        finally:
            store.close()

    try:
        trip = asyncio.run(run())
    except SchemaViolation as exc:
        raise click.ClickException(f"Invalid payload: {exc}") from exc
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Imported {trip.pnr}")


@cli.command()
@click.argument("pnr")
@click.argument("name")
@click.pass_context
def rename(ctx: click.Context, pnr: str, name: str) -> None:
    """Set a trip's display name."""
    cfg = _load_cfg()
    _setup_logging(cfg, ctx.obj["verbose"])

    async def run() -> None:
        store = await _open(cfg)
        try:
            trip = store.get(pnr.upper())
            if trip is None:
                raise click.ClickException(f"Trip not found: {pnr}")
            meta = dataclasses.replace(trip.metadata, trip_name=name or None)
            await store.update(dataclasses.replace(trip, metadata=meta))
        finally:
            store.close()

    try:
        asyncio.run(run())
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Renamed {pnr.upper()} → {name}")


@cli.command()
@click.argument("pnr")
@click.pass_context
def remove(ctx: click.Context, pnr: str) -> None:
    """Delete a trip (hard or soft according to storage.delete_policy)."""
    cfg = _load_cfg()
    _setup_logging(cfg, ctx.obj["verbose"])

    async def run() -> None:
        store = await _open(cfg)
        try:
            await store.remove(pnr.upper())
        finally:
            store.close()

    try:
        asyncio.run(run())
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Removed {pnr.upper()} ({cfg.storage.delete_policy})")


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def refresh(ctx: click.Context) -> None:
    """Coordinated re-read of the canonical file. Exit status 1 on failure."""
    cfg = _load_cfg()
    _setup_logging(cfg, ctx.obj["verbose"])

    async def run() -> tuple[UpdateResult, int]:
        store = TripStore.from_config(cfg)
        try:
            result = await widget_update(store)
            return result, len(store.fetch_all())
        finally:
            store.close()

    result, count = asyncio.run(run())
    if result is UpdateResult.FAILED:
        click.echo("Refresh failed (see log)", err=True)
        raise SystemExit(1)
    click.echo(f"{count} trips")


class _EchoObserver:
    def __init__(self, title: str) -> None:
        from rich.console import Console

        self.console = Console()
        self.title = title

    def on_records_changed(self, records: Sequence[Trip]) -> None:
        self.console.print(_trips_table(records, self.title))


@cli.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """Print the trip list now and after every change, from any process. Ctrl-C to stop."""
    cfg = _load_cfg()
    _setup_logging(cfg, ctx.obj["verbose"])
    if not cfg.watcher.enabled:
        raise click.ClickException("watcher.enabled is false in tripstore.toml")

    async def run() -> None:
        store = TripStore.from_config(cfg)
        observer = _EchoObserver(f"tripstore — {cfg.name}")
        store.notifier.subscribe(observer)
        try:
            await store.refresh()
            while True:
                await asyncio.sleep(3600)
        finally:
            store.notifier.unsubscribe(observer)
            store.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("stopped")
    except StoreError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
def status() -> None:
    """Show config, canonical file and lock state."""
    from rich.console import Console
    from rich.table import Table

    from tripstore.backends import describe
    from tripstore.coordination import lock_path_for

    cfg = _load_cfg()
    console = Console()

    table = Table(title=f"tripstore — {cfg.name}", show_header=True, header_style="bold")
    table.add_column("Setting", style="dim", no_wrap=True)
    table.add_column("Value")

    try:
        installed = metadata.version("tripstore")
    except metadata.PackageNotFoundError:
        installed = "not installed"
    table.add_row("Version", installed)
    table.add_row("Config", str(cfg.config_path) if cfg.config_path.exists() else "[yellow]defaults[/yellow]")
    table.add_row("Backend", cfg.storage.backend)
    table.add_row("Delete policy", cfg.storage.delete_policy)
    table.add_row("Store", f"{cfg.store_path}  ({describe(cfg.store_path)})")
    table.add_row("Lock", str(lock_path_for(cfg.store_path)))
    timeout = cfg.coordination.lock_timeout
    table.add_row("Lock timeout", "wait forever" if timeout is None else f"{timeout:.1f}s")
    table.add_row("Watcher", "enabled" if cfg.watcher.enabled else "[red]disabled[/red]")
    console.print(table)


if __name__ == "__main__":
    cli()
