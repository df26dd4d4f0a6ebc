"""
Command line entry point for the offline sync tooling.

Runs a sync pass (or the periodic scheduler), lists queued operations,
retries or discards failed ones, and repairs a train's seat inventory.
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table
from rich import box

from .database.config import DatabaseConfig
from .database.local_store import LocalStore
from .errors import TrainNotFound
from .models.enums import SyncStatus
from .services.booking_service import BookingService
from .services.lock_manager import DistributedLockManager
from .services.offline_queue import OfflineOperationQueue
from .services.seat_inventory import SeatInventory
from .services.sync_reconciler import SyncReconciler, SyncScheduler
from .store.client import ValkeyClient
from .store.config import ValkeyConfig, ValkeyConnectionError
from .store.documents import DocumentStore
from .utils.config import RailwayConfig, get_config, configure_logging

app = typer.Typer(help="Railway booking offline sync")
console = Console()


def _local_queue(config: RailwayConfig) -> OfflineOperationQueue:
    return OfflineOperationQueue(DatabaseConfig(config.local_database_url))


def build_service(config: RailwayConfig, client: ValkeyClient) -> BookingService:
    """Wire the booking service against a connected Valkey client and the local store."""
    database_config = DatabaseConfig(config.local_database_url)
    store = DocumentStore(client)
    inventory = SeatInventory(
        store,
        DistributedLockManager(client),
        lock_ttl_seconds=config.inventory_lock_ttl_seconds,
        lock_timeout_seconds=config.inventory_lock_timeout_seconds,
    )
    return BookingService(
        document_store=store,
        seat_inventory=inventory,
        local_store=LocalStore(database_config),
        operation_queue=OfflineOperationQueue(database_config),
        config=config,
    )


async def _run_sync(config: RailwayConfig, watch: bool) -> int:
    async with ValkeyClient(ValkeyConfig.from_railway_config(config)) as client:
        service = build_service(config, client)
        reconciler = SyncReconciler(service, service.operation_queue, service.local_store)

        if not watch:
            report = await reconciler.sync_all()
            console.print(
                f"[green]✓[/green] {report.succeeded} synced "
                f"([dim]{report.skipped} already applied[/dim]), "
                f"[red]{report.failed} failed[/red]"
            )
            return 1 if report.failed else 0

        scheduler = SyncScheduler(reconciler, config.sync_interval_seconds, client.is_reachable)
        scheduler.start()
        console.print(f"[cyan]Syncing every {config.sync_interval_seconds}s. Ctrl+C to stop.[/cyan]")
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.stop()
    return 0


@app.command()
def sync(
    watch: bool = typer.Option(
        False,
        "--watch",
        "-w",
        help="Keep running and sync on the configured interval"
    )
):
    """Replay queued offline operations against the server"""
    config = get_config()
    configure_logging(config)
    try:
        code = asyncio.run(_run_sync(config, watch))
    except KeyboardInterrupt:
        code = 0
    except ValkeyConnectionError as e:
        console.print(f"[red]✗ Server unreachable:[/red] {e}")
        code = 2
    raise typer.Exit(code)


@app.command()
def queue(
    status: Optional[SyncStatus] = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show operations with this status"
    )
):
    """List queued offline operations"""
    config = get_config()
    configure_logging(config)
    operation_queue = _local_queue(config)

    operations = operation_queue.pending() + operation_queue.failed()
    if status is not None:
        operations = [op for op in operations if op.status == status]
    operations.sort(key=lambda op: op.id)

    table = Table(title="Offline operations", box=box.ROUNDED)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Queued at")
    table.add_column("Error", style="red")
    for op in operations:
        table.add_row(
            str(op.id),
            op.type.value,
            op.status.value,
            op.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            op.error or "",
        )
    console.print(table)


@app.command()
def retry(operation_id: int = typer.Argument(..., help="Failed operation id")):
    """Put a failed operation back in the queue"""
    config = get_config()
    configure_logging(config)
    if not _local_queue(config).retry(operation_id):
        console.print(f"[red]✗ No failed operation {operation_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Operation {operation_id} re-queued")


@app.command()
def discard(operation_id: int = typer.Argument(..., help="Failed operation id")):
    """Drop a failed operation"""
    config = get_config()
    configure_logging(config)
    if not _local_queue(config).discard(operation_id):
        console.print(f"[red]✗ No failed operation {operation_id}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Operation {operation_id} discarded")


async def _run_repair(config: RailwayConfig, train_id: str):
    async with ValkeyClient(ValkeyConfig.from_railway_config(config)) as client:
        service = build_service(config, client)
        return await service.repair_inventory(train_id)


@app.command()
def repair(train_id: str = typer.Argument(..., help="Train id")):
    """Rebuild a train's seat availability from its live bookings"""
    config = get_config()
    configure_logging(config)
    try:
        train = asyncio.run(_run_repair(config, train_id))
    except ValkeyConnectionError as e:
        console.print(f"[red]✗ Server unreachable:[/red] {e}")
        raise typer.Exit(2)
    except TrainNotFound as e:
        console.print(f"[red]✗ {e.message}[/red]")
        raise typer.Exit(1)
    free = sum(1 for seat in train.seats if seat.is_available)
    console.print(
        f"[green]✓[/green] Train {train.number}: {free}/{len(train.seats)} seats free "
        f"(inventory version {train.version})"
    )


def main():
    app()


if __name__ == "__main__":
    main()
