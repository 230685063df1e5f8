# cenownik/cli/runner.py

"""Command runners behind ``main.py``: the scheduler service and one-shot tools."""

import asyncio
import json
import logging
import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from rich.console import Console
from rich.table import Table

from cenownik.extractors.registry import ExtractorRegistry
from cenownik.models.price_observation import TargetReachedEntry
from cenownik.notifications.dispatcher import NotificationDispatcher
from cenownik.services.cron_validator import CronValidationError
from cenownik.services.price_monitor import PriceMonitor, SweepReport
from cenownik.services.scheduler import SweepScheduler
from cenownik.storage.price_db import (
    PriceDB,
    SqliteConfigStore,
    SqliteHistoryRepository,
    SqliteListingRepository,
)

logger = logging.getLogger("cenownik.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


@dataclass
class _Services:
    db: PriceDB
    config_store: SqliteConfigStore
    registry: ExtractorRegistry
    dispatcher: NotificationDispatcher
    monitor: PriceMonitor


@contextmanager
def _open_services() -> Iterator[_Services]:
    """Wire storage, extractors and channels; close the DB on exit."""
    db = PriceDB()
    try:
        registry = ExtractorRegistry.from_settings()
        dispatcher = NotificationDispatcher()
        monitor = PriceMonitor(
            listings=SqliteListingRepository(db),
            history=SqliteHistoryRepository(db),
            registry=registry,
            dispatcher=dispatcher,
        )
        yield _Services(
            db=db,
            config_store=SqliteConfigStore(db),
            registry=registry,
            dispatcher=dispatcher,
            monitor=monitor,
        )
    finally:
        db.close()


def _format_price(value: float | None) -> str:
    return f"{value:,.2f} zł" if value is not None else "—"


def _print_sweep_report(report: SweepReport) -> None:
    if report.skipped:
        _err.print("[yellow]A sweep is already running, skipped.[/yellow]")
        return

    table = Table(
        title="Sweep Results",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Listing", style="dim", justify="right")
    table.add_column("Status")
    table.add_column("Target", justify="center")
    table.add_column("Notified", justify="center")

    for outcome in report.outcomes:
        reached = outcome.decision is not None and outcome.decision.target_reached
        notified = outcome.dispatch is not None and outcome.dispatch.any_sent
        table.add_row(
            f"#{outcome.listing_id}",
            outcome.status,
            "[green]reached[/green]" if reached else "—",
            "✓" if notified else "—",
        )

    Console().print(table)
    _err.print(
        f"[green]✓ {report.processed}/{report.total} processed, "
        f"{report.changed} changed, {report.failed} failed, "
        f"{report.notified} notified[/green]"
    )


def _print_target_entries(title: str, entries: list[TargetReachedEntry]) -> None:
    table = Table(title=title, show_lines=True, title_style="bold cyan")
    table.add_column("When", style="dim")
    table.add_column("Listing", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Target", justify="right")
    table.add_column("Owner", style="magenta")

    for entry in entries:
        obs = entry.observation
        table.add_row(
            obs.observed_at.strftime("%Y-%m-%d %H:%M"),
            f"#{obs.listing_id} {entry.listing_title[:45]}",
            _format_price(obs.price),
            _format_price(obs.target_price),
            entry.owner_username or entry.owner_email or "—",
        )
    Console().print(table)


# ── Service ──────────────────────────────────────────────


async def run_service() -> int:
    """Run the cron-driven scheduler until SIGINT/SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    with _open_services() as services:
        scheduler = SweepScheduler(services.monitor, services.config_store)
        scheduler.start()
        _err.print(
            f"[bold]Cenownik running[/bold] "
            f"[dim]cron={scheduler.get_cron_expression()} "
            f"next={scheduler.next_run_time}[/dim]"
        )
        try:
            await stop.wait()
        finally:
            scheduler.shutdown()
            _err.print("[dim]Scheduler stopped.[/dim]")
    return 0


# ── One-shot commands ────────────────────────────────────


async def run_sweep_once() -> int:
    """Run a single sweep now, under the same deadline as scheduled ticks."""
    with _open_services() as services:
        scheduler = SweepScheduler(services.monitor, services.config_store)
        _err.print("[bold]Scraping all tracked listings...[/bold]")
        report = await scheduler.run_sweep()
    _print_sweep_report(report)
    if report.timed_out:
        _err.print("[red]Sweep stopped at its deadline.[/red]")
    return 1 if report.failed or report.timed_out else 0


async def run_listing(listing_id: int) -> int:
    """Scrape and process one listing now."""
    with _open_services() as services:
        outcome = await services.monitor.trigger_listing(listing_id)
    _err.print(f"Listing #{listing_id}: [bold]{outcome.status}[/bold]")
    if outcome.dispatch is not None:
        _err.print(
            f"[dim]email={outcome.dispatch.email_sent} "
            f"discord={outcome.dispatch.discord_sent}[/dim]"
        )
    return 0 if outcome.status in ("changed", "unchanged") else 1


async def run_test_url(url: str) -> int:
    """Extract a URL without touching stored listings; print JSON."""
    with _open_services() as services:
        result = await services.monitor.test_extract(url)
    json.dump(
        {"price": result.price, "title": result.title, "source": result.source},
        sys.stdout,
        ensure_ascii=False,
        indent=2,
    )
    sys.stdout.write("\n")
    return 0 if result.has_price else 1


def run_get_cron() -> int:
    with _open_services() as services:
        scheduler = SweepScheduler(services.monitor, services.config_store)
        sys.stdout.write(scheduler.get_cron_expression() + "\n")
    return 0


def run_set_cron(cron_expression: str) -> int:
    """Persist a new schedule; a running service picks it up on its next sync."""
    with _open_services() as services:
        scheduler = SweepScheduler(services.monitor, services.config_store)
        try:
            expression = scheduler.set_cron_expression(cron_expression)
        except CronValidationError as exc:
            _err.print(f"[red]{exc}[/red]")
            return 1
    _err.print(f"[green]✓ Scrape cron set to: {expression}[/green]")
    return 0


def run_history(listing_id: int) -> int:
    with _open_services() as services:
        observations = services.monitor.get_history(listing_id)

    if not observations:
        _err.print("[yellow]No price changes recorded.[/yellow]")
        return 0

    table = Table(
        title=f"Price History #{listing_id}",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("When", style="dim")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Previous", justify="right")
    table.add_column("Target", justify="right")
    table.add_column("Reached", justify="center")
    for obs in observations:
        table.add_row(
            obs.observed_at.strftime("%Y-%m-%d %H:%M"),
            _format_price(obs.price),
            _format_price(obs.previous_price),
            _format_price(obs.target_price),
            "✓" if obs.target_reached else "",
        )
    Console().print(table)
    return 0


def run_targets(listing_id: int | None) -> int:
    with _open_services() as services:
        entries = services.monitor.get_target_reached_history(listing_id)
    if not entries:
        _err.print("[yellow]No target prices reached yet.[/yellow]")
        return 0
    _print_target_entries("Target Prices Reached", entries)
    return 0


def run_notifications(user_id: int | None) -> int:
    with _open_services() as services:
        entries = services.monitor.get_notification_history(user_id)
    if not entries:
        _err.print("[yellow]No notifications sent yet.[/yellow]")
        return 0
    _print_target_entries("Notification History", entries)
    return 0


async def run_stats() -> int:
    with _open_services() as services:
        stats = await services.monitor.get_stats()

    table = Table(title="Statistics", title_style="bold cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Tracked listings", str(stats.total_listings))
    table.add_row("Price matches", str(stats.total_price_matches))
    table.add_row("Matches (last 7 days)", str(stats.recent_matches))
    table.add_row(
        "Email service",
        "[green]ready[/green]" if stats.email_service_ready else "[red]not ready[/red]",
    )
    table.add_row("Email auth", stats.email_auth_type)
    table.add_row(
        "Supported stores",
        ", ".join(services.monitor.supported_sources()),
    )
    Console().print(table)
    return 0


async def run_health_check() -> int:
    """Run connectivity health check on all stores."""
    from cenownik.services.health_checker import HealthChecker

    _err.print("[bold]Running store health check...[/bold]")
    checker = HealthChecker(ExtractorRegistry.from_settings())
    results = await checker.check_all()

    table = Table(
        title="Store Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Source", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]✅ OK[/green]"
        elif r.status == "slow":
            status = "[yellow]⚠️  SLOW[/yellow]"
        else:
            status = "[red]❌ DOWN[/red]"
            any_down = True

        latency = f"{r.latency_ms:.0f}ms" if r.latency_ms > 0 else "—"
        table.add_row(r.source_id, status, latency, r.message)

    Console().print(table)
    return 1 if any_down else 0


async def run_test_email(address: str) -> int:
    dispatcher = NotificationDispatcher()
    if not dispatcher.email.is_configured():
        _err.print("[red]Email service is not configured.[/red]")
        return 1
    _err.print(
        f"[dim]Sending test email via {dispatcher.email.auth_type}...[/dim]"
    )
    sent, message = await dispatcher.send_test_email(
        address, address.split("@")[0]
    )
    _err.print(f"[green]{message}[/green]" if sent else f"[red]{message}[/red]")
    return 0 if sent else 1


async def run_test_webhook(webhook_url: str) -> int:
    sent, message = await NotificationDispatcher().send_test_webhook(webhook_url)
    _err.print(f"[green]{message}[/green]" if sent else f"[red]{message}[/red]")
    return 0 if sent else 1


async def run_validate_webhook(webhook_url: str) -> int:
    valid, message = await NotificationDispatcher().validate_webhook(webhook_url)
    _err.print(f"[green]{message}[/green]" if valid else f"[red]{message}[/red]")
    return 0 if valid else 1
