"""Typer-based CLI entry point."""

from __future__ import annotations

import functools
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich import print
from rich.console import Console
from rich.table import Table

from .config import SchedulerConfig
from .domain.models import DISPATCH_ORDER, FidelityTier
from .errors import ChatMediaError, SettingsError
from .events.bus import EventBus
from .events.media_events import TierFailedEvent, TierLoadedEvent
from .infrastructure.services.resource_locator import (
    ResourceLocator,
    env_token_provider,
    static_token_provider,
)
from .scheduling.clock import VirtualClock
from .scheduling.presentation import DisplayStateTracker
from .scheduling.scheduler import MediaLoadScheduler
from .scheduling.simulation import SimulatedFetcher, SimulatedLocator
from .scheduling.stats import LoadStats, StatsMonitor
from .utils.console_logger import ensure_console_logger

app = typer.Typer(help="Progressive image loading for chat attachments")
console = Console()


def _handle_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SettingsError as exc:
            typer.echo(f"Settings error: {exc}", err=True)
            raise typer.Exit(1) from exc
        except ChatMediaError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(1) from exc

    return wrapper


def _configure_logging(verbose: bool) -> None:
    ensure_console_logger(
        logging.getLogger("chatmedia"),
        "chatmedia-cli",
        level=logging.DEBUG if verbose else logging.WARNING,
    )


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging.")) -> None:
    _configure_logging(verbose)


def _stats_table(stats: LoadStats, title: str) -> Table:
    table = Table(title=title)
    table.add_column("metric")
    table.add_column("value", justify="right")
    payload = stats.as_dict()
    for queue in DISPATCH_ORDER:
        table.add_row(queue.stats_key, str(payload["queues"][queue.stats_key]))
    for key in ("currentLoading", "maxConcurrent", "totalImages", "loadedThumbnails", "loadedFullImages"):
        table.add_row(key, str(payload[key]))
    table.add_row("efficiency", f"{stats.efficiency:.0%}")
    return table


@app.command()
@_handle_errors
def url(
    image_id: str,
    tier: str = typer.Option("medium", "--tier", "-t", help="small, medium or full"),
    api_url: Optional[str] = typer.Option(None, "--api-url"),
    token: Optional[str] = typer.Option(None, "--token", help="Access token; defaults to the environment."),
) -> None:
    """Print the URL the scheduler would fetch for IMAGE_ID at TIER."""

    try:
        fidelity = FidelityTier.parse(tier)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--tier") from exc
    provider = static_token_provider(token) if token else env_token_provider()
    locator = ResourceLocator(api_url, provider) if api_url else ResourceLocator(token_provider=provider)
    resolved = locator.build_url(image_id, fidelity)
    if not resolved:
        typer.echo("Error: no access token available", err=True)
        raise typer.Exit(1)
    typer.echo(resolved)


@app.command()
@_handle_errors
def simulate(
    images: int = typer.Option(20, "--images", min=1),
    visible: int = typer.Option(5, "--visible", min=0, help="How many images start in the viewport."),
    failure_rate: float = typer.Option(0.0, "--failure-rate", min=0.0, max=1.0),
    seed: Optional[int] = typer.Option(None, "--seed"),
    max_concurrent: int = typer.Option(2, "--max-concurrent", min=1),
    duration_ms: int = typer.Option(15_000, "--duration-ms", min=0),
) -> None:
    """Stress-test the scheduler offline with simulated network latency."""

    clock = VirtualClock()
    bus = EventBus()
    counts = {"loaded": 0, "failed": 0}
    bus.subscribe(TierLoadedEvent, lambda _event: counts.__setitem__("loaded", counts["loaded"] + 1))
    bus.subscribe(TierFailedEvent, lambda _event: counts.__setitem__("failed", counts["failed"] + 1))

    fetcher = SimulatedFetcher(clock, failure_rate=failure_rate, seed=seed)
    scheduler = MediaLoadScheduler(
        SimulatedLocator(),
        fetcher,
        DisplayStateTracker(),
        clock=clock,
        config=SchedulerConfig(max_concurrent=max_concurrent),
        event_bus=bus,
    )
    for index in range(images):
        scheduler.register_image(f"img-{index:04d}", visible=index < visible)
    scheduler.start()
    samples: List[LoadStats] = []
    monitor = StatsMonitor(scheduler, clock, sink=samples.append)
    monitor.start()
    clock.advance(duration_ms)
    monitor.stop()
    scheduler.shutdown()

    console.print(_stats_table(scheduler.get_stats(), f"After {duration_ms} ms"))
    print(
        f"[green]{counts['loaded']} tiers loaded[/green], "
        f"[red]{counts['failed']} failed[/red], "
        f"peak in flight {fetcher.peak_in_flight}/{max_concurrent}, "
        f"{len(samples)} stats samples"
    )


@app.command()
@_handle_errors
def fetch(
    image_ids: List[str] = typer.Argument(..., help="Image ids to load."),
    api_url: Optional[str] = typer.Option(None, "--api-url"),
    token: Optional[str] = typer.Option(None, "--token"),
    full: bool = typer.Option(False, "--full", help="Also request the full tier at user priority."),
    timeout: float = typer.Option(30.0, "--timeout", min=0.1, help="Seconds before giving up."),
    settings_path: Optional[Path] = typer.Option(None, "--settings", help="Settings file to use."),
) -> None:
    """Load IMAGE_IDS from the backend through the real scheduler."""

    from PySide6.QtCore import QCoreApplication, QTimer

    from .appctx import AppContext
    from .gui.qt_clock import QtClock
    from .infrastructure.services.network_fetcher import NetworkByteFetcher
    from .settings.manager import SettingsManager

    qt_app = QCoreApplication.instance() or QCoreApplication([])
    settings = SettingsManager(settings_path)
    settings.load()
    context = AppContext(settings=settings)

    clock = QtClock()
    presenter = DisplayStateTracker()
    provider = static_token_provider(token) if token else env_token_provider()
    scheduler = context.build_scheduler(
        NetworkByteFetcher(),
        presenter,
        clock=clock,
        locator=context.build_locator(provider, api_url=api_url),
    )
    for image_id in image_ids:
        scheduler.register_image(image_id, visible=True)
        if full:
            scheduler.request_full(image_id)

    def _check_done() -> None:
        if scheduler.get_stats().idle:
            qt_app.quit()

    poll = QTimer()
    poll.timeout.connect(_check_done)
    poll.start(100)
    monitor = StatsMonitor(scheduler, clock)
    QTimer.singleShot(int(timeout * 1000), qt_app.quit)
    scheduler.start()
    monitor.start()
    qt_app.exec()
    poll.stop()
    monitor.stop()
    stats = scheduler.get_stats()
    scheduler.shutdown()
    clock.cancel_all()

    table = Table(title="Display state")
    table.add_column("image")
    table.add_column("tier")
    table.add_column("full ready")
    table.add_column("failed")
    for image_id in image_ids:
        state = presenter.state(image_id)
        table.add_row(
            image_id,
            state.tier.label if state.tier is not None else "-",
            "yes" if state.full_ready else "no",
            "yes" if state.shows_failure else "no",
        )
    console.print(table)
    if not stats.idle:
        typer.echo(f"Timed out with work pending: {stats.summary()}", err=True)
        raise typer.Exit(2)


if __name__ == "__main__":
    app()
