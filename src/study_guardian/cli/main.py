"""CLI commands for Study Guardian using Typer."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from study_guardian import __version__
from study_guardian.core.config import Settings, get_settings
from study_guardian.focus.driver import TimerDriver
from study_guardian.focus.errors import ApiError, ConfigurationInvalid, SubmissionFailure
from study_guardian.focus.events import PhaseCompleted, TimerEvent
from study_guardian.focus.models import Phase, Preset, RunState, SessionRecord, TimerState
from study_guardian.focus.suggestions import suggest_break
from study_guardian.focus.timer import TimerEngine
from study_guardian.notify.desktop import ConsoleBanner, DesktopNotifier, TerminalBell
from study_guardian.notify.dispatcher import NotificationDispatcher
from study_guardian.storage.database import init_database
from study_guardian.storage.session_store import SessionStore
from study_guardian.sync.api_client import StudyApiClient
from study_guardian.sync.presets import PresetService
from study_guardian.sync.schemas import SessionReceipt
from study_guardian.sync.session_logger import SessionLogger

logger = logging.getLogger(__name__)

# Initialize Typer app
app = typer.Typer(
    name="study-guardian",
    help="Pomodoro focus timer with session logging.",
    add_completion=False,
)

console = Console()

PHASE_STYLES = {
    Phase.WORK: "bold green",
    Phase.SHORT_BREAK: "bold cyan",
    Phase.LONG_BREAK: "bold magenta",
}


def setup_logging(log_level: str, log_file: Path | None = None) -> None:
    """Configure logging for the application."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )

    # Reduce noise from external libraries
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def _api_client(settings: Settings) -> StudyApiClient | None:
    if not settings.sync.enabled:
        return None
    return StudyApiClient(
        settings.sync.api_url,
        token=settings.sync.api_token,
        timeout=settings.sync.request_timeout_seconds,
    )


class OfflineSubmitter:
    """Stand-in API used when sync is disabled; every record is queued."""

    async def submit_session(self, record: SessionRecord) -> SessionReceipt:
        raise SubmissionFailure("Sync is disabled")


def format_status(state: TimerState) -> Text:
    """One-line status for the live display."""
    text = Text()
    text.append(f"{state.current_phase.label:<14}", style=PHASE_STYLES[state.current_phase])
    text.append(f" {state.time_remaining_display} ", style="bold")

    width = 30
    filled = int(state.progress_fraction * width)
    text.append("[" + "#" * filled + "-" * (width - filled) + "]", style="dim")
    text.append(f"  cycle {state.cycle_index}/{state.configuration.cycles_before_long_break}")

    if state.run_state is RunState.PAUSED:
        text.append("  PAUSED", style="yellow")
    elif state.run_state is RunState.IDLE:
        text.append("  press Enter to start", style="yellow")
    return text


async def _run_focus(
    settings: Settings,
    preset_name: str | None,
    manual_advance: bool,
    sessions: int,
) -> int:
    """Run the timer until interrupted or ``sessions`` focus sessions finish.

    Returns the number of completed focus sessions.
    """
    db = await init_database(settings.db_path)
    store = SessionStore(db, history_limit=settings.sync.history_limit)
    api = _api_client(settings)

    try:
        configuration = settings.timer.to_configuration().with_manual_advance(manual_advance)
        preset: Preset | None = None
        if preset_name:
            preset = await PresetService(api, store).find(preset_name)
            if preset is None:
                console.print(f"[red]Unknown preset: {preset_name}[/red]")
                return 0
            try:
                configuration = preset.to_configuration(manual_advance=manual_advance)
            except ConfigurationInvalid as e:
                console.print(f"[red]Preset {preset.name} is not usable: {e}[/red]")
                return 0

        engine = TimerEngine(configuration)
        driver = TimerDriver(engine, interval=settings.timer.tick_interval_seconds)
        dispatcher = NotificationDispatcher(
            audio=TerminalBell(console),
            banner=ConsoleBanner(console),
            system=DesktopNotifier() if settings.notifications.system_enabled else None,
            settings=settings.notifications,
        )
        session_logger = SessionLogger(
            api or OfflineSubmitter(),
            store,
            max_retries=settings.sync.max_retries,
            flush_interval=settings.sync.flush_interval_seconds,
            on_give_up=lambda records: console.print(
                f"[yellow]{len(records)} session(s) could not be saved to the server[/yellow]"
            ),
        )

        done = asyncio.Event()
        completed = 0

        def count_sessions(event: TimerEvent) -> None:
            nonlocal completed
            if isinstance(event, PhaseCompleted) and event.phase is Phase.WORK:
                completed += 1
                if sessions and completed >= sessions:
                    done.set()

        engine.subscribe(session_logger.handle_event)
        engine.subscribe(dispatcher.handle_event)
        engine.subscribe(count_sessions)

        # Manual advance: Enter starts the phase that is waiting
        advance = asyncio.Event()

        def on_enter() -> None:
            sys.stdin.readline()
            if engine.run_state is RunState.IDLE:
                advance.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, done.set)
            except (NotImplementedError, RuntimeError):
                pass

        reading_stdin = False
        if manual_advance:
            try:
                loop.add_reader(sys.stdin.fileno(), on_enter)
                reading_stdin = True
            except (NotImplementedError, OSError, ValueError):
                console.print("[yellow]Cannot read the keyboard here; phases will start automatically[/yellow]")

        if api is not None:
            await session_logger.start()

        engine.start(preset_id=preset.id if preset else None)
        with Live(format_status(engine.state), console=console, refresh_per_second=4) as live:
            driver.on_tick = lambda state: live.update(format_status(state))
            await driver.start()
            try:
                while not done.is_set():
                    if engine.run_state is RunState.IDLE and (advance.is_set() or not reading_stdin):
                        advance.clear()
                        engine.start_phase()
                    live.update(format_status(engine.state))
                    try:
                        await asyncio.wait_for(done.wait(), timeout=settings.timer.tick_interval_seconds)
                    except asyncio.TimeoutError:
                        pass
            finally:
                if reading_stdin:
                    loop.remove_reader(sys.stdin.fileno())
                await driver.stop()
                dispatcher.stop_all_alerts()
                if engine.run_state is not RunState.IDLE:
                    engine.stop()

        if api is not None:
            await session_logger.stop()
        else:
            await session_logger.wait_idle()
        return completed
    finally:
        await db.close()


@app.command()
def focus(
    preset: str = typer.Option(None, "--preset", "-p", help="Preset id or name"),
    manual: bool = typer.Option(
        None,
        "--manual/--auto",
        help="Wait between phases instead of advancing automatically",
    ),
    sessions: int = typer.Option(
        0,
        "--sessions",
        "-n",
        help="Stop after this many focus sessions (0 runs until Ctrl+C)",
    ),
    log_level: str = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    ),
) -> None:
    """Run a focus timer in the terminal."""
    settings = get_settings()
    settings.ensure_directories()
    setup_logging(log_level or settings.log_level, settings.log_file)

    manual_advance = settings.timer.manual_advance if manual is None else manual

    console.print("[green]Starting focus timer...[/green]")
    console.print("Press Ctrl+C to stop\n")

    try:
        completed = asyncio.run(_run_focus(settings, preset, manual_advance, sessions))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")
        return

    console.print(f"[green]Completed {completed} focus session(s)[/green]")


async def _open_store(settings: Settings) -> SessionStore:
    db = await init_database(settings.db_path)
    return SessionStore(db, history_limit=settings.sync.history_limit)


@app.command()
def presets() -> None:
    """List available timer presets."""
    settings = get_settings()
    settings.ensure_directories()

    async def load() -> tuple[list[Preset], str]:
        store = await _open_store(settings)
        try:
            service = PresetService(_api_client(settings), store)
            return await service.list_presets(), service.last_source
        finally:
            await store.db.close()

    items, source = asyncio.run(load())

    table = Table(title=f"Presets ({source})", show_header=True, header_style="bold cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Focus")
    table.add_column("Short break")
    table.add_column("Long break")
    table.add_column("Cycles")

    for item in items:
        table.add_row(
            item.id,
            item.name,
            f"{item.work_duration_seconds // 60} min",
            f"{item.short_break_duration_seconds // 60} min",
            f"{item.long_break_duration_seconds // 60} min",
            str(item.cycles_before_long_break),
        )

    console.print(table)


@app.command()
def queue() -> None:
    """Show sessions waiting to be sent to the server."""
    settings = get_settings()
    settings.ensure_directories()

    async def load():
        store = await _open_store(settings)
        try:
            return await store.drain(), await store.db.check_integrity()
        finally:
            await store.db.close()

    queued, integrity_ok = asyncio.run(load())
    if not integrity_ok:
        console.print(f"[red]Database integrity check failed: {settings.db_path}[/red]")
    if not queued:
        console.print("[green]No sessions waiting[/green]")
        return

    table = Table(title="Queued sessions", show_header=True, header_style="bold cyan")
    table.add_column("Key")
    table.add_column("Phase")
    table.add_column("Duration")
    table.add_column("Ended")
    table.add_column("Attempts")
    table.add_column("Last error")

    for item in queued:
        record = item.record
        table.add_row(
            record.idempotency_key[:8],
            record.phase.label,
            f"{record.actual_duration_seconds // 60}m {record.actual_duration_seconds % 60}s",
            record.ended_at.strftime("%Y-%m-%d %H:%M"),
            str(item.retry_count),
            item.error_message or "",
        )

    console.print(table)


@app.command()
def flush() -> None:
    """Send queued sessions to the server now."""
    settings = get_settings()
    settings.ensure_directories()
    setup_logging("WARNING")

    api = _api_client(settings)
    if api is None:
        console.print("[yellow]Sync is disabled in the configuration[/yellow]")
        raise typer.Exit(1)

    async def run():
        store = await _open_store(settings)
        try:
            session_logger = SessionLogger(api, store, max_retries=settings.sync.max_retries)
            return await session_logger.flush()
        finally:
            await store.db.close()

    result = asyncio.run(run())
    console.print(f"Delivered: [green]{result.delivered}[/green]")
    if result.dropped:
        console.print(f"Discarded after {settings.sync.max_retries} attempts: [red]{len(result.dropped)}[/red]")
    console.print(f"Still queued: {result.remaining}")
    if result.remaining:
        raise typer.Exit(1)


@app.command()
def suggest(
    limit: int = typer.Option(5, "--limit", "-n", help="Number of recent sessions to consider"),
) -> None:
    """Suggest a break length from recent focus sessions."""
    settings = get_settings()
    settings.ensure_directories()

    async def load():
        api = _api_client(settings)
        if api is not None:
            try:
                return await api.fetch_suggestion(limit), "server"
            except ApiError as e:
                logger.info(f"Server suggestion unavailable: {e}")

        store = await _open_store(settings)
        try:
            history = await store.recent_history(limit=settings.sync.history_limit)
        finally:
            await store.db.close()
        return suggest_break(history, limit=limit), "local history"

    suggestion, source = asyncio.run(load())

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Break", f"[bold]{suggestion.suggested_break_minutes} min[/bold]")
    table.add_row("Confidence", suggestion.confidence)
    table.add_row("Streak (24h)", str(suggestion.streak))
    table.add_row("Based on", f"{suggestion.samples_used} session(s), {source}")

    console.print(Panel(table, title="Break suggestion", border_style="green"))
    if suggestion.reason:
        console.print(f"[dim]{suggestion.reason}[/dim]")


@app.command()
def config_show() -> None:
    """Show current configuration."""
    settings = get_settings()

    table = Table(title="Study Guardian Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Setting")
    table.add_column("Value")

    # Paths
    table.add_row("[bold]Paths[/bold]", "")
    table.add_row("  Data Directory", str(settings.data_dir))
    table.add_row("  Config Directory", str(settings.config_dir))
    table.add_row("  Database", str(settings.db_path))
    table.add_row("  Log File", str(settings.log_file))

    # Timer
    table.add_row("[bold]Timer[/bold]", "")
    table.add_row("  Focus", f"{settings.timer.work_minutes} min")
    table.add_row("  Short Break", f"{settings.timer.short_break_minutes} min")
    table.add_row("  Long Break", f"{settings.timer.long_break_minutes} min")
    table.add_row("  Long Break Every", f"{settings.timer.cycles_before_long_break} cycles")
    table.add_row("  Advance", "manual" if settings.timer.manual_advance else "auto")

    # Sync
    table.add_row("[bold]Sync[/bold]", "")
    table.add_row("  Enabled", str(settings.sync.enabled))
    table.add_row("  API URL", settings.sync.api_url)
    table.add_row("  API Token", "***" if settings.sync.api_token else "[yellow]Not Set[/yellow]")
    table.add_row("  Max Retries", str(settings.sync.max_retries))
    table.add_row("  Flush Interval", f"{settings.sync.flush_interval_seconds}s")

    # Notifications
    table.add_row("[bold]Notifications[/bold]", "")
    table.add_row("  Sound", str(settings.notifications.audio_enabled))
    table.add_row("  Banner", str(settings.notifications.banner_enabled))
    table.add_row("  Desktop", str(settings.notifications.system_enabled))
    table.add_row("  Alert Repeats", str(settings.notifications.alert_repeat_count))

    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"Study Guardian v{__version__}")


if __name__ == "__main__":
    app()
