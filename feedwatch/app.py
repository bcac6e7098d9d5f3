"""Typer CLI entrypoint for feedwatch."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, ScheduleConfig, ScheduleType, WatcherConfig
from .engine import ThreadPoolManager
from .infra import SQLiteManager
from .logging_conf import available_watcher_logs, configure_logging, log_dir, tail_log
from .orchestrator import Orchestrator
from .pipeline import RunResult
from .scheduler import APSchedulerAdapter

app = typer.Typer(
    help="feedwatch command line",
    no_args_is_help=True,
    rich_markup_mode=None,
)
watcher_app = typer.Typer(
    name="watcher",
    help="Watcher management commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Log inspection commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    scheduler: APSchedulerAdapter
    orchestrator: Orchestrator
    thread_pool: ThreadPoolManager
    storage: SQLiteManager

    def close(self) -> None:
        self.scheduler.shutdown()
        self.orchestrator.close()
        self.thread_pool.shutdown(wait=False)
        self.storage.close_all()


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    repository = ConfigRepository()
    global_config = repository.load_global_config()
    scheduler = APSchedulerAdapter()
    thread_pool = ThreadPoolManager(global_config.thread_pool_workers)
    storage = SQLiteManager()
    orchestrator = Orchestrator(
        config_repository=repository,
        scheduler=scheduler,
        thread_pool=thread_pool,
        storage=storage,
    )
    return AppState(
        repository=repository,
        scheduler=scheduler,
        orchestrator=orchestrator,
        thread_pool=thread_pool,
        storage=storage,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _format_schedule(schedule: ScheduleConfig) -> str:
    if schedule.type is ScheduleType.CRON:
        return f"cron ({schedule.value})"
    return f"interval ({schedule.value})"


def _render_watchers_table(watchers: Sequence[WatcherConfig]) -> Table:
    table = Table(title=f"Watchers ({len(watchers)})", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Pagination", style="magenta")
    table.add_column("Dedup", style="green")
    table.add_column("Notify", style="green")
    table.add_column("Schedule", style="yellow", overflow="fold")
    table.add_column("Enabled")
    for watcher in watchers:
        table.add_row(
            watcher.watcher_name,
            watcher.pagination.policy.value if watcher.list_url else "-",
            f"{watcher.dedup.policy.value}/{watcher.dedup.strategy.value}",
            "yes" if watcher.notify else "no",
            _format_schedule(watcher.schedule),
            "yes" if watcher.enabled else "no",
        )
    return table


def _render_jobs_table(jobs: Iterable[dict]) -> Table:
    table = Table(title="Scheduled jobs", box=box.SIMPLE_HEAD)
    table.add_column("Job ID", style="cyan", no_wrap=True)
    table.add_column("Next run", style="green")
    table.add_column("Trigger", style="magenta", overflow="fold")
    for job in jobs:
        table.add_row(
            str(job.get("id", "-")),
            str(job.get("next_run_time", "-")),
            str(job.get("trigger", "-")),
        )
    return table


def _render_result(result: RunResult) -> Table:
    table = Table(title=f"Run · {result.watcher}", box=box.SIMPLE_HEAD, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("new records", str(result.new_records))
    table.add_row("notified", str(result.notified))
    table.add_row("failed notifications", str(result.failed))
    table.add_row("pages fetched", str(result.pages_fetched))
    table.add_row("pages failed", str(result.pages_failed))
    table.add_row("stop reason", result.stop_reason or "-")
    if result.skipped:
        table.add_row("skipped", "previous run still in flight")
    if result.error:
        table.add_row("error", result.error, style="red")
    return table


def _ensure_watcher(state: AppState, name: str) -> WatcherConfig:
    try:
        return state.repository.load_watcher(name)
    except FileNotFoundError:
        console.print(f"Unknown watcher `{name}`; see `feedwatch watcher list`.", style="red")
        raise typer.Exit(code=1)


app.add_typer(watcher_app, name="watcher", help="Manage and run watchers")
app.add_typer(log_app, name="log", help="Inspect log files")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging", is_flag=True),
) -> None:
    ctx.obj = build_state(verbose)


@watcher_app.command("list", help="List configured watchers and scheduled jobs.")
def watcher_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    watchers = state.repository.list_watchers()
    if not watchers:
        console.print("No watchers configured; run `feedwatch watcher init` first.", style="yellow")
        raise typer.Exit(code=0)
    console.print(_render_watchers_table(watchers))
    jobs = list(state.scheduler.list_jobs())
    if jobs:
        console.print(_render_jobs_table(jobs))


@watcher_app.command("init", help="Install built-in watcher profiles.")
def watcher_init(
    ctx: typer.Context,
    templates: Optional[List[str]] = typer.Argument(None, help="Profiles to install (default: all)."),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace existing files.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    available = state.repository.available_templates()
    selected = templates or available
    unknown = sorted(set(selected) - set(available))
    if unknown:
        console.print(
            f"Unknown profiles: {', '.join(unknown)} (available: {', '.join(available)})",
            style="red",
        )
        raise typer.Exit(code=1)
    for name in selected:
        path = state.repository.install_template(name, overwrite=overwrite)
        console.print(f"{name} → {path}", style="green")


@watcher_app.command("run", help="Run a watcher once, now.")
def watcher_run(ctx: typer.Context, name: str = typer.Argument(..., help="Watcher name.")) -> None:
    state = _get_state(ctx)
    _ensure_watcher(state, name)
    try:
        result = state.orchestrator.run_watcher(name)
    finally:
        state.close()
    console.print(_render_result(result))
    if result.error:
        raise typer.Exit(code=1)


@watcher_app.command("history", help="Show the most recently stored records.")
def watcher_history(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Watcher name."),
    limit: int = typer.Option(20, "--limit", help="Number of records to show."),
) -> None:
    state = _get_state(ctx)
    _ensure_watcher(state, name)
    records = state.orchestrator.view_history(name, limit=limit)
    if not records:
        console.print("No stored records.", style="dim")
        return
    table = Table(title=f"{name} · last {len(records)} records", box=box.SIMPLE_HEAD)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Date", style="green")
    table.add_column("Company", style="magenta")
    table.add_column("Title", overflow="fold")
    for record in records:
        when = record.publish_date or record.reference_date
        table.add_row(record.source_key, str(when or "-"), record.company or "-", record.title)
    console.print(table)


@watcher_app.command("reset", help="Delete the stored history of a watcher.")
def watcher_reset(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Watcher name."),
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    _ensure_watcher(state, name)
    if not yes and not typer.confirm(f"Delete the stored history of `{name}`?", default=False):
        console.print("Cancelled.", style="yellow")
        raise typer.Exit(code=0)
    state.orchestrator.reset_history(name)
    console.print(f"History of `{name}` cleared.", style="green")


@watcher_app.command("feed", help="Write the Atom feed of stored records.")
def watcher_feed(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Watcher name."),
    feed_id: str = typer.Argument("all", help="Feed defined under the watcher's feed.filters."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to a file instead of stdout."),
) -> None:
    state = _get_state(ctx)
    _ensure_watcher(state, name)
    try:
        document = state.orchestrator.render_feed(name, feed_id)
    except ValueError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1)
    if output is None:
        typer.echo(document.decode("utf-8"), nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(document)
    console.print(f"{name}/{feed_id} → {output}", style="green")


@app.command("serve", help="Schedule watchers and block until interrupted.")
def serve(
    ctx: typer.Context,
    names: Optional[List[str]] = typer.Argument(None, help="Watchers to schedule (default: all enabled)."),
) -> None:
    state = _get_state(ctx)
    if names:
        watchers = [_ensure_watcher(state, name) for name in names]
    else:
        watchers = state.repository.list_watchers()
    scheduled = state.orchestrator.register_schedules(watchers)
    if not scheduled:
        console.print("Nothing to schedule.", style="yellow")
        state.close()
        raise typer.Exit(code=1)
    console.print(_render_jobs_table(state.scheduler.list_jobs()))
    console.print("Press Ctrl+C to stop.", style="dim")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("Stopping scheduler…", style="yellow")
    finally:
        state.close()


@log_app.command("list", help="List available log files.")
def log_list() -> None:
    logs = list(available_watcher_logs())
    if not logs:
        console.print("No watcher logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the tail of a watcher log (or the global log).")
def log_show(
    name: Optional[str] = typer.Argument(None, help="Watcher name; empty for the global log."),
    tail: int = typer.Option(100, "--tail", help="Number of lines to show."),
) -> None:
    if name:
        path = log_dir() / "watchers" / f"{name}.log"
    else:
        path = log_dir() / "feedwatch.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log lines yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
