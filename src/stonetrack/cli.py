"""Command-line interface for Stone.

Stone tracks time against projects, either with a running timer or with
entries added by hand, and summarizes it in reports.

CONCEPTS:
---------
- PROJECT: Something time is tracked against. Archived projects are hidden
           from lists but keep their history.

- FOLDER:  An ordered group of projects. Deleting a folder keeps its
           projects.

- TAG:     A label attached to any number of projects, used to filter
           project lists.

- ENTRY:   A span of time, optionally assigned to a project. At most one
           entry runs at a time.

- WATCH:   Foreground mode that notices sleep and idle time while a timer
           runs and asks whether to keep or discard it.
"""

import argparse
import asyncio
import logging
import sys
import threading
from datetime import date, datetime, time, tzinfo
from pathlib import Path
from typing import NoReturn

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from stonetrack import __version__
from stonetrack.clock import SystemClock
from stonetrack.config import settings
from stonetrack.errors import NoActiveTimerError, StoneError
from stonetrack.idle import IdlePrompt, IdleReason, IdleReconciler, SystemIdleSource, TrackerService
from stonetrack.reports import (
    Report,
    ReportAggregator,
    ReportPeriod,
    ReportSession,
    write_export,
)
from stonetrack.tracking import (
    EntryLog,
    Folder,
    JsonEntryStore,
    Project,
    ProjectCatalog,
    Tag,
    TimeEntry,
    TimerEngine,
    format_compact_duration,
    format_duration,
    format_short_duration,
)

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.WARNING
    fmt = "%(name)s: %(message)s" if verbose else "%(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        handlers=[RichHandler(rich_tracebacks=True, console=console, show_path=verbose)],
    )


def _open_store() -> JsonEntryStore:
    return JsonEntryStore(
        settings.get_storage_path(),
        lock_timeout=settings.store_lock_timeout,
    )


def _open_engine() -> tuple[JsonEntryStore, TimerEngine]:
    """Open the store and an engine with any running entry restored."""
    store = _open_store()
    engine = TimerEngine(clock=SystemClock())
    engine.configure(store)
    return store, engine


def parse_datetime(value: str, tz: tzinfo, today: date | None = None) -> datetime:
    """Parse ``YYYY-MM-DD[ HH:MM]`` or ``HH:MM`` (today) as a local time.

    Raises:
        ValueError: If the value cannot be parsed.
    """
    value = value.strip()
    if len(value) <= 5 and ":" in value:
        parsed_time = time.fromisoformat(value)
        return datetime.combine(today or datetime.now(tz).date(), parsed_time, tzinfo=tz)

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def _parse_or_exit(value: str, tz: tzinfo) -> datetime:
    try:
        return parse_datetime(value, tz)
    except ValueError:
        console.print(f"[red]Invalid date/time:[/red] {value}")
        console.print("Use YYYY-MM-DD, 'YYYY-MM-DD HH:MM' or HH:MM")
        sys.exit(1)


def _resolve_project(catalog: ProjectCatalog, name_or_id: str, create: bool = False) -> Project:
    project = catalog.find_project(name_or_id)
    if project is not None:
        return project
    if create:
        project = catalog.create_project(name_or_id)
        console.print(f"[green]Created project:[/green] {project.name}")
        return project
    console.print(f"[red]Unknown project:[/red] {name_or_id}")
    console.print("Use [bold]--create[/bold] to create it, or [bold]stone projects add[/bold]")
    sys.exit(1)


def _resolve_folder(catalog: ProjectCatalog, name_or_id: str) -> Folder:
    folder = catalog.find_folder(name_or_id)
    if folder is None:
        console.print(f"[red]Unknown folder:[/red] {name_or_id}")
        sys.exit(1)
    return folder


def _resolve_tag(catalog: ProjectCatalog, name_or_id: str, create: bool = False) -> Tag:
    tag = catalog.find_tag(name_or_id)
    if tag is not None:
        return tag
    if create:
        tag = catalog.create_tag(name_or_id)
        console.print(f"[green]Created tag:[/green] {tag.name}")
        return tag
    console.print(f"[red]Unknown tag:[/red] {name_or_id}")
    sys.exit(1)


def _local(instant: datetime | None, tz: tzinfo, fmt: str = "%Y-%m-%d %H:%M") -> str:
    if instant is None:
        return "running"
    return instant.astimezone(tz).strftime(fmt)


# Timer commands

def cmd_start(args: argparse.Namespace) -> None:
    """Start tracking a project."""
    store, engine = _open_engine()
    project = _resolve_project(ProjectCatalog(store, engine), args.project, create=args.create)

    previous = engine.active_entry
    previous_project = engine.active_project
    entry = engine.start(project)

    if previous is not None:
        name = previous_project.name if previous_project else "No Project"
        console.print(
            f"[dim]Stopped '{name}' ({format_compact_duration(previous.duration(entry.started_at))})[/dim]"
        )
    console.print(f"[green]Started timer for[/green] {project.name}")


def cmd_stop(args: argparse.Namespace) -> None:
    """Stop the running timer."""
    _, engine = _open_engine()
    project = engine.active_project
    try:
        entry = engine.stop(require_active=True)
    except NoActiveTimerError:
        console.print("[yellow]No timer running.[/yellow]")
        return

    name = project.name if project else "No Project"
    duration = entry.duration(engine.clock.now()) if entry else 0.0
    console.print(f"[green]Stopped[/green] {name} after {format_duration(duration)}")


def cmd_switch(args: argparse.Namespace) -> None:
    """Switch the running timer to another project."""
    store, engine = _open_engine()
    project = _resolve_project(ProjectCatalog(store, engine), args.project, create=args.create)
    engine.switch_to(project)
    console.print(f"[green]Switched to[/green] {project.name}")


def cmd_status(args: argparse.Namespace) -> None:
    """Show what is being tracked."""
    _, engine = _open_engine()
    entry = engine.active_entry
    if entry is None:
        console.print("[dim]No timer running.[/dim]")
        return

    tz = settings.get_timezone()
    name = engine.active_project.name if engine.active_project else "No Project"
    console.print(f"[bold]{name}[/bold]  {format_duration(engine.current_duration())}")
    console.print(f"[dim]Started {_local(entry.started_at, tz)}[/dim]")


# Project commands

def cmd_projects_list(args: argparse.Namespace) -> None:
    """List projects."""
    catalog = ProjectCatalog(_open_store())
    tag_id = _resolve_tag(catalog, args.tag).id if args.tag else None
    folder_id = _resolve_folder(catalog, args.folder).id if args.folder else None
    projects = catalog.list_projects(include_archived=args.all, tag_id=tag_id, folder_id=folder_id)

    if not projects:
        console.print("[yellow]No projects.[/yellow]")
        return

    folders = {folder.id: folder.name for folder in catalog.list_folders()}
    tags = {tag.id: tag.name for tag in catalog.list_tags()}

    table = Table(title="Projects")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Folder", style="blue")
    table.add_column("Tags", style="dim")
    table.add_column("Color", style="magenta")
    table.add_column("Archived", style="yellow")

    for project in projects:
        table.add_row(
            project.id,
            project.name,
            folders.get(project.folder_id, ""),
            ", ".join(tags[t] for t in project.tag_ids if t in tags),
            project.color,
            "Yes" if project.archived else "",
        )

    console.print(table)


def cmd_projects_add(args: argparse.Namespace) -> None:
    """Create a project."""
    catalog = ProjectCatalog(_open_store())
    if catalog.find_project(args.name) is not None:
        console.print(f"[yellow]Project already exists:[/yellow] {args.name}")
        sys.exit(1)
    folder_id = _resolve_folder(catalog, args.folder).id if args.folder else None
    project = catalog.create_project(args.name, color=args.color, folder_id=folder_id)
    console.print(f"[green]Created project:[/green] {project.name}")
    console.print(f"  ID: {project.id}")


def cmd_projects_move(args: argparse.Namespace) -> None:
    """Move a project into a folder, or out of any folder."""
    catalog = ProjectCatalog(_open_store())
    project = _resolve_project(catalog, args.project)
    folder = _resolve_folder(catalog, args.folder) if args.folder else None
    catalog.move_project(project.id, folder.id if folder else None)
    where = folder.name if folder else "no folder"
    console.print(f"[green]Moved[/green] {project.name} to {where}")


def cmd_projects_reorder(args: argparse.Namespace) -> None:
    """Move a project to a position within its folder."""
    catalog = ProjectCatalog(_open_store())
    project = _resolve_project(catalog, args.project)
    if not catalog.reorder_project(project.id, args.position - 1):
        console.print(f"[red]Cannot reorder archived project:[/red] {project.name}")
        sys.exit(1)
    console.print(f"[green]Moved[/green] {project.name} to position {args.position}")


def cmd_projects_tag(args: argparse.Namespace) -> None:
    """Attach a tag to a project."""
    catalog = ProjectCatalog(_open_store())
    project = _resolve_project(catalog, args.project)
    tag = _resolve_tag(catalog, args.tag, create=args.create)
    catalog.tag_project(project.id, tag.id)
    console.print(f"[green]Tagged[/green] {project.name} with {tag.name}")


def cmd_projects_untag(args: argparse.Namespace) -> None:
    """Detach a tag from a project."""
    catalog = ProjectCatalog(_open_store())
    project = _resolve_project(catalog, args.project)
    tag = _resolve_tag(catalog, args.tag)
    catalog.untag_project(project.id, tag.id)
    console.print(f"[green]Removed tag[/green] {tag.name} from {project.name}")


def cmd_projects_edit(args: argparse.Namespace) -> None:
    """Rename or recolour a project."""
    store, engine = _open_engine()
    catalog = ProjectCatalog(store, engine)
    project = _resolve_project(catalog, args.project)
    catalog.update_project(project.id, name=args.name, color=args.color)
    console.print(f"[green]Updated project:[/green] {project.name}")


def cmd_projects_archive(args: argparse.Namespace) -> None:
    """Archive or unarchive a project."""
    catalog = ProjectCatalog(_open_store())
    project = _resolve_project(catalog, args.project)
    catalog.archive_project(project.id, archived=args.archived)
    state = "Archived" if args.archived else "Unarchived"
    console.print(f"[green]{state}:[/green] {project.name}")


def cmd_projects_delete(args: argparse.Namespace) -> None:
    """Delete a project and its entries."""
    store, engine = _open_engine()
    catalog = ProjectCatalog(store, engine)
    project = _resolve_project(catalog, args.project)

    if not args.yes:
        count = len(store.fetch(TimeEntry, lambda e: e.project_id == project.id))
        console.print(f"[yellow]This will delete '{project.name}' and its {count} entries.[/yellow]")
        response = console.input("Continue? [y/N]: ").strip().lower()
        if response != "y":
            console.print("[dim]Aborted[/dim]")
            return

    catalog.delete_project(project.id)
    console.print(f"[green]Deleted project:[/green] {project.name}")


def cmd_projects_import(args: argparse.Namespace) -> None:
    """Import projects from a YAML file."""
    path = Path(args.file)
    if not path.exists():
        console.print(f"[red]File not found:[/red] {path}")
        sys.exit(1)

    catalog = ProjectCatalog(_open_store())
    try:
        created = catalog.import_projects(path)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    for project in created:
        console.print(f"  [green]✓[/green] {project.name}")
    console.print(f"\n[green]Imported {len(created)} projects[/green]")


# Folder commands

def cmd_folders_list(args: argparse.Namespace) -> None:
    """List folders."""
    catalog = ProjectCatalog(_open_store())
    folders = catalog.list_folders()
    if not folders:
        console.print("[yellow]No folders.[/yellow]")
        return

    table = Table(title="Folders")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Projects", style="green", justify="right")
    table.add_column("Collapsed", style="yellow")

    for folder in folders:
        count = len(catalog.projects_in_folder(folder.id))
        table.add_row(folder.id, folder.name, str(count), "" if folder.expanded else "Yes")

    console.print(table)


def cmd_folders_add(args: argparse.Namespace) -> None:
    """Create a folder."""
    catalog = ProjectCatalog(_open_store())
    if catalog.find_folder(args.name) is not None:
        console.print(f"[yellow]Folder already exists:[/yellow] {args.name}")
        sys.exit(1)
    folder = catalog.create_folder(args.name)
    console.print(f"[green]Created folder:[/green] {folder.name}")
    console.print(f"  ID: {folder.id}")


def cmd_folders_rename(args: argparse.Namespace) -> None:
    """Rename a folder."""
    catalog = ProjectCatalog(_open_store())
    folder = _resolve_folder(catalog, args.folder)
    catalog.rename_folder(folder.id, args.name)
    console.print(f"[green]Renamed folder to[/green] {folder.name}")


def cmd_folders_expand(args: argparse.Namespace) -> None:
    """Expand or collapse a folder."""
    catalog = ProjectCatalog(_open_store())
    folder = _resolve_folder(catalog, args.folder)
    catalog.set_folder_expanded(folder.id, args.expanded)
    state = "Expanded" if args.expanded else "Collapsed"
    console.print(f"[green]{state}:[/green] {folder.name}")


def cmd_folders_delete(args: argparse.Namespace) -> None:
    """Delete a folder, keeping its projects."""
    catalog = ProjectCatalog(_open_store())
    folder = _resolve_folder(catalog, args.folder)
    catalog.delete_folder(folder.id)
    console.print(f"[green]Deleted folder:[/green] {folder.name}")


# Tag commands

def cmd_tags_list(args: argparse.Namespace) -> None:
    """List tags."""
    catalog = ProjectCatalog(_open_store())
    tags = catalog.list_tags()
    if not tags:
        console.print("[yellow]No tags.[/yellow]")
        return

    table = Table(title="Tags")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Color", style="magenta")
    table.add_column("Projects", style="green", justify="right")

    for tag in tags:
        count = len(catalog.list_projects(include_archived=True, tag_id=tag.id))
        table.add_row(tag.id, tag.name, tag.color, str(count))

    console.print(table)


def cmd_tags_add(args: argparse.Namespace) -> None:
    """Create a tag."""
    catalog = ProjectCatalog(_open_store())
    if catalog.find_tag(args.name) is not None:
        console.print(f"[yellow]Tag already exists:[/yellow] {args.name}")
        sys.exit(1)
    tag = catalog.create_tag(args.name, color=args.color)
    console.print(f"[green]Created tag:[/green] {tag.name}")


def cmd_tags_edit(args: argparse.Namespace) -> None:
    """Rename or recolour a tag."""
    catalog = ProjectCatalog(_open_store())
    tag = _resolve_tag(catalog, args.tag)
    catalog.update_tag(tag.id, name=args.name, color=args.color)
    console.print(f"[green]Updated tag:[/green] {tag.name}")


def cmd_tags_delete(args: argparse.Namespace) -> None:
    """Delete a tag and detach it from its projects."""
    catalog = ProjectCatalog(_open_store())
    tag = _resolve_tag(catalog, args.tag)
    catalog.delete_tag(tag.id)
    console.print(f"[green]Deleted tag:[/green] {tag.name}")


# Entry commands

def cmd_entries_list(args: argparse.Namespace) -> None:
    """List entries for a day."""
    store, engine = _open_engine()
    tz = settings.get_timezone()
    day = date.fromisoformat(args.date) if args.date else None
    entries = EntryLog(store, engine).entries_for_day(day, tz)

    if not entries:
        console.print("[yellow]No entries.[/yellow]")
        return

    now = engine.clock.now()
    table = Table(title=f"Entries {day or 'today'}")
    table.add_column("ID", style="cyan")
    table.add_column("Start", style="white")
    table.add_column("End", style="white")
    table.add_column("Duration", style="green")
    table.add_column("Project", style="magenta")
    table.add_column("Note", style="dim")

    for entry in entries:
        project = store.get(Project, entry.project_id)
        table.add_row(
            entry.id,
            _local(entry.started_at, tz, "%H:%M"),
            _local(entry.ended_at, tz, "%H:%M"),
            format_duration(entry.duration(now)),
            project.name if project else "No Project",
            entry.note or "",
        )

    console.print(table)


def cmd_entries_add(args: argparse.Namespace) -> None:
    """Add a finished entry by hand."""
    store, engine = _open_engine()
    tz = settings.get_timezone()
    start = _parse_or_exit(args.start, tz)
    end = _parse_or_exit(args.end, tz)

    project = None
    if args.project:
        project = _resolve_project(ProjectCatalog(store, engine), args.project)

    entry = EntryLog(store, engine).add_entry(start, end, project=project, note=args.note)
    console.print(f"[green]Added entry[/green] {entry.id} ({format_duration(entry.duration(end))})")


def cmd_entries_edit(args: argparse.Namespace) -> None:
    """Edit an entry."""
    store, engine = _open_engine()
    tz = settings.get_timezone()

    project_id = None
    if args.project:
        project_id = _resolve_project(ProjectCatalog(store, engine), args.project).id

    entry = EntryLog(store, engine).edit_entry(
        args.entry_id,
        start=_parse_or_exit(args.start, tz) if args.start else None,
        end=_parse_or_exit(args.end, tz) if args.end else None,
        note=args.note,
        project_id=project_id,
    )
    if entry is None:
        console.print(f"[red]Entry not found:[/red] {args.entry_id}")
        sys.exit(1)
    console.print(f"[green]Updated entry[/green] {entry.id}")


def cmd_entries_delete(args: argparse.Namespace) -> None:
    """Delete an entry."""
    store, engine = _open_engine()
    if not EntryLog(store, engine).delete_entry(args.entry_id):
        console.print(f"[red]Entry not found:[/red] {args.entry_id}")
        sys.exit(1)
    console.print(f"[green]Deleted entry[/green] {args.entry_id}")


# Reports

def _build_report(args: argparse.Namespace) -> tuple[Report, tzinfo]:
    tz = settings.get_timezone()
    clock = SystemClock()
    session = ReportSession(
        ReportAggregator(_open_store(), clock=clock, tz=tz),
        clock=clock,
        week_start=settings.week_start,
    )
    session.search = args.search or ""

    if args.start or args.end:
        start = _parse_or_exit(args.start, tz) if args.start else session.custom_start
        end = _parse_or_exit(args.end, tz) if args.end else session.custom_end
        session.select_period(ReportPeriod.CUSTOM)
        try:
            report = session.set_custom_range(start, end)
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            sys.exit(1)
        return report, tz

    return session.select_period(ReportPeriod(args.period)), tz


def cmd_report(args: argparse.Namespace) -> None:
    """Show a time report."""
    report, tz = _build_report(args)
    title = f"{_local(report.start, tz, '%Y-%m-%d')} to {_local(report.end, tz, '%Y-%m-%d')}"
    if report.search:
        title += f" matching '{report.search}'"

    if not report.entries:
        console.print(f"[yellow]No time entries for {title}.[/yellow]")
        return

    table = Table(title=f"Time Report - {title}")
    table.add_column("Project", style="cyan")
    table.add_column("Duration", style="green", justify="right")
    table.add_column("Share", style="magenta", justify="right")
    for summary in report.project_summaries:
        table.add_row(summary.name, format_duration(summary.duration), f"{summary.percentage:.1f}%")
    console.print(table)
    console.print(f"[bold]Total:[/bold] {format_duration(report.total_duration)}")

    if args.daily:
        console.print()
        for day in report.daily_summaries:
            console.print(f"[bold]{day.date.isoformat()}[/bold]  {format_short_duration(day.total_duration)}")
            for summary in day.project_breakdown:
                console.print(
                    f"  {summary.name}: {format_compact_duration(summary.duration)} ({summary.percentage:.0f}%)"
                )


def cmd_export(args: argparse.Namespace) -> None:
    """Export a report's entries to CSV."""
    report, tz = _build_report(args)
    directory = Path(args.output) if args.output else settings.get_export_dir()
    path = write_export(report, directory, tz, prefix=settings.export_prefix)
    console.print(f"[green]Exported {len(report.entries)} entries to[/green] {path}")


# Watch mode

def _describe_prompt(prompt: IdlePrompt) -> str:
    what = "asleep" if prompt.reason == IdleReason.SLEEP else "idle"
    return f"You were {what} for {format_compact_duration(prompt.idle_seconds)}."


def _ask(question: str) -> asyncio.Future[str]:
    """Read one answer from the terminal without blocking the event loop.

    The read runs on a daemon thread, so Ctrl+C ends ``stone watch`` at once
    instead of waiting for Enter. An answer that arrives after the future
    was cancelled is dropped.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def deliver(answer: str | None, error: Exception | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(answer or "")

    def read() -> None:
        try:
            answer, error = console.input(question), None
        except Exception as e:
            answer, error = None, e
        if not loop.is_closed():
            loop.call_soon_threadsafe(deliver, answer, error)

    threading.Thread(target=read, name="stone-watch-input", daemon=True).start()
    return future


async def _watch_foreground(service: TrackerService) -> None:
    """Run the tracker service and answer idle prompts interactively."""
    await service.start()
    try:
        while True:
            prompt = await service.prompts.get()
            console.print(f"\n[yellow]{_describe_prompt(prompt)}[/yellow]")
            answer = await _ask("Keep or discard this time? [k/D]: ")

            try:
                if answer.strip().lower().startswith("k"):
                    service.reconciler.keep()
                    console.print("[green]Kept idle time.[/green]")
                else:
                    continuation = service.reconciler.discard()
                    console.print("[green]Discarded idle time.[/green]")
                    if continuation is not None:
                        console.print("[dim]Tracking continues from now.[/dim]")
            except StoneError as e:
                console.print(f"[red]Error:[/red] {e}")
    finally:
        await service.stop()


def cmd_watch(args: argparse.Namespace) -> None:
    """Watch for sleep and idle time in the foreground."""
    store, engine = _open_engine()

    def sync() -> None:
        store.reload()
        engine.restore_active()

    service = TrackerService(
        engine,
        IdleReconciler(engine),
        SystemIdleSource(),
        poll_interval=settings.idle_poll_interval_seconds,
        idle_threshold=settings.idle_threshold_seconds,
        sleep_gap_grace=settings.sleep_gap_grace_seconds,
        wake_alert_threshold=settings.wake_alert_threshold_seconds,
        sync=sync,
    )

    console.print(
        f"[bold]Watching for idle time[/bold] "
        f"(threshold {format_compact_duration(settings.idle_threshold_seconds)})"
    )
    console.print("[dim]Press Ctrl+C to stop.[/dim]\n")
    try:
        asyncio.run(_watch_foreground(service))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped watching.[/dim]")


def cmd_version(args: argparse.Namespace) -> None:
    """Show version information."""
    console.print(f"stone v{__version__}")
    console.print(f"  Store: {settings.get_storage_path()}")


def _add_range_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--period",
        choices=[p.value for p in ReportPeriod if p != ReportPeriod.CUSTOM],
        default=ReportPeriod.THIS_WEEK.value,
        help="Named period (default: this-week)",
    )
    parser.add_argument("--from", dest="start", help="Custom range start (YYYY-MM-DD[ HH:MM])")
    parser.add_argument("--to", dest="end", help="Custom range end, exclusive")
    parser.add_argument("--search", "-s", help="Only entries whose project or note contains this text")


def main() -> NoReturn:
    """Main entry point for the Stone CLI."""
    parser = argparse.ArgumentParser(
        prog="stone",
        description="Track time against projects and review where it went.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show detailed output")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # start / switch
    for name, func, help_text in (
        ("start", cmd_start, "Start tracking a project"),
        ("switch", cmd_switch, "Switch the running timer to another project"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("project", help="Project name or ID")
        sub.add_argument("--create", action="store_true", help="Create the project if it doesn't exist")
        sub.set_defaults(func=func)

    stop_parser = subparsers.add_parser("stop", help="Stop the running timer")
    stop_parser.set_defaults(func=cmd_stop)

    status_parser = subparsers.add_parser("status", help="Show what is being tracked")
    status_parser.set_defaults(func=cmd_status)

    # Projects command group
    projects_parser = subparsers.add_parser("projects", help="Manage projects")
    projects_subparsers = projects_parser.add_subparsers(dest="projects_command", metavar="SUBCOMMAND")

    projects_list = projects_subparsers.add_parser("list", help="List projects")
    projects_list.add_argument("--all", action="store_true", help="Include archived projects")
    projects_list.add_argument("--tag", help="Only projects with this tag")
    projects_list.add_argument("--folder", help="Only projects in this folder")
    projects_list.set_defaults(func=cmd_projects_list)

    projects_add = projects_subparsers.add_parser("add", help="Create a project")
    projects_add.add_argument("name", help="Project name")
    projects_add.add_argument("--color", default="#007AFF", help="Colour tag (default: #007AFF)")
    projects_add.add_argument("--folder", help="Folder name or ID")
    projects_add.set_defaults(func=cmd_projects_add)

    projects_move = projects_subparsers.add_parser("move", help="Move a project into a folder")
    projects_move.add_argument("project", help="Project name or ID")
    projects_move.add_argument("folder", nargs="?", help="Folder name or ID (omit to leave all folders)")
    projects_move.set_defaults(func=cmd_projects_move)

    projects_reorder = projects_subparsers.add_parser("reorder", help="Change a project's place in its folder")
    projects_reorder.add_argument("project", help="Project name or ID")
    projects_reorder.add_argument("position", type=int, help="New position, starting at 1")
    projects_reorder.set_defaults(func=cmd_projects_reorder)

    projects_tag = projects_subparsers.add_parser("tag", help="Attach a tag to a project")
    projects_tag.add_argument("project", help="Project name or ID")
    projects_tag.add_argument("tag", help="Tag name or ID")
    projects_tag.add_argument("--create", action="store_true", help="Create the tag if it doesn't exist")
    projects_tag.set_defaults(func=cmd_projects_tag)

    projects_untag = projects_subparsers.add_parser("untag", help="Detach a tag from a project")
    projects_untag.add_argument("project", help="Project name or ID")
    projects_untag.add_argument("tag", help="Tag name or ID")
    projects_untag.set_defaults(func=cmd_projects_untag)

    projects_edit = projects_subparsers.add_parser("edit", help="Rename or recolour a project")
    projects_edit.add_argument("project", help="Project name or ID")
    projects_edit.add_argument("--name", help="New name")
    projects_edit.add_argument("--color", help="New colour tag")
    projects_edit.set_defaults(func=cmd_projects_edit)

    projects_archive = projects_subparsers.add_parser("archive", help="Archive a project")
    projects_archive.add_argument("project", help="Project name or ID")
    projects_archive.set_defaults(func=cmd_projects_archive, archived=True)

    projects_unarchive = projects_subparsers.add_parser("unarchive", help="Unarchive a project")
    projects_unarchive.add_argument("project", help="Project name or ID")
    projects_unarchive.set_defaults(func=cmd_projects_archive, archived=False)

    projects_delete = projects_subparsers.add_parser("delete", help="Delete a project and its entries")
    projects_delete.add_argument("project", help="Project name or ID")
    projects_delete.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    projects_delete.set_defaults(func=cmd_projects_delete)

    projects_import = projects_subparsers.add_parser(
        "import",
        help="Import projects from a YAML file",
        description="Create projects listed under a top-level 'projects' key.",
    )
    projects_import.add_argument("file", help="YAML file")
    projects_import.set_defaults(func=cmd_projects_import)

    # Folders command group
    folders_parser = subparsers.add_parser("folders", help="Manage project folders")
    folders_subparsers = folders_parser.add_subparsers(dest="folders_command", metavar="SUBCOMMAND")

    folders_list = folders_subparsers.add_parser("list", help="List folders")
    folders_list.set_defaults(func=cmd_folders_list)

    folders_add = folders_subparsers.add_parser("add", help="Create a folder")
    folders_add.add_argument("name", help="Folder name")
    folders_add.set_defaults(func=cmd_folders_add)

    folders_rename = folders_subparsers.add_parser("rename", help="Rename a folder")
    folders_rename.add_argument("folder", help="Folder name or ID")
    folders_rename.add_argument("name", help="New name")
    folders_rename.set_defaults(func=cmd_folders_rename)

    folders_expand = folders_subparsers.add_parser("expand", help="Expand a folder")
    folders_expand.add_argument("folder", help="Folder name or ID")
    folders_expand.set_defaults(func=cmd_folders_expand, expanded=True)

    folders_collapse = folders_subparsers.add_parser("collapse", help="Collapse a folder")
    folders_collapse.add_argument("folder", help="Folder name or ID")
    folders_collapse.set_defaults(func=cmd_folders_expand, expanded=False)

    folders_delete = folders_subparsers.add_parser("delete", help="Delete a folder, keeping its projects")
    folders_delete.add_argument("folder", help="Folder name or ID")
    folders_delete.set_defaults(func=cmd_folders_delete)

    # Tags command group
    tags_parser = subparsers.add_parser("tags", help="Manage project tags")
    tags_subparsers = tags_parser.add_subparsers(dest="tags_command", metavar="SUBCOMMAND")

    tags_list = tags_subparsers.add_parser("list", help="List tags")
    tags_list.set_defaults(func=cmd_tags_list)

    tags_add = tags_subparsers.add_parser("add", help="Create a tag")
    tags_add.add_argument("name", help="Tag name")
    tags_add.add_argument("--color", default="#8E8E93", help="Colour (default: #8E8E93)")
    tags_add.set_defaults(func=cmd_tags_add)

    tags_edit = tags_subparsers.add_parser("edit", help="Rename or recolour a tag")
    tags_edit.add_argument("tag", help="Tag name or ID")
    tags_edit.add_argument("--name", help="New name")
    tags_edit.add_argument("--color", help="New colour")
    tags_edit.set_defaults(func=cmd_tags_edit)

    tags_delete = tags_subparsers.add_parser("delete", help="Delete a tag")
    tags_delete.add_argument("tag", help="Tag name or ID")
    tags_delete.set_defaults(func=cmd_tags_delete)

    # Entries command group
    entries_parser = subparsers.add_parser("entries", help="Manage time entries")
    entries_subparsers = entries_parser.add_subparsers(dest="entries_command", metavar="SUBCOMMAND")

    entries_list = entries_subparsers.add_parser("list", help="List entries for a day")
    entries_list.add_argument("--date", help="Day to list (YYYY-MM-DD, default: today)")
    entries_list.set_defaults(func=cmd_entries_list)

    entries_add = entries_subparsers.add_parser("add", help="Add a finished entry")
    entries_add.add_argument("--start", required=True, help="Start (YYYY-MM-DD HH:MM or HH:MM)")
    entries_add.add_argument("--end", required=True, help="End (YYYY-MM-DD HH:MM or HH:MM)")
    entries_add.add_argument("--project", help="Project name or ID")
    entries_add.add_argument("--note", help="Note")
    entries_add.set_defaults(func=cmd_entries_add)

    entries_edit = entries_subparsers.add_parser("edit", help="Edit an entry")
    entries_edit.add_argument("entry_id", help="Entry ID")
    entries_edit.add_argument("--start", help="New start")
    entries_edit.add_argument("--end", help="New end")
    entries_edit.add_argument("--note", help="New note (empty string clears it)")
    entries_edit.add_argument("--project", help="New project name or ID")
    entries_edit.set_defaults(func=cmd_entries_edit)

    entries_delete = entries_subparsers.add_parser("delete", help="Delete an entry")
    entries_delete.add_argument("entry_id", help="Entry ID")
    entries_delete.set_defaults(func=cmd_entries_delete)

    # Reports
    report_parser = subparsers.add_parser("report", help="Show a time report")
    _add_range_arguments(report_parser)
    report_parser.add_argument("--daily", action="store_true", help="Also show per-day totals")
    report_parser.set_defaults(func=cmd_report)

    export_parser = subparsers.add_parser("export", help="Export entries to CSV")
    _add_range_arguments(export_parser)
    export_parser.add_argument("-o", "--output", help="Output directory (default: current directory)")
    export_parser.set_defaults(func=cmd_export)

    watch_parser = subparsers.add_parser("watch", help="Ask about sleep and idle time while tracking")
    watch_parser.set_defaults(func=cmd_watch)

    version_parser = subparsers.add_parser("version", help="Show version information")
    version_parser.set_defaults(func=cmd_version)

    args = parser.parse_args()
    setup_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "projects" and args.projects_command is None:
        args.func, args.all, args.tag, args.folder = cmd_projects_list, False, None, None

    if args.command == "folders" and args.folders_command is None:
        args.func = cmd_folders_list

    if args.command == "tags" and args.tags_command is None:
        args.func = cmd_tags_list

    if args.command == "entries" and args.entries_command is None:
        args.func, args.date = cmd_entries_list, None

    try:
        args.func(args)
    except (StoneError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
