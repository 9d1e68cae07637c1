"""
mgit: keep an eye on many git working trees at once.

Reports which configured repositories have branches out of sync with
their upstreams, and fetches and fast-forwards tracking branches when it
is safe to do so. Nothing is ever merged, rebased or pushed.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from ._version import __version__
from .backend import GitBackend, Relation, RepositoryBackend, TrackingBranch, WorktreeStatus
from .config import read_config, resolve_config_paths
from .control import WarningPolicy, WarningSink
from .decision import Action, decide
from .errors import BackendError, EmptyRegistryError, FastForwardError, FetchError
from .formatters import OutputFormatter
from .registry import (
    Registry,
    RepositoryEntry,
    build_registry,
    group_sections,
    select,
    tag_sections,
)
from .report import (
    BranchOutcome,
    Color,
    RemoteReport,
    Report,
    ReportSection,
    RepositoryReport,
)
from .schema import get_tool_schema

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 8

ProgressCallback = Callable[[RepositoryEntry, str, Color], None]


# =============================================================================
# Cancellation
# =============================================================================


class CancellationToken:
    """Cooperative cancellation flag shared with worker threads.

    Checked before each fetch unit starts; work already running is
    allowed to finish.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# =============================================================================
# Status (read-only)
# =============================================================================


def _execute_parallel(
    operation: Callable[[RepositoryEntry], RepositoryReport],
    entries: Sequence[RepositoryEntry],
    max_workers: int,
) -> list[RepositoryReport]:
    """Execute operation on entries in parallel, returning results sorted by name."""
    results = []
    if max_workers <= 1 or len(entries) <= 1:
        results = [operation(entry) for entry in entries]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(operation, entry): entry for entry in entries}
            for future in as_completed(futures):
                results.append(future.result())

    results.sort(key=lambda r: r.entry.sort_key)
    return results


def _branch_pristine(
    backend: RepositoryBackend,
    branch: TrackingBranch,
    worktree: WorktreeStatus,
    cache: dict[Path, bool],
) -> bool:
    """Whether the working tree that has ``branch`` checked out is pristine."""
    if branch.worktree is None:
        return worktree.pristine
    if branch.worktree not in cache:
        cache[branch.worktree] = backend.is_worktree_pristine(branch.worktree)
    return cache[branch.worktree]


def _status_for(
    entry: RepositoryEntry, backend: RepositoryBackend, sink: WarningSink
) -> RepositoryReport:
    """Classify one repository from the state the backend already knows."""
    report = RepositoryReport(entry=entry)
    linked: dict[Path, bool] = {}
    by_remote: dict[str, list[BranchOutcome]] = defaultdict(list)
    try:
        remotes = backend.list_remotes(entry.path)
        branches = backend.tracking_branches(entry.path)
        report.worktree = backend.worktree_status(entry.path)
        for branch in sorted(branches, key=lambda b: b.name):
            pristine = _branch_pristine(backend, branch, report.worktree, linked)
            by_remote[branch.remote].append(BranchOutcome(branch, decide(branch, pristine)))
    except BackendError as e:
        sink.warn(e)
        report.error = str(e)
        return report

    for name in sorted(set(remotes) | set(by_remote)):
        report.remotes.append(RemoteReport(name=name, branches=by_remote.get(name, [])))
    return report


def run_status(
    entries: Iterable[RepositoryEntry],
    backend: RepositoryBackend,
    sink: WarningSink,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> Report:
    """Report on ``entries`` without touching the network or any ref."""
    results = _execute_parallel(
        lambda entry: _status_for(entry, backend, sink),
        list(entries),
        concurrency,
    )
    return Report(operation="status", sections=[ReportSection(label=None, repositories=results)])


# =============================================================================
# Pull (fetch + fast-forward)
# =============================================================================


class FetchOrchestrator:
    """Fetch every remote of every repository and fast-forward what is safe.

    One unit of work is one (repository, remote) pair. All units share a
    single pool of ``concurrency`` workers. Branch evaluation and ref
    updates hold a per-repository lock, so a working tree is never
    mutated by two workers at once.
    """

    def __init__(
        self,
        backend: RepositoryBackend,
        sink: WarningSink,
        concurrency: int = DEFAULT_CONCURRENCY,
        *,
        cancel: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be a positive integer, got {concurrency}")
        self.backend = backend
        self.sink = sink
        self.concurrency = concurrency
        self.cancel = cancel or CancellationToken()
        self.on_progress = on_progress
        self._repo_locks: dict[Path, threading.Lock] = {}

    def _notify(self, entry: RepositoryEntry, remote: str, color: Color) -> None:
        if self.on_progress is not None:
            self.on_progress(entry, remote, color)

    def run(self, entries: Iterable[RepositoryEntry]) -> Report:
        entries = sorted(entries, key=lambda e: e.sort_key)
        reports = {entry.path: RepositoryReport(entry=entry) for entry in entries}
        units: list[tuple[RepositoryEntry, RemoteReport]] = []

        for entry in entries:
            try:
                remotes = self.backend.list_remotes(entry.path)
            except BackendError as e:
                self.sink.warn(e)
                reports[entry.path].error = str(e)
                continue
            self._repo_locks[entry.path] = threading.Lock()
            for name in sorted(remotes):
                remote_report = RemoteReport(name=name)
                reports[entry.path].remotes.append(remote_report)
                units.append((entry, remote_report))
                self._notify(entry, name, Color.BLUE)

        logger.debug("scheduling %d fetch units over %d workers", len(units), self.concurrency)
        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            futures = [
                executor.submit(self._fetch_unit, entry, remote_report, reports[entry.path])
                for entry, remote_report in units
            ]
            for future in as_completed(futures):
                future.result()

        return Report(
            operation="pull",
            sections=[ReportSection(label=None, repositories=[reports[e.path] for e in entries])],
        )

    def _fetch_unit(
        self, entry: RepositoryEntry, remote: RemoteReport, report: RepositoryReport
    ) -> None:
        if self.cancel.cancelled:
            remote.cancelled = True
            return

        self._notify(entry, remote.name, Color.CYAN)
        try:
            self._fetch_and_update(entry, remote, report)
        except Exception as e:
            # Whatever goes wrong costs this remote only, never the run.
            logger.debug("unexpected failure in %s (%s)", entry.path, remote.name, exc_info=True)
            remote.error = str(e) or type(e).__name__
            self.sink.warn(
                FetchError(
                    f"failed to update from remote '{remote.name}'",
                    cause=remote.error,
                    repo_path=entry.path,
                )
            )
        self._notify(entry, remote.name, remote.color)

    def _fetch_and_update(
        self, entry: RepositoryEntry, remote: RemoteReport, report: RepositoryReport
    ) -> None:
        success, message = self.backend.fetch(entry.path, remote.name)
        if not success:
            remote.fetched = False
            remote.error = message
            self.sink.warn(
                FetchError(
                    f"failed to fetch remote '{remote.name}'", cause=message, repo_path=entry.path
                )
            )
            return
        remote.fetched = True
        logger.debug("fetched %s from %s", entry.path, remote.name)

        with self._repo_locks[entry.path]:
            try:
                self._update_branches(entry, remote, report)
            except BackendError as e:
                self.sink.warn(e)
                remote.error = str(e)

    def _update_branches(
        self, entry: RepositoryEntry, remote: RemoteReport, report: RepositoryReport
    ) -> None:
        """Evaluate and apply decisions for the branches tracking ``remote``."""
        branches = [b for b in self.backend.tracking_branches(entry.path) if b.remote == remote.name]
        report.worktree = self.backend.worktree_status(entry.path)
        linked: dict[Path, bool] = {}

        for branch in sorted(branches, key=lambda b: b.name):
            pristine = _branch_pristine(self.backend, branch, report.worktree, linked)
            outcome = BranchOutcome(branch, decide(branch, pristine))
            remote.branches.append(outcome)
            if outcome.action is not Action.FAST_FORWARD:
                continue
            if branch.relation is not Relation.BEHIND:
                outcome.error = "refusing to move a branch that is not strictly behind"
            else:
                try:
                    success, message = self.backend.fast_forward(
                        entry.path, branch, branch.upstream_commit
                    )
                except BackendError as e:
                    success, message = False, str(e)
                outcome.applied = success
                outcome.error = "" if success else (message or "fast-forward failed")
            if outcome.error:
                self.sink.warn(
                    FastForwardError(
                        f"failed to fast-forward '{branch.name}' to '{branch.upstream}'",
                        cause=outcome.error,
                        repo_path=entry.path,
                    )
                )


def run_pull(
    entries: Iterable[RepositoryEntry],
    backend: RepositoryBackend,
    sink: WarningSink,
    concurrency: int = DEFAULT_CONCURRENCY,
    *,
    cancel: CancellationToken | None = None,
    on_progress: ProgressCallback | None = None,
) -> Report:
    """Fetch all remotes of ``entries`` and fast-forward tracking branches."""
    orchestrator = FetchOrchestrator(
        backend, sink, concurrency, cancel=cancel, on_progress=on_progress
    )
    return orchestrator.run(entries)


# =============================================================================
# CLI Application
# =============================================================================


app = typer.Typer(
    name="mgit",
    help="Small program for managing multiple git repositories.",
    no_args_is_help=True,
)


@dataclass
class AppState:
    """Options shared by all subcommands."""

    config_paths: list[Path] = field(default_factory=list)
    warning: WarningPolicy = WarningPolicy.PRINT
    backend: RepositoryBackend = field(default_factory=GitBackend)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"mgit {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: list[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to configuration file or directory (repeatable, default ~/.mgit)",
    ),
    warning: WarningPolicy = typer.Option(
        WarningPolicy.PRINT,
        "--warning",
        "-W",
        case_sensitive=False,
        help="Action to take on warnings",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Log git invocations and scheduling to stderr",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        help="Output MCP-compatible tool schema for AI agents",
    ),
):
    """mgit: small program for managing multiple git repositories."""
    if schema:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()

    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        )

    ctx.obj = AppState(config_paths=list(config or []), warning=warning)


def get_console_and_formatter(json_output: bool) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(force_terminal=not json_output)
    formatter = OutputFormatter(console, use_json=json_output)
    return console, formatter


def load_registry(state: AppState) -> tuple[Registry, WarningSink]:
    """Read configuration and build the registry, exiting if it is empty."""
    sink = WarningSink(state.warning)
    records = read_config(state.config_paths or resolve_config_paths(), sink)
    try:
        registry, _ = build_registry(records, state.backend, sink)
    except EmptyRegistryError as e:
        sink.fatal(e)
        raise typer.Exit(1) from e
    return registry, sink


def finish(sink: WarningSink) -> None:
    """Exit non-zero if warnings were recorded under the fatal policy."""
    if sink.failed:
        sink.fatal("encountered warning, warning action is 'fatal'")
        raise typer.Exit(1)


def _sections(
    registry: Registry, tags: list[str], by_group: bool
) -> list[tuple[str | None, list[RepositoryEntry]]]:
    if by_group:
        return group_sections(registry, tags)
    return tag_sections(registry, tags)


@app.command(name="config")
def config_command(
    ctx: typer.Context,
    tags: list[str] = typer.Option(
        None,
        "--tag",
        "-t",
        help="Limits display to specified tag(s)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Shows defaults in addition to user-specified config",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
):
    """Prints configuration values."""
    state: AppState = ctx.obj
    _, formatter = get_console_and_formatter(json_output)
    registry, sink = load_registry(state)

    formatter.print_config(tag_sections(registry, tags or []), registry, verbose=verbose)
    finish(sink)


@app.command()
def status(
    ctx: typer.Context,
    tags: list[str] = typer.Option(
        None,
        "--tag",
        "-t",
        help="Limits display to repos with specified tag(s)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Shows all status information, even if up-to-date",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
    by_group: bool = typer.Option(
        False,
        "--by-group",
        "-g",
        help="Group output by configuration group instead of tag",
    ),
    jobs: int = typer.Option(
        DEFAULT_CONCURRENCY,
        "--jobs",
        "-J",
        min=1,
        help="Number of repositories to inspect in parallel",
    ),
):
    """Prints status information about repositories."""
    state: AppState = ctx.obj
    console, formatter = get_console_and_formatter(json_output)
    registry, sink = load_registry(state)
    tags = tags or []

    entries = select(registry, tags)
    if not json_output:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task("Analyzing...", total=None)
            report = run_status(entries, state.backend, sink, jobs)
    else:
        report = run_status(entries, state.backend, sink, jobs)

    formatter.print_report(report.regroup(_sections(registry, tags, by_group)), verbose=verbose)
    finish(sink)


@app.command()
def pull(
    ctx: typer.Context,
    tags: list[str] = typer.Option(
        None,
        "--tag",
        "-t",
        help="Limits pull to repos with specified tag(s)",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Shows all repositories, even if nothing happened",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output as JSON",
    ),
    by_group: bool = typer.Option(
        False,
        "--by-group",
        "-g",
        help="Group output by configuration group instead of tag",
    ),
    jobs: int = typer.Option(
        DEFAULT_CONCURRENCY,
        "--jobs",
        "-J",
        min=1,
        help="Maximum number of concurrent fetches",
    ),
):
    """Pulls from remotes and fast-forwards tracking branches if possible to do so safely."""
    state: AppState = ctx.obj
    console, formatter = get_console_and_formatter(json_output)
    registry, sink = load_registry(state)
    tags = tags or []

    entries = select(registry, tags)
    if not json_output:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Fetching...", total=0)
            scheduled = 0

            def on_progress(entry: RepositoryEntry, remote: str, color: Color) -> None:
                nonlocal scheduled
                if color is Color.BLUE:
                    # Units are all announced before the first fetch starts.
                    scheduled += 1
                    progress.update(task, total=scheduled)
                elif color is Color.CYAN:
                    progress.update(
                        task, description=f"Fetching [{color}]{entry.name}[/] ({remote})"
                    )
                else:
                    progress.advance(task)

            report = run_pull(entries, state.backend, sink, jobs, on_progress=on_progress)
    else:
        report = run_pull(entries, state.backend, sink, jobs)

    formatter.print_report(report.regroup(_sections(registry, tags, by_group)), verbose=verbose)
    finish(sink)
