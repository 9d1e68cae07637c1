"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from collections import defaultdict
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from .backend import WorktreeStatus
    from .registry import Registry, RepositoryEntry
    from .report import RemoteReport, Report, ReportSummary, RepositoryReport


def compute_unique_display_names(entries: Sequence[RepositoryEntry]) -> dict[Path, str]:
    """Compute unique display names for entries sharing a name.

    Entries with a configured or default name that is not unique get
    parent directories of their path appended until the name is.
    """
    name_groups: dict[str, list[RepositoryEntry]] = defaultdict(list)
    for entry in entries:
        name_groups[entry.name].append(entry)

    result: dict[Path, str] = {}
    for name, group in name_groups.items():
        if len(group) == 1:
            result[group[0].path] = name
            continue
        suffixes = _make_paths_unique([e.path.parent for e in group])
        for entry, suffix in zip(group, suffixes):
            result[entry.path] = f"{name} ({suffix})"
    return result


def _make_paths_unique(paths: list[Path]) -> list[str]:
    """Generate the shortest trailing path components that tell paths apart."""
    parts_list = [list(reversed(p.parts)) for p in paths]

    result = []
    for i, parts in enumerate(parts_list):
        for depth in range(1, len(parts) + 1):
            candidate = "/".join(reversed(parts[:depth]))
            clashes = any(
                "/".join(reversed(other[:depth])) == candidate
                for j, other in enumerate(parts_list)
                if i != j
            )
            if not clashes:
                result.append(candidate)
                break
        else:
            result.append(str(paths[i]))
    return result


class OutputFormatter:
    """Format output for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False):
        self.console = console
        self.use_json = use_json

    def _print_json(self, output: dict) -> None:
        self.console.print(
            json.dumps(output, indent=2, default=str),
            markup=False,
            highlight=False,
            soft_wrap=True,
        )

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def print_config(
        self,
        sections: Sequence[tuple[str | None, Sequence[RepositoryEntry]]],
        registry: Registry,
        verbose: bool = False,
    ):
        """Print configured repositories, one block per section."""
        if self.use_json:
            self._print_json(
                {
                    "sections": [
                        {"label": label, "repositories": [e.to_dict() for e in entries]}
                        for label, entries in sections
                    ],
                    "groups": [registry.groups[name].to_dict() for name in sorted(registry.groups)],
                    "tags": registry.tags(),
                }
            )
            return

        for label, entries in sections:
            if label is not None:
                self.console.print(f"\n[bold underline]TAG:{escape(label)}[/]")
            else:
                self.console.print()
            # Sort by declared path so the listing mirrors the config files.
            for entry in sorted(entries, key=lambda e: (e.declared_path, str(e.path))):
                self._print_entry(entry, verbose)
        self.console.print()

    def _print_entry(self, entry: RepositoryEntry, verbose: bool):
        from .registry import DEFAULT_SYMBOL, default_name

        facts: list[tuple[str, str]] = [("path", str(entry.path))]
        defaulted_name = entry.name == default_name(entry.declared_path)
        if not defaulted_name:
            facts.append(("name", entry.name))
        elif verbose:
            facts.append(("name", f"{entry.name} (default)"))
        if entry.comment:
            facts.append(("comment", entry.comment))
        elif verbose:
            facts.append(("comment", "<not set>"))
        if entry.symbol != DEFAULT_SYMBOL:
            facts.append(("symbol", entry.symbol))
        elif verbose:
            facts.append(("symbol", f"{entry.symbol} (default)"))
        if entry.tags:
            facts.append(("tags", ", ".join(sorted(entry.tags))))
        elif verbose:
            facts.append(("tags", "<none set>"))
        if verbose:
            facts.append(("group", entry.group))
            facts.append(("config", str(entry.config_path)))

        self.console.print(f"[bold magenta]{escape(entry.declared_path)}[/]")
        for i, (key, value) in enumerate(facts):
            left = "┖" if i == len(facts) - 1 else "┠"
            rule = "─" * (8 - len(key))
            self.console.print(f"[blue]  {left}{rule} {key}:[/] {escape(value)}", highlight=False)

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def print_report(self, report: Report, verbose: bool = False):
        """Print a status or pull report."""
        if self.use_json:
            self._print_json(report.to_dict())
            return

        display_names = compute_unique_display_names([r.entry for r in report.repositories])
        for section in report.sections:
            shown = [r for r in section.repositories if verbose or self._needs_attention(r)]
            if section.label is not None:
                title = f"TAG: {section.label}"
            else:
                title = f"{report.operation.title()}"
            if not shown:
                self.console.print(f"[dim]{escape(title)}: nothing needs attention[/]")
                continue

            table = Table(title=escape(title), title_justify="left")
            table.add_column("Repository", no_wrap=True)
            table.add_column("Remote")
            table.add_column("Branch")
            table.add_column("State")
            for repo in shown:
                self._add_repository_rows(table, repo, display_names, verbose)
            self.console.print(table)

        self.console.print()
        self._print_summary(report.summary, report.operation)

    @staticmethod
    def _needs_attention(repo: RepositoryReport) -> bool:
        from .report import Color

        return repo.color is not Color.WHITE or repo.pristine is False

    def _add_repository_rows(
        self,
        table: Table,
        repo: RepositoryReport,
        display_names: dict[Path, str],
        verbose: bool,
    ):
        from .report import Color

        color = repo.color
        label = f"[bold {color}]{escape(repo.entry.symbol)} {escape(display_names.get(repo.entry.path, repo.entry.name))}[/]"
        notes = []
        if repo.error:
            notes.append(f"[red]✗ {escape(repo.error)}[/]")
        if repo.worktree is not None and not repo.worktree.pristine:
            notes.append(f"[yellow]✎ {self._worktree_note(repo.worktree)}[/]")

        rows: list[tuple[str, str, str]] = []
        for remote in repo.remotes:
            remote_label = f"[{remote.color}]{escape(remote.name)}[/]"
            problem = self._remote_problem(remote)
            if problem:
                rows.append((remote_label, "", problem))
            for outcome in remote.branches:
                if not verbose and outcome.color is Color.WHITE:
                    continue
                head = "* " if outcome.branch.is_head else ""
                rows.append(
                    (
                        remote_label,
                        f"{head}{escape(outcome.branch.name)}",
                        f"[{outcome.color}]{escape(outcome.description)}[/]",
                    )
                )

        if not rows:
            state = " ".join(notes) if notes else "[dim]up to date[/]"
            table.add_row(label, "", "", state)
            return
        for i, (remote_label, branch, state) in enumerate(rows):
            if i == 0 and notes:
                state = f"{state} {' '.join(notes)}"
            table.add_row(label if i == 0 else "", remote_label, branch, state)

    @staticmethod
    def _worktree_note(worktree: WorktreeStatus) -> str:
        counts = [
            (worktree.staged, "staged"),
            (worktree.modified, "modified"),
            (worktree.untracked, "untracked"),
        ]
        return ", ".join(f"{count} {label}" for count, label in counts if count)

    @staticmethod
    def _remote_problem(remote: RemoteReport) -> str:
        if remote.fetch_failed:
            return f"[red]✗ fetch failed: {escape(remote.error[:60])}[/]"
        if remote.error:
            return f"[red]✗ {escape(remote.error[:60])}[/]"
        if remote.cancelled:
            return "[blue]not fetched (cancelled)[/]"
        return ""

    def _print_summary(self, summary: ReportSummary, operation: str):
        """Print summary."""
        parts = [f"[bold]Total:[/] {summary.total}"]

        if summary.white > 0:
            parts.append(f"[white]✓ Up to date:[/] {summary.white}")
        if summary.green > 0:
            label = "Fast-forwarded" if operation == "pull" else "Can fast-forward"
            parts.append(f"[green]⬇ {label}:[/] {summary.green}")
        if summary.yellow > 0:
            parts.append(f"[yellow]⬆ Ahead:[/] {summary.yellow}")
        if summary.red > 0:
            parts.append(f"[red]✗ Needs attention:[/] {summary.red}")
        if summary.dirty > 0:
            parts.append(f"[yellow]✎ Dirty:[/] {summary.dirty}")
        if summary.fetch_failed > 0:
            parts.append(f"[red]Fetch failures:[/] {summary.fetch_failed}")

        self.console.print(" | ".join(parts))
