"""Program control: collection of non-fatal warnings and the fatal outcome."""

from __future__ import annotations

import threading
from enum import StrEnum

from rich.console import Console
from rich.markup import escape

from .errors import MgitError


class WarningPolicy(StrEnum):
    """Action to take when a warning is recorded."""

    IGNORE = "ignore"
    PRINT = "print"
    FATAL = "fatal"


class WarningSink:
    """Thread-safe collector for warnings raised during a run.

    One sink is created per invocation and passed to every component that
    can produce a warning. With the ``fatal`` policy nothing is aborted:
    warnings are printed as they arrive and ``failed`` tells the caller to
    exit non-zero once the current work has completed.
    """

    WARNING_LABEL = "warning"
    FATAL_LABEL = "  fatal"

    def __init__(self, policy: WarningPolicy = WarningPolicy.PRINT, console: Console | None = None):
        self.policy = WarningPolicy(policy)
        self.console = console if console is not None else Console(stderr=True)
        self._lock = threading.Lock()
        self._warnings: list[MgitError] = []

    def warn(self, error: MgitError) -> None:
        """Record a warning and, depending on the policy, print it."""
        with self._lock:
            if self.policy == WarningPolicy.IGNORE:
                return
            self._warnings.append(error)
            # Printing under the lock keeps multi-line messages contiguous.
            self._print(self.WARNING_LABEL, "yellow", self._describe(error))

    def fatal(self, error: MgitError | str) -> None:
        """Print a fatal error. Exiting is left to the caller."""
        message = self._describe(error) if isinstance(error, MgitError) else str(error)
        with self._lock:
            self._print(self.FATAL_LABEL, "red", message)

    @property
    def warnings(self) -> list[MgitError]:
        with self._lock:
            return list(self._warnings)

    @property
    def failed(self) -> bool:
        """True when warnings are fatal and at least one was recorded."""
        with self._lock:
            return self.policy == WarningPolicy.FATAL and bool(self._warnings)

    def __len__(self) -> int:
        with self._lock:
            return len(self._warnings)

    @staticmethod
    def _describe(error: MgitError) -> str:
        lines = [f"[bold]{escape(error.message)}[/]"]
        if error.cause:
            lines.append(escape(error.cause))
        if error.config_path:
            lines.append(f"in config at path [bold cyan]{escape(error.config_path)}[/]")
        if error.repo_path:
            lines.append(f"for repo  at path [bold blue]{escape(error.repo_path)}[/]")
        return "\n".join(lines)

    def _print(self, label: str, color: str, message: str) -> None:
        margin = " " * len(label)
        for i, line in enumerate(message.splitlines()):
            prefix = label if i == 0 else margin
            self.console.print(f"[bold {color}]{prefix}[/] {line}", highlight=False)
