"""Shared fixtures: git helpers and sinks."""

from __future__ import annotations

import io
import shutil
import subprocess
from pathlib import Path

import pytest
from rich.console import Console

from mgit.control import WarningPolicy, WarningSink

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(cwd: Path, *args: str) -> str:
    """Run a git command and return stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def commit_file(repo: Path, filename: str, content: str, message: str) -> str:
    """Create/overwrite a file and commit it. Returns the commit hash."""
    (repo / filename).write_text(content)
    git(repo, "add", filename)
    git(repo, "commit", "-q", "-m", message)
    return git(repo, "rev-parse", "HEAD")


@pytest.fixture(autouse=True)
def isolated_git(monkeypatch, tmp_path_factory):
    """Keep user and system git configuration out of the tests."""
    empty = tmp_path_factory.mktemp("gitconfig") / "config"
    empty.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(empty))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    monkeypatch.delenv("MGIT_CONFIG", raising=False)


@pytest.fixture
def console_output():
    """A rich console writing plain text to a buffer."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=200, force_terminal=False, color_system=None)
    return console, buffer


@pytest.fixture
def sink(console_output):
    console, _ = console_output
    return WarningSink(WarningPolicy.PRINT, console=console)


@pytest.fixture
def remote_and_clone(tmp_path):
    """A bare 'origin' with one commit on main, and a clone of it.

    Returns (bare, clone, pusher) where pusher is a second clone used to
    publish new commits to origin.
    """
    bare = tmp_path / "origin.git"
    git(tmp_path, "init", "-q", "--bare", "-b", "main", str(bare))

    pusher = tmp_path / "pusher"
    git(tmp_path, "clone", "-q", str(bare), str(pusher))
    git(pusher, "symbolic-ref", "HEAD", "refs/heads/main")
    commit_file(pusher, "README.md", "# project\n", "initial")
    git(pusher, "push", "-q", "origin", "main")

    clone = tmp_path / "clone"
    git(tmp_path, "clone", "-q", str(bare), str(clone))
    return bare, clone, pusher
