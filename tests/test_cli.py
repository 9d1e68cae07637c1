"""End-to-end tests of the command line against real repositories."""

import json

import pytest
from typer.testing import CliRunner

from conftest import commit_file, git, requires_git
from mgit import __version__
from mgit.core import app

pytestmark = requires_git

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, remote_and_clone):
    _, clone, _ = remote_and_clone
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    path = conf_dir / "work.conf"
    path.write_text(f"[{clone}]\nname = project\ntags = work\n")
    return path


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_schema():
    result = runner.invoke(app, ["--schema"])

    assert result.exit_code == 0
    schema = json.loads(result.stdout)
    assert [tool["name"] for tool in schema["tools"]] == ["config", "status", "pull"]


def test_config_json(config_file, remote_and_clone):
    _, clone, _ = remote_and_clone

    result = runner.invoke(app, ["-c", str(config_file), "config", "--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    repo = data["sections"][0]["repositories"][0]
    assert repo["name"] == "project"
    assert repo["tags"] == ["work"]
    assert repo["path"] == str(clone.resolve())
    assert data["tags"] == ["work"]
    assert [g["name"] for g in data["groups"]] == ["work"]


def test_config_text(config_file):
    result = runner.invoke(app, ["-c", str(config_file), "config", "-v"])

    assert result.exit_code == 0, result.output
    assert "project" in result.stdout
    assert "config:" in result.stdout


def test_status_json(config_file, remote_and_clone):
    _, clone, pusher = remote_and_clone
    commit_file(pusher, "a.txt", "a", "a")
    git(pusher, "push", "-q", "origin", "main")
    git(clone, "fetch", "-q")

    result = runner.invoke(app, ["-c", str(config_file), "status", "--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["operation"] == "status"
    repo = data["sections"][0]["repositories"][0]
    assert repo["color"] == "green"
    branch = repo["remotes"][0]["branches"][0]
    assert branch["action"] == "fast_forward"
    assert branch["applied"] is False
    assert data["summary"]["green"] == 1


def test_status_text(config_file):
    result = runner.invoke(app, ["-c", str(config_file), "status", "-v"])

    assert result.exit_code == 0, result.output
    assert "Total:" in result.stdout


def test_status_text_counts_local_changes(config_file, remote_and_clone):
    _, clone, _ = remote_and_clone
    (clone / "README.md").write_text("changed")
    (clone / "scratch.txt").write_text("wip")

    result = runner.invoke(app, ["-c", str(config_file), "status"])

    assert result.exit_code == 0, result.output
    assert "1 modified" in result.stdout
    assert "1 untracked" in result.stdout
    assert "Dirty:" in result.stdout


def test_pull_fast_forwards(config_file, remote_and_clone):
    _, clone, pusher = remote_and_clone
    head = commit_file(pusher, "a.txt", "a", "a")
    git(pusher, "push", "-q", "origin", "main")

    result = runner.invoke(app, ["-c", str(config_file), "pull", "--json", "-J", "2"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    repo = data["sections"][0]["repositories"][0]
    assert repo["color"] == "green"
    assert repo["remotes"][0]["fetched"] is True
    assert repo["remotes"][0]["branches"][0]["applied"] is True
    assert data["summary"]["fast_forwarded"] == 1
    assert git(clone, "rev-parse", "HEAD") == head


def test_pull_leaves_local_work_alone(config_file, remote_and_clone):
    _, clone, pusher = remote_and_clone
    commit_file(pusher, "a.txt", "a", "remote")
    git(pusher, "push", "-q", "origin", "main")
    local = commit_file(clone, "b.txt", "b", "local")

    result = runner.invoke(app, ["-c", str(config_file), "pull", "--json"])

    assert result.exit_code == 0, result.output
    repo = json.loads(result.stdout)["sections"][0]["repositories"][0]
    assert repo["color"] == "red"
    assert repo["remotes"][0]["branches"][0]["action"] == "skip_diverged"
    assert git(clone, "rev-parse", "HEAD") == local


def test_tag_filter_with_no_match(config_file):
    result = runner.invoke(app, ["-c", str(config_file), "status", "--json", "-t", "other"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["sections"] == [{"label": "other", "repositories": []}]


def test_empty_registry_exits_non_zero(tmp_path):
    conf = tmp_path / "empty.conf"
    conf.write_text(f"[{tmp_path / 'missing'}]\n")

    result = runner.invoke(app, ["-W", "ignore", "-c", str(conf), "status"])

    assert result.exit_code == 1
    assert "no repositories configured" in result.output


def test_missing_config_exits_non_zero(tmp_path):
    result = runner.invoke(app, ["-c", str(tmp_path / "nope"), "status"])

    assert result.exit_code == 1


@pytest.fixture
def config_with_bad_entry(config_file, tmp_path):
    config_file.write_text(config_file.read_text() + f"\n[{tmp_path / 'missing'}]\n")
    return config_file


def test_fatal_warning_policy_exits_non_zero(config_with_bad_entry):
    result = runner.invoke(app, ["-W", "fatal", "-c", str(config_with_bad_entry), "status"])

    assert result.exit_code == 1
    assert "warning action is 'fatal'" in result.output


def test_ignore_warning_policy(config_with_bad_entry):
    result = runner.invoke(
        app, ["-W", "ignore", "-c", str(config_with_bad_entry), "status", "--json"]
    )

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert len(data["sections"][0]["repositories"]) == 1


def test_print_warning_policy(config_with_bad_entry):
    result = runner.invoke(app, ["-c", str(config_with_bad_entry), "status"])

    assert result.exit_code == 0, result.output
    assert "repo path" in result.output or "failed to resolve" in result.output


def test_config_from_environment(config_file, monkeypatch):
    monkeypatch.setenv("MGIT_CONFIG", str(config_file.parent))

    result = runner.invoke(app, ["config", "--json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["sections"][0]["repositories"][0]["name"] == "project"
