"""Configuration discovery and parsing.

Configuration is INI. Every section header is the path of a repository,
either absolute, ``~``-relative, or relative to the file it appears in::

    [DEFAULT]
    group = work
    symbol = *

    [~/src/mgit]
    name = mgit
    tags = rust tools

A directory given as a config path is walked recursively for ``.conf``
files. Problems are reported to the ``WarningSink`` and the affected file
is skipped.
"""

from __future__ import annotations

import configparser
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .control import WarningSink
from .errors import ConfigAccessError, ConfigParseError, MgitError

logger = logging.getLogger(__name__)

CONFIG_EXTENSION = ".conf"

NAME_KEY = "name"
COMMENT_KEY = "comment"
SYMBOL_KEY = "symbol"
TAGS_KEY = "tags"
GROUP_KEY = "group"


@dataclass(frozen=True)
class RawRecord:
    """One repository section as read from a config file."""

    config_path: Path
    stem: str
    section: str
    settings: Mapping[str, str] = field(default_factory=dict)
    defaults: Mapping[str, str] = field(default_factory=dict)


def resolve_config_paths() -> list[Path]:
    """Auto-resolve config paths from environment and standard locations.

    Priority order:
    1. $MGIT_CONFIG (one or more paths separated by ``os.pathsep``)
    2. ~/.config/mgit (XDG-compliant)
    3. ~/.mgit

    When nothing exists ``~/.mgit`` is returned so the caller reports it.
    """
    env_config = os.environ.get("MGIT_CONFIG")
    if env_config:
        return [Path(os.path.expandvars(p)).expanduser() for p in env_config.split(os.pathsep) if p]

    xdg_path = Path.home() / ".config" / "mgit"
    if xdg_path.exists():
        return [xdg_path]

    return [Path.home() / ".mgit"]


def discover_config_files(path: Path, sink: WarningSink) -> list[Path]:
    """Get config files at ``path``: the file itself, or ``.conf`` files below it."""
    if path.is_file():
        return [path]
    if not path.is_dir():
        raise ConfigAccessError("path is not a file or directory", config_path=path)

    def walk_error(e: OSError) -> None:
        sink.warn(
            ConfigAccessError("failure when walking directory", cause=str(e), config_path=path)
        )

    files = []
    for dirpath, dirnames, filenames in os.walk(path, onerror=walk_error):
        dirnames.sort()
        for filename in sorted(filenames):
            candidate = Path(dirpath) / filename
            if candidate.suffix == CONFIG_EXTENSION and candidate.is_file():
                files.append(candidate)
    return files


def parse_config_file(path: Path) -> list[RawRecord]:
    """Parse one config file into raw repository records."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigAccessError("failed to read file", cause=str(e), config_path=path) from e

    parser = configparser.ConfigParser(interpolation=None, strict=True)
    try:
        parser.read_string(text, source=str(path))
    except configparser.Error as e:
        raise ConfigParseError("failed to parse file", cause=str(e), config_path=path) from e

    defaults = dict(parser.defaults())
    return [
        RawRecord(
            config_path=path,
            stem=path.stem,
            section=section,
            settings=dict(parser.items(section)),
            defaults=defaults,
        )
        for section in parser.sections()
    ]


def read_config(paths: Iterable[Path | str], sink: WarningSink) -> list[RawRecord]:
    """Read every config path, reporting problems to ``sink``.

    Records are returned in discovery order: config paths in the order
    given, files in sorted walk order, sections in file order.
    """
    records: list[RawRecord] = []
    for raw_path in paths:
        path = Path(os.path.expandvars(str(raw_path))).expanduser().absolute()
        try:
            files = discover_config_files(path, sink)
        except MgitError as e:
            sink.warn(e)
            continue

        for config_file in files:
            try:
                file_records = parse_config_file(config_file)
            except MgitError as e:
                sink.warn(e)
                continue
            logger.debug("read %d repositories from %s", len(file_records), config_file)
            records.extend(file_records)
    return records
