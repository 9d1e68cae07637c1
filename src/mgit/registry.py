"""Repository registry: validated repositories, their groups and tags."""

from __future__ import annotations

import os
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path

from .backend import RepositoryBackend
from .config import COMMENT_KEY, GROUP_KEY, NAME_KEY, SYMBOL_KEY, TAGS_KEY, RawRecord
from .control import WarningSink
from .errors import EmptyRegistryError, MgitError, ValidationError

DEFAULT_SYMBOL = "•"
ROOT_NAME = "<root>"


# =============================================================================
# Domain Models
# =============================================================================


@dataclass(frozen=True)
class RepositoryEntry:
    """A configured, validated repository."""

    path: Path
    name: str
    symbol: str = DEFAULT_SYMBOL
    tags: frozenset[str] = frozenset()
    group: str = ""
    config_path: Path | None = None
    declared_path: str = ""
    comment: str = ""

    @property
    def sort_key(self) -> tuple[str, str]:
        return self.name, str(self.path)

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.name,
            "symbol": self.symbol,
            "tags": sorted(self.tags),
            "group": self.group,
            "config_path": str(self.config_path) if self.config_path else None,
            "declared_path": self.declared_path,
            "comment": self.comment,
        }


@dataclass
class Group:
    """Repositories introduced by one or more config files under one name."""

    name: str
    symbol: str | None = None
    config_paths: list[Path] = field(default_factory=list)
    entries: list[RepositoryEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "config_paths": [str(p) for p in self.config_paths],
            "repositories": [str(e.path) for e in sorted(self.entries, key=lambda e: e.sort_key)],
        }


@dataclass(frozen=True)
class Registry:
    """The set of configured repositories, read-only once built."""

    entries: tuple[RepositoryEntry, ...]
    groups: Mapping[str, Group]
    tag_index: Mapping[str, frozenset[RepositoryEntry]]

    def __len__(self) -> int:
        return len(self.entries)

    def by_tags(self, tags: Iterable[str] = ()) -> list[RepositoryEntry]:
        """Get entries carrying any of ``tags`` (all entries if none), sorted by name."""
        wanted = set(tags)
        if not wanted:
            selected: Iterable[RepositoryEntry] = self.entries
        else:
            selected = {e for tag in wanted for e in self.tag_index.get(tag, ())}
        return sorted(selected, key=lambda e: e.sort_key)

    def tags(self) -> list[str]:
        return sorted(self.tag_index)


# =============================================================================
# Path Resolution
# =============================================================================


def resolve_repo_path(declared: str, config_path: Path) -> Path:
    """Resolve a declared repository path to a canonical absolute path.

    ``~`` and ``~user`` are expanded, relative paths are taken relative to
    the directory of the declaring config file.
    """
    path_str = os.path.expanduser(declared)
    if path_str.startswith("~"):
        user = declared[1:].split("/", 1)[0]
        raise ValidationError(
            "failed to resolve repo path",
            cause=f"failed to look up user info for username '{user}'",
            config_path=config_path,
            repo_path=declared,
        )
    path = Path(path_str)
    if not path.is_absolute():
        path = config_path.parent / path
    try:
        return path.resolve(strict=True)
    except (OSError, RuntimeError) as e:
        raise ValidationError(
            "failed to resolve repo path",
            cause=str(e),
            config_path=config_path,
            repo_path=declared,
        ) from e


def default_name(declared: str) -> str:
    """Get the default display name: the final component of the declared path."""
    stripped = declared.rstrip("/")
    if not stripped:
        return ROOT_NAME
    return Path(stripped).name or stripped


# =============================================================================
# Registry Builder
# =============================================================================


class RegistryBuilder:
    """Turns raw config records into a ``Registry``."""

    def __init__(self, backend: RepositoryBackend):
        self.backend = backend
        self.warnings: list[MgitError] = []
        self._entries: dict[Path, RepositoryEntry] = {}
        self._groups: dict[str, Group] = {}
        self._inherits_symbol: set[Path] = set()

    def add(self, record: RawRecord) -> RepositoryEntry | None:
        """Validate and add one record; problems are collected as warnings."""
        try:
            entry = self._validate(record)
        except ValidationError as e:
            self.warnings.append(e)
            return None
        self._entries[entry.path] = entry
        if self._own_symbol(record) is None:
            self._inherits_symbol.add(entry.path)
        self._group_for(record).entries.append(entry)
        return entry

    def _validate(self, record: RawRecord) -> RepositoryEntry:
        path = resolve_repo_path(record.section, record.config_path)

        def invalid(message: str, cause: str = "") -> ValidationError:
            return ValidationError(
                message, cause=cause, config_path=record.config_path, repo_path=record.section
            )

        if not path.is_dir():
            raise invalid("repo path is not a directory", str(path))
        if not os.access(path, os.R_OK | os.X_OK):
            raise invalid("repo path is not accessible", str(path))
        existing = self._entries.get(path)
        if existing is not None:
            raise invalid(
                "repo is already configured (ignoring new definition)",
                f"first configured in {existing.config_path}",
            )
        if not self.backend.is_repository(path):
            raise invalid("failed to open repository", f"{path} is not a git repository")

        settings = record.settings
        return RepositoryEntry(
            path=path,
            name=settings.get(NAME_KEY) or default_name(record.section),
            symbol=settings.get(SYMBOL_KEY) or DEFAULT_SYMBOL,
            tags=frozenset(settings.get(TAGS_KEY, "").split()),
            group=self._group_name(record),
            config_path=record.config_path,
            declared_path=record.section,
            comment=settings.get(COMMENT_KEY, ""),
        )

    @staticmethod
    def _group_name(record: RawRecord) -> str:
        return record.settings.get(GROUP_KEY) or record.stem

    @staticmethod
    def _own_symbol(record: RawRecord) -> str | None:
        """The symbol set in the record's own section, if it differs from the file default."""
        symbol = record.settings.get(SYMBOL_KEY)
        if symbol is None or symbol == record.defaults.get(SYMBOL_KEY):
            return None
        return symbol

    def _group_for(self, record: RawRecord) -> Group:
        name = self._group_name(record)
        group = self._groups.get(name)
        if group is None:
            group = self._groups[name] = Group(name=name)
        if record.config_path not in group.config_paths:
            self._merge_group_settings(group, record)
            group.config_paths.append(record.config_path)
        return group

    def _merge_group_settings(self, group: Group, record: RawRecord) -> None:
        symbol = record.defaults.get(SYMBOL_KEY)
        if symbol is None:
            return
        if group.symbol is not None and group.symbol != symbol:
            self.warnings.append(
                ValidationError(
                    f"group '{group.name}' symbol redefined (using latest definition)",
                    cause=f"previously '{group.symbol}' in {group.config_paths[-1]}",
                    config_path=record.config_path,
                )
            )
        group.symbol = symbol

    def _apply_group_symbols(self) -> None:
        """Give entries without a symbol of their own their group's final symbol."""
        for path in self._inherits_symbol:
            entry = self._entries[path]
            symbol = self._groups[entry.group].symbol
            if symbol is not None and symbol != entry.symbol:
                self._entries[path] = replace(entry, symbol=symbol)
        for group in self._groups.values():
            group.entries = [self._entries[e.path] for e in group.entries]

    def build(self) -> Registry:
        if not self._entries:
            raise EmptyRegistryError()
        self._apply_group_symbols()
        tag_index: dict[str, set[RepositoryEntry]] = defaultdict(set)
        for entry in self._entries.values():
            for tag in entry.tags:
                tag_index[tag].add(entry)
        return Registry(
            entries=tuple(sorted(self._entries.values(), key=lambda e: e.sort_key)),
            groups=dict(self._groups),
            tag_index={tag: frozenset(entries) for tag, entries in tag_index.items()},
        )


def build_registry(
    records: Iterable[RawRecord],
    backend: RepositoryBackend,
    sink: WarningSink | None = None,
) -> tuple[Registry, list[MgitError]]:
    """Build the registry from raw records.

    Returns the registry and the warnings produced while building it; the
    warnings are also forwarded to ``sink`` when one is given. Raises
    ``EmptyRegistryError`` when no repository survives validation,
    regardless of warning policy.
    """
    builder = RegistryBuilder(backend)
    for record in records:
        builder.add(record)
    if sink is not None:
        for warning in builder.warnings:
            sink.warn(warning)
    return builder.build(), builder.warnings


# =============================================================================
# Tag Filter
# =============================================================================


def select(registry: Registry, tags: Iterable[str] = ()) -> list[RepositoryEntry]:
    """Get entries matching any of ``tags``, sorted by name then path."""
    return registry.by_tags(tags)


def tag_sections(
    registry: Registry, tags: Iterable[str] = ()
) -> list[tuple[str | None, list[RepositoryEntry]]]:
    """Split the selection into one labelled section per requested tag.

    Without tags there is a single unlabelled section with every entry. A
    repository carrying several requested tags appears in each section.
    """
    requested = list(dict.fromkeys(tags))
    if not requested:
        return [(None, registry.by_tags())]
    return [(tag, registry.by_tags([tag])) for tag in requested]


def group_sections(
    registry: Registry, tags: Iterable[str] = ()
) -> list[tuple[str | None, list[RepositoryEntry]]]:
    """Split the selection into one section per config group, sorted by group name."""
    selected = set(registry.by_tags(tags))
    sections = []
    for name in sorted(registry.groups):
        entries = sorted(
            (e for e in registry.groups[name].entries if e in selected), key=lambda e: e.sort_key
        )
        if entries:
            sections.append((name, entries))
    return sections
