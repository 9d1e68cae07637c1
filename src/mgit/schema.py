"""MCP-compatible tool schema for AI agents."""

from __future__ import annotations

from ._version import __version__

_COLOR_ENUM = ["white", "green", "yellow", "red"]

_TAG_PROPERTY = {
    "type": "array",
    "items": {"type": "string"},
    "description": "Limit to repositories carrying any of these tags (-t/--tag, repeatable)",
}

_JSON_PROPERTY = {
    "type": "boolean",
    "description": "Output as JSON for machine parsing",
    "default": False,
}

_REPORT_SCHEMA = {
    "type": "object",
    "properties": {
        "operation": {"type": "string", "enum": ["status", "pull"]},
        "sections": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "label": {"type": ["string", "null"]},
                    "repositories": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "path": {"type": "string"},
                                "name": {"type": "string"},
                                "tags": {"type": "array", "items": {"type": "string"}},
                                "group": {"type": "string"},
                                "color": {"type": "string", "enum": _COLOR_ENUM},
                                "pristine": {"type": ["boolean", "null"]},
                                "worktree": {
                                    "type": ["object", "null"],
                                    "properties": {
                                        "staged": {"type": "integer"},
                                        "modified": {"type": "integer"},
                                        "untracked": {"type": "integer"},
                                    },
                                },
                                "error": {"type": "string"},
                                "remotes": {
                                    "type": "array",
                                    "items": {
                                        "type": "object",
                                        "properties": {
                                            "name": {"type": "string"},
                                            "fetched": {"type": ["boolean", "null"]},
                                            "color": {"type": "string"},
                                            "branches": {
                                                "type": "array",
                                                "items": {
                                                    "type": "object",
                                                    "properties": {
                                                        "action": {
                                                            "type": "string",
                                                            "enum": [
                                                                "no_op",
                                                                "fast_forward",
                                                                "skip_ahead",
                                                                "skip_diverged",
                                                                "skip_dirty",
                                                            ],
                                                        },
                                                        "applied": {"type": "boolean"},
                                                        "error": {"type": "string"},
                                                    },
                                                },
                                            },
                                        },
                                    },
                                },
                            },
                        },
                    },
                },
            },
        },
        "summary": {
            "type": "object",
            "properties": {
                "total": {"type": "integer"},
                "white": {"type": "integer"},
                "green": {"type": "integer"},
                "yellow": {"type": "integer"},
                "red": {"type": "integer"},
                "fetch_failed": {"type": "integer"},
                "fast_forwarded": {"type": "integer"},
                "dirty": {"type": "integer"},
            },
        },
    },
}


def get_tool_schema() -> dict:
    """Generate MCP-compatible tool schema for AI agents."""
    return {
        "name": "mgit",
        "version": __version__,
        "description": "Small program for managing multiple git repositories. Reports which configured repositories have local changes or branches out of sync with their upstreams, and fetches and fast-forwards tracking branches when that is safe. Never merges, rebases or pushes.",
        "usage": "mgit [-c PATH]... [-W ignore|print|fatal] <command> [options]",
        "tools": [
            {
                "name": "config",
                "description": "Print the configured repositories with their names, symbols, tags and groups.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "tag": _TAG_PROPERTY,
                        "verbose": {
                            "type": "boolean",
                            "description": "Also show defaulted values",
                            "default": False,
                        },
                        "json": _JSON_PROPERTY,
                    },
                    "required": [],
                },
            },
            {
                "name": "status",
                "description": "Classify repositories from locally known state, without fetching. white: up to date; green: a branch can be fast-forwarded; yellow: a branch is ahead; red: diverged, dirty checked-out branch that is behind, or an error.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "tag": _TAG_PROPERTY,
                        "verbose": {
                            "type": "boolean",
                            "description": "List every repository, even if up to date",
                            "default": False,
                        },
                        "by_group": {
                            "type": "boolean",
                            "description": "Group output by configuration group",
                            "default": False,
                        },
                        "json": _JSON_PROPERTY,
                    },
                    "required": [],
                },
                "outputSchema": _REPORT_SCHEMA,
                "examples": [
                    {
                        "description": "What needs attention across all repositories",
                        "command": "mgit status --json",
                    },
                    {
                        "description": "Status of repositories tagged 'work'",
                        "command": "mgit status -t work --json",
                    },
                ],
            },
            {
                "name": "pull",
                "description": "Fetch every remote of the selected repositories and fast-forward tracking branches that are strictly behind. A checked-out branch is only moved when the working tree is clean. Diverged and ahead branches are left alone.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "tag": _TAG_PROPERTY,
                        "jobs": {
                            "type": "integer",
                            "description": "Maximum number of concurrent fetches",
                            "default": 8,
                            "minimum": 1,
                        },
                        "verbose": {
                            "type": "boolean",
                            "description": "List every repository, even if nothing happened",
                            "default": False,
                        },
                        "by_group": {
                            "type": "boolean",
                            "description": "Group output by configuration group",
                            "default": False,
                        },
                        "json": _JSON_PROPERTY,
                    },
                    "required": [],
                },
                "outputSchema": _REPORT_SCHEMA,
            },
        ],
        "globalOptions": {
            "--config, -c": "Configuration file or directory (repeatable)",
            "--warning, -W": "Action on warnings: ignore, print (default) or fatal",
            "--debug": "Log git invocations to stderr",
        },
        "configAutoResolution": {
            "description": "When --config is not specified, mgit searches for configuration",
            "priority": [
                "$MGIT_CONFIG environment variable (paths separated by the OS path separator)",
                "~/.config/mgit (XDG-compliant)",
                "~/.mgit",
            ],
        },
        "configFileFormat": {
            "description": "INI files; each section header is a repository path, relative paths are relative to the file",
            "keys": ["name", "comment", "symbol", "tags", "group"],
            "example": "[DEFAULT]\ngroup = work\n\n[~/src/mgit]\nname = mgit\ntags = tools rust",
        },
        "notes": [
            "All commands support --json for machine-readable output",
            "Exit code is 1 when no repository is configured, or when -W fatal is set and any warning was recorded",
        ],
    }
