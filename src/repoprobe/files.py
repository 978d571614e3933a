"""Bounded, read-only access to an untrusted checkout."""

import fnmatch
import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from repoprobe.exceptions import ResourceLimitError
from repoprobe.models import Diagnostic
from repoprobe.settings import Settings, get_settings

logger = logging.getLogger(__name__)


# Directories to skip during recursive file operations
SKIP_DIRS = frozenset({
    ".git",
    ".svn",
    ".hg",
    "node_modules",
    "vendor",
    ".venv",
    "venv",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".ruff_cache",
    ".tox",
    "dist",
    "build",
    ".next",
    ".nuxt",
    ".output",
    "coverage",
    ".turbo",
    ".cache",
    "target",
})

_GLOB_CHARS = frozenset("*?[")


@dataclass(slots=True)
class ScanContext:
    """Repository root, scan limits and the diagnostics collected so far."""

    repo_root: Path
    max_file_size: int = 512 * 1024
    max_walk_depth: int = 8
    max_walk_files: int = 5000
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @classmethod
    def from_settings(cls, repo_root: Path, settings: Settings | None = None) -> "ScanContext":
        settings = settings or get_settings()
        return cls(
            repo_root=repo_root.resolve(),
            max_file_size=settings.max_file_size,
            max_walk_depth=settings.max_walk_depth,
            max_walk_files=settings.max_walk_files,
        )

    def record(self, stage: str, message: str, path: Path | str | None = None) -> None:
        """Record a non-fatal problem."""
        if isinstance(path, Path):
            path = self.relative(path)
        self.diagnostics.append(Diagnostic(stage=stage, message=message, path=path))

    def relative(self, path: Path) -> str:
        """Path relative to the repo root, '.' for the root itself."""
        try:
            rel = path.resolve().relative_to(self.repo_root)
        except ValueError:
            return str(path)
        return "." if str(rel) == "." else rel.as_posix()

    def contains(self, path: Path) -> bool:
        return path.resolve().is_relative_to(self.repo_root)


def _read_bounded(ctx: ScanContext, path: Path) -> str:
    size = path.stat().st_size
    if size > ctx.max_file_size:
        raise ResourceLimitError(f"{size} bytes exceeds limit of {ctx.max_file_size}")
    return path.read_text(encoding="utf-8", errors="replace")


def read_text(ctx: ScanContext, path: Path) -> str | None:
    """Read a file inside the checkout. Returns None if absent, too big or outside the root."""
    if not path.is_file():
        return None
    if not ctx.contains(path):
        logger.warning("Skipping %s: resolves outside repository", path)
        ctx.record("files", "symlink escapes repository root", path)
        return None
    try:
        return _read_bounded(ctx, path)
    except ResourceLimitError as e:
        logger.warning("Skipping %s: %s", path, e)
        ctx.record("files", f"file skipped: {e}", path)
        return None
    except OSError as e:
        logger.debug("Cannot read %s: %s", path, e)
        return None


def read_json(ctx: ScanContext, path: Path) -> Any | None:
    """Parse a JSON file. Malformed content is treated as absent."""
    content = read_text(ctx, path)
    if content is None:
        return None
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        logger.warning("Malformed JSON in %s: %s", path, e)
        ctx.record("files", f"malformed JSON: {e.msg}", path)
        return None


def read_json_object(ctx: ScanContext, path: Path) -> dict[str, Any] | None:
    """Parse a JSON file whose top level must be an object."""
    data = read_json(ctx, path)
    return data if isinstance(data, dict) else None


def read_yaml(ctx: ScanContext, path: Path) -> Any | None:
    """Parse a YAML file with the safe loader. Malformed content is treated as absent."""
    content = read_text(ctx, path)
    if content is None:
        return None
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.warning("Malformed YAML in %s: %s", path, e)
        ctx.record("files", "malformed YAML", path)
        return None


def read_toml(ctx: ScanContext, path: Path) -> dict[str, Any] | None:
    content = read_text(ctx, path)
    if content is None:
        return None
    try:
        return tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        logger.warning("Malformed TOML in %s: %s", path, e)
        ctx.record("files", "malformed TOML", path)
        return None


def find_file(directory: Path, *names: str) -> Path | None:
    """Return the first of names that exists in directory, matched case-insensitively.

    Exact-case matches win over case-insensitive ones.
    """
    for name in names:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    try:
        entries = sorted(directory.iterdir())
    except OSError:
        return None
    wanted = [name.lower() for name in names]
    for name in wanted:
        for entry in entries:
            if entry.name.lower() == name and entry.is_file():
                return entry
    return None


def _dir_key(path: Path) -> tuple[int, int] | None:
    try:
        stat = path.stat()
    except OSError:
        return None
    return (stat.st_dev, stat.st_ino)


def iter_files(
    ctx: ScanContext,
    root: Path,
    suffixes: frozenset[str] | None = None,
    max_depth: int | None = None,
) -> list[Path]:
    """Walk root depth-first in sorted order, skipping heavy directories.

    Bounded by depth and file count; every directory is visited at most once
    (tracked by device and inode) so symlink cycles terminate.
    """
    depth_limit = ctx.max_walk_depth if max_depth is None else max_depth
    files: list[Path] = []
    visited: set[tuple[int, int]] = set()
    truncated = False

    def walk(directory: Path, depth: int) -> None:
        nonlocal truncated
        key = _dir_key(directory)
        if key is None or key in visited:
            return
        visited.add(key)

        try:
            entries = sorted(directory.iterdir())
        except OSError:
            return

        for entry in entries:
            if len(files) >= ctx.max_walk_files:
                truncated = True
                return
            if entry.is_symlink() and not ctx.contains(entry):
                continue
            if entry.is_dir():
                if entry.name in SKIP_DIRS or entry.name.startswith("."):
                    continue
                if depth < depth_limit:
                    walk(entry, depth + 1)
            elif entry.is_file():
                if suffixes is None or entry.suffix.lower() in suffixes:
                    files.append(entry)

    walk(root, 0)
    if truncated:
        logger.warning("Walk of %s stopped after %d files", root, ctx.max_walk_files)
        ctx.record("files", f"directory walk truncated at {ctx.max_walk_files} files", root)
    return files


def _child_dirs(ctx: ScanContext, directory: Path) -> list[Path]:
    try:
        entries = sorted(directory.iterdir())
    except OSError:
        return []
    return [
        e
        for e in entries
        if e.is_dir()
        and not e.name.startswith(".")
        and e.name not in SKIP_DIRS
        and ctx.contains(e)
    ]


def expand_workspace_glob(ctx: ScanContext, pattern: str) -> list[Path]:
    """Expand a workspace pattern (`apps/*`, `packages/**`, `services/api`) to directories.

    Only directories inside the repository are returned, sorted, without duplicates.
    """
    pattern = pattern.strip().strip("/")
    if pattern.startswith("./"):
        pattern = pattern[2:]
    if not pattern or pattern.startswith("!") or ".." in pattern.split("/"):
        return []

    current = [ctx.repo_root]
    for segment in pattern.split("/"):
        next_level: list[Path] = []
        if segment == "**":
            visited: set[tuple[int, int]] = set()
            stack = [(d, 0) for d in current]
            while stack:
                directory, depth = stack.pop()
                key = _dir_key(directory)
                if key is None or key in visited:
                    continue
                visited.add(key)
                next_level.append(directory)
                if depth < ctx.max_walk_depth:
                    stack.extend((child, depth + 1) for child in _child_dirs(ctx, directory))
        elif any(ch in _GLOB_CHARS for ch in segment):
            for directory in current:
                next_level.extend(
                    child for child in _child_dirs(ctx, directory)
                    if fnmatch.fnmatch(child.name, segment)
                )
        else:
            for directory in current:
                child = directory / segment
                if child.is_dir() and ctx.contains(child):
                    next_level.append(child)
        current = next_level

    unique = {path.resolve(): path for path in current}
    return [unique[key] for key in sorted(unique)]
