"""Directory walking that honours ignore files and skips hidden entries.

The walk applies these standard filters:

* entries whose name starts with ``.`` are hidden and skipped, unless an
  ignore rule whitelists them;
* ``.ignore`` files are honoured in every directory;
* ``.gitignore`` files and ``.git/info/exclude`` are honoured only inside
  a git repository, i.e. when a ``.git`` entry exists in the walked
  directory or one of its ancestors. Rules from above the repository root
  are not applied.

Rules in deeper directories win over rules in shallower ones, ``.ignore``
rules win over git rules, and within one file the last matching line wins.
Symbolic links are reported but not followed. Entries are yielded
depth-first, with the names in each directory in sorted order.
"""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Sequence

from mcpkit.globmatch import Glob, GlobError

_IGNORE_FILE = ".ignore"
_GITIGNORE_FILE = ".gitignore"
_GIT_DIR = ".git"


@dataclass(frozen=True)
class WalkEntry:
    """One entry produced by :func:`walk`."""

    path: Path
    depth: int
    is_dir: bool
    is_file: bool
    is_symlink: bool

    @property
    def name(self) -> str:
        return self.path.name


# A compiled pattern component; ``None`` stands for ``**``.
_Component = Optional[Glob]


@dataclass(frozen=True)
class _Rule:
    components: tuple[_Component, ...]
    negated: bool
    dir_only: bool

    def matches(self, parts: Sequence[str], is_dir: bool) -> bool:
        if self.dir_only and not is_dir:
            return False
        return _match_parts(self.components, parts)


def _match_parts(pattern: tuple[_Component, ...], parts: Sequence[str]) -> bool:
    def go(i: int, j: int) -> bool:
        if i == len(pattern):
            return j == len(parts)
        component = pattern[i]
        if component is None:
            if i == len(pattern) - 1:
                # A trailing "**" matches everything inside, but not the directory itself.
                return j < len(parts)
            return any(go(i + 1, k) for k in range(j, len(parts) + 1))
        return j < len(parts) and component.is_match(parts[j]) and go(i + 1, j + 1)

    return go(0, 0)


def _parse_line(line: str) -> _Rule | None:
    stripped = line.rstrip()
    if stripped != line and stripped.endswith("\\"):
        stripped += " "
    line = stripped
    if not line or line.startswith("#"):
        return None
    negated = line.startswith("!")
    if negated:
        line = line[1:]
    dir_only = line.endswith("/")
    if dir_only:
        line = line[:-1]
    if not line:
        return None
    anchored = "/" in line
    if line.startswith("/"):
        line = line[1:]
    pieces = [piece for piece in line.split("/") if piece]
    if not pieces:
        return None
    try:
        components = tuple(None if piece == "**" else Glob(piece) for piece in pieces)
    except GlobError:
        return None
    if not anchored:
        components = (None,) + components
    return _Rule(components, negated, dir_only)


def _read_rules(path: Path) -> tuple[_Rule, ...]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return ()
    return tuple(rule for rule in map(_parse_line, text.splitlines()) if rule is not None)


def _decide(rules: tuple[_Rule, ...], parts: Sequence[str], is_dir: bool) -> bool | None:
    """True if ignored, False if whitelisted, None if no rule applies."""
    for rule in reversed(rules):
        if rule.matches(parts, is_dir):
            return not rule.negated
    return None


@dataclass(frozen=True)
class _Level:
    directory: Path
    ignore_rules: tuple[_Rule, ...] = field(default=())
    git_rules: tuple[_Rule, ...] = field(default=())
    exclude_rules: tuple[_Rule, ...] = field(default=())
    has_git: bool = False

    @classmethod
    def load(cls, directory: Path) -> "_Level":
        git = directory / _GIT_DIR
        has_git = os.path.lexists(git)
        return cls(
            directory=directory,
            ignore_rules=_read_rules(directory / _IGNORE_FILE),
            git_rules=_read_rules(directory / _GITIGNORE_FILE),
            exclude_rules=_read_rules(git / "info" / "exclude") if git.is_dir() else (),
            has_git=has_git,
        )

    def relative_parts(self, path: Path) -> tuple[str, ...] | None:
        try:
            return path.relative_to(self.directory).parts
        except ValueError:
            return None


def _ignore_decision(path: Path, is_dir: bool, levels: Sequence[_Level]) -> bool | None:
    any_git = any(level.has_git for level in levels)
    m_ignore: bool | None = None
    m_git: bool | None = None
    m_exclude: bool | None = None
    saw_git = False
    for level in reversed(levels):
        parts = level.relative_parts(path)
        if parts:
            if m_ignore is None:
                m_ignore = _decide(level.ignore_rules, parts, is_dir)
            if any_git and not saw_git:
                if m_git is None:
                    m_git = _decide(level.git_rules, parts, is_dir)
                if m_exclude is None:
                    m_exclude = _decide(level.exclude_rules, parts, is_dir)
        saw_git = saw_git or level.has_git
    for decision in (m_ignore, m_git, m_exclude):
        if decision is not None:
            return decision
    return None


def _is_skipped(path: Path, is_dir: bool, levels: Sequence[_Level]) -> bool:
    decision = _ignore_decision(path, is_dir, levels)
    if decision is not None:
        return decision
    return path.name.startswith(".")


def _ancestor_levels(root: Path) -> list[_Level]:
    return [_Level.load(parent) for parent in reversed(root.parents)]


def _walk_dir(
    directory: Path, depth: int, levels: list[_Level], max_depth: int | None
) -> Iterator[WalkEntry]:
    with os.scandir(directory) as scanner:
        entries = sorted(scanner, key=lambda e: e.name)
    for entry in entries:
        path = directory / entry.name
        is_dir = entry.is_dir(follow_symlinks=False)
        if _is_skipped(path, is_dir, levels):
            continue
        yield WalkEntry(
            path=path,
            depth=depth,
            is_dir=is_dir,
            is_file=entry.is_file(follow_symlinks=False),
            is_symlink=entry.is_symlink(),
        )
        if is_dir and (max_depth is None or depth < max_depth):
            yield from _walk_dir(path, depth + 1, levels + [_Level.load(path)], max_depth)


def walk(root: str | os.PathLike[str], max_depth: int | None = None) -> Iterator[WalkEntry]:
    """Yield ``root`` (depth 0) and then the entries beneath it that pass the filters.

    ``max_depth`` limits how deep the walk goes; ``1`` yields only the
    direct children. Raises :class:`OSError` if ``root`` or a directory
    below it cannot be read.
    """
    root_path = Path(os.path.abspath(os.fspath(root)))
    info = os.stat(root_path)
    is_dir = stat.S_ISDIR(info.st_mode)
    yield WalkEntry(
        path=root_path,
        depth=0,
        is_dir=is_dir,
        is_file=stat.S_ISREG(info.st_mode),
        is_symlink=os.path.islink(root_path),
    )
    if not is_dir or max_depth == 0:
        return
    levels = _ancestor_levels(root_path)
    levels.append(_Level.load(root_path))
    yield from _walk_dir(root_path, 1, levels, max_depth)