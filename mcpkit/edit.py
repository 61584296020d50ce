"""An MCP server exposing file-system tools confined to one workspace directory."""

from __future__ import annotations

import base64
import glob as _globlib
import os
import re
from pathlib import Path
from typing import Any, Iterable, Iterator

from mcpkit.globmatch import Glob, GlobError, GlobSet
from mcpkit.protocol import (
    CallToolResult,
    McpError,
    McpServer,
    Tool,
    image_content,
    internal_error,
    invalid_params,
    text_content,
)
from mcpkit.replace import ReplacementError, replace_in_content
from mcpkit.walk import walk

DEFAULT_MOUNT_POINT = "/home/user/workspace"

_OUTSIDE_WORKSPACE = "path must be within the workspace"

_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "pdf": "application/pdf",
}

_DEFAULT_EXCLUDES = ("**/node_modules/**", "**/.git/**", "**/target/**")


def _normalize(path: Path) -> Path:
    """Remove ``.`` and ``..`` components lexically, without touching the disk."""
    anchor = path.anchor
    parts = path.parts[1:] if anchor else path.parts
    stack: list[str] = []
    for part in parts:
        if part == "..":
            if stack:
                stack.pop()
        elif part != ".":
            stack.append(part)
    return Path(anchor, *stack)


def _canonicalize(path: Path) -> Path:
    return Path(os.path.realpath(path, strict=True))


def _mime_type(path: Path) -> str | None:
    return _MIME_TYPES.get(path.suffix[1:].lower())


def _relative(path: Path, base: Path) -> str:
    try:
        rel = path.relative_to(base)
    except ValueError:
        return str(path)
    return "/".join(rel.parts)


def _split_lines(data: bytes) -> Iterator[bytes]:
    start = 0
    while start < len(data):
        end = data.find(b"\n", start)
        end = len(data) if end == -1 else end + 1
        yield data[start:end]
        start = end


def _text_lines(content: str) -> list[str]:
    pieces = content.split("\n")
    if pieces and pieces[-1] == "":
        pieces.pop()
    last = len(pieces) - 1
    ends_with_newline = content.endswith("\n")
    lines = []
    for index, piece in enumerate(pieces):
        had_newline = index < last or ends_with_newline
        if had_newline and piece.endswith("\r"):
            piece = piece[:-1]
        lines.append(piece)
    return lines


def _lenient_globs(patterns: Iterable[str]) -> list[Glob]:
    globs = []
    for pattern in patterns:
        try:
            globs.append(Glob(pattern))
        except GlobError:
            continue
    return globs


def _strict_globs(patterns: Iterable[str], kind: str) -> GlobSet:
    globs = []
    for pattern in patterns:
        try:
            globs.append(Glob(pattern))
        except GlobError as exc:
            raise invalid_params(f"invalid {kind} glob: {exc}") from exc
    return GlobSet(globs)


def _schema(properties: dict[str, Any], required: Iterable[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": list(required)}


def _string(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def _optional(kind: str, description: str, default: Any = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": [kind, "null"], "description": description, "default": default}
    return schema


def _string_list(description: str) -> dict[str, Any]:
    return {"type": ["array", "null"], "items": {"type": "string"}, "description": description, "default": None}


class FsServer(McpServer):
    """Read, search and optionally modify files below a workspace root."""

    def __init__(
        self,
        workspace_root: str | os.PathLike[str],
        mount_point: str | os.PathLike[str] = DEFAULT_MOUNT_POINT,
    ) -> None:
        super().__init__("mcp-edit")
        self.workspace_root = _canonicalize(Path(workspace_root))
        self.mount_point = os.fspath(mount_point)
        self.modification_disabled = False
        self._register_tools()

    def _register_tools(self) -> None:
        router = self.tool_router
        router.add(
            Tool(
                "replace",
                "Replace text in a file. By default replaces one occurrence of `old_string`; "
                "set `expected_replacements` to require a specific number of matches.",
                self.replace,
                _schema(
                    {
                        "file_path": _string("Path to the file to modify."),
                        "old_string": _string("Text to search for in the file."),
                        "new_string": _string("Replacement text."),
                        "expected_replacements": _optional(
                            "integer", "Optional. Number of replacements required. Defaults to 1.", 1
                        ),
                    },
                    ["file_path", "old_string", "new_string"],
                ),
            )
        )
        router.add(
            Tool(
                "list_directory",
                "List the contents of a directory.",
                self.list_directory,
                _schema(
                    {
                        "path": _string("Directory path to list."),
                        "ignore": _string_list("Optional. Glob patterns to ignore."),
                    },
                    ["path"],
                ),
            )
        )
        router.add(
            Tool(
                "read_file",
                "Read a file.",
                self.read_file,
                _schema(
                    {
                        "path": _string("Path to the file to read."),
                        "offset": _optional(
                            "integer", "Optional. Line offset to start reading from. Defaults to 0.", 0
                        ),
                        "limit": _optional(
                            "integer",
                            "Optional. Maximum number of lines to read. Reads to end of file when omitted.",
                        ),
                    },
                    ["path"],
                ),
            )
        )
        router.add(
            Tool(
                "read_many_files",
                "Read multiple files and concatenate their contents.",
                self.read_many_files,
                _schema(
                    {
                        "paths": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Glob patterns of file paths to read.",
                        },
                        "include": _string_list("Optional. Additional include glob patterns."),
                        "exclude": _string_list("Optional. Additional exclude glob patterns."),
                        "recursive": _optional(
                            "boolean", "Optional. Recurse into directories. Defaults to true.", True
                        ),
                    },
                    ["paths"],
                ),
            )
        )
        router.add(
            Tool(
                "create_file",
                "Create a new file with the given content.",
                self.create_file,
                _schema(
                    {
                        "file_path": _string("Path where the file will be created."),
                        "content": _string("Content to write to the file."),
                    },
                    ["file_path", "content"],
                ),
            )
        )
        router.add(
            Tool(
                "glob",
                "Find files matching a glob pattern.",
                self.glob,
                _schema(
                    {
                        "pattern": _string("Glob pattern to match files."),
                        "path": _optional(
                            "string", "Optional. Directory to search within. Defaults to the workspace root."
                        ),
                        "case_sensitive": _optional(
                            "boolean", "Optional. Enable case-sensitive matching. Defaults to false.", False
                        ),
                    },
                    ["pattern"],
                ),
            )
        )
        router.add(
            Tool(
                "search_file_content",
                "Search for a regex pattern in files within a directory.",
                self.search_file_content,
                _schema(
                    {
                        "pattern": _string("Regex pattern to search for."),
                        "path": _optional(
                            "string", "Optional. Directory to search within. Defaults to the workspace root."
                        ),
                        "include": _optional("string", "Optional. Glob pattern for files to include."),
                    },
                    ["pattern"],
                ),
            )
        )

    def disable_modification_tools(self) -> None:
        """Withdraw the tools that change files."""
        self.modification_disabled = True
        self.tool_router.remove("replace")
        self.tool_router.remove("create_file")

    def display_path(self, path: str | os.PathLike[str]) -> str:
        """Show a path as the client sees it, below the mount point."""
        path = Path(path)
        try:
            rel = path.relative_to(self.workspace_root)
        except ValueError:
            return str(path)
        return os.path.join(self.mount_point, *(rel.parts or ("",)))

    def _join(self, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.workspace_root / candidate

    def _within(self, path: Path) -> bool:
        return path.is_relative_to(self.workspace_root)

    def _canonical_inside(self, normalized: Path) -> Path:
        if not self._within(normalized):
            raise invalid_params(_OUTSIDE_WORKSPACE)
        try:
            canonical = _canonicalize(normalized)
        except (OSError, RuntimeError):
            raise invalid_params(f"path '{self.display_path(normalized)}' does not exist") from None
        if not self._within(canonical):
            raise invalid_params(_OUTSIDE_WORKSPACE)
        return canonical

    def _resolve(self, path: str) -> Path:
        return self._canonical_inside(_normalize(self._join(path)))

    def _resolve_for_write(self, path: str) -> Path:
        joined = self._join(path)
        parent = joined.parent
        if parent == joined:
            raise invalid_params("file_path must have a parent directory")
        if joined.name in ("", ".."):
            raise invalid_params("file_path must name a file")
        return self._canonical_inside(_normalize(parent)) / joined.name

    def _check_modifiable(self, tool: str) -> None:
        if self.modification_disabled:
            raise RuntimeError(f"{tool} called when modification tools disabled")

    async def replace(
        self,
        file_path: str,
        old_string: str,
        new_string: str,
        expected_replacements: int | None = 1,
    ) -> CallToolResult:
        self._check_modifiable("replace")
        target = self._resolve(file_path)
        try:
            content = target.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise internal_error(f"failed to read file {self.display_path(target)}: {exc}") from exc
        try:
            updated = replace_in_content(content, old_string, new_string, expected_replacements)
        except ReplacementError as exc:
            raise invalid_params(str(exc)) from exc
        try:
            target.write_bytes(updated.encode("utf-8"))
        except OSError as exc:
            raise internal_error(f"failed to write file {self.display_path(target)}: {exc}") from exc
        return CallToolResult([text_content("Replaced text in file.")])

    async def list_directory(self, path: str, ignore: list[str] | None = None) -> CallToolResult:
        target = self._resolve(path)
        if not target.is_dir():
            raise internal_error(f"failed to read dir {self.display_path(target)}: not a directory")
        ignore_set = GlobSet(_lenient_globs(ignore or ()))
        entries: list[tuple[bool, str]] = []
        try:
            for entry in walk(target, max_depth=1):
                if entry.path == target or ignore_set.is_match(entry.name):
                    continue
                entries.append((entry.is_dir, entry.name))
        except OSError as exc:
            raise internal_error(f"walk error: {exc}") from exc
        entries.sort(key=lambda item: (not item[0], item[1]))
        listing = "\n".join(f"[DIR] {name}" if is_dir else name for is_dir, name in entries)
        output = f"Directory listing for {self.display_path(target)}:\n{listing}"
        return CallToolResult([text_content(output)])

    async def read_file(
        self, path: str, offset: int | None = 0, limit: int | None = None
    ) -> CallToolResult:
        target = self._resolve(path)
        try:
            data = target.read_bytes()
        except OSError as exc:
            raise internal_error(f"failed to read file {self.display_path(target)}: {exc}") from exc
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError:
            mime = _mime_type(target)
            if mime is not None:
                encoded = base64.b64encode(data).decode("ascii")
                return CallToolResult([image_content(encoded, mime)])
            return CallToolResult(
                [text_content(f"Cannot display content of binary file: {self.display_path(target)}")]
            )
        lines = _text_lines(content)
        start = offset or 0
        if start >= len(lines):
            return CallToolResult([text_content("")])
        end = len(lines) if limit is None else min(start + limit, len(lines))
        body = "\n".join(lines[start:end])
        if end < len(lines):
            body = (
                f"[File content truncated: showing lines {start + 1}-{end} "
                f"of {len(lines)} total lines...]\n{body}"
            )
        return CallToolResult([text_content(body)])

    def _collect_files(self, patterns: list[str], recursive: bool) -> list[Path]:
        found: set[Path] = set()
        for pattern in patterns:
            pattern_path = Path(pattern) if Path(pattern).is_absolute() else self.workspace_root / pattern
            for match in sorted(_globlib.glob(str(pattern_path), recursive=True)):
                try:
                    canonical = _canonicalize(Path(match))
                except (OSError, RuntimeError) as exc:
                    raise internal_error(f"failed to canonicalize path: {exc}") from exc
                if not self._within(canonical):
                    raise invalid_params(_OUTSIDE_WORKSPACE)
                if canonical.is_file():
                    found.add(canonical)
                elif canonical.is_dir():
                    try:
                        for entry in walk(canonical, max_depth=None if recursive else 1):
                            if not entry.is_file:
                                continue
                            found.add(_canonicalize(entry.path))
                    except (OSError, RuntimeError) as exc:
                        raise internal_error(f"walk error: {exc}") from exc
        return sorted(found)

    async def read_many_files(
        self,
        paths: list[str],
        include: list[str] | None = None,
        exclude: list[str] | None = None,
        recursive: bool | None = True,
    ) -> CallToolResult:
        if not paths:
            raise invalid_params("paths must not be empty")
        include_set = _strict_globs(include, "include") if include is not None else None
        exclude_set = _strict_globs([*(exclude or ()), *_DEFAULT_EXCLUDES], "exclude")
        files = self._collect_files(paths, True if recursive is None else recursive)

        text_parts: list[str] = []
        images: list[dict[str, Any]] = []
        for file in files:
            rel = _relative(file, self.workspace_root)
            if include_set is not None and not include_set.is_match(rel):
                continue
            if exclude_set.is_match(rel):
                continue
            user_path = self.display_path(file)
            try:
                data = file.read_bytes()
            except OSError as exc:
                raise internal_error(f"failed to read file {user_path}: {exc}") from exc
            try:
                content = data.decode("utf-8")
            except UnicodeDecodeError:
                mime = _mime_type(file)
                if mime is not None:
                    images.append(image_content(base64.b64encode(data).decode("ascii"), mime))
                else:
                    text_parts.append(f"===== {user_path} =====\n[binary file]\n\n")
                continue
            text_parts.append(f"===== {user_path} =====\n{content}\n\n")

        contents = list(images)
        text_output = "".join(text_parts)
        if text_output:
            contents.insert(0, text_content(text_output))
        return CallToolResult(contents)

    async def create_file(self, file_path: str, content: str) -> CallToolResult:
        self._check_modifiable("create_file")
        target = self._resolve_for_write(file_path)
        if target.exists():
            raise invalid_params(f"file {self.display_path(target)} already exists")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise internal_error(f"failed to create parent dirs: {exc}") from exc
        try:
            target.write_bytes(content.encode("utf-8"))
        except OSError as exc:
            raise internal_error(f"failed to create file {self.display_path(target)}: {exc}") from exc
        return CallToolResult([text_content(f"Created file: {self.display_path(target)}")])

    def _workspace_files(self, root: Path) -> Iterator[Path]:
        """Canonical paths of the regular files under ``root`` that lie inside the workspace."""
        try:
            for entry in walk(root):
                if not entry.is_file:
                    continue
                try:
                    canonical = _canonicalize(entry.path)
                except (OSError, RuntimeError):
                    continue
                if self._within(canonical):
                    yield canonical
        except OSError as exc:
            raise internal_error(f"walk error: {exc}") from exc

    async def glob(
        self, pattern: str, path: str | None = None, case_sensitive: bool | None = False
    ) -> CallToolResult:
        root = self._resolve(path) if path is not None else self.workspace_root
        try:
            matcher = Glob(pattern, case_insensitive=not case_sensitive)
        except GlobError as exc:
            raise invalid_params(f"invalid glob pattern: {exc}") from exc
        matches = [p for p in self._workspace_files(root) if matcher.is_match(_relative(p, root))]

        def modified(p: Path) -> float:
            try:
                return p.stat().st_mtime
            except OSError:
                return 0.0

        matches.sort(key=modified)
        matches.reverse()
        listing = "\n".join(self.display_path(p) for p in matches)
        output = (
            f'Found {len(matches)} file(s) matching "{pattern}" within '
            f"{self.display_path(root)}:\n{listing}"
        )
        return CallToolResult([text_content(output)])

    async def search_file_content(
        self, pattern: str, path: str | None = None, include: str | None = None
    ) -> CallToolResult:
        root = self._resolve(path) if path is not None else self.workspace_root
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise invalid_params(f"invalid regex: {exc}") from exc
        include_matcher = None
        if include is not None:
            try:
                include_matcher = Glob(include)
            except GlobError as exc:
                raise invalid_params(f"invalid include glob: {exc}") from exc

        results: list[str] = []
        for file in self._workspace_files(root):
            if include_matcher is not None and not include_matcher.is_match(_relative(file, root)):
                continue
            user_path = self.display_path(file)
            try:
                data = file.read_bytes()
            except OSError as exc:
                raise internal_error(f"search error: {exc}") from exc
            for number, raw in enumerate(_split_lines(data), start=1):
                body = raw[:-1] if raw.endswith(b"\n") else raw
                if regex.search(body.decode("utf-8", errors="surrogateescape")) is None:
                    continue
                try:
                    line = raw.decode("utf-8")
                except UnicodeDecodeError as exc:
                    raise internal_error(f"search error: {exc}") from exc
                results.append(f"File: {user_path}\nL{number}: {line}")

        filter_note = f' (filter: "{include}")' if include is not None else ""
        output = (
            f'Found {len(results)} match(es) for pattern "{pattern}" in path '
            f'"{self.display_path(root)}"{filter_note}:'
        )
        if results:
            output += "\n---\n" + "\n---\n".join(results)
        return CallToolResult([text_content(output)])


__all__ = ["DEFAULT_MOUNT_POINT", "FsServer", "McpError"]