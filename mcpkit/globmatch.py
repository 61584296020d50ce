"""Shell-style glob patterns matched against whole paths.

The dialect follows common ``.gitignore``-like conventions:

* ``*`` matches any run of characters, path separators included;
* ``?`` matches any single character;
* ``[abc]``, ``[a-z]``, ``[!a-z]`` and ``[^a-z]`` are character classes;
* ``{a,b}`` matches either alternative (alternatives may not nest);
* ``**`` as a whole path component matches any number of directories:
  ``**/x`` also matches ``x``, ``x/**`` matches everything below ``x``
  and ``a/**/b`` also matches ``a/b``;
* a backslash escapes the next character.
"""

from __future__ import annotations

import os
import re
from typing import Iterable, Union

PathLike = Union[str, bytes, "os.PathLike[str]", "os.PathLike[bytes]"]


class GlobError(ValueError):
    """A glob pattern could not be parsed."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"error parsing glob '{pattern}': {reason}")
        self.pattern = pattern
        self.reason = reason


_Token = tuple


class _Parser:
    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        self.pos = 0

    def _peek(self, ahead: int = 0) -> str | None:
        index = self.pos + ahead
        return self.pattern[index] if index < len(self.pattern) else None

    def _error(self, reason: str) -> GlobError:
        return GlobError(self.pattern, reason)

    def parse(self) -> list[_Token]:
        return self._sequence(in_alternates=False)

    def _sequence(self, in_alternates: bool) -> list[_Token]:
        tokens: list[_Token] = []
        while self.pos < len(self.pattern):
            char = self.pattern[self.pos]
            if in_alternates and char in ",}":
                return tokens
            self.pos += 1
            if char == "\\":
                escaped = self._peek()
                if escaped is None:
                    raise self._error("dangling '\\'")
                self.pos += 1
                tokens.append(("literal", escaped))
            elif char == "?":
                tokens.append(("any",))
            elif char == "*":
                self._star(tokens)
            elif char == "[":
                tokens.append(self._class())
            elif char == "{":
                if in_alternates:
                    raise self._error("nested alternate groups are not allowed")
                tokens.append(self._alternates())
            elif char == "}":
                raise self._error("unopened alternate group; missing '{'")
            else:
                tokens.append(("literal", char))
        return tokens

    def _alternates(self) -> _Token:
        branches: list[list[_Token]] = []
        while True:
            branches.append(self._sequence(in_alternates=True))
            char = self._peek()
            if char is None:
                raise self._error("unclosed alternate group; missing '}'")
            self.pos += 1
            if char == "}":
                return ("alternates", branches)

    def _star(self, tokens: list[_Token]) -> None:
        star_at = self.pos - 1
        if self._peek() != "*":
            tokens.append(("star",))
            return
        self.pos += 1
        previous = self.pattern[star_at - 1] if star_at > 0 else None
        following = self._peek()
        if previous is None:
            if following is None:
                tokens.append(("everything",))
                return
            if following == "/":
                self.pos += 1
                tokens.append(("recursive_prefix",))
                return
        if previous == "/" and tokens and tokens[-1] == ("literal", "/"):
            if following is None:
                tokens.pop()
                tokens.append(("recursive_suffix",))
                return
            if following == "/":
                self.pos += 1
                tokens.pop()
                tokens.append(("recursive_middle",))
                return
        tokens.append(("star",))

    def _class(self) -> _Token:
        negated = False
        if self._peek() in ("!", "^"):
            negated = True
            self.pos += 1
        ranges: list[tuple[str, str]] = []
        first = True
        while True:
            char = self._peek()
            if char is None:
                raise self._error("unclosed character class; missing ']'")
            self.pos += 1
            if char == "]" and not first:
                break
            first = False
            upper = self._peek(1)
            if self._peek() == "-" and upper is not None and upper != "]":
                self.pos += 2
                if upper < char:
                    raise self._error(f"invalid range; '{char}' > '{upper}'")
                ranges.append((char, upper))
            else:
                ranges.append((char, char))
        return ("class", negated, ranges)


def _emit(tokens: list[_Token]) -> str:
    parts: list[str] = []
    for token in tokens:
        kind = token[0]
        if kind == "literal":
            parts.append(re.escape(token[1]))
        elif kind == "any":
            parts.append(".")
        elif kind in ("star", "everything"):
            parts.append(".*")
        elif kind == "recursive_prefix":
            parts.append("(?:/?|.*/)")
        elif kind == "recursive_suffix":
            parts.append("/.*")
        elif kind == "recursive_middle":
            parts.append("(?:/|/.*/)")
        elif kind == "class":
            _, negated, ranges = token
            body = "".join(
                re.escape(low) if low == high else f"{re.escape(low)}-{re.escape(high)}"
                for low, high in ranges
            )
            parts.append(f"[{'^' if negated else ''}{body}]")
        elif kind == "alternates":
            parts.append("(?:" + "|".join(_emit(branch) for branch in token[1]) + ")")
    return "".join(parts)


def translate(pattern: str) -> str:
    """Translate a glob pattern into a regular expression for ``re.fullmatch``."""
    return "(?s)" + _emit(_Parser(pattern).parse())


def _normalize(path: PathLike) -> str:
    text = os.fsdecode(os.fspath(path))
    if os.sep != "/":
        text = text.replace(os.sep, "/")
    if os.altsep and os.altsep != "/":
        text = text.replace(os.altsep, "/")
    return text


class Glob:
    """A compiled glob pattern."""

    def __init__(self, pattern: str, case_insensitive: bool = False) -> None:
        self.pattern = pattern
        self.case_insensitive = case_insensitive
        self.regex = translate(pattern)
        flags = re.IGNORECASE if case_insensitive else 0
        self._compiled = re.compile(self.regex, flags)

    def is_match(self, path: PathLike) -> bool:
        """Whether the whole of ``path`` matches the pattern."""
        return self._compiled.fullmatch(_normalize(path)) is not None

    def __repr__(self) -> str:
        return f"Glob({self.pattern!r}, case_insensitive={self.case_insensitive})"


class GlobSet:
    """A collection of globs; a path matches if any of them matches."""

    def __init__(self, globs: Iterable[Glob | str] = ()) -> None:
        self._globs = [g if isinstance(g, Glob) else Glob(g) for g in globs]

    def is_match(self, path: PathLike) -> bool:
        """Whether any glob in the set matches ``path``."""
        if not self._globs:
            return False
        normalized = _normalize(path)
        return any(g.is_match(normalized) for g in self._globs)

    def __len__(self) -> int:
        return len(self._globs)

    def __iter__(self):
        return iter(self._globs)

    def __repr__(self) -> str:
        return f"GlobSet({[g.pattern for g in self._globs]!r})"