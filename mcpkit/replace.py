"""Exact-count text replacement."""

from __future__ import annotations


class ReplacementError(ValueError):
    """A replacement could not be made as requested."""


class NotFoundError(ReplacementError):
    def __init__(self) -> None:
        super().__init__("no occurrences of the target string were found")


class UnexpectedCountError(ReplacementError):
    def __init__(self, expected: int, found: int) -> None:
        super().__init__(f"expected to replace {expected} occurrence(s), but found {found}")
        self.expected = expected
        self.found = found


def replace_in_content(
    content: str, old: str, new: str, expected_replacements: int | None = None
) -> str:
    """Replace ``old`` with ``new``, requiring exactly the expected number of matches."""
    expected = 1 if expected_replacements is None else expected_replacements
    found = content.count(old)
    if found == 0:
        raise NotFoundError()
    if found != expected:
        raise UnexpectedCountError(expected, found)
    if expected == 1:
        return content.replace(old, new, 1)
    return content.replace(old, new)