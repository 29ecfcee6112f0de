from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

from ..file_filter import FileNameFilter

LineChangeType = Literal["insert-line", "delete-line", "end-of-file"]
FileChangeType = Literal["update", "delete", "rename", "copy", "type"]
StatusCode = Literal["M", "A", "D", "T", "R", "C"]
BatchIssueType = Literal["Resolved", "Pending"]


class WorkingCopy(Protocol):
    """The parts of :class:`yuki_no.git.Git` the batch plugin relies on."""

    @property
    def dir_name(self) -> Path: ...

    def exec(self, *args: str) -> str: ...

    def exec_raw(self, *args: str) -> str: ...

    def exec_bytes(self, *args: str) -> bytes: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class LineChange:
    """One zero-context diff edit.

    ``end-of-file`` carries the trailing newline state of the new file in
    ``content``: a newline when it ends with one, empty when it does not.
    """

    type: LineChangeType
    line_number: int
    content: str = ""


@dataclass(frozen=True)
class FileStatus:
    status: StatusCode
    head_file_name: str
    next_head_file_name: str | None = None
    similarity: int | None = None

    @property
    def target_file_name(self) -> str:
        """Name the filter is applied to: the destination for renames and copies."""
        return self.next_head_file_name or self.head_file_name


@dataclass(frozen=True)
class FileChange:
    """One edit to the upstream working tree.

    ``changes`` holds line edits, or the whole file content as bytes for
    binary files.
    """

    type: FileChangeType
    upstream_file_name: str
    changes: tuple[LineChange, ...] | bytes = ()
    next_upstream_file_name: str | None = None
    similarity: int | None = None


@dataclass(frozen=True)
class BatchIssue:
    number: int
    type: BatchIssueType = "Resolved"


__all__ = [
    "FileNameFilter",
    "WorkingCopy",
    "LineChange",
    "FileStatus",
    "FileChange",
    "BatchIssue",
]
