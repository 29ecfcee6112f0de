"""Turning one head-repo commit into upstream :class:`FileChange` edits.

Text files become zero-context line edits taken from ``git show -U0``;
binary files (by extension) are carried over whole as bytes. Paths are
mapped onto the upstream tree by stripping the configured root directory.
"""

from __future__ import annotations

import posixpath
import re
from collections.abc import Callable

from ..config import split_by_newline
from ..errors import BatchPrError
from ..file_filter import resolve_file_name_with_root_dir
from ..logging import get_logger
from .models import FileChange, FileNameFilter, FileStatus, LineChange, WorkingCopy
from .statuses import parse_file_statuses

PERFECT_SIMILARITY = 100

BINARY_FILE_EXTENSIONS = frozenset(
    {
        # images
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".tiff", ".ico", ".webp",
        # executables
        ".exe", ".dll", ".so", ".dylib", ".bin",
        # archives
        ".zip", ".rar", ".tar", ".gz", ".7z",
        # audio / video
        ".mp3", ".mp4", ".avi", ".mkv", ".wav", ".flac",
        # fonts
        ".ttf", ".otf", ".woff", ".woff2",
        # documents
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        # databases
        ".db", ".sqlite", ".mdb",
        # other
        ".iso", ".dmg", ".img",
    }
)  # fmt: skip

# @@ -old_start[,old_count] +new_start[,new_count] @@
HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
LS_TREE_LINE = re.compile(r"^(\d+) blob ([a-f0-9]+)\t(.+)$")

_BINARY_DELETE_FIRST = ("R", "D", "M")
_BINARY_ADD = ("R", "C", "A", "M")


def is_binary_file(file_name: str) -> bool:
    return posixpath.splitext(file_name)[1].lower() in BINARY_FILE_EXTENSIONS


def extract_blob_hash(git: WorkingCopy, commit_hash: str, file_name: str) -> str:
    for line in split_by_newline(git.exec("ls-tree", "-r", commit_hash, "--", file_name)):
        m = LS_TREE_LINE.match(line)
        if m and m.group(3) == file_name:
            return m.group(2)
    raise BatchPrError(
        f"Failed to extract blob hash for {file_name} (head-repo: {commit_hash})"
    )


def parse_line_changes(diff_output: str) -> list[LineChange]:
    """Line edits from a zero-context unified diff.

    Deletions carry old-file line numbers, insertions new-file ones.
    Everything before the first hunk header is file metadata. A
    ``\\ No newline at end of file`` marker turns into a trailing
    ``end-of-file`` edit when the two sides disagree.
    """
    changes: list[LineChange] = []
    old_line = new_line = 0
    in_hunk = False
    last_sign = ""
    old_missing_newline = new_missing_newline = False
    for line in diff_output.split("\n"):
        header = HUNK_HEADER.match(line)
        if header:
            old_line, new_line = int(header.group(1)), int(header.group(3))
            in_hunk = True
            continue
        if not in_hunk:
            continue
        if line.startswith("\\"):
            if last_sign == "+":
                new_missing_newline = True
            elif last_sign == "-":
                old_missing_newline = True
            continue
        if line.startswith("+"):
            changes.append(LineChange("insert-line", new_line, line[1:]))
            new_line += 1
        elif line.startswith("-"):
            changes.append(LineChange("delete-line", old_line))
            old_line += 1
        elif line.startswith(" "):
            old_line += 1
            new_line += 1
        elif line.startswith("diff "):
            in_hunk = False
        last_sign = line[:1]
    if new_missing_newline:
        changes.append(LineChange("end-of-file", 0, ""))
    elif old_missing_newline:
        changes.append(LineChange("end-of-file", 0, "\n"))
    return changes


def create_line_changes(git: WorkingCopy, commit_hash: str, *paths: str) -> tuple[LineChange, ...]:
    diff = git.exec_raw("show", "-U0", "--format=", commit_hash, "--", *paths)
    return tuple(parse_line_changes(diff))


def _needs_line_changes(file_status: FileStatus) -> bool:
    if file_status.status in ("M", "A"):
        return True
    return file_status.status in ("R", "C") and (
        file_status.similarity or 0
    ) < PERFECT_SIMILARITY


def _create_simple_file_change(
    file_status: FileStatus, upstream_file_name: str, root_dir: str | None
) -> FileChange:
    status = file_status.status
    if status == "D":
        return FileChange("delete", upstream_file_name)
    if status in ("R", "C"):
        return FileChange(
            "rename" if status == "R" else "copy",
            upstream_file_name,
            next_upstream_file_name=resolve_file_name_with_root_dir(
                file_status.target_file_name, root_dir
            ),
            similarity=file_status.similarity,
        )
    if status == "T":
        return FileChange("type", upstream_file_name)
    raise BatchPrError(f"Failed to create FileChange for {upstream_file_name}")


def _create_binary_file_changes(
    git: WorkingCopy,
    commit_hash: str,
    file_status: FileStatus,
    upstream_file_name: str,
    root_dir: str | None,
) -> list[FileChange]:
    changes: list[FileChange] = []
    if file_status.status in _BINARY_DELETE_FIRST:
        changes.append(FileChange("delete", upstream_file_name))
    if file_status.status not in _BINARY_ADD:
        return changes

    # the blob lives under the destination name for renames and copies
    blob_hash = extract_blob_hash(git, commit_hash, file_status.target_file_name)
    content = git.exec_bytes("show", blob_hash)
    target = resolve_file_name_with_root_dir(file_status.target_file_name, root_dir)
    changes.append(FileChange("update", target, changes=content))
    return changes


def create_file_changes(
    git: WorkingCopy,
    commit_hash: str,
    file_status: FileStatus,
    root_dir: str | None = None,
) -> list[FileChange]:
    upstream_file_name = resolve_file_name_with_root_dir(file_status.head_file_name, root_dir)

    if not _needs_line_changes(file_status):
        return [_create_simple_file_change(file_status, upstream_file_name, root_dir)]

    if is_binary_file(file_status.head_file_name):
        return _create_binary_file_changes(
            git, commit_hash, file_status, upstream_file_name, root_dir
        )

    if file_status.status in ("A", "M"):
        return [
            FileChange(
                "update",
                upstream_file_name,
                changes=create_line_changes(git, commit_hash, file_status.head_file_name),
            )
        ]

    return [
        FileChange(
            "rename" if file_status.status == "R" else "copy",
            upstream_file_name,
            changes=create_line_changes(
                git, commit_hash, file_status.head_file_name, file_status.target_file_name
            ),
            next_upstream_file_name=resolve_file_name_with_root_dir(
                file_status.target_file_name, root_dir
            ),
            similarity=file_status.similarity,
        )
    ]


def extract_file_changes(
    head_git: WorkingCopy,
    commit_hash: str,
    file_name_filter: FileNameFilter,
    *,
    root_dir: str | None = None,
    on_excluded: Callable[[str], None] | None = None,
) -> list[FileChange]:
    """All upstream edits for ``commit_hash``, after filtering file names.

    ``on_excluded`` receives each filtered-out head path, for reporting only.
    """
    status_output = head_git.exec("show", "--name-status", "--format=", commit_hash)
    statuses = parse_file_statuses(status_output, file_name_filter, on_excluded)
    changes: list[FileChange] = []
    for file_status in statuses:
        changes.extend(create_file_changes(head_git, commit_hash, file_status, root_dir))
    get_logger().debug(
        f"extract_file_changes :: {len(changes)} file changes from {commit_hash[:8]}"
    )
    return changes


__all__ = [
    "BINARY_FILE_EXTENSIONS",
    "is_binary_file",
    "extract_blob_hash",
    "parse_line_changes",
    "create_line_changes",
    "create_file_changes",
    "extract_file_changes",
]
