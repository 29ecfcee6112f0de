"""Applying :class:`FileChange` edits to the upstream working tree."""

from __future__ import annotations

import shutil
from collections.abc import Iterable, Sequence
from pathlib import Path

from ..errors import BatchPrError
from ..logging import get_logger
from .models import FileChange, LineChange, WorkingCopy


def _resolve_inside(repo_dir: Path, file_name: str) -> Path:
    root = repo_dir.resolve()
    target = (root / file_name).resolve()
    if target != root and root not in target.parents:
        raise BatchPrError(f"Refusing to touch a path outside the working tree: {file_name}")
    return target


def _read_lines(path: Path) -> list[str]:
    # an empty or missing file is a single empty last line
    if not path.exists():
        return [""]
    return path.read_text(encoding="utf-8").split("\n")


def _write(path: Path, content: str | bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")


def apply_line_changes(lines: Sequence[str], changes: Iterable[LineChange]) -> list[str]:
    """Apply 1-based line edits: deletions highest first, then insertions lowest first.

    Both orders keep earlier indices valid for the edits still pending.
    ``lines`` is the file split on newlines, so a trailing ``""`` means the
    file ends with one; an ``end-of-file`` edit adds or drops it.
    """
    result = list(lines)
    edits = list(changes)
    deletes = sorted(
        (c for c in edits if c.type == "delete-line"), key=lambda c: c.line_number, reverse=True
    )
    inserts = sorted((c for c in edits if c.type == "insert-line"), key=lambda c: c.line_number)
    for change in deletes:
        index = change.line_number - 1
        if 0 <= index < len(result):
            del result[index]
    for change in inserts:
        result.insert(max(change.line_number - 1, 0), change.content)
    for change in edits:
        if change.type != "end-of-file":
            continue
        if result and result[-1] == "":
            result.pop()
        if change.content:
            result.append("")
    return result


def _update_file(path: Path, changes: tuple[LineChange, ...] | bytes) -> None:
    if isinstance(changes, bytes):
        get_logger().debug(f"apply_file_changes :: Writing binary content ({len(changes)} bytes)")
        _write(path, changes)
        return
    _write(path, "\n".join(apply_line_changes(_read_lines(path), changes)))


def _delete_file(path: Path) -> None:
    if not path.exists():
        get_logger().debug(f"apply_file_changes :: {path} does not exist, skipping deletion")
        return
    path.unlink()


def _move_file(repo_dir: Path, source: Path, change: FileChange) -> None:
    if not source.exists():
        get_logger().info(
            f"apply_file_changes :: Source file {change.upstream_file_name} does not exist, skipping {change.type}"
        )
        return
    if not change.next_upstream_file_name:
        raise BatchPrError(f"{change.type} of {change.upstream_file_name} has no destination")
    destination = _resolve_inside(repo_dir, change.next_upstream_file_name)
    destination.parent.mkdir(parents=True, exist_ok=True)
    if change.type == "rename":
        shutil.move(str(source), str(destination))
    else:
        shutil.copyfile(source, destination)
    if change.changes:
        _update_file(destination, change.changes)


def apply_file_changes(upstream_git: WorkingCopy, file_changes: Sequence[FileChange]) -> None:
    """Apply changes in order; later changes to the same file stack on earlier ones."""
    logger = get_logger()
    if not file_changes:
        logger.info("apply_file_changes :: No file changes to apply")
        return

    repo_dir = Path(upstream_git.dir_name)
    logger.info(f"apply_file_changes :: Starting to apply {len(file_changes)} file changes")
    for change in file_changes:
        path = _resolve_inside(repo_dir, change.upstream_file_name)
        logger.debug(f"apply_file_changes :: {change.type} {change.upstream_file_name}")
        try:
            if change.type == "update":
                _update_file(path, change.changes)
            elif change.type == "delete":
                _delete_file(path)
            elif change.type in ("rename", "copy"):
                _move_file(repo_dir, path, change)
            else:
                logger.info(
                    f"apply_file_changes :: Ignoring type change for {change.upstream_file_name}"
                )
        except OSError as exc:
            logger.log_error(
                f"apply_file_changes :: Failed to process {change.type} for {change.upstream_file_name}",
                error=str(exc),
            )
            raise
    logger.success(f"apply_file_changes :: Successfully applied all {len(file_changes)} file changes")


__all__ = ["apply_file_changes", "apply_line_changes"]
