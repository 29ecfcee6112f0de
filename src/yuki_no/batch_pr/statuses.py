"""Parsing of ``git show --name-status`` output."""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import cast

from ..config import split_by_newline
from ..errors import BatchPrError
from ..logging import get_logger
from .models import FileNameFilter, FileStatus, StatusCode

RENAMED = re.compile(r"^R(\d+)\t(.+)\t(.+)$")  # R100\told.ts\tnew.ts
COPIED = re.compile(r"^C(\d+)\t(.+)\t(.+)$")  # C85\tsource.ts\tcopy.ts
TYPE_CHANGED = re.compile(r"^T\t(.+)$")
MODIFIED_ADDED_DELETED = re.compile(r"^([MAD])\t(.+)$")


def parse_file_status(line: str) -> FileStatus:
    if m := RENAMED.match(line):
        return FileStatus("R", m.group(2), m.group(3), int(m.group(1)))
    if m := COPIED.match(line):
        return FileStatus("C", m.group(2), m.group(3), int(m.group(1)))
    if m := TYPE_CHANGED.match(line):
        return FileStatus("T", m.group(1))
    if m := MODIFIED_ADDED_DELETED.match(line):
        return FileStatus(cast(StatusCode, m.group(1)), m.group(2))
    get_logger().error(f"parse_file_status :: Unable to parse status line: {line}")
    raise BatchPrError(f"Unable to parse status line: {line}")


def parse_file_statuses(
    status_output: str,
    file_name_filter: FileNameFilter,
    on_excluded: Callable[[str], None] | None = None,
) -> list[FileStatus]:
    """Parse every status line, keeping those whose target passes the filter."""
    logger = get_logger()
    lines = split_by_newline(status_output)
    logger.debug(f"parse_file_statuses :: Processing {len(lines)} status lines")

    statuses: list[FileStatus] = []
    excluded = 0
    for line in lines:
        file_status = parse_file_status(line)
        if file_name_filter(file_status.target_file_name):
            statuses.append(file_status)
            continue
        excluded += 1
        if on_excluded is not None:
            on_excluded(file_status.target_file_name)

    logger.info(
        f"parse_file_statuses :: Filtered {len(statuses)} files ({excluded} excluded)"
    )
    return statuses


__all__ = ["parse_file_status", "parse_file_statuses"]
