"""Commit extraction from the head repository's history.

``git log`` is asked for one record per commit in a private two-separator
format::

    :COMMIT_START_SEP:<hash>:COMMIT_DATA_SEP:<subject>:COMMIT_DATA_SEP:<author ISO date>
    <changed file>
    <changed file>

Records with an incomplete header are dropped; output that is non-empty but
contains no record separator at all means ``trackFrom`` was not a commit
git could resolve.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Protocol

from .config import Config
from .errors import InvalidTrackFromError
from .file_filter import FileNameFilter, create_file_name_filter
from .logging import get_logger
from .models import Commit

COMMIT_SEP = ":COMMIT_START_SEP:"
COMMIT_DATA_SEPARATOR = ":COMMIT_DATA_SEP:"
LOG_FORMAT = f"{COMMIT_SEP}%H{COMMIT_DATA_SEPARATOR}%s{COMMIT_DATA_SEPARATOR}%aI"


class LogSource(Protocol):
    def exec(self, *args: str) -> str: ...


def to_iso_date(value: str) -> str:
    """Normalize an ISO-8601 timestamp to UTC ``YYYY-MM-DDTHH:MM:SSZ``."""
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def build_log_args(
    branch: str, track_from: str | None, since_iso_date: str | None = None
) -> list[str]:
    args = ["log", f"origin/{branch}"]
    if track_from:
        args.append(f"{track_from}..")
    if since_iso_date:
        args.append(f"--since={since_iso_date}")
    args.extend(["--name-only", f"--format={LOG_FORMAT}", "--no-merges"])
    return args


def _create_commit_from_record(lines: list[str]) -> Commit | None:
    if not lines:
        return None
    header, *file_lines = lines
    parsed = header.split(COMMIT_DATA_SEPARATOR)
    if len(parsed) != 3 or not all(parsed):
        return None
    hash_, title, date = parsed
    try:
        iso_date = to_iso_date(date)
    except ValueError:
        return None
    file_names = tuple(name.strip() for name in file_lines if name.strip())
    return Commit(hash=hash_.strip(), title=title, iso_date=iso_date, file_names=file_names)


def parse_commit_log(
    output: str, file_name_filter: FileNameFilter, track_from: str = ""
) -> list[Commit]:
    """Parse raw log output into commits sorted ascending by date."""
    if not output.strip():
        return []
    if COMMIT_SEP not in output:
        raise InvalidTrackFromError(track_from)

    commits: list[Commit] = []
    for record in output.split(COMMIT_SEP):
        if not record.strip():
            continue
        lines = [line for line in record.strip().split("\n") if line.strip()]
        commit = _create_commit_from_record(lines)
        if commit is None:
            continue
        if not any(file_name_filter(name) for name in commit.file_names):
            continue
        commits.append(commit)

    # list.sort is stable, so same-second commits keep log order
    commits.sort(key=lambda c: c.iso_date)
    return commits


def get_commits(
    config: Config,
    git: LogSource,
    latest_successful_run: str | None = None,
    *,
    include: Iterable[str] | None = None,
    exclude: Iterable[str] | None = None,
) -> list[Commit]:
    logger = get_logger()
    args = build_log_args(
        config.head_repo_spec.branch, config.track_from, latest_successful_run
    )
    logger.info(f"get_commits :: Attempting to extract commits: git {' '.join(args)}")

    output = git.exec(*args)
    if not output:
        logger.info("get_commits :: Empty commit range")
        return []

    file_name_filter = create_file_name_filter(
        config.include if include is None else include,
        config.exclude if exclude is None else exclude,
    )
    commits = parse_commit_log(output, file_name_filter, config.track_from)

    logger.info(f"get_commits :: Total {len(commits)} commits extracted")
    if commits:
        logger.info(
            f"get_commits :: Commit extraction period: {commits[0].iso_date} ~ {commits[-1].iso_date}"
        )
    return commits


__all__ = [
    "COMMIT_SEP",
    "COMMIT_DATA_SEPARATOR",
    "LOG_FORMAT",
    "build_log_args",
    "parse_commit_log",
    "get_commits",
    "to_iso_date",
]
