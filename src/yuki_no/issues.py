"""Tracking-issue helpers on the upstream repository.

Covers lookup of commits that already have an issue, issue creation, the
open-issue listing used by the plugins, and the success watermark read from
the Actions run history. Every remote call goes through
:class:`~yuki_no.github_rest.GitHubRestClient`; nothing here retries.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from typing import Any, Protocol, TypeVar

from .config import RepoSpec
from .errors import InvalidChunkSizeError
from .logging import get_logger
from .models import Commit, CreatedIssue, Issue, IssueMeta

T = TypeVar("T")

COMMIT_CHUNK_UNIT = 5
WORKFLOW_NAME = "yuki-no"
COMMIT_URL_REGEX = re.compile(r"https://github\.com/[^/]+/[^/]+/commit/([a-f0-9]{7,40})")

_PRE_RELEASE_MARK = re.compile(r"- pre-release: \[.+?\]\(https://github\.com/.+?\)")
_RELEASE_MARK = re.compile(r"- release: \[.+?\]\(https://github\.com/.+?\)")


class IssueApi(Protocol):
    """Subset of the REST client used by the issue helpers."""

    @property
    def repo_spec(self) -> RepoSpec: ...

    @property
    def configured_labels(self) -> tuple[str, ...]: ...

    def search_issues(self, q: str) -> list[dict[str, Any]]: ...

    def create_issue(
        self, *, title: str, body: str, labels: Iterable[str] | None = None
    ) -> dict[str, Any]: ...

    def list_open_issues(self) -> list[dict[str, Any]]: ...

    def set_issue_labels(self, *, number: int, labels: Iterable[str]) -> list[str]: ...

    def create_issue_comment(self, *, number: int, body: str) -> None: ...

    def list_issue_comments(self, *, number: int) -> list[dict[str, Any]]: ...

    def list_workflow_runs(self, *, status: str = "success") -> list[dict[str, Any]]: ...


# ---- small collection helpers -------------------------------------------


def chunk(data: Sequence[T], chunk_size: int) -> list[list[T]]:
    if chunk_size < 1:
        raise InvalidChunkSizeError(chunk_size)
    if chunk_size >= len(data):
        return [list(data)]
    return [list(data[i : i + chunk_size]) for i in range(0, len(data), chunk_size)]


def unique(values: Iterable[T]) -> list[T]:
    return list(dict.fromkeys(values))


def unique_with(values: Iterable[T], mapper: Callable[[T], Hashable]) -> list[T]:
    seen: set[Hashable] = set()
    result: list[T] = []
    for value in values:
        key = mapper(value)
        if key in seen:
            continue
        seen.add(key)
        result.append(value)
    return result


def exclude_from(source: Iterable[T], reference: Iterable[T]) -> list[T]:
    ref = list(reference)
    return [item for item in source if item not in ref]


def extract_hash_from_issue(issue: Mapping[str, Any] | str | None) -> str | None:
    """Return the commit hash embedded in an issue (or raw body), if any."""
    body = issue.get("body") if isinstance(issue, Mapping) else issue
    if not body:
        return None
    match = COMMIT_URL_REGEX.search(str(body))
    return match.group(1) if match else None


def create_issue_body(repo_url: str, commit_hash: str) -> str:
    return f"New updates on head repo.\r\n{repo_url}/commit/{commit_hash}"


# ---- lookup ----------------------------------------------------------------


def create_commit_issue_search_query(repo_spec: RepoSpec, commits: Sequence[Commit]) -> str:
    query = " OR ".join(f"{commit.hash} in:body" for commit in commits)
    return f"repo:{repo_spec.owner}/{repo_spec.name} type:issue ({query})"


def lookup_commits_in_issues(
    github: IssueApi, commits: Sequence[Commit], chunk_size: int = COMMIT_CHUNK_UNIT
) -> list[Commit]:
    """Return the commits that have no tracking issue yet, order preserved.

    One search request per chunk, issued strictly one after another.
    """
    logger = get_logger()
    if not commits:
        logger.info("lookup_commits_in_issues :: No commits to check")
        return []

    logger.info(
        f"lookup_commits_in_issues :: Starting to check {len(commits)} commits for GitHub Issues registration"
    )
    chunks = chunk(commits, chunk_size)
    not_created: list[Commit] = []

    for ind, commit_chunk in enumerate(chunks):
        q = create_commit_issue_search_query(github.repo_spec, commit_chunk)
        items = github.search_issues(q)
        found = set(unique(h for h in map(extract_hash_from_issue, items) if h))
        not_created.extend(commit for commit in commit_chunk if commit.hash not in found)

        logger.info(
            f"lookup_commits_in_issues :: Progress... {round((ind + 1) / len(chunks) * 100)}%"
        )
        logger.debug(
            "lookup_commits_in_issues :: Target commits: "
            + " ".join(commit.hash[:7] for commit in commit_chunk)
        )

    logger.info(
        f"lookup_commits_in_issues :: Completed - total: {len(commits)} / "
        f"existing: {len(commits) - len(not_created)} / created: {len(not_created)}"
    )
    return not_created


# ---- creation / listing ----------------------------------------------------


def create_issue(github: IssueApi, meta: IssueMeta) -> CreatedIssue:
    data = github.create_issue(title=meta.title, body=meta.body, labels=meta.labels)
    number = int(data["number"])
    iso_date = str(data.get("created_at") or "")
    get_logger().success(f"create_issue :: Issue #{number} created ({iso_date})")
    return CreatedIssue(
        number=number, body=meta.body, labels=tuple(sorted(meta.labels)), iso_date=iso_date
    )


def _label_name(label: Any) -> str:
    if isinstance(label, str):
        return label
    if isinstance(label, Mapping):
        return str(label.get("name") or "")
    return ""


def get_opened_issues(github: IssueApi) -> list[Issue]:
    """Open issues carrying every configured label and a commit URL, oldest first."""
    logger = get_logger()
    logger.info("get_opened_issues :: Starting search for open issues")
    raw = github.list_open_issues()
    configured = github.configured_labels

    issues: list[Issue] = []
    for item in raw:
        labels = tuple(sorted(n for n in map(_label_name, item.get("labels") or []) if n))
        if not all(label in labels for label in configured):
            continue
        body = str(item.get("body") or "")
        commit_hash = extract_hash_from_issue(body)
        if not commit_hash:
            continue
        issues.append(
            Issue(
                number=int(item["number"]),
                body=body,
                labels=labels,
                hash=commit_hash,
                iso_date=str(item.get("created_at") or ""),
            )
        )

    issues.sort(key=lambda issue: issue.iso_date)
    logger.info(
        f"get_opened_issues :: Completed: Found {len(issues)} Yuki-no issues out of {len(raw)} total issues"
    )
    return issues


def get_latest_successful_run_iso_date(github: IssueApi) -> str | None:
    logger = get_logger()
    logger.info(
        "get_latest_successful_run_iso_date :: Extracting last successful GitHub Actions run time"
    )
    runs = [
        run
        for run in github.list_workflow_runs(status="success")
        if run.get("name") == WORKFLOW_NAME and run.get("created_at")
    ]
    if not runs:
        logger.info(
            "get_latest_successful_run_iso_date :: No last successful GitHub Actions run time found"
        )
        return None
    latest = max(runs, key=lambda run: str(run["created_at"]))
    iso_date = str(latest["created_at"])
    logger.info(
        f"get_latest_successful_run_iso_date :: Last successful GitHub Actions run time: {iso_date}"
    )
    return iso_date


# ---- comments / labels -----------------------------------------------------


def is_release_tracking_comment(body: str | None) -> bool:
    if not body:
        return False
    has_pre_release = "- pre-release: none" in body or bool(_PRE_RELEASE_MARK.search(body))
    has_release = "- release: none" in body or bool(_RELEASE_MARK.search(body))
    return has_pre_release and has_release


def _extract_release_comment(body: str) -> str:
    lines = body.split("\n")
    pre_release = next((line for line in lines if line.startswith("- pre-release: ")), "")
    release = next((line for line in lines if line.startswith("- release: ")), "")
    return f"{pre_release}\n{release}"


def get_last_issue_comment(github: IssueApi, number: int) -> str:
    """Release lines of the latest release-tracking comment, or ``""``."""
    bodies = [str(c.get("body") or "") for c in github.list_issue_comments(number=number)]
    last = next((b for b in reversed(bodies) if is_release_tracking_comment(b)), None)
    return _extract_release_comment(last) if last else ""


def set_issue_labels(github: IssueApi, number: int, labels: Iterable[str]) -> list[str]:
    return github.set_issue_labels(number=number, labels=list(labels))


def create_issue_comment(github: IssueApi, number: int, body: str) -> None:
    github.create_issue_comment(number=number, body=body)


__all__ = [
    "COMMIT_CHUNK_UNIT",
    "COMMIT_URL_REGEX",
    "WORKFLOW_NAME",
    "IssueApi",
    "chunk",
    "unique",
    "unique_with",
    "exclude_from",
    "extract_hash_from_issue",
    "create_issue_body",
    "create_commit_issue_search_query",
    "lookup_commits_in_issues",
    "create_issue",
    "get_opened_issues",
    "get_latest_successful_run_iso_date",
    "is_release_tracking_comment",
    "get_last_issue_comment",
    "set_issue_labels",
    "create_issue_comment",
]
