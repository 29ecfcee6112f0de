"""The long-lived batch pull request and its body manifest.

The PR body is the only persisted state: every ``Resolved #N`` line marks
issue ``N`` as already folded into the batch branch, so later runs only
process issues that are not listed there yet.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from ..errors import BatchPrError
from ..issues import IssueApi
from ..logging import get_logger
from ..models import Issue
from .models import BatchIssue, BatchIssueType, WorkingCopy

BRANCH_NAME = "__yuki-no-batch-pr"
PR_LABEL = "__translation-batch"
PR_TITLE_PREFIX = "❄️ Translation Batch"
INITIAL_COMMIT_MESSAGE = "Initial translation batch commit"
APPLY_COMMIT_MESSAGE = "Apply origin changes"


class BatchPrApi(IssueApi, Protocol):
    def get_pull(self, *, number: int) -> dict[str, Any]: ...

    def create_pull(self, *, title: str, body: str, head: str, base: str) -> dict[str, Any]: ...

    def update_pull(self, *, number: int, body: str) -> None: ...


@dataclass
class TrackedIssues:
    tracked_issues: list[Issue] = field(default_factory=list)
    should_track_issues: list[Issue] = field(default_factory=list)


def create_pr_title(today: datetime | None = None) -> str:
    day = (today or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return f"{PR_TITLE_PREFIX} - {day}"


def create_pr_body(
    entries: Sequence[BatchIssue], excluded_files: Iterable[str] = ()
) -> str:
    """Render the PR description.

    Never empty: :func:`get_tracked_issues` treats an empty body as corrupt.
    """
    lines = [
        f"## {PR_TITLE_PREFIX}",
        "",
        "This pull request collects head-repo changes for the tracking issues below.",
        "",
    ]
    if entries:
        lines.extend(f"{entry.type} #{entry.number}" for entry in entries)
    else:
        lines.append("_No issues have been batched yet._")

    excluded = sorted(set(excluded_files))
    if excluded:
        lines.extend(
            [
                "",
                "<details>",
                f"<summary>Excluded files ({len(excluded)})</summary>",
                "",
                *(f"- `{name}`" for name in excluded),
                "",
                "</details>",
            ]
        )
    return "\n".join(lines) + "\n"


def extract_issue_numbers(pr_body: str, entry_type: BatchIssueType = "Resolved") -> list[int]:
    return [int(n) for n in re.findall(rf"{entry_type} #(\d+)", pr_body)]


def get_tracked_issues(
    github: BatchPrApi, pr_number: int, issues: Sequence[Issue]
) -> TrackedIssues:
    """Split ``issues`` by whether the PR body already lists them as resolved."""
    pr = github.get_pull(number=pr_number)
    body = pr.get("body") or ""
    if not body:
        raise BatchPrError(
            f"PR #{pr_number} body is empty or missing. Cannot extract tracked issue numbers."
        )

    resolved = set(extract_issue_numbers(body, "Resolved"))
    result = TrackedIssues()
    for issue in issues:
        if issue.number in resolved:
            result.tracked_issues.append(issue)
        else:
            result.should_track_issues.append(issue)
    return result


def create_commit(
    git: WorkingCopy, message: str, *, allow_empty: bool = False
) -> bool:
    """Stage everything and commit; returns False when there was nothing to commit."""
    git.exec("add", ".")
    if not allow_empty and not git.exec("status", "--porcelain"):
        get_logger().info("create_commit :: Working tree clean, nothing to commit")
        return False
    args = ["commit"]
    if allow_empty:
        args.append("--allow-empty")
    git.exec(*args, "-m", message)
    return True


def find_batch_pr(github: BatchPrApi, title: str) -> dict[str, Any] | None:
    spec = github.repo_spec
    items = github.search_issues(
        f"repo:{spec.owner}/{spec.name} is:pr is:open label:{PR_LABEL} in:title {title}"
    )
    return items[0] if items else None


def setup_batch_pr(
    github: BatchPrApi,
    git: WorkingCopy,
    branch_name: str = BRANCH_NAME,
    *,
    base: str = "main",
    title: str | None = None,
) -> int:
    """Reuse today's open batch PR or create it; returns the PR number.

    Leaves ``git`` checked out on ``branch_name`` either way.
    """
    logger = get_logger()
    title = title or create_pr_title()
    existing = find_batch_pr(github, title)
    if existing:
        git.exec("checkout", branch_name)
        logger.info(f"setup_batch_pr :: Reusing batch PR #{existing['number']}")
        return int(existing["number"])

    git.exec("checkout", "-B", branch_name)
    create_commit(git, INITIAL_COMMIT_MESSAGE, allow_empty=True)
    git.exec("push", "-f", "origin", branch_name)

    pr = github.create_pull(title=title, body=create_pr_body([]), head=branch_name, base=base)
    number = int(pr["number"])
    github.set_issue_labels(number=number, labels=[PR_LABEL])
    logger.success(f"setup_batch_pr :: Created batch PR #{number}")
    return number


__all__ = [
    "BRANCH_NAME",
    "PR_LABEL",
    "PR_TITLE_PREFIX",
    "APPLY_COMMIT_MESSAGE",
    "BatchPrApi",
    "TrackedIssues",
    "create_pr_title",
    "create_pr_body",
    "extract_issue_numbers",
    "get_tracked_issues",
    "create_commit",
    "find_batch_pr",
    "setup_batch_pr",
]
