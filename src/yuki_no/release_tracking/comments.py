from __future__ import annotations

from collections.abc import Iterable

from ..issues import IssueApi, create_issue_comment, get_last_issue_comment
from ..logging import get_logger
from ..models import Issue
from .releases import ReleaseInfo, Tag


def _format_tag(tag: Tag | None) -> str:
    return f"[{tag.version}]({tag.url})" if tag else "none"


def create_release_comment(
    release_info: ReleaseInfo,
    releases_available: bool,
    tracking_labels: Iterable[str],
) -> str:
    lines: list[str] = []
    if not releases_available:
        lines.extend(
            [
                f"> This comment and the `{', '.join(tracking_labels)}` label appear because release-tracking is enabled.",
                "> To disable, remove `release-tracking` from the plugins list.",
                "\n",
            ]
        )
    lines.append(f"- pre-release: {_format_tag(release_info.prerelease)}")
    lines.append(f"- release: {_format_tag(release_info.release)}")
    return "\n".join(lines)


def update_issue_comment_by_release(
    github: IssueApi,
    issue: Issue,
    release_info: ReleaseInfo,
    releases_available: bool,
    tracking_labels: Iterable[str],
) -> bool:
    """Post a release status comment unless it would repeat the last one.

    Returns True when a comment was created.
    """
    logger = get_logger()
    last = get_last_issue_comment(github, issue.number)
    logger.info(
        f"update_issue_comment_by_release :: Attempting to add #{issue.number} comment"
    )

    # a final release never changes again
    if "- release: [" in last:
        logger.info("update_issue_comment_by_release :: Release comment already exists")
        return False

    next_comment = create_release_comment(release_info, releases_available, tracking_labels)
    logger.debug(f"update_issue_comment_by_release :: Creating comment ({next_comment})")

    if next_comment == last:
        logger.success(
            "update_issue_comment_by_release :: Not added (identical comment already exists)"
        )
        return False

    create_issue_comment(github, issue.number, next_comment)
    logger.success("update_issue_comment_by_release :: Comment added successfully")
    return True


__all__ = ["create_release_comment", "update_issue_comment_by_release"]
