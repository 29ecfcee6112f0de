from __future__ import annotations

from collections.abc import Iterable, Mapping

from ..config import get_multiline_input
from ..issues import IssueApi, exclude_from, set_issue_labels, unique
from ..logging import get_logger
from ..models import Issue
from .releases import ReleaseInfo

RELEASE_TRACKING_LABELS_INPUT = "YUKI_NO_RELEASE_TRACKING_LABELS"
DEFAULT_RELEASE_TRACKING_LABELS = ("pending",)


def get_release_tracking_labels(
    env: Mapping[str, str], configured_labels: Iterable[str]
) -> list[str]:
    """Labels marking an unreleased issue, never overlapping the sync labels."""
    raw = get_multiline_input(
        env, RELEASE_TRACKING_LABELS_INPUT, list(DEFAULT_RELEASE_TRACKING_LABELS)
    )
    return exclude_from(raw, configured_labels)


def next_labels_for(
    issue: Issue, release_info: ReleaseInfo, tracking_labels: Iterable[str]
) -> list[str]:
    tracking = list(tracking_labels)
    if release_info.release is not None:
        return sorted(label for label in issue.labels if label not in tracking)
    return sorted(unique([*issue.labels, *tracking]))


def update_issue_labels_by_release(
    github: IssueApi,
    issue: Issue,
    release_info: ReleaseInfo,
    env: Mapping[str, str],
) -> bool:
    """Sync release-tracking labels; returns True when labels were changed."""
    logger = get_logger()
    tracking = get_release_tracking_labels(env, github.configured_labels)
    next_labels = next_labels_for(issue, release_info, tracking)
    logger.info(
        f"update_issue_labels_by_release :: Attempting to update #{issue.number} labels ({', '.join(next_labels)})"
    )

    if list(issue.labels) == next_labels:
        logger.success(
            "update_issue_labels_by_release :: No change needed (identical labels already exist)"
        )
        return False

    set_issue_labels(github, issue.number, next_labels)
    logger.success("update_issue_labels_by_release :: Labels changed successfully")
    return True


__all__ = [
    "RELEASE_TRACKING_LABELS_INPUT",
    "DEFAULT_RELEASE_TRACKING_LABELS",
    "get_release_tracking_labels",
    "next_labels_for",
    "update_issue_labels_by_release",
]
