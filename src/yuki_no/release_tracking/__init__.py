"""Built-in ``release-tracking`` plugin.

Keeps each open tracking issue's labels and comments in step with the head
repository's releases: unreleased issues carry the release-tracking labels
(``pending`` by default), released ones lose them, and a comment records the
first pre-release and release tags that contain the commit.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence

from ..config import Config
from ..git import Git
from ..github_rest import create_upstream_client
from ..issues import IssueApi, get_opened_issues, unique_with
from ..logging import get_logger
from ..models import Issue
from ..plugin import AfterCreateIssueContext, FinallyContext, YukiNoPlugin
from .comments import create_release_comment, update_issue_comment_by_release
from .labels import (
    DEFAULT_RELEASE_TRACKING_LABELS,
    get_release_tracking_labels,
    update_issue_labels_by_release,
)
from .releases import ReleaseInfo, Tag, TagSource, get_release, has_any_release

GitHubFactory = Callable[[Config], IssueApi]
GitFactory = Callable[[Config], TagSource]


def _default_git(config: Config) -> TagSource:
    return Git(config, config.head_repo_spec, with_clone=True)


def process_release_tracking_for_issue(
    github: IssueApi, git: TagSource, issue: Issue, env: Mapping[str, str]
) -> None:
    release_info = get_release(git, issue.hash)
    releases_available = has_any_release(git)
    tracking = get_release_tracking_labels(env, github.configured_labels)
    update_issue_labels_by_release(github, issue, release_info, env)
    update_issue_comment_by_release(github, issue, release_info, releases_available, tracking)


def process_release_tracking(
    github: IssueApi,
    git: TagSource,
    env: Mapping[str, str],
    additional_issues: Sequence[Issue] = (),
) -> list[Issue]:
    logger = get_logger()
    logger.info("=== Release tracking started ===")
    issues = unique_with([*get_opened_issues(github), *additional_issues], lambda i: i.hash)

    releases_available = has_any_release(git)
    tracking = get_release_tracking_labels(env, github.configured_labels)
    for issue in issues:
        release_info = get_release(git, issue.hash)
        update_issue_labels_by_release(github, issue, release_info, env)
        update_issue_comment_by_release(
            github, issue, release_info, releases_available, tracking
        )

    logger.success(
        f"release_tracking :: Release information updated for {len(issues)} issues"
    )
    return issues


class ReleaseTrackingPlugin(YukiNoPlugin):
    name = "release-tracking"

    def __init__(
        self,
        github_factory: GitHubFactory | None = None,
        git_factory: GitFactory | None = None,
    ) -> None:
        self._github_factory = github_factory or create_upstream_client
        self._git_factory = git_factory or _default_git
        self._git: TagSource | None = None

    def _head_git(self, config: Config) -> TagSource:
        if self._git is None:
            self._git = self._git_factory(config)
        return self._git

    def get_release_tracking_labels(
        self, env: Mapping[str, str], configured_labels: Iterable[str]
    ) -> list[str]:
        """Release-gate provider consumed by the batch-pr plugin."""
        return get_release_tracking_labels(env, configured_labels)

    def on_after_create_issue(self, ctx: AfterCreateIssueContext) -> None:
        github = self._github_factory(ctx.config)
        process_release_tracking_for_issue(
            github, self._head_git(ctx.config), ctx.issue, ctx.env
        )

    def on_finally(self, ctx: FinallyContext) -> None:
        try:
            github = self._github_factory(ctx.config)
            process_release_tracking(github, self._head_git(ctx.config), ctx.env)
        finally:
            if self._git is not None:
                self._git.close()
            self._git = None


plugin = ReleaseTrackingPlugin()

__all__ = [
    "ReleaseTrackingPlugin",
    "plugin",
    "ReleaseInfo",
    "Tag",
    "DEFAULT_RELEASE_TRACKING_LABELS",
    "get_release",
    "has_any_release",
    "get_release_tracking_labels",
    "update_issue_labels_by_release",
    "update_issue_comment_by_release",
    "create_release_comment",
    "process_release_tracking",
    "process_release_tracking_for_issue",
]
