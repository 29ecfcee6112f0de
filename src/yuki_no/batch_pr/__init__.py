"""Built-in ``batch-pr`` plugin.

Folds the head-repo changes of every open tracking issue into one
long-lived pull request on the upstream repository instead of leaving them
as one issue per commit. Runs at ``on_finally``.

Inputs (``YUKI_NO_`` environment):
  YUKI_NO_BATCH_PR_ROOT_DIR   head-repo directory mapped onto the upstream root
  YUKI_NO_BATCH_PR_EXCLUDE    extra exclude globs, one per line
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from contextlib import ExitStack
from typing import Any

from ..config import Config, RepoSpec, get_input, get_multiline_input
from ..file_filter import create_file_name_filter
from ..git import Git
from ..github_rest import create_upstream_client
from ..issues import get_opened_issues, unique_with
from ..logging import get_logger
from ..plugin import FinallyContext, YukiNoContext, YukiNoPlugin, find_plugin_with
from .apply import apply_file_changes, apply_line_changes
from .changes import extract_file_changes, is_binary_file
from .models import BatchIssue, FileChange, FileStatus, LineChange, WorkingCopy
from .pull_request import (
    APPLY_COMMIT_MESSAGE,
    BRANCH_NAME,
    PR_LABEL,
    BatchPrApi,
    create_commit,
    create_pr_body,
    get_tracked_issues,
    setup_batch_pr,
)
from .release_gate import ReleaseLabelsProvider, filter_pended_translation_issues
from .statuses import parse_file_statuses

ROOT_DIR_INPUT = "YUKI_NO_BATCH_PR_ROOT_DIR"
EXCLUDE_INPUT = "YUKI_NO_BATCH_PR_EXCLUDE"
RELEASE_LABELS_PROVIDER_ATTR = "get_release_tracking_labels"

GitHubFactory = Callable[[Config], BatchPrApi]
GitFactory = Callable[[Config, RepoSpec], WorkingCopy]


def _default_git(config: Config, repo_spec: RepoSpec) -> WorkingCopy:
    return Git(config, repo_spec, with_clone=True)


def resolve_release_labels_provider(plugins: Iterable[Any]) -> ReleaseLabelsProvider | None:
    provider_plugin = find_plugin_with(plugins, RELEASE_LABELS_PROVIDER_ATTR)
    if provider_plugin is None:
        return None
    provider: ReleaseLabelsProvider = getattr(provider_plugin, RELEASE_LABELS_PROVIDER_ATTR)
    return provider


def run_batch_pr(
    config: Config,
    env: Mapping[str, str],
    github: BatchPrApi,
    git_factory: GitFactory = _default_git,
    release_labels_provider: ReleaseLabelsProvider | None = None,
) -> int | None:
    """Bring the batch PR up to date; returns its number, or None when nothing changed.

    Working copies opened here are closed before returning.
    """
    logger = get_logger()
    logger.info("=== Batch PR plugin started ===")

    issues = get_opened_issues(github)
    eligible = filter_pended_translation_issues(
        issues, release_labels_provider, env, github.configured_labels
    )
    if not eligible:
        logger.info("batch_pr :: No pending translation issues found, skipping batch PR process")
        return None
    eligible_numbers = {issue.number for issue in eligible}
    held_back = [issue for issue in issues if issue.number not in eligible_numbers]

    with ExitStack() as stack:
        upstream_git = git_factory(config, config.upstream_repo_spec)
        stack.callback(upstream_git.close)
        pr_number = setup_batch_pr(
            github, upstream_git, BRANCH_NAME, base=config.upstream_repo_spec.branch
        )

        tracked = get_tracked_issues(github, pr_number, eligible)
        to_process = unique_with(tracked.should_track_issues, lambda issue: issue.number)
        logger.info(
            f"batch_pr :: Processing {len(to_process)} issues "
            f"({len(tracked.tracked_issues)} already in PR #{pr_number})"
        )
        if not to_process:
            logger.info("batch_pr :: No new issues to batch")
            return None

        root_dir = get_input(env, ROOT_DIR_INPUT) or None
        batch_exclude = get_multiline_input(env, EXCLUDE_INPUT)
        if root_dir:
            logger.info(f"batch_pr :: Using root directory filter: {root_dir}")
        if batch_exclude:
            logger.info(f"batch_pr :: Using batch PR exclude patterns: {', '.join(batch_exclude)}")
        file_name_filter = create_file_name_filter(
            config.include, [*config.exclude, *batch_exclude], root_dir
        )

        head_git = git_factory(config, config.head_repo_spec)
        stack.callback(head_git.close)
        excluded_files: list[str] = []
        file_changes: list[FileChange] = []
        for issue in to_process:
            changes = extract_file_changes(
                head_git,
                issue.hash,
                file_name_filter,
                root_dir=root_dir,
                on_excluded=excluded_files.append,
            )
            file_changes.extend(changes)
            logger.info(
                f"batch_pr :: Extracted {len(changes)} file changes from commit {issue.hash[:8]}"
            )

        if not file_changes:
            logger.warning("batch_pr :: No file changes found, skipping batch PR update")
            return None

        with logger.timed_operation("batch_pr_apply", files=len(file_changes)):
            apply_file_changes(upstream_git, file_changes)
            create_commit(upstream_git, APPLY_COMMIT_MESSAGE)
            upstream_git.exec("push", "-f", "origin", BRANCH_NAME)

    entries = [
        *(BatchIssue(issue.number, "Resolved") for issue in tracked.tracked_issues),
        *(BatchIssue(issue.number, "Resolved") for issue in to_process),
        *(BatchIssue(issue.number, "Pending") for issue in held_back),
    ]
    github.update_pull(number=pr_number, body=create_pr_body(entries, excluded_files))
    logger.success(
        f"batch_pr :: Batch PR #{pr_number} updated successfully with {len(file_changes)} file changes"
    )
    return pr_number


class BatchPrPlugin(YukiNoPlugin):
    name = "batch-pr"

    def __init__(
        self,
        github_factory: GitHubFactory | None = None,
        git_factory: GitFactory | None = None,
        release_labels_provider: ReleaseLabelsProvider | None = None,
    ) -> None:
        self._github_factory = github_factory or create_upstream_client
        self._git_factory = git_factory or _default_git
        self._explicit_provider = release_labels_provider
        self.release_labels_provider: ReleaseLabelsProvider | None = release_labels_provider

    def on_init(self, ctx: YukiNoContext) -> None:
        self.release_labels_provider = self._explicit_provider or resolve_release_labels_provider(
            ctx.plugins
        )
        if self.release_labels_provider is not None:
            get_logger().info("batch_pr :: Release-tracking labels will hold back unreleased issues")

    def on_finally(self, ctx: FinallyContext) -> None:
        run_batch_pr(
            ctx.config,
            ctx.env,
            self._github_factory(ctx.config),
            self._git_factory,
            self.release_labels_provider,
        )


plugin = BatchPrPlugin()

__all__ = [
    "BatchPrPlugin",
    "plugin",
    "run_batch_pr",
    "resolve_release_labels_provider",
    "BRANCH_NAME",
    "PR_LABEL",
    "BatchIssue",
    "FileChange",
    "FileStatus",
    "LineChange",
    "apply_file_changes",
    "apply_line_changes",
    "create_pr_body",
    "extract_file_changes",
    "is_binary_file",
    "parse_file_statuses",
]
