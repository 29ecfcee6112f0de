"""Run orchestration: watermark, plugin lifecycle and the commit-to-issue sync.

Lifecycle per run::

    on_init -> on_before_compare -> on_after_compare
      -> (on_before_create_issue -> create -> on_after_create_issue)*
      -> on_error (only on failure) -> on_finally (always)

The first failure aborts the run; issues created before it stay in place.
"""

from __future__ import annotations

import os
import time
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from .commits import LogSource, get_commits
from .config import Config, filter_plugin_env
from .git import Git
from .github_rest import create_upstream_client
from .issues import (
    IssueApi,
    create_issue,
    create_issue_body,
    get_latest_successful_run_iso_date,
    lookup_commits_in_issues,
)
from .logging import get_logger
from .models import Issue, IssueMeta
from .plugin import HookPipeline, YukiNoContext, load_plugins


async def sync_commits(
    config: Config,
    github: IssueApi,
    git: LogSource,
    pipeline: HookPipeline,
    latest_successful_run: str | None = None,
    *,
    repo_url: str | None = None,
) -> list[Issue]:
    """Compare head history with upstream issues and mint the missing ones."""
    logger = get_logger()
    logger.info("=== Synchronization started ===")

    await pipeline.before_compare()

    with logger.timed_operation("compare_commits"):
        commits = get_commits(config, git, latest_successful_run)
        not_created = lookup_commits_in_issues(github, commits)

    # Issue creation keeps using this list; plugins only observe it.
    await pipeline.after_compare(not_created)

    logger.info(f"sync_commits :: Number of commits to create as issues: {len(not_created)}")

    head_url = repo_url or config.head_repo_spec.url
    created: list[Issue] = []
    for commit in not_created:
        issue_meta = IssueMeta(
            title=commit.title,
            body=create_issue_body(head_url, commit.hash),
            labels=list(config.labels),
        )
        await pipeline.before_create_issue(commit, issue_meta)

        issue = create_issue(github, issue_meta).with_hash(commit.hash)
        created.append(issue)

        await pipeline.after_create_issue(commit, issue)

    logger.success(f"sync_commits :: {len(created)} issues created successfully")
    return created


async def _run_lifecycle(
    config: Config,
    github: IssueApi,
    head_git: LogSource,
    loaded: list[Any],
    environ: Mapping[str, str],
    started: float,
) -> list[Issue]:
    logger = get_logger()
    context = YukiNoContext(
        config=config,
        env=filter_plugin_env(environ),
        plugins=tuple(loaded),
    )
    pipeline = HookPipeline(loaded, context)

    latest_successful_run = get_latest_successful_run_iso_date(github)
    repo_url = getattr(head_git, "repo_url", None)

    success = False
    try:
        await pipeline.init()
        created = await sync_commits(
            config, github, head_git, pipeline, latest_successful_run, repo_url=repo_url
        )
        duration = time.perf_counter() - started
        logger.log_performance("yuki_no_run", duration * 1000, created=len(created))
        logger.success(
            f"Yuki-no completed ({datetime.now(timezone.utc).isoformat()}) - Duration: {duration:.2f}s"
        )
        success = True
        return created
    except Exception as exc:
        await pipeline.error(exc)
        raise
    finally:
        await pipeline.finally_(success)


async def run(
    config: Config,
    *,
    github: IssueApi | None = None,
    head_git: LogSource | None = None,
    plugins: Sequence[Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[Issue]:
    """Execute one Yuki-no run.

    Collaborators default to the real REST client, a fresh clone of the head
    repository and the plugins named in ``config.plugins``; tests pass fakes.
    A clone made here is removed when the run ends. Returns the issues
    created by this run.
    """
    logger = get_logger()
    started = time.perf_counter()
    logger.info(f"Starting Yuki-no ({datetime.now(timezone.utc).isoformat()})")

    if github is None:
        github = create_upstream_client(config)
        logger.success("GitHub initialized")
    owned_git: Git | None = None
    if head_git is None:
        head_git = owned_git = Git(config, config.head_repo_spec, with_clone=True)
        logger.success("Git initialized")
    try:
        loaded = list(plugins) if plugins is not None else load_plugins(config.plugins)
        return await _run_lifecycle(
            config, github, head_git, loaded, os.environ if environ is None else environ, started
        )
    finally:
        if owned_git is not None:
            owned_git.close()


__all__ = ["run", "sync_commits"]
