"""Holding back issues whose commit has not shipped in a head-repo release yet.

The gate is optional: it needs a provider of release-tracking labels (the
``release-tracking`` plugin exposes one). Without a provider, or when the
provider fails, every issue passes.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence

from ..logging import get_logger
from ..models import Issue

ReleaseLabelsProvider = Callable[[Mapping[str, str], Iterable[str]], Iterable[str]]


def get_pending_labels(
    provider: ReleaseLabelsProvider | None,
    env: Mapping[str, str],
    configured_labels: Iterable[str],
) -> list[str]:
    logger = get_logger()
    if provider is None:
        logger.info("release_gate :: No release-tracking provider, nothing is held back")
        return []
    try:
        return list(provider(env, configured_labels))
    except Exception as exc:
        logger.warning(
            "release_gate :: Release-tracking provider failed, nothing is held back",
            error=str(exc),
        )
        return []


def filter_pended_translation_issues(
    issues: Sequence[Issue],
    provider: ReleaseLabelsProvider | None,
    env: Mapping[str, str],
    configured_labels: Iterable[str],
) -> list[Issue]:
    pending = get_pending_labels(provider, env, configured_labels)
    get_logger().info(f"release_gate :: Release tracking labels [{', '.join(pending)}]")
    return [issue for issue in issues if not any(label in pending for label in issue.labels)]


__all__ = ["ReleaseLabelsProvider", "get_pending_labels", "filter_pended_translation_issues"]
