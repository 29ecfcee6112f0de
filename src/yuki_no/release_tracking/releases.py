from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from packaging.version import InvalidVersion, Version

from ..config import split_by_newline
from ..logging import get_logger


class TagSource(Protocol):
    @property
    def repo_url(self) -> str: ...

    def exec(self, *args: str) -> str: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class Tag:
    version: str
    url: str


@dataclass(frozen=True)
class ReleaseInfo:
    prerelease: Tag | None = None
    release: Tag | None = None


def _parse_version(raw: str) -> Version | None:
    try:
        return Version(raw)
    except InvalidVersion:
        return None


def _create_tag(repo_url: str, version: str | None) -> Tag | None:
    if not version:
        return None
    return Tag(version=version, url=f"{repo_url}/releases/tag/{version}")


def get_release(git: TagSource, commit_hash: str) -> ReleaseInfo:
    """First pre-release and first release tag containing ``commit_hash``.

    Tags that are not valid versions are ignored.
    """
    logger = get_logger()
    logger.info(f"get_release :: Retrieving release list for commit {commit_hash}")
    result = git.exec("tag", "--contains", commit_hash)
    if not result:
        logger.info("get_release :: Not released")
        return ReleaseInfo()

    parsed = [
        (raw, version)
        for raw in split_by_newline(result)
        if (version := _parse_version(raw)) is not None
    ]
    first_prerelease = next((raw for raw, v in parsed if v.is_prerelease), None)
    first_release = next((raw for raw, v in parsed if not v.is_prerelease), None)

    info = ReleaseInfo(
        prerelease=_create_tag(git.repo_url, first_prerelease),
        release=_create_tag(git.repo_url, first_release),
    )
    logger.info(
        f"get_release :: Released (pre: {first_prerelease or ''} / prod: {first_release or ''})"
    )
    return info


def has_any_release(git: TagSource) -> bool:
    return len(git.exec("tag")) != 0


__all__ = ["Tag", "ReleaseInfo", "TagSource", "get_release", "has_any_release"]
