"""Pytest configuration and shared fakes for Yuki-no tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`).
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

# Ensure pytest-asyncio plugin is loaded explicitly so @pytest.mark.asyncio tests run
pytest_plugins = ["pytest_asyncio"]

from yuki_no.config import Config, RepoSpec  # noqa: E402


class FakeGitHub:
    """In-memory stand-in for GitHubRestClient scoped to the upstream repo."""

    def __init__(
        self,
        *,
        labels: Iterable[str] = ("sync",),
        open_issues: list[dict[str, Any]] | None = None,
        workflow_runs: list[dict[str, Any]] | None = None,
        search: Callable[[str], list[dict[str, Any]]] | None = None,
    ):
        self.repo_spec = RepoSpec("acme", "docs-ko")
        self.labels = tuple(labels)
        self.open_issues = list(open_issues or [])
        self.workflow_runs = list(workflow_runs or [])
        self._search = search or (lambda q: [])
        self.comments: dict[int, list[dict[str, Any]]] = {}
        self.pulls: dict[int, dict[str, Any]] = {}
        self.search_queries: list[str] = []
        self.created_issues: list[dict[str, Any]] = []
        self.label_updates: list[tuple[int, list[str]]] = []
        self.created_comments: list[tuple[int, str]] = []
        self.created_pulls: list[dict[str, Any]] = []
        self.pull_updates: list[tuple[int, str]] = []
        self._next_number = 100

    @property
    def configured_labels(self) -> tuple[str, ...]:
        return self.labels

    def search_issues(self, q: str) -> list[dict[str, Any]]:
        self.search_queries.append(q)
        return self._search(q)

    def create_issue(self, *, title: str, body: str, labels: Iterable[str] | None = None) -> dict[str, Any]:
        self._next_number += 1
        data = {
            "number": self._next_number,
            "title": title,
            "body": body,
            "labels": list(labels or []),
            "created_at": f"2024-01-01T00:00:{len(self.created_issues):02d}Z",
        }
        self.created_issues.append(data)
        return data

    def list_open_issues(self) -> list[dict[str, Any]]:
        return list(self.open_issues)

    def set_issue_labels(self, *, number: int, labels: Iterable[str]) -> list[str]:
        self.label_updates.append((number, list(labels)))
        return list(labels)

    def create_issue_comment(self, *, number: int, body: str) -> None:
        self.created_comments.append((number, body))
        self.comments.setdefault(number, []).append({"body": body})

    def list_issue_comments(self, *, number: int) -> list[dict[str, Any]]:
        return list(self.comments.get(number, []))

    def list_workflow_runs(self, *, status: str = "success") -> list[dict[str, Any]]:
        return list(self.workflow_runs)

    def get_pull(self, *, number: int) -> dict[str, Any]:
        return self.pulls.get(number, {})

    def create_pull(self, *, title: str, body: str, head: str, base: str) -> dict[str, Any]:
        self._next_number += 1
        data = {"number": self._next_number, "title": title, "body": body, "head": head, "base": base}
        self.created_pulls.append(data)
        self.pulls[self._next_number] = data
        return data

    def update_pull(self, *, number: int, body: str) -> None:
        self.pull_updates.append((number, body))
        self.pulls.setdefault(number, {"number": number})["body"] = body


class FakeGit:
    """Scripted git working copy.

    ``outputs`` maps an argument prefix to the text that command prints;
    the longest matching prefix wins and anything unscripted prints nothing.
    """

    def __init__(
        self,
        dir_name: Path,
        outputs: dict[tuple[str, ...], str] | None = None,
        *,
        blobs: dict[str, bytes] | None = None,
        repo_url: str = "https://github.com/acme/docs",
    ):
        self.dir_name = dir_name
        self.outputs = dict(outputs or {})
        self.blobs = dict(blobs or {})
        self.repo_url = repo_url
        self.calls: list[tuple[str, ...]] = []
        self.closed = False

    def _lookup(self, args: tuple[str, ...]) -> str:
        best: tuple[str, ...] | None = None
        for prefix in self.outputs:
            if args[: len(prefix)] == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        return self.outputs[best] if best is not None else ""

    def exec(self, *args: str) -> str:
        self.calls.append(args)
        return self._lookup(args).strip()

    def exec_raw(self, *args: str) -> str:
        self.calls.append(args)
        return self._lookup(args)

    def exec_bytes(self, *args: str) -> bytes:
        self.calls.append(args)
        return self.blobs.get(args[-1], b"")

    def close(self) -> None:
        self.closed = True


def issue_payload(
    number: int,
    commit_hash: str,
    *,
    labels: Iterable[str] = ("sync",),
    created_at: str = "2024-01-01T00:00:00Z",
) -> dict[str, Any]:
    return {
        "number": number,
        "body": f"New updates on head repo.\r\nhttps://github.com/acme/docs/commit/{commit_hash}",
        "labels": [{"name": label} for label in labels],
        "created_at": created_at,
    }


@pytest.fixture
def config() -> Config:
    return Config(
        access_token="ghp_test",
        head_repo_spec=RepoSpec("acme", "docs"),
        upstream_repo_spec=RepoSpec("acme", "docs-ko"),
        track_from="a" * 40,
    )


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture(autouse=True)
def _quiet_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("YUKI_NO_RETRY_MAX_SLEEP", "YUKI_NO_CONFIG", "YUKI_NO_QUIET"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _fresh_logger(monkeypatch: pytest.MonkeyPatch) -> None:
    # the global logger binds sys.stdout at creation; capture swaps it per test
    monkeypatch.setattr("yuki_no.logging._GLOBAL", None)
