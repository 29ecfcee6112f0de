from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from conftest import FakeGit, FakeGitHub, issue_payload
from yuki_no.batch_pr import (
    BatchPrPlugin,
    resolve_release_labels_provider,
    run_batch_pr,
)
from yuki_no.batch_pr.apply import apply_file_changes, apply_line_changes
from yuki_no.batch_pr.changes import (
    create_file_changes,
    extract_file_changes,
    is_binary_file,
    parse_line_changes,
)
from yuki_no.batch_pr.models import BatchIssue, FileChange, FileStatus, LineChange
from yuki_no.batch_pr.pull_request import (
    BRANCH_NAME,
    PR_LABEL,
    create_commit,
    create_pr_body,
    create_pr_title,
    extract_issue_numbers,
    get_tracked_issues,
    setup_batch_pr,
)
from yuki_no.batch_pr.release_gate import filter_pended_translation_issues
from yuki_no.batch_pr.statuses import parse_file_status, parse_file_statuses
from yuki_no.config import Config, RepoSpec
from yuki_no.errors import BatchPrError
from yuki_no.file_filter import create_file_name_filter
from yuki_no.models import Issue
from yuki_no.plugin import FinallyContext, YukiNoContext
from yuki_no.release_tracking import ReleaseTrackingPlugin

HASH_A = "a" * 40
HASH_B = "b" * 40
HASH_C = "c" * 40

DIFF = """diff --git a/docs/a.md b/docs/a.md
index 1111111..2222222 100644
--- a/docs/a.md
+++ b/docs/a.md
@@ -2 +2 @@
-old two
+new two
@@ -5,0 +6,2 @@
+six
+seven
"""


# ---- statuses -------------------------------------------------------------


def test_parse_file_status_variants() -> None:
    assert parse_file_status("M\tdocs/a.md") == FileStatus("M", "docs/a.md")
    assert parse_file_status("R100\told.md\tnew.md") == FileStatus("R", "old.md", "new.md", 100)
    assert parse_file_status("C75\ta.md\tb.md") == FileStatus("C", "a.md", "b.md", 75)
    assert parse_file_status("T\tlink") == FileStatus("T", "link")
    with pytest.raises(BatchPrError):
        parse_file_status("X\tweird")


def test_parse_file_statuses_filters_on_destination() -> None:
    excluded: list[str] = []
    accept = create_file_name_filter(include=["docs/**"])
    statuses = parse_file_statuses(
        "M\tdocs/a.md\nR90\tdocs/b.md\tsrc/b.md\nR100\tsrc/c.md\tdocs/c.md\n",
        accept,
        excluded.append,
    )
    assert [s.target_file_name for s in statuses] == ["docs/a.md", "docs/c.md"]
    assert excluded == ["src/b.md"]


# ---- line changes ---------------------------------------------------------


def test_parse_line_changes_uses_old_and_new_numbers() -> None:
    assert parse_line_changes(DIFF) == [
        LineChange("delete-line", 2),
        LineChange("insert-line", 2, "new two"),
        LineChange("insert-line", 6, "six"),
        LineChange("insert-line", 7, "seven"),
    ]


def test_apply_line_changes_reproduces_new_file() -> None:
    old = ["1", "old two", "3", "4", "5"]
    assert apply_line_changes(old, parse_line_changes(DIFF)) == [
        "1",
        "new two",
        "3",
        "4",
        "5",
        "six",
        "seven",
    ]


def test_missing_newline_marker_sets_end_of_file() -> None:
    dropped = parse_line_changes("@@ -1 +1 @@\n-a\n+b\n\\ No newline at end of file\n")
    assert dropped[-1] == LineChange("end-of-file", 0, "")
    assert apply_line_changes(["a", ""], dropped) == ["b"]

    restored = parse_line_changes("@@ -1 +1,2 @@\n-a\n\\ No newline at end of file\n+a\n+b\n")
    assert restored[-1] == LineChange("end-of-file", 0, "\n")
    assert apply_line_changes(["a"], restored) == ["a", "b", ""]

    assert all(c.type != "end-of-file" for c in parse_line_changes(DIFF))


def test_is_binary_file() -> None:
    assert is_binary_file("assets/logo.PNG")
    assert not is_binary_file("docs/guide.md")


# ---- file changes ---------------------------------------------------------


def test_create_file_changes_for_each_status(tmp_path: Path) -> None:
    git = FakeGit(
        tmp_path,
        {
            ("show", "-U0"): "@@ -0,0 +1 @@\n+hello\n",
            ("ls-tree", "-r", HASH_A): f"100644 blob {'f' * 40}\tdocs/img/new.png",
        },
        blobs={"f" * 40: b"\x89PNG"},
    )

    assert create_file_changes(git, HASH_A, FileStatus("D", "docs/x.md"), "docs") == [
        FileChange("delete", "x.md")
    ]
    assert create_file_changes(
        git, HASH_A, FileStatus("R", "docs/x.md", "docs/y.md", 100), "docs"
    ) == [FileChange("rename", "x.md", next_upstream_file_name="y.md", similarity=100)]
    assert create_file_changes(git, HASH_A, FileStatus("A", "docs/x.md"), "docs") == [
        FileChange("update", "x.md", changes=(LineChange("insert-line", 1, "hello"),))
    ]

    binary = create_file_changes(
        git, HASH_A, FileStatus("R", "docs/img/old.png", "docs/img/new.png", 80), "docs"
    )
    assert binary == [
        FileChange("delete", "img/old.png"),
        FileChange("update", "img/new.png", changes=b"\x89PNG"),
    ]


def test_extract_file_changes_reports_excluded_files(tmp_path: Path) -> None:
    git = FakeGit(
        tmp_path,
        {
            ("show", "--name-status"): "M\tdocs/a.md\nM\tsrc/skip.ts",
            ("show", "-U0"): DIFF,
        },
    )
    excluded: list[str] = []
    changes = extract_file_changes(
        git, HASH_A, create_file_name_filter(exclude=["src/**"]), on_excluded=excluded.append
    )
    assert [c.upstream_file_name for c in changes] == ["docs/a.md"]
    assert excluded == ["src/skip.ts"]
    assert ("show", "-U0", "--format=", HASH_A, "--", "docs/a.md") in git.calls


# ---- applying -------------------------------------------------------------


def test_apply_file_changes_on_working_tree(tmp_path: Path) -> None:
    (tmp_path / "docs").mkdir()
    (tmp_path / "docs" / "a.md").write_text("one\ntwo\nthree", encoding="utf-8")
    (tmp_path / "docs" / "gone.md").write_text("bye", encoding="utf-8")
    (tmp_path / "docs" / "old.md").write_text("keep\nme", encoding="utf-8")
    git = FakeGit(tmp_path)

    apply_file_changes(
        git,
        [
            FileChange(
                "update",
                "docs/a.md",
                changes=(LineChange("delete-line", 2), LineChange("insert-line", 2, "TWO")),
            ),
            FileChange("delete", "docs/gone.md"),
            FileChange("delete", "docs/never-existed.md"),
            FileChange("copy", "docs/old.md", next_upstream_file_name="docs/copy/old.md"),
            FileChange(
                "rename",
                "docs/old.md",
                changes=(LineChange("insert-line", 3, "more"),),
                next_upstream_file_name="docs/new.md",
            ),
            FileChange("rename", "docs/missing.md", next_upstream_file_name="docs/x.md"),
            FileChange("update", "docs/img/logo.png", changes=b"\x00\x01"),
            FileChange("type", "docs/a.md"),
        ],
    )

    assert (tmp_path / "docs" / "a.md").read_text(encoding="utf-8") == "one\nTWO\nthree"
    assert not (tmp_path / "docs" / "gone.md").exists()
    assert (tmp_path / "docs" / "copy" / "old.md").read_text(encoding="utf-8") == "keep\nme"
    assert not (tmp_path / "docs" / "old.md").exists()
    assert (tmp_path / "docs" / "new.md").read_text(encoding="utf-8") == "keep\nme\nmore"
    assert not (tmp_path / "docs" / "x.md").exists()
    assert (tmp_path / "docs" / "img" / "logo.png").read_bytes() == b"\x00\x01"


def test_apply_file_changes_keeps_final_newline_of_new_files(tmp_path: Path) -> None:
    (tmp_path / "empty.md").write_text("", encoding="utf-8")
    added = parse_line_changes("@@ -0,0 +1,2 @@\n+hello\n+world\n")
    unterminated = parse_line_changes("@@ -0,0 +1 @@\n+tail\n\\ No newline at end of file\n")

    apply_file_changes(
        FakeGit(tmp_path),
        [
            FileChange("update", "new.md", changes=tuple(added)),
            FileChange("update", "empty.md", changes=tuple(added)),
            FileChange("update", "tail.md", changes=tuple(unterminated)),
        ],
    )

    assert (tmp_path / "new.md").read_text(encoding="utf-8") == "hello\nworld\n"
    assert (tmp_path / "empty.md").read_text(encoding="utf-8") == "hello\nworld\n"
    assert (tmp_path / "tail.md").read_text(encoding="utf-8") == "tail"


def test_apply_file_changes_refuses_paths_outside_tree(tmp_path: Path) -> None:
    with pytest.raises(BatchPrError):
        apply_file_changes(FakeGit(tmp_path), [FileChange("delete", "../outside.md")])


# ---- pull request ---------------------------------------------------------


def test_pr_body_manifest_round_trip() -> None:
    body = create_pr_body(
        [BatchIssue(1), BatchIssue(2), BatchIssue(3, "Pending")],
        ["src/b.ts", "src/a.ts", "src/b.ts"],
    )
    assert extract_issue_numbers(body) == [1, 2]
    assert extract_issue_numbers(body, "Pending") == [3]
    assert "Excluded files (2)" in body
    assert body.index("`src/a.ts`") < body.index("`src/b.ts`")
    assert "_No issues have been batched yet._" in create_pr_body([])


def test_pr_title_is_per_day() -> None:
    assert create_pr_title(datetime(2024, 3, 9, tzinfo=timezone.utc)) == (
        "❄️ Translation Batch - 2024-03-09"
    )


def _issue(number: int, commit_hash: str = HASH_A, labels: tuple[str, ...] = ("sync",)) -> Issue:
    return Issue(number, "body", labels, commit_hash, "2024-01-01T00:00:00Z")


def test_get_tracked_issues_splits_by_manifest(github: FakeGitHub) -> None:
    github.pulls[7] = {"number": 7, "body": create_pr_body([BatchIssue(1)])}
    tracked = get_tracked_issues(github, 7, [_issue(1), _issue(2)])
    assert [i.number for i in tracked.tracked_issues] == [1]
    assert [i.number for i in tracked.should_track_issues] == [2]

    github.pulls[8] = {"number": 8, "body": ""}
    with pytest.raises(BatchPrError, match="body is empty"):
        get_tracked_issues(github, 8, [_issue(1)])


def test_create_commit_skips_clean_tree(tmp_path: Path) -> None:
    clean = FakeGit(tmp_path)
    assert not create_commit(clean, "msg")
    assert ("commit", "-m", "msg") not in clean.calls

    dirty = FakeGit(tmp_path, {("status", "--porcelain"): " M a.md"})
    assert create_commit(dirty, "msg")
    assert dirty.calls[-1] == ("commit", "-m", "msg")


def test_setup_batch_pr_creates_labelled_pr(github: FakeGitHub, tmp_path: Path) -> None:
    git = FakeGit(tmp_path)
    number = setup_batch_pr(github, git, BRANCH_NAME, base="main", title="t")

    assert github.created_pulls[0]["head"] == BRANCH_NAME
    assert github.created_pulls[0]["body"]
    assert github.label_updates == [(number, [PR_LABEL])]
    assert git.calls[0] == ("checkout", "-B", BRANCH_NAME)
    assert ("commit", "--allow-empty", "-m", "Initial translation batch commit") in git.calls
    assert ("push", "-f", "origin", BRANCH_NAME) in git.calls
    assert f"label:{PR_LABEL}" in github.search_queries[0]


def test_setup_batch_pr_reuses_open_pr(tmp_path: Path) -> None:
    github = FakeGitHub(search=lambda q: [{"number": 55}])
    git = FakeGit(tmp_path)

    assert setup_batch_pr(github, git, BRANCH_NAME, title="t") == 55
    assert git.calls == [("checkout", BRANCH_NAME)]
    assert github.created_pulls == []


# ---- release gate ---------------------------------------------------------


def test_release_gate_holds_back_pending_and_fails_open() -> None:
    issues = [_issue(1), _issue(2, labels=("pending", "sync"))]
    provider = ReleaseTrackingPlugin().get_release_tracking_labels

    assert [i.number for i in filter_pended_translation_issues(issues, provider, {}, ["sync"])] == [1]
    assert filter_pended_translation_issues(issues, None, {}, ["sync"]) == issues

    def broken(env: Any, labels: Any) -> list[str]:
        raise RuntimeError("provider exploded")

    assert filter_pended_translation_issues(issues, broken, {}, ["sync"]) == issues


def test_resolve_release_labels_provider() -> None:
    tracking = ReleaseTrackingPlugin()
    provider = resolve_release_labels_provider([BatchPrPlugin(), tracking])
    assert provider is not None
    assert provider({}, ["sync"]) == ["pending"]
    assert resolve_release_labels_provider([BatchPrPlugin()]) is None


# ---- end to end -----------------------------------------------------------


class _Repos:
    """git_factory handing out one scripted working copy per repository."""

    def __init__(self, config: Config, tmp_path: Path, head_outputs: dict[tuple[str, ...], str]):
        self.upstream_dir = tmp_path / "upstream"
        self.upstream_dir.mkdir()
        (self.upstream_dir / "docs").mkdir()
        (self.upstream_dir / "docs" / "a.md").write_text("one\ntwo\nthree", encoding="utf-8")
        self.upstream = FakeGit(self.upstream_dir, {("status", "--porcelain"): " M docs/a.md"})
        self.head = FakeGit(tmp_path / "head", head_outputs)
        self.config = config
        self.requested: list[RepoSpec] = []

    def __call__(self, config: Config, repo_spec: RepoSpec) -> FakeGit:
        self.requested.append(repo_spec)
        return self.upstream if repo_spec == config.upstream_repo_spec else self.head


HEAD_OUTPUTS = {
    ("show", "--name-status", "--format=", HASH_A): "M\tdocs/a.md",
    ("show", "-U0", "--format=", HASH_A): "@@ -2 +2 @@\n-two\n+TWO\n",
    ("show", "--name-status", "--format=", HASH_B): "A\tdocs/new.md\nM\tsrc/skip.ts",
    ("show", "-U0", "--format=", HASH_B): "@@ -0,0 +1,2 @@\n+hello\n+world\n",
}

BATCH_ENV = {"YUKI_NO_BATCH_PR_EXCLUDE": "src/**"}


def _batch_github(**kwargs: Any) -> FakeGitHub:
    return FakeGitHub(
        open_issues=[
            issue_payload(111, HASH_A, created_at="2024-01-01T00:00:00Z"),
            issue_payload(222, HASH_B, created_at="2024-01-02T00:00:00Z"),
            issue_payload(333, HASH_C, labels=("pending", "sync"), created_at="2024-01-03T00:00:00Z"),
        ],
        **kwargs,
    )


def test_run_batch_pr_folds_released_issues_into_one_pr(config: Config, tmp_path: Path) -> None:
    github = _batch_github()
    repos = _Repos(config, tmp_path, HEAD_OUTPUTS)

    number = run_batch_pr(
        config,
        BATCH_ENV,
        github,
        repos,
        ReleaseTrackingPlugin().get_release_tracking_labels,
    )

    assert number == github.created_pulls[0]["number"]
    assert len(github.pull_updates) == 1
    body = github.pull_updates[0][1]
    assert "Resolved #111" in body
    assert "Resolved #222" in body
    assert "Resolved #333" not in body
    assert "Pending #333" in body
    assert "`src/skip.ts`" in body
    assert (repos.upstream_dir / "docs" / "a.md").read_text(encoding="utf-8") == "one\nTWO\nthree"
    assert (repos.upstream_dir / "docs" / "new.md").read_text(encoding="utf-8") == "hello\nworld\n"
    assert ("commit", "-m", "Apply origin changes") in repos.upstream.calls
    assert repos.upstream.calls[-1] == ("push", "-f", "origin", BRANCH_NAME)
    assert repos.upstream.closed
    assert repos.head.closed


def test_run_batch_pr_twice_without_new_issues_changes_nothing(
    config: Config, tmp_path: Path
) -> None:
    github = _batch_github()
    provider = ReleaseTrackingPlugin().get_release_tracking_labels
    (tmp_path / "first").mkdir()
    (tmp_path / "second").mkdir()
    first_repos = _Repos(config, tmp_path / "first", HEAD_OUTPUTS)
    first = run_batch_pr(config, BATCH_ENV, github, first_repos, provider)
    assert first is not None

    github._search = lambda q: [{"number": first}] if f"label:{PR_LABEL}" in q else []
    second_repos = _Repos(config, tmp_path / "second", HEAD_OUTPUTS)
    second = run_batch_pr(config, BATCH_ENV, github, second_repos, provider)

    assert second is None
    assert len(github.pull_updates) == 1
    assert len(github.created_pulls) == 1
    assert second_repos.requested == [config.upstream_repo_spec]
    assert not [c for c in second_repos.upstream.calls if c[0] in ("commit", "push")]
    assert second_repos.upstream.closed


def test_run_batch_pr_only_processes_untracked_issues(config: Config, tmp_path: Path) -> None:
    github = _batch_github(search=lambda q: [{"number": 55}])
    github.pulls[55] = {"number": 55, "body": create_pr_body([BatchIssue(111)])}
    repos = _Repos(config, tmp_path, HEAD_OUTPUTS)

    assert run_batch_pr(config, {}, github, repos) == 55

    head_shows = [c for c in repos.head.calls if c[:2] == ("show", "--name-status")]
    assert head_shows == [
        ("show", "--name-status", "--format=", HASH_B),
        ("show", "--name-status", "--format=", HASH_C),
    ]
    body = github.pull_updates[0][1]
    assert "Resolved #111" in body
    assert "Resolved #222" in body
    # without a release provider nothing is held back
    assert "Resolved #333" in body


def test_run_batch_pr_without_changes_leaves_pr_alone(config: Config, tmp_path: Path) -> None:
    github = _batch_github()
    head = {("show", "--name-status"): "M\tsrc/skip.ts"}
    repos = _Repos(config, tmp_path, head)

    assert run_batch_pr(config, BATCH_ENV, github, repos) is None
    assert github.pull_updates == []
    assert ("commit", "-m", "Apply origin changes") not in repos.upstream.calls


def test_run_batch_pr_without_eligible_issues_does_nothing(config: Config, tmp_path: Path) -> None:
    github = FakeGitHub(open_issues=[issue_payload(333, HASH_C, labels=("pending", "sync"))])
    repos = _Repos(config, tmp_path, HEAD_OUTPUTS)

    result = run_batch_pr(
        config, {}, github, repos, ReleaseTrackingPlugin().get_release_tracking_labels
    )

    assert result is None
    assert repos.requested == []
    assert github.created_pulls == []


def test_plugin_resolves_provider_on_init_and_runs_on_finally(
    config: Config, tmp_path: Path
) -> None:
    github = _batch_github()
    repos = _Repos(config, tmp_path, HEAD_OUTPUTS)
    plugin = BatchPrPlugin(github_factory=lambda cfg: github, git_factory=repos)
    tracking = ReleaseTrackingPlugin()

    plugin.on_init(YukiNoContext(config=config, plugins=(plugin, tracking)))
    assert plugin.release_labels_provider is not None

    plugin.on_finally(FinallyContext(config=config, success=True))
    assert "Pending #333" in github.pull_updates[0][1]
