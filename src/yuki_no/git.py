"""Working-copy wrapper around the ``git`` executable.

Each :class:`Git` owns one temporary clone, removed by :meth:`Git.close`
or on leaving a ``with`` block. Commands are passed as argument
lists (never through a shell) and failures raise :class:`GitCommandError`
with any embedded credentials redacted.
"""

from __future__ import annotations

import shutil
import subprocess  # nosec B404 - git is driven through its CLI
import tempfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .config import Config, RepoSpec
from .errors import GitCommandError
from .logging import get_logger


@dataclass
class GitResult:
    returncode: int
    stdout: bytes
    stderr: bytes


Runner = Callable[[Sequence[str], Path], GitResult]


def _default_runner(args: Sequence[str], cwd: Path) -> GitResult:
    completed = subprocess.run(  # nosec B603 B607 - argument list, no shell
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        check=False,
    )
    return GitResult(completed.returncode, completed.stdout, completed.stderr)


def create_authorized_repo_url(repo_url: str, user_name: str, access_token: str) -> str:
    return repo_url.replace("https://", f"https://{user_name}:{access_token}@", 1)


class Git:
    def __init__(
        self,
        config: Config,
        repo_spec: RepoSpec,
        *,
        with_clone: bool = False,
        runner: Runner | None = None,
    ):
        self.config = config
        self.repo_spec = repo_spec
        self._runner = runner or _default_runner
        self._dir_name: Path | None = None
        get_logger().debug(f"Git :: instance created for {repo_spec.full_name}")
        if with_clone:
            try:
                self.clone()
            except GitCommandError:
                self.close()
                raise

    @property
    def dir_name(self) -> Path:
        if self._dir_name is None:
            self._dir_name = Path(
                tempfile.mkdtemp(prefix=f"cloned-by-yuki-no__{self.repo_spec.name}__")
            )
        return self._dir_name

    @property
    def repo_url(self) -> str:
        return self.repo_spec.url

    def _run(self, args: Sequence[str], cwd: Path) -> GitResult:
        result = self._runner(args, cwd)
        if result.returncode != 0:
            raise GitCommandError(
                " ".join(args),
                result.returncode,
                result.stderr.decode("utf-8", errors="replace"),
                result.stdout.decode("utf-8", errors="replace"),
            )
        return result

    def exec(self, *args: str) -> str:
        """Run ``git <args>`` inside the clone and return stripped stdout."""
        result = self._run(args, self.dir_name)
        return result.stdout.decode("utf-8", errors="replace").strip()

    def exec_raw(self, *args: str) -> str:
        """Like :meth:`exec` but keeps leading/trailing whitespace (diff output)."""
        result = self._run(args, self.dir_name)
        return result.stdout.decode("utf-8", errors="replace")

    def exec_bytes(self, *args: str) -> bytes:
        return self._run(args, self.dir_name).stdout

    def clone(self) -> None:
        target = self.dir_name
        logger = get_logger()
        logger.info(f"Git.clone :: Cloning repository: {target}")
        if target.exists():
            shutil.rmtree(target)
        authorized = create_authorized_repo_url(
            self.repo_url, self.config.user_name, self.config.access_token
        )
        self._run(["clone", authorized, target.name], target.parent)
        self.exec("config", "user.name", self.config.user_name)
        self.exec("config", "user.email", self.config.email)
        logger.success(
            f"Git.clone :: Repository clone completed with '{self.config.user_name}' "
            f"and '{self.config.email}' / {target.name}"
        )

    def close(self) -> None:
        """Delete the temporary clone. A later command starts a fresh directory."""
        if self._dir_name is None:
            return
        shutil.rmtree(self._dir_name, ignore_errors=True)
        get_logger().debug(f"Git.close :: Removed {self._dir_name}")
        self._dir_name = None

    def __enter__(self) -> Git:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["Git", "GitResult", "GitCommandError", "create_authorized_repo_url"]
