from __future__ import annotations

import os
import posixpath
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, cast

import yaml
from dotenv import load_dotenv

from .errors import ConfigError

ENV_PREFIX = "YUKI_NO_"
ENV_CONFIG_PATH = "YUKI_NO_CONFIG"

DEFAULT_USER_NAME = "github-actions"
DEFAULT_EMAIL = "action@github.com"
DEFAULT_BRANCH = "main"
DEFAULT_LABEL = "sync"
DEFAULT_SERVER_URL = "https://github.com"


@dataclass(frozen=True)
class RepoSpec:
    owner: str
    name: str
    branch: str = DEFAULT_BRANCH

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def url(self) -> str:
        return f"{DEFAULT_SERVER_URL}/{self.owner}/{self.name}"


@dataclass(frozen=True)
class Config:
    access_token: str
    head_repo_spec: RepoSpec
    upstream_repo_spec: RepoSpec
    track_from: str
    user_name: str = DEFAULT_USER_NAME
    email: str = DEFAULT_EMAIL
    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()
    labels: tuple[str, ...] = (DEFAULT_LABEL,)
    plugins: tuple[str, ...] = ()
    verbose: bool = True
    json_logs: bool = False
    source_file: Path | None = field(default=None, compare=False)


def split_by_newline(text: str | None) -> list[str]:
    trimmed = (text or "").strip()
    if not trimmed:
        return []
    return [line.strip() for line in trimmed.split("\n") if line.strip()]


def get_input(env: Mapping[str, str], name: str, default: str | None = None) -> str | None:
    """Plugin-safe input lookup restricted to ``YUKI_NO_`` variables."""
    if not name.startswith(ENV_PREFIX):
        return default
    value = env.get(name)
    return default if value is None else value


def get_boolean_input(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = get_input(env, name)
    if value is None:
        return default
    return value.strip().lower() == "true"


def get_multiline_input(
    env: Mapping[str, str], name: str, default: list[str] | None = None
) -> list[str]:
    value = get_input(env, name)
    if value is None:
        return list(default or [])
    return split_by_newline(value)


def filter_plugin_env(environ: Mapping[str, str]) -> Mapping[str, str]:
    """Return a read-only view of the ``YUKI_NO_`` variables only."""
    return MappingProxyType(
        {k: v for k, v in environ.items() if k.startswith(ENV_PREFIX)}
    )


def extract_repo_owner(url: str) -> str:
    dirname = posixpath.dirname(url)
    if ":" in dirname:
        dirname = dirname.split(":")[-1]
    return posixpath.basename(dirname)


def extract_repo_name(url: str) -> str:
    name = posixpath.basename(url)
    return name[: -len(".git")] if name.endswith(".git") else name


def create_repo_spec(url: str, branch: str) -> RepoSpec:
    return RepoSpec(owner=extract_repo_owner(url), name=extract_repo_name(url), branch=branch)


def infer_upstream_repo(environ: Mapping[str, str]) -> str:
    server_url = environ.get("GITHUB_SERVER_URL") or DEFAULT_SERVER_URL
    repository = environ.get("GITHUB_REPOSITORY")
    if not repository:
        raise ConfigError(
            "\n".join(
                [
                    "Failed to infer upstream repository: GITHUB_REPOSITORY environment variable is not set.",
                    "This typically happens when running outside of GitHub Actions.",
                    "For local development, please explicitly set the YUKI_NO_UPSTREAM_REPO environment variable.",
                ]
            )
        )
    return f"{server_url}/{repository}.git"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration file must contain a mapping: {path}")
    return cast(dict[str, Any], raw)


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return split_by_newline(value)
    return [str(v).strip() for v in value if str(v).strip()]


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
    *,
    load_env_file: bool = True,
) -> Config:
    """Build the run configuration.

    ``YUKI_NO_*`` environment variables are read first; keys in the optional
    YAML file (``path`` or ``$YUKI_NO_CONFIG``) take precedence over them.
    """
    if environ is None:
        if load_env_file and Path(".env").exists():
            load_dotenv(".env", override=False)
        environ = os.environ

    cfg_path = path or environ.get(ENV_CONFIG_PATH)
    file_values = _load_yaml(Path(cfg_path)) if cfg_path else {}

    def pick(key: str, env_name: str) -> Any:
        if key in file_values and file_values[key] is not None:
            return file_values[key]
        return environ.get(f"{ENV_PREFIX}{env_name}")

    access_token = pick("access_token", "ACCESS_TOKEN")
    head_repo = pick("head_repo", "HEAD_REPO")
    track_from = pick("track_from", "TRACK_FROM")

    if not access_token:
        raise ConfigError("`accessToken` is required.")
    if not head_repo:
        raise ConfigError("`headRepo` is required.")
    if not track_from:
        raise ConfigError("`trackFrom` is required.")

    upstream_repo = pick("upstream_repo", "UPSTREAM_REPO") or infer_upstream_repo(environ)
    head_branch = pick("head_repo_branch", "HEAD_REPO_BRANCH") or DEFAULT_BRANCH

    labels_raw = pick("labels", "LABELS")
    labels = _as_list(labels_raw) if labels_raw is not None else [DEFAULT_LABEL]
    verbose_raw = pick("verbose", "VERBOSE")
    json_raw = pick("json_logs", "JSON_LOGS")

    return Config(
        access_token=str(access_token),
        head_repo_spec=create_repo_spec(str(head_repo), str(head_branch)),
        upstream_repo_spec=create_repo_spec(str(upstream_repo), DEFAULT_BRANCH),
        track_from=str(track_from).strip(),
        user_name=str(pick("user_name", "USER_NAME") or DEFAULT_USER_NAME),
        email=str(pick("email", "EMAIL") or DEFAULT_EMAIL),
        include=tuple(_as_list(pick("include", "INCLUDE"))),
        exclude=tuple(_as_list(pick("exclude", "EXCLUDE"))),
        labels=tuple(sorted(labels)),
        plugins=tuple(_as_list(pick("plugins", "PLUGINS"))),
        verbose=True if verbose_raw is None else _as_bool(verbose_raw),
        json_logs=False if json_raw is None else _as_bool(json_raw),
        source_file=Path(cfg_path) if cfg_path else None,
    )


__all__ = [
    "RepoSpec",
    "Config",
    "ConfigError",
    "load_config",
    "create_repo_spec",
    "infer_upstream_repo",
    "filter_plugin_env",
    "get_input",
    "get_boolean_input",
    "get_multiline_input",
    "split_by_newline",
]
