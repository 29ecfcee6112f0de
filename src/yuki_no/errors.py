"""Error taxonomy & redaction.

Every failure Yuki-no raises on purpose derives from :class:`YukiNoError`
so the CLI can tell expected failures (bad configuration, invalid
``trackFrom``) from programming errors. Remote API and git failures carry
enough context to be diagnosed from a CI log without re-running.

Public API:
- YukiNoError and its subclasses
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

# Tokens that may leak through git remotes, stderr or API error payloads
_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),  # GitHub classic tokens
    re.compile(r"ghs_[A-Za-z0-9]{20,40}"),  # GitHub Actions installation tokens
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"(?<=https://)[^/\s:@]+:[^/\s@]+(?=@)"),  # user:token@ in clone URLs
]

_REDACTION_PLACEHOLDER = "<redacted>"


class YukiNoError(RuntimeError):
    """Base class for expected Yuki-no failures."""


class ConfigError(YukiNoError):
    """A required configuration value is missing or cannot be resolved."""


class InvalidTrackFromError(YukiNoError):
    """The log query produced output without any commit record separator."""

    def __init__(self, track_from: str):
        super().__init__(f"Invalid trackFrom commit hash: {track_from}")
        self.track_from = track_from


class InvalidChunkSizeError(YukiNoError, ValueError):
    def __init__(self, chunk_size: int):
        super().__init__(f"Invalid chunk size: {chunk_size}")
        self.chunk_size = chunk_size


class PluginLoadError(YukiNoError):
    def __init__(self, plugin_name: str, resolved_id: str, reason: str):
        lines = [
            f'Failed to load plugin "{plugin_name}": {reason}',
            f"Resolved ID: {resolved_id}",
            f"Original plugin specification: {plugin_name}",
        ]
        if plugin_name != resolved_id:
            version = plugin_name.replace(resolved_id, "", 1).lstrip("@")
            if version:
                lines.append(f"Version specification: {version}")
        super().__init__("\n".join(lines))
        self.plugin_name = plugin_name
        self.resolved_id = resolved_id
        self.reason = reason


class GitCommandError(YukiNoError):
    def __init__(self, command: str, exit_code: int, stderr: str, stdout: str):
        command = redact(command)
        stderr = redact(stderr)
        super().__init__(
            f"Git command failed: git {command}\nExit code: {exit_code}\nError: {stderr}"
        )
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        self.stdout = stdout


class BatchPrError(YukiNoError):
    """The batch pull request is in a state the plugin cannot work with."""


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Redact sensitive tokens in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    Typed failures map directly; everything else falls back to keyword
    matching on the message (rate limit / abuse / network) or 'generic'.
    """
    msg = str(exc) if exc else ""
    low = msg.lower()
    name = exc.__class__.__name__

    if isinstance(exc, ConfigError):
        return ErrorInfo("config", redact(msg), name)
    if isinstance(exc, InvalidTrackFromError):
        return ErrorInfo("config.track_from", redact(msg), name)
    if isinstance(exc, PluginLoadError):
        return ErrorInfo(
            "plugin.load",
            redact(msg),
            name,
            details={"plugin": exc.plugin_name, "resolved_id": exc.resolved_id},
        )
    if isinstance(exc, GitCommandError):
        return ErrorInfo("git", redact(msg), name, details={"exit_code": exc.exit_code})
    if "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("github.rate_limit", redact(msg), name, transient=True)
    if "abuse" in low:
        return ErrorInfo("github.abuse", redact(msg), name, transient=True)
    if any(k in low for k in ("timeout", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", redact(msg), name, transient=True)
    return ErrorInfo("generic", redact(msg), name)


__all__ = [
    "YukiNoError",
    "ConfigError",
    "InvalidTrackFromError",
    "InvalidChunkSizeError",
    "PluginLoadError",
    "GitCommandError",
    "BatchPrError",
    "ErrorInfo",
    "classify_error",
    "redact",
]
