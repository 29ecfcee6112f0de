from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import requests

from .config import Config, RepoSpec
from .errors import YukiNoError, redact
from .retry import (
    HOURLY_LIMIT_SECONDS,
    PRIMARY_RATE_LIMIT_RETRIES,
    RetryConfig,
    classify_network_error,
    compute_sleep,
    extract_explicit_backoff,
    is_secondary_rate_limit,
    is_transient,
    run_with_retries,
)

DEFAULT_API_URL = "https://api.github.com"
USER_AGENT = "yuki-no-rest/1.0"
HTTP_ERROR_STATUS = 400
HTTP_SERVER_ERROR_STATUS = 500
RATE_LIMIT_STATUSES = (403, 429)


class GitHubAPIError(YukiNoError):
    """Raised when the GitHub REST API returns an error."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        response_text: str | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(redact(message))
        self.status = status
        self.response_text = response_text
        self.retry_after = retry_after


def classify_api_error(exc: Exception, attempt: int, cfg: RetryConfig) -> float | None:
    """Return the sleep before the next attempt, or None when not retryable."""
    if not isinstance(exc, GitHubAPIError):
        return classify_network_error(exc, attempt, cfg)
    status = exc.status or 0
    text = exc.response_text or ""
    if status >= HTTP_SERVER_ERROR_STATUS:
        return compute_sleep(attempt, cfg)
    if status not in RATE_LIMIT_STATUSES or not (is_transient(text) or exc.retry_after):
        return None
    explicit = exc.retry_after or extract_explicit_backoff(text)
    if explicit is not None and explicit >= HOURLY_LIMIT_SECONDS:
        return None
    if not is_secondary_rate_limit(text) and attempt > PRIMARY_RATE_LIMIT_RETRIES:
        return None
    return compute_sleep(attempt, cfg, explicit)


def _retry_after(response: Any) -> float | None:
    headers = getattr(response, "headers", None) or {}
    raw = headers.get("Retry-After") or headers.get("retry-after")
    try:
        return float(raw) if raw is not None else None
    except ValueError:
        return None


@dataclass
class GitHubRestClient:
    """Lightweight REST client scoped to one repository."""

    token: str
    repo_spec: RepoSpec
    labels: tuple[str, ...] = ()
    base_url: str = DEFAULT_API_URL
    session: requests.Session | None = None
    retry_config: RetryConfig | None = None
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:  # pragma: no cover - simple wiring
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("Authorization", f"Bearer {self.token}")
        self._session.headers.setdefault("Accept", "application/vnd.github+json")
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    @property
    def repo(self) -> str:
        return self.repo_spec.full_name

    @property
    def configured_labels(self) -> tuple[str, ...]:
        return self.labels

    # ---- REST helpers -------------------------------------------------
    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
    ) -> Any:
        url = (
            path
            if path.startswith("http")
            else f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        )

        def _run() -> Any:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self._session.headers,
                timeout=30,
            )
            if response.status_code >= HTTP_ERROR_STATUS:
                raise GitHubAPIError(
                    f"GitHub API {method} {url} failed with {response.status_code}",
                    status=response.status_code,
                    response_text=response.text,
                    retry_after=_retry_after(response),
                )
            return response

        response = run_with_retries(_run, cfg=self.retry_config, classify=classify_api_error)
        if response.text:
            try:
                return response.json()
            except ValueError:  # pragma: no cover - defensive
                return response.text
        return None

    def _paginate(self, path: str, *, params: dict[str, Any] | None = None) -> list[Any]:
        params = dict(params or {})
        per_page = params.setdefault("per_page", 100)
        params.setdefault("page", 1)
        results: list[Any] = []
        while True:
            data = self._request("GET", path, params=params)
            if not isinstance(data, list):
                break
            results.extend(data)
            if len(data) < per_page:
                break
            params["page"] = params.get("page", 1) + 1
        return results

    # ---- Search -------------------------------------------------------
    def search_issues(self, q: str) -> list[dict[str, Any]]:
        data = self._request(
            "GET", "/search/issues", params={"q": q, "advanced_search": "true"}
        )
        items = data.get("items") if isinstance(data, dict) else None
        return [item for item in items or [] if isinstance(item, dict)]

    # ---- Issue operations --------------------------------------------
    def create_issue(
        self,
        *,
        title: str,
        body: str,
        labels: Iterable[str] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"title": title, "body": body}
        if labels is not None:
            payload["labels"] = list(labels)
        data = self._request("POST", f"/repos/{self.repo}/issues", json_body=payload)
        if not isinstance(data, dict) or not isinstance(data.get("number"), int):
            raise GitHubAPIError(f"Unexpected create issue response for {self.repo}")
        return data

    def list_open_issues(self) -> list[dict[str, Any]]:
        data = self._paginate(f"/repos/{self.repo}/issues", params={"state": "open"})
        return [
            entry
            for entry in data
            if isinstance(entry, dict) and "pull_request" not in entry
        ]

    def set_issue_labels(self, *, number: int, labels: Iterable[str]) -> list[str]:
        data = self._request(
            "PUT",
            f"/repos/{self.repo}/issues/{number}/labels",
            json_body={"labels": list(labels)},
        )
        if not isinstance(data, list):
            return []
        return [str(item.get("name")) for item in data if isinstance(item, dict)]

    def create_issue_comment(self, *, number: int, body: str) -> None:
        self._request(
            "POST", f"/repos/{self.repo}/issues/{number}/comments", json_body={"body": body}
        )

    def list_issue_comments(self, *, number: int) -> list[dict[str, Any]]:
        data = self._paginate(f"/repos/{self.repo}/issues/{number}/comments")
        return [entry for entry in data if isinstance(entry, dict)]

    # ---- Actions ------------------------------------------------------
    def list_workflow_runs(self, *, status: str = "success") -> list[dict[str, Any]]:
        data = self._request(
            "GET", f"/repos/{self.repo}/actions/runs", params={"status": status}
        )
        runs = data.get("workflow_runs") if isinstance(data, dict) else None
        return [run for run in runs or [] if isinstance(run, dict)]

    # ---- Pull requests ------------------------------------------------
    def get_pull(self, *, number: int) -> dict[str, Any]:
        data = self._request("GET", f"/repos/{self.repo}/pulls/{number}")
        return data if isinstance(data, dict) else {}

    def create_pull(self, *, title: str, body: str, head: str, base: str) -> dict[str, Any]:
        data = self._request(
            "POST",
            f"/repos/{self.repo}/pulls",
            json_body={"title": title, "body": body, "head": head, "base": base},
        )
        if not isinstance(data, dict) or not isinstance(data.get("number"), int):
            raise GitHubAPIError(f"Unexpected create pull response for {self.repo}")
        return data

    def update_pull(self, *, number: int, body: str) -> None:
        self._request(
            "PATCH", f"/repos/{self.repo}/pulls/{number}", json_body={"body": body}
        )


def create_upstream_client(config: Config) -> GitHubRestClient:
    """Client for the upstream repository, where tracking issues live."""
    return GitHubRestClient(
        token=config.access_token,
        repo_spec=config.upstream_repo_spec,
        labels=config.labels,
    )


__all__ = ["GitHubAPIError", "GitHubRestClient", "classify_api_error", "create_upstream_client"]
