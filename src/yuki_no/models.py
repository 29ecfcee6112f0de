from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Commit:
    hash: str
    title: str
    iso_date: str
    file_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class Issue:
    number: int
    body: str
    labels: tuple[str, ...]
    hash: str
    iso_date: str


@dataclass
class IssueMeta:
    """Proposed content for a new tracking issue; plugins may edit it in place."""

    title: str
    body: str
    labels: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CreatedIssue:
    """Result of issue creation before the commit hash is attached."""

    number: int
    body: str
    labels: tuple[str, ...]
    iso_date: str

    def with_hash(self, hash: str) -> Issue:
        return Issue(
            number=self.number,
            body=self.body,
            labels=self.labels,
            hash=hash,
            iso_date=self.iso_date,
        )
