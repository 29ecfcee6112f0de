"""Include/exclude filtering of changed file paths.

Patterns are shell globs matched against the whole repository-relative
path: ``*`` and ``?`` stay inside one path segment, ``**`` spans segments,
``[...]`` and ``{a,b}`` work as usual, and dotfiles are matched like any
other file.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from functools import lru_cache

FileNameFilter = Callable[[str], bool]


def _find_closing(pattern: str, start: int, closer: str) -> int:
    end = pattern.find(closer, start + 1)
    return end


def _split_alternatives(body: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current = ""
    for ch in body:
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
            continue
        current += ch
    parts.append(current)
    return parts


def _translate(pattern: str, segment_start: bool = True) -> str:
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        at_start = segment_start if i == 0 else pattern[i - 1] == "/"
        if ch == "*" and pattern.startswith("**", i) and at_start:
            after = i + 2
            if after == n:
                out.append(".*")
                i = after
                continue
            if pattern[after] == "/":
                out.append("(?:.*/)?")
                i = after + 1
                continue
        if ch == "*":
            while i + 1 < n and pattern[i + 1] == "*":
                i += 1
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        elif ch == "[":
            end = _find_closing(pattern, i, "]")
            if end == -1:
                out.append(re.escape(ch))
            else:
                body = pattern[i + 1 : end]
                if body[:1] in ("!", "^"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = end
        elif ch == "{":
            end = _matching_brace(pattern, i)
            if end == -1:
                out.append(re.escape(ch))
            else:
                alternatives = _split_alternatives(pattern[i + 1 : end])
                out.append(
                    "(?:" + "|".join(_translate(alt, at_start) for alt in alternatives) + ")"
                )
                i = end
        else:
            out.append(re.escape(ch))
        i += 1
    return "".join(out)


def _matching_brace(pattern: str, start: int) -> int:
    depth = 0
    for idx in range(start, len(pattern)):
        if pattern[idx] == "{":
            depth += 1
        elif pattern[idx] == "}":
            depth -= 1
            if depth == 0:
                return idx
    return -1


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    normalized = pattern[2:] if pattern.startswith("./") else pattern
    return re.compile(_translate(normalized))


def glob_match(path: str, pattern: str) -> bool:
    return compile_glob(pattern).fullmatch(path) is not None


def match_any(path: str, patterns: Iterable[str]) -> bool:
    return any(glob_match(path, pattern) for pattern in patterns)


def normalize_root_dir(root_dir: str | None = None) -> str:
    if not root_dir:
        return ""
    return root_dir if root_dir.endswith("/") else f"{root_dir}/"


def resolve_file_name_with_root_dir(file_name: str, root_dir: str | None = None) -> str:
    """Map a head-repo path to its upstream path by stripping ``root_dir``."""
    if not root_dir:
        return file_name
    if file_name == root_dir:
        return ""
    normalized = normalize_root_dir(root_dir)
    if not file_name.startswith(normalized):
        return file_name
    return file_name[len(normalized) :]


def create_file_name_filter(
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
    root_dir: str | None = None,
) -> FileNameFilter:
    include_patterns = tuple(include)
    exclude_patterns = tuple(exclude)
    effective_include = include_patterns or ("**",)
    normalized_root = normalize_root_dir(root_dir)

    def _filter(file_name: str) -> bool:
        if not file_name:
            return False
        if not file_name.startswith(normalized_root):
            return False
        if not include_patterns and not exclude_patterns:
            return True
        return not match_any(file_name, exclude_patterns) and match_any(
            file_name, effective_include
        )

    return _filter


__all__ = [
    "FileNameFilter",
    "compile_glob",
    "glob_match",
    "match_any",
    "create_file_name_filter",
    "normalize_root_dir",
    "resolve_file_name_with_root_dir",
]
