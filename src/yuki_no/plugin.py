"""Plugin SDK: hook contexts, plugin loading and the hook pipeline.

A plugin is any object with a non-empty ``name`` and at least one of the
hooks in :data:`HOOK_NAMES`. Hooks may be plain functions or coroutines; the
pipeline awaits whatever they return when it is awaitable.

Plugin identifiers resolve, in order, through:
  1. the built-in names (``batch-pr``, ``release-tracking``)
  2. entry points in the ``yuki_no.plugins`` group
  3. ``module`` or ``module:attr`` import paths (``plugin`` is the default attr)

A trailing version (``name@1.2.3`` or ``@scope/name@1.2.3``) is ignored for
resolution but kept in error messages.
"""

from __future__ import annotations

import importlib
import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from importlib import metadata
from types import MappingProxyType
from typing import Any, cast

from .config import Config
from .errors import PluginLoadError
from .logging import get_logger
from .models import Commit, Issue, IssueMeta

PLUGIN_GROUP = "yuki_no.plugins"
DEFAULT_PLUGIN_ATTR = "plugin"

BUILTIN_PLUGINS: dict[str, str] = {
    "batch-pr": "yuki_no.batch_pr:plugin",
    "release-tracking": "yuki_no.release_tracking:plugin",
    "@yuki-no/plugin-batch-pr": "yuki_no.batch_pr:plugin",
    "@yuki-no/plugin-release-tracking": "yuki_no.release_tracking:plugin",
}

HOOK_NAMES = (
    "on_init",
    "on_before_compare",
    "on_after_compare",
    "on_before_create_issue",
    "on_after_create_issue",
    "on_error",
    "on_finally",
)

Hook = Callable[[Any], "Awaitable[None] | None"]


# --- Contexts -------------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class YukiNoContext:
    config: Config
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    plugins: tuple[Any, ...] = ()


@dataclass(frozen=True, kw_only=True)
class AfterCompareContext(YukiNoContext):
    commits: tuple[Commit, ...]


@dataclass(frozen=True, kw_only=True)
class BeforeCreateIssueContext(YukiNoContext):
    commit: Commit
    issue_meta: IssueMeta


@dataclass(frozen=True, kw_only=True)
class AfterCreateIssueContext(YukiNoContext):
    commit: Commit
    issue: Issue


@dataclass(frozen=True, kw_only=True)
class ErrorContext(YukiNoContext):
    error: BaseException


@dataclass(frozen=True, kw_only=True)
class FinallyContext(YukiNoContext):
    success: bool


class YukiNoPlugin:
    """Base class for plugins; every hook is optional.

    Subclasses override the hooks they need, as methods (sync or async).
    """

    name: str = ""

    on_init: Hook | None = None
    on_before_compare: Hook | None = None
    on_after_compare: Hook | None = None
    on_before_create_issue: Hook | None = None
    on_after_create_issue: Hook | None = None
    on_error: Hook | None = None
    on_finally: Hook | None = None

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"<{type(self).__name__} name={self.name!r}>"


# --- Loading --------------------------------------------------------------


def get_resolve_id(name: str) -> str:
    """Strip a version suffix: ``@scope/pkg@1.0`` -> ``@scope/pkg``, ``pkg@1.0`` -> ``pkg``."""
    if name.startswith("@"):
        return "@".join(name.split("@")[:2])
    if "@" in name:
        return name.split("@")[0]
    return name


def has_any_hook(obj: Any) -> bool:
    return any(callable(getattr(obj, hook, None)) for hook in HOOK_NAMES)


def _entry_point_target(resolved_id: str) -> Any | None:
    try:
        eps = metadata.entry_points(group=PLUGIN_GROUP)
    except Exception:  # pragma: no cover - importlib metadata edge case
        return None
    for ep in eps:
        if ep.name == resolved_id:
            return ep.load()
    return None


def _import_target(spec: str) -> Any:
    module_name, _, attr = spec.partition(":")
    module = importlib.import_module(module_name)
    target = getattr(module, attr or DEFAULT_PLUGIN_ATTR, None)
    if target is None:
        raise LookupError(f"Module {module_name!r} does not export a {attr or DEFAULT_PLUGIN_ATTR!r} plugin object")
    return target


def _resolve_target(resolved_id: str) -> Any:
    builtin = BUILTIN_PLUGINS.get(resolved_id)
    if builtin:
        return _import_target(builtin)
    from_entry_point = _entry_point_target(resolved_id)
    if from_entry_point is not None:
        return from_entry_point
    return _import_target(resolved_id)


def load_plugin(name: str) -> Any:
    resolved_id = get_resolve_id(name)
    try:
        target = _resolve_target(resolved_id)
        plugin = target() if isinstance(target, type) else target
        if not getattr(plugin, "name", None):
            raise ValueError(f'Plugin "{name}" must have a "name" property')
        if not has_any_hook(plugin):
            raise ValueError(
                f'Plugin "{name}" must define at least one of: {", ".join(HOOK_NAMES)}'
            )
    except PluginLoadError:
        raise
    except Exception as exc:
        raise PluginLoadError(name, resolved_id, str(exc)) from exc
    return plugin


def load_plugins(names: Iterable[str]) -> list[Any]:
    logger = get_logger()
    plugins: list[Any] = []
    for name in names:
        plugin = load_plugin(name)
        logger.info(f"load_plugins :: Plugin loaded: {plugin.name} ({name})")
        plugins.append(plugin)
    return plugins


def find_plugin_with(plugins: Iterable[Any], attr: str) -> Any | None:
    """First plugin exposing a callable ``attr``, if any."""
    for plugin in plugins:
        if callable(getattr(plugin, attr, None)):
            return plugin
    return None


# --- Pipeline -------------------------------------------------------------


class HookPipeline:
    """Fans each lifecycle event out to every plugin in load order.

    Failures in the regular hooks propagate at once. ``on_error`` and
    ``on_finally`` failures are logged and the next plugin still runs.
    """

    def __init__(self, plugins: Sequence[Any], context: YukiNoContext):
        self.plugins = tuple(plugins)
        self.context = context

    def _derive(self, cls: type[YukiNoContext], **extra: Any) -> Any:
        return cls(
            config=self.context.config,
            env=self.context.env,
            plugins=self.context.plugins,
            **extra,
        )

    async def _call(self, plugin: Any, hook_name: str, ctx: YukiNoContext) -> None:
        hook = getattr(plugin, hook_name, None)
        if hook is None:
            return
        get_logger().debug(f"HookPipeline :: {plugin.name}.{hook_name}")
        result = cast(Hook, hook)(ctx)
        if inspect.isawaitable(result):
            await result

    async def _dispatch(self, hook_name: str, ctx: YukiNoContext) -> None:
        for plugin in self.plugins:
            await self._call(plugin, hook_name, ctx)

    async def _dispatch_guarded(self, hook_name: str, ctx: YukiNoContext) -> None:
        for plugin in self.plugins:
            try:
                await self._call(plugin, hook_name, ctx)
            except Exception as exc:
                get_logger().log_error(
                    f"HookPipeline :: {plugin.name}.{hook_name} failed",
                    error=str(exc),
                    plugin=plugin.name,
                    hook=hook_name,
                )

    async def init(self) -> None:
        await self._dispatch("on_init", self.context)

    async def before_compare(self) -> None:
        await self._dispatch("on_before_compare", self.context)

    async def after_compare(self, commits: Sequence[Commit]) -> None:
        await self._dispatch(
            "on_after_compare", self._derive(AfterCompareContext, commits=tuple(commits))
        )

    async def before_create_issue(self, commit: Commit, issue_meta: IssueMeta) -> None:
        await self._dispatch(
            "on_before_create_issue",
            self._derive(BeforeCreateIssueContext, commit=commit, issue_meta=issue_meta),
        )

    async def after_create_issue(self, commit: Commit, issue: Issue) -> None:
        await self._dispatch(
            "on_after_create_issue",
            self._derive(AfterCreateIssueContext, commit=commit, issue=issue),
        )

    async def error(self, error: BaseException) -> None:
        await self._dispatch_guarded("on_error", self._derive(ErrorContext, error=error))

    async def finally_(self, success: bool) -> None:
        await self._dispatch_guarded(
            "on_finally", self._derive(FinallyContext, success=success)
        )


__all__ = [
    "PLUGIN_GROUP",
    "BUILTIN_PLUGINS",
    "HOOK_NAMES",
    "YukiNoContext",
    "AfterCompareContext",
    "BeforeCreateIssueContext",
    "AfterCreateIssueContext",
    "ErrorContext",
    "FinallyContext",
    "YukiNoPlugin",
    "HookPipeline",
    "get_resolve_id",
    "has_any_hook",
    "load_plugin",
    "load_plugins",
    "find_plugin_with",
]
