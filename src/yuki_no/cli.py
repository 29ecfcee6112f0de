"""Yuki-no CLI.

Subcommands:
  sync     -> mirror new head-repo commits into upstream tracking issues
  plugins  -> list available plugins, or check the configured ones load

Exit codes: 0 success, 1 run failure, 2 configuration or plugin-load error.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from collections.abc import Sequence
from importlib import metadata
from typing import Any

from .config import ENV_CONFIG_PATH, Config, load_config
from .errors import ConfigError, PluginLoadError, classify_error
from .logging import configure_logging, get_logger
from .orchestrator import run
from .plugin import BUILTIN_PLUGINS, PLUGIN_GROUP, load_plugins

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="yuki-no", description="Track head-repo commits as upstream GitHub issues"
    )
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Only log warnings and errors (same as YUKI_NO_VERBOSE=false)",
    )
    p.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    p.add_argument(
        "--config",
        default=None,
        help=f"Optional YAML file overriding YUKI_NO_* inputs (env: {ENV_CONFIG_PATH})",
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )
    sub.add_parser("sync", help="Create tracking issues and run plugin hooks")
    pp = sub.add_parser("plugins", help="List available plugins")
    pp.add_argument(
        "--check",
        action="store_true",
        help="Load the configured plugins and report the first failure",
    )
    return p


def _configure_logging(args: argparse.Namespace, cfg: Config | None) -> None:
    verbose = not args.quiet and (cfg.verbose if cfg else True)
    json_logs = args.json_logs or (cfg.json_logs if cfg else False)
    configure_logging(json_logging=json_logs, verbose=verbose)


def _report_failure(exc: BaseException) -> None:
    info = classify_error(exc)
    get_logger().log_error(
        f"Yuki-no failed: {info.message}",
        error_category=info.category,
        error_type=info.original_type,
        transient=info.transient,
    )


def _cmd_sync(cfg: Config) -> int:
    try:
        asyncio.run(run(cfg))
    except (ConfigError, PluginLoadError) as exc:
        _report_failure(exc)
        return EXIT_CONFIG
    except Exception as exc:
        _report_failure(exc)
        return EXIT_FAILURE
    return EXIT_OK


def _available_plugins() -> list[str]:
    names = set(BUILTIN_PLUGINS)
    names.update(ep.name for ep in metadata.entry_points(group=PLUGIN_GROUP))
    return sorted(names)


def _cmd_plugins(cfg: Config | None, check: bool) -> int:
    if not check:
        for name in _available_plugins():
            print(name)
        return EXIT_OK
    if cfg is None:  # pragma: no cover - guarded by main
        return EXIT_CONFIG
    try:
        loaded = load_plugins(cfg.plugins)
    except PluginLoadError as exc:
        _report_failure(exc)
        return EXIT_CONFIG
    for plugin in loaded:
        print(plugin.name)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if os.environ.get("YUKI_NO_QUIET") == "1":
        args.quiet = True

    needs_config = args.cmd == "sync" or getattr(args, "check", False)
    cfg: Config | None = None
    if needs_config:
        try:
            cfg = load_config(args.config)
        except ConfigError as exc:
            _configure_logging(args, None)
            _report_failure(exc)
            return EXIT_CONFIG
    _configure_logging(args, cfg)

    if args.cmd == "sync":
        assert cfg is not None  # nosec B101 - loaded above
        return _cmd_sync(cfg)
    if args.cmd == "plugins":
        return _cmd_plugins(cfg, args.check)
    parser.print_help()  # pragma: no cover - argparse enforces valid choices
    return EXIT_FAILURE  # pragma: no cover


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
