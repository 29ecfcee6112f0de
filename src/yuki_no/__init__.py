"""Yuki-no - track head-repo commits as GitHub issues on an upstream repository.

High-level public API:

    import asyncio
    from yuki_no import load_config, run

    cfg = load_config()  # YUKI_NO_* environment, optionally a YAML file
    created = asyncio.run(run(cfg))

Plugins subclass :class:`YukiNoPlugin` (or expose the same hooks) and are
named in ``YUKI_NO_PLUGINS``; ``batch-pr`` and ``release-tracking`` ship
with the package.
"""

from __future__ import annotations

from .config import Config, RepoSpec, load_config
from .errors import YukiNoError
from .models import Commit, Issue, IssueMeta
from .orchestrator import run
from .plugin import YukiNoPlugin

# Keep in sync with pyproject.toml
__version__ = "1.0.0"

__all__ = [
    "Commit",
    "Config",
    "Issue",
    "IssueMeta",
    "RepoSpec",
    "YukiNoError",
    "YukiNoPlugin",
    "load_config",
    "run",
    "__version__",
]
