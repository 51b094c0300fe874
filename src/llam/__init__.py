"""llam - Lua language server addon manager.

Keeps language server addons (git checkouts under ``<project>/.addons``)
in step with the addons declared in the project's ``.luarc.json``.

Usage:
    from llam import AddonManager, Addon, SomeOrAll

    manager = AddonManager(project_root)
    manager.add([Addon.parse("love2d")])
    manager.update(SomeOrAll.all())
"""

from .addon import Addon, ShortSource, SomeOrAll, UrlSource, parse_source
from .errors import ContextError, GitError, LlamError, ManifestError, SettingsError
from .manager import AddonManager, OperationResult, UpdateAction

__version__ = "0.1.0"

__all__ = [
    "Addon",
    "ShortSource",
    "UrlSource",
    "SomeOrAll",
    "parse_source",
    "AddonManager",
    "OperationResult",
    "UpdateAction",
    "LlamError",
    "GitError",
    "ManifestError",
    "SettingsError",
    "ContextError",
]
