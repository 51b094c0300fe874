"""Version control access for addon checkouts.

Provides:
- VersionControlClient: the interface the addon manager consumes
- GitClient: implementation shelling out to the git executable
"""

from ..errors import GitError
from .base import VersionControlClient
from .client import GitClient

__all__ = [
    "VersionControlClient",
    "GitClient",
    "GitError",
]
