"""Version control abstraction consumed by the addon manager."""
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class VersionControlClient(ABC):
    """
    Stateless facade over version control operations on a checkout.

    Every operation blocks until the underlying command finishes and
    raises GitError on failure.
    """

    @abstractmethod
    def clone(self, into_dir: Path, url: str, target_name: str) -> None:
        """Clone ``url`` into ``into_dir / target_name``."""
        pass

    @abstractmethod
    def fetch(self, repo_dir: Path) -> None:
        """Fetch and prune remote refs."""
        pass

    @abstractmethod
    def current_branch(self, repo_dir: Path) -> str:
        pass

    @abstractmethod
    def default_branch(self, repo_dir: Path) -> str:
        """Branch the remote's symbolic HEAD points to."""
        pass

    @abstractmethod
    def current_revision(self, repo_dir: Path) -> str:
        pass

    @abstractmethod
    def latest_revision(self, repo_dir: Path, branch: str) -> str:
        """Revision at the tip of ``origin/<branch>`` without checking it out."""
        pass

    @abstractmethod
    def switch_branch(self, repo_dir: Path, name: str) -> None:
        pass

    @abstractmethod
    def pull(self, repo_dir: Path, force: bool = False) -> None:
        pass

    @abstractmethod
    def hard_reset(self, repo_dir: Path, revision: Optional[str] = None) -> None:
        pass
