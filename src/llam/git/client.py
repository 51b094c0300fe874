"""Subprocess-backed git client.

Shells out to a git executable for every operation; exit code 0 is
success, anything else raises GitError with the captured stderr.
"""
import logging
import subprocess
from pathlib import Path
from typing import Optional

from ..errors import GitError
from ..utils.logging_config import timed
from .base import VersionControlClient

logger = logging.getLogger(__name__)

ORIGIN_HEAD_PREFIX = "refs/remotes/origin/"


class GitClient(VersionControlClient):
    """Runs git commands against addon checkouts."""

    def __init__(self, executable: str = "git"):
        """
        Initialize GitClient.

        Args:
            executable: git executable name or path
        """
        self.executable = executable

    def _run_git(
        self,
        cwd: Path,
        *args: str,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        """Run a git command in ``cwd``."""
        cmd = [self.executable] + list(args)
        logger.debug(f"Running in {cwd}: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd),
                capture_output=True,
                text=True,
                check=False,  # We'll handle errors ourselves
            )
        except OSError as e:
            raise GitError(f"Failed to run {self.executable}: {e}", command=cmd) from e

        if check and result.returncode != 0:
            stderr = result.stderr.strip()
            logger.debug(f"Git command failed ({result.returncode}): {stderr}")
            raise GitError(
                f"git {args[0]} failed: {stderr or f'exit code {result.returncode}'}",
                command=cmd,
                returncode=result.returncode,
                stderr=stderr,
            )

        return result

    @timed("git.clone", target_arg=3)
    def clone(self, into_dir: Path, url: str, target_name: str) -> None:
        self._run_git(into_dir, "clone", url, target_name)
        logger.info(f"Cloned {url} into {Path(into_dir) / target_name}")

    @timed("git.fetch")
    def fetch(self, repo_dir: Path) -> None:
        self._run_git(repo_dir, "fetch", "-p")

    @timed("git.current_branch")
    def current_branch(self, repo_dir: Path) -> str:
        result = self._run_git(repo_dir, "rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip()

    @timed("git.default_branch")
    def default_branch(self, repo_dir: Path) -> str:
        result = self._run_git(repo_dir, "symbolic-ref", ORIGIN_HEAD_PREFIX + "HEAD")
        ref = result.stdout.strip()
        if ref.startswith(ORIGIN_HEAD_PREFIX):
            return ref[len(ORIGIN_HEAD_PREFIX):]
        if "/" not in ref:
            raise GitError(f"Unexpected origin HEAD reference: {ref!r}")
        return ref.rsplit("/", 1)[1]

    @timed("git.current_revision")
    def current_revision(self, repo_dir: Path) -> str:
        result = self._run_git(repo_dir, "rev-parse", "--verify", "HEAD")
        return result.stdout.strip()

    @timed("git.latest_revision")
    def latest_revision(self, repo_dir: Path, branch: str) -> str:
        result = self._run_git(
            repo_dir, "log", "-n", "1", f"origin/{branch}", "--pretty=format:%H"
        )
        revision = result.stdout.strip()
        if not revision:
            raise GitError(f"No commits found on origin/{branch}")
        return revision

    @timed("git.switch")
    def switch_branch(self, repo_dir: Path, name: str) -> None:
        self._run_git(repo_dir, "switch", name)

    @timed("git.pull")
    def pull(self, repo_dir: Path, force: bool = False) -> None:
        args = ["pull"]
        if force:
            args.append("--force")
        self._run_git(repo_dir, *args)

    @timed("git.reset")
    def hard_reset(self, repo_dir: Path, revision: Optional[str] = None) -> None:
        args = ["reset", "--hard"]
        if revision:
            args.append(revision)
        self._run_git(repo_dir, *args)
