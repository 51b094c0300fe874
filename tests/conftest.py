"""Shared fixtures for addon manager tests."""
import json
from pathlib import Path
from typing import Optional

import pytest

from llam.errors import GitError
from llam.git import VersionControlClient
from llam.reporting import Outcome, ProgressEvent, ProgressReporter


class FakeGitClient(VersionControlClient):
    """
    In-memory version control client.

    Checkout state is scripted per addon directory name; every call is
    recorded as ``(operation, dir_name, *args)``.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.branches: dict[str, str] = {}
        self.defaults: dict[str, str] = {}
        self.revisions: dict[str, str] = {}
        self.latest: dict[tuple[str, str], str] = {}
        # operation -> {dir name or "*": exception to raise (None: GitError)}
        self.failures: dict[str, dict[str, Optional[BaseException]]] = {}

    def fail(self, operation: str, name: str = "*", error: Optional[BaseException] = None) -> None:
        self.failures.setdefault(operation, {})[name] = error

    def _check(self, operation: str, name: str) -> None:
        targets = self.failures.get(operation, {})
        for key in (name, "*"):
            if key in targets:
                if targets[key] is not None:
                    raise targets[key]
                raise GitError(f"git {operation} failed: scripted failure", stderr="scripted failure")

    def _call(self, operation: str, repo_dir: Path, *args) -> str:
        name = Path(repo_dir).name
        self.calls.append((operation, name) + args)
        self._check(operation, name)
        return name

    def ops(self, name: Optional[str] = None) -> list[str]:
        return [c[0] for c in self.calls if name is None or c[1] == name]

    def clone(self, into_dir: Path, url: str, target_name: str) -> None:
        self.calls.append(("clone", target_name, url))
        self._check("clone", target_name)
        checkout = Path(into_dir) / target_name
        (checkout / ".git").mkdir(parents=True)
        (checkout / "config.json").write_text("{}")

    def fetch(self, repo_dir: Path) -> None:
        self._call("fetch", repo_dir)

    def current_branch(self, repo_dir: Path) -> str:
        name = self._call("current_branch", repo_dir)
        return self.branches.get(name, "main")

    def default_branch(self, repo_dir: Path) -> str:
        name = self._call("default_branch", repo_dir)
        return self.defaults.get(name, "main")

    def current_revision(self, repo_dir: Path) -> str:
        name = self._call("current_revision", repo_dir)
        return self.revisions.get(name, "0" * 40)

    def latest_revision(self, repo_dir: Path, branch: str) -> str:
        name = self._call("latest_revision", repo_dir, branch)
        return self.latest.get((name, branch), self.revisions.get(name, "0" * 40))

    def switch_branch(self, repo_dir: Path, name: str) -> None:
        dir_name = self._call("switch_branch", repo_dir, name)
        self.branches[dir_name] = name

    def pull(self, repo_dir: Path, force: bool = False) -> None:
        self._call("pull", repo_dir)

    def hard_reset(self, repo_dir: Path, revision: Optional[str] = None) -> None:
        name = self._call("hard_reset", repo_dir, revision)
        if revision:
            self.revisions[name] = revision


class RecordingReporter(ProgressReporter):
    """Keeps every progress event in memory."""

    def __init__(self):
        self.events: list[ProgressEvent] = []

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def by_outcome(self, outcome: Outcome) -> list[ProgressEvent]:
        return [e for e in self.events if e.outcome is outcome]

    def messages(self, outcome: Optional[Outcome] = None) -> list[str]:
        return [e.message for e in self.events if outcome is None or e.outcome is outcome]


@pytest.fixture
def fake_git():
    return FakeGitClient()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def project(tmp_path):
    """An empty project directory."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def write_manifest(project):
    """Write a ``.luarc.json`` into the project and return its path."""

    def _write(data: dict) -> Path:
        path = project / ".luarc.json"
        path.write_text(json.dumps(data, indent=2))
        return path

    return _write


def make_checkout(project: Path, name: str) -> Path:
    """Create a directory that looks like an installed addon checkout."""
    checkout = project / ".addons" / name
    (checkout / ".git").mkdir(parents=True)
    (checkout / "config.json").write_text("{}")
    return checkout


@pytest.fixture
def checkout(project):
    return lambda name: make_checkout(project, name)
