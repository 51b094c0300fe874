"""Addon manager - reconciles declared addons with checkouts on disk.

Provides the add / update / remove / clean operations:
1. Load the manifest (creating it when the project has none)
2. Inspect each addon's checkout through the version control client
3. Clone, switch, fetch + reset, or leave it alone
4. Persist the manifest once at the end

Addons are processed one at a time in input order. A failure in one addon
is reported and the remaining addons are still attempted, except in
remove, where a failed deletion aborts the run. A keyboard interrupt stops
scheduling; work completed so far is still written to the manifest.
"""
import logging
import re
import shutil
import tempfile
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, TypeVar, Union

from .addon import Addon, SomeOrAll
from .errors import ContextError, LlamError
from .git import GitClient, VersionControlClient
from .manifest import ADDONS_DIR, Manifest, ManifestStore
from .reporting import LoggingReporter, ProgressReporter
from .settings import Settings
from .utils.logging_config import timed_section

logger = logging.getLogger(__name__)

T = TypeVar("T")

Selection = Union[SomeOrAll, Iterable[Addon]]

_STAGING_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


class UpdateAction(str, Enum):
    """What update did to a single addon."""
    FRESH_CLONE = "fresh_clone"
    BRANCH_SWITCH = "branch_switch"
    DEFAULT_BRANCH_SYNC = "default_branch_sync"
    PIN_TO_CHECKSUM = "pin_to_checksum"
    FOLLOW_LATEST = "follow_latest"
    NOOP = "noop"


class StepError(LlamError):
    """A sub-step of an addon's reconciliation failed."""

    def __init__(self, phase: str, description: str, error: BaseException):
        super().__init__(f"{description}: {error}")
        self.phase = phase
        self.description = description
        self.error = error


@dataclass
class AddonFailure:
    """A per-addon failure recorded in an OperationResult."""
    addon: str
    phase: str
    error: str


@dataclass
class OperationResult:
    """Tally of a single manager operation."""
    operation: str
    total: int = 0
    succeeded: int = 0
    failures: list[AddonFailure] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    actions: dict[str, UpdateAction] = field(default_factory=dict)
    persisted: bool = True
    interrupted: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and self.persisted and not self.interrupted

    def fail(self, addon: str, phase: str, error: Any) -> None:
        self.failures.append(AddonFailure(addon=addon, phase=phase, error=str(error)))

    def summary(self) -> str:
        return f"[{self.operation.capitalize()}] {self.succeeded}/{self.total} Finished!"


def _as_selection(selection: Selection) -> SomeOrAll:
    if isinstance(selection, SomeOrAll):
        return selection
    return SomeOrAll.some(selection)


class AddonManager:
    """
    Keeps ``<root>/.addons`` and ``<root>/.luarc.json`` in step with the
    declared addons.

    Usage:
        manager = AddonManager(Path("."))
        result = manager.add([Addon.parse("love2d")])
        print(result.summary())
    """

    def __init__(
        self,
        base: Path,
        git: Optional[VersionControlClient] = None,
        reporter: Optional[ProgressReporter] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the addon manager.

        Args:
            base: Project root
            git: Version control client (default: GitClient from settings)
            reporter: Progress sink (default: log through llam.progress)
            settings: Tool settings (default: built-in defaults)
        """
        self.base = Path(base)
        self.settings = settings or Settings()
        self.git = git or GitClient(self.settings.git_executable)
        self.reporter = reporter or LoggingReporter()
        self.store = ManifestStore(self.base, self.git)

    @property
    def addons_dir(self) -> Path:
        return self.base / ADDONS_DIR

    def addon_path(self, name: str) -> Path:
        return self.addons_dir / name

    @property
    def staging_root(self) -> Path:
        if self.settings.staging_dir is not None:
            return self.settings.staging_dir
        return Path(tempfile.gettempdir())

    # === Helpers ===

    def _step(
        self,
        operation: str,
        addon: str,
        phase: str,
        description: str,
        func: Callable[..., T],
        *args: Any,
    ) -> T:
        """Run one sub-step, converting any failure into StepError."""
        self.reporter.status(operation, phase, description, addon)
        try:
            return func(*args)
        except (LlamError, OSError) as e:
            raise StepError(phase, description, e) from e

    def _observe(self, func: Callable[[Path], str], path: Path) -> Optional[str]:
        """Read checkout state, treating a failed read as unknown."""
        try:
            return func(path)
        except LlamError as e:
            logger.debug(f"Could not read state of {path}: {e}")
            return None

    def _persist(self, manifest: Manifest, result: OperationResult) -> None:
        self.reporter.status(result.operation, "persist", f"Updating {manifest.path.name}")
        try:
            self.store.save(manifest)
        except LlamError as e:
            result.persisted = False
            self.reporter.error(
                result.operation, "persist", f"failed to write updates to {manifest.path.name}: {e}"
            )

    @staticmethod
    def _delete(path: Path) -> bool:
        """Delete a checkout directory or stray file. Returns False if absent."""
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
        else:
            return False
        return True

    def _interrupted(self, result: OperationResult) -> None:
        result.interrupted = True
        self.reporter.warning(result.operation, "interrupt", "Interrupted, saving completed work")

    def _finish(self, result: OperationResult) -> OperationResult:
        if result.ok:
            self.reporter.success(result.operation, "done", result.summary())
        else:
            self.reporter.warning(result.operation, "done", result.summary())
        logger.info(
            f"{result.operation}: {result.succeeded}/{result.total} succeeded, "
            f"{len(result.failures)} failed"
        )
        return result

    # === Install ===

    def install(self, addon: Addon) -> Path:
        """
        Clone an addon and move the checkout into place.

        The clone is staged in a directory keyed by the pinned checksum (or
        a fresh token), checked out at the declared branch/checksum, then
        moved over any stale checkout at the destination. The staging
        directory is removed whenever the checkout does not reach its
        destination, interrupts included.

        Returns:
            Path of the installed checkout
        """
        # Checksums are opaque and may contain path separators
        token = _STAGING_UNSAFE.sub("_", addon.checksum) if addon.checksum else uuid.uuid4().hex
        staging_root = self.staging_root
        staging = staging_root / f"llam-{addon.name}-{token}"
        destination = self.addon_path(addon.name)

        try:
            staging_root.mkdir(parents=True, exist_ok=True)
            if staging.exists():
                shutil.rmtree(staging)
        except OSError as e:
            raise ContextError(f"failed to prepare staging directory {staging}", e) from e

        moved = False
        try:
            self.git.clone(staging_root, addon.clone_url(self.settings.hosting_url), staging.name)
            if addon.branch:
                self.git.switch_branch(staging, addon.branch)
            if addon.checksum:
                self.git.hard_reset(staging, addon.checksum)

            try:
                self._delete(destination)
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(staging), str(destination))
            except OSError as e:
                raise ContextError(f"failed to move checkout into {destination}", e) from e
            moved = True
        finally:
            if not moved and staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        logger.info(f"Installed {addon.name} at {destination}")
        return destination

    # === Add ===

    def add(self, addons: Iterable[Addon]) -> OperationResult:
        """
        Add addons: clone the ones that are new or missing on disk, record
        every declaration in the manifest, and warn about drift on the rest.
        """
        addons = list(addons)
        manifest = self.store.detect()
        result = OperationResult("add", total=len(addons))
        width = len(str(result.total))

        for index, addon in enumerate(addons, start=1):
            name = addon.name
            path = self.addon_path(name)
            self.reporter.status(
                "add", "start", f"{index:0{width}}/{result.total} Cloning {name}", name
            )

            if not path.exists() or name not in manifest:
                entry = manifest.merge(addon)
                try:
                    with timed_section("add.install", addon=name):
                        self.install(entry)
                except KeyboardInterrupt:
                    self._interrupted(result)
                    break
                except (LlamError, OSError) as e:
                    self.reporter.error("add", "clone", f"failed to clone addon: {e}", name)
                    result.fail(name, "clone", e)
                    continue
                self.reporter.success("add", "clone", f"{name} added", name)
            else:
                branch_diff = False
                if addon.branch is not None:
                    current = self._observe(self.git.current_branch, path)
                    branch_diff = current is not None and current != addon.branch
                checksum_diff = False
                if addon.checksum is not None:
                    current = self._observe(self.git.current_revision, path)
                    checksum_diff = current is not None and current != addon.checksum

                manifest.merge(addon)
                if branch_diff or checksum_diff:
                    self.reporter.warning("add", "drift", f"{name} update available", name)
                else:
                    self.reporter.status("add", "drift", f"{name} already installed", name)

            result.succeeded += 1

        if manifest.register_third_party(ADDONS_DIR):
            logger.debug(f"Registered {ADDONS_DIR} in workspace.userThirdParty")

        self._persist(manifest, result)
        return self._finish(result)

    # === Update ===

    def update(self, selection: Selection) -> OperationResult:
        """
        Bring checkouts of managed addons to their declared branch/checksum.

        Addons that are not in the manifest are skipped.
        """
        selection = _as_selection(selection)
        manifest = self.store.detect()
        addons = selection.resolve(manifest.addons)
        result = OperationResult("update")

        for addon in addons:
            name = addon.name
            if name not in manifest:
                self.reporter.status("update", "skip", f"{name} is not managed, skipping", name)
                result.skipped.append(name)
                continue

            result.total += 1
            entry = manifest.merge(addon)
            try:
                with timed_section("update", addon=name):
                    action = self._update_one(entry)
            except KeyboardInterrupt:
                self._interrupted(result)
                break
            except StepError as e:
                self.reporter.error("update", e.phase, f"failed to {e.phase}: {e}", name)
                result.fail(name, e.phase, e)
                continue

            result.actions[name] = action
            result.succeeded += 1
            if action is UpdateAction.NOOP:
                self.reporter.success("update", "done", f"{name} is up to date", name)
            else:
                self.reporter.success("update", "done", f"{name} updated", name)

        self._persist(manifest, result)
        return self._finish(result)

    def _update_one(self, entry: Addon) -> UpdateAction:
        name = entry.name
        path = self.addon_path(name)

        if not path.exists():
            self._step("update", name, "clone", f"Cloning {name}", self.install, entry)
            return UpdateAction.FRESH_CLONE

        branch = self._step(
            "update", name, "inspect", "Getting branch name", self.git.current_branch, path
        )
        default_branch = self._step(
            "update", name, "inspect", "Getting default branch name", self.git.default_branch, path
        )
        revision = self._step(
            "update", name, "inspect", "Getting current checksum", self.git.current_revision, path
        )

        if entry.branch is not None and entry.branch != branch:
            self._sync_branch(entry, path, entry.branch)
            return UpdateAction.BRANCH_SWITCH

        if entry.branch is None and branch != default_branch:
            self._sync_branch(entry, path, default_branch)
            return UpdateAction.DEFAULT_BRANCH_SYNC

        if entry.checksum is not None:
            if entry.checksum == revision:
                return UpdateAction.NOOP
            self._fetch_and_reset(name, path, entry.checksum)
            return UpdateAction.PIN_TO_CHECKSUM

        tracked = entry.branch or default_branch
        latest = self._step(
            "update", name, "inspect", f"Getting latest checksum of `{tracked}`",
            self.git.latest_revision, path, tracked,
        )
        if latest == revision:
            return UpdateAction.NOOP
        self._fetch_and_reset(name, path, latest)
        return UpdateAction.FOLLOW_LATEST

    def _sync_branch(self, entry: Addon, path: Path, branch: str) -> None:
        """Fetch, switch to ``branch``, pull, then pin to the checksum if declared."""
        name = entry.name
        self._step("update", name, "fetch", "Fetching latest repository changes", self.git.fetch, path)
        self._step("update", name, "switch", f"Switching to branch `{branch}`", self.git.switch_branch, path, branch)
        self._step("update", name, "pull", "Pulling latest changes", self.git.pull, path)
        if entry.checksum is not None:
            self._step(
                "update", name, "reset", f"Setting branch to checksum `{entry.checksum}`",
                self.git.hard_reset, path, entry.checksum,
            )

    def _fetch_and_reset(self, name: str, path: Path, revision: str) -> None:
        self._step("update", name, "fetch", "Fetching latest repository changes", self.git.fetch, path)
        self._step(
            "update", name, "reset", f"Setting branch to checksum `{revision}`",
            self.git.hard_reset, path, revision,
        )

    # === Remove ===

    def remove(self, selection: Selection) -> OperationResult:
        """
        Drop addons from the manifest and delete their checkouts.

        Raises:
            ContextError: a checkout could not be deleted; removals completed
                before it are persisted first
        """
        selection = _as_selection(selection)
        manifest = self.store.detect()
        addons = selection.resolve(manifest.addons)
        result = OperationResult("remove", total=len(addons))
        width = len(str(result.total))

        for index, addon in enumerate(addons, start=1):
            name = addon.name
            path = self.addon_path(name)
            self.reporter.status(
                "remove", "start", f"{index:0{width}}/{result.total} Removing {name}", name
            )

            manifest.remove(name)
            try:
                deleted = self._delete(path)
            except KeyboardInterrupt:
                self._interrupted(result)
                break
            except OSError as e:
                self.reporter.error("remove", "delete", f"failed to remove {path}: {e}", name)
                result.fail(name, "delete", e)
                self._persist(manifest, result)
                raise ContextError(f"failed to remove checkout {path}", e) from e

            if not deleted:
                logger.debug(f"No checkout for {name} at {path}")
            self.reporter.success("remove", "delete", f"{name} removed", name)
            result.succeeded += 1

        self._persist(manifest, result)
        return self._finish(result)

    # === Clean ===

    def clean(self) -> OperationResult:
        """Delete every entry in the addons directory that the manifest does not know."""
        manifest = self.store.detect()
        result = OperationResult("clean")

        if self.addons_dir.is_dir():
            for entry in sorted(self.addons_dir.iterdir()):
                if entry.name in manifest:
                    continue

                result.total += 1
                self.reporter.status(
                    "clean", "delete", f"Removing unknown addon `{entry.name}`", entry.name
                )
                try:
                    self._delete(entry)
                except OSError as e:
                    self.reporter.error(
                        "clean", "delete", f"failed to remove directory: {entry}: {e}", entry.name
                    )
                    result.fail(entry.name, "delete", e)
                    continue
                result.succeeded += 1

        return self._finish(result)

    # === Settings ===

    def configure(self, edit: Callable[[Manifest], T]) -> T:
        """Apply ``edit`` to the manifest and persist it."""
        manifest = self.store.detect()
        value = edit(manifest)
        self.store.save(manifest)
        self.reporter.success("config", "persist", f"Updated {manifest.path.name}")
        return value
