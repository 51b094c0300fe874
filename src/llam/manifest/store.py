"""Manifest store for the project's ``.luarc.json``.

Handles:
- Reading/writing the JSON document
- The ``workspace.addons`` table of declared addons
- Passthrough of every key the addon manager does not own
- Creating the document (with discovery of existing checkouts)
"""
import json
import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..addon import Addon, ShortSource, is_valid_name
from ..errors import ContextError, GitError, ManifestError
from ..git import GitClient, VersionControlClient

logger = logging.getLogger(__name__)

# Addon checkouts live in <project>/ADDONS_DIR/<name>
ADDONS_DIR = ".addons"
MANIFEST_FILE = ".luarc.json"

# Marker file shipped by every language server addon
ADDON_MARKER = "config.json"


def _ordered(order: list[str], values: dict[str, Any]) -> dict[str, Any]:
    """Lay out ``values`` following the key order seen on load."""
    data = {key: values[key] for key in order if key in values}
    for key, value in values.items():
        if key not in data:
            data[key] = value
    return data


@dataclass
class Workspace:
    """The ``workspace`` section of the manifest."""
    addons: Optional[dict[str, Addon]] = None
    user_third_party: Optional[list[str]] = None
    extra: dict[str, Any] = field(default_factory=dict)
    key_order: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        values = dict(self.extra)
        if self.user_third_party is not None:
            values["userThirdParty"] = list(self.user_third_party)
        if self.addons is not None:
            values["addons"] = {name: addon.to_dict() for name, addon in self.addons.items()}
        return _ordered(self.key_order, values)

    @classmethod
    def from_dict(cls, data: Any) -> "Workspace":
        if not isinstance(data, dict):
            raise ManifestError("'workspace' must be an object")

        extra = {k: v for k, v in data.items() if k not in ("addons", "userThirdParty")}

        third_party = data.get("userThirdParty")
        if third_party is not None:
            if not isinstance(third_party, list) or not all(isinstance(p, str) for p in third_party):
                raise ManifestError("'workspace.userThirdParty' must be a list of strings")
            third_party = list(third_party)

        addons = None
        raw_addons = data.get("addons")
        if raw_addons is not None:
            if not isinstance(raw_addons, dict):
                raise ManifestError("'workspace.addons' must be an object")
            addons = {}
            for name, entry in raw_addons.items():
                try:
                    addons[name] = Addon.from_dict(name, entry)
                except ValueError as e:
                    raise ManifestError(f"invalid addon entry {name!r}: {e}") from e

        return cls(
            addons=addons,
            user_third_party=third_party,
            extra=extra,
            key_order=list(data.keys()),
        )


@dataclass
class Manifest:
    """
    In-memory ``.luarc.json`` document.

    Only ``workspace.addons`` and ``workspace.userThirdParty`` are modelled;
    all other keys are kept as loaded and written back unchanged.
    """
    path: Path
    workspace: Optional[Workspace] = None
    extra: dict[str, Any] = field(default_factory=dict)
    key_order: list[str] = field(default_factory=list)

    # === Addon table ===

    @property
    def addons(self) -> dict[str, Addon]:
        """Declared addons keyed by name (read-only view when absent)."""
        if self.workspace is None or self.workspace.addons is None:
            return {}
        return self.workspace.addons

    def _addons_mut(self) -> dict[str, Addon]:
        if self.workspace is None:
            self.workspace = Workspace()
        if self.workspace.addons is None:
            self.workspace.addons = {}
        return self.workspace.addons

    def get(self, name: str) -> Optional[Addon]:
        return self.addons.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.addons

    def insert(self, addon: Addon) -> None:
        """Insert or wholesale replace an entry."""
        self._addons_mut()[addon.name] = addon

    def remove(self, name: str) -> Optional[Addon]:
        if name not in self.addons:
            return None
        return self._addons_mut().pop(name)

    def merge(self, addon: Addon) -> Addon:
        """Merge a declaration into its entry, inserting it when new."""
        addons = self._addons_mut()
        entry = addons.get(addon.name)
        if entry is None:
            entry = Addon.from_dict(addon.name, addon.to_dict())
            addons[addon.name] = entry
        else:
            entry.merge(addon)
        return entry

    # === Language server settings ===

    def register_third_party(self, path: str) -> bool:
        """Add ``path`` to ``workspace.userThirdParty`` once. Returns True if added."""
        if self.workspace is None:
            self.workspace = Workspace()
        if self.workspace.user_third_party is None:
            self.workspace.user_third_party = []
        if path in self.workspace.user_third_party:
            return False
        self.workspace.user_third_party.append(path)
        return True

    def section(self, key: str) -> dict[str, Any]:
        """Get a passthrough top-level object, creating it when missing."""
        value = self.extra.setdefault(key, {})
        if not isinstance(value, dict):
            raise ManifestError(f"'{key}' must be an object")
        return value

    # === Serialization ===

    def to_dict(self) -> dict[str, Any]:
        values = dict(self.extra)
        if self.workspace is not None:
            values["workspace"] = self.workspace.to_dict()
        return _ordered(self.key_order, values)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"

    @classmethod
    def from_dict(cls, path: Path, data: Any) -> "Manifest":
        if not isinstance(data, dict):
            raise ManifestError(f"{path}: top level must be an object")

        workspace = None
        if "workspace" in data:
            workspace = Workspace.from_dict(data["workspace"])

        return cls(
            path=path,
            workspace=workspace,
            extra={k: v for k, v in data.items() if k != "workspace"},
            key_order=list(data.keys()),
        )


class ManifestStore:
    """
    Loads, creates and persists the project manifest.

    Layout:
        <root>/
        ├── .luarc.json       # manifest
        └── .addons/
            └── <name>/       # one checkout per addon
    """

    def __init__(self, root: Path, git: Optional[VersionControlClient] = None):
        """
        Initialize the manifest store.

        Args:
            root: Project root directory
            git: Client used to read revisions of discovered checkouts
        """
        self.root = Path(root)
        self.git = git or GitClient()

    @property
    def path(self) -> Path:
        return self.root / MANIFEST_FILE

    @property
    def addons_dir(self) -> Path:
        return self.root / ADDONS_DIR

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Manifest:
        """
        Read and parse the manifest.

        Raises:
            ManifestError: the document is not valid JSON or has the wrong shape
            ContextError: the file could not be read
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise ContextError(f"failed to read {self.path}", e) from e

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestError(f"{self.path}: invalid JSON: {e}") from e

        return Manifest.from_dict(self.path, data)

    def detect(self) -> Manifest:
        """Load the manifest, creating it when the project has none."""
        if self.exists():
            return self.load()
        return self.create()

    def create(self) -> Manifest:
        """
        Create a new manifest, recording checkouts already on disk.

        Every directory in the addons dir that looks like an addon checkout
        is registered at its current revision; anything else is removed.
        """
        addons: dict[str, Addon] = {}

        if self.addons_dir.is_dir():
            for entry in sorted(self.addons_dir.iterdir()):
                if entry.is_dir() and (entry / ".git").exists() and (entry / ADDON_MARKER).exists():
                    if not is_valid_name(entry.name):
                        logger.warning(f"Skipping addon with unusable name: {entry}")
                        continue
                    try:
                        revision = self.git.current_revision(entry)
                    except GitError as e:
                        logger.error(f"Checksum could not be read for {entry}: {e.stderr or e}")
                        continue
                    addons[entry.name] = Addon(
                        name=entry.name,
                        source=ShortSource(entry.name),
                        checksum=revision,
                    )
                    logger.info(f"Discovered addon {entry.name} at {revision[:8]}")
                    continue

                logger.warning(f"Removing invalid addon: {entry}")
                try:
                    if entry.is_dir() and not entry.is_symlink():
                        shutil.rmtree(entry)
                    else:
                        entry.unlink()
                except OSError as e:
                    raise ContextError(f"failed to remove {entry}", e) from e

        manifest = Manifest(path=self.path, workspace=Workspace(addons=addons))

        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ContextError(f"failed to create project root {self.root}", e) from e

        logger.debug(f"Creating manifest {self.path}")
        self.save(manifest)
        return manifest

    def save(self, manifest: Manifest) -> None:
        """
        Write the manifest as indented JSON.

        The document is written to a sibling temp file and renamed over
        the target.
        """
        try:
            content = manifest.to_json()
        except (TypeError, ValueError) as e:
            raise ManifestError(f"failed to serialize {manifest.path}: {e}") from e

        tmp_path = manifest.path.with_name(manifest.path.name + ".tmp")
        try:
            tmp_path.write_text(content, encoding="utf-8")
            os.replace(tmp_path, manifest.path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise ContextError(f"failed to write {manifest.path}", e) from e

        logger.debug(f"Saved manifest {manifest.path} ({len(manifest.addons)} addons)")
