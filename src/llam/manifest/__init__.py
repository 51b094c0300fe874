"""Manifest package for the project's ``.luarc.json``.

This package provides:
- ManifestStore: Load/create/save of the manifest document
- Manifest / Workspace: The in-memory document with passthrough fields
- editor: Helpers for the diagnostics and doc settings

Files managed:
    <project>/
    ├── .luarc.json       # language server config + workspace.addons
    └── .addons/          # one checkout per addon
"""

from .store import (
    ADDONS_DIR,
    MANIFEST_FILE,
    Manifest,
    ManifestStore,
    Workspace,
)

__all__ = [
    "ADDONS_DIR",
    "MANIFEST_FILE",
    "Manifest",
    "ManifestStore",
    "Workspace",
]
