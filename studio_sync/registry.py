"""
Metadata registry — 元件 / 模組名稱 → import 路徑與 metadata

An explicit collaborator passed into parse / resolve / write. It is filled by the
discovery layer (``sync.build_registry``) or directly by callers and tests.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

from .models import FileMetadataKind


@dataclass
class RegistryEntry:
    name: str
    metadata: object                   # ComponentMetadata | ModuleMetadata
    import_path: Optional[str] = None  # explicit specifier, e.g. a package name


def path_key(path: str) -> str:
    """Normalized absolute path without extension (``Foo/index`` collapses to ``Foo``)."""
    stem, _ = os.path.splitext(os.path.normpath(os.path.abspath(path)))
    if os.path.basename(stem) == "index":
        stem = os.path.dirname(stem)
    return stem


def _is_under(path: str, root: Optional[str]) -> bool:
    if root is None:
        return False
    root_key = os.path.normpath(os.path.abspath(root))
    key = os.path.normpath(os.path.abspath(path))
    return key == root_key or key.startswith(root_key + os.sep)


class MetadataRegistry:

    def __init__(self, components_root: Optional[str] = None, modules_root: Optional[str] = None):
        self.components_root = components_root
        self.modules_root = modules_root
        self._by_name: dict = {}

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(self._by_name.values())

    def register(self, name: str, metadata, import_path: Optional[str] = None) -> RegistryEntry:
        entry = RegistryEntry(name, metadata, import_path)
        self._by_name[name] = entry
        return entry

    def get(self, name: str) -> Optional[RegistryEntry]:
        return self._by_name.get(name)

    def get_by_filepath(self, path: str) -> Optional[RegistryEntry]:
        key = path_key(path)
        for entry in self._by_name.values():
            if entry.metadata.filepath and path_key(entry.metadata.filepath) == key:
                return entry
        return None

    def get_by_metadata_uuid(self, metadata_uuid: str) -> Optional[RegistryEntry]:
        for entry in self._by_name.values():
            if entry.metadata.metadata_uuid == metadata_uuid:
                return entry
        return None

    def import_specifier(self, name: str, importer_path: Optional[str] = None) -> str:
        """Module specifier that imports ``name`` from ``importer_path``."""
        entry = self._by_name[name]
        if entry.import_path:
            return entry.import_path
        target, _ = os.path.splitext(entry.metadata.filepath)
        if importer_path is None:
            return Path(target).as_posix()
        relative = os.path.relpath(target, os.path.dirname(os.path.abspath(importer_path)))
        relative = Path(relative).as_posix()
        if not relative.startswith("."):
            relative = "./" + relative
        return relative

    def is_module_path(self, path: str) -> bool:
        if self.modules_root is not None:
            return _is_under(path, self.modules_root)
        return "modules" in Path(path).parts

    def is_owned_path(self, path: str) -> bool:
        """True for paths inside the components or modules root."""
        return _is_under(path, self.components_root) or _is_under(path, self.modules_root)

    def is_module(self, name: str) -> bool:
        entry = self.get(name)
        return entry is not None and entry.metadata.kind == FileMetadataKind.MODULE
