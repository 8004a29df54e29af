"""
Import Resolver — 由元件樹推導檔案必須宣告的 import

Every Standard / Module node, and every Repeater template, needs exactly one import
binding for its tag name. The result is the set the writer reconciles the file's
import declarations against.
"""

from dataclasses import dataclass, field
from typing import Iterator, Optional

from .errors import ResolutionError, ResolutionErrorKind
from .models import ComponentStateKind, FileMetadataKind, RepeaterState

_IMPORTED_KINDS = (ComponentStateKind.STANDARD, ComponentStateKind.MODULE)


@dataclass
class ResolvedImports:
    component_imports: dict = field(default_factory=dict)  # local name -> specifier
    module_imports: dict = field(default_factory=dict)

    def all(self) -> dict:
        merged = dict(self.component_imports)
        merged.update(self.module_imports)
        return merged

    def __contains__(self, name: str) -> bool:
        return name in self.component_imports or name in self.module_imports


def iter_component_references(tree: list) -> Iterator[tuple]:
    """Yield ``(kind, component_name, metadata_uuid)`` for nodes that need an import."""
    for state in tree:
        target = state.repeated_component if isinstance(state, RepeaterState) else state
        if target.kind in _IMPORTED_KINDS:
            yield target.kind, target.component_name, target.metadata_uuid


def resolve_imports(
    tree: list,
    registry,
    importer_path: Optional[str] = None,
    known_imports: Optional[dict] = None,
) -> ResolvedImports:
    """Map every referenced component / module to its import specifier.

    ``known_imports`` ({local name: specifier}) are bindings the file already
    declares; they satisfy a reference without a registry lookup.
    """
    resolved = ResolvedImports()
    known_imports = known_imports or {}
    for kind, name, metadata_uuid in iter_component_references(tree):
        local = name.split(".")[0]
        if local in resolved:
            continue
        entry = None
        if registry is not None:
            entry = registry.get(local)
            if entry is None and metadata_uuid:
                entry = registry.get_by_metadata_uuid(metadata_uuid)

        if local in known_imports:
            specifier = known_imports[local]
        elif entry is not None:
            specifier = registry.import_specifier(entry.name, importer_path)
        else:
            raise ResolutionError(
                ResolutionErrorKind.UNKNOWN_COMPONENT,
                f"No metadata registered for '{name}'",
                name=name,
                filepath=importer_path,
            )

        is_module = kind == ComponentStateKind.MODULE
        if entry is not None:
            is_module = entry.metadata.kind == FileMetadataKind.MODULE
        target = resolved.module_imports if is_module else resolved.component_imports
        target[local] = specifier
    return resolved
