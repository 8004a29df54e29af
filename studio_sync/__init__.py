"""
studio-sync — 視覺編輯器 ↔ TSX 元件檔雙向同步

Parser (TSX → component tree + file metadata) and minimal-diff writer
(component tree → TSX) built on tree-sitter.
"""

__version__ = "0.1.0"

from .errors import (
    InvalidMoveError,
    ParseError,
    ParseErrorKind,
    ResolutionError,
    ResolutionErrorKind,
    SourceLocation,
    StudioSyncError,
    WriteError,
    WriteErrorKind,
)
from .models import (
    BuiltInState,
    ComponentMetadata,
    ComponentStateKind,
    FileMetadataKind,
    FragmentState,
    ModuleMetadata,
    ModuleState,
    PageState,
    PropMetadata,
    PropValue,
    PropValueKind,
    PropValueType,
    RepeatedComponent,
    RepeaterState,
    StandardState,
)
from .tree_helpers import (
    ROOT_ID,
    can_accept_children,
    get_children_map,
    get_highest_parent_uuid,
    get_root_components,
    move_components,
    validate_component_tree,
)
from .registry import MetadataRegistry, RegistryEntry
from .parser import ParseResult, parse
from .import_resolver import ResolvedImports, resolve_imports
from .writer import FormatOptions, write
from .sync import ComponentFileSync, build_registry, studio_paths
from .config import load_config, validate_config

__all__ = [
    "__version__",
    "InvalidMoveError",
    "ParseError",
    "ParseErrorKind",
    "ResolutionError",
    "ResolutionErrorKind",
    "SourceLocation",
    "StudioSyncError",
    "WriteError",
    "WriteErrorKind",
    "BuiltInState",
    "ComponentMetadata",
    "ComponentStateKind",
    "FileMetadataKind",
    "FragmentState",
    "ModuleMetadata",
    "ModuleState",
    "PageState",
    "PropMetadata",
    "PropValue",
    "PropValueKind",
    "PropValueType",
    "RepeatedComponent",
    "RepeaterState",
    "StandardState",
    "ROOT_ID",
    "can_accept_children",
    "get_children_map",
    "get_highest_parent_uuid",
    "get_root_components",
    "move_components",
    "validate_component_tree",
    "MetadataRegistry",
    "RegistryEntry",
    "ParseResult",
    "parse",
    "ResolvedImports",
    "resolve_imports",
    "FormatOptions",
    "write",
    "ComponentFileSync",
    "build_registry",
    "studio_paths",
    "load_config",
    "validate_config",
]
