"""
Orchestration — 讀檔 → 解析 / 寫回 → 原子性落盤

The only layer that touches the filesystem. It holds collaborators (registry, uuid
factory, format options) but no tree data between calls.
"""

import difflib
import os
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import ParseError
from .models import ComponentMetadata, FileMetadataKind, ModuleMetadata, PageState
from .parser import ParseResult, SourceFileParser, parse
from .registry import MetadataRegistry
from .source_file import SourceDocument
from .writer import FormatOptions, write


@dataclass
class StudioPaths:
    pages: str
    modules: str
    components: str
    site_settings: str


def studio_paths(src_root: str) -> StudioPaths:
    """Locations the engine reads under a project's ``src`` folder."""
    return StudioPaths(
        pages=os.path.join(src_root, "pages"),
        modules=os.path.join(src_root, "modules"),
        components=os.path.join(src_root, "components"),
        site_settings=os.path.join(src_root, "siteSettings.ts"),
    )


def filename_mapping(dir_path: str, extension: str = ".tsx") -> dict:
    """{file stem: path} for the files directly inside ``dir_path``."""
    if not os.path.isdir(dir_path):
        return {}
    mapping = {}
    for filename in sorted(os.listdir(dir_path)):
        path = os.path.join(dir_path, filename)
        if os.path.isfile(path) and filename.endswith(extension):
            mapping[filename[: -len(extension)]] = path
    return mapping


def read_source(filepath: str) -> str:
    with open(filepath, "r", encoding="utf-8", newline="") as f:
        return f.read()


def atomic_write(filepath: str, text: str) -> None:
    """Write through a temp file in the same directory, then ``os.replace``."""
    directory = os.path.dirname(os.path.abspath(filepath))
    fd, tmp_path = tempfile.mkstemp(prefix=".studio-sync-", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        if os.path.exists(filepath):
            os.chmod(tmp_path, os.stat(filepath).st_mode & 0o777)
        os.replace(tmp_path, filepath)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


def build_registry(src_root: str, uuid_factory: Optional[Callable[[], str]] = None) -> MetadataRegistry:
    """Register every component and module under ``src_root`` by file stem.

    All files are registered as stubs first so that modules can reference any
    component. Components then read only their props declaration and
    initialProps, so any markup is fine; modules get a full parse for their
    tree. Files that fail keep their stub and are reported.
    """
    paths = studio_paths(src_root)
    registry = MetadataRegistry(components_root=paths.components, modules_root=paths.modules)
    sync = ComponentFileSync(registry, uuid_factory)

    for name, filepath in filename_mapping(paths.components).items():
        registry.register(name, ComponentMetadata(filepath, sync.new_uuid()))
    for name, filepath in filename_mapping(paths.modules).items():
        registry.register(name, ModuleMetadata(filepath, sync.new_uuid()))

    for entry in list(registry):
        try:
            if entry.metadata.kind == FileMetadataKind.MODULE:
                entry.metadata = sync.load(entry.metadata.filepath).file_metadata
            else:
                entry.metadata = sync.load_metadata(entry.metadata.filepath)
        except (ParseError, OSError, UnicodeDecodeError) as e:
            print(f"   ⚠️  [registry] {entry.name}: {e}")
    return registry


class ComponentFileSync:
    """Keeps one component file on disk in line with an edited tree."""

    def __init__(
        self,
        registry: Optional[MetadataRegistry] = None,
        uuid_factory: Optional[Callable[[], str]] = None,
        options: Optional[FormatOptions] = None,
    ):
        self.registry = registry if registry is not None else MetadataRegistry()
        self.uuid_factory = uuid_factory
        self.options = options or FormatOptions()

    def new_uuid(self) -> str:
        if self.uuid_factory is not None:
            return self.uuid_factory()
        return str(uuid.uuid4())

    def load(self, filepath: str) -> ParseResult:
        return parse(read_source(filepath), filepath, self.registry, self.uuid_factory)

    def load_metadata(self, filepath: str):
        parser = SourceFileParser(read_source(filepath), filepath, self.registry, self.uuid_factory)
        return parser.read_file_metadata()

    def render(self, filepath: str, state, css_imports: Optional[list] = None, file_metadata=None) -> str:
        """New file text for ``state`` (a PageState or a component tree). Nothing is written."""
        source = read_source(filepath)
        return self._render(source, filepath, state, css_imports, file_metadata)

    def _render(self, source: str, filepath: str, state, css_imports, file_metadata) -> str:
        if isinstance(state, PageState):
            tree = state.component_tree
            if css_imports is None:
                css_imports = state.css_imports
        else:
            tree = list(state)
        if css_imports is None:
            css_imports = [d.source for d in SourceDocument(source, filepath).imports() if d.is_stylesheet]
        return write(source, filepath, tree, css_imports, file_metadata, self.registry, self.options)

    def update_file(
        self,
        filepath: str,
        state,
        css_imports: Optional[list] = None,
        file_metadata=None,
        dry_run: bool = False,
    ) -> bool:
        """Rewrite ``filepath`` to match ``state``. Returns whether the text changed.

        The new text is re-parsed before anything is written, and the file is
        replaced atomically, so a failure leaves the old content in place.
        """
        source = read_source(filepath)
        new_text = self._render(source, filepath, state, css_imports, file_metadata)
        if new_text == source:
            return False
        parse(new_text, filepath, self.registry, self.uuid_factory)
        if not dry_run:
            atomic_write(filepath, new_text)
        return True

    def diff(self, filepath: str, state, css_imports: Optional[list] = None, file_metadata=None) -> str:
        """Unified diff of the pending change (empty when the file is up to date)."""
        source = read_source(filepath)
        new_text = self._render(source, filepath, state, css_imports, file_metadata)
        name = Path(filepath).as_posix()
        return "".join(difflib.unified_diff(
            source.splitlines(keepends=True),
            new_text.splitlines(keepends=True),
            fromfile=f"a/{name}",
            tofile=f"b/{name}",
        ))
