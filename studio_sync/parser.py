"""
Source Parser — TSX 元件檔 → 元件樹 + 檔案 metadata

Reads one component file, locates its default-exported function and walks the
returned JSX into a flat ComponentState array. A failed parse raises a typed
ParseError and never returns a partial tree.
"""

import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from .errors import ParseErrorKind
from .models import (
    BuiltInState,
    ComponentMetadata,
    ComponentStateKind,
    FileMetadataKind,
    FragmentState,
    ModuleMetadata,
    ModuleState,
    PropValueKind,
    PropValueType,
    RepeatedComponent,
    RepeaterState,
    StandardState,
)
from .prop_values import literal_matches, read_attribute_value, read_initial_props, read_prop_shape
from .source_file import SourceDocument

JSX_ELEMENT_TYPES = ("jsx_element", "jsx_self_closing_element")
FRAGMENT_NAMES = ("Fragment", "React.Fragment")
# 迭代包裝內的重複標記屬性
REPEAT_MARKER = "key"


def _new_uuid() -> str:
    return str(uuid.uuid4())


@dataclass
class ParseResult:
    component_tree: list
    file_metadata: object
    css_imports: list = field(default_factory=list)


@dataclass
class MarkupRecord:
    """A parsed state plus the syntax it came from (used by the writer)."""
    state: object
    node: object
    opening: Optional[object] = None
    attributes: dict = field(default_factory=dict)   # prop name -> original attribute text
    self_closing: bool = False


def _unwrap(node):
    while node is not None and node.type == "parenthesized_expression":
        inner = [c for c in node.named_children if c.type != "comment"]
        if len(inner) != 1:
            break
        node = inner[0]
    return node


def in_modules_directory(path: str) -> bool:
    return "modules" in path.replace("\\", "/").split("/")


class SourceFileParser:

    def __init__(
        self,
        source: str,
        filepath: str,
        registry=None,
        uuid_factory: Optional[Callable[[], str]] = None,
    ):
        self.filepath = filepath
        self.registry = registry
        self.uuid_factory = uuid_factory or _new_uuid
        self.document = SourceDocument(source, filepath)
        self.document.check_syntax()
        self._component = None
        self._bindings = None

    @property
    def component(self):
        if self._component is None:
            self._component = self.document.find_component()
        return self._component

    def import_bindings(self) -> dict:
        """local name -> (ImportDeclaration, ImportSpecifier)."""
        if self._bindings is None:
            self._bindings = {}
            for declaration in self.document.imports():
                for spec in declaration.specifiers:
                    self._bindings[spec.local] = (declaration, spec)
        return self._bindings

    def parse(self) -> ParseResult:
        records = self.read_markup()
        tree = [r.state for r in records]
        css_imports = [d.source for d in self.document.imports() if d.is_stylesheet]
        return ParseResult(tree, self._file_metadata(tree), css_imports)

    def read_file_metadata(self):
        """File metadata from the props declaration and initialProps alone; the markup is not read."""
        return self._file_metadata([])

    # ─── markup ───

    def read_markup(self) -> list:
        component = self.component
        doc = self.document
        if not component.has_return or component.markup is None:
            raise doc.error(
                ParseErrorKind.NO_RETURN_STATEMENT,
                f"component '{component.name}' has no return statement",
                component.function,
            )
        root = _unwrap(component.markup)
        if root.type == "null":
            return []
        if root.type not in JSX_ELEMENT_TYPES:
            raise doc.error(ParseErrorKind.UNSUPPORTED_SYNTAX, "the component must return JSX or null", root)
        records: list = []
        self._read_element(root, None, records)
        return records

    def _read_element(self, node, parent_uuid: Optional[str], records: list) -> None:
        doc = self.document
        if node.type == "jsx_element":
            opening = node.child_by_field_name("open_tag")
            children = [
                c for c in node.named_children
                if c.type not in ("jsx_opening_element", "jsx_closing_element")
            ]
        else:
            opening = node
            children = []

        name_node = opening.child_by_field_name("name")
        uuid_ = self.uuid_factory()
        attributes: dict = {}
        if name_node is None or doc.text(name_node) in FRAGMENT_NAMES:
            if _attribute_nodes(opening):
                raise doc.error(ParseErrorKind.MALFORMED_ATTRIBUTE, "fragments cannot carry props", opening)
            state = FragmentState(uuid=uuid_, parent_uuid=parent_uuid)
        else:
            name = doc.text(name_node)
            kind, metadata = self._element_kind(name, name_node)
            props, attributes = self._read_attributes(opening, metadata)
            if kind == ComponentStateKind.BUILT_IN:
                state = BuiltInState(uuid_, name, props, parent_uuid=parent_uuid)
            else:
                cls = ModuleState if kind == ComponentStateKind.MODULE else StandardState
                state = cls(
                    uuid=uuid_,
                    component_name=name,
                    props=props,
                    metadata_uuid=metadata.metadata_uuid if metadata else None,
                    parent_uuid=parent_uuid,
                )
        records.append(MarkupRecord(
            state=state,
            node=node,
            opening=opening,
            attributes=attributes,
            self_closing=node.type == "jsx_self_closing_element",
        ))
        for child in children:
            self._read_child(child, uuid_, records)

    def _read_child(self, child, parent_uuid: str, records: list) -> None:
        doc = self.document
        if child.type == "jsx_text":
            if doc.text(child).strip():
                raise doc.error(ParseErrorKind.UNSUPPORTED_SYNTAX, "text content is not supported", child)
            return
        if child.type in JSX_ELEMENT_TYPES:
            self._read_element(child, parent_uuid, records)
            return
        if child.type == "jsx_expression":
            inner = [c for c in child.named_children if c.type != "comment"]
            if not inner:
                raise doc.error(ParseErrorKind.UNSUPPORTED_SYNTAX, "empty or comment-only JSX expression", child)
            records.append(self._read_repeater(child, inner[0], parent_uuid))
            return
        raise doc.error(ParseErrorKind.UNSUPPORTED_SYNTAX, f"unsupported JSX child '{child.type}'", child)

    def _read_repeater(self, container, expression, parent_uuid: str) -> MarkupRecord:
        """``{LIST.map((item, index) => <Tag key={index} ... />)}``"""
        doc = self.document

        def unsupported(node):
            return doc.error(
                ParseErrorKind.UNSUPPORTED_SYNTAX,
                "only `list.map((item, index) => <Element />)` expressions are supported",
                node,
            )

        if expression.type != "call_expression":
            raise unsupported(expression)
        function = expression.child_by_field_name("function")
        arguments = expression.child_by_field_name("arguments")
        if function is None or function.type != "member_expression" or arguments is None:
            raise unsupported(expression)
        prop = function.child_by_field_name("property")
        if prop is None or doc.text(prop) != "map":
            raise unsupported(expression)
        callbacks = [c for c in arguments.named_children if c.type != "comment"]
        if len(callbacks) != 1 or callbacks[0].type != "arrow_function":
            raise unsupported(expression)
        body = _unwrap(callbacks[0].child_by_field_name("body"))
        if body is None or body.type not in JSX_ELEMENT_TYPES:
            raise unsupported(expression)

        opening = body if body.type == "jsx_self_closing_element" else body.child_by_field_name("open_tag")
        if body.type == "jsx_element":
            for child in body.named_children:
                if child.type in ("jsx_opening_element", "jsx_closing_element"):
                    continue
                if child.type != "jsx_text" or doc.text(child).strip():
                    raise doc.error(ParseErrorKind.UNSUPPORTED_SYNTAX, "a repeated element cannot have children", child)
        name_node = opening.child_by_field_name("name")
        if name_node is None or doc.text(name_node) in FRAGMENT_NAMES:
            raise doc.error(ParseErrorKind.UNSUPPORTED_SYNTAX, "a fragment cannot be repeated", body)

        name = doc.text(name_node)
        kind, metadata = self._element_kind(name, name_node)
        props, attributes = self._read_attributes(opening, metadata, skip=(REPEAT_MARKER,))
        state = RepeaterState(
            uuid=self.uuid_factory(),
            list_expression=doc.text(function.child_by_field_name("object")),
            repeated_component=RepeatedComponent(
                kind=kind,
                component_name=name,
                props=props,
                metadata_uuid=metadata.metadata_uuid if metadata else None,
            ),
            parent_uuid=parent_uuid,
        )
        return MarkupRecord(state=state, node=container, opening=opening, attributes=attributes)

    def _element_kind(self, name: str, name_node):
        """(ComponentStateKind, registered FileMetadata or None) for a tag name."""
        if name[:1].islower() and "." not in name:
            return ComponentStateKind.BUILT_IN, None
        binding = self.import_bindings().get(name.split(".")[0])
        if binding is None:
            raise self.document.error(
                ParseErrorKind.UNRESOLVED_COMPONENT,
                f"'{name}' is not imported",
                name_node,
            )
        declaration, _ = binding
        resolved = self.resolve_import_path(declaration.source)
        entry = None
        if self.registry is not None:
            if resolved is not None:
                entry = self.registry.get_by_filepath(resolved)
            if entry is None and "." not in name:
                entry = self.registry.get(name)
        if entry is not None:
            is_module = entry.metadata.kind == FileMetadataKind.MODULE
            return (ComponentStateKind.MODULE if is_module else ComponentStateKind.STANDARD), entry.metadata
        is_module = in_modules_directory(declaration.source) or (
            resolved is not None and self.registry is not None and self.registry.is_module_path(resolved)
        )
        return (ComponentStateKind.MODULE if is_module else ComponentStateKind.STANDARD), None

    def resolve_import_path(self, source: str) -> Optional[str]:
        if not source.startswith("."):
            return None
        return os.path.normpath(os.path.join(os.path.dirname(self.filepath), source))

    def _read_attributes(self, opening, metadata, skip=()):
        doc = self.document
        declared_shape = (metadata.prop_shape or {}) if metadata is not None else {}
        props: dict = {}
        attributes: dict = {}
        for attribute in _attribute_nodes(opening):
            if attribute.type == "jsx_expression":
                raise doc.error(ParseErrorKind.MALFORMED_ATTRIBUTE, "spread attributes are not supported", attribute)
            parts = [c for c in attribute.named_children if c.type != "comment"]
            name = doc.text(parts[0])
            if name in skip:
                continue
            if name in props:
                raise doc.error(ParseErrorKind.MALFORMED_ATTRIBUTE, f"duplicate attribute '{name}'", attribute)
            value = read_attribute_value(doc, parts[1] if len(parts) > 1 else None, self.component.props_parameter)
            declared = declared_shape.get(name)
            if declared is not None:
                if value.kind == PropValueKind.LITERAL and not literal_matches(value, declared):
                    raise doc.error(
                        ParseErrorKind.MALFORMED_ATTRIBUTE,
                        f"'{name}' expects {declared.type.value}, got {value.value!r}",
                        attribute,
                    )
                if value.kind == PropValueKind.EXPRESSION and declared.type != PropValueType.UNKNOWN:
                    value.value_type = declared.type
            props[name] = value
            attributes[name] = doc.text(attribute)
        return props, attributes

    # ─── file metadata ───

    def read_prop_shape(self) -> Optional[dict]:
        found = self.document.find_props_declaration(self.component.props_type_name)
        if found is None:
            return None
        body = found[2]
        if body is None or body.type not in ("object_type", "interface_body"):
            return None
        return read_prop_shape(self.document, body)

    def read_initial_props(self) -> Optional[dict]:
        found = self.document.find_initial_props()
        if found is None or found[2] is None or found[2].type != "object":
            return None
        return read_initial_props(self.document, found[2])

    def _is_module_file(self, entry) -> bool:
        if entry is not None:
            return entry.metadata.kind == FileMetadataKind.MODULE
        if self.registry is not None and self.registry.is_module_path(self.filepath):
            return True
        return "modules" in Path(self.filepath).parts

    def _file_metadata(self, tree: list):
        entry = self.registry.get_by_filepath(self.filepath) if self.registry is not None else None
        metadata_uuid = entry.metadata.metadata_uuid if entry is not None else self.uuid_factory()
        prop_shape = self.read_prop_shape()
        initial_props = self.read_initial_props()
        if self._is_module_file(entry):
            return ModuleMetadata(
                filepath=self.filepath,
                metadata_uuid=metadata_uuid,
                component_tree=tree,
                prop_shape=prop_shape,
                initial_props=initial_props,
            )
        return ComponentMetadata(
            filepath=self.filepath,
            metadata_uuid=metadata_uuid,
            prop_shape=prop_shape,
            initial_props=initial_props,
            accepts_children=bool(prop_shape) and "children" in prop_shape,
        )


def _attribute_nodes(opening) -> list:
    return [c for c in opening.named_children if c.type in ("jsx_attribute", "jsx_expression")]


def parse(
    source_text: str,
    filepath: str,
    registry=None,
    uuid_factory: Optional[Callable[[], str]] = None,
) -> ParseResult:
    """Parse one component file into its component tree, metadata and css imports."""
    return SourceFileParser(source_text, filepath, registry, uuid_factory).parse()
