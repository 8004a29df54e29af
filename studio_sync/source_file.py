"""
Syntax layer — tree-sitter TSX 解析與位元組層級編輯

Wraps one file's text and its tree-sitter syntax tree, locates the declarations the
sync engine owns (default-exported component, imports, props interface,
``initialProps``) and applies byte-range edits. tree-sitter offsets are byte
offsets, so all slicing happens on the UTF-8 encoded text.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional

import tree_sitter_typescript
from tree_sitter import Language, Parser

from .errors import ParseError, ParseErrorKind, SourceLocation

STYLESHEET_EXTENSIONS = (".css", ".scss", ".sass", ".less")

FUNCTION_TYPES = ("function_declaration", "function_expression", "function", "arrow_function")


@lru_cache(maxsize=1)
def _tsx_language() -> Language:
    return Language(tree_sitter_typescript.language_tsx())


@dataclass(frozen=True)
class TextEdit:
    start: int
    end: int
    text: str


@dataclass
class ImportSpecifier:
    name: str        # imported name ("default" for default imports, "*" for namespaces)
    local: str       # local binding used in the file
    node: object


@dataclass
class ImportDeclaration:
    node: object
    source: str
    specifiers: list = field(default_factory=list)
    type_only: bool = False

    @property
    def is_side_effect(self) -> bool:
        return not self.specifiers

    @property
    def is_stylesheet(self) -> bool:
        return self.source.lower().endswith(STYLESHEET_EXTENSIONS)

    @property
    def local_names(self) -> list:
        return [s.local for s in self.specifiers]


@dataclass
class PropsParameter:
    """How the component function receives its props."""
    node: Optional[object] = None          # formal_parameters / identifier node
    name: Optional[str] = None             # `props` in `function X(props)`
    destructured: tuple = ()               # names in `function X({ a, b })`
    type_name: Optional[str] = None        # `XProps` in `props: XProps`

    def access(self, prop_name: str) -> str:
        if prop_name in self.destructured:
            return prop_name
        return f"{self.name or 'props'}.{prop_name}"


@dataclass
class ComponentDefinition:
    name: str
    statement: object                      # top-level statement holding the function
    function: object
    markup: Optional[object]               # returned expression (None for `return;`)
    has_return: bool
    props_parameter: PropsParameter

    @property
    def props_type_name(self) -> str:
        return self.props_parameter.type_name or f"{self.name}Props"


class SourceDocument:
    """One TSX file: text, bytes and syntax tree."""

    def __init__(self, source: str, filepath: str = ""):
        self.source = source
        self.filepath = filepath
        self.data = source.encode("utf-8")
        self.tree = Parser(_tsx_language()).parse(self.data)
        self.root = self.tree.root_node

    # ─── text helpers ───

    def text(self, node) -> str:
        return self.data[node.start_byte:node.end_byte].decode("utf-8")

    def location(self, node) -> SourceLocation:
        row, column = node.start_point[0], node.start_point[1]
        return SourceLocation(row + 1, column + 1)

    def line_start(self, offset: int) -> int:
        return self.data.rfind(b"\n", 0, offset) + 1

    def line_end(self, offset: int) -> int:
        """Offset just past the newline ending the line that contains ``offset``."""
        newline = self.data.find(b"\n", offset)
        return len(self.data) if newline == -1 else newline + 1

    def indent_of(self, offset: int) -> str:
        start = self.line_start(offset)
        line = self.data[start:offset].decode("utf-8")
        return line[: len(line) - len(line.lstrip(" \t"))]

    def starts_line(self, node) -> bool:
        """True when only whitespace precedes ``node`` on its line."""
        return not self.data[self.line_start(node.start_byte):node.start_byte].strip()

    def ends_line(self, offset: int) -> bool:
        return not self.data[offset:self.line_end(offset)].strip()

    def error(self, kind: ParseErrorKind, message: str, node=None) -> ParseError:
        location = self.location(node) if node is not None else None
        return ParseError(kind, message, filepath=self.filepath or None, location=location)

    # ─── syntax checks ───

    def check_syntax(self) -> None:
        if not self.root.has_error:
            return
        bad = _first_error_node(self.root)
        raise self.error(
            ParseErrorKind.INVALID_SYNTAX,
            f"cannot parse '{self.text(bad)[:40]}'" if bad is not None else "cannot parse file",
            bad,
        )

    # ─── top-level declarations ───

    def top_level_statements(self) -> list:
        return [c for c in self.root.named_children if c.type != "comment"]

    def imports(self) -> list:
        return [
            _read_import(self, node)
            for node in self.top_level_statements()
            if node.type == "import_statement"
        ]

    def import_quote(self) -> str:
        for declaration in self.imports():
            source_node = declaration.node.child_by_field_name("source")
            if source_node is not None:
                return self.text(source_node)[0]
        return '"'

    def find_component(self) -> ComponentDefinition:
        statement, function, name = self._default_export()
        body = function.child_by_field_name("body")
        markup = None
        has_return = False
        if body is not None and body.type == "statement_block":
            for child in body.named_children:
                if child.type == "return_statement":
                    has_return = True
                    expressions = [c for c in child.named_children if c.type != "comment"]
                    markup = expressions[0] if expressions else None
                    break
        elif body is not None:
            has_return = True
            markup = body
        return ComponentDefinition(
            name=name,
            statement=statement,
            function=function,
            markup=markup,
            has_return=has_return,
            props_parameter=self._props_parameter(function),
        )

    def _default_export(self):
        for node in self.top_level_statements():
            if node.type != "export_statement" or not _has_token(node, "default"):
                continue
            declaration = node.child_by_field_name("declaration") or node.child_by_field_name("value")
            if declaration is None:
                break
            if declaration.type in FUNCTION_TYPES:
                name_node = declaration.child_by_field_name("name")
                name = self.text(name_node) if name_node is not None else "Component"
                return node, declaration, name
            if declaration.type == "identifier":
                found = self._local_function(self.text(declaration))
                if found is not None:
                    return found
            break
        raise self.error(ParseErrorKind.NO_DEFAULT_EXPORT, "no default-exported component function")

    def _local_function(self, name: str):
        for node in self.top_level_statements():
            target = node
            if node.type == "export_statement":
                target = node.child_by_field_name("declaration")
                if target is None:
                    continue
            if target.type == "function_declaration":
                name_node = target.child_by_field_name("name")
                if name_node is not None and self.text(name_node) == name:
                    return node, target, name
            if target.type in ("lexical_declaration", "variable_declaration"):
                for declarator in target.named_children:
                    if declarator.type != "variable_declarator":
                        continue
                    name_node = declarator.child_by_field_name("name")
                    value = declarator.child_by_field_name("value")
                    if (
                        name_node is not None and self.text(name_node) == name
                        and value is not None and value.type in FUNCTION_TYPES
                    ):
                        return node, value, name
        return None

    def _props_parameter(self, function) -> PropsParameter:
        single = function.child_by_field_name("parameter")
        if single is not None:
            return PropsParameter(node=single, name=self.text(single))
        parameters = function.child_by_field_name("parameters")
        if parameters is None:
            return PropsParameter()
        params = [p for p in parameters.named_children if p.type in ("required_parameter", "optional_parameter")]
        if not params:
            return PropsParameter(node=parameters)
        first = params[0]
        pattern = first.child_by_field_name("pattern")
        annotation = first.child_by_field_name("type")
        type_name = None
        if annotation is not None:
            type_nodes = [c for c in annotation.named_children if c.type != "comment"]
            if type_nodes and type_nodes[0].type == "type_identifier":
                type_name = self.text(type_nodes[0])
        if pattern is not None and pattern.type == "object_pattern":
            return PropsParameter(
                node=parameters,
                destructured=tuple(_pattern_names(self, pattern)),
                type_name=type_name,
            )
        name = self.text(pattern) if pattern is not None and pattern.type == "identifier" else None
        return PropsParameter(node=parameters, name=name, type_name=type_name)

    def find_props_declaration(self, type_name: str):
        """(statement, declaration, body) of ``interface X {}`` / ``type X = {}``."""
        for node in self.top_level_statements():
            target = node
            if node.type == "export_statement":
                target = node.child_by_field_name("declaration")
                if target is None:
                    continue
            if target.type not in ("interface_declaration", "type_alias_declaration"):
                continue
            name_node = target.child_by_field_name("name")
            if name_node is None or self.text(name_node) != type_name:
                continue
            if target.type == "interface_declaration":
                body = target.child_by_field_name("body")
            else:
                body = target.child_by_field_name("value")
            return node, target, body
        return None

    def find_initial_props(self):
        """(statement, declarator, value) of ``const initialProps = {...}``."""
        for node in self.top_level_statements():
            target = node
            if node.type == "export_statement":
                target = node.child_by_field_name("declaration")
                if target is None:
                    continue
            if target.type not in ("lexical_declaration", "variable_declaration"):
                continue
            for declarator in target.named_children:
                if declarator.type != "variable_declarator":
                    continue
                name_node = declarator.child_by_field_name("name")
                if name_node is not None and self.text(name_node) == "initialProps":
                    return node, declarator, declarator.child_by_field_name("value")
        return None


def _first_error_node(node):
    if node.type == "ERROR" or node.is_missing:
        return node
    for child in node.children:
        if child.has_error or child.is_missing:
            found = _first_error_node(child)
            if found is not None:
                return found
    return None


def _has_token(node, token: str) -> bool:
    return any(not c.is_named and c.type == token for c in node.children)


def _pattern_names(doc: SourceDocument, pattern) -> list:
    names = []
    for child in pattern.named_children:
        if child.type == "shorthand_property_identifier_pattern":
            names.append(doc.text(child))
        elif child.type == "object_assignment_pattern":
            left = child.child_by_field_name("left")
            if left is not None:
                names.append(doc.text(left))
        elif child.type == "pair_pattern":
            key = child.child_by_field_name("key")
            value = child.child_by_field_name("value")
            if key is not None and value is not None and value.type == "identifier" and doc.text(key) == doc.text(value):
                names.append(doc.text(key))
    return names


def _read_import(doc: SourceDocument, node) -> ImportDeclaration:
    source_node = node.child_by_field_name("source")
    source = unquote(doc.text(source_node)) if source_node is not None else ""
    declaration = ImportDeclaration(node=node, source=source, type_only=_has_token(node, "type"))
    for clause in node.named_children:
        if clause.type != "import_clause":
            continue
        for part in clause.named_children:
            if part.type == "identifier":
                declaration.specifiers.append(ImportSpecifier("default", doc.text(part), part))
            elif part.type == "namespace_import":
                ident = [c for c in part.named_children if c.type == "identifier"]
                if ident:
                    declaration.specifiers.append(ImportSpecifier("*", doc.text(ident[0]), part))
            elif part.type == "named_imports":
                for spec in part.named_children:
                    if spec.type != "import_specifier":
                        continue
                    name_node = spec.child_by_field_name("name")
                    alias_node = spec.child_by_field_name("alias")
                    name = doc.text(name_node)
                    local = doc.text(alias_node) if alias_node is not None else name
                    declaration.specifiers.append(ImportSpecifier(name, local, spec))
    return declaration


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}


def unquote(literal: str) -> str:
    """Decode a JS/TS string literal (single or double quoted)."""
    body = literal[1:-1]
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 >= len(body):
            out.append(ch)
            i += 1
            continue
        nxt = body[i + 1]
        if nxt == "u" and body[i + 2:i + 3] == "{":
            close = body.index("}", i)
            out.append(chr(int(body[i + 3:close], 16)))
            i = close + 1
        elif nxt == "u":
            out.append(chr(int(body[i + 2:i + 6], 16)))
            i += 6
        elif nxt == "x":
            out.append(chr(int(body[i + 2:i + 4], 16)))
            i += 4
        elif nxt == "\n":
            i += 2
        else:
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
    return "".join(out)


def apply_edits(data: bytes, edits: list) -> bytes:
    """Apply non-overlapping byte edits; insertions at one offset keep list order."""
    ordered = sorted(enumerate(edits), key=lambda item: (item[1].start, item[1].end, item[0]), reverse=True)
    result = data
    limit = len(data)
    for _, edit in ordered:
        if edit.end > limit or edit.start > edit.end:
            raise ValueError(f"overlapping edit at bytes {edit.start}-{edit.end}")
        result = result[:edit.start] + edit.text.encode("utf-8") + result[edit.end:]
        limit = edit.start
    return result
