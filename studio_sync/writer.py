"""
Source Writer — 元件樹 → TSX 原始碼（最小差異）

Rewrites the four regions the sync engine owns in an existing component file:

1. the component's returned markup
2. component / module / stylesheet import declarations
3. the props interface (only when ``file_metadata.prop_shape`` is given)
4. the ``initialProps`` declaration (only when ``file_metadata.initial_props`` is given)

All changes are byte-range edits on the original text, so everything outside those
regions is copied through unchanged. Inside the markup, nodes are matched to the
previous markup by structural position and unchanged attributes and tags keep
their original text.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import ParseError, ParseErrorKind, ResolutionError, WriteError, WriteErrorKind
from .import_resolver import resolve_imports
from .models import FragmentState, PropValueKind, RepeaterState
from .parser import REPEAT_MARKER, SourceFileParser, _attribute_nodes
from .prop_values import (
    attribute_text,
    doc_comment_text,
    foreign_members,
    js_value_text,
    leading_doc_comment,
    parse_doc_comment,
    property_key_text,
    property_signatures,
    read_object_pairs,
    read_prop_metadata,
    read_prop_shape,
    read_prop_value,
    same_shape,
    same_signature,
    signature_name,
    signature_text,
)
from .registry import MetadataRegistry
from .source_file import PropsParameter, TextEdit, apply_edits
from .tree_helpers import get_children_map, get_root_components, validate_component_tree, walk

# 舊 markup 無法解析時改為整段重建，而非中止寫入
_RECOVERABLE_MARKUP_ERRORS = (
    ParseErrorKind.UNRESOLVED_COMPONENT,
    ParseErrorKind.MALFORMED_ATTRIBUTE,
    ParseErrorKind.UNSUPPORTED_SYNTAX,
)

_DEFAULT_REPEAT_PARAMS = "(item, index)"
_DEFAULT_REPEAT_KEY = f"{REPEAT_MARKER}={{index}}"


@dataclass
class FormatOptions:
    indent_width: int = 2

    @property
    def indent(self) -> str:
        return " " * self.indent_width


def _node_key(state) -> tuple:
    if isinstance(state, FragmentState):
        return ("", "")
    if isinstance(state, RepeaterState):
        return ("repeat", state.repeated_component.component_name)
    return ("tag", state.component_name)


def structural_paths(tree: list) -> dict:
    """{uuid: path}; each step is ``(node key, occurrence among same-key siblings)``."""
    children = get_children_map(tree)
    paths: dict = {}

    def visit(parent_uuid, prefix):
        counts: dict = {}
        for state in children.get(parent_uuid, []):
            if state.uuid in paths:
                continue
            key = _node_key(state)
            index = counts.get(key, 0)
            counts[key] = index + 1
            paths[state.uuid] = prefix + ((key, index),)
            visit(state.uuid, paths[state.uuid])

    visit(None, ())
    return paths


def _props_of(state) -> dict:
    if isinstance(state, RepeaterState):
        return state.repeated_component.props
    return getattr(state, "props", {})


def _same_node(old, new) -> bool:
    if isinstance(new, RepeaterState):
        return (
            old.list_expression == new.list_expression
            and old.repeated_component.component_name == new.repeated_component.component_name
            and old.repeated_component.props == new.repeated_component.props
        )
    return _props_of(old) == _props_of(new)


def _prop_ref_names(tree: list) -> list:
    names = []
    for state in tree:
        for value in _props_of(state).values():
            if value.kind == PropValueKind.PROP_REF and value.value not in names:
                names.append(value.value)
    return names


class SourceWriter:

    def __init__(self, source_text: str, filepath: str, registry=None, options: Optional[FormatOptions] = None):
        self.filepath = filepath
        self.registry = registry if registry is not None else MetadataRegistry()
        self.options = options or FormatOptions()
        self.parser = SourceFileParser(source_text, filepath, self.registry)
        self.document = self.parser.document
        self.edits: list = []
        self.props_parameter = PropsParameter()
        self._matches: dict = {}
        self._children: dict = {}
        self._step = self.options.indent

    def write(self, component_tree: list, css_imports: list, file_metadata=None) -> str:
        validate_component_tree(component_tree, self.filepath)
        roots = get_root_components(component_tree)
        if len(roots) > 1:
            raise WriteError(
                WriteErrorKind.COMPONENT_TREE_INCONSISTENT,
                f"markup must have a single root, got {len(roots)}",
                filepath=self.filepath,
            )
        component = self.parser.component
        try:
            records = self.parser.read_markup()
        except ParseError as exc:
            if exc.kind not in _RECOVERABLE_MARKUP_ERRORS:
                raise
            records = []

        bindings = self.parser.import_bindings()
        known_imports = {
            local: declaration.source
            for local, (declaration, _) in bindings.items()
            if not declaration.type_only
        }
        try:
            resolved = resolve_imports(component_tree, self.registry, self.filepath, known_imports)
        except ResolutionError as exc:
            raise WriteError(WriteErrorKind.UNRESOLVED_IMPORT, str(exc), filepath=self.filepath) from exc

        self.props_parameter = self._ensure_props_parameter(component_tree, file_metadata)
        self._write_markup(component_tree, records)
        self._write_imports(resolved, list(css_imports), records)

        type_name = component.props_type_name
        declares_type = type_name in bindings
        insertions = []
        if file_metadata is not None and file_metadata.prop_shape is not None and not declares_type:
            insertions.extend(self._write_prop_shape(type_name, file_metadata.prop_shape))
        if file_metadata is not None and file_metadata.initial_props is not None:
            annotate = declares_type or insertions or self.document.find_props_declaration(type_name) is not None
            insertions.extend(self._write_initial_props(file_metadata.initial_props, type_name if annotate else None))
        if insertions:
            offset = self.document.line_start(self._declaration_anchor(component.statement).start_byte)
            self.edits.append(TextEdit(offset, offset, "".join(insertions)))

        return apply_edits(self.document.data, self.edits).decode("utf-8")

    # ─── markup ───

    def _write_markup(self, tree: list, records: list) -> None:
        doc = self.document
        markup = self.parser.component.markup
        old_paths = structural_paths([r.state for r in records])
        by_path = {old_paths[r.state.uuid]: r for r in records if r.state.uuid in old_paths}
        new_paths = structural_paths(tree)
        self._matches = {
            uuid: by_path[path] for uuid, path in new_paths.items() if path in by_path
        }
        self._children = get_children_map(tree)
        new_order = [new_paths.get(s.uuid) for _, s in walk(tree)]
        old_order = [old_paths.get(r.state.uuid) for r in records]
        if records and new_order == old_order and len(tree) == len(records) and all(
            _same_node(self._matches[s.uuid].state, s) for s in tree
        ):
            return

        if not tree:
            text = "null"
        else:
            base = doc.indent_of(markup.start_byte)
            self._step = self._indent_step(markup, base)
            lines: list = []
            for root in get_root_components(tree):
                self._render(root, base, 1, lines)
            text = "(\n" + "\n".join(lines) + "\n" + base + ")"
        if text != doc.text(markup):
            self.edits.append(TextEdit(markup.start_byte, markup.end_byte, text))

    def _indent_step(self, markup, base: str) -> str:
        """Indent step of the first nested line in the existing markup, else the configured one."""
        for line in self.document.text(markup).split("\n")[1:]:
            content = line.lstrip(" \t")
            indent = line[: len(line) - len(content)]
            if content and indent.startswith(base) and len(indent) > len(base):
                return indent[len(base):]
        return self.options.indent

    def _render(self, state, base: str, depth: int, lines: list) -> None:
        doc = self.document
        pad = base + self._step * depth
        record = self._matches.get(state.uuid)
        children = self._children.get(state.uuid, [])

        if isinstance(state, RepeaterState):
            lines.append(pad + self._repeater_text(state, record))
            return
        if isinstance(state, FragmentState):
            name = self._fragment_name(record)
            if not children:
                lines.append(f"{pad}<{name}></{name}>")
                return
            lines.append(f"{pad}<{name}>")
            for child in children:
                self._render(child, base, depth + 1, lines)
            lines.append(f"{pad}</{name}>")
            return

        unchanged = record is not None and _props_of(record.state) == state.props
        if not children:
            if unchanged and record.self_closing:
                lines.append(pad + doc.text(record.node))
            else:
                lines.append(pad + self._tag(state.component_name, self._attributes(state.props, record), True))
            return
        if unchanged and not record.self_closing:
            lines.append(pad + doc.text(record.opening))
        else:
            lines.append(pad + self._tag(state.component_name, self._attributes(state.props, record), False))
        for child in children:
            self._render(child, base, depth + 1, lines)
        lines.append(f"{pad}</{state.component_name}>")

    def _fragment_name(self, record) -> str:
        if record is None or record.opening is None:
            return ""
        name_node = record.opening.child_by_field_name("name")
        return self.document.text(name_node) if name_node is not None else ""

    @staticmethod
    def _tag(name: str, attributes: list, self_closing: bool) -> str:
        inner = " ".join([name] + attributes)
        return f"<{inner} />" if self_closing else f"<{inner}>"

    def _attributes(self, props: dict, record) -> list:
        old_props = _props_of(record.state) if record is not None else {}
        texts = []
        for name, value in props.items():
            if record is not None and name in record.attributes and old_props.get(name) == value:
                texts.append(record.attributes[name])
            else:
                texts.append(attribute_text(name, value, self.props_parameter))
        return texts

    def _repeater_text(self, state: RepeaterState, record) -> str:
        template = state.repeated_component
        params, key_text = _DEFAULT_REPEAT_PARAMS, _DEFAULT_REPEAT_KEY
        if record is not None and isinstance(record.state, RepeaterState):
            old = record.state
            if (
                old.list_expression == state.list_expression
                and old.repeated_component.component_name == template.component_name
                and old.repeated_component.props == template.props
            ):
                return self.document.text(record.node)
            params, key_text = self._repeater_head(record)
        attributes = ([key_text] if key_text else []) + self._attributes(template.props, record)
        element = self._tag(template.component_name, attributes, True)
        return "{" + f"{state.list_expression}.map({params} => {element})" + "}"

    def _repeater_head(self, record):
        """Original callback parameters and repeat-marker attribute of a repeater."""
        doc = self.document
        call = [c for c in record.node.named_children if c.type != "comment"][0]
        arguments = call.child_by_field_name("arguments")
        arrow = [c for c in arguments.named_children if c.type != "comment"][0]
        params = arrow.child_by_field_name("parameters") or arrow.child_by_field_name("parameter")
        key_text = None
        for attribute in _attribute_nodes(record.opening):
            if attribute.type == "jsx_attribute" and doc.text(attribute.named_children[0]) == REPEAT_MARKER:
                key_text = doc.text(attribute)
        return doc.text(params), key_text

    def _ensure_props_parameter(self, tree: list, file_metadata) -> PropsParameter:
        """Make sure every PropRef in the tree can be reached from the function's parameters."""
        doc = self.document
        component = self.parser.component
        current = component.props_parameter
        names = _prop_ref_names(tree)
        if not names or current.name:
            return current

        params_node = current.node
        if current.destructured or (params_node is not None and params_node.type == "formal_parameters" and _has_parameters(params_node)):
            missing = [n for n in names if n not in current.destructured]
            pattern = _object_pattern(params_node) if params_node is not None else None
            if not missing or pattern is None:
                return current
            members = [c for c in pattern.named_children if c.type != "comment"]
            if members and members[-1].type == "rest_pattern":
                # a rest element must stay last
                rest = members[-1]
                self.edits.append(TextEdit(rest.start_byte, rest.start_byte, "".join(f"{n}, " for n in missing)))
            elif members:
                self.edits.append(TextEdit(members[-1].end_byte, members[-1].end_byte, "".join(f", {n}" for n in missing)))
            else:
                self.edits.append(TextEdit(pattern.start_byte, pattern.end_byte, "{ " + ", ".join(missing) + " }"))
            return PropsParameter(
                node=params_node,
                destructured=current.destructured + tuple(missing),
                type_name=current.type_name,
            )

        if params_node is None:
            return current
        type_name = component.props_type_name
        typed = (
            (file_metadata is not None and file_metadata.prop_shape is not None)
            or doc.find_props_declaration(type_name) is not None
        )
        text = f"(props: {type_name})" if typed else "(props)"
        self.edits.append(TextEdit(params_node.start_byte, params_node.end_byte, text))
        return PropsParameter(node=params_node, name="props", type_name=type_name if typed else None)

    # ─── imports ───

    def _write_imports(self, resolved, css_imports: list, records: list) -> None:
        doc = self.document
        needed = resolved.all()
        old_tags = set()
        for record in records:
            state = record.state
            if isinstance(state, RepeaterState):
                old_tags.add(state.repeated_component.component_name.split(".")[0])
            elif not isinstance(state, FragmentState):
                old_tags.add(state.component_name.split(".")[0])

        bound = set()
        present_css = []
        for declaration in doc.imports():
            if declaration.is_stylesheet:
                if declaration.source in css_imports and declaration.source not in present_css:
                    present_css.append(declaration.source)
                else:
                    self._remove_statement(declaration.node)
                continue
            if declaration.type_only or declaration.is_side_effect:
                continue
            resolved_path = self.parser.resolve_import_path(declaration.source)
            owned = resolved_path is not None and self.registry.is_owned_path(resolved_path)
            unused = {
                s.local for s in declaration.specifiers
                if s.local not in needed
                and ((owned and s.name == "default") or s.local in old_tags or s.local in self.registry)
            }
            remaining = [s for s in declaration.specifiers if s.local not in unused]
            bound.update(s.local for s in remaining)
            if not unused:
                continue
            if not remaining:
                self._remove_statement(declaration.node)
            else:
                self.edits.append(TextEdit(
                    declaration.node.start_byte,
                    declaration.node.end_byte,
                    self._import_text(declaration, remaining),
                ))

        quote = doc.import_quote()
        semicolon = self._import_semicolon()
        lines = []
        for source in css_imports:
            if source not in present_css:
                present_css.append(source)
                lines.append(f"import {quote}{source}{quote}{semicolon}")
        for group in (resolved.component_imports, resolved.module_imports):
            for local, specifier in group.items():
                if local not in bound:
                    lines.append(f"import {local} from {quote}{specifier}{quote}{semicolon}")
        if lines:
            self._insert_imports(lines)

    def _import_semicolon(self) -> str:
        declarations = self.document.imports()
        if declarations and not self.document.text(declarations[0].node).rstrip().endswith(";"):
            return ""
        return ";"

    def _import_text(self, declaration, specifiers: list) -> str:
        doc = self.document
        parts = []
        named = []
        for spec in specifiers:
            if spec.name == "default":
                parts.insert(0, spec.local)
            elif spec.name == "*":
                parts.append(f"* as {spec.local}")
            else:
                named.append(spec.name if spec.name == spec.local else f"{spec.name} as {spec.local}")
        if named:
            parts.append("{ " + ", ".join(named) + " }")
        source = doc.text(declaration.node.child_by_field_name("source"))
        semicolon = ";" if doc.text(declaration.node).rstrip().endswith(";") else ""
        return f"import {', '.join(parts)} from {source}{semicolon}"

    def _insert_imports(self, lines: list) -> None:
        doc = self.document
        statements = doc.top_level_statements()
        imports = [s for s in statements if s.type == "import_statement"]
        block = "\n".join(lines)
        if imports:
            last = imports[-1]
            if doc.ends_line(last.end_byte):
                offset = doc.line_end(last.end_byte)
                prefix = "" if doc.data[:offset].endswith(b"\n") else "\n"
                self.edits.append(TextEdit(offset, offset, prefix + block + "\n"))
            else:
                self.edits.append(TextEdit(last.end_byte, last.end_byte, "\n" + block))
            return
        directives = []
        for statement in statements:
            if not _is_directive(statement):
                break
            directives.append(statement)
        if directives:
            offset = doc.line_end(directives[-1].end_byte)
            prefix = "" if doc.data[:offset].endswith(b"\n") else "\n"
            self.edits.append(TextEdit(offset, offset, prefix + block + "\n"))
            return
        offset = doc.line_start(statements[0].start_byte) if statements else 0
        self.edits.append(TextEdit(offset, offset, block + "\n\n"))

    def _remove_statement(self, node) -> None:
        doc = self.document
        start, end = node.start_byte, node.end_byte
        if doc.starts_line(node) and doc.ends_line(end):
            start, end = doc.line_start(start), doc.line_end(end)
        self.edits.append(TextEdit(start, end, ""))

    # ─── props interface / initialProps ───

    def _declaration_anchor(self, statement):
        """The component statement, or the comment block directly above it."""
        anchor = statement
        while anchor.prev_sibling is not None and anchor.prev_sibling.type == "comment":
            anchor = anchor.prev_sibling
        return anchor

    def _shape_block(self, shape: dict, indent: str, kept: tuple = ()) -> str:
        if not shape and not kept:
            return "{}"
        inner = indent + self.options.indent
        lines = []
        for name, meta in shape.items():
            if meta.doc:
                lines.append(inner + doc_comment_text(meta.doc, inner))
            lines.append(f"{inner}{signature_text(name, meta)};")
        lines.extend(inner + text for text in kept)
        return "{\n" + "\n".join(lines) + f"\n{indent}}}"

    def _kept_members(self, body) -> list:
        """Verbatim text of members the shape does not model, with their doc comments."""
        doc = self.document
        kept = []
        for member in foreign_members(body):
            comment = leading_doc_comment(doc, member)
            if comment is not None:
                kept.append(doc.text(comment))
            kept.append(doc.text(member) + (_separator_after(member) or ";"))
        return kept

    def _object_block(self, values: dict, indent: str) -> str:
        if not values:
            return "{}"
        inner = indent + self.options.indent
        lines = [f"{inner}{property_key_text(k)}: {js_value_text(v)}," for k, v in values.items()]
        return "{\n" + "\n".join(lines) + f"\n{indent}}}"

    def _write_prop_shape(self, type_name: str, shape: dict) -> list:
        """Upsert the props interface; returns text to insert when it does not exist yet."""
        doc = self.document
        found = doc.find_props_declaration(type_name)
        if found is None:
            return [f"export interface {type_name} {self._shape_block(shape, '')}\n\n"]
        statement, _, body = found
        indent = doc.indent_of(statement.start_byte)
        if body is None:
            return []
        if body.type not in ("object_type", "interface_body"):
            self._replace(body, self._shape_block(shape, indent))
            return []
        if same_shape(read_prop_shape(doc, body), shape):
            return []
        signatures = property_signatures(body)
        if not signatures or not shape or not self._upsertable(body):
            self._replace(body, self._shape_block(shape, indent, self._kept_members(body)))
            return []

        member_indent = doc.indent_of(signatures[0].start_byte)
        separator = _separator_after(signatures[0])
        survivors = []
        existing = set()
        for signature in signatures:
            name = signature_name(doc, signature)
            comment = leading_doc_comment(doc, signature)
            if name not in shape:
                self._remove_member(signature, comment)
                continue
            existing.add(name)
            survivors.append(signature)
            meta = shape[name]
            old = read_prop_metadata(doc, signature)
            new_text = signature_text(name, meta)
            if not same_signature(old, meta) and new_text != doc.text(signature):
                self._replace(signature, new_text)
            if comment is not None and not meta.doc:
                self._remove_member(comment)
            elif comment is not None and parse_doc_comment(doc.text(comment)) != meta.doc:
                self._replace(comment, doc_comment_text(meta.doc, doc.indent_of(comment.start_byte)))
            elif comment is None and meta.doc:
                offset = doc.line_start(signature.start_byte)
                self.edits.append(TextEdit(offset, offset, member_indent + doc_comment_text(meta.doc, member_indent) + "\n"))

        added = []
        for name, meta in shape.items():
            if name in existing:
                continue
            if meta.doc:
                added.append(member_indent + doc_comment_text(meta.doc, member_indent))
            added.append(f"{member_indent}{signature_text(name, meta)}{separator}")
        if added:
            if survivors and separator and _separator_after(survivors[-1]) == "":
                self.edits.append(TextEdit(survivors[-1].end_byte, survivors[-1].end_byte, separator))
            self._insert_before_close(body, "\n".join(added) + "\n")
        return []

    def _write_initial_props(self, values: dict, type_name: Optional[str]) -> list:
        doc = self.document
        found = doc.find_initial_props()
        if found is None:
            annotation = f": {type_name}" if type_name else ""
            return [f"export const initialProps{annotation} = {self._object_block(values, '')};\n\n"]
        statement, declarator, value = found
        indent = doc.indent_of(statement.start_byte)
        if value is None:
            self.edits.append(TextEdit(declarator.end_byte, declarator.end_byte, " = " + self._object_block(values, indent)))
            return []
        pairs = read_object_pairs(doc, value) if value.type == "object" else None
        if not pairs or not values or not self._upsertable(value):
            new_text = self._object_block(values, indent)
            if new_text != doc.text(value):
                self._replace(value, new_text)
            return []

        member_indent = doc.indent_of(pairs[0][1].start_byte)
        trailing = _separator_after(pairs[-1][1]) == ","
        survivors = []
        existing = set()
        for key, pair, value_node in pairs:
            if key not in values:
                self._remove_member(pair, leading_doc_comment(doc, pair))
                continue
            existing.add(key)
            survivors.append(pair)
            new_value = values[key]
            new_text = js_value_text(new_value)
            if read_prop_value(doc, value_node) != new_value and new_text != doc.text(value_node):
                self._replace(value_node, new_text)

        added = [
            f"{member_indent}{property_key_text(k)}: {js_value_text(v)}"
            for k, v in values.items() if k not in existing
        ]
        if added:
            if survivors and _separator_after(survivors[-1]) == "":
                self.edits.append(TextEdit(survivors[-1].end_byte, survivors[-1].end_byte, ","))
            self._insert_before_close(value, ",\n".join(added) + ("," if trailing or not survivors else "") + "\n")
        return []

    def _upsertable(self, body) -> bool:
        """Multi-line braces with the closing brace on its own line."""
        doc = self.document
        close = body.children[-1]
        return (
            b"\n" in doc.data[body.start_byte:body.end_byte]
            and close.type == "}"
            and doc.starts_line(close)
        )

    def _insert_before_close(self, body, text: str) -> None:
        offset = self.document.line_start(body.children[-1].start_byte)
        self.edits.append(TextEdit(offset, offset, text))

    def _replace(self, node, text: str) -> None:
        self.edits.append(TextEdit(node.start_byte, node.end_byte, text))

    def _remove_member(self, node, comment=None) -> None:
        """Delete a member (with its doc comment and separator), whole lines when possible."""
        doc = self.document
        first = comment if comment is not None else node
        end = node.end_byte
        separator = node.next_sibling
        if separator is not None and separator.type in (";", ","):
            end = separator.end_byte
        if doc.starts_line(first) and doc.ends_line(end):
            self.edits.append(TextEdit(doc.line_start(first.start_byte), doc.line_end(end), ""))
        else:
            self.edits.append(TextEdit(first.start_byte, end, ""))


def _separator_after(node) -> str:
    following = node.next_sibling
    if following is not None and following.type in (";", ","):
        return following.type
    return ""


def _has_parameters(params_node) -> bool:
    return any(c.type in ("required_parameter", "optional_parameter") for c in params_node.named_children)


def _object_pattern(params_node):
    if params_node.type != "formal_parameters":
        return None
    for parameter in params_node.named_children:
        if parameter.type in ("required_parameter", "optional_parameter"):
            pattern = parameter.child_by_field_name("pattern")
            if pattern is not None and pattern.type == "object_pattern":
                return pattern
            return None
    return None


def _is_directive(statement) -> bool:
    if statement.type != "expression_statement":
        return False
    inner = [c for c in statement.named_children if c.type != "comment"]
    return len(inner) == 1 and inner[0].type == "string"


def write(
    source_text: str,
    filepath: str,
    component_tree: list,
    css_imports: list,
    file_metadata=None,
    registry=None,
    options: Optional[FormatOptions] = None,
) -> str:
    """Return ``source_text`` rewritten to match the tree, imports and metadata."""
    return SourceWriter(source_text, filepath, registry, options).write(component_tree, css_imports, file_metadata)
