"""
Prop values ↔ TSX text

Reading turns attribute values, object-literal values and interface members into
PropValue / PropMetadata; writing produces the attribute, value and type text the
writer splices back into the file. Expression values are opaque: their text is
stored and emitted verbatim.
"""

import html
import json
import math
import re
from typing import Optional

from .errors import ParseErrorKind
from .models import PropMetadata, PropValue, PropValueKind, PropValueType
from .source_file import PropsParameter, SourceDocument, unquote

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
# JSX attribute strings do no escape processing, so these force the {"..."} form
_NEEDS_EXPRESSION_RE = re.compile(r'["\\&\n\r]')

_PRIMITIVE_TYPES = {
    "string": PropValueType.STRING,
    "number": PropValueType.NUMBER,
    "boolean": PropValueType.BOOLEAN,
}

_DEFAULT_TYPE_TEXT = {
    PropValueType.STRING: "string",
    PropValueType.NUMBER: "number",
    PropValueType.BOOLEAN: "boolean",
    PropValueType.OBJECT: "Record<string, unknown>",
    PropValueType.ARRAY: "unknown[]",
    PropValueType.UNKNOWN: "unknown",
}


def _named(node) -> list:
    return [c for c in node.named_children if c.type != "comment"]


def _parse_number(text: str):
    cleaned = text.replace("_", "")
    try:
        return int(cleaned, 0)
    except ValueError:
        pass
    try:
        return float(cleaned)
    except ValueError:
        return None


# ════════════════════════════════════════════════════════════
# Reading values
# ════════════════════════════════════════════════════════════

def read_prop_value(doc: SourceDocument, node, props_parameter: Optional[PropsParameter] = None) -> PropValue:
    """Classify one expression node."""
    kind = node.type
    if kind == "parenthesized_expression":
        inner = _named(node)
        if len(inner) == 1:
            return read_prop_value(doc, inner[0], props_parameter)
    if kind == "string":
        return PropValue.literal(unquote(doc.text(node)))
    if kind == "number":
        number = _parse_number(doc.text(node))
        if number is not None:
            return PropValue.literal(number)
        return PropValue.expression(doc.text(node), PropValueType.NUMBER)
    if kind == "unary_expression":
        operator = node.child_by_field_name("operator")
        argument = node.child_by_field_name("argument")
        if (
            operator is not None and argument is not None
            and doc.text(operator) in ("-", "+") and argument.type == "number"
        ):
            number = _parse_number(doc.text(argument))
            if number is not None:
                return PropValue.literal(-number if doc.text(operator) == "-" else number)
    if kind in ("true", "false"):
        return PropValue.literal(kind == "true")
    if props_parameter is not None:
        if kind == "member_expression" and props_parameter.name:
            obj = node.child_by_field_name("object")
            prop = node.child_by_field_name("property")
            if (
                obj is not None and prop is not None
                and obj.type == "identifier" and doc.text(obj) == props_parameter.name
                and prop.type == "property_identifier"
            ):
                return PropValue.prop_ref(doc.text(prop))
        if kind == "identifier" and doc.text(node) in props_parameter.destructured:
            return PropValue.prop_ref(doc.text(node))
    if kind == "array":
        items = [read_prop_value(doc, c) for c in _named(node)]
        if items and all(i.kind == PropValueKind.LITERAL for i in items):
            return PropValue(PropValueKind.LIST, items, PropValueType.ARRAY)
        return PropValue.expression(doc.text(node), PropValueType.ARRAY)
    if kind == "object":
        return PropValue.expression(doc.text(node), PropValueType.OBJECT)
    if kind == "template_string":
        return PropValue.expression(doc.text(node), PropValueType.STRING)
    return PropValue.expression(doc.text(node))


def read_attribute_value(doc: SourceDocument, value_node, props_parameter: Optional[PropsParameter]) -> PropValue:
    """Value of a JSX attribute; ``None`` is a bare boolean attribute."""
    if value_node is None:
        return PropValue.literal(True)
    if value_node.type == "string":
        return PropValue.literal(html.unescape(doc.text(value_node)[1:-1]))
    if value_node.type == "jsx_expression":
        inner = _named(value_node)
        if not inner:
            raise doc.error(ParseErrorKind.MALFORMED_ATTRIBUTE, "attribute has an empty expression", value_node)
        if inner[0].type == "spread_element":
            raise doc.error(ParseErrorKind.MALFORMED_ATTRIBUTE, "spread is not allowed here", value_node)
        return read_prop_value(doc, inner[0], props_parameter)
    return PropValue.expression(doc.text(value_node))


def literal_matches(value: PropValue, declared: PropMetadata) -> bool:
    if declared.type == PropValueType.UNKNOWN:
        return True
    if value.value_type != declared.type:
        return False
    if declared.union_values is not None:
        return value.value in declared.union_values
    return True


def read_object_pairs(doc: SourceDocument, node) -> Optional[list]:
    """[(key, pair node, value node)] of an object literal, or None if it holds
    anything but plain ``key: value`` pairs."""
    pairs = []
    for member in _named(node):
        if member.type != "pair":
            return None
        key_node = member.child_by_field_name("key")
        value_node = member.child_by_field_name("value")
        if key_node is None or value_node is None:
            return None
        if key_node.type == "string":
            key = unquote(doc.text(key_node))
        elif key_node.type in ("property_identifier", "number"):
            key = doc.text(key_node)
        else:
            return None
        pairs.append((key, member, value_node))
    return pairs


def read_initial_props(doc: SourceDocument, node) -> dict:
    pairs = read_object_pairs(doc, node)
    if pairs is None:
        raise doc.error(ParseErrorKind.UNSUPPORTED_SYNTAX, "initialProps must be a plain object literal", node)
    return {key: read_prop_value(doc, value_node) for key, _, value_node in pairs}


# ════════════════════════════════════════════════════════════
# Reading prop shapes
# ════════════════════════════════════════════════════════════

def leading_doc_comment(doc: SourceDocument, node):
    comment = node.prev_sibling
    if comment is None or comment.type != "comment":
        return None
    if not doc.text(comment).startswith("/**") or not doc.starts_line(comment):
        return None
    return comment


def parse_doc_comment(text: str) -> str:
    body = text[3:-2] if text.endswith("*/") else text[3:]
    lines = [line.strip() for line in body.splitlines()]
    lines = [line[1:].strip() if line.startswith("*") else line for line in lines]
    return "\n".join(line for line in lines if line).strip()


def property_signatures(body) -> list:
    return [m for m in body.named_children if m.type == "property_signature"]


def foreign_members(body) -> list:
    """Members a prop shape cannot model (method, call, index and construct signatures)."""
    return [m for m in body.named_children if m.type not in ("property_signature", "comment")]


def signature_name(doc: SourceDocument, signature) -> str:
    name_node = signature.child_by_field_name("name")
    if name_node.type == "string":
        return unquote(doc.text(name_node))
    return doc.text(name_node)


def read_prop_metadata(doc: SourceDocument, signature) -> PropMetadata:
    required = not any(not c.is_named and c.type == "?" for c in signature.children)
    annotation = signature.child_by_field_name("type")
    type_node = _named(annotation)[0] if annotation is not None and _named(annotation) else None
    prop_type, union_values, type_text = read_type(doc, type_node)
    comment = leading_doc_comment(doc, signature)
    return PropMetadata(
        type=prop_type,
        doc=parse_doc_comment(doc.text(comment)) if comment is not None else None,
        union_values=union_values,
        required=required,
        type_text=type_text,
    )


def read_prop_shape(doc: SourceDocument, body) -> dict:
    return {
        signature_name(doc, signature): read_prop_metadata(doc, signature)
        for signature in property_signatures(body)
    }


def _union_members(node) -> list:
    if node.type != "union_type":
        return [node]
    members = []
    for child in _named(node):
        members.extend(_union_members(child))
    return members


def _literal_type_value(doc: SourceDocument, node):
    inner = _named(node)
    if node.type != "literal_type" or len(inner) != 1:
        return None
    value = read_prop_value(doc, inner[0])
    return value if value.kind == PropValueKind.LITERAL else None


def read_type(doc: SourceDocument, node):
    """(PropValueType, union values, raw type text for non-primitive types)."""
    if node is None:
        return PropValueType.UNKNOWN, None, None
    text = doc.text(node)
    if node.type == "predefined_type":
        if text in _PRIMITIVE_TYPES:
            return _PRIMITIVE_TYPES[text], None, None
        return PropValueType.UNKNOWN, None, text
    if node.type in ("union_type", "literal_type"):
        members = [m for m in _union_members(node) if doc.text(m) not in ("undefined", "null")]
        if len(members) == 1 and members[0].type != "literal_type":
            return read_type(doc, members[0])
        literals = [_literal_type_value(doc, m) for m in members]
        if literals and all(v is not None for v in literals):
            types = {v.value_type for v in literals}
            if len(types) == 1:
                return types.pop(), [v.value for v in literals], None
        return PropValueType.UNKNOWN, None, text
    if node.type == "array_type" or (node.type == "generic_type" and text.startswith(("Array<", "ReadonlyArray<"))):
        return PropValueType.ARRAY, None, text
    if node.type == "object_type":
        return PropValueType.OBJECT, None, text
    return PropValueType.UNKNOWN, None, text


# ════════════════════════════════════════════════════════════
# Writing
# ════════════════════════════════════════════════════════════

def _number_text(value) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
    return repr(value)


def js_value_text(value: PropValue, props_parameter: Optional[PropsParameter] = None) -> str:
    """JS expression text for a prop value."""
    if value.kind == PropValueKind.EXPRESSION:
        return str(value.value)
    if value.kind == PropValueKind.PROP_REF:
        return (props_parameter or PropsParameter()).access(value.value)
    if value.kind == PropValueKind.LIST:
        return "[" + ", ".join(js_value_text(item, props_parameter) for item in value.value) + "]"
    raw = value.value
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, (int, float)):
        return _number_text(raw)
    return json.dumps(raw, ensure_ascii=False)


def attribute_text(name: str, value: PropValue, props_parameter: Optional[PropsParameter] = None) -> str:
    if (
        value.kind == PropValueKind.LITERAL
        and isinstance(value.value, str)
        and not _NEEDS_EXPRESSION_RE.search(value.value)
    ):
        return f'{name}="{value.value}"'
    return f"{name}={{{js_value_text(value, props_parameter)}}}"


def property_key_text(name: str) -> str:
    return name if _IDENTIFIER_RE.match(name) else json.dumps(name, ensure_ascii=False)


def type_text(meta: PropMetadata) -> str:
    if meta.union_values:
        return " | ".join(js_value_text(PropValue.literal(v)) for v in meta.union_values)
    if meta.type_text:
        return meta.type_text
    return _DEFAULT_TYPE_TEXT[meta.type]


def signature_text(name: str, meta: PropMetadata) -> str:
    optional = "" if meta.required else "?"
    return f"{property_key_text(name)}{optional}: {type_text(meta)}"


def doc_comment_text(doc: str, indent: str) -> str:
    lines = doc.splitlines() or [""]
    if len(lines) == 1:
        return f"/** {lines[0]} */"
    body = "".join(f"\n{indent} * {line}".rstrip() for line in lines)
    return f"/**{body}\n{indent} */"


def same_signature(a: PropMetadata, b: PropMetadata) -> bool:
    return (
        a.type == b.type
        and a.union_values == b.union_values
        and a.required == b.required
        and a.type_text == b.type_text
    )


def same_shape(old: dict, new: dict) -> bool:
    if list(old) != list(new):
        return False
    return all(same_signature(old[name], new[name]) and old[name].doc == new[name].doc for name in new)
