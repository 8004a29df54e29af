"""
Prop value / prop shape ↔ TSX 文字轉換測試
"""
from studio_sync.models import PropMetadata, PropValue, PropValueKind, PropValueType
from studio_sync.parser import parse
from studio_sync.prop_values import (
    attribute_text,
    doc_comment_text,
    js_value_text,
    property_key_text,
    same_signature,
    signature_text,
    type_text,
)
from studio_sync.source_file import PropsParameter, unquote


def props_of(jsx: str, params: str = "") -> dict:
    source = f"export default function X({params}) {{\n  return {jsx};\n}}\n"
    return parse(source, "X.tsx").component_tree[0].props


# ─── reading attribute values ────────────────────────────────────────────────

class TestReadAttributes:
    def test_literals(self):
        props = props_of('<input name="q" maxLength={12} offset={-0.5} disabled label={"a\\"b"} />')
        assert props["name"] == PropValue.literal("q")
        assert props["maxLength"] == PropValue.literal(12)
        assert props["offset"] == PropValue.literal(-0.5)
        assert props["disabled"] == PropValue.literal(True)
        assert props["label"] == PropValue.literal('a"b')

    def test_html_entities_in_attribute_string(self):
        assert props_of('<a title="Tom &amp; Jerry" />')["title"].value == "Tom & Jerry"

    def test_boolean_expression_literal(self):
        assert props_of("<input checked={false} />")["checked"] == PropValue.literal(False)

    def test_expressions_keep_verbatim_text(self):
        props = props_of('<button onClick={() => go(1)} style={{ color: "red" }} label={`hi ${name}`} />')
        assert props["onClick"] == PropValue.expression("() => go(1)")
        assert props["style"] == PropValue.expression('{ color: "red" }', PropValueType.OBJECT)
        assert props["label"] == PropValue.expression("`hi ${name}`", PropValueType.STRING)

    def test_list_of_literals(self):
        value = props_of('<div data-tags={["a", "b"]} />')["data-tags"]
        assert value.kind == PropValueKind.LIST
        assert [item.value for item in value.value] == ["a", "b"]

    def test_mixed_array_is_expression(self):
        value = props_of('<div items={["a", b]} />')["items"]
        assert value == PropValue.expression('["a", b]', PropValueType.ARRAY)

    def test_prop_ref_on_props_parameter(self):
        props = props_of("<h1 title={props.heading} />", "props: XProps")
        assert props["title"] == PropValue.prop_ref("heading")

    def test_prop_ref_on_destructured_parameter(self):
        props = props_of("<h1 title={heading} id={other} />", "{ heading }: XProps")
        assert props["title"] == PropValue.prop_ref("heading")
        assert props["id"] == PropValue.expression("other")


# ─── writing ─────────────────────────────────────────────────────────────────

class TestWriteValues:
    def test_plain_string_attribute(self):
        assert attribute_text("title", PropValue.literal("Hello")) == 'title="Hello"'

    def test_string_needing_escape_uses_expression(self):
        assert attribute_text("title", PropValue.literal('say "hi"')) == 'title={"say \\"hi\\""}'
        assert attribute_text("title", PropValue.literal("a & b")) == 'title={"a & b"}'

    def test_number_boolean_list(self):
        assert attribute_text("n", PropValue.literal(3)) == "n={3}"
        assert attribute_text("ok", PropValue.literal(True)) == "ok={true}"
        items = PropValue(PropValueKind.LIST, [PropValue.literal(1), PropValue.literal("x")], PropValueType.ARRAY)
        assert attribute_text("items", items) == 'items={[1, "x"]}'

    def test_prop_ref_follows_parameter_style(self):
        ref = PropValue.prop_ref("heading")
        assert js_value_text(ref) == "props.heading"
        assert js_value_text(ref, PropsParameter(name="p")) == "p.heading"
        assert js_value_text(ref, PropsParameter(destructured=("heading",))) == "heading"

    def test_expression_verbatim(self):
        assert attribute_text("onClick", PropValue.expression("() => go()")) == "onClick={() => go()}"

    def test_property_key_quoting(self):
        assert property_key_text("title") == "title"
        assert property_key_text("data-id") == '"data-id"'

    def test_unquote_escapes(self):
        assert unquote("'it\\'s'") == "it's"
        assert unquote('"\\u00e9\\n"') == "é\n"


class TestWriteShape:
    def test_type_text(self):
        assert type_text(PropMetadata(PropValueType.STRING)) == "string"
        assert type_text(PropMetadata(PropValueType.STRING, union_values=["sm", "lg"])) == '"sm" | "lg"'
        assert type_text(PropMetadata(PropValueType.UNKNOWN, type_text="ReactNode")) == "ReactNode"

    def test_signature_text_optional_marker(self):
        assert signature_text("title", PropMetadata(PropValueType.STRING, required=True)) == "title: string"
        assert signature_text("size", PropMetadata(PropValueType.NUMBER)) == "size?: number"

    def test_doc_comment_single_and_multi_line(self):
        assert doc_comment_text("Headline", "  ") == "/** Headline */"
        assert doc_comment_text("First\nSecond", "  ") == "/**\n   * First\n   * Second\n   */"

    def test_same_signature_ignores_doc(self):
        a = PropMetadata(PropValueType.STRING, doc="one", required=True)
        b = PropMetadata(PropValueType.STRING, doc="two", required=True)
        assert same_signature(a, b)
        assert not same_signature(a, PropMetadata(PropValueType.STRING))
