"""
Source Writer 測試：最小差異寫回、import 調整、props interface / initialProps upsert
"""
import pytest

from studio_sync.errors import WriteError, WriteErrorKind
from studio_sync.models import (
    BuiltInState,
    ComponentMetadata,
    ComponentStateKind,
    PropMetadata,
    PropValue,
    PropValueType,
    RepeatedComponent,
    RepeaterState,
    StandardState,
)
from studio_sync.parser import parse
from studio_sync.registry import MetadataRegistry
from studio_sync.tree_helpers import walk
from studio_sync.writer import FormatOptions, structural_paths, write

PAGE = "src/pages/index.tsx"

BANNER_PAGE = """\
import Banner from "../components/Banner";

export default function IndexPage() {
  return (
    <>
      <div className="container">
        <Banner title="first" />
        <Banner title="second" />
      </div>
    </>
  );
}
"""

BANNER_FOOTER_PAGE = """\
import Banner from "../components/Banner";
import Footer from "../components/Footer";

export default function IndexPage() {
  return (
    <>
      <div className="container">
        <Banner title="first" />
        <Banner title="second" />
        <Footer />
      </div>
    </>
  );
}
"""


def shape(tree):
    """uuid-free view of a tree for round-trip comparison."""
    rows = []
    for depth, state in walk(tree):
        if isinstance(state, RepeaterState):
            template = state.repeated_component
            rows.append((depth, "repeat", state.list_expression, template.component_name, template.props))
        else:
            rows.append((depth, state.kind, getattr(state, "component_name", ""), getattr(state, "props", {})))
    return rows


def rewrite(source, registry, mutate=lambda tree: tree, css=None, filepath=PAGE, **kwargs):
    result = parse(source, filepath, registry)
    tree = mutate(list(result.component_tree))
    return write(source, filepath, tree, result.css_imports if css is None else css, registry=registry, **kwargs)


# ─── markup ──────────────────────────────────────────────────────────────────

class TestMarkup:
    def test_unchanged_tree_is_byte_identical(self, registry):
        assert rewrite(BANNER_PAGE, registry) == BANNER_PAGE

    def test_add_footer_inserts_element_and_import(self, registry):
        def add_footer(tree):
            container = tree[1]
            return tree + [StandardState("new", "Footer", {}, "footer-meta", parent_uuid=container.uuid)]

        assert rewrite(BANNER_PAGE, registry, add_footer) == BANNER_FOOTER_PAGE

    def test_remove_footer_drops_element_and_import(self, registry):
        def drop_footer(tree):
            return [s for s in tree if getattr(s, "component_name", None) != "Footer"]

        assert rewrite(BANNER_FOOTER_PAGE, registry, drop_footer) == BANNER_PAGE

    def test_changed_prop_keeps_untouched_siblings(self, registry):
        def retitle(tree):
            tree[3] = StandardState(
                tree[3].uuid, "Banner", {"title": PropValue.literal("changed")},
                "banner-meta", parent_uuid=tree[3].parent_uuid,
            )
            return tree

        output = rewrite(BANNER_PAGE, registry, retitle)
        assert output == BANNER_PAGE.replace('title="second"', 'title="changed"')

    def test_reorder_siblings_rewrites_markup(self, registry):
        def swap(tree):
            return [tree[0], tree[1], tree[3], tree[2]]

        output = rewrite(BANNER_PAGE, registry, swap)
        assert output.index('title="second"') < output.index('title="first"')

    def test_unrelated_code_is_preserved(self, registry):
        source = BANNER_PAGE.replace(
            "export default",
            "// helper kept as-is\nconst  format = (x:number)=>x*2 ;\n\nexport default",
        )

        def add_footer(tree):
            return tree + [StandardState("new", "Footer", {}, "footer-meta", parent_uuid=tree[1].uuid)]

        output = rewrite(source, registry, add_footer)
        assert "// helper kept as-is\nconst  format = (x:number)=>x*2 ;\n" in output
        assert "<Footer />" in output

    def test_write_then_parse_round_trip(self, registry):
        def add_footer(tree):
            return tree + [StandardState("new", "Footer", {"year": PropValue.literal(2024)},
                                         "footer-meta", parent_uuid=tree[1].uuid)]

        tree = add_footer(list(parse(BANNER_PAGE, PAGE, registry).component_tree))
        output = write(BANNER_PAGE, PAGE, tree, [], registry=registry)
        assert shape(parse(output, PAGE, registry).component_tree) == shape(tree)

    def test_writing_output_again_is_idempotent(self, registry):
        def add_footer(tree):
            return tree + [StandardState("new", "Footer", {}, "footer-meta", parent_uuid=tree[1].uuid)]

        once = rewrite(BANNER_PAGE, registry, add_footer)
        assert rewrite(once, registry) == once

    def test_empty_tree_writes_null(self, registry):
        output = rewrite(BANNER_PAGE, registry, lambda tree: [])
        assert "return null;" in output
        assert "import Banner" not in output

    def test_indent_width_option(self, registry):
        source = "export default function P() {\n  return null;\n}\n"
        tree = [BuiltInState("a", "main", {}), BuiltInState("b", "p", {}, parent_uuid="a")]
        output = write(source, PAGE, tree, [], registry=registry, options=FormatOptions(indent_width=4))
        assert "      <main>\n          <p />\n      </main>" in output

    def test_existing_indent_step_is_followed(self, registry):
        def widen(text):
            return "".join(
                " " * (2 * (len(line) - len(line.lstrip(" ")))) + line.lstrip(" ")
                for line in text.splitlines(keepends=True)
            )

        def add_footer(tree):
            return tree + [StandardState("new", "Footer", {}, "footer-meta", parent_uuid=tree[1].uuid)]

        assert rewrite(widen(BANNER_PAGE), registry, add_footer) == widen(BANNER_FOOTER_PAGE)


class TestRepeaterWriting:
    def test_repeater_into_null_component(self, registry):
        source = "export default function List() {\n  return null;\n}\n"
        tree = [
            BuiltInState("ul", "ul", {}),
            RepeaterState(
                "rep", "items",
                RepeatedComponent(ComponentStateKind.STANDARD, "Card", {"label": PropValue.literal("x")}, "card-meta"),
                parent_uuid="ul",
            ),
        ]
        output = write(source, "src/pages/list.tsx", tree, [], registry=registry)
        assert output == (
            'import Card from "../components/Card";\n'
            "\n"
            "export default function List() {\n"
            "  return (\n"
            "    <ul>\n"
            '      {items.map((item, index) => <Card key={index} label="x" />)}\n'
            "    </ul>\n"
            "  );\n"
            "}\n"
        )
        reparsed = parse(output, "src/pages/list.tsx", registry).component_tree
        assert shape(reparsed) == shape(tree)

    def test_changed_template_keeps_callback_head(self, registry):
        source = (
            'import Card from "../components/Card";\n\n'
            "export default function List() {\n"
            "  return (\n"
            "    <ul>\n"
            "      {rows.map((row, i) => <Card key={i} label=\"a\" />)}\n"
            "    </ul>\n"
            "  );\n"
            "}\n"
        )

        def relabel(tree):
            old = tree[1]
            template = RepeatedComponent(
                ComponentStateKind.STANDARD, "Card", {"label": PropValue.literal("b")}, "card-meta"
            )
            tree[1] = RepeaterState(old.uuid, "rows", template, parent_uuid=old.parent_uuid)
            return tree

        output = rewrite(source, registry, relabel)
        assert '{rows.map((row, i) => <Card key={i} label="b" />)}' in output


# ─── imports ─────────────────────────────────────────────────────────────────

class TestImports:
    def test_css_import_added_after_existing_imports(self, registry):
        output = rewrite(BANNER_PAGE, registry, css=["./index.css"])
        assert output.startswith('import Banner from "../components/Banner";\nimport "./index.css";\n\n')

    def test_stale_css_import_removed(self, registry):
        source = 'import "./old.css";\n' + BANNER_PAGE
        assert rewrite(source, registry, css=[]) == BANNER_PAGE

    def test_css_module_import_with_binding_kept_verbatim(self, registry):
        source = 'import styles from "./index.module.css";\n' + BANNER_PAGE
        assert rewrite(source, registry) == source
        assert rewrite(source, registry, css=[]) == BANNER_PAGE

    def test_module_import(self, registry):
        def add_panel(tree):
            return tree + [StandardState("p", "Panel", {}, "panel-meta", parent_uuid=tree[0].uuid)]

        output = rewrite(BANNER_PAGE, registry, add_panel)
        assert 'import Panel from "../modules/Panel";\n' in output

    def test_follows_single_quote_and_no_semicolon_style(self, registry):
        source = BANNER_PAGE.replace('import Banner from "../components/Banner";', "import Banner from '../components/Banner'")

        def add_footer(tree):
            return tree + [StandardState("new", "Footer", {}, "footer-meta", parent_uuid=tree[1].uuid)]

        output = rewrite(source, registry, add_footer)
        assert "import Footer from '../components/Footer'\n" in output

    def test_unrelated_imports_are_kept(self, registry):
        source = 'import React, { useState } from "react";\n' + BANNER_PAGE
        output = rewrite(source, registry, lambda tree: [])
        assert output.startswith('import React, { useState } from "react";\n')

    def test_unused_specifier_removed_from_shared_declaration(self, registry):
        source = BANNER_FOOTER_PAGE.replace(
            'import Banner from "../components/Banner";\nimport Footer from "../components/Footer";',
            'import { Banner, Footer } from "../components";',
        )

        def drop_footer(tree):
            return [s for s in tree if getattr(s, "component_name", None) != "Footer"]

        output = rewrite(source, registry, drop_footer)
        assert output.startswith('import { Banner } from "../components";\n')

    def test_stale_default_import_from_components_root_removed(self):
        registry = MetadataRegistry(components_root="src/components", modules_root="src/modules")
        registry.register("Banner", ComponentMetadata("src/components/Banner.tsx", "banner-meta"))
        source = (
            'import Old from "../components/Old";\n'
            'import { theme } from "../components/theme";\n'
            + BANNER_PAGE
        )
        output = rewrite(source, registry)
        assert "import Old" not in output
        assert output.startswith('import { theme } from "../components/theme";\n')

    def test_unknown_component_is_unresolved_import(self, registry):
        source = "export default function P() {\n  return null;\n}\n"
        with pytest.raises(WriteError) as exc:
            write(source, PAGE, [StandardState("m", "Mystery", {})], [], registry=registry)
        assert exc.value.kind == WriteErrorKind.UNRESOLVED_IMPORT

    def test_already_imported_tag_needs_no_metadata(self, registry):
        source = 'import Widget from "@/lib/Widget";\n\nexport default function P() {\n  return null;\n}\n'
        output = write(source, PAGE, [StandardState("w", "Widget", {})], [], registry=registry)
        assert output == (
            'import Widget from "@/lib/Widget";\n'
            "\n"
            "export default function P() {\n"
            "  return (\n"
            "    <Widget />\n"
            "  );\n"
            "}\n"
        )


# ─── tree validation ─────────────────────────────────────────────────────────

class TestTreeValidation:
    def test_multiple_roots_rejected(self, registry):
        source = "export default function P() {\n  return null;\n}\n"
        tree = [BuiltInState("a", "div", {}), BuiltInState("b", "div", {})]
        with pytest.raises(WriteError) as exc:
            write(source, PAGE, tree, [], registry=registry)
        assert exc.value.kind == WriteErrorKind.COMPONENT_TREE_INCONSISTENT

    def test_dangling_parent_rejected(self, registry):
        source = "export default function P() {\n  return null;\n}\n"
        with pytest.raises(WriteError):
            write(source, PAGE, [BuiltInState("a", "div", {}, parent_uuid="gone")], [], registry=registry)


# ─── props interface / initialProps ──────────────────────────────────────────

BANNER_COMPONENT = """\
export interface BannerProps {
  /** Headline text */
  title: string;
  size?: "sm" | "lg";
}

export const initialProps: BannerProps = {
  title: "Hello",
  size: "sm",
};

export default function Banner(props: BannerProps) {
  return <section className="banner" />;
}
"""

BANNER_FILE = "src/components/Banner.tsx"

CARD_COMPONENT = """\
export interface CardProps { title: string; onClick(): void }

export default function Card(props: CardProps) {
  return <button title={props.title} />;
}
"""

CARD_FILE = "src/components/Card.tsx"


def component_write(source, metadata):
    result = parse(source, metadata.filepath)
    return write(source, metadata.filepath, result.component_tree, result.css_imports, metadata)


class TestPropShape:
    def test_upsert_members(self):
        metadata = ComponentMetadata(BANNER_FILE, "banner-meta", prop_shape={
            "title": PropMetadata(PropValueType.STRING, doc="Main headline", required=True),
            "subtitle": PropMetadata(PropValueType.STRING, doc="Optional subtitle"),
        })
        output = component_write(BANNER_COMPONENT, metadata)
        assert output.startswith(
            "export interface BannerProps {\n"
            "  /** Main headline */\n"
            "  title: string;\n"
            "  /** Optional subtitle */\n"
            "  subtitle?: string;\n"
            "}\n"
        )

    def test_changed_type_rewrites_signature(self):
        metadata = ComponentMetadata(BANNER_FILE, "banner-meta", prop_shape={
            "title": PropMetadata(PropValueType.STRING, doc="Headline text", required=True),
            "size": PropMetadata(PropValueType.NUMBER),
        })
        output = component_write(BANNER_COMPONENT, metadata)
        assert "  size?: number;\n" in output
        assert "  /** Headline text */\n  title: string;\n" in output

    def test_same_shape_is_untouched(self):
        result = parse(BANNER_COMPONENT, BANNER_FILE)
        output = write(BANNER_COMPONENT, BANNER_FILE, result.component_tree, [], result.file_metadata)
        assert output == BANNER_COMPONENT

    def test_method_signature_survives_unchanged_write(self):
        source = CARD_COMPONENT
        result = parse(source, CARD_FILE)
        output = write(source, CARD_FILE, result.component_tree, [], result.file_metadata)
        assert output == source

    def test_method_signature_kept_when_shape_changes(self):
        metadata = ComponentMetadata(CARD_FILE, "card-meta", prop_shape={
            "title": PropMetadata(PropValueType.STRING, required=True),
            "subtitle": PropMetadata(PropValueType.STRING),
        })
        output = component_write(CARD_COMPONENT, metadata)
        assert output.startswith(
            "export interface CardProps {\n"
            "  title: string;\n"
            "  subtitle?: string;\n"
            "  onClick(): void;\n"
            "}\n"
        )


class TestInitialProps:
    def test_upsert_values(self):
        metadata = ComponentMetadata(BANNER_FILE, "banner-meta", initial_props={
            "title": PropValue.literal("Hi"),
            "count": PropValue.literal(3),
        })
        output = component_write(BANNER_COMPONENT, metadata)
        assert (
            "export const initialProps: BannerProps = {\n"
            '  title: "Hi",\n'
            "  count: 3,\n"
            "};\n"
        ) in output


HERO = """\
import React from "react";

export default function Hero() {
  return <h1 />;
}
"""


class TestMissingDeclarations:
    def test_inserted_before_component(self):
        metadata = ComponentMetadata(
            "src/components/Hero.tsx", "hero-meta",
            prop_shape={"heading": PropMetadata(PropValueType.STRING, required=True)},
            initial_props={"heading": PropValue.literal("Welcome")},
        )
        assert component_write(HERO, metadata) == (
            'import React from "react";\n'
            "\n"
            "export interface HeroProps {\n"
            "  heading: string;\n"
            "}\n"
            "\n"
            "export const initialProps: HeroProps = {\n"
            '  heading: "Welcome",\n'
            "};\n"
            "\n"
            "export default function Hero() {\n"
            "  return <h1 />;\n"
            "}\n"
        )

    def test_prop_ref_adds_props_parameter(self):
        metadata = ComponentMetadata(
            "src/components/Hero.tsx", "hero-meta",
            prop_shape={"heading": PropMetadata(PropValueType.STRING, required=True)},
        )
        tree = [BuiltInState("h", "h1", {"title": PropValue.prop_ref("heading")})]
        output = write(HERO, metadata.filepath, tree, [], metadata)
        assert "export default function Hero(props: HeroProps) {" in output
        assert "<h1 title={props.heading} />" in output
        reparsed = parse(output, metadata.filepath).component_tree
        assert reparsed[0].props == {"title": PropValue.prop_ref("heading")}

    def test_prop_ref_extends_destructured_parameter(self):
        source = HERO.replace("function Hero()", "function Hero({ heading })").replace("<h1 />", "<h1 title={heading} />")
        tree = [BuiltInState("h", "h1", {
            "title": PropValue.prop_ref("heading"),
            "id": PropValue.prop_ref("anchor"),
        })]
        output = write(source, "src/components/Hero.tsx", tree, [])
        assert "function Hero({ heading, anchor })" in output
        assert "<h1 title={heading} id={anchor} />" in output

    def test_prop_ref_goes_before_rest_element(self):
        source = HERO.replace("function Hero()", "function Hero({ heading, ...rest })").replace("<h1 />", "<h1 title={heading} />")
        tree = [BuiltInState("h", "h1", {
            "title": PropValue.prop_ref("heading"),
            "id": PropValue.prop_ref("anchor"),
        })]
        output = write(source, "src/components/Hero.tsx", tree, [])
        assert "function Hero({ heading, anchor, ...rest })" in output
        assert "<h1 title={heading} id={anchor} />" in output


def test_structural_paths_count_same_tag_siblings(registry):
    tree = parse(BANNER_PAGE, PAGE, registry).component_tree
    paths = structural_paths(tree)
    assert paths[tree[2].uuid][-1] == (("tag", "Banner"), 0)
    assert paths[tree[3].uuid][-1] == (("tag", "Banner"), 1)
