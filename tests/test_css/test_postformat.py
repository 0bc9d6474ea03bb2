"""Tests for the post-formatting passes."""

from foldcss.core.config import DEFAULT_PROPERTIES_TO_REMOVE
from foldcss.css.postformat import (
    post_format,
    remove_embedded_base64,
    remove_unused_font_faces,
    remove_unused_keyframes,
    remove_unwanted_properties,
)
from foldcss.css.stylesheet import parse_stylesheet, serialize


def nodes_of(css):
    return parse_stylesheet(css).nodes


def names_and_preludes(nodes):
    return [(node.name, node.prelude) for node in nodes if hasattr(node, "name")]


class TestUnwantedProperties:
    def test_default_patterns(self):
        nodes = nodes_of(
            """
            a {
                cursor: pointer;
                pointer-events: none;
                transition: all 1s;
                -webkit-transition: opacity 0.5s;
                transition-delay: 1s;
                -webkit-tap-highlight-color: transparent;
                user-select: none;
                -moz-user-select: none;
            }
            """
        )
        assert remove_unwanted_properties(nodes, DEFAULT_PROPERTIES_TO_REMOVE) == []

    def test_other_declarations_survive(self):
        nodes = remove_unwanted_properties(nodes_of("a { cursor: pointer; color: red; }"), ["cursor"])
        assert [d.property for d in nodes[0].declarations] == ["color"]

    def test_patterns_reach_into_media_blocks(self):
        nodes = remove_unwanted_properties(nodes_of("@media screen { a { cursor: pointer; } }"), ["cursor"])
        assert nodes == []

    def test_no_patterns_is_a_no_op(self):
        nodes = nodes_of("a { cursor: pointer; }")
        assert remove_unwanted_properties(nodes, []) == nodes


class TestEmbeddedBase64:
    def css_with_payload(self, length):
        return "a { background: url(data:image/png;base64,%s) no-repeat; color: red; }" % ("A" * length)

    def test_payload_at_the_limit_is_kept(self):
        nodes = remove_embedded_base64(nodes_of(self.css_with_payload(250)), 250)
        assert [d.property for d in nodes[0].declarations] == ["background", "color"]

    def test_payload_over_the_limit_is_removed(self):
        nodes = remove_embedded_base64(nodes_of(self.css_with_payload(251)), 250)
        assert [d.property for d in nodes[0].declarations] == ["color"]

    def test_font_face_sources_are_checked(self):
        css = '@font-face { font-family: Foo; src: url("data:font/woff2;charset=utf-8;base64,%s"); }' % ("B" * 20)
        nodes = remove_embedded_base64(nodes_of(css), 10)
        assert [d.property for d in nodes[0].body] == ["font-family"]

    def test_plain_urls_are_kept(self):
        nodes = remove_embedded_base64(nodes_of("a { background: url(/img/hero.png); }"), 0)
        assert len(nodes) == 1


class TestUnusedFontFaces:
    def test_unreferenced_font_face_is_removed(self):
        nodes = remove_unused_font_faces(
            nodes_of(
                """
                @font-face { font-family: "Used Font"; src: url(a.woff); }
                @font-face { font-family: Unused; src: url(b.woff); }
                p { font-family: 'used  font', sans-serif; }
                """
            )
        )
        assert [node.body[0].value for node in nodes if hasattr(node, "name")] == ['"Used Font"']

    def test_font_shorthand_counts_as_reference(self):
        nodes = remove_unused_font_faces(
            nodes_of(
                """
                @font-face { font-family: Georgia; src: url(g.woff); }
                @font-face { font-family: Serif Display; src: url(s.woff); }
                p { font: italic 700 12px/30px Georgia, serif; }
                """
            )
        )
        assert [node.body[0].value for node in nodes if hasattr(node, "name")] == ["Georgia"]

    def test_references_inside_media_count(self):
        nodes = remove_unused_font_faces(
            nodes_of("@font-face { font-family: Foo; } @media screen { p { font-family: Foo; } }")
        )
        assert [node.name for node in nodes] == ["font-face", "media"]

    def test_font_face_referencing_itself_is_removed(self):
        assert remove_unused_font_faces(nodes_of("@font-face { font-family: Foo; }")) == []


class TestUnusedKeyframes:
    def test_unreferenced_keyframes_are_removed(self):
        nodes = remove_unused_keyframes(
            nodes_of(
                """
                @keyframes fade { from { opacity: 0; } to { opacity: 1; } }
                @-webkit-keyframes fade { from { opacity: 0; } to { opacity: 1; } }
                @keyframes spin { to { transform: rotate(360deg); } }
                .a { animation: fade 1s ease-in infinite; }
                """
            )
        )
        assert names_and_preludes(nodes) == [("keyframes", "fade"), ("-webkit-keyframes", "fade")]

    def test_animation_name_and_prefixed_properties(self):
        nodes = remove_unused_keyframes(
            nodes_of(
                """
                @keyframes one { to { opacity: 1; } }
                @keyframes two { to { opacity: 1; } }
                .a { animation-name: one; }
                .b { -webkit-animation: two 2s; }
                """
            )
        )
        assert names_and_preludes(nodes) == [("keyframes", "one"), ("keyframes", "two")]

    def test_references_inside_keyframes_do_not_count(self):
        nodes = remove_unused_keyframes(
            nodes_of(
                """
                @keyframes outer { to { animation-name: inner; } }
                @keyframes inner { to { opacity: 1; } }
                .a { animation: outer 1s; }
                """
            )
        )
        assert names_and_preludes(nodes) == [("keyframes", "outer")]


class TestPostFormat:
    source = """
    @font-face { font-family: Brand; src: url(brand.woff2); }
    @font-face { font-family: Icons; src: url(icons.woff2); }
    @keyframes pulse { to { opacity: 0.5; } }
    .hero { font-family: Brand; transition: opacity 1s; animation: pulse 2s; }
    .icon { cursor: pointer; font-family: Icons; }
    """

    def test_font_face_loses_its_only_reference(self):
        document = post_format(parse_stylesheet(self.source), ["cursor", "^font-family$"], 1000)
        assert [getattr(node, "name", None) for node in document.nodes] == ["keyframes", None]

    def test_removing_animation_drops_keyframes(self):
        document = post_format(parse_stylesheet(self.source), ["animation"], 1000)
        names = [getattr(node, "name", None) for node in document.nodes]
        assert names == ["font-face", "font-face", None, None]

    def test_is_idempotent(self):
        once = serialize(post_format(parse_stylesheet(self.source), DEFAULT_PROPERTIES_TO_REMOVE, 1000))
        twice = serialize(post_format(parse_stylesheet(once), DEFAULT_PROPERTIES_TO_REMOVE, 1000))
        assert once == twice
        assert "transition" not in once
        assert "cursor" not in once
