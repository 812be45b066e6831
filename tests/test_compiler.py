"""Tests for template scanning and code generation."""

import ast

import pytest

from scriptpage.compiler import Compiler, compile_source, escape_literal, parse_segments
from scriptpage.config import DelimiterConfig
from scriptpage.store import MemoryArtifactStore
from scriptpage.types import Segment, SegmentKind


def literal(text):
    return Segment(SegmentKind.LITERAL, text)


def load_module_function(code, name="render"):
    store = MemoryArtifactStore()
    render = store.load_runnable(store.persist("test", code))
    return render if name == "render" else render.__globals__[name]


class TestParseSegments:
    """Tests for the marker scanner."""

    def test_literal_only(self):
        assert parse_segments("abcd") == [literal("abcd")]

    def test_empty_source(self):
        assert parse_segments("") == []

    def test_directive_kinds(self):
        segments = parse_segments("a<?=x?>b<?- y ?><? z = 1 ?>")
        assert segments == [
            literal("a"),
            Segment(SegmentKind.ESCAPED_EXPRESSION, "x"),
            literal("b"),
            Segment(SegmentKind.RAW_EXPRESSION, " y "),
            Segment(SegmentKind.SCRIPTLET, " z = 1 "),
        ]

    def test_empty_literals_between_directives_are_skipped(self):
        segments = parse_segments("<?=a?><?=b?>")
        assert [s.kind for s in segments] == [SegmentKind.ESCAPED_EXPRESSION] * 2

    def test_sigil_must_be_first_character(self):
        assert parse_segments("<? =x?>") == [Segment(SegmentKind.SCRIPTLET, " =x")]

    def test_unterminated_directive_drops_rest(self):
        assert parse_segments("abc<?=x def") == [literal("abc")]

    def test_only_unterminated_directive(self):
        assert parse_segments("<?=x") == []

    def test_content_after_unterminated_directive_is_dropped(self):
        segments = parse_segments("a<?=x?>b<?oops c ?")
        assert segments == [literal("a"), Segment(SegmentKind.ESCAPED_EXPRESSION, "x"), literal("b")]

    def test_stray_close_marker_is_literal(self):
        assert parse_segments("a?>b") == [literal("a?>b")]

    def test_custom_markers(self):
        delimiters = DelimiterConfig(open_marker="{%", close_marker="%}")
        segments = parse_segments("Hi {%=name%}<? not a marker ?>", delimiters)
        assert segments == [
            literal("Hi "),
            Segment(SegmentKind.ESCAPED_EXPRESSION, "name"),
            literal("<? not a marker ?>"),
        ]


class TestEscapeLiteral:
    """Tests for escaping literal text into generated string literals."""

    def test_special_characters(self):
        assert escape_literal("a\\b'c\td\re\nf") == "a\\\\b\\'c\\td\\re\\nf"

    def test_double_quote_untouched(self):
        assert escape_literal('say "hi"') == 'say "hi"'

    @pytest.mark.parametrize("text", ["\\", "'", "\t", "\r\n", "line1\nline2\\n", "nul\0byte"])
    def test_result_is_a_valid_literal_body(self, text):
        assert ast.literal_eval("'" + escape_literal(text) + "'") == text


class TestGeneratedCode:
    """Tests for the shape of the generated module."""

    def test_defines_render_and_escape(self):
        code = compile_source("a<?=x?>")
        assert "def render(arg=None):" in code
        assert "_buf.append('a')" in code
        assert "_buf.append(_escape(x))" in code
        assert "def _escape(value):" in code
        assert "return ''.join(_buf)" in code

    def test_context_param_name(self):
        code = compile_source("x", DelimiterConfig(context_param_name="ctx"))
        assert "def render(ctx=None):" in code

    def test_no_empty_literal_appends(self):
        assert "_buf.append('')" not in compile_source("<?=a?><?=b?>")

    def test_raw_expression_is_not_escaped(self):
        assert "_buf.append(str(value))" in compile_source("<?-value?>")

    def test_empty_block_gets_pass(self):
        code = compile_source("<?if arg:?><?end?>")
        assert "    if arg:\n        pass\n" in code

    def test_comment_only_block_gets_pass(self):
        code = compile_source("<?if arg:?><? # nothing yet: ?><?end?>")
        assert "        # nothing yet:\n        pass\n" in code

    def test_nested_opener_indents_under_its_statement(self):
        code = compile_source("<?for n in arg:\n    if n:?><?=n?><?end?>")
        assert "    for n in arg:\n        if n:\n            _buf.append(_escape(n))\n" in code
        ast.parse(code)

    def test_origin_in_header(self):
        code = Compiler().compile("x", origin="/tmp/page.npg")
        assert code.startswith("# Generated by scriptpage from /tmp/page.npg.")

    def test_generated_code_is_valid_python(self):
        code = compile_source("<ul><?for i in arg:?><li><?=i?></li><?end?></ul>")
        ast.parse(code)


class TestEscapeRoutine:
    """Tests for the _escape helper placed in generated modules."""

    @pytest.fixture
    def escape(self):
        return load_module_function(compile_source(""), name="_escape")

    def test_none(self, escape):
        assert escape(None) == ""

    def test_empty_string(self, escape):
        assert escape("") == ""

    def test_zero(self, escape):
        assert escape(0) == "0"

    def test_plain_text_returned_unchanged(self, escape):
        text = "nothing special here"
        assert escape(text) is text

    def test_special_characters(self, escape):
        assert escape('&<>"') == "&amp;&lt;&gt;&quot;"

    def test_single_pass(self, escape):
        assert escape("&lt;") == "&amp;lt;"

    def test_single_quote_untouched(self, escape):
        assert escape("it's") == "it's"

    def test_non_string_is_converted_first(self, escape):
        class Tag:
            def __str__(self):
                return "<b>"

        assert escape(Tag()) == "&lt;b&gt;"
        assert escape(3.5) == "3.5"
