"""
Render pipeline: block parsing, separators, highlighting, copy, escaping.
"""
import pytest

from bmo.rendering import (
    COPY_SCHEME, RenderPipeline, copy_code_block, parse_blocks,
)

PY_REPLY = (
    "Here is a function:\n"
    "\n"
    "```python\n"
    "def add(a, b):\n"
    "    return a < b\n"
    "```\n"
    "\n"
    "Use it wisely."
)

STEPS_REPLY = (
    "1. **Install**\n"
    "   - run pip\n"
    "2. **Run**\n"
    "   - launch it\n"
    "3. Done"
)


@pytest.fixture
def pipeline():
    return RenderPipeline()


class TestParseBlocks:
    def test_paragraphs_split_on_blank_lines(self):
        blocks = parse_blocks("first line\nsame paragraph\n\nsecond")
        assert [b.kind for b in blocks] == ["paragraph", "paragraph"]
        assert blocks[0].text == "first line\nsame paragraph"

    def test_fenced_code_with_language(self):
        blocks = parse_blocks(PY_REPLY)
        assert [b.kind for b in blocks] == ["paragraph", "code", "paragraph"]
        code = blocks[1]
        assert code.language == "python"
        assert code.text == "def add(a, b):\n    return a < b"

    def test_fence_info_string_keeps_first_word(self):
        blocks = parse_blocks('```js title="x.js"\nlet a = 1;\n```')
        assert blocks[0].language == "js"

    def test_unterminated_fence_runs_to_end(self):
        blocks = parse_blocks("```\nno end\nstill code")
        assert len(blocks) == 1
        assert blocks[0].kind == "code"
        assert blocks[0].text == "no end\nstill code"

    def test_lists_headings_rules(self):
        blocks = parse_blocks("# Title\n- a\n- b\n1. one\n2. two\n---\ntext")
        kinds = [(b.kind, b.ordered) for b in blocks]
        assert kinds == [("heading", False), ("list", False), ("list", True),
                         ("rule", False), ("paragraph", False)]
        assert blocks[0].level == 1
        assert [item.text for item in blocks[1].items] == ["a", "b"]
        assert [item.text for item in blocks[2].items] == ["one", "two"]

    def test_nested_bullets_stay_inside_numbered_steps(self):
        blocks = parse_blocks(STEPS_REPLY)
        assert len(blocks) == 1
        steps = blocks[0]
        assert steps.ordered
        assert [item.text for item in steps.items] == ["**Install**", "**Run**", "Done"]
        install, run, done = steps.items
        assert [item.text for item in install.children[0].items] == ["run pip"]
        assert not install.children[0].ordered
        assert [item.text for item in run.children[0].items] == ["launch it"]
        assert done.children == []

    def test_blank_lines_between_items_keep_one_list(self):
        blocks = parse_blocks("1. one\n\n2. two\n\nafter")
        assert [b.kind for b in blocks] == ["list", "paragraph"]
        assert len(blocks[0].items) == 2

    def test_indented_continuation_joins_item(self):
        blocks = parse_blocks("- first\n  more of first\n- second")
        assert [item.text for item in blocks[0].items] == ["first\nmore of first", "second"]


class TestRender:
    def test_separator_between_adjacent_paragraphs(self, pipeline):
        html = pipeline.render("one\n\ntwo").html
        assert html == "<p>one</p>\n<br>\n<p>two</p>"

    def test_no_separator_between_heading_and_paragraph(self, pipeline):
        html = pipeline.render("# Head\ntext").html
        assert "<br>" not in html

    def test_code_block_is_highlighted_and_plain_text_recoverable(self, pipeline):
        rendered = pipeline.render(PY_REPLY)
        assert len(rendered.code_blocks) == 1
        block = rendered.code_blocks[0]
        assert block.highlighted
        assert block.language == "python"
        assert block.plain_text == "def add(a, b):\n    return a < b"
        assert "<span" in block.html
        assert f'href="{COPY_SCHEME}:0"' in block.html
        # Highlighted markup escapes the comparison operator
        assert "&lt;" in block.html
        assert block.html in rendered.html

    def test_unknown_language_passes_through_escaped(self, pipeline):
        rendered = pipeline.render("```nosuchlang\nx <b>y</b>\n```")
        block = rendered.code_blocks[0]
        assert not block.highlighted
        assert "x &lt;b&gt;y&lt;/b&gt;" in block.html
        assert block.plain_text == "x <b>y</b>"

    def test_untagged_block_is_plain(self, pipeline):
        block = pipeline.render("```\nplain\n```").code_blocks[0]
        assert not block.highlighted
        assert block.language == ""

    def test_code_blocks_are_numbered_in_order(self, pipeline):
        rendered = pipeline.render("```python\na = 1\n```\ntext\n```bash\nls\n```")
        assert [b.index for b in rendered.code_blocks] == [0, 1]
        assert rendered.code_blocks[1].plain_text == "ls"

    def test_inline_markup(self, pipeline):
        html = pipeline.render("**bold** and *it* and `x*y*z`").html
        assert "<b>bold</b>" in html
        assert "<i>it</i>" in html
        assert ">x*y*z</code>" in html

    def test_numbered_steps_render_as_one_list(self, pipeline):
        html = pipeline.render(STEPS_REPLY).html
        assert html == (
            "<ol>"
            "<li><b>Install</b><ul><li>run pip</li></ul></li>"
            "<li><b>Run</b><ul><li>launch it</li></ul></li>"
            "<li>Done</li>"
            "</ol>"
        )

    def test_ordered_list_keeps_first_number(self, pipeline):
        html = pipeline.render("3. third\n4. fourth").html
        assert html.startswith('<ol start="3">')
        assert html.count("<li>") == 2

    @pytest.mark.parametrize("text", ["2*3 and 4*5", "a * b * c", "x*y"])
    def test_stray_stars_stay_literal(self, pipeline, text):
        html = pipeline.render(text).html
        assert "<i>" not in html
        assert text in html

    def test_italic_next_to_punctuation(self, pipeline):
        assert "(<i>note</i>)" in pipeline.render("(*note*)").html


class TestSafety:
    def test_raw_html_is_escaped(self, pipeline):
        html = pipeline.render('<script>alert("x")</script>').html
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_http_links_are_kept(self, pipeline):
        html = pipeline.render("[docs](https://example.com/a?b=1&c=2)").html
        assert '<a href="https://example.com/a?b=1&amp;c=2">docs</a>' in html

    def test_javascript_links_are_dropped(self, pipeline):
        html = pipeline.render("[click](javascript:alert(1))").html
        assert "<a " not in html
        assert "click" in html

    def test_attribute_breakout_is_escaped(self, pipeline):
        html = pipeline.render('[x](https://e.com/"onmouseover="evil)').html
        assert '"onmouseover="' not in html


class TestCopy:
    def test_copy_yields_original_text(self, pipeline, clipboard):
        rendered = pipeline.render(PY_REPLY)
        assert copy_code_block(rendered, f"{COPY_SCHEME}:0", clipboard)
        assert clipboard.text == "def add(a, b):\n    return a < b"

    def test_unknown_anchor(self, pipeline, clipboard):
        rendered = pipeline.render(PY_REPLY)
        assert not copy_code_block(rendered, f"{COPY_SCHEME}:7", clipboard)
        assert not copy_code_block(rendered, "https://example.com", clipboard)
        assert clipboard.text is None

    def test_clipboard_failure_is_logged_not_raised(self, pipeline, failing_clipboard, caplog):
        rendered = pipeline.render(PY_REPLY)
        assert not copy_code_block(rendered, f"{COPY_SCHEME}:0",
                                   failing_clipboard)
        assert "failed to copy code" in caplog.text

    def test_missing_clipboard(self, pipeline):
        rendered = pipeline.render(PY_REPLY)
        assert not copy_code_block(rendered, f"{COPY_SCHEME}:0", None)
