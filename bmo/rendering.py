"""
Reply rendering — raw model text to safe, highlighted, copy-enabled HTML.

The pipeline is deliberately small: it understands headings, paragraphs,
lists, horizontal rules and fenced code blocks, plus inline code, emphasis
and links.  It is not a CommonMark parser, but it covers what chat models
actually emit.

Remote text is untrusted.  Every piece of text is HTML-escaped *before* any
markup is interpreted, and only ``http``, ``https`` and ``mailto`` links are
turned into anchors, so a reply cannot inject active markup into the view.

Fenced code is highlighted with Pygments using inline styles (QTextBrowser
has no stylesheet classes for it).  The plain text of each block is kept on
the ``CodeBlock`` so the copy action always yields what the model wrote, not
the highlighted markup.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from bmo.constants import logger

COPY_SCHEME = "copy-code"
COPIED_NOTICE = "Copied to your clipboard"

_FENCE = "```"
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")
_UL_RE = re.compile(r"^[-*+]\s+")
_OL_RE = re.compile(r"^\d+[.)]\s+")
_RULE_RE = re.compile(r"^(---|\*\*\*|___)\s*$")
_INLINE_CODE_RE = re.compile(r"`([^`]+)`")
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
# Italic stars hug their text and never touch a word character (2*3 stays literal)
_ITALIC_RE = re.compile(r"(?<![\w*])\*(?=[^\s*])(.+?)(?<=[^\s*])\*(?![\w*])")
_SAFE_LINK_SCHEMES = ("http", "https", "mailto")

_CODE_FONT = "Menlo, Consolas, 'DejaVu Sans Mono', monospace"
_PRE_STYLE = (
    "background-color: rgba(128,128,128,0.12); border-radius: 4px; "
    f"padding: 8px; font-family: {_CODE_FONT}; font-size: 12px; "
    "white-space: pre-wrap;"
)
_INLINE_CODE_STYLE = (
    "background-color: rgba(128,128,128,0.15); border-radius: 3px; "
    f"padding: 1px 4px; font-family: {_CODE_FONT}; font-size: 12px;"
)


# ---------------------------------------------------------------------------
# Block structure
# ---------------------------------------------------------------------------

@dataclass
class ListItem:
    """One list entry; ``children`` holds lists nested under it."""
    text: str
    children: List[Block] = field(default_factory=list)


@dataclass
class Block:
    """One block of parsed reply text."""
    kind: str                      # paragraph | heading | list | rule | code
    text: str = ""
    level: int = 0                 # heading level
    ordered: bool = False          # list kind
    start: int = 1                 # number of the first ordered item
    items: List[ListItem] = field(default_factory=list)
    language: str = ""             # code fence tag, as written

    @property
    def paragraph_like(self) -> bool:
        return self.kind == "paragraph"


def _is_list_item(line: str) -> bool:
    s = line.strip()
    return bool(_UL_RE.match(s) or _OL_RE.match(s))


def _indent(line: str) -> int:
    expanded = line.expandtabs(4)
    return len(expanded) - len(expanded.lstrip(" "))


def _fence_language(info: str) -> str:
    """First word of a fence info string (```` ```python title="x" ````)."""
    parts = info.strip().split()
    return parts[0] if parts else ""


def _parse_list(lines: List[str], i: int) -> Tuple[Block, int]:
    """Parse the list starting at ``lines[i]``; return it and the next index.

    Items more indented than the first one open a nested list under the
    previous item; other indented lines continue that item's text.  A blank
    line ends the list unless the next line carries on with it.
    """
    first = lines[i].strip()
    base = _indent(lines[i])
    ordered = bool(_OL_RE.match(first))
    marker = _OL_RE if ordered else _UL_RE
    start = int(re.match(r"\d+", first).group()) if ordered else 1
    items: List[ListItem] = []

    while i < len(lines):
        line = lines[i]
        stripped = line.strip()
        if not stripped:
            j = i + 1
            while j < len(lines) and not lines[j].strip():
                j += 1
            if j < len(lines) and (
                    _indent(lines[j]) > base
                    or (_indent(lines[j]) == base
                        and bool(marker.match(lines[j].strip())))):
                i = j
                continue
            break

        indent = _indent(line)
        if indent < base or stripped.startswith(_FENCE):
            break
        if indent == base:
            if not marker.match(stripped):
                break
            items.append(ListItem(marker.sub("", stripped, count=1)))
            i += 1
        elif _is_list_item(stripped):
            nested, i = _parse_list(lines, i)
            items[-1].children.append(nested)
        else:
            items[-1].text += "\n" + stripped
            i += 1

    return Block("list", ordered=ordered, start=start, items=items), i


def parse_blocks(text: str) -> List[Block]:
    """Split reply text into blocks.

    An unterminated fence runs to the end of the text.
    """
    blocks: List[Block] = []
    lines = text.replace("\r\n", "\n").split("\n")
    paragraph: List[str] = []
    i = 0

    def flush_paragraph():
        if paragraph:
            blocks.append(Block("paragraph", text="\n".join(paragraph)))
            paragraph.clear()

    while i < len(lines):
        line = lines[i]
        stripped = line.strip()

        if stripped.startswith(_FENCE):
            flush_paragraph()
            language = _fence_language(stripped[len(_FENCE):])
            code_lines: List[str] = []
            i += 1
            while i < len(lines) and not lines[i].strip().startswith(_FENCE):
                code_lines.append(lines[i])
                i += 1
            i += 1  # skip closing fence
            blocks.append(Block("code", text="\n".join(code_lines),
                                language=language))
            continue

        if not stripped:
            flush_paragraph()
            i += 1
            continue

        heading = _HEADING_RE.match(stripped)
        if heading:
            flush_paragraph()
            blocks.append(Block("heading", text=heading.group(2).strip(),
                                level=len(heading.group(1))))
        elif _RULE_RE.match(stripped):
            flush_paragraph()
            blocks.append(Block("rule"))
        elif _is_list_item(stripped):
            flush_paragraph()
            block, i = _parse_list(lines, i)
            blocks.append(block)
            continue
        else:
            paragraph.append(stripped)

        i += 1

    flush_paragraph()
    return blocks


# ---------------------------------------------------------------------------
# Inline markup
# ---------------------------------------------------------------------------

def _escape_html(text: str) -> str:
    return (text
            .replace("&", "&amp;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
            .replace('"', "&quot;")
            .replace("'", "&#x27;"))


def _link(match: re.Match) -> str:
    label, url = match.group(1), match.group(2)
    scheme = url.split(":", 1)[0].lower() if ":" in url else ""
    if scheme not in _SAFE_LINK_SCHEMES:
        return label
    return f'<a href="{url}">{label}</a>'


def _emphasis(escaped: str) -> str:
    escaped = re.sub(r"\*\*\*(.+?)\*\*\*", r"<b><i>\1</i></b>", escaped)
    escaped = re.sub(r"\*\*(.+?)\*\*", r"<b>\1</b>", escaped)
    escaped = _ITALIC_RE.sub(r"<i>\1</i>", escaped)
    return _LINK_RE.sub(_link, escaped)


def _inline(text: str) -> str:
    """Escape *text*, then apply inline code, emphasis and links.

    Inline code spans are cut out first so emphasis markers inside them stay
    literal.
    """
    parts = _INLINE_CODE_RE.split(text)
    out: List[str] = []
    for idx, part in enumerate(parts):
        if idx % 2:
            out.append(f'<code style="{_INLINE_CODE_STYLE}">'
                       f'{_escape_html(part)}</code>')
        else:
            out.append(_emphasis(_escape_html(part)))
    return "".join(out)


# ---------------------------------------------------------------------------
# Code highlighting
# ---------------------------------------------------------------------------

def resolve_lexer(language: str):
    """Pygments lexer for a fence tag, or None when the tag is unknown."""
    if not language:
        return None
    try:
        return get_lexer_by_name(language.lower())
    except ClassNotFound:
        logger.debug(f"Render: no lexer for language {language!r}")
        return None


def highlight_code(code: str, language: str, style: str = "default",
                   lexer=None) -> str:
    """Highlighted HTML for *code*; unknown languages pass through escaped."""
    if lexer is None:
        lexer = resolve_lexer(language)
    if lexer is None:
        return _escape_html(code)
    formatter = HtmlFormatter(style=style, noclasses=True, nowrap=True)
    return highlight(code, lexer, formatter).rstrip("\n")


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

@dataclass
class CodeBlock:
    """A rendered fenced block; ``plain_text`` is what the copy action yields."""
    index: int
    language: str
    plain_text: str
    html: str
    highlighted: bool = False


@dataclass
class RenderedContent:
    html: str
    code_blocks: List[CodeBlock] = field(default_factory=list)

    def code_block_for_anchor(self, anchor: str) -> Optional[CodeBlock]:
        """Look up the block a ``copy-code:<n>`` anchor points at."""
        scheme, _, index = anchor.partition(":")
        if scheme != COPY_SCHEME or not index.isdigit():
            return None
        idx = int(index)
        if idx >= len(self.code_blocks):
            return None
        return self.code_blocks[idx]


def copy_code_block(rendered: RenderedContent, anchor: str, clipboard) -> bool:
    """Copy the plain text of the block behind *anchor* to *clipboard*.

    Returns True on success.  Failures are logged and reported as False; a
    broken clipboard never takes the view down.
    """
    block = rendered.code_block_for_anchor(anchor)
    if block is None:
        logger.warning(f"Render: no code block for anchor {anchor!r}")
        return False
    if clipboard is None:
        logger.error("Render: failed to copy code: clipboard unavailable")
        return False
    try:
        clipboard.setText(block.plain_text)
    except RuntimeError as e:
        logger.error(f"Render: failed to copy code: {e}")
        return False
    return True


class RenderPipeline:
    """Turns raw reply text into ``RenderedContent``."""

    def __init__(self, style: str = "default"):
        self.style = style

    def render(self, text: str) -> RenderedContent:
        blocks = parse_blocks(text)
        html_parts: List[str] = []
        code_blocks: List[CodeBlock] = []
        previous: Optional[Block] = None

        for block in blocks:
            # Adjacent paragraphs run together in QTextBrowser otherwise
            if previous is not None and previous.paragraph_like and block.paragraph_like:
                html_parts.append("<br>")

            if block.kind == "code":
                code = self._render_code(block, len(code_blocks))
                code_blocks.append(code)
                html_parts.append(code.html)
            else:
                html_parts.append(self._render_block(block))
            previous = block

        return RenderedContent(html="\n".join(html_parts), code_blocks=code_blocks)

    def _render_block(self, block: Block) -> str:
        if block.kind == "heading":
            return f"<h{block.level}>{_inline(block.text)}</h{block.level}>"
        if block.kind == "rule":
            return "<hr>"
        if block.kind == "list":
            return self._render_list(block)
        lines = [_inline(line) for line in block.text.split("\n")]
        return f"<p>{'<br>'.join(lines)}</p>"

    def _render_list(self, block: Block) -> str:
        tag = "ol" if block.ordered else "ul"
        start = f' start="{block.start}"' if block.ordered and block.start != 1 else ""
        items = []
        for item in block.items:
            text = "<br>".join(_inline(line) for line in item.text.split("\n"))
            nested = "".join(self._render_list(child) for child in item.children)
            items.append(f"<li>{text}{nested}</li>")
        return f"<{tag}{start}>{''.join(items)}</{tag}>"

    def _render_code(self, block: Block, index: int) -> CodeBlock:
        lexer = resolve_lexer(block.language)
        body = (highlight_code(block.text, block.language, self.style, lexer)
                if lexer is not None else _escape_html(block.text))
        label = _escape_html(block.language) if block.language else ""
        header = (
            '<table width="100%" cellspacing="0" cellpadding="0"><tr>'
            f'<td style="font-size: 11px; color: gray;">{label}</td>'
            f'<td align="right" style="font-size: 11px;">'
            f'<a href="{COPY_SCHEME}:{index}">copy</a></td>'
            '</tr></table>'
        )
        html = f'{header}<pre style="{_PRE_STYLE}">{body}</pre>'
        return CodeBlock(index=index, language=block.language,
                         plain_text=block.text, html=html,
                         highlighted=lexer is not None)
