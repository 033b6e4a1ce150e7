"""Minimal Markdown to HTML renderer for model-generated reports.

Output is assigned to a sandboxed frame, so every literal text run is escaped
and link targets are limited to http, https and mailto. Supported syntax:
``#``/``##``/``###`` headings, ``-``/``*`` bullets, ``N.`` ordered items,
paragraphs, ``[label](href)`` links, inline code, bold and italic.
"""

import re

_ESCAPES = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#39;",
    }
)

SAFE_SCHEMES = ("http", "https", "mailto")

_SCHEME = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):")
_CODE_SPAN = re.compile(r"`([^`]+)`")
_CODE_TOKEN = re.compile(r"\x00(\d+)\x00")
_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_BOLD = re.compile(r"(\*\*|__)(.+?)\1")
_ITALIC = re.compile(r"(\*|_)([^*_]+?)\1")
_HEADING = re.compile(r"^(#{1,3}) (.*)$")
_BULLET = re.compile(r"^[-*] (.*)$")
_ORDERED = re.compile(r"^\d+\.\s+(.*)$")

LINK_ATTRIBUTES = 'target="_blank" rel="noopener noreferrer"'


def escape_html(text: str) -> str:
    """Replace ``& < > " '`` with HTML entities."""
    return text.translate(_ESCAPES)


def sanitize_href(url: str) -> str:
    """Return the trimmed URL if its scheme is http, https or mailto, else ``#``."""
    candidate = url.strip()
    match = _SCHEME.match(candidate)
    if match and match.group(1).lower() in SAFE_SCHEMES:
        return candidate
    return "#"


def _emphasize(html: str) -> str:
    html = _BOLD.sub(r"<strong>\2</strong>", html)
    return _ITALIC.sub(r"<em>\2</em>", html)


def render_inline(text: str) -> str:
    """Render inline Markdown for one block of text."""
    if not text:
        return ""

    # NUL delimits code placeholders and never appears in rendered text.
    text = text.replace("\x00", "")
    snippets: list[str] = []
    sources: list[str] = []

    def stash(match: re.Match[str]) -> str:
        snippets.append(f"<code>{escape_html(match.group(1))}</code>")
        sources.append(match.group(0))
        return f"\x00{len(snippets) - 1}\x00"

    text = _CODE_SPAN.sub(stash, text)

    parts = []
    last = 0
    for match in _LINK.finditer(text):
        parts.append(_emphasize(escape_html(text[last : match.start()])))
        label, href = match.groups()
        # Code spans inside a URL are part of the URL, not markup.
        href = _CODE_TOKEN.sub(lambda m: sources[int(m.group(1))], href)
        parts.append(
            f'<a href="{escape_html(sanitize_href(href))}" {LINK_ATTRIBUTES}>'
            f"{_emphasize(escape_html(label))}</a>"
        )
        last = match.end()
    parts.append(_emphasize(escape_html(text[last:])))

    return _CODE_TOKEN.sub(lambda m: snippets[int(m.group(1))], "".join(parts))


def markdown_to_html(markdown: str) -> str:
    """Convert a Markdown document to escaped HTML.

    Stateless and deterministic: identical input yields identical output.
    """
    out: list[str] = []
    paragraph: list[str] = []
    list_type: str | None = None

    def flush_paragraph() -> None:
        if paragraph:
            out.append(f"<p>{render_inline(' '.join(paragraph))}</p>")
            paragraph.clear()

    def close_list() -> None:
        nonlocal list_type
        if list_type:
            out.append(f"</{list_type}>")
            list_type = None

    def add_item(kind: str, content: str) -> None:
        nonlocal list_type
        flush_paragraph()
        if list_type != kind:
            close_list()
            out.append(f"<{kind}>")
            list_type = kind
        out.append(f"<li>{render_inline(content.strip())}</li>")

    for raw_line in re.split(r"\r?\n", markdown or ""):
        line = raw_line.strip()
        if not line:
            flush_paragraph()
            close_list()
            continue

        heading = _HEADING.match(line)
        if heading:
            flush_paragraph()
            close_list()
            level = len(heading.group(1))
            out.append(f"<h{level}>{render_inline(heading.group(2))}</h{level}>")
            continue

        bullet = _BULLET.match(line)
        if bullet:
            add_item("ul", bullet.group(1))
            continue

        ordered = _ORDERED.match(line)
        if ordered:
            add_item("ol", ordered.group(1))
            continue

        close_list()
        paragraph.append(line)

    flush_paragraph()
    close_list()
    return "\n".join(out)


def markdown_to_text(markdown: str) -> str:
    """Plain-text rendition: markup removed, links shown as ``label (url)``."""
    lines = []
    for raw_line in re.split(r"\r?\n", markdown or ""):
        line = raw_line.rstrip()
        heading = _HEADING.match(line.strip())
        if heading:
            line = heading.group(2).upper()
        urls: list[str] = []

        def stash_link(match: re.Match[str]) -> str:
            urls.append(match.group(2).strip())
            return f"{match.group(1)} (\x00{len(urls) - 1}\x00)"

        line = _LINK.sub(stash_link, line.replace("\x00", ""))
        line = _CODE_SPAN.sub(r"\1", line)
        line = _BOLD.sub(r"\2", line)
        line = _ITALIC.sub(r"\2", line)
        lines.append(_CODE_TOKEN.sub(lambda m: urls[int(m.group(1))], line))
    return "\n".join(lines).strip()
