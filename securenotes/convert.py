"""Conversion between Markdown and the HTML stored in note content."""

import re

import markdown
from bs4 import BeautifulSoup, NavigableString

_INLINE_RENAMES = {"strong": "b", "em": "i", "del": "s", "strike": "s"}
_BLOCK_TAGS = ("p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "pre", "blockquote")


def markdown_to_html(md_content: str) -> str:
    """Convert Markdown to note HTML.

    The note editor writes ``<b>``/``<i>``/``<s>`` rather than the semantic
    tags, so those are normalised after rendering.
    """
    if not md_content:
        return ""

    html = markdown.markdown(md_content, extensions=["extra", "nl2br", "sane_lists"])
    soup = BeautifulSoup(html, "html.parser")

    for old, new in _INLINE_RENAMES.items():
        for tag in soup.find_all(old):
            tag.name = new

    return str(soup).strip()


def html_to_markdown(html_content: str) -> str:
    """Convert note HTML back to Markdown.

    Covers what the editor produces: paragraphs, headings, lists, links,
    inline formatting, code and line breaks. Unknown tags keep their text.
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, "html.parser")
    blocks = []

    for element in soup.children:
        if isinstance(element, NavigableString):
            text = str(element).strip()
            if text:
                blocks.append(text)
            continue

        if element.name in ("ul", "ol"):
            blocks.append(_convert_list(element))
        elif element.name and element.name.startswith("h") and element.name[1:].isdigit():
            level = int(element.name[1:])
            blocks.append(f"{'#' * level} {_convert_inline(element).strip()}")
        elif element.name == "pre":
            blocks.append(f"```\n{element.get_text().rstrip()}\n```")
        elif element.name == "blockquote":
            quoted = _convert_inline(element).strip().splitlines()
            blocks.append("\n".join(f"> {line}" for line in quoted))
        elif element.name == "hr":
            blocks.append("---")
        elif element.name == "br":
            continue
        else:
            text = _convert_inline(element).strip()
            if text:
                blocks.append(text)

    return "\n\n".join(blocks)


def html_to_plaintext(html: str) -> str:
    """Strip all markup, keeping line structure."""
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for li in soup.find_all("li"):
        li.insert(0, "- ")
    for block in soup.find_all(_BLOCK_TAGS + ("li",)):
        block.append("\n")

    text = soup.get_text()
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _convert_inline(element) -> str:
    """Convert an element's children to inline Markdown."""
    if element.name is None:
        return str(element)

    text = ""
    for child in element.children:
        if child.name is None:
            text += str(child)
        elif child.name in ("b", "strong"):
            text += f"**{_convert_inline(child)}**"
        elif child.name in ("i", "em"):
            text += f"*{_convert_inline(child)}*"
        elif child.name in ("s", "strike", "del"):
            text += f"~~{_convert_inline(child)}~~"
        elif child.name == "code":
            text += f"`{child.get_text()}`"
        elif child.name == "a":
            href = child.get("href", "")
            text += f"[{child.get_text()}]({href})"
        elif child.name == "br":
            text += "\n"
        elif child.name in _BLOCK_TAGS:
            text += _convert_inline(child) + "\n"
        else:
            # u and anything else: Markdown has no equivalent, keep the text
            text += _convert_inline(child)

    return text


def _convert_list(element) -> str:
    """Convert ul/ol to a Markdown list."""
    lines = []
    is_ordered = element.name == "ol"

    for i, li in enumerate(element.find_all("li", recursive=False), 1):
        prefix = f"{i}. " if is_ordered else "- "
        lines.append(f"{prefix}{_convert_inline(li).strip()}")

    return "\n".join(lines)
