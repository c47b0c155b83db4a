# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Plain-text alternatives for HTML message bodies."""

from __future__ import annotations

import re

from bs4 import BeautifulSoup

_BLOCK_TAGS = ["p", "div", "tr", "li", "h1", "h2", "h3", "h4", "h5", "h6", "table", "ul", "ol"]


def html_to_text(html: str) -> str:
    """Convert an HTML body to readable plain text.

    Scripts and styles are dropped, ``<br>`` and block elements become line
    breaks, links keep their target in brackets and runs of blank lines are
    collapsed.

    Args:
        html: HTML markup.

    Returns:
        Plain text rendering of the markup.
    """
    if not html:
        return ""

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "head"]):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for link in soup.find_all("a"):
        href = link.get("href")
        text = link.get_text()
        if href and not href.startswith("mailto:") and href != text:
            link.replace_with(f"{text} [{href}]")
    for block in soup.find_all(_BLOCK_TAGS):
        block.insert_after("\n")

    text = soup.get_text()
    lines = [" ".join(line.split()) for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
