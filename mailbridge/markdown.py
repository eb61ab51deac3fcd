# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Markdown to HTML conversion for outbound email.

Replies are authored in markdown and sent as ``multipart/alternative``
with the rendered HTML next to the original text.  Rendering uses
markdown-it-py with the CommonMark preset plus the GitHub-style
extensions replies commonly rely on:

- Tables: ``| a | b |``
- Strikethrough: ``~~text~~``
- Task lists: ``- [x] done``

Raw HTML in the source is escaped rather than passed through, so a reply
cannot smuggle markup into the recipient's mail client.
"""

from functools import cache

from markdown_it import MarkdownIt
from mdit_py_plugins.tasklists import tasklists_plugin


@cache
def _renderer() -> MarkdownIt:
    md = MarkdownIt("commonmark", {"html": False, "breaks": False})
    md.enable(["table", "strikethrough"])
    md.use(tasklists_plugin)
    return md


def markdown_to_html(text: str) -> str:
    """Convert markdown text to an HTML fragment for email.

    Args:
        text: Markdown-formatted text.

    Returns:
        HTML fragment (no ``<html>``/``<body>`` wrapper), or an empty
        string for empty input.
    """
    if not text:
        return ""
    return _renderer().render(text)
