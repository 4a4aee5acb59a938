"""Markdown helpers for building and reading issue bodies.

Key Exports:
    escape_markdown: Make arbitrary text inert inside GitHub markdown.
    extract_urls: Pull link targets out of markdown.
    extract_resolutions: Find ``RESOLVED:`` lines in a comment.
    truncate_at_separator: Drop the boilerplate trailer of a decision issue.
"""

import re

RESOLUTION_PREFIX = "RESOLVED: "
SEPARATOR = "----"

_ESCAPE_RE = re.compile(r"[#&()*<>\[\]\\_`|]|^[-+]", re.MULTILINE)
_URL_RE = re.compile(r"\((https:[^)\\]*)")

# Characters that need an entity rather than a backslash
_ENTITIES = {
    "\\": "\\\\",
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "|": "&#124;",
}


def escape_markdown(text: str) -> str:
    """Escape markdown metacharacters so text renders literally.

    Example:
        >>> escape_markdown("a_b <c>")
        'a\\\\_b &lt;c&gt;'
    """

    def replace(match: re.Match[str]) -> str:
        char = match.group(0)
        return _ENTITIES.get(char, "\\" + char)

    return _ESCAPE_RE.sub(replace, text)


def extract_urls(text: str) -> list[str]:
    """Return every ``https:`` URL that directly follows an opening paren.

    This matches the targets of inline markdown links such as
    ``[Discussion.](https://github.com/...)``. A URL ends at the first closing
    paren or backslash, so escaped text such as ``\\(https://a.b\\)`` yields
    ``https://a.b``.
    """
    return _URL_RE.findall(text)


def extract_resolutions(body: str) -> list[str]:
    """Return the text of each line that starts with ``RESOLVED: ``."""
    return [line[len(RESOLUTION_PREFIX) :] for line in body.splitlines() if line.startswith(RESOLUTION_PREFIX)]


def truncate_at_separator(body: str) -> str:
    """Return the part of ``body`` before the first ``----`` line."""
    lines = body.splitlines()
    for index, line in enumerate(lines):
        if line.strip() == SEPARATOR:
            return "\n".join(lines[:index])
    return body
