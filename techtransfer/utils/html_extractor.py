"""Regex-based field extraction over raw portal HTML.

The portal's detail pages are inconsistently formatted, so fields are pulled
out with tolerant patterns instead of a structural parser. Every helper here
is pure: a missing match yields an empty value, never an exception.
"""

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, List, Optional

FLAGS = re.IGNORECASE | re.DOTALL

_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")

# Only the entities the portal actually emits are decoded.
_ENTITIES = (
    ("&amp;", "&"),
    ("&quot;", '"'),
    ("&#039;", "'"),
    ("&nbsp;", " "),
)


@lru_cache(maxsize=128)
def _compile(pattern: str):
    return re.compile(pattern, FLAGS)


def extract_match(text: str, pattern: str) -> str:
    """Return the first capture group of the first match, or an empty string."""
    if not text:
        return ""
    match = _compile(pattern).search(text)
    if not match or match.lastindex is None:
        return ""
    return match.group(1) or ""


def extract_matches(text: str, pattern: str) -> List[str]:
    """Return the first capture group of every match."""
    if not text:
        return []
    regex = _compile(pattern)
    if regex.groups < 1:
        return []
    return [match.group(1) for match in regex.finditer(text) if match.group(1) is not None]


def clean_html(text: str) -> str:
    """Strip markup, decode the common entities and normalize whitespace."""
    if not text:
        return ""
    cleaned = _TAG_RE.sub("", text)
    for entity, replacement in _ENTITIES:
        cleaned = cleaned.replace(entity, replacement)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def extract_list_items(section: str) -> List[str]:
    """Return the cleaned text of each <li> in a block, skipping blank items."""
    items = (clean_html(item) for item in extract_matches(section, r"<li[^>]*>(.*?)</li>"))
    return [item for item in items if item]


def dedupe_preserving_order(values: List[str]) -> List[str]:
    """Drop repeated values, keeping the first occurrence of each."""
    return list(dict.fromkeys(values))


@dataclass(frozen=True)
class ExtractionRule:
    """A named pattern whose first capture group yields one value per match."""

    name: str
    pattern: str
    transform: Optional[Callable[[str], str]] = None

    def apply(self, html: str) -> List[str]:
        """Run the rule against a document."""
        values = extract_matches(html, self.pattern)
        if self.transform is None:
            return values
        return [self.transform(value) for value in values]

    def first(self, html: str) -> str:
        """Return the first value, or an empty string."""
        value = extract_match(html, self.pattern)
        if value and self.transform is not None:
            return self.transform(value)
        return value
