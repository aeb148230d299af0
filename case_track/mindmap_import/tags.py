"""Tag recognition and case title decoding."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

PRIORITIES = ("P0", "P1", "P2", "P3")
DEFAULT_PRIORITY = PRIORITIES[0]

FULL_WIDTH_COLON = "："

# A tag is only recognised at the start of a title. It may be followed by an
# ASCII colon, a full-width colon, or nothing at all ("tc-P1-api:...").
_TAG_TEMPLATE = r"^\s*{tag}(?:[:：]|(?![A-Za-z0-9]))"

CASE_TAG_RE = re.compile(_TAG_TEMPLATE.format(tag="tc"), re.IGNORECASE)
PRECONDITION_TAG_RE = re.compile(_TAG_TEMPLATE.format(tag="pc"), re.IGNORECASE)
REMARK_TAG_RE = re.compile(_TAG_TEMPLATE.format(tag="rc"), re.IGNORECASE)


class TitleFormatError(ValueError):
    """Raised when a case title has no name after the tag segment."""


class Category(str, Enum):
    FUNCTIONAL = "functional"
    PERFORMANCE = "performance"
    API = "api"

    @property
    def aliases(self) -> tuple[str, ...]:
        return _CATEGORY_ALIASES[self]

    @classmethod
    def from_tag(cls, tag: str) -> Category | None:
        """Return the category named by ``tag`` or ``None`` for unknown tags."""
        cleaned = tag.strip().lower()
        for member in cls:
            if cleaned == member.value or cleaned in member.aliases:
                return member
        return None


_CATEGORY_ALIASES: dict[Category, tuple[str, ...]] = {
    Category.FUNCTIONAL: ("功能测试",),
    Category.PERFORMANCE: ("性能测试",),
    Category.API: ("接口测试",),
}


@dataclass(frozen=True)
class DecodedTitle:
    name: str
    priority: str
    category: Category | None


def has_tag(title: str | None, pattern: re.Pattern[str]) -> bool:
    if not title:
        return False
    return pattern.match(title) is not None


def is_case_title(title: str | None) -> bool:
    return has_tag(title, CASE_TAG_RE)


def strip_tag(title: str, pattern: re.Pattern[str]) -> str:
    return pattern.sub("", title, count=1).strip()


def decode_title(
    title: str,
    *,
    priority: str = DEFAULT_PRIORITY,
    category: Category | None = None,
) -> DecodedTitle:
    """Split ``<tag-segment>:<name>`` into name, priority and category.

    ``priority`` and ``category`` are the values in effect before the tag
    segment is read; dash separated tokens in the tag segment override them.
    An unknown token resets the category to ``None``.
    """
    normalized = title.replace(FULL_WIDTH_COLON, ":")
    tag_segment, *name_parts = normalized.split(":")
    name = ":".join(name_parts).strip()
    if not name:
        raise TitleFormatError(f"no case name in title {title!r}")
    if "-" in tag_segment:
        for token in tag_segment.split("-"):
            token = token.strip()
            if not token or is_case_title(token):
                continue
            matched = Category.from_tag(token)
            if matched is not None:
                category = matched
            elif token.upper().startswith("P"):
                priority = token.upper()
            else:
                logger.debug("Unknown tag %r in title %r", token, title)
                category = None
    return DecodedTitle(name=name, priority=priority, category=category)
