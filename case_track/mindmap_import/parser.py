"""Readers that turn mind-map files into outline trees."""
from __future__ import annotations

import json
import logging
import re
import zipfile
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup, Tag
from docx import Document

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {
    ".xmind",
    ".opml",
    ".md",
    ".markdown",
    ".docx",
}

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)(?:\s+#+)?\s*$")
LIST_ITEM_RE = re.compile(r"^(\s*)(?:[-*+]|\d+[.)])\s+(.*)$")
DOCX_HEADING_RE = re.compile(r"^heading\s*(\d+)$", re.IGNORECASE)
DOCX_LIST_RE = re.compile(r"^list\b.*?(\d+)?$", re.IGNORECASE)

XMIND_ZEN_CONTENT = "content.json"
XMIND_LEGACY_CONTENT = "content.xml"


class OutlineFormatError(ValueError):
    """Raised when a file cannot be read as an outline."""


class UnsupportedFormatError(OutlineFormatError):
    """Raised for files whose suffix has no reader."""


@dataclass(frozen=True)
class OutlineNode:
    """A titled node of a mind map and its ordered children."""

    title: str
    children: tuple[OutlineNode, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children or ()))


@dataclass(frozen=True)
class MindMapSheet:
    """One document root: a sheet title and its root topic."""

    title: str
    root: OutlineNode


@dataclass
class _Draft:
    title: str
    children: list[_Draft] = field(default_factory=list)

    def freeze(self) -> OutlineNode:
        return OutlineNode(self.title, tuple(child.freeze() for child in self.children))


def iter_supported_files(root: Path) -> Iterator[Path]:
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        if any(part == "_index" for part in path.parts):
            continue
        if path.suffix.lower() in SUPPORTED_EXTENSIONS:
            yield path


def parse_file(path: Path) -> list[MindMapSheet]:
    suffix = path.suffix.lower()
    if suffix == ".xmind":
        return parse_xmind(path)
    if suffix == ".opml":
        text = path.read_text(encoding="utf-8", errors="ignore")
        return parse_opml(text, default_title=path.stem)
    if suffix in {".md", ".markdown"}:
        text = path.read_text(encoding="utf-8", errors="ignore")
        return parse_markdown(text, default_title=path.stem)
    if suffix == ".docx":
        return parse_docx(path)
    raise UnsupportedFormatError(f"unsupported mind map format: {path.name}")


def parse_xmind(path: Path) -> list[MindMapSheet]:
    try:
        with zipfile.ZipFile(path) as archive:
            names = set(archive.namelist())
            if XMIND_ZEN_CONTENT in names:
                raw = archive.read(XMIND_ZEN_CONTENT).decode("utf-8")
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as exc:
                    raise OutlineFormatError(f"{path.name}: invalid {XMIND_ZEN_CONTENT}") from exc
                return sheets_from_zen(data)
            if XMIND_LEGACY_CONTENT in names:
                raw = archive.read(XMIND_LEGACY_CONTENT).decode("utf-8")
                return sheets_from_legacy(raw)
    except zipfile.BadZipFile as exc:
        raise OutlineFormatError(f"{path.name} is not an XMind archive") from exc
    raise OutlineFormatError(f"{path.name} has no XMind content")


def sheets_from_zen(data: Any) -> list[MindMapSheet]:
    """Build sheets from the ``content.json`` payload of an XMind zen file."""
    if isinstance(data, Mapping):
        data = [data]
    if not isinstance(data, list):
        raise OutlineFormatError("XMind content must be a list of sheets")
    sheets: list[MindMapSheet] = []
    for entry in data:
        if not isinstance(entry, Mapping):
            continue
        root_topic = entry.get("rootTopic")
        if not isinstance(root_topic, Mapping):
            logger.debug("Skipping sheet without root topic: %s", entry.get("title"))
            continue
        sheets.append(MindMapSheet(str(entry.get("title") or ""), _zen_topic(root_topic)))
    return sheets


def _zen_topic(topic: Mapping[str, Any]) -> OutlineNode:
    children = topic.get("children") or {}
    attached = children.get("attached") if isinstance(children, Mapping) else None
    return OutlineNode(
        str(topic.get("title") or ""),
        tuple(_zen_topic(child) for child in attached or [] if isinstance(child, Mapping)),
    )


def sheets_from_legacy(text: str) -> list[MindMapSheet]:
    """Build sheets from the ``content.xml`` document of an XMind 8 file."""
    soup = BeautifulSoup(text, "xml")
    sheets: list[MindMapSheet] = []
    for sheet in soup.find_all("sheet"):
        topic = sheet.find("topic", recursive=False)
        if topic is None:
            continue
        sheets.append(MindMapSheet(_xml_title(sheet), _legacy_topic(topic)))
    return sheets


def _xml_title(element: Tag) -> str:
    title = element.find("title", recursive=False)
    return title.get_text() if title is not None else ""


def _legacy_topic(topic: Tag) -> OutlineNode:
    children: list[OutlineNode] = []
    container = topic.find("children", recursive=False)
    if container is not None:
        for group in container.find_all("topics", recursive=False):
            if group.get("type") != "attached":
                continue
            children.extend(_legacy_topic(child) for child in group.find_all("topic", recursive=False))
    return OutlineNode(_xml_title(topic), tuple(children))


def parse_opml(text: str, default_title: str = "") -> list[MindMapSheet]:
    soup = BeautifulSoup(text, "xml")
    body = soup.find("body")
    if body is None:
        raise OutlineFormatError("OPML document has no body")
    head_title = soup.find("title")
    sheet_title = head_title.get_text(strip=True) if head_title is not None else default_title
    return [
        MindMapSheet(sheet_title, _opml_outline(outline))
        for outline in body.find_all("outline", recursive=False)
    ]


def _opml_outline(outline: Tag) -> OutlineNode:
    title = outline.get("text") or outline.get("title") or ""
    return OutlineNode(
        str(title),
        tuple(_opml_outline(child) for child in outline.find_all("outline", recursive=False)),
    )


def parse_markdown(text: str, default_title: str = "") -> list[MindMapSheet]:
    """Read a Markdown outline.

    ``#`` opens a sheet, deeper headings open deeper levels and list items
    nest below the current heading by indentation.
    """
    entries: list[tuple[int, str]] = []
    heading_level = 0
    indents: list[int] = []
    for raw_line in text.splitlines():
        if not raw_line.strip():
            continue
        heading = HEADING_RE.match(raw_line)
        if heading:
            heading_level = len(heading.group(1))
            indents = []
            entries.append((heading_level, heading.group(2).strip()))
            continue
        item = LIST_ITEM_RE.match(raw_line.expandtabs(4))
        if item:
            indent = len(item.group(1))
            while indents and indents[-1] >= indent:
                indents.pop()
            indents.append(indent)
            entries.append((heading_level + len(indents), item.group(2).strip()))
            continue
        logger.debug("Ignoring outline text: %s", raw_line.strip())
    return build_sheets(entries, default_title)


def parse_docx(path: Path) -> list[MindMapSheet]:
    try:
        document = Document(str(path))
    except Exception as exc:
        raise OutlineFormatError(f"failed to read DOCX {path.name}: {exc}") from exc
    paragraphs = [
        (paragraph.style.name if paragraph.style is not None else "", paragraph.text.strip())
        for paragraph in document.paragraphs
    ]
    has_title = any(style == "Title" and text for style, text in paragraphs)
    offset = 1 if has_title else 0
    entries: list[tuple[int, str]] = []
    heading_level = 0
    for style, text in paragraphs:
        if not text:
            continue
        if style == "Title":
            heading_level = 1
            entries.append((heading_level, text))
            continue
        heading = DOCX_HEADING_RE.match(style)
        if heading:
            heading_level = int(heading.group(1)) + offset
            entries.append((heading_level, text))
            continue
        list_style = DOCX_LIST_RE.match(style)
        if list_style:
            depth = int(list_style.group(1)) if list_style.group(1) else 1
            entries.append((heading_level + depth, text))
    return build_sheets(entries, path.stem)


def build_sheets(entries: Iterable[tuple[int, str]], default_title: str = "") -> list[MindMapSheet]:
    """Assemble ``(level, title)`` pairs into sheets; level 1 is a sheet root."""
    roots: list[_Draft] = []
    stack: list[_Draft] = []
    for level, title in entries:
        if level <= 1 or not roots:
            if level > 1:
                # content before any root hangs off an implicit root topic
                roots.append(_Draft(default_title))
                stack = [roots[-1]]
            else:
                roots.append(_Draft(title))
                stack = [roots[-1]]
                continue
        depth = min(level - 1, len(stack))
        del stack[depth:]
        draft = _Draft(title)
        stack[-1].children.append(draft)
        stack.append(draft)
    return [MindMapSheet(root.title, root.freeze()) for root in roots]
