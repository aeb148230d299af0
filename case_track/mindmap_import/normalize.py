"""Case record model, step extraction and case assembly."""
from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from .parser import OutlineNode
from .tags import (
    DEFAULT_PRIORITY,
    PRECONDITION_TAG_RE,
    REMARK_TAG_RE,
    Category,
    decode_title,
    has_tag,
    strip_tag,
)

logger = logging.getLogger(__name__)

METHOD_MANUAL = "manual"
METHOD_AUTO = "auto"


@dataclass
class Step:
    num: int
    desc: str
    result: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"num": self.num, "desc": self.desc}
        if self.result is not None:
            data["result"] = self.result
        return data


@dataclass
class ExtractedSteps:
    precondition: str | None
    remark: str
    steps: list[Step]
    step_nodes: list[OutlineNode] = field(default_factory=list)


@dataclass
class CaseRecord:
    name: str
    folder_path: str
    priority: str = DEFAULT_PRIORITY
    category: Category | None = Category.FUNCTIONAL
    method: str = METHOD_MANUAL
    precondition: str | None = None
    remark: str = ""
    steps: str = "[]"
    project_id: str = ""
    maintainer: str = ""
    id: str | None = None

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["category"] = self.category.value if self.category is not None else None
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CaseRecord:
        known = {item.name for item in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        category = values.get("category")
        values["category"] = Category(category) if category else None
        return cls(**values)


# every field except the identity is carried over when a case is updated
IMPORTABLE_FIELDS = tuple(item.name for item in fields(CaseRecord) if item.name != "id")


def normalize_path(path: str) -> str:
    """Return ``path`` with a leading slash and without a trailing one."""
    if not path.startswith("/"):
        path = "/" + path
    if path.endswith("/"):
        path = path[:-1]
    return path


def extract_steps(children: Iterable[OutlineNode] | None) -> ExtractedSteps:
    precondition: str | None = None
    remark_parts: list[str] = []
    step_nodes: list[OutlineNode] = []
    for child in children or ():
        if has_tag(child.title, PRECONDITION_TAG_RE):
            precondition = strip_tag(child.title, PRECONDITION_TAG_RE)
        elif has_tag(child.title, REMARK_TAG_RE):
            remark_parts.append(strip_tag(child.title, REMARK_TAG_RE) + "\n")
        else:
            step_nodes.append(child)
    steps = [
        Step(
            num=index,
            desc=node.title,
            result=node.children[0].title if node.children else None,
        )
        for index, node in enumerate(step_nodes, start=1)
    ]
    if not steps:
        steps = [Step(num=1, desc="", result="")]
    return ExtractedSteps(
        precondition=precondition,
        remark="".join(remark_parts),
        steps=steps,
        step_nodes=step_nodes,
    )


def encode_steps(steps: Iterable[Step]) -> str:
    return json.dumps([step.to_dict() for step in steps], ensure_ascii=False)


def assemble_case(
    title: str,
    folder_path: str,
    children: Iterable[OutlineNode] | None,
    *,
    project_id: str,
    maintainer: str,
) -> CaseRecord:
    """Build a case record from a tagged title and its child nodes.

    Raises ``TitleFormatError`` when the title carries no case name.
    """
    decoded = decode_title(title, priority=DEFAULT_PRIORITY, category=Category.FUNCTIONAL)
    extracted = extract_steps(children)
    logger.debug("Assembled case %r under %s", decoded.name, folder_path)
    return CaseRecord(
        name=decoded.name,
        folder_path=folder_path,
        priority=decoded.priority,
        category=decoded.category,
        method=METHOD_MANUAL,
        precondition=extracted.precondition,
        remark=extracted.remark,
        steps=encode_steps(extracted.steps),
        project_id=project_id,
        maintainer=maintainer,
    )
