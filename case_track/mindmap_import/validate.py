"""Validation of imported cases and the state shared by one import pass."""
from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Protocol

from .normalize import IMPORTABLE_FIELDS, METHOD_AUTO, CaseRecord, normalize_path
from .tags import PRIORITIES, Category

logger = logging.getLogger(__name__)

DEFAULT_MAX_NODE_DEPTH = 5
MAX_NAME_LENGTH = 50
MAX_SEGMENT_LENGTH = 30

MSG_NAME_TOO_LONG = f"Case name cannot exceed {MAX_NAME_LENGTH} characters"
MSG_NAME_FORMAT = "Case name format is incorrect"
MSG_MODULE_EMPTY = "Module name cannot be empty"
MSG_CASE_MODULE_EMPTY = "Case module name cannot be empty"
MSG_SEGMENT_TOO_LONG = f"Module name cannot exceed {MAX_SEGMENT_LENGTH} characters"
MSG_FUNCTIONAL_AUTO = "Functional cases cannot use the auto method"
MSG_PRIORITY_FORMAT = "Case priority format is incorrect"
MSG_CATEGORY_FORMAT = "Case category format is incorrect"
MSG_DUPLICATE = "Case already exists in this import"
MSG_TOP_LEVEL_CASE = "cannot create case at top level, add it under a module"


def depth_message(max_depth: int) -> str:
    return f"The module tree supports at most {max_depth} levels"


def resolve_max_node_depth(value: int | None = None) -> int:
    if value is not None:
        return max(value, 1)
    env_value = os.environ.get("CASE_TRACK_MAX_NODE_DEPTH")
    if env_value:
        try:
            return max(int(env_value), 1)
        except ValueError:
            logger.debug("Invalid CASE_TRACK_MAX_NODE_DEPTH value: %s", env_value)
    return DEFAULT_MAX_NODE_DEPTH


class CaseLookup(Protocol):
    def exists_by_identity(self, case: CaseRecord) -> CaseRecord | None:
        """Return the stored case sharing ``case``'s identity, if any."""


@dataclass(frozen=True)
class Diagnostic:
    message: str
    context: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class ComparableCase:
    """Content of a case without its identity, used to spot repeats."""

    name: str
    folder_path: str
    priority: str
    category: Category | None
    method: str
    precondition: str | None
    remark: str
    steps: str
    maintainer: str

    @classmethod
    def of(cls, case: CaseRecord) -> ComparableCase:
        return cls(
            name=case.name,
            folder_path=case.folder_path,
            priority=case.priority,
            category=case.category,
            method=case.method,
            precondition=case.precondition,
            remark=case.remark,
            steps=case.steps,
            maintainer=case.maintainer,
        )


@dataclass
class ImportSession:
    """Batch state owned by a single import pass.

    ``known_names`` belongs to the caller and keeps the names discovered
    during the pass, so later passes against the same set see them.
    """

    project_id: str
    maintainer: str
    lookup: CaseLookup | None = None
    known_names: set[str] = field(default_factory=set)
    max_node_depth: int = DEFAULT_MAX_NODE_DEPTH
    diagnostics: list[Diagnostic] = field(default_factory=list)
    comparables: list[ComparableCase] = field(default_factory=list)
    new_cases: list[CaseRecord] = field(default_factory=list)
    update_cases: list[CaseRecord] = field(default_factory=list)
    empty_folders: list[str] = field(default_factory=list)

    def add(self, message: str, context: str) -> None:
        logger.debug("Diagnostic: %s (%s)", message, context)
        self.diagnostics.append(Diagnostic(message, context))


def check_path(
    session: ImportSession,
    path: str,
    *,
    context: str,
    empty_message: str = MSG_MODULE_EMPTY,
) -> None:
    """Record depth and segment problems of a normalized folder path."""
    segments = path.split("/")[1:]
    if len(segments) > session.max_node_depth:
        session.add(depth_message(session.max_node_depth), path)
    for segment in segments:
        cleaned = segment.strip()
        if not cleaned:
            session.add(empty_message, context)
            break
        if len(cleaned) > MAX_SEGMENT_LENGTH:
            session.add(MSG_SEGMENT_TOO_LONG, cleaned)
            break


def validate_case(case: CaseRecord, session: ImportSession) -> bool:
    """Check ``case`` against naming rules and the rest of the batch.

    Returns ``False`` when the case was routed to ``session.update_cases``;
    ``True`` means the caller should keep it as a new case.
    """
    case.folder_path = normalize_path(case.folder_path)
    context = f"{case.folder_path}/{case.name}"

    if len(case.name) > MAX_NAME_LENGTH:
        session.add(MSG_NAME_TOO_LONG, context)

    check_path(session, case.folder_path, context=context, empty_message=MSG_CASE_MODULE_EMPTY)

    if case.category == Category.FUNCTIONAL and case.method == METHOD_AUTO:
        session.add(MSG_FUNCTIONAL_AUTO, context)

    if case.name in session.known_names:
        existing = session.lookup.exists_by_identity(case) if session.lookup else None
        if existing is not None:
            for name in IMPORTABLE_FIELDS:
                setattr(existing, name, getattr(case, name))
            session.update_cases.append(existing)
            logger.debug("Case %s matches stored case %s", context, existing.id)
            return False
    else:
        session.known_names.add(case.name)

    if case.priority not in PRIORITIES:
        session.add(MSG_PRIORITY_FORMAT, context)
    if case.category is None:
        session.add(MSG_CATEGORY_FORMAT, context)

    comparable = ComparableCase.of(case)
    if comparable in session.comparables:
        session.add(MSG_DUPLICATE, context)
    session.comparables.append(comparable)
    return True


def validate_folders(session: ImportSession) -> None:
    for path in session.empty_folders:
        check_path(session, path, context=path)
