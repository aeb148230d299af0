"""Import driver: runs a full pass over the sheets of a mind map."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .normalize import CaseRecord
from .parser import MindMapSheet, OutlineNode, iter_supported_files, parse_file
from .tags import CASE_TAG_RE, is_case_title, strip_tag
from .validate import (
    MSG_TOP_LEVEL_CASE,
    CaseLookup,
    ComparableCase,
    Diagnostic,
    ImportSession,
    resolve_max_node_depth,
    validate_folders,
)
from .walker import record_empty_folder, walk

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_ABORTED = "aborted"
STATUS_FAILED = "failed"


@dataclass
class ImportResult:
    status: str
    new_cases: list[CaseRecord] = field(default_factory=list)
    update_cases: list[CaseRecord] = field(default_factory=list)
    empty_folders: list[str] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status == STATUS_SUCCESS

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "new_cases": [case.to_dict() for case in self.new_cases],
            "update_cases": [case.to_dict() for case in self.update_cases],
            "empty_folders": list(self.empty_folders),
            "diagnostics": [diagnostic.to_dict() for diagnostic in self.diagnostics],
        }


def create_session(
    project_id: str,
    maintainer: str,
    *,
    lookup: CaseLookup | None = None,
    known_names: set[str] | None = None,
    max_node_depth: int | None = None,
    comparables: list[ComparableCase] | None = None,
) -> ImportSession:
    return ImportSession(
        project_id=project_id,
        maintainer=maintainer,
        lookup=lookup,
        known_names=known_names if known_names is not None else set(),
        max_node_depth=resolve_max_node_depth(max_node_depth),
        comparables=comparables if comparables is not None else [],
    )


def session_result(session: ImportSession, status: str) -> ImportResult:
    return ImportResult(
        status=status,
        new_cases=list(session.new_cases),
        update_cases=list(session.update_cases),
        empty_folders=list(session.empty_folders),
        diagnostics=list(session.diagnostics),
    )


def fail_session(session: ImportSession, exc: BaseException) -> ImportResult:
    session.add(str(exc) or exc.__class__.__name__, "")
    return session_result(session, STATUS_FAILED)


def import_sheets(sheets: Iterable[MindMapSheet], session: ImportSession) -> ImportResult:
    """Walk every sheet and return the new cases, updates and diagnostics.

    Never raises: a case directly under a sheet root aborts the pass and any
    other failure ends it with a diagnostic carrying the error message.
    """
    try:
        for sheet in sheets:
            for item in sheet.root.children:
                if is_case_title(item.title):
                    name = strip_tag(item.title, CASE_TAG_RE)
                    logger.warning("Top level case %r in sheet %r", item.title, sheet.title)
                    return ImportResult(
                        status=STATUS_ABORTED,
                        diagnostics=[Diagnostic(f"{name}: {MSG_TOP_LEVEL_CASE}", item.title)],
                    )
                if item.children:
                    walk(item.children, item.title, 1, session)
                else:
                    record_empty_folder(item.title, session)
        validate_folders(session)
    except Exception as exc:
        logger.exception("Mind map import failed")
        return fail_session(session, exc)
    logger.info(
        "Import finished: %d new, %d updated, %d diagnostics",
        len(session.new_cases),
        len(session.update_cases),
        len(session.diagnostics),
    )
    return session_result(session, STATUS_SUCCESS)


def import_file(path: Path, session: ImportSession) -> ImportResult:
    try:
        sheets = parse_file(path)
    except Exception as exc:
        logger.exception("Failed to parse %s", path)
        return fail_session(session, exc)
    logger.info("Importing %d sheet(s) from %s", len(sheets), path)
    return import_sheets(sheets, session)


def contains_cases(nodes: Iterable[OutlineNode]) -> bool:
    return any(is_case_title(node.title) or contains_cases(node.children) for node in nodes)


def import_directory(
    target_dir: Path,
    base_path: Path,
    *,
    project_id: str,
    maintainer: str,
    lookup: CaseLookup | None = None,
    known_names: set[str] | None = None,
    max_node_depth: int | None = None,
    on_result: Callable[[str, ImportResult], None] | None = None,
) -> dict[str, ImportResult]:
    """Import every supported file below ``target_dir`` in path order.

    All passes share one known-names set and one list of seen case contents,
    so a case repeated in a later file is reported as a duplicate. Files
    without a single case tag (a README next to the mind maps) are skipped.
    ``on_result`` runs after each file, before the next one is imported, so
    a caller that stores the result and refreshes ``lookup`` gets repeats
    routed to updates instead.
    """
    names = known_names if known_names is not None else set()
    comparables: list[ComparableCase] = []
    results: dict[str, ImportResult] = {}
    for file_path in iter_supported_files(target_dir):
        rel_file = str(file_path.relative_to(base_path).as_posix())
        session = create_session(
            project_id,
            maintainer,
            lookup=lookup,
            known_names=names,
            max_node_depth=max_node_depth,
            comparables=comparables,
        )
        try:
            sheets = parse_file(file_path)
        except Exception as exc:
            logger.exception("Failed to parse %s", file_path)
            result = fail_session(session, exc)
        else:
            if not contains_cases(sheet.root for sheet in sheets):
                logger.info("Skipping %s: no case tags", rel_file)
                continue
            logger.info("Importing %d sheet(s) from %s", len(sheets), file_path)
            result = import_sheets(sheets, session)
        results[rel_file] = result
        if on_result is not None:
            on_result(rel_file, result)
    return results
