"""Depth-first traversal of outline nodes into case records."""
from __future__ import annotations

import logging
from collections.abc import Iterable

from .normalize import assemble_case, normalize_path
from .parser import OutlineNode
from .tags import TitleFormatError, is_case_title
from .validate import MSG_NAME_FORMAT, ImportSession, validate_case

logger = logging.getLogger(__name__)


def walk(nodes: Iterable[OutlineNode], parent_path: str, depth: int, session: ImportSession) -> None:
    for node in nodes:
        if is_case_title(node.title):
            add_case(node, parent_path, session)
            continue
        path = f"{parent_path}/{node.title}"
        if node.children:
            logger.debug("Entering %s at depth %d", path, depth + 1)
            walk(node.children, path, depth + 1, session)
        else:
            record_empty_folder(path, session)


def record_empty_folder(path: str, session: ImportSession) -> None:
    normalized = normalize_path(path)
    logger.debug("Folder without cases: %s", normalized)
    session.empty_folders.append(normalized)


def add_case(node: OutlineNode, folder_path: str, session: ImportSession) -> None:
    try:
        case = assemble_case(
            node.title,
            folder_path,
            node.children,
            project_id=session.project_id,
            maintainer=session.maintainer,
        )
    except TitleFormatError:
        session.add(MSG_NAME_FORMAT, node.title)
        return
    if validate_case(case, session):
        session.new_cases.append(case)
