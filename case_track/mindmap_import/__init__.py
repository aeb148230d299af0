"""Mind map test case importer package."""
from __future__ import annotations

from pathlib import Path

from . import importer, normalize, parser, renderer, store, tags, validate, walker
from .importer import ImportResult

__all__ = [
    "parser",
    "tags",
    "normalize",
    "validate",
    "walker",
    "importer",
    "store",
    "renderer",
    "import_mindmap",
]


def import_mindmap(
    path: Path,
    project_id: str,
    maintainer: str,
    *,
    store_path: Path | None = None,
) -> ImportResult:
    """Convenience wrapper: import ``path`` against the store at ``store_path``."""
    store_data = store.load_store(store_path) if store_path else store.ensure_store()
    session = importer.create_session(
        project_id,
        maintainer,
        lookup=store.CaseStore(store_data),
        known_names=store.known_names(store_data, project_id),
    )
    return importer.import_file(path, session)
