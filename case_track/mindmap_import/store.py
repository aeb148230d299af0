"""JSON case store: identity lookup for the importer and sink for its results."""
from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping, MutableMapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

from .importer import ImportResult
from .normalize import CaseRecord

logger = logging.getLogger(__name__)

STORE_HISTORY_LIMIT = 200

IDENTITY_FIELDS = ("name", "project_id", "folder_path", "category", "priority", "maintainer")


def now_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


def ensure_store() -> dict[str, Any]:
    timestamp = now_iso()
    return {
        "metadata": {
            "created_at": timestamp,
            "updated_at": timestamp,
            "case_count": 0,
        },
        "cases": {},
        "history": [],
    }


def load_store(path: Path) -> dict[str, Any]:
    if not path.exists():
        return ensure_store()
    with path.open("r", encoding="utf-8") as fh:
        return cast(dict[str, Any], json.load(fh))


def save_store(path: Path, store: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(store, fh, indent=2, sort_keys=True, ensure_ascii=False)


def identity_key(case: Mapping[str, Any]) -> tuple[str, ...]:
    return tuple(str(case.get(name) or "") for name in IDENTITY_FIELDS)


def known_names(store: Mapping[str, Any], project_id: str) -> set[str]:
    cases = cast(Mapping[str, Mapping[str, Any]], store.get("cases", {}))
    return {
        str(data.get("name"))
        for data in cases.values()
        if data.get("project_id") == project_id and data.get("name")
    }


class CaseStore:
    """Answers identity lookups against the cases of a loaded store."""

    def __init__(self, store: Mapping[str, Any]) -> None:
        self.store = store
        self.cases: Mapping[str, Mapping[str, Any]] = {}
        self.index: dict[tuple[str, ...], str] = {}
        self.refresh()

    def refresh(self) -> None:
        """Rebuild the identity index after cases were applied to the store."""
        self.cases = cast(Mapping[str, Mapping[str, Any]], self.store.get("cases", {}))
        self.index = {}
        for case_id, data in self.cases.items():
            self.index.setdefault(identity_key(data), case_id)

    def exists_by_identity(self, case: CaseRecord) -> CaseRecord | None:
        case_id = self.index.get(identity_key(case.to_dict()))
        if case_id is None:
            return None
        existing = CaseRecord.from_dict(self.cases[case_id])
        existing.id = case_id
        return existing


def apply_import(store: dict[str, Any], result: ImportResult) -> tuple[list[str], list[str]]:
    """Persist the new and updated cases of ``result`` into ``store``."""
    cases = cast(dict[str, MutableMapping[str, Any]], store.setdefault("cases", {}))
    history = cast(list[MutableMapping[str, Any]], store.setdefault("history", []))
    added: list[str] = []
    updated: list[str] = []
    for case in result.new_cases:
        case.id = uuid.uuid4().hex
        cases[case.id] = case.to_dict()
        added.append(case.id)
        history.append(history_entry(case, "added"))
    for case in result.update_cases:
        if not case.id or case.id not in cases:
            logger.warning("Skipping update of unknown case %r", case.name)
            continue
        cases[case.id] = case.to_dict()
        updated.append(case.id)
        history.append(history_entry(case, "updated"))
    if len(history) > STORE_HISTORY_LIMIT:
        del history[:-STORE_HISTORY_LIMIT]
    metadata = cast(dict[str, Any], store.setdefault("metadata", {}))
    metadata["updated_at"] = now_iso()
    metadata["case_count"] = len(cases)
    return added, updated


def history_entry(case: CaseRecord, change: str) -> dict[str, Any]:
    return {
        "case_id": case.id,
        "change": change,
        "timestamp": now_iso(),
        "name": case.name,
        "folder_path": case.folder_path,
    }
