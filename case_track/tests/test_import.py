from __future__ import annotations

import copy
import json

import pytest

from case_track.mindmap_import import importer, normalize, validate
from case_track.mindmap_import.normalize import CaseRecord
from case_track.mindmap_import.parser import MindMapSheet, OutlineNode
from case_track.mindmap_import.tags import Category


def node(title: str, *children: OutlineNode) -> OutlineNode:
    return OutlineNode(title, children)


def sheet(*children: OutlineNode) -> MindMapSheet:
    return MindMapSheet("Sheet 1", node("Root", *children))


class FakeLookup:
    def __init__(self, existing: dict[str, CaseRecord] | None = None) -> None:
        self.existing = existing or {}
        self.calls: list[str] = []

    def exists_by_identity(self, case: CaseRecord) -> CaseRecord | None:
        self.calls.append(case.name)
        found = self.existing.get(case.name)
        return copy.deepcopy(found) if found else None


class BrokenLookup:
    def exists_by_identity(self, case: CaseRecord) -> CaseRecord | None:
        raise RuntimeError("lookup unavailable")


@pytest.fixture()
def session() -> validate.ImportSession:
    return importer.create_session("proj", "alice", max_node_depth=5)


def messages(result: importer.ImportResult) -> list[str]:
    return [diagnostic.message for diagnostic in result.diagnostics]


def test_walk_builds_cases_and_empty_folders(session: validate.ImportSession) -> None:
    result = importer.import_sheets(
        [
            sheet(
                node("Login", node("tc:Valid login", node("enter password")), node("Empty")),
                node("Lonely"),
                node("Orders", node("History", node("tc-P2:List orders"))),
            )
        ],
        session,
    )
    assert result.status == importer.STATUS_SUCCESS
    assert result.diagnostics == []
    assert [(case.folder_path, case.name) for case in result.new_cases] == [
        ("/Login", "Valid login"),
        ("/Orders/History", "List orders"),
    ]
    assert result.empty_folders == ["/Login/Empty", "/Lonely"]
    paths = [case.folder_path for case in result.new_cases] + result.empty_folders
    assert all(path.startswith("/") and not path.endswith("/") for path in paths)


def test_top_level_case_aborts_import(session: validate.ImportSession) -> None:
    result = importer.import_sheets(
        [sheet(node("Module", node("tc:Fine")), node("tc:Misplaced"), node("After", node("tc:x")))],
        session,
    )
    assert result.status == importer.STATUS_ABORTED
    assert len(result.diagnostics) == 1
    assert result.diagnostics[0].message.startswith("Misplaced:")
    assert result.new_cases == []
    assert result.update_cases == []
    assert not result.completed


def test_identical_cases_are_kept_and_reported(session: validate.ImportSession) -> None:
    twin = node("tc-P1:Login", node("open", node("form shown")))
    result = importer.import_sheets([sheet(node("Auth", twin, twin, twin))], session)
    assert len(result.new_cases) == 3
    assert messages(result) == [validate.MSG_DUPLICATE, validate.MSG_DUPLICATE]
    assert result.diagnostics[0].context == "/Auth/Login"


def test_known_name_with_stored_case_becomes_update() -> None:
    stored = CaseRecord(
        name="Login",
        folder_path="/Auth",
        priority="P1",
        steps="[]",
        project_id="proj",
        maintainer="alice",
        id="case-1",
    )
    lookup = FakeLookup({"Login": stored})
    names = {"Login"}
    session = importer.create_session("proj", "alice", lookup=lookup, known_names=names)
    result = importer.import_sheets(
        [sheet(node("Auth", node("tc-P1-smoke:Login", node("open", node("form shown")))))],
        session,
    )
    assert result.new_cases == []
    assert len(result.update_cases) == 1
    updated = result.update_cases[0]
    assert updated.id == "case-1"
    assert json.loads(updated.steps) == [{"num": 1, "desc": "open", "result": "form shown"}]
    # priority/category checks are skipped for updates
    assert result.diagnostics == []
    assert lookup.calls == ["Login"]


def test_known_name_without_stored_case_stays_new() -> None:
    names = {"Login"}
    session = importer.create_session("proj", "alice", lookup=FakeLookup(), known_names=names)
    result = importer.import_sheets(
        [sheet(node("Auth", node("tc:Login"), node("tc:Logout")))], session
    )
    assert [case.name for case in result.new_cases] == ["Login", "Logout"]
    assert names == {"Login", "Logout"}


def test_priority_and_category_problems_are_flagged(session: validate.ImportSession) -> None:
    result = importer.import_sheets(
        [sheet(node("Auth", node("tc-P7:Bad priority"), node("tc-smoke:No category")))],
        session,
    )
    assert [case.priority for case in result.new_cases] == ["P7", "P0"]
    assert result.new_cases[1].category is None
    assert messages(result) == [validate.MSG_PRIORITY_FORMAT, validate.MSG_CATEGORY_FORMAT]


def test_title_without_name_is_dropped(session: validate.ImportSession) -> None:
    result = importer.import_sheets([sheet(node("Auth", node("tc:"), node("tc:Kept")))], session)
    assert [case.name for case in result.new_cases] == ["Kept"]
    assert messages(result) == [validate.MSG_NAME_FORMAT]
    assert result.diagnostics[0].context == "tc:"


def test_segment_length_limit(session: validate.ImportSession) -> None:
    ok = "a" * 30
    too_long = "b" * 31
    result = importer.import_sheets(
        [sheet(node(ok, node("tc:Fits")), node(too_long, node("tc:Overflows")), node(too_long))],
        session,
    )
    assert messages(result) == [validate.MSG_SEGMENT_TOO_LONG, validate.MSG_SEGMENT_TOO_LONG]
    assert all(diagnostic.context == too_long for diagnostic in result.diagnostics)
    assert len(result.new_cases) == 2


def test_depth_limit_and_empty_segment() -> None:
    session = importer.create_session("proj", "alice", max_node_depth=2)
    result = importer.import_sheets(
        [sheet(node("A", node("B", node("C", node("tc:Deep")))), node("X", node("", node("Y", node("tc:Gap")))))],
        session,
    )
    assert messages(result) == [
        validate.depth_message(2),
        validate.depth_message(2),
        validate.MSG_CASE_MODULE_EMPTY,
    ]
    assert result.diagnostics[0].context == "/A/B/C"
    assert result.diagnostics[2].context == "/X//Y/Gap"


def test_folder_validation_runs_on_empty_folders() -> None:
    session = importer.create_session("proj", "alice", max_node_depth=2)
    result = importer.import_sheets([sheet(node("A", node("B", node("C"))))], session)
    assert result.empty_folders == ["/A/B/C"]
    assert messages(result) == [validate.depth_message(2)]


def test_name_length_and_functional_auto(session: validate.ImportSession) -> None:
    case = CaseRecord(name="n" * 51, folder_path="Auth", method=normalize.METHOD_AUTO)
    assert validate.validate_case(case, session) is True
    assert case.folder_path == "/Auth"
    assert [diagnostic.message for diagnostic in session.diagnostics] == [
        validate.MSG_NAME_TOO_LONG,
        validate.MSG_FUNCTIONAL_AUTO,
    ]


def test_lookup_failure_is_reported_with_partial_results() -> None:
    session = importer.create_session(
        "proj", "alice", lookup=BrokenLookup(), known_names={"Second"}
    )
    result = importer.import_sheets(
        [sheet(node("Auth", node("tc:First"), node("tc:Second"), node("tc:Third")))], session
    )
    assert result.status == importer.STATUS_FAILED
    assert [case.name for case in result.new_cases] == ["First"]
    assert result.diagnostics[-1].message == "lookup unavailable"


def test_validation_is_idempotent_for_new_cases() -> None:
    cases = [
        normalize.assemble_case(title, "Auth", None, project_id="proj", maintainer="alice")
        for title in ("tc-P1:Login", "tc-P9:Logout", "tc-P1:Login")
    ]
    names: set[str] = {"Existing"}

    def run(records: list[CaseRecord]) -> tuple[list[dict[str, object]], list[validate.Diagnostic]]:
        session = importer.create_session("proj", "alice", known_names=set(names))
        accepted = [case for case in records if validate.validate_case(case, session)]
        return [case.to_dict() for case in accepted], session.diagnostics

    first, first_diagnostics = run(cases)
    second, second_diagnostics = run(cases)
    assert first == second
    assert first_diagnostics == second_diagnostics
    assert first[0]["category"] == Category.FUNCTIONAL.value
