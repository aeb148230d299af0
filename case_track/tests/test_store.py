from __future__ import annotations

import json
from pathlib import Path

import pytest

from case_track.mindmap_import import import_mindmap, importer, renderer, store
from case_track.scripts import import_mindmap as cli

MARKDOWN_CONTENT = """# Shop
## Login
- tc-P1:Valid login
  - enter password
    - dashboard shown
- tc-P1:Valid login
  - enter password
    - dashboard shown
## Orders
"""


@pytest.fixture()
def mindmap(tmp_path: Path) -> Path:
    path = tmp_path / "shop.md"
    path.write_text(MARKDOWN_CONTENT, encoding="utf-8")
    return path


def run_import(path: Path, store_data: dict[str, object]) -> importer.ImportResult:
    session = importer.create_session(
        "proj",
        "alice",
        lookup=store.CaseStore(store_data),
        known_names=store.known_names(store_data, "proj"),
    )
    return importer.import_file(path, session)


def test_apply_import_then_reimport_updates(mindmap: Path) -> None:
    store_data = store.ensure_store()
    first = run_import(mindmap, store_data)
    assert len(first.new_cases) == 2
    added, updated = store.apply_import(store_data, first)
    assert len(added) == 2
    assert updated == []
    assert store_data["metadata"]["case_count"] == 2

    mindmap.write_text(MARKDOWN_CONTENT.replace("dashboard shown", "home page shown"), encoding="utf-8")
    second = run_import(mindmap, store_data)
    assert second.new_cases == []
    assert [case.id for case in second.update_cases] == [added[0], added[0]]
    added_again, updated_again = store.apply_import(store_data, second)
    assert added_again == []
    assert updated_again == [added[0], added[0]]
    stored = store_data["cases"][added[0]]
    assert "home page shown" in stored["steps"]
    assert [entry["change"] for entry in store_data["history"]] == [
        "added",
        "added",
        "updated",
        "updated",
    ]


def test_lookup_ignores_other_projects(mindmap: Path) -> None:
    store_data = store.ensure_store()
    store.apply_import(store_data, run_import(mindmap, store_data))
    assert store.known_names(store_data, "proj") == {"Valid login"}
    assert store.known_names(store_data, "other") == set()


def test_store_round_trip_and_summary(mindmap: Path, tmp_path: Path) -> None:
    store_path = tmp_path / "_index" / "cases.json"
    store_data = store.ensure_store()
    store.apply_import(store_data, run_import(mindmap, store_data))
    store.save_store(store_path, store_data)
    loaded = store.load_store(store_path)
    assert loaded["cases"] == store_data["cases"]
    content = renderer.render_summary(loaded, tmp_path / "_index" / "SUMMARY.md")
    assert "**Total cases:** 2" in content
    assert "| /Login | Valid login | P1 | functional |" in content


def test_import_mindmap_wrapper(mindmap: Path, tmp_path: Path) -> None:
    result = import_mindmap(mindmap, "proj", "alice", store_path=tmp_path / "missing.json")
    assert result.completed
    assert result.empty_folders == ["/Orders"]
    assert [diagnostic.context for diagnostic in result.diagnostics] == ["/Login/Valid login"]


def test_report_lists_diagnostics(mindmap: Path, tmp_path: Path) -> None:
    result = run_import(mindmap, store.ensure_store())
    content = renderer.render_report({"shop.md": result}, tmp_path / "IMPORT_REPORT.md")
    assert "## shop.md" in content
    assert "| Case already exists in this import | /Login/Valid login |" in content
    assert "- `/Orders`" in content
    assert (tmp_path / "IMPORT_REPORT.md").exists()


def test_cli_import_and_summary(mindmap: Path, tmp_path: Path) -> None:
    index_dir = tmp_path / "index"
    cli.main(["--index-dir", str(index_dir), "import", str(mindmap), "--project", "proj"])
    data = json.loads((index_dir / "cases.json").read_text(encoding="utf-8"))
    assert data["metadata"]["case_count"] == 2
    assert {case["maintainer"] for case in data["cases"].values()} == {cli.DEFAULT_MAINTAINER}
    assert "Valid login" in (index_dir / "IMPORT_REPORT.md").read_text(encoding="utf-8")

    cli.main(["--index-dir", str(index_dir), "summary"])
    assert (index_dir / "SUMMARY.md").exists()


def test_cli_check_exits_on_diagnostics(mindmap: Path, tmp_path: Path) -> None:
    index_dir = tmp_path / "index"
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--index-dir", str(index_dir), "check", str(mindmap)])
    assert excinfo.value.code == 1
    assert not (index_dir / "cases.json").exists()


def test_cli_rejects_missing_source(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        cli.main(["--index-dir", str(tmp_path), "import", str(tmp_path / "nope.xmind")])


def test_cli_directory_import_routes_repeat_to_update(tmp_path: Path) -> None:
    maps_dir = tmp_path / "maps"
    maps_dir.mkdir()
    for name in ("a.md", "b.md"):
        (maps_dir / name).write_text("# Root\n## Auth\n- tc:Login\n  - open\n", encoding="utf-8")
    index_dir = tmp_path / "index"
    cli.main(["--index-dir", str(index_dir), "import", str(maps_dir), "--project", "proj"])
    data = json.loads((index_dir / "cases.json").read_text(encoding="utf-8"))
    assert data["metadata"]["case_count"] == 1
    assert [entry["change"] for entry in data["history"]] == ["added", "updated"]
    [case] = data["cases"].values()
    assert case["folder_path"] == "/Auth"


def test_cli_check_prints_json(mindmap: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    index_dir = tmp_path / "index"
    with pytest.raises(SystemExit):
        cli.main(["--index-dir", str(index_dir), "check", str(mindmap), "--json"])
    payload = json.loads(capsys.readouterr().out)
    result = payload["shop.md"]
    assert result["status"] == importer.STATUS_SUCCESS
    assert len(result["new_cases"]) == 2
    assert result["empty_folders"] == ["/Orders"]
    assert result["diagnostics"][0]["message"] == "Case already exists in this import"
    assert not (index_dir / "cases.json").exists()
