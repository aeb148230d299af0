"""Markdown rendering of import reports and store summaries."""
from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

from .importer import ImportResult


def render_report(results: Mapping[str, ImportResult], output_path: Path) -> str:
    now = datetime.now(UTC).replace(microsecond=0).isoformat()
    lines = ["# Mind Map Import Report", "", f"_Generated: {now}_", ""]
    for source, result in results.items():
        lines.extend(format_result(source, result))
    if not results:
        lines.append("_No mind map files found._")
        lines.append("")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    content = "\n".join(lines)
    output_path.write_text(content, encoding="utf-8")
    return content


def format_result(source: str, result: ImportResult) -> list[str]:
    lines = [f"## {escape_cell(source)}", ""]
    lines.append(
        f"**Status:** {result.status} | **New:** {len(result.new_cases)} | "
        f"**Updated:** {len(result.update_cases)} | **Diagnostics:** {len(result.diagnostics)}"
    )
    lines.append("")
    if result.diagnostics:
        lines.append("### Diagnostics")
        lines.append("")
        lines.append("| Message | Context |")
        lines.append("| --- | --- |")
        for diagnostic in result.diagnostics:
            lines.append(f"| {escape_cell(diagnostic.message)} | {escape_cell(diagnostic.context)} |")
        lines.append("")
    for heading, cases in (("New cases", result.new_cases), ("Updated cases", result.update_cases)):
        if not cases:
            continue
        lines.append(f"### {heading}")
        lines.append("")
        lines.extend(case_table(case.to_dict() for case in cases))
        lines.append("")
    if result.empty_folders:
        lines.append("### Folders without cases")
        lines.append("")
        lines.extend(f"- `{path}`" for path in result.empty_folders)
        lines.append("")
    return lines


def render_summary(store: Mapping[str, Any], output_path: Path) -> str:
    cases = cast(dict[str, Mapping[str, Any]], store.get("cases", {}))
    priority_counts: Counter[str] = Counter()
    category_counts: Counter[str] = Counter()
    for data in cases.values():
        priority_counts[str(data.get("priority") or "unset")] += 1
        category_counts[str(data.get("category") or "unset")] += 1
    now = datetime.now(UTC).replace(microsecond=0).isoformat()
    lines = ["# Test Case Store", "", f"_Last build: {now}_", ""]
    lines.append(f"**Total cases:** {len(cases)}")
    lines.append("")
    if priority_counts:
        lines.append("**By priority:** " + format_counts(priority_counts))
        lines.append("")
    if category_counts:
        lines.append("**By category:** " + format_counts(category_counts))
        lines.append("")
    lines.append("## Cases")
    lines.append("")
    ordered = sorted(
        cases.values(),
        key=lambda data: (str(data.get("folder_path", "")), str(data.get("name", "")).lower()),
    )
    lines.extend(case_table(ordered))
    lines.append("")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    content = "\n".join(lines)
    output_path.write_text(content, encoding="utf-8")
    return content


def format_counts(counts: Counter[str]) -> str:
    return ", ".join(f"{key} ({count})" for key, count in sorted(counts.items()))


def case_table(cases: Iterable[Mapping[str, Any]]) -> list[str]:
    lines = [
        "| Folder | Name | Priority | Category | Precondition | Steps |",
        "| --- | --- | --- | --- | --- | --- |",
    ]
    for data in cases:
        lines.append(format_case_row(data))
    return lines


def format_case_row(data: Mapping[str, Any]) -> str:
    steps = cast(list[Mapping[str, Any]], json.loads(str(data.get("steps") or "[]")))
    step_text = "<br>".join(format_step(step) for step in steps if step.get("desc"))
    return (
        "| "
        f"{escape_cell(str(data.get('folder_path', '')))} | {escape_cell(str(data.get('name', '')))} | "
        f"{escape_cell(str(data.get('priority', '')))} | {escape_cell(str(data.get('category') or ''))} | "
        f"{escape_cell(str(data.get('precondition') or ''))} | {step_text} |"
    )


def format_step(step: Mapping[str, Any]) -> str:
    text = f"{step.get('num')}. {step.get('desc', '')}"
    if step.get("result"):
        text += f" -> {step['result']}"
    return escape_cell(text)


def escape_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", "<br>")
