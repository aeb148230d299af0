#!/usr/bin/env python3
"""CLI entrypoint for the mind map test case importer."""
from __future__ import annotations

import argparse
import json
import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path

from case_track.mindmap_import import importer, parser, renderer, store
from case_track.mindmap_import.importer import ImportResult

DEFAULT_PROJECT = "default"
DEFAULT_MAINTAINER = "admin"


class ImporterPaths:
    def __init__(self, index_dir: Path | None = None) -> None:
        self.index_dir = (index_dir or Path.cwd() / "case_track" / "_index").resolve()
        self.store_path = self.index_dir / "cases.json"
        self.report_path = self.index_dir / "IMPORT_REPORT.md"
        self.summary_path = self.index_dir / "SUMMARY.md"


logger = logging.getLogger("case_track.mindmap_import.cli")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )


def resolve_project(value: str | None) -> str:
    return value or os.environ.get("CASE_TRACK_PROJECT") or DEFAULT_PROJECT


def resolve_maintainer(value: str | None) -> str:
    return value or os.environ.get("CASE_TRACK_MAINTAINER") or DEFAULT_MAINTAINER


def resolve_source(path: str) -> Path:
    resolved = Path(path).expanduser().resolve()
    if not resolved.exists():
        raise SystemExit(f"Mind map not found: {resolved}")
    return resolved


def run_import(
    args: argparse.Namespace,
    store_data: Mapping[str, object],
    apply: Callable[[str, ImportResult], None] | None = None,
) -> dict[str, ImportResult]:
    """Import ``args.path`` against ``store_data``.

    ``apply`` is called with each file's result before the next file is
    imported; the store lookup is re-indexed afterwards so later files see
    the cases it stored.
    """
    source = resolve_source(args.path)
    project_id = resolve_project(args.project)
    maintainer = resolve_maintainer(args.maintainer)
    lookup = store.CaseStore(store_data)
    names = store.known_names(store_data, project_id)

    def on_result(source_name: str, result: ImportResult) -> None:
        if apply is None:
            return
        apply(source_name, result)
        lookup.refresh()

    if source.is_dir():
        logger.info("Importing mind maps below %s", source)
        return importer.import_directory(
            source,
            source,
            project_id=project_id,
            maintainer=maintainer,
            lookup=lookup,
            known_names=names,
            max_node_depth=args.max_depth,
            on_result=on_result,
        )
    session = importer.create_session(
        project_id,
        maintainer,
        lookup=lookup,
        known_names=names,
        max_node_depth=args.max_depth,
    )
    result = importer.import_file(source, session)
    on_result(source.name, result)
    return {source.name: result}


def command_check(args: argparse.Namespace) -> None:
    paths = ImporterPaths(resolve_index(args.index_dir))
    store_data = store.load_store(paths.store_path)
    results = run_import(args, store_data)
    if args.json:
        payload = {source: result.to_dict() for source, result in results.items()}
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print_diagnostics(results)
    if any(result.diagnostics for result in results.values()):
        raise SystemExit(1)


def command_import(args: argparse.Namespace) -> None:
    paths = ImporterPaths(resolve_index(args.index_dir))
    store_data = store.load_store(paths.store_path)
    totals = {"added": 0, "updated": 0}

    def apply(source: str, result: ImportResult) -> None:
        if not result.completed:
            logger.error("Import of %s %s; nothing stored", source, result.status)
            return
        added, updated = store.apply_import(store_data, result)
        totals["added"] += len(added)
        totals["updated"] += len(updated)

    results = run_import(args, store_data, apply)
    store.save_store(paths.store_path, store_data)
    renderer.render_report(results, paths.report_path)
    logger.info(
        "Store updated. Added: %d, Updated: %d. Report written to %s",
        totals["added"],
        totals["updated"],
        paths.report_path,
    )


def command_summary(args: argparse.Namespace) -> None:
    paths = ImporterPaths(resolve_index(args.index_dir))
    store_data = store.load_store(paths.store_path)
    content = renderer.render_summary(store_data, paths.summary_path)
    logger.info("Summary written to %s (%d characters)", paths.summary_path, len(content))


def resolve_index(value: str | None) -> Path | None:
    return Path(value).expanduser() if value else None


def print_diagnostics(results: Mapping[str, ImportResult]) -> None:
    print("Source".ljust(40), "Status".ljust(10), "New".ljust(6), "Updated".ljust(8), "Diagnostics")
    print("-" * 80)
    for source, result in sorted(results.items()):
        print(
            source.ljust(40),
            result.status.ljust(10),
            str(len(result.new_cases)).ljust(6),
            str(len(result.update_cases)).ljust(8),
            str(len(result.diagnostics)),
        )
    for source, result in sorted(results.items()):
        for diagnostic in result.diagnostics:
            print(f"{source}: {diagnostic.message} [{diagnostic.context}]")


def add_import_arguments(command: argparse.ArgumentParser) -> None:
    command.add_argument(
        "path",
        help=(
            f"Mind map file or directory ({', '.join(sorted(parser.SUPPORTED_EXTENSIONS))}); "
            "files in a directory without any tc-tagged node are skipped"
        ),
    )
    command.add_argument("--project", help="Target project id (overrides CASE_TRACK_PROJECT)")
    command.add_argument("--maintainer", help="Maintainer of imported cases (overrides CASE_TRACK_MAINTAINER)")
    command.add_argument(
        "--max-depth",
        type=int,
        help="Maximum module tree depth (overrides CASE_TRACK_MAX_NODE_DEPTH)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser_obj = argparse.ArgumentParser(description="Import test cases from mind maps")
    parser_obj.add_argument("--index-dir", help="Directory holding the case store and reports")
    parser_obj.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser_obj.add_subparsers(dest="command")

    check_parser = subparsers.add_parser("check", help="Dry-run import and print diagnostics")
    add_import_arguments(check_parser)
    check_parser.add_argument("--json", action="store_true", help="Print results as JSON")
    check_parser.set_defaults(func=command_check)

    import_parser = subparsers.add_parser("import", help="Import cases into the store")
    add_import_arguments(import_parser)
    import_parser.set_defaults(func=command_import)

    summary_parser = subparsers.add_parser("summary", help="Render Markdown summary of the store")
    summary_parser.set_defaults(func=command_summary)

    return parser_obj


def main(argv: list[str] | None = None) -> None:
    parser_obj = build_parser()
    args = parser_obj.parse_args(argv)
    if not getattr(args, "command", None):
        parser_obj.print_help()
        return
    configure_logging(args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
