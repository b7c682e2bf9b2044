"""
chronicle/cli.py -- Command-line front end.

Usage::

    python -m chronicle scan scenes/ch01.md
    python -m chronicle scan-all
    python -m chronicle conflicts [--all]
    python -m chronicle dismiss Elena eyes scenes/ch02.md --note "contacts"
    python -m chronicle accept Elena eyes scenes/ch02.md
    python -m chronicle timeline scenes/ch02.md

``--root`` selects the project directory.  Without it the current directory
is used when it holds a ``_chronicle`` folder, otherwise the per-user data
directory.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from chronicle.config import default_project_root
from chronicle.engine import ChronicleEngine
from chronicle.errors import ConfigurationError, ResourceUnavailableError
from chronicle.models.base import ConflictRecord, ScanResult

logger = logging.getLogger("chronicle")

PROJECT_MARKER = "_chronicle"


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def resolve_root(root: str | None) -> str:
    if root:
        return os.path.abspath(root)
    cwd = os.getcwd()
    if os.path.isdir(os.path.join(cwd, PROJECT_MARKER)):
        return cwd
    return default_project_root()


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

def _format_conflict(conflict: ConflictRecord) -> str:
    line = f"{conflict.entity}.{conflict.attribute}: {conflict.prior_value!r} " \
           f"({conflict.prior_scene}) vs {conflict.new_value!r} " \
           f"({conflict.new_scene}:{conflict.new_line})"
    if not conflict.is_active:
        note = f" -- {conflict.dismissal_note}" if conflict.dismissal_note else ""
        line += f" [dismissed {conflict.dismissed_at or ''}{note}]"
    return line


def _print_scan(result: ScanResult) -> None:
    print(f"Scanned {len(result.scanned_paths)} document(s) in {result.duration_ms} ms")
    for entity in result.entities:
        print(f"  {entity.entity_name}")
        for change in entity.changes:
            old = change.old_value if change.old_value is not None else "-"
            new = change.new_value if change.new_value is not None else "(cleared)"
            print(f"    {change.attribute}: {old} -> {new}")
        for conflict in entity.conflicts:
            print(f"    CONFLICT {_format_conflict(conflict)}")
    if result.new_conflicts:
        print(f"{len(result.new_conflicts)} new conflict(s)")
    for failure in result.failures:
        print(f"  FAILED {failure}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _cmd_scan(engine: ChronicleEngine, args: argparse.Namespace) -> int:
    if not engine.is_scene_file(args.path):
        print(f"Not a scene file: {args.path}")
        return 0
    result = engine.scan_one(args.path)
    _print_scan(result)
    return 1 if result.failures else 0


def _cmd_scan_all(engine: ChronicleEngine, args: argparse.Namespace) -> int:
    result = engine.scan_all()
    _print_scan(result)
    return 1 if result.failures else 0


def _cmd_conflicts(engine: ChronicleEngine, args: argparse.Namespace) -> int:
    conflicts = engine.conflicts.all() if args.all else engine.active_conflicts()
    if not conflicts:
        print("No conflicts.")
    for conflict in conflicts:
        print(_format_conflict(conflict))
    return 0


def _resolve(engine: ChronicleEngine, args: argparse.Namespace, accept: bool) -> int:
    conflict = engine.find_conflict(args.entity, args.attribute, args.scene)
    if conflict is None:
        print(f"No active conflict for {args.entity}.{args.attribute} in {args.scene}")
        return 1
    if accept:
        engine.accept_new_value(conflict)
        print(f"Accepted {conflict.new_value!r} for {conflict.entity}.{conflict.attribute}")
    else:
        engine.dismiss_conflict(conflict, args.note or "")
        print(f"Dismissed {conflict.entity}.{conflict.attribute} in {conflict.new_scene}")
    return 0


def _cmd_dismiss(engine: ChronicleEngine, args: argparse.Namespace) -> int:
    return _resolve(engine, args, accept=False)


def _cmd_accept(engine: ChronicleEngine, args: argparse.Namespace) -> int:
    return _resolve(engine, args, accept=True)


def _cmd_timeline(engine: ChronicleEngine, args: argparse.Namespace) -> int:
    record = engine.scan_temporal(args.path)
    if record.anchor:
        print(f"Anchor: {record.anchor}")
    if not record.markers:
        print("No temporal markers.")
    for marker in record.markers:
        print(f"  line {marker.line:>4}  {marker.type:<18} {marker.text}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chronicle",
        description="Track story continuity across scene documents",
    )
    parser.add_argument("--root", help="Project directory (default: current directory)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan one scene document")
    scan.add_argument("path")
    scan.set_defaults(func=_cmd_scan)

    scan_all = sub.add_parser("scan-all", help="Scan every scene document")
    scan_all.set_defaults(func=_cmd_scan_all)

    conflicts = sub.add_parser("conflicts", help="List conflicts")
    conflicts.add_argument("--all", action="store_true", help="Include dismissed conflicts")
    conflicts.set_defaults(func=_cmd_conflicts)

    for name, func, helptext in (
        ("dismiss", _cmd_dismiss, "Mark a conflict as intentional"),
        ("accept", _cmd_accept, "Make the conflicting value authoritative"),
    ):
        action = sub.add_parser(name, help=helptext)
        action.add_argument("entity")
        action.add_argument("attribute")
        action.add_argument("scene")
        if name == "dismiss":
            action.add_argument("--note", default="", help="Reason for the dismissal")
        action.set_defaults(func=func)

    timeline = sub.add_parser("timeline", help="List temporal markers in a document")
    timeline.add_argument("path")
    timeline.set_defaults(func=_cmd_timeline)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)

    root = resolve_root(args.root)
    try:
        with ChronicleEngine(root) as engine:
            return args.func(engine, args)
    except (ConfigurationError, ResourceUnavailableError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
