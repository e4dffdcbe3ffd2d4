"""
Flowly - Command line entry point.

Usage:
    flowly inspect graph.json
    flowly validate graph.json
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from flowly.core.document import DocumentError
from flowly.core.settings import EngineSettings
from flowly.core.store import GraphStore


def _load_store(path: Path, settings_path: Path | None) -> GraphStore:
    store = GraphStore(EngineSettings.load(settings_path))
    store.load(path)
    return store


def _port_label(port) -> str:
    if port is None:
        return "-"
    limit = "unbounded" if port.limit is None else str(port.limit)
    return f"{port.id} ({limit})"


def cmd_inspect(args: argparse.Namespace) -> int:
    store = _load_store(args.path, args.settings)

    print(f"{args.path}: {len(store)} nodes, {len(store.get_all_connections())} connections")
    for node in store.get_all_nodes():
        neighbors = ", ".join(n.id for n in store.get_neighbors(node.id)) or "-"
        name = node.name or ""
        flags = " [read-only]" if node.read_only else ""
        print(
            f"  {node.id} {name!r} at ({node.x:g}, {node.y:g}){flags}\n"
            f"    in: {_port_label(node.input)}  out: {_port_label(node.output)}\n"
            f"    neighbors: {neighbors}"
        )
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    _load_store(args.path, args.settings)
    print(f"{args.path}: OK")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="flowly", description="Inspect flow graph documents")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--settings", type=Path, default=None, help="Path to a settings JSON file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    inspect_parser = subparsers.add_parser("inspect", help="Print the nodes and connections of a document")
    inspect_parser.add_argument("path", type=Path, help="Path to a graph document")
    inspect_parser.set_defaults(func=cmd_inspect)

    validate_parser = subparsers.add_parser("validate", help="Check that a document loads")
    validate_parser.add_argument("path", type=Path, help="Path to a graph document")
    validate_parser.set_defaults(func=cmd_validate)

    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the Flowly command line.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except (FileNotFoundError, DocumentError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
