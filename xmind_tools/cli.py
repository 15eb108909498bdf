"""Command-line interface for xmind-tools."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from . import load, read, write
from .errors import MalformedContent
from .layout import Layout
from .models import AuxiliaryState, Document, EditingSheet


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="xmind-tools",
        description="Inspect, create and repack XMind .xmind files",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    # --- info ---
    p_info = sub.add_parser("info", help="Show document summary")
    p_info.add_argument("file", help="Path to .xmind file")
    p_info.add_argument("--depth", type=int, default=1, help="Tree depth to show (default: 1)")

    # --- tree ---
    p_tree = sub.add_parser("tree", help="Print full topic tree")
    p_tree.add_argument("file", help="Path to .xmind file")
    p_tree.add_argument("--sheet", type=int, help="Only this sheet (0-based)")
    p_tree.add_argument("--depth", type=int, default=99, help="Max depth")

    # --- find ---
    p_find = sub.add_parser("find", help="Search for topics by text")
    p_find.add_argument("file", help="Path to .xmind file")
    p_find.add_argument("query", help="Text to search for")

    # --- new ---
    p_new = sub.add_parser("new", help="Create a new one-sheet document")
    p_new.add_argument("file", help="Output .xmind file")
    p_new.add_argument("--title", default=None, help="Sheet title")
    p_new.add_argument("--root", default=None, help="Central topic text")
    p_new.add_argument(
        "--layout", choices=[layout.editing_name for layout in Layout], help="Root layout"
    )

    # --- dump ---
    p_dump = sub.add_parser("dump", help="Dump the editor tree as JSON")
    p_dump.add_argument("file", help="Path to .xmind file")
    p_dump.add_argument("-o", "--output", help="Output JSON file (default: stdout)")

    # --- pack ---
    p_pack = sub.add_parser("pack", help="Pack editor-tree JSON into an .xmind file")
    p_pack.add_argument("json_file", help="JSON list of sheets, as written by 'dump'")
    p_pack.add_argument("file", help="Output .xmind file")
    p_pack.add_argument("--base", help="Existing .xmind whose other entries are reused")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "info": cmd_info,
        "tree": cmd_tree,
        "find": cmd_find,
        "new": cmd_new,
        "dump": cmd_dump,
        "pack": cmd_pack,
    }
    try:
        status = commands[args.command](args)
    except MalformedContent as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except FileNotFoundError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return status or 0


def cmd_info(args):
    doc = read(args.file)
    print(f"File: {args.file}")
    if doc.recovered:
        print(f"Warning: unreadable archive ({doc.auxiliary.error}); showing default document")
    print(f"Sheets: {len(doc.sheets)}")
    print(f"Topics: {doc.topic_count}")
    print()

    for sheet in doc.sheets:
        layout = sheet.root.layout or "-"
        print(f"[{sheet.title}] {sheet.root.text or ''} ({layout}, {sheet.root.count()} topics)")
        for node, depth in sheet.root.walk_with_depth():
            if depth == 0 or depth > args.depth:
                continue
            desc_count = node.count() - 1
            suffix = f" ({desc_count} items)" if desc_count > 0 else ""
            print("  " * depth + f"• {node.text or ''}{suffix}")


def cmd_tree(args):
    doc = read(args.file)
    if args.sheet is not None and not 0 <= args.sheet < len(doc.sheets):
        print(f"error: sheet {args.sheet} out of range (document has {len(doc.sheets)})", file=sys.stderr)
        return 1
    sheets = doc.sheets if args.sheet is None else [doc.sheets[args.sheet]]

    for sheet in sheets:
        print(f"# {sheet.title}")
        for node, depth in sheet.root.walk_with_depth():
            if depth > args.depth:
                continue
            layout = f" [{node.layout}]" if node.layout else ""
            print("  " * depth + f"{node.text or ''}{layout}")


def cmd_find(args):
    doc = read(args.file)
    query = args.query.lower()

    for sheet in doc.sheets:
        for path in _paths(sheet.root, []):
            if query in path[-1].lower():
                print(f"{sheet.title}: " + " → ".join(path))


def _paths(node, prefix):
    path = prefix + [node.text or ""]
    yield path
    for child in node.children:
        yield from _paths(child, path)


def cmd_new(args):
    doc = load(b"")
    sheet = doc.sheets[0]
    if args.title:
        sheet.title = args.title
    if args.root:
        sheet.root.text = args.root
    if args.layout:
        sheet.root.layout = args.layout
    path = write(doc, args.file, backup=False)
    print(f"Created {path}")


def cmd_dump(args):
    doc = read(args.file)
    payload = json.dumps([sheet.to_dict() for sheet in doc.sheets], ensure_ascii=False, indent=2)

    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"Dumped to {args.output}")
    else:
        print(payload)


def cmd_pack(args):
    payload = json.loads(Path(args.json_file).read_text(encoding="utf-8"))
    sheets = [EditingSheet.from_dict(sheet) for sheet in payload]

    auxiliary = read(args.base).auxiliary if args.base else AuxiliaryState()
    doc = Document(sheets=sheets, auxiliary=auxiliary)
    path = write(doc, args.file)
    print(f"Packed {len(sheets)} sheets into {path}")


if __name__ == "__main__":
    sys.exit(main())
