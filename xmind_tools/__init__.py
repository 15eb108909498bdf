"""xmind-tools: Load and save XMind mind maps as editable trees.

A pure Python library that converts between the XMind archive format
(a zip holding content.json, manifest.json and metadata.json) and the
``{"data": {...}, "children": [...]}`` tree a mind-map editor works on.
Unknown topic fields, topic ids, layouts and sheet order all survive a
load/save round trip. No external dependencies required.

Usage:
    import xmind_tools

    # Load a document (empty bytes give a fresh one-sheet document)
    doc = xmind_tools.load(Path("Plan.xmind").read_bytes())
    print(doc)  # Document(2 sheets, 41 topics)

    # Edit the tree
    root = doc.sheets[0].root
    root.add_child("New idea")

    # Hand the editor plain dicts, take them back
    payload = [sheet.to_dict() for sheet in doc.sheets]
    sheets = [xmind_tools.EditingSheet.from_dict(s) for s in payload]

    # Save, reusing everything the original archive carried
    data = xmind_tools.save(sheets, doc.auxiliary)

    # Or the file helpers
    doc = xmind_tools.read("Plan.xmind")
    xmind_tools.write(doc, "Plan.xmind")
"""

__version__ = "0.1.0"

from .errors import XMindError, MalformedContent
from .layout import Layout, DEFAULT_LAYOUT
from .models import (
    ArchiveStatus,
    AuxiliaryState,
    Document,
    EditingNode,
    EditingSheet,
    Sheet,
    Topic,
)
from .transform import to_editing, to_archive, sheet_to_editing, sheet_to_archive
from .reader import load, open_archive, read
from .writer import save, write_archive, write
from .config import Settings

__all__ = [
    "load",
    "save",
    "read",
    "write",
    "open_archive",
    "write_archive",
    "to_editing",
    "to_archive",
    "sheet_to_editing",
    "sheet_to_archive",
    "Document",
    "EditingNode",
    "EditingSheet",
    "Sheet",
    "Topic",
    "AuxiliaryState",
    "ArchiveStatus",
    "Layout",
    "DEFAULT_LAYOUT",
    "Settings",
    "XMindError",
    "MalformedContent",
]
