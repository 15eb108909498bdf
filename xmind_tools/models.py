"""Data models for XMind archives and the editor tree."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .errors import MalformedContent


def _new_id() -> str:
    return str(uuid.uuid4())


# Keys the typed fields own. They never appear in an extras bag.
TOPIC_KEYS = frozenset({"id", "title", "class", "children", "structureClass"})
SHEET_KEYS = frozenset({"id", "title", "class", "rootTopic"})
EDITING_KEYS = frozenset({"text", "uid", "layout"})


# --- Archive shape ---------------------------------------------------------

@dataclass
class Topic:
    """A topic record from content.json.

    ``children`` is the ``children.attached`` list. Every key this model
    does not know about lives in ``extras`` and is written back verbatim.
    ``title`` is None when the record has no title key.
    """
    id: str = ""
    title: Optional[str] = ""
    structure_class: Optional[str] = None
    children: list[Topic] = field(default_factory=list)
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, record: dict) -> Topic:
        if not isinstance(record, dict):
            raise MalformedContent(f"topic must be an object, got {type(record).__name__}")

        attached = []
        children = record.get("children")
        if children is not None:
            if not isinstance(children, dict):
                raise MalformedContent("topic 'children' must be an object")
            attached = children.get("attached") or []
            if not isinstance(attached, list):
                raise MalformedContent("'children.attached' must be a list")

        for key in ("title", "structureClass"):
            if record.get(key) is not None and not isinstance(record[key], str):
                raise MalformedContent(f"topic '{key}' must be a string")

        return cls(
            id=record.get("id") or "",
            title=record.get("title"),
            structure_class=record.get("structureClass"),
            children=[cls.from_dict(child) for child in attached],
            extras={k: v for k, v in record.items() if k not in TOPIC_KEYS},
        )

    def to_dict(self) -> dict:
        record = dict(self.extras)
        record["id"] = self.id or _new_id()
        record["class"] = "topic"
        if self.title is not None:
            record["title"] = self.title
        if self.structure_class:
            record["structureClass"] = self.structure_class
        # Leaves have no children key at all, not an empty one.
        if self.children:
            record["children"] = {"attached": [child.to_dict() for child in self.children]}
        return record

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()

    def __repr__(self) -> str:
        suffix = f" ({len(self.children)} children)" if self.children else ""
        return f"Topic({self.title!r}{suffix})"


@dataclass
class Sheet:
    """One sheet record from content.json."""
    id: str = ""
    title: str = ""
    root_topic: Topic = field(default_factory=Topic)
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, record: dict) -> Sheet:
        if not isinstance(record, dict):
            raise MalformedContent(f"sheet must be an object, got {type(record).__name__}")
        if not isinstance(record.get("rootTopic"), dict):
            raise MalformedContent(f"sheet {record.get('id')!r} has no rootTopic object")

        return cls(
            id=record.get("id") or "",
            title=record.get("title") or "Untitled Sheet",
            root_topic=Topic.from_dict(record["rootTopic"]),
            extras={k: v for k, v in record.items() if k not in SHEET_KEYS},
        )

    def to_dict(self) -> dict:
        record = dict(self.extras)
        record["id"] = self.id or _new_id()
        record["class"] = "sheet"
        record["title"] = self.title
        record["rootTopic"] = self.root_topic.to_dict()
        return record


# --- Editor shape ----------------------------------------------------------

@dataclass
class EditingNode:
    """A node of the tree the editor renders and mutates.

    The editor sees it as ``{"data": {...}, "children": [...]}`` where
    ``data`` holds ``text``, ``uid``, an optional ``layout`` and every extra
    attribute carried over from the archive.
    """
    text: Optional[str] = ""
    uid: str = ""
    layout: Optional[str] = None
    children: list[EditingNode] = field(default_factory=list)
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, node: dict) -> EditingNode:
        data = node.get("data") or {}
        return cls(
            text=data.get("text"),
            uid=data.get("uid") or "",
            layout=data.get("layout"),
            children=[cls.from_dict(child) for child in node.get("children") or []],
            extras={k: v for k, v in data.items() if k not in EDITING_KEYS},
        )

    def to_dict(self) -> dict:
        data = dict(self.extras)
        if self.text is not None:
            data["text"] = self.text
        data["uid"] = self.uid
        if self.layout is not None:
            data["layout"] = self.layout
        return {"data": data, "children": [child.to_dict() for child in self.children]}

    @property
    def is_leaf(self) -> bool:
        return len(self.children) == 0

    def walk(self):
        """Yield this node and all descendants depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def walk_with_depth(self, depth: int = 0):
        yield self, depth
        for child in self.children:
            yield from child.walk_with_depth(depth + 1)

    def find(self, text: str) -> Optional[EditingNode]:
        """Find first node with matching text (case-insensitive)."""
        text_lower = text.lower()
        for node in self.walk():
            if (node.text or "").lower() == text_lower:
                return node
        return None

    def find_all(self, text: str) -> list[EditingNode]:
        text_lower = text.lower()
        return [node for node in self.walk() if (node.text or "").lower() == text_lower]

    def find_uid(self, uid: str) -> Optional[EditingNode]:
        for node in self.walk():
            if node.uid == uid:
                return node
        return None

    def add_child(self, text: str, **kwargs) -> EditingNode:
        """Create and append a new child node with a fresh uid."""
        kwargs.setdefault("uid", _new_id())
        child = EditingNode(text=text, **kwargs)
        self.children.append(child)
        return child

    def count(self) -> int:
        """Total number of nodes (including self)."""
        return sum(1 for _ in self.walk())

    def __str__(self) -> str:
        return self.text or ""

    def __repr__(self) -> str:
        suffix = f" ({len(self.children)} children)" if self.children else ""
        return f"EditingNode({self.text!r}{suffix})"


@dataclass
class EditingSheet:
    """A sheet as the editor sees it: ``{"id", "title", "data": root}``."""
    id: str = ""
    title: str = ""
    root: EditingNode = field(default_factory=EditingNode)
    extras: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, sheet: dict) -> EditingSheet:
        return cls(
            id=sheet.get("id") or "",
            title=sheet.get("title") or "",
            root=EditingNode.from_dict(sheet.get("data") or {}),
            extras={k: v for k, v in sheet.items() if k not in ("id", "title", "data")},
        )

    def to_dict(self) -> dict:
        sheet = dict(self.extras)
        sheet["id"] = self.id
        sheet["title"] = self.title
        sheet["data"] = self.root.to_dict()
        return sheet


# --- Archive bookkeeping ---------------------------------------------------

class ArchiveStatus(Enum):
    """Where the auxiliary entries of a document came from."""
    LOADED = "loaded"          # read from a valid archive
    EMPTY = "empty"            # no bytes, or fewer than a zip can hold
    UNREADABLE = "unreadable"  # not a zip, or no content.json inside


@dataclass
class AuxiliaryState:
    """Every non-content entry of the source archive, kept for re-packing.

    ``entries`` maps entry names to raw bytes in archive order. For a new or
    unreadable document it is empty and :attr:`is_absent` is true, which
    tells the writer to synthesize manifest.json and metadata.json.

    ``damaged`` names the entries that could not be extracted at all (for
    example encrypted ones), with the reason. They are not written back.
    """
    status: ArchiveStatus = ArchiveStatus.EMPTY
    entries: dict[str, bytes] = field(default_factory=dict)
    error: Optional[str] = None
    damaged: dict[str, str] = field(default_factory=dict)

    @classmethod
    def absent(cls, status: ArchiveStatus = ArchiveStatus.EMPTY,
               error: Optional[str] = None) -> AuxiliaryState:
        return cls(status=status, entries={}, error=error)

    @property
    def is_absent(self) -> bool:
        return self.status is not ArchiveStatus.LOADED


@dataclass
class Document:
    """An open document: editor sheets plus what is needed to save them.

    ``active_sheet`` belongs to the editor; the converter never reads it.
    """
    sheets: list[EditingSheet] = field(default_factory=list)
    auxiliary: AuxiliaryState = field(default_factory=AuxiliaryState)
    active_sheet: int = 0

    @property
    def recovered(self) -> bool:
        """True when an unreadable archive was replaced by the default document."""
        return self.auxiliary.status is ArchiveStatus.UNREADABLE

    @property
    def is_new(self) -> bool:
        return self.auxiliary.status is ArchiveStatus.EMPTY

    @property
    def topic_count(self) -> int:
        return sum(sheet.root.count() for sheet in self.sheets)

    def walk(self):
        """Iterate all nodes of all sheets depth-first, in sheet order."""
        for sheet in self.sheets:
            yield from sheet.root.walk()

    def find(self, text: str) -> Optional[EditingNode]:
        for sheet in self.sheets:
            found = sheet.root.find(text)
            if found is not None:
                return found
        return None

    def __repr__(self) -> str:
        return f"Document({len(self.sheets)} sheets, {self.topic_count} topics)"
