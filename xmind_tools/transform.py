"""Map between the archive topic tree and the editor tree.

Both directions are pure: they build new objects (extras are deep-copied)
and keep no state, so a sheet can be converted on load and again on every
save.

The round trip ``to_archive(to_editing(t)) == t`` holds for any tree whose
root has a known structure class. Two cases degrade instead of failing:

- an unknown ``structureClass`` on load gives a node without a layout;
- a layout with no archive equivalent on save gives a topic without a
  ``structureClass``.

Both are logged as warnings.
"""

from __future__ import annotations

import copy
import logging
import uuid

from .layout import DEFAULT_LAYOUT, editing_name_for, structure_class_for
from .models import TOPIC_KEYS, EditingNode, EditingSheet, Sheet, Topic

logger = logging.getLogger(__name__)


def to_editing(topic: Topic, is_root: bool = True) -> EditingNode:
    """Convert an archive topic (and its subtree) to an editor node."""
    layout = None
    if topic.structure_class:
        layout = editing_name_for(topic.structure_class)
        if layout is None:
            logger.warning(
                "Unknown structure class %r on topic %s; leaving layout unset",
                topic.structure_class, topic.id,
            )
    elif is_root:
        layout = DEFAULT_LAYOUT.editing_name

    return EditingNode(
        text=topic.title,
        uid=topic.id,
        layout=layout,
        children=[to_editing(child, is_root=False) for child in topic.children],
        extras=copy.deepcopy(topic.extras),
    )


def to_archive(node: EditingNode) -> Topic:
    """Convert an editor node (and its subtree) to an archive topic.

    A node without a uid falls back to an ``id`` attribute the editor may
    have left in the data bag, then to a fresh identifier.
    """
    extras = copy.deepcopy(node.extras)
    topic_id = node.uid or extras.get("id") or str(uuid.uuid4())
    for key in TOPIC_KEYS:
        extras.pop(key, None)

    structure_class = None
    if node.layout:
        structure_class = structure_class_for(node.layout)
        if structure_class is None:
            logger.warning(
                "Layout %r has no archive equivalent; topic %s written without structureClass",
                node.layout, topic_id,
            )

    return Topic(
        id=topic_id,
        title=node.text,
        structure_class=structure_class,
        children=[to_archive(child) for child in node.children],
        extras=extras,
    )


def sheet_to_editing(sheet: Sheet) -> EditingSheet:
    return EditingSheet(
        id=sheet.id or str(uuid.uuid4()),
        title=sheet.title,
        root=to_editing(sheet.root_topic, is_root=True),
        extras=copy.deepcopy(sheet.extras),
    )


def sheet_to_archive(sheet: EditingSheet) -> Sheet:
    return Sheet(
        id=sheet.id or str(uuid.uuid4()),
        title=sheet.title,
        root_topic=to_archive(sheet.root),
        extras=copy.deepcopy(sheet.extras),
    )
