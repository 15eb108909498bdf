"""Bidirectional table of XMind structure classes and editor layouts."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class Layout(Enum):
    """Tree layouts known to both the archive and the editor.

    Each member carries the editor's layout name as its value and the
    archive's ``structureClass`` as :attr:`structure_class`.
    """
    MIND_MAP = ("mindMap", "org.xmind.ui.structure.mindmap")
    LOGICAL_RIGHT = ("logicalStructure", "org.xmind.ui.logical.right")
    LOGICAL_LEFT = ("logicalStructureLeft", "org.xmind.ui.logical.left")
    ORG_CHART_DOWN = ("organizationStructure", "org.xmind.ui.org-chart.down")
    ORG_CHART_UP = ("organizationStructureUp", "org.xmind.ui.org-chart.up")
    TREE_RIGHT = ("treeStructure", "org.xmind.ui.tree.right")
    TREE_LEFT = ("treeStructureLeft", "org.xmind.ui.tree.left")

    def __init__(self, editing_name: str, structure_class: str):
        self.editing_name = editing_name
        self.structure_class = structure_class

    @classmethod
    def from_structure_class(cls, structure_class: Optional[str]) -> Optional[Layout]:
        if not isinstance(structure_class, str):
            return None
        return _BY_STRUCTURE_CLASS.get(structure_class)

    @classmethod
    def from_editing_name(cls, name: Optional[str]) -> Optional[Layout]:
        if not isinstance(name, str):
            return None
        return _BY_EDITING_NAME.get(name)


DEFAULT_LAYOUT = Layout.MIND_MAP

_BY_STRUCTURE_CLASS = {layout.structure_class: layout for layout in Layout}
_BY_EDITING_NAME = {layout.editing_name: layout for layout in Layout}


def editing_name_for(structure_class: Optional[str]) -> Optional[str]:
    """Editor layout name for an archive structure class, or None if unknown."""
    layout = Layout.from_structure_class(structure_class)
    return layout.editing_name if layout is not None else None


def structure_class_for(editing_name: Optional[str]) -> Optional[str]:
    """Archive structure class for an editor layout name, or None if unknown."""
    layout = Layout.from_editing_name(editing_name)
    return layout.structure_class if layout is not None else None
