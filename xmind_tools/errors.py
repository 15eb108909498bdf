"""Exceptions raised by xmind-tools."""

from __future__ import annotations


class XMindError(Exception):
    """Base class for xmind-tools errors."""


class MalformedContent(XMindError, ValueError):
    """content.json exists but is not a well-formed list of sheet records.

    This is the only load failure that propagates. An empty, unopenable or
    content-less archive is replaced by the default document instead.
    """

    def __init__(self, message: str, *, path: str = "content.json"):
        super().__init__(f"{path}: {message}")
        self.path = path
