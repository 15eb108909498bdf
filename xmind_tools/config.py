"""Writer settings."""

from __future__ import annotations

import os
import zipfile
from dataclasses import dataclass

from . import __version__

ENV_CREATOR_NAME = "XMIND_TOOLS_CREATOR_NAME"
ENV_CREATOR_VERSION = "XMIND_TOOLS_CREATOR_VERSION"


@dataclass(frozen=True)
class Settings:
    """Options used when packing an archive.

    ``creator_name`` and ``creator_version`` end up in the ``creator`` block
    of a freshly synthesized metadata.json. Existing metadata keeps its
    creator.
    """
    creator_name: str = "xmind-tools"
    creator_version: str = __version__
    compression: int = zipfile.ZIP_DEFLATED
    ensure_ascii: bool = False

    @classmethod
    def from_env(cls) -> Settings:
        """Defaults, overridden by XMIND_TOOLS_CREATOR_* environment variables."""
        defaults = cls()
        return cls(
            creator_name=os.environ.get(ENV_CREATOR_NAME) or defaults.creator_name,
            creator_version=os.environ.get(ENV_CREATOR_VERSION) or defaults.creator_version,
        )
