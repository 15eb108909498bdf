"""Pack editor sheets back into XMind archives.

Key principle: every archive entry we don't explicitly model is copied
through byte for byte. Only content.json is rebuilt, and metadata.json gets
a fresh ``modified`` timestamp when it can be parsed.
"""

from __future__ import annotations

import json
import logging
import shutil
import zipfile
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from .config import Settings
from .models import AuxiliaryState, Document, EditingSheet, Sheet
from .reader import CONTENT_ENTRY
from .transform import sheet_to_archive

logger = logging.getLogger(__name__)

MANIFEST_ENTRY = "manifest.json"
METADATA_ENTRY = "metadata.json"


def write_archive(
    sheets: list[Sheet],
    auxiliary: AuxiliaryState,
    *,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> bytes:
    """Serialize archive sheets plus auxiliary entries into zip bytes.

    If ``auxiliary`` is absent (new document, or an unreadable original),
    a minimal manifest.json and metadata.json are synthesized. Otherwise the
    retained entries are written back unchanged, apart from the refreshed
    modification time in metadata.json.
    """
    settings = settings or Settings.from_env()
    timestamp = _iso_timestamp(now)

    files = {CONTENT_ENTRY: _dump_json([sheet.to_dict() for sheet in sheets], settings)}
    if auxiliary.is_absent:
        files.update(_create_new(settings, timestamp))
    else:
        files.update(_update_existing(auxiliary, settings, timestamp))

    buf = BytesIO()
    with zipfile.ZipFile(buf, "w", settings.compression) as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buf.getvalue()


def _create_new(settings: Settings, timestamp: str) -> dict[str, bytes]:
    """Entries XMind requires in a brand-new archive."""
    manifest = {
        "file-entries": {
            CONTENT_ENTRY: {},
            METADATA_ENTRY: {},
        }
    }
    metadata = {
        "creator": {
            "name": settings.creator_name,
            "version": settings.creator_version,
        },
        "created": timestamp,
        "modified": timestamp,
    }
    return {
        MANIFEST_ENTRY: _dump_json(manifest, settings),
        METADATA_ENTRY: _dump_json(metadata, settings),
    }


def _update_existing(
    auxiliary: AuxiliaryState, settings: Settings, timestamp: str
) -> dict[str, bytes]:
    """Retained entries, with metadata.json touched if possible."""
    files = {name: data for name, data in auxiliary.entries.items() if name != CONTENT_ENTRY}

    if METADATA_ENTRY in files:
        try:
            metadata = json.loads(files[METADATA_ENTRY].decode("utf-8-sig"))
            metadata["modified"] = timestamp
        except (UnicodeDecodeError, ValueError, TypeError) as e:
            # Keep the stale metadata rather than fail the save.
            logger.warning("Could not refresh %s, writing it unchanged: %s", METADATA_ENTRY, e)
        else:
            files[METADATA_ENTRY] = _dump_json(metadata, settings)

    return files


def _dump_json(value, settings: Settings) -> bytes:
    return json.dumps(value, ensure_ascii=settings.ensure_ascii, separators=(",", ":")).encode("utf-8")


def _iso_timestamp(now: Optional[datetime] = None) -> str:
    """UTC time as ``2024-01-31T12:00:00.000Z``."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def save(
    sheets: list[EditingSheet],
    auxiliary: AuxiliaryState,
    *,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> bytes:
    """Pack editor sheets into archive bytes.

    Args:
        sheets: The editor's sheets, in tab order.
        auxiliary: The state returned by :func:`xmind_tools.load`, or
            ``AuxiliaryState()`` for a document that never had an archive.
        settings: Creator identity and zip options. Defaults to
            :meth:`Settings.from_env`.
        now: Timestamp for metadata.json. Defaults to the current time.

    Returns:
        The complete archive as bytes.
    """
    archive_sheets = [sheet_to_archive(sheet) for sheet in sheets]
    return write_archive(archive_sheets, auxiliary, settings=settings, now=now)


def write(
    document: Document,
    path: Union[str, Path],
    *,
    backup: bool = True,
    settings: Optional[Settings] = None,
) -> Path:
    """Write a Document to an .xmind file.

    Args:
        document: The document to write.
        path: Output path for the .xmind file.
        backup: If True and path exists, create a .xmind.bak before overwriting.
        settings: Passed through to :func:`save`.

    Returns:
        The path written to.
    """
    path = Path(path)
    data = save(document.sheets, document.auxiliary, settings=settings)

    if backup and path.exists():
        bak = path.with_name(path.name + ".bak")
        shutil.copy2(path, bak)

    path.write_bytes(data)
    logger.debug("Wrote %d bytes to %s", len(data), path)
    return path
