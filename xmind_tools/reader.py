"""Read XMind archives into Python objects."""

from __future__ import annotations

import json
import struct
import logging
import uuid
import zipfile
import zlib
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

from .errors import MalformedContent
from .layout import DEFAULT_LAYOUT
from .models import ArchiveStatus, AuxiliaryState, Document, Sheet, Topic
from .transform import sheet_to_editing

logger = logging.getLogger(__name__)

CONTENT_ENTRY = "content.json"

# An empty zip is a bare end-of-central-directory record.
MIN_ARCHIVE_SIZE = 22

DEFAULT_SHEET_TITLE = "Sheet 1"
DEFAULT_ROOT_TITLE = "Central Topic"


def default_sheets() -> list[Sheet]:
    """The one-sheet document shown for new or unreadable files."""
    root = Topic(
        id=str(uuid.uuid4()),
        title=DEFAULT_ROOT_TITLE,
        structure_class=DEFAULT_LAYOUT.structure_class,
    )
    return [Sheet(id=str(uuid.uuid4()), title=DEFAULT_SHEET_TITLE, root_topic=root)]


def open_archive(data: bytes) -> tuple[list[Sheet], AuxiliaryState]:
    """Split archive bytes into content sheets and retained auxiliary entries.

    Empty input, input too short to be a zip, a file that does not open as a
    zip, or a zip without content.json all give the default document with an
    absent :class:`AuxiliaryState`. Check ``auxiliary.status`` to tell a new
    document (``EMPTY``) from one that could not be read (``UNREADABLE``).

    A damaged auxiliary entry never costs the content: a CRC failure keeps
    the entry's raw payload, and an entry that cannot be extracted at all is
    dropped and listed in ``auxiliary.damaged``.

    Raises:
        MalformedContent: If content.json is present but is not a list of
            sheet records.
    """
    if not data or len(data) < MIN_ARCHIVE_SIZE:
        logger.info("No archive data (%d bytes); using default document", len(data or b""))
        return default_sheets(), AuxiliaryState.absent(ArchiveStatus.EMPTY)

    try:
        zf = zipfile.ZipFile(BytesIO(data), "r")
    except (zipfile.BadZipFile, OSError, ValueError, RuntimeError, NotImplementedError) as e:
        return _unreadable(f"not a readable zip archive: {e}")

    with zf:
        if CONTENT_ENTRY not in zf.namelist():
            return _unreadable(f"{CONTENT_ENTRY} not found in archive")
        try:
            content_bytes = zf.read(CONTENT_ENTRY)
        except _ENTRY_ERRORS as e:
            return _unreadable(f"{CONTENT_ENTRY} could not be extracted: {e}")

        entries = {}
        damaged = {}
        for info in zf.infolist():
            if info.filename == CONTENT_ENTRY:
                continue
            try:
                entries[info.filename] = zf.read(info)
            except _ENTRY_ERRORS as e:
                salvaged = _salvage(data, info)
                if salvaged is None:
                    logger.warning("Dropping unreadable archive entry %s: %s", info.filename, e)
                    damaged[info.filename] = str(e)
                else:
                    logger.warning("Keeping damaged archive entry %s as-is: %s", info.filename, e)
                    entries[info.filename] = salvaged

    sheets = parse_content(content_bytes)
    return sheets, AuxiliaryState(status=ArchiveStatus.LOADED, entries=entries, damaged=damaged)


_ENTRY_ERRORS = (zipfile.BadZipFile, zlib.error, OSError, ValueError, RuntimeError, NotImplementedError)

_LOCAL_HEADER = struct.Struct("<4s2B4HL2L2H")


def _salvage(data: bytes, info: zipfile.ZipInfo) -> Optional[bytes]:
    """Payload of an entry that failed its CRC check, or None if it is unusable.

    Stored entries come back as their raw bytes and deflated ones are
    inflated without verification. Encrypted entries and other compression
    methods cannot be recovered.
    """
    if info.flag_bits & 0x1:
        return None

    header = data[info.header_offset:info.header_offset + _LOCAL_HEADER.size]
    if len(header) != _LOCAL_HEADER.size or header[:4] != b"PK\x03\x04":
        return None
    fields = _LOCAL_HEADER.unpack(header)
    start = info.header_offset + _LOCAL_HEADER.size + fields[-2] + fields[-1]
    payload = data[start:start + info.compress_size]

    if info.compress_type == zipfile.ZIP_STORED:
        return payload
    if info.compress_type == zipfile.ZIP_DEFLATED:
        try:
            return zlib.decompressobj(-zlib.MAX_WBITS).decompress(payload)
        except zlib.error:
            return None
    return None


def _unreadable(error: str) -> tuple[list[Sheet], AuxiliaryState]:
    logger.warning("Could not open archive, using default document: %s", error)
    return default_sheets(), AuxiliaryState.absent(ArchiveStatus.UNREADABLE, error)


def parse_content(content_bytes: bytes) -> list[Sheet]:
    """Decode content.json into sheet records, preserving order."""
    try:
        content = json.loads(content_bytes.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedContent(f"not valid JSON: {e}") from e

    if not isinstance(content, list):
        raise MalformedContent(f"expected a list of sheets, got {type(content).__name__}")

    return [Sheet.from_dict(record) for record in content]


def load(data: bytes) -> Document:
    """Load archive bytes as an editable document.

    Args:
        data: Raw archive bytes. May be empty for a brand-new document.

    Returns:
        A Document with one EditingSheet per archive sheet and the
        auxiliary state needed to save it again.

    Raises:
        MalformedContent: If content.json is present but corrupt.
    """
    sheets, auxiliary = open_archive(data)
    document = Document(
        sheets=[sheet_to_editing(sheet) for sheet in sheets],
        auxiliary=auxiliary,
    )
    logger.debug("Loaded %r (%s)", document, auxiliary.status.value)
    return document


def read(path: Union[str, Path]) -> Document:
    """Read an .xmind file and return a Document.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        MalformedContent: If content.json is present but corrupt.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return load(path.read_bytes())
