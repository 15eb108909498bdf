"""Archive load/save tests."""

import json
import logging
import tempfile
import zipfile
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path

import pytest

import xmind_tools
from xmind_tools import (
    ArchiveStatus,
    AuxiliaryState,
    EditingNode,
    EditingSheet,
    MalformedContent,
    Settings,
)

NOW = datetime(2024, 3, 1, 12, 30, 45, 123000, tzinfo=timezone.utc)


def make_archive(entries):
    """Build zip bytes from name -> str/bytes/JSON-able value."""
    buf = BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, value in entries.items():
            if not isinstance(value, (str, bytes)):
                value = json.dumps(value)
            zf.writestr(name, value)
    return buf.getvalue()


def entries_of(data):
    with zipfile.ZipFile(BytesIO(data)) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def sheet_record(sheet_id, title, root_title="Root", **extra):
    return {
        "id": sheet_id,
        "class": "sheet",
        "title": title,
        "rootTopic": {
            "id": f"{sheet_id}-root",
            "class": "topic",
            "title": root_title,
            "structureClass": "org.xmind.ui.logical.right",
            "children": {"attached": [
                {"id": f"{sheet_id}-a", "class": "topic", "title": "A", "branch-color": "#ff0000"},
                {"id": f"{sheet_id}-b", "class": "topic", "title": "B"},
            ]},
        },
        **extra,
    }


EXISTING = {
    "content.json": [sheet_record("s1", "First", theme={"id": "th-1"})],
    "manifest.json": {"file-entries": {"content.json": {}, "metadata.json": {}, "Thumbnails/thumbnail.png": {}}},
    "metadata.json": {"creator": {"name": "XMind", "version": "24.01"}, "created": "2023-01-01T00:00:00.000Z", "modified": "2023-01-01T00:00:00.000Z"},
    "Thumbnails/thumbnail.png": b"\x89PNG\r\n\x1a\nfake",
}


def stored_archive(entries):
    buf = BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_STORED) as zf:
        for name, value in entries.items():
            zf.writestr(name, value)
    return bytearray(buf.getvalue())


def header_offsets(data, name):
    """Offsets of an entry's local header and central directory header."""
    with zipfile.ZipFile(BytesIO(bytes(data))) as zf:
        local = zf.getinfo(name).header_offset
        central = zf.start_dir
    while data[central + 46:central + 46 + len(name)] != name.encode():
        central = data.index(b"PK\x01\x02", central + 4)
    return local, central


def set_encrypted_flag(data, name):
    local, central = header_offsets(data, name)
    data[local + 6] |= 0x1
    data[central + 8] |= 0x1
    return bytes(data)


# --- load ---

@pytest.mark.parametrize("data", [b"", b"PK\x05\x06", b"x" * 21])
def test_default_on_empty(data):
    doc = xmind_tools.load(data)

    assert len(doc.sheets) == 1
    sheet = doc.sheets[0]
    assert sheet.title == "Sheet 1"
    assert sheet.id
    assert sheet.root.text == "Central Topic"
    assert sheet.root.layout == "mindMap"
    assert sheet.root.uid
    assert sheet.root.children == []
    assert doc.auxiliary.status is ArchiveStatus.EMPTY
    assert doc.auxiliary.is_absent
    assert not doc.recovered


def test_default_ids_are_fresh():
    a = xmind_tools.load(b"")
    b = xmind_tools.load(b"")
    assert a.sheets[0].root.uid != b.sheets[0].root.uid


def test_not_a_zip_recovers_with_default(caplog):
    with caplog.at_level(logging.WARNING, logger="xmind_tools.reader"):
        doc = xmind_tools.load(b"this is definitely not a zip archive at all")

    assert doc.sheets[0].title == "Sheet 1"
    assert doc.recovered
    assert doc.auxiliary.status is ArchiveStatus.UNREADABLE
    assert doc.auxiliary.error
    assert "Could not open archive" in caplog.text


def test_missing_content_entry_recovers_with_default():
    doc = xmind_tools.load(make_archive({"content.xml": "<xmap-content/>"}))

    assert doc.recovered
    assert "content.json" in doc.auxiliary.error
    assert doc.sheets[0].root.text == "Central Topic"


def test_empty_zip_recovers_with_default():
    data = make_archive({})
    assert len(data) == 22
    assert xmind_tools.load(data).recovered


@pytest.mark.parametrize("content", [
    {"id": "s1", "rootTopic": {}},
    "{not json",
    [{"id": "s1", "title": "No root"}],
    ["a string, not a sheet"],
    [{"id": "s1", "rootTopic": {"id": "r", "children": {"attached": "nope"}}}],
])
def test_corrupt_content_hard_fails(content):
    data = make_archive({"content.json": content if isinstance(content, str) else json.dumps(content)})
    with pytest.raises(MalformedContent):
        xmind_tools.load(data)


def test_load_existing_archive():
    doc = xmind_tools.load(make_archive(EXISTING))

    assert doc.auxiliary.status is ArchiveStatus.LOADED
    assert not doc.recovered
    assert set(doc.auxiliary.entries) == {"manifest.json", "metadata.json", "Thumbnails/thumbnail.png"}

    sheet = doc.sheets[0]
    assert sheet.id == "s1"
    assert sheet.extras == {"theme": {"id": "th-1"}}
    assert sheet.root.layout == "logicalStructure"
    assert sheet.root.uid == "s1-root"
    assert sheet.root.children[0].extras == {"branch-color": "#ff0000"}


def test_open_archive_returns_archive_shape():
    sheets, auxiliary = xmind_tools.open_archive(make_archive(EXISTING))
    assert sheets[0].root_topic.structure_class == "org.xmind.ui.logical.right"
    assert "content.json" not in auxiliary.entries


# --- save ---

def test_save_new_document_synthesizes_entries():
    doc = xmind_tools.load(b"")
    settings = Settings(creator_name="test-suite", creator_version="9.9")
    data = xmind_tools.save(doc.sheets, doc.auxiliary, settings=settings, now=NOW)

    entries = entries_of(data)
    assert list(entries) == ["content.json", "manifest.json", "metadata.json"]
    assert json.loads(entries["manifest.json"]) == {
        "file-entries": {"content.json": {}, "metadata.json": {}}
    }
    assert json.loads(entries["metadata.json"]) == {
        "creator": {"name": "test-suite", "version": "9.9"},
        "created": "2024-03-01T12:30:45.123Z",
        "modified": "2024-03-01T12:30:45.123Z",
    }

    content = json.loads(entries["content.json"])
    assert content[0]["class"] == "sheet"
    assert content[0]["title"] == "Sheet 1"
    assert content[0]["rootTopic"]["title"] == "Central Topic"
    assert content[0]["rootTopic"]["structureClass"] == "org.xmind.ui.structure.mindmap"
    assert "children" not in content[0]["rootTopic"]


def test_save_recovered_document_synthesizes_entries():
    doc = xmind_tools.load(b"garbage garbage garbage garbage")
    entries = entries_of(xmind_tools.save(doc.sheets, doc.auxiliary, now=NOW))
    assert set(entries) == {"content.json", "manifest.json", "metadata.json"}


def test_save_existing_keeps_entries_and_refreshes_modified():
    doc = xmind_tools.load(make_archive(EXISTING))
    doc.sheets[0].root.add_child("Added")

    entries = entries_of(xmind_tools.save(doc.sheets, doc.auxiliary, now=NOW))

    assert set(entries) == {"content.json", "manifest.json", "metadata.json", "Thumbnails/thumbnail.png"}
    assert entries["Thumbnails/thumbnail.png"] == EXISTING["Thumbnails/thumbnail.png"]
    assert json.loads(entries["manifest.json"]) == EXISTING["manifest.json"]

    metadata = json.loads(entries["metadata.json"])
    assert metadata["creator"] == {"name": "XMind", "version": "24.01"}
    assert metadata["created"] == "2023-01-01T00:00:00.000Z"
    assert metadata["modified"] == "2024-03-01T12:30:45.123Z"

    content = json.loads(entries["content.json"])
    attached = content[0]["rootTopic"]["children"]["attached"]
    assert [t["title"] for t in attached] == ["A", "B", "Added"]
    assert attached[0]["branch-color"] == "#ff0000"
    assert content[0]["theme"] == {"id": "th-1"}


def test_unparsable_metadata_is_written_through():
    archive = dict(EXISTING, **{"metadata.json": "{broken"})
    doc = xmind_tools.load(make_archive(archive))

    entries = entries_of(xmind_tools.save(doc.sheets, doc.auxiliary, now=NOW))
    assert entries["metadata.json"] == b"{broken"


def test_non_object_metadata_is_written_through():
    archive = dict(EXISTING, **{"metadata.json": "[1, 2]"})
    doc = xmind_tools.load(make_archive(archive))

    entries = entries_of(xmind_tools.save(doc.sheets, doc.auxiliary, now=NOW))
    assert entries["metadata.json"] == b"[1, 2]"


def test_existing_archive_without_metadata_gets_none():
    archive = {k: v for k, v in EXISTING.items() if k != "metadata.json"}
    doc = xmind_tools.load(make_archive(archive))

    entries = entries_of(xmind_tools.save(doc.sheets, doc.auxiliary, now=NOW))
    assert "metadata.json" not in entries


def test_round_trip_preserves_content_exactly():
    original = make_archive(EXISTING)
    doc = xmind_tools.load(original)

    saved = entries_of(xmind_tools.save(doc.sheets, doc.auxiliary, now=NOW))
    assert json.loads(saved["content.json"]) == EXISTING["content.json"]


def test_idempotent_packing():
    doc = xmind_tools.load(make_archive(EXISTING))
    first = entries_of(xmind_tools.save(doc.sheets, doc.auxiliary))
    second = entries_of(xmind_tools.save(doc.sheets, doc.auxiliary))
    assert first["content.json"] == second["content.json"]


def test_multi_sheet_order_preserved():
    archive = dict(EXISTING, **{"content.json": [
        sheet_record("a", "A"), sheet_record("b", "B"), sheet_record("c", "C"),
    ]})
    doc = xmind_tools.load(make_archive(archive))
    assert [s.title for s in doc.sheets] == ["A", "B", "C"]

    reloaded = xmind_tools.load(xmind_tools.save(doc.sheets, doc.auxiliary))
    assert [s.title for s in reloaded.sheets] == ["A", "B", "C"]
    assert [s.id for s in reloaded.sheets] == ["a", "b", "c"]


def test_new_sheet_and_nodes_get_ids():
    sheet = EditingSheet(title="Fresh", root=EditingNode(text="Root", layout="treeStructure"))
    sheet.root.children.append(EditingNode(text="Child"))

    data = xmind_tools.save([sheet], AuxiliaryState())
    record = json.loads(entries_of(data)["content.json"])[0]
    assert record["id"]
    assert record["rootTopic"]["id"]
    assert record["rootTopic"]["structureClass"] == "org.xmind.ui.tree.right"
    assert record["rootTopic"]["children"]["attached"][0]["id"]


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("XMIND_TOOLS_CREATOR_NAME", "Editor")
    monkeypatch.setenv("XMIND_TOOLS_CREATOR_VERSION", "1.2.3")
    settings = Settings.from_env()
    assert settings.creator_name == "Editor"
    assert settings.creator_version == "1.2.3"

    monkeypatch.delenv("XMIND_TOOLS_CREATOR_NAME")
    assert Settings.from_env().creator_name == "xmind-tools"


# --- files ---

def test_write_and_read_roundtrip():
    """Create a document, write it, read it back, verify."""
    doc = xmind_tools.load(b"")
    doc.sheets[0].root.text = "Test Roundtrip"
    child = doc.sheets[0].root.add_child("Task Item", extras={"markers": [{"markerId": "task-half"}]})
    child.add_child("Nested")

    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "map.xmind"
        xmind_tools.write(doc, path)

        doc2 = xmind_tools.read(path)
        assert doc2.sheets[0].root.text == "Test Roundtrip"
        assert doc2.topic_count == 3
        assert doc2.find("Task Item").extras == {"markers": [{"markerId": "task-half"}]}
        assert doc2.find("Nested") is not None
        assert doc2.auxiliary.status is ArchiveStatus.LOADED

        xmind_tools.write(doc2, path)
        assert (Path(tmp) / "map.xmind.bak").exists()


def test_read_missing_file():
    with pytest.raises(FileNotFoundError):
        xmind_tools.read("/nonexistent/missing.xmind")


# --- damaged containers ---

CONTENT = json.dumps([sheet_record("s1", "Mine", root_title="My content")])


def test_crc_error_in_auxiliary_entry_keeps_content(caplog):
    thumbnail = b"\x89PNG thumbnail payload"
    data = stored_archive({"content.json": CONTENT, "Thumbnails/thumbnail.png": thumbnail})
    at = data.index(thumbnail)
    data[at + 5] ^= 0xFF
    damaged_thumbnail = bytes(data[at:at + len(thumbnail)])

    with caplog.at_level(logging.WARNING, logger="xmind_tools.reader"):
        doc = xmind_tools.load(bytes(data))

    assert doc.auxiliary.status is ArchiveStatus.LOADED
    assert doc.sheets[0].root.text == "My content"
    assert doc.auxiliary.entries["Thumbnails/thumbnail.png"] == damaged_thumbnail
    assert "Thumbnails/thumbnail.png" in caplog.text


def test_crc_error_in_deflated_entry_is_inflated_anyway():
    attachment = b"attachment body " * 20
    buf = BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("content.json", CONTENT)
        info = zipfile.ZipInfo("resources/a.txt")
        info.compress_type = zipfile.ZIP_DEFLATED
        zf.writestr(info, attachment)
    data = bytearray(buf.getvalue())
    local, central = header_offsets(data, "resources/a.txt")
    data[local + 14] ^= 0xFF  # CRC-32 fields
    data[central + 16] ^= 0xFF

    doc = xmind_tools.load(bytes(data))
    assert doc.auxiliary.entries["resources/a.txt"] == attachment
    assert doc.sheets[0].root.text == "My content"


def test_encrypted_auxiliary_entry_is_dropped_not_raised():
    data = stored_archive({"content.json": CONTENT, "Thumbnails/thumbnail.png": b"secret"})
    data = set_encrypted_flag(data, "Thumbnails/thumbnail.png")

    doc = xmind_tools.load(data)

    assert doc.auxiliary.status is ArchiveStatus.LOADED
    assert doc.sheets[0].root.text == "My content"
    assert "Thumbnails/thumbnail.png" not in doc.auxiliary.entries
    assert "Thumbnails/thumbnail.png" in doc.auxiliary.damaged

    entries = entries_of(xmind_tools.save(doc.sheets, doc.auxiliary, now=NOW))
    assert "Thumbnails/thumbnail.png" not in entries
    assert json.loads(entries["content.json"])[0]["rootTopic"]["title"] == "My content"


def test_encrypted_content_entry_recovers_with_default():
    data = set_encrypted_flag(stored_archive({"content.json": CONTENT}), "content.json")

    doc = xmind_tools.load(data)
    assert doc.recovered
    assert "content.json" in doc.auxiliary.error


@pytest.mark.parametrize("root_topic", [
    {"id": "r", "title": "Root", "structureClass": ["org.xmind.ui.logical.right"]},
    {"id": "r", "title": "Root", "structureClass": {"id": "x"}},
    {"id": "r", "title": ["not", "text"]},
])
def test_non_string_core_fields_hard_fail(root_topic):
    data = make_archive({"content.json": [{"id": "s1", "title": "S", "rootTopic": root_topic}]})
    with pytest.raises(MalformedContent):
        xmind_tools.load(data)


def test_metadata_update_failure_is_logged(caplog):
    archive = dict(EXISTING, **{"metadata.json": "{broken"})
    doc = xmind_tools.load(make_archive(archive))

    with caplog.at_level(logging.WARNING, logger="xmind_tools.writer"):
        xmind_tools.save(doc.sheets, doc.auxiliary, now=NOW)
    assert "metadata.json" in caplog.text


def test_empty_input_is_logged(caplog):
    with caplog.at_level(logging.INFO, logger="xmind_tools.reader"):
        xmind_tools.load(b"")
    assert "default document" in caplog.text
