"""
Unit tests for the zip save-point codec.
"""
import io
import json
import struct
import zipfile

import pytest

from core.exceptions import DataNotFoundError, RestoreError, UnsupportedSchemaError
from core.savepoint import REPORT_ENTRY, STATE_ENTRY, SavePointCodec, sanitize_filename
from core.session import ExpenseSession


@pytest.fixture
def codec():
    return SavePointCodec()


def rewrite_state(archive_bytes: bytes, mutate) -> bytes:
    """Copy an archive, passing state.json through `mutate` (None drops it)."""
    source = zipfile.ZipFile(io.BytesIO(archive_bytes))
    buffer = io.BytesIO()
    with source, zipfile.ZipFile(buffer, "w") as target:
        for name in source.namelist():
            data = source.read(name)
            if name == STATE_ENTRY:
                state = mutate(json.loads(data))
                if state is None:
                    continue
                data = json.dumps(state).encode("utf-8")
            target.writestr(name, data)
    return buffer.getvalue()


def corrupt_entry(archive_bytes: bytes, name: str, count: int = 40) -> bytes:
    """Flip the first `count` bytes of an entry's compressed data in place."""
    info = zipfile.ZipFile(io.BytesIO(archive_bytes)).getinfo(name)
    data = bytearray(archive_bytes)
    name_length, extra_length = struct.unpack("<HH", data[info.header_offset + 26:info.header_offset + 30])
    start = info.header_offset + 30 + name_length + extra_length
    for position in range(start, start + min(count, info.compress_size)):
        data[position] ^= 0xFF
    return bytes(data)


def test_sanitize_filename():
    assert sanitize_filename("acme invoice #42.pdf") == "acme invoice _42.pdf"
    assert sanitize_filename("bank/transfer (1).png") == "bank_transfer (1).png"
    assert sanitize_filename("résumé.pdf") == "r_sum_.pdf"


def test_archive_layout(codec, sample_session):
    archive = zipfile.ZipFile(io.BytesIO(codec.serialize(sample_session)))
    names = archive.namelist()
    assert names[:2] == [STATE_ENTRY, REPORT_ENTRY]
    assert set(names[2:]) == {
        "attachments/1/invoice_acme invoice _42.pdf",
        "attachments/1/proof_receipt.png",
        "attachments/3/proof_bank_transfer.png",
    }
    assert archive.read(REPORT_ENTRY).startswith(b"%PDF")


def test_state_manifest(codec, sample_session):
    archive = zipfile.ZipFile(io.BytesIO(codec.serialize(sample_session)))
    state = json.loads(archive.read(STATE_ENTRY).decode("utf-8"))
    assert state["schemaVersion"] == 1
    assert state["templateVersion"] == 1
    assert [e["id"] for e in state["expenses"]] == [r.id for r in sample_session.expenses]
    assert [entry["index"] for entry in state["attachments"]] == [1, 3]
    assert state["attachments"][0]["invoice"] == {
        "name": "acme invoice #42.pdf",
        "mimeType": "application/pdf",
        "path": "attachments/1/invoice_acme invoice _42.pdf",
    }
    assert "invoice" not in state["attachments"][1]


def test_round_trip(codec, sample_session):
    restored = codec.deserialize(codec.serialize(sample_session))

    assert restored.expenses == sample_session.expenses
    assert restored.template_version == sample_session.template_version
    for original, slot in zip(sample_session.attachments, restored.attachments):
        for side in ("invoice", "proof"):
            before, after = getattr(original, side), getattr(slot, side)
            if before is None:
                assert after is None
            else:
                assert after.data == before.data
                assert after.name == before.name
                assert after.mime_type == before.mime_type


def test_round_trip_empty_session(codec):
    restored = codec.deserialize(codec.serialize(ExpenseSession()))
    assert restored.is_empty()


def test_missing_state_fails(codec, sample_session):
    data = rewrite_state(codec.serialize(sample_session), lambda state: None)
    with pytest.raises(DataNotFoundError):
        codec.deserialize(data)


@pytest.mark.parametrize("version", [2, 0, "1", None, 1.5])
def test_other_schema_versions_fail(codec, sample_session, version):
    def mutate(state):
        state["schemaVersion"] = version
        return state

    with pytest.raises(UnsupportedSchemaError):
        codec.deserialize(rewrite_state(codec.serialize(sample_session), mutate))


def test_missing_attachment_entry_fails(codec, sample_session):
    def mutate(state):
        state["attachments"][0]["invoice"]["path"] = "attachments/1/invoice_missing.pdf"
        return state

    with pytest.raises(RestoreError):
        codec.deserialize(rewrite_state(codec.serialize(sample_session), mutate))


def test_manifest_past_last_expense_fails(codec, sample_session):
    def mutate(state):
        state["attachments"][0]["index"] = 9
        return state

    with pytest.raises(RestoreError):
        codec.deserialize(rewrite_state(codec.serialize(sample_session), mutate))


def test_not_a_zip_fails(codec):
    with pytest.raises(RestoreError):
        codec.deserialize(b"definitely not a zip")


def test_extra_state_fields_are_ignored(codec, sample_session):
    def mutate(state):
        state["appVersion"] = "9.9"
        state["expenses"][0]["note"] = "informational"
        return state

    restored = codec.deserialize(rewrite_state(codec.serialize(sample_session), mutate))
    assert restored.expenses == sample_session.expenses


@pytest.mark.parametrize("entry", [STATE_ENTRY, "attachments/1/proof_receipt.png"])
def test_corrupted_entry_fails_as_restore_error(codec, sample_session, entry):
    """Damaged compressed data is reported as a restore failure, not a zlib error."""
    data = corrupt_entry(codec.serialize(sample_session), entry)
    with pytest.raises(RestoreError) as exc_info:
        codec.deserialize(data)
    assert exc_info.value.details["entry"] == entry
    assert exc_info.value.details["error"]
