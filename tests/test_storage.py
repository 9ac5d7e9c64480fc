"""Tests for local blob storage.

Every test points ``settings.workspace_dir`` at ``tmp_path`` so nothing
touches the real workspace.
"""

from __future__ import annotations

import gzip
import tempfile
from unittest.mock import MagicMock, patch

import pytest

from readvault.config import settings
from readvault.snapshot.models import SnapshotContent
from readvault.snapshot.serialization import SnapshotDecodeError, deserialize_snapshot
from readvault.storage import blob_path, read_snapshot, validate_id, write_snapshot


@pytest.fixture(autouse=True)
def workspace(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "workspace_dir", tmp_path)
    return tmp_path


def _content(title: str = "Stored") -> SnapshotContent:
    return SnapshotContent(
        title=title,
        byline=None,
        content="<p>Body</p>",
        text_content="Body",
        excerpt="Body",
        site_name="Example",
        length=4,
        language="en",
    )


class TestWriteRead:
    def test_round_trip(self, workspace) -> None:
        path = write_snapshot("space1", "save1", _content())

        assert path == "snapshots/space1/save1/latest.json.gz"
        assert (workspace / "blobs" / path).is_file()
        assert read_snapshot("space1", "save1") == _content()

    def test_overwrite_replaces_previous(self) -> None:
        write_snapshot("space1", "save1", _content("first"))
        write_snapshot("space1", "save1", _content("second"))

        assert read_snapshot("space1", "save1").title == "second"

    def test_no_temp_files_left_behind(self, workspace) -> None:
        write_snapshot("space1", "save1", _content())
        leftovers = list(blob_path("space1", "save1").parent.glob(".tmp-*"))
        assert leftovers == []

    def test_failed_write_cleans_up_temp_file(self) -> None:
        real = tempfile.NamedTemporaryFile

        def _disk_full(*args, **kwargs):
            handle = real(*args, **kwargs)
            handle.write = MagicMock(side_effect=OSError(28, "No space left on device"))
            return handle

        with patch("readvault.storage.tempfile.NamedTemporaryFile", side_effect=_disk_full):
            with pytest.raises(OSError):
                write_snapshot("space1", "save1", _content())

        folder = blob_path("space1", "save1").parent
        assert list(folder.iterdir()) == []

    def test_failed_rename_cleans_up_temp_file(self) -> None:
        with patch("readvault.storage.os.replace", side_effect=OSError("read-only")):
            with pytest.raises(OSError):
                write_snapshot("space1", "save1", _content())

        assert list(blob_path("space1", "save1").parent.iterdir()) == []

    def test_blob_is_gzip(self) -> None:
        write_snapshot("space1", "save1", _content())
        raw = blob_path("space1", "save1").read_bytes()
        assert raw[:2] == b"\x1f\x8b"
        assert deserialize_snapshot(raw).title == "Stored"

    def test_missing_snapshot_is_none(self) -> None:
        assert read_snapshot("space1", "nothing") is None

    def test_corrupt_blob_raises(self) -> None:
        target = blob_path("space1", "save1")
        target.parent.mkdir(parents=True)
        target.write_bytes(gzip.compress(b"not json"))

        with pytest.raises(SnapshotDecodeError):
            read_snapshot("space1", "save1")


class TestIds:
    @pytest.mark.parametrize("bad", ["", "../etc", "a/b", "a b", "x" * 129, "ünï"])
    def test_invalid_ids_rejected(self, bad: str) -> None:
        with pytest.raises(ValueError):
            validate_id(bad, "save id")

    def test_write_rejects_traversal(self) -> None:
        with pytest.raises(ValueError):
            write_snapshot("..", "save1", _content())

    def test_valid_id_returned(self) -> None:
        assert validate_id("Abc_123-x", "space id") == "Abc_123-x"
