"""Tests for the /snapshots API endpoints.

The pipeline is patched on the router module so no network calls are made;
blobs are written under a per-test ``tmp_path`` workspace.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from readvault.api.app import create_app
from readvault.api.routers.snapshots import status_for_failure
from readvault.config import settings
from readvault.snapshot.models import (
    BlockedReason,
    ProcessFailure,
    ProcessSuccess,
    SnapshotContent,
    SnapshotMetadata,
    SnapshotStatus,
)
from readvault.storage import write_snapshot

_PIPELINE = "readvault.api.routers.snapshots.process_snapshot"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "workspace_dir", tmp_path)
    monkeypatch.setattr(settings, "snapshots_enabled", True)
    monkeypatch.setattr(settings, "worker_secret", "")
    with TestClient(create_app()) as c:
        yield c


def _content() -> SnapshotContent:
    return SnapshotContent(
        title="Hello",
        byline=None,
        content="<p>Hello world</p>",
        text_content="Hello world",
        excerpt="Hello world",
        site_name="Example",
        length=11,
        language="en",
    )


def _success() -> ProcessSuccess:
    metadata = SnapshotMetadata(
        canonical_url="https://example.com/a",
        title="Hello",
        byline=None,
        excerpt="Hello world",
        site_name="Example",
        image_url=None,
        word_count=2,
        language="en",
        content_sha256="ab" * 32,
    )
    return ProcessSuccess(content=_content(), metadata=metadata)


_JOB = {"save_id": "save1", "space_id": "space1", "url": "https://example.com/a"}


# ---------------------------------------------------------------------------
# Status mapping
# ---------------------------------------------------------------------------

class TestStatusForFailure:
    def test_noarchive_is_blocked(self) -> None:
        assert status_for_failure(BlockedReason.NOARCHIVE, 1) is SnapshotStatus.BLOCKED

    def test_transient_failures_retry(self) -> None:
        assert status_for_failure(BlockedReason.TIMEOUT, 1) is SnapshotStatus.PENDING
        assert status_for_failure(BlockedReason.FETCH_ERROR, 2) is SnapshotStatus.PENDING

    def test_retries_exhausted(self) -> None:
        assert status_for_failure(BlockedReason.TIMEOUT, settings.max_attempts) is SnapshotStatus.FAILED

    def test_permanent_failures(self) -> None:
        for reason in (BlockedReason.SSRF_BLOCKED, BlockedReason.NOT_HTML, BlockedReason.PARSE_FAILED):
            assert status_for_failure(reason, 1) is SnapshotStatus.FAILED


# ---------------------------------------------------------------------------
# POST /snapshots/process
# ---------------------------------------------------------------------------

class TestProcess:
    def test_success_payload(self, client) -> None:
        with patch(_PIPELINE, return_value=_success()) as mock_run:
            resp = client.post("/snapshots/process", json={"url": "https://example.com/a"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["ok"] is True
        assert data["content"]["textContent"] == "Hello world"
        assert data["metadata"]["word_count"] == 2
        mock_run.assert_called_once_with("https://example.com/a")

    def test_failure_payload(self, client) -> None:
        failure = ProcessFailure(BlockedReason.SSRF_BLOCKED, "Private IP address not allowed")
        with patch(_PIPELINE, return_value=failure):
            resp = client.post("/snapshots/process", json={"url": "http://10.0.0.1/"})

        assert resp.status_code == 200
        assert resp.json() == {
            "ok": False,
            "reason": "ssrf_blocked",
            "message": "Private IP address not allowed",
        }

    def test_disabled_returns_503(self, client, monkeypatch) -> None:
        monkeypatch.setattr(settings, "snapshots_enabled", False)
        with patch(_PIPELINE) as mock_run:
            resp = client.post("/snapshots/process", json={"url": "https://example.com/a"})

        assert resp.status_code == 503
        mock_run.assert_not_called()


# ---------------------------------------------------------------------------
# POST /snapshots/jobs
# ---------------------------------------------------------------------------

class TestJobs:
    def test_success_stores_blob(self, client, tmp_path) -> None:
        with patch(_PIPELINE, return_value=_success()):
            resp = client.post("/snapshots/jobs", json=_JOB)

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ready"
        assert data["storage_path"] == "snapshots/space1/save1/latest.json.gz"
        assert data["metadata"]["content_sha256"] == "ab" * 32
        assert (tmp_path / "blobs" / data["storage_path"]).is_file()

    def test_timeout_goes_back_to_pending(self, client) -> None:
        failure = ProcessFailure(BlockedReason.TIMEOUT, "Request timed out after 15s")
        with patch(_PIPELINE, return_value=failure):
            resp = client.post("/snapshots/jobs", json={**_JOB, "attempt": 1})

        data = resp.json()
        assert data["status"] == "pending"
        assert data["reason"] == "timeout"
        assert data["storage_path"] is None

    def test_noarchive_is_blocked(self, client) -> None:
        failure = ProcessFailure(BlockedReason.NOARCHIVE, "Page has noarchive directive")
        with patch(_PIPELINE, return_value=failure):
            resp = client.post("/snapshots/jobs", json=_JOB)

        assert resp.json()["status"] == "blocked"

    def test_invalid_ids_rejected(self, client) -> None:
        with patch(_PIPELINE) as mock_run:
            resp = client.post("/snapshots/jobs", json={**_JOB, "save_id": "../x"})

        assert resp.status_code == 422
        mock_run.assert_not_called()

    def test_attempt_must_be_positive(self, client) -> None:
        resp = client.post("/snapshots/jobs", json={**_JOB, "attempt": 0})
        assert resp.status_code == 422

    def test_worker_secret_required(self, client, monkeypatch) -> None:
        monkeypatch.setattr(settings, "worker_secret", "s3cret")
        with patch(_PIPELINE, return_value=_success()):
            missing = client.post("/snapshots/jobs", json=_JOB)
            wrong = client.post("/snapshots/jobs", json=_JOB, headers={"X-Worker-Secret": "nope"})
            right = client.post("/snapshots/jobs", json=_JOB, headers={"X-Worker-Secret": "s3cret"})

        assert missing.status_code == 401
        assert wrong.status_code == 401
        assert right.status_code == 200

    def test_storage_error_is_500(self, client) -> None:
        with patch(_PIPELINE, return_value=_success()), patch(
            "readvault.api.routers.snapshots.write_snapshot", side_effect=OSError("disk full")
        ):
            resp = client.post("/snapshots/jobs", json=_JOB)

        assert resp.status_code == 500


# ---------------------------------------------------------------------------
# GET /snapshots/{space_id}/{save_id}
# ---------------------------------------------------------------------------

class TestGetSnapshot:
    def test_missing_is_404(self, client) -> None:
        assert client.get("/snapshots/space1/save1").status_code == 404

    def test_stored_snapshot_returned(self, client) -> None:
        write_snapshot("space1", "save1", _content())
        resp = client.get("/snapshots/space1/save1")

        assert resp.status_code == 200
        assert resp.json()["title"] == "Hello"
        assert resp.json()["siteName"] == "Example"

    def test_corrupt_blob_is_500(self, client, tmp_path) -> None:
        target = tmp_path / "blobs" / "snapshots" / "space1" / "save1" / "latest.json.gz"
        target.parent.mkdir(parents=True)
        target.write_bytes(b"garbage")

        assert client.get("/snapshots/space1/save1").status_code == 500

    def test_bad_id_is_422(self, client) -> None:
        assert client.get("/snapshots/space1/bad.id").status_code == 422
