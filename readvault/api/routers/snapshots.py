"""Snapshot endpoints.

Routes
------
POST /snapshots/process               Body: {"url": ...}        → ProcessResult
POST /snapshots/jobs                  Body: {save_id, space_id, url, attempt}
GET  /snapshots/{space_id}/{save_id}  Stored snapshot content

The job scheduler calls ``/jobs`` once per attempt and records the returned
``status``; retry timing stays on the scheduler's side.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import asdict
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi import Path as PathParam
from pydantic import BaseModel, Field

from readvault.config import settings
from readvault.snapshot import (
    BlockedReason,
    ProcessFailure,
    SnapshotDecodeError,
    SnapshotStatus,
    process_snapshot,
)
from readvault.storage import read_snapshot, write_snapshot

log = logging.getLogger(__name__)

router = APIRouter()

ID_PATTERN = r"^[A-Za-z0-9_-]{1,128}$"
RETRIABLE_REASONS = frozenset({BlockedReason.TIMEOUT, BlockedReason.FETCH_ERROR})


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class ProcessRequest(BaseModel):
    url: str = Field(min_length=1, max_length=4096)


class JobRequest(BaseModel):
    save_id: str = Field(pattern=ID_PATTERN)
    space_id: str = Field(pattern=ID_PATTERN)
    url: str = Field(min_length=1, max_length=4096)
    attempt: int = Field(default=1, ge=1)


class JobResponse(BaseModel):
    status: SnapshotStatus
    reason: Optional[BlockedReason] = None
    message: Optional[str] = None
    storage_path: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def status_for_failure(reason: BlockedReason, attempt: int) -> SnapshotStatus:
    """Map a failed attempt to the status the scheduler should record.

    ``noarchive`` is a site policy and never retried.  Timeouts and fetch
    errors go back to ``pending`` until ``settings.max_attempts`` is reached.
    """
    if reason is BlockedReason.NOARCHIVE:
        return SnapshotStatus.BLOCKED
    if reason in RETRIABLE_REASONS and attempt < settings.max_attempts:
        return SnapshotStatus.PENDING
    return SnapshotStatus.FAILED


def require_enabled() -> None:
    if not settings.snapshots_enabled:
        raise HTTPException(status_code=503, detail="Snapshots are disabled.")


def require_worker_secret(
    x_worker_secret: Optional[str] = Header(default=None),
) -> None:
    expected = settings.worker_secret
    if not expected:
        return
    if not x_worker_secret or not hmac.compare_digest(x_worker_secret, expected):
        raise HTTPException(status_code=401, detail="Invalid worker secret.")


_guards = [Depends(require_enabled), Depends(require_worker_secret)]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/process", dependencies=_guards)
def process_endpoint(body: ProcessRequest) -> dict[str, Any]:
    """Run the pipeline for *url* and return the result without storing it."""
    return process_snapshot(body.url).to_dict()


@router.post("/jobs", response_model=JobResponse, dependencies=_guards)
def job_endpoint(body: JobRequest) -> JobResponse:
    """Process one scheduled snapshot attempt and store the blob on success."""
    log.info("Job %s/%s attempt %d: %s", body.space_id, body.save_id, body.attempt, body.url)
    result = process_snapshot(body.url)

    if isinstance(result, ProcessFailure):
        status = status_for_failure(result.reason, body.attempt)
        log.info("Job %s/%s -> %s (%s)", body.space_id, body.save_id,
                 status.value, result.reason.value)
        return JobResponse(status=status, reason=result.reason, message=result.message)

    try:
        path = write_snapshot(body.space_id, body.save_id, result.content)
    except OSError as exc:
        log.error("Could not store snapshot %s/%s: %s", body.space_id, body.save_id, exc)
        raise HTTPException(status_code=500, detail="Snapshot storage failed.") from exc

    return JobResponse(
        status=SnapshotStatus.READY,
        storage_path=path,
        metadata=asdict(result.metadata),
    )


@router.get("/{space_id}/{save_id}")
def get_snapshot_endpoint(
    space_id: str = PathParam(pattern=ID_PATTERN),
    save_id: str = PathParam(pattern=ID_PATTERN),
) -> dict[str, Any]:
    """Return the stored snapshot content in its camelCase storage form."""
    try:
        content = read_snapshot(space_id, save_id)
    except SnapshotDecodeError as exc:
        log.error("Corrupt snapshot %s/%s: %s", space_id, save_id, exc)
        raise HTTPException(status_code=500, detail="Stored snapshot is corrupt.") from exc
    if content is None:
        raise HTTPException(status_code=404, detail="Snapshot not found.")
    return content.to_dict()
