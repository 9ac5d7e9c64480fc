"""Snapshot package: safe fetching, extraction and storage encoding."""

from readvault.snapshot.models import (
    BlockedReason,
    ProcessFailure,
    ProcessResult,
    ProcessSuccess,
    SnapshotContent,
    SnapshotMetadata,
    SnapshotStatus,
)
from readvault.snapshot.pipeline import process_snapshot
from readvault.snapshot.safety import check_url, is_safe_url
from readvault.snapshot.serialization import (
    SnapshotDecodeError,
    deserialize_snapshot,
    serialize_snapshot,
    snapshot_storage_path,
)

__all__ = [
    "process_snapshot",
    "check_url",
    "is_safe_url",
    "serialize_snapshot",
    "deserialize_snapshot",
    "snapshot_storage_path",
    "SnapshotDecodeError",
    "BlockedReason",
    "SnapshotStatus",
    "SnapshotContent",
    "SnapshotMetadata",
    "ProcessResult",
    "ProcessSuccess",
    "ProcessFailure",
]
