"""Gzip-compressed JSON encoding of :class:`SnapshotContent`."""

from __future__ import annotations

import gzip
import json
import zlib

from readvault.config import settings
from readvault.snapshot.models import SnapshotContent

SNAPSHOT_FILENAME = "latest.json.gz"


class SnapshotDecodeError(ValueError):
    """Raised when a stored blob is not a valid snapshot."""


def snapshot_storage_path(space_id: str, save_id: str) -> str:
    """``<prefix>/<space_id>/<save_id>/latest.json.gz``"""
    return f"{settings.storage_prefix}/{space_id}/{save_id}/{SNAPSHOT_FILENAME}"


def serialize_snapshot(content: SnapshotContent) -> bytes:
    """Encode *content* as gzip'd UTF-8 JSON.

    The gzip header timestamp is pinned to zero so equal content always
    produces equal bytes.
    """
    payload = json.dumps(content.to_dict(), ensure_ascii=False).encode("utf-8")
    return gzip.compress(payload, mtime=0)


def deserialize_snapshot(data: bytes) -> SnapshotContent:
    """Inverse of :func:`serialize_snapshot`.

    Raises:
        SnapshotDecodeError: If *data* is not gzip, not JSON, or lacks a field.
    """
    try:
        raw = gzip.decompress(data)
        decoded = json.loads(raw.decode("utf-8"))
        if not isinstance(decoded, dict):
            raise SnapshotDecodeError("Snapshot payload is not a JSON object")
        return SnapshotContent.from_dict(decoded)
    except SnapshotDecodeError:
        raise
    except (OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as exc:
        raise SnapshotDecodeError(f"Malformed snapshot: {exc}") from exc
    except KeyError as exc:
        raise SnapshotDecodeError(f"Snapshot is missing field {exc}") from exc
