"""Local blob storage for serialized snapshots.

Blobs live under ``settings.storage_dir`` at the relative path returned by
:func:`snapshot_storage_path`, so the same key works for an object store.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from readvault.config import settings
from readvault.snapshot.models import SnapshotContent
from readvault.snapshot.serialization import (
    deserialize_snapshot,
    serialize_snapshot,
    snapshot_storage_path,
)

log = logging.getLogger(__name__)

_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def validate_id(value: str, label: str) -> str:
    """Reject identifiers that are not safe as a single path segment.

    Raises:
        ValueError: If *value* contains anything besides letters, digits,
            ``-`` and ``_``.
    """
    if not _ID_RE.match(value or ""):
        raise ValueError(f"Invalid {label}: {value!r}")
    return value


def blob_path(space_id: str, save_id: str) -> Path:
    validate_id(space_id, "space id")
    validate_id(save_id, "save id")
    return settings.storage_dir / snapshot_storage_path(space_id, save_id)


def write_snapshot(space_id: str, save_id: str, content: SnapshotContent) -> str:
    """Serialize *content* and store it, replacing any previous snapshot.

    The blob is written to a temporary file in the target directory and
    renamed into place, so readers never see a partial file.

    Returns:
        The storage-relative path of the blob.
    """
    target = blob_path(space_id, save_id)
    target.parent.mkdir(parents=True, exist_ok=True)
    data = serialize_snapshot(content)

    tmp = tempfile.NamedTemporaryFile(
        dir=target.parent, prefix=".tmp-", suffix=".gz", delete=False
    )
    tmp_path = Path(tmp.name)
    try:
        with tmp:
            tmp.write(data)
        os.replace(tmp_path, target)
    finally:
        tmp_path.unlink(missing_ok=True)

    log.info("Stored snapshot %s (%d bytes)", target, len(data))
    return snapshot_storage_path(space_id, save_id)


def read_snapshot(space_id: str, save_id: str) -> Optional[SnapshotContent]:
    """Load a stored snapshot, or ``None`` if none exists.

    Raises:
        SnapshotDecodeError: If the stored blob is corrupt.
    """
    path = blob_path(space_id, save_id)
    if not path.is_file():
        return None
    return deserialize_snapshot(path.read_bytes())
