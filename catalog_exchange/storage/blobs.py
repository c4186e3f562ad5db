# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Blob storage for uploaded exchange files.

Layout on disk: ``<root>/<bucket>/<remote path>``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger("catalog_exchange.storage.blobs")


@runtime_checkable
class BlobStorage(Protocol):
    async def write(self, bucket: str, remote_path: str, data: bytes) -> None: ...

    async def read(self, bucket: str, remote_path: str) -> bytes: ...


class LocalBlobStorage:
    """Buckets as directories below ``root``; writes happen in a worker thread."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, bucket: str, remote_path: str) -> Path:
        bucket_dir = (self._root / bucket).resolve()
        target = (bucket_dir / remote_path.lstrip("/")).resolve()
        if target == bucket_dir or bucket_dir not in target.parents:
            raise ValueError(f"Remote path {remote_path!r} escapes bucket {bucket!r}")
        return target

    def _write_sync(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        # One temp file per write; concurrent uploads of a path never share it
        tf = tempfile.NamedTemporaryFile(
            dir=target.parent, prefix=f".{target.name}.", suffix=".part", delete=False,
        )
        temp_path = Path(tf.name)
        try:
            with tf:
                tf.write(data)
            os.replace(temp_path, target)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise

    async def write(self, bucket: str, remote_path: str, data: bytes) -> None:
        target = self._resolve(bucket, remote_path)
        await asyncio.to_thread(self._write_sync, target, data)
        logger.info("Uploaded to: %s/%s (%d bytes)", bucket, remote_path, len(data))

    async def read(self, bucket: str, remote_path: str) -> bytes:
        target = self._resolve(bucket, remote_path)
        return await asyncio.to_thread(target.read_bytes)
