# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Destination routing for uploaded exchange files.

Files whose name starts with ``import_files`` (pictures and other payloads
referenced from the catalog XML) keep their folder and base name. All other
files land at the bucket root; catalog files get a generation timestamp
prefix so repeated uploads of ``import.xml`` do not overwrite each other.
Report files are stored under their plain name.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from catalog_exchange.core.config import ExchangeSettings
from catalog_exchange.core.errors import StorageError, ValidationError
from catalog_exchange.storage.blobs import BlobStorage

logger = logging.getLogger("catalog_exchange.storage")

IMPORT_FILES_PREFIX = "import_files"

EMPTY_FILENAME = "Filename is empty."
MISSING_BODY = "Request body is undefined"


@dataclass(frozen=True)
class Namespace:
    """Buckets and naming rules for one exchange type."""

    files_bucket: str       # for import_files/...
    root_bucket: str        # for everything else
    timestamp_root: bool    # prefix root files with a generation timestamp


@dataclass(frozen=True)
class Destination:
    bucket: str
    remote_path: str


def namespaces_from_settings(settings: ExchangeSettings) -> dict[str, Namespace]:
    return {
        "catalog": Namespace(
            files_bucket=settings.catalog_files_bucket,
            root_bucket=settings.catalog_bucket,
            timestamp_root=True,
        ),
        "report": Namespace(
            files_bucket=settings.report_bucket,
            root_bucket=settings.report_bucket,
            timestamp_root=False,
        ),
    }


def generation_timestamp(now: Optional[datetime] = None) -> str:
    """Sortable timestamp like ``2026-10-17_09-30-05-042+0000``."""
    now = now or datetime.now(timezone.utc)
    return (
        now.strftime("%Y-%m-%d_%H-%M-%S-")
        + f"{now.microsecond // 1000:03d}"
        + now.strftime("%z")
    )


def choose_destination(namespace: Namespace, filename: str, now: Optional[datetime] = None) -> Destination:
    """Pick bucket and remote path for ``filename`` inside ``namespace``."""
    if filename.startswith(IMPORT_FILES_PREFIX):
        folder = posixpath.dirname(filename)
        name = posixpath.basename(filename)
        return Destination(namespace.files_bucket, posixpath.join(folder, name))

    if namespace.timestamp_root:
        name = generation_timestamp(now) + "_" + filename
    else:
        name = filename
    return Destination(namespace.root_bucket, name)


class StorageRouter:
    """Validates an upload and writes it to the destination for its exchange type."""

    def __init__(
        self,
        blobs: BlobStorage,
        namespaces: dict[str, Namespace],
        timeout: float = 30.0,
    ) -> None:
        self._blobs = blobs
        self._namespaces = namespaces
        self._timeout = timeout

    async def route(self, exchange_type: str, filename: Optional[str], body: Optional[bytes]) -> str:
        """Store ``body`` under the destination chosen for ``filename``.

        Returns:
            ``"success"`` once the write completed.

        Raises:
            ValidationError: Empty filename, missing body, unknown type or unsafe path.
            StorageError: The blob backend failed or timed out.
        """
        if not filename:
            raise ValidationError(EMPTY_FILENAME)

        logger.info("filename: %s", filename)

        if body is None:
            raise ValidationError(MISSING_BODY)

        namespace = self._namespaces.get(exchange_type)
        if namespace is None:
            raise ValidationError(f"No storage namespace for type '{exchange_type}'.")

        destination = choose_destination(namespace, filename)
        await self._write(destination, body)
        return "success"

    async def _write(self, destination: Destination, body: bytes) -> None:
        try:
            await asyncio.wait_for(
                self._blobs.write(destination.bucket, destination.remote_path, body),
                timeout=self._timeout,
            )
        except ValueError as exc:
            raise ValidationError(f"Filename is not allowed: {destination.remote_path}") from exc
        except asyncio.TimeoutError as exc:
            raise StorageError(
                f"Upload to {destination.bucket}/{destination.remote_path} timed out after {self._timeout}s"
            ) from exc
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(
                f"Upload to {destination.bucket}/{destination.remote_path} failed: {exc}"
            ) from exc
