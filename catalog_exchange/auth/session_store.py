# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Exchange session store with lazy expiry and an expired-session sweep."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Optional, TypeVar

from catalog_exchange.auth.models import Session
from catalog_exchange.core.errors import StorageError
from catalog_exchange.storage.documents import DocumentStore

logger = logging.getLogger("catalog_exchange.auth")

T = TypeVar("T")

EXPIRATION_FIELD = "expirationTimestamp"


class SessionStore:
    """Sessions persisted in a document collection, one document per session id.

    Every lookup re-reads the backend; nothing is cached in process.
    """

    def __init__(self, documents: DocumentStore, collection: str, timeout: float = 30.0) -> None:
        self._documents = documents
        self._collection = collection
        self._timeout = timeout

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise StorageError(f"Session store {operation} timed out after {self._timeout}s") from exc
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(f"Session store {operation} failed: {exc}") from exc

    async def load(self, session_id: Optional[str]) -> Optional[Session]:
        """Return the active session for ``session_id`` or None.

        Expired or malformed records are deleted before returning None.
        """
        if not session_id:
            return None

        doc: Optional[dict[str, Any]] = await self._call(
            "get", self._documents.get(self._collection, session_id)
        )
        if doc is None:
            return None

        try:
            session = Session.from_document(doc)
        except ValueError as exc:
            logger.warning("Session %s has a malformed record (%s), deleting", session_id[:8], exc)
            await self.delete(session_id)
            return None

        if session.is_expired():
            logger.info("Session %s expired, deleting", session_id[:8])
            await self.delete(session_id)
            return None
        return session

    async def save(self, session: Session) -> None:
        """Upsert ``session`` keyed by its session id."""
        await self._call(
            "save", self._documents.set(self._collection, session.session_id, session.to_document())
        )

    async def delete(self, session_id: str) -> None:
        await self._call("delete", self._documents.delete(self._collection, session_id))

    async def sweep_expired(self) -> int:
        """Delete every session expiring at or before now. Returns count removed."""
        now = datetime.now(timezone.utc)
        keys: list[str] = await self._call(
            "sweep", self._documents.keys_expiring_by(self._collection, EXPIRATION_FIELD, now)
        )
        if not keys:
            return 0

        await asyncio.gather(*(self.delete(key) for key in keys))
        logger.info("Swept %d expired exchange session(s)", len(keys))
        return len(keys)
