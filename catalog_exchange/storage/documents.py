# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Keyed document stores used for exchange sessions.

Documents are JSON-compatible dicts addressed by ``(collection, key)``.
PostgreSQL (asyncpg) is used when a database URL is configured; otherwise
documents live in process memory (dev mode, single instance only).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

logger = logging.getLogger("catalog_exchange.storage.documents")


@runtime_checkable
class DocumentStore(Protocol):
    async def get(self, collection: str, key: str) -> Optional[dict[str, Any]]: ...

    async def set(self, collection: str, key: str, data: dict[str, Any]) -> None: ...

    async def delete(self, collection: str, key: str) -> None: ...

    async def keys_expiring_by(self, collection: str, field: str, moment: datetime) -> list[str]: ...

    async def close(self) -> None: ...


class InMemoryDocumentStore:
    """Dict-backed document store. Deleting a missing key is a no-op."""

    def __init__(self) -> None:
        self._docs: dict[tuple[str, str], dict[str, Any]] = {}

    async def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        doc = self._docs.get((collection, key))
        return dict(doc) if doc is not None else None

    async def set(self, collection: str, key: str, data: dict[str, Any]) -> None:
        self._docs[(collection, key)] = dict(data)

    async def delete(self, collection: str, key: str) -> None:
        self._docs.pop((collection, key), None)

    async def keys_expiring_by(self, collection: str, field: str, moment: datetime) -> list[str]:
        """Keys whose ISO timestamp ``field`` is at or before ``moment``."""
        keys = []
        for (coll, key), doc in list(self._docs.items()):
            if coll != collection:
                continue
            raw = doc.get(field)
            if not isinstance(raw, str):
                continue
            try:
                if datetime.fromisoformat(raw) <= moment:
                    keys.append(key)
            except ValueError:
                logger.warning("Skipping document %s/%s with malformed %s", collection, key, field)
        return keys

    async def close(self) -> None:
        self._docs.clear()

    def __len__(self) -> int:
        return len(self._docs)


class PostgresDocumentStore:
    """Document store backed by a single JSONB table in PostgreSQL."""

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS exchange_documents (
            collection TEXT NOT NULL,
            key        TEXT NOT NULL,
            data       JSONB NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (collection, key)
        )
    """

    def __init__(self, pool) -> None:
        self._pool = pool

    @classmethod
    async def connect(cls, db_url: str, min_size: int = 1, max_size: int = 5) -> "PostgresDocumentStore":
        """Open a connection pool and make sure the schema exists."""
        import asyncpg

        pool = await asyncpg.create_pool(db_url, min_size=min_size, max_size=max_size)
        async with pool.acquire() as conn:
            await conn.execute(cls._SCHEMA)
        logger.info("[Documents] PostgreSQL connected, schema ready")
        return cls(pool)

    async def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT data FROM exchange_documents WHERE collection = $1 AND key = $2",
                collection, key,
            )
        if row is None:
            return None
        data = row["data"]
        return json.loads(data) if isinstance(data, str) else dict(data)

    async def set(self, collection: str, key: str, data: dict[str, Any]) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO exchange_documents (collection, key, data, updated_at)
                VALUES ($1, $2, $3::jsonb, NOW())
                ON CONFLICT (collection, key)
                DO UPDATE SET data = EXCLUDED.data, updated_at = NOW()
                """,
                collection, key, json.dumps(data),
            )

    async def delete(self, collection: str, key: str) -> None:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "DELETE FROM exchange_documents WHERE collection = $1 AND key = $2",
                collection, key,
            )

    async def keys_expiring_by(self, collection: str, field: str, moment: datetime) -> list[str]:
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT key FROM exchange_documents
                WHERE collection = $1 AND (data->>$2)::timestamptz <= $3
                """,
                collection, field, moment,
            )
        return [row["key"] for row in rows]

    async def close(self) -> None:
        await self._pool.close()


async def open_document_store(db_url: str) -> DocumentStore:
    """Return the PostgreSQL store for ``db_url``, or an in-memory store if empty."""
    if not db_url:
        logger.info("[Documents] No database URL set, sessions kept in memory (dev mode)")
        return InMemoryDocumentStore()
    return await PostgresDocumentStore.connect(db_url)
