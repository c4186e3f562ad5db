# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Credentials and exchange session records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional


@dataclass(frozen=True)
class Credentials:
    """HTTP Basic credentials from a single request. Never persisted."""

    username: str = ""
    password: str = ""


@dataclass(frozen=True)
class Session:
    """An exchange session opened by a successful ``checkauth``."""

    session_id: str
    csrf_token: str
    expiration_timestamp: datetime

    @classmethod
    def issue(cls, duration_seconds: int, now: Optional[datetime] = None) -> "Session":
        """Create a session with fresh random ids expiring ``duration_seconds`` from now."""
        now = now or datetime.now(timezone.utc)
        return cls(
            session_id=str(uuid.uuid4()),
            csrf_token=str(uuid.uuid4()),
            expiration_timestamp=now + timedelta(seconds=duration_seconds),
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expiration_timestamp <= (now or datetime.now(timezone.utc))

    def to_document(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "csrfToken": self.csrf_token,
            "expirationTimestamp": self.expiration_timestamp.isoformat(),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "Session":
        """Build a session from a stored document.

        Raises:
            ValueError: If a field is missing or the timestamp is malformed.
        """
        try:
            expiration = datetime.fromisoformat(doc["expirationTimestamp"])
            session_id = doc["sessionId"]
            csrf_token = doc["csrfToken"]
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Incomplete session document: {exc}") from exc
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        return cls(session_id=session_id, csrf_token=csrf_token, expiration_timestamp=expiration)
