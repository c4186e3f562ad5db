# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Session and CSRF token validation for every step after ``checkauth``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from catalog_exchange.auth.session_store import SessionStore
from catalog_exchange.core.config import ExchangeSettings

logger = logging.getLogger("catalog_exchange.auth")

NO_SESSION = "No active session found. Use 'checkauth' to start a new session."
INVALID_CSRF = "Invalid CSRF token."


@dataclass(frozen=True)
class SessionCheck:
    valid: bool
    error: Optional[str] = None


class SessionValidator:
    def __init__(self, settings: ExchangeSettings, sessions: SessionStore) -> None:
        self._settings = settings
        self._sessions = sessions

    async def validate(self, session_id: Optional[str], csrf_token: Optional[str]) -> SessionCheck:
        """Confirm an active session exists and, if enabled, that the CSRF token matches."""
        stored = await self._sessions.load(session_id)
        if stored is None:
            return SessionCheck(valid=False, error=NO_SESSION)

        if self._settings.csrf_protection and (csrf_token or "") != stored.csrf_token:
            logger.warning("CSRF token mismatch for session %s", stored.session_id[:8])
            return SessionCheck(valid=False, error=INVALID_CSRF)

        return SessionCheck(valid=True)
