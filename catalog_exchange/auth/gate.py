# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""``checkauth`` step: verify credentials and open an exchange session."""

from __future__ import annotations

import asyncio
import time

from catalog_exchange.auth.models import Credentials, Session
from catalog_exchange.auth.session_store import SessionStore
from catalog_exchange.core.config import ExchangeSettings
from catalog_exchange.core.errors import AuthError, StorageError
from catalog_exchange.core.logger import ExchangeLogger
from catalog_exchange.exchange.result import SUCCESS, ExchangeResult

log = ExchangeLogger(name="auth")


class AuthGate:
    """Checks static credentials and issues exchange sessions."""

    def __init__(self, settings: ExchangeSettings, sessions: SessionStore) -> None:
        self._settings = settings
        self._sessions = sessions

    def verify(self, credentials: Credentials) -> None:
        """Raise AuthError unless both username and password match exactly."""
        if (
            credentials.username != self._settings.username
            or credentials.password != self._settings.password
        ):
            log.warning("checkauth rejected", username=credentials.username)
            raise AuthError("Unauthorized")

    async def checkauth(self, credentials: Credentials) -> ExchangeResult:
        """Authenticate and return the session reply lines.

        Raises:
            AuthError: Credentials do not match.
            StorageError: Sweeping old sessions or saving the new one failed.
        """
        self.verify(credentials)

        session = Session.issue(self._settings.session_duration_seconds)

        # Both run to completion; the first failure is raised afterwards
        outcomes = await asyncio.gather(
            self._sessions.sweep_expired(),
            self._sessions.save(session),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                if isinstance(outcome, (asyncio.CancelledError, StorageError)):
                    raise outcome
                raise StorageError(f"checkauth failed: {outcome}") from outcome

        log.info("Exchange session opened", session_id=session.session_id)
        return ExchangeResult.of(
            SUCCESS,
            self._settings.session_id_cookie_name,
            session.session_id,
            f"{self._settings.csrf_token_name}={session.csrf_token}",
            f"timestamp={round(time.time())}",
            session=session,
        )
