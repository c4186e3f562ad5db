# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Exchange protocol dispatcher.

Each request is classified by its ``(type, mode)`` pair:

  A. checkauth: verify credentials, open a session (no session required)
  B. init:      announce zip support and the file size limit
  C. file:      store one uploaded file
  D. import:    acknowledge import of an uploaded catalog file

Every mode except checkauth requires an active session. Recoverable errors
are turned into a ``failure`` reply here; nothing but ConfigError reaches
the transport.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from catalog_exchange.auth.gate import AuthGate
from catalog_exchange.auth.models import Credentials
from catalog_exchange.auth.validator import SessionValidator
from catalog_exchange.core.config import ExchangeSettings
from catalog_exchange.core.errors import (
    ExchangeError,
    SessionError,
    StorageError,
    ValidationError,
)
from catalog_exchange.core.logger import ExchangeLogger
from catalog_exchange.exchange.result import ExchangeResult
from catalog_exchange.storage.router import EMPTY_FILENAME, StorageRouter

STORAGE_FAILURE = "Internal storage error."


class ExchangeType(str, Enum):
    CATALOG = "catalog"
    REPORT = "report"


class ExchangeMode(str, Enum):
    CHECKAUTH = "checkauth"
    INIT = "init"
    FILE = "file"
    IMPORT = "import"


SUPPORTED_TYPES = ", ".join(t.value for t in ExchangeType)


@dataclass(frozen=True)
class RequestContext:
    """One inbound exchange call, already extracted from the transport request.

    ``exchange_type`` and ``mode`` stay raw strings so unsupported values can
    be echoed back.
    """

    exchange_type: str
    mode: str
    filename: Optional[str] = None
    body: Optional[bytes] = None
    session_id: Optional[str] = None
    csrf_token: Optional[str] = None
    credentials: Credentials = Credentials()


class ProtocolDispatcher:
    """Stateless handler for the exchange protocol."""

    name = "exchange"

    def __init__(
        self,
        settings: ExchangeSettings,
        auth_gate: AuthGate,
        validator: SessionValidator,
        storage: StorageRouter,
        event_log: Optional[ExchangeLogger] = None,
    ) -> None:
        self._settings = settings
        self._auth_gate = auth_gate
        self._validator = validator
        self._storage = storage
        self._log = event_log if event_log is not None else ExchangeLogger(name=self.name)

    async def handle(self, context: RequestContext) -> ExchangeResult:
        """Run one protocol step and return the reply, never raising recoverable errors."""
        try:
            result = await self._dispatch(context)
        except StorageError as exc:
            self._log.error(
                "Storage failure",
                exc_info=True,
                exchange_type=context.exchange_type,
                mode=context.mode,
                error=str(exc),
            )
            result = ExchangeResult.failure(STORAGE_FAILURE)
        except ExchangeError as exc:
            if not exc.recoverable:
                raise
            self._log.warning(
                "Exchange step failed",
                exchange_type=context.exchange_type,
                mode=context.mode,
                reason=exc.message,
            )
            result = ExchangeResult.failure(exc.message)

        self._record(context, result)
        return result

    async def _dispatch(self, context: RequestContext) -> ExchangeResult:
        exchange_type = context.exchange_type
        mode = context.mode
        self._log.debug("Exchange request", exchange_type=exchange_type, mode=mode, session_id=context.session_id or "")

        if exchange_type not in (t.value for t in ExchangeType):
            raise ValidationError(
                f'Parameter type "{exchange_type}" is not supported. Supported parameters: {SUPPORTED_TYPES}'
            )

        # Step A
        if mode == ExchangeMode.CHECKAUTH.value:
            return await self._auth_gate.checkauth(context.credentials)

        check = await self._validator.validate(context.session_id, context.csrf_token)
        if not check.valid:
            raise SessionError(check.error or "Invalid session.")

        # Step B
        if mode == ExchangeMode.INIT.value:
            return self.init()

        # Step C
        if mode == ExchangeMode.FILE.value:
            await self._storage.route(exchange_type, context.filename, context.body)
            return ExchangeResult.success()

        # Step D
        if mode == ExchangeMode.IMPORT.value:
            return self.import_file(context.filename)

        raise ValidationError(f"Type '{exchange_type}' and mode '{mode}' are not supported.")

    def init(self) -> ExchangeResult:
        return ExchangeResult.of(
            f"zip={'yes' if self._settings.zip else 'no'}",
            f"file_limit={self._settings.file_size_limit}",
        )

    def import_file(self, filename: Optional[str]) -> ExchangeResult:
        """Acknowledge an import request.

        Parsing and applying the uploaded catalog is not implemented; the
        step only checks that a filename was given.
        """
        if not filename:
            raise ValidationError(EMPTY_FILENAME)
        self._log.info("Import requested", filename=filename)
        return ExchangeResult.success()

    def _record(self, context: RequestContext, result: ExchangeResult) -> None:
        details: dict[str, object] = {"filename": context.filename or ""}
        if context.body is not None:
            details["size"] = len(context.body)
        if not result.ok:
            details["message"] = result.lines[1] if len(result.lines) > 1 else ""
        if result.session is not None:
            details["session_id"] = result.session.session_id
        self._log.exchange_event(
            context.exchange_type,
            context.mode,
            "success" if result.ok else "failure",
            details,
        )
