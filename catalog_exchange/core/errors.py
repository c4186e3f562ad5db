# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>
# See LICENSE (AGPL-3.0) or LICENSE-COMMERCIAL for licensing terms.

"""Exchange error taxonomy.

Everything except ConfigError is recoverable: the dispatcher turns it into
an in-band ``failure`` reply. ConfigError is raised while loading settings
and stops the service from starting.
"""

from __future__ import annotations


class ExchangeError(Exception):
    """Base class for all exchange errors."""

    recoverable: bool = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(ExchangeError):
    """Required settings are missing or invalid."""

    recoverable = False


class AuthError(ExchangeError):
    """Credentials did not match the configured ones."""


class SessionError(ExchangeError):
    """No active session, or the CSRF token does not match."""


class ValidationError(ExchangeError):
    """Request parameters are missing or unsupported."""


class StorageError(ExchangeError):
    """Document or blob backend failed or timed out."""
