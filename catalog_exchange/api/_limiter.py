# SPDX-License-Identifier: AGPL-3.0-only OR LicenseRef-Moltr-Commercial
# Copyright (C) 2026 Walter Troska / moltrHQ <hello@moltr.tech>

"""Shared slowapi Limiter instance, imported by server.py."""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

EXCHANGE_RATE_LIMIT = "600/minute"
HEALTH_RATE_LIMIT = "60/minute"
