"""Line-oriented exchange replies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from catalog_exchange.auth.models import Session

SUCCESS = "success"
FAILURE = "failure"


@dataclass(frozen=True)
class ExchangeResult:
    """Ordered reply lines; rendered joined with ``\\n``.

    ``session`` is set only on a successful ``checkauth`` so the transport
    can hand the session cookie to the client.
    """

    lines: tuple[str, ...]
    session: Optional[Session] = field(default=None, compare=False)

    @classmethod
    def of(cls, *lines: str, session: Optional[Session] = None) -> "ExchangeResult":
        return cls(lines=tuple(lines), session=session)

    @classmethod
    def success(cls) -> "ExchangeResult":
        return cls.of(SUCCESS)

    @classmethod
    def failure(cls, message: str) -> "ExchangeResult":
        return cls.of(FAILURE, message)

    @property
    def ok(self) -> bool:
        return not self.lines or self.lines[0] != FAILURE

    @property
    def text(self) -> str:
        return "\n".join(self.lines)
