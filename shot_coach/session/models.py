"""Data types exchanged with the analysis service."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from ..core.frame import Frame


class ShotOutcome(str, Enum):
    MAKE = "make"
    MISS = "miss"
    # No analysis could be performed (no channel, unusable frame).
    INDETERMINATE = "indeterminate"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_SETUP_ACK = "awaiting_setup_ack"
    READY = "ready"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class AnalysisResult:
    """Verdict for one shot."""

    outcome: ShotOutcome
    tip: str = ""
    # "live", "fallback" or "default"
    source: str = "default"
    request_id: Optional[str] = None


@dataclass(frozen=True, eq=False)
class AnalysisRequest:
    """One shot's frame plus the context sent with it."""

    frame: Frame
    last_tip: str = ""
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionCredential:
    """Short-lived token authorising one streaming session.

    A credential may only *open* a session before ``session_start_deadline``
    and stays valid for an open session until ``expires_at``.
    """

    token: str
    expires_at: datetime
    session_start_deadline: datetime

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return (now or _utcnow()) < self.expires_at

    def can_start_session(self, now: Optional[datetime] = None) -> bool:
        return (now or _utcnow()) < self.session_start_deadline

    def __repr__(self) -> str:
        # Keep the token out of logs.
        return (
            f"SessionCredential(token=<{len(self.token)} chars>, "
            f"expires_at={self.expires_at.isoformat()}, "
            f"session_start_deadline={self.session_start_deadline.isoformat()})"
        )
