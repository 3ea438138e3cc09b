"""
Callback request and outcome models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Mapping, Optional

from authflow.common.exceptions import ErrorCode
from authflow.core.cookies import CookieDirective


@dataclass
class CallbackRequest:
    """Transport-independent view of an inbound callback."""

    provider_id: str
    method: str = "GET"
    query: Mapping[str, str] = field(default_factory=dict)
    body: Mapping[str, Any] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)
    # Overrides the callback-url cookie when set; verified either way
    callback_url: Optional[str] = None


@dataclass(frozen=True)
class SessionArtifact:
    """Issued session: a signed JWT or an opaque session token."""

    value: str
    expires: Optional[datetime]
    is_jwt: bool


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class CallbackOutcome:
    """Terminal result of one callback: where to redirect and which cookies to write."""

    status: OutcomeStatus
    redirect_url: str
    cookies: List[CookieDirective] = field(default_factory=list)
    error: Optional[ErrorCode] = None
    session: Optional[SessionArtifact] = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS
