"""
User, session and verification records exchanged with the persistence adapter.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

if TYPE_CHECKING:
    from authflow.core.oauth.protocols.base import Profile


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_SCALARS = (str, int, float, bool, type(None))
_UNSERIALIZABLE = object()


def json_safe(value: Any) -> Any:
    """
    Reduce `value` to something JSON can encode.

    Dates become ISO strings; mappings and sequences are converted recursively, dropping
    `_`-prefixed keys. Anything else comes back as `_UNSERIALIZABLE`.
    """
    if isinstance(value, _SCALARS):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        result = {}
        for key, item in value.items():
            if str(key).startswith("_"):
                continue
            item = json_safe(item)
            if item is not _UNSERIALIZABLE:
                result[str(key)] = item
        return result
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [json_safe(item) for item in value]
        return [item for item in items if item is not _UNSERIALIZABLE]
    return _UNSERIALIZABLE


@dataclass
class User:
    """Resolved user."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    email_verified: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_profile(cls, profile: "Profile", user_id: Optional[str] = None) -> "User":
        extra = dict(profile.extra)
        if profile.username:
            extra["username"] = profile.username
        if profile.admin:
            extra["admin"] = True
        if profile.moderator:
            extra["moderator"] = True
        return cls(
            id=user_id or profile.id or "",
            email=profile.email,
            name=profile.name,
            image=profile.image,
            extra=extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation (embedded in session tokens)."""
        data: Dict[str, Any] = {
            **json_safe(self.extra),
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "image": self.image,
        }
        if self.email_verified is not None:
            data["email_verified"] = self.email_verified.isoformat()
        return data


@dataclass
class Session:
    """Opaque server-side session."""

    session_token: str
    user_id: str
    expires: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires is None:
            return False
        return self.expires <= (now or utcnow())


@dataclass
class VerificationRequest:
    """Pending email sign-in link."""

    identifier: str
    token: str
    expires: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires <= (now or utcnow())
