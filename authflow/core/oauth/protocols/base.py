"""
Base class for protocol verifiers.

Every provider kind has one verifier. A verifier turns an inbound callback into an
`AuthProof` or raises `CallbackError`; it never touches the HTTP response.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Mapping, Optional

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.cookies import CookieJar
from authflow.core.oauth.config import ProviderConfig, ProviderKind

if TYPE_CHECKING:
    from authflow.core.options import AuthOptions
    from authflow.schemas.callback import CallbackRequest

LOG_PREFIX = "[Verifier]"


@dataclass
class Profile:
    """
    Unified identity profile.

    All verifiers produce this structure so the rest of the pipeline is provider-agnostic.
    """

    id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    image: Optional[str] = None
    username: Optional[str] = None
    admin: bool = False
    moderator: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Profile":
        """Build a profile from a user dict (e.g. returned by a credentials `authorize`)."""
        known = {"id", "email", "name", "image", "username", "admin", "moderator"}
        user_id = data.get("id")
        return cls(
            id=str(user_id) if user_id is not None else None,
            email=data.get("email"),
            name=data.get("name"),
            image=data.get("image"),
            username=data.get("username"),
            admin=bool(data.get("admin", False)),
            moderator=bool(data.get("moderator", False)),
            extra={k: v for k, v in data.items() if k not in known and not str(k).startswith("_")},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "image": self.image,
            "username": self.username,
            "admin": self.admin,
            "moderator": self.moderator,
        }


@dataclass
class Account:
    """The provider-side identity the profile was proven with."""

    id: str
    provider_id: str
    kind: ProviderKind
    provider_account_id: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

    @property
    def key(self) -> str:
        """Identifier of this account within its provider."""
        return self.provider_account_id or self.id

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "provider": self.provider_id,
            "type": self.kind.value,
        }
        if self.provider_account_id is not None:
            data["provider_account_id"] = self.provider_account_id
        if self.access_token is not None:
            data["access_token"] = self.access_token
        if self.refresh_token is not None:
            data["refresh_token"] = self.refresh_token
        if self.expires_at is not None:
            data["expires_at"] = self.expires_at
        return data


@dataclass
class AuthProof:
    """Verified identity. `raw` is opaque and only forwarded to hooks."""

    profile: Profile
    account: Account
    raw: Optional[Dict[str, Any]] = None


class BaseVerifier(ABC):
    """
    Base class for protocol verifiers.

    Each provider kind (sso, oauth, email, credentials) implements `verify`. Kinds with
    a redirect-based initiation also implement `signin_url`.
    """

    kind: ClassVar[ProviderKind]

    @abstractmethod
    async def verify(
        self,
        request: "CallbackRequest",
        provider: ProviderConfig,
        options: "AuthOptions",
        jar: CookieJar,
    ) -> AuthProof:
        """
        Verify the proof carried by a callback request.

        Args:
            request: Parsed callback request
            provider: Provider config
            options: Process-wide options
            jar: Request-scoped cookies (reads and outgoing directives)

        Returns:
            AuthProof: Canonical (profile, account, raw)

        Raises:
            CallbackError: Verification failed
        """

    async def signin_url(self, provider: ProviderConfig, options: "AuthOptions", jar: CookieJar) -> str:
        """
        Build the URL that starts a sign in with this provider.

        Any binding cookie the callback will need is written to `jar`.
        """
        raise CallbackError(ErrorCode.CONFIGURATION, f"{provider.kind.value} providers have no sign-in redirect")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} kind={self.kind.value}>"
