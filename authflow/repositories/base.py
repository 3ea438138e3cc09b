"""
Persistence adapter contract.

Storage is owned by the application; the callback pipeline only talks to this interface.
Every method may suspend and may fail. Adapters signal the two recognized failure
conditions with `AccountNotLinkedError` and `CreateUserError`; anything else is treated
as an internal error.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from authflow.core.oauth.protocols.base import Account, Profile
from authflow.models.auth import Session, User, VerificationRequest


class AuthAdapter(ABC):
    """Base class for persistence adapters."""

    # ==================== Email verification ====================

    @abstractmethod
    async def create_verification_request(self, email: str, token: str, expires: datetime) -> VerificationRequest:
        ...

    @abstractmethod
    async def get_verification_request(self, email: str, token: str) -> Optional[VerificationRequest]:
        ...

    @abstractmethod
    async def delete_verification_request(self, email: str, token: str) -> None:
        """Must not fail when the request is already gone."""

    # ==================== Users / accounts ====================

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    async def get_user_by_provider_account_id(self, provider_id: str, provider_account_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def create_user(self, profile: Profile, email_verified: Optional[datetime] = None) -> User:
        """Raises CreateUserError when the user cannot be created."""

    @abstractmethod
    async def link_account(self, user_id: str, account: Account) -> None:
        """Raises AccountNotLinkedError when the account belongs to another user."""

    # ==================== Sessions ====================

    @abstractmethod
    async def create_session(self, user_id: str, expires: Optional[datetime]) -> Session:
        ...

    @abstractmethod
    async def get_session(self, session_token: str) -> Optional[Session]:
        ...
