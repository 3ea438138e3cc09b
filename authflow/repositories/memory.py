"""
In-memory adapter for tests and local development. Not shared across processes.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from loguru import logger

from authflow.common.exceptions import AccountNotLinkedError, CreateUserError
from authflow.core.oauth.protocols.base import Account, Profile
from authflow.core.security import generate_token
from authflow.models.auth import Session, User, VerificationRequest
from authflow.repositories.base import AuthAdapter

LOG_PREFIX = "[InMemoryAdapter]"


class InMemoryAdapter(AuthAdapter):
    """Dict-backed adapter."""

    def __init__(self) -> None:
        self.users: Dict[str, User] = {}
        self.accounts: Dict[Tuple[str, str], str] = {}
        self.sessions: Dict[str, Session] = {}
        self.verification_requests: Dict[Tuple[str, str], VerificationRequest] = {}
        self.linked: List[Tuple[str, Account]] = []

    async def create_verification_request(self, email: str, token: str, expires: datetime) -> VerificationRequest:
        record = VerificationRequest(identifier=email, token=token, expires=expires)
        self.verification_requests[(email, token)] = record
        return record

    async def get_verification_request(self, email: str, token: str) -> Optional[VerificationRequest]:
        return self.verification_requests.get((email, token))

    async def delete_verification_request(self, email: str, token: str) -> None:
        self.verification_requests.pop((email, token), None)

    async def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        wanted = email.lower()
        return next((u for u in self.users.values() if u.email and u.email.lower() == wanted), None)

    async def get_user_by_provider_account_id(self, provider_id: str, provider_account_id: str) -> Optional[User]:
        user_id = self.accounts.get((provider_id, provider_account_id))
        return self.users.get(user_id) if user_id else None

    async def create_user(self, profile: Profile, email_verified: Optional[datetime] = None) -> User:
        if profile.email and await self.get_user_by_email(profile.email):
            raise CreateUserError(f"User with email {profile.email} already exists")
        user = User.from_profile(profile, user_id=str(uuid.uuid4()))
        user.email_verified = email_verified
        self.users[user.id] = user
        logger.info(f"{LOG_PREFIX} Created user {user.id}")
        return user

    async def link_account(self, user_id: str, account: Account) -> None:
        key = (account.provider_id, account.key)
        owner = self.accounts.get(key)
        if owner and owner != user_id:
            raise AccountNotLinkedError(f"{account.provider_id}:{account.key} is linked to another user")
        self.accounts[key] = user_id
        self.linked.append((user_id, account))

    async def create_session(self, user_id: str, expires: Optional[datetime]) -> Session:
        session = Session(session_token=generate_token(32), user_id=user_id, expires=expires)
        self.sessions[session.session_token] = session
        return session

    async def get_session(self, session_token: str) -> Optional[Session]:
        session = self.sessions.get(session_token)
        if session and session.is_expired():
            self.sessions.pop(session_token, None)
            return None
        return session
