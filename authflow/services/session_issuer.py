"""
Session issuing - resolve the user behind a verified proof and mint the session cookie.

Two modes, chosen process-wide by `Settings.session_jwt`:
- JWT: `{user, account, isNewUser}` -> `jwt` hook -> signed token, cookie expires at now + max_age
- Opaque: adapter `create_session`, cookie expires with the stored session

User resolution (adapter present):
1. Linked account -> its user (conflict if a different user is signed in)
2. Signed in -> link the account to the current user
3. Email kind -> existing user by email, or a new user with a verified email
4. Same email on another user -> link if `auto_link_by_email`, otherwise conflict
5. Registration closed -> user creation failure
6. Otherwise -> create user and link account
"""

import asyncio
from datetime import timedelta
from typing import Any, Awaitable, Dict, Optional, Tuple, TypeVar

from loguru import logger

from authflow.common.exceptions import (
    AccountNotLinkedError,
    CallbackError,
    CreateUserError,
    ErrorCode,
)
from authflow.core.cookies import CookieJar
from authflow.core.events import CREATE_USER, LINK_ACCOUNT
from authflow.core.oauth.config import ProviderKind
from authflow.core.oauth.protocols.base import Account, AuthProof
from authflow.core.options import AuthOptions
from authflow.core.security import decode_session_jwt, encode_session_jwt
from authflow.models.auth import User, utcnow
from authflow.repositories.base import AuthAdapter
from authflow.schemas.callback import SessionArtifact
from authflow.utils.hooks import call_hook, with_timeout

LOG_PREFIX = "[SessionIssuer]"

T = TypeVar("T")


class SessionIssuer:
    """Per-request session issuer; reads and writes cookies through the request's jar."""

    def __init__(self, options: AuthOptions, jar: CookieJar):
        self.options = options
        self.settings = options.settings
        self.jar = jar
        self.timeout = options.settings.collaborator_timeout
        self._current_user_id: Optional[str] = None
        self._current_session_token: Optional[str] = None
        self._current_resolved = False

    async def _call(self, awaitable: Awaitable[T]) -> T:
        """Run an adapter call, mapping its failures onto callback error codes."""
        try:
            return await with_timeout(awaitable, self.timeout)
        except CallbackError:
            raise
        except AccountNotLinkedError as e:
            raise CallbackError(ErrorCode.ACCOUNT_CONFLICT, str(e)) from e
        except CreateUserError as e:
            raise CallbackError(ErrorCode.USER_CREATION_FAILED, str(e)) from e
        except asyncio.TimeoutError as e:
            raise CallbackError(ErrorCode.INTERNAL_ERROR, "Adapter call timed out") from e
        except Exception as e:
            logger.opt(exception=e).error(f"{LOG_PREFIX} Adapter call failed")
            raise CallbackError(ErrorCode.INTERNAL_ERROR, "Adapter call failed") from e

    # ==================== Current session ====================

    async def current_user_id(self) -> Optional[str]:
        """User id of the session carried by the request, if any."""
        if self._current_resolved:
            return self._current_user_id
        self._current_resolved = True

        token = self.jar.get(self.settings.session_cookie_name)
        if not token:
            return None

        if self.settings.session_jwt:
            claims = decode_session_jwt(token, self.settings.secret_key, self.settings.algorithm)
            if claims:
                user = claims.get("user")
                user_id = user.get("id") if isinstance(user, dict) else None
                self._current_user_id = user_id or claims.get("sub")
        elif self.options.adapter is not None:
            session = await self._call(self.options.adapter.get_session(token))
            if session is not None:
                self._current_user_id = session.user_id
                self._current_session_token = session.session_token

        return self._current_user_id

    # ==================== User resolution ====================

    async def create_or_resolve_user(self, proof: AuthProof) -> Tuple[User, bool]:
        """
        Resolve (or create) the user for a verified proof.

        Returns:
            Tuple of (user, is_new_user)

        Raises:
            CallbackError: ACCOUNT_CONFLICT, USER_CREATION_FAILED, CONFIGURATION or INTERNAL_ERROR
        """
        adapter = self.options.adapter
        if adapter is None:
            if not self.settings.session_jwt:
                raise CallbackError(ErrorCode.CONFIGURATION, "Database sessions require an adapter")
            # Stateless JWT mode: the profile is the user
            return User.from_profile(proof.profile), False

        profile, account = proof.profile, proof.account
        current_user_id = await self.current_user_id()

        if account.kind is ProviderKind.EMAIL:
            return await self._resolve_email_user(adapter, proof)

        linked_user = await self._call(adapter.get_user_by_provider_account_id(account.provider_id, account.key))
        if linked_user is not None:
            if current_user_id and current_user_id != linked_user.id:
                raise CallbackError(ErrorCode.ACCOUNT_CONFLICT, "Account already linked to another user")
            return linked_user, False

        if current_user_id:
            current_user = await self._call(adapter.get_user(current_user_id))
            if current_user is not None:
                await self._link(adapter, current_user, account)
                return current_user, False

        if profile.email:
            same_email = await self._call(adapter.get_user_by_email(profile.email))
            if same_email is not None:
                if not self.settings.auto_link_by_email:
                    raise CallbackError(ErrorCode.ACCOUNT_CONFLICT, "Email already used by another account")
                await self._link(adapter, same_email, account)
                return same_email, False

        if not self.settings.allow_registration:
            raise CallbackError(ErrorCode.USER_CREATION_FAILED, "Registration is closed")

        user = await self._create_user(adapter, proof)
        await self._link(adapter, user, account)
        return user, True

    async def _resolve_email_user(self, adapter: AuthAdapter, proof: AuthProof) -> Tuple[User, bool]:
        email = proof.profile.email or proof.account.key
        user = await self._call(adapter.get_user_by_email(email))
        if user is not None:
            return user, False

        if not self.settings.allow_registration:
            raise CallbackError(ErrorCode.USER_CREATION_FAILED, "Registration is closed")

        user = await self._create_user(adapter, proof, email_verified=True)
        return user, True

    async def _create_user(self, adapter: AuthAdapter, proof: AuthProof, email_verified: bool = False) -> User:
        user = await self._call(adapter.create_user(proof.profile, utcnow() if email_verified else None))
        logger.info(f"{LOG_PREFIX} New user {user.id} via {proof.account.provider_id}")
        await self.options.events.dispatch(CREATE_USER, {"user": user})
        return user

    async def _link(self, adapter: AuthAdapter, user: User, account: Account) -> None:
        await self._call(adapter.link_account(user.id, account))
        logger.info(f"{LOG_PREFIX} Linked {account.provider_id}:{account.key} to user {user.id}")
        await self.options.events.dispatch(LINK_ACCOUNT, {"user": user, "account": account})

    # ==================== Session ====================

    async def issue(self, user: User, proof: AuthProof, is_new_user: Optional[bool]) -> SessionArtifact:
        """
        Issue the session and record the session cookie in the jar.

        `is_new_user` is None for sign ins that never resolve a user (credentials); the
        token payload then has no `isNewUser` claim.
        """
        if self.settings.session_jwt:
            return await self._issue_jwt(user, proof, is_new_user)
        return await self._issue_opaque(user)

    async def _issue_jwt(self, user: User, proof: AuthProof, is_new_user: Optional[bool]) -> SessionArtifact:
        payload: Dict[str, Any] = {"user": user.to_dict(), "account": proof.account.to_dict()}
        if is_new_user is not None:
            payload["isNewUser"] = is_new_user

        # Only the OAuth profile is handed to the jwt hook; never the credentials body
        raw = proof.raw if proof.account.kind is ProviderKind.OAUTH else None
        try:
            claims = await call_hook(self.options.callbacks.jwt, payload, raw, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise CallbackError(ErrorCode.INTERNAL_ERROR, "jwt hook timed out") from e
        except Exception as e:
            logger.opt(exception=e).error(f"{LOG_PREFIX} jwt hook raised")
            raise CallbackError(ErrorCode.INTERNAL_ERROR, "jwt hook raised") from e

        if not isinstance(claims, dict):
            raise CallbackError(ErrorCode.INTERNAL_ERROR, "jwt hook must return a dict")

        token, expires = encode_session_jwt(
            claims,
            self.settings.secret_key,
            self.settings.algorithm,
            self.settings.session_max_age,
        )
        self.jar.set(self.settings.session_cookie_name, token, expires=expires)
        return SessionArtifact(value=token, expires=expires, is_jwt=True)

    async def _issue_opaque(self, user: User) -> SessionArtifact:
        adapter = self.options.adapter
        if adapter is None:
            raise CallbackError(ErrorCode.CONFIGURATION, "Database sessions require an adapter")

        current_user_id = await self.current_user_id()
        if self._current_session_token and current_user_id == user.id:
            session = await self._call(adapter.get_session(self._current_session_token))
        else:
            session = None

        if session is None:
            expires = utcnow() + timedelta(seconds=self.settings.session_max_age)
            session = await self._call(adapter.create_session(user.id, expires))

        self.jar.set(self.settings.session_cookie_name, session.session_token, expires=session.expires)
        return SessionArtifact(value=session.session_token, expires=session.expires, is_jwt=False)
