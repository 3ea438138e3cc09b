"""
Sign-in authorization - the single allow/deny decision after a proof is verified.
"""

import asyncio

from loguru import logger

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.oauth.protocols.base import AuthProof
from authflow.core.options import Callbacks
from authflow.utils.hooks import call_hook

LOG_PREFIX = "[SigninAuthorizer]"


class SigninAuthorizer:
    """Runs the `signin` hook exactly once per callback."""

    def __init__(self, callbacks: Callbacks, timeout: float = 10.0):
        self.callbacks = callbacks
        self.timeout = timeout

    async def decide(self, proof: AuthProof) -> bool:
        """
        Ask the signin hook whether this identity may sign in.

        Only an explicit False denies; any other return value allows.

        Raises:
            CallbackError: INTERNAL_ERROR when the hook raises or times out
        """
        try:
            allowed = await call_hook(
                self.callbacks.signin,
                proof.profile,
                proof.account,
                proof.raw,
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise CallbackError(ErrorCode.INTERNAL_ERROR, "signin hook timed out") from e
        except Exception as e:
            logger.opt(exception=e).error(f"{LOG_PREFIX} signin hook raised")
            raise CallbackError(ErrorCode.INTERNAL_ERROR, "signin hook raised") from e

        if allowed is False:
            logger.info(f"{LOG_PREFIX} Sign in denied for {proof.account.provider_id}:{proof.account.key}")
            return False
        return True

    async def authorize(self, proof: AuthProof) -> None:
        """Raise ACCESS_DENIED unless `decide` allows the sign in."""
        if not await self.decide(proof):
            raise CallbackError(ErrorCode.ACCESS_DENIED, "signin hook denied")
