"""
One-time nonce bindings.

A nonce goes to the remote party; `HMAC-SHA256(secret, nonce)` is kept client-side in a
short-lived cookie. At callback time the presented nonce is re-hashed and compared to the
cookie, which is cleared on every attempt.
"""

import hashlib
import hmac
import secrets
from typing import Optional, Tuple

from authflow.core.cookies import CookieJar

NONCE_BYTES = 16


class NonceBinder:
    """Issues and consumes nonce bindings stored in `cookie_name`."""

    def __init__(self, secret: str, cookie_name: str):
        if not secret:
            raise ValueError("A secret is required to bind nonces")
        self._key = secret.encode("utf-8")
        self.cookie_name = cookie_name

    def binding_for(self, nonce: str) -> str:
        return hmac.new(self._key, nonce.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self) -> Tuple[str, str]:
        """
        Returns:
            Tuple of (nonce_hex, binding_hex)
        """
        nonce = secrets.token_bytes(NONCE_BYTES).hex()
        return nonce, self.binding_for(nonce)

    def bind(self, jar: CookieJar, max_age: int) -> str:
        """Issue a nonce and store its binding in the jar. Returns the nonce."""
        nonce, binding = self.issue()
        jar.set(self.cookie_name, binding, max_age=max_age)
        return nonce

    def consume_and_verify(self, presented_nonce: Optional[str], jar: CookieJar) -> bool:
        """
        Compare `presented_nonce` with the stored binding.

        The binding is removed from the jar (and a clearing cookie scheduled) before the
        comparison, whatever the outcome. Missing values on either side never match.
        """
        stored = jar.pop(self.cookie_name)
        if not presented_nonce or not stored:
            return False
        expected = self.binding_for(presented_nonce)
        return hmac.compare_digest(expected.encode("utf-8"), stored.encode("utf-8"))
