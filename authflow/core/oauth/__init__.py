"""
Provider protocols.

Four proof kinds, one verifier each:
- sso: HMAC-signed payload with a one-time nonce (Discourse-style)
- oauth: OAuth2 authorization code
- email: magic-link token
- credentials: username/password via a provider `authorize` callable

Module layout:
- config.py: provider config (ProviderConfig, ProviderKind, ProviderConfigLoader)
- signed_payload.py / nonce.py: signing and one-time bindings
- factory.py: kind -> verifier table
- protocols/: verifier implementations
"""

from authflow.core.oauth.config import (
    ProviderConfig,
    ProviderConfigLoader,
    ProviderKind,
)
from authflow.core.oauth.factory import get_verifier
from authflow.core.oauth.nonce import NonceBinder
from authflow.core.oauth.signed_payload import SignedPayloadCodec

__all__ = [
    "NonceBinder",
    "ProviderConfig",
    "ProviderConfigLoader",
    "ProviderKind",
    "SignedPayloadCodec",
    "get_verifier",
]
