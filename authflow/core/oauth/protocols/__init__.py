"""
Protocol verifiers.

- SSOVerifier: signed payload + nonce
- OAuth2Verifier: authorization code (transport: HttpxOAuthTransport)
- EmailVerifier: magic link
- CredentialsVerifier: authorize() callable
"""

from authflow.core.oauth.protocols.base import Account, AuthProof, BaseVerifier, Profile
from authflow.core.oauth.protocols.credentials import CredentialsVerifier
from authflow.core.oauth.protocols.email import EmailVerifier
from authflow.core.oauth.protocols.oauth2 import HttpxOAuthTransport, OAuth2Verifier, OAuthTransport
from authflow.core.oauth.protocols.sso import SSOVerifier

__all__ = [
    "Account",
    "AuthProof",
    "BaseVerifier",
    "CredentialsVerifier",
    "EmailVerifier",
    "HttpxOAuthTransport",
    "OAuth2Verifier",
    "OAuthTransport",
    "Profile",
    "SSOVerifier",
]
