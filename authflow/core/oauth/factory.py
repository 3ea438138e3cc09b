"""
Verifier factory.

Maps each ProviderKind to its verifier. The table is closed: a kind without a verifier
is a configuration error, there is no fallback.

Usage:
    from authflow.core.oauth.factory import get_verifier

    verifier = get_verifier(ProviderKind.SSO)
    proof = await verifier.verify(request, provider, options, jar)
"""

from typing import Dict, Type

from loguru import logger

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.oauth.config import ProviderKind
from authflow.core.oauth.protocols.base import BaseVerifier
from authflow.core.oauth.protocols.credentials import CredentialsVerifier
from authflow.core.oauth.protocols.email import EmailVerifier
from authflow.core.oauth.protocols.oauth2 import OAuth2Verifier
from authflow.core.oauth.protocols.sso import SSOVerifier

LOG_PREFIX = "[VerifierFactory]"

_VERIFIERS: Dict[ProviderKind, Type[BaseVerifier]] = {
    ProviderKind.SSO: SSOVerifier,
    ProviderKind.OAUTH: OAuth2Verifier,
    ProviderKind.EMAIL: EmailVerifier,
    ProviderKind.CREDENTIALS: CredentialsVerifier,
}

# Verifiers are stateless; one instance per kind
_verifier_instances: Dict[ProviderKind, BaseVerifier] = {}


def get_verifier(kind: ProviderKind) -> BaseVerifier:
    """
    Get the verifier for a provider kind.

    Raises:
        CallbackError: CONFIGURATION for a kind with no verifier
    """
    if kind in _verifier_instances:
        return _verifier_instances[kind]

    verifier_class = _VERIFIERS.get(kind)
    if verifier_class is None:
        logger.error(f"{LOG_PREFIX} No verifier for provider kind '{kind}'")
        raise CallbackError(ErrorCode.CONFIGURATION, f"Unsupported provider kind: {kind}")

    verifier = verifier_class()
    _verifier_instances[kind] = verifier
    logger.debug(f"{LOG_PREFIX} Created verifier for kind: {kind.value}")
    return verifier


def list_supported_kinds() -> list[str]:
    return [kind.value for kind in _VERIFIERS]
