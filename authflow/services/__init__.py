"""
Services - the sign-in pipeline above the protocol verifiers.
"""

from authflow.services.authorizer import SigninAuthorizer
from authflow.services.callback_service import CallbackOrchestrator
from authflow.services.session_issuer import SessionIssuer

__all__ = ["CallbackOrchestrator", "SessionIssuer", "SigninAuthorizer"]
