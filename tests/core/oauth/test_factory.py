import pytest

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.oauth import factory
from authflow.core.oauth.config import ProviderKind
from authflow.core.oauth.factory import get_verifier, list_supported_kinds
from authflow.core.oauth.protocols.credentials import CredentialsVerifier
from authflow.core.oauth.protocols.email import EmailVerifier
from authflow.core.oauth.protocols.oauth2 import OAuth2Verifier
from authflow.core.oauth.protocols.sso import SSOVerifier


@pytest.mark.parametrize(
    "kind, verifier_class",
    [
        (ProviderKind.SSO, SSOVerifier),
        (ProviderKind.OAUTH, OAuth2Verifier),
        (ProviderKind.EMAIL, EmailVerifier),
        (ProviderKind.CREDENTIALS, CredentialsVerifier),
    ],
)
def test_every_kind_has_its_verifier(kind, verifier_class):
    verifier = get_verifier(kind)
    assert isinstance(verifier, verifier_class)
    assert verifier.kind is kind
    assert get_verifier(kind) is verifier


def test_supported_kinds_cover_the_enum():
    assert sorted(list_supported_kinds()) == sorted(kind.value for kind in ProviderKind)


def test_kind_without_verifier_is_configuration_error(monkeypatch):
    monkeypatch.setattr(factory, "_VERIFIERS", {})
    monkeypatch.setattr(factory, "_verifier_instances", {})

    with pytest.raises(CallbackError) as exc_info:
        get_verifier(ProviderKind.SSO)
    assert exc_info.value.code is ErrorCode.CONFIGURATION
