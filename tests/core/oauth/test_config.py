"""
Tests for the YAML provider loader.
"""

import textwrap
from dataclasses import FrozenInstanceError

import pytest

from authflow.core.oauth.config import ProviderConfig, ProviderConfigLoader, ProviderKind
from authflow.core.oauth.signed_payload import SignedPayloadCodec


def _write(tmp_path, content):
    path = tmp_path / "providers.yaml"
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return str(path)


def test_loads_templates_and_expands_env(tmp_path, monkeypatch):
    monkeypatch.setenv("GITHUB_CLIENT_ID", "gh-id")
    monkeypatch.setenv("GITHUB_CLIENT_SECRET", "gh-secret")
    monkeypatch.setenv("DISCOURSE_SECRET", "s3cret")
    path = _write(
        tmp_path,
        """
        providers:
          github:
            enabled: true
            template: github
            client_id: ${GITHUB_CLIENT_ID}
            client_secret: ${GITHUB_CLIENT_SECRET}
          forum:
            enabled: true
            template: discourse
            secret: ${DISCOURSE_SECRET}
            url: https://forum.example
            display_name: Community
          google:
            enabled: false
            template: google
        """,
    )

    loader = ProviderConfigLoader(path)
    providers = loader.get_all_providers()

    assert set(providers) == {"github", "forum"}
    github = providers["github"]
    assert github.kind is ProviderKind.OAUTH
    assert github.client_id == "gh-id"
    assert github.client_secret == "gh-secret"
    assert github.token_endpoint_auth_method == "client_secret_post"
    assert github.user_mapping["avatar"] == "avatar_url"

    forum = providers["forum"]
    assert forum.kind is ProviderKind.SSO
    assert forum.secret == "s3cret"
    assert forum.display_name == "Community"


def test_numeric_sso_secret_is_read_as_text(tmp_path):
    path = _write(
        tmp_path,
        """
        providers:
          forum:
            enabled: true
            kind: sso
            secret: 123456
            url: https://forum.example
        """,
    )

    forum = ProviderConfigLoader(path).get_provider("forum")

    assert forum.secret == "123456"
    payload_b64, sig = SignedPayloadCodec(forum.secret).sign({"nonce": "abc123"})
    assert SignedPayloadCodec(forum.secret).verify(payload_b64, sig) == {"nonce": "abc123"}


def test_incomplete_providers_are_skipped(tmp_path, monkeypatch):
    monkeypatch.delenv("MISSING_SECRET", raising=False)
    path = _write(
        tmp_path,
        """
        providers:
          github:
            enabled: true
            template: github
            client_id: only-id
          forum:
            enabled: true
            kind: sso
            secret: ${MISSING_SECRET}
            url: https://forum.example
          magic:
            enabled: true
            kind: email
            max_age: 600
        """,
    )

    providers = ProviderConfigLoader(path).get_all_providers()

    assert set(providers) == {"magic"}
    assert providers["magic"].max_age == 600


def test_unknown_kind_is_skipped(tmp_path):
    path = _write(
        tmp_path,
        """
        providers:
          weird:
            enabled: true
            kind: saml
        """,
    )
    assert ProviderConfigLoader(path).get_all_providers() == {}


def test_missing_or_empty_file(tmp_path):
    assert ProviderConfigLoader(str(tmp_path / "nope.yaml")).get_all_providers() == {}
    assert ProviderConfigLoader(_write(tmp_path, "")).get_all_providers() == {}
    assert ProviderConfigLoader(None).get_all_providers() == {}


def test_register_attaches_callables(tmp_path):
    path = _write(
        tmp_path,
        """
        providers:
          password:
            enabled: true
            kind: credentials
        """,
    )
    loader = ProviderConfigLoader(path)

    def authorize(credentials):
        return {"id": "1"}

    loader.register(loader.get_provider("password"), authorize=authorize)

    assert loader.get_provider("password").authorize is authorize
    assert loader.get_all_providers()["password"].authorize is authorize


def test_public_info_hides_secrets():
    provider = ProviderConfig(id="forum", kind=ProviderKind.SSO, secret="s3cret", url="https://forum.example")

    info = provider.public_info()

    assert info == {"id": "forum", "display_name": "Forum", "icon": "forum", "kind": "sso"}
    assert ProviderConfigLoader().register(provider).public_info() == info


def test_provider_config_is_frozen():
    provider = ProviderConfig(id="forum", kind=ProviderKind.SSO)
    with pytest.raises(FrozenInstanceError):
        provider.secret = "x"
