"""
Tests for the OAuth verifier and the httpx transport.

The transport's HTTP calls are replaced with AsyncMock; the verifier runs against a fake
transport from conftest.
"""

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest
from conftest import FakeOAuthTransport, oauth_proof

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.cookies import CookieJar
from authflow.core.oauth.config import PROVIDER_TEMPLATES, ProviderConfig, ProviderKind
from authflow.core.oauth.nonce import NonceBinder
from authflow.core.oauth.protocols.oauth2 import HttpxOAuthTransport, OAuth2Verifier
from authflow.schemas.callback import CallbackRequest


def _state_cookie(options, state="st-1"):
    binder = NonceBinder(options.settings.secret_key, options.settings.state_cookie_name)
    return {options.settings.state_cookie_name: binder.binding_for(state)}


def _request(query):
    return CallbackRequest(provider_id="github", query=query)


# ---------------------------------------------------------------------------
# OAuth2Verifier
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_signin_url_binds_state(options, oauth_provider, jar):
    url = await OAuth2Verifier().signin_url(oauth_provider, options, jar)

    state = parse_qs(urlparse(url).query)["state"][0]
    [directive] = jar.directives
    assert directive.name == options.settings.state_cookie_name
    assert directive.value == _state_cookie(options, state)[directive.name]


@pytest.mark.asyncio
async def test_verify_returns_transport_proof(options, oauth_provider, transport):
    jar = CookieJar(_state_cookie(options), options.settings)

    proof = await OAuth2Verifier().verify(_request({"code": "c", "state": "st-1"}), oauth_provider, options, jar)

    assert proof.account.provider_id == "github"
    assert proof.raw == {"id": "gh-1", "login": "octo"}
    assert transport.calls == 1


@pytest.mark.asyncio
async def test_verify_rejects_bad_state_without_calling_provider(options, oauth_provider, transport):
    jar = CookieJar(_state_cookie(options, "expected"), options.settings)

    with pytest.raises(CallbackError) as exc_info:
        await OAuth2Verifier().verify(_request({"code": "c", "state": "forged"}), oauth_provider, options, jar)

    assert exc_info.value.code is ErrorCode.NONCE_MISMATCH
    assert transport.calls == 0


@pytest.mark.asyncio
async def test_verify_skips_state_when_disabled(options, oauth_provider, transport, jar):
    provider = replace(oauth_provider, check_state=False)

    proof = await OAuth2Verifier().verify(_request({"code": "c"}), provider, options, jar)
    assert proof is transport.proof


@pytest.mark.asyncio
async def test_verify_no_profile(options, oauth_provider, transport):
    transport.proof = None
    jar = CookieJar(_state_cookie(options), options.settings)

    with pytest.raises(CallbackError) as exc_info:
        await OAuth2Verifier().verify(_request({"error": "access_denied", "state": "st-1"}), oauth_provider, options, jar)
    assert exc_info.value.code is ErrorCode.NO_PROFILE


@pytest.mark.asyncio
async def test_verify_transport_failure_is_provider_error(options, oauth_provider, transport):
    transport.error = ValueError("Token exchange failed: 500")
    jar = CookieJar(_state_cookie(options), options.settings)

    with pytest.raises(CallbackError) as exc_info:
        await OAuth2Verifier().verify(_request({"code": "c", "state": "st-1"}), oauth_provider, options, jar)
    assert exc_info.value.code is ErrorCode.PROVIDER_ERROR


@pytest.mark.asyncio
async def test_verify_transport_timeout_is_provider_error(options, oauth_provider):
    class SlowTransport(FakeOAuthTransport):
        async def get_user_info(self, request, provider, redirect_uri):
            await asyncio.sleep(10)
            return oauth_proof()

    slow = replace(
        options,
        oauth_transport=SlowTransport(),
        settings=options.settings.model_copy(update={"collaborator_timeout": 0.01}),
    )
    jar = CookieJar(_state_cookie(slow), slow.settings)

    with pytest.raises(CallbackError) as exc_info:
        await OAuth2Verifier().verify(_request({"code": "c", "state": "st-1"}), oauth_provider, slow, jar)
    assert exc_info.value.code is ErrorCode.PROVIDER_ERROR


# ---------------------------------------------------------------------------
# HttpxOAuthTransport
# ---------------------------------------------------------------------------


def test_authorization_url(oauth_provider):
    url = HttpxOAuthTransport().authorization_url(oauth_provider, "https://auth/cb", "st-1")

    parsed = urlparse(url)
    params = parse_qs(parsed.query)
    assert url.startswith("https://github.com/login/oauth/authorize?")
    assert params["client_id"] == ["cid"]
    assert params["redirect_uri"] == ["https://auth/cb"]
    assert params["response_type"] == ["code"]
    assert params["state"] == ["st-1"]


def test_authorization_url_requires_endpoint():
    provider = ProviderConfig(id="bare", kind=ProviderKind.OAUTH)
    with pytest.raises(CallbackError) as exc_info:
        HttpxOAuthTransport().authorization_url(provider, "https://auth/cb", None)
    assert exc_info.value.code is ErrorCode.CONFIGURATION


@pytest.mark.asyncio
async def test_transport_returns_none_on_provider_error(oauth_provider):
    transport = HttpxOAuthTransport()
    transport._exchange_code_for_tokens = AsyncMock()

    result = await transport.get_user_info(_request({"error": "access_denied"}), oauth_provider, "https://auth/cb")

    assert result is None
    transport._exchange_code_for_tokens.assert_not_awaited()


@pytest.mark.asyncio
async def test_transport_returns_none_without_code(oauth_provider):
    assert await HttpxOAuthTransport().get_user_info(_request({}), oauth_provider, "https://auth/cb") is None


@pytest.mark.asyncio
async def test_transport_maps_userinfo():
    github = ProviderConfig(
        id="github",
        kind=ProviderKind.OAUTH,
        client_id="cid",
        client_secret="cs",
        user_mapping=PROVIDER_TEMPLATES["github"]["user_mapping"],
    )
    transport = HttpxOAuthTransport()
    transport._exchange_code_for_tokens = AsyncMock(
        return_value={"access_token": "gho", "refresh_token": "r", "expires_in": 3600}
    )
    transport._fetch_userinfo = AsyncMock(
        return_value={"id": 1234, "email": "octo@example.com", "name": "Octo", "avatar_url": "https://img"}
    )

    proof = await transport.get_user_info(_request({"code": "c"}), github, "https://auth/cb")

    assert proof.profile.id == "1234"
    assert proof.profile.email == "octo@example.com"
    assert proof.profile.image == "https://img"
    assert proof.account.provider_account_id == "1234"
    assert proof.account.access_token == "gho"
    assert proof.account.refresh_token == "r"
    assert proof.account.expires_at is not None
    assert proof.raw["avatar_url"] == "https://img"
    transport._exchange_code_for_tokens.assert_awaited_once_with(github, "c", "https://auth/cb")


@pytest.mark.asyncio
async def test_transport_without_access_token_raises(oauth_provider):
    transport = HttpxOAuthTransport()
    transport._exchange_code_for_tokens = AsyncMock(return_value={"error": "bad_verification_code"})

    with pytest.raises(ValueError):
        await transport.get_user_info(_request({"code": "c"}), oauth_provider, "https://auth/cb")


def test_parse_user_info_without_id_is_no_profile(oauth_provider):
    assert HttpxOAuthTransport().parse_user_info(oauth_provider, {"email": "x@y"}, {}) is None
