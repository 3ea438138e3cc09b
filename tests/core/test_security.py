from datetime import datetime, timezone

from jose import jwt

from authflow.core.security import decode_session_jwt, encode_session_jwt, generate_token


def test_session_jwt_round_trip():
    token, expires = encode_session_jwt({"user": {"id": "u1"}}, "secret", max_age=60)

    claims = decode_session_jwt(token, "secret")

    assert claims["user"] == {"id": "u1"}
    assert claims["exp"] == int(expires.timestamp())
    assert expires > datetime.now(timezone.utc)


def test_decode_rejects_wrong_secret_and_garbage():
    token, _ = encode_session_jwt({"sub": "u1"}, "secret")

    assert decode_session_jwt(token, "other") is None
    assert decode_session_jwt("not-a-token", "secret") is None
    assert decode_session_jwt("", "secret") is None


def test_decode_rejects_expired_token():
    token = jwt.encode({"sub": "u1", "exp": 1}, "secret", algorithm="HS256")
    assert decode_session_jwt(token, "secret") is None


def test_generate_token_is_random():
    assert generate_token() != generate_token()
    assert len(generate_token(16)) >= 16
