import base64
import hashlib
import hmac

import pytest

from authflow.common.exceptions import CallbackError, ErrorCode
from authflow.core.oauth.signed_payload import SignedPayloadCodec


def test_sign_matches_wire_format():
    payload_b64, sig = SignedPayloadCodec("s3cret").sign({"nonce": "abc123", "return_sso_url": "https://app/x"})

    assert base64.b64decode(payload_b64) == b"nonce=abc123&return_sso_url=https://app/x"
    assert sig == hmac.new(b"s3cret", payload_b64.encode(), hashlib.sha256).hexdigest()
    assert sig == sig.lower()


def test_sign_is_deterministic():
    codec = SignedPayloadCodec("s3cret")
    fields = {"nonce": "abc123", "return_sso_url": "https://app/x"}
    assert codec.sign(fields) == codec.sign(dict(fields))


@pytest.mark.parametrize(
    "fields",
    [
        {"nonce": "abc123", "return_sso_url": "https://app/x"},
        {"external_id": "42", "email": "a+b@c.com", "name": "Ann Smith", "bio": "x&y=z"},
        {"empty": "", "unicode": "Zoë"},
    ],
)
def test_verify_returns_signed_fields(fields):
    codec = SignedPayloadCodec("s3cret")
    assert codec.verify(*codec.sign(fields)) == fields


@pytest.mark.parametrize("position", [0, 1, 17, 31, 32, 63])
@pytest.mark.parametrize("bit", [0x01, 0x02, 0x08])
def test_flipped_signature_bit_fails(position, bit):
    codec = SignedPayloadCodec("s3cret")
    payload_b64, sig = codec.sign({"nonce": "abc123"})
    flipped = chr(ord(sig[position]) ^ bit)
    tampered = sig[:position] + flipped + sig[position + 1 :]

    with pytest.raises(CallbackError) as exc_info:
        codec.verify(payload_b64, tampered)
    assert exc_info.value.code is ErrorCode.BAD_SIGNATURE


@pytest.mark.parametrize("position", [0, 5, 12, -2, -1])
@pytest.mark.parametrize("bit", [0x01, 0x04, 0x20, 0x80])
def test_flipped_payload_bit_fails(position, bit):
    codec = SignedPayloadCodec("s3cret")
    payload_b64, sig = codec.sign({"nonce": "abc123", "external_id": "42"})
    raw = bytearray(base64.b64decode(payload_b64))
    raw[position] ^= bit
    tampered = base64.b64encode(bytes(raw)).decode()

    with pytest.raises(CallbackError) as exc_info:
        codec.verify(tampered, sig)
    assert exc_info.value.code is ErrorCode.BAD_SIGNATURE


def test_other_secret_fails():
    payload_b64, sig = SignedPayloadCodec("s3cret").sign({"nonce": "abc123"})
    with pytest.raises(CallbackError):
        SignedPayloadCodec("other").verify(payload_b64, sig)


def test_empty_inputs_fail():
    codec = SignedPayloadCodec("s3cret")
    with pytest.raises(CallbackError):
        codec.verify("", "")


def test_undecodable_payload_with_valid_signature():
    codec = SignedPayloadCodec("s3cret")
    payload = "!!not-base64!!"
    with pytest.raises(CallbackError) as exc_info:
        codec.verify(payload, codec.signature(payload))
    assert exc_info.value.code is ErrorCode.BAD_SIGNATURE


def test_secret_required():
    with pytest.raises(ValueError):
        SignedPayloadCodec("")


@pytest.mark.parametrize("position", [0, 3, 10, -1])
@pytest.mark.parametrize("bit", [0x01, 0x02, 0x10])
def test_flipped_base64_text_bit_fails(position, bit):
    codec = SignedPayloadCodec("s3cret")
    payload_b64, sig = codec.sign({"nonce": "abc123", "external_id": "42"})
    index = position % len(payload_b64)
    tampered = payload_b64[:index] + chr(ord(payload_b64[index]) ^ bit) + payload_b64[index + 1 :]

    with pytest.raises(CallbackError) as exc_info:
        codec.verify(tampered, sig)
    assert exc_info.value.code is ErrorCode.BAD_SIGNATURE
