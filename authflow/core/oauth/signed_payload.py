"""
HMAC-signed payloads for the SSO provider protocol.

Wire format: the fields are serialized as a query string, base64-encoded, and signed with
HMAC-SHA256 over the base64 text. The signature travels as a lowercase hex digest.
"""

import base64
import binascii
import hashlib
import hmac
from typing import Dict, Mapping, Tuple
from urllib.parse import parse_qsl, urlencode

from loguru import logger

from authflow.common.exceptions import CallbackError, ErrorCode

LOG_PREFIX = "[SignedPayload]"


class SignedPayloadCodec:
    """Builds and verifies signed payloads for one shared secret."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("A secret is required to sign payloads")
        self._key = secret.encode("utf-8")

    def signature(self, payload_b64: str) -> str:
        return hmac.new(self._key, payload_b64.encode("utf-8"), hashlib.sha256).hexdigest()

    def sign(self, fields: Mapping[str, str]) -> Tuple[str, str]:
        """
        Serialize and sign `fields`.

        Field order is preserved; `:` and `/` stay literal so URLs read naturally inside the
        payload. Deterministic for identical inputs.

        Returns:
            Tuple of (payload_b64, signature_hex)
        """
        query = urlencode(list(fields.items()), safe=":/")
        payload_b64 = base64.b64encode(query.encode("utf-8")).decode("ascii")
        return payload_b64, self.signature(payload_b64)

    def verify(self, payload_b64: str, signature_hex: str) -> Dict[str, str]:
        """
        Check the signature, then decode the payload.

        Nothing is decoded before the full digest matches.

        Raises:
            CallbackError: BAD_SIGNATURE on mismatch or an undecodable payload
        """
        if not payload_b64 or not signature_hex:
            raise CallbackError(ErrorCode.BAD_SIGNATURE, "Empty payload or signature")

        expected = self.signature(payload_b64)
        if not hmac.compare_digest(expected.encode("utf-8"), signature_hex.encode("utf-8")):
            raise CallbackError(ErrorCode.BAD_SIGNATURE, "Non-matching sso / sig")

        try:
            query = base64.b64decode(payload_b64).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            logger.warning(f"{LOG_PREFIX} Signed payload could not be decoded: {e}")
            raise CallbackError(ErrorCode.BAD_SIGNATURE, "Undecodable payload") from e

        return dict(parse_qsl(query, keep_blank_values=True))
