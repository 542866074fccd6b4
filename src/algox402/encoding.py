"""
Encoding utilities for the algox402 protocol

Covers the canonical signing message of an authorization, the base64 JSON
header codec and the settlement key derived from a raw payment header.
"""

import base64
import binascii
import hashlib
import json
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from algox402.exceptions import PaymentHeaderError
from algox402.types import Authorization, PaymentHeader, is_decimal

AUTH_PREFIX = b"ALGOX402-AUTH-1|"

# Fixed key order of the signing message
_CANONICAL_FIELDS = (
    ("payer", "payer"),
    ("seller", "seller"),
    ("assetId", "asset_id"),
    ("amount", "amount"),
    ("validAfter", "valid_after"),
    ("validBefore", "valid_before"),
    ("nonce", "nonce"),
    ("resource", "resource"),
)
_NUMERIC_FIELDS = {"assetId", "amount", "validAfter", "validBefore"}


def encode_base64(data: str | bytes) -> str:
    """Encode data to base64"""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def decode_base64(data: str) -> str:
    """Decode base64 to string"""
    return base64.b64decode(data).decode("utf-8")


def _canonical_number(value: str) -> str:
    # Contract addresses pass through; digit strings lose leading zeros
    return str(int(value)) if is_decimal(value) else value


def encode_authorization(authorization: Authorization | Mapping[str, Any]) -> bytes:
    """Build the signing message for an authorization.

    The message is ``AUTH_PREFIX`` followed by compact JSON with a fixed key
    order and every numeric field rendered as a decimal string, so the bytes
    do not depend on how the authorization was produced.
    """
    if not isinstance(authorization, Authorization):
        authorization = Authorization.model_validate(dict(authorization))

    ordered: dict[str, str] = {}
    for key, attr in _CANONICAL_FIELDS:
        value = str(getattr(authorization, attr))
        ordered[key] = _canonical_number(value) if key in _NUMERIC_FIELDS else value

    body = json.dumps(ordered, separators=(",", ":"), ensure_ascii=False)
    return AUTH_PREFIX + body.encode("utf-8")


def encode_payment_header(header: PaymentHeader | Mapping[str, Any]) -> str:
    """Encode a payment header to base64 JSON for the X-PAYMENT header"""
    if isinstance(header, PaymentHeader):
        data = header.model_dump(by_alias=True, exclude_none=True)
    else:
        data = dict(header)
    return encode_base64(json.dumps(data))


def decode_payment_header(raw: str) -> PaymentHeader:
    """Decode an X-PAYMENT header given as base64 JSON or raw JSON.

    Raises:
        PaymentHeaderError: If the header is empty, not base64/JSON, or not a
            header object
    """
    text = (raw or "").strip()
    if not text:
        raise PaymentHeaderError("empty payment header")

    try:
        if not text.startswith("{"):
            text = decode_base64(text)
        data = json.loads(text)
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise PaymentHeaderError(f"undecodable payment header: {e}")

    if not isinstance(data, dict):
        raise PaymentHeaderError("payment header must be a JSON object")

    try:
        return PaymentHeader.model_validate(data)
    except PydanticValidationError as e:
        raise PaymentHeaderError(f"invalid payment header: {e.error_count()} error(s)")


def settlement_key(raw_header: str) -> str:
    """Settlement key of a header: SHA-256 hex of the raw header as received"""
    return hashlib.sha256(str(raw_header or "").encode("utf-8")).hexdigest()


def encode_payment_response(payload: Any) -> str:
    """Encode a payment response to base64 JSON for the X-PAYMENT-RESPONSE header"""
    if hasattr(payload, "model_dump"):
        json_str = json.dumps(payload.model_dump(by_alias=True))
    else:
        json_str = json.dumps(payload)
    return encode_base64(json_str)


def decode_payment_response(encoded: str) -> dict[str, Any]:
    """Decode an X-PAYMENT-RESPONSE header"""
    return json.loads(decode_base64(encoded))
