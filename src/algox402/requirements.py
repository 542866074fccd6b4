"""
Requirements matching: checks a presented payment header against the
seller-declared payment requirements.

The checks run in a fixed order and the first failure wins; the order is part
of the external contract because callers see only the first reason.
"""

import time
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from algox402.types import (
    Authorization,
    PaymentHeader,
    PaymentRequirements,
    Reason,
    SignedAuthorization,
    is_decimal,
)


@dataclass
class MatchResult:
    """Outcome of matching a header against requirements"""

    reason: Optional[str] = None
    signed: Optional[SignedAuthorization] = None

    @property
    def ok(self) -> bool:
        return self.reason is None


def same_address(a: str, b: str) -> bool:
    """Compare addresses: case-insensitive for 0x hex, exact otherwise."""
    if a.startswith("0x") and b.startswith("0x"):
        return a.lower() == b.lower()
    return a == b


def same_asset(a: str, b: str) -> bool:
    """Compare asset ids: numeric ids as integers, contracts as addresses."""
    if is_decimal(a) and is_decimal(b):
        return int(a) == int(b)
    return same_address(a, b)


def extract_signed_authorization(
    header: PaymentHeader,
) -> tuple[Optional[SignedAuthorization], Optional[str]]:
    """Pull the authorization and signature out of a header payload.

    Returns:
        (signed authorization, None) or (None, reason)
    """
    payload = header.payload
    if not payload:
        return None, Reason.MISSING_PAYLOAD

    auth_data = payload.get("authorization")
    if not auth_data:
        return None, Reason.MISSING_AUTHORIZATION

    signature = payload.get("signature")
    if not signature or not isinstance(signature, str):
        return None, Reason.MISSING_PAYLOAD

    try:
        authorization = Authorization.model_validate(auth_data)
    except PydanticValidationError:
        return None, Reason.MISSING_PAYLOAD

    return (
        SignedAuthorization(
            authorization=authorization,
            signature=signature,
            scheme=header.scheme,
            network=header.network,
        ),
        None,
    )


def validate(
    header: PaymentHeader,
    requirements: PaymentRequirements,
    now: int | None = None,
) -> MatchResult:
    """
    Match a decoded payment header against payment requirements.

    Args:
        header: Decoded X-PAYMENT header
        requirements: Seller-declared requirements
        now: Unix time to check the validity window against (default: wall clock)

    Returns:
        MatchResult carrying either the first failing reason or the
        signed authorization
    """
    if header.scheme != requirements.scheme:
        return MatchResult(reason=Reason.SCHEME_MISMATCH)
    if header.network != requirements.network:
        return MatchResult(reason=Reason.NETWORK_MISMATCH)

    signed, reason = extract_signed_authorization(header)
    if signed is None:
        return MatchResult(reason=reason)
    auth = signed.authorization

    if not same_address(auth.seller, requirements.pay_to):
        return MatchResult(reason=Reason.PAY_TO_MISMATCH)

    if not same_asset(auth.asset_id, requirements.asset):
        return MatchResult(reason=Reason.ASSET_MISMATCH)

    if int(auth.amount) > int(requirements.max_amount_required):
        return MatchResult(reason=Reason.AMOUNT_TOO_LARGE)

    if now is None:
        now = int(time.time())
    if now < int(auth.valid_after) or now > int(auth.valid_before):
        return MatchResult(reason=Reason.AUTHORIZATION_EXPIRED)

    if requirements.resource and auth.resource != requirements.resource:
        return MatchResult(reason=Reason.RESOURCE_MISMATCH)

    return MatchResult(signed=signed)
