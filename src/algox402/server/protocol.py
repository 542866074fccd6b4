"""
Challenge-response protocol of a resource server (signed-authorization path)

A gate turns the X-PAYMENT header of a request into one of three outcomes:
a 402 challenge, a rejection with a reason, or a granted access carrying the
settlement result. Transport layers (see algox402.fastapi) render them.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

from algox402.encoding import decode_payment_header, encode_payment_response
from algox402.exceptions import PaymentHeaderError, X402Error
from algox402.types import (
    NATIVE_ASSET_ID,
    SCHEME_EXACT,
    X402_VERSION,
    PaymentRequired,
    PaymentRequirements,
    PaymentRequirementsExtra,
    PaymentResponseHeader,
    Reason,
    SettleResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

STAGE_VERIFY = "verify"
STAGE_SETTLE = "settle"

# Rejections reported under their own error code rather than payment_invalid
_STANDALONE_ERRORS = (
    Reason.VERIFY_HTTP_ERROR,
    Reason.SETTLE_HTTP_ERROR,
    Reason.MISSING_NONCE,
    Reason.PAYMENT_REQUEST_NOT_FOUND,
)


class Facilitator(Protocol):
    """Anything exposing the facilitator verify/settle operations"""

    async def verify(
        self,
        payment_header: str,
        requirements: PaymentRequirements,
        x402_version: int = X402_VERSION,
    ) -> VerifyResponse: ...

    async def settle(
        self,
        payment_header: str,
        requirements: PaymentRequirements,
        x402_version: int = X402_VERSION,
    ) -> SettleResponse: ...


@dataclass
class RouteConfig:
    """Payment terms of a protected route"""

    pay_to: str
    max_amount_required: str | int
    network: str
    asset: str | int = NATIVE_ASSET_ID
    scheme: str = SCHEME_EXACT
    max_timeout_seconds: int = 60
    description: Optional[str] = None
    mime_type: Optional[str] = None
    extra: Optional[PaymentRequirementsExtra] = None


@dataclass
class ChallengeIssued:
    """No payment presented; respond 402 with *body*

    *body* is a PaymentRequired here and a DirectProofChallenge in the
    direct-proof variant; both render through ``model_dump``.
    """

    body: Any


@dataclass
class Rejected:
    """Payment presented but refused at *stage*"""

    stage: str
    reason: str

    @property
    def error(self) -> str:
        """Error code of the 402 body"""
        if self.reason in _STANDALONE_ERRORS:
            return self.reason
        return "payment_not_settled" if self.stage == STAGE_SETTLE else "payment_invalid"


@dataclass
class Granted:
    """Payment accepted; serve the resource and attach *header_value*"""

    settlement: Any
    payment_response: Optional[PaymentResponseHeader] = None

    @property
    def header_value(self) -> str | None:
        """X-PAYMENT-RESPONSE header value, if there is one"""
        if self.payment_response is None:
            return None
        return encode_payment_response(self.payment_response)


GateOutcome = Union[ChallengeIssued, Rejected, Granted]


def payer_of(payment_header: str) -> str | None:
    """Best-effort payer address of a raw payment header"""
    try:
        header = decode_payment_header(payment_header)
    except PaymentHeaderError:
        return None
    authorization = (header.payload or {}).get("authorization")
    if isinstance(authorization, dict):
        return authorization.get("payer")
    return None


class PaymentGate:
    """
    Drives the challenge-response protocol for one route.

    Args:
        facilitator: In-process X402Facilitator or a FacilitatorClient
        route: Payment terms of the route
    """

    def __init__(self, facilitator: Facilitator, route: RouteConfig) -> None:
        self._facilitator = facilitator
        self._route = route

    @property
    def route(self) -> RouteConfig:
        return self._route

    def build_requirements(self, resource_url: str) -> PaymentRequirements:
        """Payment requirements for *resource_url*, used verbatim as the resource"""
        route = self._route
        return PaymentRequirements(
            scheme=route.scheme,
            network=route.network,
            payTo=route.pay_to,
            asset=str(route.asset),
            maxAmountRequired=str(route.max_amount_required),
            resource=resource_url,
            maxTimeoutSeconds=route.max_timeout_seconds,
            description=route.description,
            mimeType=route.mime_type,
            extra=route.extra,
        )

    def challenge(self, resource_url: str) -> ChallengeIssued:
        return ChallengeIssued(
            body=PaymentRequired(
                x402Version=X402_VERSION,
                accepts=[self.build_requirements(resource_url)],
            )
        )

    async def process(self, payment_header: str | None, resource_url: str) -> GateOutcome:
        """
        Run the protocol for one request.

        Args:
            payment_header: X-PAYMENT header value, or None if absent
            resource_url: Full URL of the requested resource

        Returns:
            ChallengeIssued, Rejected or Granted
        """
        if not payment_header:
            return self.challenge(resource_url)

        requirements = self.build_requirements(resource_url)

        try:
            verified = await self._facilitator.verify(payment_header, requirements, X402_VERSION)
        except X402Error as e:
            logger.error("Facilitator verify failed: %s", e)
            return Rejected(stage=STAGE_VERIFY, reason=Reason.VERIFY_HTTP_ERROR)
        if not verified.is_valid:
            return Rejected(stage=STAGE_VERIFY, reason=verified.invalid_reason or "")

        try:
            settled = await self._facilitator.settle(payment_header, requirements, X402_VERSION)
        except X402Error as e:
            logger.error("Facilitator settle failed: %s", e)
            return Rejected(stage=STAGE_SETTLE, reason=Reason.SETTLE_HTTP_ERROR)
        if not settled.success:
            logger.warning("Payment not settled: %s", settled.error)
            return Rejected(stage=STAGE_SETTLE, reason=settled.error or "")

        return Granted(
            settlement=settled,
            payment_response=PaymentResponseHeader(
                success=True,
                transaction=settled.transaction,
                network=self._route.network,
                payer=payer_of(payment_header),
            ),
        )
