"""
FastAPI middleware for algox402 payment processing
"""

import logging
from functools import wraps
from typing import Any, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from algox402.server.direct_proof import DirectProofGate
from algox402.server.protocol import (
    ChallengeIssued,
    Facilitator,
    GateOutcome,
    PaymentGate,
    Rejected,
    RouteConfig,
)
from algox402.types import NATIVE_ASSET_ID, Reason

logger = logging.getLogger(__name__)

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"
NONCE_HEADER = "X-Algox402-Nonce"
PAYMENT_PROOF_PARAM = "payment_proof"


class X402Middleware:
    """
    FastAPI middleware for automatic 402 payment handling.

    Usage:
        app = FastAPI()
        facilitator = FacilitatorClient("http://localhost:4100")
        middleware = X402Middleware(facilitator)

        @app.get("/protected")
        @middleware.protect(
            pay_to="SELLER...", max_amount_required="1000", network="algorand-testnet",
        )
        async def protected_endpoint(request: Request):
            return {"data": "secret"}

    Protected handlers take the ``Request`` as their first parameter.
    """

    def __init__(self, facilitator: Facilitator) -> None:
        self._facilitator = facilitator

    def protect(
        self,
        pay_to: str,
        max_amount_required: str | int,
        network: str,
        asset: str | int = NATIVE_ASSET_ID,
        **route_options: Any,
    ) -> Callable:
        """
        Decorator to protect endpoints with signed-authorization payments.

        Args:
            pay_to: Payment recipient address
            max_amount_required: Price in base units
            network: Network identifier
            asset: Asset id ("0" for the native asset) or token contract
            route_options: Further RouteConfig fields (scheme,
                max_timeout_seconds, description, mime_type, extra)

        Returns:
            Decorated function
        """
        if not pay_to or not network:
            raise ValueError("pay_to and network are required")

        gate = PaymentGate(
            self._facilitator,
            RouteConfig(
                pay_to=pay_to,
                max_amount_required=max_amount_required,
                network=network,
                asset=asset,
                **route_options,
            ),
        )

        def decorator(func: Callable) -> Callable:
            @wraps(func)
            async def wrapper(request: Request, *args: Any, **kwargs: Any) -> Response:
                try:
                    outcome = await gate.process(
                        request.headers.get(PAYMENT_HEADER), str(request.url)
                    )
                except Exception:
                    logger.exception("Payment processing failed")
                    return JSONResponse(content={"error": Reason.INTERNAL_ERROR}, status_code=500)
                return await _respond(outcome, func, request, *args, **kwargs)

            return wrapper

        return decorator

    def protect_direct(self, gate: DirectProofGate) -> Callable:
        """
        Decorator to protect endpoints with direct-proof payments.

        The first request is answered with a PaymentRequest; the requester
        pays on-chain and retries with ``?payment_proof=<tx id>`` and the
        request nonce in the X-Algox402-Nonce header.
        """

        def decorator(func: Callable) -> Callable:
            @wraps(func)
            async def wrapper(request: Request, *args: Any, **kwargs: Any) -> Response:
                try:
                    outcome = await gate.process(
                        request.query_params.get(PAYMENT_PROOF_PARAM),
                        request.headers.get(NONCE_HEADER),
                        f"{request.method} {request.url.path}",
                    )
                except Exception:
                    logger.exception("Direct-proof processing failed")
                    return JSONResponse(content={"error": Reason.INTERNAL_ERROR}, status_code=500)
                return await _respond(outcome, func, request, *args, **kwargs)

            return wrapper

        return decorator


async def _respond(
    outcome: GateOutcome,
    func: Callable,
    request: Request,
    *args: Any,
    **kwargs: Any,
) -> Response:
    """Render a gate outcome; only Granted reaches the handler"""
    if isinstance(outcome, ChallengeIssued):
        return JSONResponse(content=outcome.body.model_dump(by_alias=True), status_code=402)

    if isinstance(outcome, Rejected):
        logger.info("Payment rejected at %s: %s", outcome.stage, outcome.reason)
        return JSONResponse(
            content={"error": outcome.error, "detail": outcome.reason},
            status_code=402,
        )

    response = await func(request, *args, **kwargs)
    if not isinstance(response, Response):
        response = JSONResponse(content=response)

    header_value = outcome.header_value
    if header_value:
        response.headers[PAYMENT_RESPONSE_HEADER] = header_value
    return response


def x402_protected(
    facilitator: Facilitator,
    pay_to: str,
    max_amount_required: str | int,
    network: str,
    **kwargs: Any,
) -> Callable:
    """
    Convenience decorator to protect endpoints.

        @app.get("/weather")
        @x402_protected(
            facilitator,
            pay_to="SELLER...",
            max_amount_required="1000",
            network="algorand-testnet",
        )
        async def weather(request: Request): ...
    """
    middleware = X402Middleware(facilitator)
    return middleware.protect(
        pay_to=pay_to,
        max_amount_required=max_amount_required,
        network=network,
        **kwargs,
    )
