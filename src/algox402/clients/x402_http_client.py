"""
HTTP client adapters with automatic 402 payment handling
"""

import logging
from typing import Any

import httpx

from algox402.clients.x402_client import PaymentRequirementsSelector, X402Client
from algox402.ledger.base import LedgerAdapter
from algox402.types import PaymentRequest, PaymentRequired

logger = logging.getLogger(__name__)

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"
NONCE_HEADER = "X-Algox402-Nonce"
PAYMENT_PROOF_PARAM = "payment_proof"


class X402HttpClient:
    """
    HTTP client adapter paying with signed authorizations.

    Wraps httpx.AsyncClient: a 402 challenge is answered with an X-PAYMENT
    header signed by the X402Client, and the request is retried once.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        x402_client: X402Client,
        selector: PaymentRequirementsSelector | None = None,
    ) -> None:
        self._http_client = http_client
        self._x402_client = x402_client
        self._selector = selector

    async def request_with_payment(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make HTTP request with automatic 402 payment handling.

        Flow:
            1. Send original request
            2. If 402, parse PaymentRequired
            3. Sign an authorization for the selected requirements
            4. Retry with X-PAYMENT header
        """
        response = await self._http_client.request(method, url, **kwargs)
        if response.status_code != 402:
            return response

        payment_required = self._parse_payment_required(response)
        if payment_required is None:
            logger.error("Failed to parse PaymentRequired from 402 response")
            return response

        logger.info("Received 402 with %d payment options", len(payment_required.accepts))
        payment_header = await self._x402_client.handle_payment(
            payment_required.accepts, self._selector
        )

        headers = dict(kwargs.get("headers") or {})
        headers[PAYMENT_HEADER] = payment_header
        kwargs["headers"] = headers

        response = await self._http_client.request(method, url, **kwargs)
        logger.info("Payment retry response: status=%s", response.status_code)
        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET request with payment handling"""
        return await self.request_with_payment("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        """POST request with payment handling"""
        return await self.request_with_payment("POST", url, **kwargs)

    @staticmethod
    def _parse_payment_required(response: httpx.Response) -> PaymentRequired | None:
        try:
            body = response.json()
        except ValueError:
            return None
        if not isinstance(body, dict) or not isinstance(body.get("accepts"), list):
            return None
        try:
            return PaymentRequired(**body)
        except Exception as e:
            logger.warning("Invalid PaymentRequired body: %s", e)
            return None


class DirectProofHttpClient:
    """
    HTTP client adapter paying with on-chain transfers (direct-proof variant).

    A 402 carrying a PaymentRequest is paid through *ledger* from its
    account; the request is retried with the transaction id as proof and
    the request nonce in the X-Algox402-Nonce header.
    """

    def __init__(self, http_client: httpx.AsyncClient, ledger: LedgerAdapter) -> None:
        self._http_client = http_client
        self._ledger = ledger

    async def request_with_payment(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        response = await self._http_client.request(method, url, **kwargs)
        if response.status_code != 402:
            return response

        try:
            body = response.json()
        except ValueError:
            return response
        payment = body.get("payment") if isinstance(body, dict) else None
        if not payment:
            logger.error("402 response without payment object")
            return response

        request = PaymentRequest.model_validate(payment)
        tx_id = await self._ledger.transfer(
            sender=self._ledger.get_address(),
            receiver=request.seller_address,
            amount=request.amount,
            asset=str(request.asset_id),
            note=f"algox402:{request.nonce}:{url}",
        )
        logger.info("Paid request %s with %s", request.nonce, tx_id)

        params = dict(kwargs.get("params") or {})
        params[PAYMENT_PROOF_PARAM] = tx_id
        kwargs["params"] = params
        headers = dict(kwargs.get("headers") or {})
        headers[NONCE_HEADER] = request.nonce
        kwargs["headers"] = headers

        return await self._http_client.request(method, url, **kwargs)

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET request with payment handling"""
        return await self.request_with_payment("GET", url, **kwargs)
