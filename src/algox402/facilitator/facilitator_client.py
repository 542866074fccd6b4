"""
FacilitatorClient - Client for communicating with a remote facilitator service
"""

from typing import Any, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from algox402.exceptions import FacilitatorHttpError
from algox402.types import (
    X402_VERSION,
    PaymentRequirements,
    SettleResponse,
    SupportedResponse,
    VerifyResponse,
)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class FacilitatorClient:
    """
    Client for communicating with facilitator service.

    Exposes the same verify/settle signature as X402Facilitator, so a
    resource server can use either one.
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize facilitator client.

        Args:
            base_url: Facilitator service base URL
            headers: Custom HTTP headers (e.g., Authorization)
            timeout: Request timeout in seconds
        """
        self._base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._timeout = timeout
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=self._headers,
                timeout=self._timeout,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client"""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _post(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(endpoint, json=body)
        except httpx.HTTPError as e:
            raise FacilitatorHttpError(endpoint, str(e)) from e

        # 400 and 500 carry a protocol reason (unsupported version, internal error)
        if response.status_code not in (200, 400, 500):
            raise FacilitatorHttpError(endpoint, f"HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise FacilitatorHttpError(endpoint, f"invalid JSON response: {e}") from e

    @staticmethod
    def _parse(model: type[ResponseT], endpoint: str, data: Any) -> ResponseT:
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            detail = f"unexpected response body: {e.error_count()} error(s)"
            raise FacilitatorHttpError(endpoint, detail) from e

    @staticmethod
    def _request_body(
        payment_header: str,
        requirements: PaymentRequirements,
        x402_version: int,
    ) -> dict[str, Any]:
        return {
            "x402Version": x402_version,
            "paymentHeader": payment_header,
            "paymentRequirements": requirements.model_dump(by_alias=True, exclude_none=True),
        }

    async def supported(self) -> SupportedResponse:
        """
        Query facilitator supported capabilities.

        Returns:
            SupportedResponse with supported networks/schemes
        """
        client = await self._get_client()
        try:
            response = await client.get("/supported")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise FacilitatorHttpError("/supported", str(e)) from e
        return SupportedResponse(**response.json())

    async def verify(
        self,
        payment_header: str,
        requirements: PaymentRequirements,
        x402_version: int = X402_VERSION,
    ) -> VerifyResponse:
        """
        Verify a payment header (without executing a transfer).

        Raises:
            FacilitatorHttpError: If the facilitator cannot be reached
        """
        data = await self._post(
            "/verify", self._request_body(payment_header, requirements, x402_version)
        )
        return self._parse(VerifyResponse, "/verify", data)

    async def settle(
        self,
        payment_header: str,
        requirements: PaymentRequirements,
        x402_version: int = X402_VERSION,
    ) -> SettleResponse:
        """
        Execute payment settlement.

        Raises:
            FacilitatorHttpError: If the facilitator cannot be reached
        """
        data = await self._post(
            "/settle", self._request_body(payment_header, requirements, x402_version)
        )
        return self._parse(SettleResponse, "/settle", data)
