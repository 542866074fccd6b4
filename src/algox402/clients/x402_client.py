"""
X402Client - Payer side of the algox402 protocol

Builds and signs authorizations for payment requirements and encodes them
into X-PAYMENT header values.
"""

import base64
import logging
import os
import time
from typing import Callable

from algox402.config import NetworkConfig
from algox402.encoding import encode_payment_header
from algox402.exceptions import UnsupportedNetworkError
from algox402.signers.base import ClientSigner, SigningDomain
from algox402.types import (
    SCHEME_EXACT,
    X402_VERSION,
    Authorization,
    PaymentRequirements,
)

logger = logging.getLogger(__name__)

NONCE_BYTES = 32

PaymentRequirementsSelector = Callable[[list[PaymentRequirements]], PaymentRequirements]


def create_nonce(network: str) -> str:
    """Random 32-byte nonce: 0x hex on EVM networks (bytes32), base64 elsewhere"""
    raw = os.urandom(NONCE_BYTES)
    if NetworkConfig.is_evm(network):
        return "0x" + raw.hex()
    return base64.b64encode(raw).decode("utf-8")


def create_authorization(
    payer: str,
    requirements: PaymentRequirements,
    amount: str | int | None = None,
    valid_for_seconds: int | None = None,
    now: int | None = None,
) -> Authorization:
    """
    Build an authorization paying *requirements*.

    Args:
        payer: Payer address
        requirements: Requirements from the 402 challenge
        amount: Amount to authorize (default: maxAmountRequired)
        valid_for_seconds: Validity window (default: maxTimeoutSeconds)
        now: Start of the validity window (default: wall clock)
    """
    if now is None:
        now = int(time.time())
    if valid_for_seconds is None:
        valid_for_seconds = requirements.max_timeout_seconds

    return Authorization(
        payer=payer,
        seller=requirements.pay_to,
        assetId=requirements.asset,
        amount=str(amount if amount is not None else requirements.max_amount_required),
        validAfter=str(now),
        validBefore=str(now + valid_for_seconds),
        nonce=create_nonce(requirements.network),
        resource=requirements.resource or "",
    )


def signing_domain_for(requirements: PaymentRequirements) -> SigningDomain | None:
    """EIP-712 domain for EVM requirements; None for Algorand networks"""
    if not NetworkConfig.is_evm(requirements.network):
        return None
    extra = requirements.extra
    return SigningDomain(
        name=(extra.name if extra and extra.name else NetworkConfig.USDC_DOMAIN_NAME),
        version=(extra.version if extra and extra.version else NetworkConfig.USDC_DOMAIN_VERSION),
        chain_id=NetworkConfig.get_chain_id(requirements.network),
        verifying_contract=requirements.asset,
    )


def create_payment_header(
    authorization: Authorization,
    signature: str,
    network: str,
    scheme: str = SCHEME_EXACT,
) -> str:
    """Encode a signed authorization as an X-PAYMENT header value"""
    return encode_payment_header(
        {
            "x402Version": X402_VERSION,
            "scheme": scheme,
            "network": network,
            "payload": {
                "authorization": authorization.model_dump(by_alias=True),
                "signature": signature,
            },
        }
    )


class X402Client:
    """
    Core payment client for the algox402 protocol.

    Holds one signer per network and turns a list of accepted payment
    requirements into a signed X-PAYMENT header.
    """

    def __init__(self) -> None:
        self._signers: dict[str, ClientSigner] = {}

    def register(self, networks: list[str], signer: ClientSigner) -> "X402Client":
        """
        Register a signer for multiple networks.

        Returns:
            self for method chaining
        """
        for network in networks:
            logger.info("Registering signer %s for network %s", signer.get_address(), network)
            self._signers[network] = signer
        return self

    def select_payment_requirements(
        self,
        accepts: list[PaymentRequirements],
    ) -> PaymentRequirements:
        """Pick the first accepted option this client can sign for"""
        for requirements in accepts:
            if requirements.scheme == SCHEME_EXACT and requirements.network in self._signers:
                return requirements
        networks = ", ".join(r.network for r in accepts) or "none"
        raise UnsupportedNetworkError(f"No signer registered for offered networks: {networks}")

    async def create_payment_header(self, requirements: PaymentRequirements) -> str:
        """
        Create a signed X-PAYMENT header value for *requirements*.

        Raises:
            UnsupportedNetworkError: If no signer is registered for the network
            SignatureCreationError: If signing fails
        """
        signer = self._signers.get(requirements.network)
        if signer is None:
            raise UnsupportedNetworkError(f"No signer registered for {requirements.network}")

        authorization = create_authorization(signer.get_address(), requirements)
        signature = await signer.sign_authorization(
            authorization, signing_domain_for(requirements)
        )
        logger.debug("Signed authorization for %s", requirements.resource)
        return create_payment_header(authorization, signature, requirements.network)

    async def handle_payment(
        self,
        accepts: list[PaymentRequirements],
        selector: PaymentRequirementsSelector | None = None,
    ) -> str:
        """Select requirements from a 402 challenge and create the header"""
        requirements = selector(accepts) if selector else self.select_payment_requirements(accepts)
        return await self.create_payment_header(requirements)
