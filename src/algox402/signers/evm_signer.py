"""
EIP-712 TransferWithAuthorization signatures (secp256k1, EVM accounts)
"""

import logging
from typing import Any

from eth_account import Account
from eth_account.messages import encode_typed_data

from algox402.config import NetworkConfig
from algox402.exceptions import SignatureCreationError, UnsupportedNetworkError
from algox402.signers.base import ClientSigner, SignatureScheme, SigningDomain
from algox402.types import Authorization, PaymentRequirements, Reason

logger = logging.getLogger(__name__)

TRANSFER_AUTH_PRIMARY_TYPE = "TransferWithAuthorization"

TRANSFER_AUTH_EIP712_TYPES = {
    "TransferWithAuthorization": [
        {"name": "from", "type": "address"},
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "validAfter", "type": "uint256"},
        {"name": "validBefore", "type": "uint256"},
        {"name": "nonce", "type": "bytes32"},
    ],
}

# Canonical EIP-712 domain field order and types
_EIP712_DOMAIN_FIELDS: list[tuple[str, str, str]] = [
    ("name", "name", "string"),
    ("version", "version", "string"),
    ("chainId", "chain_id", "uint256"),
    ("verifyingContract", "verifying_contract", "address"),
]


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string to bytes"""
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def nonce_to_bytes32(nonce: str) -> bytes:
    """Convert a 0x-prefixed 32-byte hex nonce to bytes"""
    raw = hex_to_bytes(nonce)
    if len(raw) != 32:
        raise ValueError(f"Invalid nonce length: {len(raw)} bytes. Expected 32")
    return raw


def build_eip712_domain(domain: SigningDomain) -> dict[str, Any]:
    """Build EIP-712 domain dict, keeping only the fields that are set."""
    return {
        key: getattr(domain, attr)
        for key, attr, _ in _EIP712_DOMAIN_FIELDS
        if getattr(domain, attr) is not None
    }


def build_eip712_message(authorization: Authorization) -> dict[str, Any]:
    """Build EIP-712 message dict from authorization."""
    return {
        "from": authorization.payer,
        "to": authorization.seller,
        "value": int(authorization.amount),
        "validAfter": int(authorization.valid_after),
        "validBefore": int(authorization.valid_before),
        "nonce": nonce_to_bytes32(authorization.nonce),
    }


def build_typed_data(domain: SigningDomain, authorization: Authorization) -> dict[str, Any]:
    domain_data = build_eip712_domain(domain)
    domain_type = [
        {"name": key, "type": typ} for key, _, typ in _EIP712_DOMAIN_FIELDS if key in domain_data
    ]
    return {
        "types": {"EIP712Domain": domain_type, **TRANSFER_AUTH_EIP712_TYPES},
        "primaryType": TRANSFER_AUTH_PRIMARY_TYPE,
        "domain": domain_data,
        "message": build_eip712_message(authorization),
    }


class EvmSignatureScheme(SignatureScheme):
    """EIP-712 scheme bound to one chain id and one token contract.

    The domain's chain id and verifying contract are compared with the
    expected values before any signature recovery, so a well-formed signature
    made for another chain or contract is still rejected.
    """

    def __init__(
        self,
        expected_chain_id: int,
        expected_verifying_contract: str,
        token_name: str = NetworkConfig.USDC_DOMAIN_NAME,
        token_version: str = NetworkConfig.USDC_DOMAIN_VERSION,
    ) -> None:
        self._expected_chain_id = expected_chain_id
        self._expected_contract = expected_verifying_contract
        self._token_name = token_name
        self._token_version = token_version

    @classmethod
    def for_network(
        cls,
        network: str,
        verifying_contract: str | None = None,
    ) -> "EvmSignatureScheme":
        """Create a scheme for a configured network (USDC contract by default)"""
        return cls(
            expected_chain_id=NetworkConfig.get_chain_id(network),
            expected_verifying_contract=verifying_contract
            or NetworkConfig.get_usdc_address(network),
        )

    def name(self) -> str:
        return "evm-eip712"

    def domain_for(self, requirements: PaymentRequirements) -> SigningDomain | None:
        try:
            chain_id = NetworkConfig.get_chain_id(requirements.network)
        except UnsupportedNetworkError:
            chain_id = None

        extra = requirements.extra
        return SigningDomain(
            name=(extra.name if extra and extra.name else self._token_name),
            version=(extra.version if extra and extra.version else self._token_version),
            chain_id=chain_id,
            verifying_contract=requirements.asset,
        )

    def check(
        self,
        authorization: Authorization,
        signature: str,
        domain: SigningDomain | None,
    ) -> str | None:
        if domain is None or domain.chain_id != self._expected_chain_id:
            return Reason.INVALID_CHAIN_ID
        if (domain.verifying_contract or "").lower() != self._expected_contract.lower():
            return Reason.INVALID_VERIFYING_CONTRACT

        try:
            signable = encode_typed_data(full_message=build_typed_data(domain, authorization))
            recovered = Account.recover_message(signable, signature=hex_to_bytes(signature))
        except Exception as e:
            logger.debug("EIP-712 recovery failed: %s", e)
            return Reason.INVALID_SIGNATURE

        if recovered.lower() != authorization.payer.lower():
            return Reason.SIGNER_MISMATCH
        return None


class EvmClientSigner(ClientSigner):
    """EVM payer signer using eth_account"""

    def __init__(self, private_key: str) -> None:
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        self._private_key = private_key
        self._address = Account.from_key(private_key).address
        logger.debug("EvmClientSigner initialized", extra={"address": self._address})

    @classmethod
    def from_private_key(cls, private_key: str) -> "EvmClientSigner":
        """Create signer from private key."""
        return cls(private_key)

    def get_address(self) -> str:
        return self._address

    async def sign_authorization(
        self,
        authorization: Authorization,
        domain: SigningDomain | None = None,
    ) -> str:
        if domain is None:
            raise SignatureCreationError("EIP-712 signing requires a domain")
        try:
            encoded = encode_typed_data(full_message=build_typed_data(domain, authorization))
            signed = Account.sign_message(encoded, private_key=self._private_key)
            return "0x" + bytes(signed.signature).hex()
        except Exception as e:
            raise SignatureCreationError(f"Failed to sign typed data: {e}")
