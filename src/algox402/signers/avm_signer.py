"""
Ed25519 signatures over the canonical authorization encoding (Algorand accounts)
"""

import logging

from algosdk import account, mnemonic, util

from algox402.encoding import encode_authorization
from algox402.exceptions import SignatureCreationError
from algox402.signers.base import ClientSigner, SignatureScheme, SigningDomain
from algox402.types import Authorization, PaymentRequirements, Reason

logger = logging.getLogger(__name__)


class AvmSignatureScheme(SignatureScheme):
    """Ed25519 scheme: raw signature over the canonical bytes, checked against
    the payer's Algorand address."""

    def name(self) -> str:
        return "avm-ed25519"

    def domain_for(self, requirements: PaymentRequirements) -> SigningDomain | None:
        return None

    def check(
        self,
        authorization: Authorization,
        signature: str,
        domain: SigningDomain | None = None,
    ) -> str | None:
        message = encode_authorization(authorization)
        try:
            # verify_bytes applies the "MX" prefix used by sign_bytes
            valid = util.verify_bytes(message, signature, authorization.payer)
        except Exception as e:
            logger.debug("Ed25519 verification error for payer %s: %s", authorization.payer, e)
            return Reason.INVALID_SIGNATURE

        return None if valid else Reason.INVALID_SIGNATURE


class AvmClientSigner(ClientSigner):
    """Algorand payer signer (base64 private key as produced by algosdk)"""

    def __init__(self, private_key: str) -> None:
        self._private_key = private_key
        self._address = account.address_from_private_key(private_key)
        logger.debug("AvmClientSigner initialized", extra={"address": self._address})

    @classmethod
    def from_mnemonic(cls, phrase: str) -> "AvmClientSigner":
        """Create signer from a 25-word Algorand mnemonic"""
        return cls(mnemonic.to_private_key(phrase))

    def get_address(self) -> str:
        return self._address

    async def sign_authorization(
        self,
        authorization: Authorization,
        domain: SigningDomain | None = None,
    ) -> str:
        try:
            return util.sign_bytes(encode_authorization(authorization), self._private_key)
        except Exception as e:
            raise SignatureCreationError(f"Failed to sign authorization: {e}")
