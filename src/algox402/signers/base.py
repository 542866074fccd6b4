"""
Signature capability base interfaces
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from algox402.types import Authorization, PaymentRequirements


@dataclass(frozen=True)
class SigningDomain:
    """Domain a signature is bound to (EIP-712 style; unused fields stay None)"""

    name: Optional[str] = None
    version: Optional[str] = None
    chain_id: Optional[int] = None
    verifying_contract: Optional[str] = None


class SignatureScheme(ABC):
    """
    Abstract base class for signature verification schemes.

    One implementation per cryptographic family; the facilitator picks the
    scheme registered for the network tag of the payment requirements.
    Implementations are pure and never touch the ledger.
    """

    @abstractmethod
    def name(self) -> str:
        """Get the scheme name"""
        pass

    @abstractmethod
    def domain_for(self, requirements: PaymentRequirements) -> SigningDomain | None:
        """Build the signing domain implied by the payment requirements"""
        pass

    @abstractmethod
    def check(
        self,
        authorization: Authorization,
        signature: str,
        domain: SigningDomain | None,
    ) -> str | None:
        """
        Check a signature over an authorization.

        Args:
            authorization: Authorization that was signed
            signature: Signature as produced by the matching client signer
            domain: Signing domain, if the scheme uses one

        Returns:
            None if the signature is valid, otherwise a reason string
        """
        pass

    def verify(
        self,
        authorization: Authorization,
        signature: str,
        domain: SigningDomain | None = None,
    ) -> bool:
        """Return True if *signature* is a valid signature of *authorization*"""
        return self.check(authorization, signature, domain) is None


class ClientSigner(ABC):
    """
    Abstract base class for client (payer) signers.

    Holds the payer key and signs authorizations for one scheme.
    """

    @abstractmethod
    def get_address(self) -> str:
        """Get the payer address"""
        pass

    @abstractmethod
    async def sign_authorization(
        self,
        authorization: Authorization,
        domain: SigningDomain | None = None,
    ) -> str:
        """
        Sign an authorization.

        Args:
            authorization: Authorization to sign
            domain: Signing domain, if the scheme uses one

        Returns:
            Encoded signature
        """
        pass
