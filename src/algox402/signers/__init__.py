"""
Signature schemes (facilitator side) and payer signers (client side)
"""

from algox402.signers.avm_signer import AvmClientSigner, AvmSignatureScheme
from algox402.signers.base import ClientSigner, SignatureScheme, SigningDomain
from algox402.signers.evm_signer import EvmClientSigner, EvmSignatureScheme

__all__ = [
    "SigningDomain",
    "SignatureScheme",
    "ClientSigner",
    "AvmSignatureScheme",
    "AvmClientSigner",
    "EvmSignatureScheme",
    "EvmClientSigner",
]
