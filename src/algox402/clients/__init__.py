"""
Payer-side clients
"""

from algox402.clients.x402_client import (
    X402Client,
    create_authorization,
    create_nonce,
    create_payment_header,
    signing_domain_for,
)
from algox402.clients.x402_http_client import DirectProofHttpClient, X402HttpClient

__all__ = [
    "X402Client",
    "X402HttpClient",
    "DirectProofHttpClient",
    "create_nonce",
    "create_authorization",
    "create_payment_header",
    "signing_domain_for",
]
