"""
Facilitator service and its HTTP client
"""

from algox402.facilitator.facilitator_client import FacilitatorClient
from algox402.facilitator.x402_facilitator import X402Facilitator, settlement_note

__all__ = [
    "X402Facilitator",
    "FacilitatorClient",
    "settlement_note",
]
