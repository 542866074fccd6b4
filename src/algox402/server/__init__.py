"""
Resource-server side of the protocol
"""

from algox402.server.direct_proof import (
    DirectProofChallenge,
    DirectProofGate,
    PaymentRequestCache,
    PaymentVerifier,
    ProofAccepted,
    SimplePricing,
    VerifyResult,
)
from algox402.server.protocol import (
    ChallengeIssued,
    GateOutcome,
    Granted,
    PaymentGate,
    Rejected,
    RouteConfig,
)

__all__ = [
    "RouteConfig",
    "PaymentGate",
    "ChallengeIssued",
    "Rejected",
    "Granted",
    "GateOutcome",
    "SimplePricing",
    "PaymentRequestCache",
    "PaymentVerifier",
    "VerifyResult",
    "DirectProofChallenge",
    "ProofAccepted",
    "DirectProofGate",
]
