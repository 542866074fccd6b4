"""
algox402 - Pay-per-request HTTP payments for Algorand and EVM networks

Supports Client, Resource Server, and Facilitator functionality.
"""

__version__ = "0.1.0"

from algox402.encoding import (
    decode_payment_header,
    encode_authorization,
    encode_payment_header,
    settlement_key,
)
from algox402.exceptions import (
    ConfigurationError,
    FacilitatorHttpError,
    PaymentHeaderError,
    SettlementError,
    SettlementStateError,
    SignatureCreationError,
    SignatureError,
    TransactionError,
    TransactionFailedError,
    TransactionTimeoutError,
    UnsupportedNetworkError,
    ValidationError,
    X402Error,
)
from algox402.requirements import validate
from algox402.settlement import InMemorySettlementStore, SettlementStore
from algox402.types import (
    Authorization,
    PaymentHeader,
    PaymentRequest,
    PaymentRequired,
    PaymentRequirements,
    Reason,
    SettleResponse,
    VerifyResponse,
)

__all__ = [
    "__version__",
    # Types
    "Authorization",
    "PaymentHeader",
    "PaymentRequirements",
    "PaymentRequired",
    "PaymentRequest",
    "VerifyResponse",
    "SettleResponse",
    "Reason",
    # Protocol core
    "encode_authorization",
    "encode_payment_header",
    "decode_payment_header",
    "settlement_key",
    "validate",
    "SettlementStore",
    "InMemorySettlementStore",
    # Exceptions
    "X402Error",
    "SignatureError",
    "SignatureCreationError",
    "SettlementError",
    "SettlementStateError",
    "TransactionError",
    "TransactionTimeoutError",
    "TransactionFailedError",
    "ValidationError",
    "PaymentHeaderError",
    "ConfigurationError",
    "UnsupportedNetworkError",
    "FacilitatorHttpError",
]
