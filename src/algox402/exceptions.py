"""
algox402 custom exception hierarchy
"""


class X402Error(Exception):
    """algox402 base exception"""

    pass


class SignatureError(X402Error):
    """Signature-related error"""

    pass


class SignatureCreationError(SignatureError):
    """Signature creation failed"""

    pass


class SettlementError(X402Error):
    """Settlement-related error"""

    pass


class SettlementStateError(SettlementError):
    """Illegal settlement state transition"""

    def __init__(self, key: str, current: str | None, requested: str):
        self.key = key
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move settlement {key[:12]}... from {current or 'absent'} to {requested}"
        )


class TransactionError(X402Error):
    """Transaction-related error"""

    pass


class TransactionTimeoutError(TransactionError):
    """Transaction timeout"""

    pass


class TransactionFailedError(TransactionError):
    """Transaction execution failed"""

    pass


class ValidationError(X402Error):
    """Validation-related error"""

    pass


class PaymentHeaderError(ValidationError):
    """Payment header could not be decoded"""

    pass


class ConfigurationError(X402Error):
    """Configuration-related error"""

    pass


class UnsupportedNetworkError(ConfigurationError):
    """Unsupported network"""

    pass


class FacilitatorHttpError(X402Error):
    """Facilitator could not be reached or answered with an unusable response"""

    def __init__(self, endpoint: str, message: str):
        self.endpoint = endpoint
        super().__init__(f"{endpoint}: {message}")
