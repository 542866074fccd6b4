"""
Type definitions for the algox402 protocol
"""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

X402_VERSION = 1
SCHEME_EXACT = "exact"
DIRECT_PROOF_VERSION = "algox402-1.0"

# Native asset id on Algorand networks
NATIVE_ASSET_ID = "0"


class Reason:
    """Reason vocabulary reported by verify/settle and the resource server"""

    SCHEME_MISMATCH = "scheme_mismatch"
    NETWORK_MISMATCH = "network_mismatch"
    MISSING_AUTHORIZATION = "missing_authorization"
    MISSING_PAYLOAD = "missing_payload"
    PAY_TO_MISMATCH = "payTo_mismatch"
    ASSET_MISMATCH = "asset_mismatch"
    AMOUNT_TOO_LARGE = "amount_too_large"
    AUTHORIZATION_EXPIRED = "authorization_expired"
    RESOURCE_MISMATCH = "resource_mismatch"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_CHAIN_ID = "invalid_chainId"
    INVALID_VERIFYING_CONTRACT = "invalid_verifying_contract"
    SIGNER_MISMATCH = "signer_mismatch"
    NONCE_FAILED = "nonce_failed"
    SETTLEMENT_PENDING = "settlement_pending"
    ONCHAIN_SETTLE_FAILED = "onchain_settle_failed"
    INTERNAL_ERROR = "internal_error"
    UNSUPPORTED_X402_VERSION = "unsupported_x402_version"
    UNSUPPORTED_NETWORK = "unsupported_network"

    # Resource server <-> facilitator transport
    VERIFY_HTTP_ERROR = "verify_http_error"
    SETTLE_HTTP_ERROR = "settle_http_error"

    # Direct-proof variant
    MISSING_NONCE = "missing_nonce"
    PAYMENT_REQUEST_NOT_FOUND = "payment_request_not_found"
    TX_NOT_FOUND = "tx_not_found_or_node_error"
    RECEIVER_MISMATCH = "receiver_mismatch"
    AMOUNT_INSUFFICIENT = "amount_insufficient"
    NO_NOTE = "no_note"
    NONCE_MISMATCH = "nonce_mismatch"
    NOTE_DECODE_ERROR = "note_decode_error"
    NOT_CONFIRMED = "not_confirmed"
    PAYMENT_EXPIRED = "payment_expired"


def is_decimal(value: str) -> bool:
    """True for a non-empty string of ASCII digits"""
    return value.isascii() and value.isdecimal()


def _int_to_str(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("boolean is not a valid numeric value")
    if isinstance(value, int):
        return str(value)
    return value


class Authorization(BaseModel):
    """Payer-signed statement permitting one transfer"""

    payer: str
    seller: str
    asset_id: str = Field(NATIVE_ASSET_ID, alias="assetId")
    amount: str
    valid_after: str = Field(alias="validAfter")
    valid_before: str = Field(alias="validBefore")
    nonce: str
    resource: str = ""

    class Config:
        populate_by_name = True

    @field_validator("asset_id", "amount", "valid_after", "valid_before", mode="before")
    @classmethod
    def _coerce_numbers(cls, value: Any) -> Any:
        return _int_to_str(value)

    @field_validator("amount", "valid_after", "valid_before")
    @classmethod
    def _check_unsigned(cls, value: str) -> str:
        if not is_decimal(value):
            raise ValueError(f"expected an unsigned decimal string, got {value!r}")
        return value

    @field_validator("amount")
    @classmethod
    def _check_positive(cls, value: str) -> str:
        if int(value) <= 0:
            raise ValueError("amount must be greater than zero")
        return value

    @model_validator(mode="after")
    def _check_window(self) -> "Authorization":
        if int(self.valid_after) > int(self.valid_before):
            raise ValueError("validAfter must not be later than validBefore")
        return self


class PaymentHeader(BaseModel):
    """Decoded X-PAYMENT header"""

    x402_version: int = Field(
        alias="x402Version", validation_alias=AliasChoices("x402Version", "version")
    )
    scheme: str
    network: str
    payload: Optional[dict[str, Any]] = None

    class Config:
        populate_by_name = True


class SignedAuthorization(BaseModel):
    """Authorization together with its signature and scheme/network tags"""

    authorization: Authorization
    signature: str
    scheme: str
    network: str


class PaymentRequirementsExtra(BaseModel):
    """Extra information in payment requirements (EIP-712 token metadata)"""

    name: Optional[str] = None
    version: Optional[str] = None


class PaymentRequirements(BaseModel):
    """Payment requirements declared by the resource server"""

    scheme: str
    network: str
    pay_to: str = Field(alias="payTo")
    asset: str = Field(NATIVE_ASSET_ID, validation_alias=AliasChoices("asset", "assetId"))
    max_amount_required: str = Field(alias="maxAmountRequired")
    resource: Optional[str] = None
    max_timeout_seconds: int = Field(60, alias="maxTimeoutSeconds")
    description: Optional[str] = None
    mime_type: Optional[str] = Field(None, alias="mimeType")
    extra: Optional[PaymentRequirementsExtra] = None

    class Config:
        populate_by_name = True

    @field_validator("asset", "max_amount_required", mode="before")
    @classmethod
    def _coerce_numbers(cls, value: Any) -> Any:
        return _int_to_str(value)


class PaymentRequired(BaseModel):
    """Payment required response (402)"""

    x402_version: int = Field(X402_VERSION, alias="x402Version")
    error: Optional[str] = None
    accepts: list[PaymentRequirements]

    class Config:
        populate_by_name = True


class VerifyRequest(BaseModel):
    """Body of POST /verify"""

    x402_version: int = Field(
        alias="x402Version", validation_alias=AliasChoices("x402Version", "version")
    )
    payment_header: str = Field(alias="paymentHeader")
    payment_requirements: PaymentRequirements = Field(alias="paymentRequirements")

    class Config:
        populate_by_name = True


class SettleRequest(VerifyRequest):
    """Body of POST /settle"""

    pass


class VerifyResponse(BaseModel):
    """Verification response from facilitator"""

    is_valid: bool = Field(alias="isValid")
    invalid_reason: Optional[str] = Field(None, alias="invalidReason")

    class Config:
        populate_by_name = True


class SettleResponse(BaseModel):
    """Settlement response from facilitator"""

    success: bool
    transaction: Optional[str] = None
    network: Optional[str] = None
    error: Optional[str] = None


class PaymentResponseHeader(BaseModel):
    """Content of the X-PAYMENT-RESPONSE header"""

    success: bool
    transaction: Optional[str] = None
    network: Optional[str] = None
    payer: Optional[str] = None


class SupportedKind(BaseModel):
    """Supported payment kind"""

    x402_version: int = Field(alias="x402Version")
    scheme: str
    network: str

    class Config:
        populate_by_name = True


class SupportedResponse(BaseModel):
    """Supported response from facilitator"""

    kinds: list[SupportedKind]


class PaymentRequest(BaseModel):
    """Direct-proof payment terms issued on first access"""

    version: str = DIRECT_PROOF_VERSION
    chain: str
    asset_id: int = Field(0, alias="assetId")
    amount: int
    seller_address: str = Field(alias="sellerAddress")
    description: str = ""
    expiry: int
    nonce: str
    facilitator_allowed: bool = Field(True, alias="facilitatorAllowed")

    class Config:
        populate_by_name = True
