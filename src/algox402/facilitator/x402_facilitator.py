"""
X402Facilitator - Core payment processor for the algox402 protocol
"""

import logging
from dataclasses import dataclass

from algox402.encoding import decode_payment_header, settlement_key
from algox402.exceptions import PaymentHeaderError, SettlementStateError
from algox402.ledger.base import LedgerAdapter
from algox402.requirements import validate
from algox402.settlement import (
    BeginOutcome,
    InMemorySettlementStore,
    SettlementState,
    SettlementStore,
)
from algox402.signers.base import SignatureScheme
from algox402.types import (
    SCHEME_EXACT,
    X402_VERSION,
    PaymentRequirements,
    Reason,
    SettleResponse,
    SignedAuthorization,
    SupportedKind,
    SupportedResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)


@dataclass
class _Registration:
    scheme: SignatureScheme
    adapter: LedgerAdapter


@dataclass
class _Checked:
    """Result of the shared verification pipeline"""

    reason: str | None = None
    key: str | None = None
    signed: SignedAuthorization | None = None
    registration: _Registration | None = None


def settlement_note(signed: SignedAuthorization) -> str:
    """Note attached to the settlement transfer"""
    auth = signed.authorization
    return f"algox402:{auth.nonce}:{auth.resource}"


class X402Facilitator:
    """
    Core payment processor for the algox402 protocol.

    Verifies authorizations against payment requirements and executes each
    authorized transfer at most once. Signature schemes and ledger adapters
    are registered per network tag; the orchestration is shared by all of
    them.

    Args:
        store: Settlement store owned by this facilitator
        pending_timeout: Seconds before a stuck pending settlement is marked
            failed; only used when no store is given
    """

    def __init__(
        self,
        store: SettlementStore | None = None,
        pending_timeout: float | None = None,
    ) -> None:
        self._registrations: dict[str, _Registration] = {}
        self._store = (
            store if store is not None else InMemorySettlementStore(pending_timeout=pending_timeout)
        )

    @property
    def store(self) -> SettlementStore:
        return self._store

    def register(
        self,
        networks: list[str],
        scheme: SignatureScheme,
        ledger_adapter: LedgerAdapter,
    ) -> "X402Facilitator":
        """
        Register a signature scheme and ledger adapter for multiple networks.

        Args:
            networks: List of network identifiers
            scheme: Signature scheme verifying authorizations on these networks
            ledger_adapter: Adapter executing transfers on these networks

        Returns:
            self for method chaining
        """
        for network in networks:
            self._registrations[network] = _Registration(scheme=scheme, adapter=ledger_adapter)
            logger.info("Registered %s for network %s", scheme.name(), network)
        return self

    def supported(self) -> SupportedResponse:
        """Return supported network/scheme combinations."""
        kinds = [
            SupportedKind(x402Version=X402_VERSION, scheme=SCHEME_EXACT, network=network)
            for network in self._registrations
        ]
        return SupportedResponse(kinds=kinds)

    async def verify(
        self,
        payment_header: str,
        requirements: PaymentRequirements,
        x402_version: int = X402_VERSION,
    ) -> VerifyResponse:
        """
        Verify a payment header against payment requirements.

        Has no side effects on the settlement store.

        Args:
            payment_header: Raw X-PAYMENT header value
            requirements: Payment requirements
            x402_version: Protocol version of the request

        Returns:
            VerifyResponse
        """
        try:
            checked = await self._check(payment_header, requirements, x402_version)
        except Exception:
            logger.exception("Unexpected error during verify")
            return VerifyResponse(isValid=False, invalidReason=Reason.INTERNAL_ERROR)

        if checked.reason:
            logger.info("Payment invalid: %s", checked.reason)
            return VerifyResponse(isValid=False, invalidReason=checked.reason)
        return VerifyResponse(isValid=True, invalidReason=None)

    async def settle(
        self,
        payment_header: str,
        requirements: PaymentRequirements,
        x402_version: int = X402_VERSION,
    ) -> SettleResponse:
        """
        Execute the transfer authorized by a payment header, at most once.

        Repeating a settled header returns the original transaction.

        Args:
            payment_header: Raw X-PAYMENT header value
            requirements: Payment requirements
            x402_version: Protocol version of the request

        Returns:
            SettleResponse with the transaction reference on success
        """
        try:
            return await self._settle(payment_header, requirements, x402_version)
        except Exception:
            logger.exception("Unexpected error during settle")
            return SettleResponse(success=False, error=Reason.INTERNAL_ERROR)

    async def _check(
        self,
        payment_header: str,
        requirements: PaymentRequirements,
        x402_version: int,
    ) -> _Checked:
        if x402_version != X402_VERSION:
            return _Checked(reason=Reason.UNSUPPORTED_X402_VERSION)

        try:
            header = decode_payment_header(payment_header)
        except PaymentHeaderError as e:
            logger.debug("Rejecting payment header: %s", e)
            return _Checked(reason=Reason.MISSING_PAYLOAD)
        if header.x402_version != X402_VERSION:
            return _Checked(reason=Reason.UNSUPPORTED_X402_VERSION)

        match = validate(header, requirements)
        if not match.ok:
            return _Checked(reason=match.reason)
        signed = match.signed

        registration = self._registrations.get(requirements.network)
        if registration is None:
            return _Checked(reason=Reason.UNSUPPORTED_NETWORK)

        scheme = registration.scheme
        domain = scheme.domain_for(requirements)
        reason = scheme.check(signed.authorization, signed.signature, domain)
        if reason:
            return _Checked(reason=reason)

        key = settlement_key(payment_header)
        record = await self._store.get(key)
        if record is not None and record.state is SettlementState.FAILED:
            return _Checked(reason=Reason.NONCE_FAILED)

        return _Checked(key=key, signed=signed, registration=registration)

    async def _settle(
        self,
        payment_header: str,
        requirements: PaymentRequirements,
        x402_version: int,
    ) -> SettleResponse:
        network = requirements.network
        checked = await self._check(payment_header, requirements, x402_version)
        if checked.reason:
            logger.info("Settlement refused: %s", checked.reason)
            return SettleResponse(success=False, error=checked.reason)

        key = checked.key
        begin = await self._store.begin_settlement(key)
        if begin.outcome is BeginOutcome.SUCCESS:
            return SettleResponse(
                success=True, transaction=begin.record.transaction, network=network
            )
        if begin.outcome is BeginOutcome.PENDING:
            return SettleResponse(success=False, error=Reason.SETTLEMENT_PENDING)
        if begin.outcome is BeginOutcome.FAILED:
            return SettleResponse(success=False, error=Reason.NONCE_FAILED)

        signed = checked.signed
        auth = signed.authorization
        try:
            tx_id = await checked.registration.adapter.transfer(
                sender=auth.payer,
                receiver=auth.seller,
                amount=int(auth.amount),
                asset=auth.asset_id,
                note=settlement_note(signed),
                signed=signed,
            )
        except Exception as e:
            logger.error("Transfer for settlement %s failed: %s", key[:12], e, exc_info=True)
            await self._record_failure(key)
            return SettleResponse(success=False, error=Reason.ONCHAIN_SETTLE_FAILED)

        if not tx_id:
            logger.error("Transfer for settlement %s returned no transaction reference", key[:12])
            await self._record_failure(key)
            return SettleResponse(success=False, error=Reason.ONCHAIN_SETTLE_FAILED)

        try:
            await self._store.record_result(key, success=True, transaction=tx_id)
        except SettlementStateError as e:
            logger.error("Transfer %s completed but could not be recorded: %s", tx_id, e)
            return SettleResponse(success=False, error=Reason.ONCHAIN_SETTLE_FAILED)

        logger.info("Settled %s on %s: %s", key[:12], network, tx_id)
        return SettleResponse(success=True, transaction=tx_id, network=network)

    async def _record_failure(self, key: str) -> None:
        try:
            await self._store.record_result(key, success=False)
        except SettlementStateError as e:
            logger.warning("Settlement %s already left pending: %s", key[:12], e)
