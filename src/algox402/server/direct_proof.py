"""
Direct-proof payments: the requester pays on-chain first, then presents the
transaction id. The server checks the transfer against a PaymentRequest it
issued earlier under a nonce.
"""

import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from algox402.exceptions import X402Error
from algox402.ledger.base import LedgerAdapter
from algox402.server.protocol import ChallengeIssued, GateOutcome, Granted, Rejected
from algox402.types import DIRECT_PROOF_VERSION, PaymentRequest, Reason

logger = logging.getLogger(__name__)

STAGE_PROOF = "proof"


class SimplePricing:
    """Flat pricing: every request costs ``base_price * factor`` micro units"""

    def __init__(
        self,
        seller_address: str,
        chain: str,
        asset_id: int = 0,
        base_price: int = 1000,
        ttl_seconds: int = 600,
    ) -> None:
        self.seller_address = seller_address
        self.chain = chain
        self.asset_id = asset_id
        self.base_price = base_price
        self.ttl_seconds = ttl_seconds

    def create_payment_request(self, description: str, factor: float = 1.0) -> PaymentRequest:
        now = int(time.time())
        return PaymentRequest(
            version=DIRECT_PROOF_VERSION,
            chain=self.chain,
            assetId=self.asset_id,
            amount=math.floor(self.base_price * factor),
            sellerAddress=self.seller_address,
            description=description,
            expiry=now + self.ttl_seconds,
            nonce=str(uuid.uuid4()),
            facilitatorAllowed=True,
        )


class PaymentRequestCache:
    """
    Issued payment requests keyed by nonce.

    Owned by one gate. Entries are removed when used; expired entries are
    rejected by the verifier rather than evicted.
    """

    def __init__(self) -> None:
        self._requests: dict[str, PaymentRequest] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, nonce: str) -> asyncio.Lock:
        lock = self._locks.get(nonce)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[nonce] = lock
        return lock

    def put(self, request: PaymentRequest) -> None:
        self._requests[request.nonce] = request

    def get(self, nonce: str) -> PaymentRequest | None:
        return self._requests.get(nonce)

    def pop(self, nonce: str) -> PaymentRequest | None:
        self._locks.pop(nonce, None)
        return self._requests.pop(nonce, None)

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    def __len__(self) -> int:
        return len(self._requests)


@dataclass
class VerifyResult:
    ok: bool
    reason: Optional[str] = None


class PaymentVerifier:
    """Checks that a ledger transaction pays a PaymentRequest"""

    def __init__(self, ledger: LedgerAdapter) -> None:
        self._ledger = ledger

    async def verify_payment(
        self,
        request: PaymentRequest,
        tx_id: str,
        nonce: str,
        now: int | None = None,
    ) -> VerifyResult:
        """
        Verify a presented transaction against a payment request.

        Args:
            request: Payment request issued to the requester
            tx_id: Transaction id presented as proof
            nonce: Nonce presented by the requester
            now: Unix time for the expiry check (default: wall clock)

        Returns:
            VerifyResult with the first failing reason
        """
        try:
            tx = await self._ledger.get_transaction(tx_id)
        except X402Error as e:
            logger.warning("Lookup of %s failed: %s", tx_id, e)
            return VerifyResult(ok=False, reason=Reason.TX_NOT_FOUND)

        if tx.receiver != request.seller_address:
            return VerifyResult(ok=False, reason=Reason.RECEIVER_MISMATCH)
        if tx.amount < request.amount:
            return VerifyResult(ok=False, reason=Reason.AMOUNT_INSUFFICIENT)
        if str(tx.asset) != str(request.asset_id):
            return VerifyResult(ok=False, reason=Reason.ASSET_MISMATCH)

        if not tx.note:
            return VerifyResult(ok=False, reason=Reason.NO_NOTE)
        try:
            note = tx.note.decode("utf-8")
        except UnicodeDecodeError:
            return VerifyResult(ok=False, reason=Reason.NOTE_DECODE_ERROR)
        if request.nonce not in note or nonce not in note:
            return VerifyResult(ok=False, reason=Reason.NONCE_MISMATCH)

        if not tx.confirmed:
            return VerifyResult(ok=False, reason=Reason.NOT_CONFIRMED)

        if now is None:
            now = int(time.time())
        if now > request.expiry:
            return VerifyResult(ok=False, reason=Reason.PAYMENT_EXPIRED)

        return VerifyResult(ok=True)


@dataclass
class DirectProofChallenge:
    """402 body of the direct-proof variant"""

    payment: PaymentRequest

    def model_dump(self, by_alias: bool = True) -> dict:
        return {"payment": self.payment.model_dump(by_alias=by_alias)}


@dataclass
class ProofAccepted:
    """Settlement data of an accepted direct proof"""

    transaction: str
    request: PaymentRequest


class DirectProofGate:
    """
    Drives the direct-proof protocol.

    Args:
        pricing: Issues payment requests
        verifier: Checks presented transactions
        cache: Issued requests; a fresh cache is created if omitted
    """

    def __init__(
        self,
        pricing: SimplePricing,
        verifier: PaymentVerifier,
        cache: PaymentRequestCache | None = None,
    ) -> None:
        self._pricing = pricing
        self._verifier = verifier
        self._cache = cache if cache is not None else PaymentRequestCache()

    @property
    def cache(self) -> PaymentRequestCache:
        return self._cache

    async def process(
        self,
        payment_proof: str | None,
        client_nonce: str | None,
        description: str,
    ) -> GateOutcome:
        """
        Run the protocol for one request.

        Args:
            payment_proof: Presented transaction id, or None on first access
            client_nonce: Nonce of the request being paid
            description: Description of the resource (e.g. "GET /path")

        Returns:
            ChallengeIssued with a DirectProofChallenge body, Rejected or
            Granted with a ProofAccepted settlement
        """
        if not payment_proof:
            request = self._pricing.create_payment_request(description)
            self._cache.put(request)
            logger.info("Issued payment request %s for %s", request.nonce, description)
            return ChallengeIssued(body=DirectProofChallenge(payment=request))

        if not client_nonce:
            return Rejected(stage=STAGE_PROOF, reason=Reason.MISSING_NONCE)

        # Locks exist only for issued nonces
        if self._cache.get(client_nonce) is None:
            return Rejected(stage=STAGE_PROOF, reason=Reason.PAYMENT_REQUEST_NOT_FOUND)

        async with self._cache.lock(client_nonce):
            request = self._cache.get(client_nonce)
            if request is None:
                # Used by a concurrent proof while this one waited
                self._cache.pop(client_nonce)
                return Rejected(stage=STAGE_PROOF, reason=Reason.PAYMENT_REQUEST_NOT_FOUND)

            result = await self._verifier.verify_payment(request, payment_proof, client_nonce)
            if not result.ok:
                return Rejected(stage=STAGE_PROOF, reason=result.reason or "")

            self._cache.pop(client_nonce)

        logger.info("Accepted payment %s for request %s", payment_proof, client_nonce)
        return Granted(settlement=ProofAccepted(transaction=payment_proof, request=request))
