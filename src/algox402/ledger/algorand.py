"""
AlgorandLedgerAdapter - ledger adapter backed by algod and the indexer
"""

import asyncio
import base64
import logging
from typing import TYPE_CHECKING, Any

from algosdk import account, mnemonic, transaction
from algosdk.v2client import algod, indexer

from algox402.exceptions import ConfigurationError, TransactionError, TransactionTimeoutError
from algox402.ledger.base import LedgerAdapter, LedgerTransaction
from algox402.types import SignedAuthorization

if TYPE_CHECKING:
    from algox402.config import FacilitatorSettings

logger = logging.getLogger(__name__)


def parse_indexer_transaction(data: dict[str, Any]) -> LedgerTransaction:
    """Convert an indexer ``/v2/transactions/{txid}`` response to a LedgerTransaction"""
    txn = data.get("transaction") or data.get("txn")
    if not txn:
        raise TransactionError("invalid_tx_data")

    payment = txn.get("payment-transaction")
    asset_transfer = txn.get("asset-transfer-transaction")
    if payment:
        receiver = payment.get("receiver", "")
        amount = int(payment.get("amount", 0))
        asset = "0"
    elif asset_transfer:
        receiver = asset_transfer.get("receiver", "")
        amount = int(asset_transfer.get("amount", 0))
        asset = str(asset_transfer.get("asset-id", 0))
    else:
        receiver, amount, asset = "", 0, "0"

    note_b64 = txn.get("note")
    note = base64.b64decode(note_b64) if note_b64 else b""

    return LedgerTransaction(
        id=txn.get("id", ""),
        receiver=receiver,
        amount=amount,
        asset=asset,
        note=note,
        confirmation_height=txn.get("confirmed-round") or None,
        sender=txn.get("sender"),
    )


class AlgorandLedgerAdapter(LedgerAdapter):
    """Algorand ledger adapter using py-algorand-sdk.

    algosdk clients are blocking, so calls run in a worker thread.
    """

    def __init__(
        self,
        algod_client: algod.AlgodClient,
        indexer_client: indexer.IndexerClient | None = None,
        private_key: str | None = None,
        confirmation_rounds: int = 8,
    ) -> None:
        self._algod = algod_client
        self._indexer = indexer_client
        self._private_key = private_key
        self._address = account.address_from_private_key(private_key) if private_key else ""
        self._confirmation_rounds = confirmation_rounds

    @classmethod
    def from_settings(cls, settings: "FacilitatorSettings") -> "AlgorandLedgerAdapter":
        """Create an adapter from facilitator settings"""
        private_key = (
            mnemonic.to_private_key(settings.facilitator_mnemonic)
            if settings.facilitator_mnemonic
            else None
        )
        return cls(
            algod.AlgodClient(settings.algod_token, settings.algod_address),
            indexer.IndexerClient(settings.indexer_token, settings.indexer_address),
            private_key=private_key,
        )

    def get_address(self) -> str:
        return self._address

    async def transfer(
        self,
        sender: str,
        receiver: str,
        amount: int,
        asset: str,
        note: str,
        signed: SignedAuthorization | None = None,
    ) -> str:
        if not self._private_key:
            raise ConfigurationError("FACILITATOR_MNEMONIC not set")
        logger.info(
            "[AVM] Paying %s %s of asset %s on behalf of %s from %s",
            receiver,
            amount,
            asset,
            sender,
            self._address,
        )
        return await asyncio.to_thread(self._send_payment, receiver, int(amount), int(asset), note)

    def _send_payment(self, receiver: str, amount: int, asset_id: int, note: str) -> str:
        params = self._algod.suggested_params()
        note_bytes = note.encode("utf-8") if note else None

        if asset_id == 0:
            txn = transaction.PaymentTxn(
                sender=self._address,
                sp=params,
                receiver=receiver,
                amt=amount,
                note=note_bytes,
            )
        else:
            txn = transaction.AssetTransferTxn(
                sender=self._address,
                sp=params,
                receiver=receiver,
                amt=amount,
                index=asset_id,
                note=note_bytes,
            )

        signed_txn = txn.sign(self._private_key)
        txid = self._algod.send_transaction(signed_txn)
        logger.info("[AVM] Submitted %s, waiting for confirmation", txid)

        try:
            transaction.wait_for_confirmation(self._algod, txid, self._confirmation_rounds)
        except Exception as e:
            raise TransactionTimeoutError(
                f"Transaction {txid} not confirmed after {self._confirmation_rounds} rounds"
            ) from e
        return txid

    async def get_transaction(self, tx_id: str) -> LedgerTransaction:
        if self._indexer is None:
            raise ConfigurationError("Indexer client not configured")
        try:
            data = await asyncio.to_thread(self._indexer.transaction, tx_id)
        except Exception as e:
            raise TransactionError(f"Transaction {tx_id} not found: {e}") from e
        return parse_indexer_transaction(data)
