"""
EvmLedgerAdapter - relays EIP-3009 transferWithAuthorization via web3.py
"""

import logging
from typing import Any

from algox402.abi import ERC20_TRANSFER_EVENT_ABI, TRANSFER_WITH_AUTHORIZATION_ABI
from algox402.exceptions import (
    ConfigurationError,
    SettlementError,
    TransactionError,
    TransactionFailedError,
)
from algox402.ledger.base import LedgerAdapter, LedgerTransaction
from algox402.signers.evm_signer import hex_to_bytes, nonce_to_bytes32
from algox402.types import SignedAuthorization

logger = logging.getLogger(__name__)


def split_signature(signature: str) -> tuple[int, bytes, bytes]:
    """Split a 65-byte signature into (v, r, s)"""
    sig_bytes = hex_to_bytes(signature)
    if len(sig_bytes) != 65:
        raise SettlementError(f"Invalid signature length: {len(sig_bytes)} bytes")
    r = sig_bytes[:32]
    s = sig_bytes[32:64]
    v = sig_bytes[64]
    if v < 27:
        v += 27
    return v, r, s


class EvmLedgerAdapter(LedgerAdapter):
    """EVM ledger adapter.

    The facilitator key pays gas and submits the payer-signed
    transferWithAuthorization; funds move from the payer to the seller.
    """

    def __init__(self, private_key: str, rpc_url: str, receipt_timeout: int = 120) -> None:
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        self._private_key = private_key
        self._address = self._derive_address(private_key)
        self._rpc_url = rpc_url
        self._receipt_timeout = receipt_timeout
        self._web3: Any = None
        logger.debug("EvmLedgerAdapter initialized", extra={"address": self._address})

    @staticmethod
    def _derive_address(private_key: str) -> str:
        """Derive EVM address from private key"""
        from eth_account import Account

        return Account.from_key(private_key).address

    def get_address(self) -> str:
        return self._address

    def _ensure_web3(self) -> Any:
        """Lazy initialize the async web3 client."""
        if self._web3 is None:
            if not self._rpc_url:
                raise ConfigurationError("EVM RPC URL not configured")
            from web3 import AsyncHTTPProvider, AsyncWeb3

            self._web3 = AsyncWeb3(AsyncHTTPProvider(self._rpc_url))
        return self._web3

    async def transfer(
        self,
        sender: str,
        receiver: str,
        amount: int,
        asset: str,
        note: str,
        signed: SignedAuthorization | None = None,
    ) -> str:
        if signed is None:
            raise SettlementError("EVM settlement requires the payer's signed authorization")

        auth = signed.authorization
        v, r, s = split_signature(signed.signature)
        w3 = self._ensure_web3()

        contract = w3.eth.contract(
            address=w3.to_checksum_address(asset), abi=TRANSFER_WITH_AUTHORIZATION_ABI
        )
        args = [
            w3.to_checksum_address(sender),
            w3.to_checksum_address(receiver),
            int(amount),
            int(auth.valid_after),
            int(auth.valid_before),
            nonce_to_bytes32(auth.nonce),
            v,
            r,
            s,
        ]

        logger.info("[EVM] Calling transferWithAuthorization on token=%s (%s)", asset, note)

        tx = await contract.functions.transferWithAuthorization(*args).build_transaction(
            {
                "from": self._address,
                "nonce": await w3.eth.get_transaction_count(self._address),
                "chainId": await w3.eth.chain_id,
            }
        )
        signed_tx = w3.eth.account.sign_transaction(tx, private_key=self._private_key)
        tx_hash = w3.to_hex(await w3.eth.send_raw_transaction(signed_tx.raw_transaction))

        receipt = await w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
        if receipt["status"] != 1:
            raise TransactionFailedError(f"Transaction {tx_hash} reverted")
        return tx_hash

    async def get_transaction(self, tx_id: str) -> LedgerTransaction:
        from web3.logs import DISCARD

        w3 = self._ensure_web3()
        try:
            tx = await w3.eth.get_transaction(tx_id)
            receipt = await w3.eth.get_transaction_receipt(tx_id)
        except Exception as e:
            raise TransactionError(f"Transaction {tx_id} not found: {e}") from e

        event = w3.eth.contract(abi=ERC20_TRANSFER_EVENT_ABI).events.Transfer()
        transfers = event.process_receipt(receipt, errors=DISCARD)
        if not transfers:
            raise TransactionError(f"Transaction {tx_id} has no token transfer")
        first = transfers[0]

        return LedgerTransaction(
            id=tx_id,
            receiver=first["args"]["to"],
            amount=int(first["args"]["value"]),
            asset=first["address"],
            note=bytes(tx.get("input", b"")),
            confirmation_height=receipt["blockNumber"] if receipt["status"] == 1 else None,
            sender=first["args"]["from"],
        )
