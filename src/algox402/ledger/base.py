"""
Ledger adapter interface: the external system that executes and reports transfers
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from algox402.types import SignedAuthorization


@dataclass
class LedgerTransaction:
    """A transfer as reported by the ledger"""

    id: str
    receiver: str
    amount: int
    asset: str
    note: bytes = b""
    confirmation_height: Optional[int] = None
    sender: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return bool(self.confirmation_height)


class LedgerAdapter(ABC):
    """
    Abstract base class for ledger adapters.

    Responsible for broadcasting transfers with the custodial key it holds and
    for reading transfers back.
    """

    @abstractmethod
    def get_address(self) -> str:
        """Get the address of the custodial account"""
        pass

    @abstractmethod
    async def transfer(
        self,
        sender: str,
        receiver: str,
        amount: int,
        asset: str,
        note: str,
        signed: SignedAuthorization | None = None,
    ) -> str:
        """
        Execute a transfer and wait for its confirmation.

        Args:
            sender: Account the value is taken from (the payer)
            receiver: Recipient address
            amount: Amount in base units
            asset: Asset id ("0" for the native asset) or token contract
            note: Free-form note recorded with the transfer where supported
            signed: Payer authorization, for ledgers that pull funds with it

        Returns:
            Transaction reference

        Raises:
            Any exception on failure; the outcome is then unknown to the caller
        """
        pass

    @abstractmethod
    async def get_transaction(self, tx_id: str) -> LedgerTransaction:
        """
        Look up a transfer.

        Raises:
            TransactionError: If the transaction cannot be found
        """
        pass
