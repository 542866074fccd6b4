"""
Ledger adapters
"""

from algox402.ledger.algorand import AlgorandLedgerAdapter, parse_indexer_transaction
from algox402.ledger.base import LedgerAdapter, LedgerTransaction
from algox402.ledger.evm import EvmLedgerAdapter

__all__ = [
    "LedgerAdapter",
    "LedgerTransaction",
    "AlgorandLedgerAdapter",
    "EvmLedgerAdapter",
    "parse_indexer_transaction",
]
