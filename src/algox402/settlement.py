"""
Settlement ledger: idempotent settlement state keyed by payment header.

States move absent -> pending -> success | failed and never leave a terminal
state. Each key has its own asyncio lock, so concurrent calls for the same
header serialize while unrelated headers proceed independently.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional

from algox402.exceptions import SettlementStateError

logger = logging.getLogger(__name__)


class SettlementState(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class BeginOutcome(str, Enum):
    PROCEED = "proceed"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class SettlementRecord:
    """Settlement state of one payment header"""

    key: str
    state: SettlementState
    transaction: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)


@dataclass
class BeginResult:
    """Result of begin_settlement"""

    outcome: BeginOutcome
    record: SettlementRecord

    @property
    def proceed(self) -> bool:
        return self.outcome is BeginOutcome.PROCEED


class SettlementStore(ABC):
    """
    Abstract settlement store.

    Guarantees that at most one caller per key is told to proceed with the
    external transfer.
    """

    @abstractmethod
    async def get(self, key: str) -> SettlementRecord | None:
        """Get the record for *key*, or None if settlement was never attempted"""
        pass

    @abstractmethod
    async def begin_settlement(self, key: str) -> BeginResult:
        """
        Claim *key* for settlement.

        Returns:
            PROCEED if the key was absent and is now pending (the caller owns
            the transfer); otherwise the existing state
        """
        pass

    @abstractmethod
    async def record_result(
        self,
        key: str,
        success: bool,
        transaction: str | None = None,
    ) -> SettlementRecord:
        """
        Move a pending key to success (with its transaction) or failed.

        Raises:
            SettlementStateError: If the key is not pending
        """
        pass


class InMemorySettlementStore(SettlementStore):
    """
    Process-local settlement store owned by one facilitator instance.

    Args:
        pending_timeout: Seconds after which a pending record is treated as
            failed when next observed. None disables the recovery.
        clock: Time source, injectable for tests
    """

    def __init__(
        self,
        pending_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._records: dict[str, SettlementRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._pending_timeout = pending_timeout
        self._clock = clock

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _expire_stale(self, record: SettlementRecord) -> None:
        if record.state is not SettlementState.PENDING or self._pending_timeout is None:
            return
        now = self._clock()
        if now - record.updated_at > self._pending_timeout:
            logger.warning(
                "Settlement %s pending for %.0fs, marking failed",
                record.key[:12],
                now - record.updated_at,
            )
            record.state = SettlementState.FAILED
            record.updated_at = now

    def _release_settled(self, key: str) -> None:
        # Only pending keys need serializing; terminal states never change
        record = self._records.get(key)
        if record is None or record.state is not SettlementState.PENDING:
            self._locks.pop(key, None)

    async def get(self, key: str) -> SettlementRecord | None:
        # Runs without awaiting, so it cannot interleave with a locked section
        record = self._records.get(key)
        if record is None:
            return None
        self._expire_stale(record)
        self._release_settled(key)
        return replace(record)

    async def begin_settlement(self, key: str) -> BeginResult:
        try:
            async with self._lock_for(key):
                record = self._records.get(key)
                if record is None:
                    now = self._clock()
                    record = SettlementRecord(
                        key=key,
                        state=SettlementState.PENDING,
                        created_at=now,
                        updated_at=now,
                    )
                    self._records[key] = record
                    return BeginResult(outcome=BeginOutcome.PROCEED, record=replace(record))

                self._expire_stale(record)
                return BeginResult(
                    outcome=BeginOutcome(record.state.value), record=replace(record)
                )
        finally:
            self._release_settled(key)

    async def record_result(
        self,
        key: str,
        success: bool,
        transaction: str | None = None,
    ) -> SettlementRecord:
        if success and not transaction:
            raise ValueError("A successful settlement requires a transaction reference")

        requested = SettlementState.SUCCESS if success else SettlementState.FAILED
        try:
            async with self._lock_for(key):
                record = self._records.get(key)
                if record is None or record.state is not SettlementState.PENDING:
                    raise SettlementStateError(
                        key, record.state.value if record else None, requested.value
                    )
                record.state = requested
                record.transaction = transaction if success else None
                record.updated_at = self._clock()
                return replace(record)
        finally:
            self._release_settled(key)

    @property
    def lock_count(self) -> int:
        """Number of keys currently holding a lock (pending settlements)"""
        return len(self._locks)

    def __len__(self) -> int:
        return len(self._records)
