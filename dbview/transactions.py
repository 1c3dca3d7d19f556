"""Leased transaction store with deadline-based forced rollback."""

from __future__ import annotations

import asyncio
import heapq
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from .connectors import Params, TransactionHandle
from .errors import TransactionNotFoundError
from .models import QueryResult

LOG = logging.getLogger(__name__)

DEFAULT_TTL = 300.0

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class TransactionLease:
    """Ownership record for one open transaction."""

    transaction_id: str
    database_id: str
    handle: TransactionHandle
    deadline: float


class TransactionStore:
    """Hands out time-bounded transaction leases and reaps abandoned ones.

    Deadlines are kept in a min-heap against an injectable monotonic clock.
    Removing a lease leaves its heap entry behind; the reaper skips entries
    whose lease is gone. Popping a lease from the map is the single point
    that decides who terminates it, so commit, rollback and expiry can never
    both act on the same transaction.
    """

    def __init__(self, ttl: float = DEFAULT_TTL, *, clock: Clock = time.monotonic, poll_interval: float = 1.0) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self._ttl = ttl
        self._clock = clock
        self._poll_interval = poll_interval
        self._leases: dict[str, TransactionLease] = {}
        self._deadlines: list[tuple[float, str]] = []
        self._lock = threading.Lock()
        self._task: asyncio.Task[None] | None = None
        self._wakeup: asyncio.Event | None = None

    @property
    def ttl(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._leases)

    def add(self, handle: TransactionHandle, database_id: str) -> TransactionLease:
        """Register ``handle`` with a fresh deadline."""

        lease = TransactionLease(
            transaction_id=handle.transaction_id,
            database_id=database_id,
            handle=handle,
            deadline=self._clock() + self._ttl,
        )
        with self._lock:
            if lease.transaction_id in self._leases:
                raise ValueError(f"Transaction {lease.transaction_id} is already registered")
            self._leases[lease.transaction_id] = lease
            heapq.heappush(self._deadlines, (lease.deadline, lease.transaction_id))
        if self._wakeup is not None:
            self._wakeup.set()
        return lease

    def get(self, transaction_id: str) -> TransactionLease | None:
        """Return the live lease, or None once it is removed or past its deadline."""

        with self._lock:
            lease = self._leases.get(transaction_id)
        if lease is None or lease.deadline <= self._clock():
            return None
        return lease

    def require(self, transaction_id: str) -> TransactionLease:
        lease = self.get(transaction_id)
        if lease is None:
            raise TransactionNotFoundError(transaction_id)
        return lease

    def remove(self, transaction_id: str) -> TransactionLease | None:
        """Pop the lease; its deadline no longer applies."""

        with self._lock:
            return self._leases.pop(transaction_id, None)

    async def execute(self, transaction_id: str, sql: str, params: Params | None = None) -> QueryResult:
        lease = self.require(transaction_id)
        return await lease.handle.execute(sql, params)

    async def commit(self, transaction_id: str) -> None:
        lease = self._claim(transaction_id)
        await lease.handle.commit()

    async def rollback(self, transaction_id: str) -> None:
        lease = self._claim(transaction_id)
        await lease.handle.rollback()

    async def reap_expired(self) -> list[str]:
        """Roll back every lease whose deadline has passed."""

        now = self._clock()
        expired: list[TransactionLease] = []
        with self._lock:
            while self._deadlines and self._deadlines[0][0] <= now:
                deadline, transaction_id = heapq.heappop(self._deadlines)
                lease = self._leases.get(transaction_id)
                if lease is not None and lease.deadline == deadline:
                    del self._leases[transaction_id]
                    expired.append(lease)
        for lease in expired:
            LOG.warning(
                "Transaction %s on '%s' exceeded its %.0fs lease; rolling back",
                lease.transaction_id,
                lease.database_id,
                self._ttl,
            )
            await self._force_rollback(lease)
        return [lease.transaction_id for lease in expired]

    async def cleanup_all(self) -> list[str]:
        """Roll back every outstanding lease regardless of its deadline."""

        with self._lock:
            leases = list(self._leases.values())
            self._leases.clear()
            self._deadlines.clear()
        if leases:
            LOG.info("Rolling back %d open transaction(s)", len(leases))
            await asyncio.gather(*(self._force_rollback(lease) for lease in leases))
        return [lease.transaction_id for lease in leases]

    def start(self) -> None:
        """Start the background reaper on the running event loop."""

        if self._task is not None and not self._task.done():
            return
        self._wakeup = wakeup = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._reaper(wakeup))

    async def close(self) -> None:
        """Stop the background reaper."""

        task, self._task = self._task, None
        self._wakeup = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _claim(self, transaction_id: str) -> TransactionLease:
        lease = self.require(transaction_id)
        if self.remove(transaction_id) is not lease:
            raise TransactionNotFoundError(transaction_id)
        return lease

    async def _force_rollback(self, lease: TransactionLease) -> None:
        try:
            await lease.handle.rollback()
        except Exception as exc:
            LOG.error(
                "Rollback of transaction %s on '%s' failed: %s",
                lease.transaction_id,
                lease.database_id,
                exc,
            )

    def _next_delay(self) -> float:
        with self._lock:
            if not self._deadlines:
                return self._poll_interval
            next_deadline = self._deadlines[0][0]
        return min(max(next_deadline - self._clock(), 0.0), self._poll_interval)

    async def _reaper(self, wakeup: asyncio.Event) -> None:
        while True:
            wakeup.clear()
            try:
                await asyncio.wait_for(wakeup.wait(), timeout=self._next_delay())
            except asyncio.TimeoutError:
                pass
            await self.reap_expired()


__all__ = ["DEFAULT_TTL", "TransactionLease", "TransactionStore"]
