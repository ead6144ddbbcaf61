"""
Daily generation quota for ShortSEO.

Each key (a client IP server side, a device slot client side) gets
``base_max`` generations per rolling cycle, plus a one-time-per-cycle
email bonus. Cycles reset lazily: nothing runs on a timer, a stale record
is replaced the next time it is read.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, Optional, Tuple

from shortseo.clock import Clock, SystemClock
from shortseo.config import get_quota_settings
from shortseo.models import BonusGrantRecord, QuotaRecord, QuotaSnapshot
from shortseo.storage import InMemoryQuotaStore, QuotaStore


logger = logging.getLogger("shortseo.quota")


class QuotaExceededError(Exception):
    """Raised when a key has no generations left this cycle."""
    def __init__(self, key: str, limit: int, reset_at: datetime):
        self.key = key
        self.limit = limit
        self.reset_at = reset_at
        super().__init__(
            f"Daily generation limit of {limit} reached. "
            f"Resets at {reset_at.strftime('%Y-%m-%d %H:%M UTC')}."
        )


@dataclass
class BonusGrant:
    """Outcome of a bonus claim."""
    granted: bool
    record: QuotaRecord
    bonus: BonusGrantRecord
    reason: Optional[str] = None  # "already_claimed" when rejected


class QuotaPolicy:
    """
    Quota decisions for one store.

    Example:
        ```python
        policy = QuotaPolicy()

        with policy.key_lock("203.0.113.7"):
            record, bonus = policy.resolve("203.0.113.7")
            if policy.authorize(record):
                ...  # do the work
                record = policy.consume("203.0.113.7", record, bonus)
        ```
    """

    def __init__(
        self,
        store: Optional[QuotaStore] = None,
        clock: Optional[Clock] = None,
        base_max: Optional[int] = None,
        bonus_amount: Optional[int] = None,
        cycle_length: Optional[timedelta] = None,
    ):
        """
        Initialize the policy.

        Args:
            store: Where quota state lives. In-memory if not provided.
            clock: Time source. System clock if not provided.
            base_max: Generations per cycle without bonus.
            bonus_amount: Extra generations granted for an email.
            cycle_length: Length of one quota cycle.
        """
        settings = get_quota_settings()
        self.store = store if store is not None else InMemoryQuotaStore()
        self.clock = clock or SystemClock()
        self.base_max = base_max if base_max is not None else settings["base_max"]
        self.bonus_amount = bonus_amount if bonus_amount is not None else settings["bonus_amount"]
        self.cycle_length = cycle_length or timedelta(hours=settings["cycle_hours"])

        # key -> [lock, holders and waiters]; entries go away when idle
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @property
    def cap(self) -> int:
        """Highest ``remaining`` can ever be."""
        return self.base_max + self.bonus_amount

    @contextmanager
    def key_lock(self, key: str) -> Iterator[None]:
        """Serialize read-modify-write sequences for one key."""
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def reset_at(self, record: QuotaRecord) -> datetime:
        return record.cycle_start + self.cycle_length

    def resolve(
        self,
        key: str,
        now: Optional[datetime] = None,
    ) -> Tuple[QuotaRecord, BonusGrantRecord]:
        """
        Load the key's state, starting a fresh cycle when needed.

        This is the only reset path.

        Args:
            key: Client identifier.
            now: Evaluation time. Clock time if not provided.

        Returns:
            The current (record, bonus) pair.
        """
        now = now or self.clock.now()
        entry = self.store.get(key)

        if entry is None or now >= self.reset_at(entry[0]):
            record = QuotaRecord(remaining=self.base_max, cycle_start=now)
            bonus = BonusGrantRecord()
            self.store.put(key, record, bonus)
            logger.debug(f"Started new quota cycle for {key!r}")
            return record, bonus

        record, bonus = entry
        limit = self.current_max(record, bonus)
        if record.remaining > limit:
            logger.warning(
                f"Clamping remaining for {key!r} from {record.remaining} to {limit}"
            )
            record = QuotaRecord(remaining=limit, cycle_start=record.cycle_start)
            self.store.put(key, record, bonus)
        return record, bonus

    def current_max(self, record: QuotaRecord, bonus: BonusGrantRecord) -> int:
        if bonus.granted_in(record):
            return self.base_max + self.bonus_amount
        return self.base_max

    def authorize(self, record: QuotaRecord) -> bool:
        return record.remaining > 0

    def consume(
        self,
        key: str,
        record: QuotaRecord,
        bonus: BonusGrantRecord,
    ) -> QuotaRecord:
        """
        Record one generation.

        Returns:
            The updated record. ``remaining == 0`` means this call used up
            the last generation.
        """
        updated = QuotaRecord(
            remaining=max(0, record.remaining - 1),
            cycle_start=record.cycle_start,
        )
        self.store.put(key, updated, bonus)
        return updated

    def grant_bonus(
        self,
        key: str,
        record: QuotaRecord,
        bonus: BonusGrantRecord,
    ) -> BonusGrant:
        """
        Top up the key once per cycle.

        A second claim in the same cycle is a no-op reported as
        ``reason="already_claimed"``.
        """
        if bonus.granted_in(record):
            return BonusGrant(granted=False, record=record, bonus=bonus, reason="already_claimed")

        updated = QuotaRecord(
            remaining=min(record.remaining + self.bonus_amount, self.cap),
            cycle_start=record.cycle_start,
        )
        granted = BonusGrantRecord(granted_cycle_start=record.cycle_start)
        self.store.put(key, updated, granted)
        logger.info(f"Granted {self.bonus_amount} bonus generations to {key!r}")
        return BonusGrant(granted=True, record=updated, bonus=granted)

    def check(self, key: str, now: Optional[datetime] = None) -> Tuple[QuotaRecord, BonusGrantRecord]:
        """
        Resolve and authorize in one step.

        Raises:
            QuotaExceededError: If the key has nothing left.
        """
        record, bonus = self.resolve(key, now)
        if not self.authorize(record):
            raise QuotaExceededError(key, self.current_max(record, bonus), self.reset_at(record))
        return record, bonus

    def snapshot(self, record: QuotaRecord, bonus: BonusGrantRecord) -> QuotaSnapshot:
        return QuotaSnapshot(
            remaining=record.remaining,
            max=self.current_max(record, bonus),
            reset_at=self.reset_at(record),
            bonus_claimed=bonus.granted_in(record),
        )

    def usage(self, key: str, now: Optional[datetime] = None) -> QuotaSnapshot:
        """Current quota for a key without consuming anything."""
        with self.key_lock(key):
            record, bonus = self.resolve(key, now)
        return self.snapshot(record, bonus)
