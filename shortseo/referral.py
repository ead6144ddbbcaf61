"""
Referral code tracking.

A referral code can arrive three ways, highest priority first:

1. the ``referralCode`` URL query parameter of the current page load;
2. a message from the embedding page (allow-listed origin only), parked
   in a scratch slot until the next resolve;
3. a previously persisted record, while it has not expired.

The winner is persisted with a rolling expiry.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Optional

from shortseo.clock import Clock, SystemClock
from shortseo.config import get_referral_settings
from shortseo.models import ReferralRecord
from shortseo.storage import KeyValueStore


logger = logging.getLogger("shortseo.referral")


class ReferralSource(str, Enum):
    """Where the active referral code came from."""
    URL = "url"
    MESSAGE = "message"
    STORED = "stored"


@dataclass
class ReferralMessage:
    """Cross-frame message carrying a referral code."""
    code: Optional[str]
    origin: str


@dataclass
class ReferralResolution:
    """Result of resolving the active referral code."""
    active_code: Optional[str]
    newly_applied: bool
    source: Optional[ReferralSource] = None

    def to_dict(self) -> dict:
        return {
            "activeCode": self.active_code,
            "newlyApplied": self.newly_applied,
            "source": self.source.value if self.source else None,
        }


class ReferralTracker:
    """
    Resolves and persists the single active referral code.

    ``newly_applied`` on the resolution is the trigger for the one-time
    "referral code applied" analytics event.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        clock: Optional[Clock] = None,
        record_slot: Optional[str] = None,
        scratch_slot: Optional[str] = None,
        ttl: Optional[timedelta] = None,
        allowed_origins: Optional[Iterable[str]] = None,
        reemit_url_code: Optional[bool] = None,
    ):
        """
        Initialize the tracker.

        Args:
            kv: Storage holding the durable record and the scratch slot.
            clock: Time source.
            record_slot: Name of the durable, expiring record.
            scratch_slot: Name of the non-expiring slot messages write to.
            ttl: Lifetime of a persisted code, rolled on every write.
            allowed_origins: Origins whose messages are trusted.
            reemit_url_code: If True, a URL code always counts as newly
                applied. If False, repeating the active code does not.
        """
        settings = get_referral_settings()
        self.kv = kv
        self.clock = clock or SystemClock()
        self.record_slot = record_slot or settings["record_slot"]
        self.scratch_slot = scratch_slot or settings["scratch_slot"]
        self.ttl = ttl or timedelta(days=settings["ttl_days"])
        self.allowed_origins = set(
            allowed_origins if allowed_origins is not None else settings["allowed_origins"]
        )
        self.reemit_url_code = (
            reemit_url_code if reemit_url_code is not None else settings["reemit_url_code"]
        )

    def receive_message(self, message: ReferralMessage) -> bool:
        """
        Park a code delivered by the embedding page.

        Returns:
            True if the message was accepted.
        """
        if message.origin not in self.allowed_origins:
            logger.warning(f"Blocked referral message from unexpected origin {message.origin!r}")
            return False
        if not message.code:
            logger.info("Referral message carried no code")
            return False
        self.kv.set_item(self.scratch_slot, message.code)
        return True

    def resolve(
        self,
        url_code: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReferralResolution:
        """
        Work out the active referral code.

        Args:
            url_code: ``referralCode`` query parameter, if present.
            now: Evaluation time. Clock time if not provided.

        Returns:
            ReferralResolution with the active code (or None).
        """
        now = now or self.clock.now()

        if url_code:
            previous = self._load_active(now) if not self.reemit_url_code else None
            self._persist(url_code, now)
            newly_applied = self.reemit_url_code or previous is None or previous.code != url_code
            return ReferralResolution(url_code, newly_applied, ReferralSource.URL)

        stored = self._load_active(now)
        if stored is None:
            scratch_code = self.kv.get_item(self.scratch_slot)
            if scratch_code:
                self._persist(scratch_code, now)
                self.kv.remove_item(self.scratch_slot)
                return ReferralResolution(scratch_code, True, ReferralSource.MESSAGE)
            return ReferralResolution(None, False)

        return ReferralResolution(stored.code, False, ReferralSource.STORED)

    def active_code(self, now: Optional[datetime] = None) -> Optional[str]:
        """The stored code, if any is still active. Purges stale records."""
        record = self._load_active(now or self.clock.now())
        return record.code if record else None

    def clear(self) -> None:
        self.kv.remove_item(self.record_slot)
        self.kv.remove_item(self.scratch_slot)

    def _persist(self, code: str, now: datetime) -> ReferralRecord:
        record = ReferralRecord(code=code, expires_at=now + self.ttl)
        self.kv.set_item(self.record_slot, json.dumps(record.to_dict()))
        return record

    def _load_active(self, now: datetime) -> Optional[ReferralRecord]:
        raw = self.kv.get_item(self.record_slot)
        if raw is None:
            return None
        try:
            record = ReferralRecord.from_dict(json.loads(raw))
        except (ValueError, TypeError) as exc:
            logger.warning(f"Removing unreadable referral record: {exc}")
            self.kv.remove_item(self.record_slot)
            return None
        if not record.is_active(now):
            self.kv.remove_item(self.record_slot)
            return None
        return record
