"""Shared data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Any, Optional


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO 8601 string into an aware UTC datetime.

    Raises:
        ValueError: If the value is not a usable timestamp.
    """
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class QuotaRecord:
    """Generations left in the current cycle for one key."""
    remaining: int
    cycle_start: datetime

    def to_dict(self) -> dict:
        return {
            "remaining": self.remaining,
            "cycle_start": self.cycle_start.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "QuotaRecord":
        if not isinstance(data, dict):
            raise ValueError("quota record must be an object")
        remaining = data.get("remaining")
        # bool is an int subclass; reject it explicitly
        if isinstance(remaining, bool) or not isinstance(remaining, int) or remaining < 0:
            raise ValueError(f"invalid remaining count: {remaining!r}")
        return cls(remaining=remaining, cycle_start=parse_timestamp(data.get("cycle_start")))


@dataclass
class BonusGrantRecord:
    """Cycle in which the email bonus was last granted (None = never)."""
    granted_cycle_start: Optional[datetime] = None

    def granted_in(self, record: QuotaRecord) -> bool:
        return self.granted_cycle_start is not None and self.granted_cycle_start == record.cycle_start

    def to_dict(self) -> dict:
        return {
            "granted_cycle_start": (
                self.granted_cycle_start.isoformat() if self.granted_cycle_start else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "BonusGrantRecord":
        if not isinstance(data, dict):
            raise ValueError("bonus record must be an object")
        value = data.get("granted_cycle_start")
        return cls(granted_cycle_start=parse_timestamp(value) if value is not None else None)


@dataclass
class ReferralRecord:
    """A persisted referral code with a fixed expiry."""
    code: str
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at

    def to_dict(self) -> dict:
        return {"code": self.code, "expires_at": self.expires_at.isoformat()}

    @classmethod
    def from_dict(cls, data: Any) -> "ReferralRecord":
        if not isinstance(data, dict):
            raise ValueError("referral record must be an object")
        code = data.get("code")
        if not isinstance(code, str) or not code:
            raise ValueError(f"invalid referral code: {code!r}")
        return cls(code=code, expires_at=parse_timestamp(data.get("expires_at")))


@dataclass
class QuotaSnapshot:
    """What a caller is told about their quota."""
    remaining: int
    max: int
    reset_at: datetime
    bonus_claimed: bool = False

    def to_dict(self) -> dict:
        return {
            "remaining": self.remaining,
            "max": self.max,
            "resetAt": self.reset_at.isoformat(),
            "bonusClaimed": self.bonus_claimed,
        }
