"""
Usage analytics for ShortSEO.

Events are handed to an ``AnalyticsSink``. Delivery is best effort:
``emit`` never raises and never retries, so callers don't wrap it.
"""

import csv
import json
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

import httpx


logger = logging.getLogger("shortseo.analytics")


class EventType(str, Enum):
    """Kinds of analytics events."""
    ATTEMPT = "keyword_generation_attempt"
    SUCCESS = "keyword_generation_success"
    FAILURE = "keyword_generation_failure"
    ALREADY_LIMITED = "already_limited_attempt"
    LIMIT_REACHED = "limit_hit_on_attempt"
    REFERRAL_APPLIED = "referral_code_applied"
    CONTACT_SUBMITTED = "contact_details_submitted"


@dataclass
class AnalyticsEvent:
    """A single analytics event. Unused fields stay None."""
    event_type: EventType
    client_key: Optional[str] = None
    input_method: Optional[str] = None
    platform: Optional[str] = None
    input_text_length: Optional[int] = None
    keyword_count: Optional[int] = None
    referral_code: Optional[str] = None
    is_mobile: Optional[bool] = None
    was_already_limited: Optional[bool] = None
    limit_reached_this_attempt: Optional[bool] = None
    error_message: Optional[str] = None
    email: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        data = {
            "eventType": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "clientKey": self.client_key,
            "inputMethod": self.input_method,
            "platform": self.platform,
            "inputTextLength": self.input_text_length,
            "numberOfKeywordsGenerated": self.keyword_count,
            "referralCode": self.referral_code,
            "isMobile": self.is_mobile,
            "wasAlreadyLimited": self.was_already_limited,
            "dailyLimitReachedThisAttempt": self.limit_reached_this_attempt,
            "errorMessage": self.error_message,
            "email": self.email,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "AnalyticsEvent":
        return cls(
            event_type=EventType(data["eventType"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            client_key=data.get("clientKey"),
            input_method=data.get("inputMethod"),
            platform=data.get("platform"),
            input_text_length=data.get("inputTextLength"),
            keyword_count=data.get("numberOfKeywordsGenerated"),
            referral_code=data.get("referralCode"),
            is_mobile=data.get("isMobile"),
            was_already_limited=data.get("wasAlreadyLimited"),
            limit_reached_this_attempt=data.get("dailyLimitReachedThisAttempt"),
            error_message=data.get("errorMessage"),
            email=data.get("email"),
        )


class SinkDeliveryError(Exception):
    """Raised by a sink's writer when an event could not be delivered."""
    pass


class AnalyticsSink(ABC):
    """Abstract base class for analytics sinks."""

    def emit(self, event: AnalyticsEvent) -> None:
        """Deliver an event. Failures are logged and dropped."""
        try:
            self.write(event)
        except Exception as exc:
            logger.warning(f"Dropped {event.event_type.value} event: {exc}")

    @abstractmethod
    def write(self, event: AnalyticsEvent) -> None:
        """Deliver an event, raising on failure."""
        pass


class NullAnalyticsSink(AnalyticsSink):
    """Discards everything."""

    def write(self, event: AnalyticsEvent) -> None:
        pass


class InMemoryAnalyticsSink(AnalyticsSink):
    """
    In-memory sink for testing.
    """

    def __init__(self):
        self.events: list[AnalyticsEvent] = []

    def write(self, event: AnalyticsEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[AnalyticsEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()

    def __len__(self) -> int:
        return len(self.events)


class JSONLAnalyticsSink(AnalyticsSink):
    """
    JSON Lines file sink.

    Each line is one event object.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def write(self, event: AnalyticsEvent) -> None:
        """Append event to JSONL file."""
        with open(self.path, 'a') as f:
            f.write(json.dumps(event.to_dict()) + '\n')

    def read_all(self) -> Iterator[AnalyticsEvent]:
        """Read all events from file, skipping unreadable lines."""
        if not self.path.exists():
            return

        with open(self.path, 'r') as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    yield AnalyticsEvent.from_dict(json.loads(line))
                except (ValueError, KeyError) as exc:
                    logger.warning(f"Skipping unreadable event line: {exc}")


class WebhookAnalyticsSink(AnalyticsSink):
    """
    Posts each event as JSON to a webhook, e.g. a spreadsheet's
    append-row endpoint. One attempt per event.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def write(self, event: AnalyticsEvent) -> None:
        try:
            response = self._client.post(self.url, json=event.to_dict())
        except httpx.HTTPError as exc:
            raise SinkDeliveryError(f"webhook request failed: {exc}") from exc
        if response.status_code >= 400:
            raise SinkDeliveryError(f"webhook returned HTTP {response.status_code}")

    def close(self) -> None:
        self._client.close()


class BackgroundAnalyticsSink(AnalyticsSink):
    """
    Dispatches events to another sink on a worker thread so the caller
    never waits on delivery.
    """

    def __init__(self, inner: AnalyticsSink, max_workers: int = 2):
        self.inner = inner
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="shortseo-analytics",
        )

    def emit(self, event: AnalyticsEvent) -> None:
        try:
            self._executor.submit(self.inner.emit, event)
        except RuntimeError as exc:
            # executor already shut down
            logger.warning(f"Dropped {event.event_type.value} event: {exc}")

    def write(self, event: AnalyticsEvent) -> None:
        self.inner.write(event)

    def flush(self) -> None:
        """Wait for queued events, then stop accepting new ones."""
        self._executor.shutdown(wait=True)


CSV_FIELDS = [
    "eventType",
    "timestamp",
    "clientKey",
    "inputMethod",
    "platform",
    "inputTextLength",
    "numberOfKeywordsGenerated",
    "referralCode",
    "isMobile",
    "wasAlreadyLimited",
    "dailyLimitReachedThisAttempt",
    "errorMessage",
    "email",
]


def export_csv(events: list[AnalyticsEvent], path: Path) -> int:
    """
    Export events to a CSV file, one row per event.

    Returns:
        Number of events exported.
    """
    if not events:
        return 0

    with open(path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for event in events:
            writer.writerow(event.to_dict())

    return len(events)
