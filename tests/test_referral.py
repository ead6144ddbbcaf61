"""Tests for referral code tracking."""

import json
from datetime import timedelta

from shortseo.clock import ManualClock
from shortseo.referral import ReferralMessage, ReferralSource, ReferralTracker
from shortseo.storage import InMemoryKeyValueStore


TRUSTED = "https://superprofile.bio"


def make_tracker(**kwargs):
    kv = kwargs.pop("kv", None)
    if kv is None:
        kv = InMemoryKeyValueStore()
    clock = kwargs.pop("clock", None) or ManualClock()
    return ReferralTracker(kv, clock=clock, **kwargs), kv, clock


class TestUrlCode:
    """Test codes passed as a URL parameter."""

    def test_url_code_persisted_with_expiry(self):
        """A URL code is stored for 30 days and reported as newly applied."""
        tracker, kv, clock = make_tracker()

        resolution = tracker.resolve(url_code="ABC123")

        assert resolution.active_code == "ABC123"
        assert resolution.newly_applied is True
        assert resolution.source == ReferralSource.URL
        stored = json.loads(kv.get_item("referralCodeData"))
        assert stored["code"] == "ABC123"
        assert stored["expires_at"] == (clock.now() + timedelta(days=30)).isoformat()

    def test_url_code_overrides_stored(self):
        """A new URL code replaces an unexpired stored code."""
        tracker, _, _ = make_tracker()
        tracker.resolve(url_code="OLD")

        resolution = tracker.resolve(url_code="NEW")

        assert resolution.active_code == "NEW"
        assert tracker.active_code() == "NEW"

    def test_url_code_reemitted_by_default(self):
        """Repeating the same URL code counts as applied again."""
        tracker, _, _ = make_tracker()
        tracker.resolve(url_code="ABC")

        assert tracker.resolve(url_code="ABC").newly_applied is True

    def test_url_code_not_reemitted_when_disabled(self):
        """With re-emit off, only a changed code counts as newly applied."""
        tracker, _, _ = make_tracker(reemit_url_code=False)

        assert tracker.resolve(url_code="ABC").newly_applied is True
        assert tracker.resolve(url_code="ABC").newly_applied is False
        assert tracker.resolve(url_code="XYZ").newly_applied is True

    def test_url_code_rolls_expiry(self):
        """Re-supplying a code pushes its expiry out again."""
        tracker, _, clock = make_tracker()
        tracker.resolve(url_code="ABC")

        clock.advance(days=20)
        tracker.resolve(url_code="ABC")
        clock.advance(days=20)

        assert tracker.active_code() == "ABC"


class TestStoredCode:
    """Test persisted codes and their expiry."""

    def test_stored_code_loaded(self):
        """An unexpired stored code is active but not newly applied."""
        tracker, _, clock = make_tracker()
        tracker.resolve(url_code="ABC")
        clock.advance(days=29)

        resolution = tracker.resolve()

        assert resolution.active_code == "ABC"
        assert resolution.newly_applied is False
        assert resolution.source == ReferralSource.STORED

    def test_expired_code_purged(self):
        """A code past its expiry is removed."""
        tracker, kv, clock = make_tracker()
        tracker.resolve(url_code="ABC")
        clock.advance(days=30)

        resolution = tracker.resolve()

        assert resolution.active_code is None
        assert resolution.newly_applied is False
        assert kv.get_item("referralCodeData") is None

    def test_corrupt_record_purged(self):
        """An unreadable record is removed and treated as absent."""
        kv = InMemoryKeyValueStore({"referralCodeData": "{broken"})
        tracker, _, _ = make_tracker(kv=kv)

        assert tracker.active_code() is None
        assert "referralCodeData" not in kv

    def test_record_without_code_purged(self):
        """A record with an empty code is corrupt."""
        kv = InMemoryKeyValueStore({
            "referralCodeData": json.dumps({"code": "", "expires_at": "2030-01-01T00:00:00+00:00"}),
        })
        tracker, _, _ = make_tracker(kv=kv)

        assert tracker.resolve().active_code is None
        assert "referralCodeData" not in kv

    def test_clear(self):
        """clear() forgets both the record and any parked message."""
        tracker, kv, _ = make_tracker()
        tracker.resolve(url_code="ABC")
        kv.set_item("referralCode", "MSG")

        tracker.clear()

        assert tracker.resolve().active_code is None


class TestMessages:
    """Test codes delivered by the embedding page."""

    def test_message_from_untrusted_origin_ignored(self):
        """Only allow-listed origins can set a code."""
        tracker, kv, _ = make_tracker()

        accepted = tracker.receive_message(ReferralMessage("EVIL", "https://evil.example"))

        assert accepted is False
        assert "referralCode" not in kv
        assert tracker.resolve().active_code is None

    def test_message_without_code_ignored(self):
        """An empty code is not parked."""
        tracker, kv, _ = make_tracker()

        assert tracker.receive_message(ReferralMessage(None, TRUSTED)) is False
        assert "referralCode" not in kv

    def test_message_promoted_on_resolve(self):
        """A parked code is persisted on the next resolve and the slot cleared."""
        tracker, kv, _ = make_tracker()
        assert tracker.receive_message(ReferralMessage("MSG1", TRUSTED)) is True

        resolution = tracker.resolve()

        assert resolution.active_code == "MSG1"
        assert resolution.newly_applied is True
        assert resolution.source == ReferralSource.MESSAGE
        assert "referralCode" not in kv
        assert tracker.resolve().newly_applied is False

    def test_stored_code_beats_message(self):
        """A parked message does not displace an active stored code."""
        tracker, kv, _ = make_tracker()
        tracker.resolve(url_code="STORED")
        tracker.receive_message(ReferralMessage("MSG", TRUSTED))

        resolution = tracker.resolve()

        assert resolution.active_code == "STORED"
        assert resolution.source == ReferralSource.STORED
        assert kv.get_item("referralCode") == "MSG"

    def test_url_beats_message(self):
        """A URL code wins over a parked message."""
        tracker, _, _ = make_tracker()
        tracker.receive_message(ReferralMessage("MSG", TRUSTED))

        assert tracker.resolve(url_code="URL").active_code == "URL"

    def test_message_used_after_stored_expires(self):
        """Once the stored code expires, a parked message takes over."""
        tracker, _, clock = make_tracker()
        tracker.resolve(url_code="OLD")
        tracker.receive_message(ReferralMessage("MSG", TRUSTED))
        clock.advance(days=31)

        resolution = tracker.resolve()

        assert resolution.active_code == "MSG"
        assert resolution.newly_applied is True

    def test_custom_allowed_origins(self):
        """The origin allow-list is configurable."""
        tracker, _, _ = make_tracker(allowed_origins=["https://partner.example"])

        assert tracker.receive_message(ReferralMessage("P", "https://partner.example")) is True
        assert tracker.receive_message(ReferralMessage("S", TRUSTED)) is False

    def test_resolution_to_dict(self):
        """Resolutions serialize with camelCase keys."""
        tracker, _, _ = make_tracker()

        data = tracker.resolve(url_code="ABC").to_dict()

        assert data == {"activeCode": "ABC", "newlyApplied": True, "source": "url"}
