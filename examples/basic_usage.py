"""
Basic usage examples for ShortSEO.

Everything here runs offline against the mock keyword service.
"""

from shortseo import (
    InMemoryAnalyticsSink,
    InMemoryKeyValueStore,
    KeywordGenerator,
    ManualClock,
    MockKeywordService,
    OpenAIKeywordService,
    QuotaPolicy,
    ReferralMessage,
    ReferralTracker,
)


def example_basic():
    """Generate keywords for a caption."""
    print("=" * 60)
    print("Example 1: Basic Usage")
    print("=" * 60)

    generator = KeywordGenerator(QuotaPolicy(), MockKeywordService())

    result = generator.generate(
        "203.0.113.7",
        input_method="caption",
        input_text="Three quick tips for sharper phone photos",
        platform="instagram-reels",
    )

    print(f"Keywords: {', '.join(result.keywords)}")
    print(f"Remaining today: {result.snapshot.remaining}/{result.snapshot.max}")
    generator.close()
    print()


def example_daily_limit():
    """Run out of free generations, then unlock the bonus."""
    print("=" * 60)
    print("Example 2: Daily Limit and Email Bonus")
    print("=" * 60)

    clock = ManualClock()
    generator = KeywordGenerator(QuotaPolicy(clock=clock), MockKeywordService())
    key = "203.0.113.7"

    for i in range(6):
        result = generator.generate(
            key,
            input_method="title",
            input_text=f"Morning routine video number {i}",
            platform="youtube-shorts",
        )
        status = "ok" if result.success else result.error_message
        print(f"  Attempt {i + 1}: {status}")

    claim = generator.claim_bonus(key, "creator@example.com")
    print(f"Bonus granted: {claim.ok}, remaining {claim.snapshot.remaining}/{claim.snapshot.max}")

    # A new cycle starts 24 hours after the first generation
    clock.advance(hours=24)
    print(f"Next day: {generator.usage(key).remaining} generations")
    generator.close()
    print()


def example_error_handling():
    """Bad input and failing services never consume quota."""
    print("=" * 60)
    print("Example 3: Error Handling")
    print("=" * 60)

    generator = KeywordGenerator(QuotaPolicy(), MockKeywordService(fail=True))

    result = generator.generate("k", input_method="caption", input_text="too short", platform="tiktok")
    print(f"Validation: {result.error_message}")

    result = generator.generate(
        "k",
        input_method="caption",
        input_text="A perfectly good caption about coffee",
        platform="tiktok",
    )
    print(f"Upstream: {result.error_message}")
    print(f"Remaining: {result.snapshot.remaining}")
    generator.close()
    print()


def example_referrals():
    """Track a referral code from the URL or the embedding page."""
    print("=" * 60)
    print("Example 4: Referral Codes")
    print("=" * 60)

    tracker = ReferralTracker(InMemoryKeyValueStore())

    tracker.receive_message(ReferralMessage(code="PARTNER7", origin="https://superprofile.bio"))
    resolution = tracker.resolve()
    print(f"From message: {resolution.active_code} (newly applied: {resolution.newly_applied})")

    resolution = tracker.resolve(url_code="LAUNCH24")
    print(f"From URL: {resolution.active_code} (source: {resolution.source.value})")
    print()


def example_analytics():
    """Inspect emitted analytics events."""
    print("=" * 60)
    print("Example 5: Analytics")
    print("=" * 60)

    sink = InMemoryAnalyticsSink()
    generator = KeywordGenerator(QuotaPolicy(), MockKeywordService(), sink=sink)

    for platform in ["tiktok", "linkedin-video", "snapchat"]:
        generator.generate(
            "k",
            input_method="script",
            input_text="Walkthrough of my home studio lighting setup",
            platform=platform,
        )

    by_type = {}
    for event in sink.events:
        by_type[event.event_type.value] = by_type.get(event.event_type.value, 0) + 1

    print("Events by type:")
    for event_type, count in by_type.items():
        print(f"  {event_type}: {count}")
    generator.close()
    print()


def example_with_real_api():
    """Using the real OpenAI API."""
    print("=" * 60)
    print("Example 6: Real API Usage")
    print("=" * 60)

    # Requires OPENAI_API_KEY environment variable
    generator = KeywordGenerator(QuotaPolicy(), OpenAIKeywordService())

    result = generator.generate(
        "k",
        input_method="title",
        input_text="I tried every budget microphone under $50",
        platform="youtube-shorts",
    )
    print(f"Keywords: {result.keywords or result.error_message}")
    generator.close()
    print()


if __name__ == "__main__":
    example_basic()
    example_daily_limit()
    example_error_handling()
    example_referrals()
    example_analytics()

    # Uncomment to test with real API (requires API key)
    # example_with_real_api()

    print("All examples completed!")
