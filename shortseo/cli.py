"""
Command-line interface for ShortSEO.

The CLI behaves like a single browser: quota and referral state live in
one local JSON file, so it uses the client-side store.

Provides commands for:
- Checking remaining generations
- Generating keywords
- Claiming the email bonus
- Applying referral codes
- Exporting analytics events to CSV
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from shortseo.analytics import AnalyticsEvent, EventType, JSONLAnalyticsSink, export_csv
from shortseo.generator import KeywordGenerator
from shortseo.log import setup_logging
from shortseo.models import QuotaSnapshot
from shortseo.quota import QuotaPolicy
from shortseo.referral import ReferralMessage, ReferralTracker
from shortseo.storage import JSONFileKeyValueStore, KeyValueQuotaStore
from shortseo.suggestions import create_service


DEVICE_KEY = "device"
DEFAULT_HOME = Path.home() / ".shortseo"


def _state(args) -> JSONFileKeyValueStore:
    return JSONFileKeyValueStore(Path(args.state))


def _sink(args) -> JSONLAnalyticsSink:
    return JSONLAnalyticsSink(Path(args.events))


def _build_generator(args, kv: JSONFileKeyValueStore) -> KeywordGenerator:
    provider = "mock" if getattr(args, "mock", False) else None
    return KeywordGenerator(
        policy=QuotaPolicy(store=KeyValueQuotaStore(kv)),
        service=create_service(provider),
        sink=_sink(args),
        unlimited=True if getattr(args, "unlimited", False) else None,
    )


def _print_snapshot(snapshot: QuotaSnapshot) -> None:
    print(f"Remaining: {snapshot.remaining}/{snapshot.max}")
    print(f"Resets at: {snapshot.reset_at.strftime('%Y-%m-%d %H:%M UTC')}")
    if snapshot.bonus_claimed:
        print("Bonus: claimed this cycle")


def cmd_usage(args) -> int:
    """Show the remaining quota."""
    kv = _state(args)
    policy = QuotaPolicy(store=KeyValueQuotaStore(kv))
    _print_snapshot(policy.usage(DEVICE_KEY))
    return 0


def cmd_generate(args) -> int:
    """Generate keywords for a piece of text."""
    kv = _state(args)
    tracker = ReferralTracker(kv)
    resolution = tracker.resolve(url_code=args.referral)
    sink = _sink(args)
    if resolution.newly_applied:
        sink.emit(AnalyticsEvent(
            event_type=EventType.REFERRAL_APPLIED,
            client_key=DEVICE_KEY,
            referral_code=resolution.active_code,
        ))

    generator = _build_generator(args, kv)
    try:
        result = generator.generate(
            DEVICE_KEY,
            input_method=args.method,
            input_text=args.text,
            platform=args.platform,
            referral_code=resolution.active_code,
        )
    finally:
        generator.close()

    print("\n" + "=" * 60)
    print("SHORTSEO KEYWORDS")
    print("=" * 60)
    if result.success:
        for keyword in result.keywords:
            print(f"  - {keyword}")
    else:
        print(f"\nError: {result.error_message}")
    print("-" * 60)
    _print_snapshot(result.snapshot)
    if result.limit_reached_this_attempt:
        print("\nDaily limit reached. Run 'shortseo claim-bonus EMAIL' for more generations.")
    print("=" * 60)
    return 0 if result.success else 1


def cmd_claim_bonus(args) -> int:
    """Trade an email address for bonus generations."""
    kv = _state(args)
    tracker = ReferralTracker(kv)
    generator = _build_generator(args, kv)
    try:
        result = generator.claim_bonus(
            DEVICE_KEY,
            args.email,
            referral_code=tracker.active_code(),
        )
    finally:
        generator.close()

    if result.ok:
        print("Bonus generations added!")
    else:
        print(f"Bonus not applied: {result.error_message}")
    _print_snapshot(result.snapshot)
    return 0 if result.ok else 1


def cmd_referral(args) -> int:
    """Apply a referral code from a URL parameter or a parent-page message."""
    kv = _state(args)
    tracker = ReferralTracker(kv)

    if args.message_code:
        accepted = tracker.receive_message(
            ReferralMessage(code=args.message_code, origin=args.origin or "")
        )
        if not accepted:
            print(f"Message from origin {args.origin!r} was rejected.")

    resolution = tracker.resolve(url_code=args.url_code)
    if resolution.newly_applied:
        _sink(args).emit(AnalyticsEvent(
            event_type=EventType.REFERRAL_APPLIED,
            client_key=DEVICE_KEY,
            referral_code=resolution.active_code,
        ))

    if resolution.active_code:
        source = resolution.source.value if resolution.source else "unknown"
        print(f"Active referral code: {resolution.active_code} (from {source})")
    else:
        print("No active referral code.")
    return 0


def cmd_export_events(args) -> int:
    """Export the analytics log to CSV."""
    events = list(_sink(args).read_all())
    count = export_csv(events, Path(args.csv))
    print(f"Exported {count} events to {args.csv}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ShortSEO: keywords for short-form video",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate keywords for a caption
  shortseo generate "Three quick tips for sharper phone photos" --method caption --platform tiktok

  # Check how many generations are left today
  shortseo usage

  # Unlock bonus generations
  shortseo claim-bonus you@example.com

  # Apply a referral code
  shortseo referral --url-code ABC123
""",
    )
    parser.add_argument("--state", default=str(DEFAULT_HOME / "state.json"),
                        help="Path to the local state file")
    parser.add_argument("--events", default=str(DEFAULT_HOME / "events.jsonl"),
                        help="Path to the analytics JSONL file")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Show debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("usage", help="Show remaining generations")

    gen_parser = subparsers.add_parser("generate", help="Generate keywords")
    gen_parser.add_argument("text", help="Caption, script or title text")
    gen_parser.add_argument("--method", "-m", default="caption",
                            choices=["caption", "script", "title"],
                            help="What kind of text this is")
    gen_parser.add_argument("--platform", "-p", default="youtube-shorts",
                            choices=["youtube-shorts", "instagram-reels", "tiktok", "linkedin-video"],
                            help="Target platform")
    gen_parser.add_argument("--referral", help="Referral code, as if passed in the URL")
    gen_parser.add_argument("--mock", action="store_true",
                            help="Use the offline mock service")
    gen_parser.add_argument("--unlimited", action="store_true",
                            help="Skip the daily quota for this run")

    bonus_parser = subparsers.add_parser("claim-bonus", help="Claim bonus generations")
    bonus_parser.add_argument("email", help="Email address")

    ref_parser = subparsers.add_parser("referral", help="Apply or show the referral code")
    ref_parser.add_argument("--url-code", help="Code from the referralCode URL parameter")
    ref_parser.add_argument("--message-code", help="Code delivered by the parent page")
    ref_parser.add_argument("--origin", help="Origin of the parent-page message")

    exp_parser = subparsers.add_parser("export-events", help="Export analytics to CSV")
    exp_parser.add_argument("--csv", "-o", required=True, help="Output CSV path")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    commands = {
        "usage": cmd_usage,
        "generate": cmd_generate,
        "claim-bonus": cmd_claim_bonus,
        "referral": cmd_referral,
        "export-events": cmd_export_events,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
