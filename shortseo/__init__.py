"""
ShortSEO - SEO keywords for short-form video, with a daily free quota.

Generating keywords:
    from shortseo import KeywordGenerator, QuotaPolicy, OpenAIKeywordService

    generator = KeywordGenerator(QuotaPolicy(), OpenAIKeywordService())
    result = generator.generate(
        "203.0.113.7",
        input_method="title",
        input_text="How I edit a week of reels in one hour",
        platform="instagram-reels",
    )
    print(result.keywords)
    print(result.snapshot.remaining)  # 4

Bonus generations for an email:
    generator.claim_bonus("203.0.113.7", "creator@example.com")

Referral tracking:
    from shortseo import ReferralTracker, InMemoryKeyValueStore

    tracker = ReferralTracker(InMemoryKeyValueStore())
    resolution = tracker.resolve(url_code="ABC123")
    print(resolution.active_code, resolution.newly_applied)  # ABC123 True
"""

from shortseo.analytics import (
    AnalyticsEvent,
    AnalyticsSink,
    BackgroundAnalyticsSink,
    EventType,
    InMemoryAnalyticsSink,
    JSONLAnalyticsSink,
    NullAnalyticsSink,
    SinkDeliveryError,
    WebhookAnalyticsSink,
)
from shortseo.clock import Clock, ManualClock, SystemClock
from shortseo.config import (
    get_quota_settings,
    set_quota_settings,
    get_referral_settings,
    set_referral_settings,
    get_service_settings,
    set_service_settings,
)
from shortseo.generator import (
    BonusClaimResult,
    GenerationResult,
    GenerationState,
    KeywordGenerator,
)
from shortseo.models import BonusGrantRecord, QuotaRecord, QuotaSnapshot, ReferralRecord
from shortseo.quota import BonusGrant, QuotaExceededError, QuotaPolicy
from shortseo.referral import (
    ReferralMessage,
    ReferralResolution,
    ReferralSource,
    ReferralTracker,
)
from shortseo.storage import (
    InMemoryKeyValueStore,
    InMemoryQuotaStore,
    JSONFileKeyValueStore,
    KeyValueQuotaStore,
    PersistenceCorruptionError,
    PrefixedKeyValueStore,
    SQLiteQuotaStore,
)
from shortseo.suggestions import (
    AnthropicKeywordService,
    KeywordSuggestionService,
    MockKeywordService,
    OpenAIKeywordService,
    UpstreamServiceError,
    create_service,
)
from shortseo.validation import InputMethod, Platform, ValidationError


__version__ = "1.0.0"
__all__ = [
    # Generation
    "KeywordGenerator",
    "GenerationResult",
    "GenerationState",
    "BonusClaimResult",
    # Quota
    "QuotaPolicy",
    "QuotaExceededError",
    "BonusGrant",
    "QuotaRecord",
    "BonusGrantRecord",
    "QuotaSnapshot",
    # Storage
    "InMemoryQuotaStore",
    "SQLiteQuotaStore",
    "KeyValueQuotaStore",
    "InMemoryKeyValueStore",
    "JSONFileKeyValueStore",
    "PrefixedKeyValueStore",
    "PersistenceCorruptionError",
    # Referrals
    "ReferralTracker",
    "ReferralMessage",
    "ReferralResolution",
    "ReferralSource",
    "ReferralRecord",
    # Analytics
    "AnalyticsEvent",
    "AnalyticsSink",
    "EventType",
    "NullAnalyticsSink",
    "InMemoryAnalyticsSink",
    "JSONLAnalyticsSink",
    "WebhookAnalyticsSink",
    "BackgroundAnalyticsSink",
    "SinkDeliveryError",
    # Suggestion services
    "KeywordSuggestionService",
    "OpenAIKeywordService",
    "AnthropicKeywordService",
    "MockKeywordService",
    "UpstreamServiceError",
    "create_service",
    # Validation
    "InputMethod",
    "Platform",
    "ValidationError",
    # Clock & config
    "Clock",
    "SystemClock",
    "ManualClock",
    "get_quota_settings",
    "set_quota_settings",
    "get_referral_settings",
    "set_referral_settings",
    "get_service_settings",
    "set_service_settings",
]
