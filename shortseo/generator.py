"""
Keyword generation requests.

Ties the quota policy, the suggestion service and analytics together:

    IDLE -> CHECKING_QUOTA -> REJECTED_ALREADY_LIMITED
                           -> CALLING -> SUCCEEDED -> RECORDED -> LIMIT_JUST_REACHED | IDLE
                                      -> FAILED

Only successful generations count against the quota.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from shortseo.analytics import AnalyticsEvent, AnalyticsSink, EventType, NullAnalyticsSink
from shortseo.config import get_quota_settings, get_service_settings
from shortseo.models import QuotaSnapshot
from shortseo.quota import QuotaExceededError, QuotaPolicy
from shortseo.suggestions import (
    KeywordSuggestionService,
    MalformedResponseError,
    UpstreamServiceError,
)
from shortseo.validation import (
    GenerationInput,
    ValidationError,
    validate_email,
    validate_generation_input,
    validate_input_method,
    validate_keyword,
    validate_platform,
)


logger = logging.getLogger("shortseo.generator")

GENERIC_FAILURE_MESSAGE = "Failed to generate keywords. Please try again in a moment."
MALFORMED_RESULT_MESSAGE = "Failed to generate keywords. The AI returned an unexpected result."


class GenerationState(str, Enum):
    """Where a generation request ended up."""
    IDLE = "idle"
    CHECKING_QUOTA = "checking_quota"
    REJECTED_ALREADY_LIMITED = "rejected_already_limited"
    CALLING = "calling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RECORDED = "recorded"
    LIMIT_JUST_REACHED = "limit_just_reached"


class ErrorKind(str, Enum):
    """User-visible error categories."""
    VALIDATION = "validation"
    QUOTA_EXCEEDED = "quota_exceeded"
    UPSTREAM = "upstream"


@dataclass
class GenerationResult:
    """Outcome of one generation request."""
    success: bool
    state: GenerationState
    snapshot: QuotaSnapshot
    keywords: list[str] = field(default_factory=list)
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    was_already_limited: bool = False
    limit_reached_this_attempt: bool = False

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "keywords": self.keywords,
            "limitReached": self.limit_reached_this_attempt,
            **self.snapshot.to_dict(),
        }
        if self.error_message:
            data["errorMessage"] = self.error_message
        return data


@dataclass
class BonusClaimResult:
    """Outcome of an email bonus claim."""
    ok: bool
    snapshot: QuotaSnapshot
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"ok": self.ok, **self.snapshot.to_dict()}
        if self.error_message:
            data["errorMessage"] = self.error_message
        return data


def extract_keywords(payload: Any, max_keywords: Optional[int] = None) -> list[str]:
    """
    Pull a clean keyword list out of service output.

    Raises:
        MalformedResponseError: If the output has no usable keyword list.
    """
    if not isinstance(payload, dict) or "keywords" not in payload:
        raise MalformedResponseError("Response has no 'keywords' field")
    raw = payload["keywords"]
    if not isinstance(raw, list):
        raise MalformedResponseError("'keywords' is not a list")

    keywords = []
    seen = set()
    for item in raw:
        if not isinstance(item, str):
            continue
        keyword = item.strip()
        if keyword and keyword.lower() not in seen:
            seen.add(keyword.lower())
            keywords.append(keyword)

    if not keywords:
        raise MalformedResponseError("Response contained no keywords")
    return keywords[:max_keywords] if max_keywords else keywords


class KeywordGenerator:
    """
    Runs generation requests against a quota.

    Example:
        ```python
        generator = KeywordGenerator(
            policy=QuotaPolicy(),
            service=OpenAIKeywordService(),
            sink=JSONLAnalyticsSink(Path("events.jsonl")),
        )

        result = generator.generate(
            "203.0.113.7",
            input_method="caption",
            input_text="Three quick tips for sharper phone photos",
            platform="instagram-reels",
        )
        print(result.keywords, result.snapshot.remaining)
        ```
    """

    def __init__(
        self,
        policy: QuotaPolicy,
        service: KeywordSuggestionService,
        sink: Optional[AnalyticsSink] = None,
        timeout_seconds: Optional[float] = None,
        unlimited: Optional[bool] = None,
        max_workers: int = 4,
    ):
        """
        Initialize the generator.

        Args:
            policy: Quota policy (and its store) to enforce.
            service: Keyword suggestion backend.
            sink: Analytics sink. Events are dropped if not provided.
            timeout_seconds: Upper bound on one service call.
            unlimited: Skip quota checks and consumption entirely.
                Defaults to the "unlimited" quota setting.
            max_workers: Threads available for concurrent service calls.
                A call that times out keeps its thread until the SDK's
                own timeout fires, so size this above the expected
                number of concurrently stuck calls.
        """
        settings = get_service_settings()
        self.policy = policy
        self.service = service
        self.sink = sink if sink is not None else NullAnalyticsSink()
        self.timeout_seconds = timeout_seconds or settings["timeout_seconds"]
        self.max_keywords = settings["max_keywords"]
        self.unlimited = (
            unlimited if unlimited is not None else get_quota_settings()["unlimited"]
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="shortseo-suggest",
        )

    # =========================================================================
    # Generation
    # =========================================================================

    def generate(
        self,
        key: str,
        input_method: str,
        input_text: str,
        platform: str,
        referral_code: Optional[str] = None,
        is_mobile: bool = False,
    ) -> GenerationResult:
        """
        Generate keywords for a key, enforcing its quota.

        Args:
            key: Client identifier (IP address or device key).
            input_method: "caption", "script" or "title".
            input_text: The text to find keywords for.
            platform: Target platform.
            referral_code: Active referral code, attached to events.
            is_mobile: Whether the caller is on a mobile device.

        Returns:
            GenerationResult. Never raises for bad input, an exhausted
            quota or a failed service call.
        """
        base_event = dict(
            client_key=key,
            input_method=input_method,
            platform=platform,
            input_text_length=len(input_text) if isinstance(input_text, str) else None,
            referral_code=referral_code,
            is_mobile=is_mobile,
        )

        try:
            request = validate_generation_input(input_method, input_text, platform)
        except ValidationError as exc:
            self._emit(
                EventType.FAILURE,
                was_already_limited=False,
                error_message=str(exc),
                **base_event,
            )
            return GenerationResult(
                success=False,
                state=GenerationState.FAILED,
                snapshot=self.usage(key),
                error_message=str(exc),
                error_kind=ErrorKind.VALIDATION,
            )

        base_event.update(
            input_method=request.input_method.value,
            platform=request.platform.value,
            input_text_length=len(request.input_text),
        )

        if self.unlimited:
            return self._run_unlimited(key, request, base_event)

        with self.policy.key_lock(key):
            # CHECKING_QUOTA
            record, bonus = self.policy.resolve(key)
            if not self.policy.authorize(record):
                snapshot = self.policy.snapshot(record, bonus)
                exc = QuotaExceededError(key, snapshot.max, snapshot.reset_at)
                self._emit(EventType.ALREADY_LIMITED, was_already_limited=True, **base_event)
                return GenerationResult(
                    success=False,
                    state=GenerationState.REJECTED_ALREADY_LIMITED,
                    snapshot=snapshot,
                    error_message=str(exc),
                    error_kind=ErrorKind.QUOTA_EXCEEDED,
                    was_already_limited=True,
                )

            # CALLING
            self._emit(EventType.ATTEMPT, was_already_limited=False, **base_event)
            try:
                keywords = self._call_service(request)
            except UpstreamServiceError as exc:
                logger.error(f"Keyword generation failed for {key!r}: {exc}")
                self._emit(
                    EventType.FAILURE,
                    was_already_limited=False,
                    error_message=str(exc),
                    **base_event,
                )
                return GenerationResult(
                    success=False,
                    state=GenerationState.FAILED,
                    snapshot=self.policy.snapshot(record, bonus),
                    error_message=self._safe_message(exc),
                    error_kind=ErrorKind.UPSTREAM,
                )

            # SUCCEEDED -> RECORDED
            record = self.policy.consume(key, record, bonus)

        limit_reached = record.remaining <= 0
        self._emit(
            EventType.SUCCESS,
            keyword_count=len(keywords),
            was_already_limited=False,
            limit_reached_this_attempt=limit_reached,
            **base_event,
        )
        if limit_reached:
            self._emit(
                EventType.LIMIT_REACHED,
                was_already_limited=False,
                limit_reached_this_attempt=True,
                **base_event,
            )

        return GenerationResult(
            success=True,
            state=GenerationState.LIMIT_JUST_REACHED if limit_reached else GenerationState.RECORDED,
            snapshot=self.policy.snapshot(record, bonus),
            keywords=keywords,
            limit_reached_this_attempt=limit_reached,
        )

    def _run_unlimited(
        self,
        key: str,
        request: GenerationInput,
        base_event: dict,
    ) -> GenerationResult:
        self._emit(EventType.ATTEMPT, was_already_limited=False, **base_event)
        snapshot = self.usage(key)
        try:
            keywords = self._call_service(request)
        except UpstreamServiceError as exc:
            logger.error(f"Keyword generation failed for {key!r}: {exc}")
            self._emit(
                EventType.FAILURE,
                was_already_limited=False,
                error_message=str(exc),
                **base_event,
            )
            return GenerationResult(
                success=False,
                state=GenerationState.FAILED,
                snapshot=snapshot,
                error_message=self._safe_message(exc),
                error_kind=ErrorKind.UPSTREAM,
            )

        self._emit(
            EventType.SUCCESS,
            keyword_count=len(keywords),
            was_already_limited=False,
            limit_reached_this_attempt=False,
            **base_event,
        )
        return GenerationResult(
            success=True,
            state=GenerationState.RECORDED,
            snapshot=snapshot,
            keywords=keywords,
        )

    def _call_service(self, request: GenerationInput) -> list[str]:
        """
        Call the service with a timeout and validate what comes back.

        A timeout only stops waiting: a call that is already running cannot
        be cancelled and holds its worker thread until the client's own
        request timeout ends it.
        """
        future = self._executor.submit(
            self.service.suggest,
            request.input_method,
            request.input_text,
            request.platform,
        )
        try:
            payload = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            # only effective if the call has not started yet
            future.cancel()
            raise UpstreamServiceError(
                f"Keyword service timed out after {self.timeout_seconds:g}s"
            )
        except UpstreamServiceError:
            raise
        except Exception as exc:
            raise UpstreamServiceError(f"{type(exc).__name__}: {exc}") from exc

        return extract_keywords(payload, self.max_keywords)

    @staticmethod
    def _safe_message(exc: UpstreamServiceError) -> str:
        if isinstance(exc, MalformedResponseError):
            return MALFORMED_RESULT_MESSAGE
        return GENERIC_FAILURE_MESSAGE

    # =========================================================================
    # Usage & bonus
    # =========================================================================

    def usage(self, key: str) -> QuotaSnapshot:
        """Current quota for a key; never consumes."""
        return self.policy.usage(key)

    def claim_bonus(
        self,
        key: str,
        email: str,
        referral_code: Optional[str] = None,
        is_mobile: bool = False,
    ) -> BonusClaimResult:
        """
        Trade an email address for bonus generations, once per cycle.

        The contact is forwarded to analytics whether or not the bonus
        was already claimed this cycle.
        """
        try:
            email = validate_email(email)
        except ValidationError as exc:
            return BonusClaimResult(ok=False, snapshot=self.usage(key), error_message=str(exc))

        self._emit(
            EventType.CONTACT_SUBMITTED,
            client_key=key,
            email=email,
            referral_code=referral_code,
            is_mobile=is_mobile,
        )

        with self.policy.key_lock(key):
            record, bonus = self.policy.resolve(key)
            grant = self.policy.grant_bonus(key, record, bonus)

        snapshot = self.policy.snapshot(grant.record, grant.bonus)
        if not grant.granted:
            return BonusClaimResult(
                ok=False,
                snapshot=snapshot,
                error_message=(
                    f"You've already received your {self.policy.bonus_amount} "
                    "bonus generations for this cycle."
                ),
            )
        return BonusClaimResult(ok=True, snapshot=snapshot)

    # =========================================================================
    # Explanations
    # =========================================================================

    def explain(self, keyword: str, platform: str, input_method: str) -> str:
        """
        Explain how to use a keyword. Not metered.

        Raises:
            ValidationError: If any argument is invalid.
            UpstreamServiceError: If the service call fails.
        """
        return self.service.explain(
            validate_keyword(keyword),
            validate_platform(platform),
            validate_input_method(input_method),
        )

    def _emit(self, event_type: EventType, **fields) -> None:
        self.sink.emit(AnalyticsEvent(event_type=event_type, **fields))

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
