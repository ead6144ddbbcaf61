"""FastAPI server for ShortSEO."""

import logging
import os
from pathlib import Path
from typing import Optional, Dict, Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shortseo import __version__
from shortseo.analytics import (
    AnalyticsEvent,
    AnalyticsSink,
    BackgroundAnalyticsSink,
    EventType,
    JSONLAnalyticsSink,
    NullAnalyticsSink,
    WebhookAnalyticsSink,
)
from shortseo.generator import ErrorKind, KeywordGenerator
from shortseo.log import setup_logging
from shortseo.quota import QuotaPolicy
from shortseo.referral import ReferralMessage, ReferralTracker
from shortseo.storage import (
    InMemoryKeyValueStore,
    InMemoryQuotaStore,
    KeyValueStore,
    PrefixedKeyValueStore,
    SQLiteQuotaStore,
)
from shortseo.suggestions import UpstreamServiceError, create_service
from shortseo.validation import ValidationError


load_dotenv()
setup_logging()
logger = logging.getLogger("shortseo.api")

GENERIC_ERROR_MESSAGE = "Something went wrong on our side. Please try again."
INVALID_REQUEST_MESSAGE = "The request could not be read. Please check the fields and try again."

STATUS_BY_ERROR = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.QUOTA_EXCEEDED: 429,
    ErrorKind.UPSTREAM: 502,
}


def _build_quota_store():
    db_path = os.getenv("SHORTSEO_DB_PATH")
    if db_path:
        return SQLiteQuotaStore(db_path=db_path)
    # Process-local: restarts and extra instances reset or split quotas.
    return InMemoryQuotaStore()


def _build_sink() -> AnalyticsSink:
    webhook_url = os.getenv("SHORTSEO_ANALYTICS_WEBHOOK")
    events_path = os.getenv("SHORTSEO_EVENTS_PATH")
    if webhook_url:
        return BackgroundAnalyticsSink(WebhookAnalyticsSink(webhook_url))
    if events_path:
        return BackgroundAnalyticsSink(JSONLAnalyticsSink(Path(events_path)))
    return NullAnalyticsSink()


_sink = _build_sink()
_generator = KeywordGenerator(
    policy=QuotaPolicy(store=_build_quota_store()),
    service=create_service(),
    sink=_sink,
)
_referral_kv: KeyValueStore = InMemoryKeyValueStore()


def get_generator() -> KeywordGenerator:
    return _generator


def get_referral_kv() -> KeyValueStore:
    return _referral_kv


def client_key(request: Request) -> str:
    return get_remote_address(request)


def _tracker(kv: KeyValueStore, key: str) -> ReferralTracker:
    return ReferralTracker(PrefixedKeyValueStore(kv, key))


limiter = Limiter(key_func=get_remote_address)

app = FastAPI(title="ShortSEO API", version=__version__)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

allowed_origins = [
    origin.strip()
    for origin in os.getenv("FRONTEND_URLS", "http://localhost:3000").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(status_code=500, content={"errorMessage": GENERIC_ERROR_MESSAGE})


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Rejected malformed request on {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"errorMessage": INVALID_REQUEST_MESSAGE})


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class KeywordRequest(ApiModel):
    # untyped: the generator validates so rejected input is still logged
    input_method: Any = Field("", alias="inputMethod")
    input_text: Any = Field("", alias="inputText")
    platform: Any = ""
    is_mobile: bool = Field(False, alias="isMobile")


class BonusRequest(ApiModel):
    email: str = ""
    is_mobile: bool = Field(False, alias="isMobile")


class ReferralRequest(ApiModel):
    referral_code: Optional[str] = Field(None, alias="referralCode")
    is_mobile: bool = Field(False, alias="isMobile")


class ReferralMessageRequest(ApiModel):
    referral_code: Optional[str] = Field(None, alias="referralCode")
    is_mobile: bool = Field(False, alias="isMobile")


class ExplainRequest(ApiModel):
    keyword: Any = None
    platform: Any = None
    input_method: Any = Field(None, alias="inputMethod")


def _apply_referral(
    generator: KeywordGenerator,
    tracker: ReferralTracker,
    key: str,
    url_code: Optional[str],
    is_mobile: bool,
) -> Dict[str, Any]:
    resolution = tracker.resolve(url_code=url_code)
    if resolution.newly_applied:
        generator.sink.emit(AnalyticsEvent(
            event_type=EventType.REFERRAL_APPLIED,
            client_key=key,
            referral_code=resolution.active_code,
            is_mobile=is_mobile,
        ))
    return resolution.to_dict()


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/usage")
def usage(
    request: Request,
    referralCode: Optional[str] = None,
    generator: KeywordGenerator = Depends(get_generator),
    kv: KeyValueStore = Depends(get_referral_kv),
) -> Dict[str, Any]:
    key = client_key(request)
    if referralCode:
        _apply_referral(generator, _tracker(kv, key), key, referralCode, is_mobile=False)
    return generator.usage(key).to_dict()


@app.post("/keywords")
def generate_keywords(
    req: KeywordRequest,
    request: Request,
    generator: KeywordGenerator = Depends(get_generator),
    kv: KeyValueStore = Depends(get_referral_kv),
) -> JSONResponse:
    key = client_key(request)
    result = generator.generate(
        key,
        input_method=req.input_method,
        input_text=req.input_text,
        platform=req.platform,
        referral_code=_tracker(kv, key).active_code(),
        is_mobile=req.is_mobile,
    )
    status = 200 if result.success else STATUS_BY_ERROR.get(result.error_kind, 500)
    return JSONResponse(status_code=status, content=result.to_dict())


@app.post("/bonus")
def claim_bonus(
    req: BonusRequest,
    request: Request,
    generator: KeywordGenerator = Depends(get_generator),
    kv: KeyValueStore = Depends(get_referral_kv),
) -> Dict[str, Any]:
    key = client_key(request)
    result = generator.claim_bonus(
        key,
        req.email,
        referral_code=_tracker(kv, key).active_code(),
        is_mobile=req.is_mobile,
    )
    return result.to_dict()


@app.post("/referrals")
def capture_referral(
    req: ReferralRequest,
    request: Request,
    generator: KeywordGenerator = Depends(get_generator),
    kv: KeyValueStore = Depends(get_referral_kv),
) -> Dict[str, Any]:
    key = client_key(request)
    return _apply_referral(generator, _tracker(kv, key), key, req.referral_code, req.is_mobile)


@app.post("/referrals/message")
def referral_message(
    req: ReferralMessageRequest,
    request: Request,
    generator: KeywordGenerator = Depends(get_generator),
    kv: KeyValueStore = Depends(get_referral_kv),
) -> Dict[str, Any]:
    key = client_key(request)
    tracker = _tracker(kv, key)
    # set by the browser, so the page cannot claim another origin
    origin = request.headers.get("origin", "")
    accepted = tracker.receive_message(ReferralMessage(code=req.referral_code, origin=origin))
    data = _apply_referral(generator, tracker, key, None, req.is_mobile)
    data["accepted"] = accepted
    return data


@app.post("/keywords/explain")
@limiter.limit("20/hour")
def explain_keyword(
    request: Request,
    req: ExplainRequest,
    generator: KeywordGenerator = Depends(get_generator),
) -> JSONResponse:
    try:
        explanation = generator.explain(req.keyword, req.platform, req.input_method)
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"errorMessage": str(exc)})
    except UpstreamServiceError as exc:
        logger.error(f"Keyword explanation failed: {exc}")
        return JSONResponse(
            status_code=502,
            content={"errorMessage": "Could not explain this keyword right now. Please try again."},
        )
    return JSONResponse(status_code=200, content={"explanation": explanation})
