"""Global configuration for ShortSEO."""

from __future__ import annotations

import copy
import json
import os
from typing import Dict, Any, Iterable


DEFAULT_QUOTA: Dict[str, Any] = {
    "base_max": 5,
    "bonus_amount": 5,
    "cycle_hours": 24,
    "unlimited": False,
}

DEFAULT_REFERRAL: Dict[str, Any] = {
    "ttl_days": 30,
    "record_slot": "referralCodeData",
    "scratch_slot": "referralCode",
    "allowed_origins": ["https://superprofile.bio"],
    "reemit_url_code": True,
}

DEFAULT_SERVICE: Dict[str, Any] = {
    "provider": "openai",
    "openai_model": "gpt-4o-mini",
    "anthropic_model": "claude-3-5-haiku-latest",
    "timeout_seconds": 20.0,
    "max_keywords": 30,
}

_quota: Dict[str, Any] = copy.deepcopy(DEFAULT_QUOTA)
_referral: Dict[str, Any] = copy.deepcopy(DEFAULT_REFERRAL)
_service: Dict[str, Any] = copy.deepcopy(DEFAULT_SERVICE)


def _parse_json_env(var_name: str) -> Dict[str, Any] | None:
    value = os.getenv(var_name)
    if not value:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _merged(current: Dict[str, Any], var_name: str) -> Dict[str, Any]:
    parsed = _parse_json_env(var_name)
    if parsed:
        return {**current, **{k: v for k, v in parsed.items() if k in current}}
    return dict(current)


def get_quota_settings() -> Dict[str, Any]:
    """Return quota configuration, with optional env override."""
    return _merged(_quota, "SHORTSEO_QUOTA_JSON")


def set_quota_settings(
    *,
    base_max: int | None = None,
    bonus_amount: int | None = None,
    cycle_hours: float | None = None,
    unlimited: bool | None = None,
) -> None:
    """Set quota numbers at runtime."""
    global _quota
    updated = copy.deepcopy(_quota)
    if base_max is not None:
        if base_max < 1:
            raise ValueError("base_max must be at least 1")
        updated["base_max"] = base_max
    if bonus_amount is not None:
        if bonus_amount < 0:
            raise ValueError("bonus_amount cannot be negative")
        updated["bonus_amount"] = bonus_amount
    if cycle_hours is not None:
        if cycle_hours <= 0:
            raise ValueError("cycle_hours must be positive")
        updated["cycle_hours"] = cycle_hours
    if unlimited is not None:
        updated["unlimited"] = bool(unlimited)
    _quota = updated


def get_referral_settings() -> Dict[str, Any]:
    """Return referral tracking configuration, with optional env override."""
    return _merged(_referral, "SHORTSEO_REFERRAL_JSON")


def set_referral_settings(
    *,
    ttl_days: int | None = None,
    allowed_origins: Iterable[str] | None = None,
    reemit_url_code: bool | None = None,
) -> None:
    """Set referral tracking options at runtime."""
    global _referral
    updated = copy.deepcopy(_referral)
    if ttl_days is not None:
        if ttl_days <= 0:
            raise ValueError("ttl_days must be positive")
        updated["ttl_days"] = ttl_days
    if allowed_origins is not None:
        updated["allowed_origins"] = list(allowed_origins)
    if reemit_url_code is not None:
        updated["reemit_url_code"] = reemit_url_code
    _referral = updated


def get_service_settings() -> Dict[str, Any]:
    """Return keyword service configuration, with optional env override."""
    settings = _merged(_service, "SHORTSEO_SERVICE_JSON")
    provider = os.getenv("SHORTSEO_PROVIDER")
    if provider:
        settings["provider"] = provider
    return settings


def set_service_settings(
    *,
    provider: str | None = None,
    openai_model: str | None = None,
    anthropic_model: str | None = None,
    timeout_seconds: float | None = None,
) -> None:
    """Set keyword service defaults at runtime."""
    global _service
    updated = copy.deepcopy(_service)
    if provider:
        if provider not in ("openai", "anthropic", "mock"):
            raise ValueError(f"Unknown provider: {provider}")
        updated["provider"] = provider
    if openai_model:
        updated["openai_model"] = openai_model
    if anthropic_model:
        updated["anthropic_model"] = anthropic_model
    if timeout_seconds is not None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        updated["timeout_seconds"] = timeout_seconds
    _service = updated


def reset_settings() -> None:
    """Restore every section to its defaults."""
    global _quota, _referral, _service
    _quota = copy.deepcopy(DEFAULT_QUOTA)
    _referral = copy.deepcopy(DEFAULT_REFERRAL)
    _service = copy.deepcopy(DEFAULT_SERVICE)
