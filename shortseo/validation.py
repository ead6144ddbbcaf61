"""
Input validation for ShortSEO.

Validates generation requests and emails before any quota or API work.
"""

import re
from dataclasses import dataclass
from enum import Enum


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


class InputMethod(str, Enum):
    """Kind of text the user supplied."""
    CAPTION = "caption"
    SCRIPT = "script"
    TITLE = "title"


class Platform(str, Enum):
    """Target short-form video platforms."""
    YOUTUBE_SHORTS = "youtube-shorts"
    INSTAGRAM_REELS = "instagram-reels"
    TIKTOK = "tiktok"
    LINKEDIN_VIDEO = "linkedin-video"

    @property
    def display_name(self) -> str:
        return PLATFORM_NAMES[self]


PLATFORM_NAMES = {
    Platform.YOUTUBE_SHORTS: "YouTube Shorts",
    Platform.INSTAGRAM_REELS: "Instagram Reels",
    Platform.TIKTOK: "TikTok",
    Platform.LINKEDIN_VIDEO: "LinkedIn Video",
}

MIN_TEXT_LENGTH = 10
MAX_TEXT_LENGTH = 2000
MAX_EMAIL_LENGTH = 254
MAX_KEYWORD_LENGTH = 200

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")


@dataclass
class GenerationInput:
    """A validated generation request."""
    input_method: InputMethod
    input_text: str
    platform: Platform


def validate_input_method(value: str) -> InputMethod:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Input method is required.")
    try:
        return InputMethod(value.strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in InputMethod)
        raise ValidationError(f"Unknown input method '{value}'. Use one of: {allowed}.")


def validate_platform(value: str) -> Platform:
    """
    Validate a platform name.

    Accepts "youtube-shorts", "youtube shorts" and "YouTube_Shorts" alike.

    Raises:
        ValidationError: If the platform is not supported.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Platform is required.")
    normalized = re.sub(r"[\s_]+", "-", value.strip().lower())
    try:
        return Platform(normalized)
    except ValueError:
        allowed = ", ".join(p.value for p in Platform)
        raise ValidationError(f"Unknown platform '{value}'. Use one of: {allowed}.")


def validate_text(text: str) -> str:
    """
    Validate caption/script/title text.

    Returns:
        The text with surrounding whitespace removed.

    Raises:
        ValidationError: If text is missing or out of bounds.
    """
    if not isinstance(text, str):
        raise ValidationError(f"Input text must be a string, got {type(text).__name__}.")

    stripped = text.strip()
    if len(stripped) < MIN_TEXT_LENGTH:
        raise ValidationError(
            f"Input text must be at least {MIN_TEXT_LENGTH} characters long."
        )
    if len(stripped) > MAX_TEXT_LENGTH:
        raise ValidationError(
            f"Input text must be at most {MAX_TEXT_LENGTH:,} characters long "
            f"(got {len(stripped):,})."
        )
    return stripped


def validate_generation_input(
    input_method: str,
    input_text: str,
    platform: str,
) -> GenerationInput:
    """Validate all fields of a generation request."""
    return GenerationInput(
        input_method=validate_input_method(input_method),
        input_text=validate_text(input_text),
        platform=validate_platform(platform),
    )


def validate_keyword(keyword: str) -> str:
    if not isinstance(keyword, str) or not keyword.strip():
        raise ValidationError("Keyword is required.")
    keyword = keyword.strip()
    if len(keyword) > MAX_KEYWORD_LENGTH:
        raise ValidationError(f"Keyword must be at most {MAX_KEYWORD_LENGTH} characters long.")
    return keyword


def validate_email(email: str) -> str:
    """
    Validate an email address.

    Returns:
        The trimmed address.

    Raises:
        ValidationError: If the address is not plausible.
    """
    if not isinstance(email, str):
        raise ValidationError("Please enter a valid email address.")
    email = email.strip()
    if len(email) > MAX_EMAIL_LENGTH or not _EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email address.")
    return email
