"""
Keyword suggestion services.

A service takes a validated request and returns the parsed model output,
``{"keywords": [...]}`` when things go well. Whether that output is
usable is decided by the caller; services only raise when the call
itself failed.
"""

import json
import os
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from shortseo.config import get_service_settings
from shortseo.validation import InputMethod, Platform


class UpstreamServiceError(Exception):
    """Raised when the suggestion backend fails or returns garbage."""
    pass


class MalformedResponseError(UpstreamServiceError):
    """The backend answered, but not with something usable."""
    pass


SUGGEST_PROMPT = """You are an expert in generating SEO-relevant keywords for short-form videos.

Based on the following input and platform, suggest a list of keywords that will help the video rank higher and get more views and likes.

Input Method: {input_method}
Input Text: {input_text}
Platform: {platform}

Make sure that the keywords are relevant for the specified platform.

Your output should be a JSON object with a "keywords" field containing an array of keywords."""

EXPLAIN_PROMPT = """You are an expert in SEO and social media marketing.

Given the keyword: "{keyword}", the platform: "{platform}", and the input method: "{input_method}", explain how to apply the keyword effectively. Give specific examples of how to work the keyword into the {input_method} for {platform} to maximize its SEO impact and audience engagement.

Keep it to a few short paragraphs."""

SYSTEM_PROMPT = "You are a keyword research engine. Always return valid and clean JSON, no prose."


class KeywordSuggestionService(ABC):
    """Abstract base class for keyword suggestion backends."""

    @abstractmethod
    def suggest(
        self,
        input_method: InputMethod,
        input_text: str,
        platform: Platform,
    ) -> Any:
        """Return the parsed model output for a suggestion request."""
        pass

    @abstractmethod
    def explain(
        self,
        keyword: str,
        platform: Platform,
        input_method: InputMethod,
    ) -> str:
        """Explain how to apply a keyword on a platform."""
        pass


def _parse_json_object(text: Optional[str]) -> Any:
    """Parse model text as JSON, tolerating a fenced code block."""
    if not text:
        raise MalformedResponseError("Model returned an empty response")
    cleaned = text.strip()
    fenced = re.match(r"^```(?:json)?\s*(.*?)\s*```$", cleaned, re.DOTALL)
    if fenced:
        cleaned = fenced.group(1)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON from model: {e}: {cleaned[:200]}")


class MockKeywordService(KeywordSuggestionService):
    """
    Mock service for testing and offline use.

    Builds keywords from the words of the input text.
    """

    def __init__(
        self,
        fail: bool = False,
        payload: Any = None,
    ):
        """
        Args:
            fail: Raise UpstreamServiceError on every call.
            payload: Return this exact object instead of generated keywords.
        """
        self.fail = fail
        self.payload = payload
        self.calls: list[dict] = []

    def suggest(
        self,
        input_method: InputMethod,
        input_text: str,
        platform: Platform,
    ) -> Any:
        self.calls.append({
            "input_method": input_method,
            "input_text": input_text,
            "platform": platform,
        })
        if self.fail:
            raise UpstreamServiceError("Simulated failure")
        if self.payload is not None:
            return self.payload

        words = re.findall(r"[a-z0-9']{4,}", input_text.lower())
        keywords = list(dict.fromkeys(words))[:8]
        tag = platform.display_name.lower()
        return {"keywords": [f"{word} {tag}" for word in keywords] + [tag]}

    def explain(
        self,
        keyword: str,
        platform: Platform,
        input_method: InputMethod,
    ) -> str:
        if self.fail:
            raise UpstreamServiceError("Simulated failure")
        return (
            f"Use '{keyword}' early in your {input_method.value} "
            f"so {platform.display_name} can match it to searches."
        )


class OpenAIKeywordService(KeywordSuggestionService):
    """
    OpenAI API backend.

    Requires OPENAI_API_KEY environment variable.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        client=None,
    ):
        settings = get_service_settings()
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or settings["openai_model"]
        self.timeout_seconds = timeout_seconds or settings["timeout_seconds"]
        self._client = client

    @property
    def client(self):
        if self._client is None:
            try:
                from openai import OpenAI
                self._client = OpenAI(api_key=self.api_key, timeout=self.timeout_seconds)
            except ImportError:
                raise ImportError("openai package required. Install with: pip install openai")
        return self._client

    def _complete(self, messages: list[dict], json_mode: bool) -> str:
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                temperature=0.7,
                messages=messages,
                **kwargs,
            )
        except Exception as e:
            raise UpstreamServiceError(f"OpenAI API request failed: {e}") from e

        if not response.choices:
            raise UpstreamServiceError("OpenAI returned no choices")
        return response.choices[0].message.content or ""

    def suggest(
        self,
        input_method: InputMethod,
        input_text: str,
        platform: Platform,
    ) -> Any:
        prompt = SUGGEST_PROMPT.format(
            input_method=input_method.value,
            input_text=input_text,
            platform=platform.display_name,
        )
        content = self._complete(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            json_mode=True,
        )
        return _parse_json_object(content)

    def explain(
        self,
        keyword: str,
        platform: Platform,
        input_method: InputMethod,
    ) -> str:
        prompt = EXPLAIN_PROMPT.format(
            keyword=keyword,
            platform=platform.display_name,
            input_method=input_method.value,
        )
        text = self._complete([{"role": "user", "content": prompt}], json_mode=False)
        if not text.strip():
            raise UpstreamServiceError("OpenAI returned an empty explanation")
        return text.strip()


class AnthropicKeywordService(KeywordSuggestionService):
    """
    Anthropic API backend.

    Requires ANTHROPIC_API_KEY environment variable.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_tokens: int = 1024,
        client=None,
    ):
        settings = get_service_settings()
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.model = model or settings["anthropic_model"]
        self.timeout_seconds = timeout_seconds or settings["timeout_seconds"]
        self.max_tokens = max_tokens
        self._client = client

    @property
    def client(self):
        if self._client is None:
            try:
                from anthropic import Anthropic
                self._client = Anthropic(api_key=self.api_key, timeout=self.timeout_seconds)
            except ImportError:
                raise ImportError("anthropic package required. Install with: pip install anthropic")
        return self._client

    def _complete(self, prompt: str, system: str = "") -> str:
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            raise UpstreamServiceError(f"Anthropic API request failed: {e}") from e

        return response.content[0].text if response.content else ""

    def suggest(
        self,
        input_method: InputMethod,
        input_text: str,
        platform: Platform,
    ) -> Any:
        prompt = SUGGEST_PROMPT.format(
            input_method=input_method.value,
            input_text=input_text,
            platform=platform.display_name,
        )
        return _parse_json_object(self._complete(prompt, system=SYSTEM_PROMPT))

    def explain(
        self,
        keyword: str,
        platform: Platform,
        input_method: InputMethod,
    ) -> str:
        prompt = EXPLAIN_PROMPT.format(
            keyword=keyword,
            platform=platform.display_name,
            input_method=input_method.value,
        )
        text = self._complete(prompt)
        if not text.strip():
            raise UpstreamServiceError("Anthropic returned an empty explanation")
        return text.strip()


def create_service(provider: Optional[str] = None) -> KeywordSuggestionService:
    """Build the configured suggestion service ("openai", "anthropic" or "mock")."""
    provider = provider or get_service_settings()["provider"]
    if provider == "openai":
        return OpenAIKeywordService()
    if provider == "anthropic":
        return AnthropicKeywordService()
    if provider == "mock":
        return MockKeywordService()
    raise ValueError(f"Unknown provider: {provider}")
