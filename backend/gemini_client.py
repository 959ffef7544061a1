"""
Retrying JSON client for Gemini, built on google-generativeai.

Every attempt draws a token from the shared RateLimiter. Replies are
fence-stripped, parsed as JSON and checked against an expected shape.
"""
import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, List, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash"

_FENCE_OPEN = re.compile(r"^```[\w-]*")


# =============================================================================
# Errors
# =============================================================================

class LLMError(Exception):
    """Base class for failures of a generation attempt."""


class TransportError(LLMError):
    """Request could not be sent, or the API answered with an error or a malformed envelope."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EmptyResponseError(TransportError):
    """A 200 response with no candidates or no content parts."""


class ResponseParseError(LLMError):
    """Model text was not valid JSON after code fences were removed."""

    def __init__(self, message: str, raw_text: str):
        super().__init__(message)
        self.raw_text = raw_text


class ResponseValidationError(LLMError):
    """Parsed JSON did not carry every key of the expected shape."""

    def __init__(self, message: str, missing_field: Optional[str] = None):
        super().__init__(message)
        self.missing_field = missing_field


# =============================================================================
# Response handling
# =============================================================================

def strip_code_fence(text: str) -> str:
    """Remove a markdown code fence (```json ... ``` or ``` ... ```) around a response."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        if "\n" in cleaned:
            cleaned = cleaned.split("\n", 1)[1]
        else:
            cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
    if cleaned.endswith("```"):
        cleaned = cleaned.rsplit("```", 1)[0]
    return cleaned.strip()


def parse_response(text: str) -> Any:
    try:
        return json.loads(strip_code_fence(text))
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"failed to parse JSON response: {e}", text) from e


def validate_response(response: Any, expected_shape: Any) -> None:
    """Check that every top-level key of ``expected_shape`` is present in ``response``.

    Only presence is checked; a key mapped to null passes. ``expected_shape``
    may be a dict (its keys are required) or a set of key names. Any other
    shape, including None and lists, skips validation.
    """
    if isinstance(expected_shape, dict):
        required = list(expected_shape.keys())
    elif isinstance(expected_shape, (set, frozenset)):
        required = sorted(expected_shape)
    else:
        return

    if not isinstance(response, dict):
        raise ResponseValidationError("response is not a JSON object")

    for key in required:
        if key not in response:
            raise ResponseValidationError(f"missing required field: {key}", missing_field=key)


# =============================================================================
# Client
# =============================================================================

class GeminiClient:
    """Retrying JSON client for Gemini generateContent.

    Every attempt takes a token from the shared rate limiter first. Transport,
    parse and validation failures are retried up to MAX_RETRIES attempts with
    a linear backoff of RETRY_DELAY * attempt between them; the last error is
    raised as is. Task cancellation is never retried.
    """

    MAX_RETRIES = 3
    RETRY_DELAY = 1.0
    REQUEST_TIMEOUT = 30.0
    RATE_LIMIT_PER_MINUTE = 1900
    GENERATION_CONFIG = {
        'temperature': 0.0,  # Deterministic output
        'max_output_tokens': 8192,
        'top_p': 0.95,
        'top_k': 40,
    }

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        *,
        rate_limiter: Optional[RateLimiter] = None,
        debug: bool = False,
        generative_model: Any = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not api_key:
            raise ValueError("Gemini API key is required")
        self.model_name = model
        self.debug = debug
        self.rate_limiter = rate_limiter or RateLimiter(self.RATE_LIMIT_PER_MINUTE)
        self._sleep = sleep

        if generative_model is None:
            genai.configure(api_key=api_key)
            generative_model = genai.GenerativeModel(model, generation_config=self.GENERATION_CONFIG)
        self.model = generative_model

    async def generate_content(self, prompt: str, expected_shape: Any = None) -> Any:
        """Send ``prompt`` and return the parsed JSON reply.

        Raises the last LLMError once every attempt has failed.
        """
        last_error: Optional[LLMError] = None

        for attempt in range(1, self.MAX_RETRIES + 1):
            try:
                await self.rate_limiter.acquire()
                raw_text = await self._request(prompt)
                parsed = parse_response(raw_text)
                validate_response(parsed, expected_shape)
                return parsed
            except LLMError as e:
                last_error = e

            if attempt == self.MAX_RETRIES:
                break

            delay = self.RETRY_DELAY * attempt
            logger.warning(
                "Gemini attempt %d/%d failed: %s; retrying in %.1fs",
                attempt, self.MAX_RETRIES, last_error, delay,
            )
            await self._sleep(delay)

        logger.error("Gemini request failed after %d attempts: %s", self.MAX_RETRIES, last_error)
        raise last_error

    async def generate_responses(self, prompts: List[str], expected_shape: Any = None) -> List[Any]:
        """Run several prompts concurrently; results come back in prompt order.

        Every prompt runs to completion. If any failed, the failure of the
        last failing prompt is raised.
        No analysis calls this yet; it is kept for callers with independent prompts.
        """
        outcomes = await asyncio.gather(
            *(self.generate_content(prompt, expected_shape) for prompt in prompts),
            return_exceptions=True,
        )
        errors = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
        if errors:
            raise errors[-1]
        return list(outcomes)

    async def _request(self, prompt: str) -> str:
        """One API round trip. Returns the first text part of the first candidate."""
        if self.debug:
            logger.info("Gemini request to %s:\n%s", self.model_name, prompt)

        try:
            response = await self.model.generate_content_async(
                prompt,
                # One attempt is one request; the SDK must not retry underneath the limiter
                request_options={"timeout": self.REQUEST_TIMEOUT, "retry": None},
            )
        except google_exceptions.GoogleAPIError as e:
            status_code = getattr(e, "code", None)
            raise TransportError(
                f"API error: {status_code}, {getattr(e, 'message', e)}",
                status_code=status_code if isinstance(status_code, int) else None,
            ) from e

        if self.debug:
            logger.info("Gemini raw response:\n%s", response)

        candidates = response.candidates
        if not candidates:
            raise EmptyResponseError("no candidates in response", status_code=200)

        candidate = candidates[0]
        parts = candidate.content.parts if candidate.content else None
        if not parts:
            raise EmptyResponseError("no parts in candidate content", status_code=200)

        finish_reason = getattr(candidate.finish_reason, "name", candidate.finish_reason)
        if finish_reason not in ("STOP", "FINISH_REASON_UNSPECIFIED", None):
            logger.warning("Gemini finished with reason %s", finish_reason)

        return parts[0].text or ""
