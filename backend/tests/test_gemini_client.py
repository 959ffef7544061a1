import asyncio
import json
import logging
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as google_exceptions

from gemini_client import (
    GeminiClient, TransportError, EmptyResponseError, ResponseParseError, ResponseValidationError,
    strip_code_fence, parse_response, validate_response,
)
from rate_limiter import RateLimiter


def gemini_reply(text, finish_reason="STOP"):
    candidate = SimpleNamespace(
        content=SimpleNamespace(parts=[SimpleNamespace(text=text)]),
        finish_reason=SimpleNamespace(name=finish_reason),
    )
    return SimpleNamespace(candidates=[candidate], text=text)


def no_candidates():
    return SimpleNamespace(candidates=[])


class FakeModel:
    """Stands in for genai.GenerativeModel; answers through a handler(prompt)."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    async def generate_content_async(self, prompt, **kwargs):
        self.calls.append((prompt, kwargs))
        result = self.handler(prompt)
        if asyncio.iscoroutine(result):
            result = await result
        if isinstance(result, Exception):
            raise result
        return result


class Harness:
    """A GeminiClient wired to a scripted model and a recording sleep."""

    def __init__(self, handler, debug=False, sleep=None):
        self.sleeps = []

        async def fake_sleep(seconds):
            self.sleeps.append(seconds)

        self.limiter = RateLimiter(100)
        self.model = FakeModel(handler)
        self.client = GeminiClient(
            "test-key",
            "gemini-test",
            rate_limiter=self.limiter,
            debug=debug,
            generative_model=self.model,
            sleep=sleep or fake_sleep,
        )

    @property
    def requests(self):
        return self.model.calls


def replies(*responses):
    """Answer with each response in turn, repeating the last one."""
    queue = list(responses)

    def handler(prompt):
        return queue.pop(0) if len(queue) > 1 else queue[0]

    return handler


# =============================================================================
# Response handling
# =============================================================================

def test_strip_code_fence_variants():
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fence('```\n[1, 2]\n```') == "[1, 2]"
    assert strip_code_fence('  {"a": 1}  ') == '{"a": 1}'
    assert strip_code_fence('```json{"a": 1}```') == '{"a": 1}'


def test_fenced_and_bare_json_parse_the_same():
    bare = '{"patterns": [{"pattern_type": "billing", "occurrences": 3}], "note": null}'
    assert parse_response(f"```json\n{bare}\n```") == parse_response(bare)
    assert parse_response(f"```\n{bare}\n```") == parse_response(bare)


def test_parse_response_keeps_raw_text():
    with pytest.raises(ResponseParseError) as exc:
        parse_response("not json")
    assert exc.value.raw_text == "not json"


def test_validate_response_checks_presence_only():
    validate_response({"a": 1, "b": None}, {"a": "", "b": ""})

    with pytest.raises(ResponseValidationError) as exc:
        validate_response({"a": 1}, {"a": "", "b": ""})
    assert exc.value.missing_field == "b"
    assert "missing required field: b" in str(exc.value)


def test_validate_response_skips_non_object_shapes():
    validate_response([1, 2], [])
    validate_response("anything", None)

    with pytest.raises(ResponseValidationError):
        validate_response([1, 2], {"a": ""})


def test_empty_api_key_rejected():
    with pytest.raises(ValueError):
        GeminiClient("")


# =============================================================================
# Requests and retries
# =============================================================================

async def test_success_sends_expected_request():
    h = Harness(replies(gemini_reply('```json\n{"trends": []}\n```')))

    result = await h.client.generate_content("PROMPT", {"trends": []})

    assert result == {"trends": []}
    assert len(h.requests) == 1
    prompt, kwargs = h.requests[0]
    assert prompt == "PROMPT"
    assert kwargs["request_options"]["timeout"] == GeminiClient.REQUEST_TIMEOUT
    assert kwargs["request_options"]["retry"] is None
    assert h.sleeps == []
    assert h.limiter.in_window() == 1


def test_generation_config_is_deterministic():
    assert GeminiClient.GENERATION_CONFIG["temperature"] == 0.0
    assert GeminiClient.GENERATION_CONFIG["max_output_tokens"] == 8192


async def test_retries_then_succeeds():
    h = Harness(replies(
        google_exceptions.InternalServerError("boom"),
        google_exceptions.ServiceUnavailable("busy"),
        gemini_reply('{"ok": true}'),
    ))

    assert await h.client.generate_content("p") == {"ok": True}
    assert len(h.requests) == 3
    assert h.sleeps == [1.0, 2.0]


async def test_exhaustion_raises_last_error():
    h = Harness(replies(google_exceptions.InternalServerError("server down")))

    with pytest.raises(TransportError) as exc:
        await h.client.generate_content("p")

    assert exc.value.status_code == 500
    assert "server down" in str(exc.value)
    assert isinstance(exc.value.__cause__, google_exceptions.InternalServerError)
    assert len(h.requests) == GeminiClient.MAX_RETRIES
    assert h.sleeps == [1.0, 2.0]
    # Every attempt draws from the shared limiter
    assert h.limiter.in_window() == 3


async def test_unavailable_service_uses_three_requests_and_three_tokens():
    h = Harness(replies(google_exceptions.ServiceUnavailable("connection refused")))

    with pytest.raises(TransportError) as exc:
        await h.client.generate_content("p")

    assert exc.value.status_code == 503
    assert len(h.requests) == 3
    assert all(kwargs["request_options"]["retry"] is None for _, kwargs in h.requests)
    assert h.limiter.in_window() == 3


async def test_parse_failure_is_retried():
    h = Harness(replies(gemini_reply("I cannot answer that")))

    with pytest.raises(ResponseParseError):
        await h.client.generate_content("p")
    assert len(h.requests) == 3


async def test_validation_failure_is_retried():
    h = Harness(replies(gemini_reply('{"a": 1}'), gemini_reply('{"a": 1, "b": null}')))

    result = await h.client.generate_content("p", {"a": 0, "b": 0})

    assert result == {"a": 1, "b": None}
    assert len(h.requests) == 2


async def test_missing_field_after_all_attempts():
    h = Harness(replies(gemini_reply('{"a": 1}')))

    with pytest.raises(ResponseValidationError) as exc:
        await h.client.generate_content("p", {"a": 0, "b": 0})
    assert exc.value.missing_field == "b"


async def test_empty_candidates():
    h = Harness(replies(no_candidates()))

    with pytest.raises(EmptyResponseError) as exc:
        await h.client.generate_content("p")
    assert isinstance(exc.value, TransportError)
    assert len(h.requests) == 3


async def test_candidate_without_parts_is_empty():
    candidate = SimpleNamespace(content=SimpleNamespace(parts=[]), finish_reason=SimpleNamespace(name="SAFETY"))
    h = Harness(replies(SimpleNamespace(candidates=[candidate])))

    with pytest.raises(EmptyResponseError):
        await h.client.generate_content("p")


async def test_unusual_finish_reason_still_returns_text(caplog):
    h = Harness(replies(gemini_reply('{"a": 1}', finish_reason="MAX_TOKENS")))

    with caplog.at_level(logging.WARNING, logger="gemini_client"):
        assert await h.client.generate_content("p") == {"a": 1}
    assert "MAX_TOKENS" in caplog.text


async def test_generate_responses_keeps_prompt_order():
    h = Harness(lambda prompt: gemini_reply(json.dumps({"echo": prompt})))

    results = await h.client.generate_responses(["one", "two", "three"])
    assert [r["echo"] for r in results] == ["one", "two", "three"]


async def test_generate_responses_raises_last_failure():
    def handler(prompt):
        if prompt == "bad-1":
            return google_exceptions.BadRequest("first")
        if prompt == "bad-2":
            return google_exceptions.Unauthorized("second")
        return gemini_reply("{}")

    h = Harness(handler)

    with pytest.raises(TransportError) as exc:
        await h.client.generate_responses(["bad-1", "ok", "bad-2"])
    assert exc.value.status_code == 401


# =============================================================================
# Cancellation
# =============================================================================

async def test_cancel_during_request_is_not_retried():
    started = asyncio.Event()

    async def hang(prompt):
        started.set()
        await asyncio.Event().wait()

    h = Harness(hang)
    task = asyncio.create_task(h.client.generate_content("p"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(h.requests) == 1
    assert h.sleeps == []


async def test_cancel_during_backoff():
    backoff_started = asyncio.Event()
    sleeps = []

    async def blocking_sleep(seconds):
        sleeps.append(seconds)
        backoff_started.set()
        await asyncio.Event().wait()

    h = Harness(replies(google_exceptions.InternalServerError("boom")), sleep=blocking_sleep)
    task = asyncio.create_task(h.client.generate_content("p"))
    await backoff_started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(h.requests) == 1
    assert sleeps == [1.0]


async def test_deadline_surfaces_as_timeout():
    async def hang(prompt):
        await asyncio.Event().wait()

    h = Harness(hang)

    with pytest.raises(TimeoutError):
        async with asyncio.timeout(0.05):
            await h.client.generate_content("p")
    assert len(h.requests) == 1


# =============================================================================
# Logging and construction
# =============================================================================

async def test_bodies_not_logged_by_default(caplog):
    h = Harness(replies(gemini_reply('{"secret": "RAW-RESPONSE"}')))

    with caplog.at_level(logging.DEBUG, logger="gemini_client"):
        await h.client.generate_content("SECRET-PROMPT")

    assert "SECRET-PROMPT" not in caplog.text
    assert "RAW-RESPONSE" not in caplog.text


async def test_debug_logs_bodies(caplog):
    h = Harness(replies(gemini_reply('{"secret": "RAW-RESPONSE"}')), debug=True)

    with caplog.at_level(logging.INFO, logger="gemini_client"):
        await h.client.generate_content("SECRET-PROMPT")

    assert "SECRET-PROMPT" in caplog.text
    assert "RAW-RESPONSE" in caplog.text


def test_default_model_is_built_from_sdk(monkeypatch):
    configured = {}
    built = {}

    def fake_configure(api_key):
        configured["api_key"] = api_key

    def fake_model(name, generation_config):
        built.update(name=name, generation_config=generation_config)
        return "model"

    monkeypatch.setattr("gemini_client.genai.configure", fake_configure)
    monkeypatch.setattr("gemini_client.genai.GenerativeModel", fake_model)

    client = GeminiClient("key-123", "gemini-x")

    assert configured == {"api_key": "key-123"}
    assert built["name"] == "gemini-x"
    assert built["generation_config"] is GeminiClient.GENERATION_CONFIG
    assert client.model == "model"
    assert client.rate_limiter.max_requests == GeminiClient.RATE_LIMIT_PER_MINUTE
