"""Unit tests for the model API client and error classification."""

import json
from typing import Any, Dict, List

import httpx
import pytest
from pydantic import BaseModel, ValidationError

from ace.extraction.client import CHAT_EMPTY_MESSAGE, CHAT_FAILURE_MESSAGE, ModelClient
from ace.extraction.errors import (
    EmptyOrMalformedResponse,
    ErrorHandler,
    ErrorKind,
    ExtractionError,
    RateLimited,
    SafetyRejected,
    SchemaViolation,
    SourceUnavailable,
)

from tests.helpers import make_metadata


def candidate(text: str, **extra: Any) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}]}, **extra}]}


def make_client(handler, seen: List[httpx.Request] = None) -> ModelClient:
    def _handle(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(_handle))
    return ModelClient(api_key="test-key", model_id="test-model", base_url="https://model.test/v1beta", http_client=http)


class TestGenerate:
    """Tests for single-turn extraction requests."""

    @pytest.mark.asyncio
    async def test_returns_text_and_sends_schema(self) -> None:
        seen: List[httpx.Request] = []
        client = make_client(lambda r: httpx.Response(200, json=candidate('{"ok": true}')), seen)
        text = await client.generate([{"text": "hi"}], "rules", {"type": "OBJECT"})
        await client.close()

        assert text == '{"ok": true}'
        request = seen[0]
        assert request.url.path == "/v1beta/models/test-model:generateContent"
        assert request.url.params["key"] == "test-key"
        body = json.loads(request.content)
        assert body["systemInstruction"]["parts"][0]["text"] == "rules"
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert body["generationConfig"]["responseSchema"] == {"type": "OBJECT"}

    @pytest.mark.asyncio
    async def test_thought_parts_are_skipped(self) -> None:
        data = {"candidates": [{"content": {"parts": [{"text": "thinking...", "thought": True}, {"text": "{}"}]}}]}
        client = make_client(lambda r: httpx.Response(200, json=data))
        assert await client.generate([{"text": "hi"}]) == "{}"
        await client.close()

    @pytest.mark.asyncio
    async def test_429_is_rate_limited(self) -> None:
        client = make_client(lambda r: httpx.Response(429, headers={"Retry-After": "7"}, json={}))
        with pytest.raises(RateLimited) as exc_info:
            await client.generate([{"text": "hi"}])
        assert exc_info.value.retry_after == 7.0
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_raises_http_error(self) -> None:
        client = make_client(lambda r: httpx.Response(500, json={}))
        with pytest.raises(httpx.HTTPStatusError):
            await client.generate([{"text": "hi"}])
        await client.close()

    @pytest.mark.asyncio
    async def test_prompt_block_is_safety_rejection(self) -> None:
        client = make_client(lambda r: httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}))
        with pytest.raises(SafetyRejected, match="SAFETY"):
            await client.generate([{"text": "hi"}])
        await client.close()

    @pytest.mark.asyncio
    async def test_blocked_finish_reason_is_safety_rejection(self) -> None:
        client = make_client(lambda r: httpx.Response(200, json=candidate("", finishReason="RECITATION")))
        with pytest.raises(SafetyRejected, match="RECITATION"):
            await client.generate([{"text": "hi"}])
        await client.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, json={"candidates": []}),
            httpx.Response(200, json=candidate("   ", finishReason="STOP")),
            httpx.Response(200, content=b"<html>oops</html>"),
        ],
    )
    async def test_empty_or_unreadable_body(self, response: httpx.Response) -> None:
        client = make_client(lambda r: response)
        with pytest.raises(EmptyOrMalformedResponse):
            await client.generate([{"text": "hi"}])
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_api_key(self) -> None:
        client = ModelClient(api_key="", http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: None)))
        with pytest.raises(ExtractionError, match="API key"):
            await client.generate([{"text": "hi"}])
        await client.close()


class TestChat:
    """Tests for the best-effort document chat."""

    @pytest.mark.asyncio
    async def test_chat_sends_record_and_history(self) -> None:
        seen: List[httpx.Request] = []
        client = make_client(lambda r: httpx.Response(200, json=candidate("Ada Lovelace.")), seen)
        history = [{"role": "user", "content": "Hello"}, {"role": "assistant", "content": "Hi"}]
        answer = await client.chat(history, make_metadata(), "Who is the first author?")
        await client.close()

        assert answer == "Ada Lovelace."
        contents = json.loads(seen[0].content)["contents"]
        assert "Lovelace" in contents[0]["parts"][0]["text"]
        assert [c["role"] for c in contents] == ["user", "user", "model", "user"]
        assert contents[-1]["parts"][0]["text"] == "Who is the first author?"

    @pytest.mark.asyncio
    async def test_chat_failure_is_answered(self) -> None:
        client = make_client(lambda r: httpx.Response(503, json={}))
        assert await client.chat([], None, "Anything?") == CHAT_FAILURE_MESSAGE
        await client.close()

    @pytest.mark.asyncio
    async def test_chat_empty_answer(self) -> None:
        client = make_client(lambda r: httpx.Response(200, json={"candidates": []}))
        assert await client.chat([], None, "Anything?") == CHAT_EMPTY_MESSAGE
        await client.close()


class TestErrorHandler:
    """Tests for mapping failures onto error kinds and messages."""

    def test_extraction_errors_keep_their_kind(self) -> None:
        handler = ErrorHandler()
        assert handler.classify_error(RateLimited()) == ErrorKind.RATE_LIMITED
        assert handler.classify_error(SchemaViolation("x")) == ErrorKind.SCHEMA_VIOLATION
        assert handler.classify_error(SourceUnavailable("x")) == ErrorKind.SOURCE_UNAVAILABLE

    def test_http_429_is_rate_limited(self) -> None:
        request = httpx.Request("POST", "https://model.test")
        error = httpx.HTTPStatusError("429", request=request, response=httpx.Response(429, request=request))
        handler = ErrorHandler()
        assert handler.classify_error(error) == ErrorKind.RATE_LIMITED
        assert isinstance(handler.to_extraction_error(error), RateLimited)

    def test_validation_error_is_schema_violation(self) -> None:
        class Sample(BaseModel):
            value: int

        with pytest.raises(ValidationError) as exc_info:
            Sample.model_validate({"value": "nope"})
        handler = ErrorHandler()
        assert handler.classify_error(exc_info.value) == ErrorKind.SCHEMA_VIOLATION
        assert isinstance(handler.to_extraction_error(exc_info.value), SchemaViolation)

    def test_descriptions(self) -> None:
        handler = ErrorHandler()
        assert "Rate limit" in handler.describe(RateLimited())
        assert handler.describe(EmptyOrMalformedResponse("empty")).startswith(handler.GENERIC_MALFORMED_MESSAGE)
        assert handler.describe(SafetyRejected("blocked")) == "blocked"
        assert handler.describe(KeyError("x")).startswith("Extraction failed: KeyError")
        assert handler.classify_error(KeyError("x")) == ErrorKind.UNKNOWN
