"""HTTP client for the generative-model API (extraction and chat)."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config.settings import settings
from ..core.models import ExtractedMetadata
from ..utils.logging import get_logger
from .errors import EmptyOrMalformedResponse, ExtractionError, RateLimited, SafetyRejected

logger = get_logger(__name__)

BLOCKED_FINISH_REASONS = ("SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT")
CHAT_FAILURE_MESSAGE = "Error connecting to AI Agent."
CHAT_EMPTY_MESSAGE = "I couldn't generate a response."

CHAT_SYSTEM_PROMPT = """
You are the ACE (Apeiro Citation Extractor) AI Assistant.
You are helping a human operator verify and extract metadata from scientific papers according to CAR 2.0 rules.

You have access to the EXTRACTED DATA (JSON) from the document.

GUIDELINES:
1. Answer specific questions about the data (e.g., "What is the second author?", "Are there any ID mismatches?").
2. Explain CAR 2.0 Business Rules if asked (e.g., "How do we handle correspondence?", "What if titles differ?").
3. Be concise and helpful.

Current Extracted Data Context:
{context}
"""


class ModelClient:
    """Thin async wrapper over the ``generateContent`` endpoint.

    Transport-level outcomes are translated into the extraction error
    taxonomy here; retry policy lives in the invoker.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.google_api_key
        self.model_id = model_id or settings.model_id
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.client = http_client or httpx.AsyncClient(
            timeout=timeout or settings.request_timeout,
            headers={"User-Agent": "ACE-CitationExtractor/0.1.0"},
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model_id}:generateContent"

    async def generate(
        self,
        parts: List[Dict[str, Any]],
        system_instruction: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Send one single-turn request and return the response text."""
        payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if response_schema is not None:
            payload["generationConfig"] = {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
                "temperature": settings.model_temperature,
                "thinkingConfig": {"thinkingBudget": settings.thinking_budget},
            }
        data = await self._post(payload)
        return self._response_text(data)

    async def chat(
        self,
        history: Sequence[Dict[str, str]],
        record: Optional[ExtractedMetadata],
        message: str,
    ) -> str:
        """Answer an operator question about the current record.

        Best effort: failures are logged and answered with a fixed
        message instead of raising.
        """
        context = json.dumps(record.model_dump(mode="json", exclude={"document_text"}) if record else {}, indent=2)
        contents: List[Dict[str, Any]] = [
            {"role": "user", "parts": [{"text": CHAT_SYSTEM_PROMPT.format(context=context)}]}
        ]
        for turn in history:
            role = "user" if turn.get("role") == "user" else "model"
            contents.append({"role": role, "parts": [{"text": turn.get("content", "")}]})
        contents.append({"role": "user", "parts": [{"text": message}]})

        try:
            data = await self._post({"contents": contents})
            return self._response_text(data)
        except EmptyOrMalformedResponse:
            return CHAT_EMPTY_MESSAGE
        except (ExtractionError, httpx.HTTPError) as e:
            logger.error(f"Chat request failed: {e}")
            return CHAT_FAILURE_MESSAGE

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise ExtractionError("Model API key not configured (set GOOGLE_API_KEY)")

        response = await self.client.post(self.endpoint, params={"key": self.api_key}, json=payload)
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(f"Model API rate limited (Retry-After={retry_after})")
            raise RateLimited(retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None)
        response.raise_for_status()

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise EmptyOrMalformedResponse(f"Model API returned a non-JSON body: {e}") from e

    @staticmethod
    def _response_text(data: Dict[str, Any]) -> str:
        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise SafetyRejected(f"Model blocked the request due to {block_reason}.")

        candidates = data.get("candidates") or []
        if not candidates:
            raise EmptyOrMalformedResponse("Model returned an empty response body.")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        # Thought summaries are not part of the answer.
        text = "".join(p.get("text", "") for p in parts if not p.get("thought"))
        if text.strip():
            return text

        finish_reason = candidate.get("finishReason")
        if finish_reason in BLOCKED_FINISH_REASONS:
            raise SafetyRejected(
                f"Model blocked response due to {finish_reason}. Content might contain sensitive technical data."
            )
        raise EmptyOrMalformedResponse("Model returned an empty response body.")

    async def close(self) -> None:
        await self.client.aclose()
