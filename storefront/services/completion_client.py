# storefront/services/completion_client.py
from dataclasses import dataclass, field
from typing import Any

import requests
from requests import RequestException

from storefront.domain.errors import CompletionServiceError
from storefront.utils.retry import http_retry
from storefront.utils.settings import (
    CHAT_MAX_OUTPUT_TOKENS,
    GEMINI_API_KEY,
    GEMINI_API_URL,
    GEMINI_MODEL,
    HTTP_TIMEOUT_SECONDS,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SUMMARY_INSTRUCTION = (
    "Summarize the following shopping-assistant conversation in at most five sentences. "
    "Keep product names, order ids and open questions. Do not add anything that was not said."
)


@dataclass
class FunctionCall:
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class CompletionResult:
    text: str = ""
    function_calls: list[FunctionCall] = field(default_factory=list)
    # the model turn as the API returned it, sent back verbatim on the next round
    content: dict[str, Any] = field(default_factory=dict)


class CompletionClient:
    """
    Gemini generateContent over plain HTTP.

    Connection errors are retried (the request never reached the service);
    timeouts and HTTP errors end the call with CompletionServiceError.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        max_output_tokens: int = CHAT_MAX_OUTPUT_TOKENS,
    ):
        self.api_key = GEMINI_API_KEY if api_key is None else api_key
        self.model = model or GEMINI_MODEL
        self.base_url = (base_url or GEMINI_API_URL).rstrip("/")
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def generate(
        self,
        contents: list[dict],
        system_instruction: str | None = None,
        tools: list[dict] | None = None,
    ) -> CompletionResult:
        body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {"maxOutputTokens": self.max_output_tokens},
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if tools:
            body["tools"] = tools

        try:
            data = self._post(body)
        except requests.Timeout:
            logger.error(f"Completion call to {self.model} timed out after {self.timeout}s")
            raise CompletionServiceError("Completion service timed out")
        except RequestException as e:
            logger.error(f"Completion call to {self.model} failed: {e}")
            raise CompletionServiceError()

        return self._parse(data)

    def summarize(self, transcript: str) -> str:
        result = self.generate(
            [{"role": "user", "parts": [{"text": transcript}]}],
            system_instruction=SUMMARY_INSTRUCTION,
        )
        summary = result.text.strip()
        if not summary:
            raise CompletionServiceError("Empty summary")
        return summary

    @http_retry()
    def _post(self, body: dict) -> dict:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        logger.info(f"CompletionClient POST {url}")

        resp = requests.post(
            url,
            params={"key": self.api_key},
            json=body,
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    @staticmethod
    def _parse(data: dict) -> CompletionResult:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback")
            logger.error(f"Completion returned no candidates: {feedback}")
            raise CompletionServiceError("Completion returned no candidates")

        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []

        texts = []
        calls = []
        for part in parts:
            if "functionCall" in part:
                call = part["functionCall"]
                calls.append(FunctionCall(name=call.get("name", ""), args=call.get("args") or {}))
            elif "text" in part:
                texts.append(part["text"])

        return CompletionResult(
            text="".join(texts),
            function_calls=calls,
            content={"role": content.get("role", "model"), "parts": parts},
        )
