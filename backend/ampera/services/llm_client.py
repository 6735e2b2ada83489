"""
LLM Completion Clients

Purpose:
  Thin async wrappers around the chat-completion backends used by the triage
  assistant. Each client takes role/content messages and returns the visible
  text plus the finish reason, nothing more.

Backends:
  - Azure OpenAI chat completions (raw HTTP via httpx)
  - Gemini (google-genai SDK)

Errors:
  - ``CompletionTimeoutError`` when the call exceeds ``timeout_s``
  - ``CompletionError`` for any other upstream failure
  An empty completion is NOT an error here; the caller decides what to do.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from google import genai
from google.genai import types

DEFAULT_AZURE_MODEL = "gpt-5"
DEFAULT_GEMINI_MODEL = "gemini-1.5-pro"
DEFAULT_TIMEOUT_S = 30.0


class CompletionError(RuntimeError):
    pass


class CompletionTimeoutError(CompletionError):
    pass


@dataclass
class CompletionResult:
    content: str
    finish_reason: Optional[str] = None


# ============================================================
# RESPONSE COERCION
# ============================================================

def coerce_content(content: Any) -> str:
    """Flatten the many shapes a "content" field shows up in."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and "text" in part:
                text = part.get("text")
                parts.append(text if isinstance(text, str) else "")
            elif isinstance(part, dict) and "content" in part:
                parts.append(coerce_content(part.get("content")))
        return "".join(parts).strip()
    if isinstance(content, dict):
        for key in ("text", "content", "value"):
            if key in content:
                return coerce_content(content.get(key))
    return ""


def _choice_message(choice: Any) -> Dict[str, Any]:
    if isinstance(choice, dict) and isinstance(choice.get("message"), dict):
        return choice["message"]
    return {}


def extract_response_content(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices") if isinstance(data.get("choices"), list) else []
    first = _choice_message(choices[0]) if choices else {}

    for candidate in (first.get("content"), first.get("refusal"), data.get("output_text"), data.get("output")):
        text = coerce_content(candidate)
        if text:
            return text

    for choice in choices:
        msg = _choice_message(choice)
        text = coerce_content(msg.get("content")) or coerce_content(msg.get("refusal"))
        if text:
            return text
    return ""


def _finish_reason(data: Any) -> Optional[str]:
    try:
        reason = data["choices"][0].get("finish_reason")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    return str(reason) if reason is not None else None


# ============================================================
# CLIENTS
# ============================================================

class CompletionClient:
    provider: str = "base"

    async def complete(self, messages: List[Dict[str, str]], max_tokens: int) -> CompletionResult:
        raise NotImplementedError


class AzureChatClient(CompletionClient):
    provider = "azure"

    def __init__(
        self,
        url: str,
        api_key: str,
        model: str = DEFAULT_AZURE_MODEL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s
        self._transport = transport

    async def complete(self, messages: List[Dict[str, str]], max_tokens: int) -> CompletionResult:
        payload = {
            "messages": messages,
            "max_completion_tokens": max_tokens,
            "model": self.model,
        }
        headers = {"Content-Type": "application/json", "api-key": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                resp = await client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise CompletionTimeoutError(f"Azure OpenAI request timed out after {self.timeout_s}s") from e
        except httpx.HTTPError as e:
            raise CompletionError(f"Azure OpenAI request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.status_code >= 400:
            detail = None
            if isinstance(data, dict) and isinstance(data.get("error"), dict):
                detail = data["error"].get("message")
            raise CompletionError(
                f"Azure OpenAI request failed ({resp.status_code}): {detail or resp.text}"
            )

        return CompletionResult(content=extract_response_content(data), finish_reason=_finish_reason(data))


class GeminiChatClient(CompletionClient):
    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_GEMINI_MODEL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        client: Optional[Any] = None,
    ):
        self.model = model
        self.timeout_s = timeout_s
        self._client = client or genai.Client(api_key=api_key)

    @staticmethod
    def _split(messages: List[Dict[str, str]]):
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        contents = [
            types.Content(
                role="model" if m["role"] == "assistant" else "user",
                parts=[types.Part(text=m["content"])],
            )
            for m in messages
            if m["role"] != "system"
        ]
        return system, contents

    async def complete(self, messages: List[Dict[str, str]], max_tokens: int) -> CompletionResult:
        system, contents = self._split(messages)
        config = types.GenerateContentConfig(
            system_instruction=system or None,
            max_output_tokens=max_tokens,
        )
        try:
            resp = await asyncio.wait_for(
                self._client.aio.models.generate_content(model=self.model, contents=contents, config=config),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise CompletionTimeoutError(f"Gemini request timed out after {self.timeout_s}s") from e
        except Exception as e:
            raise CompletionError(f"Gemini request failed: {e}") from e

        finish = None
        candidates = getattr(resp, "candidates", None) or []
        if candidates and getattr(candidates[0], "finish_reason", None) is not None:
            reason = candidates[0].finish_reason
            finish = str(getattr(reason, "value", reason))
        return CompletionResult(content=(getattr(resp, "text", None) or "").strip(), finish_reason=finish)
