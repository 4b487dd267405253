"""
Chat-completion transport for OpenAI-compatible endpoints.

Two backends share one interface (``await client.complete(messages)``):

  • ChatClient        : httpx POST to the configured endpoint URL, verbatim.
  • LiteLLMChatClient : litellm.acompletion(), for provider-routed models.

Both read settings on every call so runtime overrides take effect at once,
and both surface failures as ``TransportError``.  There is no retry here.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import httpx
import litellm

from settings import ApiSettings

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True

MAX_TOKENS = 8192
TEMPERATURE = 0.7

Message = Dict[str, str]


class TransportError(RuntimeError):
    """Network/HTTP failure or empty reply from the model endpoint."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def build_payload(model: str, messages: List[Message], json_mode: bool = True) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "model": model,
        "messages": messages,
        "stream": False,
        "max_tokens": MAX_TOKENS,
        "temperature": TEMPERATURE,
    }
    if json_mode:
        body["response_format"] = {"type": "json_object"}
    return body


def _content_of(data: Any) -> str:
    """Pull ``choices[0].message.content`` out of a decoded response body."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        content = ""
    return content or ""


class ChatClient:
    """Raw httpx transport.

    ``settings_provider`` is called per request; ``http_client`` may be
    injected (tests pass one built on ``httpx.MockTransport``).
    """

    def __init__(
        self,
        settings_provider: Callable[[], ApiSettings],
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings_provider = settings_provider
        self._http_client = http_client

    async def complete(self, messages: List[Message], json_mode: bool = True) -> str:
        settings = self._settings_provider().require()
        body = build_payload(settings.model, messages, json_mode)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {settings.api_key}",
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    settings.base_url, json=body, headers=headers,
                    timeout=settings.timeout_seconds,
                )
            else:
                async with httpx.AsyncClient(timeout=settings.timeout_seconds) as client:
                    response = await client.post(settings.base_url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("API call error: %s", exc)
            raise TransportError(f"API request failed: {exc}") from exc

        if not response.is_success:
            logger.error("API call error: HTTP %s", response.status_code)
            raise TransportError(
                f"API Request Failed: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError("API returned a non-JSON body") from exc

        content = _content_of(data)
        if not content:
            raise TransportError("Empty response from AI")
        return content

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()


class LiteLLMChatClient(ChatClient):
    """Same contract, routed through litellm (``model`` in provider/model form)."""

    async def complete(self, messages: List[Message], json_mode: bool = True) -> str:
        settings = self._settings_provider().require()
        kwargs: Dict[str, Any] = {
            "model": settings.model,
            "messages": messages,
            "stream": False,
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
            "api_key": settings.api_key,
            "timeout": settings.timeout_seconds,
        }
        if settings.base_url:
            kwargs["api_base"] = settings.base_url
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as exc:
            logger.error("litellm call error: %s", exc)
            raise TransportError(f"API request failed: {exc}",
                                 status_code=getattr(exc, "status_code", None)) from exc

        content = response.choices[0].message.content if response.choices else ""
        if not content:
            raise TransportError("Empty response from AI")
        return content


def create_chat_client(settings_provider: Callable[[], ApiSettings]) -> ChatClient:
    """Pick the backend named by ``settings.transport`` (default: raw http)."""
    if settings_provider().transport == "litellm":
        return LiteLLMChatClient(settings_provider)
    return ChatClient(settings_provider)
