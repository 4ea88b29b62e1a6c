"""HTTP client talking to the remote chat endpoint."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

import httpx

from ..config.settings import Settings
from ..core.errors import RemoteCallError
from .schemas import ChatMessage

LOGGER = logging.getLogger(__name__)

APOLOGY = "Desculpe, não consegui contactar o servidor. Verifique a conexão."
NO_REPLY = "Sem resposta do servidor."

ExtractionRule = Callable[[Any], Optional[str]]


def _from_choices(data: Any) -> Optional[str]:
    try:
        return data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None


def _from_field(name: str) -> ExtractionRule:
    def rule(data: Any) -> Optional[str]:
        if isinstance(data, dict):
            return data.get(name)
        return None

    rule.__name__ = f"_from_{name}"
    return rule


# Applied in order; the first rule yielding a non-empty string wins.
EXTRACTION_RULES: tuple[ExtractionRule, ...] = (
    _from_choices,
    _from_field("response"),
    _from_field("message"),
    _from_field("text"),
)


def extract_reply(data: Any) -> str | None:
    """Return the reply text from the first matching response shape."""
    for rule in EXTRACTION_RULES:
        value = rule(data)
        if isinstance(value, str) and value.strip():
            return value
    return None


class ResponseClient:
    """Send a command plus history and always come back with something to say."""

    def __init__(
        self,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = settings.chat_url
        self.token = settings.chat_token
        self.model = settings.chat_model
        self.max_tokens = settings.chat_max_tokens
        self.session_id = settings.chat_session_id
        # No request timeout: the reply may take as long as the model needs.
        self._client = httpx.AsyncClient(timeout=None, transport=transport)

    def build_payload(self, command: str, history: Sequence[ChatMessage]) -> dict[str, Any]:
        messages = [message.to_payload() for message in history if message.content.strip()]
        messages.append({"role": "user", "content": command})
        return {
            "messages": messages,
            "model": self.model,
            "max_tokens": self.max_tokens,
            "session": self.session_id,
        }

    async def send(self, command: str, history: Sequence[ChatMessage]) -> str:
        """Return the assistant reply, or the apology string on any failure."""
        try:
            return await self._request(command, history)
        except Exception as exc:
            LOGGER.error("Chat request failed: %s", exc)
            return APOLOGY

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    async def _request(self, command: str, history: Sequence[ChatMessage]) -> str:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        response = await self._client.post(
            self.url,
            json=self.build_payload(command, history),
            headers=headers,
        )
        if not response.is_success:
            raise RemoteCallError(f"API error: {response.status_code}", status_code=response.status_code)
        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteCallError(f"Non-JSON reply: {response.text[:200]}") from exc
        reply = extract_reply(data)
        if reply is None:
            LOGGER.warning("Chat reply matched no known shape")
            return NO_REPLY
        return reply
