"""Cashier agent interface and a chat-completions backed implementation."""

from __future__ import annotations

import os
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import AgentEndpointConfig
from .utils import deep_merge_dict, truncate


class Agent(Protocol):
    """A conversational cashier. Soft failures come back as error-shaped text."""

    def process(self, text: str) -> str:
        ...


AgentFactory = Callable[[str], Agent]


class AgentClientError(RuntimeError):
    """Raised when the agent backend call fails."""


class ChatCompletionAgent:
    """Keeps one conversation against a chat-completions style API.

    The prompt template under test becomes the system message; every
    ``process`` call appends the customer turn and the assistant reply so the
    agent sees the whole transaction so far.
    """

    def __init__(
        self,
        config: AgentEndpointConfig,
        prompt_template: str,
        *,
        client: Optional[httpx.Client] = None,
    ):
        self.config = config
        self.messages: List[Dict[str, Any]] = [{"role": "system", "content": prompt_template}]
        self._owns_client = client is None
        self._client = client or self._build_client(config)

    @staticmethod
    def _build_client(config: AgentEndpointConfig) -> httpx.Client:
        api_key = os.getenv(config.api_key_env)
        if not api_key:
            raise EnvironmentError(
                f"Missing agent API key in environment variable '{config.api_key_env}'."
            )
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        headers.update(config.extra_headers or {})
        return httpx.Client(
            base_url=config.base_url or "https://api.openai.com/v1",
            headers=headers,
            timeout=config.request_timeout,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def process(self, text: str) -> str:
        self.messages.append({"role": "user", "content": text})
        try:
            reply = self._complete()
        except AgentClientError as exc:
            self.messages.pop()
            return f"ERROR: {exc}"
        self.messages.append({"role": "assistant", "content": reply})
        return reply

    def _complete(self) -> str:
        attempt_limit = max(1, self.config.retry_attempts)
        retryer = Retrying(
            retry=retry_if_exception_type(AgentClientError),
            wait=wait_exponential(multiplier=1.0, min=0.5, max=8),
            stop=stop_after_attempt(attempt_limit),
            reraise=True,
        )

        def _do_call() -> str:
            payload: Dict[str, Any] = {
                "model": self.config.model,
                "messages": list(self.messages),
                "temperature": self.config.temperature,
                "max_tokens": self.config.max_output_tokens,
            }
            if self.config.request_overrides:
                payload = deep_merge_dict(payload, self.config.request_overrides)

            path = self.config.completion_path
            if not path.startswith("/"):
                path = f"/{path}"

            try:
                response = self._client.post(path, json=payload)
            except httpx.HTTPError as exc:
                raise AgentClientError(
                    f"[{self.config.provider}:{self.config.model}] transport error: {exc}"
                ) from exc

            if response.status_code >= 400:
                raise AgentClientError(
                    f"[{self.config.provider}:{self.config.model}] HTTP {response.status_code} "
                    f"body={truncate(response.text)}"
                )

            try:
                data = response.json()
            except ValueError as exc:
                raise AgentClientError(
                    f"[{self.config.provider}:{self.config.model}] Invalid JSON response: "
                    f"{truncate(response.text)}"
                ) from exc

            choices = data.get("choices") or []
            if not choices:
                raise AgentClientError(
                    f"[{self.config.provider}:{self.config.model}] API returned no choices."
                )
            content = (choices[0].get("message") or {}).get("content")
            return content if isinstance(content, str) and content.strip() else "[no response]"

        return retryer(_do_call)

    def __enter__(self) -> "ChatCompletionAgent":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def chat_completion_agent_factory(
    config: AgentEndpointConfig, *, client: Optional[httpx.Client] = None
) -> AgentFactory:
    """Return a factory building a fresh conversation per scenario."""

    def _factory(prompt_template: str) -> ChatCompletionAgent:
        return ChatCompletionAgent(config, prompt_template, client=client)

    return _factory
