"""OpenAI-compatible chat-completions client over httpx.

Requests are single attempts; callers wrap them in ResilientCaller, which
owns timeouts and retries. Non-2xx responses are raised as classified
upstream errors.
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import structlog

from leadpilot.config import settings
from leadpilot.core.exceptions import UpstreamTransientError, UpstreamUnavailableError
from leadpilot.core.retry import raise_for_upstream_status

logger = structlog.get_logger(__name__)


class LLMClient:
    """Thin JSON-mode chat client for generation and scoring prompts."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the LLM client.

        Args:
            api_key: Provider API key (default: LLM_API_KEY)
            base_url: API base URL (default: LLM_BASE_URL)
            model: Model name (default: LLM_MODEL)
            http_client: Shared httpx client; created lazily when omitted
        """
        self.api_key = settings.LLM_API_KEY if api_key is None else api_key
        self.base_url = (base_url or settings.LLM_BASE_URL).rstrip("/")
        self.model = model or settings.LLM_MODEL
        self._client = http_client
        self.logger = logger.bind(service="llm_client", model=self.model)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(settings.LLM_TIMEOUT_SECONDS))
        return self._client

    async def chat_json(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
    ) -> Dict[str, Any]:
        """Run one chat completion in JSON mode and parse the reply.

        Args:
            messages: List of {"role", "content"} dicts
            temperature: Sampling temperature
            max_tokens: Maximum tokens in the reply

        Returns:
            Parsed JSON object from the first choice

        Raises:
            UpstreamUnavailableError: No API key configured, or provider quota exhausted
            UpstreamTransientError: 5xx, throttling, or an unparseable reply
            UpstreamRejectedError: Provider rejected the request (4xx)
        """
        if not self.configured:
            raise UpstreamUnavailableError("LLM provider is not configured")

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }
        response = await self._get_client().post(
            f"{self.base_url}/chat/completions",
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        raise_for_upstream_status(response, "LLM provider")

        try:
            content = response.json()["choices"][0]["message"]["content"]
            parsed = json.loads(content)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            self.logger.warning("llm_reply_unparseable", error=str(e))
            raise UpstreamTransientError("LLM provider returned an unparseable reply") from e

        if not isinstance(parsed, dict):
            raise UpstreamTransientError("LLM provider returned a non-object JSON reply")

        usage = response.json().get("usage") or {}
        self.logger.debug(
            "llm_completion",
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
        )
        return parsed

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


_llm_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get or create the global LLM client."""
    global _llm_client

    if _llm_client is None:
        _llm_client = LLMClient()
        logger.info("llm_client_initialized", configured=_llm_client.configured)

    return _llm_client
