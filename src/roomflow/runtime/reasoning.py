"""OpenAI-compatible chat completions reasoning call."""

from __future__ import annotations

import logging

import httpx

from roomflow.core.types import SKIP_MARKER

logger = logging.getLogger(__name__)


class ChatCompletionsReasoner:
    """
    Calls POST {base_url}/v1/chat/completions.

    Any failure (HTTP error, timeout, malformed body) maps to "[SKIP]" so a
    broken model endpoint never crashes the agent loop. Calls are never
    retried.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        model: str = "default",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.url = f"{base_url.rstrip('/')}/v1/chat/completions"
        self.api_key = api_key
        self.model = model or "default"
        self.timeout = timeout
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "stream": False,
        }

        logger.debug(f"LLM call: {self.url}, model={self.model}")
        try:
            client = await self._get_http_client()
            response = await client.post(self.url, json=body, headers=headers)
            response.raise_for_status()
            content = response.json()["choices"][0]["message"]["content"] or ""
        except Exception as e:
            logger.warning(f"LLM call failed: {e}")
            return SKIP_MARKER

        return content.strip() or SKIP_MARKER
