"""OpenRouter client backing the estimate oracle."""

import logging
import time
from typing import Any

import httpx

from . import config
from .telemetry import is_telemetry_enabled, trace_span

logger = logging.getLogger(__name__)


async def query_model(
    model: str,
    messages: list[dict[str, str]],
    api_key: str,
    timeout: float = config.ORACLE_TIMEOUT,
    response_format: dict[str, Any] | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any] | None:
    """
    Query a single model via OpenRouter API.

    Args:
        model: OpenRouter model identifier (e.g., "google/gemini-3-flash-preview")
        messages: List of message dicts with 'role' and 'content'
        api_key: OpenRouter API key
        timeout: Request timeout in seconds
        response_format: Optional structured output request
        client: Optional client to reuse (a short-lived one is created otherwise)

    Returns:
        Response dict with 'content' and 'metrics', or None if failed
    """
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    payload: dict[str, Any] = {
        "model": model,
        "messages": messages,
    }
    if response_format:
        payload["response_format"] = response_format

    with trace_span("oracle.complete", {"llm.model": model}) as span:
        start_time = time.time()
        try:
            if client is None:
                async with httpx.AsyncClient(timeout=timeout) as own_client:
                    response = await own_client.post(
                        config.OPENROUTER_API_URL, headers=headers, json=payload
                    )
            else:
                response = await client.post(
                    config.OPENROUTER_API_URL, headers=headers, json=payload
                )
            response.raise_for_status()

            latency_ms = int((time.time() - start_time) * 1000)
            data = response.json()
            message = data["choices"][0]["message"]
            usage = data.get("usage") or {}

            if is_telemetry_enabled():
                span.set_attributes({
                    "llm.total_tokens": usage.get("total_tokens", 0),
                    "llm.latency_ms": latency_ms,
                })

            return {
                "content": message.get("content"),
                "metrics": {
                    "total_tokens": usage.get("total_tokens", 0),
                    "latency_ms": latency_ms,
                    "actual_model": data.get("model"),
                },
            }

        except Exception as e:
            logger.warning("Error querying model %s: %s", model, e)
            return None


class OpenRouterOracle:
    """Estimate oracle that asks an OpenRouter model for JSON output."""

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.model = model or config.ORACLE_MODEL
        self._api_key = api_key
        self.timeout = timeout or config.ORACLE_TIMEOUT
        self._client = client

    @property
    def api_key(self) -> str | None:
        # Read lazily so reload_config() takes effect
        return self._api_key or config.OPENROUTER_API_KEY

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: str) -> str | None:
        """
        Send a prompt and return the raw text reply.

        Returns:
            Model output, or None if the call failed or returned nothing
        """
        if not self.is_configured():
            return None

        result = await query_model(
            self.model,
            [{"role": "user", "content": prompt}],
            api_key=self.api_key,
            timeout=self.timeout,
            response_format={"type": "json_object"},
            client=self._client,
        )
        if result is None:
            return None
        return result.get("content") or None
