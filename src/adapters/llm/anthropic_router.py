"""Cost-Optimizing LLM Router.

Implements LLMRouterPort over the hosted Messages API. Simple prompts go to
the fast, inexpensive model and complex prompts to the more accurate one;
every call is priced from its token usage.

Security Impact:
    - The API key is held as SecretStr and only sent in the request header
    - Prompts may contain clinical context; they are never logged
    - A circuit breaker stops calling the API after repeated failures

Architecture:
    - Implements LLMRouterPort (Hexagonal Architecture)
    - One ``httpx.Client`` per router; thread-safe for concurrent skill calls
"""

import logging
import time
from typing import Optional

import httpx

from src.domain.guardrails import CircuitBreaker, CircuitBreakerConfig
from src.domain.ports import ErrorCode, LLMResponse, LLMRouterPort, ServiceResult
from src.infrastructure.config_manager import LLMConfig

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

# USD per million tokens (input, output), matched by model family
MODEL_PRICING = {
    "haiku": (1.00, 5.00),
    "sonnet": (3.00, 15.00),
    "opus": (15.00, 75.00),
}


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"]).strip()
    return response.text.strip() or f"HTTP {response.status_code}"


def _response_text(payload: dict) -> str:
    parts = []
    for item in payload.get("content") or []:
        if isinstance(item, dict) and item.get("type") == "text" and item.get("text"):
            parts.append(item["text"].strip())
    return "\n".join(parts).strip()


class AnthropicRouter(LLMRouterPort):
    """Routes prompts to Haiku or Sonnet and accounts for cost.

    Parameters:
        config: LLMConfig (API key, base URL, models, timeout, breaker settings)
        client: Optional pre-built httpx.Client (tests use ``httpx.MockTransport``)

    Example Usage:
        ```python
        router = AnthropicRouter(settings.llm_config)
        result = router.call("Summarize ...", system_prompt="You are ...", complexity="complex")
        if result.is_success():
            print(result.data.text, result.data.cost)
        ```
    """

    def __init__(self, config: LLMConfig, client: Optional[httpx.Client] = None):
        self.config = config
        headers = {
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        if config.api_key:
            headers["x-api-key"] = config.api_key.get_secret_value()

        self._client = client or httpx.Client(
            base_url=config.base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(config.timeout_seconds, connect=8.0),
        )
        self.circuit_breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold_percent=config.circuit_breaker_threshold,
                window_size=config.circuit_breaker_window,
                abort_on_open=False,
            )
        )

    def select_model(self, complexity: str) -> str:
        return self.config.complex_model if complexity == "complex" else self.config.simple_model

    def calculate_cost(self, input_tokens: int, output_tokens: int, model: str) -> float:
        rates = next((price for family, price in MODEL_PRICING.items() if family in model), MODEL_PRICING["sonnet"])
        return (input_tokens * rates[0] + output_tokens * rates[1]) / 1_000_000

    def _record(self, success: bool) -> None:
        self.circuit_breaker.record_outcome(success)

    def call(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        complexity: str = "simple",
        temperature: float = 0.3,
        max_tokens: int = 2048,
        user_id: Optional[str] = None
    ) -> ServiceResult[LLMResponse]:
        if not self.config.is_configured:
            return ServiceResult.failure_result(ErrorCode.AI_SERVICE_ERROR, "AI service is not configured")

        if self.circuit_breaker.is_open():
            logger.warning("LLM circuit breaker open; skipping call")
            return ServiceResult.failure_result(
                ErrorCode.AI_SERVICE_ERROR, "AI service temporarily unavailable (circuit breaker open)"
            )

        chosen_model = model or self.select_model(complexity)
        payload = {
            "model": chosen_model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt
        if user_id:
            payload["metadata"] = {"user_id": user_id}

        started = time.monotonic()
        try:
            response = self._client.post("/messages", json=payload)
        except httpx.TimeoutException:
            self._record(False)
            logger.error(f"LLM call to {chosen_model} timed out")
            return ServiceResult.failure_result(ErrorCode.AI_SERVICE_ERROR, "AI service request timed out")
        except httpx.HTTPError as e:
            self._record(False)
            logger.error(f"LLM call to {chosen_model} failed: {e}")
            return ServiceResult.failure_result(ErrorCode.AI_SERVICE_ERROR, f"AI service request failed: {e}")

        latency_ms = int((time.monotonic() - started) * 1000)

        if response.status_code >= 400:
            self._record(False)
            message = _error_message(response)
            logger.error(f"LLM call to {chosen_model} returned {response.status_code}: {message}")
            return ServiceResult.failure_result(
                ErrorCode.AI_SERVICE_ERROR,
                f"AI service error: {message}",
                {"status_code": response.status_code},
            )

        body = response.json()
        text = _response_text(body)
        if not text:
            self._record(False)
            return ServiceResult.failure_result(ErrorCode.AI_SERVICE_ERROR, "AI service returned an empty response")

        self._record(True)
        usage = body.get("usage") or {}
        input_tokens = int(usage.get("input_tokens", 0))
        output_tokens = int(usage.get("output_tokens", 0))
        actual_model = body.get("model") or chosen_model
        cost = self.calculate_cost(input_tokens, output_tokens, actual_model)

        logger.info(
            f"LLM call completed: model={actual_model} tokens={input_tokens}/{output_tokens} "
            f"cost=${cost:.5f} latency={latency_ms}ms"
        )
        return ServiceResult.success_result(
            LLMResponse(
                text=text,
                model=actual_model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost=cost,
                latency_ms=latency_ms,
            )
        )

    def close(self) -> None:
        self._client.close()
