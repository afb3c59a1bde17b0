"""
OpenAI chat wrapper used by the package analyzer and similarity engine.

Every call is bounded by `AI_TIMEOUT_SECONDS` and retried with exponential
backoff (1s, 2s, 4s ... capped at 10s). Authentication and bad-request
errors are not retried. Callers get a result object, never an exception,
so AI problems always degrade to the formula path.
"""

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from openai import OpenAI

from config.settings import settings

logger = logging.getLogger(__name__)

JSON_ONLY_INSTRUCTION = (
    "\n\nIMPORTANT: Respond ONLY with valid JSON. No markdown, no explanation, "
    "just the JSON object."
)

NON_RETRYABLE_STATUS = {400, 401, 403}

# USD per 1K tokens
COST_PER_1K_TOKENS: Dict[str, Dict[str, float]] = {
    "gpt-4o": {"input": 0.005, "output": 0.015},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
    "gpt-4-turbo": {"input": 0.01, "output": 0.03},
    "gpt-3.5-turbo": {"input": 0.0005, "output": 0.0015},
}


@dataclass
class ChatResult:
    success: bool
    content: Optional[str] = None
    error: Optional[str] = None


@dataclass
class JSONResult:
    success: bool
    data: Any = None
    error: Optional[str] = None


@dataclass
class UsageStats:
    total_requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    errors: int = 0
    last_request_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRequests": self.total_requests,
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "estimatedCost": round(self.estimated_cost, 6),
            "errors": self.errors,
            "lastRequestAt": self.last_request_at.isoformat() if self.last_request_at else None,
        }


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


class AIClient:
    """Thin retrying wrapper around `OpenAI().chat.completions.create`."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Any = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.model = model or settings.AI_MODEL
        self.timeout = timeout if timeout is not None else settings.AI_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.AI_MAX_RETRIES
        self.base_delay = base_delay if base_delay is not None else settings.AI_RETRY_BASE_DELAY
        self.max_delay = max_delay if max_delay is not None else settings.AI_RETRY_MAX_DELAY
        self._sleep = sleep
        self.usage = UsageStats()

        if client is not None:
            self._client = client
        else:
            key = api_key if api_key is not None else settings.OPENAI_API_KEY
            # retries are handled here, not by the SDK
            self._client = OpenAI(api_key=key, timeout=self.timeout, max_retries=0) if key else None

        if self._client is None:
            logger.info("OpenAI API key not configured; AI features disabled")

    def is_ready(self) -> bool:
        return self._client is not None

    def retry_delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def chat_completion(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResult:
        if not self.is_ready():
            return ChatResult(success=False, error="OpenAI service not configured")

        model = model or self.model
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        last_error: Optional[str] = None
        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                delay = self.retry_delay(attempt - 1)
                logger.info(f"Retry attempt {attempt}/{self.max_retries} after {delay:.1f}s")
                self._sleep(delay)
            try:
                resp = self._client.chat.completions.create(
                    model=model,
                    messages=messages,
                    temperature=temperature if temperature is not None else settings.AI_TEMPERATURE,
                    max_tokens=max_tokens or settings.AI_MAX_TOKENS,
                    timeout=self.timeout,
                )
                content = resp.choices[0].message.content
                self._record_usage(model, getattr(resp, "usage", None))
                return ChatResult(success=True, content=content)
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                self.usage.errors += 1
                status = getattr(e, "status_code", None)
                if status in NON_RETRYABLE_STATUS:
                    logger.error(f"OpenAI request rejected ({status}), not retrying: {last_error}")
                    break
                logger.warning(f"OpenAI request failed (attempt {attempt + 1}): {last_error}")

        return ChatResult(success=False, error=last_error or "Unknown error")

    def chat_completion_json(self, prompt: str, system_prompt: Optional[str] = None, **options) -> JSONResult:
        result = self.chat_completion(
            prompt,
            system_prompt=(system_prompt or "") + JSON_ONLY_INSTRUCTION,
            **options,
        )
        if not result.success or not result.content:
            return JSONResult(success=False, error=result.error or "Empty response")
        try:
            return JSONResult(success=True, data=json.loads(strip_code_fences(result.content)))
        except json.JSONDecodeError as e:
            return JSONResult(success=False, error=f"JSON parse error: {e}")

    def _record_usage(self, model: str, usage: Any) -> None:
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        costs = COST_PER_1K_TOKENS.get(model, COST_PER_1K_TOKENS["gpt-4o-mini"])

        self.usage.total_requests += 1
        self.usage.prompt_tokens += prompt_tokens
        self.usage.completion_tokens += completion_tokens
        self.usage.total_tokens += prompt_tokens + completion_tokens
        self.usage.estimated_cost += (
            prompt_tokens / 1000 * costs["input"] + completion_tokens / 1000 * costs["output"]
        )
        self.usage.last_request_at = datetime.utcnow()
