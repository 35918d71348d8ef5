"""OpenRouter LLM client with retry logic.

OpenAI-compatible client. Transient failures (rate limits, timeouts,
connection errors, 5xx) are retried with exponential backoff behind a
shared circuit breaker; other client errors fail immediately.
"""

import logging

from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from ...core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenError
from ...core.config import LLMConfig, settings
from .schemas import ChatMessage, ChatResult, ChatUsage, LLMClientError

logger = logging.getLogger(__name__)

# LLM circuit breaker singleton
_llm_circuit_breaker: CircuitBreaker | None = None


def get_llm_circuit_breaker() -> CircuitBreaker:
    """Get or initialize the circuit breaker shared by all panel agents."""
    global _llm_circuit_breaker
    if _llm_circuit_breaker is None:
        _llm_circuit_breaker = CircuitBreaker(
            failure_threshold=settings.LLM_CIRCUIT_BREAKER_THRESHOLD,
            timeout=float(settings.LLM_CIRCUIT_BREAKER_TIMEOUT),
        )
        logger.info(
            "✅ LLM circuit breaker initialized: threshold=%s, timeout=%ss",
            settings.LLM_CIRCUIT_BREAKER_THRESHOLD,
            settings.LLM_CIRCUIT_BREAKER_TIMEOUT,
        )
    return _llm_circuit_breaker


def is_retryable_error(error: BaseException) -> bool:
    """Decide whether an OpenAI SDK error is worth retrying.

    Rate limits, timeouts, connection failures and 5xx responses are
    transient. Any other 4xx (bad request, auth, not found) is not.
    """
    if isinstance(error, (RateLimitError, APITimeoutError, APIConnectionError)):
        return True
    if isinstance(error, APIStatusError):
        return error.status_code >= 500
    return False


class OpenRouterClient:
    """OpenRouter LLM client with OpenAI-compatible interface.

    Features:
    - Async chat completion
    - Exponential backoff retry with jitter for transient errors
    - Shared circuit breaker across every agent call
    - Token usage tracking

    Example:
        >>> client = OpenRouterClient(llm_config=settings.tier2_llm_config)
        >>> result = await client.chat([ChatMessage(role="user", content="Hello")])
        >>> print(result.content)
    """

    def __init__(
        self,
        llm_config: LLMConfig,
        api_key: str | None = None,
        base_url: str | None = None,
        max_retries: int | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        """Initialize OpenRouter client.

        Args:
            llm_config: Model, temperature, token and timeout settings
            api_key: OpenRouter API key (defaults to settings.OPENROUTER_API_KEY)
            base_url: Base URL for OpenRouter API
            max_retries: Retries per call (defaults to settings.LLM_MAX_RETRIES)
            breaker: Circuit breaker (defaults to the shared LLM breaker)

        Raises:
            LLMClientError: If API key is not provided
        """
        self.api_key = api_key or settings.OPENROUTER_API_KEY
        if not self.api_key:
            raise LLMClientError(
                "API key is required. Set OPENROUTER_API_KEY or pass api_key parameter."
            )

        self.config = llm_config
        self.model = llm_config.model
        self.base_url = base_url or settings.OPENROUTER_BASE_URL
        self.max_retries = settings.LLM_MAX_RETRIES if max_retries is None else max_retries
        self.breaker = breaker or get_llm_circuit_breaker()

        self.client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=float(llm_config.timeout),
            max_retries=0,  # retries are ours
        )

    async def chat(self, messages: list[ChatMessage]) -> ChatResult:
        """Execute a non-streaming chat completion.

        Args:
            messages: Chat messages

        Returns:
            ChatResult with content, model and token usage

        Raises:
            LLMClientError: If the request fails after all retries, is not
                retryable, or the circuit breaker is open
        """
        logger.info(
            f"🤖 LLM REQUEST START: model={self.model}, temp={self.config.temperature}, "
            f"max_tokens={self.config.max_tokens}, messages={len(messages)}"
        )

        try:
            result: ChatResult = await self.breaker.call_with_retries(
                self._execute,
                messages,
                retries=self.max_retries,
                backoff_base=settings.LLM_RETRY_MIN_DELAY,
                max_delay=settings.LLM_RETRY_MAX_DELAY,
                retry_if=is_retryable_error,
            )
        except CircuitBreakerOpenError as e:
            logger.error(f"⛔ LLM CIRCUIT OPEN: model={self.model}")
            raise LLMClientError(str(e)) from e
        except APIError as e:
            logger.error(f"❌ LLM REQUEST FAILED: model={self.model}, error={str(e)[:200]}")
            raise LLMClientError(f"LLM request failed: {e}") from e

        logger.info(
            f"✅ LLM RESPONSE SUCCESS: tokens={result.usage.total_tokens} "
            f"(input={result.usage.prompt_tokens}, output={result.usage.completion_tokens})"
        )
        return result

    async def _execute(self, messages: list[ChatMessage]) -> ChatResult:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[m.model_dump() for m in messages],  # type: ignore[misc]
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            stream=False,
        )
        choice = response.choices[0]
        usage = response.usage
        return ChatResult(
            content=choice.message.content or "",
            model=response.model or self.model,
            usage=ChatUsage(
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
            ),
            finish_reason=choice.finish_reason,
        )
