"""Completion client implementations.

The core only depends on the ``CompletionClient`` protocol, so the
summarizer, fact extractor and chat service can be driven by any provider.
``GroqCompletionClient`` is the concrete implementation backed by Groq.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

from groq import AsyncGroq

DEFAULT_MODEL = "llama-3.1-70b-versatile"
MAX_STOP_SEQUENCES = 4


@dataclass
class SamplingParams:
    """Optional sampling parameters for a completion.

    Out-of-range values are dropped rather than rejected, so the provider
    falls back to its own defaults.
    """

    temperature: float | None = None
    top_p: float | None = None
    stop: list[str] | None = None
    max_tokens: int | None = None

    def to_request(self) -> dict[str, Any]:
        """Return only the valid parameters, ready for the API call."""
        body: dict[str, Any] = {}
        if _is_number(self.temperature) and 0 <= self.temperature <= 2:
            body["temperature"] = self.temperature
        if _is_number(self.top_p) and 0 <= self.top_p <= 1:
            body["top_p"] = self.top_p
        if self.stop:
            stop = [str(s).strip() for s in self.stop]
            stop = [s for s in stop if s][:MAX_STOP_SEQUENCES]
            if stop:
                body["stop"] = stop
        if isinstance(self.max_tokens, int) and not isinstance(self.max_tokens, bool):
            if self.max_tokens > 0:
                body["max_tokens"] = self.max_tokens
        return body


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting reported by the provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Completion:
    """Result of a completion call."""

    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str | None = None

    @property
    def message(self) -> dict[str, str]:
        """The generated message in chat format."""
        return {"role": "assistant", "content": self.content}


class CompletionClient(Protocol):
    """Protocol for a stateless chat completion call."""

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        params: SamplingParams | None = None,
    ) -> Completion:
        """Complete a finalized message list."""
        ...


class GroqCompletionClient:
    """CompletionClient implementation that wraps AsyncGroq.

    Example:
        from groq import AsyncGroq
        from threadkeeper.llm import GroqCompletionClient

        llm = GroqCompletionClient(AsyncGroq(api_key="..."))
        completion = await llm.complete(
            "llama-3.1-70b-versatile",
            [{"role": "user", "content": "Hello"}],
        )
    """

    def __init__(self, client: AsyncGroq) -> None:
        """Initialize the wrapper.

        Args:
            client: The AsyncGroq client instance to wrap.
        """
        self._client = client

    async def complete(
        self,
        model: str,
        messages: list[dict[str, Any]],
        params: SamplingParams | None = None,
    ) -> Completion:
        """Call the chat completions endpoint.

        Errors from the provider propagate unchanged; no retries are made.

        Args:
            model: The model id.
            messages: Finalized ordered message list.
            params: Optional sampling parameters.

        Returns:
            The generated text with token usage.
        """
        extra = params.to_request() if params else {}
        response = await self._client.chat.completions.create(
            model=model,
            messages=messages,
            **extra,
        )

        choice = response.choices[0]
        return Completion(
            content=choice.message.content or "",
            usage=_usage_from_response(response),
            finish_reason=getattr(choice, "finish_reason", None),
        )


def _usage_from_response(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        total_tokens=getattr(usage, "total_tokens", 0) or 0,
    )
