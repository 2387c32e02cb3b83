# completion.py
# Completion service boundary.
#
# The loop only ever sees CompletionService.complete(): one request in, one
# response (text and/or function calls) out, or ProviderError. Retries,
# backoff and provider auth belong to the implementation, not the loop.

import logging
import os
from abc import ABC, abstractmethod

from dotenv import load_dotenv
from openai import OpenAI, OpenAIError

from react_harness.deadline import Deadline
from react_harness.errors import ProviderError
from react_harness.models import CompletionRequest, CompletionResponse, ToolCall

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class CompletionService(ABC):
    """Anything that can turn a chat request into one model turn."""

    @abstractmethod
    def complete(self, request: CompletionRequest, deadline: Deadline) -> CompletionResponse:
        """Return the model's next turn. Raise ProviderError on failure."""


class OpenAICompletionService(CompletionService):
    """
    Chat-completions client for any OpenAI-compatible endpoint.

    Defaults to OpenRouter with OPENROUTER_API_KEY from the environment
    (or a .env file).

    Example:
        service = OpenAICompletionService(model="anthropic/claude-3.5-haiku")
    """

    def __init__(
        self,
        model: str,
        base_url: str | None = None,
        api_key: str | None = None,
        temperature: float | None = None,
        client: OpenAI | None = None,
    ) -> None:
        load_dotenv()
        self._model = model
        self._temperature = temperature
        self._client = client or OpenAI(
            base_url=base_url or os.getenv("OPENAI_BASE_URL", OPENROUTER_BASE_URL),
            api_key=api_key or os.getenv("OPENROUTER_API_KEY") or os.getenv("OPENAI_API_KEY"),
            max_retries=int(os.getenv("REACT_PROVIDER_RETRIES", "2")),
        )

    @property
    def model(self) -> str:
        return self._model

    def complete(self, request: CompletionRequest, deadline: Deadline) -> CompletionResponse:
        params: dict = {
            "model": self._model,
            "messages": request.messages,
            "timeout": max(deadline.remaining(), 0.1),
        }
        if request.tools:
            params["tools"] = request.tools
            if request.tool_choice:
                params["tool_choice"] = request.tool_choice
        if self._temperature is not None:
            params["temperature"] = self._temperature

        try:
            response = self._client.chat.completions.create(**params)
        except OpenAIError as exc:
            raise ProviderError(
                f"Chat completion failed ({type(exc).__name__}): {exc}",
                "Check the API key, model name and provider status; retries are configured on the client.",
            ) from exc

        if not response.choices:
            raise ProviderError("Provider returned no choices.", "Retry the request or try another model.")

        message = response.choices[0].message
        tool_calls = [
            ToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments or "{}")
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]
        logger.debug("Completion: %d chars, %d tool call(s)", len(message.content or ""), len(tool_calls))
        return CompletionResponse(content=message.content, tool_calls=tool_calls)
