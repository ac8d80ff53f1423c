"""
LLM completion service.

Thin wrapper around the OpenAI Chat Completions API. Every request is bounded
by the client timeout (OPENAI_TIMEOUT_SECONDS); a timeout surfaces as an
openai.APITimeoutError and is handled by callers like any other LLM failure.
"""

import logging
from typing import Any, Dict, List, Optional

# pyright: reportUnknownMemberType=false

from openai import OpenAI
from openai.types.chat import ChatCompletionMessage

from core.config import OPENAI_API_KEY, OPENAI_MODEL, OPENAI_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# Global singleton instance
_llm_service: Optional['LLMService'] = None


class LLMService:
    """
    Service for chat completion requests.

    Attributes:
        client: OpenAI client
        model: Model identifier used for every request
    """

    def __init__(self, client: Optional[OpenAI] = None, model: str = OPENAI_MODEL) -> None:
        self.client = client or OpenAI(
            api_key=OPENAI_API_KEY,
            timeout=OPENAI_TIMEOUT_SECONDS,
            max_retries=1,
        )
        self.model = model

    def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        max_tokens: Optional[int] = None,
    ) -> Optional[ChatCompletionMessage]:
        """
        Send one chat completion request.

        Args:
            messages: Ordered chat messages ({"role", "content", ...})
            tools: Tool catalogue; when given, tool_choice is "auto"
            max_tokens: Optional response length cap

        Returns:
            The first choice's message, or None if the response has no choices

        Raises:
            openai.OpenAIError: On API failure or timeout
        """
        kwargs: Dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        response = self.client.chat.completions.create(**kwargs)
        if not response.choices:
            logger.warning(f"Chat completion returned no choices (model={self.model})")
            return None
        return response.choices[0].message


def get_llm_service() -> LLMService:
    """
    Get the global LLM service instance.

    Returns:
        LLMService: The shared service (created on first use)
    """
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
