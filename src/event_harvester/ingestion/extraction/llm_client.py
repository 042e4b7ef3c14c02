"""
LLM Client for event extraction.

Provides a unified interface for LLM calls using LangChain.
Supports OpenAI and Anthropic providers with structured output.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Type, TypeVar

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-haiku-20240307",
}


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def invoke_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        output_schema: Type[T],
        timeout_s: Optional[float] = None,
    ) -> T:
        """Invoke the LLM and return structured output matching the schema."""
        pass


class LangChainLLMClient(BaseLLMClient):
    """
    LLM Client using LangChain for structured output.

    Uses with_structured_output for Pydantic model enforcement. Transport
    retries are delegated to the chat model (``max_retries``).
    """

    def __init__(
        self,
        provider: str = "openai",
        model_name: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 4000,
        timeout_s: float = 60.0,
        max_retries: int = 2,
    ):
        """
        Initialize the LangChain LLM client.

        Args:
            provider: "openai" or "anthropic"
            model_name: Model identifier (e.g., "gpt-4o-mini", "claude-3-haiku-20240307")
            api_key: Provider API key
            temperature: Temperature for generation (0.0-1.0)
            max_tokens: Maximum tokens in response
            timeout_s: Request timeout for one call
            max_retries: Retries performed by the chat model itself
        """
        if provider not in DEFAULT_MODELS:
            raise ValueError(f"Unknown provider: {provider}")
        self.provider = provider
        self.model_name = model_name
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self._llm = None

    def _build_llm(self, timeout_s: float):
        if self.provider == "openai":
            from langchain_openai import ChatOpenAI

            return ChatOpenAI(
                model=self.model_name,
                api_key=self.api_key,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=timeout_s,
                max_retries=self.max_retries,
            )

        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(
            model=self.model_name,
            api_key=self.api_key,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=timeout_s,
            max_retries=self.max_retries,
        )

    def _get_llm(self, timeout_s: Optional[float] = None):
        """Lazy initialization of LLM. A shorter timeout gets a one-off model."""
        if timeout_s is not None and timeout_s < self.timeout_s:
            return self._build_llm(timeout_s)
        if self._llm is None:
            self._llm = self._build_llm(self.timeout_s)
        return self._llm

    def invoke_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        output_schema: Type[T],
        timeout_s: Optional[float] = None,
    ) -> T:
        """
        Invoke the LLM with system and user prompts and parse the response
        into output_schema.
        """
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]
        structured_llm = self._get_llm(timeout_s).with_structured_output(output_schema)
        return structured_llm.invoke(messages)


def create_llm_client(settings) -> Optional[LangChainLLMClient]:
    """
    Factory function to create an LLM client from settings.

    Returns:
        LLM client instance, or None when AI extraction is disabled or no API
        key is configured for the provider
    """
    if not settings.AI_ENABLED:
        return None

    api_key = settings.llm_api_key()
    if not api_key:
        logger.warning(f"No API key found for {settings.LLM_PROVIDER}; AI extraction disabled")
        return None

    return LangChainLLMClient(
        provider=settings.LLM_PROVIDER,
        model_name=settings.LLM_MODEL or DEFAULT_MODELS.get(settings.LLM_PROVIDER, "gpt-4o-mini"),
        api_key=api_key,
        temperature=settings.LLM_TEMPERATURE,
        max_tokens=settings.LLM_MAX_TOKENS,
        timeout_s=settings.AI_TIMEOUT_S,
        max_retries=settings.AI_MAX_RETRIES,
    )
