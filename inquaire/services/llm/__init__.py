from inquaire.services.llm.base import LLMProvider, LLMProviderError, LLMResponse
from inquaire.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMProviderError", "LLMResponse", "OpenAIProvider"]
