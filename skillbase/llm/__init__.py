from skillbase.llm.base import BaseLLMClient, Completion, Usage
from skillbase.llm.litellm import LiteLLMClient
from skillbase.llm.models import AnthropicModel, BedrockModel

__all__ = [
    "AnthropicModel",
    "BaseLLMClient",
    "BedrockModel",
    "Completion",
    "LiteLLMClient",
    "Usage",
]
