from enum import StrEnum


class AnthropicModel(StrEnum):
    CLAUDE_SONNET_4 = "anthropic/claude-sonnet-4-20250514"
    CLAUDE_35_SONNET = "anthropic/claude-3-5-sonnet-20241022"
    CLAUDE_3_OPUS = "anthropic/claude-3-opus-20240229"
    CLAUDE_3_HAIKU = "anthropic/claude-3-haiku-20240307"


class BedrockModel(StrEnum):
    CLAUDE_SONNET_4 = "bedrock/anthropic.claude-sonnet-4-20250514-v1:0"
    CLAUDE_35_SONNET = "bedrock/anthropic.claude-3-5-sonnet-20241022-v2:0"
    CLAUDE_3_HAIKU = "bedrock/anthropic.claude-3-haiku-20240307-v1:0"
