from skillbase.prompt.assembler import (
    FALLBACK_HEADER,
    FALLBACK_PREAMBLE,
    KNOWLEDGE_HEADER,
    FallbackDocument,
    assemble,
    format_fallback,
    format_knowledge,
    parse_answer_sections,
)
from skillbase.prompt.sections import (
    DEFAULT_QUESTION_SECTIONS,
    PromptSection,
    sections_from_overrides,
)

__all__ = [
    "FALLBACK_HEADER",
    "FALLBACK_PREAMBLE",
    "KNOWLEDGE_HEADER",
    "DEFAULT_QUESTION_SECTIONS",
    "FallbackDocument",
    "PromptSection",
    "assemble",
    "format_fallback",
    "format_knowledge",
    "parse_answer_sections",
    "sections_from_overrides",
]
