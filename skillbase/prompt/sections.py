"""Default system-prompt sections for questionnaire answering.

Sections are rendered in list order by :func:`skillbase.prompt.assembler.assemble`.
Callers customise them with :func:`sections_from_overrides`, which keeps the
default ordering and only replaces the fields that are overridden.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True)
class PromptSection:
    id: str
    title: str
    text: str
    enabled: bool = True
    description: str = ""


DEFAULT_QUESTION_SECTIONS: tuple[PromptSection, ...] = (
    PromptSection(
        id="persona",
        title="Role & Mission",
        description="Role of the assistant as a questionnaire specialist.",
        text="\n".join(
            [
                "You are a security questionnaire specialist completing vendor "
                "assessments with accurate, professional responses.",
                "Provide fast, traceable answers based on the documented security "
                "posture while keeping source attribution.",
                "Skills contain authoritative, pre-verified knowledge and are "
                "consulted before any other source.",
            ]
        ),
    ),
    PromptSection(
        id="source_priority",
        title="Resource Priority Order",
        description="Order in which sources are consulted.",
        text="\n".join(
            [
                "Use sources in this explicit order:",
                "",
                "1. Skill Library: treat as official documentation",
                "2. Reference documents supplied with the question",
                "3. General knowledge, clearly marked as such",
                "",
                "Never invent details. If information is missing, state what is "
                "unknown and mark confidence appropriately.",
            ]
        ),
    ),
    PromptSection(
        id="confidence_levels",
        title="Confidence Ratings",
        description="How to assign High/Medium/Low confidence.",
        text="\n".join(
            [
                "HIGH: explicitly stated in the Skills or reference documents.",
                "MEDIUM: reasonably inferred from documented controls; explain "
                "the inference step by step.",
                "LOW: no documentation available; answer 'Requires verification'.",
            ]
        ),
    ),
    PromptSection(
        id="formatting_attribution",
        title="Output Format (CRITICAL)",
        description="Exact section headers every answer must use.",
        text="\n".join(
            [
                "Format ALL responses with these exact section headers:",
                "",
                "Answer:",
                "[Your 1-3 sentence answer here]",
                "",
                "Confidence: High",
                "[or Medium or Low]",
                "",
                "Sources:",
                "[URLs and document references, comma-separated]",
                "",
                "Reasoning:",
                "[Which skills matched and what was found directly]",
                "",
                "Inference:",
                "[What was inferred, or 'None' if everything was found directly]",
                "",
                "Remarks:",
                "[Optional: verification notes, assumptions, follow-up needed]",
            ]
        ),
    ),
    PromptSection(
        id="edge_cases",
        title="Edge Cases & Not Applicable",
        description="Non-applicable scenarios and missing information.",
        text="\n".join(
            [
                "- If the question does not apply, answer 'Not applicable.' with "
                "supporting reasoning.",
                "- Call out assumptions or missing documentation in Remarks.",
                "- Never fabricate compliance claims or controls.",
            ]
        ),
    ),
)


def sections_from_overrides(
    overrides: Mapping[str, Mapping[str, Any]] | None = None,
    base: Sequence[PromptSection] = DEFAULT_QUESTION_SECTIONS,
) -> list[PromptSection]:
    """Apply per-section overrides keyed by section id.

    Each override may set ``enabled``, ``title`` and/or ``text``. Unknown ids
    are ignored.
    """
    if not overrides:
        return list(base)
    result: list[PromptSection] = []
    for section in base:
        patch = overrides.get(section.id)
        if patch:
            allowed = {k: v for k, v in patch.items() if k in ("enabled", "title", "text")}
            section = replace(section, **allowed)
        result.append(section)
    return result
