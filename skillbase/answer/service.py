from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from skillbase.answer.generator import AnswerGenerator
from skillbase.errors import ValidationError
from skillbase.llm.base import Usage
from skillbase.models import AnswerDetails, BatchItem, ItemStatus, KnowledgeEntry
from skillbase.models import RateLimitSettings, Turn
from skillbase.models.utils import utcnow
from skillbase.prompt import (
    DEFAULT_QUESTION_SECTIONS,
    FallbackDocument,
    PromptSection,
    assemble,
    format_fallback,
    format_knowledge,
    parse_answer_sections,
)
from skillbase.search.skills import KnowledgeRetriever
from skillbase.settings import load_rate_limit_settings
from skillbase.store.base import Store
from skillbase.usage import UsageTracker

logger = logging.getLogger(__name__)

QUESTIONS_FEATURE = "questions"

FallbackInput = str | Sequence[FallbackDocument] | None


@dataclass
class AnswerResponse:
    answer: str
    details: AnswerDetails
    conversation_history: list[Turn]
    used_fallback: bool
    used_skills: list[str] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)


def _fallback_text(fallback: FallbackInput) -> str:
    if fallback is None:
        return ""
    if isinstance(fallback, str):
        return fallback
    return format_fallback(fallback)


class AnswerService:
    """Answers questions end to end.

    Retrieval, prompt assembly, generation and usage accounting for a
    single question; the batch orchestrator calls it once per item.
    """

    def __init__(
        self,
        store: Store,
        generator: AnswerGenerator,
        retriever: KnowledgeRetriever,
        usage: UsageTracker,
        sections: Sequence[PromptSection] = DEFAULT_QUESTION_SECTIONS,
    ) -> None:
        self._store = store
        self._generator = generator
        self._retriever = retriever
        self._usage = usage
        self.sections = list(sections)

    def _sections(self, prompt: str | None) -> list[PromptSection]:
        if prompt and prompt.strip():
            return [PromptSection(id="custom", title="Instructions", text=prompt)]
        return self.sections

    async def build_prompt(
        self,
        question: str,
        *,
        prompt: str | None = None,
        skills: Sequence[KnowledgeEntry] | None = None,
        fallback_content: FallbackInput = None,
    ) -> tuple[str, list[KnowledgeEntry], bool]:
        """Return ``(system_prompt, skills_used, used_fallback)``."""
        if skills is None:
            ranked = await self._retriever.retrieve(question)
            skills = [r.entry for r in ranked]
        knowledge = format_knowledge(skills)
        fallback = _fallback_text(fallback_content)
        used_fallback = not skills and bool(fallback.strip())
        system_prompt = assemble(self._sections(prompt), knowledge, fallback)
        return system_prompt, list(skills), used_fallback

    async def answer_question(
        self,
        question: str,
        prompt: str | None = None,
        skills: Sequence[KnowledgeEntry] | None = None,
        fallback_content: FallbackInput = None,
        *,
        settings: RateLimitSettings | None = None,
        user_id: str | None = None,
        feature: str = QUESTIONS_FEATURE,
    ) -> AnswerResponse:
        if not question or not question.strip():
            raise ValidationError("Question is required")
        if settings is None:
            settings = await load_rate_limit_settings(self._store)

        system_prompt, used, used_fallback = await self.build_prompt(
            question, prompt=prompt, skills=skills, fallback_content=fallback_content
        )
        result = await self._generator.answer(question, system_prompt, (), settings)
        await self._usage.log(
            feature,
            result.model,
            result.usage,
            user_id=user_id,
            metadata={"skill_count": len(used), "used_fallback": used_fallback},
        )
        return AnswerResponse(
            answer=result.text,
            details=parse_answer_sections(result.text),
            conversation_history=result.updated_history,
            used_fallback=used_fallback,
            used_skills=[s.id for s in used],
            usage=result.usage,
        )

    async def follow_up(
        self,
        item: BatchItem,
        message: str,
        *,
        settings: RateLimitSettings | None = None,
        user_id: str | None = None,
    ) -> AnswerResponse:
        """Continue a completed item's conversation with *message*.

        The system prompt is rebuilt from the skills the item was answered
        with; the item's history is extended and persisted.
        """
        if item.status is not ItemStatus.completed:
            raise ValidationError(
                f"Item {item.id} has no completed answer to follow up on"
            )
        if not message or not message.strip():
            raise ValidationError("Message is required")
        if settings is None:
            settings = await load_rate_limit_settings(self._store)

        skills: list[KnowledgeEntry] = []
        for skill_id in item.used_skills:
            entry = await self._store.get_knowledge(skill_id)
            if entry is not None and entry.is_active:
                skills.append(entry)
        system_prompt = assemble(self.sections, format_knowledge(skills))

        result = await self._generator.answer(
            message, system_prompt, item.conversation_history, settings
        )
        await self._usage.log(
            QUESTIONS_FEATURE,
            result.model,
            result.usage,
            user_id=user_id,
            metadata={"item_id": item.id, "follow_up": True},
        )
        item.conversation_history = result.updated_history
        item.updated_at = utcnow()
        await self._store.save_batch_item(item)
        logger.info("[%s] Follow-up answered", item.id)
        return AnswerResponse(
            answer=result.text,
            details=parse_answer_sections(result.text),
            conversation_history=result.updated_history,
            used_fallback=item.used_fallback,
            used_skills=[s.id for s in skills],
            usage=result.usage,
        )
