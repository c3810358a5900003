from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from skillbase.models import AnswerDetails, KnowledgeEntry
from skillbase.prompt.sections import PromptSection

KNOWLEDGE_HEADER = "# KNOWLEDGE BASE"
FALLBACK_HEADER = "# REFERENCE DOCUMENTS (Fallback Context)"
FALLBACK_PREAMBLE = (
    "No pre-verified skills matched this question. The following reference "
    "documents were fetched as fallback context:"
)


@dataclass(frozen=True)
class FallbackDocument:
    title: str
    content: str
    url: str | None = None


def _blank(text: str | None) -> bool:
    return text is None or not text.strip()


def render_sections(sections: Iterable[PromptSection]) -> str:
    return "\n\n".join(
        f"## {s.title}\n{s.text}" for s in sections if s.enabled and not _blank(s.text)
    )


def assemble(
    sections: Sequence[PromptSection],
    knowledge_text: str | None,
    fallback_text: str | None = None,
) -> str:
    """Build the system prompt.

    Enabled sections with text come first, in the order given.  The
    knowledge block follows when there is knowledge; fallback reference
    material is only included when there is no knowledge at all.
    """
    blocks: list[str] = []
    rendered = render_sections(sections)
    if rendered:
        blocks.append(rendered)
    if not _blank(knowledge_text):
        blocks.append(f"{KNOWLEDGE_HEADER}\n\n{knowledge_text.strip()}")
    elif not _blank(fallback_text):
        blocks.append(
            f"{FALLBACK_HEADER}\n\n{FALLBACK_PREAMBLE}\n\n{fallback_text.strip()}"
        )
    return "\n\n".join(blocks)


def format_knowledge(entries: Iterable[KnowledgeEntry]) -> str:
    return "\n\n".join(
        f"### Skill {n}: {entry.title}\n{entry.content}"
        for n, entry in enumerate(entries, start=1)
    )


def format_fallback(docs: Iterable[FallbackDocument]) -> str:
    blocks: list[str] = []
    for doc in docs:
        if _blank(doc.content):
            continue
        header = f"### Reference {len(blocks) + 1}: {doc.title}"
        if doc.url:
            header += f"\nSource: {doc.url}"
        blocks.append(f"{header}\n{doc.content}")
    return "\n\n".join(blocks)


# ── Answer parsing ──────────────────────────────────────────────────

_HEADERS = ("answer", "confidence", "sources", "reasoning", "inference", "remarks")


def _match_header(line: str) -> tuple[str, str] | None:
    """Return ``(section, rest_of_line)`` if *line* opens a section."""
    stripped = line.strip()
    lowered = stripped.lower().replace("**", "")
    for name in _HEADERS:
        if lowered == name:
            return name, ""
        if lowered.startswith(f"{name}:"):
            rest = stripped.split(":", 1)[1].replace("**", "", 1).strip()
            return name, rest
    return None


def parse_answer_sections(text: str) -> AnswerDetails:
    """Split a model answer into its labelled parts.

    Lines before the first recognised header (or under ``Answer:``) form
    the response.  When nothing is recognised the whole text is the
    response.
    """
    buckets: dict[str, list[str]] = {name: [] for name in _HEADERS}
    current = "answer"
    for raw in text.split("\n"):
        header = _match_header(raw)
        if header is not None:
            current, rest = header
            if rest:
                buckets[current].append(rest)
            continue
        buckets[current].append(raw)

    def joined(name: str) -> str | None:
        value = "\n".join(buckets[name]).strip()
        return value or None

    return AnswerDetails(
        response=joined("answer") or text.strip(),
        confidence=joined("confidence"),
        sources=joined("sources"),
        reasoning=joined("reasoning"),
        inference=joined("inference"),
        remarks=joined("remarks"),
    )
