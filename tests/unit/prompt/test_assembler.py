from __future__ import annotations

from skillbase.prompt import (
    DEFAULT_QUESTION_SECTIONS,
    FALLBACK_HEADER,
    FALLBACK_PREAMBLE,
    KNOWLEDGE_HEADER,
    FallbackDocument,
    PromptSection,
    assemble,
    format_fallback,
    format_knowledge,
    parse_answer_sections,
)
from skillbase.prompt.sections import sections_from_overrides
from tests.conftest import make_entry

SECTIONS = [
    PromptSection(id="a", title="Alpha", text="first"),
    PromptSection(id="b", title="Beta", text="second", enabled=False),
    PromptSection(id="c", title="Gamma", text="   "),
    PromptSection(id="d", title="Delta", text="fourth"),
]


def test_disabled_and_blank_sections_are_omitted() -> None:
    prompt = assemble(SECTIONS, None)
    assert prompt == "## Alpha\nfirst\n\n## Delta\nfourth"


def test_knowledge_block_follows_sections() -> None:
    prompt = assemble(SECTIONS[:1], "### Skill 1: X\nbody")
    assert prompt == f"## Alpha\nfirst\n\n{KNOWLEDGE_HEADER}\n\n### Skill 1: X\nbody"


def test_fallback_only_without_knowledge() -> None:
    with_knowledge = assemble(SECTIONS[:1], "skills", "reference")
    assert FALLBACK_HEADER not in with_knowledge
    assert "reference" not in with_knowledge

    without = assemble(SECTIONS[:1], "  ", "reference")
    assert KNOWLEDGE_HEADER not in without
    assert without.endswith(f"{FALLBACK_HEADER}\n\n{FALLBACK_PREAMBLE}\n\nreference")


def test_default_sections_render_in_order() -> None:
    prompt = assemble(DEFAULT_QUESTION_SECTIONS, None)
    positions = [prompt.index(f"## {s.title}") for s in DEFAULT_QUESTION_SECTIONS]
    assert positions == sorted(positions)


def test_section_overrides() -> None:
    sections = sections_from_overrides(
        {"persona": {"enabled": False}, "edge_cases": {"text": "Say N/A."}}
    )
    by_id = {s.id: s for s in sections}
    assert by_id["persona"].enabled is False
    assert by_id["edge_cases"].text == "Say N/A."
    assert len(sections) == len(DEFAULT_QUESTION_SECTIONS)


def test_format_knowledge_numbers_skills() -> None:
    text = format_knowledge([make_entry("SSO", "SAML"), make_entry("MFA", "TOTP")])
    assert text == "### Skill 1: SSO\nSAML\n\n### Skill 2: MFA\nTOTP"


def test_format_fallback_skips_blank_documents() -> None:
    text = format_fallback(
        [
            FallbackDocument(title="Empty", content=" "),
            FallbackDocument(title="Policy", content="We encrypt.", url="https://x/p"),
        ]
    )
    assert text == "### Reference 1: Policy\nSource: https://x/p\nWe encrypt."


# ── Answer parsing ──────────────────────────────────────────────────


def test_parse_labelled_answer() -> None:
    details = parse_answer_sections(
        "**Answer:** Yes, we support SSO.\n"
        "**Confidence:** High\n"
        "**Sources:** Single Sign-On\n"
        "**Reasoning:**\nDocumented.\n"
        "**Remarks:** None"
    )
    assert details.response == "Yes, we support SSO."
    assert details.confidence == "High"
    assert details.sources == "Single Sign-On"
    assert details.reasoning == "Documented."
    assert details.inference is None
    assert details.remarks == "None"


def test_parse_unlabelled_answer_is_whole_response() -> None:
    details = parse_answer_sections("Just a plain answer.")
    assert details.response == "Just a plain answer."
    assert details.confidence is None
