from __future__ import annotations

from pathlib import Path

import pytest

from skillbase import Skillbase
from skillbase.config import parse_config
from skillbase.llm.litellm import LiteLLMClient
from skillbase.store.memory import InMemoryStore
from skillbase.sync import DiskKnowledgeSource


def test_parse_config_builds_components(tmp_path: Path) -> None:
    source, store, llm = parse_config(
        {
            "source": {"provider": "disk", "config": {"base_path": str(tmp_path)}},
            "llm": {"provider": "anthropic", "api_key": "sk-ant-test"},
        }
    )
    assert isinstance(source, DiskKnowledgeSource)
    assert isinstance(store, InMemoryStore)
    assert isinstance(llm, LiteLLMClient)
    assert llm.model == "anthropic/claude-sonnet-4-20250514"


def test_bedrock_default_model() -> None:
    _, _, llm = parse_config({"llm": {"provider": "bedrock", "aws_region_name": "eu-west-1"}})
    assert llm.model.startswith("bedrock/")


def test_llm_section_required() -> None:
    with pytest.raises(ValueError, match="llm"):
        parse_config({})


def test_unknown_provider() -> None:
    with pytest.raises(ValueError, match="Unknown store provider"):
        parse_config({"store": {"provider": "redis"}, "llm": {"api_key": "k"}})


def test_facade_from_config() -> None:
    sb = Skillbase.from_config({"llm": {"api_key": "k"}})
    assert isinstance(sb.store, InMemoryStore)
