"""Markdown skill files with YAML front matter.

A knowledge source is the source of truth that the store is synced
against.  ``DiskKnowledgeSource`` keeps one ``<slug>.md`` file per entry::

    ---
    id: 6f0c...
    title: Single Sign-On
    tier: core
    categories: [Identity]
    tags: [sso, saml]
    active: true
    created: '2025-01-01T00:00:00+00:00'
    updated: '2025-01-02T00:00:00+00:00'
    ---
    Markdown body...
"""

from __future__ import annotations

import hashlib
import json
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from pathlib import Path

import yaml

from skillbase.models import KnowledgeEntry, Tier
from skillbase.models.utils import utcnow

_FRONT_MATTER = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)(.*)\Z", re.DOTALL)
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")
_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "skillbase:skill-file")

IGNORED_FILES = frozenset({"README.md"})


class SkillFileError(ValueError):
    """A skill file cannot be parsed."""


def skill_slug(title: str) -> str:
    """``"Compliance & Certifications"`` → ``"compliance-and-certifications"``."""
    return _SLUG_INVALID.sub("-", title.lower().replace("&", "and")).strip("-")


@dataclass
class SkillFile:
    slug: str
    title: str
    content: str
    id: str = ""
    tier: Tier = Tier.library
    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    active: bool = True
    created: datetime = field(default_factory=utcnow)
    updated: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.id:
            # Files without an id get a stable one derived from their slug.
            self.id = str(uuid.uuid5(_ID_NAMESPACE, self.slug))

    @classmethod
    def from_entry(cls, entry: KnowledgeEntry, slug: str | None = None) -> SkillFile:
        return cls(
            slug=slug or skill_slug(entry.title),
            id=entry.id,
            title=entry.title,
            content=entry.content,
            tier=entry.tier,
            categories=list(entry.categories),
            tags=list(entry.tags),
            active=entry.is_active,
            created=entry.created_at,
            updated=entry.updated_at,
        )

    def content_hash(self) -> str:
        """Digest of the fields that matter to the store. Timestamps excluded."""
        payload = json.dumps(
            {
                "title": self.title,
                "content": self.content,
                "tier": self.tier.value,
                "categories": self.categories,
                "tags": self.tags,
                "active": self.active,
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _as_datetime(value: object) -> datetime:
    # Unquoted YAML timestamps load as datetime or date objects.
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time())
    elif isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value)
    else:
        return utcnow()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _as_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]  # type: ignore[union-attr]


def parse_skill_file(slug: str, text: str) -> SkillFile:
    match = _FRONT_MATTER.match(text)
    if match is None:
        raise SkillFileError(f"{slug}.md has no front matter")
    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise SkillFileError(f"{slug}.md has invalid front matter: {exc}") from exc
    if not isinstance(meta, dict):
        raise SkillFileError(f"{slug}.md front matter must be a mapping")
    title = meta.get("title")
    if not title:
        raise SkillFileError(f"{slug}.md is missing a title")
    try:
        tier = Tier(meta.get("tier", Tier.library))
    except ValueError as exc:
        raise SkillFileError(f"{slug}.md has unknown tier {meta['tier']!r}") from exc
    try:
        created = _as_datetime(meta.get("created"))
        updated = _as_datetime(meta.get("updated"))
    except ValueError as exc:
        raise SkillFileError(f"{slug}.md has an invalid timestamp: {exc}") from exc
    return SkillFile(
        slug=slug,
        id=str(meta.get("id") or ""),
        title=str(title),
        content=match.group(2).strip(),
        tier=tier,
        categories=_as_list(meta.get("categories")),
        tags=_as_list(meta.get("tags")),
        active=meta.get("active") is not False,
        created=created,
        updated=updated,
    )


def render_skill_file(skill: SkillFile) -> str:
    meta = {
        "id": skill.id,
        "title": skill.title,
        "tier": skill.tier.value,
        "categories": skill.categories,
        "tags": skill.tags,
        "active": skill.active,
        "created": skill.created.isoformat(),
        "updated": skill.updated.isoformat(),
    }
    front = yaml.safe_dump(meta, sort_keys=False, allow_unicode=True)
    return f"---\n{front}---\n{skill.content.strip()}\n"


class KnowledgeSource(ABC):
    """Source of truth for knowledge entries."""

    @abstractmethod
    def list_slugs(self) -> list[str]: ...

    @abstractmethod
    def read(self, slug: str) -> SkillFile: ...

    @abstractmethod
    def write(self, skill: SkillFile) -> None: ...

    @abstractmethod
    def exists(self, slug: str) -> bool: ...

    @abstractmethod
    def delete(self, slug: str) -> None: ...


class DiskKnowledgeSource(KnowledgeSource):
    """One markdown file per skill in a local directory."""

    def __init__(self, base_path: str | Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    def _resolve(self, slug: str) -> Path:
        return self._base / f"{slug}.md"

    def list_slugs(self) -> list[str]:
        return sorted(
            p.stem
            for p in self._base.glob("*.md")
            if p.is_file() and p.name not in IGNORED_FILES
        )

    def read(self, slug: str) -> SkillFile:
        return parse_skill_file(slug, self._resolve(slug).read_text(encoding="utf-8"))

    def write(self, skill: SkillFile) -> None:
        self._resolve(skill.slug).write_text(render_skill_file(skill), encoding="utf-8")

    def exists(self, slug: str) -> bool:
        return self._resolve(slug).exists()

    def delete(self, slug: str) -> None:
        path = self._resolve(slug)
        if path.is_file():
            path.unlink()
