"""Configuration management for the skillbase CLI.

Reads/writes a TOML config file and provides a typed Config dataclass.
Default location: ``~/.config/skillbase/config.toml``.
Override with the ``SKILLBASE_CONFIG`` environment variable.

Skill files (markdown with YAML front matter) live in ``skills_dir``,
``./skills`` by default.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

_DEFAULT_CONFIG_DIR = Path("~/.config/skillbase").expanduser()
_DEFAULT_SKILLS_DIR = Path("./skills")


def _config_path() -> Path:
    env = os.environ.get("SKILLBASE_CONFIG")
    if env:
        return Path(env).expanduser()
    return _DEFAULT_CONFIG_DIR / "config.toml"


@dataclass
class Config:
    anthropic_api_key: str = ""

    # "anthropic" or "bedrock"
    llm_provider: str = "anthropic"
    model: str = ""
    aws_region: str = ""

    # Store backend: "memory" (default, no external deps) or "postgres"
    store_provider: str = "memory"

    # Postgres settings (only used when store_provider == "postgres")
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "skillbase"
    db_user: str = "postgres"
    db_password: str = "postgres"

    skills_dir: str = str(_DEFAULT_SKILLS_DIR)

    @property
    def is_configured(self) -> bool:
        return bool(self.anthropic_api_key) or self.llm_provider == "bedrock"

    @property
    def uses_postgres(self) -> bool:
        return self.store_provider == "postgres"

    def to_dict(self) -> dict[str, Any]:
        """Canonical config dict for ``Skillbase.from_config``."""
        store_config: dict[str, Any] = {}
        if self.uses_postgres:
            store_config = {
                "host": self.db_host,
                "port": self.db_port,
                "database": self.db_name,
                "user": self.db_user,
                "password": self.db_password,
            }
        llm: dict[str, Any] = {"provider": self.llm_provider}
        if self.anthropic_api_key and self.llm_provider == "anthropic":
            llm["api_key"] = self.anthropic_api_key
        if self.model:
            llm["model"] = self.model
        if self.aws_region and self.llm_provider == "bedrock":
            llm["aws_region_name"] = self.aws_region
        return {
            "source": {"provider": "disk", "config": {"base_path": self.skills_dir}},
            "store": {"provider": self.store_provider, "config": store_config},
            "llm": llm,
        }


def load_config() -> Config:
    """Load config from disk, falling back to defaults + env overrides."""
    path = _config_path()
    cfg = Config()

    if path.exists():
        with open(path, "rb") as f:
            data = tomllib.load(f)
        llm_section = data.get("llm", {})
        store_section = data.get("store", {})
        db_section = data.get("database", {})
        skills_section = data.get("skills", {})

        cfg.anthropic_api_key = llm_section.get("api_key", cfg.anthropic_api_key)
        cfg.llm_provider = llm_section.get("provider", cfg.llm_provider)
        cfg.model = llm_section.get("model", cfg.model)
        cfg.aws_region = llm_section.get("aws_region", cfg.aws_region)

        cfg.store_provider = store_section.get("provider", cfg.store_provider)

        cfg.db_host = db_section.get("host", cfg.db_host)
        cfg.db_port = int(db_section.get("port", cfg.db_port))
        cfg.db_name = db_section.get("name", cfg.db_name)
        cfg.db_user = db_section.get("user", cfg.db_user)
        cfg.db_password = db_section.get("password", cfg.db_password)

        cfg.skills_dir = skills_section.get("dir", cfg.skills_dir)

    # Environment variables always take precedence
    cfg.anthropic_api_key = os.environ.get("ANTHROPIC_API_KEY", cfg.anthropic_api_key)
    cfg.store_provider = os.environ.get("SKILLBASE_STORE", cfg.store_provider)
    cfg.db_host = os.environ.get("POSTGRES_HOST", cfg.db_host)
    cfg.db_port = int(os.environ.get("POSTGRES_PORT", str(cfg.db_port)))
    cfg.db_name = os.environ.get("POSTGRES_DB", cfg.db_name)
    cfg.db_user = os.environ.get("POSTGRES_USER", cfg.db_user)
    cfg.db_password = os.environ.get("POSTGRES_PASSWORD", cfg.db_password)
    cfg.skills_dir = os.environ.get("SKILLBASE_SKILLS_DIR", cfg.skills_dir)

    return cfg


def save_config(cfg: Config) -> Path:
    """Write config to the TOML file. Returns the path written."""
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        "[llm]",
        f'provider = "{cfg.llm_provider}"',
        f'api_key = "{cfg.anthropic_api_key}"',
    ]
    if cfg.model:
        lines.append(f'model = "{cfg.model}"')
    if cfg.aws_region:
        lines.append(f'aws_region = "{cfg.aws_region}"')
    lines.extend(
        [
            "",
            "[store]",
            f'provider = "{cfg.store_provider}"',
            "",
        ]
    )

    if cfg.uses_postgres:
        lines.extend(
            [
                "[database]",
                f'host = "{cfg.db_host}"',
                f"port = {cfg.db_port}",
                f'name = "{cfg.db_name}"',
                f'user = "{cfg.db_user}"',
                f'password = "{cfg.db_password}"',
                "",
            ]
        )

    lines.extend(
        [
            "[skills]",
            f'dir = "{cfg.skills_dir}"',
            "",
        ]
    )

    path.write_text("\n".join(lines), encoding="utf-8")
    return path


def config_exists() -> bool:
    return _config_path().exists()


def config_path_display() -> str:
    return str(_config_path())
