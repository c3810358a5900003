from __future__ import annotations

import argparse
import asyncio
import getpass
import logging
import sys
from collections.abc import Callable, Coroutine
from dataclasses import replace
from pathlib import Path
from typing import Any

from skillbase import Skillbase
from skillbase.cli import output as out
from skillbase.cli.config import (
    Config,
    config_exists,
    config_path_display,
    load_config,
    save_config,
)
from skillbase.errors import (
    AuthorizationError,
    ProviderError,
    RateLimited,
    SkillbaseError,
    ValidationError,
)
from skillbase.models import Actor, BatchItem, Capability, Tier
from skillbase.prompt import FallbackDocument

logger = logging.getLogger(__name__)

DESCRIPTION = """\
skillbase: answer security questionnaires from a curated knowledge base

Skills are markdown files with YAML front matter kept in a skills
directory. skillbase syncs them into a store, ranks them against each
question, and asks Claude for an answer with confidence, sources and
remarks. Large questionnaires run as throttled batches.

Quick start: skillbase ask "Do you support SSO?\""""

EXIT_VALIDATION = 2
EXIT_FAILURE = 1


# ── Infrastructure helpers ──────────────────────────────────────────


def _build_sb(cfg: Config) -> Skillbase:
    return Skillbase.from_config(cfg.to_dict())


def _local_actor() -> Actor:
    """The CLI operator owns the local knowledge base."""
    return Actor(id=getpass.getuser(), capabilities=frozenset({Capability.ADMIN}))


async def _open(cfg: Config) -> Skillbase:
    """Build and initialise; an in-memory store is filled from the skills dir."""
    sb = _build_sb(cfg)
    await sb.init()
    if not cfg.uses_postgres and Path(cfg.skills_dir).is_dir():
        summary = await sb.trigger_sync(_local_actor())
        logger.info("Loaded %d skill(s) from %s", summary.created, cfg.skills_dir)
    return sb


def _require_api_key(cfg: Config) -> None:
    if cfg.is_configured:
        return
    out.error(
        "Anthropic API key not configured. "
        "Run 'skillbase config set-key' or set ANTHROPIC_API_KEY."
    )
    sys.exit(EXIT_FAILURE)


def _require_persistent(cfg: Config, command: str) -> None:
    """Exit with guidance if the store is not PostgreSQL."""
    if cfg.uses_postgres:
        return
    out.error(f"'{command}' requires PostgreSQL for persistent storage.")
    print()
    out.info("To set up PostgreSQL:")
    out.next_step("skillbase config set-store postgres")
    sys.exit(EXIT_FAILURE)


def _read_fallback(paths: list[str] | None) -> list[FallbackDocument]:
    docs: list[FallbackDocument] = []
    for raw in paths or []:
        path = Path(raw)
        docs.append(
            FallbackDocument(
                title=path.stem,
                content=path.read_text(encoding="utf-8"),
                url=path.resolve().as_uri(),
            )
        )
    return docs


# ── config ──────────────────────────────────────────────────────────


async def cmd_config_show(args: argparse.Namespace) -> None:
    cfg = load_config()
    out.header("Configuration")
    out.kv("config file", config_path_display())
    out.kv("exists", "yes" if config_exists() else "no")
    out.kv("llm provider", cfg.llm_provider)
    out.kv("model", cfg.model or out.dim("(default)"))
    key = cfg.anthropic_api_key
    out.kv("api key", f"{key[:7]}…{key[-4:]}" if len(key) > 12 else out.dim("(not set)"))
    out.kv("store", cfg.store_provider)
    if cfg.uses_postgres:
        out.kv("database", f"{cfg.db_user}@{cfg.db_host}:{cfg.db_port}/{cfg.db_name}")
    out.kv("skills dir", cfg.skills_dir)


async def cmd_config_set_key(args: argparse.Namespace) -> None:
    cfg = load_config()
    key = args.key or getpass.getpass("  Anthropic API key: ").strip()
    if not key:
        out.error("No key provided")
        sys.exit(EXIT_VALIDATION)
    cfg.anthropic_api_key = key
    path = save_config(cfg)
    out.success(f"API key saved to {path}")


async def cmd_config_set_store(args: argparse.Namespace) -> None:
    cfg = load_config()
    cfg.store_provider = args.provider
    if args.provider == "postgres":
        cfg.db_host = args.host or cfg.db_host
        cfg.db_port = args.port or cfg.db_port
        cfg.db_name = args.name or cfg.db_name
        cfg.db_user = args.user or cfg.db_user
        cfg.db_password = args.password or cfg.db_password
    path = save_config(cfg)
    out.success(f"Store set to {args.provider} ({path})")
    if args.provider == "postgres":
        out.info("Create the tables with:")
        out.next_step("skillbase sync run", "also loads the skills directory")


async def cmd_config_path(args: argparse.Namespace) -> None:
    print(config_path_display())


# ── search / ask ────────────────────────────────────────────────────


async def cmd_search(args: argparse.Namespace) -> None:
    cfg = load_config()
    sb = await _open(cfg)
    try:
        request: dict[str, Any] = {"query": args.query, "limit": args.limit}
        if args.tier:
            request["tiers"] = args.tier
        if args.category:
            request["categories"] = args.category
        response = await sb.search_skills(request)
    finally:
        await sb.close()

    out.header(f"Results for {args.query!r} ({response.search_method})")
    if not response.skills:
        out.warn("No matching skills")
        return
    for hit in response.skills:
        out.info(f"{out.bold(hit.title)}  {out.dim(f'{hit.tier} · score {hit.score:g}')}")


async def cmd_ask(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_api_key(cfg)
    sb = await _open(cfg)
    try:
        response = await sb.answer_question(
            args.question,
            skills=[] if args.no_skills else None,
            fallback_content=_read_fallback(args.fallback),
            user_id=getpass.getuser(),
        )
    finally:
        await sb.close()

    details = response.details
    print(f"\n{details.response}\n")
    out.kv("confidence", out.confidence(details.confidence))
    if details.sources:
        out.kv("sources", details.sources)
    if details.remarks:
        out.kv("remarks", details.remarks)
    out.kv("skills used", len(response.used_skills))
    if response.used_fallback:
        out.warn("Answered from reference documents only")


# ── batch ───────────────────────────────────────────────────────────


async def cmd_batch_add(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "batch add")
    questions = Path(args.file).read_text(encoding="utf-8").splitlines()
    sb = await _open(cfg)
    try:
        items = await sb.add_questions(args.project, questions)
    finally:
        await sb.close()
    out.success(f"Added {len(items)} question(s) to {args.project}")
    out.next_step(f"skillbase batch run {args.project}")


def _print_progress(item: BatchItem, done: int, total: int) -> None:
    label = item.question if len(item.question) <= 60 else item.question[:59] + "…"
    out.progress(done, total, f"{out.status(item.status.value)}  {label}")


async def cmd_batch_run(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "batch run")
    _require_api_key(cfg)
    sb = await _open(cfg)
    try:
        settings = await sb.get_rate_limit_settings()
        if args.batch_size is not None or args.delay_ms is not None:
            settings = replace(
                settings,
                batch_size=args.batch_size or settings.batch_size,
                batch_delay_ms=(
                    args.delay_ms if args.delay_ms is not None else settings.batch_delay_ms
                ),
            )
        out.header(f"Running {args.project}")
        out.kv("batch size", settings.batch_size)
        out.kv("delay", f"{settings.batch_delay_ms}ms")
        result = await sb.run_project(
            args.project,
            settings,
            on_progress=_print_progress,
            fallback_content=_read_fallback(args.fallback),
        )
    finally:
        await sb.close()

    if result is None:
        out.warn("Another run of this project is in progress")
        return
    print()
    out.kv("completed", result.completed)
    out.kv("failed", result.failed)
    out.kv("skipped", result.skipped)
    if result.partial_failure:
        out.warn("Some items failed; rerun to retry them")


async def cmd_batch_list(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "batch list")
    sb = await _open(cfg)
    try:
        items = await sb.list_items(args.project)
    finally:
        await sb.close()
    out.header(f"{args.project}: {len(items)} item(s)")
    for item in items:
        out.info(
            f"{item.row_number:>4}  {out.status(item.status):<12} "
            f"{out.confidence(item.confidence):<8} {item.question[:60]}"
        )
        if item.error:
            out.info(f"      {out.red(item.error)}")


async def cmd_batch_retry(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "batch retry")
    sb = await _open(cfg)
    try:
        item = await sb.retry_item(args.item_id)
    finally:
        await sb.close()
    out.success(f"Item {item.id} reset to {item.status.value}")


# ── settings ────────────────────────────────────────────────────────


async def cmd_settings_show(args: argparse.Namespace) -> None:
    cfg = load_config()
    sb = await _open(cfg)
    try:
        infos = await sb.list_settings()
    finally:
        await sb.close()
    out.header("Rate-limit settings")
    for info in infos:
        suffix = out.dim(" (default)") if info.is_default else ""
        out.kv(info.key, f"{info.value}{suffix}")
        out.info(out.dim(f"  {info.description}"))


async def cmd_settings_set(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "settings set")
    sb = await _open(cfg)
    try:
        setting = await sb.update_setting(args.key, args.value, getpass.getuser())
    finally:
        await sb.close()
    out.success(f"{setting.key} = {setting.value}")


# ── sync ────────────────────────────────────────────────────────────


async def cmd_sync_run(args: argparse.Namespace) -> None:
    cfg = load_config()
    sb = _build_sb(cfg)
    await sb.init()
    try:
        summary = await sb.trigger_sync(_local_actor())
    finally:
        await sb.close()
    out.header("Sync")
    for line in summary.output:
        out.info(line)
    for problem in summary.errors:
        out.error(problem)


async def cmd_sync_status(args: argparse.Namespace) -> None:
    cfg = load_config()
    sb = await _open(cfg)
    try:
        health = await sb.sync_health()
        failures = await sb.tracker.recent_failures(limit=args.limit)
    finally:
        await sb.close()
    out.header("Sync health")
    out.kv("healthy", out.green("yes") if health.healthy else out.red("no"))
    out.kv("synced", health.synced)
    out.kv("pending", health.pending)
    out.kv("failed", health.failed)
    out.kv("unknown", health.unknown)
    out.kv("total", health.total)
    out.kv("failures (24h)", health.recent_failures)
    for log in failures:
        out.error(f"{log.started_at:%Y-%m-%d %H:%M} {log.target_id}: {log.error}")


async def cmd_sync_push(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "sync push")
    sb = await _open(cfg)
    try:
        ref = await sb.push_entry(args.entry_id, _local_actor())
    finally:
        await sb.close()
    out.success(f"Pushed {args.entry_id} ({ref[:12]})")


# ── usage ───────────────────────────────────────────────────────────


async def cmd_usage(args: argparse.Namespace) -> None:
    cfg = load_config()
    _require_persistent(cfg, "usage")
    sb = await _open(cfg)
    try:
        summary = await sb.usage_summary(args.feature)
    finally:
        await sb.close()
    out.header("API usage")
    if not summary:
        out.info(out.dim("No usage recorded"))
    for feature, usage in sorted(summary.items()):
        out.kv(
            feature,
            f"{usage.calls} call(s), {usage.total_tokens} tokens, "
            f"${usage.estimated_cost:.4f}",
        )


# ── Parser ──────────────────────────────────────────────────────────


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skillbase",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Answer:\n"
            '  skillbase ask "question"                     '
            "Answer one question\n"
            '  skillbase search "query"                     '
            "Keyword search over skills\n"
            "\n"
            "Questionnaires (requires PostgreSQL):\n"
            "  skillbase batch add PROJECT --file FILE      "
            "One question per line\n"
            "  skillbase batch run PROJECT                  "
            "Answer pending items\n"
            "\n"
            "Knowledge base:\n"
            "  skillbase sync run                           "
            "Load the skills directory\n"
            "  skillbase sync status                        "
            "Sync health\n"
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed logs (retries, delays, sync operations)",
    )
    sub = parser.add_subparsers(dest="command", title="commands")

    p_ask = sub.add_parser("ask", help="Answer a single question")
    p_ask.add_argument("question", help="The question to answer")
    p_ask.add_argument(
        "--fallback",
        action="append",
        metavar="FILE",
        help="Reference document used when no skill matches (repeatable)",
    )
    p_ask.add_argument(
        "--no-skills", action="store_true", help="Do not retrieve skills"
    )

    p_search = sub.add_parser("search", help="Search skills by keyword")
    p_search.add_argument("query", help="Search query")
    p_search.add_argument(
        "--tier", action="append", choices=[t.value for t in Tier], help="Repeatable"
    )
    p_search.add_argument("--category", action="append", help="Repeatable")
    p_search.add_argument("--limit", type=int, default=5, help="1-20 (default 5)")

    p_batch = sub.add_parser("batch", help="Questionnaire batches (requires PostgreSQL)")
    batch_sub = p_batch.add_subparsers(dest="batch_command")
    p_batch_add = batch_sub.add_parser("add", help="Add questions from a file")
    p_batch_add.add_argument("project", help="Project id")
    p_batch_add.add_argument("--file", required=True, help="One question per line")
    p_batch_run = batch_sub.add_parser("run", help="Answer every pending item")
    p_batch_run.add_argument("project", help="Project id")
    p_batch_run.add_argument("--batch-size", type=int, help="Override LLM_BATCH_SIZE")
    p_batch_run.add_argument("--delay-ms", type=int, help="Override LLM_BATCH_DELAY_MS")
    p_batch_run.add_argument("--fallback", action="append", metavar="FILE")
    p_batch_list = batch_sub.add_parser("list", help="List items and their status")
    p_batch_list.add_argument("project", help="Project id")
    p_batch_retry = batch_sub.add_parser("retry", help="Send an item back to pending")
    p_batch_retry.add_argument("item_id", help="Item id")

    p_settings = sub.add_parser("settings", help="Rate-limit settings")
    settings_sub = p_settings.add_subparsers(dest="settings_command")
    settings_sub.add_parser("show", help="Show current values")
    p_settings_set = settings_sub.add_parser("set", help="Change a setting")
    p_settings_set.add_argument("key", help="e.g. LLM_BATCH_SIZE")
    p_settings_set.add_argument("value")

    p_sync = sub.add_parser("sync", help="Sync skills with the skills directory")
    sync_sub = p_sync.add_subparsers(dest="sync_command")
    sync_sub.add_parser("run", help="Load skill files into the store")
    p_sync_status = sync_sub.add_parser("status", help="Show sync health")
    p_sync_status.add_argument("--limit", type=int, default=10)
    p_sync_push = sync_sub.add_parser("push", help="Write a stored skill to disk")
    p_sync_push.add_argument("entry_id", help="Knowledge entry id")

    p_usage = sub.add_parser("usage", help="Token usage and estimated cost")
    p_usage.add_argument("--feature", help="Only this feature")

    p_cfg = sub.add_parser("config", help="View and change settings")
    cfg_sub = p_cfg.add_subparsers(dest="config_command")
    cfg_sub.add_parser("show", help="Show current settings")
    p_cfg_key = cfg_sub.add_parser("set-key", help="Change Anthropic API key")
    p_cfg_key.add_argument("key", nargs="?", help="Prompted for when omitted")
    p_cfg_store = cfg_sub.add_parser("set-store", help="Configure the store backend")
    p_cfg_store.add_argument("provider", choices=["memory", "postgres"])
    p_cfg_store.add_argument("--host")
    p_cfg_store.add_argument("--port", type=int)
    p_cfg_store.add_argument("--name")
    p_cfg_store.add_argument("--user")
    p_cfg_store.add_argument("--password")
    cfg_sub.add_parser("path", help="Print config file location")

    return parser


# ── Dispatch ────────────────────────────────────────────────────────

_CommandHandler = Callable[[argparse.Namespace], Coroutine[Any, Any, None]]

_COMMAND_MAP: dict[str, _CommandHandler] = {
    "ask": cmd_ask,
    "search": cmd_search,
    "usage": cmd_usage,
}

_GROUPS: dict[str, tuple[str, dict[str, _CommandHandler]]] = {
    "batch": (
        "batch_command",
        {
            "add": cmd_batch_add,
            "run": cmd_batch_run,
            "list": cmd_batch_list,
            "retry": cmd_batch_retry,
        },
    ),
    "settings": (
        "settings_command",
        {"show": cmd_settings_show, "set": cmd_settings_set},
    ),
    "sync": (
        "sync_command",
        {"run": cmd_sync_run, "status": cmd_sync_status, "push": cmd_sync_push},
    ),
    "config": (
        "config_command",
        {
            "show": cmd_config_show,
            "set-key": cmd_config_set_key,
            "set-store": cmd_config_set_store,
            "path": cmd_config_path,
        },
    ),
}


def exit_code_for(exc: SkillbaseError) -> int:
    """Validation problems are the caller's fault (2); the rest are failures (1)."""
    if isinstance(exc, (ValidationError, AuthorizationError)):
        return EXIT_VALIDATION
    return EXIT_FAILURE


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="  %(name)s: %(message)s",
    )
    logging.getLogger("LiteLLM").setLevel(logging.CRITICAL)
    logging.getLogger("litellm").setLevel(logging.CRITICAL)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if not args.command:
        parser.print_help()
        return

    if args.command in _GROUPS:
        dest, commands = _GROUPS[args.command]
        sub_command = getattr(args, dest)
        if not sub_command:
            parser.parse_args([args.command, "--help"])
            return
        handler = commands.get(sub_command)
    else:
        handler = _COMMAND_MAP.get(args.command)

    if handler is None:
        parser.print_help()
        return

    try:
        asyncio.run(handler(args))
    except KeyboardInterrupt:
        print()
    except (RateLimited, ProviderError) as exc:
        out.error(exc.message)
        sys.exit(EXIT_FAILURE)
    except SkillbaseError as exc:
        out.error(exc.message)
        sys.exit(exit_code_for(exc))
