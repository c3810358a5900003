"""Rate-limit settings persisted as ``AppSetting`` rows.

Settings are read fresh from the store at the start of every run so that
operators can retune throughput without restarting anything.  Reads never
fail: an unreachable store or an unparseable value falls back to the
built-in default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from skillbase.errors import ValidationError
from skillbase.models import AppSetting, LLMProvider, RateLimitSettings, SettingKey
from skillbase.store.base import Store

logger = logging.getLogger(__name__)

_DEFAULTS = RateLimitSettings.defaults()

DEFAULT_VALUES: dict[SettingKey, int | LLMProvider] = {
    SettingKey.BATCH_SIZE: _DEFAULTS.batch_size,
    SettingKey.BATCH_DELAY_MS: _DEFAULTS.batch_delay_ms,
    SettingKey.RETRY_WAIT_MS: _DEFAULTS.retry_wait_ms,
    SettingKey.MAX_RETRIES: _DEFAULTS.max_retries,
    SettingKey.PROVIDER: _DEFAULTS.provider,
}

DESCRIPTIONS: dict[SettingKey, str] = {
    SettingKey.BATCH_SIZE: "Number of questions processed before pausing.",
    SettingKey.BATCH_DELAY_MS: "Pause between batches, in milliseconds.",
    SettingKey.RETRY_WAIT_MS: "Wait before retrying a rate-limited call, in milliseconds.",
    SettingKey.MAX_RETRIES: "Retries allowed after a rate-limited or timed-out call.",
    SettingKey.PROVIDER: "Hosted model provider: anthropic or bedrock.",
}

_FIELD_FOR_KEY: dict[SettingKey, str] = {
    SettingKey.BATCH_SIZE: "batch_size",
    SettingKey.BATCH_DELAY_MS: "batch_delay_ms",
    SettingKey.RETRY_WAIT_MS: "retry_wait_ms",
    SettingKey.MAX_RETRIES: "max_retries",
    SettingKey.PROVIDER: "provider",
}


@dataclass(frozen=True)
class SettingInfo:
    key: SettingKey
    value: str
    description: str
    is_default: bool


def parse_setting_key(key: str) -> SettingKey:
    try:
        return SettingKey(key)
    except ValueError:
        allowed = ", ".join(k.value for k in SettingKey)
        raise ValidationError(
            f"Unknown setting {key!r}; allowed keys: {allowed}"
        ) from None


def parse_setting_value(key: SettingKey, raw: str) -> int | LLMProvider:
    """Validate *raw* for *key*, returning the typed value."""
    value = str(raw).strip()
    if key is SettingKey.PROVIDER:
        try:
            return LLMProvider(value.lower())
        except ValueError:
            raise ValidationError(
                f"{key} must be one of: {', '.join(p.value for p in LLMProvider)}"
            ) from None
    try:
        number = int(value)
    except ValueError:
        raise ValidationError(f"{key} must be an integer, got {raw!r}") from None
    minimum = 1 if key is SettingKey.BATCH_SIZE else 0
    if number < minimum:
        raise ValidationError(f"{key} must be at least {minimum}")
    return number


async def load_rate_limit_settings(store: Store) -> RateLimitSettings:
    try:
        stored = await store.get_settings([k.value for k in SettingKey])
    except Exception:
        logger.warning(
            "Failed to load rate limit settings, using defaults", exc_info=True
        )
        return RateLimitSettings.defaults()

    values: dict[str, int | LLMProvider] = {}
    for key, field_name in _FIELD_FOR_KEY.items():
        raw = stored.get(key.value)
        if raw is None:
            values[field_name] = DEFAULT_VALUES[key]
            continue
        try:
            values[field_name] = parse_setting_value(key, raw)
        except ValidationError as exc:
            logger.warning("Ignoring stored %s: %s", key, exc.message)
            values[field_name] = DEFAULT_VALUES[key]
    return RateLimitSettings(**values)  # type: ignore[arg-type]


async def get_setting(store: Store, key: str, default: str) -> str:
    """Single raw setting lookup; any failure yields *default*."""
    try:
        stored = await store.get_settings([key])
    except Exception:
        logger.warning("Failed to read setting %s", key, exc_info=True)
        return default
    return stored.get(key) or default


async def update_setting(
    store: Store,
    key: str,
    value: str,
    updated_by: str | None = None,
) -> AppSetting:
    setting_key = parse_setting_key(key)
    parsed = parse_setting_value(setting_key, value)
    setting = AppSetting(key=setting_key.value, value=str(parsed), updated_by=updated_by)
    await store.put_setting(setting)
    logger.info("Setting %s updated to %s by %s", setting_key, parsed, updated_by)
    return setting


async def list_settings(store: Store) -> list[SettingInfo]:
    try:
        stored = await store.get_settings([k.value for k in SettingKey])
    except Exception:
        logger.warning("Failed to list settings, showing defaults", exc_info=True)
        stored = {}
    infos: list[SettingInfo] = []
    for key in SettingKey:
        raw = stored.get(key.value)
        infos.append(
            SettingInfo(
                key=key,
                value=raw if raw is not None else str(DEFAULT_VALUES[key]),
                description=DESCRIPTIONS[key],
                is_default=raw is None,
            )
        )
    return infos
