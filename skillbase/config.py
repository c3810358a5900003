from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from skillbase.store.base import Store
from skillbase.sync.source import KnowledgeSource

if TYPE_CHECKING:
    from skillbase.llm.base import BaseLLMClient

T = TypeVar("T")


class _Registry(Generic[T]):
    """Lazily-populated factory registry.

    Each backend module registers itself via :meth:`register`.
    :meth:`build` resolves a provider name to a factory, calling
    ``factory.from_config(config)`` if available, otherwise
    ``factory(**config)``.
    """

    def __init__(self, label: str) -> None:
        self._label = label
        self._factories: dict[str, type[T]] = {}
        self._defaults_loaded = False

    def register(self, name: str, cls: type[T]) -> None:
        self._factories[name] = cls

    def build(self, provider: str, config: dict[str, Any]) -> T:
        if not self._defaults_loaded:
            self._load_defaults()
            self._defaults_loaded = True

        factory = self._factories.get(provider)
        if factory is None:
            raise ValueError(
                f"Unknown {self._label} provider '{provider}'. "
                f"Available: {list(self._factories)}"
            )
        if hasattr(factory, "from_config"):
            return factory.from_config(config)  # type: ignore[return-value]
        return factory(**config)  # type: ignore[return-value]

    def _load_defaults(self) -> None:
        """Override point: subclasses populate built-in factories here."""


class _SourceRegistry(_Registry[KnowledgeSource]):
    def _load_defaults(self) -> None:
        from skillbase.sync.source import DiskKnowledgeSource

        self.register("disk", DiskKnowledgeSource)


class _StoreRegistry(_Registry[Store]):
    def _load_defaults(self) -> None:
        from skillbase.store.memory import InMemoryStore
        from skillbase.store.postgres import PostgresStore

        self.register("memory", InMemoryStore)
        self.register("postgres", PostgresStore)


class _LLMRegistry(_Registry["BaseLLMClient"]):
    def _load_defaults(self) -> None:
        from skillbase.llm.litellm import LiteLLMClient

        self.register("anthropic", LiteLLMClient)
        self.register("bedrock", LiteLLMClient)


# Singleton instances
source_registry = _SourceRegistry("source")
store_registry = _StoreRegistry("store")
llm_registry = _LLMRegistry("llm")


def parse_config(
    config: dict[str, Any],
) -> tuple[KnowledgeSource | None, Store, BaseLLMClient]:
    """Parse a user config dict and return (source, store, llm_client).

    Expected shape::

        {
            "source": {"provider": "disk", "config": {"base_path": "./skills"}},
            "store": {"provider": "memory", "config": {}},
            "llm": {"provider": "anthropic", "api_key": "sk-ant-..."},
        }

    If no ``store`` key is present, defaults to in-memory.  The ``source``
    section is optional; without it the knowledge base cannot be synced.
    The ``llm`` section is required.
    """
    source_cfg = config.get("source")
    store_cfg = config.get("store", {})
    llm_cfg = config.get("llm")
    if not llm_cfg:
        raise ValueError(
            "Missing 'llm' config section. "
            'Provide at least {"llm": {"api_key": "sk-ant-..."}}.'
        )

    source = (
        source_registry.build(
            source_cfg.get("provider", "disk"),
            source_cfg.get("config", {}),
        )
        if source_cfg
        else None
    )
    store = store_registry.build(
        store_cfg.get("provider", "memory"),
        store_cfg.get("config", {}),
    )
    llm_client = llm_registry.build(
        llm_cfg.get("provider", "anthropic"),
        llm_cfg,
    )

    return source, store, llm_client
