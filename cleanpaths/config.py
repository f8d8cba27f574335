"""Engine configuration and construction."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Optional

from .core.database import DATABASE_FILENAME, SqlMappingStore, sqlite_url
from .core.models import DEFAULT_RULES, RewriteRule
from .core.storage import JsonMappingStore, MappingStore, MemoryMappingStore
from .mapper import PathMapper
from .origin import SiteOrigin

StoreKind = Literal["sqlite", "json", "memory"]

STORE_KINDS: tuple[str, ...] = ("sqlite", "json", "memory")
JSON_STORE_FILENAME = "mappings.json"


def data_dir() -> Path:
    path = Path(os.environ.get("CLEANPATHS_DATA_DIR", Path.home() / ".cleanpaths"))
    path.mkdir(parents=True, exist_ok=True)
    return path


@dataclass(slots=True)
class EngineConfig:
    base_url: str = ""
    host: Optional[str] = None
    rules: List[RewriteRule] = field(default_factory=lambda: list(DEFAULT_RULES))
    store: StoreKind = "sqlite"
    store_path: Optional[str] = None
    version: int = 1

    def origin(self) -> SiteOrigin:
        return SiteOrigin.from_url(self.base_url, self.host)

    def to_dict(self) -> dict:
        return {
            "base_url": self.base_url,
            "host": self.host,
            "rules": [rule.to_dict() for rule in self.rules],
            "store": self.store,
            "store_path": self.store_path,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EngineConfig":
        rules_data = data.get("rules")
        if rules_data is None:
            rules = list(DEFAULT_RULES)
        else:
            rules = [RewriteRule.from_dict(item) for item in rules_data if isinstance(item, dict)]
        store = data.get("store", "sqlite")
        if store not in STORE_KINDS:
            raise ValueError(f"Unknown mapping store: {store!r}")
        return cls(
            base_url=data.get("base_url", ""),
            host=data.get("host"),
            rules=rules,
            store=store,
            store_path=data.get("store_path"),
            version=data.get("version", 1),
        )


def load_config(path: str | Path) -> EngineConfig:
    path = Path(path)
    data = json.loads(path.read_text(encoding="utf-8"))
    return EngineConfig.from_dict(data)


def save_config(path: str | Path, config: EngineConfig) -> None:
    path = Path(path)
    path.write_text(json.dumps(config.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")


def build_store(config: EngineConfig) -> MappingStore:
    if config.store == "memory":
        return MemoryMappingStore()
    if config.store == "json":
        return JsonMappingStore(config.store_path or data_dir() / JSON_STORE_FILENAME)
    if config.store == "sqlite":
        return SqlMappingStore(sqlite_url(config.store_path or data_dir() / DATABASE_FILENAME))
    raise ValueError(f"Unknown mapping store: {config.store!r}")


def build_mapper(config: EngineConfig, store: MappingStore | None = None) -> PathMapper:
    return PathMapper(
        store if store is not None else build_store(config),
        rules=config.rules,
        origin=config.origin(),
    )
