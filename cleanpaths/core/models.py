"""Data models for the path mapping engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return utcnow()
    if not isinstance(value, str):
        raise ValueError(f"Timestamp must be an ISO-8601 string, got {value!r}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class RewriteRule:
    """Replace the first occurrence of ``match`` with ``replacement``."""

    match: str
    replacement: str

    def __post_init__(self) -> None:
        if not self.match:
            raise ValueError("Rewrite rule needs a non-empty match prefix")

    def applies_to(self, path: str) -> bool:
        return self.match in path

    def apply(self, path: str) -> str:
        return path.replace(self.match, self.replacement, 1)

    def to_dict(self) -> dict:
        return {"match": self.match, "replacement": self.replacement}

    @classmethod
    def from_dict(cls, data: dict) -> "RewriteRule":
        return cls(match=data.get("match", ""), replacement=data.get("replacement", ""))


DEFAULT_RULES: Tuple[RewriteRule, ...] = (
    RewriteRule("/wp-content/themes/", "/assets/theme/"),
    RewriteRule("/wp-content/uploads/", "/media/"),
    RewriteRule("/wp-content/plugins/", "/assets/plugins/"),
    RewriteRule("/wp-includes/", "/assets/core/"),
)


def rules_from_pairs(pairs: Iterable[Tuple[str, str]]) -> List[RewriteRule]:
    return [RewriteRule(match, replacement) for match, replacement in pairs]


@dataclass(slots=True)
class PathMapping:
    """A stored original -> clean path association."""

    original_path: str
    clean_path: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "original_path": self.original_path,
            "clean_path": self.clean_path,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PathMapping":
        return cls(
            original_path=data["original_path"],
            clean_path=data["clean_path"],
            created_at=_parse_timestamp(data.get("created_at")),
            updated_at=_parse_timestamp(data.get("updated_at")),
        )
