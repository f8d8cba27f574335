"""Relational mapping store backed by SQLAlchemy (SQLite by default)."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy import DateTime, Engine, Integer, String, create_engine, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .errors import StoreUnavailable
from .models import PathMapping, utcnow

logger = logging.getLogger(__name__)

DATABASE_FILENAME = "cleanpaths.db"


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class PathMappingRow(Base):
    """One original -> clean path association."""

    __tablename__ = "path_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    original_path: Mapped[str] = mapped_column(String(2048), nullable=False, unique=True)
    clean_path: Mapped[str] = mapped_column(String(2048), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )

    def to_mapping(self) -> PathMapping:
        return PathMapping(
            original_path=self.original_path,
            clean_path=self.clean_path,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return f"<PathMappingRow(original_path={self.original_path[:50]}, clean_path={self.clean_path[:50]})>"


def sqlite_url(path: str | Path) -> str:
    return f"sqlite:///{Path(path)}"


class SqlMappingStore:
    """Mapping store over a ``path_mappings`` table.

    The UNIQUE constraint on ``original_path`` keeps one row per path even
    when two workers insert the same path at once; the loser of that race
    updates the winner's row instead.
    """

    def __init__(self, url_or_engine: str | Engine) -> None:
        if isinstance(url_or_engine, str):
            self.engine = create_engine(url_or_engine, echo=False)
        else:
            self.engine = url_or_engine
        self._session = sessionmaker(self.engine, expire_on_commit=False)
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Cannot initialise mapping table: {exc}") from exc

    def find(self, original_path: str) -> Optional[str]:
        try:
            with self._session() as session:
                return session.scalar(
                    select(PathMappingRow.clean_path).where(
                        PathMappingRow.original_path == original_path
                    )
                )
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Mapping lookup failed: {exc}") from exc

    def upsert(self, original_path: str, clean_path: str) -> bool:
        try:
            with self._session() as session:
                if self._update(session, original_path, clean_path):
                    session.commit()
                    return True
                session.add(PathMappingRow(original_path=original_path, clean_path=clean_path))
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.debug("Concurrent insert for %s, updating existing row", original_path)
                    if not self._update(session, original_path, clean_path):
                        return False
                    session.commit()
                return True
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Mapping write failed: {exc}") from exc

    def clear_all(self) -> None:
        try:
            with self._session() as session:
                session.execute(delete(PathMappingRow))
                session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Clearing mappings failed: {exc}") from exc

    def count(self) -> int:
        try:
            with self._session() as session:
                return int(session.scalar(select(func.count()).select_from(PathMappingRow)) or 0)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Counting mappings failed: {exc}") from exc

    def records(self) -> list[PathMapping]:
        try:
            with self._session() as session:
                rows = session.scalars(
                    select(PathMappingRow).order_by(PathMappingRow.original_path)
                ).all()
                return [row.to_mapping() for row in rows]
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Listing mappings failed: {exc}") from exc

    def flush(self) -> None:
        """Rows are committed by each upsert."""

    def close(self) -> None:
        self.engine.dispose()

    @staticmethod
    def _update(session: Session, original_path: str, clean_path: str) -> bool:
        row = session.scalar(
            select(PathMappingRow).where(PathMappingRow.original_path == original_path)
        )
        if row is None:
            return False
        if row.clean_path != clean_path:
            row.clean_path = clean_path
            row.updated_at = utcnow()
        return True
