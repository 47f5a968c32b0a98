from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from kana.errors import IntegrationFailure
from kana.memory import models
from kana.telemetry.logging import get_logger


@dataclass(slots=True, frozen=True)
class StoredTurn:
    id: int
    session_id: str
    role: str
    content: str
    created_at: datetime | None


def _to_stored(row: models.ConversationRow) -> StoredTurn:
    return StoredTurn(
        id=row.id,
        session_id=row.session_id,
        role=row.role,
        content=row.content,
        created_at=row.created_at,
    )


class ConversationStore:
    """Append-only conversation log, one row per turn."""

    def __init__(self, url: str, engine: AsyncEngine | None = None) -> None:
        self._engine: AsyncEngine = engine or create_async_engine(url, echo=False)
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        self._logger = get_logger(__name__)

    async def init(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(models.Base.metadata.create_all)
        self._logger.info("store.ready", url=self._engine.url.render_as_string(hide_password=True))

    async def append(self, session_id: str, role: str, content: str) -> None:
        try:
            async with self._session_factory() as session:
                session.add(models.ConversationRow(session_id=session_id, role=role, content=content))
                await session.commit()
        except SQLAlchemyError as exc:
            self._logger.error("store.append_failed", session_id=session_id, role=role, error=str(exc))
            raise IntegrationFailure(str(exc)) from exc

    async def search(self, keyword: str, limit: int = 10) -> list[StoredTurn]:
        stmt = (
            select(models.ConversationRow)
            .where(models.ConversationRow.content.contains(keyword, autoescape=True))
            .order_by(models.ConversationRow.created_at.desc(), models.ConversationRow.id.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            self._logger.error("store.search_failed", keyword=keyword, error=str(exc))
            raise IntegrationFailure(str(exc)) from exc
        self._logger.info("store.search", keyword=keyword, matches=len(rows))
        return [_to_stored(row) for row in rows]

    async def by_session(self, session_id: str) -> list[StoredTurn]:
        stmt = (
            select(models.ConversationRow)
            .where(models.ConversationRow.session_id == session_id)
            .order_by(models.ConversationRow.created_at, models.ConversationRow.id)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_stored(row) for row in rows]

    async def aclose(self) -> None:
        await self._engine.dispose()


class NullConversationStore:
    def __init__(self) -> None:
        self._logger = get_logger(__name__)

    async def init(self) -> None:
        self._logger.warning("store.null.init")

    async def append(self, session_id: str, role: str, content: str) -> None:
        self._logger.warning("store.null.append_ignored", role=role)

    async def search(self, keyword: str, limit: int = 10) -> list[StoredTurn]:
        return []

    async def by_session(self, session_id: str) -> list[StoredTurn]:
        return []

    async def aclose(self) -> None:
        return None


__all__ = ["StoredTurn", "ConversationStore", "NullConversationStore"]
