"""Memory persistence.

Bulk reads return records in corpus order, which is the order clustering
walks them in: insertion order for the in-memory store, creation time then
id for the SQL store.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog import get_logger

from memory_curator.schema import MemoryRecord, MemoryRow
from memory_curator.time_service import TimeService

logger = get_logger()


class MemoryStore(Protocol):
    async def add(self, memory: MemoryRecord) -> MemoryRecord: ...

    async def get(self, memory_id: str) -> MemoryRecord | None: ...

    async def get_all(self) -> list[MemoryRecord]: ...

    async def get_by_persona(self, persona_id: str) -> list[MemoryRecord]: ...

    async def get_global(self) -> list[MemoryRecord]: ...

    async def update(self, memory: MemoryRecord) -> MemoryRecord: ...

    async def delete(self, memory_id: str) -> bool: ...

    async def count(self) -> int: ...


class InMemoryMemoryStore:
    """Dict-backed store, mostly for tests and one-off runs."""

    def __init__(self, memories: list[MemoryRecord] | None = None):
        self._memories: dict[str, MemoryRecord] = {}
        for memory in memories or []:
            self._memories[memory.id] = memory

    async def add(self, memory: MemoryRecord) -> MemoryRecord:
        if memory.id in self._memories:
            raise ValueError(f"Memory {memory.id} already exists")
        self._memories[memory.id] = memory
        return memory

    async def get(self, memory_id: str) -> MemoryRecord | None:
        return self._memories.get(memory_id)

    async def get_all(self) -> list[MemoryRecord]:
        return list(self._memories.values())

    async def get_by_persona(self, persona_id: str) -> list[MemoryRecord]:
        return [m for m in self._memories.values() if m.persona_id == persona_id]

    async def get_global(self) -> list[MemoryRecord]:
        return [m for m in self._memories.values() if m.persona_id is None]

    async def update(self, memory: MemoryRecord) -> MemoryRecord:
        if memory.id not in self._memories:
            raise KeyError(memory.id)
        self._memories[memory.id] = memory
        return memory

    async def delete(self, memory_id: str) -> bool:
        return self._memories.pop(memory_id, None) is not None

    async def count(self) -> int:
        return len(self._memories)


def _to_record(row: MemoryRow) -> MemoryRecord:
    return MemoryRecord(
        id=row.id,
        fact=row.fact,
        embedding=row.embedding,
        # SQLite drops the offset; stored times are always UTC
        created_at=TimeService.parse(row.created_at),
        persona_id=row.persona_id,
        conversation_id=row.conversation_id,
        category=row.category,
    )


class SqlMemoryStore:
    """Store backed by the `memories` table through an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _select(self, *conditions) -> list[MemoryRecord]:
        stmt = select(MemoryRow).order_by(MemoryRow.created_at, MemoryRow.id)
        if conditions:
            stmt = stmt.where(*conditions)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [_to_record(row) for row in result.scalars()]

    async def add(self, memory: MemoryRecord) -> MemoryRecord:
        async with self.session_factory() as session:
            session.add(
                MemoryRow(
                    id=memory.id,
                    fact=memory.fact,
                    embedding=memory.embedding,
                    created_at=TimeService.parse(memory.created_at),
                    persona_id=memory.persona_id,
                    conversation_id=memory.conversation_id,
                    category=memory.category,
                )
            )
            await session.commit()

        logger.debug("Memory stored", memory_id=memory.id)
        return memory

    async def get(self, memory_id: str) -> MemoryRecord | None:
        async with self.session_factory() as session:
            row = await session.get(MemoryRow, memory_id)
            return _to_record(row) if row is not None else None

    async def get_all(self) -> list[MemoryRecord]:
        return await self._select()

    async def get_by_persona(self, persona_id: str) -> list[MemoryRecord]:
        return await self._select(MemoryRow.persona_id == persona_id)

    async def get_global(self) -> list[MemoryRecord]:
        return await self._select(MemoryRow.persona_id.is_(None))

    async def update(self, memory: MemoryRecord) -> MemoryRecord:
        async with self.session_factory() as session:
            row = await session.get(MemoryRow, memory.id)
            if row is None:
                raise KeyError(memory.id)
            row.fact = memory.fact
            row.embedding = memory.embedding
            row.persona_id = memory.persona_id
            row.conversation_id = memory.conversation_id
            row.category = memory.category
            await session.commit()
        return memory

    async def delete(self, memory_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(MemoryRow).where(MemoryRow.id == memory_id))
            await session.commit()
            return result.rowcount > 0

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(MemoryRow))
            return result.scalar_one()
