"""Schema for stored memories."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field
from sqlalchemy import Column, DateTime, Index, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_memory_id() -> str:
    """Generate a stable identifier for a new memory."""
    return f"mem_{uuid4().hex}"


class MemoryRow(Base):
    """A single memory fact as persisted."""

    __tablename__ = "memories"

    id = Column(String, primary_key=True, default=new_memory_id)

    # The fact itself, one short statement about the user
    fact = Column(Text, nullable=False)

    # Comma-separated decimals, NULL until an embedding has been computed
    embedding = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    # Retrieval scopes
    persona_id = Column(String, nullable=True)
    conversation_id = Column(String, nullable=True)

    category = Column(String, nullable=True)

    __table_args__ = (
        Index("idx_memories_persona", "persona_id"),
        Index("idx_memories_created_at", "created_at"),
    )


class MemoryRecord(BaseModel):
    """A memory as handed to clustering and retrieval. Treated as read-only there."""

    id: str = Field(default_factory=new_memory_id)
    fact: str = Field(..., description="The remembered statement")
    embedding: str | None = Field(
        None, description="Serialized embedding (comma-separated decimals)"
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    persona_id: str | None = Field(None, description="Persona the memory belongs to")
    conversation_id: str | None = Field(None, description="Conversation it was extracted from")
    category: str | None = None

    @property
    def has_embedding(self) -> bool:
        """True when an embedding string is present (it may still be unreadable)."""
        return bool(self.embedding and self.embedding.strip())
