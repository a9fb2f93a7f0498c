
"""Modelos SQLAlchemy do catálogo de famílias (flattenTree + embeddings)."""
from __future__ import annotations
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Integer, Text, ForeignKey

class Base(DeclarativeBase):
    """Base declarativa."""
    pass

class FamilyNode(Base):
    __tablename__ = "flattenTree"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    canonical_name: Mapped[str | None] = mapped_column(String(255))

class FamilyEmbedding(Base):
    __tablename__ = "flattenTree_embeddings"
    id: Mapped[int] = mapped_column(ForeignKey("flattenTree.id"), primary_key=True, autoincrement=False)
    model: Mapped[str] = mapped_column(String(64))
    dims: Mapped[int] = mapped_column(Integer)
    embedding_json: Mapped[str] = mapped_column(Text)  # JSON array de floats
