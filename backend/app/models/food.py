import json

from pgvector.sqlalchemy import Vector
from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import TypeDecorator

from ..config import EMBEDDING_DIM
from ..database import Base


class EmbeddingVector(TypeDecorator):
    """
    pgvector `vector(dim)` on PostgreSQL; JSON array of floats elsewhere (SQLite dev/tests).
    Python side is always `list[float] | None`.
    """

    impl = Text
    cache_ok = True

    def __init__(self, dim: int):
        super().__init__()
        self.dim = dim

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Vector(self.dim))
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        vector = [float(x) for x in value]
        if dialect.name == "postgresql":
            return vector
        return json.dumps(vector)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = json.loads(value)
        return [float(x) for x in value]


class Food(Base):
    __tablename__ = "foods"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    name_key = Column(String(255), nullable=False, unique=True, index=True)
    embedding = Column(EmbeddingVector(EMBEDDING_DIM), nullable=True, default=None)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "foods_embedding_idx",
            "embedding",
            postgresql_using="hnsw",
            postgresql_ops={"embedding": "vector_cosine_ops"},
        ).ddl_if(dialect="postgresql"),
    )

    truck_links = relationship("TruckFood", back_populates="food")

    def __repr__(self) -> str:
        return f"<Food(id={self.id}, name={self.name!r}, embedded={self.embedding is not None})>"
