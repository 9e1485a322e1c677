import math
from dataclasses import dataclass

from sqlalchemy import Float, bindparam, select
from sqlalchemy.orm import Session

from ..errors import SearchError
from ..models.food import EmbeddingVector, Food


@dataclass(frozen=True)
class FoodMatch:
    id: int
    name: str
    cosine_similarity: float


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b:
        return 0.0
    if len(a) != len(b):
        return 0.0
    dot = 0.0
    na = 0.0
    nb = 0.0
    for x, y in zip(a, b):
        dot += x * y
        na += x * x
        nb += y * y
    if na <= 0.0 or nb <= 0.0:
        return 0.0
    return float(dot / (math.sqrt(na) * math.sqrt(nb)))


def _pgvector_top_k(db: Session, query_vector: list[float], k: int) -> list[FoodMatch]:
    # `<=>` is pgvector's cosine distance; the HNSW index on foods.embedding serves it.
    q = bindparam("query_vector", query_vector, type_=EmbeddingVector(len(query_vector)))
    distance = Food.embedding.op("<=>", return_type=Float)(q)
    rows = db.execute(
        select(Food.id, Food.name, (1 - distance).label("cosine_similarity"))
        .where(Food.embedding.is_not(None))
        .order_by(distance)
        .limit(k)
    ).all()
    return [FoodMatch(id=int(r.id), name=r.name, cosine_similarity=float(r.cosine_similarity)) for r in rows]


def _in_process_top_k(db: Session, query_vector: list[float], k: int) -> list[FoodMatch]:
    # No vector index on this backend (SQLite dev/tests): score every embedded food.
    rows = db.execute(select(Food.id, Food.name, Food.embedding).where(Food.embedding.is_not(None)).order_by(Food.id)).all()
    for r in rows:
        if len(r.embedding) != len(query_vector):
            raise SearchError(
                f"query vector has {len(query_vector)} dims but food {r.name!r} has {len(r.embedding)}; check EMBEDDING_DIM"
            )
    scored = [
        FoodMatch(id=int(r.id), name=r.name, cosine_similarity=cosine_similarity(query_vector, r.embedding))
        for r in rows
    ]
    scored.sort(key=lambda m: m.cosine_similarity, reverse=True)
    return scored[:k]


def top_k_foods(db: Session, query_vector: list[float], k: int) -> list[FoodMatch]:
    """Foods ranked by cosine similarity to `query_vector`, best first."""
    if k <= 0:
        return []
    if db.get_bind().dialect.name == "postgresql":
        return _pgvector_top_k(db, query_vector, k)
    return _in_process_top_k(db, query_vector, k)
