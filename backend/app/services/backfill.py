import logging

from sqlalchemy import select, update

from ..config import EMBEDDING_DIM
from ..database import Database
from ..errors import ProviderError
from ..models.food import Food
from .embeddings import EmbeddingProvider


logger = logging.getLogger(__name__)


class EmbeddingBackfill:
    """
    Fills `foods.embedding` for rows that don't have one yet.

    Rows are embedded one at a time and committed individually, so an interrupted run
    keeps its progress and the next run only asks for what is still missing.
    """

    def __init__(self, database: Database, provider: EmbeddingProvider, *, dim: int = EMBEDDING_DIM):
        self.database = database
        self.provider = provider
        self.dim = dim

    def pending(self) -> list[tuple[int, str]]:
        with self.database.session() as db:
            rows = db.execute(select(Food.id, Food.name).where(Food.embedding.is_(None)).order_by(Food.id)).all()
        return [(int(food_id), name) for food_id, name in rows]

    async def run(self) -> int:
        logger.info("generating embeddings...")
        written = 0
        for food_id, name in self.pending():
            logger.info("generating embedding for %s", name)
            try:
                vector = await self.provider.embed(name)
            except ProviderError as e:
                raise ProviderError(
                    f"failed to generate embedding for {name!r}: {e}",
                    kind=e.kind,
                    code=e.code,
                    item=name,
                ) from e
            if len(vector) != self.dim:
                raise ProviderError(
                    f"failed to generate embedding for {name!r}: got {len(vector)} dims, expected {self.dim}",
                    kind=ProviderError.EMPTY_RESPONSE,
                    item=name,
                )

            with self.database.SessionLocal.begin() as db:
                db.execute(update(Food).where(Food.id == food_id).values(embedding=vector))
            written += 1

        logger.info("embedded %s foods", written)
        return written
