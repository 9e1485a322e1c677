import asyncio
import json

import httpx
import pytest
from sqlalchemy import select

from backend.app.errors import ProviderError
from backend.app.models.food import Food
from backend.app.services.backfill import EmbeddingBackfill
from backend.app.services.embeddings import EmbedefyProvider
from backend.app.services.ingestion import IngestionPipeline


def _embeddings(database) -> dict[str, list[float] | None]:
    with database.session() as db:
        return {name: vec for name, vec in db.execute(select(Food.name, Food.embedding)).all()}


def test_backfill_embeds_every_food_once(database, csv_files, embedder):
    IngestionPipeline(database).run(*csv_files)
    backfill = EmbeddingBackfill(database, embedder)

    assert asyncio.run(backfill.run()) == 9
    stored = _embeddings(database)
    assert all(vec is not None and len(vec) == 4 for vec in stored.values())
    assert stored["Tacos"] == [1.0, 0.0, 0.0, 0.0]

    # Already-embedded rows are never requested again.
    embedder.calls.clear()
    assert asyncio.run(backfill.run()) == 0
    assert embedder.calls == []


def test_backfill_failure_keeps_prior_writes_and_resumes(database, csv_files):
    from conftest import FakeEmbedder

    IngestionPipeline(database).run(*csv_files)
    failing = FakeEmbedder(fail_on={"Sodas"})

    with pytest.raises(ProviderError) as exc:
        asyncio.run(EmbeddingBackfill(database, failing).run())
    assert exc.value.item == "Sodas"
    assert "Sodas" in str(exc.value)

    stored = _embeddings(database)
    assert stored["Burgers"] is not None
    assert stored["Fries"] is not None
    assert stored["Sodas"] is None

    resumed = FakeEmbedder()
    assert asyncio.run(EmbeddingBackfill(database, resumed).run()) == 7
    assert "Burgers" not in resumed.calls
    assert all(vec is not None for vec in _embeddings(database).values())


def test_backfill_rejects_wrong_dimension(database, csv_files):
    class WideEmbedder:
        async def embed(self, text):
            return [0.1] * 8

    IngestionPipeline(database).run(*csv_files)
    with pytest.raises(ProviderError) as exc:
        asyncio.run(EmbeddingBackfill(database, WideEmbedder()).run())
    assert exc.value.kind == ProviderError.EMPTY_RESPONSE
    assert exc.value.item == "Burgers"


def test_backfill_propagates_explicit_provider_error_payload(database, csv_files):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "invalid_token", "message": "token revoked"})

    provider = EmbedefyProvider(access_token="t", max_retries=0, transport=httpx.MockTransport(handler))
    IngestionPipeline(database).run(*csv_files)

    with pytest.raises(ProviderError) as exc:
        asyncio.run(EmbeddingBackfill(database, provider).run())
    assert exc.value.kind == ProviderError.PROVIDER_ERROR
    assert exc.value.code == "invalid_token"
    assert exc.value.item == "Burgers"
    assert all(vec is None for vec in _embeddings(database).values())


def test_embedding_round_trips_through_json_column(database):
    with database.SessionLocal.begin() as db:
        db.add(Food(name="Tacos", name_key="tacos", embedding=[0.25, 0.5, 0.0, 1.0]))

    with database.session() as db:
        food = db.execute(select(Food)).scalar_one()
        raw = db.connection().exec_driver_sql("SELECT embedding FROM foods").scalar_one()
    assert food.embedding == [0.25, 0.5, 0.0, 1.0]
    assert json.loads(raw) == [0.25, 0.5, 0.0, 1.0]
