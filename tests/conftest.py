import asyncio
import os
import sys
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient


# Ensure `import backend.app...` works regardless of where pytest is run from.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Must be set before anything imports backend.app.config (constants are read at import time).
os.environ["DISABLE_DOTENV"] = "1"
# Tests never call external providers even if the developer machine has keys set.
os.environ["EMBEDEFY_ACCESS_TOKEN"] = ""
os.environ["GEMINI_API_KEY"] = ""
# Small vectors keep the fake embedder readable.
os.environ["EMBEDDING_DIM"] = "4"


TRUCKS_CSV = """locationid,Applicant,FacilityType,LocationDescription,Address,Status,FoodItems
101,Bob's Burgers,Truck,MARKET ST: 01ST ST to 02ND ST,1 MARKET ST,APPROVED,Burgers: Fries: Sodas
102,bob's burgers,Truck,MARKET ST: 02ND ST to 03RD ST,2 MARKET ST,APPROVED,Burgers: Fries: Sodas: Milkshakes
201,Taco Loco,Truck,MISSION ST: 16TH ST to 17TH ST,3 MISSION ST,APPROVED,Tacos: : ThisTokenIsDefinitelyLongerThanThirtyTwoCharacters:Burritos
301,Pending Tacos,Truck,VALENCIA ST: 18TH ST to 19TH ST,4 VALENCIA ST,REQUESTED,Tacos: Quesadillas
401,Coffee Cart,Push Cart,FOLSOM ST: 05TH ST to 06TH ST,5 FOLSOM ST,APPROVED,Coffee: Pastries
"""

SCHEDULES_CSV = """DayOrder,DayOfWeekStr,starttime,endtime,PermitLocation,start24,end24,Applicant,locationid
1,Monday,10AM,2PM,1 MARKET ST,10:00,14:00,Bob's Burgers,101
3,Wednesday,10AM,2PM,1 MARKET ST,10:00,14:00,Bob's Burgers,101
2,Tuesday,11AM,3PM,2 MARKET ST,11:00,15:00,BOB'S BURGERS,102
4,Thursday,11AM,3PM,2 MARKET ST,11:00,15:00,BOB'S BURGERS,102
5,Friday,5PM,9PM,3 MISSION ST,17:00,21:00,Taco Loco,201
5,Friday,5PM,9PM,4 VALENCIA ST,17:00,21:00,Pending Tacos,301
"""

_KEYWORDS = [
    {"taco", "tacos", "burrito", "burritos", "quesadilla", "quesadillas", "mexican"},
    {"burger", "burgers", "fries", "cheeseburger"},
    {"coffee", "pastries", "espresso", "croissant"},
]


class FakeEmbedder:
    """Deterministic 4-dim keyword vectors; records every text it was asked for."""

    def __init__(self, fail_on: set[str] | None = None):
        self.calls: list[str] = []
        self.fail_on = {t.lower() for t in (fail_on or set())}

    async def embed(self, text: str) -> list[float]:
        from backend.app.errors import ProviderError

        self.calls.append(text)
        if text.lower() in self.fail_on:
            raise ProviderError("failed to generate embedding quota_exceeded: no credits", code="quota_exceeded")
        words = {w.strip(".,?!'\"").lower() for w in text.split()}
        vec = [1.0 if words & group else 0.0 for group in _KEYWORDS]
        vec.append(0.0 if any(vec) else 1.0)
        return vec


class FakeChat:
    def __init__(self, reply: str = "Taco Loco is at 3 Mission St on Friday evenings."):
        self.reply = reply
        self.calls: list[tuple[str, list, str]] = []

    async def complete(self, system_prompt: str, examples: list, content: str) -> str:
        self.calls.append((system_prompt, examples, content))
        return self.reply


@pytest.fixture()
def database(tmp_path: Path):
    from backend.app.database import Database

    db = Database(f"sqlite+pysqlite:///{tmp_path / 'test.sqlite3'}")
    db.init_schema()
    try:
        yield db
    finally:
        db.dispose()


@pytest.fixture()
def trucks_csv() -> str:
    return TRUCKS_CSV


@pytest.fixture()
def schedules_csv() -> str:
    return SCHEDULES_CSV


@pytest.fixture()
def csv_files(tmp_path: Path) -> tuple[str, str]:
    trucks = tmp_path / "trucks.csv"
    schedules = tmp_path / "schedules.csv"
    trucks.write_text(TRUCKS_CSV, encoding="utf-8")
    schedules.write_text(SCHEDULES_CSV, encoding="utf-8")
    return str(trucks), str(schedules)


@pytest.fixture()
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture()
def chat() -> FakeChat:
    return FakeChat()


@pytest.fixture()
def seeded(database, csv_files, embedder):
    """Database with both feeds imported and every food embedded."""
    from backend.app.services.backfill import EmbeddingBackfill
    from backend.app.services.ingestion import IngestionPipeline

    IngestionPipeline(database).run(*csv_files)
    asyncio.run(EmbeddingBackfill(database, embedder).run())
    embedder.calls.clear()
    return database


@pytest.fixture()
def app(database, embedder, chat) -> FastAPI:
    """
    FastAPI app wired to the temporary SQLite DB and fake providers.

    We intentionally do NOT import `backend.app.main` so startup never builds real providers.
    """
    from backend.app.api import query as query_api
    from backend.app.utils.error_handlers import register_exception_handlers

    fastapi_app = FastAPI()
    fastapi_app.include_router(query_api.router)
    register_exception_handlers(fastapi_app)
    fastapi_app.state.database = database
    fastapi_app.state.embedder = embedder
    fastapi_app.state.chat = chat
    return fastapi_app


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
