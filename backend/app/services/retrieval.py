import logging
from datetime import time
from typing import Any, Iterable

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import APPROVED_STATUS, SEARCH_TOP_K
from ..database import Database
from ..models.location import Location
from ..models.schedule import Schedule
from ..models.truck import Truck, TruckFood, TruckLocation
from ..errors import SearchError
from ..schemas.search import LocationNode, ScheduleEntry, TruckNode
from .embeddings import EmbeddingProvider
from .semantic_similarity import FoodMatch, top_k_foods


logger = logging.getLogger(__name__)


class NoMatches:
    """Retrieval result when no approved truck serves any of the matched foods."""

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_MATCHES"


NO_MATCHES = NoMatches()


def format_time(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, time):
        return value.strftime("%I:%M %p")
    return str(value)


def assemble_trucks(rows: Iterable[Any]) -> list[TruckNode]:
    """
    Fold flat join rows into truck -> location -> schedule nodes.

    Parents are looked up by id (and schedules by day of week) in ordered maps, so the
    output has one node per identity even when rows for a parent are not contiguous.
    Insertion order follows the first row seen for each node.
    """
    trucks: dict[int, TruckNode] = {}
    locations: dict[tuple[int, int], LocationNode] = {}
    days: set[tuple[int, int, str | None]] = set()

    for row in rows:
        r = getattr(row, "_mapping", row)
        truck_id = int(r["truck_id"])
        location_id = int(r["location_id"])

        truck = trucks.get(truck_id)
        if truck is None:
            truck = TruckNode(id=truck_id, name=r["truck_name"], food_items=r["food_items"])
            trucks[truck_id] = truck

        location = locations.get((truck_id, location_id))
        if location is None:
            location = LocationNode(id=location_id, address=r["address"], status=r["status"])
            locations[(truck_id, location_id)] = location
            truck.locations.append(location)

        day_key = (truck_id, location_id, r["day_of_week"])
        if day_key in days:
            continue
        days.add(day_key)
        location.schedules.append(
            ScheduleEntry(
                day_of_week=r["day_of_week"],
                start_time=format_time(r["start_time"]),
                end_time=format_time(r["end_time"]),
            )
        )

    return list(trucks.values())


def _expansion_query(food_ids: list[int]):
    return (
        select(
            Truck.id.label("truck_id"),
            Truck.name.label("truck_name"),
            Truck.food_items.label("food_items"),
            Location.id.label("location_id"),
            Location.address.label("address"),
            Schedule.day_of_week.label("day_of_week"),
            Schedule.start_time.label("start_time"),
            Schedule.end_time.label("end_time"),
            TruckLocation.status.label("status"),
        )
        .distinct()
        .select_from(Truck)
        .join(TruckFood, TruckFood.truck_id == Truck.id)
        .join(
            TruckLocation,
            and_(
                TruckLocation.truck_id == Truck.id,
                func.upper(TruckLocation.status) == APPROVED_STATUS.upper(),
            ),
        )
        .join(Location, Location.id == TruckLocation.location_id)
        .join(
            Schedule,
            and_(Schedule.truck_id == Truck.id, Schedule.location_id == TruckLocation.location_id),
        )
        .where(TruckFood.food_id.in_(food_ids))
        .order_by(Truck.id, Location.id, Schedule.day_of_week, Schedule.start_time)
    )


class HybridRetriever:
    """
    Query text -> embedding -> top-K similar foods -> approved trucks, locations and
    schedules serving them. Read-only; safe to share across concurrent requests.
    """

    def __init__(self, database: Database, provider: EmbeddingProvider, *, top_k: int = SEARCH_TOP_K):
        self.database = database
        self.provider = provider
        self.top_k = top_k

    def search_foods(self, db: Session, query_vector: list[float]) -> list[FoodMatch]:
        try:
            return top_k_foods(db, query_vector, self.top_k)
        except SQLAlchemyError as e:
            raise SearchError(f"failed to search foods: {e}") from e

    def expand(self, db: Session, food_ids: list[int]) -> list[TruckNode]:
        if not food_ids:
            return []
        try:
            rows = db.execute(_expansion_query(food_ids)).all()
        except SQLAlchemyError as e:
            raise SearchError(f"failed to query database: {e}") from e
        return assemble_trucks(rows)

    async def retrieve(self, query_text: str) -> list[TruckNode] | NoMatches:
        logger.info('generating embedding for "%s"', query_text)
        query_vector = await self.provider.embed(query_text)

        with self.database.session() as db:
            foods = self.search_foods(db, query_vector)
            logger.debug("matched foods: %s", [(f.name, round(f.cosine_similarity, 4)) for f in foods])
            trucks = self.expand(db, [f.id for f in foods])

        if not trucks:
            logger.info("no database results found")
            return NO_MATCHES
        return trucks
