import logging
from datetime import time

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import FOOD_NAME_MAX_LEN
from ..errors import ResolutionError, SchemaError
from ..models.food import Food
from ..models.location import Location
from ..models.schedule import Schedule
from ..models.truck import Truck, TruckFood, TruckLocation


logger = logging.getLogger(__name__)

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def name_key(name: str | None) -> str:
    """Case-folded natural key used for truck and food uniqueness."""
    return (name or "").strip().lower()


class EntityResolver:
    """
    Maps raw feed values onto stable row identities.

    Every write is a single INSERT ... ON CONFLICT statement, so re-running an import
    updates mutable fields and never creates a second row for the same natural key.
    Transactions are owned by the caller.
    """

    def __init__(self, db: Session):
        self.db = db
        dialect = db.get_bind().dialect.name
        try:
            self._insert = _INSERTS[dialect]
        except KeyError:
            raise SchemaError(f"unsupported database dialect for upserts: {dialect}") from None

    def _execute(self, stmt, *, natural_key: object, what: str):
        try:
            return self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise ResolutionError(f"failed to upsert {what}: {e}", natural_key=natural_key) from e

    def upsert_location(self, location_id: int, address: str | None, description: str | None) -> int:
        stmt = self._insert(Location).values(id=location_id, address=address, description=description)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Location.id],
            set_={
                "address": stmt.excluded.address,
                "description": stmt.excluded.description,
                "updated_at": func.now(),
            },
        )
        self._execute(stmt, natural_key=location_id, what="location")
        return location_id

    def upsert_truck(self, name: str, food_items_raw: str | None) -> int:
        key = name_key(name)
        if not key:
            raise ResolutionError("truck name is empty", natural_key=name)
        stmt = self._insert(Truck).values(name=name.strip(), name_key=key, food_items=food_items_raw)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Truck.name_key],
            set_={"food_items": stmt.excluded.food_items, "updated_at": func.now()},
        ).returning(Truck.id)
        return int(self._execute(stmt, natural_key=name, what="truck").scalar_one())

    def upsert_food(self, name: str) -> int:
        token = (name or "").strip()
        if not token:
            raise ResolutionError("food name is empty", natural_key=name)
        if len(token) >= FOOD_NAME_MAX_LEN:
            raise ResolutionError(f"food name is {len(token)} chars (max {FOOD_NAME_MAX_LEN - 1})", natural_key=name)
        stmt = self._insert(Food).values(name=token, name_key=name_key(token))
        stmt = stmt.on_conflict_do_update(
            index_elements=[Food.name_key],
            set_={"updated_at": func.now()},
        ).returning(Food.id)
        return int(self._execute(stmt, natural_key=token, what="food").scalar_one())

    def link_truck_location(self, truck_id: int, location_id: int, status: str | None) -> None:
        stmt = (
            self._insert(TruckLocation)
            .values(truck_id=truck_id, location_id=location_id, status=status)
            .on_conflict_do_nothing(index_elements=[TruckLocation.truck_id, TruckLocation.location_id])
        )
        self._execute(stmt, natural_key=(truck_id, location_id), what="truck location")

    def link_truck_food(self, truck_id: int, food_id: int) -> None:
        stmt = (
            self._insert(TruckFood)
            .values(truck_id=truck_id, food_id=food_id)
            .on_conflict_do_nothing(index_elements=[TruckFood.truck_id, TruckFood.food_id])
        )
        self._execute(stmt, natural_key=(truck_id, food_id), what="truck food")

    def upsert_schedule(
        self,
        truck_id: int,
        location_id: int,
        day_order: int,
        day_of_week: str | None,
        start: time | None,
        end: time | None,
    ) -> None:
        stmt = self._insert(Schedule).values(
            truck_id=truck_id,
            location_id=location_id,
            day_order=day_order,
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Schedule.truck_id, Schedule.location_id, Schedule.day_order],
            set_={
                "day_of_week": stmt.excluded.day_of_week,
                "start_time": stmt.excluded.start_time,
                "end_time": stmt.excluded.end_time,
                "updated_at": func.now(),
            },
        )
        self._execute(stmt, natural_key=(truck_id, location_id, day_order), what="schedule")

    def truck_ids(self) -> dict[str, int]:
        """Name key -> truck id for every known truck."""
        try:
            rows = self.db.execute(select(Truck.name_key, Truck.id).order_by(Truck.name_key)).all()
        except SQLAlchemyError as e:
            raise ResolutionError(f"failed to retrieve trucks: {e}") from e
        return {key: int(truck_id) for key, truck_id in rows}
