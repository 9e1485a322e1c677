import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Callable, Iterable, Mapping

from ..config import FOOD_NAME_MAX_LEN
from ..database import Database
from ..errors import ResolutionError
from .csv_source import fetch_csv_text, iter_records
from .entity_resolver import EntityResolver, name_key


logger = logging.getLogger(__name__)

Record = Mapping[str, str]


def split_food_items(raw: str | None, *, max_len: int = FOOD_NAME_MAX_LEN) -> list[str]:
    """
    Split a FoodItems descriptor into food names.

    Example descriptor:
        Burgers: melts: hot dogs: burritos:sandwiches: fries: onion rings: drinks
    Empty tokens and tokens of `max_len` chars or more (free-text sentences) are dropped.
    """
    out: list[str] = []
    seen: set[str] = set()
    for part in (raw or "").split(":"):
        item = part.strip()
        if not item or len(item) >= max_len:
            continue
        key = name_key(item)
        if key in seen:
            continue
        seen.add(key)
        out.append(item)
    return out


def _field(record: Record, column: str) -> str:
    return (record.get(column) or "").strip()


def _schedule_key(record: Record) -> tuple[str, str, str]:
    return (_field(record, "Applicant"), _field(record, "locationid"), _field(record, "DayOrder"))


def _parse_int(record: Record, column: str, key: Any) -> int:
    raw = _field(record, column)
    try:
        return int(raw)
    except ValueError:
        raise ResolutionError(f"invalid {column} {raw!r}", natural_key=key) from None


def _parse_time(record: Record, column: str, key: Any) -> time | None:
    raw = _field(record, column)
    if not raw:
        return None
    for fmt in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(raw, fmt).time()
        except ValueError:
            continue
    raise ResolutionError(f"invalid {column} {raw!r}", natural_key=key)


@dataclass
class IngestionReport:
    locations: int = 0
    trucks: int = 0
    foods: int = 0
    schedules: int = 0


class IngestionPipeline:
    """
    Four ordered passes: locations, trucks, foods, schedules.

    Foods and schedules resolve trucks by name through a lookup table built at pass
    start, so they must run after the trucks pass. Each pass is one transaction; the
    first failing record rolls the pass back and propagates. Re-running is safe since
    every write is an upsert.
    """

    def __init__(self, database: Database):
        self.database = database

    def _run_pass(self, label: str, records: Iterable[Record], handle: Callable[[EntityResolver, dict[str, int], Record], None], *, with_trucks: bool = False) -> int:
        logger.info("importing %s...", label)
        count = 0
        with self.database.SessionLocal.begin() as db:
            resolver = EntityResolver(db)
            trucks = resolver.truck_ids() if with_trucks else {}
            for record in records:
                handle(resolver, trucks, record)
                count += 1
        logger.info("imported %s %s records", count, label)
        return count

    def import_locations(self, records: Iterable[Record]) -> int:
        def handle(resolver: EntityResolver, trucks: dict[str, int], record: Record) -> None:
            resolver.upsert_location(
                _parse_int(record, "locationid", _field(record, "locationid")),
                _field(record, "Address") or None,
                _field(record, "LocationDescription") or None,
            )

        return self._run_pass("locations", records, handle)

    def import_trucks(self, records: Iterable[Record]) -> int:
        def handle(resolver: EntityResolver, trucks: dict[str, int], record: Record) -> None:
            name = _field(record, "Applicant")
            truck_id = resolver.upsert_truck(name, record.get("FoodItems"))
            resolver.link_truck_location(truck_id, _parse_int(record, "locationid", name), _field(record, "Status") or None)

        return self._run_pass("trucks", records, handle)

    def import_foods(self, records: Iterable[Record]) -> int:
        def handle(resolver: EntityResolver, trucks: dict[str, int], record: Record) -> None:
            truck_id = _lookup_truck(trucks, record)
            for item in split_food_items(record.get("FoodItems")):
                resolver.link_truck_food(truck_id, resolver.upsert_food(item))

        return self._run_pass("foods", records, handle, with_trucks=True)

    def import_schedules(self, records: Iterable[Record]) -> int:
        def handle(resolver: EntityResolver, trucks: dict[str, int], record: Record) -> None:
            key = _schedule_key(record)
            resolver.upsert_schedule(
                _lookup_truck(trucks, record),
                _parse_int(record, "locationid", key),
                _parse_int(record, "DayOrder", key),
                _field(record, "DayOfWeekStr") or None,
                _parse_time(record, "start24", key),
                _parse_time(record, "end24", key),
            )

        return self._run_pass("schedules", records, handle, with_trucks=True)

    def run(self, trucks_source: str, schedules_source: str) -> IngestionReport:
        trucks_text = fetch_csv_text(trucks_source)
        schedules_text = fetch_csv_text(schedules_source)

        report = IngestionReport()
        report.locations = self.import_locations(iter_records(trucks_text))
        report.trucks = self.import_trucks(iter_records(trucks_text))
        report.foods = self.import_foods(iter_records(trucks_text))
        report.schedules = self.import_schedules(iter_records(schedules_text))
        return report


def _lookup_truck(trucks: dict[str, int], record: Record) -> int:
    name = _field(record, "Applicant")
    truck_id = trucks.get(name_key(name))
    if truck_id is None:
        raise ResolutionError("unknown truck (trucks pass not imported?)", natural_key=name)
    return truck_id
