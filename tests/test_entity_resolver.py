from datetime import time

import pytest
from sqlalchemy import func, select

from backend.app.errors import ResolutionError
from backend.app.models.food import Food
from backend.app.models.location import Location
from backend.app.models.schedule import Schedule
from backend.app.models.truck import Truck, TruckFood, TruckLocation
from backend.app.services.entity_resolver import EntityResolver, name_key


def _count(database, model) -> int:
    with database.session() as db:
        return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_name_key_is_case_folded_and_trimmed():
    assert name_key("  Bob's Burgers ") == "bob's burgers"
    assert name_key(None) == ""


def test_truck_names_resolve_case_insensitively(database):
    with database.SessionLocal.begin() as db:
        resolver = EntityResolver(db)
        first = resolver.upsert_truck("Bob's Burgers", "Burgers: Fries")
        second = resolver.upsert_truck("bob's burgers", "Burgers: Fries: Shakes")

    assert first == second
    assert _count(database, Truck) == 1
    with database.session() as db:
        truck = db.get(Truck, first)
        # Display name keeps the casing seen first; the descriptor follows the latest import.
        assert truck.name == "Bob's Burgers"
        assert truck.food_items == "Burgers: Fries: Shakes"
        assert truck.updated_at is not None


def test_location_upsert_updates_fields_and_keeps_external_id(database):
    with database.SessionLocal.begin() as db:
        resolver = EntityResolver(db)
        resolver.upsert_location(101, "1 MARKET ST", "old")
        resolver.upsert_location(101, "1 MARKET ST #2", "new")

    with database.session() as db:
        rows = db.execute(select(Location)).scalars().all()
    assert [(r.id, r.address, r.description) for r in rows] == [(101, "1 MARKET ST #2", "new")]


def test_food_upsert_is_shared_and_rejects_bad_tokens(database):
    with database.SessionLocal.begin() as db:
        resolver = EntityResolver(db)
        assert resolver.upsert_food("Tacos") == resolver.upsert_food("TACOS")

        with pytest.raises(ResolutionError):
            resolver.upsert_food("   ")
        with pytest.raises(ResolutionError) as exc:
            resolver.upsert_food("x" * 32)
        assert exc.value.natural_key == "x" * 32

    assert _count(database, Food) == 1


def test_links_are_noops_on_reimport(database):
    with database.SessionLocal.begin() as db:
        resolver = EntityResolver(db)
        resolver.upsert_location(101, "1 MARKET ST", None)
        truck_id = resolver.upsert_truck("Taco Loco", "Tacos")
        food_id = resolver.upsert_food("Tacos")
        for _ in range(2):
            resolver.link_truck_location(truck_id, 101, "APPROVED")
            resolver.link_truck_food(truck_id, food_id)
        # Existing pair is left alone, status included.
        resolver.link_truck_location(truck_id, 101, "EXPIRED")

    assert _count(database, TruckLocation) == 1
    assert _count(database, TruckFood) == 1
    with database.session() as db:
        assert db.execute(select(TruckLocation.status)).scalar_one() == "APPROVED"


def test_schedule_upsert_updates_times_by_natural_key(database):
    with database.SessionLocal.begin() as db:
        resolver = EntityResolver(db)
        resolver.upsert_location(101, "1 MARKET ST", None)
        truck_id = resolver.upsert_truck("Taco Loco", "Tacos")
        resolver.upsert_schedule(truck_id, 101, 5, "Friday", time(17, 0), time(21, 0))
        resolver.upsert_schedule(truck_id, 101, 5, "Friday", time(18, 0), time(22, 0))
        resolver.upsert_schedule(truck_id, 101, 6, "Saturday", time(12, 0), time(16, 0))

    with database.session() as db:
        rows = db.execute(select(Schedule).order_by(Schedule.day_order)).scalars().all()
    assert [(r.day_order, r.start_time, r.end_time) for r in rows] == [
        (5, time(18, 0), time(22, 0)),
        (6, time(12, 0), time(16, 0)),
    ]


def test_constraint_violation_is_tagged_with_natural_key(database):
    with pytest.raises(ResolutionError) as exc:
        with database.SessionLocal.begin() as db:
            resolver = EntityResolver(db)
            truck_id = resolver.upsert_truck("Taco Loco", "Tacos")
            resolver.link_truck_location(truck_id, 999, "APPROVED")  # no such location

    assert exc.value.natural_key[1] == 999
    assert "truck location" in str(exc.value)
    # Whole transaction rolled back.
    assert _count(database, Truck) == 0


def test_truck_ids_lookup_is_keyed_by_case_folded_name(database):
    with database.SessionLocal.begin() as db:
        resolver = EntityResolver(db)
        a = resolver.upsert_truck("Bob's Burgers", None)
        b = resolver.upsert_truck("Taco Loco", None)
        assert resolver.truck_ids() == {"bob's burgers": a, "taco loco": b}
