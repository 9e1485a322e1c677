from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class Truck(Base):
    __tablename__ = "trucks"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    name_key = Column(String(255), nullable=False, unique=True, index=True)
    food_items = Column(Text, nullable=True)  # raw ":"-delimited descriptor from the feed
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    location_links = relationship("TruckLocation", back_populates="truck")
    food_links = relationship("TruckFood", back_populates="truck")
    schedules = relationship("Schedule", back_populates="truck")

    def __repr__(self) -> str:
        return f"<Truck(id={self.id}, name={self.name!r})>"


class TruckLocation(Base):
    __tablename__ = "trucks_locations"

    truck_id = Column(Integer, ForeignKey("trucks.id"), primary_key=True, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), primary_key=True, index=True)
    status = Column(String(50), nullable=True, index=True)  # APPROVED | REQUESTED | EXPIRED ...

    truck = relationship("Truck", back_populates="location_links")
    location = relationship("Location", back_populates="truck_links")


class TruckFood(Base):
    __tablename__ = "trucks_foods"

    truck_id = Column(Integer, ForeignKey("trucks.id"), primary_key=True, index=True)
    food_id = Column(Integer, ForeignKey("foods.id"), primary_key=True, index=True)

    truck = relationship("Truck", back_populates="food_links")
    food = relationship("Food", back_populates="truck_links")
