from sqlalchemy import Column, DateTime, ForeignKey, Integer, SmallInteger, String, Time, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class Schedule(Base):
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    truck_id = Column(Integer, ForeignKey("trucks.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False, index=True)
    day_order = Column(SmallInteger, nullable=True, index=True)  # 0 = Sunday ... 6 = Saturday
    day_of_week = Column(String(10), nullable=True, index=True)
    start_time = Column(Time, nullable=True, index=True)
    end_time = Column(Time, nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("truck_id", "location_id", "day_order", name="uq_schedules_truck_location_day"),
    )

    truck = relationship("Truck", back_populates="schedules")
    location = relationship("Location", back_populates="schedules")
