from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class Location(Base):
    __tablename__ = "locations"

    # Supplied by the permit feed (`locationid`), never generated here.
    id = Column(Integer, primary_key=True, autoincrement=False)
    address = Column(String(255), nullable=True, index=True)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    truck_links = relationship("TruckLocation", back_populates="location")
    schedules = relationship("Schedule", back_populates="location")
