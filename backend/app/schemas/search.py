from pydantic import BaseModel, Field


class ScheduleEntry(BaseModel):
    day_of_week: str | None = None
    start_time: str | None = None  # "10:00 AM"
    end_time: str | None = None


class LocationNode(BaseModel):
    id: int
    address: str | None = None
    status: str | None = None
    schedules: list[ScheduleEntry] = Field(default_factory=list)


class TruckNode(BaseModel):
    id: int
    name: str
    food_items: str | None = None
    locations: list[LocationNode] = Field(default_factory=list)


class QueryRequest(BaseModel):
    query: str | None = None


class QueryResponse(BaseModel):
    success: bool = True
    response: str
