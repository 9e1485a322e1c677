import logging
from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo

from ..config import APP_TIMEZONE
from ..schemas.search import TruckNode
from .ai_client import ChatTurn
from .ai_prompts import food_truck_examples, food_truck_system_prompt


logger = logging.getLogger(__name__)


class ChatClient(Protocol):
    async def complete(self, system_prompt: str, examples: list[ChatTurn], content: str) -> str: ...


def format_now(now: datetime) -> str:
    # e.g. "Tuesday, October 20, 2026 at 1:05:09 PM"
    hour = now.strftime("%I").lstrip("0") or "12"
    return f"{now.strftime('%A, %B')} {now.day}, {now.year} at {hour}:{now.strftime('%M:%S %p')}"


def build_context(trucks: list[TruckNode], query: str, now: datetime) -> str:
    """One paragraph per truck; each location line carries its schedule entries."""
    lines = [f"Current date: {format_now(now)}"]
    for truck in trucks:
        lines.append("-")
        lines.append(f"Food Truck: {truck.name}")
        lines.append(f"Menu: {truck.food_items or ''}")
        for location in truck.locations:
            line = f"Location: {location.address or ''}"
            for s in location.schedules:
                line += f" - {s.day_of_week or ''} {s.start_time or ''} - {s.end_time or ''}"
            lines.append(line)
    lines.append("-")
    lines.append("")
    lines.append(f"User query: {query}")
    return "\n".join(lines)


class AnswerSynthesizer:
    def __init__(self, chat: ChatClient, *, timezone: str = APP_TIMEZONE):
        self.chat = chat
        self.timezone = ZoneInfo(timezone)

    async def answer(self, query: str, trucks: list[TruckNode], *, now: datetime | None = None) -> str:
        content = build_context(trucks, query, now or datetime.now(self.timezone))
        logger.info("retrieving chat response...")
        return await self.chat.complete(food_truck_system_prompt(), food_truck_examples(), content)
