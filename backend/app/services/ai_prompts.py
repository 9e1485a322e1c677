from .ai_client import ChatTurn


def food_truck_system_prompt() -> str:
    return (
        "You will be provided with a list of food trucks, along with their food items, locations, and schedules. "
        "Reply to the user queries with food trucks that are currently open or about to open, "
        "and serve food items matching the user's query. "
        "You must provide location and schedule information. "
        "Answer like humans do, not like a machine. Do not use structured responses."
    )


def food_truck_examples() -> list[ChatTurn]:
    # One exchange so the model opens with a plain-language lead-in.
    return [
        ChatTurn(role="user", content="Where can I eat chicken quesadillas?"),
        ChatTurn(role="assistant", content="Here are the locations and schedules"),
    ]
