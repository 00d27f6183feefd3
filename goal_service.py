import datetime
import logging
from enum import Enum
from typing import Callable, Iterable, Optional

from errors import PersistenceError
from messages import MessageSelector
from notifications import Notifier, Severity

logger = logging.getLogger(__name__)


class GoalOutcome(str, Enum):
    CREATED = "created"
    FAILED = "failed"
    AUTH_REQUIRED = "auth_required"
    INVALID = "invalid"


def filter_blank(items: Iterable[str]) -> list[str]:
    """Drop entries that are empty once whitespace is trimmed."""
    return [item for item in items if item.strip() != ""]


def to_timestamp(value: "str | datetime.date | datetime.datetime") -> str:
    """Convert a calendar date to an absolute UTC timestamp string.

    Date-only values are taken as UTC midnight, naive datetimes as UTC.
    """
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("end date is required")
        if len(text) == 10:
            value = datetime.date.fromisoformat(text)
        else:
            value = datetime.datetime.fromisoformat(text.replace("Z", "+00:00"))
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        moment = value.astimezone(datetime.timezone.utc)
    elif isinstance(value, datetime.date):
        moment = datetime.datetime(
            value.year, value.month, value.day, tzinfo=datetime.timezone.utc
        )
    else:
        raise ValueError(f"unsupported date value: {value!r}")
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class GoalForm:
    """State and submission logic for the goal creation form."""

    def __init__(
        self,
        store,
        notifier: Notifier,
        user_id: Optional[str],
        messages: Optional[MessageSelector] = None,
        on_close: Optional[Callable[[], None]] = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.user_id = user_id
        self.messages = messages or MessageSelector()
        self.on_close = on_close
        self.goal_text = ""
        self.end_date: "str | datetime.date | None" = ""
        self.daily_tasks: list[str] = [""]
        self.resource_links: list[str] = [""]

    # daily tasks

    def add_daily_task(self) -> None:
        self.daily_tasks = [*self.daily_tasks, ""]

    def update_daily_task(self, index: int, value: str) -> None:
        tasks = list(self.daily_tasks)
        tasks[index] = value
        self.daily_tasks = tasks

    def remove_daily_task(self, index: int) -> None:
        self.daily_tasks = [t for i, t in enumerate(self.daily_tasks) if i != index]

    # resource links

    def add_resource_link(self) -> None:
        self.resource_links = [*self.resource_links, ""]

    def update_resource_link(self, index: int, value: str) -> None:
        links = list(self.resource_links)
        links[index] = value
        self.resource_links = links

    def remove_resource_link(self, index: int) -> None:
        self.resource_links = [
            link for i, link in enumerate(self.resource_links) if i != index
        ]

    def reset(self) -> None:
        self.goal_text = ""
        self.end_date = ""
        self.daily_tasks = [""]
        self.resource_links = [""]

    def build_record(self) -> dict:
        return {
            "goal_text": self.goal_text,
            "end_date": to_timestamp(self.end_date),
            "daily_tasks": filter_blank(self.daily_tasks),
            "resource_links": filter_blank(self.resource_links),
            "user_id": self.user_id,
        }

    async def submit(
        self,
        goal_text: Optional[str] = None,
        end_date: "str | datetime.date | None" = None,
        daily_tasks: Optional[list[str]] = None,
        resource_links: Optional[list[str]] = None,
    ) -> GoalOutcome:
        if goal_text is not None:
            self.goal_text = goal_text
        if end_date is not None:
            self.end_date = end_date
        if daily_tasks is not None:
            self.daily_tasks = list(daily_tasks)
        if resource_links is not None:
            self.resource_links = list(resource_links)

        if not self.user_id:
            self.notifier.show(
                "Error",
                "You must be logged in to create a goal",
                Severity.DESTRUCTIVE,
            )
            return GoalOutcome.AUTH_REQUIRED

        if not self.goal_text.strip() or not self.end_date:
            self.notifier.show(
                "Missing details",
                "Please enter a goal and a target completion date",
                Severity.DESTRUCTIVE,
            )
            return GoalOutcome.INVALID

        try:
            record = self.build_record()
            saved = await self.store.insert_one("goals", record)
        except (PersistenceError, ValueError) as e:
            logger.error("Error creating goal: %s", e)
            message = self.messages.get_contextual_message(False)
            self.notifier.show(message.title, message.description, Severity.DESTRUCTIVE)
            return GoalOutcome.FAILED

        logger.info("Created goal %s for user %s", saved.get("id"), self.user_id)
        message = self.messages.get_contextual_message(True)
        self.notifier.show(message.title, message.description)
        if self.on_close is not None:
            self.on_close()
        self.reset()
        return GoalOutcome.CREATED
