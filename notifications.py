import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str
    severity: Severity = Severity.DEFAULT


class Notifier:
    """Presents short messages to the user."""

    def show(
        self, title: str, description: str, severity: Severity = Severity.DEFAULT
    ) -> None:
        raise NotImplementedError()


class LogNotifier(Notifier):
    """Notifier writing to the log and keeping a history of what was shown."""

    def __init__(self) -> None:
        self.history: list[Notification] = []

    def show(
        self, title: str, description: str, severity: Severity = Severity.DEFAULT
    ) -> None:
        note = Notification(title, description, Severity(severity))
        self.history.append(note)
        level = logging.WARNING if note.severity is Severity.DESTRUCTIVE else logging.INFO
        logger.log(level, "%s: %s", title, description)

    @property
    def last(self) -> Notification | None:
        return self.history[-1] if self.history else None

    def clear(self) -> None:
        self.history.clear()
