class GoalQuestError(Exception):
    """Base class for application errors."""


class AuthenticationRequired(GoalQuestError):
    """Raised when no user identifier can be resolved."""

    def __init__(self, message: str = "You must be logged in") -> None:
        super().__init__(message)


class PersistenceError(GoalQuestError):
    """Raised when the data store rejects or cannot serve a request."""

    def __init__(self, table: str, message: str) -> None:
        super().__init__(f"{table}: {message}")
        self.table = table


class PersistenceWriteFailed(PersistenceError):
    pass


class PersistenceReadFailed(PersistenceError):
    pass


class ProfileFetchFailed(PersistenceReadFailed):
    def __init__(self, user_id: str, message: str) -> None:
        super().__init__("profiles", f"could not load profile {user_id}: {message}")
        self.user_id = user_id


class RecordNotFound(PersistenceWriteFailed):
    """Raised when an update's filters match no record."""

    def __init__(self, table: str) -> None:
        super().__init__(table, "no matching record")
