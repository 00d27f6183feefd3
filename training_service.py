import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from errors import PersistenceError, PersistenceReadFailed, ProfileFetchFailed
from gamification_service import GamificationService
from notifications import Notifier, Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Exercise:
    id: str
    title: str
    description: str
    duration: str
    instructions: str
    contribution: int
    experience_points: int


EXERCISES = (
    Exercise(
        id="run",
        title="Running/Walking",
        description="3km at your own pace",
        duration="30 minutes",
        instructions="Start slow and gradually increase your pace. Listen to your body.",
        contribution=50,
        experience_points=100,
    ),
    Exercise(
        id="pushups",
        title="Push-ups",
        description="5 push-ups",
        duration="5 minutes",
        instructions="Keep your core tight and back straight. Modify on knees if needed.",
        contribution=50,
        experience_points=50,
    ),
)


@dataclass
class Profile:
    id: str
    experience_points: Optional[int] = 0
    level: Optional[int] = 1

    @classmethod
    def from_record(cls, record: dict) -> "Profile":
        return cls(
            id=str(record["id"]),
            experience_points=record.get("experience_points"),
            level=record.get("level"),
        )

    @property
    def display_level(self) -> int:
        return self.level or 1

    @property
    def display_experience(self) -> int:
        return self.experience_points or 0


class CompletionOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class TrainingSession:
    """Drives exercise start/completion and keeps the profile in sync."""

    def __init__(
        self,
        store,
        notifier: Notifier,
        user_id: Optional[str],
        exercises: tuple[Exercise, ...] = EXERCISES,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.user_id = user_id
        self.exercises = {ex.id: ex for ex in exercises}
        self.profile: Optional[Profile] = None
        self.active_task: Optional[str] = None
        self.daily_progress = 0.0
        self.overall_progress = 0.0

    def exercise(self, exercise_id: str) -> Exercise:
        return self.exercises[exercise_id]

    def is_active(self, exercise_id: str) -> bool:
        return self.active_task == exercise_id

    async def load_profile(self, user_id: Optional[str] = None) -> Profile:
        user_id = user_id or self.user_id
        if not user_id:
            raise ProfileFetchFailed("", "no user id")
        try:
            record = await self.store.fetch_one("profiles", {"id": user_id})
        except PersistenceReadFailed as e:
            raise ProfileFetchFailed(user_id, str(e)) from e
        self.profile = Profile.from_record(record)
        return self.profile

    def start_exercise(self, exercise_id: str) -> None:
        self.exercise(exercise_id)
        self.active_task = exercise_id
        self.notifier.show(
            "Exercise Started", "Good luck! Remember to stay hydrated."
        )

    async def complete_exercise(
        self, exercise_id: str, contribution: float, experience_points: int
    ) -> CompletionOutcome:
        if not self.user_id or self.profile is None:
            logger.debug("Skipping completion of %s: no user or profile", exercise_id)
            return CompletionOutcome.SKIPPED

        new_xp, new_level = GamificationService.award(
            self.profile.experience_points, experience_points
        )

        previous_task = self.active_task
        self.active_task = None
        daily = GamificationService.advance(self.daily_progress, contribution)
        overall = GamificationService.advance_overall(self.overall_progress, contribution)
        daily_delta = daily - self.daily_progress
        overall_delta = overall - self.overall_progress
        self.daily_progress, self.overall_progress = daily, overall
        try:
            await self.store.update_one(
                "profiles",
                {"id": self.user_id},
                {"experience_points": new_xp, "level": new_level},
            )
        except PersistenceError as e:
            logger.error("Error updating experience: %s", e)
            # Undo only this call's changes.
            if self.active_task is None:
                self.active_task = previous_task
            self.daily_progress = GamificationService.advance(
                self.daily_progress, -daily_delta
            )
            self.overall_progress = GamificationService.advance(
                self.overall_progress, -overall_delta
            )
            self.notifier.show("Error", "Failed to update progress", Severity.DESTRUCTIVE)
            return CompletionOutcome.FAILED

        try:
            await self.load_profile()
        except ProfileFetchFailed as e:
            logger.warning("Profile refresh failed after update: %s", e)
            self.profile.experience_points = new_xp
            self.profile.level = new_level

        self.notifier.show(
            "Exercise Completed!",
            f"Gained {experience_points} XP! Keep up the great work!",
        )
        return CompletionOutcome.COMPLETED

    async def complete(self, exercise_id: str) -> CompletionOutcome:
        ex = self.exercise(exercise_id)
        return await self.complete_exercise(ex.id, ex.contribution, ex.experience_points)

    async def toggle(self, exercise_id: str) -> Optional[CompletionOutcome]:
        """Complete the exercise when it is active, otherwise start it."""
        if self.is_active(exercise_id):
            return await self.complete(exercise_id)
        self.start_exercise(exercise_id)
        return None
