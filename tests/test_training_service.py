import os
import sys
import random
import asyncio
import unittest
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from errors import PersistenceReadFailed, PersistenceWriteFailed, ProfileFetchFailed
from notifications import LogNotifier, Severity
from training_service import (
    EXERCISES,
    CompletionOutcome,
    Profile,
    TrainingSession,
)


class ProfileStore:
    def __init__(self, profile: dict, fail_update: bool = False, fail_fetch: bool = False) -> None:
        self.profile = dict(profile)
        self.fail_update = fail_update
        self.fail_fetch = fail_fetch
        self.updates: list[tuple[str, dict, dict]] = []
        self.fetches = 0

    async def fetch_one(self, table: str, filters: dict) -> dict:
        self.fetches += 1
        if self.fail_fetch:
            raise PersistenceReadFailed(table, "service unavailable")
        assert table == "profiles"
        assert filters == {"id": self.profile["id"]}
        return dict(self.profile)

    async def update_one(self, table: str, filters: dict, patch: dict) -> None:
        if self.fail_update:
            raise PersistenceWriteFailed(table, "service unavailable")
        self.updates.append((table, filters, patch))
        self.profile.update(patch)


async def _loaded(profile: dict, **kwargs) -> TrainingSession:
    store = ProfileStore(profile, **kwargs)
    session = TrainingSession(store, LogNotifier(), profile["id"])
    await session.load_profile()
    return session


class CatalogTest(unittest.TestCase):
    def test_two_fixed_exercises(self) -> None:
        self.assertEqual([ex.id for ex in EXERCISES], ["run", "pushups"])
        run, pushups = EXERCISES
        self.assertEqual((run.contribution, run.experience_points), (50, 100))
        self.assertEqual((pushups.contribution, pushups.experience_points), (50, 50))

    def test_profile_display_defaults(self) -> None:
        profile = Profile.from_record({"id": "u1", "experience_points": None})
        self.assertEqual(profile.display_level, 1)
        self.assertEqual(profile.display_experience, 0)


class StartExerciseTest(unittest.TestCase):
    def test_second_start_replaces_first(self) -> None:
        session = TrainingSession(ProfileStore({"id": "u1"}), LogNotifier(), "u1")
        session.start_exercise("run")
        session.start_exercise("pushups")
        self.assertTrue(session.is_active("pushups"))
        self.assertFalse(session.is_active("run"))
        self.assertEqual(session.notifier.last.title, "Exercise Started")

    def test_unknown_exercise(self) -> None:
        session = TrainingSession(ProfileStore({"id": "u1"}), LogNotifier(), "u1")
        with self.assertRaises(KeyError):
            session.start_exercise("swim")
        self.assertIsNone(session.active_task)


@pytest.mark.asyncio
async def test_level_up_at_thousand():
    session = await _loaded({"id": "u1", "experience_points": 950, "level": 1})
    session.start_exercise("pushups")
    outcome = await session.complete_exercise("pushups", 50, 50)
    assert outcome is CompletionOutcome.COMPLETED
    assert session.store.updates == [
        ("profiles", {"id": "u1"}, {"experience_points": 1000, "level": 2})
    ]
    assert session.profile.experience_points == 1000
    assert session.profile.level == 2
    assert session.store.fetches == 2
    assert session.active_task is None
    assert session.notifier.last.description == "Gained 50 XP! Keep up the great work!"


@pytest.mark.asyncio
async def test_missing_experience_counts_as_zero():
    session = await _loaded({"id": "u1", "experience_points": None, "level": None})
    await session.complete("run")
    assert session.store.updates[0][2] == {"experience_points": 100, "level": 1}


@pytest.mark.asyncio
async def test_complete_without_user_is_noop():
    store = ProfileStore({"id": "u1", "experience_points": 0})
    session = TrainingSession(store, LogNotifier(), None)
    session.profile = Profile("u1", 0, 1)
    session.start_exercise("run")
    session.notifier.clear()
    outcome = await session.complete_exercise("run", 50, 100)
    assert outcome is CompletionOutcome.SKIPPED
    assert session.active_task == "run"
    assert session.daily_progress == 0
    assert session.overall_progress == 0
    assert store.updates == []
    assert session.notifier.history == []


@pytest.mark.asyncio
async def test_complete_without_profile_is_noop():
    store = ProfileStore({"id": "u1"})
    session = TrainingSession(store, LogNotifier(), "u1")
    outcome = await session.complete("run")
    assert outcome is CompletionOutcome.SKIPPED
    assert store.updates == []


@pytest.mark.asyncio
async def test_progress_is_clamped():
    session = await _loaded({"id": "u1", "experience_points": 0})
    for _ in range(3):
        await session.complete("run")
    assert session.daily_progress == 100
    assert session.overall_progress == pytest.approx(30.0)
    await session.complete_exercise("run", 1000, 10)
    assert session.daily_progress == 100
    assert session.overall_progress == 100


@pytest.mark.asyncio
async def test_failed_write_rolls_back_local_state():
    session = await _loaded({"id": "u1", "experience_points": 10}, fail_update=True)
    session.start_exercise("run")
    outcome = await session.toggle("run")
    assert outcome is CompletionOutcome.FAILED
    assert session.active_task == "run"
    assert session.daily_progress == 0
    assert session.overall_progress == 0
    assert session.profile.experience_points == 10
    note = session.notifier.last
    assert (note.title, note.description) == ("Error", "Failed to update progress")
    assert note.severity is Severity.DESTRUCTIVE


class SlowFirstUpdateStore(ProfileStore):
    """Holds the first update open, then fails it."""

    def __init__(self, profile: dict) -> None:
        super().__init__(profile)
        self.calls = 0

    async def update_one(self, table: str, filters: dict, patch: dict) -> None:
        self.calls += 1
        if self.calls == 1:
            await asyncio.sleep(0.01)
            raise PersistenceWriteFailed(table, "timed out")
        await super().update_one(table, filters, patch)


async def _slow_session() -> TrainingSession:
    store = SlowFirstUpdateStore({"id": "u1", "experience_points": 0})
    session = TrainingSession(store, LogNotifier(), "u1")
    await session.load_profile()
    return session


@pytest.mark.asyncio
async def test_failed_completion_keeps_concurrent_success():
    session = await _slow_session()
    outcomes = await asyncio.gather(session.complete("run"), session.complete("pushups"))
    assert outcomes == [CompletionOutcome.FAILED, CompletionOutcome.COMPLETED]
    assert session.profile.experience_points == 50
    assert session.daily_progress == 50
    assert session.overall_progress == pytest.approx(10.0)


@pytest.mark.asyncio
async def test_failed_completion_keeps_exercise_started_meanwhile():
    session = await _slow_session()
    session.start_exercise("run")
    pending = asyncio.create_task(session.complete("run"))
    await asyncio.sleep(0)
    assert session.active_task is None
    session.start_exercise("pushups")
    assert await pending is CompletionOutcome.FAILED
    assert session.active_task == "pushups"
    assert session.daily_progress == 0


@pytest.mark.asyncio
async def test_negative_experience_leaves_state_untouched():
    session = await _loaded({"id": "u1", "experience_points": 10})
    session.start_exercise("run")
    with pytest.raises(ValueError):
        await session.complete_exercise("run", 50, -10)
    assert session.active_task == "run"
    assert session.daily_progress == 0
    assert session.overall_progress == 0
    assert session.store.updates == []


@pytest.mark.asyncio
async def test_refresh_failure_after_write_keeps_written_values():
    session = await _loaded({"id": "u1", "experience_points": 990, "level": 1})
    session.store.fail_fetch = True
    outcome = await session.complete("pushups")
    assert outcome is CompletionOutcome.COMPLETED
    assert session.profile.experience_points == 1040
    assert session.profile.level == 2


@pytest.mark.asyncio
async def test_load_profile_failure_propagates():
    store = ProfileStore({"id": "u1"}, fail_fetch=True)
    session = TrainingSession(store, LogNotifier(), "u1")
    with pytest.raises(ProfileFetchFailed):
        await session.load_profile()
    assert store.fetches == 1
    assert session.profile is None


@pytest.mark.asyncio
async def test_toggle_starts_then_completes():
    session = await _loaded({"id": "u1", "experience_points": 0})
    assert await session.toggle("run") is None
    assert session.is_active("run")
    assert await session.toggle("run") is CompletionOutcome.COMPLETED
    assert session.active_task is None
    assert session.profile.experience_points == 100


@pytest.mark.asyncio
async def test_level_tracks_experience():
    rng = random.Random(7)
    session = await _loaded({"id": "u1", "experience_points": 0, "level": 1})
    for _ in range(50):
        gained = rng.randint(0, 700)
        await session.complete_exercise("run", rng.randint(0, 60), gained)
        xp = session.profile.experience_points
        assert session.profile.level == xp // 1000 + 1
        assert 0 <= session.daily_progress <= 100
        assert 0 <= session.overall_progress <= 100
