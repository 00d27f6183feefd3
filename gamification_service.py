class GamificationService:
    """Experience, level and progress-bar arithmetic."""

    LEVEL_SIZE = 1000
    OVERALL_WEIGHT = 0.2
    MAX_PROGRESS = 100.0

    @classmethod
    def level_for(cls, experience_points: int) -> int:
        if experience_points < 0:
            raise ValueError("experience points must be non-negative")
        return experience_points // cls.LEVEL_SIZE + 1

    @classmethod
    def award(cls, current: int | None, gained: int) -> tuple[int, int]:
        """Return the new experience total and the level it maps to."""
        if gained < 0:
            raise ValueError("gained experience must be non-negative")
        total = int(current or 0) + gained
        return total, cls.level_for(total)

    @classmethod
    def advance(cls, progress: float, amount: float) -> float:
        return max(0.0, min(cls.MAX_PROGRESS, progress + amount))

    @classmethod
    def advance_overall(cls, progress: float, contribution: float) -> float:
        return cls.advance(progress, contribution * cls.OVERALL_WEIGHT)
