import random
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Message:
    text: str
    attribution: str
    title: str

    @property
    def description(self) -> str:
        return f'"{self.text}" - {self.attribution}'


class MessageSelector:
    """Pick a quote to decorate goal notifications."""

    SUCCESS_TITLES = [
        "Goal set!",
        "You're on your way!",
        "Great start!",
    ]

    FAILURE_TITLES = [
        "Something went wrong",
        "Don't give up",
    ]

    SUCCESS_QUOTES = [
        ("The secret of getting ahead is getting started.", "Mark Twain"),
        ("It always seems impossible until it's done.", "Nelson Mandela"),
        ("Well begun is half done.", "Aristotle"),
        ("A journey of a thousand miles begins with a single step.", "Lao Tzu"),
    ]

    FAILURE_QUOTES = [
        ("Our greatest glory is not in never falling, but in rising every time we fall.", "Confucius"),
        ("Fall seven times, stand up eight.", "Japanese proverb"),
        ("It does not matter how slowly you go as long as you do not stop.", "Confucius"),
    ]

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def get_contextual_message(self, success: bool) -> Message:
        if success:
            text, attribution = self.rng.choice(self.SUCCESS_QUOTES)
            title = self.rng.choice(self.SUCCESS_TITLES)
        else:
            text, attribution = self.rng.choice(self.FAILURE_QUOTES)
            title = self.rng.choice(self.FAILURE_TITLES)
        return Message(text, attribution, title)
