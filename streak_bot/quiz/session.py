# streak_bot/quiz/session.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from streak_bot.db import LeaderboardEntry
from streak_bot.quiz.manager import LocationInfo, LocationRecord


class Phase(str, Enum):
    LOADING = "loading"
    ACTIVE = "active"
    RESOLVED = "resolved"
    LOST = "lost"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Participant:
    user_id: int
    username: str


@dataclass(frozen=True)
class QuizSession:
    """
    One channel's quiz. Never mutated: every transition returns a new value,
    so a result can keep pointing at the round it describes.
    """

    channel_id: int
    phase: Phase
    map_name: str

    location: Optional[LocationRecord] = None
    correct_country: Optional[str] = None
    correct_subdivision: Optional[str] = None

    start_time: Optional[float] = None
    current_streak: int = 0
    average_time: float = 0.0

    participants: Tuple[Participant, ...] = ()
    started_by: Optional[int] = None
    round_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        if (self.location is None) != (self.correct_country is None):
            raise ValueError("location and correct_country must be set together")

    @property
    def busy(self) -> bool:
        return self.phase in (Phase.LOADING, Phase.ACTIVE)

    # -----------------------------
    # Transitions
    # -----------------------------

    @classmethod
    def loading(
        cls,
        channel_id: int,
        map_name: str,
        started_by: Optional[int],
        previous: Optional["QuizSession"] = None,
    ) -> "QuizSession":
        return cls(
            channel_id=channel_id,
            phase=Phase.LOADING,
            map_name=map_name,
            current_streak=previous.current_streak if previous else 0,
            average_time=previous.average_time if previous else 0.0,
            started_by=started_by,
        )

    def activate(self, location: LocationRecord, info: LocationInfo, now: float) -> "QuizSession":
        return replace(
            self,
            phase=Phase.ACTIVE,
            location=location,
            correct_country=info.country,
            correct_subdivision=info.subdivision,
            start_time=now,
        )

    def with_participant(self, user_id: int, username: str) -> "QuizSession":
        if any(p.user_id == user_id for p in self.participants):
            return self
        return replace(self, participants=self.participants + (Participant(user_id, username),))

    def resolve(self, streak: int, average_time: float, now: float) -> "QuizSession":
        return replace(
            self,
            phase=Phase.RESOLVED,
            current_streak=streak,
            average_time=average_time,
            start_time=now,
            participants=(),
        )

    def lose(self, now: float) -> "QuizSession":
        return replace(
            self,
            phase=Phase.LOST,
            location=None,
            correct_country=None,
            correct_subdivision=None,
            current_streak=0,
            average_time=0.0,
            start_time=now,
            participants=(),
        )

    def stop(self) -> "QuizSession":
        return replace(self, phase=Phase.STOPPED, participants=())


# -----------------------------
# Results handed to the chat layer
# -----------------------------

@dataclass(frozen=True)
class Rejected:
    message: str
    cancelled: bool = False
    ok: bool = False


@dataclass(frozen=True)
class RoundStarted:
    session: QuizSession
    image: bytes
    ok: bool = True


@dataclass(frozen=True)
class RoundStopped:
    session: QuizSession
    ok: bool = True


@dataclass(frozen=True)
class GuessIgnored:
    ok: bool = False


@dataclass(frozen=True)
class GuessCorrect:
    # the round as it was when the guess arrived, plus the updated totals
    session: QuizSession
    elapsed: float
    streak: int
    average_time: float
    ok: bool = True


@dataclass(frozen=True)
class GuessWrong:
    session: QuizSession
    elapsed: float
    personal_best: int
    ok: bool = True


@dataclass(frozen=True)
class LeaderboardShown:
    map_name: str
    rows: Tuple[LeaderboardEntry, ...]
    ok: bool = True
