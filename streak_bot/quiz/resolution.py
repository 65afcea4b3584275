# streak_bot/quiz/resolution.py

import logging
from typing import Tuple, Union

from streak_bot.db import StreakStore
from streak_bot.quiz.session import GuessCorrect, GuessWrong, QuizSession
from streak_bot.utils.countries import check_country_guess

logger = logging.getLogger(__name__)


def update_average(average: float, elapsed: float, streak: int) -> float:
    """Incremental mean: the average of the first `streak` round times."""
    return average + (elapsed - average) / streak


def resolve_guess(
    session: QuizSession,
    user_id: int,
    username: str,
    guess: str,
    now: float,
    store: StreakStore,
) -> Tuple[QuizSession, Union[GuessCorrect, GuessWrong]]:
    """
    Score one guess against an active round.

    Synchronous on purpose: the caller swaps in the returned session before
    yielding to the event loop, so a second guess for the same round can
    only ever see the resolved session.
    """
    session = session.with_participant(user_id, username)
    elapsed = now - session.start_time

    if check_country_guess(guess, session.correct_country):
        streak = session.current_streak + 1
        average = update_average(session.average_time, elapsed, streak)

        try:
            store.record_result(
                user_id=user_id,
                username=username,
                map_name=session.map_name,
                streak=streak,
                average_time_ms=average,
            )
        except OSError:
            # The round still counts; the next accepted update rewrites the file
            logger.exception("Could not persist streak for user=%s", user_id)

        result = GuessCorrect(
            session=session,
            elapsed=elapsed,
            streak=streak,
            average_time=average,
        )
        return session.resolve(streak, average, now), result

    best = store.get_personal_best(user_id, session.map_name)
    result = GuessWrong(
        session=session,
        elapsed=elapsed,
        personal_best=best.streak if best else 0,
    )
    return session.lose(now), result
