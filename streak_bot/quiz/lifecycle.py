# -----------------------------
# ROUND LIFECYCLE
# -----------------------------
from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from streak_bot.db import PersonalBest, StreakStore
from streak_bot.errors import (
    MapNotReadyError,
    NoResolvableLocationError,
    RenderError,
    StreakBotError,
    UnknownMapError,
)
from streak_bot.quiz.constants import (
    LEADERBOARD_SIZE,
    MSG_ALREADY_RUNNING,
    MSG_CANCELLED,
    MSG_GEOCODE_DOWN,
    MSG_NO_LOCATIONS,
    MSG_NO_MAPS,
    MSG_NOTHING_TO_STOP,
    MSG_RENDER_FAILED,
    ROUND_TRANSITION_DELAY,
)
from streak_bot.quiz.manager import LocationResolver
from streak_bot.quiz.maps import MAP_NAMES, build_embed_url, resolve_map_name
from streak_bot.quiz.resolution import resolve_guess
from streak_bot.quiz.session import (
    GuessCorrect,
    GuessIgnored,
    GuessWrong,
    LeaderboardShown,
    Phase,
    QuizSession,
    Rejected,
    RoundStarted,
    RoundStopped,
)
from streak_bot.render.panorama import PanoramaRenderer

logger = logging.getLogger(__name__)

StartResult = Union[RoundStarted, Rejected]
GuessResult = Union[GuessCorrect, GuessWrong, GuessIgnored]
RoundReadyCallback = Callable[[int, StartResult], Awaitable[None]]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class QuizEngine:
    """
    Per-channel quiz rounds.

    A channel has no entry while idle. Each entry is a QuizSession that is
    replaced wholesale on every transition. Guess scoring runs without any
    await between reading and replacing the session, which makes it the
    serialization point for concurrent guesses.
    """

    def __init__(
        self,
        resolver: LocationResolver,
        renderer: PanoramaRenderer,
        store: StreakStore,
        *,
        map_names: Optional[List[str]] = None,
        on_round_ready: Optional[RoundReadyCallback] = None,
        advance_delay: float = ROUND_TRANSITION_DELAY,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        self.resolver = resolver
        self.renderer = renderer
        self.store = store
        self._map_names = None if map_names is None else list(map_names)
        self.on_round_ready = on_round_ready
        self.advance_delay = advance_delay
        self._clock = clock

        self._sessions: Dict[int, QuizSession] = {}
        self._pending: Set[asyncio.Task] = set()

    @property
    def map_names(self) -> List[str]:
        """The fixed list given at construction, otherwise the live map table."""
        return list(MAP_NAMES) if self._map_names is None else self._map_names

    def get_session(self, channel_id: int) -> Optional[QuizSession]:
        return self._sessions.get(channel_id)

    # -----------------------------
    # Start
    # -----------------------------

    def _choose_map(self, map_name: Optional[str]) -> Optional[str]:
        if map_name:
            selected = resolve_map_name(map_name)
            if selected is None or selected not in self.map_names:
                return None
            return selected
        names = self.map_names
        return random.choice(names) if names else None

    async def start_round(
        self,
        channel_id: int,
        map_name: Optional[str] = None,
        user_id: Optional[int] = None,
    ) -> StartResult:
        """Player-initiated start: refused while a round is loading or open."""
        current = self._sessions.get(channel_id)
        if current is not None and (current.busy or current.phase is Phase.RESOLVED):
            return Rejected(MSG_ALREADY_RUNNING)
        return await self._start(channel_id, map_name, user_id)

    async def _start(
        self,
        channel_id: int,
        map_name: Optional[str],
        user_id: Optional[int],
    ) -> StartResult:
        selected = self._choose_map(map_name)
        if selected is None and not map_name:
            return Rejected(MSG_NO_MAPS)
        if selected is None:
            return Rejected(
                f'Map "{map_name}" not found.\nAvailable maps: {", ".join(self.map_names)}'
            )

        previous = self._sessions.get(channel_id)
        loading = QuizSession.loading(channel_id, selected, user_id, previous)
        self._sessions[channel_id] = loading

        try:
            location, info = await self.resolver.pick_location(selected)
            if info.partial:
                return self._fail(loading, MSG_GEOCODE_DOWN)

            url = build_embed_url(location)
            image = await self.renderer.render(url, label=f"channel {channel_id}")

        except (MapNotReadyError, NoResolvableLocationError) as e:
            logger.warning("Channel %s: %s", channel_id, e)
            return self._fail(loading, f"{MSG_NO_LOCATIONS} ({e})")
        except UnknownMapError as e:
            return self._fail(loading, str(e))
        except RenderError as e:
            logger.error("Error taking screenshot for channel %s: %s", channel_id, e)
            return self._fail(loading, MSG_RENDER_FAILED)
        except StreakBotError as e:
            logger.error("Error starting quiz in channel %s: %s", channel_id, e)
            return self._fail(loading, MSG_RENDER_FAILED)
        except Exception:
            logger.exception("Unexpected error starting quiz in channel %s", channel_id)
            return self._fail(loading, MSG_RENDER_FAILED)

        if self._sessions.get(channel_id) is not loading:
            logger.info("Channel %s: round %s abandoned while loading", channel_id, loading.round_id)
            return Rejected(MSG_CANCELLED, cancelled=True)

        active = loading.activate(location, info, now=self._clock())
        self._sessions[channel_id] = active

        logger.info(
            "New quiz started in channel %s. Map: %s, Answer: %s",
            channel_id, selected, info.country,
        )
        return RoundStarted(session=active, image=image)

    def _fail(self, loading: QuizSession, message: str) -> Rejected:
        # Only clear the channel if nothing replaced our loading session
        if self._sessions.get(loading.channel_id) is loading:
            del self._sessions[loading.channel_id]
        return Rejected(message)

    # -----------------------------
    # Guess
    # -----------------------------

    def submit_guess(self, channel_id: int, user_id: int, username: str, guess: str) -> GuessResult:
        guess = (guess or "").strip()
        session = self._sessions.get(channel_id)
        if not guess or session is None or session.phase is not Phase.ACTIVE:
            return GuessIgnored()

        updated, result = resolve_guess(
            session,
            user_id=user_id,
            username=username,
            guess=guess,
            now=self._clock(),
            store=self.store,
        )
        self._sessions[channel_id] = updated

        if isinstance(result, GuessCorrect):
            self._schedule_next_round(channel_id, updated, user_id)

        return result

    def _schedule_next_round(self, channel_id: int, resolved: QuizSession, user_id: int) -> None:
        task = asyncio.create_task(self._advance(channel_id, resolved, user_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _advance(self, channel_id: int, resolved: QuizSession, user_id: int) -> None:
        await asyncio.sleep(self.advance_delay)

        # Stopped (or otherwise replaced) during the delay
        if self._sessions.get(channel_id) is not resolved:
            return

        result = await self._start(channel_id, resolved.map_name, user_id)
        if self.on_round_ready is None:
            return
        try:
            await self.on_round_ready(channel_id, result)
        except Exception:
            logger.exception("Failed to deliver next round to channel %s", channel_id)

    # -----------------------------
    # Stop
    # -----------------------------

    def stop_round(self, channel_id: int) -> Union[RoundStopped, Rejected]:
        """End the open round. Not a loss: the store is left alone."""
        session = self._sessions.get(channel_id)
        if session is None or not session.busy:
            return Rejected(MSG_NOTHING_TO_STOP)

        del self._sessions[channel_id]
        logger.info("Quiz stopped in channel %s at streak %s", channel_id, session.current_streak)
        return RoundStopped(session=session.stop())

    # -----------------------------
    # Records
    # -----------------------------

    def get_leaderboard(
        self,
        map_name: str,
        limit: int = LEADERBOARD_SIZE,
    ) -> Union[LeaderboardShown, Rejected]:
        resolved = resolve_map_name(map_name)
        if resolved is None:
            return Rejected(f"Unknown map: `{map_name}`. Try one of: {', '.join(self.map_names)}")
        rows = self.store.get_leaderboard(resolved, limit=limit)
        return LeaderboardShown(map_name=resolved, rows=tuple(rows))

    def get_personal_stats(self, user_id: int) -> Dict[str, tuple[PersonalBest, Optional[int]]]:
        """Per-map personal bests with the user's leaderboard position."""
        return {
            map_name: (record, self.store.get_user_rank(user_id, map_name))
            for map_name, record in self.store.get_personal_stats(user_id).items()
        }

    # -----------------------------
    # Shutdown
    # -----------------------------

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.resolver.close()
        await self.renderer.pool.close()
