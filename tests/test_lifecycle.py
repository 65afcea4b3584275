"""Tests for the quiz round lifecycle."""

from unittest.mock import MagicMock

import aiohttp
import pytest

from streak_bot.errors import RenderError
from streak_bot.quiz.constants import (
    MSG_ALREADY_RUNNING,
    MSG_CANCELLED,
    MSG_GEOCODE_DOWN,
    MSG_NO_LOCATIONS,
    MSG_NO_MAPS,
    MSG_NOTHING_TO_STOP,
    MSG_RENDER_FAILED,
)
from streak_bot.quiz.lifecycle import QuizEngine
from streak_bot.quiz.resolution import update_average
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

from conftest import TEST_MAP

CHANNEL = 100


class Collector:
    def __init__(self):
        self.rounds = []

    async def __call__(self, channel_id, result):
        self.rounds.append((channel_id, result))


@pytest.fixture
def delivered():
    return Collector()


@pytest.fixture
def engine(resolver, renderer, store, clock, delivered):
    return QuizEngine(
        resolver,
        renderer,
        store,
        map_names=[TEST_MAP],
        on_round_ready=delivered,
        advance_delay=0,
        clock=clock,
    )


def test_update_average():
    assert update_average(0.0, 4000, 1) == 4000
    assert update_average(4000, 6000, 2) == 5000
    assert update_average(5000, 2000, 3) == 4000


def test_session_requires_location_and_country_together():
    with pytest.raises(ValueError):
        QuizSession(channel_id=1, phase=Phase.ACTIVE, map_name=TEST_MAP, location={"lat": 0, "lng": 0})


@pytest.mark.asyncio
class TestStart:
    async def test_start_round(self, engine, renderer):
        result = await engine.start_round(CHANNEL, TEST_MAP, user_id=7)

        assert isinstance(result, RoundStarted)
        assert result.image == b"jpeg-bytes"
        session = engine.get_session(CHANNEL)
        assert session.phase is Phase.ACTIVE
        assert session.correct_country == "france"
        assert session.started_by == 7
        assert session.current_streak == 0
        url = renderer.render.await_args.args[0]
        assert "showAnswer=false" in url

    async def test_map_alias(self, engine):
        result = await engine.start_round(CHANNEL, "abe")
        assert isinstance(result, RoundStarted)
        assert result.session.map_name == TEST_MAP

    async def test_random_map(self, engine):
        result = await engine.start_round(CHANNEL)
        assert result.session.map_name == TEST_MAP

    async def test_unknown_map(self, engine, renderer):
        result = await engine.start_round(CHANNEL, "atlantis")

        assert isinstance(result, Rejected)
        assert "Available maps" in result.message
        assert engine.get_session(CHANNEL) is None
        renderer.render.assert_not_awaited()

    async def test_rejected_while_active(self, engine):
        await engine.start_round(CHANNEL, TEST_MAP)
        result = await engine.start_round(CHANNEL, TEST_MAP)

        assert result == Rejected(MSG_ALREADY_RUNNING)

    async def test_channels_are_independent(self, engine):
        first = await engine.start_round(1, TEST_MAP)
        second = await engine.start_round(2, TEST_MAP)
        assert first.ok and second.ok

    async def test_render_failure_clears_session(self, engine, renderer):
        renderer.render.side_effect = RenderError("Navigation failed")

        result = await engine.start_round(CHANNEL, TEST_MAP)

        assert result == Rejected(MSG_RENDER_FAILED)
        assert engine.get_session(CHANNEL) is None
        assert "!play" in result.message and "!stop" not in result.message
        renderer.render.side_effect = None
        assert (await engine.start_round(CHANNEL, TEST_MAP)).ok

    async def test_geocoder_down(self, engine, geocoder, renderer):
        geocoder.reverse_lookup.side_effect = aiohttp.ClientError("503")

        result = await engine.start_round(CHANNEL, TEST_MAP)

        assert result == Rejected(MSG_GEOCODE_DOWN)
        assert engine.get_session(CHANNEL) is None
        renderer.render.assert_not_awaited()

    async def test_all_locations_unresolvable(self, engine, geocoder):
        geocoder.reverse_lookup.return_value = {}

        result = await engine.start_round(CHANNEL, TEST_MAP)

        assert isinstance(result, Rejected)
        assert result.message.startswith(MSG_NO_LOCATIONS)
        assert engine.get_session(CHANNEL) is None

    async def test_malformed_catalog_reply(self, engine, catalog):
        catalog.fetch_locations.return_value = [{"lat": 1, "lng": 2}]

        result = await engine.start_round(CHANNEL, TEST_MAP)

        assert result.message.startswith(MSG_NO_LOCATIONS)
        assert engine.get_session(CHANNEL) is None

    async def test_map_not_ready(self, engine, catalog):
        catalog.fetch_locations.return_value = {"ready": False}

        result = await engine.start_round(CHANNEL, TEST_MAP)

        assert result.message.startswith(MSG_NO_LOCATIONS)
        assert engine.get_session(CHANNEL) is None

    async def test_stop_while_loading_discards_render(self, engine, renderer):
        async def render(url, label=""):
            assert engine.get_session(CHANNEL).phase is Phase.LOADING
            assert isinstance(engine.stop_round(CHANNEL), RoundStopped)
            return b"jpeg-bytes"

        renderer.render.side_effect = render

        result = await engine.start_round(CHANNEL, TEST_MAP)

        assert result == Rejected(MSG_CANCELLED, cancelled=True)
        assert engine.get_session(CHANNEL) is None


@pytest.mark.asyncio
class TestGuess:
    async def test_streak_and_average(self, engine, store, clock, delivered):
        await engine.start_round(CHANNEL, TEST_MAP)

        for elapsed, expected_avg in ((4000, 4000), (6000, 5000), (2000, 4000)):
            clock.now += elapsed
            result = engine.submit_guess(CHANNEL, 1, "ana", "France")
            assert isinstance(result, GuessCorrect)
            assert result.elapsed == elapsed
            assert result.average_time == expected_avg
            await engine.drain()

        assert len(delivered.rounds) == 3
        assert all(isinstance(r, RoundStarted) for _, r in delivered.rounds)

        session = engine.get_session(CHANNEL)
        assert session.phase is Phase.ACTIVE
        assert session.current_streak == 3
        assert session.average_time == 4000

        pb = store.get_personal_best(1, TEST_MAP)
        assert (pb.streak, pb.average_time) == (3, 4000)

    async def test_alias_guess(self, engine, geocoder):
        geocoder.reverse_lookup.return_value = {"country": "United Kingdom", "state": "Wales"}
        await engine.start_round(CHANNEL, TEST_MAP)

        assert isinstance(engine.submit_guess(CHANNEL, 1, "ana", "uk"), GuessCorrect)

    async def test_late_guess_is_ignored(self, engine, store):
        await engine.start_round(CHANNEL, TEST_MAP)

        first = engine.submit_guess(CHANNEL, 1, "ana", "france")
        second = engine.submit_guess(CHANNEL, 2, "bob", "france")
        wrong = engine.submit_guess(CHANNEL, 3, "cid", "germany")

        assert isinstance(first, GuessCorrect)
        assert isinstance(second, GuessIgnored)
        assert isinstance(wrong, GuessIgnored)
        assert store.get_personal_best(2, TEST_MAP) is None
        assert engine.get_session(CHANNEL).current_streak == 1
        await engine.drain()

    async def test_wrong_guess_ends_run(self, engine, store, clock):
        store.record_result(1, "ana", TEST_MAP, 9, 1000.0)
        await engine.start_round(CHANNEL, TEST_MAP)
        engine.submit_guess(CHANNEL, 1, "ana", "france")
        await engine.drain()

        clock.now += 1500
        result = engine.submit_guess(CHANNEL, 1, "ana", "spain")

        assert isinstance(result, GuessWrong)
        assert result.personal_best == 9
        assert result.session.current_streak == 1
        assert result.session.correct_country == "france"

        session = engine.get_session(CHANNEL)
        assert session.phase is Phase.LOST
        assert session.current_streak == 0
        assert session.location is None and session.correct_country is None

        assert isinstance(engine.submit_guess(CHANNEL, 1, "ana", "france"), GuessIgnored)
        restarted = await engine.start_round(CHANNEL, TEST_MAP)
        assert restarted.session.current_streak == 0

    async def test_participants_are_recorded(self, engine):
        await engine.start_round(CHANNEL, TEST_MAP)
        result = engine.submit_guess(CHANNEL, 5, "eve", "spain")
        assert [p.username for p in result.session.participants] == ["eve"]

    async def test_guess_without_round(self, engine):
        assert isinstance(engine.submit_guess(CHANNEL, 1, "ana", "france"), GuessIgnored)

    async def test_blank_guess(self, engine):
        await engine.start_round(CHANNEL, TEST_MAP)
        assert isinstance(engine.submit_guess(CHANNEL, 1, "ana", "   "), GuessIgnored)
        assert engine.get_session(CHANNEL).phase is Phase.ACTIVE


@pytest.mark.asyncio
class TestStop:
    async def test_stop_does_not_touch_store(self, resolver, renderer, clock):
        store = MagicMock()
        engine = QuizEngine(resolver, renderer, store, map_names=[TEST_MAP], clock=clock)
        await engine.start_round(CHANNEL, TEST_MAP)

        result = engine.stop_round(CHANNEL)

        assert isinstance(result, RoundStopped)
        assert result.session.phase is Phase.STOPPED
        assert result.session.correct_country == "france"
        assert engine.get_session(CHANNEL) is None
        assert store.method_calls == []

    async def test_nothing_to_stop(self, engine):
        assert engine.stop_round(CHANNEL) == Rejected(MSG_NOTHING_TO_STOP)

    async def test_stop_resets_streak(self, engine):
        await engine.start_round(CHANNEL, TEST_MAP)
        engine.submit_guess(CHANNEL, 1, "ana", "france")
        await engine.drain()
        engine.stop_round(CHANNEL)

        result = await engine.start_round(CHANNEL, TEST_MAP)
        assert result.session.current_streak == 0

    async def test_stop_during_advance_delay(self, resolver, renderer, store, clock, delivered):
        engine = QuizEngine(
            resolver, renderer, store,
            map_names=[TEST_MAP], on_round_ready=delivered, advance_delay=0, clock=clock,
        )
        await engine.start_round(CHANNEL, TEST_MAP)
        engine.submit_guess(CHANNEL, 1, "ana", "france")

        # Resolved rounds can't be stopped; the next round still arrives
        assert engine.stop_round(CHANNEL) == Rejected(MSG_NOTHING_TO_STOP)
        await engine.drain()
        assert engine.get_session(CHANNEL).phase is Phase.ACTIVE
        assert len(delivered.rounds) == 1


@pytest.mark.asyncio
class TestRecords:
    async def test_leaderboard_by_alias(self, engine, store):
        store.record_result(1, "ana", TEST_MAP, 4, 3000.0)
        result = engine.get_leaderboard("abe")
        assert isinstance(result, LeaderboardShown)
        assert result.map_name == TEST_MAP
        assert [row.username for row in result.rows] == ["ana"]

    async def test_leaderboard_unknown_map_is_rejected(self, engine):
        result = engine.get_leaderboard("atlantis")
        assert isinstance(result, Rejected)
        assert "atlantis" in result.message
        assert TEST_MAP in result.message

    async def test_empty_leaderboard(self, engine):
        result = engine.get_leaderboard(TEST_MAP)
        assert result.ok and result.rows == ()

    async def test_personal_stats_include_rank(self, engine, store):
        store.record_result(1, "ana", TEST_MAP, 4, 3000.0)
        store.record_result(2, "bob", TEST_MAP, 6, 3000.0)

        stats = engine.get_personal_stats(1)
        best, rank = stats[TEST_MAP]
        assert best.streak == 4
        assert rank == 2

    async def test_close(self, engine, catalog, geocoder, renderer):
        await engine.close()
        catalog.close.assert_awaited_once()
        geocoder.close.assert_awaited_once()
        renderer.pool.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_engine_follows_live_map_table(resolver, renderer, store, clock, tmp_path):
    from streak_bot.quiz import maps

    saved = {name: dict(info) for name, info in maps.MAP_DATA.items()}
    engine = QuizEngine(resolver, renderer, store, clock=clock)
    try:
        maps.add_map("Rural Japan", ["rj"], path=str(tmp_path / "maps.json"))
        assert "Rural Japan" in engine.map_names

        maps.delete_map("rj", path=str(tmp_path / "maps.json"))
        assert "Rural Japan" not in engine.map_names
        result = await engine.start_round(CHANNEL, "rj")
        assert isinstance(result, Rejected)
        assert "not found" in result.message
    finally:
        maps.refresh_maps(saved)


@pytest.mark.asyncio
async def test_no_maps_configured(resolver, renderer, store, clock):
    engine = QuizEngine(resolver, renderer, store, map_names=[], clock=clock)
    assert engine.stop_round(CHANNEL) == Rejected(MSG_NOTHING_TO_STOP)
    result = await engine.start_round(CHANNEL)
    assert result == Rejected(MSG_NO_MAPS)
