# streak_bot/db.py
"""
Whole-file JSON storage for streak records.

Three documents live under DATA_DIR:
- pb_streak.json:     {user_id: {map_name: personal best}}
- lb_streak.json:     {map_name: [leaderboard rows, best first]}
- server_config.json: {guild_id: {create_quiz_id, quiz_id, admin_id}}

Every accepted update rewrites the affected file. There is no journal; a
crash between update and flush loses the last update only.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


def load_json_file(path: str, default: Any) -> Any:
    if not os.path.exists(path):
        return default
    try:
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
    except (OSError, json.JSONDecodeError):
        logger.exception("Could not read %s, starting from default", path)
        return default


def save_json_file(path: str, data: Any) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


@dataclass
class PersonalBest:
    streak: int
    average_time: float
    last_update: float
    username: str


@dataclass
class LeaderboardEntry:
    user_id: str
    username: str
    streak: int
    average_time: float
    last_update: float


def _sort_key(entry: LeaderboardEntry) -> Tuple[int, float]:
    return -entry.streak, entry.average_time


# Field names used by files written with camelCase keys
LEGACY_KEYS = {
    "averageTime": "average_time",
    "lastUpdate": "last_update",
    "userId": "user_id",
}


def _from_record(cls, record: Any):
    """Build a record dataclass from a stored dict, or None if it doesn't fit."""
    if not isinstance(record, dict):
        return None
    fields = {LEGACY_KEYS.get(key, key): value for key, value in record.items()}
    if isinstance(record.get("lastUpdate"), (int, float)):
        # camelCase files store epoch milliseconds
        fields["last_update"] = record["lastUpdate"] / 1000
    known = {name: fields[name] for name in cls.__dataclass_fields__ if name in fields}
    try:
        return cls(**known)
    except TypeError:
        return None


class StreakStore:
    """Personal bests and per-map leaderboards."""

    def __init__(self, pb_path: str, lb_path: str):
        self.pb_path = pb_path
        self.lb_path = lb_path

        self._personal_bests: Dict[str, Dict[str, PersonalBest]] = {}
        self._leaderboards: Dict[str, List[LeaderboardEntry]] = {}
        self._load_personal_bests(load_json_file(pb_path, {}))
        self._load_leaderboards(load_json_file(lb_path, {}))

    def _load_personal_bests(self, raw: Any) -> None:
        if not isinstance(raw, dict):
            logger.error("Ignoring %s: expected an object of users", self.pb_path)
            return

        for user_id, maps in raw.items():
            if not isinstance(maps, dict):
                logger.warning("Skipping personal bests of user %s in %s", user_id, self.pb_path)
                continue
            for map_name, record in maps.items():
                pb = _from_record(PersonalBest, record)
                if pb is None:
                    logger.warning("Skipping personal best %s/%s: %r", user_id, map_name, record)
                    continue
                self._personal_bests.setdefault(str(user_id), {})[map_name] = pb

    def _load_leaderboards(self, raw: Any) -> None:
        if not isinstance(raw, dict):
            logger.error("Ignoring %s: expected an object of maps", self.lb_path)
            return

        for map_name, rows in raw.items():
            if not isinstance(rows, list):
                logger.warning("Skipping leaderboard %s in %s", map_name, self.lb_path)
                continue
            entries = []
            for row in rows:
                entry = _from_record(LeaderboardEntry, row)
                if entry is None:
                    logger.warning("Skipping leaderboard row of %s: %r", map_name, row)
                    continue
                entry.user_id = str(entry.user_id)
                entries.append(entry)
            self._leaderboards[map_name] = sorted(entries, key=_sort_key)

    # -----------------------------
    # Writes
    # -----------------------------

    def record_result(
        self,
        user_id: int | str,
        username: str,
        map_name: str,
        streak: int,
        average_time_ms: float,
        now: Optional[float] = None,
    ) -> bool:
        """
        Write the result into both collections if it beats what is stored.

        A record is replaced only when none exists yet or the new streak is
        strictly greater. Returns True if anything changed.
        """
        user_key = str(user_id)
        timestamp = time.time() if now is None else now

        pb_changed = False
        user_pbs = self._personal_bests.setdefault(user_key, {})
        current = user_pbs.get(map_name)
        if current is None or streak > current.streak:
            user_pbs[map_name] = PersonalBest(
                streak=streak,
                average_time=average_time_ms,
                last_update=timestamp,
                username=username,
            )
            pb_changed = True

        lb_changed = False
        rows = self._leaderboards.setdefault(map_name, [])
        entry = LeaderboardEntry(
            user_id=user_key,
            username=username,
            streak=streak,
            average_time=average_time_ms,
            last_update=timestamp,
        )
        index = next((i for i, row in enumerate(rows) if row.user_id == user_key), None)
        if index is None:
            rows.append(entry)
            lb_changed = True
        elif streak > rows[index].streak:
            rows[index] = entry
            lb_changed = True

        if lb_changed:
            rows.sort(key=_sort_key)

        if pb_changed:
            self._save_personal_bests()
        if lb_changed:
            self._save_leaderboards()

        if pb_changed or lb_changed:
            logger.info(
                "Recorded streak %s for user=%s map=%s (pb=%s lb=%s)",
                streak, user_key, map_name, pb_changed, lb_changed,
            )
        return pb_changed or lb_changed

    def _save_personal_bests(self) -> None:
        save_json_file(
            self.pb_path,
            {
                user_id: {name: asdict(pb) for name, pb in maps.items()}
                for user_id, maps in self._personal_bests.items()
            },
        )

    def _save_leaderboards(self) -> None:
        save_json_file(
            self.lb_path,
            {
                name: [asdict(row) for row in rows]
                for name, rows in self._leaderboards.items()
            },
        )

    # -----------------------------
    # Reads
    # -----------------------------

    def get_personal_best(self, user_id: int | str, map_name: str) -> Optional[PersonalBest]:
        return self._personal_bests.get(str(user_id), {}).get(map_name)

    def get_personal_stats(self, user_id: int | str) -> Dict[str, PersonalBest]:
        return dict(self._personal_bests.get(str(user_id), {}))

    def get_leaderboard(self, map_name: str, limit: Optional[int] = 10) -> List[LeaderboardEntry]:
        rows = self._leaderboards.get(map_name, [])
        if limit is None:
            return list(rows)
        return rows[:limit]

    def get_user_rank(self, user_id: int | str, map_name: str) -> Optional[int]:
        user_key = str(user_id)
        for position, row in enumerate(self._leaderboards.get(map_name, []), start=1):
            if row.user_id == user_key:
                return position
        return None

    def find_user_by_name(self, username: str) -> Optional[Tuple[str, str]]:
        """Look up (user_id, username) by a case-insensitive username."""
        wanted = username.strip().lower()
        for user_id, maps in self._personal_bests.items():
            for record in maps.values():
                if record.username and record.username.lower() == wanted:
                    return user_id, record.username
        return None


class ServerConfigStore:
    """Per-guild channel setup written by /setup."""

    def __init__(self, path: str):
        self.path = path
        self._configs: Dict[str, Dict[str, int]] = load_json_file(path, {})

    def get(self, guild_id: int) -> Optional[Dict[str, int]]:
        return self._configs.get(str(guild_id))

    def set(self, guild_id: int, create_quiz_id: int, quiz_id: int, admin_id: int) -> None:
        self._configs[str(guild_id)] = {
            "create_quiz_id": create_quiz_id,
            "quiz_id": quiz_id,
            "admin_id": admin_id,
        }
        save_json_file(self.path, self._configs)
        logger.info("Saved server config for guild %s", guild_id)

    def items(self):
        return [(int(guild_id), cfg) for guild_id, cfg in self._configs.items()]
