"""Profile and leaderboard tables on top of a PersistenceStore.

- Owns the two fixed keys and their versioned record format.
- Every write is a read-modify-write held under the key's lock.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError

from memorabilia.domain.game_rules import TIER_TABLE
from memorabilia.exceptions import RecordVersionError
from memorabilia.key_lock_manager import KeyLockManager
from memorabilia.models.dc_models import Difficulty, LeaderboardEntry, PlayerProfile, ScoreRecord
from memorabilia.models.schema_models import (
    RECORD_FORMAT_VERSION,
    LeaderboardTableSchema,
    PlayerTableSchema,
)
from memorabilia.services.persistence_store import PersistenceStore

PLAYER_TABLE_KEY = "memorabilia_player_data"
LEADERBOARD_TABLE_KEY = "memorabilia_leaderboard"


def rank_records(records: List[ScoreRecord], limit: Optional[int] = None) -> List[LeaderboardEntry]:
    """Order records by score descending and assign contiguous ranks from 1.

    Ties go to the earlier timestamp; equal timestamps keep the incoming order.
    """
    ordered = sorted(records, key=lambda record: (-record.score, record.timestamp))
    if limit is not None:
        ordered = ordered[:limit]
    return [LeaderboardEntry(rank=i + 1, record=record) for i, record in enumerate(ordered)]


def _from_millis(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _upgrade_v0_profile(item: dict) -> dict:
    return {
        "player_id": str(item["telegramId"]),
        "display_name": item["playerName"],
        "total_games": item.get("totalGames", 0),
        "total_wins": item.get("totalWins", 0),
        "best_score": item.get("bestScore", 0),
        "average_score": item.get("averageScore", 0),
        "joined_at": _from_millis(item.get("joinedAt")) or datetime.fromtimestamp(0, tz=timezone.utc),
        "last_active": _from_millis(item.get("lastPlayed")),
    }


def _upgrade_v0_entry(item: dict) -> dict:
    labels = {config.label: difficulty for difficulty, config in TIER_TABLE.items()}
    return {
        "rank": item["rank"],
        "record": {
            "player_id": str(item["telegramId"]),
            "display_name": item["playerName"],
            "score": item["score"],
            "moves": item["moves"],
            "elapsed_seconds": item["time"],
            "difficulty": labels.get(item["difficulty"], Difficulty.EASY),
            "timestamp": _from_millis(item["achievedAt"]),
        },
    }


V0_UPGRADES = {
    PLAYER_TABLE_KEY: _upgrade_v0_profile,
    LEADERBOARD_TABLE_KEY: _upgrade_v0_entry,
}


def _load_table(raw, schema, key: str):
    if raw is None:
        return schema()
    if isinstance(raw, list):
        # version 0: bare camelCase array written before the version tag existed
        logging.info(f"Upgrading unversioned records under {key}")
        try:
            records = [V0_UPGRADES[key](item) for item in raw]
        except (KeyError, TypeError) as e:
            raise RecordVersionError(f"Unversioned records under {key} are not readable: {e!r}") from e
        raw = {"version": RECORD_FORMAT_VERSION, "records": records}
    version = raw.get("version") if isinstance(raw, dict) else None
    if not isinstance(version, int) or version > RECORD_FORMAT_VERSION:
        raise RecordVersionError(f"Unsupported record version {version!r} under {key}")
    try:
        return schema.model_validate(raw)
    except ValidationError as e:
        raise RecordVersionError(f"Records under {key} do not match version {version}: {e}") from e


class PlayerRecords:
    def __init__(self, store: PersistenceStore, max_entries: int = 100, locks: KeyLockManager | None = None):
        self.store = store
        self.max_entries = max_entries
        self.locks = locks or KeyLockManager()

    async def read_profiles(self) -> List[PlayerProfile]:
        raw = await self.store.get(PLAYER_TABLE_KEY)
        return _load_table(raw, PlayerTableSchema, PLAYER_TABLE_KEY).records

    async def read_leaderboard(self) -> List[LeaderboardEntry]:
        raw = await self.store.get(LEADERBOARD_TABLE_KEY)
        return _load_table(raw, LeaderboardTableSchema, LEADERBOARD_TABLE_KEY).records

    async def read_profile(self, player_id: str) -> Optional[PlayerProfile]:
        for profile in await self.read_profiles():
            if profile.player_id == player_id:
                return profile
        return None

    async def get_or_create_profile(self, player_id: str, display_name: str, now: datetime) -> PlayerProfile:
        """Return the profile of the player, creating an empty one on first sight"""
        async with self.locks.hold(PLAYER_TABLE_KEY):
            table = _load_table(await self.store.get(PLAYER_TABLE_KEY), PlayerTableSchema, PLAYER_TABLE_KEY)
            for profile in table.records:
                if profile.player_id == player_id:
                    return profile
            profile = PlayerProfile(player_id=player_id, display_name=display_name, joined_at=now)
            table.records.append(profile)
            await self.store.set(PLAYER_TABLE_KEY, table.model_dump(mode="json"))
            return profile

    async def record_game(self, record: ScoreRecord, is_win: bool = True) -> PlayerProfile:
        """Fold one finished game into the player's aggregate totals

        Args:
            record (ScoreRecord): Score of the finished game
            is_win (bool): Whether the game counts as a win

        Returns:
            PlayerProfile: Updated profile
        """
        async with self.locks.hold(PLAYER_TABLE_KEY):
            table = _load_table(await self.store.get(PLAYER_TABLE_KEY), PlayerTableSchema, PLAYER_TABLE_KEY)
            profile = next((p for p in table.records if p.player_id == record.player_id), None)
            if profile is None:
                profile = PlayerProfile(
                    player_id=record.player_id,
                    display_name=record.display_name,
                    joined_at=record.timestamp,
                )
                table.records.append(profile)
                logging.info(f"New player created: {record.display_name} ({record.player_id})")

            profile.display_name = record.display_name
            profile.total_games += 1
            if is_win:
                profile.total_wins += 1
            profile.best_score = max(profile.best_score, record.score)
            n = profile.total_games
            profile.average_score = (profile.average_score * (n - 1) + record.score) / n
            profile.last_active = record.timestamp

            await self.store.set(PLAYER_TABLE_KEY, table.model_dump(mode="json"))
            logging.info(f"Player updated: {record.player_id} total games: {profile.total_games}")
            return profile

    async def append_entry(self, record: ScoreRecord) -> List[LeaderboardEntry]:
        """Append the record and re-rank the whole leaderboard table

        Args:
            record (ScoreRecord): Record to append

        Returns:
            List[LeaderboardEntry]: The table as stored, top max_entries only
        """
        async with self.locks.hold(LEADERBOARD_TABLE_KEY):
            table = _load_table(
                await self.store.get(LEADERBOARD_TABLE_KEY), LeaderboardTableSchema, LEADERBOARD_TABLE_KEY
            )
            records = [entry.record for entry in table.records]
            records.append(record)
            table.records = rank_records(records, limit=self.max_entries)
            await self.store.set(LEADERBOARD_TABLE_KEY, table.model_dump(mode="json"))
            return table.records

    async def clear_all(self) -> None:
        for key in (PLAYER_TABLE_KEY, LEADERBOARD_TABLE_KEY):
            async with self.locks.hold(key):
                await self.store.remove(key)
            await self.locks.cleanup(key)
        logging.info("Cleared all player and leaderboard records")
