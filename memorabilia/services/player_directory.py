"""Who plays here: registration on first game, account lookups and recently active players."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from memorabilia.exceptions import IndexerUnreachable
from memorabilia.indexer_client import ACTIVE_WINDOW_SECONDS, IndexerClient
from memorabilia.models.dc_models import PlayerProfile, UserAccount
from memorabilia.services.player_records import PlayerRecords


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def profile_to_account(profile: PlayerProfile) -> UserAccount:
    last_active = profile.last_active or profile.joined_at
    return UserAccount(
        telegram_id=profile.player_id,
        created_at=int(profile.joined_at.timestamp()),
        last_active=int(last_active.timestamp()),
        total_games=profile.total_games,
    )


class PlayerDirectory:
    def __init__(
        self,
        records: PlayerRecords,
        indexer: Optional[IndexerClient] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.records = records
        self.indexer = indexer
        self.clock = clock

    async def register(self, player_id: str, display_name: str) -> PlayerProfile:
        """Profile of the player, created empty the first time they start a game"""
        return await self.records.get_or_create_profile(player_id, display_name, self.clock())

    async def active_players(self, since: Optional[int] = None) -> List[UserAccount]:
        """Accounts active after `since` (epoch seconds), the last 24 hours by default

        The indexer is asked first; without one, or when it is unreachable, the local
        profiles answer instead.
        """
        if since is None:
            since = int(self.clock().timestamp()) - ACTIVE_WINDOW_SECONDS
        if self.indexer is not None:
            try:
                return await self.indexer.query_active_users(since=since)
            except IndexerUnreachable as e:
                logging.warning(f"Serving local active players, indexer unreachable: {e}")

        accounts = [profile_to_account(profile) for profile in await self.records.read_profiles()]
        active = [account for account in accounts if account.last_active > since]
        return sorted(active, key=lambda account: account.last_active, reverse=True)

    async def list_accounts(
        self, limit: int = 100, offset: int = 0, order_by: str = "created_at", order: str = "desc"
    ) -> List[UserAccount]:
        """Paginated account listing from the indexer

        Raises:
            IndexerUnreachable: No indexer configured, or the query failed
            ValueError: Unsupported ordering
        """
        return await self._require_indexer().query_user_accounts(
            limit=limit, offset=offset, order_by=order_by, order=order
        )

    async def account(self, player_id: str, games: int = 10) -> Optional[Tuple[UserAccount, List[Dict[str, Any]]]]:
        """Account of the player with their most recent games, None if the indexer does not know them"""
        indexer = self._require_indexer()
        account = await indexer.query_user_by_telegram_id(player_id)
        if account is None:
            return None
        recent_games = []
        if account.account_address:
            recent_games = await indexer.query_player_games(account.account_address, limit=games)
        return account, recent_games

    def _require_indexer(self) -> IndexerClient:
        if self.indexer is None:
            raise IndexerUnreachable("No indexer configured")
        return self.indexer
