import asyncio
import logging
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from memorabilia.converter import DataConverter
from memorabilia.exceptions import IndexerUnreachable, LedgerError
from memorabilia.indexer_client import IndexerClient
from memorabilia.models.dc_models import (
    AccountUpdate,
    LeaderboardEntry,
    LeaderboardStats,
    PlayerProfile,
    ScoreRecord,
)
from memorabilia.models.operation_models import SubmitScore
from memorabilia.models.schema_models import IndexerLeaderboardNode
from memorabilia.redis_subscriber import RedisSubscriber
from memorabilia.services.ledger_bridge import LedgerBridge
from memorabilia.services.player_records import PlayerRecords, rank_records


class ScoreSubmitter(Protocol):
    async def submit_score(self, record: ScoreRecord) -> None:
        """Send the record to the remote leaderboard.

        Raises:
            LedgerError: The submission failed
        """


class LedgerScoreSubmitter:
    """Submit finished games to the leaderboard contract through a LedgerBridge."""

    def __init__(self, bridge: LedgerBridge):
        self.bridge = bridge

    async def submit_score(self, record: ScoreRecord) -> None:
        if record.session_id is None:
            logging.info(f"Record {record.record_id} has no ledger session, not submitted")
            return
        await self.bridge.submit(
            SubmitScore(
                session_id=record.session_id,
                score=record.score,
                moves=record.moves,
                elapsed_seconds=int(record.elapsed_seconds),
                difficulty=record.difficulty,
            )
        )


def _record_key(record: ScoreRecord) -> Tuple[str, str]:
    if record.session_id is not None:
        return record.player_id, f"session:{record.session_id}"
    return record.player_id, f"record:{record.record_id}"


class LeaderboardSync:
    """Reconcile the local leaderboard cache with the indexer.

    The local tables are the source of truth for games played here; the indexer
    adds everybody else's. Local and remote state converge eventually.
    """

    def __init__(
        self,
        records: PlayerRecords,
        indexer: Optional[IndexerClient] = None,
        submitter: Optional[ScoreSubmitter] = None,
        subscriber: Optional[RedisSubscriber] = None,
        local_player_id: Optional[str] = None,
        converter: Optional[DataConverter] = None,
    ):
        self.records = records
        self.indexer = indexer
        self.submitter = submitter
        self.subscriber = subscriber
        # None: every local record outranks its remote copy
        self.local_player_id = local_player_id
        self.converter = converter or DataConverter()
        # None until the first refresh
        self.cached_top: Optional[List[LeaderboardEntry]] = None
        self.listeners: List[Callable[[str, dict], None]] = []
        self.subscription: Optional[asyncio.Task] = None

    async def commit(self, record: ScoreRecord) -> Optional[LeaderboardEntry]:
        """Append the record locally, then try to submit it remotely

        Args:
            record (ScoreRecord): Score of a completed session

        Returns:
            Optional[LeaderboardEntry]: The ranked entry, None if it fell outside the kept top entries
        """
        table = await self.records.append_entry(record)
        await self.records.record_game(record, is_win=True)
        entry = next((e for e in table if e.record.record_id == record.record_id), None)
        logging.info(f"Score {record.score} of {record.player_id} committed, rank {entry.rank if entry else None}")
        if self.cached_top is not None:
            cached = [e.record for e in self.cached_top if _record_key(e.record) != _record_key(record)]
            self.cached_top = rank_records(cached + [record], limit=self.records.max_entries)
        self._notify("score_committed", record.model_dump(mode="json"))

        if self.submitter is not None:
            try:
                await self.submitter.submit_score(record)
            except LedgerError as e:
                # local commit stays, the indexer will catch up on a later submission
                logging.warning(f"Remote submission of {record.record_id} failed: {e}")
        return entry

    async def fetch_top(self, limit: int = 10) -> List[LeaderboardEntry]:
        """Top entries from the indexer merged with local records it does not reflect yet

        Args:
            limit (int): Number of entries to return

        Returns:
            List[LeaderboardEntry]: Entries ranked from 1 by score descending
        """
        local_records = [entry.record for entry in await self.records.read_leaderboard()]
        merged = local_records
        if self.indexer is not None:
            try:
                nodes = await self.indexer.query_leaderboard(limit=limit)
            except IndexerUnreachable as e:
                logging.warning(f"Serving local leaderboard, indexer unreachable: {e}")
            else:
                remote_records = self._convert_nodes(nodes)
                merged = self._merge(remote_records, local_records)

        return rank_records(merged, limit=limit)

    def _convert_nodes(self, nodes: List[IndexerLeaderboardNode]) -> List[ScoreRecord]:
        records = []
        for node in nodes:
            try:
                records.append(self.converter.convert_node_to_record(node))
            except ValueError as e:
                logging.warning(f"Skipping indexer entry of rank {node.rank}: {e}")
        return records

    async def refresh(self) -> None:
        """Scheduler entry point: rebuild cached_top"""
        self.cached_top = await self.fetch_top(limit=self.records.max_entries)

    async def top(self, limit: int = 10) -> List[LeaderboardEntry]:
        """Cached top entries; the first call fills the cache, commits and refreshes keep it current"""
        if self.cached_top is None:
            await self.refresh()
        return self.cached_top[:limit]

    def _merge(self, remote_records: List[ScoreRecord], local_records: List[ScoreRecord]) -> List[ScoreRecord]:
        merged: Dict[Tuple[str, str], ScoreRecord] = {_record_key(r): r for r in remote_records}
        for record in local_records:
            key = _record_key(record)
            if key not in merged or self._is_own(record):
                merged[key] = record
        return list(merged.values())

    def _is_own(self, record: ScoreRecord) -> bool:
        return self.local_player_id is None or record.player_id == self.local_player_id

    async def profile(self, player_id: str) -> Optional[PlayerProfile]:
        return await self.records.read_profile(player_id)

    async def stats(self) -> LeaderboardStats:
        """Totals over the local tables"""
        entries = await self.records.read_leaderboard()
        profiles = await self.records.read_profiles()
        scores = [entry.record.score for entry in entries]
        return LeaderboardStats(
            total_players=len(profiles),
            total_games=sum(p.total_games for p in profiles),
            average_score=round(sum(scores) / len(scores)) if scores else 0,
            highest_score=max(scores, default=0),
        )

    def add_listener(self, listener: Callable[[str, dict], None]) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: Callable[[str, dict], None]) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def _notify(self, event: str, payload: dict) -> None:
        for listener in list(self.listeners):
            try:
                listener(event, payload)
            except Exception as e:
                logging.error(f"Leaderboard listener failed: {e}")

    async def subscribe(self, on_update: Callable[[AccountUpdate], None]) -> None:
        """Open the push channel; on_update is called for every incoming update

        Transport failures are retried with backoff by the subscriber, never raised here.
        """
        if self.subscriber is None:
            raise RuntimeError("No update channel configured")
        await self.unsubscribe()

        def handle(update: AccountUpdate) -> None:
            self._notify("account_updated", update.model_dump(mode="json"))
            on_update(update)

        self.subscription = asyncio.create_task(self.subscriber.run(handle))

    async def unsubscribe(self) -> None:
        """Tear the push channel down. Calling it again is a no-op."""
        task, self.subscription = self.subscription, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
