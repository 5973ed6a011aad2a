"""State machine of one play session.

IDLE -> AWAITING_PREVIEW -> ACTIVE <-> EVALUATING -> COMPLETED
any state -> ABANDONED

- Every ledger interaction goes through the injected LedgerBridge.
- A single evaluation guard keeps flips from overlapping an outstanding submission.
- Results that arrive after abandon/reset/start are compared against the
  session generation and dropped.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from memorabilia.domain.game_rules import resolve_tier, tier_config
from memorabilia.exceptions import LedgerError, MalformedReceipt, MemorabiliaError, SessionStateViolation
from memorabilia.leaderboard_sync import LeaderboardSync
from memorabilia.models.dc_models import (
    CompletedGame,
    ControllerState,
    GameSession,
    GameStateSnapshot,
    ScoreRecord,
    SessionStatus,
    Tile,
)
from memorabilia.models.event_models import Completed, DomainEvent, Flipped, Matched, Mismatched, Started
from memorabilia.models.operation_models import (
    AbandonGame,
    CheckMatch,
    FlipCard,
    GetGameState,
    Operation,
    StartGame,
)
from memorabilia.receipt_extractor import ReceiptEventExtractor
from memorabilia.score_utils import ScoreUtils
from memorabilia.services.ledger_bridge import LedgerBridge


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionController:
    def __init__(
        self,
        bridge: LedgerBridge,
        extractor: ReceiptEventExtractor | None = None,
        scorer: ScoreUtils | None = None,
        leaderboard_sync: LeaderboardSync | None = None,
        player_id: str = "local_player",
        display_name: str = "Player",
        clock: Callable[[], datetime] = _utc_now,
        preview_seconds: float = 2.0,
        mismatch_settle_seconds: float = 1.0,
    ):
        self.bridge = bridge
        self.extractor = extractor or ReceiptEventExtractor()
        self.scorer = scorer or ScoreUtils()
        self.leaderboard_sync = leaderboard_sync
        self.player_id = player_id
        self.display_name = display_name
        self.clock = clock
        self.preview_seconds = preview_seconds
        self.mismatch_settle_seconds = mismatch_settle_seconds

        self._state = ControllerState.IDLE
        self._session: Optional[GameSession] = None
        self._evaluating = False
        self._generation = 0
        self._preview_deadline: Optional[float] = None
        self._preview_task: Optional[asyncio.Task] = None
        self.last_result: Optional[CompletedGame] = None

    @property
    def state(self) -> ControllerState:
        self._check_preview()
        return self._state

    @property
    def session(self) -> Optional[GameSession]:
        return self._session

    @property
    def is_evaluating(self) -> bool:
        return self._evaluating

    @property
    def visible_tiles(self) -> List[int]:
        """Indices the player can currently see"""
        if self._session is None:
            return []
        if self.state == ControllerState.AWAITING_PREVIEW:
            return [tile.index for tile in self._session.tiles]
        return [tile.index for tile in self._session.tiles if tile.matched or tile.index in self._session.face_up]

    async def start_session(self, difficulty) -> Optional[GameSession]:
        """Start a fresh session under a new identity

        An unfinished session is abandoned first.

        Args:
            difficulty (Difficulty | int): Difficulty tier

        Raises:
            InvalidTier: Unsupported tier
            LedgerError: The bridge failed to start the game

        Returns:
            Optional[GameSession]: The new session, None if abandon/reset overtook the start
        """
        difficulty = resolve_tier(difficulty)
        if self._session is not None and self._session.status == SessionStatus.ACTIVE:
            try:
                await self.abandon()
            except LedgerError as e:
                logging.warning(f"Previous session could not be abandoned on the ledger: {e}")

        self._clear(ControllerState.IDLE)
        generation = self._generation
        outcome = await self.bridge.submit(StartGame(difficulty=difficulty))
        event = self.extractor.decode(outcome)
        if generation != self._generation:
            logging.info(f"Discarding start result for stale generation {generation}")
            return None
        if not isinstance(event, Started):
            raise MalformedReceipt(f"Expected a started event, got {event.kind}")

        config = tier_config(difficulty)
        tiles = event.tiles or [Tile(index=i) for i in range(config.tile_count)]
        self._session = GameSession(
            session_id=event.session_ref,
            player_id=self.player_id,
            display_name=self.display_name,
            difficulty=difficulty,
            tiles=tiles,
            total_pairs=config.pair_count,
            started_at=self.clock(),
        )
        logging.info(f"Session {event.session_ref} started for {self.player_id} ({difficulty.name})")

        if self.preview_seconds > 0:
            self._state = ControllerState.AWAITING_PREVIEW
            self._preview_deadline = time.monotonic() + self.preview_seconds
            self._preview_task = asyncio.create_task(self._end_preview(generation))
        else:
            self._state = ControllerState.ACTIVE
        return self._session

    async def wait_for_preview(self) -> None:
        if self._preview_task is not None:
            await self._preview_task

    async def _end_preview(self, generation: int) -> None:
        await asyncio.sleep(self.preview_seconds)
        if generation == self._generation and self._state == ControllerState.AWAITING_PREVIEW:
            self._state = ControllerState.ACTIVE

    def _check_preview(self) -> None:
        if (
            self._state == ControllerState.AWAITING_PREVIEW
            and self._preview_deadline is not None
            and time.monotonic() >= self._preview_deadline
        ):
            self._state = ControllerState.ACTIVE

    async def flip(self, tile_index: int) -> Optional[DomainEvent]:
        """Flip one tile; the second face-up tile triggers the match check

        Args:
            tile_index (int): Board position of the tile

        Raises:
            SessionStateViolation: tile_index is outside the board
            LedgerError: Remote bridge failure, the session is rolled back first

        Returns:
            Optional[DomainEvent]: The applied event, None when the flip was a no-op
        """
        if self.state != ControllerState.ACTIVE or self._session is None:
            return None
        session = self._session
        if not 0 <= tile_index < len(session.tiles):
            raise SessionStateViolation(f"Tile index {tile_index} is out of range")
        if (
            self._evaluating
            or tile_index in session.face_up
            or session.tiles[tile_index].matched
            or len(session.face_up) >= 2
        ):
            return None

        generation = self._generation
        snapshot = session.model_copy(deep=True)
        self._evaluating = True
        try:
            event = await self._submit(FlipCard(session_id=session.session_id, tile_index=tile_index))
            if generation != self._generation:
                logging.info(f"Discarding flip result for stale session {session.session_id}")
                return None
            if not isinstance(event, Flipped):
                raise MalformedReceipt(f"Expected a flipped event, got {event.kind}")
            if event.tile_index != tile_index:
                raise MalformedReceipt(f"Flip of tile {tile_index} confirmed tile {event.tile_index}")
            session.face_up.append(tile_index)
            if len(session.face_up) < 2:
                return event

            self._state = ControllerState.EVALUATING
            event = await self._submit(CheckMatch(session_id=session.session_id))
            if generation != self._generation:
                logging.info(f"Discarding match result for stale session {session.session_id}")
                return None
            await self._apply_evaluation(session, event, generation)
            return event
        except MemorabiliaError as e:
            if generation == self._generation:
                self._session = snapshot
                self._state = ControllerState.ACTIVE
            if self.bridge.is_local:
                logging.error(f"Local flip of tile {tile_index} failed, play continues: {e}")
                return None
            logging.error(f"Flip of tile {tile_index} in session {session.session_id} failed: {e}")
            raise
        finally:
            if generation == self._generation:
                self._evaluating = False

    async def _submit(self, operation: Operation) -> DomainEvent:
        outcome = await self.bridge.submit(operation)
        return self.extractor.decode(outcome)

    async def _apply_evaluation(self, session: GameSession, event: DomainEvent, generation: int) -> None:
        if isinstance(event, (Matched, Completed)):
            for index in session.face_up:
                session.tiles[index].matched = True
            session.face_up = []
            session.moves += 1
            session.matched_pairs += 1
            session.score = self.scorer.score(session.difficulty, session.moves, self._elapsed(session))
            if session.matched_pairs >= session.total_pairs:
                await self._complete(session)
            else:
                self._state = ControllerState.ACTIVE
        elif isinstance(event, Mismatched):
            if self.mismatch_settle_seconds > 0:
                await asyncio.sleep(self.mismatch_settle_seconds)
            if generation != self._generation:
                return
            session.face_up = []
            session.moves += 1
            self._state = ControllerState.ACTIVE
        else:
            raise MalformedReceipt(f"Unexpected {event.kind} event after a match check")

    def _elapsed(self, session: GameSession) -> float:
        end = session.completed_at or self.clock()
        return max(0.0, (end - session.started_at).total_seconds())

    async def _complete(self, session: GameSession) -> None:
        session.completed_at = self.clock()
        session.status = SessionStatus.COMPLETED
        self._state = ControllerState.COMPLETED

        elapsed = self._elapsed(session)
        session.score = self.scorer.score(session.difficulty, session.moves, elapsed)
        self.last_result = CompletedGame(
            session_id=session.session_id,
            difficulty=session.difficulty,
            score=session.score,
            stars=self.scorer.stars(session.moves, session.total_pairs),
            grade=self.scorer.grade(session.score),
            moves=session.moves,
            elapsed_seconds=elapsed,
            completed_at=session.completed_at,
        )
        logging.info(
            f"Session {session.session_id} completed: score {session.score}, "
            f"{session.moves} moves, {elapsed:.1f}s"
        )

        if self.leaderboard_sync is None:
            return
        record = ScoreRecord(
            player_id=session.player_id,
            display_name=session.display_name,
            score=session.score,
            moves=session.moves,
            elapsed_seconds=elapsed,
            difficulty=session.difficulty,
            timestamp=session.completed_at,
            session_id=None if self.bridge.is_local else session.session_id,
        )
        try:
            await self.leaderboard_sync.commit(record)
        except MemorabiliaError as e:
            logging.error(f"Completed session {session.session_id} could not be recorded: {e}")

    async def abandon(self) -> None:
        """Abandon the current session. Terminal; safe while a submission is outstanding.

        Raises:
            LedgerError: Remote mode only, the ledger did not accept the abandon
        """
        session = self._session
        self._clear(ControllerState.ABANDONED)
        if session is None or session.status != SessionStatus.ACTIVE:
            return
        logging.info(f"Session {session.session_id} abandoned by {self.player_id}")
        try:
            await self.bridge.submit(AbandonGame(session_id=session.session_id))
        except MemorabiliaError as e:
            logging.error(f"Abandon of session {session.session_id} failed: {e}")
            if not self.bridge.is_local:
                raise

    def reset(self) -> None:
        """Forget the session and the last result, back to IDLE"""
        self._clear(ControllerState.IDLE)
        self.last_result = None

    def _clear(self, state: ControllerState) -> None:
        self._generation += 1
        if self._preview_task is not None:
            self._preview_task.cancel()
            self._preview_task = None
        self._preview_deadline = None
        self._session = None
        self._evaluating = False
        self._state = state

    async def refresh_state(self) -> GameStateSnapshot:
        """Read the current session back from the ledger"""
        if self._session is None:
            raise SessionStateViolation("No session to read")
        outcome = await self.bridge.submit(GetGameState(session_id=self._session.session_id))
        return self.extractor.decode_state(outcome)
