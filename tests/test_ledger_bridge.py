"""
Unit tests for the LocalSimulator and the RemoteExecutor.
"""

import asyncio

import pytest

from memorabilia.exceptions import (
    ConfirmationTimeout,
    InvalidAccount,
    InvalidTier,
    ProviderError,
    SessionStateViolation,
    WalletRejection,
)
from memorabilia.models.dc_models import Difficulty
from memorabilia.models.event_models import Abandoned, Completed, Flipped, Matched, Mismatched, Started
from memorabilia.models.operation_models import (
    AbandonGame,
    CallResult,
    CheckMatch,
    FlipCard,
    GetGameState,
    RemoteReceipt,
    StartGame,
    SubmitScore,
)
from memorabilia.services.ledger_bridge import LocalSimulator, RemoteExecutor
from tests.fakes import FakeWallet


def pair_indices(tiles):
    """Group tile indices by value: {value: [i, j]}"""
    groups = {}
    for tile in tiles:
        groups.setdefault(tile.value, []).append(tile.index)
    return list(groups.values())


class TestLocalSimulator:
    def setup_method(self):
        self.simulator = LocalSimulator()
        started = self.simulator.execute(StartGame(difficulty=Difficulty.EASY)).event
        self.session_id = started.session_ref
        self.tiles = started.tiles

    def test_start_returns_board(self):
        """StartGame yields a Started event carrying a copy of the board."""
        assert len(self.tiles) == 8
        assert self.simulator.boards[self.session_id].tiles is not self.tiles

    def test_start_rejects_invalid_tier(self):
        with pytest.raises(InvalidTier):
            self.simulator.execute(StartGame.model_construct(difficulty=7))

    def test_flip_then_match(self):
        first, second = pair_indices(self.tiles)[0]
        assert self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=first)).event == Flipped(
            tile_index=first
        )
        self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=second))

        outcome = self.simulator.execute(CheckMatch(session_id=self.session_id))

        assert outcome.event == Matched()
        board = self.simulator.boards[self.session_id]
        assert board.tiles[first].matched and board.tiles[second].matched
        assert board.face_up == []
        assert board.moves == 1

    def test_last_pair_completes_and_drops_the_board(self):
        pairs = pair_indices(self.tiles)
        events = []
        for first, second in pairs:
            self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=first))
            self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=second))
            events.append(self.simulator.execute(CheckMatch(session_id=self.session_id)).event)

        assert events == [Matched()] * 3 + [Completed()]
        assert self.session_id not in self.simulator.boards

    def test_flip_then_mismatch(self):
        pairs = pair_indices(self.tiles)
        self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=pairs[0][0]))
        self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=pairs[1][0]))

        assert self.simulator.execute(CheckMatch(session_id=self.session_id)).event == Mismatched()

    def test_double_flip_is_a_violation(self):
        self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=0))
        with pytest.raises(SessionStateViolation):
            self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=0))

    def test_third_flip_is_a_violation(self):
        for index in (0, 1):
            self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=index))
        with pytest.raises(SessionStateViolation):
            self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=2))

    def test_out_of_range_is_a_violation(self):
        with pytest.raises(SessionStateViolation):
            self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=8))

    def test_check_needs_two_tiles(self):
        with pytest.raises(SessionStateViolation):
            self.simulator.execute(CheckMatch(session_id=self.session_id))

    def test_abandon_drops_the_board(self):
        assert self.simulator.execute(AbandonGame(session_id=self.session_id)).event == Abandoned()
        with pytest.raises(SessionStateViolation):
            self.simulator.execute(FlipCard(session_id=self.session_id, tile_index=0))

    def test_get_state_snapshot(self):
        snapshot = self.simulator.execute(GetGameState(session_id=self.session_id)).snapshot
        assert snapshot.game_id == self.session_id
        assert snapshot.total_pairs == 4

    def test_submit_score_is_not_local(self):
        with pytest.raises(SessionStateViolation):
            self.simulator.execute(
                SubmitScore(session_id=self.session_id, score=1, moves=4, elapsed_seconds=1, difficulty=1)
            )

    def test_submit_is_async_execute(self):
        outcome = asyncio.run(self.simulator.submit(StartGame(difficulty=Difficulty.HARD)))
        assert isinstance(outcome.event, Started)
        assert len(outcome.event.tiles) == 24


class TestRemoteExecutor:
    def setup_method(self):
        self.wallet = FakeWallet()
        self.executor = RemoteExecutor(self.wallet, "0xworld", confirmation_timeout=0.05)

    def test_submit_returns_receipt(self):
        """A confirmed call returns the raw receipt for the extractor."""
        outcome = asyncio.run(self.executor.submit(StartGame(difficulty=Difficulty.MEDIUM)))

        assert isinstance(outcome, RemoteReceipt)
        assert outcome.provider_version == "v0_7"
        assert outcome.payload["events"][0]["keys"] == ["GameStarted"]
        assert self.wallet.calls[0].entrypoint == "start_game"
        assert self.wallet.calls[0].calldata == ["2"]

    def test_wallet_rejection_is_invalid_account(self):
        self.wallet.execute_errors["flip_card"] = WalletRejection("user declined")
        with pytest.raises(InvalidAccount):
            asyncio.run(self.executor.submit(FlipCard(session_id=42, tile_index=1)))

    def test_submission_failure_is_provider_error(self):
        self.wallet.execute_errors["flip_card"] = ConnectionError("node down")
        with pytest.raises(ProviderError):
            asyncio.run(self.executor.submit(FlipCard(session_id=42, tile_index=1)))

    def test_unconfirmed_call_times_out(self):
        """Submitted but never confirmed: ConfirmationTimeout with the transaction hash."""

        async def run():
            self.wallet.gates["check_match"] = asyncio.Event()
            await self.executor.submit(CheckMatch(session_id=42))

        with pytest.raises(ConfirmationTimeout) as exc_info:
            asyncio.run(run())
        assert exc_info.value.transaction_hash == "0x1"

    def test_get_state_is_a_read(self):
        self.wallet.contract_values = ["0x2a", "0x5e55"]
        outcome = asyncio.run(self.executor.submit(GetGameState(session_id=42)))

        assert isinstance(outcome, CallResult)
        assert outcome.values == ["0x2a", "0x5e55"]
        assert self.wallet.calls[0].entrypoint == "get_game"
