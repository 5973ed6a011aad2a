"""
Unit tests for DataConverter and ReceiptEventExtractor.
"""

import pytest

from memorabilia.converter import DataConverter, parse_felt
from memorabilia.exceptions import MalformedReceipt, ProviderError
from memorabilia.models.dc_models import Difficulty
from memorabilia.models.event_models import Abandoned, Flipped, Matched, Mismatched, Started
from memorabilia.models.operation_models import (
    CallResult,
    CheckMatch,
    FlipCard,
    GetGameState,
    LocalOutcome,
    RemoteReceipt,
    StartGame,
    SubmitScore,
)
from memorabilia.models.schema_models import IndexerLeaderboardNode
from memorabilia.receipt_extractor import ReceiptEventExtractor
from tests.fakes import event, make_receipt


def remote(events, provider_version="v0_7", **kwargs) -> RemoteReceipt:
    payload = make_receipt("0xabc", events, **kwargs)
    if provider_version == "v0_6":
        payload = {"transaction_hash": "0xabc", "status": "ACCEPTED_ON_L2", "events": events}
    return RemoteReceipt(provider_version=provider_version, transaction_hash="0xabc", payload=payload)


class TestDataConverter:
    def setup_method(self):
        self.converter = DataConverter()

    def test_calldata_is_ordered_decimal_strings(self):
        """Numeric arguments become decimal strings in declaration order."""
        call = self.converter.operation_to_call(FlipCard(session_id=42, tile_index=7), "0xworld")

        assert call.entrypoint == "flip_card"
        assert call.calldata == ["42", "7"]
        assert call.contract_address == "0xworld"

    def test_entrypoint_names(self):
        assert self.converter.operation_to_call(StartGame(difficulty=Difficulty.HARD), "0x1").calldata == ["3"]
        assert self.converter.operation_to_call(CheckMatch(session_id=5), "0x1").entrypoint == "check_match"
        assert self.converter.operation_to_call(GetGameState(session_id=5), "0x1").entrypoint == "get_game"
        submit = SubmitScore(session_id=5, score=14800, moves=4, elapsed_seconds=10, difficulty=Difficulty.EASY)
        assert self.converter.operation_to_call(submit, "0x1").calldata == ["5", "14800", "4", "10", "1"]

    def test_parse_felt_accepts_hex_and_decimal(self):
        assert parse_felt("0x1a") == 26
        assert parse_felt("26") == 26

    def test_game_state_layout(self):
        """get_game felts decode into a snapshot."""
        values = [
            "0x2a", "0x5e55", "1",
            "2", "7", "0", "1", "7", "0", "1",
            "1", "0",
            "1", "1", "1", "14800", "100", "110", "1", "10",
        ]
        snapshot = self.converter.convert_values_to_snapshot(values)

        assert snapshot.game_id == 42
        assert snapshot.difficulty == Difficulty.EASY
        assert [t.value for t in snapshot.tiles] == [7, 7]
        assert all(t.matched for t in snapshot.tiles)
        assert snapshot.face_up == [0]
        assert snapshot.score == 14800
        assert snapshot.elapsed_seconds == 10

    def test_truncated_game_state_is_malformed(self):
        with pytest.raises(MalformedReceipt):
            self.converter.convert_values_to_snapshot(["0x2a", "0x5e55"])

    def test_indexer_node_to_record(self):
        node = IndexerLeaderboardNode(
            rank=1, player="alice", telegram_id="1001", score=900, difficulty=2,
            moves=9, time=33.0, game_id=12, achieved_at=1714564800,
        )
        record = self.converter.convert_node_to_record(node)

        assert record.player_id == "1001"
        assert record.display_name == "alice"
        assert record.difficulty == Difficulty.MEDIUM
        assert record.session_id == 12
        assert record.timestamp.tzinfo is not None


class TestReceiptEventExtractor:
    def setup_method(self):
        self.extractor = ReceiptEventExtractor()

    def test_local_outcome_passes_through(self):
        assert self.extractor.decode(LocalOutcome(event=Matched())) == Matched()

    def test_local_outcome_without_event_is_malformed(self):
        with pytest.raises(MalformedReceipt):
            self.extractor.decode(LocalOutcome())

    def test_first_known_event_wins(self):
        """Unknown tags are skipped; the first known one is decoded."""
        outcome = remote([
            event("Transfer", "0x1"),
            event("CardsMismatched", "0x2a"),
            event("CardsMatched", "0x2a"),
        ])
        assert self.extractor.decode(outcome) == Mismatched()

    def test_started_carries_session_ref(self):
        outcome = remote([event("GameStarted", "0x2a", "0x5e55", "0x1")])
        decoded = self.extractor.decode(outcome)

        assert isinstance(decoded, Started)
        assert decoded.session_ref == 42
        assert decoded.tiles is None

    def test_flipped_carries_tile_index(self):
        outcome = remote([event("CardFlipped", "0x2a", "0x3")])
        assert self.extractor.decode(outcome) == Flipped(tile_index=3)

    def test_v0_6_receipts_are_supported(self):
        outcome = remote([event("GameAbandoned", "0x2a")], provider_version="v0_6")
        assert self.extractor.decode(outcome) == Abandoned()

    def test_no_known_event_is_malformed(self):
        """No known tag: fail instead of inventing an identifier."""
        with pytest.raises(MalformedReceipt):
            self.extractor.decode(remote([event("Transfer", "0x1")]))

    def test_unknown_provider_version_is_malformed(self):
        with pytest.raises(MalformedReceipt):
            self.extractor.decode(remote([event("CardsMatched")], provider_version="v0_5"))

    def test_shape_mismatch_is_malformed(self):
        outcome = RemoteReceipt(provider_version="v0_7", transaction_hash="0x1", payload={"status": "ok"})
        with pytest.raises(MalformedReceipt):
            self.extractor.decode(outcome)

    def test_bad_payload_is_malformed(self):
        with pytest.raises(MalformedReceipt):
            self.extractor.decode(remote([event("CardFlipped", "0x2a")]))

    def test_reverted_receipt_is_provider_error(self):
        outcome = remote([event("CardsMatched")], execution_status="REVERTED")
        with pytest.raises(ProviderError):
            self.extractor.decode(outcome)

    def test_decode_state_from_call_result(self):
        values = ["0x2a", "0x5e55", "2", "0", "0", "0", "8", "3", "0", "0", "0", "1", "0"]
        snapshot = self.extractor.decode_state(CallResult(values=values))
        assert snapshot.total_pairs == 8
        assert snapshot.tiles == []
