from datetime import datetime, timezone
from typing import Iterator, List

from memorabilia.exceptions import MalformedReceipt
from memorabilia.models.dc_models import Difficulty, GameStateSnapshot, ScoreRecord, Tile
from memorabilia.models.operation_models import (
    AbandonGame,
    CheckMatch,
    ContractCall,
    FlipCard,
    GetGameState,
    Operation,
    StartGame,
    SubmitScore,
)
from memorabilia.models.schema_models import IndexerLeaderboardNode

ENTRYPOINTS = {
    StartGame: "start_game",
    FlipCard: "flip_card",
    CheckMatch: "check_match",
    AbandonGame: "abandon_game",
    GetGameState: "get_game",
    SubmitScore: "submit_score",
}

# Calldata order per operation
CALLDATA_FIELDS = {
    StartGame: ("difficulty",),
    FlipCard: ("session_id", "tile_index"),
    CheckMatch: ("session_id",),
    AbandonGame: ("session_id",),
    GetGameState: ("session_id",),
    SubmitScore: ("session_id", "score", "moves", "elapsed_seconds", "difficulty"),
}


def parse_felt(value: str) -> int:
    """Parse a felt that the provider returned either as hex ("0x1a") or decimal ("26")."""
    text = str(value).strip().lower()
    if text.startswith("0x"):
        return int(text, 16)
    return int(text, 10)


class DataConverter:
    """This class is used to convert data between the engine and the ledger/indexer formats."""

    def operation_to_call(self, operation: Operation, contract_address: str) -> ContractCall:
        """Convert an operation into a contract call

        Args:
            operation (Operation): One of the session verbs
            contract_address (str): Address of the world contract

        Returns:
            ContractCall: Entrypoint name and ordered calldata encoded as decimal strings
        """
        op_type = type(operation)
        if op_type not in ENTRYPOINTS:
            raise TypeError(f"Unsupported operation: {op_type.__name__}")
        calldata = [str(int(getattr(operation, field))) for field in CALLDATA_FIELDS[op_type]]
        return ContractCall(
            contract_address=contract_address,
            entrypoint=ENTRYPOINTS[op_type],
            calldata=calldata,
        )

    def convert_values_to_snapshot(self, values: List[str]) -> GameStateSnapshot:
        """Convert the serialized result of get_game into a GameStateSnapshot

        Layout: game_id, player, difficulty, cards_len, (value, is_flipped, is_matched) * cards_len,
        flipped_len, index * flipped_len, matched_count, total_pairs, moves, score,
        started_at, completed_at, status, elapsed_time

        Args:
            values (List[str]): Felts returned by the contract call

        Returns:
            GameStateSnapshot: Typed game state
        """
        felts: Iterator[str] = iter(values)
        try:
            game_id = parse_felt(next(felts))
            player = str(next(felts))
            difficulty = Difficulty(parse_felt(next(felts)))
            tiles = []
            for index in range(parse_felt(next(felts))):
                value = parse_felt(next(felts))
                next(felts)  # is_flipped is mirrored by the face-up list
                matched = parse_felt(next(felts)) == 1
                tiles.append(Tile(index=index, value=value, matched=matched))
            face_up = [parse_felt(next(felts)) for _ in range(parse_felt(next(felts)))]
            snapshot = GameStateSnapshot(
                game_id=game_id,
                player=player,
                difficulty=difficulty,
                tiles=tiles,
                face_up=face_up,
                matched_pairs=parse_felt(next(felts)),
                total_pairs=parse_felt(next(felts)),
                moves=parse_felt(next(felts)),
                score=parse_felt(next(felts)),
                started_at=parse_felt(next(felts)),
                completed_at=parse_felt(next(felts)),
                status=parse_felt(next(felts)),
                elapsed_seconds=parse_felt(next(felts)),
            )
        except (StopIteration, ValueError) as e:
            raise MalformedReceipt(f"Cannot decode game state: {e!r}") from e
        if next(felts, None) is not None:
            raise MalformedReceipt("Trailing values after game state")
        return snapshot

    def convert_node_to_record(self, node: IndexerLeaderboardNode) -> ScoreRecord:
        """Convert an indexer leaderboard node to the ScoreRecord kept locally"""
        return ScoreRecord(
            player_id=node.telegram_id,
            display_name=node.player,
            score=node.score,
            moves=node.moves,
            elapsed_seconds=node.time,
            difficulty=Difficulty(node.difficulty),
            timestamp=datetime.fromtimestamp(node.achieved_at, tz=timezone.utc),
            session_id=node.game_id,
        )
