"""Execution port shared by local and remote play.

- SessionController only talks to a LedgerBridge; it never knows which variant it got.
- LocalSimulator plays against in-process boards and returns typed events.
- RemoteExecutor turns operations into contract calls and waits for confirmation.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

from memorabilia.converter import DataConverter
from memorabilia.domain.game_rules import DeckGenerator, resolve_tier
from memorabilia.exceptions import (
    ConfirmationTimeout,
    InvalidAccount,
    ProviderError,
    SessionStateViolation,
    WalletRejection,
)
from memorabilia.models.dc_models import Difficulty, GameStateSnapshot, Tile
from memorabilia.models.event_models import Abandoned, Completed, Flipped, Matched, Mismatched, Started
from memorabilia.models.operation_models import (
    AbandonGame,
    CallResult,
    CheckMatch,
    ContractCall,
    FlipCard,
    GetGameState,
    LocalOutcome,
    Operation,
    RawOutcome,
    RemoteReceipt,
    StartGame,
    SubmitScore,
)


class LedgerBridge(Protocol):
    is_local: bool

    async def submit(self, operation: Operation) -> RawOutcome:
        """Execute one operation.

        Raises:
            LedgerError: Typed failure of the execution
        """


class WalletProvider(Protocol):
    """Account capability injected into the RemoteExecutor.

    Contract:
    - execute() sends the call and returns the transaction hash, or raises
      WalletRejection when the account refuses it before submission.
    - wait_for_transaction() resolves with the confirmed receipt as a dict.
    - call_contract() performs a read-only call and returns the raw felts.
    """

    address: str

    async def execute(self, call: ContractCall) -> str: ...

    async def wait_for_transaction(self, transaction_hash: str) -> Dict[str, Any]: ...

    async def call_contract(self, call: ContractCall) -> List[str]: ...


@dataclass
class _LocalBoard:
    difficulty: Difficulty
    tiles: List[Tile]
    face_up: List[int] = field(default_factory=list)
    moves: int = 0

    @property
    def matched_pairs(self) -> int:
        return sum(1 for tile in self.tiles if tile.matched) // 2


class LocalSimulator:
    """Synchronous in-process execution of the session verbs."""

    is_local = True

    def __init__(self, deck_generator: DeckGenerator | None = None, player: str = "local_player"):
        self.deck_generator = deck_generator or DeckGenerator()
        self.player = player
        self.boards: Dict[int, _LocalBoard] = {}

    async def submit(self, operation: Operation) -> RawOutcome:
        return self.execute(operation)

    def execute(self, operation: Operation) -> LocalOutcome:
        """Apply the operation to the in-memory board

        Raises:
            SessionStateViolation: The operation breaks a board invariant
        """
        if isinstance(operation, StartGame):
            return self._start(operation)
        if isinstance(operation, SubmitScore):
            raise SessionStateViolation("Scores are not submitted to the local simulator")

        board = self.boards.get(operation.session_id)
        if board is None:
            raise SessionStateViolation(f"Unknown local session {operation.session_id}")

        if isinstance(operation, FlipCard):
            return self._flip(board, operation.tile_index)
        if isinstance(operation, CheckMatch):
            return self._check(operation.session_id, board)
        if isinstance(operation, AbandonGame):
            del self.boards[operation.session_id]
            return LocalOutcome(event=Abandoned())
        if isinstance(operation, GetGameState):
            return LocalOutcome(snapshot=self._snapshot(operation.session_id, board))
        raise SessionStateViolation(f"Unsupported operation: {type(operation).__name__}")

    def _start(self, operation: StartGame) -> LocalOutcome:
        difficulty = resolve_tier(operation.difficulty)
        session_ref = self.deck_generator.session_ref()
        while session_ref in self.boards:
            session_ref = self.deck_generator.session_ref()
        tiles = self.deck_generator.generate(difficulty)
        self.boards[session_ref] = _LocalBoard(difficulty=difficulty, tiles=tiles)
        logging.info(f"Local session {session_ref} started ({difficulty.name})")
        return LocalOutcome(
            event=Started(session_ref=session_ref, tiles=[tile.model_copy() for tile in tiles])
        )

    def _flip(self, board: _LocalBoard, tile_index: int) -> LocalOutcome:
        if not 0 <= tile_index < len(board.tiles):
            raise SessionStateViolation(f"Tile index {tile_index} is out of range")
        if tile_index in board.face_up:
            raise SessionStateViolation(f"Tile {tile_index} is already face-up")
        if board.tiles[tile_index].matched:
            raise SessionStateViolation(f"Tile {tile_index} is already matched")
        if len(board.face_up) >= 2:
            raise SessionStateViolation("Two tiles are already face-up")
        board.face_up.append(tile_index)
        return LocalOutcome(event=Flipped(tile_index=tile_index))

    def _check(self, session_id: int, board: _LocalBoard) -> LocalOutcome:
        if len(board.face_up) != 2:
            raise SessionStateViolation(f"Need two face-up tiles, have {len(board.face_up)}")
        first, second = (board.tiles[i] for i in board.face_up)
        board.face_up = []
        board.moves += 1
        if first.value == second.value:
            first.matched = True
            second.matched = True
            if board.matched_pairs * 2 == len(board.tiles):
                del self.boards[session_id]
                logging.info(f"Local session {session_id} completed in {board.moves} moves")
                return LocalOutcome(event=Completed())
            return LocalOutcome(event=Matched())
        return LocalOutcome(event=Mismatched())

    def _snapshot(self, session_id: int, board: _LocalBoard) -> GameStateSnapshot:
        return GameStateSnapshot(
            game_id=session_id,
            player=self.player,
            difficulty=board.difficulty,
            tiles=[tile.model_copy() for tile in board.tiles],
            face_up=list(board.face_up),
            matched_pairs=board.matched_pairs,
            total_pairs=len(board.tiles) // 2,
            moves=board.moves,
            score=0,
            started_at=0,
            completed_at=0,
            status=0,
            elapsed_seconds=0,
        )


class RemoteExecutor:
    """Submit session verbs to the world contract through a WalletProvider."""

    is_local = False

    def __init__(
        self,
        wallet: WalletProvider,
        world_address: str,
        provider_version: str = "v0_7",
        confirmation_timeout: float = 60.0,
        converter: DataConverter | None = None,
    ):
        self.wallet = wallet
        self.world_address = world_address
        self.provider_version = provider_version
        self.confirmation_timeout = confirmation_timeout
        self.converter = converter or DataConverter()

    async def submit(self, operation: Operation) -> RawOutcome:
        """Submit the operation and wait for its confirmation

        Args:
            operation (Operation): Session verb to execute

        Raises:
            InvalidAccount: The account rejected the call before submission
            ConfirmationTimeout: Submitted, but not confirmed within confirmation_timeout
            ProviderError: Any other provider failure

        Returns:
            RawOutcome: RemoteReceipt for writes, CallResult for GetGameState
        """
        call = self.converter.operation_to_call(operation, self.world_address)
        if isinstance(operation, GetGameState):
            return await self._read(call)

        try:
            transaction_hash = await self.wallet.execute(call)
        except WalletRejection as e:
            logging.error(f"Account {self.wallet.address} rejected {call.entrypoint}: {e}")
            raise InvalidAccount(f"Account rejected {call.entrypoint}: {e}") from e
        except Exception as e:
            logging.error(f"Failed to submit {call.entrypoint}: {e}")
            raise ProviderError(f"Failed to submit {call.entrypoint}: {e}") from e

        logging.info(f"{call.entrypoint} submitted: {transaction_hash}")
        try:
            receipt = await asyncio.wait_for(
                self.wallet.wait_for_transaction(transaction_hash),
                timeout=self.confirmation_timeout,
            )
        except asyncio.TimeoutError as e:
            logging.error(f"No confirmation for {transaction_hash} after {self.confirmation_timeout}s")
            raise ConfirmationTimeout(
                f"{call.entrypoint} not confirmed after {self.confirmation_timeout}s",
                transaction_hash=transaction_hash,
            ) from e
        except Exception as e:
            logging.error(f"Failed to confirm {transaction_hash}: {e}")
            raise ProviderError(f"Failed to confirm {call.entrypoint}: {e}") from e

        return RemoteReceipt(
            provider_version=self.provider_version,
            transaction_hash=transaction_hash,
            payload=receipt,
        )

    async def _read(self, call: ContractCall) -> CallResult:
        try:
            values = await self.wallet.call_contract(call)
        except Exception as e:
            logging.error(f"Failed to call {call.entrypoint}: {e}")
            raise ProviderError(f"Failed to call {call.entrypoint}: {e}") from e
        return CallResult(values=[str(value) for value in values])
