from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from memorabilia.models.dc_models import Difficulty, GameStateSnapshot
from memorabilia.models.event_models import DomainEvent


class StartGame(BaseModel):
    difficulty: Difficulty


class FlipCard(BaseModel):
    session_id: int
    tile_index: int


class CheckMatch(BaseModel):
    session_id: int


class AbandonGame(BaseModel):
    session_id: int


class GetGameState(BaseModel):
    session_id: int


class SubmitScore(BaseModel):
    session_id: int
    score: int
    moves: int
    elapsed_seconds: int
    difficulty: Difficulty


Operation = Union[StartGame, FlipCard, CheckMatch, AbandonGame, GetGameState, SubmitScore]


class ContractCall(BaseModel):
    contract_address: str
    entrypoint: str
    calldata: List[str]


class LocalOutcome(BaseModel):
    """Result of the local simulator, already typed."""

    event: Optional[DomainEvent] = None
    snapshot: Optional[GameStateSnapshot] = None


class RemoteReceipt(BaseModel):
    """Confirmed receipt exactly as the provider returned it."""

    provider_version: str
    transaction_hash: str
    payload: Dict[str, Any]


class CallResult(BaseModel):
    """Raw felts returned by a read-only contract call."""

    values: List[str]


RawOutcome = Union[LocalOutcome, RemoteReceipt, CallResult]
