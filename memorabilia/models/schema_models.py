from pydantic import BaseModel
from typing import List, Literal, Optional

from memorabilia.models.dc_models import LeaderboardEntry, PlayerProfile

RECORD_FORMAT_VERSION = 1


class ReceiptEventSchema(BaseModel):
    keys: List[str]
    data: List[str] = []

    class Config:
        extra = "ignore"


class ReceiptSchemaV06(BaseModel):
    """Receipt shape of the v0.6 JSON-RPC provider: status is a single field."""

    transaction_hash: str
    status: Literal["ACCEPTED_ON_L2", "ACCEPTED_ON_L1"]
    events: List[ReceiptEventSchema]

    class Config:
        extra = "ignore"


class ReceiptSchemaV07(BaseModel):
    """Receipt shape of the v0.7 JSON-RPC provider: split finality/execution status."""

    transaction_hash: str
    finality_status: Literal["ACCEPTED_ON_L2", "ACCEPTED_ON_L1"]
    execution_status: Literal["SUCCEEDED", "REVERTED"]
    revert_reason: Optional[str] = None
    events: List[ReceiptEventSchema]

    class Config:
        extra = "ignore"


class PlayerTableSchema(BaseModel):
    version: int = RECORD_FORMAT_VERSION
    records: List[PlayerProfile] = []


class LeaderboardTableSchema(BaseModel):
    version: int = RECORD_FORMAT_VERSION
    records: List[LeaderboardEntry] = []


class IndexerLeaderboardNode(BaseModel):
    rank: int
    player: str
    telegram_id: str
    score: int
    difficulty: int
    moves: int
    time: float
    game_id: Optional[int] = None
    achieved_at: int
