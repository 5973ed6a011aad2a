from pydantic import BaseModel, Field
from enum import Enum, IntEnum
from uuid import UUID
from typing import Optional, List
from datetime import datetime
from uuid6 import uuid7


class Difficulty(IntEnum):
    EASY = 1
    MEDIUM = 2
    HARD = 3


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class ControllerState(str, Enum):
    IDLE = "idle"
    AWAITING_PREVIEW = "awaiting_preview"
    ACTIVE = "active"
    EVALUATING = "evaluating"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Tile(BaseModel):
    index: int
    value: Optional[int] = None  # None while the board lives on the ledger
    matched: bool = False


class GameSession(BaseModel):
    session_id: int
    player_id: str
    display_name: str
    difficulty: Difficulty
    tiles: List[Tile]
    face_up: List[int] = []
    matched_pairs: int = 0
    total_pairs: int
    moves: int = 0
    score: int = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    status: SessionStatus = SessionStatus.ACTIVE


class ScoreRecord(BaseModel):
    record_id: UUID = Field(default_factory=uuid7)
    player_id: str
    display_name: str
    score: int
    moves: int
    elapsed_seconds: float
    difficulty: Difficulty
    timestamp: datetime
    session_id: Optional[int] = None

    class Config:
        frozen = True


class LeaderboardEntry(BaseModel):
    rank: int
    record: ScoreRecord

    class Config:
        frozen = True


class PlayerProfile(BaseModel):
    player_id: str
    display_name: str
    total_games: int = 0
    total_wins: int = 0
    best_score: int = 0
    average_score: float = 0.0
    joined_at: datetime
    last_active: Optional[datetime] = None


class CompletedGame(BaseModel):
    session_id: int
    difficulty: Difficulty
    score: int
    stars: int
    grade: str
    moves: int
    elapsed_seconds: float
    completed_at: datetime


class GameStateSnapshot(BaseModel):
    """Read model of the contract's GameState, returned by GetGameState."""

    game_id: int
    player: str
    difficulty: Difficulty
    tiles: List[Tile] = []
    face_up: List[int] = []
    matched_pairs: int
    total_pairs: int
    moves: int
    score: int
    started_at: int
    completed_at: int
    status: int
    elapsed_seconds: int


class UserAccount(BaseModel):
    telegram_id: str
    account_address: Optional[str] = None
    owner_public_key: Optional[str] = None
    session_public_key: Optional[str] = None
    created_at: Optional[int] = None
    last_active: Optional[int] = None
    nonce: Optional[int] = None
    total_games: int = 0
    is_active: bool = True


class AccountUpdate(BaseModel):
    telegram_id: str
    total_games: int = 0
    last_active: Optional[int] = None
    is_active: bool = True


class LeaderboardStats(BaseModel):
    total_players: int
    total_games: int
    average_score: int
    highest_score: int
