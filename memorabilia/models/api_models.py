from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from memorabilia.models.dc_models import (
    CompletedGame,
    ControllerState,
    Difficulty,
    LeaderboardEntry,
    LeaderboardStats,
    SessionStatus,
    Tile,
    UserAccount,
)
from memorabilia.models.event_models import DomainEvent


class StartRequest(BaseModel):
    difficulty: int = Difficulty.EASY
    display_name: Optional[str] = None


class SessionView(BaseModel):
    session_id: int
    difficulty: Difficulty
    tiles: List[Tile]  # values of hidden tiles are masked
    face_up: List[int]
    matched_pairs: int
    total_pairs: int
    moves: int
    score: int
    status: SessionStatus


class GameView(BaseModel):
    player_id: str
    state: ControllerState
    session: Optional[SessionView] = None
    visible_tiles: List[int] = []
    last_result: Optional[CompletedGame] = None
    event: Optional[DomainEvent] = None


class LeaderboardView(BaseModel):
    entries: List[LeaderboardEntry]
    stats: LeaderboardStats


class AccountView(BaseModel):
    account: UserAccount
    recent_games: List[Dict[str, Any]] = []
