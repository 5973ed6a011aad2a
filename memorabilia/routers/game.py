import asyncio
import json
import logging
from typing import AsyncGenerator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse

from memorabilia.exceptions import (
    ConfirmationTimeout,
    IndexerUnreachable,
    InvalidInput,
    InvalidTier,
    LedgerError,
    MemorabiliaError,
    SessionStateViolation,
)
from memorabilia.leaderboard_sync import LeaderboardSync
from memorabilia.models.api_models import AccountView, GameView, LeaderboardView, SessionView, StartRequest
from memorabilia.models.dc_models import LeaderboardEntry, PlayerProfile, Tile, UserAccount
from memorabilia.models.event_models import DomainEvent
from memorabilia.services.player_directory import PlayerDirectory
from memorabilia.session_controller import SessionController
from memorabilia.session_manager import SessionManager

HEART_BEAT = 15

game_router = APIRouter()

ERROR_STATUS = [
    (InvalidTier, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidInput, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SessionStateViolation, status.HTTP_409_CONFLICT),
    (ConfirmationTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (LedgerError, status.HTTP_502_BAD_GATEWAY),
    (IndexerUnreachable, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_exception(error: MemorabiliaError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_leaderboard_sync(request: Request) -> LeaderboardSync:
    return request.app.state.leaderboard_sync


def get_player_directory(request: Request) -> PlayerDirectory:
    return request.app.state.player_directory


def build_game_view(
    player_id: str, controller: SessionController, event: Optional[DomainEvent] = None
) -> GameView:
    """Render the controller for the player; values of tiles they cannot see are masked"""
    session = controller.session
    visible = controller.visible_tiles
    session_view = None
    if session is not None:
        session_view = SessionView(
            session_id=session.session_id,
            difficulty=session.difficulty,
            tiles=[
                Tile(index=tile.index, value=tile.value if tile.index in visible else None, matched=tile.matched)
                for tile in session.tiles
            ],
            face_up=list(session.face_up),
            matched_pairs=session.matched_pairs,
            total_pairs=session.total_pairs,
            moves=session.moves,
            score=session.score,
            status=session.status,
        )
    return GameView(
        player_id=player_id,
        state=controller.state,
        session=session_view,
        visible_tiles=visible,
        last_result=controller.last_result,
        event=event,
    )


def require_controller(manager: SessionManager, player_id: str) -> SessionController:
    controller = manager.get(player_id)
    if controller is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No game for player {player_id}")
    return controller


async def leaderboard_event_generator(sync: LeaderboardSync, limit: int) -> AsyncGenerator[str, None]:
    """SSE stream: the current top entries, then one message per leaderboard change.

    Args:
        sync (LeaderboardSync): Source of entries and change notifications
        limit (int): Number of entries in each leaderboard message
    """
    queue: asyncio.Queue = asyncio.Queue()

    def listener(event: str, payload: dict) -> None:
        queue.put_nowait((event, payload))

    sync.add_listener(listener)
    try:
        entries = await sync.top(limit)
        payload = json.dumps([entry.model_dump(mode="json") for entry in entries])
        yield f"event: leaderboard\ndata: {payload}\n\n"
        while True:
            try:
                event, data = await asyncio.wait_for(queue.get(), timeout=HEART_BEAT)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            payload = json.dumps(data)
            logging.debug(f"Payload: {payload}")
            yield f"event: {event}\ndata: {payload}\n\n"
    finally:
        logging.info("Leaderboard stream closed")
        sync.remove_listener(listener)


class GameServer:
    @staticmethod
    @game_router.post("/players/{player_id}/game/start", response_model=GameView)
    async def start_game(
        player_id: str,
        start_request: StartRequest,
        manager: SessionManager = Depends(get_session_manager),
        directory: PlayerDirectory = Depends(get_player_directory),
    ) -> GameView:
        """Start a new game for the player, abandoning an unfinished one

        Args:
            player_id (str): Player identity
            start_request (StartRequest): Difficulty tier and optional display name
        """
        controller = manager.connect(player_id, start_request.display_name)
        try:
            await controller.start_session(start_request.difficulty)
            await directory.register(player_id, controller.display_name)
        except MemorabiliaError as e:
            raise to_http_exception(e) from e
        return build_game_view(player_id, controller)

    @staticmethod
    @game_router.post("/players/{player_id}/game/flip/{tile_index}", response_model=GameView)
    async def flip_tile(
        player_id: str,
        tile_index: int,
        manager: SessionManager = Depends(get_session_manager),
    ) -> GameView:
        controller = require_controller(manager, player_id)
        try:
            event = await controller.flip(tile_index)
        except MemorabiliaError as e:
            raise to_http_exception(e) from e
        return build_game_view(player_id, controller, event)

    @staticmethod
    @game_router.post("/players/{player_id}/game/abandon", response_model=GameView)
    async def abandon_game(player_id: str, manager: SessionManager = Depends(get_session_manager)) -> GameView:
        controller = require_controller(manager, player_id)
        try:
            await controller.abandon()
        except MemorabiliaError as e:
            raise to_http_exception(e) from e
        return build_game_view(player_id, controller)

    @staticmethod
    @game_router.post("/players/{player_id}/game/reset", response_model=GameView)
    async def reset_game(player_id: str, manager: SessionManager = Depends(get_session_manager)) -> GameView:
        controller = require_controller(manager, player_id)
        controller.reset()
        return build_game_view(player_id, controller)

    @staticmethod
    @game_router.get("/players/{player_id}/game", response_model=GameView)
    async def get_game(player_id: str, manager: SessionManager = Depends(get_session_manager)) -> GameView:
        return build_game_view(player_id, require_controller(manager, player_id))

    @staticmethod
    @game_router.get("/players/{player_id}/profile", response_model=PlayerProfile)
    async def get_profile(player_id: str, sync: LeaderboardSync = Depends(get_leaderboard_sync)) -> PlayerProfile:
        try:
            profile = await sync.profile(player_id)
        except MemorabiliaError as e:
            raise to_http_exception(e) from e
        if profile is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown player {player_id}")
        return profile

    @staticmethod
    @game_router.get("/leaderboard", response_model=LeaderboardView)
    async def get_leaderboard(
        limit: int = Query(10, ge=1, le=100),
        sync: LeaderboardSync = Depends(get_leaderboard_sync),
    ) -> LeaderboardView:
        try:
            entries: List[LeaderboardEntry] = await sync.top(limit)
            stats = await sync.stats()
        except MemorabiliaError as e:
            raise to_http_exception(e) from e
        return LeaderboardView(entries=entries, stats=stats)

    @staticmethod
    @game_router.get("/leaderboard/stream")
    async def stream_leaderboard(
        limit: int = Query(10, ge=1, le=100),
        sync: LeaderboardSync = Depends(get_leaderboard_sync),
    ):
        return StreamingResponse(
            leaderboard_event_generator(sync, limit),
            media_type="text/event-stream; charset=utf-8",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @staticmethod
    @game_router.get("/players/active", response_model=List[UserAccount])
    async def get_active_players(
        since: Optional[int] = Query(None, ge=0),
        directory: PlayerDirectory = Depends(get_player_directory),
    ) -> List[UserAccount]:
        """Players active after `since` (epoch seconds), the last 24 hours by default"""
        try:
            return await directory.active_players(since)
        except MemorabiliaError as e:
            raise to_http_exception(e) from e

    @staticmethod
    @game_router.get("/players", response_model=List[UserAccount])
    async def list_players(
        limit: int = Query(100, ge=1, le=1000),
        offset: int = Query(0, ge=0),
        order_by: str = "created_at",
        order: str = "desc",
        directory: PlayerDirectory = Depends(get_player_directory),
    ) -> List[UserAccount]:
        try:
            return await directory.list_accounts(limit=limit, offset=offset, order_by=order_by, order=order)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
        except MemorabiliaError as e:
            raise to_http_exception(e) from e

    @staticmethod
    @game_router.get("/players/{player_id}/account", response_model=AccountView)
    async def get_account(
        player_id: str,
        games: int = Query(10, ge=1, le=100),
        directory: PlayerDirectory = Depends(get_player_directory),
    ) -> AccountView:
        try:
            found = await directory.account(player_id, games=games)
        except MemorabiliaError as e:
            raise to_http_exception(e) from e
        if found is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No account for player {player_id}")
        account, recent_games = found
        return AccountView(account=account, recent_games=recent_games)
