import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI
from redis.asyncio import Redis

from memorabilia.create_sqlite_engine import create_sqlite_engine
from memorabilia.indexer_client import IndexerClient
from memorabilia.leaderboard_sync import LeaderboardSync, LedgerScoreSubmitter
from memorabilia.load_config import AppSettings
from memorabilia.models.dc_models import AccountUpdate
from memorabilia.receipt_extractor import ReceiptEventExtractor
from memorabilia.redis_subscriber import RedisSubscriber
from memorabilia.routers import game
from memorabilia.score_utils import ScoreUtils
from memorabilia.services.ledger_bridge import LedgerBridge, LocalSimulator, RemoteExecutor, WalletProvider
from memorabilia.services.persistence_store import PersistenceStore, SqlitePersistenceStore
from memorabilia.services.player_directory import PlayerDirectory
from memorabilia.services.player_records import PlayerRecords
from memorabilia.session_controller import SessionController
from memorabilia.session_manager import SessionManager

logging.basicConfig(level=logging.INFO)


def log_account_update(update: AccountUpdate) -> None:
    logging.info(f"Account {update.telegram_id} updated: {update.total_games} games")


def create_app(
    settings: AppSettings | None = None,
    wallet: WalletProvider | None = None,
    store: PersistenceStore | None = None,
) -> FastAPI:
    """Build the game server.

    Run with `uvicorn --factory memorabilia.main:create_app`.

    Args:
        settings (AppSettings, optional): Defaults to the environment configuration
        wallet (WalletProvider, optional): Account used for ledger calls, required unless local_mode
        store (PersistenceStore, optional): Record store, defaults to SQLite at settings.sqlite_path
    """
    settings = settings or AppSettings()
    if not settings.local_mode and wallet is None:
        raise ValueError("Remote mode needs a WalletProvider; set MEMORABILIA_LOCAL_MODE=true to play locally")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Compose the engine and start the background jobs.
        This function is called to start the server.
        """
        record_store = store
        if record_store is None:
            record_store = SqlitePersistenceStore(create_sqlite_engine(settings.sqlite_path))
            await record_store.init_models()

        bridge: LedgerBridge
        if settings.local_mode:
            bridge = LocalSimulator()
        else:
            bridge = RemoteExecutor(
                wallet,
                settings.world_address,
                provider_version=settings.provider_version,
                confirmation_timeout=settings.confirmation_timeout,
            )

        indexer = None
        subscriber = None
        submitter = None
        if not settings.local_mode:
            if settings.torii_url:
                indexer = IndexerClient(settings.torii_url)
            subscriber = RedisSubscriber(
                lambda: Redis(
                    host=settings.redis_host,
                    port=settings.redis_port,
                    decode_responses=True,
                    health_check_interval=30,
                ),
                settings.update_topic,
            )
            submitter = LedgerScoreSubmitter(bridge)

        records = PlayerRecords(record_store, max_entries=settings.leaderboard_max_entries)
        leaderboard_sync = LeaderboardSync(records, indexer=indexer, submitter=submitter, subscriber=subscriber)
        player_directory = PlayerDirectory(records, indexer=indexer)
        extractor = ReceiptEventExtractor()
        scorer = ScoreUtils()

        def controller_factory(player_id: str, display_name: str) -> SessionController:
            return SessionController(
                bridge,
                extractor=extractor,
                scorer=scorer,
                leaderboard_sync=leaderboard_sync,
                player_id=player_id,
                display_name=display_name,
                preview_seconds=settings.preview_seconds,
                mismatch_settle_seconds=settings.mismatch_settle_seconds,
            )

        session_manager = SessionManager(controller_factory)
        app.state.settings = settings
        app.state.leaderboard_sync = leaderboard_sync
        app.state.player_directory = player_directory
        app.state.session_manager = session_manager

        scheduler = AsyncIOScheduler()
        # cached_top serves /leaderboard and the stream; pick up remote scores
        scheduler.add_job(
            leaderboard_sync.refresh,
            "interval",
            minutes=settings.leaderboard_refresh_minutes,
        )
        scheduler.start()
        if subscriber is not None:
            await leaderboard_sync.subscribe(log_account_update)
        logging.info(f"Start Server ({'local' if settings.local_mode else 'remote'} mode)")
        try:
            yield
        finally:
            scheduler.shutdown(wait=False)
            await session_manager.close()
            await leaderboard_sync.unsubscribe()
            if indexer is not None:
                await indexer.close()
            if isinstance(record_store, SqlitePersistenceStore) and store is None:
                await record_store.close()
            logging.info("Stop Server")

    app = FastAPI(lifespan=lifespan)
    app.include_router(game.game_router)
    return app
