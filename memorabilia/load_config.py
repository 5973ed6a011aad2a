import os
from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


local_mode = _flag("MEMORABILIA_LOCAL_MODE", "true")
torii_url = os.getenv("TORII_URL", "http://localhost:8080")
world_address = os.getenv("WORLD_ADDRESS", "0x0")
provider_version = os.getenv("PROVIDER_VERSION", "v0_7")
redis_host = os.getenv("REDIS_HOST", "redis")
redis_port = int(os.getenv("REDIS_PORT", "6379"))
update_topic = os.getenv("UPDATE_TOPIC", "account_updates")
sqlite_path = os.getenv("SQLITE_PATH", "memorabilia.sqlite3")
confirmation_timeout = float(os.getenv("CONFIRMATION_TIMEOUT", "60"))
preview_seconds = float(os.getenv("PREVIEW_SECONDS", "2"))
mismatch_settle_seconds = float(os.getenv("MISMATCH_SETTLE_SECONDS", "1"))
leaderboard_refresh_minutes = float(os.getenv("LEADERBOARD_REFRESH_MINUTES", "5"))
leaderboard_max_entries = int(os.getenv("LEADERBOARD_MAX_ENTRIES", "100"))


class AppSettings(BaseModel):
    """Settings consumed by create_app. Defaults come from the environment."""

    local_mode: bool = local_mode
    torii_url: str | None = torii_url
    world_address: str = world_address
    provider_version: str = provider_version
    redis_host: str = redis_host
    redis_port: int = redis_port
    update_topic: str = update_topic
    sqlite_path: str | None = sqlite_path  # None keeps records in memory
    confirmation_timeout: float = confirmation_timeout
    preview_seconds: float = preview_seconds
    mismatch_settle_seconds: float = mismatch_settle_seconds
    leaderboard_refresh_minutes: float = leaderboard_refresh_minutes
    leaderboard_max_entries: int = leaderboard_max_entries


if __name__ == "__main__":
    print(AppSettings().model_dump())
