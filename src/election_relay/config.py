"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with ELECTION_RELAY_
prefix. No config files, just env vars (12-factor app style).

Learn: Only configuration lives in a module-level singleton. The Redis
client is built in the app lifespan and handed to the consumer and the
broadcasters explicitly, never imported as a global.
"""

from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings

_WEB_DIR = Path(__file__).resolve().parent / "web"


class Settings(BaseSettings):
    """All app configuration. Set via ELECTION_RELAY_* env vars."""

    # Redis (stream = append log, channel = fan-out topic)
    redis_url: str = "redis://localhost:6379/0"
    vote_stream: str = "votes-stream"
    vote_channel: str = "votes-channel"
    vote_field: str = "data"

    # Stream consumer
    read_batch_size: int = 1
    read_retry_seconds: float = 2.0

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8090

    # Dashboard
    seed_path: Path = Path("data/votes.json")
    templates_dir: Path = _WEB_DIR / "templates"
    static_dir: Path = _WEB_DIR / "static"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_prefix": "ELECTION_RELAY_"}

    @model_validator(mode="after")
    def validate_consumer_settings(self):
        """Reject consumer settings that would spin or never read."""
        if self.read_batch_size < 1:
            raise ValueError("ELECTION_RELAY_READ_BATCH_SIZE must be at least 1")
        if self.read_retry_seconds <= 0:
            raise ValueError(
                "ELECTION_RELAY_READ_RETRY_SECONDS must be positive"
            )
        return self


# Singleton, import this everywhere
settings = Settings()
