from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Redis settings
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 20

    # Source platform adapter, "package.module:factory"
    SOURCE_PLATFORM_FACTORY: str | None = None
    SUBREDDIT_NAME: str | None = None

    # =================================================================
    # QUEUE WORKER SETTINGS
    # =================================================================
    QUEUE_BATCH_SIZE: int = 100
    QUEUE_LEASE_TTL_SECONDS: int = 120
    QUEUE_TASK_DELAY_SECONDS: float = 0.15
    WORKER_INTERVAL_SECONDS: int = 30

    # =================================================================
    # ENRICHMENT CACHE SETTINGS
    # =================================================================
    CONTENT_CACHE_TTL_SECONDS: int = 20
    AUTHOR_STATS_CACHE_TTL_SECONDS: int | None = None  # durable until refreshed

    # =================================================================
    # RETENTION AND SWEEP SETTINGS
    # =================================================================
    PRUNE_AGE_SECONDS: int = 13 * 86400
    PRUNE_BATCH_LIMIT: int = 1000
    PRUNE_INTERVAL_SECONDS: int = 3600
    SPAM_SCAN_LIMIT: int = 100
    SPAM_SCAN_INTERVAL_SECONDS: int = 900
    MOD_QUEUE_CHECK_LIMIT: int = 200
    MOD_QUEUE_CHECK_INTERVAL_SECONDS: int = 600
    MODMAIL_SYNC_INTERVAL_SECONDS: int = 300

    # Webhook client
    WEBHOOK_API_BASE: str = "https://discord.com/api/webhooks"
    WEBHOOK_REQUEST_TIMEOUT: float = 15.0

    # Bot account name used when the bridge itself opens a conversation
    APP_ACCOUNT_NAME: str = "discord-bridge"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def get_worker_config(self) -> dict:
        """
        Get queue worker configuration.
        Development runs smaller batches so a broken handler shows up quickly.
        """
        config = {
            "batch_size": self.QUEUE_BATCH_SIZE,
            "lease_ttl_seconds": self.QUEUE_LEASE_TTL_SECONDS,
            "task_delay_seconds": self.QUEUE_TASK_DELAY_SECONDS,
        }

        if self.environment == "development":
            config.update({"batch_size": min(self.QUEUE_BATCH_SIZE, 25)})

        return config


settings = Settings()
