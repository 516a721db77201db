"""Configuration management for the IRIS revenue backend."""

import os
from dataclasses import dataclass, field
from typing import List
from dotenv import load_dotenv

load_dotenv()


@dataclass
class GrippConfig:
    """Gripp JSON-RPC API configuration."""

    api_key: str = ""
    api_url: str = "https://api.gripp.com/public/api3.php"
    page_size: int = 250
    max_pages: int = 25
    request_timeout: int = 30


@dataclass
class RevenueConfig:
    """Revenue calculation defaults."""

    default_hourly_rate: float = 100.0
    default_monthly_target: float = 200000.0
    cache_ttl_seconds: int = 300


@dataclass
class SyncConfig:
    """Synchronization job settings."""

    # A lock held longer than this is considered abandoned by a crashed worker
    stale_lock_minutes: int = 120


@dataclass
class WebConfig:
    """Web interface configuration."""

    port: int = 3002
    host: str = "127.0.0.1"
    debug: bool = True
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )


@dataclass
class AgentConfig:
    """Process-level configuration."""

    debug_mode: bool = False
    log_level: str = "INFO"
    database_url: str = "sqlite:///database/iris.db"


class Settings:
    """Main settings manager."""

    def __init__(self):
        self.gripp = self._load_gripp_config()
        self.revenue = self._load_revenue_config()
        self.sync = self._load_sync_config()
        self.web = self._load_web_config()
        self.agent = self._load_agent_config()

    @staticmethod
    def _load_gripp_config() -> GrippConfig:
        # The key is optional at import time; the API client refuses to start without it
        return GrippConfig(
            api_key=os.getenv("GRIPP_API_KEY", ""),
            api_url=os.getenv(
                "GRIPP_API_URL", "https://api.gripp.com/public/api3.php"
            ),
            page_size=int(os.getenv("GRIPP_PAGE_SIZE", "250")),
            max_pages=int(os.getenv("GRIPP_MAX_PAGES", "25")),
            request_timeout=int(os.getenv("GRIPP_REQUEST_TIMEOUT", "30")),
        )

    @staticmethod
    def _load_revenue_config() -> RevenueConfig:
        return RevenueConfig(
            default_hourly_rate=float(os.getenv("IRIS_DEFAULT_HOURLY_RATE", "100")),
            default_monthly_target=float(
                os.getenv("IRIS_DEFAULT_MONTHLY_TARGET", "200000")
            ),
            cache_ttl_seconds=int(os.getenv("IRIS_CACHE_TTL", "300")),
        )

    @staticmethod
    def _load_sync_config() -> SyncConfig:
        return SyncConfig(
            stale_lock_minutes=int(os.getenv("SYNC_STALE_LOCK_MINUTES", "120")),
        )

    @staticmethod
    def _load_web_config() -> WebConfig:
        origins = os.getenv("CORS_ORIGINS", "")
        cors_origins = [o.strip() for o in origins.split(",") if o.strip()]

        config = WebConfig(
            port=int(os.getenv("WEB_PORT", "3002")),
            host=os.getenv("WEB_HOST", "127.0.0.1"),
            debug=os.getenv("WEB_DEBUG", "true").lower() == "true",
        )
        if cors_origins:
            config.cors_origins = cors_origins
        return config

    @staticmethod
    def _load_agent_config() -> AgentConfig:
        return AgentConfig(
            debug_mode=os.getenv("DEBUG_MODE", "false").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///database/iris.db"),
        )


settings = Settings()
