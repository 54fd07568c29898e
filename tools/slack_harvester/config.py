"""Configuration and environment settings for the harvester."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class SlackConfig:
    """Slack Web API configuration.  Tier 3 methods allow ~50 calls per minute."""
    token: str = ""
    api_base: str = "https://slack.com/api"
    history_method: str = "conversations.history"
    list_method: str = "conversations.list"
    page_size: int = 100
    request_delay: float = 1.2  # seconds between API requests
    max_retries: int = 1
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> SlackConfig:
        return cls(
            token=os.getenv("SLACK_TOKEN", ""),
            api_base=os.getenv("SLACK_API_BASE", "https://slack.com/api"),
            request_delay=float(os.getenv("SLACK_REQUEST_DELAY", "1.2")),
            max_retries=int(os.getenv("SLACK_MAX_RETRIES", "1")),
            timeout=float(os.getenv("SLACK_TIMEOUT", "30")),
        )


@dataclass(frozen=True)
class DiskConfig:
    root: str = "/data"

    @classmethod
    def from_env(cls) -> DiskConfig:
        return cls(root=os.getenv("STORAGE_ROOT", "/data"))


@dataclass(frozen=True)
class S3Config:
    endpoint: str = "http://localhost:9000"
    access_key: str = "minioadmin"
    secret_key: str = "minioadmin"
    bucket: str = "slack-media"
    use_ssl: bool = False

    @classmethod
    def from_env(cls) -> S3Config:
        return cls(
            endpoint=os.getenv("S3_ENDPOINT", "http://localhost:9000"),
            access_key=os.getenv("S3_ACCESS_KEY", "minioadmin"),
            secret_key=os.getenv("S3_SECRET_KEY", "minioadmin"),
            bucket=os.getenv("S3_BUCKET", "slack-media"),
            use_ssl=os.getenv("S3_USE_SSL", "false").lower() == "true",
        )


@dataclass
class HarvesterConfig:
    slack: SlackConfig = field(default_factory=SlackConfig.from_env)
    disk: DiskConfig = field(default_factory=DiskConfig.from_env)
    s3: S3Config = field(default_factory=S3Config.from_env)
    storage_driver: str = field(default_factory=lambda: os.getenv("STORAGE_DRIVER", "disk"))
    channel: str = ""
    lookback_days: int = 30

    def default_from_time(self) -> int:
        """Epoch seconds ``lookback_days`` before now."""
        return int(time.time()) - self.lookback_days * 24 * 60 * 60
