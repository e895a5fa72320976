import os
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "default-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'tabmark.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "1") == "1"
    SYNC_CHANNEL_PREFIX = os.environ.get("SYNC_CHANNEL_PREFIX", "sync-channel-")
    SYNC_SUBSCRIBER_QUEUE_SIZE = int(
        os.environ.get("SYNC_SUBSCRIBER_QUEUE_SIZE", "256")
    )
    SYNC_STREAM_TOKEN_TTL_SECONDS = int(
        os.environ.get("SYNC_STREAM_TOKEN_TTL_SECONDS", "300")
    )
    SYNC_STREAM_KEEPALIVE_SECONDS = float(
        os.environ.get("SYNC_STREAM_KEEPALIVE_SECONDS", "15")
    )
    SYNC_SUBSCRIPTION_IDLE_SECONDS = int(
        os.environ.get("SYNC_SUBSCRIPTION_IDLE_SECONDS", "120")
    )
    SYNC_SWEEP_INTERVAL_SECONDS = int(
        os.environ.get("SYNC_SWEEP_INTERVAL_SECONDS", "60")
    )


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SCHEDULER_ENABLED = False
    SYNC_STREAM_KEEPALIVE_SECONDS = 0.05
