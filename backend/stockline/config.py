# backend/stockline/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockline.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockline.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Local key-value slot holding the offline operation queue
    OFFLINE_QUEUE_PATH = os.environ.get("OFFLINE_QUEUE_PATH", "offline_queue.json")
    OFFLINE_QUEUE_KEY = "offline_sync_queue"
    QUEUE_POLL_INTERVAL_SECONDS = float(os.environ.get("QUEUE_POLL_INTERVAL_SECONDS", "5"))

    # Shared pool that perfume refills draw from (one per department)
    MASTER_VOLUME_PRODUCT_NAME = os.environ.get("MASTER_VOLUME_PRODUCT_NAME", "Oil Perfume")

    # Connectivity probe
    HEALTH_CHECK_URL = os.environ.get("HEALTH_CHECK_URL", "http://127.0.0.1:5000/api/health")
    HEALTH_CHECK_TIMEOUT_SECONDS = float(os.environ.get("HEALTH_CHECK_TIMEOUT_SECONDS", "5"))
