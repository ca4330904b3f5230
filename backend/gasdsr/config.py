# backend/gasdsr/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///gasdsr.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Business day boundaries: IANA zone name, "UTC", or a fixed "+HH:MM" offset
    DSR_TIMEZONE = os.environ.get("DSR_TIMEZONE", "Asia/Dubai")

    # Remote DSR API used by the CLI gateway (empty = use the local database)
    DSR_REMOTE_URL = os.environ.get("DSR_REMOTE_URL", "")
    DSR_REMOTE_TIMEOUT = float(os.environ.get("DSR_REMOTE_TIMEOUT", "10"))

    # Offline mirror: one JSON document, one namespaced key holding all entries
    DSR_CACHE_PATH = os.environ.get("DSR_CACHE_PATH", "instance/dsr-cache.json")
    DSR_CACHE_KEY = os.environ.get("DSR_CACHE_KEY", "dsr-entries")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
