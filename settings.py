# -*- coding: utf-8 -*-
"""
Bot configuration.

Everything is read from the environment once at import time. Structured
values (required groups, catalog sources) are JSON lists.
"""
import json
import logging
import os

from access_gate import GroupDescriptor

logger = logging.getLogger(__name__)


def env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def env_int(name: str, default: int) -> int:
    try:
        return int(env(name, str(default)))
    except ValueError:
        logger.warning("Invalid integer for %s, using %s", name, default)
        return default


def env_json_list(name: str, default):
    raw = env(name)
    if not raw:
        return default
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error("Configuration error in %s: %s", name, e)
        return default
    if not isinstance(value, list):
        logger.error("Configuration error in %s: expected a JSON list", name)
        return default
    return value


# ------------------ CONFIG ------------------
BOT_TOKEN = env("BOT_TOKEN")
BOT_USERNAME = env("BOT_USERNAME", "Search_indianMoviesbot").lstrip("@")
MEDIA_BOT_USERNAME = env("MEDIA_BOT_USERNAME", "SearchMoviesbot_bot").lstrip("@")
ADMIN_USER_ID = env_int("ADMIN_USER_ID", 0)
LOG_LEVEL = env("LOG_LEVEL", "INFO").upper()

# Behavior constants
ITEMS_PER_PAGE = env_int("ITEMS_PER_PAGE", 10)
FETCH_TIMEOUT = env_int("FETCH_TIMEOUT", 15)    # seconds
REGISTRY_TIMEOUT = env_int("REGISTRY_TIMEOUT", 10)  # seconds

# Google Apps Script web app that keeps the chat registry (optional)
REGISTRY_WEBHOOK_URL = env("REGISTRY_WEBHOOK_URL")

DEFAULT_SOURCES = [
    {"category": "1950-1989", "url": "https://raw.githubusercontent.com/itzfew/MoviesBot/master/data/bollywood5089.csv"},
    {"category": "1990-2009", "url": "https://raw.githubusercontent.com/itzfew/MoviesBot/master/data/bollywood9009.csv"},
    {"category": "2010-2019", "url": "https://raw.githubusercontent.com/itzfew/MoviesBot/master/data/bollywood1019.csv"},
]

CATALOG_SOURCES = [
    (str(s["category"]), str(s["url"]))
    for s in env_json_list("CATALOG_SOURCES", DEFAULT_SOURCES)
    if isinstance(s, dict) and s.get("category") and s.get("url")
]

# Groups a user must have joined, in prompt order: [{"id": ..., "url": ..., "name": ...}]
REQUIRED_GROUPS = [
    GroupDescriptor(id=str(g["id"]), invite_link=str(g["url"]), name=str(g.get("name") or g["id"]))
    for g in env_json_list("REQUIRED_GROUPS", [])
    if isinstance(g, dict) and g.get("id") and g.get("url")
]
