"""Typed keys for objects shared through the aiohttp application."""
from datetime import datetime

from aiohttp import web

from server.auth import ApiKeyRegistry
from server.cleanup import RetentionSweeper
from server.config import AppConfig
from server.downloaders.job_queue import JobRunner
from server.downloaders.job_store import JobStore
from server.downloaders.metadata_extractor import MetadataExtractor
from server.rate_limiter import RateLimiter

CONFIG_KEY = web.AppKey("config", AppConfig)
STORE_KEY = web.AppKey("job_store", JobStore)
RUNNER_KEY = web.AppKey("job_runner", JobRunner)
EXTRACTOR_KEY = web.AppKey("metadata_extractor", MetadataExtractor)
SWEEPER_KEY = web.AppKey("sweeper", RetentionSweeper)
API_KEYS_KEY = web.AppKey("api_keys", ApiKeyRegistry)
RATE_LIMITER_KEY = web.AppKey("rate_limiter", RateLimiter)
STARTED_AT_KEY = web.AppKey("started_at", datetime)
