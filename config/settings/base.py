# ruff: noqa: ERA001
"""
Base settings for the Deadlyze enrichment core.

The core runs inside the desktop companion process (CLI or the local ASGI
bridge). Local development and tests override these in 'local.py' / 'test.py'.
"""

from pathlib import Path

import environ
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from apps.assets.conf import AssetsConfig
from apps.core.conf import ASSETS_API_BASE_URL, DEFAULT_TIMEOUT_S, PLAYER_DATA_API_BASE_URL
from apps.matches.conf import (
    MatchCacheConfig,
    MetadataCacheConfig,
    MetadataServiceConfig,
    OrchestratorConfig,
    RequestBudgetConfig,
    RosterLookupConfig,
)
from apps.players.conf import PartyDetectionConfig, StatsConfig, TagThresholds
from config.log import LOGGING

# Project structure
BASE_DIR = Path(__file__).resolve(strict=True).parent.parent.parent

# Environment variables setup
env = environ.Env()
READ_DOT_ENV_FILE = env.bool("DEADLYZE_READ_DOT_ENV_FILE", default=False)
if READ_DOT_ENV_FILE:
    env.read_env(str(BASE_DIR / ".env"))

DATA_DIR = Path(env("DEADLYZE_DATA_DIR", default=str(Path.home() / ".deadlyze")))

# GENERAL
# ------------------------------------------------------------------------------
DEBUG = env.bool("DEADLYZE_DEBUG", False)
SECRET_KEY = env("DEADLYZE_SECRET_KEY", default="deadlyze-local-only-not-a-secret")
TIME_ZONE = "UTC"
USE_TZ = True
LANGUAGE_CODE = "en-us"
ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

# The core keeps no relational data.
DATABASES: dict = {}

# APPS
# ------------------------------------------------------------------------------
LOCAL_APPS = [
    "apps.core.apps.CoreConfig",
    "apps.assets.apps.AssetsConfig",
    "apps.players.apps.PlayersConfig",
    "apps.matches.apps.MatchesConfig",
]
INSTALLED_APPS = LOCAL_APPS

# CACHES
# ------------------------------------------------------------------------------
# "default" outlives the process (rate-limit state, search history, identity).
# "session" lives exactly as long as the process (already-attempted matches).
REDIS_CACHE_URL = env("REDIS_CACHE_URL", default=None)

CACHES = {
    "default": (
        {
            "BACKEND": "django.core.cache.backends.redis.RedisCache",
            "LOCATION": REDIS_CACHE_URL,
            "KEY_PREFIX": "deadlyze",
        }
        if REDIS_CACHE_URL
        else {
            "BACKEND": "django.core.cache.backends.filebased.FileBasedCache",
            "LOCATION": str(DATA_DIR / "store"),
            "TIMEOUT": None,
            "OPTIONS": {"MAX_ENTRIES": 10_000},
        }
    ),
    "session": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "deadlyze-session",
        "TIMEOUT": None,
    },
}

# DEADLOCK API CONFIG
# ------------------------------------------------------------------------------


class DeadlockApiSettings(BaseSettings):
    ASSETS_URL: str = ASSETS_API_BASE_URL
    PLAYER_DATA_URL: str = PLAYER_DATA_API_BASE_URL
    TIMEOUT_S: int = DEFAULT_TIMEOUT_S

    RETRY_CONFIG: dict = {
        "max_retries": 2,
        "base_delay_s": 0.5,
        "max_delay_s": 8.0,
        "jitter_factor": 0.5,
    }

    model_config = SettingsConfigDict(frozen=True, env_prefix="DEADLOCK_API_")


class EnrichmentSettings(BaseSettings):
    """Every tunable of the enrichment pipeline; override with DEADLYZE_<SECTION>__<FIELD>."""

    assets: AssetsConfig = Field(default_factory=AssetsConfig)
    stats: StatsConfig = Field(default_factory=StatsConfig)
    tags: TagThresholds = Field(default_factory=TagThresholds)
    party: PartyDetectionConfig = Field(default_factory=PartyDetectionConfig)
    match_cache: MatchCacheConfig = Field(default_factory=MatchCacheConfig)
    metadata_cache: MetadataCacheConfig = Field(default_factory=MetadataCacheConfig)
    metadata: MetadataServiceConfig = Field(default_factory=MetadataServiceConfig)
    budget: RequestBudgetConfig = Field(default_factory=RequestBudgetConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    roster: RosterLookupConfig = Field(
        default_factory=lambda: RosterLookupConfig(roster_dir=DATA_DIR / "rosters"),
    )

    model_config = SettingsConfigDict(frozen=True, env_prefix="DEADLYZE_", env_nested_delimiter="__")


DEADLOCK_API_CONFIG = DeadlockApiSettings()  # ⇐ attribute-style access
ENRICHMENT_CONFIG = EnrichmentSettings()
