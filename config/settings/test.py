from .base import *
from .base import (
    DATA_DIR,
    AssetsConfig,
    DeadlockApiSettings,
    EnrichmentSettings,
    MetadataCacheConfig,
    MetadataServiceConfig,
    OrchestratorConfig,
    PartyDetectionConfig,
    RosterLookupConfig,
)

DEBUG = False

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "deadlyze-test-default",
        "TIMEOUT": None,
    },
    "session": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "deadlyze-test-session",
        "TIMEOUT": None,
    },
}

# No pacing or backoff delays in tests.
DEADLOCK_API_CONFIG = DeadlockApiSettings(
    ASSETS_URL="https://assets.test",
    PLAYER_DATA_URL="https://api.test",
    RETRY_CONFIG={"max_retries": 1, "base_delay_s": 0, "max_delay_s": 0, "jitter_factor": 0},
)
ENRICHMENT_CONFIG = EnrichmentSettings(
    assets=AssetsConfig(hero_fetch_delay_s=0, item_fetch_delay_s=0),
    party=PartyDetectionConfig(mate_stats_delay_s=0),
    metadata_cache=MetadataCacheConfig(retry_delay_s=0, reschedule_delay_s=0),
    metadata=MetadataServiceConfig(fetch_delay_s=0),
    orchestrator=OrchestratorConfig(asset_retry_delay_s=0),
    roster=RosterLookupConfig(roster_dir=DATA_DIR / "test-rosters"),
)
